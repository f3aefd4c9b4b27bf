"""Commit and reveal transaction builders for inscriptions.

The commit transaction funds a Taproot output whose single script leaf carries
the inscription envelope; the reveal transaction spends that output through
the script path, exposing the envelope in its witness. Both builders are pure:
they sign and serialize but never broadcast.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .address import parse_address
from .errors import DustViolation, InsufficientFunds
from .fees import estimate_commit_fee, estimate_reveal_fee
from .keys import PrivateKey
from .model import (
    DUST_LIMIT,
    CommitPlan,
    RevealPlan,
    ScriptType,
    SignedTransaction,
    UnspentOutput,
    total_value,
    validate_txid,
)
from .networks import MAINNET, Network, get_network
from .ordinals.taproot_builder import TaprootCommitment, derive_commitment
from .signing import sign_input, sign_transaction_inputs, taproot_sighash
from .transaction import SEQUENCE_FINAL, SEQUENCE_RBF, Transaction, TxInput, TxOutput

logger = logging.getLogger(__name__)

COMMIT_VOUT = 0


def select_utxos(
    utxos: Sequence[UnspentOutput],
    commit_output_value: int,
    fee_rate_sat_vb: float,
) -> List[UnspentOutput]:
    """Greedily pick UTXOs, largest first, until they cover output and fee.

    The fee is re-estimated for a single-output commit as each input is added.
    """

    if not utxos:
        raise InsufficientFunds(commit_output_value, 0)

    selected: List[UnspentOutput] = []
    total = 0
    needed = commit_output_value
    for utxo in sorted(utxos, key=lambda u: u.value, reverse=True):
        selected.append(utxo)
        total += utxo.value
        needed = commit_output_value + estimate_commit_fee(len(selected), 1, fee_rate_sat_vb)
        if total >= needed:
            logger.debug("Selected %d UTXOs totaling %d sats", len(selected), total)
            return selected

    logger.warning("Insufficient funds for commit: needed=%d, available=%d", needed, total)
    raise InsufficientFunds(needed, total)


class InscriptionTransactionBuilder:
    """Build signed commit and reveal transactions for one network."""

    def __init__(
        self,
        network: Network | str = MAINNET,
        *,
        dust_limit: int = DUST_LIMIT,
        replaceable_commit: bool = True,
    ) -> None:
        self.network = get_network(network)
        self.dust_limit = dust_limit
        self.replaceable_commit = replaceable_commit

    def commitment_for(self, signing_key: PrivateKey, envelope_script: bytes) -> TaprootCommitment:
        """Derive the commitment shared by the commit output and reveal input."""

        return derive_commitment(signing_key.xonly_public_key, envelope_script, self.network)

    def plan_commit(
        self,
        utxos: Sequence[UnspentOutput],
        commit_output_value: int,
        fee_rate_sat_vb: float,
    ) -> CommitPlan:
        """Split the input total into commit output, change, and fee.

        Change is kept only when it exceeds the dust limit; otherwise it is
        absorbed into the fee.
        """

        if not utxos:
            raise InsufficientFunds(commit_output_value, 0)
        if commit_output_value < self.dust_limit:
            raise DustViolation(commit_output_value, self.dust_limit)

        total_input = total_value(utxos)
        fee_with_change = estimate_commit_fee(len(utxos), 2, fee_rate_sat_vb)
        change = total_input - commit_output_value - fee_with_change
        if change > self.dust_limit:
            return CommitPlan(
                inputs=tuple(utxos),
                commit_output_value=commit_output_value,
                change_value=change,
                fee_paid=fee_with_change,
                dust_limit=self.dust_limit,
            )

        fee_without_change = estimate_commit_fee(len(utxos), 1, fee_rate_sat_vb)
        needed = commit_output_value + fee_without_change
        if total_input < needed:
            raise InsufficientFunds(needed, total_input)
        if change > 0:
            logger.info("Dropping %d sats of sub-dust change into the commit fee", change)
        return CommitPlan(
            inputs=tuple(utxos),
            commit_output_value=commit_output_value,
            change_value=0,
            fee_paid=total_input - commit_output_value,
            dust_limit=self.dust_limit,
        )

    def build_commit(
        self,
        utxos: Sequence[UnspentOutput],
        envelope_script: bytes,
        change_address: str,
        signing_key: PrivateKey,
        fee_rate_sat_vb: float,
        target_amount: int | None = None,
    ) -> SignedTransaction:
        """Create the signed commit transaction paying the Taproot commitment.

        ``target_amount`` defaults to the dust limit. Every input is signed
        independently according to its script type.
        """

        commitment = self.commitment_for(signing_key, envelope_script)
        commit_value = self.dust_limit if target_amount is None else target_amount
        plan = self.plan_commit(utxos, commit_value, fee_rate_sat_vb)

        sequence = SEQUENCE_RBF if self.replaceable_commit else SEQUENCE_FINAL
        tx = Transaction(
            inputs=[TxInput(txid=utxo.txid, vout=utxo.vout, sequence=sequence) for utxo in plan.inputs],
            outputs=[TxOutput(plan.commit_output_value, commitment.script_pubkey)],
        )
        if plan.has_change:
            change_script = parse_address(change_address, self.network).script_pubkey
            tx.outputs.append(TxOutput(plan.change_value, change_script))

        sign_transaction_inputs(tx, plan.inputs, signing_key)

        signed = _finalize(tx, plan)
        logger.info(
            "Built commit %s: %d inputs, commit=%d sats to %s, change=%d, fee=%d",
            signed.txid,
            len(plan.inputs),
            plan.commit_output_value,
            commitment.address,
            plan.change_value,
            plan.fee_paid,
        )
        return signed

    def plan_reveal(
        self,
        commit_txid: str,
        commit_vout: int,
        leaf_script: bytes,
        fee_rate_sat_vb: float,
        input_amount: int,
    ) -> RevealPlan:
        # sized on the whole leaf, 34 bytes above the bare envelope
        fee = estimate_reveal_fee(len(leaf_script), fee_rate_sat_vb)
        return RevealPlan.create(
            commit_txid=commit_txid,
            commit_vout=commit_vout,
            input_amount=input_amount,
            fee=fee,
            dust_limit=self.dust_limit,
        )

    def build_reveal(
        self,
        commit_txid: str,
        commit_vout: int,
        envelope_script: bytes,
        receiver_address: str,
        signing_key: PrivateKey,
        fee_rate_sat_vb: float,
        input_amount: int,
    ) -> SignedTransaction:
        """Spend the commit output via the script path, paying ``receiver_address``.

        The output below the dust limit is a hard failure. The input does not
        signal replace-by-fee.
        """

        commit_txid = validate_txid(commit_txid)
        commitment = self.commitment_for(signing_key, envelope_script)
        plan = self.plan_reveal(
            commit_txid, commit_vout, commitment.leaf_script, fee_rate_sat_vb, input_amount
        )
        receiver_script = parse_address(receiver_address, self.network).script_pubkey

        tx = Transaction(
            inputs=[TxInput(txid=commit_txid, vout=commit_vout, sequence=SEQUENCE_FINAL)],
            outputs=[TxOutput(plan.output_amount, receiver_script)],
        )
        spent = TxOutput(plan.input_amount, commitment.script_pubkey)
        sighash = taproot_sighash(tx, 0, [spent], leaf_hash=commitment.leaf_hash)
        signature = sign_input(ScriptType.P2TR, sighash, signing_key, script_path=True)
        tx.inputs[0].witness = [signature, commitment.leaf_script, commitment.control_block]

        signed = _finalize(tx, plan)
        logger.info(
            "Built reveal %s spending %s:%d, output=%d sats to %s, fee=%d",
            signed.txid,
            commit_txid,
            commit_vout,
            plan.output_amount,
            receiver_address,
            plan.fee,
        )
        return signed


def _finalize(tx: Transaction, plan: CommitPlan | RevealPlan) -> SignedTransaction:
    return SignedTransaction(
        hex=tx.serialize().hex(),
        txid=tx.txid,
        vsize=tx.vsize,
        weight=tx.weight,
        plan=plan,
    )
