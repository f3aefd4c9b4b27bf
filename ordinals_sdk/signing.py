"""Sighash computation and per-input signature dispatch.

Taproot inputs (key path and script path) are signed with BIP340 Schnorr over
the BIP341 sighash. P2PKH inputs use the legacy sighash, while P2WPKH and
nested P2SH-P2WPKH inputs use BIP143; all three are signed with ECDSA and
``SIGHASH_ALL``. The dispatch covers exactly the four script types in
:class:`~ordinals_sdk.model.ScriptType`.
"""

from __future__ import annotations

import logging
import struct
from typing import Sequence

from .address import p2sh_p2wpkh_redeem_script, script_pubkey_for_address
from .errors import UnsupportedScriptType
from .keys import PrivateKey
from .model import ScriptType, UnspentOutput
from .ordinals.taproot_builder import tagged_hash, taproot_tweak_pubkey
from .script import (
    hash160,
    p2pkh_script,
    p2sh_script,
    p2tr_script,
    p2wpkh_script,
    push_data,
    ser_compact_size,
    sha256,
    sha256d,
)
from .transaction import Transaction, TxInput, TxOutput

logger = logging.getLogger(__name__)

SIGHASH_DEFAULT = 0x00
SIGHASH_ALL = 0x01

ECDSA_SCRIPT_TYPES = frozenset({ScriptType.P2PKH, ScriptType.P2SH, ScriptType.P2WPKH})


def legacy_sighash(tx: Transaction, index: int, script_code: bytes, hash_type: int = SIGHASH_ALL) -> bytes:
    """Pre-segwit signature hash for ``SIGHASH_ALL``."""

    stripped = Transaction(version=tx.version, locktime=tx.locktime, outputs=list(tx.outputs))
    for position, inp in enumerate(tx.inputs):
        stripped.inputs.append(
            TxInput(
                txid=inp.txid,
                vout=inp.vout,
                script_sig=script_code if position == index else b"",
                sequence=inp.sequence,
            )
        )
    preimage = stripped.serialize_without_witness() + struct.pack("<I", hash_type)
    return sha256d(preimage)


def bip143_sighash(
    tx: Transaction,
    index: int,
    script_code: bytes,
    amount: int,
    hash_type: int = SIGHASH_ALL,
) -> bytes:
    """Segwit v0 signature hash (BIP143) for ``SIGHASH_ALL``."""

    hash_prevouts = sha256d(b"".join(inp.serialize_outpoint() for inp in tx.inputs))
    hash_sequence = sha256d(b"".join(struct.pack("<I", inp.sequence) for inp in tx.inputs))
    hash_outputs = sha256d(b"".join(out.serialize() for out in tx.outputs))
    target = tx.inputs[index]

    preimage = (
        struct.pack("<I", tx.version)
        + hash_prevouts
        + hash_sequence
        + target.serialize_outpoint()
        + ser_compact_size(len(script_code))
        + script_code
        + struct.pack("<Q", amount)
        + struct.pack("<I", target.sequence)
        + hash_outputs
        + struct.pack("<I", tx.locktime)
        + struct.pack("<I", hash_type)
    )
    return sha256d(preimage)


def taproot_sighash(
    tx: Transaction,
    index: int,
    prevouts: Sequence[TxOutput],
    hash_type: int = SIGHASH_DEFAULT,
    leaf_hash: bytes | None = None,
) -> bytes:
    """BIP341 signature hash for ``SIGHASH_DEFAULT``.

    ``prevouts`` lists the spent output (amount and scriptPubKey) of every
    input. Passing ``leaf_hash`` selects the script-path variant (ext flag 1,
    key version 0, no OP_CODESEPARATOR).
    """

    if hash_type not in (SIGHASH_DEFAULT, SIGHASH_ALL):
        raise ValueError(f"Unsupported taproot hash type 0x{hash_type:02x}")
    if len(prevouts) != len(tx.inputs):
        raise ValueError("Taproot sighash needs one prevout per input")

    sha_prevouts = sha256(b"".join(inp.serialize_outpoint() for inp in tx.inputs))
    sha_amounts = sha256(b"".join(struct.pack("<Q", prev.value) for prev in prevouts))
    sha_scriptpubkeys = sha256(
        b"".join(ser_compact_size(len(prev.script_pubkey)) + prev.script_pubkey for prev in prevouts)
    )
    sha_sequences = sha256(b"".join(struct.pack("<I", inp.sequence) for inp in tx.inputs))
    sha_outputs = sha256(b"".join(out.serialize() for out in tx.outputs))

    ext_flag = 1 if leaf_hash is not None else 0
    message = (
        bytes([0x00, hash_type])
        + struct.pack("<I", tx.version)
        + struct.pack("<I", tx.locktime)
        + sha_prevouts
        + sha_amounts
        + sha_scriptpubkeys
        + sha_sequences
        + sha_outputs
        + bytes([ext_flag * 2])
        + struct.pack("<I", index)
    )
    if leaf_hash is not None:
        message += leaf_hash + b"\x00" + struct.pack("<I", 0xFFFFFFFF)
    return tagged_hash("TapSighash", message)


def sign_input(
    script_type: ScriptType | str,
    sighash: bytes,
    key: PrivateKey,
    *,
    script_path: bool = False,
) -> bytes:
    """Sign ``sighash`` with the scheme required by ``script_type``.

    P2TR returns a 64-byte Schnorr signature (``SIGHASH_DEFAULT``, no suffix);
    key-path spends use the BIP86-tweaked key, script-path spends the
    untweaked key. Other types return DER ECDSA with the ``SIGHASH_ALL`` byte.
    """

    script_type = ScriptType.parse(script_type)
    if script_type is ScriptType.P2TR:
        signer = key if script_path else key.taproot_tweaked()
        return signer.sign_schnorr(sighash)
    if script_type in ECDSA_SCRIPT_TYPES:
        if script_path:
            raise UnsupportedScriptType(f"Script-path signing is Taproot only, got {script_type.value}")
        return key.sign_ecdsa(sighash) + bytes([SIGHASH_ALL])
    raise UnsupportedScriptType(f"No signing scheme for script type {script_type}")  # pragma: no cover


def script_pubkey_for_key(key: PrivateKey, script_type: ScriptType) -> bytes:
    """Return the single-key scriptPubKey ``key`` controls for ``script_type``."""

    if script_type is ScriptType.P2PKH:
        return p2pkh_script(hash160(key.public_key))
    if script_type is ScriptType.P2SH:
        return p2sh_script(hash160(p2sh_p2wpkh_redeem_script(key.public_key)))
    if script_type is ScriptType.P2WPKH:
        return p2wpkh_script(hash160(key.public_key))
    if script_type is ScriptType.P2TR:
        output_key, _ = taproot_tweak_pubkey(key.xonly_public_key, b"")
        return p2tr_script(output_key)
    raise UnsupportedScriptType(f"Unsupported script type: {script_type}")  # pragma: no cover


def prevout_for_utxo(utxo: UnspentOutput, key: PrivateKey) -> TxOutput:
    """Resolve the output being spent, checking it belongs to ``key``."""

    expected = script_pubkey_for_key(key, utxo.script_type)
    if utxo.address is not None:
        actual = script_pubkey_for_address(utxo.address)
        if actual != expected:
            raise ValueError(
                f"UTXO {utxo.outpoint} at {utxo.address} is not a {utxo.script_type.value} output of the signing key"
            )
    return TxOutput(utxo.value, expected)


def sign_transaction_inputs(
    tx: Transaction,
    utxos: Sequence[UnspentOutput],
    key: PrivateKey,
) -> None:
    """Sign every input of ``tx`` in place; ``utxos`` align with ``tx.inputs``."""

    prevouts = [prevout_for_utxo(utxo, key) for utxo in utxos]
    for index, utxo in enumerate(utxos):
        script_type = utxo.script_type
        tx_input = tx.inputs[index]
        pkh_script_code = p2pkh_script(hash160(key.public_key))

        if script_type is ScriptType.P2TR:
            sighash = taproot_sighash(tx, index, prevouts)
            tx_input.witness = [sign_input(script_type, sighash, key)]
        elif script_type is ScriptType.P2WPKH:
            sighash = bip143_sighash(tx, index, pkh_script_code, utxo.value)
            tx_input.witness = [sign_input(script_type, sighash, key), key.public_key]
        elif script_type is ScriptType.P2SH:
            sighash = bip143_sighash(tx, index, pkh_script_code, utxo.value)
            tx_input.script_sig = push_data(p2sh_p2wpkh_redeem_script(key.public_key))
            tx_input.witness = [sign_input(script_type, sighash, key), key.public_key]
        elif script_type is ScriptType.P2PKH:
            sighash = legacy_sighash(tx, index, prevouts[index].script_pubkey)
            signature = sign_input(script_type, sighash, key)
            tx_input.script_sig = push_data(signature) + push_data(key.public_key)
        else:  # pragma: no cover - ScriptType.parse rejects anything else
            raise UnsupportedScriptType(f"Unsupported script type: {script_type}")
        logger.debug("Signed input %d (%s) spending %s", index, script_type.value, utxo.outpoint)
