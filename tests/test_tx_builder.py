from __future__ import annotations

import coincurve
import pytest

from ordinals_sdk.address import parse_address
from ordinals_sdk.errors import DustViolation, InsufficientFunds
from ordinals_sdk.fees import estimate_commit_vsize, estimate_reveal_fee
from ordinals_sdk.keys import PrivateKey
from ordinals_sdk.model import RevealPlan, ScriptType, UnspentOutput
from ordinals_sdk.ordinals.envelope import text_envelope
from ordinals_sdk.signing import taproot_sighash
from ordinals_sdk.transaction import Transaction, TxInput, TxOutput
from ordinals_sdk.tx_builder import InscriptionTransactionBuilder, select_utxos

KEY = PrivateKey(1)
FUNDING_ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
RECEIVER_ADDRESS = "bc1p5cyxnuxmeuwuvkwfem96lqzszd02n6xdcjrs20cac6yqjjwudpxqkedrcr"
ENVELOPE = text_envelope("Hello, Ordinals!")
COMMIT_TXID = "ab" * 32


def _utxo(value: int, index: int = 1) -> UnspentOutput:
    return UnspentOutput(
        txid=f"{index:02x}" * 32,
        vout=0,
        value=value,
        script_type=ScriptType.P2WPKH,
        address=FUNDING_ADDRESS,
    )


def _output_bytes(value: int, script_pubkey: bytes) -> bytes:
    return TxOutput(value, script_pubkey).serialize()


def test_commit_with_change_has_two_outputs() -> None:
    builder = InscriptionTransactionBuilder()
    commitment = builder.commitment_for(KEY, ENVELOPE.script)

    signed = builder.build_commit([_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0)

    plan = signed.plan
    assert plan.commit_output_value == 546
    assert plan.fee_paid == 380
    assert plan.change_value == 100_000 - 546 - 380
    raw = bytes.fromhex(signed.hex)
    commit_out = _output_bytes(546, commitment.script_pubkey)
    change_out = _output_bytes(plan.change_value, parse_address(FUNDING_ADDRESS).script_pubkey)
    assert raw.index(commit_out) < raw.index(change_out)
    assert raw[:4] == b"\x02\x00\x00\x00"
    assert raw[-4:] == b"\x00\x00\x00\x00"


def test_commit_inputs_signal_rbf_by_default() -> None:
    signed = InscriptionTransactionBuilder().build_commit(
        [_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0
    )

    raw = bytes.fromhex(signed.hex)
    # version, marker/flag, input count, outpoint, empty scriptSig
    assert raw[44:48] == b"\xfd\xff\xff\xff"


def test_commit_rbf_can_be_disabled() -> None:
    builder = InscriptionTransactionBuilder(replaceable_commit=False)

    signed = builder.build_commit([_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0)

    assert bytes.fromhex(signed.hex)[44:48] == b"\xff\xff\xff\xff"


def test_commit_target_amount_is_honored() -> None:
    builder = InscriptionTransactionBuilder()

    plan = builder.build_commit(
        [_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0, target_amount=20_000
    ).plan

    assert plan.commit_output_value == 20_000
    assert plan.change_value == 100_000 - 20_000 - 380


def test_sub_dust_change_is_absorbed_into_fee() -> None:
    builder = InscriptionTransactionBuilder()

    signed = builder.build_commit([_utxo(546 + 312 + 100)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0)

    plan = signed.plan
    assert plan.change_value == 0
    assert plan.output_count == 1
    assert plan.fee_paid == 412
    change_script = parse_address(FUNDING_ADDRESS).script_pubkey
    assert change_script not in bytes.fromhex(signed.hex)


def test_change_equal_to_dust_is_dropped() -> None:
    plan = InscriptionTransactionBuilder().plan_commit([_utxo(546 + 380 + 546)], 546, 2.0)

    assert plan.change_value == 0
    assert plan.fee_paid == 380 + 546


def test_insufficient_funds_reports_needed_and_available() -> None:
    with pytest.raises(InsufficientFunds) as excinfo:
        InscriptionTransactionBuilder().plan_commit([_utxo(800)], 546, 2.0)

    assert excinfo.value.needed == 546 + 312
    assert excinfo.value.available == 800


def test_commit_without_utxos_is_insufficient() -> None:
    with pytest.raises(InsufficientFunds):
        InscriptionTransactionBuilder().plan_commit([], 546, 1.0)


def test_commit_target_below_dust_is_rejected() -> None:
    with pytest.raises(DustViolation):
        InscriptionTransactionBuilder().build_commit(
            [_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0, target_amount=500
        )


@pytest.mark.parametrize("values", [[1_000], [1_500], [5_000, 700], [100_000, 2_000, 3_000]])
@pytest.mark.parametrize("fee_rate", [1.0, 3.7, 12.0])
def test_commit_plan_conserves_value(values: list[int], fee_rate: float) -> None:
    utxos = [_utxo(value, index) for index, value in enumerate(values, start=1)]
    builder = InscriptionTransactionBuilder()

    try:
        plan = builder.plan_commit(utxos, 546, fee_rate)
    except InsufficientFunds as exc:
        assert exc.available == sum(values)
        return

    assert plan.total_input == plan.commit_output_value + plan.change_value + plan.fee_paid
    assert plan.change_value == 0 or plan.change_value > builder.dust_limit
    assert plan.commit_output_value >= builder.dust_limit


def test_commit_is_deterministic() -> None:
    builder = InscriptionTransactionBuilder()
    utxos = [_utxo(40_000, 1), _utxo(25_000, 2)]

    first = builder.build_commit(utxos, ENVELOPE.script, FUNDING_ADDRESS, KEY, 5.0)
    second = builder.build_commit(utxos, ENVELOPE.script, FUNDING_ADDRESS, KEY, 5.0)

    assert first.hex == second.hex
    assert first.txid == second.txid


def test_commit_size_model_is_conservative_for_segwit_inputs() -> None:
    signed = InscriptionTransactionBuilder().build_commit(
        [_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0
    )

    assert signed.vsize <= estimate_commit_vsize(1, 2)


def test_select_utxos_prefers_largest_first() -> None:
    utxos = [_utxo(1_000, 1), _utxo(50_000, 2), _utxo(3_000, 3)]

    selected = select_utxos(utxos, 546, 2.0)

    assert [u.value for u in selected] == [50_000]


def test_select_utxos_accumulates_until_covered() -> None:
    utxos = [_utxo(600, 1), _utxo(500, 2), _utxo(400, 3)]

    selected = select_utxos(utxos, 546, 1.0)

    assert [u.value for u in selected] == [600, 500]


def test_select_utxos_raises_when_short() -> None:
    with pytest.raises(InsufficientFunds) as excinfo:
        select_utxos([_utxo(300, 1), _utxo(400, 2)], 546, 1.0)

    assert excinfo.value.available == 700


def test_reveal_witness_and_signature() -> None:
    builder = InscriptionTransactionBuilder()
    commitment = builder.commitment_for(KEY, ENVELOPE.script)

    signed = builder.build_reveal(COMMIT_TXID, 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, 10_000)

    plan = signed.plan
    leaf = commitment.leaf_script
    assert plan.fee == estimate_reveal_fee(len(leaf), 2.0)
    assert plan.output_amount == 10_000 - plan.fee

    raw = bytes.fromhex(signed.hex)
    assert raw[44:48] == b"\xff\xff\xff\xff"
    receiver_script = parse_address(RECEIVER_ADDRESS).script_pubkey
    witness_start = 4 + 2 + 1 + 41 + 1 + 8 + 1 + len(receiver_script)
    assert raw[witness_start] == 3
    assert raw[witness_start + 1] == 64
    signature = raw[witness_start + 2:witness_start + 66]
    cursor = witness_start + 66
    assert raw[cursor] == len(leaf)
    assert raw[cursor + 1:cursor + 1 + len(leaf)] == leaf
    cursor += 1 + len(leaf)
    assert raw[cursor] == 33
    assert raw[cursor + 1:cursor + 34] == commitment.control_block
    assert raw[cursor + 34:] == b"\x00\x00\x00\x00"

    unsigned = Transaction(
        inputs=[TxInput(txid=COMMIT_TXID, vout=0)],
        outputs=[TxOutput(plan.output_amount, receiver_script)],
    )
    sighash = taproot_sighash(
        unsigned, 0, [TxOutput(10_000, commitment.script_pubkey)], leaf_hash=commitment.leaf_hash
    )
    assert coincurve.PublicKeyXOnly(KEY.xonly_public_key).verify(signature, sighash)


def test_reveal_spends_the_commit_output() -> None:
    builder = InscriptionTransactionBuilder()
    commit = builder.build_commit(
        [_utxo(100_000)], ENVELOPE.script, FUNDING_ADDRESS, KEY, 2.0, target_amount=5_000
    )

    reveal = builder.build_reveal(commit.txid, 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, 5_000)

    outpoint = bytes.fromhex(commit.txid)[::-1] + b"\x00\x00\x00\x00"
    assert bytes.fromhex(reveal.hex)[7:43] == outpoint


def test_reveal_below_dust_is_rejected() -> None:
    with pytest.raises(DustViolation):
        RevealPlan.create(COMMIT_TXID, 0, input_amount=600, fee=100)


def test_build_reveal_below_dust_is_rejected() -> None:
    with pytest.raises(DustViolation):
        InscriptionTransactionBuilder().build_reveal(
            COMMIT_TXID, 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, 600
        )


def test_reveal_output_exactly_dust_is_allowed() -> None:
    builder = InscriptionTransactionBuilder()
    leaf = builder.commitment_for(KEY, ENVELOPE.script).leaf_script
    input_amount = 546 + estimate_reveal_fee(len(leaf), 2.0)

    signed = builder.build_reveal(COMMIT_TXID, 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, input_amount)

    assert signed.plan.output_amount == 546


def test_reveal_is_deterministic() -> None:
    builder = InscriptionTransactionBuilder()

    first = builder.build_reveal(COMMIT_TXID, 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, 10_000)
    second = builder.build_reveal(COMMIT_TXID, 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, 10_000)

    assert first.hex == second.hex


def test_reveal_rejects_bad_commit_txid() -> None:
    with pytest.raises(ValueError):
        InscriptionTransactionBuilder().build_reveal(
            "xyz", 0, ENVELOPE.script, RECEIVER_ADDRESS, KEY, 2.0, 10_000
        )


def test_reveal_fee_is_sized_on_the_full_leaf() -> None:
    builder = InscriptionTransactionBuilder()
    leaf = builder.commitment_for(KEY, ENVELOPE.script).leaf_script

    plan = builder.plan_reveal(COMMIT_TXID, 0, leaf, 3.0, 10_000)

    assert len(leaf) == len(ENVELOPE.script) + 34
    assert plan.fee == estimate_reveal_fee(len(leaf), 3.0)
    assert plan.fee > estimate_reveal_fee(len(ENVELOPE.script), 3.0)
