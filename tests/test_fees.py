from __future__ import annotations

import math

import pytest

from ordinals_sdk.fees import (
    calculate_fee_sats,
    estimate_commit_fee,
    estimate_commit_vsize,
    estimate_reveal_fee,
    estimate_reveal_vsize,
    format_floors_for_log,
    minimum_commit_amount,
    select_fee_rate,
)


class StubFeeSource:
    def __init__(self, fees: dict | None = None, fail: bool = False) -> None:
        self.fees = fees
        self.fail = fail

    def recommended_fees(self):
        if self.fail:
            raise RuntimeError("unreachable")
        return self.fees or {}


def test_commit_vsize_model() -> None:
    assert estimate_commit_vsize(1, 1) == 10 + 112 + 34
    assert estimate_commit_vsize(3, 2) == 10 + 3 * 112 + 2 * 34


def test_commit_vsize_requires_inputs_and_outputs() -> None:
    with pytest.raises(ValueError):
        estimate_commit_vsize(0, 1)
    with pytest.raises(ValueError):
        estimate_commit_vsize(1, 0)


def test_reveal_vsize_model() -> None:
    assert estimate_reveal_vsize(100) == 100 + 100 + 43 + 25
    assert estimate_reveal_vsize(101) == 100 + 101 + 43 + 26


def test_fees_round_up() -> None:
    assert calculate_fee_sats(1.5, 101) == 152
    assert estimate_commit_fee(1, 2, 2.0) == 380
    assert estimate_reveal_fee(100, 1.1) == math.ceil(1.1 * 268)


def test_negative_fee_rate_is_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_fee_sats(-1, 100)


def test_minimum_commit_amount_covers_reveal_and_postage() -> None:
    leaf = b"\x00" * 200

    assert minimum_commit_amount(leaf, 3.0) == estimate_reveal_fee(200, 3.0) + 546
    assert minimum_commit_amount(leaf, 3.0, postage=10_000) == estimate_reveal_fee(200, 3.0) + 10_000


def test_minimum_commit_amount_rejects_dust_postage() -> None:
    with pytest.raises(ValueError):
        minimum_commit_amount(b"\x00", 1.0, postage=100)


def test_explicit_fee_rate_wins() -> None:
    source = StubFeeSource({"halfHourFee": 30})
    selection = select_fee_rate(source, user_fee_rate_satvb=12)
    assert selection.fee_rate_sat_vb == 12
    assert selection.source == "user"


def test_recommended_rate_is_used_for_priority() -> None:
    source = StubFeeSource({"fastestFee": 40, "halfHourFee": 25, "minimumFee": 1})
    selection = select_fee_rate(source, priority="fastestFee")
    assert selection.fee_rate_sat_vb == 40
    assert selection.source == "recommended[fastestFee]"


def test_minimum_fee_acts_as_floor(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ORDINALS_MIN_FEE_RATE_SATVB", raising=False)
    source = StubFeeSource({"halfHourFee": 2, "minimumFee": 5})
    selection = select_fee_rate(source)
    assert math.isclose(selection.fee_rate_sat_vb, 5.0)
    assert selection.floors_applied == [("minimumFee", 5.0)]


def test_unreachable_source_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORDINALS_FALLBACK_FEE_RATE_SATVB", "7.5")
    monkeypatch.delenv("ORDINALS_MIN_FEE_RATE_SATVB", raising=False)
    selection = select_fee_rate(StubFeeSource(fail=True))
    assert selection.fee_rate_sat_vb == 7.5
    assert selection.source == "fallback"


def test_unknown_priority_is_rejected() -> None:
    with pytest.raises(ValueError):
        select_fee_rate(None, priority="whenever")


def test_fee_with_vsize() -> None:
    selection = select_fee_rate(None, user_fee_rate_satvb=10, tx_vsize_estimate=154)
    assert selection.fee_sats == 1540
    assert selection.vsize == 154


def test_max_fee_cap_raises() -> None:
    with pytest.raises(ValueError):
        select_fee_rate(None, user_fee_rate_satvb=1000, tx_vsize_estimate=300, max_fee_sats=200000)


def test_format_floors_for_log() -> None:
    assert format_floors_for_log([]) == "none"
    assert format_floors_for_log([("env", 2.0)]) == "env=2.00 sat/vB"
