"""Size models and fee-rate selection for inscription transactions.

The commit and reveal transactions have different shapes, so each has its own
size model. Both are approximations in virtual bytes; callers that need exact
fees must derive them from the serialized transaction instead.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Tuple

from .model import DUST_LIMIT

logger = logging.getLogger(__name__)

COMMIT_OVERHEAD_VBYTES = 10
COMMIT_INPUT_VBYTES = 112
COMMIT_OUTPUT_VBYTES = 34
REVEAL_OVERHEAD_VBYTES = 100
REVEAL_OUTPUT_VBYTES = 43

DEFAULT_FEE_PRIORITY = "halfHourFee"
DEFAULT_FALLBACK_FEE_RATE_SATVB = 10.0
ENV_MIN_FEE_RATE_FLOOR = "ORDINALS_MIN_FEE_RATE_SATVB"
ENV_FALLBACK_FEE_RATE = "ORDINALS_FALLBACK_FEE_RATE_SATVB"
FEE_PRIORITIES = ("fastestFee", "halfHourFee", "hourFee", "economyFee", "minimumFee")


def estimate_commit_vsize(input_count: int, output_count: int) -> int:
    """Conservative commit size: overhead + 112 per input + 34 per output."""

    if input_count < 1:
        raise ValueError("A commit transaction needs at least one input")
    if output_count < 1:
        raise ValueError("A commit transaction needs at least one output")
    return COMMIT_OVERHEAD_VBYTES + input_count * COMMIT_INPUT_VBYTES + output_count * COMMIT_OUTPUT_VBYTES


def estimate_reveal_vsize(script_size: int) -> int:
    """Reveal size for one script-path input carrying a ``script_size`` leaf."""

    if script_size < 0:
        raise ValueError(f"Script size cannot be negative: {script_size}")
    return REVEAL_OVERHEAD_VBYTES + script_size + REVEAL_OUTPUT_VBYTES + math.ceil(script_size / 4)


def calculate_fee_sats(fee_rate_sat_vb: float, vsize: int) -> int:
    """Return the ceil'd fee in satoshis for the provided vsize."""

    if fee_rate_sat_vb < 0:
        raise ValueError(f"Fee rate cannot be negative: {fee_rate_sat_vb}")
    return int(math.ceil(fee_rate_sat_vb * vsize))


def estimate_commit_fee(input_count: int, output_count: int, fee_rate_sat_vb: float) -> int:
    return calculate_fee_sats(fee_rate_sat_vb, estimate_commit_vsize(input_count, output_count))


def estimate_reveal_fee(script_size: int, fee_rate_sat_vb: float) -> int:
    return calculate_fee_sats(fee_rate_sat_vb, estimate_reveal_vsize(script_size))


def minimum_commit_amount(
    leaf_script: bytes,
    fee_rate_sat_vb: float,
    postage: int = DUST_LIMIT,
) -> int:
    """Value the commit output must carry so the reveal can pay ``postage``."""

    if postage < DUST_LIMIT:
        raise ValueError(f"Postage {postage} is below the dust limit {DUST_LIMIT}")
    reveal_fee = estimate_reveal_fee(len(leaf_script), fee_rate_sat_vb)
    logger.debug(
        "Reveal of %d-byte leaf at %.2f sat/vB costs %d sats; commit output needs %d",
        len(leaf_script),
        fee_rate_sat_vb,
        reveal_fee,
        reveal_fee + postage,
    )
    return reveal_fee + postage


@dataclass(frozen=True)
class FeeSelectionResult:
    """Chosen fee rate, where it came from, and the floors that bound it."""

    fee_rate_sat_vb: float
    source: str
    floors_applied: list[Tuple[str, float]]
    fee_sats: int | None = None
    vsize: int | None = None

    def with_vsize(self, vsize: int) -> "FeeSelectionResult":
        return replace(self, vsize=vsize, fee_sats=calculate_fee_sats(self.fee_rate_sat_vb, vsize))


def _as_rate(raw: Any, label: str) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric fee rate for %s: %r", label, raw)
        return None


def _fetch_recommended(fee_source: Any | None) -> Mapping[str, Any]:
    if fee_source is None:
        return {}
    try:
        return fee_source.recommended_fees() or {}
    except Exception as exc:  # pragma: no cover - transport errors vary
        logger.info("Recommended fees unavailable: %s", exc)
        return {}


def select_fee_rate(
    fee_source: Any | None,
    *,
    priority: str | None = None,
    user_fee_rate_satvb: float | None = None,
    min_fee_rate_satvb_floor: float | None = None,
    max_fee_sats: int | None = None,
    tx_vsize_estimate: int | None = None,
    fallback_fee_rate_satvb: float | None = None,
) -> FeeSelectionResult:
    """Pick a fee rate in sat/vB.

    Order of preference: ``user_fee_rate_satvb``, the ``priority`` entry of
    ``fee_source.recommended_fees()``, then a fallback. The result is raised
    to the highest floor among ``$ORDINALS_MIN_FEE_RATE_SATVB``,
    ``min_fee_rate_satvb_floor`` and the source's ``minimumFee``. With
    ``tx_vsize_estimate`` the absolute fee is computed and checked against
    ``max_fee_sats``.
    """

    priority = priority or DEFAULT_FEE_PRIORITY
    if priority not in FEE_PRIORITIES:
        raise ValueError(f"Unknown fee priority {priority!r}; expected one of {', '.join(FEE_PRIORITIES)}")

    # a user rate skips the network round trip entirely
    recommended = _fetch_recommended(None if user_fee_rate_satvb is not None else fee_source)

    floors = {
        "env": _as_rate(os.environ.get(ENV_MIN_FEE_RATE_FLOOR), ENV_MIN_FEE_RATE_FLOOR),
        "cli_floor": _as_rate(min_fee_rate_satvb_floor, "cli_floor"),
        "minimumFee": _as_rate(recommended.get("minimumFee"), "minimumFee"),
    }
    floors = {label: rate for label, rate in floors.items() if rate is not None}
    floor_value = max(floors.values(), default=None)

    if user_fee_rate_satvb is not None:
        fee_rate, source = float(user_fee_rate_satvb), "user"
    elif _as_rate(recommended.get(priority), priority) is not None:
        fee_rate, source = float(recommended[priority]), f"recommended[{priority}]"
    else:
        fallback = (
            min_fee_rate_satvb_floor
            or _as_rate(os.environ.get(ENV_FALLBACK_FEE_RATE), ENV_FALLBACK_FEE_RATE)
            or fallback_fee_rate_satvb
            or DEFAULT_FALLBACK_FEE_RATE_SATVB
        )
        fee_rate, source = float(fallback), "fallback"

    if floor_value is not None and fee_rate < floor_value:
        logger.debug("Raising %.2f sat/vB to floor %.2f sat/vB", fee_rate, floor_value)
        fee_rate = floor_value

    selection = FeeSelectionResult(
        fee_rate_sat_vb=fee_rate,
        source=source,
        floors_applied=[(label, rate) for label, rate in floors.items() if rate == floor_value],
    )
    if not tx_vsize_estimate:
        return selection

    selection = selection.with_vsize(tx_vsize_estimate)
    if max_fee_sats is not None and selection.fee_sats > max_fee_sats:
        raise ValueError(f"Fee of {selection.fee_sats} sats exceeds the {max_fee_sats} sat cap")
    return selection


def format_floors_for_log(floors: Iterable[Tuple[str, float]]) -> str:
    return ", ".join(f"{label}={rate:.2f} sat/vB" for label, rate in floors) or "none"
