"""BRC-20 inscription payloads.

Each operation renders to an ordered list of ``(key, value)`` string pairs.
The order is fixed per operation because the serialized JSON bytes are what
indexers see on-chain.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Tuple

from .envelope import JSON_CONTENT_TYPE, InscriptionEnvelope, json_envelope

BRC20_PROTOCOL = "brc-20"
DEFAULT_DECIMALS = 18


def _as_decimal(value: Decimal | int | str, field_name: str) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name} is not a number: {value!r}") from exc
    if not parsed.is_finite() or parsed <= 0:
        raise ValueError(f"{field_name} must be a positive amount, got {value!r}")
    return parsed


def format_amount(value: Decimal) -> str:
    """Render an amount without exponent notation."""

    return format(value, "f")


@dataclass(frozen=True)
class Brc20Deploy:
    tick: str
    max_supply: Decimal
    limit_per_mint: Decimal
    decimals: int = DEFAULT_DECIMALS

    def __post_init__(self) -> None:
        if len(self.tick) != 4:
            raise ValueError("BRC-20 ticker must be exactly 4 characters")
        object.__setattr__(self, "max_supply", _as_decimal(self.max_supply, "max_supply"))
        object.__setattr__(self, "limit_per_mint", _as_decimal(self.limit_per_mint, "limit_per_mint"))
        if not 0 <= self.decimals <= DEFAULT_DECIMALS:
            raise ValueError(f"decimals must be between 0 and {DEFAULT_DECIMALS}, got {self.decimals}")

    def fields(self) -> List[Tuple[str, str]]:
        pairs = [
            ("p", BRC20_PROTOCOL),
            ("op", "deploy"),
            ("tick", self.tick),
            ("max", format_amount(self.max_supply)),
            ("lim", format_amount(self.limit_per_mint)),
        ]
        if self.decimals != DEFAULT_DECIMALS:
            pairs.append(("dec", str(self.decimals)))
        return pairs

    def envelope(self, content_type: str = JSON_CONTENT_TYPE) -> InscriptionEnvelope:
        return json_envelope(self.fields(), content_type)


@dataclass(frozen=True)
class Brc20Mint:
    tick: str
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _as_decimal(self.amount, "amount"))

    def fields(self) -> List[Tuple[str, str]]:
        return [
            ("p", BRC20_PROTOCOL),
            ("op", "mint"),
            ("tick", self.tick),
            ("amt", format_amount(self.amount)),
        ]

    def envelope(self, content_type: str = JSON_CONTENT_TYPE) -> InscriptionEnvelope:
        return json_envelope(self.fields(), content_type)


@dataclass(frozen=True)
class Brc20Transfer:
    tick: str
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _as_decimal(self.amount, "amount"))

    def fields(self) -> List[Tuple[str, str]]:
        return [
            ("p", BRC20_PROTOCOL),
            ("op", "transfer"),
            ("tick", self.tick),
            ("amt", format_amount(self.amount)),
        ]

    def envelope(self, content_type: str = JSON_CONTENT_TYPE) -> InscriptionEnvelope:
        return json_envelope(self.fields(), content_type)
