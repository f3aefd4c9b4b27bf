"""Domain models for building inscription commit/reveal transactions.

Every object here lives for a single inscription attempt: it is created while
planning the commit and reveal pair and discarded once both are broadcast.
Plans validate their conservation invariants on construction, so an invalid
state is rejected instead of being carried into a signed transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from .errors import DustViolation, UnsupportedScriptType

DUST_LIMIT = 546


class ScriptType(str, Enum):
    """Output script kinds the builders know how to spend or pay."""

    P2PKH = "p2pkh"
    P2SH = "p2sh"
    P2WPKH = "p2wpkh"
    P2TR = "p2tr"

    @classmethod
    def parse(cls, raw: "str | ScriptType") -> "ScriptType":
        if isinstance(raw, ScriptType):
            return raw
        normalized = str(raw).strip().lower().replace("-", "").replace("_", "")
        aliases = {
            "p2pkh": cls.P2PKH,
            "p2sh": cls.P2SH,
            "p2shp2wpkh": cls.P2SH,
            "p2wpkh": cls.P2WPKH,
            "v0p2wpkh": cls.P2WPKH,
            "p2tr": cls.P2TR,
            "v1p2tr": cls.P2TR,
            "taproot": cls.P2TR,
        }
        try:
            return aliases[normalized]
        except KeyError as exc:
            raise UnsupportedScriptType(f"Unsupported script type: {raw!r}") from exc


def validate_txid(txid: str) -> str:
    """Return the lower-cased txid after checking it is 32 bytes of hex."""

    try:
        raw = bytes.fromhex(txid)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Transaction id is not hex: {txid!r}") from exc
    if len(raw) != 32:
        raise ValueError(f"Transaction id must be 32 bytes, got {len(raw)}")
    return txid.lower()


@dataclass(frozen=True)
class UnspentOutput:
    """A spendable output supplied by the funding-source collaborator.

    ``txid`` is the usual display (big-endian) hex form.
    """

    txid: str
    vout: int
    value: int
    script_type: ScriptType
    address: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "txid", validate_txid(self.txid))
        object.__setattr__(self, "script_type", ScriptType.parse(self.script_type))
        if not 0 <= self.vout <= 0xFFFFFFFF:
            raise ValueError(f"vout out of range: {self.vout}")
        if self.value <= 0:
            raise ValueError(f"UTXO {self.outpoint} must carry a positive value")

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UnspentOutput":
        """Build from a mempool/Esplora style mapping.

        The script type comes from ``scriptType``/``script_type`` when present,
        otherwise it is inferred from ``address``.
        """

        address = data.get("address")
        raw_type = data.get("scriptType") or data.get("script_type")
        if raw_type is not None:
            script_type = ScriptType.parse(raw_type)
        elif address:
            from .address import parse_address

            script_type = parse_address(address).script_type
        else:
            raise UnsupportedScriptType(
                f"UTXO {data.get('txid')}:{data.get('vout')} has neither a script type nor an address"
            )

        return cls(
            txid=str(data["txid"]),
            vout=int(data["vout"]),
            value=int(data["value"]),
            script_type=script_type,
            address=address,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "txid": self.txid,
            "vout": self.vout,
            "value": self.value,
            "scriptType": self.script_type.value,
        }
        if self.address is not None:
            payload["address"] = self.address
        return payload


@dataclass(frozen=True)
class CommitPlan:
    """Funding decision for a commit transaction."""

    inputs: tuple[UnspentOutput, ...]
    commit_output_value: int
    change_value: int
    fee_paid: int
    dust_limit: int = DUST_LIMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(self.inputs))
        if not self.inputs:
            raise ValueError("A commit plan needs at least one input")
        if self.total_input != self.commit_output_value + self.change_value + self.fee_paid:
            raise ValueError(
                "Commit plan does not balance: "
                f"{self.total_input} != {self.commit_output_value} + {self.change_value} + {self.fee_paid}"
            )
        if self.change_value != 0 and self.change_value <= self.dust_limit:
            raise DustViolation(self.change_value, self.dust_limit)
        if self.fee_paid < 0:
            raise ValueError(f"Commit fee cannot be negative: {self.fee_paid}")

    @property
    def total_input(self) -> int:
        return sum(utxo.value for utxo in self.inputs)

    @property
    def has_change(self) -> bool:
        return self.change_value > 0

    @property
    def output_count(self) -> int:
        return 2 if self.has_change else 1


@dataclass(frozen=True)
class RevealPlan:
    """Amounts for the single-input, single-output reveal transaction."""

    commit_txid: str
    commit_vout: int
    input_amount: int
    output_amount: int
    fee: int
    dust_limit: int = DUST_LIMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "commit_txid", validate_txid(self.commit_txid))
        if self.output_amount + self.fee != self.input_amount:
            raise ValueError(
                "Reveal plan does not balance: "
                f"{self.output_amount} + {self.fee} != {self.input_amount}"
            )
        if self.output_amount < self.dust_limit:
            raise DustViolation(self.output_amount, self.dust_limit)

    @classmethod
    def create(
        cls,
        commit_txid: str,
        commit_vout: int,
        input_amount: int,
        fee: int,
        dust_limit: int = DUST_LIMIT,
    ) -> "RevealPlan":
        """Derive the output amount from the input and fee; never clamps."""

        return cls(
            commit_txid=commit_txid,
            commit_vout=commit_vout,
            input_amount=input_amount,
            output_amount=input_amount - fee,
            fee=fee,
            dust_limit=dust_limit,
        )


@dataclass(frozen=True)
class SignedTransaction:
    """Serialized, fully signed transaction ready for a broadcaster."""

    hex: str
    txid: str
    vsize: int
    weight: int
    plan: CommitPlan | RevealPlan | None = field(default=None, compare=False)

    def __str__(self) -> str:
        return self.hex


def total_value(utxos: Sequence[UnspentOutput]) -> int:
    return sum(utxo.value for utxo in utxos)
