"""Bitcoin transaction serialization (legacy and BIP144 witness forms)."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from typing import List

from .script import ser_compact_size, sha256d

SEQUENCE_FINAL = 0xFFFFFFFF
SEQUENCE_RBF = 0xFFFFFFFD


@dataclass
class TxInput:
    txid: str
    vout: int
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL
    witness: List[bytes] = field(default_factory=list)

    def serialize_outpoint(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + struct.pack("<I", self.vout)

    def serialize(self) -> bytes:
        return (
            self.serialize_outpoint()
            + ser_compact_size(len(self.script_sig))
            + self.script_sig
            + struct.pack("<I", self.sequence)
        )

    def serialize_witness(self) -> bytes:
        out = ser_compact_size(len(self.witness))
        for item in self.witness:
            out += ser_compact_size(len(item)) + item
        return out


@dataclass
class TxOutput:
    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        return (
            struct.pack("<Q", self.value)
            + ser_compact_size(len(self.script_pubkey))
            + self.script_pubkey
        )


@dataclass
class Transaction:
    inputs: List[TxInput] = field(default_factory=list)
    outputs: List[TxOutput] = field(default_factory=list)
    version: int = 2
    locktime: int = 0

    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize_without_witness(self) -> bytes:
        out = struct.pack("<I", self.version)
        out += ser_compact_size(len(self.inputs))
        for inp in self.inputs:
            out += inp.serialize()
        out += ser_compact_size(len(self.outputs))
        for txout in self.outputs:
            out += txout.serialize()
        out += struct.pack("<I", self.locktime)
        return out

    def serialize(self) -> bytes:
        """Serialize with the BIP144 marker and witnesses when any are present."""

        if not self.has_witness():
            return self.serialize_without_witness()

        out = struct.pack("<I", self.version) + b"\x00\x01"
        out += ser_compact_size(len(self.inputs))
        for inp in self.inputs:
            out += inp.serialize()
        out += ser_compact_size(len(self.outputs))
        for txout in self.outputs:
            out += txout.serialize()
        for inp in self.inputs:
            out += inp.serialize_witness()
        out += struct.pack("<I", self.locktime)
        return out

    @property
    def txid(self) -> str:
        return sha256d(self.serialize_without_witness())[::-1].hex()

    @property
    def weight(self) -> int:
        base_size = len(self.serialize_without_witness())
        total_size = len(self.serialize())
        return base_size * 3 + total_size

    @property
    def vsize(self) -> int:
        return math.ceil(self.weight / 4)
