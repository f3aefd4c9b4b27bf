"""Taproot commitment for a single inscription leaf.

The commit output and the reveal input must agree on the leaf script, the
tweaked output key and the control block, so both builders obtain them from
:func:`derive_commitment`. Point arithmetic is done on affine coordinates with
``cryptography`` supplying scalar multiplication; addresses are encoded with
bech32 (witness v0) or bech32m (witness v1+) per BIP173/BIP350.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Tuple

from cryptography.hazmat.primitives.asymmetric import ec

from ..networks import MAINNET, Network, get_network
from ..script import OP_CHECKSIG, p2tr_script, ser_compact_size

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_FIELD_SIZE = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

TAPSCRIPT_LEAF_VERSION = 0xC0

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32M_CONST = 0x2BC830A3
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

_Point = ec.EllipticCurvePublicNumbers


def tagged_hash(tag: str, data: bytes) -> bytes:
    """BIP340 tagged hash: ``sha256(sha256(tag) || sha256(tag) || data)``."""

    tag_digest = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_digest + tag_digest + data).digest()


def taproot_leaf_hash(leaf_script: bytes, leaf_version: int = TAPSCRIPT_LEAF_VERSION) -> bytes:
    payload = bytes([leaf_version]) + ser_compact_size(len(leaf_script)) + leaf_script
    return tagged_hash("TapLeaf", payload)


def point_from_xonly(x_bytes: bytes) -> _Point:
    """Lift an x-only key to the curve point with even ``y``."""

    p = SECP256K1_FIELD_SIZE
    x = int.from_bytes(x_bytes, "big")
    if x >= p:
        raise ValueError("x-coordinate exceeds field size")

    y_squared = (pow(x, 3, p) + 7) % p
    # p = 3 mod 4
    y = pow(y_squared, (p + 1) // 4, p)
    if pow(y, 2, p) != y_squared:
        raise ValueError("x-coordinate is not on the curve")
    if y & 1:
        y = p - y
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256K1())


def _point_add(first: _Point, second: _Point) -> _Point:
    p = SECP256K1_FIELD_SIZE
    if first.x == second.x:
        if first.y != second.y:
            raise ValueError("Point addition results in point at infinity")
        slope = 3 * first.x * first.x * pow(2 * first.y, -1, p) % p
    else:
        slope = (second.y - first.y) * pow(second.x - first.x, -1, p) % p

    x = (slope * slope - first.x - second.x) % p
    y = (slope * (first.x - x) - first.y) % p
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256K1())


def taproot_tweak_pubkey(internal_key: bytes, merkle_root: bytes) -> Tuple[bytes, int]:
    """Return ``(output_key, parity)`` for ``Q = P + H_TapTweak(P || root) * G``.

    ``merkle_root`` is empty for a key-path-only (BIP86) output.
    """

    if len(internal_key) != 32:
        raise ValueError(f"Internal key must be 32 bytes, got {len(internal_key)}")

    tweak = int.from_bytes(tagged_hash("TapTweak", internal_key + merkle_root), "big")
    if tweak >= SECP256K1_ORDER:
        raise ValueError("Tweak value exceeds curve order")

    try:
        internal_point = point_from_xonly(internal_key)
    except ValueError as exc:
        raise ValueError(f"Invalid internal key: {exc}") from exc
    tweak_point = ec.derive_private_key(tweak, ec.SECP256K1()).public_key().public_numbers()

    output_point = _point_add(internal_point, tweak_point)
    return output_point.x.to_bytes(32, "big"), output_point.y & 1


def xonly(public_key: bytes) -> bytes:
    """Return the 32-byte x-only form of a compressed or x-only public key."""

    if len(public_key) == 32:
        return public_key
    if len(public_key) == 33 and public_key[0] in (0x02, 0x03):
        return public_key[1:]
    raise ValueError(f"Expected a 32-byte x-only or 33-byte compressed key, got {len(public_key)} bytes")


def build_inscription_leaf(internal_key: bytes, envelope_script: bytes) -> bytes:
    """Return the tapscript leaf ``<internal_key> OP_CHECKSIG <envelope>``.

    The envelope sits in an unexecuted ``OP_FALSE OP_IF`` branch, so the
    checksig alone decides whether the reveal spend is valid.
    """

    return bytes([0x20]) + internal_key + bytes([OP_CHECKSIG]) + envelope_script


@dataclass(frozen=True)
class TaprootCommitment:
    """Single-leaf script-path commitment for one envelope and key."""

    internal_public_key: bytes
    leaf_script: bytes
    output_key: bytes
    address: str
    parity: int

    @property
    def leaf_hash(self) -> bytes:
        return taproot_leaf_hash(self.leaf_script)

    @property
    def merkle_root(self) -> bytes:
        return self.leaf_hash

    @property
    def script_pubkey(self) -> bytes:
        return p2tr_script(self.output_key)

    @property
    def control_block(self) -> bytes:
        # single leaf: no merkle path follows the internal key
        return bytes([TAPSCRIPT_LEAF_VERSION | self.parity]) + self.internal_public_key

    def to_dict(self) -> dict:
        return {
            "internal_key": self.internal_public_key.hex(),
            "leaf_script": self.leaf_script.hex(),
            "leaf_hash": self.leaf_hash.hex(),
            "output_key": self.output_key.hex(),
            "parity": self.parity,
            "output_script": self.script_pubkey.hex(),
            "control_block": self.control_block.hex(),
            "address": self.address,
        }


def derive_commitment(
    internal_key: bytes,
    envelope_script: bytes,
    network: Network | str = MAINNET,
) -> TaprootCommitment:
    """Compute the Taproot output committing to ``envelope_script``.

    With a single leaf the merkle root is the leaf hash itself.

    Example:
        >>> commitment = derive_commitment(key.xonly_public_key, envelope.script)
        >>> commitment.address.startswith("bc1p")
        True
    """

    internal_key = xonly(internal_key)
    leaf_script = build_inscription_leaf(internal_key, envelope_script)
    output_key, parity = taproot_tweak_pubkey(internal_key, taproot_leaf_hash(leaf_script))
    return TaprootCommitment(
        internal_public_key=internal_key,
        leaf_script=leaf_script,
        output_key=output_key,
        address=create_taproot_address(output_key, get_network(network).bech32_hrp),
        parity=parity,
    )


# bech32 / bech32m -----------------------------------------------------------


def bech32_polymod(values: Iterable[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = (checksum & 0x1FFFFFF) << 5 ^ value
        for bit, generator in enumerate(_BECH32_GENERATOR):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(char) >> 5 for char in hrp] + [0] + [ord(char) & 31 for char in hrp]


def bech32_create_checksum(hrp: str, data: list[int], spec: str) -> list[int]:
    """Six checksum symbols for ``data`` under ``spec`` (``bech32``/``bech32m``)."""

    constant = BECH32M_CONST if spec == "bech32m" else 1
    polymod = bech32_polymod(bech32_hrp_expand(hrp) + data + [0] * 6) ^ constant
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def convertbits(data: Iterable[int], frombits: int, tobits: int, pad: bool = True) -> list[int] | None:
    """Regroup ``data`` from ``frombits``-wide to ``tobits``-wide values.

    Returns ``None`` for out-of-range input or, without padding, leftover
    non-zero bits.
    """

    accumulator = 0
    bits = 0
    result: list[int] = []
    max_value = (1 << tobits) - 1
    max_accumulator = (1 << (frombits + tobits - 1)) - 1
    for value in data:
        if value < 0 or value >> frombits:
            return None
        accumulator = ((accumulator << frombits) | value) & max_accumulator
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            result.append((accumulator >> bits) & max_value)

    if pad:
        if bits:
            result.append((accumulator << (tobits - bits)) & max_value)
    elif bits >= frombits or (accumulator << (tobits - bits)) & max_value:
        return None
    return result


def bech32_encode(hrp: str, witver: int, witprog: bytes) -> str:
    """Encode a segwit address; v0 uses bech32, v1 and later bech32m."""

    data = [witver] + convertbits(witprog, 8, 5)
    checksum = bech32_create_checksum(hrp, data, "bech32m" if witver >= 1 else "bech32")
    return hrp + "1" + "".join(BECH32_CHARSET[value] for value in data + checksum)


def bech32_decode(bech: str) -> tuple[str, list[int], str] | None:
    """Split a bech32/bech32m string into HRP, data values, and checksum spec.

    Returns ``None`` when the string is not valid under either checksum.
    """

    if any(ord(char) < 33 or ord(char) > 126 for char in bech):
        return None
    if bech.lower() != bech and bech.upper() != bech:
        return None
    bech = bech.lower()
    separator = bech.rfind("1")
    if separator < 1 or separator + 7 > len(bech) or len(bech) > 90:
        return None
    if any(char not in BECH32_CHARSET for char in bech[separator + 1:]):
        return None

    hrp = bech[:separator]
    data = [BECH32_CHARSET.index(char) for char in bech[separator + 1:]]
    residue = bech32_polymod(bech32_hrp_expand(hrp) + data)
    if residue == 1:
        spec = "bech32"
    elif residue == BECH32M_CONST:
        spec = "bech32m"
    else:
        return None
    return hrp, data[:-6], spec


def create_taproot_address(output_key: bytes, hrp: str = "bc") -> str:
    if len(output_key) != 32:
        raise ValueError(f"Output key must be 32 bytes, got {len(output_key)}")
    return bech32_encode(hrp, 1, output_key)
