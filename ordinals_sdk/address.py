"""Address parsing and encoding for funding, change, and receiver addresses.

Parsing dispatches on the address prefix: bech32 strings (``bc1``, ``tb1``,
``bcrt1``) are segwit programs whose length decides between P2WPKH and P2TR;
base58 strings starting with ``1``, ``m`` or ``n`` are P2PKH and anything else
base58 is P2SH. There is no fallback: an address that fails its scheme raises
:class:`MalformedAddress`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import base58

from .errors import MalformedAddress, UnsupportedScriptType
from .model import ScriptType
from .networks import MAINNET, NETWORKS, Network, get_network
from .ordinals.taproot_builder import (
    bech32_decode,
    bech32_encode,
    convertbits,
    taproot_tweak_pubkey,
    xonly,
)
from .script import hash160, p2pkh_script, p2sh_script, p2wpkh_script, witness_script

logger = logging.getLogger(__name__)

SEGWIT_PREFIXES = ("bc1", "tb1", "bcrt1")
P2PKH_PREFIXES = ("1", "m", "n")


@dataclass(frozen=True)
class ParsedAddress:
    address: str
    script_type: ScriptType
    script_pubkey: bytes
    network: Network | None = None


def parse_address(address: str, network: Network | str | None = None) -> ParsedAddress:
    """Classify ``address`` and return its scriptPubKey.

    When ``network`` is given the HRP or version byte must belong to it.
    """

    if not isinstance(address, str) or not address.strip():
        raise MalformedAddress(f"Address must be a non-empty string, got {address!r}")
    address = address.strip()
    expected = get_network(network) if network is not None else None

    if address.lower().startswith(SEGWIT_PREFIXES):
        return _parse_segwit(address, expected)
    return _parse_base58(address, expected)


def script_pubkey_for_address(address: str, network: Network | str | None = None) -> bytes:
    return parse_address(address, network).script_pubkey


def _parse_segwit(address: str, expected: Network | None) -> ParsedAddress:
    decoded = bech32_decode(address)
    if decoded is None:
        raise MalformedAddress(f"Invalid bech32 checksum or characters in {address}")
    hrp, data, spec = decoded

    matching = [net for net in NETWORKS.values() if net.bech32_hrp == hrp]
    if not matching:
        raise MalformedAddress(f"Unknown segwit HRP {hrp!r} in {address}")
    if expected is not None and expected.bech32_hrp != hrp:
        raise MalformedAddress(f"Address {address} does not belong to {expected.name}")
    if not data:
        raise MalformedAddress(f"Empty witness data in {address}")

    version = data[0]
    program = convertbits(data[1:], 5, 8, False)
    if version > 16 or program is None or not 2 <= len(program) <= 40:
        raise MalformedAddress(f"Invalid witness program in {address}")
    if (version == 0) != (spec == "bech32"):
        raise MalformedAddress(f"Checksum variant {spec} does not match witness v{version} in {address}")
    program_bytes = bytes(program)

    if version == 0 and len(program_bytes) == 20:
        script_type = ScriptType.P2WPKH
    elif version == 1 and len(program_bytes) == 32:
        script_type = ScriptType.P2TR
    else:
        raise UnsupportedScriptType(
            f"Witness v{version} program of {len(program_bytes)} bytes is not P2WPKH or P2TR: {address}"
        )

    return ParsedAddress(
        address=address,
        script_type=script_type,
        script_pubkey=witness_script(version, program_bytes),
        network=expected or matching[0],
    )


def _parse_base58(address: str, expected: Network | None) -> ParsedAddress:
    try:
        payload = base58.b58decode_check(address)
    except ValueError as exc:
        raise MalformedAddress(f"Invalid base58check address {address}: {exc}") from exc
    if len(payload) != 21:
        raise MalformedAddress(f"Base58 address {address} decodes to {len(payload)} bytes, expected 21")

    version, digest = payload[0], payload[1:]
    networks = [expected] if expected is not None else list(NETWORKS.values())

    if address.startswith(P2PKH_PREFIXES):
        owner = next((net for net in networks if net.p2pkh_version == version), None)
        if owner is None:
            raise MalformedAddress(f"Unexpected P2PKH version byte 0x{version:02x} in {address}")
        return ParsedAddress(address, ScriptType.P2PKH, p2pkh_script(digest), owner)

    owner = next((net for net in networks if net.p2sh_version == version), None)
    if owner is None:
        raise MalformedAddress(f"Unexpected P2SH version byte 0x{version:02x} in {address}")
    return ParsedAddress(address, ScriptType.P2SH, p2sh_script(digest), owner)


def encode_base58_address(version: int, digest: bytes) -> str:
    return base58.b58encode_check(bytes([version]) + digest).decode()


def p2sh_p2wpkh_redeem_script(public_key: bytes) -> bytes:
    """Return the nested-segwit redeem script ``0 <hash160(pubkey)>``."""

    return p2wpkh_script(hash160(public_key))


def address_for_key(
    public_key: bytes,
    script_type: ScriptType | str,
    network: Network | str = MAINNET,
) -> str:
    """Derive the single-key address of ``public_key`` for ``script_type``.

    ``public_key`` is the 33-byte compressed key. P2SH yields the nested
    P2SH-P2WPKH form; P2TR yields the BIP86 key-path address.
    """

    net = get_network(network)
    script_type = ScriptType.parse(script_type)
    if script_type is ScriptType.P2PKH:
        return encode_base58_address(net.p2pkh_version, hash160(public_key))
    if script_type is ScriptType.P2SH:
        return encode_base58_address(net.p2sh_version, hash160(p2sh_p2wpkh_redeem_script(public_key)))
    if script_type is ScriptType.P2WPKH:
        return bech32_encode(net.bech32_hrp, 0, hash160(public_key))
    if script_type is ScriptType.P2TR:
        output_key, _ = taproot_tweak_pubkey(xonly(public_key), b"")
        return bech32_encode(net.bech32_hrp, 1, output_key)
    raise UnsupportedScriptType(f"Unsupported script type: {script_type}")  # pragma: no cover
