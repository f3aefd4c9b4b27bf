"""Signing key wrapper used by the commit and reveal builders.

Key management lives outside this package; the wrapper only parses the
encodings needed to obtain the secret (raw hex or WIF), derives the public
key, and signs.

ECDSA signatures come from ``cryptography`` with RFC 6979 nonces and are
normalized to low-S. BIP340 Schnorr signatures come from ``coincurve``
(libsecp256k1) with zeroed auxiliary randomness, so repeated builds produce
identical bytes.
"""

from __future__ import annotations

import base58
import coincurve
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, utils

from .networks import MAINNET, NETWORKS, Network, get_network
from .ordinals.taproot_builder import SECP256K1_ORDER, tagged_hash

_HALF_ORDER = SECP256K1_ORDER // 2


class PrivateKey:
    """secp256k1 private key with compressed public key derivation."""

    def __init__(self, secret: bytes | int, network: Network | str = MAINNET) -> None:
        secret_int = secret if isinstance(secret, int) else int.from_bytes(secret, "big")
        if isinstance(secret, bytes) and len(secret) != 32:
            raise ValueError(f"Private key must be 32 bytes, got {len(secret)}")
        if not 0 < secret_int < SECP256K1_ORDER:
            raise ValueError("Private key is outside the secp256k1 scalar range")
        self._secret = secret_int
        self.network = get_network(network)
        self._ec_key = ec.derive_private_key(secret_int, ec.SECP256K1())

    def __repr__(self) -> str:
        return f"PrivateKey(pubkey={self.public_key.hex()}, network={self.network.name})"

    @classmethod
    def from_hex(cls, secret_hex: str, network: Network | str = MAINNET) -> "PrivateKey":
        return cls(bytes.fromhex(secret_hex), network)

    @classmethod
    def from_wif(cls, wif: str) -> "PrivateKey":
        """Parse a compressed WIF key; the prefix selects the network."""

        try:
            payload = base58.b58decode_check(wif.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid WIF checksum or encoding: {exc}") from exc
        if len(payload) != 34 or payload[-1] != 0x01:
            raise ValueError("Only compressed WIF keys are supported")
        prefix = payload[0]
        network = next((net for net in NETWORKS.values() if net.wif_prefix == prefix), None)
        if network is None:
            raise ValueError(f"Unknown WIF prefix 0x{prefix:02x}")
        return cls(payload[1:33], network)

    def to_wif(self) -> str:
        payload = bytes([self.network.wif_prefix]) + self.secret_bytes + b"\x01"
        return base58.b58encode_check(payload).decode()

    @property
    def secret_bytes(self) -> bytes:
        return self._secret.to_bytes(32, "big")

    @property
    def public_key(self) -> bytes:
        """33-byte compressed SEC1 public key."""

        return self._ec_key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
        )

    @property
    def xonly_public_key(self) -> bytes:
        return self.public_key[1:]

    @property
    def has_even_y(self) -> bool:
        return self.public_key[0] == 0x02

    def taproot_tweaked(self, merkle_root: bytes = b"") -> "PrivateKey":
        """Return the BIP341 tweaked secret for key-path spending.

        With an empty merkle root this is the BIP86 key-path key.
        """

        secret = self._secret if self.has_even_y else SECP256K1_ORDER - self._secret
        tweak = int.from_bytes(
            tagged_hash("TapTweak", self.xonly_public_key + merkle_root), "big"
        )
        if tweak >= SECP256K1_ORDER:
            raise ValueError("Tweak value exceeds curve order")
        return PrivateKey((secret + tweak) % SECP256K1_ORDER, self.network)

    def sign_ecdsa(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest; returns a low-S DER signature."""

        if len(digest) != 32:
            raise ValueError(f"ECDSA digest must be 32 bytes, got {len(digest)}")
        der = self._ec_key.sign(
            digest,
            ec.ECDSA(utils.Prehashed(hashes.SHA256()), deterministic_signing=True),
        )
        r, s = utils.decode_dss_signature(der)
        if s > _HALF_ORDER:
            s = SECP256K1_ORDER - s
        return utils.encode_dss_signature(r, s)

    def sign_schnorr(self, message: bytes) -> bytes:
        """Return a 64-byte BIP340 signature over a 32-byte message."""

        if len(message) != 32:
            raise ValueError(f"Schnorr message must be 32 bytes, got {len(message)}")
        return coincurve.PrivateKey(self.secret_bytes).sign_schnorr(
            message, aux_randomness=bytes(32)
        )
