"""Ordinals inscription primitives.

Envelope encoding, BRC-20 payloads and the Taproot commitment that binds an
envelope to a spendable output. The commit/reveal state machine lives in
``ordinals_sdk.ordinals.workflows``.
"""

from ordinals_sdk.ordinals.brc20 import Brc20Deploy, Brc20Mint, Brc20Transfer
from ordinals_sdk.ordinals.envelope import (
    EnvelopeDecodeError,
    InscriptionEnvelope,
    decode_envelope,
    encode_envelope,
    image_envelope,
    json_envelope,
    serialize_ordered_json,
    text_envelope,
)
from ordinals_sdk.ordinals.taproot_builder import (
    TaprootCommitment,
    build_inscription_leaf,
    create_taproot_address,
    derive_commitment,
)

__all__ = [
    "Brc20Deploy",
    "Brc20Mint",
    "Brc20Transfer",
    "EnvelopeDecodeError",
    "InscriptionEnvelope",
    "decode_envelope",
    "encode_envelope",
    "image_envelope",
    "json_envelope",
    "serialize_ordered_json",
    "text_envelope",
    "TaprootCommitment",
    "build_inscription_leaf",
    "create_taproot_address",
    "derive_commitment",
]
