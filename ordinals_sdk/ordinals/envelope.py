"""Ordinals inscription envelope encoding and decoding.

The envelope is a fixed byte layout that indexers parse bit-for-bit::

    00 63                  OP_FALSE OP_IF
    03 6f 72 64            push "ord"
    01 <push content-type> content-type tag, then the MIME type
    00 <push chunk>...     body separator, then content in <=520-byte pushes
    68                     OP_ENDIF

Each content chunk is framed on its own, so joining the chunk payloads (not
the framed buffers) reconstructs the content.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Tuple

from ..errors import EncodingOverflow
from ..script import (
    MAX_SCRIPT_ELEMENT_SIZE,
    OP_0,
    OP_ENDIF,
    OP_FALSE,
    OP_IF,
    push_data,
    read_push,
)

ORD_MARKER = b"ord"
CONTENT_TYPE_TAG = 0x01
BODY_SEPARATOR = OP_0
ENVELOPE_HEADER = bytes([OP_FALSE, OP_IF]) + push_data(ORD_MARKER)

TEXT_CONTENT_TYPE = "text/plain"
JSON_CONTENT_TYPE = "application/json"


class EnvelopeDecodeError(ValueError):
    """Raised when a script does not contain a well-formed envelope."""


def chunk_content(content: bytes, size: int = MAX_SCRIPT_ELEMENT_SIZE) -> List[bytes]:
    """Split ``content`` into consecutive chunks of at most ``size`` bytes."""

    return [content[i:i + size] for i in range(0, len(content), size)]


def encode_envelope(content_type: str, content: bytes) -> bytes:
    """Encode ``content_type`` and ``content`` into an inscription envelope.

    The encoder is total for any byte content. A content type longer than a
    single script element raises :class:`EncodingOverflow`.
    """

    content_type_bytes = content_type.encode("utf-8")
    if len(content_type_bytes) > MAX_SCRIPT_ELEMENT_SIZE:
        raise EncodingOverflow(
            f"Content type is {len(content_type_bytes)} bytes; a single push holds at most {MAX_SCRIPT_ELEMENT_SIZE}"
        )
    content = bytes(content)

    script = bytearray(ENVELOPE_HEADER)
    script.append(CONTENT_TYPE_TAG)
    script += push_data(content_type_bytes)
    script.append(BODY_SEPARATOR)
    for chunk in chunk_content(content):
        script += push_data(chunk)
    script.append(OP_ENDIF)
    return bytes(script)


def decode_envelope(script: bytes) -> Tuple[str, bytes]:
    """Recover ``(content_type, content)`` from an envelope script.

    ``script`` must start with the envelope header and end with
    ``OP_ENDIF``; use :func:`find_envelope` for a larger tapscript leaf.
    """

    if not script.startswith(ENVELOPE_HEADER):
        raise EnvelopeDecodeError("Script does not start with OP_FALSE OP_IF 'ord'")
    cursor = len(ENVELOPE_HEADER)

    if cursor >= len(script) or script[cursor] != CONTENT_TYPE_TAG:
        raise EnvelopeDecodeError("Missing content-type tag after the 'ord' marker")
    try:
        content_type_bytes, cursor = read_push(script, cursor + 1)
    except ValueError as exc:
        raise EnvelopeDecodeError(f"Malformed content-type push: {exc}") from exc

    if cursor >= len(script) or script[cursor] != BODY_SEPARATOR:
        raise EnvelopeDecodeError("Missing body separator after the content type")
    cursor += 1

    chunks: List[bytes] = []
    while True:
        if cursor >= len(script):
            raise EnvelopeDecodeError("Envelope is not terminated by OP_ENDIF")
        if script[cursor] == OP_ENDIF:
            cursor += 1
            break
        try:
            chunk, cursor = read_push(script, cursor)
        except ValueError as exc:
            raise EnvelopeDecodeError(f"Malformed content push: {exc}") from exc
        chunks.append(chunk)

    if cursor != len(script):
        raise EnvelopeDecodeError(f"{len(script) - cursor} trailing bytes after OP_ENDIF")

    try:
        content_type = content_type_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EnvelopeDecodeError("Content type is not valid UTF-8") from exc
    return content_type, b"".join(chunks)


def find_envelope(leaf_script: bytes) -> bytes:
    """Return the envelope embedded in ``leaf_script``.

    The envelope runs from the header to the final ``OP_ENDIF``.
    """

    start = leaf_script.find(ENVELOPE_HEADER)
    if start < 0:
        raise EnvelopeDecodeError("No inscription envelope found in script")
    return leaf_script[start:]


@dataclass(frozen=True)
class InscriptionEnvelope:
    """Value object pairing inscription content with its encoded script."""

    content_type: str
    content: bytes
    script: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", bytes(self.content))
        object.__setattr__(self, "script", encode_envelope(self.content_type, self.content))

    @classmethod
    def from_script(cls, script: bytes) -> "InscriptionEnvelope":
        content_type, content = decode_envelope(find_envelope(script))
        return cls(content_type, content)

    @property
    def chunk_count(self) -> int:
        return len(chunk_content(self.content))

    def summary(self) -> dict[str, Any]:
        return {
            "content_type": self.content_type,
            "content_bytes": len(self.content),
            "chunks": self.chunk_count,
            "script_bytes": len(self.script),
        }


def text_envelope(text: str, content_type: str = TEXT_CONTENT_TYPE) -> InscriptionEnvelope:
    return InscriptionEnvelope(content_type, text.encode("utf-8"))


def image_envelope(image_data: bytes, mime_type: str) -> InscriptionEnvelope:
    if not mime_type.startswith("image/"):
        raise ValueError(f"Expected an image/* MIME type, got {mime_type!r}")
    return InscriptionEnvelope(mime_type, image_data)


def serialize_ordered_json(pairs: Iterable[Tuple[str, Any]]) -> bytes:
    """Serialize ``(key, value)`` pairs as compact JSON in the given order.

    Field order is part of the on-chain bytes for protocols like BRC-20, so
    the pairs are emitted exactly as supplied. Duplicate keys are rejected.
    """

    seen: set[str] = set()
    members = []
    for key, value in pairs:
        if key in seen:
            raise ValueError(f"Duplicate JSON key {key!r}")
        seen.add(key)
        members.append(
            json.dumps(key, ensure_ascii=False)
            + ":"
            + json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        )
    return ("{" + ",".join(members) + "}").encode("utf-8")


def json_envelope(
    pairs: Iterable[Tuple[str, Any]],
    content_type: str = JSON_CONTENT_TYPE,
) -> InscriptionEnvelope:
    return InscriptionEnvelope(content_type, serialize_ordered_json(pairs))
