"""Script-level byte helpers: push framing, compact sizes, and scriptPubKeys."""

from __future__ import annotations

import hashlib

from .errors import EncodingOverflow

OP_0 = 0x00
OP_FALSE = OP_0
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_1 = 0x51
OP_IF = 0x63
OP_ENDIF = 0x68
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC

MAX_SCRIPT_ELEMENT_SIZE = 520


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    return hashlib.new("ripemd160", hashlib.sha256(data).digest()).digest()


def ser_compact_size(n: int) -> bytes:
    """Serialize an integer as a Bitcoin compact size."""

    if n < 0:
        raise ValueError(f"Compact size cannot be negative: {n}")
    if n < 253:
        return bytes([n])
    elif n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    elif n <= 0xFFFFFFFF:
        return b"\xfe" + n.to_bytes(4, "little")
    else:
        return b"\xff" + n.to_bytes(8, "little")


def push_data(data: bytes) -> bytes:
    """Frame ``data`` with the smallest push opcode that fits its length.

    Lengths below 76 use a direct length byte, below 256 ``OP_PUSHDATA1`` and
    up to 65535 ``OP_PUSHDATA2`` with a little-endian length.
    """

    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    raise EncodingOverflow(f"Push of {length} bytes exceeds the OP_PUSHDATA2 range")


def read_push(script: bytes, offset: int) -> tuple[bytes, int]:
    """Read one push-framed element starting at ``offset``.

    Returns the payload and the offset of the next opcode. Raises
    ``ValueError`` when the opcode is not a data push or the script is
    truncated.
    """

    if offset >= len(script):
        raise ValueError("Unexpected end of script while reading a push")
    opcode = script[offset]
    cursor = offset + 1
    if opcode < OP_PUSHDATA1:
        length = opcode
    elif opcode == OP_PUSHDATA1:
        if cursor + 1 > len(script):
            raise ValueError("Truncated OP_PUSHDATA1 length")
        length = script[cursor]
        cursor += 1
    elif opcode == OP_PUSHDATA2:
        if cursor + 2 > len(script):
            raise ValueError("Truncated OP_PUSHDATA2 length")
        length = int.from_bytes(script[cursor:cursor + 2], "little")
        cursor += 2
    else:
        raise ValueError(f"Opcode 0x{opcode:02x} at offset {offset} is not a data push")

    end = cursor + length
    if end > len(script):
        raise ValueError(f"Push of {length} bytes at offset {offset} runs past the script end")
    return script[cursor:end], end


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    return bytes([OP_DUP, OP_HASH160, 0x14]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def p2sh_script(script_hash: bytes) -> bytes:
    return bytes([OP_HASH160, 0x14]) + script_hash + bytes([OP_EQUAL])


def p2wpkh_script(pubkey_hash: bytes) -> bytes:
    return bytes([OP_0, 0x14]) + pubkey_hash


def p2tr_script(output_key: bytes) -> bytes:
    if len(output_key) != 32:
        raise ValueError(f"Output key must be 32 bytes, got {len(output_key)}")
    return bytes([OP_1, 0x20]) + output_key


def witness_script(version: int, program: bytes) -> bytes:
    """Return the scriptPubKey for a segwit program of the given version."""

    version_op = OP_0 if version == 0 else OP_1 + version - 1
    return bytes([version_op, len(program)]) + program
