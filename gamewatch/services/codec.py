"""
Variable-length integer and length-prefixed string primitives.

Varints carry 7 data bits per byte, least significant group first, with the
high bit set on every byte except the last. Values are signed 32-bit integers
and need at most five bytes. These helpers know nothing about packet ids or
framing; the probes build their packets on top of them.
"""

import asyncio
from typing import BinaryIO

from gamewatch.exceptions import ProtocolError

_MAX_VARINT_BYTES = 5


def _fold_varint_byte(value: int, index: int, byte: int) -> int:
    if index >= _MAX_VARINT_BYTES:
        raise ProtocolError("varint too long")
    return value | ((byte & 0x7F) << (7 * index))


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def write_varint(buffer: bytearray, value: int) -> None:
    """Append ``value`` to ``buffer`` as a varint."""
    if not -(1 << 31) <= value < (1 << 31):
        raise ValueError(f"varint value {value} does not fit into 32 bits")

    value &= 0xFFFFFFFF
    while value & ~0x7F:
        buffer.append((value & 0x7F) | 0x80)
        value >>= 7
    buffer.append(value)


def read_varint(stream: BinaryIO) -> int:
    """Read one varint from a binary stream such as ``io.BytesIO``."""
    value = 0
    index = 0
    while True:
        chunk = stream.read(1)
        if not chunk:
            raise ProtocolError("truncated varint")
        value = _fold_varint_byte(value, index, chunk[0])
        index += 1
        if not chunk[0] & 0x80:
            return _to_int32(value)


async def read_varint_async(reader: asyncio.StreamReader) -> int:
    """Read one varint from an asyncio stream."""
    value = 0
    index = 0
    while True:
        try:
            chunk = await reader.readexactly(1)
        except asyncio.IncompleteReadError as exc:
            raise ProtocolError("truncated varint") from exc
        value = _fold_varint_byte(value, index, chunk[0])
        index += 1
        if not chunk[0] & 0x80:
            return _to_int32(value)


def write_string(buffer: bytearray, value: str) -> None:
    """Append ``value`` as its varint UTF-8 byte length followed by the bytes."""
    data = value.encode("utf-8")
    write_varint(buffer, len(data))
    buffer.extend(data)


def _decode_string(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"string is not valid UTF-8: {exc}") from exc


def read_string(stream: BinaryIO) -> str:
    length = read_varint(stream)
    if length < 0:
        raise ProtocolError(f"negative string length {length}")
    data = stream.read(length)
    if len(data) != length:
        raise ProtocolError(f"truncated string: expected {length} bytes, got {len(data)}")
    return _decode_string(data)


async def read_string_async(reader: asyncio.StreamReader) -> str:
    length = await read_varint_async(reader)
    if length < 0:
        raise ProtocolError(f"negative string length {length}")
    try:
        data = await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise ProtocolError(
            f"truncated string: expected {length} bytes, got {len(exc.partial)}"
        ) from exc
    return _decode_string(data)
