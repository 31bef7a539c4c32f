"""Encoding and decoding of message headers and script flow messages."""

from __future__ import annotations

import struct
from collections.abc import Mapping

from edgeflow.message import ClientMessage

Headers = dict[int, bytes]

_UINT16 = struct.Struct(">H")
_UINT32 = struct.Struct(">I")


def _unpack(fmt: struct.Struct, data: bytes | memoryview, offset: int) -> int:
    try:
        (value,) = fmt.unpack_from(data, offset)
    except struct.error:
        raise ValueError(f"truncated headers at offset {offset}") from None
    return value


def _pop_bytes(data: bytes | memoryview, offset: int) -> tuple[bytes, int]:
    size = _unpack(_UINT32, data, offset)
    start = offset + _UINT32.size
    end = start + size
    if end > len(data):
        raise ValueError(f"truncated header value at offset {start}")
    return bytes(data[start:end]), end


def encode_headers(headers: Mapping[int, bytes] | None) -> bytes:
    """Encode ``headers`` as a count followed by key, length and value."""
    headers = headers or {}
    if len(headers) > 0xFFFF:
        raise ValueError(f"too many headers: {len(headers)}")
    parts = [_UINT16.pack(len(headers))]
    for key, value in headers.items():
        if not 0 <= key <= 0xFFFF:
            raise ValueError(f"header key out of range: {key}")
        value = bytes(value)
        parts.append(_UINT16.pack(key))
        parts.append(_UINT32.pack(len(value)))
        parts.append(value)
    return b"".join(parts)


def decode_headers(
    data: bytes | memoryview, offset: int = 0
) -> tuple[Headers, int]:
    """Decode headers starting at ``offset``; return them and the next offset."""
    count = _unpack(_UINT16, data, offset)
    offset += _UINT16.size
    headers: Headers = {}
    for _ in range(count):
        key = _unpack(_UINT16, data, offset)
        offset += _UINT16.size
        headers[key], offset = _pop_bytes(data, offset)
    return headers, offset


def skip_headers(data: bytes | memoryview, offset: int = 0) -> int:
    """Return the offset just past the headers starting at ``offset``."""
    count = _unpack(_UINT16, data, offset)
    offset += _UINT16.size
    for _ in range(count):
        offset += _UINT16.size
        size = _unpack(_UINT32, data, offset)
        offset += _UINT32.size + size
        if offset > len(data):
            raise ValueError(f"truncated header value at offset {offset}")
    return offset


def encode_execute_script(
    command: str, headers: Mapping[int, bytes] | None = None
) -> bytes:
    """Build an ExecuteScript message for ``command``."""
    encoded = command.encode("utf-8")
    body = encode_headers(headers) + _UINT32.pack(len(encoded)) + encoded
    return (
        bytes([ClientMessage.EXECUTE_SCRIPT])
        + _UINT32.pack(len(body) + _UINT32.size)
        + body
    )