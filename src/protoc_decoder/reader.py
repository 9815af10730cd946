"""Bounds-checked cursor over protobuf wire bytes."""

from __future__ import annotations

import struct
from typing import Tuple, Union

from protoc_decoder.errors import BufferUnderflow, MalformedVarint

MAX_VARINT_BYTES = 10

BytesLike = Union[bytes, bytearray, memoryview]


def zigzag_decode(value: int) -> int:
    """Map an unsigned varint onto its sint32/sint64 interpretation."""
    return (value >> 1) ^ -(value & 1)


def bytes_to_hex(data: BytesLike) -> str:
    """Render bytes as space separated lowercase hex pairs."""
    return " ".join(f"{b:02x}" for b in bytes(data))


def unpack_fixed32(raw: BytesLike) -> Tuple[float, int, int]:
    """Return (float, int32, uint32) views of 4 little-endian bytes."""
    raw = bytes(raw)
    return struct.unpack("<f", raw)[0], struct.unpack("<i", raw)[0], struct.unpack("<I", raw)[0]


def unpack_fixed64(raw: BytesLike) -> Tuple[float, int, int]:
    """Return (double, int64, uint64) views of 8 little-endian bytes."""
    raw = bytes(raw)
    return struct.unpack("<d", raw)[0], struct.unpack("<q", raw)[0], struct.unpack("<Q", raw)[0]


class ByteCursor:
    """Position-tracking reader over an immutable byte slice.

    Slices handed out by read_bytes() are memoryviews into the same buffer,
    so nested decodes never copy the payload.
    """

    def __init__(self, data: BytesLike):
        self._data = memoryview(data)
        self._pos = 0

    # -- introspection --

    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def position(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def remaining_bytes(self) -> memoryview:
        return self._data[self._pos:]

    # -- primitive reads --

    def read_varint(self) -> int:
        """Read a base-128 varint of at most 10 bytes and 64 bits.

        On failure the cursor is rewound to where the read started, so the
        caller reports a stable error offset.
        """
        start = self._pos
        result = 0
        shift = 0
        for _ in range(MAX_VARINT_BYTES):
            if self._pos >= len(self._data):
                self._pos = start
                raise MalformedVarint("Unterminated varint")
            byte = self._data[self._pos]
            self._pos += 1
            # The tenth byte holds only bit 63.
            if shift == 63 and byte & 0x7E:
                self._pos = start
                raise MalformedVarint("Varint is too long or invalid")
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
        self._pos = start
        raise MalformedVarint("Varint is too long or invalid")

    def read_fixed32(self) -> bytes:
        return bytes(self._take(4, "fixed32"))

    def read_fixed64(self) -> bytes:
        return bytes(self._take(8, "fixed64"))

    def read_bytes(self, length: int) -> memoryview:
        return self._take(length, f"{length} bytes")

    def _take(self, length: int, what: str) -> memoryview:
        if length < 0 or self._pos + length > len(self._data):
            raise BufferUnderflow(f"Buffer underflow trying to read {what}")
        chunk = self._data[self._pos:self._pos + length]
        self._pos += length
        return chunk
