"""Turning user-supplied text (hex, base64, decimal) into bytes."""

from __future__ import annotations

import base64
import binascii
import re
import string
from enum import Enum
from typing import List, Optional, Tuple

from protoc_decoder.errors import InvalidInput

_HEX_DIGITS = set(string.hexdigits)
_DECIMAL_SEPARATORS = re.compile(r"[\s,;]+")
_DECIMAL_BYTE = re.compile(r"[0-9]+")


class InputFormat(str, Enum):
    HEX = "hex"
    BASE64 = "base64"
    DECIMAL = "decimal"


def hex_to_bytes(text: str) -> bytes:
    """Strictly convert hex digits (whitespace allowed between them) to bytes."""
    digits: List[str] = []
    for pos, ch in enumerate(text):
        if ch.isspace():
            continue
        if ch not in _HEX_DIGITS:
            raise InvalidInput(f"Invalid hex character {ch!r} at position {pos}")
        digits.append(ch)
    if len(digits) % 2 != 0:
        raise InvalidInput("Hex string must have an even length")
    return bytes.fromhex("".join(digits))


def clean_hex(text: str) -> Tuple[str, List[int]]:
    """Keep only hex digits, dropping `0x` prefixes and any separators.

    Returns the cleaned digits and a source map: source_map[i] is the index
    in text of cleaned digit i. A letter or digit that is not hex raises
    InvalidInput naming it and its position.
    """
    cleaned: List[str] = []
    source_map: List[int] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "0" and i + 1 < n and text[i + 1] in "xX":
            i += 2
            continue
        if ch in _HEX_DIGITS:
            cleaned.append(ch)
            source_map.append(i)
        elif ch.isalnum():
            raise InvalidInput(f"Invalid hex character {ch!r} at position {i}")
        i += 1
    return "".join(cleaned), source_map


def normalize_input(text: str, fmt: InputFormat = InputFormat.HEX) -> bytes:
    """Convert pasted text in the given format to raw bytes.

    Raises InvalidInput when nothing decodable remains or a value is bad.
    """
    fmt = InputFormat(fmt)
    trimmed = text.strip()
    if not trimmed:
        raise InvalidInput("Input is empty or could not be parsed.")

    if fmt == InputFormat.HEX:
        cleaned, _ = clean_hex(text)
        if not cleaned:
            raise InvalidInput("Input contains no valid hexadecimal characters.")
        if len(cleaned) % 2 != 0:
            raise InvalidInput(
                "Processed data results in an incomplete hex byte string. "
                "Please check your input."
            )
        return bytes.fromhex(cleaned)

    if fmt == InputFormat.BASE64:
        try:
            return base64.b64decode("".join(trimmed.split()), validate=True)
        except binascii.Error as exc:
            raise InvalidInput(f"Invalid base64 input: {exc}") from exc

    values = bytearray()
    for token in _DECIMAL_SEPARATORS.split(trimmed):
        if not token:
            continue
        if not _DECIMAL_BYTE.fullmatch(token) or int(token) > 255:
            raise InvalidInput(f'Invalid decimal input: Invalid decimal byte value: "{token}"')
        values.append(int(token))
    return bytes(values)


def error_char_range(
    error_byte_offset: Optional[int],
    source_map: List[int],
) -> Optional[Tuple[int, int]]:
    """Map a decode error offset back onto the original hex text.

    Returns a half-open (start, end) character range covering the byte's
    two hex digits, or None when the offset falls outside the input.
    """
    if error_byte_offset is None:
        return None
    first = error_byte_offset * 2
    if first >= len(source_map):
        return None
    start = source_map[first]
    if first + 1 < len(source_map):
        return start, source_map[first + 1] + 1
    return start, start + 1
