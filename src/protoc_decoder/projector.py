"""Project decoded field trees into JSON-shaped values with byte provenance."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Tuple, Union

from protoc_decoder.decoder import GUESSED_STRING
from protoc_decoder.models import (
    DecodedField,
    Fixed32Value,
    Fixed64Value,
    MessageContent,
    PackedContent,
    Projection,
    TextContent,
    VarintValue,
)

# Largest integer a JSON consumer can hold in a double without losing precision.
MAX_SAFE_INTEGER = 2**53 - 1

HEX_MARKER = "__hex__"
OFFSET_MARKER = "__offset__"


def narrow_int(value: int) -> Union[int, str]:
    """Keep integers in the safe range as numbers, otherwise use decimal text."""
    if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
        return value
    return str(value)


def finite_or_none(value: Any) -> Any:
    """JSON has no NaN or Infinity; such floats project to None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _is_signed(type_name: str) -> bool:
    return type_name.lower().startswith(("sint", "sfixed"))


def _field_value(field: DecodedField) -> Any:
    content = field.content
    type_name = field.type_name

    if isinstance(content, TextContent):
        if type_name in ("string", GUESSED_STRING):
            return content.text
        # Undecoded bytes keep their offset so they can be re-decoded later.
        return {HEX_MARKER: content.text, OFFSET_MARKER: field.payload_start_offset}

    if isinstance(content, MessageContent):
        return to_json(content.fields)

    if isinstance(content, PackedContent):
        values: List[Any] = []
        symbols = content.symbols or [None] * len(content.values)
        for value, symbol in zip(content.values, symbols):
            if symbol is not None:
                values.append(symbol)
            elif isinstance(value, int):
                values.append(narrow_int(value))
            else:
                values.append(finite_or_none(value))
        return values

    if isinstance(content, VarintValue):
        if content.enum_name is not None:
            return content.enum_name
        return narrow_int(content.signed if _is_signed(type_name) else content.unsigned)

    if isinstance(content, Fixed32Value):
        if type_name.lower() == "float":
            return finite_or_none(content.as_float)
        return content.signed if _is_signed(type_name) else content.unsigned

    if isinstance(content, Fixed64Value):
        if type_name.lower() == "double":
            return finite_or_none(content.as_double)
        return narrow_int(content.signed if _is_signed(type_name) else content.unsigned)

    raise TypeError(f"Unsupported field content: {type(content).__name__}")


def to_json(fields: List[DecodedField]) -> Dict[str, Any]:
    """Convert decoded fields into a nested dict.

    A key seen twice becomes a list, so unpacked repeated fields come out as
    arrays without the schema having to say so. Packed arrays and repeated
    occurrences of the same key are flattened together.
    """
    result: Dict[str, Any] = {}

    for field in fields:
        key = field.key
        value = _field_value(field)
        if key in result:
            if not isinstance(result[key], list):
                result[key] = [result[key]]
            result[key].append(value)
        else:
            result[key] = value

    for key, value in result.items():
        if isinstance(value, list) and any(isinstance(item, list) for item in value):
            flat: List[Any] = []
            for item in value:
                if isinstance(item, list):
                    flat.extend(item)
                else:
                    flat.append(item)
            result[key] = flat

    return result


def build_path_index(fields: List[DecodedField], base_path: str = "root") -> Dict[str, Tuple[int, int]]:
    """Map JSON paths like `root.user.id` or `root.items[1]` to byte ranges.

    Indices are only used for keys that occur more than once at a level,
    matching how to_json() groups them.
    """
    index: Dict[str, Tuple[int, int]] = {}
    _index_fields(fields, base_path, index)
    return index


def _index_fields(
    fields: List[DecodedField],
    base_path: str,
    index: Dict[str, Tuple[int, int]],
) -> None:
    groups: Dict[str, List[DecodedField]] = {}
    for field in fields:
        groups.setdefault(field.key, []).append(field)

    for key, group in groups.items():
        repeated = len(group) > 1
        for i, field in enumerate(group):
            path = f"{base_path}.{key}[{i}]" if repeated else f"{base_path}.{key}"
            index[path] = field.byte_range
            if isinstance(field.content, MessageContent):
                _index_fields(field.content.fields, path, index)


def paths_at_offset(index: Dict[str, Tuple[int, int]], byte_offset: int) -> List[str]:
    """Paths whose byte range covers byte_offset, outermost first."""
    hits = [
        (end - start, path)
        for path, (start, end) in index.items()
        if start <= byte_offset <= end
    ]
    return [path for _, path in sorted(hits, key=lambda hit: (-hit[0], hit[1]))]


def project(fields: List[DecodedField]) -> Projection:
    return Projection(json=to_json(fields), path_index=build_path_index(fields))
