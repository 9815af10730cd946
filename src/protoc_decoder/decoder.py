"""Recursive protobuf wire-format decoder.

decode() walks one message worth of bytes. When a schema message is active
its field definitions drive typing; otherwise length-delimited payloads are
guessed as embedded message, then UTF-8 text, then raw bytes.

Every byte offset reported is absolute to the top-level buffer: nested
decodes receive the absolute offset of their payload as base_offset.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Tuple, Union

from protoc_decoder.errors import (
    DecodeError,
    InvalidFieldNumber,
    InvalidUtf8,
    NestedDecodeFailure,
    SchemaError,
    UnsupportedWireType,
)
from protoc_decoder.inputs import hex_to_bytes
from protoc_decoder.models import (
    Content,
    DecodedField,
    DecodeResult,
    EnumDef,
    FieldDef,
    Fixed32Value,
    Fixed64Value,
    MessageContent,
    MessageDef,
    PackedContent,
    ParsedSchema,
    TextContent,
    VarintValue,
    WireType,
)
from protoc_decoder.parser.schema_parser import parse_schema
from protoc_decoder.reader import (
    ByteCursor,
    BytesLike,
    bytes_to_hex,
    unpack_fixed32,
    unpack_fixed64,
    zigzag_decode,
)

logger = logging.getLogger(__name__)

# Recursion guard for deeply nested (or adversarial) payloads.
MAX_NESTING_DEPTH = 100

EMBEDDED_MESSAGE = "Embedded Message"
GUESSED_STRING = "string (guessed)"

SCHEMA_MISMATCH_WARNING = (
    "Warning: The provided schema was parsed successfully but did not match "
    "the data. The result below is from a schema-less decoding attempt."
)

# Element types whose repeated fields may arrive packed.
VARINT_PACKABLE = {"int32", "int64", "uint32", "uint64", "bool", "enum"}
ZIGZAG_PACKABLE = {"sint32", "sint64"}
FIXED32_PACKABLE = {"fixed32", "sfixed32", "float"}
FIXED64_PACKABLE = {"fixed64", "sfixed64", "double"}
PACKABLE_TYPES = VARINT_PACKABLE | ZIGZAG_PACKABLE | FIXED32_PACKABLE | FIXED64_PACKABLE


def _as_int64(value: int) -> int:
    """Two's-complement view of an unsigned 64-bit varint."""
    return value - (1 << 64) if value >= (1 << 63) else value


def decode(
    buffer: BytesLike,
    schema: ParsedSchema,
    message_name: Optional[str] = None,
    base_offset: int = 0,
    _depth: int = 0,
) -> DecodeResult:
    """Decode fields until the buffer is exhausted or a field fails.

    On failure the fields decoded so far are returned together with the
    error text, the absolute offset where decoding stopped and the hex of
    the bytes left unread.
    """
    data = memoryview(buffer)
    cursor = ByteCursor(data)
    message_def = schema.find_message(message_name) if message_name else None
    fields: List[DecodedField] = []

    while not cursor.at_end():
        start = cursor.position()
        try:
            fields.append(
                _decode_field(cursor, data, start, schema, message_def, base_offset, _depth)
            )
        except DecodeError as exc:
            error_offset = cursor.position() + base_offset
            return DecodeResult(
                fields=fields,
                error=f"{exc} at byte {error_offset}.",
                unparsed_hex=bytes_to_hex(cursor.remaining_bytes()),
                error_byte_offset=error_offset,
            )

    return DecodeResult(fields=fields)


def _decode_field(
    cursor: ByteCursor,
    data: memoryview,
    start: int,
    schema: ParsedSchema,
    message_def: Optional[MessageDef],
    base_offset: int,
    depth: int,
) -> DecodedField:
    tag = cursor.read_varint()
    field_number = tag >> 3
    try:
        wire_type = WireType(tag & 0x7)
    except ValueError:
        raise UnsupportedWireType(f"Unsupported wire type {tag & 0x7}") from None
    if field_number == 0:
        raise InvalidFieldNumber("Invalid field number 0")

    field_def = message_def.fields.get(field_number) if message_def else None
    payload_start_offset: Optional[int] = None
    content: Content

    if wire_type == WireType.VARINT:
        value = cursor.read_varint()
        enum_name = None
        if field_def is not None:
            enum_def = schema.find_enum(field_def.type_name, message_def)
            if enum_def is not None:
                enum_name = enum_def.values.get(_as_int64(value))
        content = VarintValue(unsigned=value, signed=zigzag_decode(value), enum_name=enum_name)
        type_name = field_def.type_name if field_def else "varint"

    elif wire_type == WireType.FIXED64:
        as_double, signed, unsigned = unpack_fixed64(cursor.read_fixed64())
        content = Fixed64Value(as_double=as_double, signed=signed, unsigned=unsigned)
        type_name = field_def.type_name if field_def else "fixed64"

    elif wire_type == WireType.FIXED32:
        as_float, signed, unsigned = unpack_fixed32(cursor.read_fixed32())
        content = Fixed32Value(as_float=as_float, signed=signed, unsigned=unsigned)
        type_name = field_def.type_name if field_def else "fixed32"

    else:
        length = cursor.read_varint()
        payload_start_offset = cursor.position() + base_offset
        payload = cursor.read_bytes(length)
        content, type_name = _decode_length_delimited(
            payload, field_def, schema, message_def, payload_start_offset, depth
        )

    end = cursor.position()
    return DecodedField(
        byte_range=(start + base_offset, end - 1 + base_offset),
        field_number=field_number,
        wire_type=wire_type,
        type_name=type_name,
        content=content,
        raw_bytes=bytes(data[start:end]),
        field_name=field_def.name if field_def else None,
        payload_start_offset=payload_start_offset,
    )


def _decode_length_delimited(
    payload: memoryview,
    field_def: Optional[FieldDef],
    schema: ParsedSchema,
    message_def: Optional[MessageDef],
    payload_start_offset: int,
    depth: int,
) -> Tuple[Content, str]:
    if field_def is None:
        return _guess_payload(payload, schema, payload_start_offset, depth)

    type_name = field_def.type_name

    if field_def.is_repeated:
        element, enum_def = _packed_element(field_def, schema, message_def)
        if element is not None:
            values = _decode_packed(payload, element)
            symbols = None
            if enum_def is not None:
                symbols = [enum_def.values.get(_as_int64(v)) for v in values]
            return PackedContent(values=values, symbols=symbols), f"repeated {type_name}"

    sub_message = schema.find_message(type_name)
    if sub_message is not None:
        if depth >= MAX_NESTING_DEPTH:
            raise NestedDecodeFailure(type_name, "maximum nesting depth exceeded")
        result = decode(payload, schema, sub_message.name, payload_start_offset, depth + 1)
        if result.error:
            raise NestedDecodeFailure(type_name, result.error.rstrip("."))
        return MessageContent(fields=result.fields), type_name

    if type_name == "string":
        try:
            return TextContent(text=bytes(payload).decode("utf-8")), "string"
        except UnicodeDecodeError:
            raise InvalidUtf8(f"Invalid UTF-8 in string field '{field_def.name}'") from None

    if type_name == "bytes":
        return TextContent(text=bytes_to_hex(payload)), "bytes"

    return _guess_payload(payload, schema, payload_start_offset, depth)


def _packed_element(
    field_def: FieldDef,
    schema: ParsedSchema,
    message_def: Optional[MessageDef],
) -> Tuple[Optional[str], Optional[EnumDef]]:
    """Scalar element type of a packable repeated field, plus its enum if any."""
    if field_def.type_name in PACKABLE_TYPES:
        return field_def.type_name, None
    enum_def = schema.find_enum(field_def.type_name, message_def)
    if enum_def is not None:
        return "enum", enum_def
    return None, None


def _decode_packed(payload: memoryview, element: str) -> List[Union[int, float]]:
    cursor = ByteCursor(payload)
    values: List[Union[int, float]] = []
    while not cursor.at_end():
        if element in VARINT_PACKABLE:
            values.append(cursor.read_varint())
        elif element in ZIGZAG_PACKABLE:
            values.append(zigzag_decode(cursor.read_varint()))
        elif element in FIXED32_PACKABLE:
            as_float, signed, unsigned = unpack_fixed32(cursor.read_fixed32())
            if element == "float":
                values.append(as_float)
            elif element == "sfixed32":
                values.append(signed)
            else:
                values.append(unsigned)
        else:
            as_double, signed, unsigned = unpack_fixed64(cursor.read_fixed64())
            if element == "double":
                values.append(as_double)
            elif element == "sfixed64":
                values.append(signed)
            else:
                values.append(unsigned)
    return values


def _guess_payload(
    payload: memoryview,
    schema: ParsedSchema,
    payload_start_offset: int,
    depth: int,
) -> Tuple[Content, str]:
    """Best-effort typing of a length-delimited payload with no usable definition.

    Tries an embedded message, then strict UTF-8, then falls back to hex.
    Never raises.
    """
    if depth < MAX_NESTING_DEPTH:
        nested = decode(payload, schema, None, payload_start_offset, depth + 1)
        # A non-empty payload that yields no fields is not a message.
        if nested.error is None and (nested.fields or len(payload) == 0):
            return MessageContent(fields=nested.fields), EMBEDDED_MESSAGE

    try:
        return TextContent(text=bytes(payload).decode("utf-8")), GUESSED_STRING
    except UnicodeDecodeError:
        logger.debug(
            "Payload at byte %d is neither a message nor UTF-8, keeping hex",
            payload_start_offset,
        )
        return TextContent(text=bytes_to_hex(payload)), "bytes"


# -- top-level entry points --


def decode_protobuf(
    data: Union[BytesLike, str],
    schema_text: str = "",
    base_offset: int = 0,
    message_name: Optional[str] = None,
) -> DecodeResult:
    """Decode bytes (or a hex string), optionally guided by .proto text.

    A schema that fails to parse, or parses but does not match the data,
    never blocks decoding: the bytes are decoded without it and the result
    carries a warning in its error text.

    Raises InvalidInput if data is a string that is not valid hex.
    """
    buffer = hex_to_bytes(data) if isinstance(data, str) else data

    if not schema_text or not schema_text.strip():
        return decode(buffer, ParsedSchema.empty(), None, base_offset)

    try:
        schema, root_message = parse_schema(schema_text)
    except SchemaError as exc:
        logger.warning("Schema parsing failed, decoding without a schema: %s", exc)
        warning = f'Schema parsing failed: "{exc}".\nFalling back to schema-less decoding.'
        result = decode(buffer, ParsedSchema.empty(), None, base_offset)
        result.error = _with_warning(warning, result.error)
        return result

    target = root_message
    notice = None
    if message_name:
        if schema.find_message(message_name) is not None:
            target = message_name
        else:
            notice = (
                f"Warning: Message '{message_name}' was not found in the schema; "
                f"decoded as '{root_message}' instead."
            )
            logger.warning("Unknown message %r, using root message %r", message_name, root_message)

    result = decode(buffer, schema, target, base_offset)

    if not result.fields and len(buffer) > 0 and result.error is None:
        logger.debug("Schema %r matched no fields, retrying without schema", target)
        fallback = decode(buffer, ParsedSchema.empty(), None, base_offset)
        if fallback.fields:
            fallback.error = _with_warning(SCHEMA_MISMATCH_WARNING, fallback.error)
            return fallback

    if notice:
        result.error = _with_warning(notice, result.error)
    return result


def decode_hex_payload(
    payload: Union[Mapping[str, object], str],
    schema_text: str = "",
    message_name: Optional[str] = None,
    base_offset: int = 0,
) -> DecodeResult:
    """Re-decode the hex payload of a projected `__hex__` marker.

    Accepts the marker dict itself, whose `__offset__` keeps reported
    offsets absolute, or a bare hex string with an explicit base_offset.
    """
    if isinstance(payload, Mapping):
        hex_text = str(payload["__hex__"])
        base_offset = int(payload.get("__offset__") or 0)
    else:
        hex_text = payload
    return decode_protobuf(hex_text, schema_text, base_offset, message_name)


def _with_warning(warning: str, error: Optional[str]) -> str:
    return f"{warning}\n\nDecoding Error: {error}" if error else warning


def summarize(result: DecodeResult) -> Dict[str, object]:
    """Counts used for log lines and the text report."""
    total = 0
    stack = list(result.fields)
    while stack:
        item = stack.pop()
        total += 1
        if isinstance(item.content, MessageContent):
            stack.extend(item.content.fields)
    return {
        "top_level_fields": len(result.fields),
        "total_fields": total,
        "error": result.error,
        "error_byte_offset": result.error_byte_offset,
    }
