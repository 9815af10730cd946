"""Permissive .proto schema extraction.

This is not a grammar: it pulls message, field and enum
declarations out of the text with brace-depth tracking and regexes, so
truncated or informal snippets still yield whatever definitions they hold.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from protoc_decoder.errors import NoMessagesFound
from protoc_decoder.models import EnumDef, FieldDef, MessageDef, ParsedSchema

logger = logging.getLogger(__name__)

_LINE_COMMENT = re.compile(r"//[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)

_BLOCK_HEAD = re.compile(r"\b(message|enum|oneof)\s+([A-Za-z_]\w*)\s*\{")
_ONEOF_HEAD = re.compile(r"\boneof\s+[A-Za-z_]\w*\s*\{")
_ENUM_HEAD = re.compile(r"\benum\s+([A-Za-z_]\w*)\s*\{")

_ENUM_VALUE = re.compile(r"([A-Za-z_]\w*)\s*=\s*(-?\d+)\s*(?:\[[^\]]*\])?\s*;")
_FIELD = re.compile(
    r"(?:\b(repeated|optional|required)\s+)?"
    r"(map\s*<[\w\s,.]+>|\.?[A-Za-z_][\w.]*)\s+"
    r"([A-Za-z_]\w*)\s*=\s*(\d+)\s*"
    r"(?:\[[^\]]*\])?\s*;"
)


@dataclass
class _Block:
    kind: str
    name: str
    body: str
    start: int
    end: int


def parse_schema(text: str) -> Tuple[ParsedSchema, Optional[str]]:
    """Extract messages and enums from raw .proto text.

    Returns the schema and the name of the first message found, which is
    used as the root message when the caller names none.

    Raises NoMessagesFound if the text is non-empty but holds no message.
    """
    clean = _strip_comments(text)
    clean = _flatten_oneofs(clean)

    schema = ParsedSchema()
    schema.enums.update(_parse_all_enums(clean))
    _collect_messages(clean, schema)

    if not schema.messages and text.strip():
        raise NoMessagesFound()

    logger.debug(
        "Parsed schema: %d message(s), %d enum(s), root=%s",
        len(schema.messages), len(schema.enums), schema.root_message,
    )
    return schema, schema.root_message


# -- preprocessing --


def _strip_comments(text: str) -> str:
    text = _BLOCK_COMMENT.sub("", text)
    return _LINE_COMMENT.sub("", text)


def _flatten_oneofs(text: str) -> str:
    """Replace every `oneof name { ... }` with its body."""
    match = _ONEOF_HEAD.search(text)
    while match:
        close = _matching_brace(text, match.end() - 1)
        body = text[match.end():close]
        text = text[:match.start()] + body + text[close + 1:]
        match = _ONEOF_HEAD.search(text, match.start())
    return text


# -- block scanning --


def _matching_brace(text: str, open_idx: int) -> int:
    """Index of the brace closing the one at open_idx, or len(text) if unterminated."""
    depth = 0
    for i in range(open_idx, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def _find_blocks(text: str, kinds: Set[str]) -> List[_Block]:
    """Find depth-0 blocks of the given kinds (message / enum / oneof)."""
    blocks: List[_Block] = []
    depth = 0
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            # A stray closing brace must not push the depth negative.
            depth = max(depth - 1, 0)
        elif depth == 0 and ch.isalpha():
            match = _BLOCK_HEAD.match(text, i)
            if match and match.group(1) in kinds:
                close = _matching_brace(text, match.end() - 1)
                blocks.append(_Block(
                    kind=match.group(1),
                    name=match.group(2),
                    body=text[match.end():close],
                    start=i,
                    end=min(close + 1, n),
                ))
                i = close + 1
                continue
        i += 1

    return blocks


def _remove_brace_groups(body: str) -> str:
    """Drop every depth-0 `{...}` group, leaving only the body's own statements."""
    out: List[str] = []
    i = 0
    n = len(body)
    while i < n:
        if body[i] == "{":
            i = _matching_brace(body, i) + 1
            out.append(";")
            continue
        out.append(body[i])
        i += 1
    return "".join(out)


# -- enums --


def _parse_enum_body(name: str, body: str) -> EnumDef:
    values: Dict[int, str] = {}
    for match in _ENUM_VALUE.finditer(body):
        values[int(match.group(2))] = match.group(1)
    return EnumDef(name=name, values=values)


def _parse_all_enums(text: str) -> Dict[str, EnumDef]:
    """Every enum in the text, at any depth, keyed by simple name."""
    enums: Dict[str, EnumDef] = {}
    for match in _ENUM_HEAD.finditer(text):
        close = _matching_brace(text, match.end() - 1)
        name = match.group(1)
        enums[name] = _parse_enum_body(name, text[match.end():close])
    return enums


# -- messages --


def _collect_messages(text: str, schema: ParsedSchema) -> None:
    """Register every message block in text, recursing into nested messages."""
    for block in _find_blocks(text, {"message"}):
        if schema.root_message is None:
            schema.root_message = block.name

        nested_enums = {
            b.name: _parse_enum_body(b.name, b.body)
            for b in _find_blocks(block.body, {"enum"})
        }
        fields = _parse_fields(_remove_brace_groups(block.body))

        existing = schema.messages.get(block.name)
        if existing is not None:
            # Split definitions of the same message merge rather than replace.
            existing.fields.update(fields)
            existing.enums.update(nested_enums)
        else:
            schema.messages[block.name] = MessageDef(
                name=block.name, fields=fields, enums=nested_enums,
            )

        _collect_messages(block.body, schema)


def _parse_fields(body: str) -> Dict[int, FieldDef]:
    fields: Dict[int, FieldDef] = {}
    for match in _FIELD.finditer(body):
        label, type_name, name, number = match.groups()
        is_map = type_name.startswith("map")
        if is_map:
            type_name = re.sub(r"\s+", "", type_name)
        field_number = int(number)
        fields[field_number] = FieldDef(
            name=name,
            type_name=type_name,
            field_number=field_number,
            is_repeated=label == "repeated" or is_map,
            is_map=is_map,
        )
    return fields
