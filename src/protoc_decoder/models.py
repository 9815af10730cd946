from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple, Union


class WireType(IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    FIXED32 = 5


# -- decoded content variants --


@dataclass
class TextContent:
    """Decoded UTF-8 text, or hex-rendered bytes."""

    text: str


@dataclass
class MessageContent:
    fields: List[DecodedField] = field(default_factory=list)


@dataclass
class PackedContent:
    """Scalars from a packed repeated field, in wire order."""

    values: List[Union[int, float]] = field(default_factory=list)
    symbols: Optional[List[Optional[str]]] = None


@dataclass
class VarintValue:
    unsigned: int
    signed: int
    enum_name: Optional[str] = None


@dataclass
class Fixed32Value:
    as_float: float
    signed: int
    unsigned: int


@dataclass
class Fixed64Value:
    as_double: float
    signed: int
    unsigned: int


Content = Union[
    TextContent, MessageContent, PackedContent, VarintValue, Fixed32Value, Fixed64Value
]


@dataclass
class DecodedField:
    byte_range: Tuple[int, int]
    field_number: int
    wire_type: WireType
    type_name: str
    content: Content
    raw_bytes: bytes
    field_name: Optional[str] = None
    payload_start_offset: Optional[int] = None

    @property
    def key(self) -> str:
        """JSON key: the schema name, or a placeholder built from the number."""
        return self.field_name or f"unknown_field_{self.field_number}"

    @property
    def raw_hex(self) -> str:
        return " ".join(f"{b:02x}" for b in self.raw_bytes)


# -- schema definitions --


@dataclass
class FieldDef:
    name: str
    type_name: str
    field_number: int
    is_repeated: bool = False
    is_map: bool = False


@dataclass
class EnumDef:
    name: str
    values: Dict[int, str] = field(default_factory=dict)


@dataclass
class MessageDef:
    name: str
    fields: Dict[int, FieldDef] = field(default_factory=dict)
    enums: Dict[str, EnumDef] = field(default_factory=dict)


@dataclass
class ParsedSchema:
    messages: Dict[str, MessageDef] = field(default_factory=dict)
    enums: Dict[str, EnumDef] = field(default_factory=dict)
    root_message: Optional[str] = None

    @classmethod
    def empty(cls) -> ParsedSchema:
        return cls()

    def find_message(self, type_name: str) -> Optional[MessageDef]:
        for candidate in _candidate_names(type_name):
            if candidate in self.messages:
                return self.messages[candidate]
        return None

    def find_enum(self, type_name: str, scope: Optional[MessageDef] = None) -> Optional[EnumDef]:
        """Resolve an enum type name, nested scope first, then global."""
        for candidate in _candidate_names(type_name):
            if scope is not None and candidate in scope.enums:
                return scope.enums[candidate]
            if candidate in self.enums:
                return self.enums[candidate]
        return None


def _candidate_names(type_name: str) -> List[str]:
    """Names to try for a possibly qualified type: as written, then the last component."""
    names = [type_name]
    short = type_name.lstrip(".").rsplit(".", 1)[-1]
    if short != type_name:
        names.append(short)
    return names


# -- results --


@dataclass
class DecodeResult:
    fields: List[DecodedField] = field(default_factory=list)
    error: Optional[str] = None
    unparsed_hex: Optional[str] = None
    error_byte_offset: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Projection:
    json: Dict[str, object]
    path_index: Dict[str, Tuple[int, int]] = field(default_factory=dict)
