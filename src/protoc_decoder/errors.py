"""Exception types raised while parsing schemas, inputs and wire data."""

from __future__ import annotations


class DecodeError(Exception):
    """Base class for failures while decoding wire-format bytes."""


class MalformedVarint(DecodeError):
    """Raised when a varint never terminates or exceeds 64 bits."""


class BufferUnderflow(DecodeError):
    """Raised when a read runs past the end of the buffer."""


class InvalidFieldNumber(DecodeError):
    """Raised when a tag carries field number 0."""


class UnsupportedWireType(DecodeError):
    """Raised for wire types other than VARINT, FIXED64, LENGTH_DELIMITED, FIXED32."""


class InvalidUtf8(DecodeError):
    """Raised when a schema-declared string field is not valid UTF-8."""


class NestedDecodeFailure(DecodeError):
    """Raised when a schema-declared sub-message fails to decode."""

    def __init__(self, type_name: str, cause: str | None = None):
        self.type_name = type_name
        self.cause = cause
        message = f"Failed to decode sub-message of type {type_name}"
        if cause:
            message = f"{message} ({cause})"
        super().__init__(message)


class SchemaError(Exception):
    """Base class for .proto schema text that cannot be used."""


class NoMessagesFound(SchemaError):
    """Raised when non-empty schema text holds no message definitions."""

    def __init__(self) -> None:
        super().__init__("Could not find any 'message' definitions in the schema.")


class InvalidInput(ValueError):
    """Raised when textual input cannot be turned into bytes."""
