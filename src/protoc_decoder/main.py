from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from protoc_decoder.decoder import decode_protobuf, summarize
from protoc_decoder.errors import InvalidInput
from protoc_decoder.generator.exporter import (
    export_csv,
    export_json,
    render_report,
    write_export,
)
from protoc_decoder.inputs import InputFormat, clean_hex, error_char_range, normalize_input
from protoc_decoder.projector import paths_at_offset, project

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("json", "csv", "report", "paths")
BINARY_FORMAT = "binary"


def _read_input(source: str, fmt: str) -> bytes:
    """Resolve INPUT (literal text or @file) into raw bytes."""
    if source.startswith("@"):
        path = Path(source[1:])
        if fmt == BINARY_FORMAT:
            return path.read_bytes()
        text = path.read_text()
    else:
        if fmt == BINARY_FORMAT:
            raise InvalidInput("Binary input must be read from a file (@path)")
        text = source
    return normalize_input(text, InputFormat(fmt))


def _report_error_position(
    source: str, fmt: str, error_byte_offset: Optional[int], base_offset: int
) -> None:
    """Point at the hex characters where decoding stopped."""
    if fmt != InputFormat.HEX.value or source.startswith("@") or error_byte_offset is None:
        return
    _, source_map = clean_hex(source)
    span = error_char_range(error_byte_offset - base_offset, source_map)
    if span is not None:
        print(f"Decoding stopped at input characters {span[0]}-{span[1]}", file=sys.stderr)


def run(
    source: str,
    fmt: str = InputFormat.HEX.value,
    schema_path: Optional[str] = None,
    message_name: Optional[str] = None,
    base_offset: int = 0,
    output: str = "json",
    out_path: Optional[str] = None,
    at_offset: Optional[int] = None,
) -> int:
    """Main pipeline: read input, decode, project, export. Returns the exit status."""
    try:
        data = _read_input(source, fmt)
    except InvalidInput as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 1

    schema_text = Path(schema_path).read_text() if schema_path else ""
    result = decode_protobuf(data, schema_text, base_offset, message_name)
    projection = project(result.fields) if result.fields else None
    logger.info("Decoded %s", summarize(result))

    if output == "json":
        text = export_json(projection.json if projection else {})
    elif output == "csv":
        text = export_csv(result.fields)
    elif output == "report":
        text = render_report(result, projection)
    else:
        index = projection.path_index if projection else {}
        paths = paths_at_offset(index, at_offset) if at_offset is not None else list(index)
        text = "\n".join(f"{p} {index[p][0]}-{index[p][1]}" for p in paths) + "\n"

    if out_path:
        write_export(text, out_path)
        print(f"Wrote {output} to {out_path}")
    else:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")

    if result.error:
        print(result.error, file=sys.stderr)
        if result.unparsed_hex:
            print(f"Unparsed bytes: {result.unparsed_hex}", file=sys.stderr)
        _report_error_position(source, fmt, result.error_byte_offset, base_offset)
        return 2 if result.error_byte_offset is not None else 0
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decode Protocol Buffers wire data, with or without a .proto schema",
    )
    parser.add_argument(
        "input",
        help="Encoded data as text, or @path to read it from a file",
    )
    parser.add_argument(
        "--format",
        default=InputFormat.HEX.value,
        choices=[f.value for f in InputFormat] + [BINARY_FORMAT],
        help="Encoding of the input (default: hex)",
    )
    parser.add_argument("--schema", help="Path to a .proto file describing the data")
    parser.add_argument("--message", help="Message type to decode as (default: first in schema)")
    parser.add_argument(
        "--base-offset",
        type=int,
        default=0,
        help="Absolute offset of the first input byte, when decoding an extracted sub-slice",
    )
    parser.add_argument("--output", default="json", choices=OUTPUT_FORMATS)
    parser.add_argument("--out", help="Write the output to this file instead of stdout")
    parser.add_argument(
        "--at",
        type=int,
        help="With --output paths, only list the paths covering this byte offset",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.base_offset < 0:
        parser.error("--base-offset must be >= 0")

    return run(
        args.input,
        fmt=args.format,
        schema_path=args.schema,
        message_name=args.message,
        base_offset=args.base_offset,
        output=args.output,
        out_path=args.out,
        at_offset=args.at,
    )


if __name__ == "__main__":
    sys.exit(main())
