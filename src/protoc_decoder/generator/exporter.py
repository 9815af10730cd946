from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from jinja2 import Environment, FileSystemLoader

from protoc_decoder.decoder import summarize
from protoc_decoder.models import (
    DecodedField,
    DecodeResult,
    Fixed32Value,
    Fixed64Value,
    MessageContent,
    PackedContent,
    Projection,
    TextContent,
    VarintValue,
)
from protoc_decoder.projector import finite_or_none

CSV_HEADER = ["Byte Range", "Field #", "Field Name", "Type", "Value"]

# Excel only detects UTF-8 CSV files that start with a byte order mark.
UTF8_BOM = "\ufeff"


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def describe_content(field: DecodedField) -> str:
    """One-line text rendering of a field's content for tables and reports."""
    content = field.content
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, MessageContent):
        return f"[{len(content.fields)} items]"
    if isinstance(content, PackedContent):
        if content.symbols:
            return json.dumps(
                [s if s is not None else v for v, s in zip(content.values, content.symbols)],
                allow_nan=False,
            )
        return json.dumps([finite_or_none(v) for v in content.values], allow_nan=False)
    if isinstance(content, VarintValue):
        described: Dict[str, Any] = {
            "type": "varint", "unsigned": content.unsigned, "signed": content.signed,
        }
        if content.enum_name is not None:
            described["enum"] = content.enum_name
        return json.dumps(described, allow_nan=False)
    if isinstance(content, Fixed32Value):
        return json.dumps({
            "type": "fixed32", "float": finite_or_none(content.as_float),
            "signed": content.signed, "unsigned": content.unsigned,
        }, allow_nan=False)
    if isinstance(content, Fixed64Value):
        return json.dumps({
            "type": "fixed64", "double": finite_or_none(content.as_double),
            "signed": content.signed, "unsigned": content.unsigned,
        }, allow_nan=False)
    raise TypeError(f"Unsupported field content: {type(content).__name__}")


def _walk(fields: List[DecodedField], depth: int = 0) -> Iterator[Dict[str, Any]]:
    """Depth-first rows for every field, children right after their parent."""
    for field in fields:
        yield {
            "depth": depth,
            "start": field.byte_range[0],
            "end": field.byte_range[1],
            "number": field.field_number,
            "name": field.field_name or "-",
            "type_name": field.type_name,
            "value": describe_content(field),
            "raw_hex": field.raw_hex,
        }
        if isinstance(field.content, MessageContent):
            yield from _walk(field.content.fields, depth + 1)


def export_json(value: Any, indent: int = 2) -> str:
    """Strict JSON text; non-finite floats raise instead of becoming NaN."""
    return json.dumps(value, indent=indent, ensure_ascii=False, allow_nan=False)


def export_csv(fields: List[DecodedField]) -> str:
    """CSV table of all fields; nested names are indented two spaces per level."""
    if not fields:
        return ""

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in _walk(fields):
        writer.writerow([
            f"{row['start']}-{row['end']}",
            row["number"],
            "  " * row["depth"] + row["name"],
            row["type_name"],
            row["value"],
        ])
    return UTF8_BOM + buf.getvalue()


def render_report(
    result: DecodeResult,
    projection: Optional[Projection] = None,
    title: str = "Protobuf decode report",
) -> str:
    """Human-readable tree of the decode result."""
    env = _get_template_env()
    template = env.get_template("report.txt.j2")
    return template.render(
        title=title,
        summary=summarize(result),
        rows=list(_walk(result.fields)),
        error=result.error,
        unparsed_hex=result.unparsed_hex,
        paths=sorted(projection.path_index.items(), key=lambda item: item[1]) if projection else [],
    )


def write_export(text: str, file_path: str) -> str:
    """Write rendered export text to disk and return the path."""
    Path(file_path).write_text(text, encoding="utf-8")
    return file_path
