"""Envelope stage: projects a record onto the selected output fields.

With the envelope enabled each record becomes a mapping of the selected
fields, in configured order:

    {"key": "user-1", "value": "eyJpZCI6IDF9", "offset": 42}

With the envelope disabled exactly one field is selected and the record
becomes that bare cell, so a JSONL blob of values is just one value per line.

Cell encoding:
    key              bytes -> UTF-8 text; str and structured values as-is
    value, headers   bytes/str -> base64 text (ValueEncoding.BASE64) or
                     UTF-8 text (ValueEncoding.NONE); structured values as-is
    offset           int
    timestamp        epoch milliseconds or None
    headers          [{"key": name, "value": cell}, ...]
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Sequence
from typing import Any

from blobsink.contracts.enums import OutputField, ValueEncoding
from blobsink.contracts.errors import SerializationError
from blobsink.contracts.records import Record, RecordValue

type Row = dict[str, Any] | Any
type RecordProjector = Callable[[Record], Row]


def encode_raw(value: RecordValue, encoding: ValueEncoding) -> Any:
    """Encode a value or header value cell.

    Raises:
        UnicodeDecodeError: If bytes are not UTF-8 under ValueEncoding.NONE.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, str)):
        raw = value.encode("utf-8") if isinstance(value, str) else value
        if encoding is ValueEncoding.BASE64:
            return base64.b64encode(raw).decode("ascii")
        return raw.decode("utf-8")
    return value


def decode_cell(cell: Any, encoding: ValueEncoding) -> bytes | None:
    """Recover the original bytes of a raw value cell written by encode_raw."""
    if cell is None:
        return None
    if not isinstance(cell, str):
        raise TypeError(f"Only text cells hold raw values, got {type(cell).__name__}")
    if encoding is ValueEncoding.BASE64:
        return base64.b64decode(cell, validate=True)
    return cell.encode("utf-8")


def _key_cell(value: RecordValue) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def _cell(record: Record, field: OutputField, encoding: ValueEncoding) -> Any:
    if field is OutputField.KEY:
        return _key_cell(record.key)
    if field is OutputField.VALUE:
        return encode_raw(record.value, encoding)
    if field is OutputField.OFFSET:
        return record.offset
    if field is OutputField.TIMESTAMP:
        return record.timestamp
    if field is OutputField.HEADERS:
        return [{"key": header.key, "value": encode_raw(header.value, encoding)} for header in record.headers]
    raise AssertionError(f"Unsupported output field: {field}")


def make_projector(
    output_fields: Sequence[OutputField],
    *,
    envelope_enabled: bool,
    value_encoding: ValueEncoding,
) -> RecordProjector:
    """Build the envelope stage for a field selection.

    Raises:
        ValueError: If no field is selected, a field repeats, or the envelope
            is disabled with more than one field.
    """
    fields = tuple(output_fields)
    if not fields:
        raise ValueError("At least one output field is required")
    if len(set(fields)) != len(fields):
        raise ValueError(f"Output fields must be unique, got {[f.value for f in fields]}")
    if not envelope_enabled and len(fields) != 1:
        raise ValueError(f"Envelope disabled requires exactly one output field, got {[f.value for f in fields]}")

    def project(record: Record) -> Row:
        try:
            if not envelope_enabled:
                return _cell(record, fields[0], value_encoding)
            return {field.value: _cell(record, field, value_encoding) for field in fields}
        except UnicodeDecodeError as e:
            raise SerializationError(
                f"Record {record.topic}-{record.partition}@{record.offset} is not valid UTF-8 text: {e}",
                offset=record.offset,
            ) from e

    return project
