"""Shared types for format stages.

A format stage turns envelope rows into bytes. It is a small capability
object with three calls, driven by the output pipeline:

    begin()       bytes written before the first record (e.g. "[")
    encode(row)   bytes for one record, in arrival order
    finish()      bytes that complete the unit (e.g. "]", a Parquet footer)

Encoders never see the sink or the compression layer. Each format module
also provides a decoder that reverses encode for the round trip.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from blobsink.contracts.enums import CompressionType, OutputField
from blobsink.plugins.envelope import Row


@dataclass(frozen=True)
class FormatOptions:
    """Per-blob options every format stage receives.

    Attributes:
        output_fields: Selected fields, in column order
        envelope_enabled: False means rows are bare cells of output_fields[0]
        compression: Configured compression (Parquet uses it as its codec)
        external_properties: Free-form string options (csv.delimiter, parquet.*)
    """

    output_fields: tuple[OutputField, ...]
    envelope_enabled: bool = True
    compression: CompressionType = CompressionType.NONE
    external_properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def column_names(self) -> list[str]:
        return [f.value for f in self.output_fields]


class RowEncoder(Protocol):
    """Format stage capability (see module docstring)."""

    def begin(self) -> bytes: ...

    def encode(self, row: Row) -> bytes: ...

    def finish(self) -> bytes: ...


type EncoderFactory = Callable[[FormatOptions], RowEncoder]
type RowDecoder = Callable[[bytes, FormatOptions], list[Row]]


def int_property(properties: Mapping[str, str], name: str) -> int | None:
    """Read a positive integer external property.

    Raises:
        ValueError: If the property is present but not a positive integer.
    """
    if name not in properties:
        return None
    raw = properties[name]
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"External property {name!r} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"External property {name!r} must be > 0, got {value}")
    return value


# Leading character of a tagged text cell: the rest of the cell is JSON.
TEXT_TAG = "~"


def tag_text(value: Any, *, tag_empty: bool = False) -> str | None:
    """Spell a key/value cell for a text column (CSV, Parquet string).

    Plain text is stored as-is. Structured, numeric and boolean cells, and
    text that itself starts with the tag, are stored as TEXT_TAG + compact
    JSON so untag_text can restore them exactly. tag_empty also tags "" for
    CSV, where an empty cell means null.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.startswith(TEXT_TAG) and (value or not tag_empty):
        return value
    return TEXT_TAG + json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def untag_text(cell: str | None) -> Any:
    """Reverse tag_text."""
    if cell is None or not cell.startswith(TEXT_TAG):
        return cell
    return json.loads(cell[len(TEXT_TAG) :])
