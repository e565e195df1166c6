"""CSV format stage.

One line per record, columns in output field order, no header row. Cells:
    - None                -> empty
    - offset, timestamp   -> decimal integer
    - key/value text      -> as-is (value already base64 or UTF-8 per encoding)
    - other key/value     -> tagged text: "~" + compact JSON, e.g. ~{"id":1}
    - headers             -> name:value;name:value, a null value as bare name

Empty text and text starting with "~" are tagged as well ("" -> ~""), so
every cell reads back exactly. Header names containing ':' or ';', and
header values containing ';', cannot be told apart from the separators; the
decoder splits on the first ':' of each ';'-separated item.
"""

import csv
import io
from typing import Any

from blobsink.contracts.enums import OutputField
from blobsink.plugins.envelope import Row
from blobsink.plugins.formats.base import FormatOptions, tag_text, untag_text

CSV_DELIMITER_PROPERTY = "csv.delimiter"


def csv_delimiter(options: FormatOptions) -> str:
    """Delimiter from external properties (default ',').

    Raises:
        ValueError: If the configured delimiter is not a single character.
    """
    delimiter = options.external_properties.get(CSV_DELIMITER_PROPERTY, ",")
    if len(delimiter) != 1:
        raise ValueError(f"External property {CSV_DELIMITER_PROPERTY!r} must be a single character, got {delimiter!r}")
    return delimiter


def _headers_cell(headers: list[dict[str, Any]]) -> str:
    items = []
    for header in headers:
        value = tag_text(header["value"])
        items.append(header["key"] if value is None else f"{header['key']}:{value}")
    return ";".join(items)


def _parse_headers(cell: str) -> list[dict[str, Any]]:
    if not cell:
        return []
    headers = []
    for item in cell.split(";"):
        name, separator, value = item.partition(":")
        headers.append({"key": name, "value": untag_text(value) if separator else None})
    return headers


def _to_cell(field: OutputField, value: Any) -> str:
    if value is None:
        return ""
    if field is OutputField.HEADERS:
        return _headers_cell(value)
    if field in (OutputField.OFFSET, OutputField.TIMESTAMP):
        return str(value)
    cell = tag_text(value, tag_empty=True)
    assert cell is not None
    return cell


def _from_cell(field: OutputField, cell: str) -> Any:
    if field in (OutputField.OFFSET, OutputField.TIMESTAMP):
        return int(cell) if cell else None
    if field is OutputField.HEADERS:
        return _parse_headers(cell)
    return untag_text(cell) if cell else None


class CSVEncoder:
    """Writes records as CSV lines."""

    def __init__(self, options: FormatOptions) -> None:
        self._options = options
        self._delimiter = csv_delimiter(options)

    def begin(self) -> bytes:
        return b""

    def encode(self, row: Row) -> bytes:
        fields = self._options.output_fields
        if self._options.envelope_enabled:
            cells = [_to_cell(field, row[field.value]) for field in fields]
        else:
            cells = [_to_cell(fields[0], row)]
        output = io.StringIO()
        writer = csv.writer(output, delimiter=self._delimiter, lineterminator="\n")
        writer.writerow(cells)
        return output.getvalue().encode("utf-8")

    def finish(self) -> bytes:
        return b""


def decode_csv(data: bytes, options: FormatOptions) -> list[Any]:
    fields = options.output_fields
    reader = csv.reader(io.StringIO(data.decode("utf-8")), delimiter=csv_delimiter(options))
    rows: list[Any] = []
    for line in reader:
        if len(line) != len(fields):
            raise ValueError(f"CSV line has {len(line)} columns, expected {len(fields)}")
        decoded = {field.value: _from_cell(field, cell) for field, cell in zip(fields, line, strict=True)}
        rows.append(decoded if options.envelope_enabled else decoded[fields[0].value])
    return rows
