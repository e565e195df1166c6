"""Parquet format stage (pyarrow).

Parquet files are written whole: rows are buffered by encode() and the
table is written in finish(). The configured compression becomes the
column codec, so the pipeline bypasses its own compression layer for this
format.

Schema (one column per selected field):
    key, value   string (non-text cells stored as tagged text, see base.tag_text)
    offset       int64
    timestamp    int64 (epoch milliseconds, nullable)
    headers      list<struct<key: string, value: string>>
"""

from typing import Any

import pyarrow as pa
import pyarrow.parquet as pq

from blobsink.contracts.enums import CompressionType, OutputField
from blobsink.contracts.errors import SerializationError
from blobsink.plugins.envelope import Row
from blobsink.plugins.formats.base import FormatOptions, int_property, tag_text, untag_text

ROW_GROUP_SIZE_PROPERTY = "parquet.row.group.size"
DATA_PAGE_SIZE_PROPERTY = "parquet.data.page.size"

_HEADER_TYPE = pa.struct([("key", pa.string()), ("value", pa.string())])

_ARROW_TYPES: dict[OutputField, pa.DataType] = {
    OutputField.KEY: pa.string(),
    OutputField.VALUE: pa.string(),
    OutputField.OFFSET: pa.int64(),
    OutputField.TIMESTAMP: pa.int64(),
    OutputField.HEADERS: pa.list_(_HEADER_TYPE),
}

_CODECS: dict[CompressionType, str] = {
    CompressionType.NONE: "none",
    CompressionType.GZIP: "gzip",
    CompressionType.ZSTD: "zstd",
}


def arrow_schema(options: FormatOptions) -> pa.Schema:
    return pa.schema([pa.field(field.value, _ARROW_TYPES[field]) for field in options.output_fields])


def _column_value(field: OutputField, value: Any) -> Any:
    if field in (OutputField.KEY, OutputField.VALUE):
        return tag_text(value)
    if field is OutputField.HEADERS:
        return [{"key": header["key"], "value": tag_text(header["value"])} for header in value]
    return value


class ParquetEncoder:
    """Buffers rows and writes one Parquet file on finish()."""

    def __init__(self, options: FormatOptions) -> None:
        self._options = options
        self._schema = arrow_schema(options)
        self._row_group_size = int_property(options.external_properties, ROW_GROUP_SIZE_PROPERTY)
        self._data_page_size = int_property(options.external_properties, DATA_PAGE_SIZE_PROPERTY)
        self._rows: list[dict[str, Any]] = []

    def begin(self) -> bytes:
        return b""

    def encode(self, row: Row) -> bytes:
        fields = self._options.output_fields
        if self._options.envelope_enabled:
            self._rows.append({field.value: _column_value(field, row[field.value]) for field in fields})
        else:
            self._rows.append({fields[0].value: _column_value(fields[0], row)})
        return b""

    def finish(self) -> bytes:
        sink = pa.BufferOutputStream()
        try:
            table = pa.Table.from_pylist(self._rows, schema=self._schema)
            pq.write_table(
                table,
                sink,
                compression=_CODECS[self._options.compression],
                row_group_size=self._row_group_size,
                data_page_size=self._data_page_size,
            )
        except (pa.ArrowException, TypeError, ValueError) as e:
            raise SerializationError(f"Failed to write Parquet data: {e}") from e
        finally:
            self._rows = []
        return sink.getvalue().to_pybytes()


def _restore(field: OutputField, value: Any) -> Any:
    if field in (OutputField.KEY, OutputField.VALUE):
        return untag_text(value)
    if field is OutputField.HEADERS:
        return [{"key": header["key"], "value": untag_text(header["value"])} for header in value]
    return value


def decode_parquet(data: bytes, options: FormatOptions) -> list[Any]:
    fields = options.output_fields
    rows = [
        {field.value: _restore(field, row[field.value]) for field in fields}
        for row in pq.read_table(pa.BufferReader(data)).to_pylist()
    ]
    if options.envelope_enabled:
        return rows
    return [row[fields[0].value] for row in rows]
