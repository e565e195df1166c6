"""Format stages, selected by FormatType.

Usage:
    encoder = create_encoder(FormatType.JSONL, options)
    rows = decode(FormatType.JSONL, data, options)
"""

from typing import Any

from blobsink.contracts.enums import FormatType
from blobsink.plugins.formats.base import EncoderFactory, FormatOptions, RowDecoder, RowEncoder
from blobsink.plugins.formats.csv_format import CSVEncoder, decode_csv
from blobsink.plugins.formats.json_format import JSONEncoder, JSONLEncoder, decode_json, decode_jsonl
from blobsink.plugins.formats.parquet_format import ParquetEncoder, decode_parquet

ENCODERS: dict[FormatType, EncoderFactory] = {
    FormatType.CSV: CSVEncoder,
    FormatType.JSON: JSONEncoder,
    FormatType.JSONL: JSONLEncoder,
    FormatType.PARQUET: ParquetEncoder,
}

DECODERS: dict[FormatType, RowDecoder] = {
    FormatType.CSV: decode_csv,
    FormatType.JSON: decode_json,
    FormatType.JSONL: decode_jsonl,
    FormatType.PARQUET: decode_parquet,
}

# Formats that compress internally; the pipeline skips its compression layer.
SELF_COMPRESSING: frozenset[FormatType] = frozenset({FormatType.PARQUET})


def create_encoder(format_type: FormatType, options: FormatOptions) -> RowEncoder:
    """Create a fresh encoder for one blob.

    Raises:
        ValueError: If the format's external properties are invalid.
    """
    return ENCODERS[format_type](options)


def decode(format_type: FormatType, data: bytes, options: FormatOptions) -> list[Any]:
    """Decode an uncompressed blob body back to rows."""
    return DECODERS[format_type](data, options)


__all__ = [
    "DECODERS",
    "ENCODERS",
    "SELF_COMPRESSING",
    "FormatOptions",
    "RowEncoder",
    "create_encoder",
    "decode",
]
