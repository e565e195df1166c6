# src/blobsink/engine/pipeline.py
"""Output pipeline: envelope -> format -> compression over one byte sink.

A pipeline is built per blob and used once:

    with provider.open(bucket, name) as sink:
        pipeline = build_pipeline(sink, format_type=FormatType.JSONL, compression=CompressionType.GZIP)
        result = pipeline.write_records(records)

write_records() leaves a complete, decodable unit in the sink (format
trailer written, compressor closed, sink flushed) but never closes the
sink. Scope belongs to whoever opened it.
"""

from __future__ import annotations

import contextlib
import hashlib
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, BinaryIO

from blobsink.contracts.enums import CompressionType, FormatType, OutputField, ValueEncoding
from blobsink.contracts.errors import BlobIOError, SerializationError
from blobsink.contracts.records import Record
from blobsink.core.logging import get_logger
from blobsink.plugins.compression import decompress, open_compressed
from blobsink.plugins.envelope import RecordProjector, make_projector
from blobsink.plugins.formats import SELF_COMPRESSING, FormatOptions, RowEncoder, create_encoder, decode

log = get_logger(__name__)

DEFAULT_OUTPUT_FIELDS: tuple[OutputField, ...] = (OutputField.VALUE,)


@dataclass(frozen=True)
class PipelineResult:
    """What one pipeline wrote.

    Attributes:
        record_count: Records encoded
        size_bytes: Bytes written to the sink (after compression)
        content_hash: SHA-256 hex digest of those bytes
    """

    record_count: int
    size_bytes: int
    content_hash: str


class _HashingSink:
    """Forwards writes to the real sink, counting and hashing them."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self._hasher = hashlib.sha256()
        self.size = 0

    def write(self, data: bytes) -> int:
        self._sink.write(data)
        self._hasher.update(data)
        self.size += len(data)
        return len(data)

    def flush(self) -> None:
        self._sink.flush()

    @property
    def content_hash(self) -> str:
        return self._hasher.hexdigest()


class OutputPipeline:
    """Single-use writer for one blob."""

    def __init__(
        self,
        sink: BinaryIO,
        *,
        projector: RecordProjector,
        encoder: RowEncoder,
        compression: CompressionType,
    ) -> None:
        self._sink = sink
        self._projector = projector
        self._encoder = encoder
        self._compression = compression
        self._used = False

    def write_records(self, records: Iterable[Record]) -> PipelineResult:
        """Encode records in order and complete the unit.

        Raises:
            SerializationError: A record cannot be encoded (carries its offset).
            BlobIOError: The sink rejected a write or flush.
            RuntimeError: The pipeline was already used.
        """
        if self._used:
            raise RuntimeError("OutputPipeline is single use; build a new one per blob")
        self._used = True

        counting = _HashingSink(self._sink)
        count = 0
        try:
            # gzip writes its header here, so this can already hit the sink
            stream = open_compressed(counting, self._compression)  # type: ignore[arg-type]
            try:
                stream.write(self._encoder.begin())
                for record in records:
                    row = self._projector(record)
                    try:
                        chunk = self._encoder.encode(row)
                    except (TypeError, ValueError) as e:
                        raise SerializationError(
                            f"Record {record.topic}-{record.partition}@{record.offset} cannot be encoded: {e}",
                            offset=record.offset,
                        ) from e
                    stream.write(chunk)
                    count += 1
                stream.write(self._encoder.finish())
            except BaseException:
                # The primary error is already propagating
                with contextlib.suppress(Exception):
                    stream.close()
                raise
            stream.close()
            counting.flush()
        except BlobIOError:
            raise
        except OSError as e:
            raise BlobIOError(f"Failed to write blob data: {e}") from e

        log.debug("Pipeline wrote records", record_count=count, size_bytes=counting.size)
        return PipelineResult(record_count=count, size_bytes=counting.size, content_hash=counting.content_hash)


def _options(
    format_type: FormatType,
    compression: CompressionType,
    envelope_enabled: bool,
    output_fields: Sequence[OutputField],
    external_properties: Mapping[str, str] | None,
) -> FormatOptions:
    return FormatOptions(
        output_fields=tuple(output_fields),
        envelope_enabled=envelope_enabled,
        compression=compression,
        external_properties=dict(external_properties or {}),
    )


def build_pipeline(
    sink: BinaryIO,
    *,
    format_type: FormatType,
    compression: CompressionType = CompressionType.NONE,
    envelope_enabled: bool = True,
    output_fields: Sequence[OutputField] = DEFAULT_OUTPUT_FIELDS,
    value_encoding: ValueEncoding = ValueEncoding.BASE64,
    external_properties: Mapping[str, str] | None = None,
) -> OutputPipeline:
    """Compose the stages for one blob.

    Formats that compress internally (Parquet) receive the compression as
    their codec and the outer compression layer becomes a passthrough.

    Raises:
        ValueError: If the field selection or external properties are invalid.
    """
    projector = make_projector(output_fields, envelope_enabled=envelope_enabled, value_encoding=value_encoding)
    options = _options(format_type, compression, envelope_enabled, output_fields, external_properties)
    encoder = create_encoder(format_type, options)
    outer = CompressionType.NONE if format_type in SELF_COMPRESSING else compression
    return OutputPipeline(sink, projector=projector, encoder=encoder, compression=outer)


def read_blob(
    data: bytes,
    *,
    format_type: FormatType,
    compression: CompressionType = CompressionType.NONE,
    envelope_enabled: bool = True,
    output_fields: Sequence[OutputField] = DEFAULT_OUTPUT_FIELDS,
    external_properties: Mapping[str, str] | None = None,
) -> list[Any]:
    """Reverse a pipeline: decompress and decode a blob into rows.

    Rows are envelope mappings, or bare cells when the envelope is disabled.
    Raw value cells can be turned back into bytes with decode_cell().
    """
    options = _options(format_type, compression, envelope_enabled, output_fields, external_properties)
    body = data if format_type in SELF_COMPRESSING else decompress(data, compression)
    return decode(format_type, body, options)
