"""Compression stage: wraps a byte sink in a streaming compressor.

open_compressed() returns a writable stream layered over the sink. Closing
the stream flushes the compressor's trailer into the sink but never closes
the sink itself; the caller owns it.
"""

import gzip
import io
from typing import BinaryIO

import zstandard

from blobsink.contracts.enums import CompressionType


class _Passthrough(io.RawIOBase):
    """Uncompressed stream that forwards writes without owning the sink."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:  # type: ignore[override]
        self._sink.write(data)
        return len(data)


def open_compressed(sink: BinaryIO, compression: CompressionType) -> BinaryIO:
    """Wrap sink for the given compression.

    gzip output uses mtime=0 so identical input gives identical bytes.
    """
    if compression is CompressionType.GZIP:
        return gzip.GzipFile(fileobj=sink, mode="wb", mtime=0)  # type: ignore[return-value]
    if compression is CompressionType.ZSTD:
        return zstandard.ZstdCompressor().stream_writer(sink, closefd=False)  # type: ignore[return-value]
    return _Passthrough(sink)  # type: ignore[return-value]


def decompress(data: bytes, compression: CompressionType) -> bytes:
    if compression is CompressionType.GZIP:
        return gzip.decompress(data)
    if compression is CompressionType.ZSTD:
        # decompressobj handles frames written without a content size
        return zstandard.ZstdDecompressor().decompressobj().decompress(data)
    return data
