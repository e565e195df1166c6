# tests/unit/plugins/test_compression.py
"""Tests for the compression stage."""

import gzip
import io

import pytest
import zstandard

from blobsink.contracts import CompressionType
from blobsink.plugins.compression import decompress, open_compressed
from tests.fixtures.providers import TrackingSink

PAYLOAD = b"line one\nline two\n" * 100


class TestOpenCompressed:
    @pytest.mark.parametrize("compression", list(CompressionType))
    def test_round_trip(self, compression: CompressionType) -> None:
        sink = io.BytesIO()
        stream = open_compressed(sink, compression)
        stream.write(PAYLOAD)
        stream.close()

        assert decompress(sink.getvalue(), compression) == PAYLOAD

    @pytest.mark.parametrize("compression", list(CompressionType))
    def test_close_leaves_sink_open(self, compression: CompressionType) -> None:
        sink = TrackingSink()
        stream = open_compressed(sink, compression)
        stream.write(PAYLOAD)
        stream.close()

        assert sink.close_calls == 0

    def test_none_is_passthrough(self) -> None:
        sink = io.BytesIO()
        stream = open_compressed(sink, CompressionType.NONE)
        stream.write(b"abc")
        assert sink.getvalue() == b"abc"

    def test_gzip_is_standard_gzip(self) -> None:
        sink = io.BytesIO()
        stream = open_compressed(sink, CompressionType.GZIP)
        stream.write(PAYLOAD)
        stream.close()

        assert gzip.decompress(sink.getvalue()) == PAYLOAD

    def test_zstd_is_standard_frame(self) -> None:
        sink = io.BytesIO()
        stream = open_compressed(sink, CompressionType.ZSTD)
        stream.write(PAYLOAD)
        stream.close()

        assert zstandard.ZstdDecompressor().decompressobj().decompress(sink.getvalue()) == PAYLOAD

    def test_gzip_compresses(self) -> None:
        sink = io.BytesIO()
        stream = open_compressed(sink, CompressionType.GZIP)
        stream.write(PAYLOAD)
        stream.close()
        assert len(sink.getvalue()) < len(PAYLOAD)


class TestDecompress:
    def test_corrupt_gzip(self) -> None:
        with pytest.raises(OSError):
            decompress(b"not gzip at all", CompressionType.GZIP)

    def test_corrupt_zstd(self) -> None:
        with pytest.raises(zstandard.ZstdError):
            decompress(b"not zstd at all", CompressionType.ZSTD)
