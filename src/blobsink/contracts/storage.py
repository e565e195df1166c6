"""Storage-facing contracts: the blob sink provider and written-blob descriptors."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import BinaryIO, Protocol, runtime_checkable


@runtime_checkable
class BlobSinkProvider(Protocol):
    """Opens writable byte sinks bound to a blob location.

    The returned context manager yields the sink and guarantees release on
    every exit path. Leaving the block normally commits the blob; leaving it
    with an exception abandons it (partial content on the target is allowed,
    a leaked handle is not).

    Failures to open, write or commit surface as BlobIOError.
    """

    def open(self, bucket: str, name: str) -> AbstractContextManager[BinaryIO]:
        """Open a sink for `name` inside `bucket`."""
        ...


@dataclass(frozen=True, slots=True)
class BlobDescriptor:
    """Describes one blob written by a successful flush."""

    bucket: str
    name: str
    record_count: int
    first_offset: int
    last_offset: int
    size_bytes: int
    content_hash: str  # SHA-256 of the bytes handed to the sink

    @property
    def uri(self) -> str:
        return f"{self.bucket}/{self.name}"


@dataclass(frozen=True, slots=True)
class FlushResult:
    """Outcome of a successful SinkTask.flush()."""

    blobs: tuple[BlobDescriptor, ...] = ()

    @property
    def record_count(self) -> int:
        return sum(blob.record_count for blob in self.blobs)
