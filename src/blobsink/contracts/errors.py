"""Error taxonomy shared by the grouper, the output pipeline and the task.

Every error raised by blobsink derives from BlobSinkError so hosts can catch
the whole family at one boundary. Where a Python builtin already names the
category (ValueError for bad templates, OSError for I/O, RuntimeError for
lifecycle misuse) the error also derives from it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from blobsink.contracts.records import Record


class BlobSinkError(Exception):
    """Base class for all blobsink errors."""

    pass


class TemplateError(BlobSinkError, ValueError):
    """Raised when a file name template is invalid or cannot be rendered.

    Covers syntax errors, references to unsupported variables, undefined
    attributes at render time and sandbox violations.
    """

    pass


class GroupingError(BlobSinkError):
    """Raised when a record cannot be assigned to a group.

    Attributes:
        record: The record that was refused. It is NOT in the grouper.
    """

    def __init__(self, message: str, *, record: Record) -> None:
        self.record = record
        super().__init__(message)


class SerializationError(BlobSinkError):
    """Raised when a record cannot be encoded in the configured format.

    Attributes:
        offset: Offset of the offending record, or None when the failure
            happened while finishing the blob (e.g. Parquet footer).
    """

    def __init__(self, message: str, *, offset: int | None = None) -> None:
        self.offset = offset
        super().__init__(message)


class BlobIOError(BlobSinkError, OSError):
    """Raised when a blob sink cannot be opened, written or committed."""

    pass


class FlushError(BlobSinkError):
    """Raised when a flush cycle fails.

    Wraps the first group-level failure (available as __cause__). The grouper
    is left untouched so the next flush retries every group.

    Attributes:
        file_key: File key of the group whose write failed.
    """

    def __init__(self, file_key: str, cause: BaseException) -> None:
        self.file_key = file_key
        super().__init__(f"Failed to flush file '{file_key}': {cause}")


class TaskStateError(BlobSinkError, RuntimeError):
    """Raised when a SinkTask operation is called in the wrong state."""

    pass
