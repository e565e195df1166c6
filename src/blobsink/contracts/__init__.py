"""Shared contracts for cross-boundary data types.

Records, enums, errors and storage protocols used by more than one
subsystem live here. This package is a LEAF MODULE with no outbound
dependencies to core/engine/plugins. Settings classes are NOT re-exported
here - import them from blobsink.core.config.

Import patterns:
    from blobsink.contracts import Record, FormatType, FlushError
    from blobsink.core.config import SinkConfig
"""

from blobsink.contracts.enums import (
    CompressionType,
    FormatType,
    GrouperPhase,
    OutputField,
    OverflowPolicy,
    TaskState,
    TimestampSource,
    ValueEncoding,
)
from blobsink.contracts.errors import (
    BlobIOError,
    BlobSinkError,
    FlushError,
    GroupingError,
    SerializationError,
    TaskStateError,
    TemplateError,
)
from blobsink.contracts.records import Header, Record, RecordValue, TopicPartition
from blobsink.contracts.storage import BlobDescriptor, BlobSinkProvider, FlushResult

__all__ = [
    "BlobDescriptor",
    "BlobIOError",
    "BlobSinkError",
    "BlobSinkProvider",
    "CompressionType",
    "FlushError",
    "FlushResult",
    "FormatType",
    "GrouperPhase",
    "GroupingError",
    "Header",
    "OutputField",
    "OverflowPolicy",
    "Record",
    "RecordValue",
    "SerializationError",
    "TaskState",
    "TaskStateError",
    "TemplateError",
    "TimestampSource",
    "TopicPartition",
    "ValueEncoding",
]
