"""All modes, kinds and states used across subsystem boundaries.

Configuration values map straight onto these enums, so the string values are
the spellings users write in YAML.
"""

from enum import StrEnum


class FormatType(StrEnum):
    """Output format of a blob.

    Values:
        CSV: One CSV line per record, no header row
        JSON: One JSON array holding every record of the blob
        JSONL: One JSON document per line
        PARQUET: Columnar Parquet file written by pyarrow
    """

    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    PARQUET = "parquet"


class CompressionType(StrEnum):
    """Compression applied to the serialized byte stream."""

    NONE = "none"
    GZIP = "gzip"
    ZSTD = "zstd"

    @property
    def extension(self) -> str:
        """File name suffix appended to the default file name template."""
        if self is CompressionType.GZIP:
            return ".gz"
        if self is CompressionType.ZSTD:
            return ".zst"
        return ""


class OutputField(StrEnum):
    """Record field that can be selected for output.

    The declaration order is the column order used when no explicit
    order is configured.
    """

    KEY = "key"
    VALUE = "value"
    OFFSET = "offset"
    TIMESTAMP = "timestamp"
    HEADERS = "headers"


class ValueEncoding(StrEnum):
    """How raw (bytes/str) values and header values are rendered as text."""

    NONE = "none"
    BASE64 = "base64"


class OverflowPolicy(StrEnum):
    """What the grouper does when a group reaches max_records_per_file.

    ROLLOVER: Start a new file whose start_offset is the incoming record's offset
    REJECT: Refuse the record with GroupingError
    """

    ROLLOVER = "rollover"
    REJECT = "reject"


class TimestampSource(StrEnum):
    """Where the `timestamp` template variable comes from."""

    WALLCLOCK = "wallclock"
    EVENT = "event"


class GrouperPhase(StrEnum):
    """Conceptual phase of a RecordGrouper."""

    ACCUMULATING = "accumulating"
    DRAINED = "drained"


class TaskState(StrEnum):
    """Lifecycle state of a SinkTask.

    Transitions:
        UNINITIALIZED -> READY (start)
        READY -> FLUSHING -> READY (flush, success or failure)
        UNINITIALIZED | READY -> STOPPED (stop)
    """

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FLUSHING = "flushing"
    STOPPED = "stopped"
