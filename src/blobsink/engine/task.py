# src/blobsink/engine/task.py
"""SinkTask: host-facing lifecycle around the grouper and output pipeline.

The host drives the task:

    task = SinkTask(config, provider)
    task.start()
    task.put(records)        # any number of times
    result = task.flush()    # on the host's commit trigger
    task.stop()

flush() writes every group to its own blob and clears the grouper only when
all of them succeeded. A failed flush leaves every group in place, so the
next flush rewrites them all (at-least-once; blobs may be rewritten).
"""

from __future__ import annotations

from collections.abc import Iterable

from structlog.contextvars import bound_contextvars

from blobsink.contracts.enums import TaskState
from blobsink.contracts.errors import FlushError, TaskStateError
from blobsink.contracts.records import Record
from blobsink.contracts.storage import BlobDescriptor, BlobSinkProvider, FlushResult
from blobsink.core.config import SinkConfig
from blobsink.core.logging import get_logger
from blobsink.engine.clock import Clock
from blobsink.engine.grouper import RecordGrouper
from blobsink.engine.pipeline import build_pipeline

log = get_logger(__name__)


class SinkTask:
    """Groups records and flushes each group to a blob."""

    def __init__(self, config: SinkConfig, provider: BlobSinkProvider, *, clock: Clock | None = None) -> None:
        self._config = config
        self._provider = provider
        self._clock = clock
        self._grouper: RecordGrouper | None = None
        self._state = TaskState.UNINITIALIZED
        self._flush_count = 0

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def config(self) -> SinkConfig:
        return self._config

    @property
    def grouper(self) -> RecordGrouper:
        if self._grouper is None:
            raise TaskStateError(f"Task has no grouper in state {self._state}")
        return self._grouper

    def start(self) -> None:
        """Build the grouper from config.

        Raises:
            TaskStateError: If the task was already started or stopped.
            TemplateError: If the file name template is invalid.
        """
        self._require(TaskState.UNINITIALIZED, "start")
        config = self._config
        self._grouper = RecordGrouper(
            config.template(),
            max_records_per_file=config.max_records_per_file,
            overflow_policy=config.overflow_policy,
            timestamp_source=config.timestamp_source,
            timezone=config.timestamp_timezone,
            clock=self._clock,
        )
        self._state = TaskState.READY
        log.info(
            "Sink task started",
            bucket=config.bucket_name,
            template=config.effective_template,
            format=str(config.format),
            compression=str(config.compression),
        )

    def put(self, records: Iterable[Record]) -> int:
        """Group a batch of records.

        Returns:
            Number of records grouped.

        Raises:
            GroupingError: For the first record that cannot be grouped. Records
                before it in the batch stay grouped.
        """
        self._require(TaskState.READY, "put")
        grouper = self.grouper
        count = 0
        for record in records:
            grouper.put(record)
            count += 1
        return count

    def flush(self) -> FlushResult:
        """Write every group to its blob, then clear the grouper.

        Raises:
            FlushError: If any group fails to serialize or write. Nothing is
                cleared; the cause is chained.
        """
        self._require(TaskState.READY, "flush")
        grouper = self.grouper
        self._state = TaskState.FLUSHING
        self._flush_count += 1
        with bound_contextvars(bucket=self._config.bucket_name, flush=self._flush_count):
            try:
                blobs = [self._write_group(file_key, records) for file_key, records in grouper.records().items()]
                grouper.clear()
            finally:
                self._state = TaskState.READY

            result = FlushResult(blobs=tuple(blobs))
            if blobs:
                log.info("Flushed groups", blob_count=len(blobs), record_count=result.record_count)
        return result

    def stop(self) -> None:
        """Stop the task, dropping any grouped records without writing them."""
        if self._state is TaskState.FLUSHING:
            raise TaskStateError("Cannot stop while a flush is in progress")
        if self._state is TaskState.STOPPED:
            return
        dropped = self._grouper.record_count if self._grouper is not None else 0
        if dropped:
            log.warning("Stopping with unflushed records", record_count=dropped)
        self._grouper = None
        self._state = TaskState.STOPPED

    def _write_group(self, file_key: str, records: tuple[Record, ...]) -> BlobDescriptor:
        config = self._config
        name = config.prefix + file_key
        try:
            with self._provider.open(config.bucket_name, name) as sink:
                pipeline = build_pipeline(
                    sink,
                    format_type=config.format,
                    compression=config.compression,
                    envelope_enabled=config.envelope_enabled,
                    output_fields=config.output_fields,
                    value_encoding=config.value_encoding,
                    external_properties=config.external_properties,
                )
                result = pipeline.write_records(records)
        except Exception as e:
            # Serialization, storage and provider setup errors (e.g. a missing SDK) all fail the flush
            log.error("Group write failed", file_key=file_key, blob=name, record_count=len(records), error=str(e))
            raise FlushError(file_key, e) from e

        log.debug("Wrote blob", file_key=file_key, blob=name, record_count=result.record_count, size_bytes=result.size_bytes)
        return BlobDescriptor(
            bucket=config.bucket_name,
            name=name,
            record_count=result.record_count,
            first_offset=records[0].offset,
            last_offset=records[-1].offset,
            size_bytes=result.size_bytes,
            content_hash=result.content_hash,
        )

    def _require(self, expected: TaskState, operation: str) -> None:
        if self._state is not expected:
            raise TaskStateError(f"Cannot {operation}() in state {self._state}; expected {expected}")
