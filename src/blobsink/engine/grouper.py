# src/blobsink/engine/grouper.py
"""RecordGrouper: accumulates records into files keyed by a name template.

Streams and start_offset:
    A record's *stream* is its file key rendered with start_offset replaced by
    a fixed marker. The first record of a stream since the last clear() (or
    since the stream last rolled over) is the stream head; its offset is the
    start_offset of every record in the stream's current file. For the
    default template {{ topic }}-{{ partition }}-{{ start_offset }} a stream
    is a topic-partition, so every flush produces one file per partition
    named after its first offset.

Overflow:
    With max_records_per_file > 0 a full group either rolls over (the incoming
    record becomes the new stream head, giving a new file key) or rejects the
    record with GroupingError, depending on OverflowPolicy.

Thread Safety:
    put(), records() and clear() run under one lock. Hosts that already
    serialize calls pay only an uncontended acquire.

Invariants:
    - Every record put since the last clear() is in exactly one group
    - Records within a group keep arrival order
    - A record refused with GroupingError is in no group
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any
from zoneinfo import ZoneInfo

from blobsink.contracts.enums import GrouperPhase, OverflowPolicy, TimestampSource
from blobsink.contracts.errors import GroupingError, TemplateError
from blobsink.contracts.records import Record, RecordValue
from blobsink.core.logging import get_logger
from blobsink.core.templates import FilenameTemplate
from blobsink.engine.clock import DEFAULT_CLOCK, Clock

log = get_logger(__name__)

# Rendered in place of start_offset to identify a stream. Real offsets are >= 0.
_STREAM_MARKER = -1


def _text(value: RecordValue) -> Any:
    """Template-friendly form of a key, value or header value."""
    if value is None:
        return "null"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RecordGrouper:
    """Maps file keys to ordered record batches.

    Example:
        grouper = RecordGrouper(FilenameTemplate("{{ topic }}-{{ partition }}-{{ start_offset }}"))
        for record in batch:
            grouper.put(record)

        for file_key, records in grouper.records().items():
            write_blob(file_key, records)
        grouper.clear()
    """

    def __init__(
        self,
        template: FilenameTemplate,
        *,
        max_records_per_file: int = 0,
        overflow_policy: OverflowPolicy = OverflowPolicy.ROLLOVER,
        timestamp_source: TimestampSource = TimestampSource.WALLCLOCK,
        timezone: str = "UTC",
        clock: Clock | None = None,
    ) -> None:
        """Initialize an empty grouper.

        Args:
            template: Compiled file name template
            max_records_per_file: Group size limit (0 = unlimited)
            overflow_policy: What to do when a group is full
            timestamp_source: Wall clock or record event time for {{ timestamp }}
            timezone: IANA timezone applied to {{ timestamp }}
            clock: Wall clock (defaults to the system clock)

        Raises:
            ValueError: If max_records_per_file is negative.
            TemplateError: If rollover is configured with a limit but the
                template cannot tell files apart (no start_offset).
        """
        if max_records_per_file < 0:
            raise ValueError(f"max_records_per_file must be >= 0, got {max_records_per_file}")
        if max_records_per_file > 0 and overflow_policy is OverflowPolicy.ROLLOVER and not template.uses("start_offset"):
            raise TemplateError(
                f"File name template {template.source!r} must reference start_offset when "
                f"max_records_per_file={max_records_per_file} rolls over to new files"
            )

        self._template = template
        self._max_records = max_records_per_file
        self._overflow_policy = overflow_policy
        self._timestamp_source = timestamp_source
        self._timezone = ZoneInfo(timezone)
        self._clock = clock if clock is not None else DEFAULT_CLOCK

        self._lock = threading.Lock()
        self._groups: dict[str, list[Record]] = {}
        # stream identity -> head record (source of start_offset)
        self._heads: dict[str, Record] = {}

    @property
    def template(self) -> FilenameTemplate:
        return self._template

    @property
    def phase(self) -> GrouperPhase:
        with self._lock:
            return GrouperPhase.ACCUMULATING if self._groups else GrouperPhase.DRAINED

    @property
    def record_count(self) -> int:
        """Total records held across all groups."""
        with self._lock:
            return sum(len(group) for group in self._groups.values())

    def __len__(self) -> int:
        """Number of groups."""
        with self._lock:
            return len(self._groups)

    def put(self, record: Record) -> str:
        """Add a record to the group for its file key.

        Returns:
            The file key the record was grouped under.

        Raises:
            GroupingError: If the file key cannot be computed, or the group is
                full under OverflowPolicy.REJECT, or a rollover key collides
                with a full group. The record is not added.
        """
        with self._lock:
            variables = self._variables(record)

            # A new stream head is only recorded once the record is actually grouped
            new_head: Record | None = None
            if self._template.uses("start_offset"):
                stream = self._render(record, variables, start_offset=_STREAM_MARKER)
                head = self._heads.get(stream)
                if head is None:
                    head = new_head = record
                file_key = self._render(record, variables, start_offset=head.offset)
            else:
                stream = None
                file_key = self._render(record, variables, start_offset=record.offset)

            group = self._groups.get(file_key)
            if group is not None and self._is_full(group):
                if self._overflow_policy is OverflowPolicy.REJECT:
                    raise GroupingError(
                        f"File '{file_key}' already holds {len(group)} records (max_records_per_file={self._max_records}); "
                        f"rejecting {record.topic}-{record.partition}@{record.offset}",
                        record=record,
                    )
                # Rollover: the incoming record starts a new file. stream is not
                # None here because rollover requires start_offset in the template.
                assert stream is not None
                file_key = self._render(record, variables, start_offset=record.offset)
                group = self._groups.get(file_key)
                if group is not None and self._is_full(group):
                    raise GroupingError(
                        f"Rolled-over file '{file_key}' collides with a full file; "
                        f"does the template need {{{{ partition }}}} or {{{{ topic }}}}?",
                        record=record,
                    )
                new_head = record
                log.debug("Rolled over to new file", file_key=file_key, start_offset=record.offset)

            if group is None:
                group = []
                self._groups[file_key] = group
            group.append(record)
            if new_head is not None:
                assert stream is not None
                self._heads[stream] = new_head
            return file_key

    def records(self) -> Mapping[str, tuple[Record, ...]]:
        """Snapshot of all groups since the last clear().

        Returns:
            Read-only mapping file_key -> records in arrival order. Groups
            appear in creation order, which is stable for a given state.
        """
        with self._lock:
            return MappingProxyType({file_key: tuple(group) for file_key, group in self._groups.items()})

    def clear(self) -> None:
        """Discard all groups and stream heads. Safe to call when already empty."""
        with self._lock:
            self._groups.clear()
            self._heads.clear()

    def _is_full(self, group: list[Record]) -> bool:
        return self._max_records > 0 and len(group) >= self._max_records

    def _render(self, record: Record, variables: dict[str, Any], *, start_offset: int) -> str:
        variables["start_offset"] = start_offset
        try:
            return self._template.render(variables)
        except TemplateError as e:
            raise GroupingError(
                f"Cannot compute file key for {record.topic}-{record.partition}@{record.offset}: {e}",
                record=record,
            ) from e

    def _variables(self, record: Record) -> dict[str, Any]:
        """Grouping variables for a record, computing only what the template uses."""
        variables: dict[str, Any] = {"topic": record.topic, "partition": record.partition}
        try:
            if self._template.uses("timestamp"):
                variables["timestamp"] = self._timestamp(record)
            if self._template.uses("key"):
                variables["key"] = _text(record.key)
            if self._template.uses("value"):
                variables["value"] = _text(record.value)
            if self._template.uses("headers"):
                variables["headers"] = {header.key: _text(header.value) for header in record.headers}
        except UnicodeDecodeError as e:
            raise GroupingError(
                f"Record {record.topic}-{record.partition}@{record.offset} has a non UTF-8 field used by the file name template",
                record=record,
            ) from e
        return variables

    def _timestamp(self, record: Record) -> datetime:
        if self._timestamp_source is TimestampSource.EVENT:
            if record.timestamp is None:
                raise GroupingError(
                    f"Record {record.topic}-{record.partition}@{record.offset} has no timestamp but timestamp_source is 'event'",
                    record=record,
                )
            return datetime.fromtimestamp(record.timestamp / 1000, tz=self._timezone)
        return self._clock.now().astimezone(self._timezone)
