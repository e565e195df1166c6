# tests/unit/engine/test_grouper.py
"""Tests for RecordGrouper: keying, start_offset streams, overflow and clear."""

import threading
from datetime import UTC, datetime

import pytest

from blobsink.contracts import GrouperPhase, GroupingError, Header, OverflowPolicy, TemplateError, TimestampSource
from blobsink.core.templates import FilenameTemplate
from blobsink.engine.clock import MockClock
from blobsink.engine.grouper import RecordGrouper
from tests.fixtures.factories import make_batch, make_record

PADDED = "{{ topic }}-{{ partition }}-{{ start_offset | padded(10) }}"


def _grouper(source: str = PADDED, **kwargs: object) -> RecordGrouper:
    return RecordGrouper(FilenameTemplate(source), **kwargs)  # type: ignore[arg-type]


class TestPut:
    """put() assigns records to file keys."""

    def test_first_record_names_the_file(self) -> None:
        grouper = _grouper()
        a, b = make_record(0, value=b"A"), make_record(1, value=b"B")

        assert grouper.put(a) == "topic-0-0000000000"
        assert grouper.put(b) == "topic-0-0000000000"
        assert grouper.records() == {"topic-0-0000000000": (a, b)}

    def test_partitions_get_separate_files(self) -> None:
        grouper = _grouper()
        p0 = make_record(10, partition=0)
        p1 = make_record(5, partition=1)

        grouper.put(p0)
        grouper.put(p1)

        assert grouper.records() == {"topic-0-0000000010": (p0,), "topic-1-0000000005": (p1,)}

    def test_interleaved_partitions_keep_per_group_order(self) -> None:
        grouper = _grouper()
        records = [make_record(offset, partition=offset % 2) for offset in range(6)]
        for record in records:
            grouper.put(record)

        groups = grouper.records()
        assert groups["topic-0-0000000000"] == tuple(r for r in records if r.partition == 0)
        assert groups["topic-1-0000000001"] == tuple(r for r in records if r.partition == 1)

    def test_template_without_partition_merges_partitions(self) -> None:
        """Omitting partition is a configuration hazard, not a grouper error."""
        grouper = _grouper("{{ topic }}")
        grouper.put(make_record(0, partition=0))
        grouper.put(make_record(0, partition=1))

        assert list(grouper.records()) == ["topic"]
        assert grouper.record_count == 2

    def test_template_without_start_offset(self) -> None:
        grouper = _grouper("{{ topic }}/{{ partition }}")
        grouper.put(make_record(3))
        grouper.put(make_record(4))
        assert grouper.records() == {"topic/0": (make_record(3), make_record(4))}

    def test_key_and_value_fields(self) -> None:
        grouper = _grouper("{{ value.country }}/{{ key }}-{{ start_offset }}")
        record = make_record(7, key=b"user-1", value={"country": "fr"})

        assert grouper.put(record) == "fr/user-1-7"

    def test_null_key_renders_null(self) -> None:
        grouper = _grouper("{{ key }}/{{ start_offset }}")
        assert grouper.put(make_record(0, key=None)) == "null/0"

    def test_headers_variable(self) -> None:
        grouper = _grouper("{{ headers.source }}-{{ start_offset }}")
        record = make_record(1, headers=(Header("source", b"web"),))
        assert grouper.put(record) == "web-1"

    def test_missing_field_raises_grouping_error(self) -> None:
        grouper = _grouper("{{ value.country }}-{{ start_offset }}")
        record = make_record(0, value={"city": "Paris"})

        with pytest.raises(GroupingError) as exc_info:
            grouper.put(record)

        assert exc_info.value.record is record
        assert isinstance(exc_info.value.__cause__, TemplateError)
        assert grouper.records() == {}

    def test_non_utf8_key_raises_grouping_error(self) -> None:
        grouper = _grouper("{{ key }}-{{ start_offset }}")
        with pytest.raises(GroupingError, match="UTF-8"):
            grouper.put(make_record(0, key=b"\xff\xfe"))

    def test_failed_put_leaves_earlier_records(self) -> None:
        grouper = _grouper("{{ value.country }}-{{ start_offset }}")
        good = make_record(0, value={"country": "de"})
        grouper.put(good)

        with pytest.raises(GroupingError):
            grouper.put(make_record(1, value={}))

        assert grouper.records() == {"de-0": (good,)}

    def test_expression_error_raises_grouping_error(self) -> None:
        grouper = _grouper("{{ topic }}-{{ partition // value.n }}")
        record = make_record(0, value={"n": 0})

        with pytest.raises(GroupingError) as exc_info:
            grouper.put(record)

        assert exc_info.value.record is record
        assert isinstance(exc_info.value.__cause__, TemplateError)
        assert isinstance(exc_info.value.__cause__.__cause__, ZeroDivisionError)
        assert grouper.records() == {}


class TestTimestamp:
    """{{ timestamp }} from the wall clock or the record."""

    def test_wallclock(self) -> None:
        clock = MockClock(datetime(2024, 3, 9, 17, 30, tzinfo=UTC))
        grouper = _grouper("{{ timestamp | unit('yyyy') }}/{{ timestamp | unit('MM') }}/{{ start_offset }}", clock=clock)

        assert grouper.put(make_record(0)) == "2024/03/0"

    def test_wallclock_advances_between_records(self) -> None:
        clock = MockClock(datetime(2024, 1, 1, 23, 59, tzinfo=UTC))
        grouper = _grouper("{{ timestamp | unit('dd') }}-{{ partition }}", clock=clock)

        assert grouper.put(make_record(0)) == "01-0"
        clock.advance(120)
        assert grouper.put(make_record(1)) == "02-0"

    def test_timezone_applied(self) -> None:
        clock = MockClock(datetime(2024, 1, 1, 23, 0, tzinfo=UTC))
        grouper = _grouper("{{ timestamp | unit('HH') }}", clock=clock, timezone="Europe/Helsinki")
        assert grouper.put(make_record(0)) == "01"

    def test_event_time(self) -> None:
        grouper = _grouper("{{ timestamp | unit('yyyy') }}-{{ start_offset }}", timestamp_source=TimestampSource.EVENT)
        # 2021-05-04T00:00:00Z
        assert grouper.put(make_record(0, timestamp=1_620_086_400_000)) == "2021-0"

    def test_event_time_missing(self) -> None:
        grouper = _grouper("{{ timestamp | unit('yyyy') }}", timestamp_source=TimestampSource.EVENT)
        with pytest.raises(GroupingError, match="no timestamp"):
            grouper.put(make_record(0, timestamp=None))


class TestOverflow:
    """max_records_per_file with rollover and reject policies."""

    def test_rollover_starts_new_file_at_incoming_offset(self) -> None:
        grouper = _grouper(max_records_per_file=2)
        a, b, c = make_batch(3)

        keys = [grouper.put(r) for r in (a, b, c)]

        assert keys == ["topic-0-0000000000", "topic-0-0000000000", "topic-0-0000000002"]
        assert grouper.records() == {"topic-0-0000000000": (a, b), "topic-0-0000000002": (c,)}

    def test_rollover_repeats(self) -> None:
        grouper = _grouper(max_records_per_file=2)
        for record in make_batch(7):
            grouper.put(record)

        assert {key: len(group) for key, group in grouper.records().items()} == {
            "topic-0-0000000000": 2,
            "topic-0-0000000002": 2,
            "topic-0-0000000004": 2,
            "topic-0-0000000006": 1,
        }

    def test_rollover_requires_start_offset(self) -> None:
        with pytest.raises(TemplateError, match="start_offset"):
            _grouper("{{ topic }}-{{ partition }}", max_records_per_file=2)

    def test_reject_policy(self) -> None:
        grouper = _grouper("{{ topic }}", max_records_per_file=2, overflow_policy=OverflowPolicy.REJECT)
        a, b, c = make_batch(3)
        grouper.put(a)
        grouper.put(b)

        with pytest.raises(GroupingError, match="max_records_per_file=2") as exc_info:
            grouper.put(c)

        assert exc_info.value.record is c
        assert grouper.records() == {"topic": (a, b)}

    def test_rejected_record_does_not_become_stream_head(self) -> None:
        """A refused first record of a stream must not fix that stream's start_offset."""
        grouper = _grouper("{{ value.a }}{{ start_offset }}", max_records_per_file=1, overflow_policy=OverflowPolicy.REJECT)
        assert grouper.put(make_record(23, value={"a": "1"})) == "123"

        # Stream "12" starts at offset 3, which also names the full file "123"
        with pytest.raises(GroupingError, match="max_records_per_file=1"):
            grouper.put(make_record(3, value={"a": "12"}))

        assert grouper.put(make_record(7, value={"a": "12"})) == "127"

    def test_rollover_collision_raises(self) -> None:
        """Without partition in the key, a rolled-over file can collide with another partition's full file."""
        grouper = _grouper("{{ topic }}-{{ start_offset }}", max_records_per_file=1)
        assert grouper.put(make_record(5, partition=0)) == "topic-5"
        assert grouper.put(make_record(9, partition=0)) == "topic-9"
        assert grouper.put(make_record(3, partition=1)) == "topic-3"

        # partition 1 offset 9 rolls over onto partition 0's full topic-9
        with pytest.raises(GroupingError, match="collides"):
            grouper.put(make_record(9, partition=1))
        assert grouper.record_count == 3

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            _grouper(max_records_per_file=-1)


class TestRecordsAndClear:
    def test_records_is_read_only(self) -> None:
        grouper = _grouper()
        grouper.put(make_record(0))

        snapshot = grouper.records()
        with pytest.raises(TypeError):
            snapshot["x"] = ()  # type: ignore[index]

    def test_records_is_a_snapshot(self) -> None:
        grouper = _grouper()
        grouper.put(make_record(0))
        snapshot = grouper.records()

        grouper.put(make_record(1))

        assert len(snapshot["topic-0-0000000000"]) == 1
        assert len(grouper.records()["topic-0-0000000000"]) == 2

    def test_records_does_not_drain(self) -> None:
        grouper = _grouper()
        grouper.put(make_record(0))
        assert grouper.records() == grouper.records()

    def test_clear_empties_and_restarts_streams(self) -> None:
        grouper = _grouper()
        for record in make_batch(2):
            grouper.put(record)

        grouper.clear()

        assert grouper.records() == {}
        assert grouper.put(make_record(2)) == "topic-0-0000000002"

    def test_clear_twice(self) -> None:
        grouper = _grouper()
        grouper.clear()
        grouper.clear()
        assert grouper.records() == {}

    def test_phase_and_counts(self) -> None:
        grouper = _grouper()
        assert grouper.phase is GrouperPhase.DRAINED
        assert len(grouper) == 0

        grouper.put(make_record(0, partition=0))
        grouper.put(make_record(0, partition=1))
        grouper.put(make_record(1, partition=1))

        assert grouper.phase is GrouperPhase.ACCUMULATING
        assert len(grouper) == 2
        assert grouper.record_count == 3

        grouper.clear()
        assert grouper.phase is GrouperPhase.DRAINED


class TestConcurrency:
    def test_concurrent_puts_lose_nothing(self) -> None:
        grouper = _grouper()
        threads = [
            threading.Thread(target=lambda p=partition: [grouper.put(r) for r in make_batch(200, partition=p)])
            for partition in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        groups = grouper.records()
        assert grouper.record_count == 800
        for partition in range(4):
            offsets = [r.offset for r in groups[f"topic-{partition}-0000000000"]]
            assert offsets == list(range(200))
