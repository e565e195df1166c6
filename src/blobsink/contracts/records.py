"""Record types delivered by the partitioned log."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

# bytes/str for raw payloads, JSON-compatible values for structured payloads.
type RecordValue = bytes | str | int | float | bool | dict[str, Any] | list[Any] | None


class TopicPartition(NamedTuple):
    """A (topic, partition) pair."""

    topic: str
    partition: int


@dataclass(frozen=True, slots=True)
class Header:
    """One record header. Header names may repeat within a record."""

    key: str
    value: bytes | str | None


@dataclass(frozen=True, slots=True)
class Record:
    """An immutable record read from one partition of a topic.

    Offsets are monotonic within a partition; nothing is guaranteed across
    partitions.

    Attributes:
        topic: Topic the record was read from
        partition: Partition number within the topic
        offset: Position of the record in its partition
        key: Record key (raw bytes/str, structured value, or None)
        value: Record value (raw bytes/str, structured value, or None)
        timestamp: Event time in epoch milliseconds, if the log carries one
        headers: Record headers in delivery order
    """

    topic: str
    partition: int
    offset: int
    key: RecordValue = None
    value: RecordValue = None
    timestamp: int | None = None
    headers: tuple[Header, ...] = ()

    def __post_init__(self) -> None:
        if self.partition < 0:
            raise ValueError(f"partition must be >= 0, got {self.partition}")
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")

    @property
    def topic_partition(self) -> TopicPartition:
        return TopicPartition(self.topic, self.partition)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Record:
        """Build a record from its JSON form.

        Expected shape (only topic, partition and offset are required):

            {"topic": "orders", "partition": 0, "offset": 42,
             "timestamp": 1700000000000, "key": "k1", "value": {"id": 1},
             "headers": [{"key": "source", "value": "web"}]}

        Raises:
            KeyError: If a required field is missing.
            ValueError: If partition or offset is negative.
        """
        headers = tuple(Header(key=h["key"], value=h.get("value")) for h in data.get("headers") or ())
        return cls(
            topic=data["topic"],
            partition=int(data["partition"]),
            offset=int(data["offset"]),
            key=data.get("key"),
            value=data.get("value"),
            timestamp=data.get("timestamp"),
            headers=headers,
        )
