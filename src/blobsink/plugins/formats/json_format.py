"""JSON array and JSON Lines format stages.

JSON array output keeps one element per line so large blobs stay greppable:

    [
    {"value": "YQ==", "offset": 0},
    {"value": "Yg==", "offset": 1}
    ]

JSONL output is one document per line with a trailing newline.
"""

import json
from typing import Any

from blobsink.plugins.envelope import Row
from blobsink.plugins.formats.base import FormatOptions


def _dumps(row: Row) -> bytes:
    # allow_nan=False: NaN/Infinity are not JSON and would poison readers
    return json.dumps(row, ensure_ascii=False, allow_nan=False).encode("utf-8")


class JSONEncoder:
    """Writes records as one JSON array."""

    def __init__(self, options: FormatOptions) -> None:
        self._options = options
        self._count = 0

    def begin(self) -> bytes:
        return b"["

    def encode(self, row: Row) -> bytes:
        separator = b"\n" if self._count == 0 else b",\n"
        self._count += 1
        return separator + _dumps(row)

    def finish(self) -> bytes:
        return b"\n]\n" if self._count else b"]\n"


class JSONLEncoder:
    """Writes records as newline-delimited JSON."""

    def __init__(self, options: FormatOptions) -> None:
        self._options = options

    def begin(self) -> bytes:
        return b""

    def encode(self, row: Row) -> bytes:
        return _dumps(row) + b"\n"

    def finish(self) -> bytes:
        return b""


def decode_json(data: bytes, options: FormatOptions) -> list[Any]:
    rows = json.loads(data.decode("utf-8"))
    if not isinstance(rows, list):
        raise ValueError(f"JSON blob must hold an array, got {type(rows).__name__}")
    return rows


def decode_jsonl(data: bytes, options: FormatOptions) -> list[Any]:
    # Only "\n" ends a document; str.splitlines would also split on U+2028 inside strings
    return [json.loads(line) for line in data.decode("utf-8").split("\n") if line.strip()]
