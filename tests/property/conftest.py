# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Strategy Categories:
- Record identity (topics, partitions, offsets)
- Raw payloads (bytes values and headers)
- Structured (JSON-compatible) keys and values
- Records for every format's round trip

Usage:
    from tests.property.conftest import records, topics

    @given(batch=st.lists(records()))
    def test_pipeline_keeps_order(batch: list[Record]) -> None:
        ...
"""

# =============================================================================
# Hypothesis Settings
# =============================================================================
#
# For standardized @settings decorators, import from tests.property.settings:
#   from tests.property.settings import STANDARD_SETTINGS, DETERMINISM_SETTINGS
#
# Tiers: DETERMINISM (500), STATE_MACHINE (200), STANDARD (100), SLOW (50), QUICK (20)
# =============================================================================

from __future__ import annotations

import string

from hypothesis import strategies as st

from blobsink.contracts import Header, Record

# Topic names as the broker allows them: letters, digits, '.', '_' and '-'
topics = st.text(alphabet=string.ascii_letters + string.digits + "._-", min_size=1, max_size=20)

partitions = st.integers(min_value=0, max_value=1000)

offsets = st.integers(min_value=0, max_value=2**63 - 1)

# Event time in epoch milliseconds (1970 .. 2100)
timestamps = st.integers(min_value=0, max_value=4_102_444_800_000)

payloads = st.binary(max_size=64)

# Header names that no CSV cell separator can split
identifiers = st.text(alphabet=string.ascii_letters + string.digits + "_-.", min_size=1, max_size=12)

# Free text keys, including "" and text that starts with the CSV/Parquet tag
key_texts = st.text(alphabet=st.characters(blacklist_categories=("Cs",), blacklist_characters="\r\x00"), max_size=12) | st.just("~")

json_scalars = st.one_of(st.booleans(), st.integers(min_value=-(2**53), max_value=2**53), st.text(max_size=8))

# Structured record keys and values, as a JSON converter would deliver them.
# Bare strings are text cells, covered by key_texts and payloads.
structured = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=3) | st.dictionaries(st.text(max_size=5), children, max_size=3),
    max_leaves=6,
).filter(lambda v: not isinstance(v, str))

headers = st.lists(
    st.builds(Header, key=identifiers, value=st.one_of(st.none(), payloads)),
    max_size=3,
).map(tuple)


@st.composite
def records(
    draw: st.DrawFn, *, topic: str | None = None, partition: int | None = None, raw_only: bool = False
) -> Record:
    """Records with raw, empty, null and (unless raw_only) structured keys and values."""
    if raw_only:
        key = draw(st.one_of(st.none(), key_texts))
        value = draw(st.one_of(st.none(), payloads))
    else:
        key = draw(st.one_of(st.none(), key_texts, structured))
        value = draw(st.one_of(st.none(), payloads, structured))
    return Record(
        topic=topic if topic is not None else draw(topics),
        partition=partition if partition is not None else draw(partitions),
        offset=draw(offsets),
        key=key,
        value=value,
        timestamp=draw(st.one_of(st.none(), timestamps)),
        headers=draw(headers),
    )
