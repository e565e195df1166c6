# tests/property/core/test_filename_template_properties.py
"""Property-based tests for file name template rendering.

File keys decide which blob a record lands in, so rendering must be pure:

Determinism Properties:
- The same template and variables always render the same key
- evaluate() on a source string matches FilenameTemplate.render()

Rendering Properties:
- The default template is topic-partition-start_offset
- padded zero-pads to the requested width and keeps the value
- Unit filters agree with the timestamp they format
"""

from __future__ import annotations

from datetime import UTC, datetime

from hypothesis import given
from hypothesis import strategies as st

from blobsink.core.templates import FilenameTemplate, default_filename_template, evaluate
from tests.property.conftest import offsets, partitions, topics
from tests.property.settings import DETERMINISM_SETTINGS, STANDARD_SETTINGS

datetimes = st.datetimes(min_value=datetime(1970, 1, 1), max_value=datetime(2100, 1, 1)).map(lambda d: d.replace(tzinfo=UTC))


class TestTemplateDeterminism:
    @given(topic=topics, partition=partitions, start_offset=offsets)
    @DETERMINISM_SETTINGS
    def test_render_is_pure(self, topic: str, partition: int, start_offset: int) -> None:
        """Property: rendering twice, or through evaluate(), gives the same key."""
        source = "{{ topic }}/{{ partition }}/{{ start_offset | padded }}.jsonl"
        variables = {"topic": topic, "partition": partition, "start_offset": start_offset}
        template = FilenameTemplate(source)

        first = template.render(variables)
        assert template.render(dict(variables)) == first
        assert evaluate(source, variables) == first

    @given(topic=topics, partition=partitions, start_offset=offsets)
    @DETERMINISM_SETTINGS
    def test_default_template(self, topic: str, partition: int, start_offset: int) -> None:
        key = evaluate(default_filename_template(), {"topic": topic, "partition": partition, "start_offset": start_offset})
        assert key == f"{topic}-{partition}-{start_offset}"


class TestTemplateFilters:
    @given(value=st.integers(min_value=0, max_value=10**12), width=st.integers(min_value=1, max_value=30))
    @STANDARD_SETTINGS
    def test_padded(self, value: int, width: int) -> None:
        """Property: padded keeps the number and pads to at least width digits."""
        rendered = evaluate(f"{{{{ start_offset | padded({width}) }}}}", {"start_offset": value})

        assert int(rendered) == value
        assert len(rendered) == max(width, len(str(value)))

    @given(timestamp=datetimes)
    @STANDARD_SETTINGS
    def test_units_match_timestamp(self, timestamp: datetime) -> None:
        source = "{{ timestamp | unit('yyyy') }}/{{ timestamp | unit('MM') }}/{{ timestamp | unit('dd') }}/{{ timestamp | unit('HH') }}"

        rendered = evaluate(source, {"timestamp": timestamp})

        assert rendered == f"{timestamp.year:04d}/{timestamp.month:02d}/{timestamp.day:02d}/{timestamp.hour:02d}"
