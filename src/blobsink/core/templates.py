# src/blobsink/core/templates.py
"""File name template engine.

File keys are produced by rendering a Jinja2 template against the grouping
variables of a record:

    {{ topic }}-{{ partition }}-{{ start_offset | padded }}
    {{ topic }}/{{ timestamp | unit('yyyy') }}/{{ timestamp | unit('MM') }}/{{ start_offset }}.jsonl
    by-country/{{ value.country }}/{{ partition }}-{{ start_offset }}

Templates render in a SandboxedEnvironment with StrictUndefined, so a typo
like {{ topik }} or a missing attribute fails loudly instead of silently
rendering an empty path segment.

Supported variables:
    topic, partition, start_offset, timestamp, key, value, headers

Filters:
    padded(width=20)  zero-pad an integer
    unit(pattern)     format a timestamp with yyyy | MM | dd | HH

Rendering is pure: the same template and variables always yield the same key.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from functools import lru_cache
from typing import Any

import jinja2
from jinja2 import StrictUndefined, meta
from jinja2.nodes import Call, Const, Filter, Getattr, Getitem, Name, Node
from jinja2.sandbox import SandboxedEnvironment

from blobsink.contracts.errors import TemplateError

__all__ = [
    "SUPPORTED_VARIABLES",
    "TIMESTAMP_UNITS",
    "FilenameTemplate",
    "default_filename_template",
    "evaluate",
]

SUPPORTED_VARIABLES: frozenset[str] = frozenset({"topic", "partition", "start_offset", "timestamp", "key", "value", "headers"})

# Unit tokens of the original connector's {{timestamp:unit=...}} syntax.
TIMESTAMP_UNITS: dict[str, str] = {
    "yyyy": "%Y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
}

# Namespaces whose attribute accesses are reported by record_fields.
_RECORD_NAMESPACES: tuple[str, ...] = ("key", "value", "headers")


def _padded(value: int, width: int = 20) -> str:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"padded expects an integer, got {type(value).__name__}")
    return f"{value:0{width}d}"


def _unit(value: datetime, pattern: str) -> str:
    if not isinstance(value, datetime):
        raise TypeError(f"unit expects a timestamp, got {type(value).__name__}")
    if pattern not in TIMESTAMP_UNITS:
        raise ValueError(f"Unsupported timestamp unit {pattern!r}. Supported: {', '.join(TIMESTAMP_UNITS)}")
    return value.strftime(TIMESTAMP_UNITS[pattern])


def _build_environment() -> SandboxedEnvironment:
    env = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)
    env.filters["padded"] = _padded
    env.filters["unit"] = _unit
    return env


_ENV = _build_environment()


def default_filename_template(extension: str = "") -> str:
    """Default template: one file per topic-partition starting at start_offset."""
    return "{{ topic }}-{{ partition }}-{{ start_offset }}" + extension


class FilenameTemplate:
    """A compiled, validated file name template.

    Validation happens at construction so configuration mistakes surface
    before any record is grouped:
    - syntax errors and unknown filters
    - references to variables outside SUPPORTED_VARIABLES
    - constant unit() patterns that are not yyyy/MM/dd/HH

    Example:
        template = FilenameTemplate("{{ topic }}-{{ partition }}-{{ start_offset | padded(10) }}")
        template.render({"topic": "orders", "partition": 0, "start_offset": 3})
        # -> "orders-0-0000000003"
    """

    def __init__(self, source: str) -> None:
        if not source or not source.strip():
            raise TemplateError("File name template cannot be empty")

        try:
            ast = _ENV.parse(source)
            self._compiled = _ENV.from_string(source)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateError(f"Invalid file name template {source!r}: {e}") from e

        referenced = frozenset(meta.find_undeclared_variables(ast))
        unsupported = referenced - SUPPORTED_VARIABLES
        if unsupported:
            raise TemplateError(
                f"File name template {source!r} references unsupported variable(s): "
                f"{', '.join(sorted(unsupported))}. Supported: {', '.join(sorted(SUPPORTED_VARIABLES))}"
            )

        self._check_unit_patterns(ast, source)

        self._source = source
        self._variables = referenced
        fields: set[str] = set()
        for namespace in _RECORD_NAMESPACES:
            fields.update(f"{namespace}.{name}" for name in _extract_fields(ast, namespace))
        self._record_fields = frozenset(fields)

    @staticmethod
    def _check_unit_patterns(ast: Node, source: str) -> None:
        for node in ast.find_all(Filter):
            if node.name != "unit" or not node.args:
                continue
            arg = node.args[0]
            if isinstance(arg, Const) and arg.value not in TIMESTAMP_UNITS:
                raise TemplateError(f"File name template {source!r} uses unsupported timestamp unit {arg.value!r}. Supported: {', '.join(TIMESTAMP_UNITS)}")

    @property
    def source(self) -> str:
        return self._source

    @property
    def variables(self) -> frozenset[str]:
        """Grouping variables the template references."""
        return self._variables

    @property
    def record_fields(self) -> frozenset[str]:
        """Fields read from key/value/headers, e.g. frozenset({"value.country"})."""
        return self._record_fields

    def uses(self, variable: str) -> bool:
        return variable in self._variables

    def render(self, variables: Mapping[str, Any]) -> str:
        """Render the template into a file key.

        Raises:
            TemplateError: If rendering fails (undefined variable or attribute,
                sandbox violation, any error raised by an expression) or yields
                an empty key.
        """
        try:
            rendered = self._compiled.render(variables)
        except Exception as e:
            # jinja2 errors plus whatever an expression raises (padded on a non-int, division by zero)
            raise TemplateError(f"Cannot render file name template {self._source!r}: {e}") from e

        if not rendered:
            raise TemplateError(f"File name template {self._source!r} rendered an empty file name")
        return rendered

    def __repr__(self) -> str:
        return f"FilenameTemplate({self._source!r})"


@lru_cache(maxsize=128)
def _compile(source: str) -> FilenameTemplate:
    return FilenameTemplate(source)


def evaluate(template: str | FilenameTemplate, variables: Mapping[str, Any]) -> str:
    """Evaluate a file name template against grouping variables.

    Args:
        template: Template source or an already compiled FilenameTemplate
        variables: Grouping variables (see SUPPORTED_VARIABLES)

    Returns:
        The file key.

    Raises:
        TemplateError: If the template is invalid or cannot be rendered.
    """
    compiled = template if isinstance(template, FilenameTemplate) else _compile(template)
    return compiled.render(variables)


def _extract_fields(ast: Node, namespace: str) -> frozenset[str]:
    """Extract field names accessed via namespace.field or namespace["field"].

    Examples (namespace="value"):
        {{ value.country }}           -> {"country"}
        {{ value["region-code"] }}    -> {"region-code"}
        {{ value.get("tier") }}       -> {"tier"}
    """
    fields: set[str] = set()
    _walk_ast(ast, namespace, fields)
    return frozenset(fields)


def _walk_ast(node: Node, namespace: str, fields: set[str]) -> None:
    # namespace.get("field")
    if (
        isinstance(node, Call)
        and isinstance(node.node, Getattr)
        and isinstance(node.node.node, Name)
        and node.node.node.name == namespace
        and node.node.attr == "get"
        and len(node.args) >= 1
        and isinstance(node.args[0], Const)
        and isinstance(node.args[0].value, str)
    ):
        fields.add(node.args[0].value)

    # namespace.field (but not the mapping method namespace.get itself)
    if isinstance(node, Getattr) and isinstance(node.node, Name) and node.node.name == namespace and node.attr != "get":
        fields.add(node.attr)

    # namespace["field"]
    if (
        isinstance(node, Getitem)
        and isinstance(node.node, Name)
        and node.node.name == namespace
        and isinstance(node.arg, Const)
        and isinstance(node.arg.value, str)
    ):
        fields.add(node.arg.value)

    for child in node.iter_child_nodes():
        _walk_ast(child, namespace, fields)
