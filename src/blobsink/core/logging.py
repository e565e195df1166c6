"""Structured logging for blobsink.

Grouping and flush activity is logged as key/value events (file_key,
record_count, blob) through structlog. Standard library loggers, including
the Azure SDK's, are routed through the same processor chain by
ProcessorFormatter so every line has one format.

Logs go to stderr by default. stdout belongs to command output, e.g. the
rows printed by `blobsink inspect`.

Events logged during a flush carry the task's bucket and flush number,
bound with structlog.contextvars by SinkTask.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

# Per-request HTTP detail at DEBUG level; held at WARNING or above.
_NOISY_LOGGERS: tuple[str, ...] = (
    "azure",
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "urllib3",
    "urllib3.connectionpool",
)

_PACKAGE_PREFIX = "blobsink."


def _component(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Shorten blobsink logger names: blobsink.engine.grouper -> engine.grouper."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith(_PACKAGE_PREFIX):
        event_dict["logger"] = name[len(_PACKAGE_PREFIX) :]
    return event_dict


def _drop_formatter_bookkeeping(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # Always present when ProcessorFormatter formats a record
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _renderer(json_output: bool) -> list[Any]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=False)]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Safe to call more than once; each call replaces the root handler.

    Args:
        json_output: One JSON object per line instead of console text.
        level: DEBUG, INFO, WARNING or ERROR.
        stream: Destination (default sys.stderr at call time).
    """
    log_level = logging.getLevelNamesMapping()[level.upper()]

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        _component,
    ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[_drop_formatter_bookkeeping, *_renderer(json_output)],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound logger for a module (pass __name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
