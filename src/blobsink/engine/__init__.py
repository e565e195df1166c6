"""Grouping, output pipeline and flush coordination.

Import patterns:
    from blobsink.engine import SinkTask, RecordGrouper, build_pipeline
"""

from blobsink.engine.clock import Clock, MockClock, SystemClock
from blobsink.engine.grouper import RecordGrouper
from blobsink.engine.pipeline import OutputPipeline, PipelineResult, build_pipeline, read_blob
from blobsink.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager
from blobsink.engine.task import SinkTask

__all__ = [
    "Clock",
    "MaxRetriesExceeded",
    "MockClock",
    "OutputPipeline",
    "PipelineResult",
    "RecordGrouper",
    "RetryConfig",
    "RetryManager",
    "SinkTask",
    "SystemClock",
    "build_pipeline",
    "read_blob",
]
