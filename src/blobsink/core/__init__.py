"""Core infrastructure: configuration, logging and file name templates."""

from blobsink.core.config import BlobSinkSettings, ConfigError, SinkConfig, load_settings
from blobsink.core.templates import FilenameTemplate, evaluate

__all__ = [
    "BlobSinkSettings",
    "ConfigError",
    "FilenameTemplate",
    "SinkConfig",
    "evaluate",
    "load_settings",
]
