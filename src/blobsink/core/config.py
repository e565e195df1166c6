# src/blobsink/core/config.py
"""
Configuration schema and loading for blobsink.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction and never re-read while
a task is running.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from blobsink.contracts.enums import (
    CompressionType,
    FormatType,
    OutputField,
    OverflowPolicy,
    TimestampSource,
    ValueEncoding,
)
from blobsink.contracts.errors import BlobSinkError, TemplateError
from blobsink.core.templates import FilenameTemplate, default_filename_template
from blobsink.plugins.formats import FormatOptions, create_encoder


class ConfigError(BlobSinkError, ValueError):
    """Raised when sink configuration is invalid."""

    pass


class SinkConfig(BaseModel):
    """What to write and how to name it.

    Example YAML:
        sink:
          bucket_name: events
          prefix: raw/
          filename_template: "{{ topic }}/{{ partition }}/{{ start_offset | padded }}.jsonl.gz"
          format: jsonl
          compression: gzip
          output_fields: [key, value, offset, timestamp]
          max_records_per_file: 10000
    """

    model_config = {"frozen": True, "extra": "forbid"}

    filename_template: str | None = Field(
        default=None,
        description="Jinja2 file name template (default: topic-partition-start_offset plus compression extension)",
    )
    bucket_name: str = Field(min_length=1, description="Target bucket or container")
    prefix: str = Field(default="", description="Prepended verbatim to every file key")
    format: FormatType = Field(default=FormatType.CSV, description="Output format")
    compression: CompressionType = Field(default=CompressionType.NONE, description="Byte stream compression")
    output_fields: tuple[OutputField, ...] = Field(
        default=(OutputField.VALUE,),
        description="Record fields written to each blob, in column order",
    )
    value_encoding: ValueEncoding = Field(default=ValueEncoding.BASE64, description="Text encoding of raw values")
    envelope_enabled: bool = Field(default=True, description="Wrap each record in a field mapping")
    external_properties: dict[str, str] = Field(
        default_factory=dict,
        description="Format options such as csv.delimiter or parquet.row.group.size",
    )
    max_records_per_file: int = Field(default=0, ge=0, description="Group size limit (0 = unlimited)")
    overflow_policy: OverflowPolicy = Field(default=OverflowPolicy.ROLLOVER, description="What happens to a full group")
    timestamp_source: TimestampSource = Field(default=TimestampSource.WALLCLOCK, description="Source of {{ timestamp }}")
    timestamp_timezone: str = Field(default="UTC", description="IANA timezone applied to {{ timestamp }}")

    @field_validator("filename_template")
    @classmethod
    def validate_filename_template(cls, v: str | None) -> str | None:
        """Compile the template now so typos fail at config time."""
        if v is None:
            return v
        try:
            FilenameTemplate(v)
        except TemplateError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("output_fields")
    @classmethod
    def validate_output_fields(cls, v: tuple[OutputField, ...]) -> tuple[OutputField, ...]:
        if not v:
            raise ValueError("At least one output field is required")
        if len(set(v)) != len(v):
            raise ValueError(f"Output fields must be unique, got {[f.value for f in v]}")
        return v

    @field_validator("timestamp_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v!r}") from e
        return v

    @model_validator(mode="after")
    def validate_combinations(self) -> Self:
        if not self.envelope_enabled and len(self.output_fields) != 1:
            raise ValueError(
                f"envelope_enabled=false requires exactly one output field, got {[f.value for f in self.output_fields]}"
            )
        if self.max_records_per_file > 0 and self.overflow_policy is OverflowPolicy.ROLLOVER:
            if not self.template().uses("start_offset"):
                raise ValueError("filename_template must reference start_offset when max_records_per_file rolls over to new files")
        # Format options (csv.delimiter, parquet.*) fail here instead of at the first flush
        create_encoder(self.format, self.format_options())
        return self

    @property
    def effective_template(self) -> str:
        """The configured template, or the default for this format and compression."""
        if self.filename_template is not None:
            return self.filename_template
        # Parquet compresses internally; its blobs carry no outer extension
        extension = "" if self.format is FormatType.PARQUET else self.compression.extension
        return default_filename_template(extension)

    def template(self) -> FilenameTemplate:
        return FilenameTemplate(self.effective_template)

    def format_options(self) -> FormatOptions:
        return FormatOptions(
            output_fields=self.output_fields,
            envelope_enabled=self.envelope_enabled,
            compression=self.compression,
            external_properties=self.external_properties,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SinkConfig":
        """Validate a raw mapping.

        Raises:
            ConfigError: With the pydantic message when validation fails.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid sink configuration: {e}") from e


class RetrySettings(BaseModel):
    """Retry behavior for remote storage commits.

    Defaults follow the upstream connector: 1s initial delay doubling up to
    32s, at most 6 attempts, and 50s overall.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    max_attempts: int = Field(default=6, gt=0, description="Total attempts (first try included)")
    initial_delay_seconds: float = Field(default=1.0, gt=0, description="Delay before the first retry")
    max_delay_seconds: float = Field(default=32.0, gt=0, description="Cap on a single backoff delay")
    delay_multiplier: float = Field(default=2.0, ge=1.0, description="Exponential backoff base")
    jitter_seconds: float = Field(default=1.0, ge=0, description="Random jitter added to each delay")
    total_timeout_seconds: float | None = Field(default=50.0, gt=0, description="Budget across all attempts")

    @model_validator(mode="after")
    def validate_delays(self) -> Self:
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        return self


class StorageSettings(BaseModel):
    """Where blobs go.

    Example YAML (local directory):
        storage:
          kind: local
          root: ./out

    Example YAML (Azure):
        storage:
          kind: azure
          connection_string: "${AZURE_STORAGE_CONNECTION_STRING}"
          retry:
            max_attempts: 3
    """

    model_config = {"frozen": True, "extra": "forbid"}

    kind: Literal["local", "azure"] = "local"
    root: Path | None = Field(default=None, description="Root directory for kind=local")

    # Azure auth, validated by AzureAuthConfig when kind=azure
    connection_string: str | None = None
    sas_token: str | None = None
    use_managed_identity: bool = False
    account_url: str | None = None
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    overwrite: bool = Field(default=True, description="Replace existing blobs with the same name")

    retry: RetrySettings = Field(default_factory=RetrySettings)

    @model_validator(mode="after")
    def validate_kind(self) -> Self:
        if self.kind == "local" and self.root is None:
            raise ValueError("storage.root is required for kind=local")
        return self

    def azure_auth_fields(self) -> dict[str, Any]:
        return {
            "connection_string": self.connection_string,
            "sas_token": self.sas_token,
            "use_managed_identity": self.use_managed_identity,
            "account_url": self.account_url,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }


class FlushSettings(BaseModel):
    """When the CLI runner flushes."""

    model_config = {"frozen": True, "extra": "forbid"}

    every_records: int = Field(default=1000, gt=0, description="Flush after this many records are put")


class LoggingSettings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False


class BlobSinkSettings(BaseModel):
    """Top-level settings file."""

    model_config = {"frozen": True, "extra": "forbid"}

    sink: SinkConfig
    storage: StorageSettings
    flush: FlushSettings = Field(default_factory=FlushSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values.

    Unknown variables without a default are left as written so validation
    reports them instead of silently writing an empty string.
    """
    if isinstance(value, str):

        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            return default if default is not None else match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def load_settings(config_path: Path) -> BlobSinkSettings:
    """Load settings from a YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (BLOBSINK_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: BLOBSINK_SINK__BUCKET_NAME for nested keys.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigError: If the configuration fails validation
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="BLOBSINK",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    # Dynaconf returns uppercase top-level keys; convert to lowercase for Pydantic.
    # Nested keys (external_properties like csv.delimiter) are left alone.
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    try:
        return BlobSinkSettings.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {config_path}: {e}") from e
