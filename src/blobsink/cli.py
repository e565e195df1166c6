# src/blobsink/cli.py
"""blobsink Command Line Interface.

Entry point for the blobsink CLI tool.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import typer
import yaml
import zstandard
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError

from blobsink import __version__
from blobsink.contracts import BlobSinkError, CompressionType, FlushError, FormatType, GroupingError, OutputField, Record
from blobsink.core.config import BlobSinkSettings, ConfigError, load_settings

__all__ = ["app"]

app = typer.Typer(
    name="blobsink",
    help="blobsink: group partitioned log records into object storage blobs.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"blobsink version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose/debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs."),
) -> None:
    """blobsink: group partitioned log records into object storage blobs."""
    from blobsink.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _format_error(title: str, message: str, hint: str | None = None) -> None:
    """Display a formatted error panel on stderr."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    content = Text()
    content.append(message, style="white")
    if hint:
        content.append("\n\n")
        content.append("Hint: ", style="yellow bold")
        content.append(hint, style="yellow")

    Console(stderr=True).print(Panel(content, title=f"[red bold]{title}[/]", border_style="red", padding=(0, 1)))


def _load_or_exit(settings: Path) -> BlobSinkSettings:
    try:
        return load_settings(settings.expanduser())
    except FileNotFoundError:
        _format_error("Settings not found", f"Settings file not found: {settings}")
        raise typer.Exit(1) from None
    except (YamlParserError, YamlScannerError) as e:
        _format_error("YAML syntax error", f"{settings}: {e.problem}")
        raise typer.Exit(1) from None
    except ConfigError as e:
        _format_error("Configuration error", str(e), hint="Run 'blobsink validate' after fixing the settings file.")
        raise typer.Exit(1) from None


_SECRET_FIELDS = frozenset({"connection_string", "sas_token", "client_secret"})


def _resolved_settings(config: BlobSinkSettings) -> dict[str, Any]:
    """Settings with defaults filled in and credentials masked."""
    resolved = config.model_dump(mode="json")
    resolved["sink"]["filename_template"] = config.sink.effective_template
    for name in _SECRET_FIELDS:
        if resolved["storage"].get(name):
            resolved["storage"][name] = "***"
    return resolved


def _read_records(path: Path) -> Iterator[Record]:
    """Yield records from a JSON Lines file, one record per non-blank line."""
    with path.open(encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                yield Record.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: invalid record: {e}") from e


@app.command()
def run(
    settings: Path = typer.Option(..., "--settings", "-s", help="Path to settings YAML file."),
    input_path: Path = typer.Option(..., "--input", "-i", help="Records as JSON Lines, one record per line."),
) -> None:
    """Group records from a file and write them as blobs."""
    from blobsink.engine.task import SinkTask
    from blobsink.plugins.storage import create_provider

    config = _load_or_exit(settings)
    if not input_path.exists():
        _format_error("Input not found", f"Input file not found: {input_path}")
        raise typer.Exit(1)

    try:
        provider = create_provider(config.storage)
    except (ValueError, ImportError) as e:
        _format_error("Storage error", str(e))
        raise typer.Exit(1) from None

    task = SinkTask(config.sink, provider)
    task.start()
    every = config.flush.every_records
    pending = 0
    written = []
    try:
        for record in _read_records(input_path):
            task.put([record])
            pending += 1
            if pending >= every:
                written.extend(task.flush().blobs)
                pending = 0
        written.extend(task.flush().blobs)
    except GroupingError as e:
        _format_error("Grouping error", str(e), hint="Check the file name template against the record fields.")
        raise typer.Exit(1) from None
    except FlushError as e:
        _format_error("Flush failed", str(e), hint="No groups were cleared; rerunning rewrites every pending blob.")
        raise typer.Exit(1) from None
    except ValueError as e:
        _format_error("Invalid input", str(e))
        raise typer.Exit(1) from None
    finally:
        task.stop()

    for blob in written:
        typer.echo(f"{blob.uri}\t{blob.record_count} records\t{blob.size_bytes} bytes\t{blob.content_hash}")
    typer.echo(f"Wrote {sum(b.record_count for b in written)} records to {len(written)} blobs.")


@app.command()
def validate(
    settings: Path = typer.Option(..., "--settings", "-s", help="Path to settings YAML file."),
    show: bool = typer.Option(False, "--show", help="Print the resolved settings (secrets masked) as YAML."),
) -> None:
    """Validate settings and show what the file name template uses."""
    config = _load_or_exit(settings)
    if show:
        typer.echo(yaml.safe_dump(_resolved_settings(config), sort_keys=False).rstrip())
    sink = config.sink
    template = sink.template()

    typer.echo("Configuration valid.")
    typer.echo(f"  Template: {template.source}")
    typer.echo(f"  Variables: {', '.join(sorted(template.variables)) or '(none)'}")
    if template.record_fields:
        typer.echo(f"  Record fields: {', '.join(sorted(template.record_fields))}")
    typer.echo(f"  Output: {sink.format} / {sink.compression}, fields: {', '.join(f.value for f in sink.output_fields)}")
    typer.echo(f"  Storage: {config.storage.kind}")


@app.command()
def inspect(
    blob: Path = typer.Argument(..., help="Blob file to decode."),
    format_type: FormatType = typer.Option(FormatType.CSV, "--format", "-f", help="Blob format."),
    compression: CompressionType = typer.Option(CompressionType.NONE, "--compression", "-c", help="Blob compression."),
    no_envelope: bool = typer.Option(False, "--no-envelope", help="Rows are bare cells, not field mappings."),
    fields: list[OutputField] = typer.Option(
        [OutputField.VALUE],
        "--field",
        help="Output field, in column order (repeat for several).",
    ),
) -> None:
    """Decode a blob and print one JSON row per line."""
    from blobsink.engine.pipeline import read_blob

    if not blob.exists():
        _format_error("Blob not found", f"Blob file not found: {blob}")
        raise typer.Exit(1)

    try:
        rows = read_blob(
            blob.read_bytes(),
            format_type=format_type,
            compression=compression,
            envelope_enabled=not no_envelope,
            output_fields=[OutputField(f) for f in fields],
        )
    except (BlobSinkError, OSError, ValueError, EOFError, zstandard.ZstdError) as e:
        # gzip.BadGzipFile is an OSError; pyarrow errors subclass ValueError
        _format_error("Cannot decode blob", str(e), hint="Check --format, --compression and --field against the sink settings.")
        raise typer.Exit(1) from None

    for row in rows:
        typer.echo(json.dumps(row, ensure_ascii=False))
