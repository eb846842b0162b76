from __future__ import annotations

import logging
import sys
from pathlib import Path
from urllib.parse import urlparse

import typer
from botocore.exceptions import BotoCoreError
from rich.console import Console

from . import __version__
from .backend.dynamodb import DEFAULT_ENDPOINT, DynamoDbBackend, DynamoDbConfig
from .ui.app import run_explorer
from .ui.dispatch import editor_command

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _can_launch_interactive_ui(console: Console) -> bool:
    return console.is_terminal and sys.stdin.isatty() and sys.stdout.isatty()


def _validate_endpoint(value: str) -> str:
    endpoint = value.strip()
    parsed = urlparse(endpoint)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise typer.BadParameter(f"Invalid endpoint URL: {value!r}")
    return endpoint


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"ddb-explorer {__version__}")
        raise typer.Exit(0)


def _configure_logging(log_file: Path | None) -> None:
    if log_file is None:
        # The terminal belongs to the UI; drop records instead of printing them.
        logging.getLogger().addHandler(logging.NullHandler())
        return
    logging.basicConfig(
        filename=str(log_file),
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # botocore is chatty at DEBUG.
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@app.command()
def main(
    endpoint: str = typer.Option(  # noqa: B008
        DEFAULT_ENDPOINT,
        "--endpoint",
        "-e",
        envvar="DDB_ENDPOINT",
        callback=_validate_endpoint,
        help="DynamoDB endpoint URL.",
    ),
    table: str = typer.Option(  # noqa: B008
        "",
        "--table",
        "-t",
        help="Table to open on startup (falls back to the first table).",
    ),
    region: str | None = typer.Option(  # noqa: B008
        None,
        "--region",
        help="AWS region name (default: $AWS_REGION or us-east-1).",
    ),
    log_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--log-file",
        envvar="DDB_EXPLORER_LOG",
        help="Write debug logs to this file.",
    ),
    version: bool = typer.Option(  # noqa: B008
        False,
        "--version",
        help="Print version and exit.",
        callback=_print_version,
        is_eager=True,
    ),
) -> None:
    """Browse and edit DynamoDB tables in a fullscreen terminal UI."""

    _ = version
    _configure_logging(log_file)

    if not _can_launch_interactive_ui(Console()):
        typer.echo("ddb-explorer requires a TTY terminal.", err=True)
        raise typer.Exit(2)

    config = DynamoDbConfig.from_env(endpoint, region=region)
    try:
        backend = DynamoDbBackend(config)
    except (BotoCoreError, ValueError) as exc:
        logger.warning("Client construction failed for %s: %s", endpoint, exc)
        typer.echo(f"Failed to connect to DynamoDB: {exc}", err=True)
        raise typer.Exit(1) from exc

    logger.info("Starting explorer against %s", config.endpoint)
    run_explorer(backend, requested_table=table.strip(), editor=editor_command())
