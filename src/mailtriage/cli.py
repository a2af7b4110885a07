"""Command-line interface for mailtriage.

Provides commands for configuration validation, manual job runs, and the
HTTP trigger server.

Usage:
    python -m mailtriage validate-config
    python -m mailtriage reassess --user-id user-123
    python -m mailtriage retry-failed
    python -m mailtriage serve
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console

from mailtriage.config import validate_config_file
from mailtriage.core.logging import configure_logging

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig
    from mailtriage.db.store import DatabaseStore

console = Console()


async def _init_store() -> tuple[AppConfig, DatabaseStore]:
    """Load config and open the database.

    Prints an actionable error message and calls sys.exit(1) on failure.
    """
    from mailtriage.config import get_config
    from mailtriage.core.errors import ConfigLoadError, ConfigValidationError, DatabaseError
    from mailtriage.db.store import DatabaseStore

    try:
        config = get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Run [cyan]mailtriage validate-config[/cyan] for details."
        )
        sys.exit(1)

    db_path = Path(config.database.path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = DatabaseStore(db_path)
    try:
        await store.initialize()
    except DatabaseError as e:
        console.print(f"[red]Database error:[/red] {e}")
        sys.exit(1)

    return config, store


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """mailtriage - email triage, scoring and retry jobs."""
    log_level = "DEBUG" if debug else "INFO"
    # Use human-readable output for CLI, JSON for server
    configure_logging(log_level=log_level, json_output=False)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    if config_path:
        console.print(f"Validating config: [cyan]{config_path}[/cyan]")
    else:
        console.print("Validating config: [cyan]config/config.yaml[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("reassess")
@click.option("--user-id", default=None, help="Reassess a single user (default: all users)")
def reassess(user_id: str | None) -> None:
    """Recompute priority scores and write back material changes."""
    try:
        summary = asyncio.run(_run_reassess(user_id))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)

    console.print_json(data=summary)
    sys.exit(0 if summary["success"] else 1)


async def _run_reassess(user_id: str | None) -> dict:
    from mailtriage.engine.reassessment import PriorityReassessor

    config, store = await _init_store()
    reassessor = PriorityReassessor(store, config)

    if user_id:
        return (await reassessor.reassess_for_user(user_id)).to_dict()
    return await reassessor.summarize_all_users()


@cli.command("retry-failed")
def retry_failed() -> None:
    """Resubmit failed analyses whose cooldown has elapsed."""
    try:
        result = asyncio.run(_run_retry())
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)

    console.print_json(data=result)
    sys.exit(0 if result["success"] else 1)


async def _run_retry() -> dict:
    import anthropic

    from mailtriage.classifier.claude_analyzer import ClaudeAnalyzer
    from mailtriage.engine.retry import FailedAnalysisRetrier

    config, store = await _init_store()
    analyzer = ClaudeAnalyzer(anthropic.AsyncAnthropic(max_retries=3), store, config)
    result = await FailedAnalysisRetrier(store, analyzer, config).retry_failed_analyses()
    return result.to_dict()


@cli.command("serve")
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (default: localhost only for security)",
)
@click.option(
    "--port",
    default=8000,
    type=int,
    help="Port to bind to",
)
def serve(host: str, port: int) -> None:
    """Start the HTTP job trigger server."""
    import uvicorn

    from mailtriage.web.app import create_app

    if host == "0.0.0.0":  # noqa: S104
        console.print(
            "[yellow]Warning:[/yellow] Binding to 0.0.0.0 exposes the job triggers to the network.\n"
            "Make sure MAILTRIAGE_CRON_SECRET is set to a strong value."
        )

    configure_logging(log_level="INFO", json_output=True)

    app = create_app()
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
