from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
import json
from pathlib import Path
from typing import Any, TypeVar

from dotenv import load_dotenv
import typer

from asher.core.config import AsherConfig, load_config_from_env
from asher.core.errors import AsherError
from asher.core.logging import configure_logging
from asher.core.runtime import AsherRuntime, build_runtime
from asher.credentials.ingest import ingest_source_configs, load_source_configs
from asher.services.ingestion.orchestrator import IngestionRunResult
from asher.services.keys.coordinator import MIN_KEY_LENGTH, validate_key
from asher.tools.base import to_jsonable
from asher.tools.sources.source_tools import source_summary

# Load environment variables from .env
load_dotenv()

T = TypeVar("T")

app = typer.Typer(
    help="Asher: encrypted store for scraped bank transactions.",
    no_args_is_help=True,
)

sources_app = typer.Typer(help="Manage configured sources.")
app.add_typer(sources_app, name="sources")

diagnostics_app = typer.Typer(help="Check desktop integration.")
app.add_typer(diagnostics_app, name="diagnostics")


def _load_config() -> AsherConfig:
    try:
        return load_config_from_env()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2) from None


@app.callback()
def main_callback() -> None:
    """Configure logging before any command runs."""
    config = _load_config()
    configure_logging(config.log_level, log_file=config.log_file)


@contextmanager
def _runtime() -> Iterator[AsherRuntime]:
    config = _load_config()
    try:
        runtime = build_runtime(config)
    except AsherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None
    try:
        yield runtime
    except AsherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None
    finally:
        runtime.close()


def _run(coro_fn: Callable[[], Awaitable[T]]) -> T:
    async def runner() -> T:
        return await coro_fn()

    return asyncio.run(runner())


def _prompt_new_key() -> str:
    value = typer.prompt(
        f"Enter encryption key (min {MIN_KEY_LENGTH} characters)",
        hide_input=True,
        confirmation_prompt=True,
        err=True,
    )
    try:
        return validate_key(value)
    except AsherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None


def _print_run_result(result: IngestionRunResult) -> None:
    for outcome in result.sources:
        if outcome.success:
            typer.echo(
                f"  + {outcome.friendly_name} ({outcome.provider_type}): "
                f"{outcome.transactions_fetched} fetched, "
                f"{outcome.transactions_inserted} new"
            )
        else:
            typer.echo(
                f"  - {outcome.friendly_name} ({outcome.provider_type}): "
                f"[{outcome.error_type}] {outcome.error}"
            )
    typer.echo(
        f"\nProcessed {len(result.sources)} sources, {len(result.failed)} failed."
    )


@app.command("ingest-creds")
def ingest_creds(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="JSON file with a list of sources (or {'credentials': [...]})",
    ),
    key: str | None = typer.Option(
        None,
        "--key",
        help="Encryption key to use instead of prompting",
    ),
    fetch: bool = typer.Option(
        False,
        "--fetch/--no-fetch",
        help="Fetch transactions for all sources after ingesting",
    ),
) -> None:
    """Validate source credentials from a file and store them encrypted."""
    try:
        configs = load_source_configs(file)
    except AsherError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(f"Found {len(configs)} source(s) in {file}")

    with _runtime() as runtime:
        if key is not None:
            runtime.keys.set_key(key)
        elif runtime.keys.get_key() is None and not runtime.store.exists():
            typer.echo("New database detected. Choose an encryption key.", err=True)
            runtime.keys.set_key(_prompt_new_key())

        async def ingest() -> IngestionRunResult | None:
            await runtime.store.open()
            ids = ingest_source_configs(runtime.store, configs)
            typer.echo(f"Stored {len(ids)} source(s)")
            if not fetch:
                return None
            return await runtime.orchestrator.run()

        result = _run(ingest)
        if result is not None:
            _print_run_result(result)


@app.command("fetch")
def fetch_cmd() -> None:
    """Fetch new transactions for every configured source."""
    with _runtime() as runtime:
        result = _run(runtime.orchestrator.run)
        _print_run_result(result)


@sources_app.command("list")
def sources_list() -> None:
    """List configured sources (credentials are never shown)."""
    with _runtime() as runtime:
        _run(runtime.store.open)
        sources = runtime.store.get_source_credentials()
        if not sources:
            typer.echo("No sources configured.")
            return
        for source in sources:
            summary = to_jsonable(source_summary(source))
            tags = ", ".join(summary["tags"]) or "-"
            typer.echo(
                f"{summary['id']:>4}  {summary['friendly_name']}  "
                f"({summary['provider_type']})  tags: {tags}  "
                f"last: {summary['last_scraped_at'] or 'never'}"
            )


@sources_app.command("delete")
def sources_delete(
    source_id: int = typer.Argument(..., help="Id of the source to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a source and all of its transactions."""
    if not yes:
        typer.confirm(
            f"Delete source {source_id} and all of its transactions?", abort=True
        )
    with _runtime() as runtime:
        _run(runtime.store.open)
        if not runtime.store.delete_source_credential(source_id):
            typer.echo(f"No source with id {source_id}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Deleted source {source_id}")


@app.command("query")
def query_cmd(
    sql: str = typer.Argument(..., help="A single SELECT statement"),
) -> None:
    """Run a read-only query against the store and print rows as JSON."""
    with _runtime() as runtime:
        _run(runtime.store.open)
        result = runtime.store.run_read_only_query(sql)
        if not result.success:
            typer.echo(f"Query rejected: {result.error}", err=True)
            raise typer.Exit(code=1)
        payload: list[dict[str, Any]] = to_jsonable(result.rows)
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command("rekey")
def rekey() -> None:
    """Re-encrypt the store under a new key."""
    with _runtime() as runtime:
        _run(runtime.store.open)
        typer.echo("Choose the new encryption key.", err=True)
        runtime.store.change_key(_prompt_new_key())
        typer.echo("Encryption key changed.")


@diagnostics_app.command("notify")
def diagnostics_notify() -> None:
    """Send a test desktop notification."""
    with _runtime() as runtime:
        notifier = runtime.orchestrator.notifier
        if not runtime.config.notifications_enabled or notifier is None:
            typer.echo("Notifications are disabled.")
            return
        try:
            _run(lambda: notifier.notify("Asher", "Notifications are working"))
        except OSError as e:
            typer.echo(f"Notification failed: {e}", err=True)
            raise typer.Exit(code=1) from None
        typer.echo("Notification sent.")


@app.command("mcp")
def mcp_cmd() -> None:
    """Run the MCP server over stdio."""
    from asher.ui.mcp.server import main as mcp_main

    mcp_main()


def main() -> None:
    app()
