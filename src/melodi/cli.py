"""
CLI entry point for Melodi.

This module provides the Typer-based command-line interface for Melodi.

Commands:
    open        Open a database file and show its menu (query console, schemas)
    query       Run a single statement and print the result table
    history     Show or clear the saved query history of a file
    doctor      Check the environment

Architecture Note:
    The CLI parses arguments, loads the configuration and delegates to
    melodi.db and melodi.console. Both can be used without the CLI.
"""

import json
import sqlite3
import sys
import tempfile
import traceback
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.markup import escape

from melodi import __version__
from melodi.config import LogLevel, MelodiConfig, load_config
from melodi.console import HistoryStore, ReferenceResolver, ValueFormatter, print_result, run_editor
from melodi.console.editor import prompt_open_mode
from melodi.console.render import MAX_DISPLAY_ROWS
from melodi.console.repl import QUERY_OPTIONS
from melodi.db import CANCELLED, open_database
from melodi.errors import ConfigError, DatabaseIOError, MelodiError, QueryError
from melodi.logs import configure_logging
from melodi.schema import OpenMode, ResultSet, StoreKind

# Initialize Typer app with metadata
app = typer.Typer(
    name="melodi",
    help="Browse and query BIM/ECDb database files.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]melodi[/bold] version {__version__}")
        raise typer.Exit()


def _config(ctx: typer.Context) -> MelodiConfig:
    if isinstance(ctx.obj, MelodiConfig):
        return ctx.obj
    return MelodiConfig()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            help="Path to the configuration YAML file.",
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    log_level: Annotated[
        Optional[LogLevel],
        typer.Option(
            "--log-level",
            help="Override the configured log level.",
        ),
    ] = None,
) -> None:
    """
    Melodi - Interactive console for BIM/ECDb database files.

    Open a file to get a menu with a multi-line query console and a schema
    listing, or run single statements from the shell.
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    configure_logging(log_level or config.log_level)
    ctx.obj = config


@app.command("open")
def open_file(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(
            help="Database file to open (.bim, .ecdb or any SQLite file).",
            exists=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    kind: Annotated[
        Optional[StoreKind],
        typer.Option(
            "--kind",
            "-k",
            help="Backend kind. Detected from the file if omitted.",
        ),
    ] = None,
    mode: Annotated[
        Optional[OpenMode],
        typer.Option(
            "--mode",
            "-m",
            help="Open mode. Prompted for if omitted and not configured.",
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Enable debug mode with full error tracebacks.",
        ),
    ] = False,
) -> None:
    """
    Open a database file and show its menu.

    Example:
        $ melodi open model.bim --mode readonly
    """
    config = _config(ctx)
    mode = mode or config.default_open_mode

    try:
        handle = open_database(path, kind=kind, mode=mode, select_mode=prompt_open_mode(console))
    except DatabaseIOError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        if debug:
            console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
        raise typer.Exit(code=1)

    if handle is CANCELLED:
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(code=0)

    try:
        with handle:
            run_editor(handle, str(path), history_store=HistoryStore(config.cache_dir), console=console)
    except MelodiError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        if debug:
            console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
        raise typer.Exit(code=1)


@app.command()
def query(
    path: Annotated[
        Path,
        typer.Argument(
            help="Database file to query.",
            exists=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    statement: Annotated[
        str,
        typer.Argument(help="Statement to execute."),
    ],
    kind: Annotated[
        Optional[StoreKind],
        typer.Option(
            "--kind",
            "-k",
            help="Backend kind. Detected from the file if omitted.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the result in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Run a single statement against a file opened read-only.

    Example:
        $ melodi query model.bim "SELECT Name, Alias FROM ec_Schema;"
    """
    try:
        handle = open_database(path, kind=kind, mode=OpenMode.READONLY)
    except DatabaseIOError as e:
        _report_error(e, json_output)
        raise typer.Exit(code=1)

    if handle is CANCELLED:
        raise typer.Exit(code=0)

    with handle:
        try:
            result = handle.execute(statement, options=QUERY_OPTIONS).to_result_set()
        except QueryError as e:
            if json_output:
                _report_error(e, json_output)
            else:
                console.print(f"[yellow]Query failed: {escape(statement)}[/yellow]")
                console.print(f"[bold red]Error: {escape(e.underlying_error)}[/bold red]")
            raise typer.Exit(code=1)

        if json_output:
            print(json.dumps(_result_to_dict(result), indent=2, default=str))
            return

        formatter = ValueFormatter(ReferenceResolver(handle))
        print_result(console, statement, result, formatter)


def _result_to_dict(result: ResultSet) -> dict[str, Any]:
    """JSON view of a result, limited to the displayed rows."""
    return {
        "columns": [column.model_dump() for column in result.columns],
        "rows": result.rows[:MAX_DISPLAY_ROWS],
        "truncated": len(result.rows) > MAX_DISPLAY_ROWS,
    }


def _report_error(error: MelodiError, json_output: bool) -> None:
    if json_output:
        print(json.dumps({"error": error.to_dict()}, indent=2, default=str))
    else:
        console.print(f"[red]{escape(str(error))}[/red]")


@app.command()
def history(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(
            help="Database file whose history to show.",
            resolve_path=True,
        ),
    ],
    clear: Annotated[
        bool,
        typer.Option(
            "--clear",
            help="Delete the saved history for this file.",
        ),
    ] = False,
) -> None:
    """
    Show or clear the saved query history of a file.

    Example:
        $ melodi history model.bim
    """
    store = HistoryStore(_config(ctx).cache_dir)
    try:
        if clear:
            if store.clear(path):
                console.print(f"[green]Cleared history for {escape(str(path))}[/green]")
            else:
                console.print("[dim]No history to clear.[/dim]")
            return

        entries = store.load(path)
    except MelodiError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if not entries:
        console.print("[dim]No history.[/dim]")
        return

    for number, entry in enumerate(reversed(entries), start=1):
        console.print(f"[dim]{number:>2}[/dim]  {escape(entry)}")


@app.command()
def doctor(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output results in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Check system environment and dependencies.

    Verifies:
    - Python version (3.11+)
    - SQLite library version and JSON support
    - Cache directory writability

    Example:
        $ melodi doctor
    """
    checks = []
    all_ok = True

    # Check 1: Python version
    py_version = sys.version_info
    py_version_str = f"{py_version.major}.{py_version.minor}.{py_version.micro}"
    py_ok = py_version >= (3, 11)
    checks.append({
        "name": "Python version",
        "ok": py_ok,
        "value": py_version_str,
        "message": "OK" if py_ok else "Requires Python 3.11+",
    })
    all_ok = all_ok and py_ok

    # Check 2: SQLite library and JSON functions
    json_ok = True
    json_message = "OK"
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("SELECT json('{}')").fetchone()
    except sqlite3.Error as e:
        json_ok = False
        json_message = f"JSON functions unavailable: {e}"
    finally:
        conn.close()
    checks.append({
        "name": "SQLite",
        "ok": json_ok,
        "value": sqlite3.sqlite_version,
        "message": json_message,
    })
    all_ok = all_ok and json_ok

    # Check 3: Cache directory writability
    cache_dir = _config(ctx).cache_dir
    cache_ok = True
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=cache_dir):
            pass
        cache_message = "Writable"
    except OSError as e:
        cache_ok = False
        cache_message = f"Not writable: {e}"
    checks.append({
        "name": "Cache directory",
        "ok": cache_ok,
        "value": str(cache_dir),
        "message": cache_message,
    })
    all_ok = all_ok and cache_ok

    # Output results
    if json_output:
        output = {
            "ok": all_ok,
            "version": __version__,
            "checks": checks,
        }
        print(json.dumps(output, indent=2))
    else:
        console.print(f"[bold]Melodi Doctor[/bold] v{__version__}")
        console.print()

        for check in checks:
            icon = "[green]✓[/green]" if check["ok"] else "[red]✗[/red]"
            if check["ok"]:
                console.print(f"{icon} {check['name']}: [dim]{escape(check['value'])}[/dim] - {check['message']}")
            else:
                console.print(f"{icon} {check['name']}: [dim]{escape(check['value'])}[/dim]")
                console.print(f"    [red]{escape(check['message'])}[/red]")

        console.print()
        if all_ok:
            console.print("[green]All checks passed![/green]")
        else:
            console.print("[yellow]Some checks failed. See above for details.[/yellow]")

    raise typer.Exit(code=0 if all_ok else 1)


if __name__ == "__main__":
    app()
