"""
File menu shown for an open database.

The menu is the level above the query console. It offers only what the
handle's capabilities allow:

    query    Interactive query console (needs the query language)
    schemas  Schemas stored in the file (needs schema tables)
    info     Kind, open mode and capabilities of the handle
    close    Leave the menu

Cancelling the menu prompt (Ctrl+C / Ctrl+D) is the same as "close".
"""

import logging
from typing import Callable, Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from melodi.console.history import HistoryStore
from melodi.console.repl import LineSource, run_console
from melodi.db.handle import DatabaseHandle
from melodi.errors import HandleClosedError, MelodiError
from melodi.schema import OPEN_MODE_LABELS, OpenMode

logger = logging.getLogger(__name__)

MenuOption = tuple[str, str]
MenuSelector = Callable[[str, Sequence[MenuOption]], str | None]


def prompt_menu(console: Console) -> MenuSelector:
    """Numbered-choice menu on a Rich console; None when cancelled."""

    def select(title: str, options: Sequence[MenuOption]) -> str | None:
        console.print(f"[bold]{escape(title)}[/bold]")
        for number, (_, label) in enumerate(options, start=1):
            console.print(f"  [cyan]{number}[/cyan]  {label}")
        choices = [str(n) for n in range(1, len(options) + 1)]
        try:
            answer = Prompt.ask("Select", choices=choices, default="1", console=console)
        except (KeyboardInterrupt, EOFError):
            console.print()
            return None
        return options[int(answer) - 1][0]

    return select


def prompt_open_mode(console: Console) -> Callable[[Sequence[OpenMode]], OpenMode | None]:
    """Open-mode prompt for open_database(select_mode=...)."""
    select = prompt_menu(console)

    def select_mode(modes: Sequence[OpenMode]) -> OpenMode | None:
        answer = select(
            "Select the open mode for the file",
            [(mode.value, OPEN_MODE_LABELS[mode]) for mode in modes],
        )
        return None if answer is None else OpenMode(answer)

    return select_mode


def menu_options(handle: DatabaseHandle) -> list[MenuOption]:
    """Menu entries available for a handle."""
    options: list[MenuOption] = []
    if handle.supports_query_language:
        options.append(("query", "Query"))
    if handle.supports_schema_introspection:
        options.append(("schemas", "Schemas"))
    options.append(("info", "Info"))
    options.append(("close", "Close"))
    return options


def menu_title(handle: DatabaseHandle, label: str) -> str:
    return f"{label}{' (read-only)' if handle.is_read_only else ''}"


def print_schemas(console: Console, handle: DatabaseHandle) -> None:
    """Print the schemas stored in the file."""
    result = handle.schemas()
    if not result.rows:
        console.print("[dim]No schemas found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Alias")
    table.add_column("Version", justify="right")
    for name, alias, version in result.rows:
        table.add_row(str(name), str(alias or ""), str(version or ""))
    console.print(table)


def print_info(console: Console, handle: DatabaseHandle) -> None:
    """Print kind, mode and capabilities of the handle."""
    caps = handle.capabilities

    def flag(value: bool) -> str:
        return "[green]yes[/green]" if value else "[dim]no[/dim]"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Property", style="dim")
    table.add_column("Value")
    table.add_row("Path", escape(str(handle.path)))
    table.add_row("Size", f"{handle.path.stat().st_size} bytes")
    table.add_row("Kind", handle.kind.value)
    table.add_row("Mode", handle.mode.value)
    table.add_row("Read-only", flag(handle.is_read_only))
    table.add_row("Query language", flag(caps.supports_query_language))
    table.add_row("Schemas", flag(caps.supports_schema_introspection))
    table.add_row("Incremental sync", flag(caps.supports_incremental_sync))
    console.print(table)


def run_editor(
    handle: DatabaseHandle,
    label: str,
    history_store: HistoryStore | None = None,
    console: Console | None = None,
    select: MenuSelector | None = None,
    line_source: LineSource | None = None,
) -> None:
    """
    Show the file menu until the user closes it.

    Errors from a menu action are printed and the menu is shown again.
    Operating on a closed handle is a programming error and propagates.

    Raises:
        HandleClosedError: If the handle is not open
    """
    console = console or Console()
    select = select or prompt_menu(console)

    if not handle.is_open:
        raise HandleClosedError(operation="edit")

    while True:
        choice = select(menu_title(handle, label), menu_options(handle))
        if choice is None or choice == "close":
            return

        try:
            if choice == "query":
                run_console(
                    handle,
                    label,
                    history_store=history_store,
                    line_source=line_source,
                    console=console,
                )
            elif choice == "schemas":
                print_schemas(console, handle)
            elif choice == "info":
                print_info(console, handle)
        except HandleClosedError:
            raise
        except MelodiError as e:
            logger.debug("Menu action %s failed", choice, exc_info=True)
            console.print(f"[red]Error: {escape(str(e))}[/red]")
