"""
Interactive query console.

The console reads statements line by line, executes them against an open
DatabaseHandle and prints the result table. One statement is one pass
through the states:

    AWAITING_INPUT -> ACCUMULATING -> EXECUTING -> RENDERING -> AWAITING_INPUT

A statement ends with the first line that, trimmed, ends with ";". Ctrl+C or
Ctrl+D while reading moves to CANCELLED: the pending lines are dropped,
nothing is executed or recorded, and run_once() returns False so the caller
(the file menu) takes over again.

A failed statement prints a warning and is not recorded. A successful one is
recorded in the history before its result is rendered.
"""

import logging
import time
from enum import Enum
from typing import Protocol

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from rich.console import Console
from rich.markup import escape

from melodi.console.formatter import ValueFormatter
from melodi.console.history import HistoryStore, QueryHistory
from melodi.console.render import print_result
from melodi.console.resolver import ReferenceResolver
from melodi.db.handle import DatabaseHandle
from melodi.errors import HistoryStoreError, QueryError
from melodi.schema import QueryOptions, ResultSet

logger = logging.getLogger(__name__)

PROMPT = "query> "
STATEMENT_TERMINATOR = ";"
ROW_LIMIT = 101

QUERY_OPTIONS = QueryOptions(limit=ROW_LIMIT, abbreviate_blobs=True)


class ConsoleState(str, Enum):
    """Where the console is in handling the current statement."""

    AWAITING_INPUT = "awaiting_input"
    ACCUMULATING = "accumulating"
    EXECUTING = "executing"
    RENDERING = "rendering"
    CANCELLED = "cancelled"


class LineSource(Protocol):
    """
    Interactive line input.

    read_line raises KeyboardInterrupt or EOFError when the user interrupts.
    """

    def set_history(self, entries: list[str]) -> None: ...

    def read_line(self, prompt: str) -> str: ...


class PromptLineSource:
    """LineSource backed by prompt_toolkit, with up/down history recall."""

    def __init__(self) -> None:
        self._session: PromptSession | None = None

    def set_history(self, entries: list[str]) -> None:
        history = InMemoryHistory()
        for entry in entries:
            history.append_string(entry)
        self._session = PromptSession(history=history)

    def read_line(self, prompt: str) -> str:
        if self._session is None:
            self._session = PromptSession()
        return self._session.prompt(prompt)


def is_statement_complete(line: str) -> bool:
    """True when the line ends the statement."""
    return line.strip().endswith(STATEMENT_TERMINATOR)


class QueryConsole:
    """
    Read-eval-print loop over one open handle.

    The console owns its history and its class name cache; neither is
    shared with other sessions.

    Attributes:
        handle: The open database, exclusively used by this console
        label: Shown in the intro line (usually the file path)
        history: Prior statements offered for recall
        state: Current ConsoleState
    """

    def __init__(
        self,
        handle: DatabaseHandle,
        label: str,
        history: QueryHistory | None = None,
        line_source: LineSource | None = None,
        console: Console | None = None,
    ) -> None:
        self.handle = handle
        self.label = label
        self.history = history if history is not None else QueryHistory()
        self.line_source = line_source if line_source is not None else PromptLineSource()
        self.console = console or Console()
        self.resolver = ReferenceResolver(handle)
        self.formatter = ValueFormatter(self.resolver)
        self.state = ConsoleState.AWAITING_INPUT

    def read_statement(self) -> str | None:
        """
        Read lines until a statement is complete.

        Returns:
            The statement text (lines joined by newlines), or None if cancelled
        """
        self.state = ConsoleState.AWAITING_INPUT
        self.line_source.set_history(self.history.to_list())
        lines: list[str] = []
        while True:
            try:
                line = self.line_source.read_line(PROMPT)
            except (KeyboardInterrupt, EOFError):
                self.state = ConsoleState.CANCELLED
                return None

            if not lines and not line.strip():
                continue
            lines.append(line)
            self.state = ConsoleState.ACCUMULATING
            if is_statement_complete(line):
                return "\n".join(lines)

    def execute(self, query: str) -> ResultSet | None:
        """
        Run a statement and record it in the history.

        Returns:
            The result, or None if the statement failed (already reported)
        """
        self.state = ConsoleState.EXECUTING
        try:
            result = self.handle.execute(query, options=QUERY_OPTIONS).to_result_set()
        except QueryError as e:
            logger.debug("Statement failed: %s", e.underlying_error)
            self.console.print(f"[yellow]Query failed: {escape(query)}[/yellow]")
            self.console.print(f"[bold red]Error: {escape(e.underlying_error)}[/bold red]")
            return None

        try:
            self.history.push(query)
        except HistoryStoreError as e:
            self.console.print(f"[yellow]Could not save query history: {escape(e.underlying_error)}[/yellow]")
        return result

    def run_once(self) -> bool:
        """
        Handle one statement.

        Returns:
            False when the user cancelled, True to keep reading statements
        """
        query = self.read_statement()
        if query is None:
            self.console.print()
            return False

        started = time.perf_counter()
        result = self.execute(query)
        elapsed_ms = (time.perf_counter() - started) * 1000
        if result is not None:
            self.state = ConsoleState.RENDERING
            print_result(self.console, query, result, self.formatter, elapsed_ms)

        self.state = ConsoleState.AWAITING_INPUT
        return True

    def run(self) -> None:
        """Read and run statements until the user cancels."""
        self.console.print()
        self.console.print(
            f"[bold]Query console[/bold] for {escape(self.label)} "
            "[dim](up/down for history, Ctrl+C to exit, end statements with a semicolon)[/dim]"
        )
        self.console.print()
        while self.run_once():
            pass


def run_console(
    handle: DatabaseHandle,
    label: str,
    history_store: HistoryStore | None = None,
    line_source: LineSource | None = None,
    console: Console | None = None,
) -> QueryConsole:
    """
    Run the query console on an open handle until the user cancels.

    Args:
        handle: Open handle whose kind supports the query language
        label: Display label, usually the file path
        history_store: Persistence for the history (in-memory only if None)
        line_source: Input source (prompt_toolkit if None)
        console: Rich Console for output

    Returns:
        The finished QueryConsole
    """
    history = QueryHistory()
    if history_store is not None:
        try:
            entries = history_store.load(handle.path)
        except HistoryStoreError as e:
            logger.warning("Ignoring unreadable history: %s", e.underlying_error)
            entries = []
        history = QueryHistory(entries, on_change=history_store.bind(handle.path))

    repl = QueryConsole(handle, label, history=history, line_source=line_source, console=console)
    repl.run()
    return repl
