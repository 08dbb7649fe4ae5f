"""
Integration tests for the query console.

Tests cover:
- Multi-line statement accumulation
- Cancellation discarding pending lines
- Failed statements reported and not recorded
- Result rendering: truncation, navigation names, JSON cells, alignment
- History persistence through run_console
"""

from io import StringIO
from pathlib import Path

import pytest
from rich.console import Console

from melodi.console import HistoryStore, QueryConsole, QueryHistory, ReferenceResolver, ValueFormatter
from melodi.console.render import MAX_DISPLAY_ROWS, TRUNCATION_NOTICE, build_table, format_duration
from melodi.console.repl import PROMPT, QUERY_OPTIONS, ConsoleState, is_statement_complete, run_console
from melodi.db import open_database
from melodi.errors import HandleClosedError
from melodi.schema import OpenMode

NAVIGATION_QUERY = (
    'SELECT Id, ParentId AS "Parent.Id", ParentRelECClassId AS "Parent.RelECClassId" '
    "FROM bis_Element WHERE Id = 2;"
)


@pytest.fixture
def handle(ecdb_path: Path):
    h = open_database(ecdb_path, mode=OpenMode.READONLY)
    yield h
    h.close()


@pytest.fixture
def make_console(handle, scripted, test_console: Console):
    """Build a QueryConsole reading from a script."""

    def make(script: list, history: QueryHistory | None = None) -> QueryConsole:
        return QueryConsole(
            handle,
            str(handle.path),
            history=history,
            line_source=scripted(script),
            console=test_console,
        )

    return make


class TestStatementInput:
    """Tests for reading statements."""

    @pytest.mark.parametrize(
        "line,complete",
        [
            ("SELECT 1;", True),
            ("SELECT 1;   ", True),
            ("SELECT 1", False),
            ("SELECT ';' FROM x", False),
            ("", False),
        ],
    )
    def test_is_statement_complete(self, line: str, complete: bool) -> None:
        assert is_statement_complete(line) is complete

    def test_lines_joined_until_terminator(self, make_console) -> None:
        repl = make_console(["SELECT Id", "FROM bis_Element", "WHERE Id = 1;"])
        assert repl.read_statement() == "SELECT Id\nFROM bis_Element\nWHERE Id = 1;"
        assert repl.state == ConsoleState.ACCUMULATING
        assert repl.line_source.prompts == [PROMPT] * 3

    def test_leading_blank_lines_skipped(self, make_console) -> None:
        repl = make_console(["", "   ", "SELECT 1;"])
        assert repl.read_statement() == "SELECT 1;"

    @pytest.mark.parametrize("interrupt", [KeyboardInterrupt, EOFError])
    def test_interrupt_cancels(self, make_console, interrupt: type) -> None:
        repl = make_console(["SELECT *", interrupt])
        assert repl.read_statement() is None
        assert repl.state == ConsoleState.CANCELLED

    def test_cancelled_lines_discarded(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT * FROM", KeyboardInterrupt, "SELECT 1;"])

        assert repl.run_once() is False
        assert len(repl.history) == 0

        assert repl.run_once() is True
        assert repl.history.to_list() == ["SELECT 1;"]
        assert "Query failed" not in output.getvalue()

    def test_history_offered_before_each_statement(self, make_console) -> None:
        repl = make_console(["SELECT 1;", "SELECT 2;"], history=QueryHistory(["SELECT 0;"]))
        repl.run_once()
        repl.run_once()
        assert repl.line_source.histories == [["SELECT 0;"], ["SELECT 0;", "SELECT 1;"]]


class TestExecution:
    """Tests for executing statements."""

    def test_success_recorded_normalized(self, make_console) -> None:
        repl = make_console(["SELECT Id", "FROM bis_Element;"])
        assert repl.run_once() is True
        assert repl.history.to_list() == ["SELECT Id FROM bis_Element;"]
        assert repl.state == ConsoleState.AWAITING_INPUT

    def test_malformed_statement_reported(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT 1 FROM x WHERE;"])

        assert repl.run_once() is True

        text = output.getvalue()
        assert "Query failed: SELECT 1 FROM x WHERE;" in text
        assert "Error:" in text
        assert len(repl.history) == 0

    def test_console_survives_failures(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT nope FROM nothing;", "SELECT CodeValue FROM bis_Element WHERE Id = 1;"])
        repl.run_once()
        repl.run_once()
        assert "Element-1" in output.getvalue()
        assert repl.history.to_list() == ["SELECT CodeValue FROM bis_Element WHERE Id = 1;"]

    def test_no_rows(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT * FROM bis_Element WHERE Id = 999;"])
        repl.run_once()
        assert "No rows returned." in output.getvalue()

    def test_duration_printed(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT 1;"])
        repl.run_once()
        assert "Executed in" in output.getvalue()

    def test_closed_handle_is_fatal(self, make_console, handle, output: StringIO) -> None:
        repl = make_console(["SELECT 1;"])
        handle.close()

        with pytest.raises(HandleClosedError):
            repl.run_once()
        assert "Query failed" not in output.getvalue()
        assert len(repl.history) == 0

    def test_unencodable_statement_reported(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT '\udcff';"])

        assert repl.run_once() is True
        assert "Query failed" in output.getvalue()
        assert len(repl.history) == 0

    def test_history_write_failure_is_a_warning(self, handle, scripted, test_console, output, temp_dir) -> None:
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("")
        store = HistoryStore(blocker)
        history = QueryHistory(on_change=store.bind(handle.path))
        repl = QueryConsole(handle, "x", history=history, line_source=scripted(["SELECT 1;"]), console=test_console)

        assert repl.run_once() is True
        assert "Could not save query history" in output.getvalue()


class TestRendering:
    """Tests for the rendered result table."""

    def test_more_than_100_rows_truncated(self, make_ecdb, scripted, test_console, output) -> None:
        path = make_ecdb("big.bim", element_count=150)
        with open_database(path, mode=OpenMode.READONLY) as handle:
            repl = QueryConsole(
                handle,
                "big",
                line_source=scripted(["SELECT Id, CodeValue FROM bis_Element;"]),
                console=test_console,
            )
            repl.run_once()

        text = output.getvalue()
        assert TRUNCATION_NOTICE in text
        assert "Element-100" in text
        assert "Element-101" not in text

    def test_build_table_limits_rows(self, make_ecdb) -> None:
        path = make_ecdb("big.bim", element_count=150)
        with open_database(path, mode=OpenMode.READONLY) as handle:
            result = handle.execute("SELECT Id FROM bis_Element", options=QUERY_OPTIONS).to_result_set()
            rendered = build_table("SELECT Id FROM bis_Element", result, ValueFormatter(ReferenceResolver(handle)), 120)

        assert rendered.rows_rendered == MAX_DISPLAY_ROWS
        assert rendered.truncated is True

    def test_exactly_100_rows_not_truncated(self, make_ecdb, scripted, test_console, output) -> None:
        path = make_ecdb("hundred.bim", element_count=100)
        with open_database(path, mode=OpenMode.READONLY) as handle:
            repl = QueryConsole(
                handle,
                "hundred",
                line_source=scripted(["SELECT Id FROM bis_Element;"]),
                console=test_console,
            )
            repl.run_once()

        assert TRUNCATION_NOTICE not in output.getvalue()

    def test_navigation_shows_class_name(self, make_console, output: StringIO) -> None:
        repl = make_console([NAVIGATION_QUERY])
        repl.run_once()

        text = output.getvalue()
        assert "ElementOwnsChildElements 0x1" in text
        assert "navigation" in text

    def test_class_names_cached_per_session(self, make_console) -> None:
        repl = make_console([NAVIGATION_QUERY, NAVIGATION_QUERY.replace("Id = 2", "Id = 3")])
        repl.run_once()
        repl.run_once()
        assert repl.resolver.cache == {"0x40": "ElementOwnsChildElements"}

    def test_json_cells_pretty_printed(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT JsonProperties FROM bis_Element WHERE Id = 1;"])
        repl.run_once()

        text = output.getvalue()
        assert '"category": "walls",' in text
        assert "Json" in text

    def test_blobs_abbreviated(self, make_console, output: StringIO) -> None:
        repl = make_console(["SELECT GeometryStream FROM bis_Element WHERE Id = 1;"])
        repl.run_once()
        assert '{"bytes": 4}' in output.getvalue()

    def test_numeric_columns_right_aligned(self, handle) -> None:
        query = "SELECT Id, Area, CodeValue FROM bis_Element"
        result = handle.execute(query).to_result_set()
        rendered = build_table(query, result, ValueFormatter(ReferenceResolver(handle)), 120)

        justify = [column.justify for column in rendered.table.columns]
        assert justify == ["right", "right", "left"]

    def test_json_cells_tracked(self, handle) -> None:
        query = "SELECT CodeValue, JsonProperties FROM bis_Element"
        result = handle.execute(query).to_result_set()
        rendered = build_table(query, result, ValueFormatter(ReferenceResolver(handle)), 120)
        assert rendered.json_cells == [(0, 1), (1, 1), (2, 1)]

    def test_widths_fit_terminal(self, handle) -> None:
        query = "SELECT CodeValue, JsonProperties FROM bis_Element"
        result = handle.execute(query).to_result_set()
        rendered = build_table(query, result, ValueFormatter(ReferenceResolver(handle)), 80)
        assert sum(w + 3 for w in rendered.widths) <= 80

    @pytest.mark.parametrize(
        "elapsed,expected",
        [
            (12.4, "Executed in 12 ms."),
            (999.0, "Executed in 999 ms."),
            (1500.0, "Executed in 1.50 seconds."),
        ],
    )
    def test_format_duration(self, elapsed: float, expected: str) -> None:
        assert format_duration(elapsed) == expected


class TestRunConsole:
    """Tests for run_console with persisted history."""

    def test_history_loaded_and_saved(self, handle, scripted, test_console, temp_dir: Path) -> None:
        store = HistoryStore(temp_dir / "cache")
        store.save(handle.path, ["SELECT 0;"])
        source = scripted(["SELECT 1;"])

        repl = run_console(handle, "test", history_store=store, line_source=source, console=test_console)

        assert source.histories[0] == ["SELECT 0;"]
        assert repl.state == ConsoleState.CANCELLED
        assert store.load(handle.path) == ["SELECT 0;", "SELECT 1;"]

    def test_unreadable_history_starts_empty(self, handle, scripted, test_console, temp_dir: Path) -> None:
        store = HistoryStore(temp_dir)
        store.path.write_text("not json")
        source = scripted([])

        run_console(handle, "test", history_store=store, line_source=source, console=test_console)

        assert source.histories == [[]]

    def test_without_store_history_is_in_memory(self, handle, scripted, test_console) -> None:
        repl = run_console(handle, "test", line_source=scripted(["SELECT 1;"]), console=test_console)
        assert repl.history.to_list() == ["SELECT 1;"]

    def test_intro_printed(self, handle, scripted, test_console, output: StringIO) -> None:
        run_console(handle, "model.ecdb", line_source=scripted([]), console=test_console)
        assert "Query console" in output.getvalue()
        assert "model.ecdb" in output.getvalue()
