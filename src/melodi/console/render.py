"""
Result table rendering using Rich.

The table layout follows the console's conventions:
    - Title row: the statement, SQL-highlighted
    - Header: bold column name over the italic column type
    - At most 100 data rows; a warning follows when more were returned
    - Numeric columns right-aligned, everything else left-aligned
    - JSON cells highlighted after widths are computed, so escape codes
      never count toward a column's width
"""

from dataclasses import dataclass, field

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from melodi.console.formatter import JSON_KIND, ValueFormatter
from melodi.console.layout import compute_widths
from melodi.schema import ColumnMeta, FormattedValue, ResultSet

MAX_DISPLAY_ROWS = 100
NUMERIC_TYPES = frozenset({"int", "long", "double"})
TRUNCATION_NOTICE = (
    f"More than {MAX_DISPLAY_ROWS} rows returned. "
    f"Only the first {MAX_DISPLAY_ROWS} rows are displayed."
)


@dataclass
class RenderedTable:
    """A table ready to print, plus what went into it."""

    table: Table
    widths: list[int]
    rows_rendered: int
    truncated: bool
    json_cells: list[tuple[int, int]] = field(default_factory=list)


def highlight(code: str, lexer: str) -> Text:
    """Syntax-highlight code into a Text without a background."""
    syntax = Syntax(code, lexer, background_color="default")
    text = syntax.highlight(code)
    text.rstrip()
    return text


def header_text(column: ColumnMeta) -> str:
    """Plain header cell: column name over its type."""
    return f"{column.name}\n{column.display_type}"


def format_rows(
    result: ResultSet,
    formatter: ValueFormatter,
    max_rows: int = MAX_DISPLAY_ROWS,
) -> list[list[FormattedValue]]:
    """Format at most max_rows rows of a result."""
    return [
        [formatter.format(value, column) for value, column in zip(row, result.columns)]
        for row in result.rows[:max_rows]
    ]


def build_table(
    query: str,
    result: ResultSet,
    formatter: ValueFormatter,
    available_width: int | None,
) -> RenderedTable:
    """
    Format, size and assemble the result table.

    Args:
        query: Statement text shown as the title
        result: Materialized rows (may hold one row more than is shown)
        formatter: Session formatter
        available_width: Terminal columns for this render

    Returns:
        RenderedTable with the Rich table and layout details
    """
    cells = format_rows(result, formatter)
    plain = [[header_text(c) for c in result.columns]]
    plain.extend([cell.text for cell in row] for row in cells)
    widths = compute_widths(plain, available_width)

    table = Table(
        title=highlight(query, "sql"),
        show_header=True,
        show_lines=True,
        expand=False,
    )
    for column, width in zip(result.columns, widths):
        header = Text.assemble((column.name, "bold"), "\n", (column.display_type, "italic"))
        justify = "right" if column.type_name in NUMERIC_TYPES else "left"
        table.add_column(header, justify=justify, width=width, overflow="fold")

    json_cells: list[tuple[int, int]] = []
    for row_index, row in enumerate(cells):
        rendered: list[Text] = []
        for col_index, cell in enumerate(row):
            if cell.detected_kind == JSON_KIND:
                json_cells.append((row_index, col_index))
                text = highlight(cell.text, "json")
            else:
                text = Text(cell.text)
            text.overflow = "fold"
            rendered.append(text)
        table.add_row(*rendered)

    return RenderedTable(
        table=table,
        widths=widths,
        rows_rendered=len(cells),
        truncated=len(result.rows) > MAX_DISPLAY_ROWS,
        json_cells=json_cells,
    )


def format_duration(elapsed_ms: float) -> str:
    """Execution time line printed under the table."""
    if elapsed_ms < 1000:
        return f"Executed in {elapsed_ms:.0f} ms."
    return f"Executed in {elapsed_ms / 1000:.2f} seconds."


def terminal_width(console: Console) -> int | None:
    """Current console width, or None when the terminal does not report one."""
    try:
        width = console.size.width
    except (OSError, ValueError):
        return None
    return width or None


def print_result(
    console: Console,
    query: str,
    result: ResultSet,
    formatter: ValueFormatter,
    elapsed_ms: float | None = None,
) -> RenderedTable | None:
    """
    Print a result table, or a short message when there is nothing to show.

    Returns:
        The RenderedTable that was printed, or None for empty results
    """
    if not result.rows:
        console.print("No rows returned.")
        return None
    if not result.columns:
        console.print("No metadata returned.")
        return None

    rendered = build_table(query, result, formatter, terminal_width(console))
    console.print(rendered.table)
    if rendered.truncated:
        console.print(f"[yellow]{TRUNCATION_NOTICE}[/yellow]")
    if elapsed_ms is not None:
        console.print(format_duration(elapsed_ms))
    return rendered
