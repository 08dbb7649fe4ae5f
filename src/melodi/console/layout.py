"""
Column width planning for result tables.

compute_widths() turns a grid of rendered cells into one width per column
so that the table fits the terminal:

    1. The width budget never drops below 80 characters.
    2. If every column at the 8-character floor already overflows the
       budget, every column gets the floor.
    3. Otherwise each column starts at its widest cell (multi-line cells
       count their longest line), but never below the floor.
    4. While the widths plus 3 characters of padding per column exceed the
       budget, the single widest column is halved (never below the floor).
       Once every column sits at the floor the plan cannot shrink further
       and is returned as is.

The function is pure: the same grid and budget always give the same plan.
"""

from typing import Sequence

MIN_TABLE_WIDTH = 80
MIN_COLUMN_WIDTH = 8
COLUMN_PADDING = 3


def measure_cell(cell: str | None) -> int:
    """Display width of a cell: its longest line."""
    if not cell:
        return 0
    if "\n" in cell:
        return max(len(line) for line in cell.split("\n"))
    return len(cell)


def total_width(widths: Sequence[int]) -> int:
    """Width of a table with the given column widths, padding included."""
    return sum(widths) + COLUMN_PADDING * len(widths)


def compute_widths(rows: Sequence[Sequence[str | None]], available_width: int | None) -> list[int]:
    """
    Compute per-column display widths.

    Args:
        rows: Rendered cells, header row included; all rows the same length
        available_width: Terminal columns (None or 0 when unknown)

    Returns:
        One width per column; empty when there are no rows
    """
    if not rows:
        return []

    budget = max(available_width or 0, MIN_TABLE_WIDTH)
    column_count = len(rows[0])

    if column_count * MIN_COLUMN_WIDTH > budget:
        return [MIN_COLUMN_WIDTH] * column_count

    widths = [MIN_COLUMN_WIDTH] * column_count
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], measure_cell(cell))

    while total_width(widths) > budget:
        widest = max(range(column_count), key=lambda i: widths[i])
        if widths[widest] <= MIN_COLUMN_WIDTH:
            break
        widths[widest] = max(MIN_COLUMN_WIDTH, widths[widest] // 2)

    return widths
