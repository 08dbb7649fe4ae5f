"""
Interactive console for Melodi.

Components:
    - layout: Column widths that fit the terminal
    - resolver: Class id -> class name lookup with a per-session cache
    - formatter: Type-aware cell formatting (JSON, navigation, arrays)
    - history: Bounded statement history and its JSON persistence
    - render: Rich result tables
    - repl: The query console state machine
    - editor: The file menu above the console

Example:
    from melodi.console import run_editor
    from melodi.db import open_database

    with open_database("model.bim") as handle:
        run_editor(handle, "model.bim")
"""

from melodi.console.editor import run_editor
from melodi.console.formatter import ValueFormatter, format_value
from melodi.console.history import HistoryStore, QueryHistory, normalize_query
from melodi.console.layout import compute_widths, measure_cell
from melodi.console.render import build_table, print_result
from melodi.console.repl import ConsoleState, QueryConsole, run_console
from melodi.console.resolver import UNKNOWN_CLASS, ReferenceResolver

__all__ = [
    "ConsoleState",
    "HistoryStore",
    "QueryConsole",
    "QueryHistory",
    "ReferenceResolver",
    "UNKNOWN_CLASS",
    "ValueFormatter",
    "build_table",
    "compute_widths",
    "format_value",
    "measure_cell",
    "normalize_query",
    "print_result",
    "run_console",
    "run_editor",
]
