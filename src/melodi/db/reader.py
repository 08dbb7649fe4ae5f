"""
Lazy query results for Melodi.

A QueryReader wraps the backend cursor of one execution. Nothing is fetched
until the reader is iterated or drained with to_result_set(), which applies
the row limit and adapts raw SQLite values into the query-language view:

    - Adjacent "X.Id" / "X.RelECClassId" columns fold into one navigation
      column named "X" whose value is {"Id": "0x..", "RelECClassId": "0x.."}
    - Binary values become {"bytes": <length>} when blobs are abbreviated
    - Each column's type is inferred from its first non-null value
    - Columns named *Json / *JsonProperties carry extended type "Json"
"""

import logging
import sqlite3
from typing import Any, Iterator

from melodi.errors import QueryError
from melodi.schema import ColumnMeta, QueryOptions, ResultSet

logger = logging.getLogger(__name__)

NAVIGATION_ID_SUFFIX = ".Id"
NAVIGATION_CLASS_SUFFIX = ".RelECClassId"
JSON_NAME_SUFFIXES = ("json", "jsonproperties")


def to_hex_id(value: Any) -> str | None:
    """Render an id the way the query language does (0x-prefixed hex)."""
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return hex(value)
    return str(value)


def infer_type_name(value: Any) -> str:
    """Map a Python value to a query-language type name."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "binary"
    if isinstance(value, dict):
        if set(value) == {"bytes"}:
            return "binary"
        if "RelECClassId" in value:
            return "navigation"
    return "string"


class QueryReader:
    """
    Cursor over the rows of one statement.

    Usage:
        reader = handle.execute("SELECT * FROM bis_Element;", options=options)
        result = reader.to_result_set()
    """

    def __init__(
        self,
        cursor: sqlite3.Cursor,
        query: str,
        options: QueryOptions | None = None,
    ) -> None:
        self.query = query
        self.options = options or QueryOptions()
        self._cursor: sqlite3.Cursor | None = cursor
        names = [d[0] for d in cursor.description] if cursor.description else []
        self._names = names
        self._layout = self._plan_navigation(names)

    @property
    def column_names(self) -> list[str]:
        """Output column names after navigation folding."""
        return [name for name, _ in self._layout]

    @staticmethod
    def _plan_navigation(names: list[str]) -> list[tuple[str, tuple[int, ...]]]:
        """Group raw column indexes into output columns."""
        layout: list[tuple[str, tuple[int, ...]]] = []
        i = 0
        while i < len(names):
            name = names[i]
            if (
                name.endswith(NAVIGATION_ID_SUFFIX)
                and i + 1 < len(names)
                and names[i + 1] == name[: -len(NAVIGATION_ID_SUFFIX)] + NAVIGATION_CLASS_SUFFIX
            ):
                layout.append((name[: -len(NAVIGATION_ID_SUFFIX)], (i, i + 1)))
                i += 2
                continue
            layout.append((name, (i,)))
            i += 1
        return layout

    def _adapt_row(self, raw: tuple[Any, ...]) -> list[Any]:
        row: list[Any] = []
        for _, indexes in self._layout:
            if len(indexes) == 2:
                row.append({
                    "Id": to_hex_id(raw[indexes[0]]),
                    "RelECClassId": to_hex_id(raw[indexes[1]]),
                })
                continue
            value = raw[indexes[0]]
            if self.options.abbreviate_blobs and isinstance(value, (bytes, bytearray, memoryview)):
                value = {"bytes": len(value)}
            row.append(value)
        return row

    def __iter__(self) -> Iterator[list[Any]]:
        """Yield adapted rows up to the configured limit."""
        if self._cursor is None:
            return
        limit = self.options.limit
        count = 0
        try:
            while limit is None or count < limit:
                raw = self._cursor.fetchone()
                if raw is None:
                    break
                count += 1
                yield self._adapt_row(tuple(raw))
        except sqlite3.Error as e:
            raise QueryError(query=self.query, underlying_error=str(e)) from e
        finally:
            self.close()

    def to_result_set(self) -> ResultSet:
        """
        Drain the reader into a ResultSet.

        Raises:
            QueryError: If the backend fails while stepping the statement
        """
        rows = list(self)
        columns = []
        for position, (name, indexes) in enumerate(self._layout):
            if len(indexes) == 2:
                columns.append(ColumnMeta(name=name, type_name="navigation"))
                continue
            type_name = "string"
            for row in rows:
                if row[position] is not None:
                    type_name = infer_type_name(row[position])
                    break
            extended = "Json" if name.lower().endswith(JSON_NAME_SUFFIXES) else None
            columns.append(ColumnMeta(name=name, type_name=type_name, extended_type=extended))

        logger.debug("Drained %d row(s), %d column(s)", len(rows), len(columns))
        return ResultSet(columns=columns, rows=rows)

    def close(self) -> None:
        """Release the backend cursor. Safe to call more than once."""
        if self._cursor is not None:
            try:
                self._cursor.close()
            except sqlite3.Error:
                logger.debug("Cursor already released", exc_info=True)
            self._cursor = None
