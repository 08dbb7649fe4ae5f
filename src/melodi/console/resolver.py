"""
Class name lookup for navigation values.

Navigation cells carry the id of the relationship class they point through.
ReferenceResolver turns that id into the class name, querying the open
handle once per id and remembering the answer (including misses) for the
rest of the console session.
"""

import logging

from melodi.db.handle import DatabaseHandle
from melodi.errors import QueryError

logger = logging.getLogger(__name__)

UNKNOWN_CLASS = "UnknownClass"
CLASS_NAME_QUERY = "SELECT Name FROM ec_Class WHERE Id = ? LIMIT 1"


def parse_id(value: str) -> int | None:
    """Parse a 0x-prefixed hex id (or a decimal id) into an integer."""
    text = value.strip().lower()
    try:
        if text.startswith("0x"):
            return int(text, 16)
        return int(text)
    except ValueError:
        return None


class ReferenceResolver:
    """
    Memoized class id → class name lookup.

    Each id is resolved at most once; the cache is write-once per key.

    Attributes:
        cache: Resolved names keyed by the id text as it appeared in the cell
    """

    def __init__(self, handle: DatabaseHandle, cache: dict[str, str] | None = None) -> None:
        self.handle = handle
        self.cache: dict[str, str] = cache if cache is not None else {}

    def resolve(self, class_id: str) -> str:
        """
        Return the class name for an id, or "UnknownClass".

        Never raises for ids that do not resolve; a closed handle is a
        programming error and propagates.
        """
        if class_id in self.cache:
            return self.cache[class_id]

        name = self._lookup(class_id)
        self.cache[class_id] = name
        return name

    def _lookup(self, class_id: str) -> str:
        numeric_id = parse_id(class_id)
        if numeric_id is None:
            logger.debug("Unparseable class id %r", class_id)
            return UNKNOWN_CLASS

        try:
            result = self.handle.execute(CLASS_NAME_QUERY, (numeric_id,)).to_result_set()
        except QueryError as e:
            logger.debug("Class lookup for %s failed: %s", class_id, e.underlying_error)
            return UNKNOWN_CLASS

        if not result.rows or not result.rows[0][0]:
            return UNKNOWN_CLASS
        logger.debug("Resolved class %s to %s", class_id, result.rows[0][0])
        return str(result.rows[0][0])
