"""
Query history for the console.

QueryHistory keeps the last 10 distinct statements, each collapsed to a
single line. HistoryStore persists the histories of all files in one JSON
document (commandHistory.json) in the cache directory, keyed by the
resolved path of the database file.

Example:
    store = HistoryStore(config.cache_dir)
    history = QueryHistory(store.load(db_path), on_change=store.bind(db_path))
    history.push("SELECT *\n  FROM ec_Class;")   # saved as "SELECT * FROM ec_Class;"
"""

import json
import logging
from pathlib import Path
from typing import Callable, Iterator

from pydantic import ValidationError

from melodi import __version__
from melodi.errors import ERROR_HISTORY_WRITE, HistoryStoreError
from melodi.schema import CommandCache

logger = logging.getLogger(__name__)

MAX_HISTORY = 10
HISTORY_FILE_NAME = "commandHistory.json"


def normalize_query(text: str) -> str:
    """Collapse newlines and whitespace runs into single spaces."""
    return " ".join(text.split())


class QueryHistory:
    """
    Bounded list of prior statements, oldest first.

    Attributes:
        on_change: Called with the new entry list after each insertion
    """

    def __init__(
        self,
        entries: list[str] | None = None,
        on_change: Callable[[list[str]], None] | None = None,
    ) -> None:
        self._entries: list[str] = []
        for entry in entries or []:
            normalized = normalize_query(entry)
            if normalized and normalized not in self._entries:
                self._entries.append(normalized)
        del self._entries[:-MAX_HISTORY]
        self.on_change = on_change

    def push(self, text: str) -> bool:
        """
        Record a statement.

        Returns:
            True if the entry was added, False if it was empty or already present
        """
        normalized = normalize_query(text)
        if not normalized or normalized in self._entries:
            return False

        self._entries.append(normalized)
        del self._entries[:-MAX_HISTORY]
        if self.on_change is not None:
            self.on_change(self.to_list())
        return True

    def to_list(self) -> list[str]:
        """Entries, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_list())


class HistoryStore:
    """
    JSON file holding the query history of every opened file.

    Usage:
        store = HistoryStore(Path("~/.config/melodi").expanduser())
        entries = store.load("model.bim")
        store.save("model.bim", entries + ["SELECT 1;"])
    """

    def __init__(self, cache_dir: Path | str) -> None:
        self.cache_dir = Path(cache_dir)

    @property
    def path(self) -> Path:
        return self.cache_dir / HISTORY_FILE_NAME

    @staticmethod
    def key_for(db_path: Path | str) -> str:
        return str(Path(db_path).resolve())

    def _read(self) -> CommandCache:
        if not self.path.exists():
            return CommandCache(melodi_version=__version__)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return CommandCache.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            raise HistoryStoreError(history_path=str(self.path), underlying_error=str(e)) from e

    def _write(self, cache: CommandCache) -> None:
        cache.melodi_version = __version__
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.path.write_text(cache.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise HistoryStoreError(
                history_path=str(self.path),
                underlying_error=str(e),
                code=ERROR_HISTORY_WRITE,
            ) from e

    def load(self, db_path: Path | str) -> list[str]:
        """History for one file, oldest first."""
        return list(self._read().histories.get(self.key_for(db_path), []))

    def save(self, db_path: Path | str, entries: list[str]) -> None:
        """Replace the history for one file."""
        cache = self._read()
        cache.histories[self.key_for(db_path)] = list(entries)
        self._write(cache)
        logger.debug("Saved %d history entries for %s", len(entries), db_path)

    def clear(self, db_path: Path | str) -> bool:
        """Forget the history for one file. Returns True if there was any."""
        cache = self._read()
        removed = cache.histories.pop(self.key_for(db_path), None)
        if removed is None:
            return False
        self._write(cache)
        return True

    def bind(self, db_path: Path | str) -> Callable[[list[str]], None]:
        """Callback saving a QueryHistory for db_path whenever it changes."""

        def save(entries: list[str]) -> None:
            self.save(db_path, entries)

        return save
