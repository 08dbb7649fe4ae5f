"""
Unified database handle for Melodi.

A DatabaseHandle is one open session against one SQLite-based file. The
concrete backend kind (StoreKind) is chosen once by open_database() and
decides which operations the handle supports:

    Kind            Query  Schemas  Sync   Notes
    read_write      yes    yes      no     ECDb, writable
    read_only       yes    yes      no     ECDb, opened with mode=ro
    transactional   yes    yes      no     standalone iModel, exclusive lock
    local_synced    yes    yes      yes    briefcase, exclusive lock
    raw             no     no       no     any other SQLite file

Capabilities are plain data fixed at construction, so callers check
handle.supports_query_language instead of inspecting backend types.

Lifecycle:
    handle = open_database("model.bim", mode=OpenMode.READONLY)
    try:
        result = handle.execute("SELECT Name FROM ec_Schema;").to_result_set()
    finally:
        handle.close()

Or as a context manager:
    with open_database("model.bim", mode=OpenMode.READONLY) as handle:
        ...
"""

import logging
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Sequence

from melodi.db.reader import QueryReader
from melodi.errors import (
    ERROR_OPEN_NOT_FOUND,
    ERROR_OPEN_NOT_READABLE,
    ERROR_OPEN_UNRECOGNIZED_FORMAT,
    DatabaseCloseError,
    DatabaseOpenError,
    HandleClosedError,
    QueryError,
    QueryNotSupportedError,
)
from melodi.schema import Capabilities, OpenMode, QueryOptions, ResultSet, StoreKind

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"
ECDB_SUFFIX = ".ecdb"

CAPABILITIES: dict[StoreKind, Capabilities] = {
    StoreKind.READ_WRITE: Capabilities(
        supports_query_language=True,
        supports_schema_introspection=True,
    ),
    StoreKind.READ_ONLY: Capabilities(
        supports_query_language=True,
        supports_schema_introspection=True,
    ),
    StoreKind.TRANSACTIONAL: Capabilities(
        supports_query_language=True,
        supports_schema_introspection=True,
    ),
    StoreKind.LOCAL_SYNCED: Capabilities(
        supports_query_language=True,
        supports_schema_introspection=True,
        supports_incremental_sync=True,
    ),
    StoreKind.RAW: Capabilities(),
}

# Kinds that hold an exclusive file lock while open
LOCKING_KINDS = frozenset({StoreKind.TRANSACTIONAL, StoreKind.LOCAL_SYNCED})

ECDB_KINDS = frozenset({StoreKind.READ_WRITE, StoreKind.READ_ONLY})

ECDB_MODES = [OpenMode.READONLY, OpenMode.READWRITE, OpenMode.FILE_UPGRADE]
DEFAULT_MODES = [OpenMode.READONLY, OpenMode.READWRITE]

SCHEMAS_QUERY = (
    "SELECT Name, Alias, VersionDigit1 || '.' || VersionDigit2 || '.' || VersionDigit3 AS Version "
    "FROM ec_Schema ORDER BY Name"
)


class Cancelled(Enum):
    """Returned instead of a handle when the user aborts the open prompt."""

    CANCELLED = "cancelled"


CANCELLED = Cancelled.CANCELLED

ModeSelector = Callable[[Sequence[OpenMode]], OpenMode | None]


class DatabaseHandle:
    """
    One open session against a database file.

    Capability getters and is_open/is_read_only are pure and may be read
    at any time. Every other operation except close() requires an open
    handle and raises HandleClosedError otherwise.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        kind: StoreKind,
        path: Path,
        read_only: bool,
        mode: OpenMode = OpenMode.READONLY,
    ) -> None:
        self._conn: sqlite3.Connection | None = conn
        self._kind = kind
        self._path = path
        self._read_only = read_only
        self._mode = mode
        self._capabilities = CAPABILITIES[kind]

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"DatabaseHandle(kind={self._kind.value}, path={str(self._path)!r}, {state})"

    # =========================================================================
    # Pure queries
    # =========================================================================

    @property
    def kind(self) -> StoreKind:
        return self._kind

    @property
    def path(self) -> Path:
        return self._path

    @property
    def mode(self) -> OpenMode:
        return self._mode

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def is_read_only(self) -> bool:
        return self._read_only

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    @property
    def supports_query_language(self) -> bool:
        return self._capabilities.supports_query_language

    @property
    def supports_schema_introspection(self) -> bool:
        return self._capabilities.supports_schema_introspection

    @property
    def supports_incremental_sync(self) -> bool:
        return self._capabilities.supports_incremental_sync

    # =========================================================================
    # Operations
    # =========================================================================

    def _require_open(self, operation: str) -> sqlite3.Connection:
        if self._conn is None:
            raise HandleClosedError(operation=operation)
        return self._conn

    def execute(
        self,
        query: str,
        params: Sequence[Any] | dict[str, Any] | None = None,
        options: QueryOptions | None = None,
    ) -> QueryReader:
        """
        Execute a statement and return a lazy reader over its rows.

        Args:
            query: Statement text
            params: Values bound to the statement's placeholders
            options: Row limit and blob abbreviation

        Returns:
            QueryReader; call to_result_set() to drain it

        Raises:
            HandleClosedError: If the handle is closed
            QueryError: If the kind has no query language or the statement fails
        """
        conn = self._require_open("execute")
        if not self.supports_query_language:
            raise QueryNotSupportedError(query=query, kind=self._kind.value)

        try:
            cursor = conn.execute(query, params if params is not None else ())
        except (sqlite3.Error, sqlite3.Warning, UnicodeEncodeError) as e:
            raise QueryError(query=query, underlying_error=str(e)) from e

        return QueryReader(cursor, query, options)

    def schemas(self) -> ResultSet:
        """
        List the schemas stored in the file.

        Raises:
            HandleClosedError: If the handle is closed
            QueryNotSupportedError: If the kind has no schema tables
        """
        self._require_open("list schemas of")
        if not self.supports_schema_introspection:
            raise QueryNotSupportedError(query=SCHEMAS_QUERY, kind=self._kind.value)
        return self.execute(SCHEMAS_QUERY).to_result_set()

    def close(self) -> None:
        """
        Close the handle, committing pending changes on writable kinds.

        Idempotent. The connection (and any exclusive lock it holds) is
        released even when the commit fails.

        Raises:
            DatabaseCloseError: If pending changes could not be committed
        """
        if self._conn is None:
            return

        conn, self._conn = self._conn, None
        try:
            if not self._read_only and conn.in_transaction:
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseCloseError(db_path=str(self._path), underlying_error=str(e)) from e
        finally:
            conn.close()
            logger.info("Closed %s (%s)", self._path, self._kind.value)

    def __enter__(self) -> "DatabaseHandle":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()


# =============================================================================
# Opening
# =============================================================================


def _check_file(path: Path) -> None:
    """Verify that path is a readable SQLite container."""
    if not path.is_file():
        raise DatabaseOpenError(
            db_path=str(path),
            code=ERROR_OPEN_NOT_FOUND,
            message=f"File not found: {path}",
        )
    try:
        with path.open("rb") as f:
            header = f.read(len(SQLITE_HEADER))
    except OSError as e:
        raise DatabaseOpenError(
            db_path=str(path),
            code=ERROR_OPEN_NOT_READABLE,
            underlying_error=str(e),
            message=f"File is not readable: {path}",
        ) from e
    if header != SQLITE_HEADER:
        raise DatabaseOpenError(
            db_path=str(path),
            code=ERROR_OPEN_UNRECOGNIZED_FORMAT,
            message=f"Not a recognized database file: {path}",
            suggestion="Melodi opens .bim, .ecdb and other SQLite files",
        )


def _connect(path: Path, read_only: bool) -> sqlite3.Connection:
    """Open a connection and make sure the file is a usable database."""
    try:
        if read_only:
            conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        else:
            conn = sqlite3.connect(str(path))
    except sqlite3.Error as e:
        raise DatabaseOpenError(db_path=str(path), underlying_error=str(e)) from e

    try:
        conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
    except sqlite3.Error as e:
        conn.close()
        raise DatabaseOpenError(db_path=str(path), underlying_error=str(e)) from e
    return conn


def _table_names(path: Path) -> set[str]:
    conn = _connect(path, read_only=True)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        return {row[0] for row in rows}
    finally:
        conn.close()


def _parent_changeset_id(path: Path) -> str | None:
    conn = _connect(path, read_only=True)
    try:
        row = conn.execute(
            "SELECT Val FROM be_Local WHERE Name = 'ParentChangeSetId' LIMIT 1"
        ).fetchone()
    except sqlite3.Error:
        return None
    finally:
        conn.close()
    if row is None or not row[0]:
        return None
    return str(row[0])


def is_ecdb_file(path: Path | str) -> bool:
    """True if the file carries ECDb schema tables."""
    return "ec_Schema" in _table_names(Path(path))


def detect_store_kind(path: Path | str, mode: OpenMode = OpenMode.READONLY) -> StoreKind:
    """
    Pick the backend kind for a file from its content.

    Args:
        path: Database file
        mode: Open mode, which splits ECDb files into read_only/read_write

    Returns:
        The StoreKind to open the file with
    """
    path = Path(path)
    tables = _table_names(path)
    if "ec_Schema" not in tables:
        return StoreKind.RAW
    if path.suffix.lower() == ECDB_SUFFIX:
        return StoreKind.READ_ONLY if mode == OpenMode.READONLY else StoreKind.READ_WRITE
    if "be_Local" in tables and _parent_changeset_id(path):
        return StoreKind.LOCAL_SYNCED
    return StoreKind.TRANSACTIONAL


def mode_choices(path: Path | str, kind: StoreKind | None = None) -> list[OpenMode]:
    """Open modes offered for a file; only ECDb files can be upgraded."""
    if kind == StoreKind.READ_ONLY:
        return [OpenMode.READONLY]
    if kind == StoreKind.READ_WRITE:
        return [OpenMode.READWRITE, OpenMode.FILE_UPGRADE]
    if kind is None and Path(path).suffix.lower() == ECDB_SUFFIX and is_ecdb_file(path):
        return list(ECDB_MODES)
    return list(DEFAULT_MODES)


def open_database(
    path: Path | str,
    kind: StoreKind | None = None,
    mode: OpenMode | None = None,
    select_mode: ModeSelector | None = None,
) -> DatabaseHandle | Cancelled:
    """
    Open a database file.

    Args:
        path: File to open
        kind: Backend kind (detected from the file if not given)
        mode: Open mode (asked through select_mode if not given)
        select_mode: Prompt returning the chosen mode, or None when aborted.
                     Without a prompt the first offered mode (read-only) is used.

    Returns:
        An open DatabaseHandle, or CANCELLED if the prompt was aborted

    Raises:
        DatabaseOpenError: If the file is missing, unreadable, not a
                           database, or the kind/mode combination is invalid
    """
    path = Path(path)
    _check_file(path)

    if mode is None:
        choices = mode_choices(path, kind)
        if select_mode is None or len(choices) == 1:
            mode = choices[0]
        else:
            mode = select_mode(choices)
            if mode is None:
                logger.debug("Open of %s cancelled at mode prompt", path)
                return CANCELLED

    if kind is None:
        kind = detect_store_kind(path, mode)

    if mode == OpenMode.FILE_UPGRADE and kind not in ECDB_KINDS:
        raise DatabaseOpenError(
            db_path=str(path),
            message=f"File upgrade is only available for ECDb files, not {kind.value} stores",
        )
    if kind == StoreKind.READ_ONLY and mode != OpenMode.READONLY:
        raise DatabaseOpenError(
            db_path=str(path),
            message=f"A read_only store cannot be opened in {mode.value} mode",
        )
    if kind == StoreKind.READ_WRITE and mode == OpenMode.READONLY:
        raise DatabaseOpenError(
            db_path=str(path),
            message="A read_write store cannot be opened in readonly mode",
            suggestion="Use the read_only kind for read-only access",
        )

    read_only = mode == OpenMode.READONLY
    conn = _connect(path, read_only)
    if kind in LOCKING_KINDS and not read_only:
        try:
            conn.execute("PRAGMA locking_mode = EXCLUSIVE").fetchone()
            # The lock is taken on first access
            conn.execute("BEGIN EXCLUSIVE")
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.close()
            raise DatabaseOpenError(
                db_path=str(path),
                underlying_error=str(e),
                suggestion="Another process may have the file open",
            ) from e

    if mode == OpenMode.FILE_UPGRADE:
        logger.info("No file format upgrade needed for %s; opened read-write", path)

    logger.info("Opened %s as %s (%s)", path, kind.value, mode.value)
    return DatabaseHandle(conn, kind, path, read_only, mode)
