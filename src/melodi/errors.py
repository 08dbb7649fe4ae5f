"""
Exception hierarchy for Melodi.

All Melodi exceptions inherit from MelodiError, allowing callers to catch
all Melodi-specific exceptions with a single except clause.

Exception Categories:
    - DatabaseIOError: A file could not be opened or closed as a database
      (DatabaseOpenError, DatabaseCloseError)
    - HandleClosedError: An operation was attempted on a closed handle
    - QueryError: A statement was rejected or failed during execution
    - HistoryStoreError: The query history file could not be read or written
    - ConfigError: The configuration file is invalid

Not errors:
    - Cancelling a prompt is reported through the CANCELLED sentinel
      (see melodi.db.handle) or a False return from the console.
    - An unresolvable class id is cached and shown as "UnknownClass".
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Handle errors: 1xxx
ERROR_OPEN_NOT_FOUND = 1001
ERROR_OPEN_NOT_READABLE = 1002
ERROR_OPEN_UNRECOGNIZED_FORMAT = 1003
ERROR_OPEN_FAILED = 1004
ERROR_HANDLE_CLOSED = 1005
ERROR_CLOSE_FAILED = 1006

# Query errors: 2xxx
ERROR_QUERY_FAILED = 2001
ERROR_QUERY_NOT_SUPPORTED = 2002

# History errors: 3xxx
ERROR_HISTORY_READ = 3001
ERROR_HISTORY_WRITE = 3002

# Config errors: 4xxx
ERROR_CONFIG_INVALID = 4001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class MelodiError(Exception):
    """
    Base exception for all Melodi errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Handle Errors
# =============================================================================


@dataclass
class DatabaseIOError(MelodiError):
    """
    Base class for errors opening or closing a database file.

    Surfaced to the user and never retried automatically.

    Attributes:
        db_path: Path of the database file
        underlying_error: Message from the backend, if any
    """

    db_path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "db_path": self.db_path,
            "underlying_error": self.underlying_error,
        })


@dataclass
class DatabaseOpenError(DatabaseIOError):
    """
    Raised when a file cannot be opened as a database.

    Covers missing files, permission problems, files that are not SQLite
    containers, and backend refusals.
    """

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to open database: {self.db_path}"
            if self.underlying_error:
                self.message += f" ({self.underlying_error})"
        if self.code == 0:
            self.code = ERROR_OPEN_FAILED
        super().__post_init__()


@dataclass
class DatabaseCloseError(DatabaseIOError):
    """Raised when pending changes cannot be committed while closing."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to close database: {self.db_path} ({self.underlying_error})"
        if self.code == 0:
            self.code = ERROR_CLOSE_FAILED
        super().__post_init__()


@dataclass
class HandleClosedError(MelodiError):
    """
    Raised when an operation other than close() runs on a closed handle.

    This is a programming error and is never retried.
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot {self.operation or 'use'} a closed database handle"
        if self.code == 0:
            self.code = ERROR_HANDLE_CLOSED
        self.context["operation"] = self.operation


# =============================================================================
# Query Errors
# =============================================================================


@dataclass
class QueryError(MelodiError):
    """
    Raised when a statement is rejected or fails during execution.

    Recovered by the console: the statement and message are printed and the
    loop continues.

    Attributes:
        query: The original statement text
        underlying_error: Message from the backend
    """

    query: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Query failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_QUERY_FAILED
        self.context.update({
            "query": self.query,
            "underlying_error": self.underlying_error,
        })


@dataclass
class QueryNotSupportedError(QueryError):
    """Raised when the handle's backend cannot run the query language."""

    kind: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.underlying_error:
            self.underlying_error = f"{self.kind or 'this'} store does not support the query language"
        if not self.message:
            self.message = f"Query language is not supported by {self.kind or 'this'} store"
        if self.code == 0:
            self.code = ERROR_QUERY_NOT_SUPPORTED
        if not self.suggestion:
            self.suggestion = "Open the file as an ECDb or iModel store instead of a raw SQLite store"
        super().__post_init__()
        self.context["kind"] = self.kind


# =============================================================================
# History Errors
# =============================================================================


@dataclass
class HistoryStoreError(MelodiError):
    """
    Raised when the persisted query history cannot be read or written.

    Attributes:
        history_path: Path of the history file
        underlying_error: Message from the failed operation
    """

    history_path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Query history unavailable: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_HISTORY_READ
        self.context.update({
            "history_path": self.history_path,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(MelodiError):
    """Raised when the configuration file cannot be parsed or validated."""

    config_path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration in {self.config_path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        if not self.suggestion:
            self.suggestion = "Fix or remove the configuration file"
        self.context.update({
            "config_path": self.config_path,
            "underlying_error": self.underlying_error,
        })
