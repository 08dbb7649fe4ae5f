"""
Schema definitions for Melodi.

This module defines the Pydantic models and enums shared by the database
layer and the console:
- StoreKind/OpenMode/Capabilities: What kind of file is open and what it can do
- ColumnMeta/ResultSet: Materialized query output
- QueryOptions: Per-execution limits
- FormattedValue: Display text for one cell
- CommandCache: The persisted query history file

Design Decisions:
    - Models that describe a fixed fact (capabilities, column metadata) are frozen
    - ResultSet validates that every row matches the column count
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================


class StoreKind(str, Enum):
    """
    The backend variant behind a DatabaseHandle.

    READ_WRITE and READ_ONLY are ECDb files, TRANSACTIONAL is a standalone
    iModel, LOCAL_SYNCED is a briefcase that tracks a remote changeset, and
    RAW is any other SQLite file.
    """

    READ_WRITE = "read_write"
    READ_ONLY = "read_only"
    TRANSACTIONAL = "transactional"
    LOCAL_SYNCED = "local_synced"
    RAW = "raw"


class OpenMode(str, Enum):
    """How a file is opened."""

    READONLY = "readonly"
    READWRITE = "readwrite"
    FILE_UPGRADE = "file_upgrade"


OPEN_MODE_LABELS: dict[OpenMode, str] = {
    OpenMode.READONLY: "Open in read-only mode",
    OpenMode.READWRITE: "Open in read-write mode",
    OpenMode.FILE_UPGRADE: (
        "Open the file in read-write mode and upgrade it to the latest "
        "file format version if necessary."
    ),
}


# =============================================================================
# Handle Models
# =============================================================================


class Capabilities(BaseModel):
    """Operations a backend kind supports. Fixed for the handle's lifetime."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    supports_query_language: bool = False
    supports_schema_introspection: bool = False
    supports_incremental_sync: bool = False


# =============================================================================
# Result Models
# =============================================================================


class ColumnMeta(BaseModel):
    """
    Metadata for one result column.

    Attributes:
        name: Column name as reported by the statement
        type_name: Query-language type (long, double, string, navigation, ...)
        extended_type: Optional refinement such as "Json"
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    type_name: str = "string"
    extended_type: str | None = None

    @property
    def display_type(self) -> str:
        """Type shown in the table header."""
        return self.extended_type or self.type_name


class ResultSet(BaseModel):
    """
    Rows and column metadata drained from one execution.

    Every row holds exactly one value per column.
    """

    model_config = ConfigDict(extra="forbid")

    columns: list[ColumnMeta] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_row_lengths(self) -> "ResultSet":
        """Reject rows that do not match the column count."""
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                msg = f"Row {index} has {len(row)} values, expected {width}"
                raise ValueError(msg)
        return self


class QueryOptions(BaseModel):
    """
    Options for a single execution.

    Attributes:
        limit: Maximum rows to materialize (None = all)
        abbreviate_blobs: Replace binary values with {"bytes": <length>}
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int | None = Field(default=None, ge=1)
    abbreviate_blobs: bool = False


class FormattedValue(BaseModel):
    """Display text for a cell, plus a hint for syntax highlighting."""

    model_config = ConfigDict(frozen=True)

    text: str
    detected_kind: str | None = None


# =============================================================================
# Persisted History
# =============================================================================


class CommandCache(BaseModel):
    """
    Contents of the query history file.

    Attributes:
        melodi_version: Version that last wrote the file
        histories: Query history per resolved database path
    """

    model_config = ConfigDict(extra="ignore")

    melodi_version: str = ""
    histories: dict[str, list[str]] = Field(default_factory=dict)
