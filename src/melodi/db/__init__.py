"""
Database access layer for Melodi.

This module hides the differences between the supported file kinds behind
one DatabaseHandle:
    - ECDb files (read-only or read-write)
    - Standalone iModels (transactional, exclusively locked)
    - Briefcases (local copies synced with a remote changeset history)
    - Plain SQLite files (no query language, no schemas)

Example:
    from melodi.db import open_database
    from melodi.schema import OpenMode, QueryOptions

    with open_database("model.bim", mode=OpenMode.READONLY) as handle:
        reader = handle.execute("SELECT * FROM ec_Class;", options=QueryOptions(limit=10))
        result = reader.to_result_set()
"""

from melodi.db.handle import (
    CANCELLED,
    CAPABILITIES,
    Cancelled,
    DatabaseHandle,
    detect_store_kind,
    mode_choices,
    open_database,
)
from melodi.db.reader import QueryReader

__all__ = [
    "CANCELLED",
    "CAPABILITIES",
    "Cancelled",
    "DatabaseHandle",
    "QueryReader",
    "detect_store_kind",
    "mode_choices",
    "open_database",
]
