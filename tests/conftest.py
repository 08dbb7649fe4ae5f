"""
Pytest configuration and fixtures for Melodi tests.

This module provides shared fixtures used across unit and integration
tests: small SQLite files shaped like ECDb files, iModels, briefcases and
plain SQLite databases, plus a scripted line source for the console.
"""

import sqlite3
import tempfile
from io import StringIO
from pathlib import Path
from typing import Callable, Generator

import pytest
from rich.console import Console

from melodi.config import LogLevel
from melodi.logs import configure_logging

ELEMENT_CLASS_ID = 0x41
PARENT_REL_CLASS_ID = 0x40

ECDB_SCHEMA_SQL = """
CREATE TABLE ec_Schema (
    Id INTEGER PRIMARY KEY,
    Name TEXT NOT NULL,
    Alias TEXT NOT NULL,
    VersionDigit1 INTEGER NOT NULL,
    VersionDigit2 INTEGER NOT NULL,
    VersionDigit3 INTEGER NOT NULL
);
CREATE TABLE ec_Class (
    Id INTEGER PRIMARY KEY,
    SchemaId INTEGER NOT NULL,
    Name TEXT NOT NULL
);
CREATE TABLE bis_Element (
    Id INTEGER PRIMARY KEY,
    ECClassId INTEGER NOT NULL,
    CodeValue TEXT,
    ParentId INTEGER,
    ParentRelECClassId INTEGER,
    JsonProperties TEXT,
    GeometryStream BLOB,
    Area REAL
);
INSERT INTO ec_Schema VALUES (1, 'ECDbMeta', 'meta', 4, 0, 1);
INSERT INTO ec_Schema VALUES (2, 'BisCore', 'bis', 1, 0, 16);
INSERT INTO ec_Class VALUES (64, 2, 'ElementOwnsChildElements');
INSERT INTO ec_Class VALUES (65, 2, 'PhysicalElement');
"""


def _create_ecdb(path: Path, element_count: int) -> Path:
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(ECDB_SCHEMA_SQL)
        for i in range(1, element_count + 1):
            parent = i - 1 if i > 1 else None
            conn.execute(
                "INSERT INTO bis_Element VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    i,
                    ELEMENT_CLASS_ID,
                    f"Element-{i}",
                    parent,
                    PARENT_REL_CLASS_ID if parent else None,
                    '{"category": "walls", "index": %d}' % i,
                    b"\x00\x01\x02\x03",
                    i * 1.5,
                ),
            )
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture(autouse=True)
def quiet_logging() -> None:
    """Keep the melodi logger silent unless a test configures it."""
    configure_logging(LogLevel.NONE)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_ecdb(temp_dir: Path) -> Callable[..., Path]:
    """Factory for ECDb-shaped files with a given number of elements."""

    def make(name: str = "test.ecdb", element_count: int = 3) -> Path:
        return _create_ecdb(temp_dir / name, element_count)

    return make


@pytest.fixture
def ecdb_path(make_ecdb: Callable[..., Path]) -> Path:
    """An .ecdb file with three elements."""
    return make_ecdb()


@pytest.fixture
def bim_path(make_ecdb: Callable[..., Path]) -> Path:
    """A standalone iModel (.bim without a parent changeset)."""
    return make_ecdb("standalone.bim")


@pytest.fixture
def briefcase_path(make_ecdb: Callable[..., Path]) -> Path:
    """A briefcase: an iModel that records its parent changeset."""
    path = make_ecdb("briefcase.bim")
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("CREATE TABLE be_Local (Name TEXT PRIMARY KEY, Val BLOB)")
        conn.execute("INSERT INTO be_Local VALUES ('ParentChangeSetId', 'a1b2c3')")
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def raw_path(temp_dir: Path) -> Path:
    """A plain SQLite file without ECDb tables."""
    path = temp_dir / "plain.db"
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
        conn.execute("INSERT INTO notes (body) VALUES ('hello')")
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def text_path(temp_dir: Path) -> Path:
    """A file that is not a database."""
    path = temp_dir / "readme.bim"
    path.write_text("This is not a database file, just some text.")
    return path


class ScriptedLineSource:
    """
    LineSource replaying a fixed script.

    Items are lines, or exception classes (KeyboardInterrupt, EOFError) to
    raise at that point. An exhausted script raises EOFError.
    """

    def __init__(self, script: list) -> None:
        self.script = list(script)
        self.prompts: list[str] = []
        self.histories: list[list[str]] = []

    def set_history(self, entries: list[str]) -> None:
        self.histories.append(list(entries))

    def read_line(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.script:
            raise EOFError
        item = self.script.pop(0)
        if isinstance(item, type) and issubclass(item, BaseException):
            raise item()
        return item


@pytest.fixture
def scripted() -> Callable[[list], ScriptedLineSource]:
    """Factory for scripted line sources."""
    return ScriptedLineSource


@pytest.fixture
def output() -> StringIO:
    """Buffer receiving console output."""
    return StringIO()


@pytest.fixture
def test_console(output: StringIO) -> Console:
    """Plain 120-column Rich console writing to the output buffer."""
    return Console(file=output, width=120, color_system=None, force_terminal=False)
