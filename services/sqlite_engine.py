"""SQLite access for uploaded backups and generated databases.

Uploaded bytes are spooled into a private temporary directory and opened
read-only; generated databases are built in a temporary file and read back as
bytes once committed.  Both kinds of handle clean up their spool when closed.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .music_library import ColumnInfo, TableInfo

LOGGER = logging.getLogger(__name__)

SQLITE_SIGNATURE = b"SQLite format 3\x00"


class StoreError(RuntimeError):
    """Raised when a database image cannot be opened or produced."""


def _quote_identifier(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


class SqliteImage:
    """Read-only view over an uploaded SQLite file."""

    def __init__(self, connection: sqlite3.Connection, spool_dir: Path):
        self.connection = connection
        self._spool_dir = spool_dir
        self._closed = False

    def __enter__(self) -> "SqliteImage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def list_tables(self) -> List[str]:
        cursor = self.connection.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY rowid"
        )
        names = []
        for (name,) in cursor.fetchall():
            if not name or str(name).lower().startswith("sqlite_"):
                continue
            names.append(str(name))
        return names

    def table_columns(self, table_name: str) -> List[ColumnInfo]:
        cursor = self.connection.execute(f"PRAGMA table_info({_quote_identifier(table_name)})")
        return [ColumnInfo(name=str(row[1]), type=str(row[2] or "UNKNOWN")) for row in cursor.fetchall()]

    def row_count(self, table_name: str) -> int:
        cursor = self.connection.execute(f"SELECT COUNT(*) FROM {_quote_identifier(table_name)}")
        return int(cursor.fetchone()[0])

    def describe_table(self, table_name: str) -> TableInfo:
        return TableInfo(
            name=table_name,
            columns=self.table_columns(table_name),
            row_count=self.row_count(table_name),
        )

    def read_table(self, table_name: str) -> List[Dict[str, Any]]:
        """Return every row of ``table_name`` as a column-name keyed dict.

        Errors propagate; callers decide whether a failing table is fatal.
        """

        cursor = self.connection.execute(f"SELECT * FROM {_quote_identifier(table_name)}")
        columns = [description[0] for description in cursor.description or ()]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.connection.close()
        finally:
            shutil.rmtree(self._spool_dir, ignore_errors=True)


class ImageBuilder:
    """Writable database that is turned into bytes by :meth:`export`."""

    def __init__(self, connection: sqlite3.Connection, path: Path, spool_dir: Path):
        self.connection = connection
        self._path = path
        self._spool_dir = spool_dir
        self._closed = False

    def __enter__(self) -> "ImageBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def export(self) -> bytes:
        self.connection.commit()
        self.connection.close()
        try:
            return self._path.read_bytes()
        finally:
            self._closed = True
            shutil.rmtree(self._spool_dir, ignore_errors=True)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.connection.close()
        finally:
            shutil.rmtree(self._spool_dir, ignore_errors=True)


class SqliteEngine:
    """Service object that owns SQLite runtime checks and image creation."""

    def __init__(self, temp_root: Optional[Path] = None):
        self.temp_root = Path(temp_root) if temp_root is not None else None
        self.sqlite_version: Optional[str] = None
        self.foreign_keys_supported = False
        self.initialise_count = 0
        self._initialised = False
        self._lock = threading.Lock()

    @property
    def initialised(self) -> bool:
        return self._initialised

    def initialize(self) -> "SqliteEngine":
        if self._initialised:
            return self
        with self._lock:
            if self._initialised:
                return self
            probe = sqlite3.connect(":memory:")
            try:
                self.sqlite_version = probe.execute("SELECT sqlite_version()").fetchone()[0]
                probe.execute("PRAGMA foreign_keys = ON")
                self.foreign_keys_supported = bool(
                    probe.execute("PRAGMA foreign_keys").fetchone()[0]
                )
            finally:
                probe.close()
            self.initialise_count += 1
            self._initialised = True
            LOGGER.info("SQLite engine ready (sqlite %s)", self.sqlite_version)
        return self

    def _make_spool(self, prefix: str) -> Path:
        directory = str(self.temp_root) if self.temp_root is not None else None
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=directory))

    def open_image(self, data: bytes) -> SqliteImage:
        """Open ``data`` as a read-only SQLite database."""

        self.initialize()
        spool_dir = self._make_spool("backfix_source_")
        path = spool_dir / "source.db"
        try:
            path.write_bytes(bytes(data))
            connection = sqlite3.connect(f"file:{path.as_posix()}?mode=ro", uri=True)
        except (OSError, sqlite3.Error) as exc:
            shutil.rmtree(spool_dir, ignore_errors=True)
            raise StoreError(f"Could not open database image: {exc}") from exc
        return SqliteImage(connection, spool_dir)

    def new_image(self) -> ImageBuilder:
        """Create an empty writable database."""

        self.initialize()
        spool_dir = self._make_spool("backfix_target_")
        path = spool_dir / "target.db"
        try:
            connection = sqlite3.connect(str(path))
        except sqlite3.Error as exc:
            shutil.rmtree(spool_dir, ignore_errors=True)
            raise StoreError(f"Could not create database image: {exc}") from exc
        return ImageBuilder(connection, path, spool_dir)


_engine_instance: Optional[SqliteEngine] = None
_engine_lock = threading.Lock()


def get_sqlite_engine() -> SqliteEngine:
    global _engine_instance
    if _engine_instance is None:
        with _engine_lock:
            if _engine_instance is None:
                _engine_instance = SqliteEngine()
    return _engine_instance


def reset_sqlite_engine() -> None:
    """Testing hook to discard the shared engine."""
    global _engine_instance
    _engine_instance = None


__all__ = [
    "ImageBuilder",
    "SQLITE_SIGNATURE",
    "SqliteEngine",
    "SqliteImage",
    "StoreError",
    "get_sqlite_engine",
    "reset_sqlite_engine",
]
