"""
Embedded record storage for the Operations Timeline application.

The live database is an in-memory SQLite connection. After every mutating
call the complete database image is serialized and written atomically to
the backing file, so the file on disk is always one consistent image.
"""
from __future__ import annotations

import logging
import os
import re
import sqlite3
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from .errors import PersistenceError, SchemaMigrationError, UnknownTableError

logger = logging.getLogger(__name__)

EQUIPMENT_TABLE = "equipment"
BATCH_TABLE = "batches"
OPERATION_TABLE = "operations"

# table -> primary key column
TABLE_KEYS = {
    EQUIPMENT_TABLE: "equipment_id",
    BATCH_TABLE: "batch_id",
    OPERATION_TABLE: "operation_id",
}

SCHEMA = {
    EQUIPMENT_TABLE: """
        CREATE TABLE IF NOT EXISTS equipment (
            equipment_id TEXT PRIMARY KEY,
            tag TEXT NOT NULL,
            description TEXT,
            tag_and_description TEXT,
            sort_order INTEGER,
            created_on TEXT,
            modified_on TEXT,
            owner_id TEXT,
            owner_name TEXT,
            owner_type TEXT,
            state_code TEXT
        )
    """,
    BATCH_TABLE: """
        CREATE TABLE IF NOT EXISTS batches (
            batch_id TEXT PRIMARY KEY,
            batch_number TEXT,
            created_on TEXT,
            modified_on TEXT,
            owner_id TEXT,
            owner_name TEXT,
            owner_type TEXT,
            state_code TEXT
        )
    """,
    OPERATION_TABLE: """
        CREATE TABLE IF NOT EXISTS operations (
            operation_id TEXT PRIMARY KEY,
            equipment_id TEXT,
            batch_id TEXT,
            start_time TEXT,
            end_time TEXT,
            type TEXT,
            description TEXT,
            allow_overlap INTEGER,
            created_on TEXT,
            modified_on TEXT,
            state_code TEXT,
            status_code TEXT
        )
    """,
}

# Columns added after the first schema version: (table, column, DDL type)
MIGRATIONS = [
    (EQUIPMENT_TABLE, "sort_order", "INTEGER"),
]

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def to_db_value(value: Any) -> Any:
    """Coerce a Python value for storage: datetimes to sortable ISO text, bools to 0/1."""
    if isinstance(value, datetime):
        return value.isoformat(timespec="milliseconds")
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _check_table(table: str) -> str:
    if table not in TABLE_KEYS:
        raise UnknownTableError(table)
    return table


def _check_column(column: str) -> str:
    if not _IDENTIFIER_RE.match(column):
        raise ValueError(f"Invalid column name: {column!r}")
    return column


def _connect(data: Optional[bytes] = None) -> sqlite3.Connection:
    """Open an in-memory connection, optionally loaded from a database image."""
    conn = sqlite3.connect(":memory:")
    if data is not None:
        conn.deserialize(data)
    conn.row_factory = sqlite3.Row
    return conn


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes to path via a temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class RecordStore:
    """
    Generic typed-row table storage.

    Knows nothing about scheduling semantics: rows are plain dictionaries
    keyed by column name.
    """

    def __init__(self, path: Optional[Path] = None, seed_demo: bool = True):
        self.path = Path(path) if path is not None else None
        self.seed_demo = seed_demo
        self._persist_suspended = 0
        self._dirty = False
        self._conn = self._open()

    def _open(self) -> sqlite3.Connection:
        if self.path is not None and self.path.is_file():
            data = self.path.read_bytes()
            if data:
                logger.info("Loading database from %s (%d bytes)", self.path, len(data))
                return self._load_image(data)
        return _connect()

    @staticmethod
    def _load_image(data: bytes) -> sqlite3.Connection:
        """Build and validate a connection from a database image."""
        if not data:
            raise PersistenceError("Database image is empty")
        conn = None
        try:
            conn = _connect(data)
            result = conn.execute("PRAGMA integrity_check").fetchone()
            if result is None or result[0] != "ok":
                raise PersistenceError(f"Database integrity check failed: {result!r}")
        except sqlite3.DatabaseError as e:
            if conn is not None:
                conn.close()
            raise PersistenceError(f"Not a valid database image: {e}") from e
        except PersistenceError:
            conn.close()
            raise
        return conn

    # =========================================================================
    # Persistence
    # =========================================================================

    def _persist(self) -> None:
        """Write the full database image to the backing file, if any."""
        if self._persist_suspended:
            self._dirty = True
            return
        self._dirty = False
        if self.path is None:
            return
        try:
            atomic_write_bytes(self.path, self._conn.serialize())
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Failed to write database to {self.path}: {e}") from e
        logger.debug("Persisted database to %s", self.path)

    @contextmanager
    def deferred_persist(self) -> Iterator[RecordStore]:
        """Group several writes into a single persist at the end of the block."""
        self._persist_suspended += 1
        try:
            yield self
        finally:
            self._persist_suspended -= 1
        if not self._persist_suspended and self._dirty:
            self._persist()

    def _run(self, sql: str, params: tuple = ()) -> None:
        try:
            self._conn.execute(sql, params)
            self._conn.commit()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e):
                raise UnknownTableError(str(e)) from e
            raise PersistenceError(str(e)) from e
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        self._persist()

    def _all(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e):
                raise UnknownTableError(str(e)) from e
            raise PersistenceError(str(e)) from e
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        return [dict(row) for row in rows]

    # =========================================================================
    # Schema
    # =========================================================================

    def _table_exists(self, table: str) -> bool:
        row = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ).fetchone()
        return row is not None

    def ensure_schema(self) -> bool:
        """
        Create missing tables, apply additive migrations and back-fill new columns.

        Safe to call on every startup. Seeds the demo dataset when the schema
        was just created and no equipment exists yet.

        Returns:
            True if the equipment table was created by this call.
        """
        created = not self._table_exists(EQUIPMENT_TABLE)

        with self.deferred_persist():
            for table, ddl in SCHEMA.items():
                self._run(ddl)

            for table, column, col_type in MIGRATIONS:
                self._ensure_column(table, column, col_type)

            self._backfill_sort_order()

            if created and self.seed_demo and not self.list(EQUIPMENT_TABLE):
                from .seed import seed_demo_data
                logger.info("Fresh database: seeding demo data")
                seed_demo_data(self)

        return created

    def _ensure_column(self, table: str, column: str, col_type: str) -> None:
        """Add a column if selecting it fails."""
        _check_table(table)
        _check_column(column)
        try:
            self._conn.execute(f"SELECT {column} FROM {table} LIMIT 1").fetchall()
            return
        except sqlite3.OperationalError:
            pass

        try:
            self._run(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")
            logger.info("Migrated %s: added column %s", table, column)
        except PersistenceError as e:
            if "duplicate column name" in str(e).lower():
                return
            raise SchemaMigrationError(
                f"Failed to add column {column} to {table}: {e}"
            ) from e

    def _backfill_sort_order(self) -> None:
        """Give rows without a display order a sequential index (sorted by id)."""
        rows = self.list(EQUIPMENT_TABLE)
        if not any(r.get("sort_order") is None for r in rows):
            return
        rows.sort(key=lambda r: str(r["equipment_id"]))
        for i, row in enumerate(rows):
            if row.get("sort_order") is None:
                self.update(EQUIPMENT_TABLE, "equipment_id", row["equipment_id"], {"sort_order": i})
        logger.info("Back-filled display order for %d equipment rows", len(rows))

    # =========================================================================
    # CRUD
    # =========================================================================

    def insert(self, table: str, record: dict[str, Any]) -> None:
        """Insert one row."""
        _check_table(table)
        columns = [_check_column(c) for c in record]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        self._run(sql, tuple(to_db_value(record[c]) for c in columns))

    def update(self, table: str, key_field: str, key_value: Any, record: dict[str, Any]) -> None:
        """Update the row(s) whose key_field equals key_value. An empty record is a no-op."""
        _check_table(table)
        _check_column(key_field)
        if not record:
            return
        columns = [_check_column(c) for c in record]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        sql = f"UPDATE {table} SET {assignments} WHERE {key_field} = ?"
        values = tuple(to_db_value(record[c]) for c in columns) + (to_db_value(key_value),)
        self._run(sql, values)

    def delete(self, table: str, key_field: str, key_value: Any) -> None:
        """Delete the row(s) whose key_field equals key_value."""
        _check_table(table)
        _check_column(key_field)
        self._run(f"DELETE FROM {table} WHERE {key_field} = ?", (to_db_value(key_value),))

    def list(self, table: str) -> list[dict[str, Any]]:
        """All rows of a table as dictionaries."""
        _check_table(table)
        return self._all(f"SELECT * FROM {table}")

    def get(self, table: str, key_value: Any) -> Optional[dict[str, Any]]:
        """One row by primary key, or None."""
        _check_table(table)
        rows = self._all(
            f"SELECT * FROM {table} WHERE {TABLE_KEYS[table]} = ?", (to_db_value(key_value),)
        )
        return rows[0] if rows else None

    # =========================================================================
    # Export / import
    # =========================================================================

    def export_bytes(self) -> bytes:
        """Self-contained binary image of the entire database."""
        return bytes(self._conn.serialize())

    def import_bytes(self, data: bytes) -> None:
        """
        Replace the live database with the given image.

        The new connection is fully loaded and validated before the swap, so
        callers see either the old database or the new one, never a mix.
        """
        new_conn = self._load_image(bytes(data))
        old_conn = self._conn
        self._conn = new_conn
        try:
            with self.deferred_persist():
                for table, ddl in SCHEMA.items():
                    self._run(ddl)
                for table, column, col_type in MIGRATIONS:
                    self._ensure_column(table, column, col_type)
                self._backfill_sort_order()
        except Exception:
            self._conn = old_conn
            new_conn.close()
            raise
        old_conn.close()
        logger.info("Imported database image (%d bytes)", len(data))

    def close(self) -> None:
        self._conn.close()


class StoreHandle:
    """
    The single shared database handle.

    Created once at application start and passed to the data provider. The
    underlying store is opened on first use, at most once.
    """

    def __init__(self, path: Optional[Path] = None, seed_demo: bool = True):
        self.path = Path(path) if path is not None else None
        self.seed_demo = seed_demo
        self._store: Optional[RecordStore] = None

    @property
    def is_open(self) -> bool:
        return self._store is not None

    def get(self) -> RecordStore:
        """The live store, opening it and ensuring the schema on first use."""
        if self._store is None:
            store = RecordStore(self.path, seed_demo=self.seed_demo)
            store.ensure_schema()
            self._store = store
        return self._store

    def export_bytes(self) -> bytes:
        return self.get().export_bytes()

    def import_bytes(self, data: bytes) -> None:
        """Atomically swap the backing database for the given image."""
        self.get().import_bytes(data)

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None
