"""
Tests for the embedded record store: schema, migration, CRUD, persistence and export/import.
"""
import sqlite3
from datetime import datetime, timedelta

import pytest

from ops_timeline.core import (
    PersistenceError,
    RecordStore,
    SchemaMigrationError,
    StoreHandle,
    UnknownTableError,
)
from ops_timeline.core.record_store import (
    BATCH_TABLE,
    EQUIPMENT_TABLE,
    OPERATION_TABLE,
    to_db_value,
)
from ops_timeline.core.seed import DEMO_BATCHES, DEMO_EQUIPMENT, DEMO_OPERATIONS

# Equipment table as it was before the display order column existed
OLD_EQUIPMENT_DDL = """
    CREATE TABLE equipment (
        equipment_id TEXT PRIMARY KEY,
        tag TEXT NOT NULL,
        description TEXT,
        tag_and_description TEXT,
        created_on TEXT,
        modified_on TEXT,
        owner_id TEXT,
        owner_name TEXT,
        owner_type TEXT,
        state_code TEXT
    )
"""


def old_database_image() -> bytes:
    """Image of a database created by the first schema version."""
    conn = sqlite3.connect(":memory:")
    conn.execute(OLD_EQUIPMENT_DDL)
    conn.executemany(
        "INSERT INTO equipment (equipment_id, tag) VALUES (?, ?)",
        [("b", "B-200"), ("c", "C-300"), ("a", "A-100")],
    )
    conn.commit()
    data = conn.serialize()
    conn.close()
    return data


class TestSchema:
    """Tests for schema creation and migration."""

    def setup_method(self):
        self.store = RecordStore(seed_demo=False)

    def test_ensure_schema_is_idempotent(self):
        """A second call creates nothing and reports the schema as existing."""
        assert self.store.ensure_schema() is True
        assert self.store.ensure_schema() is False

        for table in (EQUIPMENT_TABLE, BATCH_TABLE, OPERATION_TABLE):
            assert self.store.list(table) == []

    def test_import_migrates_old_schema_and_backfills_order(self):
        """A missing sort_order column is added and filled by id order."""
        self.store.ensure_schema()
        self.store.import_bytes(old_database_image())

        orders = {r["equipment_id"]: r["sort_order"] for r in self.store.list(EQUIPMENT_TABLE)}
        assert orders == {"a": 0, "b": 1, "c": 2}

    def test_backfill_keeps_existing_order(self):
        """Backfilling order leaves rows that already have one."""
        self.store.ensure_schema()
        self.store.insert(EQUIPMENT_TABLE, {"equipment_id": "x", "tag": "X", "sort_order": 7})
        self.store.insert(EQUIPMENT_TABLE, {"equipment_id": "y", "tag": "Y"})

        self.store.ensure_schema()

        orders = {r["equipment_id"]: r["sort_order"] for r in self.store.list(EQUIPMENT_TABLE)}
        assert orders["x"] == 7
        assert orders["y"] == 1

    def test_migrating_existing_column_is_noop(self):
        """Adding a column that exists does nothing."""
        self.store.ensure_schema()
        self.store._ensure_column(EQUIPMENT_TABLE, "sort_order", "INTEGER")

    def test_migration_failure_raises(self):
        """Failures other than a duplicate column are fatal."""
        self.store.ensure_schema()
        with pytest.raises(SchemaMigrationError):
            self.store._ensure_column(EQUIPMENT_TABLE, "new_key", "INTEGER PRIMARY KEY")

    def test_unknown_table_raises(self):
        """Reads and writes on a missing table raise UnknownTableError."""
        self.store.ensure_schema()
        with pytest.raises(UnknownTableError):
            self.store.list("no_such_table")
        with pytest.raises(UnknownTableError):
            self.store.insert("no_such_table", {"id": "1"})


class TestCrud:
    """Tests for insert/update/delete/list."""

    def setup_method(self):
        self.store = RecordStore(seed_demo=False)
        self.store.ensure_schema()
        self.store.insert(EQUIPMENT_TABLE, {"equipment_id": "e1", "tag": "V-1", "description": "Tank"})

    def test_insert_and_get(self):
        """Inserted rows come back by id; missing ids give None."""
        row = self.store.get(EQUIPMENT_TABLE, "e1")

        assert row["tag"] == "V-1"
        assert row["description"] == "Tank"
        assert self.store.get(EQUIPMENT_TABLE, "missing") is None

    def test_update(self):
        """Update changes the named columns."""
        self.store.update(EQUIPMENT_TABLE, "equipment_id", "e1", {"description": "Vessel"})

        assert self.store.get(EQUIPMENT_TABLE, "e1")["description"] == "Vessel"

    def test_update_with_empty_record_is_noop(self):
        """An empty update changes nothing."""
        self.store.update(EQUIPMENT_TABLE, "equipment_id", "e1", {})
        self.store.update(EQUIPMENT_TABLE, "equipment_id", "missing", {})

        assert self.store.get(EQUIPMENT_TABLE, "e1")["description"] == "Tank"

    def test_delete(self):
        """Delete removes the row."""
        self.store.delete(EQUIPMENT_TABLE, "equipment_id", "e1")

        assert self.store.list(EQUIPMENT_TABLE) == []

    def test_read_failure_raises_persistence_error(self):
        """Engine errors on reads surface as PersistenceError, not raw sqlite3 errors."""
        self.store.close()

        with pytest.raises(PersistenceError):
            self.store.list(EQUIPMENT_TABLE)
        with pytest.raises(PersistenceError):
            self.store.get(EQUIPMENT_TABLE, "e1")

    def test_value_coercion(self):
        """Datetimes become ISO text with milliseconds, bools become 0/1."""
        start = datetime(2025, 3, 1, 10, 0, 0, 123456)
        self.store.insert(OPERATION_TABLE, {
            "operation_id": "op1",
            "start_time": start,
            "end_time": start + timedelta(hours=1),
            "allow_overlap": True,
        })

        row = self.store.get(OPERATION_TABLE, "op1")
        assert row["start_time"] == "2025-03-01T10:00:00.123"
        assert row["allow_overlap"] == 1
        assert to_db_value(False) == 0
        assert to_db_value("text") == "text"


class TestPersistence:
    """Tests for writing the database image to disk."""

    def test_every_write_is_persisted(self, tmp_path):
        """Each write reaches the file without an explicit save."""
        path = tmp_path / "db.sqlite"
        store = RecordStore(path, seed_demo=False)
        store.ensure_schema()
        store.insert(EQUIPMENT_TABLE, {"equipment_id": "e1", "tag": "V-1"})
        store.close()

        reopened = RecordStore(path, seed_demo=False)
        assert reopened.ensure_schema() is False
        assert [r["tag"] for r in reopened.list(EQUIPMENT_TABLE)] == ["V-1"]

    def test_deferred_persist_writes_once_at_end(self, tmp_path):
        """Deferred writes land in the file when the block exits."""
        path = tmp_path / "db.sqlite"
        store = RecordStore(path, seed_demo=False)

        with store.deferred_persist():
            store.ensure_schema()
            store.insert(EQUIPMENT_TABLE, {"equipment_id": "e1", "tag": "V-1"})
            assert not path.exists()

        assert path.exists()

    def test_opening_old_file_migrates_without_seeding(self, tmp_path):
        """An old file is migrated and not seeded."""
        path = tmp_path / "old.sqlite"
        path.write_bytes(old_database_image())

        store = RecordStore(path, seed_demo=True)
        assert store.ensure_schema() is False

        rows = store.list(EQUIPMENT_TABLE)
        assert len(rows) == 3
        assert all(r["sort_order"] is not None for r in rows)
        assert store.list(OPERATION_TABLE) == []


class TestExportImport:
    """Tests for whole-database export and import."""

    def setup_method(self):
        self.store = RecordStore(seed_demo=False)
        self.store.ensure_schema()
        self.store.insert(EQUIPMENT_TABLE, {"equipment_id": "e1", "tag": "V-1", "sort_order": 0})

    def test_round_trip(self):
        """An exported image imports into another store."""
        data = self.store.export_bytes()

        other = RecordStore(seed_demo=False)
        other.ensure_schema()
        other.import_bytes(data)

        assert other.list(EQUIPMENT_TABLE) == self.store.list(EQUIPMENT_TABLE)

    def test_import_replaces_live_data(self):
        """Import replaces the current rows."""
        data = self.store.export_bytes()
        self.store.insert(EQUIPMENT_TABLE, {"equipment_id": "e2", "tag": "V-2", "sort_order": 1})

        self.store.import_bytes(data)

        assert [r["equipment_id"] for r in self.store.list(EQUIPMENT_TABLE)] == ["e1"]

    def test_invalid_image_keeps_old_database(self):
        """A bad image raises and keeps the old rows."""
        with pytest.raises(PersistenceError):
            self.store.import_bytes(b"this is not a database" * 100)

        assert [r["equipment_id"] for r in self.store.list(EQUIPMENT_TABLE)] == ["e1"]

    def test_empty_image_rejected(self):
        """An empty image is rejected."""
        with pytest.raises(PersistenceError):
            self.store.import_bytes(b"")


class TestSeeding:
    """Tests for the demo dataset."""

    def test_fresh_database_is_seeded(self):
        """A new database gets the demo rows."""
        store = RecordStore(seed_demo=True)
        store.ensure_schema()

        assert len(store.list(EQUIPMENT_TABLE)) == len(DEMO_EQUIPMENT)
        assert sorted(r["batch_number"] for r in store.list(BATCH_TABLE)) == DEMO_BATCHES
        assert len(store.list(OPERATION_TABLE)) == len(DEMO_OPERATIONS) * len(DEMO_BATCHES)

    def test_second_batch_runs_one_week_later(self):
        """The second demo batch starts a week after the first."""
        store = RecordStore(seed_demo=True)
        store.ensure_schema()

        first = datetime.fromisoformat(store.get(OPERATION_TABLE, "1")["start_time"])
        second = datetime.fromisoformat(store.get(OPERATION_TABLE, "11")["start_time"])
        assert second - first == timedelta(weeks=1)

    def test_seeding_happens_once(self):
        """Re-running the schema check does not seed twice."""
        store = RecordStore(seed_demo=True)
        store.ensure_schema()
        store.ensure_schema()

        assert len(store.list(EQUIPMENT_TABLE)) == len(DEMO_EQUIPMENT)

    def test_seeding_can_be_disabled(self):
        """Seeding can be turned off."""
        store = RecordStore(seed_demo=False)
        store.ensure_schema()

        assert store.list(EQUIPMENT_TABLE) == []


class TestStoreHandle:
    """Tests for the shared lazy handle."""

    def test_opens_lazily_once(self):
        """The handle opens on first use and reuses the store."""
        handle = StoreHandle(seed_demo=False)
        assert not handle.is_open

        store = handle.get()
        assert handle.is_open
        assert handle.get() is store

    def test_close_allows_reopen(self, tmp_path):
        """A closed handle reopens onto the same file."""
        handle = StoreHandle(tmp_path / "db.sqlite", seed_demo=False)
        handle.get().insert(EQUIPMENT_TABLE, {"equipment_id": "e1", "tag": "V-1"})
        handle.close()

        assert not handle.is_open
        assert len(handle.get().list(EQUIPMENT_TABLE)) == 1
