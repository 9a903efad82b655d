"""
Local Snapshot Store Tests.

Tests:
  - test_persist_writes_primary_mirrors_marker : one persist fills every key
  - test_load_missing_or_malformed              : absent or broken primary -> None
  - test_legacy_scan_and_purge                  : deprecated keys read then removed
  - test_change_feed_skips_writer               : only other contexts are notified
  - test_unchanged_value_not_notified           : identical writes are silent
  - test_sql_storage_round_trip                 : durable adapter over storage_entries
  - test_file_backed_store_survives_reopen      : a snapshot outlives its engine
"""

from __future__ import annotations

import json

from attendsync.db.models import Base
from attendsync.db.session import storage_session_factory
from attendsync.schemas.entities import AttendanceRecord
from attendsync.services.normalizer import normalize_employees
from attendsync.storage.legacy import (
    ATTENDANCE_MIRROR_KEY,
    COMBINED_MIRROR_KEY,
    DEPRECATED_KEYS,
    EMPLOYEE_MIRROR_KEY,
)
from attendsync.storage.memory import MemoryOrigin
from attendsync.storage.snapshot_store import (
    PRIMARY_KEY,
    SNAPSHOT_VERSION,
    SYNC_MARKER_KEY,
    SnapshotStore,
)
from attendsync.storage.sql import SqlStorage


def _snapshot():
    employees = normalize_employees([{"id": 1, "name": "Ann Lee"}, {"id": 2, "name": "Bob Stone"}])
    records = [AttendanceRecord(id="a", employee_id=1, date="2024-02-02", status="late")]
    return employees, records


class TestPersistAndLoad:
    async def test_persist_writes_primary_mirrors_marker(self, origin: MemoryOrigin) -> None:
        """Primary document, every mirror and the last-write marker are written."""
        storage = origin.open("ctx_a")
        store = SnapshotStore(storage)
        employees, records = _snapshot()

        await store.persist(employees, records)

        document = json.loads(origin.data[PRIMARY_KEY])
        assert document["version"] == SNAPSHOT_VERSION
        assert [e["fullName"] for e in document["employees"]] == ["Ann Lee", "Bob Stone"]
        assert document["attendanceRecords"][0]["employeeId"] == 1
        assert "lastUpdated" in document

        assert len(json.loads(origin.data[EMPLOYEE_MIRROR_KEY])) == 2
        assert len(json.loads(origin.data[ATTENDANCE_MIRROR_KEY])) == 1
        assert json.loads(origin.data[COMBINED_MIRROR_KEY])["employees"][1]["id"] == 2

        marker = json.loads(origin.data[SYNC_MARKER_KEY])
        assert marker["employees"] == 2
        assert marker["attendanceRecords"] == 1
        assert marker["source"] == "ctx_a"

    async def test_load_returns_persisted(self, origin: MemoryOrigin) -> None:
        store = SnapshotStore(origin.open())
        employees, records = _snapshot()
        await store.persist(employees, records)

        loaded = await store.load()
        assert loaded is not None
        assert len(loaded.employees) == 2
        assert loaded.attendance_records[0]["id"] == "a"

    async def test_load_missing_or_malformed(self) -> None:
        """A missing, malformed or non-object primary key loads as None."""
        assert await SnapshotStore(MemoryOrigin().open()).load() is None
        assert await SnapshotStore(MemoryOrigin({PRIMARY_KEY: "{oops"}).open()).load() is None
        assert await SnapshotStore(MemoryOrigin({PRIMARY_KEY: "[1, 2]"}).open()).load() is None


class TestLegacySources:
    async def test_legacy_scan_and_purge(self) -> None:
        """Deprecated keys are read (malformed ones skipped) and purged on request."""
        origin = MemoryOrigin(
            {
                "bricks-employees": json.dumps([{"id": 1, "name": "Ann Lee"}]),
                "employeeData": json.dumps({"employees": [{"id": 1, "name": "Ann Lee"}]}),
                "attendanceData": json.dumps([{"employeeId": 1, "date": "2024-01-01"}]),
                "bricks_employees": "{not json",
            }
        )
        store = SnapshotStore(origin.open())

        legacy, keys = await store.read_legacy_sources()
        assert len(legacy.employees) == 2, "Duplicates are kept for the merge step"
        assert len(legacy.attendance_records) == 1
        assert set(keys) == {"bricks-employees", "employeeData", "attendanceData"}

        removed = await store.purge_legacy_sources()
        assert set(removed) == {"bricks-employees", "employeeData", "attendanceData", "bricks_employees"}
        assert not any(key in origin.data for key in DEPRECATED_KEYS)


class TestChangeFeed:
    async def test_change_feed_skips_writer(self, origin: MemoryOrigin) -> None:
        """A write notifies every other context, never the writer."""
        writer, reader = origin.open("ctx_w"), origin.open("ctx_r")
        seen: dict[str, list] = {"ctx_w": [], "ctx_r": []}

        async def record_writer(change):
            seen["ctx_w"].append(change)

        async def record_reader(change):
            seen["ctx_r"].append(change)

        writer.subscribe(record_writer)
        reader.subscribe(record_reader)

        await writer.set("k", "v1")
        await writer.remove("k")

        assert seen["ctx_w"] == []
        assert [(c.key, c.old_value, c.new_value, c.origin) for c in seen["ctx_r"]] == [
            ("k", None, "v1", "ctx_w"),
            ("k", "v1", None, "ctx_w"),
        ]

    async def test_unchanged_value_not_notified(self, origin: MemoryOrigin) -> None:
        writer, reader = origin.open(), origin.open()
        changes = []

        async def listener(change):
            changes.append(change)

        reader.subscribe(listener)
        await writer.set("k", "same")
        await writer.set("k", "same")
        await writer.remove("missing")
        assert len(changes) == 1

    async def test_failing_listener_isolated(self, origin: MemoryOrigin) -> None:
        """One broken listener does not stop delivery to the others."""
        writer = origin.open()
        received = []

        async def broken(change):
            raise RuntimeError("boom")

        async def healthy(change):
            received.append(change.key)

        origin.open().subscribe(broken)
        origin.open().subscribe(healthy)
        await writer.set("k", "v")
        assert received == ["k"]


class TestSqlStorage:
    async def test_sql_storage_round_trip(self, session_factory) -> None:
        """Set, overwrite and remove against the storage_entries table."""
        storage = SqlStorage(session_factory, context_id="ctx_sql")
        other = storage.open("ctx_other")
        changes = []

        async def listener(change):
            changes.append((change.key, change.new_value))

        other.subscribe(listener)

        assert await storage.get("k") is None
        await storage.set("k", "v1")
        await storage.set("k", "v2")
        assert await other.get("k") == "v2"
        await storage.remove("k")
        assert await storage.get("k") is None
        assert changes == [("k", "v1"), ("k", "v2"), ("k", None)]

    async def test_snapshot_store_on_sql(self, session_factory) -> None:
        store = SnapshotStore(SqlStorage(session_factory))
        employees, records = _snapshot()
        await store.persist(employees, records)
        loaded = await store.load()
        assert [e["id"] for e in loaded.employees] == [1, 2]

    async def test_file_backed_store_survives_reopen(self, tmp_path) -> None:
        """A second factory over the same file sees what the first one wrote."""
        url = f"sqlite+aiosqlite:///{tmp_path / 'storage.db'}"
        first = storage_session_factory(url)
        bind = first.kw["bind"]
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        employees, records = _snapshot()
        await SnapshotStore(SqlStorage(first)).persist(employees, records)
        await bind.dispose()

        second = storage_session_factory(url)
        loaded = await SnapshotStore(SqlStorage(second)).load()
        await second.kw["bind"].dispose()
        assert loaded is not None
        assert len(loaded.employees) == 2
        assert loaded.attendance_records[0]["id"] == "a"
