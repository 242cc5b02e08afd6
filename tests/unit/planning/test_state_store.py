"""Tests for focusplan/planning/state_store.py

Key behaviors:
- Stores round-trip the state blob per user
- Unreadable blobs are reported as absent
- SQLite failures surface as StateStoreError
"""

import sqlite3

import pytest

from focusplan.planning.models import BlockType, Phase, PlannerState
from focusplan.planning.state_store import MemoryStateStore, SQLiteStateStore, StateStoreError


@pytest.fixture
def wave_state() -> PlannerState:
    return PlannerState(
        phase=Phase.WAVE,
        cycle_id=3,
        cycle_pos=1,
        cycle=[BlockType.CONSOLIDATE, BlockType.PUSH, BlockType.CONSOLIDATE],
        forced_easy=1,
        floor_sec=1800,
        floor_date="2026-03-02",
        earned_milestones=[15, 20, 25, 30],
        prev_recent_iqr=420.0,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Memory Store Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestMemoryStateStore:
    """Tests for the in-memory store."""

    def test_absent(self):
        assert MemoryStateStore().load("alice") is None

    def test_save_load(self, wave_state):
        store = MemoryStateStore()
        store.save("alice", wave_state.to_dict())

        assert PlannerState.from_dict(store.load("alice")) == wave_state

    def test_users_isolated(self, wave_state):
        store = MemoryStateStore()
        store.save("alice", wave_state.to_dict())

        assert store.load("bob") is None

    def test_stored_blob_not_aliased(self, wave_state):
        store = MemoryStateStore()
        blob = wave_state.to_dict()
        store.save("alice", blob)
        blob["forced_easy"] = 99

        assert store.load("alice")["forced_easy"] == 1

    def test_clear(self, wave_state):
        store = MemoryStateStore()
        store.save("alice", wave_state.to_dict())
        store.clear("alice")
        store.clear("nobody")

        assert store.load("alice") is None

    def test_corrupt_blob(self):
        store = MemoryStateStore()
        store._blobs["alice"] = "{not json"

        assert store.load("alice") is None


# ─────────────────────────────────────────────────────────────────────────────
# SQLite Store Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestSQLiteStateStore:
    """Tests for the SQLite store."""

    def test_creates_table(self, temp_db):
        store = SQLiteStateStore(temp_db)
        conn = store.get_connection()
        tables = {row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        conn.close()

        assert "planner_state" in tables

    def test_save_load(self, temp_db, wave_state):
        store = SQLiteStateStore(temp_db)
        store.save("alice", wave_state.to_dict())

        assert PlannerState.from_dict(store.load("alice")) == wave_state

    def test_save_replaces(self, temp_db, wave_state):
        store = SQLiteStateStore(temp_db)
        store.save("alice", PlannerState().to_dict())
        store.save("alice", wave_state.to_dict())

        conn = sqlite3.connect(str(temp_db))
        count = conn.execute("SELECT COUNT(*) FROM planner_state").fetchone()[0]
        conn.close()

        assert count == 1
        assert store.load("alice")["mode"] == "WAVE"

    def test_persists_across_instances(self, temp_db, wave_state):
        SQLiteStateStore(temp_db).save("alice", wave_state.to_dict())
        assert SQLiteStateStore(temp_db).load("alice")["floor_sec"] == 1800

    def test_clear(self, temp_db, wave_state):
        store = SQLiteStateStore(temp_db)
        store.save("alice", wave_state.to_dict())
        store.clear("alice")

        assert store.load("alice") is None

    def test_corrupt_row(self, temp_db):
        store = SQLiteStateStore(temp_db)
        conn = store.get_connection()
        conn.execute(
            "INSERT INTO planner_state (user_id, state, schema_version) VALUES (?, ?, ?)",
            ("alice", "][", 3),
        )
        conn.commit()
        conn.close()

        assert store.load("alice") is None

    def test_unusable_path_raises_store_error(self, tmp_path):
        """A regular file where the data directory should be."""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = SQLiteStateStore(blocker / "planner.db")

        with pytest.raises(StateStoreError):
            store.save("alice", {"mode": "LINEAR"})
        with pytest.raises(StateStoreError):
            store.load("alice")
        with pytest.raises(StateStoreError):
            store.clear("alice")


# ─────────────────────────────────────────────────────────────────────────────
# State Blob Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestPlannerStateBlob:
    """Tests for PlannerState.from_dict repairs."""

    def test_legacy_block_types(self):
        state = PlannerState.from_dict({"mode": "WAVE", "cycle": ["PUSH_A", "RAISE_FLOOR", "PUSH_B"], "cycle_pos": 0})
        assert state.cycle == [BlockType.PUSH, BlockType.CONSOLIDATE, BlockType.PUSH]

    def test_exhausted_cycle_cleared(self):
        state = PlannerState.from_dict({"mode": "WAVE", "cycle": ["PUSH", "CONSOLIDATE"], "cycle_pos": 2})

        assert state.cycle == []
        assert state.cycle_pos == 0

    def test_junk_fields_defaulted(self):
        state = PlannerState.from_dict({"mode": "???", "forced_easy": "lots", "earned_milestones": "x"})

        assert state.phase is Phase.LINEAR
        assert state.forced_easy == 0
        assert state.earned_milestones == []

    def test_not_a_mapping(self):
        with pytest.raises(ValueError):
            PlannerState.from_dict(["mode", "WAVE"])
