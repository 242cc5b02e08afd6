"""
Tool: Planner State Store
Purpose: Persist the planner's state blob, one per user

The planner never touches storage directly; it is handed a store when it is
constructed. Two stores ship with the package:

- MemoryStateStore: dict-backed, for tests and embedding
- SQLiteStateStore: one row per user in data/planner.db

A save replaces the whole blob inside a single transaction, so a failure
halfway through leaves the previous blob in place.

A blob that cannot be decoded is reported as absent, so the planner falls
back to calibration defaults instead of refusing to plan.

Usage:
    python -m focusplan.planning.state_store --action show --user alice
    python -m focusplan.planning.state_store --action clear --user alice
"""

from __future__ import annotations

import argparse
import json
import sqlite3
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from focusplan.logging_config import get_logger
from focusplan.planning import DB_PATH

logger = get_logger(__name__)

STATE_SCHEMA_VERSION = 3


class StateStoreError(RuntimeError):
    """Storage failed to read or write a state blob."""


class StateStore(Protocol):
    def load(self, user_id: str) -> dict[str, Any] | None: ...

    def save(self, user_id: str, state: dict[str, Any]) -> None: ...

    def clear(self, user_id: str) -> None: ...


class MemoryStateStore:
    """Keeps serialized blobs in a dict, so stored state is never aliased."""

    def __init__(self) -> None:
        self._blobs: dict[str, str] = {}

    def load(self, user_id: str) -> dict[str, Any] | None:
        raw = self._blobs.get(user_id)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable planner state for {user_id}")
            return None
        return data if isinstance(data, dict) else None

    def save(self, user_id: str, state: dict[str, Any]) -> None:
        self._blobs[user_id] = json.dumps(state)

    def clear(self, user_id: str) -> None:
        self._blobs.pop(user_id, None)


class SQLiteStateStore:
    """Planner state in SQLite, one JSON blob per user."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path) if db_path else DB_PATH

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row

        conn.execute("""
            CREATE TABLE IF NOT EXISTS planner_state (
                user_id TEXT PRIMARY KEY,
                state TEXT NOT NULL,
                schema_version INTEGER NOT NULL,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()
        return conn

    def load(self, user_id: str) -> dict[str, Any] | None:
        try:
            conn = self.get_connection()
            try:
                row = conn.execute(
                    "SELECT state FROM planner_state WHERE user_id = ?", (user_id,)
                ).fetchone()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise StateStoreError(f"Failed to read planner state: {e}") from e

        if row is None:
            return None
        try:
            data = json.loads(row["state"])
        except (TypeError, json.JSONDecodeError):
            logger.warning(f"Discarding unreadable planner state for {user_id}")
            return None
        return data if isinstance(data, dict) else None

    def save(self, user_id: str, state: dict[str, Any]) -> None:
        payload = json.dumps(state)
        try:
            conn = self.get_connection()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO planner_state (user_id, state, schema_version, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(user_id) DO UPDATE SET
                            state = excluded.state,
                            schema_version = excluded.schema_version,
                            updated_at = excluded.updated_at
                    """,
                        (user_id, payload, STATE_SCHEMA_VERSION, datetime.now().isoformat()),
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise StateStoreError(f"Failed to write planner state: {e}") from e

    def clear(self, user_id: str) -> None:
        try:
            conn = self.get_connection()
            try:
                with conn:
                    conn.execute("DELETE FROM planner_state WHERE user_id = ?", (user_id,))
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise StateStoreError(f"Failed to clear planner state: {e}") from e


def main():
    parser = argparse.ArgumentParser(description="Planner State Store")
    parser.add_argument("--action", required=True, choices=["show", "clear"], help="Action to perform")
    parser.add_argument("--user", required=True, help="User ID")
    parser.add_argument("--db", type=Path, help="Database path (default: data/planner.db)")

    args = parser.parse_args()
    store = SQLiteStateStore(args.db)

    try:
        if args.action == "show":
            state = store.load(args.user)
            result = {"success": True, "user_id": args.user, "state": state}
        else:
            store.clear(args.user)
            result = {"success": True, "user_id": args.user, "message": "Planner state cleared"}
    except StateStoreError as e:
        result = {"success": False, "error": str(e)}

    if result.get("success"):
        print(f"OK {result.get('message', 'Success')}")
    else:
        print(f"ERROR {result.get('error')}")
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
