"""Repository layer encapsulating raw database interactions."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .db import DatabaseManager


class ResultRepository:
    """Persistence layer for per-attempt assessment results."""

    _COLUMNS = "id, timestamp, level, sentence, scores, composite, grade, duration, ideal_duration, is_offline"

    def __init__(self, db: DatabaseManager):
        self._db = db

    def insert(self, record: Dict[str, Any], *, conn: Optional[sqlite3.Connection] = None) -> None:
        params = (
            record["id"],
            int(record["timestamp"]),
            record["level"],
            record["sentence"],
            json.dumps(record["scores"]),
            int(record["scores"].get("composite", 0)),
            record["grade"],
            float(record.get("duration", 0.0)),
            float(record.get("ideal_duration", 0.0)),
            1 if record.get("is_offline") else 0,
        )
        query = f"INSERT INTO results({self._COLUMNS}) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        if conn is None:
            with self._db.connect() as connection:
                connection.execute(query, params)
            return
        conn.execute(query, params)

    def trim(self, keep: int, *, conn: Optional[sqlite3.Connection] = None) -> int:
        """Delete all but the newest ``keep`` rows; returns how many were removed."""
        query = "DELETE FROM results WHERE seq NOT IN (SELECT seq FROM results ORDER BY seq DESC LIMIT ?)"
        if conn is None:
            with self._db.connect() as connection:
                return connection.execute(query, (keep,)).rowcount
        return conn.execute(query, (keep,)).rowcount

    def list_all(self) -> List[sqlite3.Row]:
        """Newest first."""
        with self._db.connect() as connection:
            return connection.execute(
                f"SELECT {self._COLUMNS} FROM results ORDER BY seq DESC"
            ).fetchall()

    def list_recent(self, count: int) -> List[sqlite3.Row]:
        """Newest first."""
        with self._db.connect() as connection:
            return connection.execute(
                f"SELECT {self._COLUMNS} FROM results ORDER BY seq DESC LIMIT ?", (count,)
            ).fetchall()

    def list_by_level(self, level: str) -> List[sqlite3.Row]:
        with self._db.connect() as connection:
            return connection.execute(
                f"SELECT {self._COLUMNS} FROM results WHERE level=? ORDER BY seq DESC", (level,)
            ).fetchall()

    def count(self) -> int:
        with self._db.connect() as connection:
            return connection.execute("SELECT COUNT(*) FROM results").fetchone()[0]

    def delete_all(self, *, conn: Optional[sqlite3.Connection] = None) -> int:
        if conn is None:
            with self._db.connect() as connection:
                return connection.execute("DELETE FROM results").rowcount
        return conn.execute("DELETE FROM results").rowcount

    @contextmanager
    def transaction(self):
        with self._db.connect() as connection:
            yield connection


class AssessmentRepository:
    """Persistence layer for versioned placement assessment records."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    def find(self, assessment_id: str) -> Optional[sqlite3.Row]:
        with self._db.connect() as connection:
            return connection.execute(
                "SELECT id, version, started_at, state FROM assessments WHERE id=?",
                (assessment_id,),
            ).fetchone()

    def insert(self, assessment_id: str, started_at: int, state: Dict[str, Any]) -> None:
        with self._db.connect() as connection:
            connection.execute(
                "INSERT INTO assessments(id, version, started_at, state) VALUES(?, ?, ?, ?)",
                (assessment_id, int(state.get("version", 0)), started_at, json.dumps(state)),
            )

    def update_if_version(self, assessment_id: str, expected_version: int, state: Dict[str, Any]) -> int:
        """Compare-and-swap on ``version``; returns 0 when the stored row moved on."""
        with self._db.connect() as connection:
            cursor = connection.execute(
                "UPDATE assessments SET version=?, state=? WHERE id=? AND version=?",
                (int(state["version"]), json.dumps(state), assessment_id, expected_version),
            )
        return cursor.rowcount
