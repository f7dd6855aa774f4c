"""Database connection helpers and schema management."""

from __future__ import annotations

import sqlite3

from .config import DB_PATH


class DatabaseManager:
    """Manage SQLite connections and schema lifecycle for the application."""

    def __init__(self, db_path: str):
        """Store the initial database path."""
        self._db_path = db_path

    def set_path(self, db_path: str) -> None:
        """Update the database path (used by tests to point to temporary files)."""
        self._db_path = db_path

    def connect(self) -> sqlite3.Connection:
        """Create a new SQLite connection with rows addressable by column name."""
        conn_obj = sqlite3.connect(self._db_path)
        conn_obj.row_factory = sqlite3.Row
        conn_obj.execute("PRAGMA foreign_keys = ON;")
        return conn_obj

    def initialize(self) -> None:
        """Ensure all tables and indexes required by the app are present."""
        with self.connect() as connection:
            self._ensure_results_table(connection)
            self._ensure_assessments_table(connection)
            self._ensure_indexes(connection)

    @staticmethod
    def _ensure_results_table(conn_obj: sqlite3.Connection) -> None:
        """Create the per-attempt results table (scores kept as JSON)."""
        conn_obj.execute(
            """
            CREATE TABLE IF NOT EXISTS results (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                timestamp INTEGER NOT NULL,
                level TEXT NOT NULL,
                sentence TEXT NOT NULL,
                scores TEXT NOT NULL,
                composite INTEGER NOT NULL DEFAULT 0,
                grade TEXT NOT NULL,
                duration REAL NOT NULL DEFAULT 0,
                ideal_duration REAL NOT NULL DEFAULT 0,
                is_offline INTEGER NOT NULL DEFAULT 0
            );
            """
        )

    @staticmethod
    def _ensure_assessments_table(conn_obj: sqlite3.Connection) -> None:
        """Create the placement assessments table (versioned state as JSON)."""
        conn_obj.execute(
            """
            CREATE TABLE IF NOT EXISTS assessments (
                id TEXT PRIMARY KEY,
                version INTEGER NOT NULL DEFAULT 0,
                started_at INTEGER NOT NULL,
                state TEXT NOT NULL
            );
            """
        )

    @staticmethod
    def _ensure_indexes(conn_obj: sqlite3.Connection) -> None:
        conn_obj.execute("CREATE INDEX IF NOT EXISTS idx_results_level ON results(level);")
        conn_obj.execute("CREATE INDEX IF NOT EXISTS idx_results_timestamp ON results(timestamp);")


db_manager = DatabaseManager(DB_PATH)
