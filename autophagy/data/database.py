"""
SQLite storage files for the tracker.

Each device process opens two of these: its own local file and the shared
cloud file. Both hold the same single ``kv_store`` table; the queries live
in KeyValueRepository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Default DB lives next to the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "autophagy.db"
MEMORY_PATH = ":memory:"

# Bump when SCHEMA_SQL changes; stored in PRAGMA user_version
SCHEMA_VERSION = 1
# Seconds to wait on a write lock held by the other device's process
BUSY_TIMEOUT_S = 2.0

SCHEMA_SQL = """
-- Key-value slots -------------------------------------------------------------
CREATE TABLE IF NOT EXISTS kv_store (
    namespace   TEXT    NOT NULL,
    key         TEXT    NOT NULL,
    value       BLOB    NOT NULL,
    updated_at  TEXT    NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (namespace, key)
);
"""


class Database:
    """One SQLite file (or ``:memory:``) holding the kv_store table.

    Usable as a context manager; the connection is closed on exit.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None,
                 busy_timeout: float = BUSY_TIMEOUT_S) -> None:
        self.db_path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH
        self.busy_timeout = busy_timeout
        self.conn: Optional[sqlite3.Connection] = None

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == MEMORY_PATH

    def connect(self) -> sqlite3.Connection:
        """Open the file on first call and bring its schema up to date."""
        if self.conn is None:
            self.conn = self._open()
            self._migrate()
        return self.conn

    def schema_version(self) -> int:
        return self.connect().execute("PRAGMA user_version").fetchone()[0]

    def close(self) -> None:
        if self.conn is None:
            return
        self.conn.close()
        self.conn = None
        logger.info("Closed %s", self.db_path)

    def __enter__(self) -> sqlite3.Connection:
        return self.connect()

    def __exit__(self, *_exc) -> None:
        self.close()

    # ── Internal ────────────────────────────────────────────────────────────

    def _open(self) -> sqlite3.Connection:
        if not self.in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Opening SQLite store at %s", self.db_path)
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        if not self.in_memory:
            # lets the widget process and the other device read mid-write
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _migrate(self) -> None:
        assert self.conn is not None
        found = self.conn.execute("PRAGMA user_version").fetchone()[0]
        if found >= SCHEMA_VERSION:
            return
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        self.conn.commit()
        logger.info("kv_store schema upgraded from v%d to v%d.", found, SCHEMA_VERSION)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Opens a SQLite file and makes sure the single kv_store table exists.
#
# Key pieces:
#   - SCHEMA_SQL: one table keyed by (namespace, key). Namespaces let the
#     shared device store and the replicated history store reuse the same
#     code.
#   - SCHEMA_VERSION / PRAGMA user_version: the file records which schema
#     it has, so a second process opening it skips the DDL entirely.
#   - Database: one connection per file, WAL for real files, context
#     manager for scripts and tests.
#
# Data flow:
#   App start → Database.connect() → _migrate() → KeyValueRepository
#
# Interviewer-friendly talking points:
#   1. WAL mode lets the watch-widget process read while the app writes,
#      which is exactly the "shared key-value namespace" we need.
#   2. The busy timeout is bounded (2s) so a write never blocks forever.
#   3. A key-value table instead of typed columns: the values are small JSON
#      blobs that both devices already agree on.
