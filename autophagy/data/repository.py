"""
Repository — the single place where SQL lives.

Every other module talks to a KeyValueRepository, never to raw SQL. Each
repository is scoped to one namespace inside one SQLite file.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

logger = logging.getLogger(__name__)

# Shared by every process on one device (app, widgets)
APP_GROUP_NAMESPACE = "group.autophagy.shared"
# Replicated between devices through the cloud store file
UBIQUITOUS_NAMESPACE = "ubiquitous"


class KeyValueRepository:
    """Data-access layer wrapping a sqlite3 connection and a namespace."""

    def __init__(self, conn: sqlite3.Connection,
                 namespace: str = APP_GROUP_NAMESPACE) -> None:
        self.conn = conn
        self.namespace = namespace

    # ── Slots ───────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[bytes]:
        row = self.conn.execute(
            "SELECT value FROM kv_store WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        ).fetchone()
        return bytes(row["value"]) if row else None

    def set(self, key: str, value: bytes) -> None:
        self.conn.execute(
            """INSERT INTO kv_store (namespace, key, value, updated_at)
               VALUES (?, ?, ?, datetime('now'))
               ON CONFLICT(namespace, key) DO UPDATE SET
                   value = excluded.value, updated_at = excluded.updated_at""",
            (self.namespace, key, sqlite3.Binary(value)),
        )
        self.conn.commit()

    def delete(self, key: str) -> None:
        self.conn.execute(
            "DELETE FROM kv_store WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        )
        self.conn.commit()

    def keys(self) -> List[str]:
        rows = self.conn.execute(
            "SELECT key FROM kv_store WHERE namespace = ? ORDER BY key",
            (self.namespace,),
        ).fetchall()
        return [r["key"] for r in rows]

    # ── Change detection ────────────────────────────────────────────────────

    def data_version(self) -> int:
        """Changes whenever ANOTHER connection commits to this file."""
        row = self.conn.execute("PRAGMA data_version").fetchone()
        return row[0]


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The only place raw SQL queries live. Higher layers call get()/set() and
#   never see a cursor. This is the "Repository Pattern."
#
# Key methods:
#   - get/set/delete: a tiny key-value API over the kv_store table.
#   - data_version(): SQLite's own counter for "someone else wrote here",
#     used to detect history changes pushed by the other device.
#
# Data flow:
#   Persistence layer → KeyValueRepository.get/set → SQL → bytes
#
# Interviewer-friendly talking points:
#   1. Upsert (ON CONFLICT DO UPDATE) keeps writes to a single statement.
#   2. Namespacing: the same table holds both the device-local and the
#      replicated slots without their keys colliding.
#   3. PRAGMA data_version ignores our own commits, so polling it never
#      triggers a reload loop from our own writes.
