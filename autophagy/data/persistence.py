"""
Persistence layer — typed load/save on top of the key-value repositories.

  - StatePersistence: the current FastingState under one constant key in the
    device-shared namespace.
  - ReplicatedKeyValueStore: the cloud-backed store shared by both devices,
    with external-change notification.
  - TieredHistoryStorage: session history kept in two tiers (replicated
    first, local fallback), read-through and write-through.

Nothing here raises on bad bytes or a failed SQLite call: decode failures
become default values and storage errors are logged and reported as False.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from .models import (
    DecodeError,
    FastingSession,
    FastingState,
    decode_sessions,
    decode_state,
    encode_sessions,
    encode_state,
)
from .repository import KeyValueRepository

logger = logging.getLogger(__name__)

FASTING_STATE_KEY = "fastingState"
HISTORY_KEY = "fastingSessionsHistory"
LOCAL_HISTORY_KEY = "localFastingSessionsHistory"

DEFAULT_POLL_INTERVAL_MS = 5000


class StatePersistence:
    """Loads and saves the single FastingState slot."""

    def __init__(self, repo: KeyValueRepository) -> None:
        self.repo = repo

    def load(self) -> FastingState:
        try:
            return decode_state(self.repo.get(FASTING_STATE_KEY))
        except DecodeError as exc:
            logger.warning("Using empty fasting state: %s", exc)
        except sqlite3.Error as exc:
            logger.warning("Fasting state unreadable, using empty state: %s", exc)
        return FastingState()

    def save(self, state: FastingState) -> bool:
        try:
            self.repo.set(FASTING_STATE_KEY, encode_state(state))
        except sqlite3.Error as exc:
            logger.warning("Saving fasting state failed: %s", exc)
            return False
        return True


class ReplicatedKeyValueStore(QObject):
    """
    Key-value store replicated between devices.

    Both devices open the same cloud database file; a commit made by the
    other device shows up as a bumped ``PRAGMA data_version`` on our
    connection, which synchronize() turns into ``changed_externally``.
    """

    changed_externally = Signal()

    def __init__(self, repo: KeyValueRepository,
                 poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.repo = repo
        self.poll_interval_ms = poll_interval_ms
        self._last_version: Optional[int] = self._read_version()

        self._poll_timer = QTimer(self)
        self._poll_timer.timeout.connect(self.synchronize)

    # ── Public API ──────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self.repo.get(key)
        except sqlite3.Error as exc:
            logger.warning("Replicated read of %s failed: %s", key, exc)
            return None

    def set(self, key: str, value: bytes) -> bool:
        try:
            self.repo.set(key, value)
        except sqlite3.Error as exc:
            logger.warning("Replicated write of %s failed: %s", key, exc)
            return False
        return True

    def synchronize(self) -> bool:
        """Emit changed_externally if another process committed since last check."""
        version = self._read_version()
        if version is None or version == self._last_version:
            return False
        self._last_version = version
        logger.info("Replicated store changed externally.")
        self.changed_externally.emit()
        return True

    def start_polling(self) -> None:
        self._poll_timer.start(self.poll_interval_ms)

    def stop_polling(self) -> None:
        self._poll_timer.stop()

    # ── Internal ────────────────────────────────────────────────────────────

    def _read_version(self) -> Optional[int]:
        try:
            return self.repo.data_version()
        except sqlite3.Error as exc:
            logger.warning("Replicated store unavailable: %s", exc)
            return None


class TieredHistoryStorage:
    """Two-tier history storage: replicated slot first, local slot as backup."""

    def __init__(self, replicated: ReplicatedKeyValueStore,
                 local: KeyValueRepository) -> None:
        self.replicated = replicated
        self.local = local

    def load(self) -> List[FastingSession]:
        """Newest first. Repairs whichever tier turned out to be stale."""
        sessions = self._decode(self.replicated.get(HISTORY_KEY), "replicated")
        if sessions is not None:
            sessions = _newest_first(sessions)
            self._save_local(sessions)
            return sessions

        sessions = self._decode(self._get_local(), "local")
        if sessions is not None:
            sessions = _newest_first(sessions)
            self.save(sessions)
            return sessions

        return []

    def save(self, sessions: List[FastingSession]) -> bool:
        """Write both tiers. False only if neither tier took the write."""
        data = encode_sessions(sessions)
        replicated_ok = self.replicated.set(HISTORY_KEY, data)
        local_ok = self._set_local(data)
        return replicated_ok or local_ok

    def _save_local(self, sessions: List[FastingSession]) -> None:
        self._set_local(encode_sessions(sessions))

    def _get_local(self) -> Optional[bytes]:
        try:
            return self.local.get(LOCAL_HISTORY_KEY)
        except sqlite3.Error as exc:
            logger.warning("Local history read failed: %s", exc)
            return None

    def _set_local(self, data: bytes) -> bool:
        try:
            self.local.set(LOCAL_HISTORY_KEY, data)
        except sqlite3.Error as exc:
            logger.warning("Local history write failed: %s", exc)
            return False
        return True

    @staticmethod
    def _decode(data: Optional[bytes], tier: str) -> Optional[List[FastingSession]]:
        if data is None:
            return None
        try:
            return decode_sessions(data)
        except DecodeError as exc:
            logger.warning("Ignoring %s history: %s", tier, exc)
            return None


def _newest_first(sessions: List[FastingSession]) -> List[FastingSession]:
    return sorted(sessions, key=lambda s: s.start_date, reverse=True)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Turns raw key-value bytes into typed models and back, and implements the
#   "cloud slot + local slot" fallback for history.
#
# Key classes:
#   - StatePersistence: one key, one FastingState. Missing or corrupt bytes
#     read back as the empty default state.
#   - ReplicatedKeyValueStore: the cloud tier. A QTimer polls SQLite's
#     data_version and emits changed_externally when the other device wrote.
#   - TieredHistoryStorage: read tries tier 1, falls back to tier 2 and
#     repairs tier 1; write always hits both tiers.
#
# Data flow:
#   HistoryStore.add_session() → TieredHistoryStorage.save() → both tiers
#   Other device writes → synchronize() → changed_externally → reload
#
# Interviewer-friendly talking points:
#   1. Read-through/write-through cache: the local tier keeps history
#      available when the cloud file can't be opened or is corrupt.
#   2. Errors are contained at the boundary: sqlite3.Error in the cloud tier
#      is logged and the local tier wins. Nothing propagates to the UI.
#   3. Polling vs file watching: SQLite's WAL files make filesystem events
#      unreliable, while data_version is exact and cheap.
