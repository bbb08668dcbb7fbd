"""
Fasting Service — the authoritative "is a fast running, since when" record.

Handles: start/stop/toggle from the local user, last-write-wins overwrite
from the other device, and the one-second display tick while fasting.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from autophagy.data.models import FastingSession, FastingState, utcnow
from autophagy.services import duration as engine
from autophagy.services.history_service import SessionHistoryStore

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = 1000


class ChangeOrigin(str, Enum):
    LOCAL = "local"    # user action on this device
    REMOTE = "remote"  # snapshot received from the other device


class FastingStateStore(QObject):
    """
    Owns the device's FastingState.

    Every change is announced on ``state_changed(state, origin)``; persistence,
    widget reloads and the sync channel are slots connected to it. While a
    fast runs, ``displayed_duration_changed(seconds)`` fires once a second.
    """

    state_changed = Signal(object, object)        # FastingState, ChangeOrigin
    displayed_duration_changed = Signal(float)    # seconds, never negative

    def __init__(
        self,
        history: SessionHistoryStore,
        initial_state: Optional[FastingState] = None,
        clock: Callable[[], datetime] = utcnow,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.history = history
        self.clock = clock
        self._state = replace(initial_state) if initial_state else FastingState()
        self.displayed_duration: timedelta = timedelta(0)

        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(TICK_INTERVAL_MS)
        self._tick_timer.timeout.connect(self._update_displayed_duration)
        self._setup_timer()

    @property
    def state(self) -> FastingState:
        # copy: callers get a snapshot, never the live record
        return replace(self._state)

    @property
    def is_ticking(self) -> bool:
        return self._tick_timer.isActive()

    # ── Local mutations ─────────────────────────────────────────────────────

    def start_fasting(self, start_time: Optional[datetime] = None) -> None:
        """Begin a fast now, or at a corrected earlier time."""
        start = start_time or self.clock()
        self._set_state(
            FastingState(
                is_fasting=True,
                fasting_start_date=start,
                last_fasting_duration=self._state.last_fasting_duration,
            ),
            ChangeOrigin.LOCAL,
        )
        logger.info("Fast started at %s", start.isoformat())

    def stop_fasting(self, end_time: Optional[datetime] = None) -> Optional[FastingSession]:
        """End the running fast and record it. No-op when nothing is running."""
        start = self._state.fasting_start_date
        if not self._state.is_fasting or start is None:
            logger.debug("stop_fasting ignored: no active fast.")
            return None

        end = end_time or self.clock()
        if end < start:
            logger.warning("stop_fasting ignored: end %s precedes start %s",
                           end.isoformat(), start.isoformat())
            return None

        session = FastingSession(start_date=start, end_date=end)
        if not self.history.add_session(session):
            # fast stays running so a later stop can still record it
            logger.warning("stop_fasting aborted: session could not be stored.")
            return None
        self._set_state(
            FastingState(
                is_fasting=False,
                fasting_start_date=None,
                last_fasting_duration=end - start,
            ),
            ChangeOrigin.LOCAL,
        )
        logger.info("Fast stopped after %s", engine.format_duration(session.duration))
        return session

    def toggle_fasting(self) -> None:
        if self._state.is_fasting:
            self.stop_fasting()
        else:
            self.start_fasting()

    # ── Sync ingress ────────────────────────────────────────────────────────

    def apply_remote_state(self, new_state: FastingState) -> None:
        """Overwrite local state with the other device's snapshot (last write wins)."""
        self._set_state(new_state, ChangeOrigin.REMOTE)
        logger.info("Applied remote state (fasting=%s)", new_state.is_fasting)

    # ── Derived values at "now" ─────────────────────────────────────────────

    def current_fasting_duration(self) -> Optional[timedelta]:
        return engine.current_fasting_duration(self._state, self.clock())

    def autophagy_started(self) -> bool:
        return engine.autophagy_started(self._state, self.clock())

    def time_until_autophagy(self) -> Optional[timedelta]:
        return engine.time_until_autophagy(self._state, self.clock())

    def autophagy_duration(self) -> Optional[timedelta]:
        return engine.autophagy_duration(self._state, self.clock())

    # ── Internal ────────────────────────────────────────────────────────────

    def _set_state(self, new_state: FastingState, origin: ChangeOrigin) -> None:
        self._state = replace(new_state)
        self._setup_timer()
        self.state_changed.emit(self.state, origin)

    def _setup_timer(self) -> None:
        """Cancel any running tick; re-arm it only while fasting."""
        self._tick_timer.stop()
        if self._state.is_fasting:
            self._update_displayed_duration()
            self._tick_timer.start()
        else:
            self.displayed_duration = timedelta(0)
            self.displayed_duration_changed.emit(0.0)

    def _update_displayed_duration(self) -> None:
        self.displayed_duration = engine.display_duration(self._state, self.clock())
        self.displayed_duration_changed.emit(self.displayed_duration.total_seconds())


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The single source of truth for the current fast on one device. Local
#   buttons and the sync channel both end up in _set_state().
#
# Key classes:
#   - ChangeOrigin: tells subscribers whether a change came from this user
#     or from the other device. The sync channel only re-broadcasts LOCAL
#     changes, so a remote update never echoes back.
#   - FastingStateStore: start/stop/toggle, apply_remote_state(), and the
#     1-second QTimer that republishes the displayed duration.
#
# Data flow:
#   Button → toggle_fasting() → stop_fasting() → history.add_session()
#   → _set_state() → state_changed → (persist, reload widgets, send to peer)
#
# Interviewer-friendly talking points:
#   1. Invalid transitions are no-ops, not exceptions: a double tap on
#      "End Fast" (or a stale widget) must never record two sessions.
#   2. One QTimer, always stopped before re-arming: overlapping tickers are
#      impossible by construction.
#   3. Last-write-wins is deliberate: apply_remote_state() doesn't compare
#      timestamps. Simple to reason about; the trade-off is that a stale
#      snapshot can overwrite a newer one.
