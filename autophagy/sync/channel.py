"""
Sync Channel — keeps the phone's and the watch's FastingState in step.

One class for both sides; the DeviceRole chosen at construction decides
the few behaviours that differ (which counterpart must be installed, and
whether a deactivated session re-activates itself).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from PySide6.QtCore import QObject, Signal

from autophagy.data.models import DecodeError, FastingState, decode_state, encode_state
from autophagy.services.fasting_service import ChangeOrigin, FastingStateStore
from autophagy.sync.transport import STATE_MESSAGE_KEY, Transport

logger = logging.getLogger(__name__)


class DeviceRole(str, Enum):
    PHONE = "phone"
    WATCH = "watch"


class ActivationState(Enum):
    NOT_ACTIVATED = "not_activated"
    INACTIVE = "inactive"
    ACTIVATED = "activated"


class SyncChannel(QObject):
    """
    Best-effort, last-write-wins propagation of the full FastingState.

    send() is fire-and-forget: if the session isn't ready the state is
    dropped, not queued. Received snapshots go straight to the store's
    apply_remote_state(), stale or not.
    """

    state_received = Signal(object)   # FastingState
    activation_changed = Signal(object)  # ActivationState

    def __init__(self, role: DeviceRole, transport: Transport,
                 counterpart_installed: bool = True,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.role = DeviceRole(role)
        self.transport = transport
        self.counterpart_installed = counterpart_installed
        self.activation_state = ActivationState.NOT_ACTIVATED
        self.store: Optional[FastingStateStore] = None
        self.sent_count = 0
        self.dropped_count = 0

        transport.message_received.connect(self.handle_message)

    @property
    def counterpart_name(self) -> str:
        return "watch app" if self.role == DeviceRole.PHONE else "companion app"

    # ── Wiring ──────────────────────────────────────────────────────────────

    def attach(self, store: FastingStateStore) -> None:
        """Route received states into ``store`` and broadcast its local changes."""
        self.store = store
        store.state_changed.connect(self._on_store_changed)

    # ── Session lifecycle ───────────────────────────────────────────────────

    def activate(self) -> bool:
        ok = self.transport.open()
        if not ok:
            logger.warning("Sync session activation failed (%s).", self.role.value)
        self._set_activation(ActivationState.ACTIVATED if ok else ActivationState.NOT_ACTIVATED)
        return ok

    def session_did_become_inactive(self) -> None:
        self._set_activation(ActivationState.INACTIVE)

    def session_did_deactivate(self) -> None:
        """The transport went away. The phone re-activates at once (e.g. watch switch)."""
        self.transport.close()
        self._set_activation(ActivationState.NOT_ACTIVATED)
        if self.role == DeviceRole.PHONE:
            self.activate()

    def is_ready(self) -> bool:
        return (
            self.activation_state == ActivationState.ACTIVATED
            and self.counterpart_installed
            and self.transport.is_reachable()
        )

    # ── Egress ──────────────────────────────────────────────────────────────

    def send(self, state: FastingState) -> bool:
        """Transmit one snapshot. Dropped silently when not ready."""
        if not self.is_ready():
            self.dropped_count += 1
            logger.debug("Sync send dropped: session not ready (%s, %s installed=%s).",
                         self.activation_state.value, self.counterpart_name,
                         self.counterpart_installed)
            return False
        try:
            sent = self.transport.transmit({STATE_MESSAGE_KEY: encode_state(state)})
        except OSError as exc:
            logger.debug("Sync send dropped: %s", exc)
            sent = False
        if sent:
            self.sent_count += 1
        else:
            self.dropped_count += 1
        return sent

    # ── Ingress ─────────────────────────────────────────────────────────────

    def handle_message(self, message: dict) -> None:
        try:
            state = decode_state(message.get(STATE_MESSAGE_KEY))
        except (DecodeError, AttributeError) as exc:
            logger.warning("Ignoring undecodable sync message: %s", exc)
            return
        self.state_received.emit(state)
        if self.store is not None:
            self.store.apply_remote_state(state)

    # ── Internal ────────────────────────────────────────────────────────────

    def _on_store_changed(self, state: FastingState, origin: ChangeOrigin) -> None:
        # remote states are not echoed back
        if origin == ChangeOrigin.LOCAL:
            self.send(state)

    def _set_activation(self, new_state: ActivationState) -> None:
        if new_state != self.activation_state:
            self.activation_state = new_state
            logger.info("Sync session (%s) is now %s.", self.role.value, new_state.value)
            self.activation_changed.emit(new_state)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Glues the FastingStateStore to a Transport. Local changes go out,
#   remote snapshots come in and overwrite the store.
#
# Key classes:
#   - DeviceRole: phone or watch, picked at construction instead of with
#     platform-specific code paths.
#   - ActivationState: the session lifecycle. send() checks readiness on
#     every call, which is the whole reconnection story.
#   - SyncChannel: send(), handle_message(), attach().
#
# Data flow:
#   store.state_changed(LOCAL) → send() → transport.transmit()
#   transport.message_received → handle_message() → store.apply_remote_state()
#
# Interviewer-friendly talking points:
#   1. Eventually consistent means "consistent on the next successful send",
#      not guaranteed delivery. No queue means nothing stale ever gets
#      replayed after a reconnect.
#   2. Echo suppression via ChangeOrigin: without it, phone → watch →
#      phone would ping-pong forever.
#   3. Full-snapshot last-write-wins: no vector clocks, no merge. The known
#      trade-off is that a delayed stale snapshot can win.
