"""
AutophagyApp — builds every store once and wires them together.

This is the only place that knows how the pieces fit: consumers get the
stores by reference from here instead of reaching for globals.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from PySide6.QtCore import QObject

from autophagy.config import load_config
from autophagy.data.database import Database
from autophagy.data.models import FastingState, utcnow
from autophagy.data.persistence import (
    ReplicatedKeyValueStore,
    StatePersistence,
    TieredHistoryStorage,
)
from autophagy.data.repository import (
    APP_GROUP_NAMESPACE,
    UBIQUITOUS_NAMESPACE,
    KeyValueRepository,
)
from autophagy.services.fasting_service import ChangeOrigin, FastingStateStore
from autophagy.services.history_service import SessionHistoryStore
from autophagy.services.widget_timeline import WidgetTimelineProvider
from autophagy.sync.channel import DeviceRole, SyncChannel
from autophagy.sync.transport import Transport, UdpTransport

logger = logging.getLogger(__name__)


class AutophagyApp(QObject):
    """Composition root for one device process (phone or watch)."""

    def __init__(
        self,
        config: Optional[dict] = None,
        transport: Optional[Transport] = None,
        clock: Callable[[], datetime] = utcnow,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.config = config or load_config()
        self.role = DeviceRole(self.config["role"])

        # ── Storage ─────────────────────────────────────────────────────
        self.db = Database(Path(self.config["data_dir"]) / self.config["local_db_name"])
        self.db.connect()
        self.cloud_db = Database(Path(self.config["cloud_db_path"]))
        self.cloud_db.connect()

        local_repo = KeyValueRepository(self.db.conn, APP_GROUP_NAMESPACE)
        self.state_persistence = StatePersistence(local_repo)
        self.replicated = ReplicatedKeyValueStore(
            KeyValueRepository(self.cloud_db.conn, UBIQUITOUS_NAMESPACE),
            poll_interval_ms=self.config["cloud_poll_interval_ms"],
            parent=self,
        )

        # ── Stores ──────────────────────────────────────────────────────
        self.history = SessionHistoryStore(
            TieredHistoryStorage(self.replicated, local_repo), parent=self
        )
        self.fasting = FastingStateStore(
            self.history,
            initial_state=self.state_persistence.load(),
            clock=clock,
            parent=self,
        )
        self.widgets = WidgetTimelineProvider(self.state_persistence, parent=self)

        # ── Sync ────────────────────────────────────────────────────────
        sync_cfg = self.config["sync"]
        self.transport = transport or UdpTransport(
            sync_cfg["bind_host"], sync_cfg["bind_port"],
            sync_cfg["peer_host"], sync_cfg["peer_port"],
        )
        self.transport.setParent(self)
        self.sync = SyncChannel(
            self.role, self.transport,
            counterpart_installed=sync_cfg["counterpart_installed"],
            parent=self,
        )

        # ── Side-effect subscribers ─────────────────────────────────────
        # persistence must run before widgets reload from it
        self.fasting.state_changed.connect(self._persist_state)
        self.fasting.state_changed.connect(self.widgets.reload_all_timelines)
        self.sync.attach(self.fasting)

        logger.info("AutophagyApp ready (%s).", self.role.value)

    def start(self) -> None:
        self.sync.activate()
        self.replicated.start_polling()

    def shutdown(self) -> None:
        self.replicated.stop_polling()
        self.transport.close()
        self.db.close()
        self.cloud_db.close()
        logger.info("AutophagyApp shut down.")

    def _persist_state(self, state: FastingState, origin: ChangeOrigin) -> None:
        self.state_persistence.save(state)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Constructs the whole object graph for one device: databases, the
#   persistence layer, both stores, the widget provider and the sync
#   channel, then connects the signals between them.
#
# Key design decisions:
#   - No singletons: tests build two AutophagyApps (phone + watch) in one
#     process and connect them with an in-memory transport.
#   - Side effects are subscribers: saving, widget reloads and sync sends
#     all hang off FastingStateStore.state_changed.
#   - The transport is injectable; the default is UDP from config.
#
# Data flow:
#   state_changed → _persist_state() → widgets.reload_all_timelines()
#   → sync._on_store_changed() → peer
#
# Interviewer-friendly talking points:
#   1. Composition root pattern: one place wires everything, so every other
#      class can take its collaborators as constructor arguments.
#   2. Qt invokes slots in connection order, which is how "persist first,
#      then tell widgets" is guaranteed.
#   3. start() is separate from __init__ so the graph can be built and
#      inspected without opening sockets or starting timers.
