"""Unit tests for the cross-device sync channel and transports."""

import sqlite3
import time
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from PySide6.QtCore import QCoreApplication

from autophagy.app import AutophagyApp
from autophagy.config import DEFAULT_CONFIG
from autophagy.data.database import SCHEMA_SQL
from autophagy.data.models import FastingState, encode_state
from autophagy.data.persistence import ReplicatedKeyValueStore, TieredHistoryStorage
from autophagy.data.repository import KeyValueRepository, UBIQUITOUS_NAMESPACE
from autophagy.services.fasting_service import FastingStateStore
from autophagy.services.history_service import SessionHistoryStore
from autophagy.sync.channel import ActivationState, DeviceRole, SyncChannel
from autophagy.sync.transport import STATE_MESSAGE_KEY, Transport, UdpTransport

T0 = datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc)
H = timedelta(hours=1)


class PairedTransport(Transport):
    """In-process transport; delivers synchronously to its peer while both are open."""

    def __init__(self) -> None:
        super().__init__()
        self.peer = None
        self.opened = False
        self.reachable = True
        self.sent = []

    @classmethod
    def pair(cls):
        a, b = cls(), cls()
        a.peer, b.peer = b, a
        return a, b

    def open(self) -> bool:
        self.opened = True
        return True

    def close(self) -> None:
        self.opened = False

    def is_reachable(self) -> bool:
        return self.opened and self.reachable

    def transmit(self, message: dict) -> bool:
        self.sent.append(message)
        if self.peer is not None and self.peer.opened:
            self.peer.message_received.emit(message)
        return True


class FailingTransport(PairedTransport):
    def transmit(self, message: dict) -> bool:
        raise OSError("network is down")


def _store() -> FastingStateStore:
    def conn():
        c = sqlite3.connect(":memory:")
        c.row_factory = sqlite3.Row
        c.executescript(SCHEMA_SQL)
        return c
    storage = TieredHistoryStorage(
        ReplicatedKeyValueStore(KeyValueRepository(conn(), UBIQUITOUS_NAMESPACE)),
        KeyValueRepository(conn()),
    )
    return FastingStateStore(SessionHistoryStore(storage), clock=lambda: T0)


@pytest.fixture
def linked():
    """Phone and watch stores joined by a paired transport, both activated."""
    phone_t, watch_t = PairedTransport.pair()
    phone = SyncChannel(DeviceRole.PHONE, phone_t)
    watch = SyncChannel(DeviceRole.WATCH, watch_t)
    phone_store, watch_store = _store(), _store()
    phone.attach(phone_store)
    watch.attach(watch_store)
    phone.activate()
    watch.activate()
    return phone, watch, phone_store, watch_store


class TestSyncChannel:
    def test_not_ready_before_activation(self):
        channel = SyncChannel(DeviceRole.PHONE, PairedTransport())
        assert channel.activation_state == ActivationState.NOT_ACTIVATED
        assert channel.is_ready() is False
        assert channel.send(FastingState()) is False
        assert channel.dropped_count == 1

    def test_send_message_has_single_state_field(self):
        transport = PairedTransport()
        channel = SyncChannel(DeviceRole.WATCH, transport)
        channel.activate()
        state = FastingState(True, T0)

        assert channel.send(state) is True
        assert transport.sent == [{STATE_MESSAGE_KEY: encode_state(state)}]

    def test_counterpart_missing_drops_send(self):
        transport = PairedTransport()
        channel = SyncChannel(DeviceRole.PHONE, transport, counterpart_installed=False)
        channel.activate()
        assert channel.send(FastingState()) is False
        assert transport.sent == []

    def test_unreachable_peer_drops_without_queueing(self):
        transport = PairedTransport()
        channel = SyncChannel(DeviceRole.PHONE, transport)
        channel.activate()

        transport.reachable = False
        assert channel.send(FastingState(True, T0)) is False
        transport.reachable = True
        latest = FastingState(True, T0 + H)
        assert channel.send(latest) is True
        # the dropped state is never replayed
        assert transport.sent == [{STATE_MESSAGE_KEY: encode_state(latest)}]

    def test_transport_error_is_contained(self):
        channel = SyncChannel(DeviceRole.PHONE, FailingTransport())
        channel.activate()
        assert channel.send(FastingState()) is False
        assert channel.dropped_count == 1

    def test_local_change_reaches_other_store(self, linked):
        phone, watch, phone_store, watch_store = linked
        phone_store.start_fasting(T0 - 2 * H)
        assert watch_store.state == phone_store.state
        assert watch_store.is_ticking is True

    def test_remote_apply_is_not_echoed(self, linked):
        phone, watch, phone_store, watch_store = linked
        watch_store.start_fasting()
        assert watch.sent_count == 1
        assert phone.sent_count == 0

    def test_stop_on_watch_records_history_only_on_watch(self, linked):
        phone, watch, phone_store, watch_store = linked
        phone_store.start_fasting(T0 - 17 * H)
        watch_store.stop_fasting()

        assert phone_store.state.is_fasting is False
        assert phone_store.state.last_fasting_duration == 17 * H
        assert watch_store.history.total_fasts == 1
        assert phone_store.history.total_fasts == 0

    def test_stale_snapshot_still_wins(self, linked):
        phone, watch, phone_store, watch_store = linked
        watch_store.start_fasting(T0)
        old = FastingState(False, None, 3 * H)
        phone.handle_message({STATE_MESSAGE_KEY: encode_state(old)})
        assert phone_store.state == old

    @pytest.mark.parametrize("message", [
        {},
        {STATE_MESSAGE_KEY: b"garbage"},
        {STATE_MESSAGE_KEY: b'{"isFasting": true}'},
        {STATE_MESSAGE_KEY: b'{"isFasting": false, "lastFastingDuration": NaN}'},
        {"other": b"{}"},
    ])
    def test_undecodable_message_is_ignored(self, linked, message):
        phone, watch, phone_store, watch_store = linked
        phone_store.start_fasting(T0)
        before = phone_store.state
        received = []
        phone.state_received.connect(received.append)

        phone.handle_message(message)

        assert phone_store.state == before
        assert received == []

    def test_phone_reactivates_after_deactivate(self):
        transport = PairedTransport()
        channel = SyncChannel(DeviceRole.PHONE, transport)
        channel.activate()
        channel.session_did_become_inactive()
        assert channel.is_ready() is False
        channel.session_did_deactivate()
        assert channel.activation_state == ActivationState.ACTIVATED
        assert channel.is_ready() is True

    def test_watch_stays_down_after_deactivate(self):
        channel = SyncChannel(DeviceRole.WATCH, PairedTransport())
        channel.activate()
        channel.session_did_deactivate()
        assert channel.activation_state == ActivationState.NOT_ACTIVATED
        assert channel.send(FastingState()) is False

    def test_role_counterpart_names(self):
        assert SyncChannel(DeviceRole.PHONE, PairedTransport()).counterpart_name == "watch app"
        assert SyncChannel("watch", PairedTransport()).counterpart_name == "companion app"


class TestUdpTransport:
    def test_unbound_socket_is_not_reachable(self):
        transport = UdpTransport("127.0.0.1", 0, "127.0.0.1", 9)
        assert transport.is_reachable() is False
        assert transport.transmit({STATE_MESSAGE_KEY: b"{}"}) is False

    def test_malformed_datagrams_are_dropped(self):
        assert UdpTransport._parse(b"not json") is None
        assert UdpTransport._parse(b'{"other": "x"}') is None
        assert UdpTransport._parse(b'["state"]') is None
        assert UdpTransport._parse(b'{"state": "{}"}') == {STATE_MESSAGE_KEY: b"{}"}

    def test_datagram_round_trip_on_localhost(self):
        receiver = UdpTransport("127.0.0.1", 0, "127.0.0.1", 0)
        assert receiver.open() is True
        sender = UdpTransport("127.0.0.1", 0, "127.0.0.1", receiver.local_port)
        assert sender.open() is True

        got = []
        receiver.message_received.connect(got.append)
        payload = encode_state(FastingState(True, T0))
        assert sender.transmit({STATE_MESSAGE_KEY: payload}) is True

        deadline = time.monotonic() + 2.0
        while not got and time.monotonic() < deadline:
            QCoreApplication.processEvents()
            time.sleep(0.01)

        assert got == [{STATE_MESSAGE_KEY: payload}]
        sender.close()
        receiver.close()


class TestTwoDevices:
    """Phone and watch apps sharing one cloud file, linked by a paired transport."""

    @pytest.fixture
    def devices(self, tmp_path):
        cloud = str(tmp_path / "cloud" / "history.db")
        phone_t, watch_t = PairedTransport.pair()

        def build(role, transport):
            config = dict(DEFAULT_CONFIG, role=role, data_dir=str(tmp_path / role),
                          cloud_db_path=cloud)
            app = AutophagyApp(config, transport=transport)
            app.sync.activate()
            return app

        phone, watch = build("phone", phone_t), build("watch", watch_t)
        yield phone, watch
        phone.shutdown()
        watch.shutdown()

    def test_state_is_persisted_on_both_devices(self, devices):
        phone, watch = devices
        phone.fasting.start_fasting()

        assert phone.state_persistence.load() == phone.fasting.state
        assert watch.state_persistence.load() == phone.fasting.state
        assert watch.widgets.reload_count == 1

    def test_history_written_on_one_device_reaches_the_other(self, devices):
        phone, watch = devices
        watch.fasting.start_fasting(datetime.now(timezone.utc) - 18 * H)
        watch.fasting.stop_fasting()

        assert phone.history.total_fasts == 0
        assert phone.replicated.synchronize() is True
        assert phone.history.total_fasts == 1
        assert phone.history.sessions == watch.history.sessions

    def test_restart_restores_state(self, devices, tmp_path):
        phone, watch = devices
        phone.fasting.start_fasting()
        expected = phone.fasting.state

        config = dict(DEFAULT_CONFIG, role="phone", data_dir=str(tmp_path / "phone"),
                      cloud_db_path=str(tmp_path / "cloud" / "history.db"))
        restarted = AutophagyApp(config, transport=PairedTransport())
        assert restarted.fasting.state == expected
        assert restarted.fasting.is_ticking is True
        restarted.shutdown()

    def test_stop_with_broken_local_database(self, devices):
        phone, watch = devices
        phone.fasting.start_fasting(datetime.now(timezone.utc) - 17 * H)
        phone.db.conn.close()

        phone.fasting.toggle_fasting()
        phone.fasting.toggle_fasting()

        assert phone.history.total_fasts == 1
        assert watch.fasting.state.is_fasting is True
        assert phone.fasting.state.is_fasting is True
