"""
Transports — move one sync message between the phone and the watch.

A transport knows nothing about FastingState. It carries a message dict
with a single ``state`` field (raw bytes) and reports whether the peer is
reachable right now. Delivery is best effort: no acks, no retries.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from PySide6.QtCore import QByteArray, QObject, Signal
from PySide6.QtNetwork import QAbstractSocket, QHostAddress, QUdpSocket

logger = logging.getLogger(__name__)

STATE_MESSAGE_KEY = "state"
MAX_DATAGRAM_BYTES = 8192


class Transport(QObject):
    """Base class. Subclasses emit ``message_received({"state": bytes})``."""

    message_received = Signal(object)  # {"state": bytes}

    def open(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def is_reachable(self) -> bool:
        raise NotImplementedError

    def transmit(self, message: dict) -> bool:
        """Hand one message to the network. True if it left this process."""
        raise NotImplementedError


class UdpTransport(Transport):
    """
    One datagram per message over QUdpSocket.

    UDP matches the delivery contract exactly: each send is at most one
    packet, lost packets stay lost, and the next state change supersedes
    anything that went missing.
    """

    def __init__(self, bind_host: str, bind_port: int,
                 peer_host: str, peer_port: int,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.bind_host = bind_host
        self.bind_port = bind_port
        self.peer_host = peer_host
        self.peer_port = peer_port
        self._socket = QUdpSocket(self)
        self._socket.readyRead.connect(self._read_pending)

    @property
    def local_port(self) -> int:
        return self._socket.localPort()

    def open(self) -> bool:
        if self.is_reachable():
            return True
        ok = self._socket.bind(QHostAddress(self.bind_host), self.bind_port)
        if not ok:
            logger.warning("UDP bind to %s:%d failed: %s", self.bind_host,
                           self.bind_port, self._socket.errorString())
            return False
        logger.info("UDP transport listening on %s:%d", self.bind_host, self.local_port)
        return True

    def close(self) -> None:
        self._socket.close()

    def is_reachable(self) -> bool:
        return self._socket.state() == QAbstractSocket.SocketState.BoundState

    def transmit(self, message: dict) -> bool:
        if not self.is_reachable():
            return False
        try:
            payload = json.dumps(
                {STATE_MESSAGE_KEY: message[STATE_MESSAGE_KEY].decode("utf-8")}
            ).encode("utf-8")
        except (KeyError, AttributeError, UnicodeDecodeError) as exc:
            logger.warning("Dropping unencodable sync message: %s", exc)
            return False
        written = self._socket.writeDatagram(
            QByteArray(payload), QHostAddress(self.peer_host), self.peer_port
        )
        if written < 0:
            logger.debug("UDP send failed: %s", self._socket.errorString())
            return False
        return True

    def _read_pending(self) -> None:
        while self._socket.hasPendingDatagrams():
            datagram = self._socket.receiveDatagram(MAX_DATAGRAM_BYTES)
            message = self._parse(datagram.data().data())
            if message is not None:
                self.message_received.emit(message)

    @staticmethod
    def _parse(data: bytes) -> Optional[dict]:
        try:
            raw = json.loads(data)
            state = raw[STATE_MESSAGE_KEY].encode("utf-8")
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring malformed datagram: %s", exc)
            return None
        return {STATE_MESSAGE_KEY: state}


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Ships sync messages between two processes that share no memory. The
#   channel above decides WHAT to send; this file only decides HOW.
#
# Key classes:
#   - Transport: the interface (open/close/is_reachable/transmit plus the
#     message_received signal). Tests plug in an in-process pair.
#   - UdpTransport: QUdpSocket, one JSON datagram per message.
#
# Data flow:
#   SyncChannel.send() → transmit({"state": bytes}) → datagram
#   → peer readyRead → _read_pending() → message_received → SyncChannel
#
# Interviewer-friendly talking points:
#   1. Why UDP: the contract is fire-and-forget, at most once. TCP would add
#      connection state and retransmits we'd have to ignore anyway.
#   2. Qt sockets deliver readyRead on the main thread, so received states
#      reach the store on the same thread as button clicks. No locks.
#   3. Malformed datagrams are logged and dropped; a bad packet from the
#      network can never crash the app.
