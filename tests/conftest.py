"""Shared pytest fixtures."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from PySide6.QtCore import QCoreApplication


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Signals, QTimer and QUdpSocket all need a Qt application object."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
