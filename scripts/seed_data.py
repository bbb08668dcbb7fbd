"""
Seed Data Generator — fills the fasting history with realistic fake fasts.

Run: python scripts/seed_data.py
"""

import random
import sys
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from PySide6.QtCore import QCoreApplication

from autophagy.config import load_config
from autophagy.data.database import Database
from autophagy.data.models import FastingSession, utcnow
from autophagy.data.persistence import ReplicatedKeyValueStore, TieredHistoryStorage
from autophagy.data.repository import (
    APP_GROUP_NAMESPACE,
    UBIQUITOUS_NAMESPACE,
    KeyValueRepository,
)
from autophagy.services.duration import format_short
from autophagy.services.history_service import SessionHistoryStore


def seed(num_fasts: int = 30) -> None:
    _qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    config = load_config()

    db = Database(Path(config["data_dir"]) / config["local_db_name"])
    db.connect()
    cloud_db = Database(Path(config["cloud_db_path"]))
    cloud_db.connect()

    storage = TieredHistoryStorage(
        ReplicatedKeyValueStore(KeyValueRepository(cloud_db.conn, UBIQUITOUS_NAMESPACE)),
        KeyValueRepository(db.conn, APP_GROUP_NAMESPACE),
    )
    history = SessionHistoryStore(storage)

    # ── Generate fasts, oldest first so the newest ends up on top ──────
    base_date = utcnow() - timedelta(days=num_fasts + 1)

    for i in range(num_fasts):
        # evening start, 12–20 hours later end; mostly 14–18h
        start = base_date + timedelta(days=i, hours=random.randint(18, 21),
                                      minutes=random.randint(0, 59))
        hours = min(max(random.gauss(16.0, 2.0), 12.0), 20.0)
        end = start + timedelta(hours=hours)
        history.add_session(FastingSession(start_date=start, end_date=end))

    stats = history.statistics()
    print(f"Seeded {stats['total_fasts']} fasts.")
    print(f"  average: {format_short(stats['average_fast_duration'])}")
    print(f"  longest: {format_short(stats['longest_fast'].duration)}")
    print(f"  autophagy reached: {stats['autophagy_success_rate']:.0%}")

    db.close()
    cloud_db.close()


if __name__ == "__main__":
    seed()
