from .database import Database
from .models import AUTOPHAGY_THRESHOLD, FastingSession, FastingState
from .persistence import ReplicatedKeyValueStore, StatePersistence, TieredHistoryStorage
from .repository import KeyValueRepository

__all__ = [
    "AUTOPHAGY_THRESHOLD", "Database", "FastingSession", "FastingState",
    "KeyValueRepository", "ReplicatedKeyValueStore", "StatePersistence",
    "TieredHistoryStorage",
]
