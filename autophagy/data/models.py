"""
Data models for the Autophagy tracker.

Two plain dataclasses describe everything the app knows: the live
``FastingState`` (one per device, mirrored between phone and watch) and the
immutable ``FastingSession`` records that make up the history.

The JSON codecs for both live here too, because persistence and the sync
channel must agree on exactly one encoding.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

AUTOPHAGY_THRESHOLD = timedelta(hours=16)


class DecodeError(ValueError):
    """Raised by the codecs when bytes can't be turned back into a model."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FastingState:
    """The current fast, if any. ``fasting_start_date`` is set iff ``is_fasting``."""
    is_fasting: bool = False
    fasting_start_date: Optional[datetime] = None
    last_fasting_duration: Optional[timedelta] = None  # informational only

    def to_dict(self) -> dict:
        return {
            "isFasting": self.is_fasting,
            "fastingStartDate": _dt_to_str(self.fasting_start_date),
            "lastFastingDuration": (
                self.last_fasting_duration.total_seconds()
                if self.last_fasting_duration is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> FastingState:
        try:
            is_fasting = data["isFasting"]
            start = _str_to_dt(data.get("fastingStartDate"))
            last = data.get("lastFastingDuration")
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"bad fasting state: {exc}") from exc
        if not isinstance(is_fasting, bool):
            raise DecodeError("isFasting must be a boolean")
        if is_fasting != (start is not None):
            raise DecodeError("isFasting and fastingStartDate disagree")
        last_duration = None
        if last is not None:
            # bool is an int subclass; JSON true/false is not a duration
            if isinstance(last, bool) or not isinstance(last, (int, float)):
                raise DecodeError("lastFastingDuration must be a number of seconds")
            try:
                last_duration = timedelta(seconds=last)
            except (ValueError, OverflowError) as exc:
                raise DecodeError(f"lastFastingDuration out of range: {exc}") from exc
        return cls(
            is_fasting=is_fasting,
            fasting_start_date=start,
            last_fasting_duration=last_duration,
        )


@dataclass(frozen=True)
class FastingSession:
    """One completed fast, from 'Start Fast' to 'End Fast'."""
    start_date: datetime
    end_date: datetime
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be earlier than start_date")

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date

    @property
    def reached_autophagy(self) -> bool:
        return self.duration >= AUTOPHAGY_THRESHOLD

    @property
    def autophagy_duration(self) -> Optional[timedelta]:
        if not self.reached_autophagy:
            return None
        return self.duration - AUTOPHAGY_THRESHOLD

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "startDate": _dt_to_str(self.start_date),
            "endDate": _dt_to_str(self.end_date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> FastingSession:
        try:
            return cls(
                id=uuid.UUID(data["id"]),
                start_date=_str_to_dt(data["startDate"]),
                end_date=_str_to_dt(data["endDate"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DecodeError(f"bad fasting session: {exc}") from exc


# ── Codecs ──────────────────────────────────────────────────────────────────

def encode_state(state: FastingState) -> bytes:
    return json.dumps(state.to_dict()).encode("utf-8")


def decode_state(data: Optional[bytes]) -> FastingState:
    """Bytes → FastingState. Raises DecodeError on anything unusable."""
    if data is None:
        raise DecodeError("no data")
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise DecodeError("fasting state must be a JSON object")
    return FastingState.from_dict(raw)


def encode_sessions(sessions: List[FastingSession]) -> bytes:
    return json.dumps([s.to_dict() for s in sessions]).encode("utf-8")


def decode_sessions(data: Optional[bytes]) -> List[FastingSession]:
    """Bytes → list of sessions. One bad record fails the whole list."""
    if data is None:
        raise DecodeError("no data")
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise DecodeError("session history must be a JSON array")
    return [FastingSession.from_dict(item) for item in raw]


# helpers: ISO strings on the wire, aware UTC datetimes in memory
def _dt_to_str(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def _str_to_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the two shapes of data in the system and how they look on disk
#   and on the wire.
#
# Key classes and why they exist:
#   - FastingState: "is a fast running, and since when". The phone and the
#     watch each hold one and overwrite each other's copy on every change.
#   - FastingSession: a finished fast. Frozen because history is immutable;
#     the only way to change it is to delete it.
#   - DecodeError: the single failure type of the codecs. Callers catch it
#     and fall back to an empty default, so corrupt bytes never crash the app.
#
# Data flow:
#   Store mutates FastingState → encode_state() → SQLite / UDP datagram
#   → decode_state() on the other side → Store.apply_remote_state()
#
# Interviewer-friendly talking points:
#   1. Derived values (duration, reached_autophagy) are properties, not
#      stored fields, so they can never disagree with start/end.
#   2. camelCase JSON keys: both devices must agree on the encoding out of
#      band, so the wire format is pinned here and nowhere else.
#   3. Timezone-aware UTC datetimes: two devices can sit in different
#      timezones, so naive local times would silently shift fasts by hours.
