from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class LocationMethod(str, Enum):
    AUTO = "auto"
    AUTO_OBFUSCATED = "auto_obfuscated"
    MANUAL = "manual"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: object) -> LocationMethod:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class Identity:
    """Pseudonymous (username, token) pair; both fields always travel together."""

    username: str = ""
    token: str = ""

    def __post_init__(self) -> None:
        if bool(self.username) != bool(self.token):
            raise ValueError("Identity requires both username and token, or neither")

    @classmethod
    def empty(cls) -> Identity:
        return cls("", "")

    @property
    def is_empty(self) -> bool:
        return not self.username

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.token)

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "token": self.token}


def compute_earnings(rate: float, duration_seconds: int) -> float:
    return round(rate * duration_seconds / 3600, 2)


def is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True, slots=True)
class LogRecord:
    username: str
    token: str
    # None when the store hands back something that is not a number.
    duration: int | None
    earnings: float
    current_rate: float
    timestamp: int | None
    lat: float | None = None
    lng: float | None = None
    city: str | None = None
    location_method: LocationMethod = LocationMethod.UNKNOWN
    id: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be both present or both absent")
        if self.duration is not None and self.duration < 0:
            raise ValueError("duration must be non-negative")

    @classmethod
    def create(
        cls,
        identity: Identity,
        duration: int,
        rate: float,
        *,
        timestamp: int | None = None,
        lat: float | None = None,
        lng: float | None = None,
        city: str | None = None,
        location_method: LocationMethod = LocationMethod.UNKNOWN,
    ) -> LogRecord:
        if not identity.is_complete:
            raise ValueError("Cannot create a log without a complete identity")
        return cls(
            username=identity.username,
            token=identity.token,
            duration=int(duration),
            earnings=compute_earnings(rate, int(duration)),
            current_rate=float(rate),
            timestamp=now_ms() if timestamp is None else int(timestamp),
            lat=lat,
            lng=lng,
            city=city,
            location_method=location_method,
        )

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None

    def with_id(self, record_id: str) -> LogRecord:
        return LogRecord(
            username=self.username,
            token=self.token,
            duration=self.duration,
            earnings=self.earnings,
            current_rate=self.current_rate,
            timestamp=self.timestamp,
            lat=self.lat,
            lng=self.lng,
            city=self.city,
            location_method=self.location_method,
            id=record_id,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "username": self.username,
            "token": self.token,
            "duration": self.duration,
            "earnings": self.earnings,
            "currentRate": self.current_rate,
            "timestamp": self.timestamp,
            "lat": self.lat,
            "lng": self.lng,
            "city": self.city,
            "locationMethod": self.location_method.value,
        }
        if self.id is not None:
            payload["id"] = self.id
        return payload

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> LogRecord:
        """Build a record from a store payload, tolerating loosely typed fields."""
        duration = data.get("duration")
        lat = _optional_float(data.get("lat"))
        lng = _optional_float(data.get("lng"))
        if lat is None or lng is None:
            lat = lng = None

        city = data.get("city")
        record_id = data.get("id")
        return cls(
            username=str(data.get("username") or ""),
            token=str(data.get("token") or ""),
            duration=int(duration) if is_number(duration) and duration >= 0 else None,
            earnings=_optional_float(data.get("earnings")) or 0.0,
            current_rate=_optional_float(data.get("currentRate")) or 0.0,
            timestamp=parse_timestamp_ms(data.get("timestamp")),
            lat=lat,
            lng=lng,
            city=str(city) if city is not None else None,
            location_method=LocationMethod.coerce(data.get("locationMethod", LocationMethod.UNKNOWN)),
            id=str(record_id) if record_id is not None else None,
        )


@dataclass(frozen=True, slots=True)
class RankingEntry:
    username: str
    duration: int
    earnings: float
    city: str | None
    timestamp: int | None

    @classmethod
    def from_record(cls, record: LogRecord) -> RankingEntry:
        return cls(
            username=record.username,
            duration=record.duration or 0,
            earnings=record.earnings,
            city=record.city,
            timestamp=record.timestamp,
        )


@dataclass(frozen=True, slots=True)
class DerivedViews:
    own_logs: list[LogRecord]
    last_known_city: str | None
    global_leaderboard: list[RankingEntry]
    local_leaderboard: list[RankingEntry]
    # City the local leaderboard was computed for (may be a fallback anchor).
    local_city: str | None = None

    @classmethod
    def empty(cls) -> DerivedViews:
        return cls(own_logs=[], last_known_city=None, global_leaderboard=[], local_leaderboard=[])


def _optional_float(value: object) -> float | None:
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def parse_timestamp_ms(value: object) -> int | None:
    """Normalize epoch milliseconds, numeric strings, or ISO strings to epoch ms."""
    if is_number(value):
        return int(value)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        pass

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
