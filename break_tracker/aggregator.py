from __future__ import annotations

from typing import Iterable

from .models import DerivedViews, Identity, LogRecord, RankingEntry

DEFAULT_DISPLAY_LIMIT = 5
DEFAULT_LEADERBOARD_SIZE = 10


def _timestamp_key(record: LogRecord) -> int:
    return record.timestamp if record.timestamp is not None else 0


def _duration_key(record: LogRecord) -> int:
    return record.duration or 0


def own_logs(all_logs: Iterable[LogRecord], identity: Identity) -> list[LogRecord]:
    """Records owned by the identity, newest first.

    Both username and token must match; a username alone is not unique once
    recovery has reassigned names.
    """
    if not identity.is_complete:
        return []

    owned = [
        record
        for record in all_logs
        if record.username == identity.username and record.token == identity.token
    ]
    # sorted() is stable with reverse=True, so ties keep collection order.
    return sorted(owned, key=_timestamp_key, reverse=True)


def last_known_city(sorted_own_logs: Iterable[LogRecord]) -> str | None:
    for record in sorted_own_logs:
        if record.city and record.city.strip():
            return record.city
    return None


def anchor_city(all_logs: Iterable[LogRecord], user_city: str | None, *, fallback: bool = True) -> str | None:
    if user_city and user_city.strip():
        return user_city
    if not fallback:
        return None
    # Weak heuristic: first record in the collection that has any city.
    for record in all_logs:
        if record.city and record.city.strip():
            return record.city
    return None


def global_leaderboard(
    all_logs: Iterable[LogRecord],
    size: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[RankingEntry]:
    ranked = sorted(
        (record for record in all_logs if record.duration is not None),
        key=_duration_key,
        reverse=True,
    )
    return [RankingEntry.from_record(record) for record in ranked[:size]]


def local_leaderboard(
    all_logs: Iterable[LogRecord],
    city: str | None,
    size: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[RankingEntry]:
    if not city:
        return []

    wanted = city.casefold()
    ranked = sorted(
        (
            record
            for record in all_logs
            if record.duration is not None and record.city and record.city.casefold() == wanted
        ),
        key=_duration_key,
        reverse=True,
    )
    return [RankingEntry.from_record(record) for record in ranked[:size]]


def derive_views(
    all_logs: Iterable[LogRecord],
    identity: Identity,
    *,
    leaderboard_size: int = DEFAULT_LEADERBOARD_SIZE,
    anchor_fallback: bool = True,
) -> DerivedViews:
    logs = list(all_logs)
    mine = own_logs(logs, identity)
    user_city = last_known_city(mine)
    local_city = anchor_city(logs, user_city, fallback=anchor_fallback)

    return DerivedViews(
        own_logs=mine,
        last_known_city=user_city,
        global_leaderboard=global_leaderboard(logs, leaderboard_size),
        local_leaderboard=local_leaderboard(logs, local_city, leaderboard_size),
        local_city=local_city,
    )


def limit_view(logs: list[LogRecord], limit: int = DEFAULT_DISPLAY_LIMIT, *, show_all: bool = False) -> list[LogRecord]:
    """Apply the display cap over an already sorted list."""
    if show_all:
        return list(logs)
    return logs[: max(0, limit)]
