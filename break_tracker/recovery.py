from __future__ import annotations

from typing import Iterable

from .models import Identity, LogRecord

NOT_FOUND_MESSAGE = "Invalid code or no logs for this code."


def resolve(token: str, all_logs: Iterable[LogRecord]) -> Identity | None:
    """Map a recovery token to the username it was most recently logged under.

    Returns None when the token is blank or has never been used in a log.
    """
    code = (token or "").strip()
    if not code:
        return None

    matches = [record for record in all_logs if record.token == code and record.username]
    if not matches:
        return None

    matches.sort(key=lambda record: record.timestamp if record.timestamp is not None else 0, reverse=True)
    return Identity(matches[0].username, code)
