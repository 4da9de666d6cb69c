from __future__ import annotations

import logging
import math
import sqlite3
from typing import Any, Protocol

import httpx

from .db import Database
from .errors import LogStoreError, LogValidationError
from .models import LocationMethod, LogRecord, is_number, now_ms, parse_timestamp_ms

REQUIRED_NUMERIC_FIELDS = ("duration", "earnings", "currentRate")


class LogRepository(Protocol):
    async def submit_log(self, record: LogRecord) -> LogRecord: ...

    async def list_logs(self) -> list[LogRecord]: ...


def _numeric(value: object) -> float | None:
    if is_number(value):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def validate_payload(payload: dict[str, Any], *, now: int | None = None) -> dict[str, Any]:
    """Apply store-side validation and coercion to an incoming log payload."""
    invalid: list[str] = []
    for name in ("username", "token"):
        value = payload.get(name)
        if not isinstance(value, str) or not value:
            invalid.append(name)

    numbers: dict[str, float] = {}
    for name in REQUIRED_NUMERIC_FIELDS:
        parsed = _numeric(payload.get(name))
        if parsed is None or parsed < 0:
            invalid.append(name)
        else:
            numbers[name] = parsed

    if invalid:
        raise LogValidationError(invalid)

    timestamp = parse_timestamp_ms(payload.get("timestamp"))
    lat = _numeric(payload.get("lat"))
    lng = _numeric(payload.get("lng"))
    if lat is None or lng is None:
        lat = lng = None

    city = payload.get("city")
    method = payload.get("locationMethod")
    return {
        "username": payload["username"],
        "token": payload["token"],
        "duration": int(numbers["duration"]),
        "earnings": numbers["earnings"],
        "currentRate": numbers["currentRate"],
        "timestamp": timestamp if timestamp is not None else (now if now is not None else now_ms()),
        "lat": lat,
        "lng": lng,
        "city": str(city) if city is not None else None,
        "locationMethod": LocationMethod.coerce(method).value if method is not None else LocationMethod.UNKNOWN.value,
    }


class SqliteLogRepository:
    """Log store backed by the local database, used when no remote store is configured."""

    def __init__(self, db: Database, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    async def submit_log(self, record: LogRecord) -> LogRecord:
        cleaned = LogRecord.from_payload(validate_payload(record.to_payload()))
        try:
            stored = self.db.insert_log(cleaned)
        except sqlite3.Error as exc:
            self.logger.exception("Failed to save log for %s", cleaned.username)
            raise LogStoreError("submit", str(exc)) from exc
        self.logger.info("Saved log %s for %s (%ss)", stored.id, stored.username, stored.duration)
        return stored

    async def list_logs(self) -> list[LogRecord]:
        try:
            return self.db.list_logs()
        except sqlite3.Error as exc:
            self.logger.exception("Failed to read logs")
            raise LogStoreError("fetch", str(exc)) from exc


class HttpLogRepository:
    """Client for a remote log store exposing GET/POST <base_url>/api/log."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/log"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def submit_log(self, record: LogRecord) -> LogRecord:
        payload = record.to_payload()
        payload.pop("id", None)

        async with self._client() as client:
            try:
                response = await client.post(self.endpoint, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as http_err:
                self.logger.error("Log submit rejected: %s %s", http_err.response.status_code, http_err.response.text)
                if http_err.response.status_code == 400:
                    raise LogValidationError(_rejected_fields(http_err.response)) from http_err
                raise LogStoreError("submit", f"HTTP {http_err.response.status_code}") from http_err
            except (httpx.RequestError, ValueError) as exc:
                self.logger.error("Log submit failed: %s", exc)
                raise LogStoreError("submit", str(exc)) from exc

        if not isinstance(data, dict):
            raise LogStoreError("submit", "unexpected response body")
        # Older stores echo only part of the record; fill the gaps from what we sent.
        return LogRecord.from_payload({**payload, **{k: v for k, v in data.items() if v is not None}})

    async def list_logs(self) -> list[LogRecord]:
        async with self._client() as client:
            try:
                response = await client.get(self.endpoint)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as http_err:
                self.logger.error("Log fetch failed: %s", http_err.response.status_code)
                raise LogStoreError("fetch", f"HTTP {http_err.response.status_code}") from http_err
            except (httpx.RequestError, ValueError) as exc:
                self.logger.error("Log fetch failed: %s", exc)
                raise LogStoreError("fetch", str(exc)) from exc

        if not isinstance(data, list):
            raise LogStoreError("fetch", "expected a list of logs")

        records: list[LogRecord] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                records.append(LogRecord.from_payload(item))
            except ValueError:
                self.logger.warning("Skipping malformed log %s", item.get("id"))
        self.logger.info("Fetched %d logs", len(records))
        return records


def _rejected_fields(response: httpx.Response) -> list[str]:
    try:
        message = response.json().get("message", "")
    except (ValueError, AttributeError):
        message = response.text
    return [message or "payload"]
