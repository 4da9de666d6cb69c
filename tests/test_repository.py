import asyncio
import json

import httpx
import pytest

from break_tracker.aggregator import derive_views
from break_tracker.db import Database
from break_tracker.errors import LogStoreError, LogValidationError
from break_tracker.models import Identity, LocationMethod, LogRecord
from break_tracker.repository import HttpLogRepository, SqliteLogRepository, validate_payload


def make_record(timestamp: int, duration: int = 120, city: str | None = None) -> LogRecord:
    return LogRecord.create(
        Identity("RoyalFlush-ab12", "tok-1"),
        duration,
        18.0,
        timestamp=timestamp,
        city=city,
        location_method=LocationMethod.MANUAL if city else LocationMethod.SKIPPED,
    )


def test_validate_payload_rejects_missing_fields() -> None:
    with pytest.raises(LogValidationError) as exc_info:
        validate_payload({"username": "", "token": "t", "duration": "abc", "earnings": 1, "currentRate": 2})

    assert exc_info.value.fields == ["username", "duration"]


def test_validate_payload_fills_defaults() -> None:
    cleaned = validate_payload(
        {
            "username": "A",
            "token": "t1",
            "duration": "90",
            "earnings": 0.5,
            "currentRate": "20",
            "lat": "12.5",
        },
        now=42,
    )

    assert cleaned["duration"] == 90
    assert cleaned["currentRate"] == 20.0
    assert cleaned["timestamp"] == 42
    assert cleaned["lat"] is None and cleaned["lng"] is None
    assert cleaned["city"] is None
    assert cleaned["locationMethod"] == "unknown"


def test_sqlite_repository_round_trip_orders_newest_first() -> None:
    db = Database(":memory:")
    db.initialize()
    repository = SqliteLogRepository(db)

    stored = asyncio.run(repository.submit_log(make_record(100, city="Rome")))
    asyncio.run(repository.submit_log(make_record(300)))
    asyncio.run(repository.submit_log(make_record(200)))

    assert stored.id
    assert stored.city == "Rome"

    logs = asyncio.run(repository.list_logs())
    assert [log.timestamp for log in logs] == [300, 200, 100]
    assert logs[2].location_method == LocationMethod.MANUAL


def test_sqlite_repository_wraps_database_errors() -> None:
    db = Database(":memory:")
    db.initialize()
    repository = SqliteLogRepository(db)
    db.close()

    with pytest.raises(LogStoreError) as fetch_info:
        asyncio.run(repository.list_logs())
    with pytest.raises(LogStoreError) as submit_info:
        asyncio.run(repository.submit_log(make_record(1)))

    assert fetch_info.value.operation == "fetch"
    assert submit_info.value.operation == "submit"


def test_http_repository_posts_and_lists() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": "doc-1", **body, "serverTimestamp": "Pending"})
        return httpx.Response(
            200,
            json=[
                {"id": "doc-2", "username": "B", "token": "t2", "duration": 50, "earnings": 0.2,
                 "currentRate": 14, "timestamp": 900, "city": "Oslo"},
                "garbage",
            ],
        )

    repository = HttpLogRepository("https://store.example/", transport=httpx.MockTransport(handler))

    stored = asyncio.run(repository.submit_log(make_record(500)))
    logs = asyncio.run(repository.list_logs())

    assert seen[0].url == "https://store.example/api/log"
    assert "id" not in json.loads(seen[0].content)
    assert stored.id == "doc-1"
    assert stored.duration == 120
    assert [log.username for log in logs] == ["B"]
    assert logs[0].city == "Oslo"


def test_http_repository_maps_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(400, json={"message": "Missing or invalid required fields"})
        return httpx.Response(500, json={"message": "Error fetching logs"})

    repository = HttpLogRepository("https://store.example", transport=httpx.MockTransport(handler))

    with pytest.raises(LogValidationError):
        asyncio.run(repository.submit_log(make_record(1)))
    with pytest.raises(LogStoreError):
        asyncio.run(repository.list_logs())


def test_http_repository_wraps_transport_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    repository = HttpLogRepository("https://store.example", transport=httpx.MockTransport(handler))

    with pytest.raises(LogStoreError) as exc_info:
        asyncio.run(repository.list_logs())

    assert exc_info.value.operation == "fetch"


def test_http_listed_record_without_token_still_derives_views() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {"username": "legacy", "duration": 600, "earnings": 1.0, "currentRate": 6, "timestamp": 10},
                {"username": "A", "token": "t1", "duration": 60, "earnings": 0.2, "currentRate": 12, "timestamp": 20},
            ],
        )

    repository = HttpLogRepository("https://store.example", transport=httpx.MockTransport(handler))

    logs = asyncio.run(repository.list_logs())
    views = derive_views(logs, Identity("A", "t1"))

    assert logs[0].token == ""
    assert [log.timestamp for log in views.own_logs] == [20]
    assert [entry.username for entry in views.global_leaderboard] == ["legacy", "A"]
