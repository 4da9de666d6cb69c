import pytest

from break_tracker.models import Identity, LocationMethod, LogRecord, compute_earnings, parse_timestamp_ms


def test_earnings_rounded_to_cents() -> None:
    assert compute_earnings(15.0, 125) == 0.52

    record = LogRecord.create(Identity("A", "t1"), 125, 15.0, timestamp=1000)
    assert record.earnings == 0.52
    assert record.current_rate == 15.0
    assert record.timestamp == 1000


def test_identity_is_never_one_sided() -> None:
    with pytest.raises(ValueError):
        Identity("name", "")
    with pytest.raises(ValueError):
        Identity("", "token")

    assert Identity.empty().is_empty
    assert Identity("a", "b") == Identity("a", "b")
    assert Identity("a", "b") != Identity("a", "c")


def test_coordinates_travel_in_pairs() -> None:
    with pytest.raises(ValueError):
        LogRecord.create(Identity("A", "t1"), 10, 1.0, lat=1.0)


def test_create_requires_identity() -> None:
    with pytest.raises(ValueError):
        LogRecord.create(Identity.empty(), 10, 1.0)


def test_from_payload_tolerates_loose_types() -> None:
    record = LogRecord.from_payload(
        {
            "id": "abc",
            "username": "A",
            "token": "t1",
            "duration": "300",
            "earnings": "1.25",
            "currentRate": 15,
            "timestamp": "2024-05-01T12:00:00Z",
            "lat": 45.0,
            "lng": None,
            "city": "Rome",
            "locationMethod": "teleport",
        }
    )

    assert record.id == "abc"
    assert record.duration is None
    assert record.earnings == 1.25
    assert record.timestamp == 1714564800000
    assert record.lat is None and record.lng is None
    assert record.location_method == LocationMethod.UNKNOWN


def test_payload_uses_store_field_names() -> None:
    record = LogRecord.create(
        Identity("A", "t1"),
        60,
        30.0,
        timestamp=5,
        city="Oslo",
        location_method=LocationMethod.MANUAL,
    )

    payload = record.to_payload()

    assert payload["currentRate"] == 30.0
    assert payload["locationMethod"] == "manual"
    assert "id" not in payload
    assert LogRecord.from_payload(payload) == record


def test_parse_timestamp_variants() -> None:
    assert parse_timestamp_ms(1234) == 1234
    assert parse_timestamp_ms("1234") == 1234
    assert parse_timestamp_ms("") is None
    assert parse_timestamp_ms("not a date") is None
    assert parse_timestamp_ms(None) is None
