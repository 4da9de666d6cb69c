import json
import math
import re

import pytest

from break_tracker.db import Database
from break_tracker.errors import InvalidRateError
from break_tracker.identity import (
    IDENTITY_OBJECT_KEY,
    LEGACY_TOKEN_KEY,
    LEGACY_USERNAME_KEY,
    IdentityStore,
    hourly_rate,
    latest_rate_key,
    rate_key,
)
from break_tracker.models import Identity
from break_tracker.storage import ScopedStore


def make_store() -> tuple[IdentityStore, ScopedStore, Database]:
    db = Database(":memory:")
    db.initialize()
    kv = ScopedStore(db, "member:1")
    return IdentityStore(kv, clock=lambda: 1_700_000_000_000), kv, db


def test_generated_identity_is_complete_and_unique() -> None:
    identities, _, _ = make_store()

    first = identities.generate_identity()
    second = identities.generate_identity()

    assert first.username and first.token
    assert re.fullmatch(r"[A-Za-z]+-[a-z0-9]{4}", first.username)
    assert first.token != second.token


def test_get_or_create_returns_empty_identity_without_generating() -> None:
    identities, kv, _ = make_store()

    assert identities.get_or_create_identity() == Identity.empty()
    assert kv.get(IDENTITY_OBJECT_KEY) is None


def test_get_or_create_is_idempotent() -> None:
    identities, _, _ = make_store()
    generated = identities.generate_identity()

    assert identities.get_or_create_identity() == generated
    assert identities.get_or_create_identity() == generated


def test_legacy_single_field_keys_are_promoted_to_identity_object() -> None:
    identities, kv, _ = make_store()
    kv.set(LEGACY_USERNAME_KEY, "RoyalFlush-ab12")
    kv.set(LEGACY_TOKEN_KEY, "tok-1")

    identity = identities.get_or_create_identity()

    assert identity == Identity("RoyalFlush-ab12", "tok-1")
    assert json.loads(kv.get(IDENTITY_OBJECT_KEY)) == {"username": "RoyalFlush-ab12", "token": "tok-1"}


def test_identity_object_backfills_legacy_keys() -> None:
    identities, kv, _ = make_store()
    kv.set(IDENTITY_OBJECT_KEY, json.dumps({"username": "LogLady-zz99", "token": "tok-2"}))
    kv.set(LEGACY_USERNAME_KEY, "stale")

    assert identities.get_or_create_identity() == Identity("LogLady-zz99", "tok-2")
    assert kv.get(LEGACY_USERNAME_KEY) == "LogLady-zz99"
    assert kv.get(LEGACY_TOKEN_KEY) == "tok-2"


def test_malformed_identity_object_is_treated_as_absent() -> None:
    identities, kv, _ = make_store()
    kv.set(IDENTITY_OBJECT_KEY, "{not json")

    assert identities.get_or_create_identity() == Identity.empty()

    kv.set(IDENTITY_OBJECT_KEY, json.dumps({"username": "only-name", "token": ""}))
    assert identities.get_or_create_identity() == Identity.empty()


def test_store_identity_ignores_incomplete_identity() -> None:
    identities, kv, _ = make_store()

    identities.store_identity(Identity.empty())

    assert kv.get(IDENTITY_OBJECT_KEY) is None


def test_clear_identity_keeps_rate() -> None:
    identities, kv, _ = make_store()
    identity = identities.generate_identity()
    identities.save_rate(identity, 20.0)

    identities.clear_identity()

    assert identities.get_or_create_identity() == Identity.empty()
    assert kv.get(rate_key(identity.username)) == "20.0"


def test_save_rate_writes_both_copies() -> None:
    identities, kv, _ = make_store()
    identity = Identity("FlushGordon-0001", "tok-3")

    identities.save_rate(identity, 15.5)

    assert json.loads(kv.get(rate_key(identity.username))) == 15.5
    assert json.loads(kv.get(latest_rate_key(identity.token))) == {"rate": 15.5, "timestamp": 1_700_000_000_000}
    assert identities.get_rate(identity) == 15.5


@pytest.mark.parametrize("bad_rate", [-1, math.nan, math.inf, "12", True])
def test_save_rate_rejects_invalid_values(bad_rate) -> None:
    identities, _, _ = make_store()

    with pytest.raises(InvalidRateError):
        identities.save_rate(Identity("a-0000", "t"), bad_rate)


def test_token_rate_wins_and_resyncs_username_copy() -> None:
    identities, kv, _ = make_store()
    identity = Identity("ThroneMaster-aaaa", "tok-4")
    kv.set(rate_key(identity.username), json.dumps(10.0))
    kv.set(latest_rate_key(identity.token), json.dumps({"rate": 30.0, "timestamp": 5}))

    assert identities.get_rate(identity) == 30.0
    assert json.loads(kv.get(rate_key(identity.username))) == 30.0


def test_username_rate_is_promoted_to_token_envelope() -> None:
    identities, kv, _ = make_store()
    identity = Identity("WasteWizard-bbbb", "tok-5")
    kv.set(rate_key(identity.username), json.dumps(12.0))

    assert identities.get_rate(identity) == 12.0
    assert json.loads(kv.get(latest_rate_key(identity.token)))["rate"] == 12.0


def test_get_rate_is_none_when_unset() -> None:
    identities, _, _ = make_store()

    assert identities.get_rate(Identity("x-0000", "tok")) is None
    assert identities.get_rate(Identity.empty()) is None


def test_clear_rate_removes_username_copy() -> None:
    identities, kv, _ = make_store()
    identity = Identity("SepticSage-cccc", "tok-6")
    identities.save_rate(identity, 9.0)

    identities.clear_rate(identity)

    assert kv.get(rate_key(identity.username)) is None


def test_storage_failures_degrade_to_absent() -> None:
    identities, _, db = make_store()
    identity = identities.generate_identity()
    db.close()

    assert identities.get_or_create_identity() == Identity.empty()
    assert identities.get_rate(identity) is None
    identities.save_rate(identity, 5.0)
    identities.clear_identity()


def test_hourly_rate_converts_annual_salary() -> None:
    assert hourly_rate(41600, "annual") == 20.0
    assert hourly_rate(18.5) == 18.5

    with pytest.raises(InvalidRateError):
        hourly_rate(-3)
    with pytest.raises(ValueError):
        hourly_rate(10, "weekly")
