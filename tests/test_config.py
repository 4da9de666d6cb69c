from pathlib import Path

import pytest

from break_tracker.config import load_config


def set_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "secret")
    monkeypatch.setenv("GUILD_ID", "1234")
    for name in (
        "DATABASE_PATH",
        "LOG_STORE_URL",
        "GEOCODER_USER_AGENT",
        "OWN_LOGS_LIMIT",
        "LEADERBOARD_SIZE",
        "GEOLOCATION_TIMEOUT_SECONDS",
        "LOCAL_LEADERBOARD_FALLBACK",
        "TIMEZONE",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    set_required(monkeypatch)

    config = load_config()

    assert config.guild_id == 1234
    assert config.database_path == Path("break_tracker.db")
    assert config.log_store_url is None
    assert config.own_logs_limit == 5
    assert config.leaderboard_size == 10
    assert config.geolocation_timeout_seconds == 10.0
    assert config.local_leaderboard_fallback is True
    assert config.timezone.key == "UTC"


def test_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    set_required(monkeypatch)
    monkeypatch.setenv("LOG_STORE_URL", "https://store.example")
    monkeypatch.setenv("LOCAL_LEADERBOARD_FALLBACK", "false")
    monkeypatch.setenv("TIMEZONE", "Europe/Oslo")

    config = load_config()

    assert config.log_store_url == "https://store.example"
    assert config.local_leaderboard_fallback is False
    assert config.timezone.key == "Europe/Oslo"


def test_missing_token(monkeypatch: pytest.MonkeyPatch) -> None:
    set_required(monkeypatch)
    monkeypatch.delenv("DISCORD_TOKEN")

    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        load_config()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("GUILD_ID", "abc"),
        ("OWN_LOGS_LIMIT", "0"),
        ("GEOLOCATION_TIMEOUT_SECONDS", "-2"),
        ("LOCAL_LEADERBOARD_FALLBACK", "maybe"),
        ("TIMEZONE", "Mars/Olympus"),
    ],
)
def test_invalid_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    set_required(monkeypatch)
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        load_config()
