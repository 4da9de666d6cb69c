from __future__ import annotations

import json
import logging
import secrets
import string
import uuid
from typing import Callable

from .errors import InvalidRateError
from .models import Identity, is_number, now_ms
from .storage import KeyValueStore

IDENTITY_OBJECT_KEY = "identity"
# Single-field keys written by older clients; kept in sync with the object.
LEGACY_USERNAME_KEY = "username"
LEGACY_TOKEN_KEY = "token"

HOURS_PER_YEAR = 2080
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SUFFIX_LENGTH = 4

USERNAME_WORDS = (
    "SirBreaksALot",
    "DooDooDuke",
    "StoolSurfer",
    "BathroomBandit",
    "CaptainCrapper",
    "TheLooTenant",
    "PorcelainPrince",
    "RoyalFlush",
    "FlushGordon",
    "ThroneMaster",
    "DigestiveDynamo",
    "SepticSage",
    "BowlCommander",
    "WasteWizard",
)


def rate_key(username: str) -> str:
    return f"rate_{username}"


def latest_rate_key(token: str) -> str:
    return f"latestRate_{token}"


def hourly_rate(amount: float, unit: str = "hourly") -> float:
    """Convert a salary entry to an hourly rate."""
    if not is_number(amount) or amount < 0:
        raise InvalidRateError(amount)
    if unit == "hourly":
        return float(amount)
    if unit == "annual":
        return amount / HOURS_PER_YEAR
    raise ValueError(f"Unknown salary unit: {unit}")


class IdentityStore:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def get_or_create_identity(self) -> Identity:
        """Return the persisted identity, or the empty identity when none is stored.

        Creation is left to generate_identity() so nobody is registered without
        opting in.
        """
        stored = self._load_identity_object()
        if stored is not None:
            self._sync_legacy_keys(stored)
            return stored

        username = self.store.get(LEGACY_USERNAME_KEY)
        token = self.store.get(LEGACY_TOKEN_KEY)
        if username and token:
            legacy = Identity(username, token)
            self.store.set(IDENTITY_OBJECT_KEY, json.dumps(legacy.to_dict()))
            return legacy

        return Identity.empty()

    def generate_identity(self) -> Identity:
        word = secrets.choice(USERNAME_WORDS)
        suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
        identity = Identity(f"{word}-{suffix}", str(uuid.uuid4()))
        self._write_identity(identity)
        self.logger.info("Generated new identity %s", identity.username)
        return identity

    def store_identity(self, identity: Identity) -> None:
        if not identity.is_complete:
            self.logger.error("Refusing to store incomplete identity %r", identity)
            return
        self._write_identity(identity)

    def clear_identity(self) -> None:
        # Rates live under their own keys and are removed separately on logout.
        self.store.remove(LEGACY_USERNAME_KEY)
        self.store.remove(LEGACY_TOKEN_KEY)
        self.store.remove(IDENTITY_OBJECT_KEY)

    def save_rate(self, identity: Identity, rate: float) -> None:
        if not is_number(rate) or rate < 0:
            raise InvalidRateError(rate)
        if not identity.is_complete:
            self.logger.error("Cannot save a rate without a complete identity")
            return

        self.store.set(rate_key(identity.username), json.dumps(rate))
        self.store.set(
            latest_rate_key(identity.token),
            json.dumps({"rate": rate, "timestamp": self.clock()}),
        )

    def get_rate(self, identity: Identity) -> float | None:
        if not identity.is_complete:
            return None

        envelope_rate = self._load_rate_envelope(identity.token)
        username_rate = self._load_json_number(rate_key(identity.username))

        if envelope_rate is not None:
            # The token copy wins; bring the username copy back in line.
            if username_rate != envelope_rate:
                self.store.set(rate_key(identity.username), json.dumps(envelope_rate))
            return envelope_rate

        if username_rate is not None:
            self.store.set(
                latest_rate_key(identity.token),
                json.dumps({"rate": username_rate, "timestamp": self.clock()}),
            )
        return username_rate

    def clear_rate(self, identity: Identity) -> None:
        if identity.username:
            self.store.remove(rate_key(identity.username))

    def _write_identity(self, identity: Identity) -> None:
        self.store.set(LEGACY_USERNAME_KEY, identity.username)
        self.store.set(LEGACY_TOKEN_KEY, identity.token)
        self.store.set(IDENTITY_OBJECT_KEY, json.dumps(identity.to_dict()))

    def _sync_legacy_keys(self, identity: Identity) -> None:
        if self.store.get(LEGACY_USERNAME_KEY) != identity.username:
            self.store.set(LEGACY_USERNAME_KEY, identity.username)
        if self.store.get(LEGACY_TOKEN_KEY) != identity.token:
            self.store.set(LEGACY_TOKEN_KEY, identity.token)

    def _load_identity_object(self) -> Identity | None:
        raw = self.store.get(IDENTITY_OBJECT_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.warning("Ignoring malformed stored identity")
            return None

        if not isinstance(data, dict):
            return None
        username = data.get("username")
        token = data.get("token")
        if isinstance(username, str) and isinstance(token, str) and username and token:
            return Identity(username, token)
        return None

    def _load_rate_envelope(self, token: str) -> float | None:
        raw = self.store.get(latest_rate_key(token))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.warning("Ignoring malformed rate envelope for token")
            return None
        if isinstance(data, dict) and is_number(data.get("rate")):
            return float(data["rate"])
        return None

    def _load_json_number(self, key: str) -> float | None:
        raw = self.store.get(key)
        if not raw:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return float(value) if is_number(value) else None
