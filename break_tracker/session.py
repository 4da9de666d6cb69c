from __future__ import annotations

import logging
from typing import Callable

from . import aggregator, recovery
from .errors import (
    EmptyBreakError,
    GeolocationError,
    LogStoreError,
    MissingCityError,
    MissingRateError,
    SessionStateError,
    SubmitInProgressError,
)
from .geo import (
    DEFAULT_GEOLOCATION_TIMEOUT_SECONDS,
    Geocoder,
    PositionProvider,
    acquire_position,
    obfuscate_location,
)
from .identity import IdentityStore, hourly_rate
from .models import DerivedViews, Identity, LocationMethod, LogRecord, now_ms
from .repository import LogRepository
from .timer import SessionTimer

NO_IDENTITY = "no_identity"
IDLE = "idle"
RUNNING = "running"
AWAITING_LOCATION = "awaiting_location"
SUBMITTING = "submitting"


class BreakSession:
    """One user's break-tracking flow as an explicit state machine.

    NO_IDENTITY -> IDLE (setup or recovery)
    IDLE -> RUNNING (start_break, rate required)
    RUNNING -> AWAITING_LOCATION (finish_break)
    AWAITING_LOCATION -> SUBMITTING -> IDLE (submit_log succeeds)
    AWAITING_LOCATION -> IDLE (cancel_log, reading kept)
    """

    def __init__(
        self,
        identities: IdentityStore,
        repository: LogRepository,
        *,
        geocoder: Geocoder | None = None,
        timer: SessionTimer | None = None,
        clock: Callable[[], int] = now_ms,
        display_limit: int = aggregator.DEFAULT_DISPLAY_LIMIT,
        leaderboard_size: int = aggregator.DEFAULT_LEADERBOARD_SIZE,
        anchor_fallback: bool = True,
        geolocation_timeout: float = DEFAULT_GEOLOCATION_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.identities = identities
        self.repository = repository
        self.geocoder = geocoder
        self.timer = timer or SessionTimer()
        self.clock = clock
        self.display_limit = display_limit
        self.leaderboard_size = leaderboard_size
        self.anchor_fallback = anchor_fallback
        self.geolocation_timeout = geolocation_timeout
        self.logger = logger or logging.getLogger(__name__)

        self.identity = identities.get_or_create_identity()
        self.rate = identities.get_rate(self.identity)
        self.state = IDLE if self.identity.is_complete else NO_IDENTITY
        self.all_logs: list[LogRecord] = []
        self.views = DerivedViews.empty()
        self.show_all = False
        self._submitting = False

    @property
    def visible_own_logs(self) -> list[LogRecord]:
        return aggregator.limit_view(self.views.own_logs, self.display_limit, show_all=self.show_all)

    def show_all_logs(self) -> None:
        self.show_all = True

    def begin_setup(self) -> Identity:
        if not self.identity.is_complete:
            self.identity = self.identities.generate_identity()
            self.rate = self.identities.get_rate(self.identity)
            self.state = IDLE
        return self.identity

    def set_rate(self, amount: float, unit: str = "hourly") -> float:
        rate = hourly_rate(amount, unit)
        self.begin_setup()
        self.identities.save_rate(self.identity, rate)
        self.rate = rate
        self.logger.info("Rate set for %s: %.2f/hr", self.identity.username, rate)
        return rate

    def start_break(self) -> None:
        self._require_state("start a break", IDLE)
        if self.rate is None:
            raise MissingRateError()
        self.timer.start()
        self.state = RUNNING

    def tick(self) -> int:
        return self.timer.tick()

    def finish_break(self) -> int:
        self._require_state("finish a break", RUNNING)
        elapsed = self.timer.stop()
        self.state = AWAITING_LOCATION
        return elapsed

    def cancel_log(self) -> None:
        self._require_state("cancel logging", AWAITING_LOCATION)
        self.state = IDLE

    async def submit_log(
        self,
        method: LocationMethod | str,
        *,
        city: str | None = None,
        position_provider: PositionProvider | None = None,
    ) -> LogRecord:
        if self._submitting:
            raise SubmitInProgressError()
        self._require_state("log a break", AWAITING_LOCATION)
        if self.rate is None:
            raise MissingRateError()
        if self.timer.elapsed <= 0:
            raise EmptyBreakError()

        location_method = LocationMethod.coerce(method)
        if location_method == LocationMethod.MANUAL and not (city or "").strip():
            raise MissingCityError()

        self._submitting = True
        self.state = SUBMITTING
        try:
            record = await self._build_record(location_method, city, position_provider)
            stored = await self.repository.submit_log(record)
        except BaseException:
            self.state = AWAITING_LOCATION
            raise
        finally:
            self._submitting = False

        self.logger.info("Logged break for %s: %ss", stored.username, stored.duration)
        self.timer.reset()
        self.state = IDLE
        try:
            await self.refresh()
        except LogStoreError as exc:
            # The break is saved; the views stay stale until the next refresh.
            self.logger.warning("Could not refresh views after logging: %s", exc)
        return stored

    async def refresh(self) -> DerivedViews:
        self.all_logs = await self.repository.list_logs()
        self.views = aggregator.derive_views(
            self.all_logs,
            self.identity,
            leaderboard_size=self.leaderboard_size,
            anchor_fallback=self.anchor_fallback,
        )
        self.show_all = False
        return self.views

    async def recover(self, token: str) -> Identity | None:
        if self.state in (RUNNING, AWAITING_LOCATION, SUBMITTING):
            raise SessionStateError("recover", self.state)

        logs = await self.repository.list_logs()
        recovered = recovery.resolve(token, logs)
        if recovered is None:
            self.logger.info("Recovery failed for supplied code")
            return None

        self.identities.store_identity(recovered)
        self.identity = recovered
        self.rate = self.identities.get_rate(recovered)
        self.state = IDLE
        self.all_logs = logs
        self.views = aggregator.derive_views(
            logs,
            recovered,
            leaderboard_size=self.leaderboard_size,
            anchor_fallback=self.anchor_fallback,
        )
        self.logger.info("Recovered identity %s", recovered.username)
        return recovered

    def logout(self) -> None:
        if self.state in (RUNNING, SUBMITTING):
            raise SessionStateError("log out", self.state)
        self.identities.clear_rate(self.identity)
        self.identities.clear_identity()
        self.identity = Identity.empty()
        self.rate = None
        self.timer.reset()
        self.state = NO_IDENTITY
        self.views = aggregator.derive_views(
            self.all_logs,
            self.identity,
            leaderboard_size=self.leaderboard_size,
            anchor_fallback=self.anchor_fallback,
        )

    async def _build_record(
        self,
        method: LocationMethod,
        city: str | None,
        position_provider: PositionProvider | None,
    ) -> LogRecord:
        lat = lng = None
        log_city = None

        if method in (LocationMethod.AUTO, LocationMethod.AUTO_OBFUSCATED):
            if position_provider is None:
                raise GeolocationError("no position source available")
            position = await acquire_position(position_provider, self.geolocation_timeout)
            shifted = obfuscate_location(position.lat, position.lng)
            lat, lng = shifted.lat, shifted.lng
            method = LocationMethod.AUTO_OBFUSCATED
            if self.geocoder is not None:
                # Look up the true point; only the shifted one is stored.
                log_city = await self.geocoder.reverse_geocode(position.lat, position.lng)
        elif method == LocationMethod.MANUAL:
            log_city = (city or "").strip()

        return LogRecord.create(
            self.identity,
            self.timer.elapsed,
            self.rate,
            timestamp=self.clock(),
            lat=lat,
            lng=lng,
            city=log_city,
            location_method=method,
        )

    def _require_state(self, operation: str, expected: str) -> None:
        if self.state != expected:
            raise SessionStateError(operation, self.state)
