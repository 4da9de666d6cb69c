from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import httpx

from .errors import GeolocationError

EARTH_RADIUS_METERS = 6378137
DEFAULT_MAX_OFFSET_METERS = 500
DEFAULT_GEOLOCATION_TIMEOUT_SECONDS = 10.0
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
# Address fields tried in order when naming the place a point falls in.
CITY_FIELDS = ("city", "town", "village", "suburb", "city_district")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Position:
    lat: float
    lng: float


PositionProvider = Callable[[], Awaitable[Position]]


class Geocoder(Protocol):
    async def reverse_geocode(self, lat: float, lng: float) -> str | None: ...


def fixed_position(lat: float, lng: float) -> PositionProvider:
    """Position source for coordinates supplied directly by the user."""

    async def provide() -> Position:
        return Position(lat=lat, lng=lng)

    return provide


def obfuscate_location(
    lat: float,
    lng: float,
    max_offset_meters: float = DEFAULT_MAX_OFFSET_METERS,
    rng: random.Random | None = None,
) -> Position:
    """Shift a point by a random offset of up to max_offset_meters on each axis."""
    rand = rng or random.Random()
    degrees_per_meter = (1 / EARTH_RADIUS_METERS) * (180 / math.pi)
    lat_offset = (rand.random() * 2 - 1) * max_offset_meters * degrees_per_meter
    lng_offset = (rand.random() * 2 - 1) * max_offset_meters * degrees_per_meter / math.cos(math.radians(lat))
    return Position(lat=lat + lat_offset, lng=lng + lng_offset)


async def acquire_position(
    provider: PositionProvider,
    timeout: float = DEFAULT_GEOLOCATION_TIMEOUT_SECONDS,
) -> Position:
    try:
        return await asyncio.wait_for(provider(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise GeolocationError("timed out") from exc
    except GeolocationError:
        raise
    except Exception as exc:
        logger.warning("Position provider failed: %s", exc)
        raise GeolocationError(str(exc) or type(exc).__name__) from exc


def city_from_address(address: dict) -> str | None:
    for name in CITY_FIELDS:
        value = address.get(name)
        if value:
            return str(value)
    return None


class NominatimGeocoder:
    """Best-effort reverse geocoding against OpenStreetMap Nominatim."""

    def __init__(
        self,
        user_agent: str,
        *,
        url: str = NOMINATIM_REVERSE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def reverse_geocode(self, lat: float, lng: float) -> str | None:
        params = {"format": "jsonv2", "lat": lat, "lon": lng}
        headers = {"User-Agent": self.user_agent}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(self.url, params=params, headers=headers)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as http_err:
                logger.warning("Nominatim returned %s", http_err.response.status_code)
                return None
            except (httpx.RequestError, ValueError) as exc:
                logger.warning("Nominatim lookup failed: %s", exc)
                return None

        address = data.get("address") if isinstance(data, dict) else None
        if not isinstance(address, dict):
            return None
        return city_from_address(address)
