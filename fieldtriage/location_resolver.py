"""
Location Resolver Module
========================
Wraps the device positioning capability behind a single async call with
a hard timeout. Absence of a position is a normal outcome: a missing
provider, a refused permission, an error or a timeout all resolve to
None and never raise.

Providers:
  - StaticLocationProvider: fixed position from FIELD_LATITUDE / FIELD_LONGITUDE
  - HttpLocationProvider: local positioning bridge at LOCATION_PROVIDER_URL
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from typing import Any, Callable, Optional

import requests
from dotenv import load_dotenv

from fieldtriage.case_models import Coordinates

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = float(os.getenv("LOCATION_TIMEOUT_SECONDS", "5"))

LocationProvider = Callable[[], Any]


def _coerce(value: Any) -> Optional[Coordinates]:
    """Normalise a provider result (Coordinates, dict or (lat, lng) pair)."""
    if value is None:
        return None
    if isinstance(value, Coordinates):
        return value
    if isinstance(value, dict):
        lat = value.get("lat", value.get("latitude"))
        lng = value.get("lng", value.get("lon", value.get("longitude")))
    else:
        lat, lng = value
    if lat is None or lng is None:
        return None
    return Coordinates(lat=float(lat), lng=float(lng))


class StaticLocationProvider:
    """Always reports the same position (e.g. a fixed field post)."""

    def __init__(self, lat: float, lng: float) -> None:
        self.coordinates = Coordinates(lat=lat, lng=lng)

    def __call__(self) -> Coordinates:
        return self.coordinates


class HttpLocationProvider:
    """Reads the current position from a local positioning bridge.

    The bridge is expected to answer GET requests with a JSON object
    containing ``lat``/``lng`` (or ``latitude``/``longitude``).

    Attributes:
        url: Bridge endpoint.
        timeout: Request timeout in seconds.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.url = url
        self.timeout = timeout

    def __call__(self) -> Optional[Coordinates]:
        # Low-accuracy fix is enough for field triage.
        response = requests.get(
            self.url, params={"accuracy": "low"}, timeout=self.timeout
        )
        response.raise_for_status()
        return _coerce(response.json())


def default_provider() -> Optional[LocationProvider]:
    """Pick a provider from the environment, or None if none is configured."""
    lat = os.getenv("FIELD_LATITUDE", "")
    lng = os.getenv("FIELD_LONGITUDE", "")
    if lat and lng:
        try:
            return StaticLocationProvider(float(lat), float(lng))
        except ValueError:
            logger.warning("Ignoring invalid FIELD_LATITUDE/FIELD_LONGITUDE.")

    url = os.getenv("LOCATION_PROVIDER_URL", "")
    if url:
        return HttpLocationProvider(url)

    logger.warning("No location provider configured. Positions will be unavailable.")
    return None


class LocationResolver:
    """Single-attempt, time-bounded location lookup.

    Attributes:
        provider: Callable returning a position (sync or async), or None.
        timeout: Seconds to wait before giving up.
    """

    def __init__(
        self,
        provider: Optional[LocationProvider] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.provider = provider
        self.timeout = DEFAULT_TIMEOUT_SECONDS if timeout is None else timeout

    async def _query(self) -> Any:
        if inspect.iscoroutinefunction(self.provider) or inspect.iscoroutinefunction(
            getattr(self.provider, "__call__", None)
        ):
            return await self.provider()
        return await asyncio.to_thread(self.provider)

    async def resolve_location(self) -> Optional[Coordinates]:
        """Return the current position, or None if it cannot be determined.

        Cancelling the awaiting task cancels the lookup with it.
        """
        if self.provider is None:
            return None

        try:
            result = await asyncio.wait_for(self._query(), timeout=self.timeout)
            return _coerce(result)
        except asyncio.TimeoutError:
            logger.warning("Location lookup timed out after %.1fs.", self.timeout)
        except Exception as exc:
            logger.warning("Location unavailable: %s", exc)
        return None
