"""iRail API client for fetching SNCB (Belgian railway) data."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings
from .errors import MalformedResponseError, RateLimitError, StationNotFoundError, UpstreamError
from .models import (
    ConnectionResponse,
    LiveboardResponse,
    RawStationList,
    SearchOptions,
    parse_journey_response,
)
from .time_format import format_irail_date, format_irail_time

logger = logging.getLogger(__name__)

BASE_URL = "https://api.irail.be/v1"
USER_AGENT = "betransport/0.1.0"
RATE_LIMIT = 3  # requests per second


class RateLimiter:
    """Spaces out requests to respect the iRail API limits."""

    def __init__(self, requests_per_second: float):
        self.delay = 1.0 / requests_per_second
        self.last_request = 0.0

    async def wait(self) -> None:
        """Wait if necessary to respect rate limit."""
        elapsed = time.monotonic() - self.last_request
        if elapsed < self.delay:
            await asyncio.sleep(self.delay - elapsed)
        self.last_request = time.monotonic()


def raise_for_upstream_status(response: httpx.Response, service: str) -> None:
    """Map an error response onto the transit error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimitError(f"{service} rate limit exceeded (HTTP 429).", status)
    if status == 404:
        raise StationNotFoundError(f"{service}: station or resource not found.", status)
    if status >= 500:
        raise UpstreamError(
            f"{service} server error ({status}). Please try again later.", status
        )
    raise UpstreamError(f"{service} rejected the request ({status}).", status)


class iRailClient:
    """Client for interacting with the iRail API."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        lang: str = "fr",
        requests_per_second: float = RATE_LIMIT,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.lang = lang
        self.timeout = timeout
        self.client: httpx.AsyncClient | None = http_client
        self._owns_client = http_client is None
        self.rate_limiter = RateLimiter(requests_per_second)

    @classmethod
    def from_settings(cls, settings: Settings) -> iRailClient:
        return cls(
            base_url=settings.irail_base_url,
            lang=settings.irail_lang,
            requests_per_second=settings.irail_requests_per_second,
            timeout=settings.http_timeout_seconds,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def _request(self, path: str, params: dict[str, str]) -> Any:
        """Make a rate-limited GET request to the iRail API and decode its JSON."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        await self.rate_limiter.wait()

        params = {**params, "format": "json", "lang": self.lang}
        url = f"{self.base_url}{path}"
        logger.debug("GET %s %s", url, params)

        try:
            response = await self.client.get(url, params=params)
        except httpx.RequestError as e:
            raise UpstreamError(f"Could not reach iRail: {e}") from e

        raise_for_upstream_status(response, "iRail")

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"iRail returned invalid JSON for {path}") from e

    async def get_liveboard(self, station: str, options: SearchOptions) -> LiveboardResponse:
        """Get departures for a station at the given moment.

        Args:
            station: Station name or URI
            options: Reference date and time

        Returns:
            Decoded liveboard response.
        """
        params = {
            "station": station,
            "date": format_irail_date(options.date),
            "time": format_irail_time(options.time),
            "arrdep": "departure",
        }
        payload = await self._request("/liveboard/", params)
        return parse_journey_response(payload, "liveboard")

    async def find_connections(
        self, from_station: str, to_station: str, options: SearchOptions
    ) -> ConnectionResponse:
        """Find connections between two stations departing after the given moment.

        Args:
            from_station: Starting station name or URI
            to_station: Destination station name or URI
            options: Reference date and time

        Returns:
            Decoded connection response with one entry per itinerary.
        """
        params = {
            "from": from_station,
            "to": to_station,
            "date": format_irail_date(options.date),
            "time": format_irail_time(options.time),
            "timeSel": "depart",
        }
        payload = await self._request("/connections/", params)
        return parse_journey_response(payload, "connection")

    async def get_stations(self) -> list[str]:
        """Fetch the full station directory and return names in upstream order."""
        payload = await self._request("/stations/", {})
        try:
            stations = RawStationList.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected iRail stations payload: {e}") from e
        return [station.name for station in stations.station]
