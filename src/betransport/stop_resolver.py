"""Stop-name autocomplete.

Resolution order: the bundled gazetteer, then the iRail station directory
(SNCB) or a grounded retrieval call (other networks). Autocomplete is best
effort, so upstream failures degrade to the local matches.
"""

from __future__ import annotations

import json
import logging

from pydantic import TypeAdapter, ValidationError

from .cache import InflightRequests, ResultCache, make_cache_key
from .errors import MalformedResponseError, TransitError
from .gazetteer import filter_names, search_gazetteer
from .irail_client import iRailClient
from .models import TransportNetwork
from .retrieval import RetrievalClient
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
LOCAL_MATCH_THRESHOLD = 5
MAX_SUGGESTIONS = 8

STOP_NAMES_SCHEMA = {"type": "ARRAY", "items": {"type": "STRING"}}

_names_adapter = TypeAdapter(list[str])


class StopResolver:
    """Resolves a partial stop name into candidate official names."""

    def __init__(
        self,
        irail: iRailClient,
        retrieval: RetrievalClient,
        cache: ResultCache,
        retry: RetryPolicy | None = None,
    ):
        self.irail = irail
        self.retrieval = retrieval
        self.cache = cache
        self.retry = retry or RetryPolicy()
        self._rail_directory: list[str] | None = None
        self._inflight = InflightRequests()

    async def resolve(self, partial_name: str, network: TransportNetwork) -> list[str]:
        query = partial_name.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        local = search_gazetteer(query, network)
        if len(local) >= LOCAL_MATCH_THRESHOLD:
            return local[:MAX_SUGGESTIONS]

        try:
            if network is TransportNetwork.SNCB:
                directory = await self.rail_directory()
                return filter_names(query, directory)[:MAX_SUGGESTIONS]
            return await self._search_remote(query, network)
        except TransitError as e:
            logger.warning(
                "Stop search for %r on %s failed, using local matches: %s",
                query,
                network.value,
                e,
            )
            return local[:MAX_SUGGESTIONS]

    async def rail_directory(self) -> list[str]:
        """Return the iRail station names, fetching them once per resolver."""
        if self._rail_directory is None:
            names = await self._inflight.run(
                "irail-stations",
                lambda: self.retry.run(self.irail.get_stations),
            )
            logger.info("Loaded %d SNCB stations from iRail", len(names))
            self._rail_directory = names
        return self._rail_directory

    async def _search_remote(self, query: str, network: TransportNetwork) -> list[str]:
        key = make_cache_key("stops", network, query)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        names = await self._inflight.run(key, lambda: self._ask_retrieval(query, network))
        self.cache.set(key, names)
        return names

    async def _ask_retrieval(self, query: str, network: TransportNetwork) -> list[str]:
        prompt = (
            f"Find the official names of the {network.value} stops in Belgium matching "
            f'"{query}". Use the official data of {network.official_domain}. '
            "Return only a JSON array of strings."
        )
        response = await self.retry.run(
            lambda: self.retrieval.generate(prompt, response_schema=STOP_NAMES_SCHEMA)
        )
        try:
            names = _names_adapter.validate_python(json.loads(response.text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise MalformedResponseError(
                f"{network.value} stop search answer is not a JSON array of strings"
            ) from e
        return names[:MAX_SUGGESTIONS]
