"""Entry point for departure searches across all networks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .cache import InflightRequests, ResultCache, make_cache_key
from .config import Settings
from .irail_client import iRailClient
from .models import SearchOptions, SearchResult, TransportNetwork
from .normalizer import normalize
from .retrieval import RetrievalClient
from .retry import RetryPolicy
from .smart_adapter import SmartNetworkAdapter
from .stop_resolver import StopResolver

logger = logging.getLogger(__name__)


class TransportService:
    """Routes searches to iRail or the smart adapter, behind a shared cache."""

    def __init__(
        self,
        irail: iRailClient,
        smart_adapter: SmartNetworkAdapter,
        cache: ResultCache,
        inflight: InflightRequests | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.irail = irail
        self.smart_adapter = smart_adapter
        self.cache = cache
        self.inflight = inflight or InflightRequests()
        self.retry = retry or RetryPolicy()

    async def fetch_transport_data(
        self,
        stop_name: str,
        network: TransportNetwork,
        destination_name: str | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """Fetch departures from ``stop_name``, optionally towards ``destination_name``.

        Raises:
            TransitError: the upstream call failed; nothing is cached.
        """
        options = options or SearchOptions.now()
        destination_name = destination_name or None
        key = make_cache_key("departures", network, stop_name, destination_name, options)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            result = await self.inflight.run(
                key, lambda: self._fetch(stop_name, network, destination_name, options)
            )
        except Exception:
            logger.error(
                "Failed to fetch %s departures from %r to %r",
                network.value,
                stop_name,
                destination_name,
                exc_info=True,
            )
            raise

        self.cache.set(key, result)
        return result

    async def _fetch(
        self,
        stop_name: str,
        network: TransportNetwork,
        destination_name: str | None,
        options: SearchOptions,
    ) -> SearchResult:
        if network is not TransportNetwork.SNCB:
            return await self.smart_adapter.fetch_smart(stop_name, network, destination_name, options)

        if destination_name:
            response = await self.retry.run(
                lambda: self.irail.find_connections(stop_name, destination_name, options)
            )
        else:
            response = await self.retry.run(lambda: self.irail.get_liveboard(stop_name, options))
        return normalize(response)


@dataclass(frozen=True)
class Services:
    """The long-lived components of one process."""

    transport: TransportService
    stops: StopResolver
    cache: ResultCache


def build_services(
    settings: Settings,
    irail: iRailClient,
    retrieval: RetrievalClient,
    retry: RetryPolicy | None = None,
) -> Services:
    """Wire one cache, retry policy, resolver and dispatcher around open clients."""
    cache = ResultCache(settings.cache_ttl_seconds, settings.cache_max_entries)
    retry = retry or RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay_seconds,
    )
    smart = SmartNetworkAdapter(retrieval, retry)
    return Services(
        transport=TransportService(irail, smart, cache, InflightRequests(), retry),
        stops=StopResolver(irail, retrieval, cache, retry),
        cache=cache,
    )
