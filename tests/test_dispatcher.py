"""Tests for the departure dispatcher and service wiring."""

import asyncio
import logging

import pytest

from betransport.cache import ResultCache
from betransport.config import Settings
from betransport.dispatcher import TransportService, build_services
from betransport.errors import MalformedResponseError, RateLimitError, UpstreamError
from betransport.models import (
    ConnectionResponse,
    Departure,
    LiveboardResponse,
    SearchOptions,
    SearchResult,
    TransportNetwork,
)
from betransport.normalizer import IRAIL_SOURCE
from betransport.retry import RetryPolicy

from payloads import raw_connection, raw_liveboard_entry


class FakeIrail:
    def __init__(self):
        self.calls = []
        self.errors = []

    async def _maybe_fail(self):
        await asyncio.sleep(0)
        if self.errors:
            raise self.errors.pop(0)

    async def get_liveboard(self, station, options):
        self.calls.append(("liveboard", station, options))
        await self._maybe_fail()
        return LiveboardResponse.model_validate(
            {"kind": "liveboard", "departures": {"number": "1", "departure": [raw_liveboard_entry()]}}
        )

    async def find_connections(self, from_station, to_station, options):
        self.calls.append(("connections", from_station, to_station, options))
        await self._maybe_fail()
        return ConnectionResponse.model_validate({"kind": "connection", "connection": [raw_connection()]})


class FakeSmartAdapter:
    def __init__(self):
        self.calls = []
        self.error = None

    async def fetch_smart(self, stop_name, network, destination_name, options):
        self.calls.append((stop_name, network, destination_name, options))
        if self.error:
            raise self.error
        departure = Departure(id="stib-0", line="81", destination="Montgomery", time="08:04")
        return SearchResult(departures=[departure])


@pytest.fixture
def irail():
    return FakeIrail()


@pytest.fixture
def smart():
    return FakeSmartAdapter()


@pytest.fixture
def service(irail, smart, clock, recording_sleep):
    return TransportService(
        irail,
        smart,
        ResultCache(ttl_seconds=45, clock=clock),
        retry=RetryPolicy(sleep=recording_sleep),
    )


class TestRouting:
    @pytest.mark.asyncio
    async def test_rail_without_destination_uses_liveboard(self, service, irail, smart, options):
        result = await service.fetch_transport_data("Antwerpen-Centraal", TransportNetwork.SNCB, options=options)

        assert [call[0] for call in irail.calls] == ["liveboard"]
        assert smart.calls == []
        assert result.departures[0].line == "IC1832"
        assert result.sources[0].uri == IRAIL_SOURCE.uri

    @pytest.mark.asyncio
    async def test_rail_with_destination_uses_connections(self, service, irail, options):
        result = await service.fetch_transport_data(
            "Gent-Sint-Pieters", TransportNetwork.SNCB, "Liège-Guillemins", options
        )

        assert irail.calls == [("connections", "Gent-Sint-Pieters", "Liège-Guillemins", options)]
        assert result.departures[0].arrival_time == "10:30"

    @pytest.mark.asyncio
    async def test_empty_destination_means_no_destination(self, service, irail, options):
        await service.fetch_transport_data("Namur", TransportNetwork.SNCB, "", options)
        assert irail.calls[0][0] == "liveboard"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("network", [TransportNetwork.STIB, TransportNetwork.DE_LIJN])
    async def test_other_networks_use_smart_adapter(self, service, irail, smart, options, network):
        await service.fetch_transport_data("Montgomery", network, "Stockel", options)
        assert smart.calls == [("Montgomery", network, "Stockel", options)]
        assert irail.calls == []

    @pytest.mark.asyncio
    async def test_defaults_to_now(self, service, irail):
        await service.fetch_transport_data("Namur", TransportNetwork.SNCB)
        _, _, options = irail.calls[0]
        assert isinstance(options, SearchOptions)
        assert options.time.second == 0


class TestCaching:
    @pytest.mark.asyncio
    async def test_repeat_request_is_served_from_cache(self, service, irail, options):
        first = await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        second = await service.fetch_transport_data("namur", TransportNetwork.SNCB, options=options)
        assert second is first
        assert len(irail.calls) == 1

    @pytest.mark.asyncio
    async def test_cache_expires(self, service, irail, options, clock):
        await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        clock.advance(45)
        await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        assert len(irail.calls) == 2

    @pytest.mark.asyncio
    async def test_different_moment_is_a_different_entry(self, service, irail, options):
        later = SearchOptions(date=options.date, time=options.time.replace(hour=9))
        await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=later)
        assert len(irail.calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_call(self, service, irail, options):
        results = await asyncio.gather(
            *[service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options) for _ in range(4)]
        )
        assert len(irail.calls) == 1
        assert all(result == results[0] for result in results)


class TestErrors:
    @pytest.mark.asyncio
    async def test_error_is_logged_reraised_and_not_cached(self, service, irail, options, caplog):
        irail.errors = [UpstreamError("down", 503)]

        with caplog.at_level(logging.ERROR, logger="betransport.dispatcher"):
            with pytest.raises(UpstreamError):
                await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        assert "Namur" in caplog.text

        result = await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        assert result.departures
        assert len(irail.calls) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, service, irail, options, recording_sleep):
        irail.errors = [RateLimitError("429", 429)]
        result = await service.fetch_transport_data("Namur", TransportNetwork.SNCB, options=options)
        assert result.departures
        assert len(irail.calls) == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_smart_adapter_error_propagates(self, service, smart, options):
        smart.error = MalformedResponseError("not json")
        with pytest.raises(MalformedResponseError):
            await service.fetch_transport_data("Rogier", TransportNetwork.STIB, options=options)


class TestBuildServices:
    def test_components_share_cache_and_settings(self, irail):
        settings = Settings(CACHE_TTL_SECONDS=60, CACHE_MAX_ENTRIES=10, RETRY_MAX_ATTEMPTS=3)
        services = build_services(settings, irail, retrieval=object())

        assert services.transport.cache is services.cache
        assert services.stops.cache is services.cache
        assert services.cache.ttl_seconds == 60
        assert services.cache.max_entries == 10
        assert services.transport.retry.max_attempts == 3
        assert services.stops.retry is services.transport.retry
