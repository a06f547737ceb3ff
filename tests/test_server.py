"""Tests for MCP server functionality."""

import pytest

from betransport import server
from betransport.errors import (
    MalformedResponseError,
    RateLimitError,
    StationNotFoundError,
    UpstreamError,
)
from betransport.models import (
    Departure,
    DepartureStatus,
    GroundingSource,
    Leg,
    SearchResult,
    TransportNetwork,
)
from betransport.server import (
    app,
    call_tool,
    describe_error,
    format_departure,
    format_result,
    list_tools,
    parse_network,
)


def make_departure(**overrides) -> Departure:
    fields = dict(id="dep-0", line="IC1832", destination="Antwerpen-Centraal", time="14:30", platform="3")
    fields.update(overrides)
    return Departure(**fields)


class FakeTransport:
    def __init__(self, result=None, error=None):
        self.result = result or SearchResult()
        self.error = error
        self.calls = []

    async def fetch_transport_data(self, stop_name, network, destination_name=None, options=None):
        self.calls.append((stop_name, network, destination_name, options))
        if self.error:
            raise self.error
        return self.result


class FakeStops:
    def __init__(self, names=()):
        self.names = list(names)
        self.calls = []

    async def resolve(self, partial_name, network):
        self.calls.append((partial_name, network))
        return self.names


class FakeServices:
    def __init__(self, transport=None, stops=None):
        self.transport = transport or FakeTransport()
        self.stops = stops or FakeStops()


@pytest.fixture
def install_services(monkeypatch):
    def install(**kwargs):
        services = FakeServices(**kwargs)
        monkeypatch.setattr(server, "_services", services)
        return services

    return install


class TestParseNetwork:
    def test_default_is_rail(self):
        assert parse_network(None) is TransportNetwork.SNCB
        assert parse_network("") is TransportNetwork.SNCB

    @pytest.mark.parametrize(
        "value, network",
        [
            ("SNCB", TransportNetwork.SNCB),
            ("stib", TransportNetwork.STIB),
            ("De Lijn", TransportNetwork.DE_LIJN),
            ("de_lijn", TransportNetwork.DE_LIJN),
        ],
    )
    def test_case_insensitive(self, value, network):
        assert parse_network(value) is network

    def test_unknown_network(self):
        with pytest.raises(ValueError, match="Unknown network"):
            parse_network("TEC")


class TestFormatting:
    """Test output formatting of normalized departures."""

    def test_format_departure_with_delay(self):
        result = format_departure(make_departure(delay="+5 min", status=DepartureStatus.DELAYED))
        assert "Antwerpen-Centraal" in result
        assert "(+5 min)" in result
        assert "Platform 3" in result
        assert "[CANCELLED]" not in result

    def test_format_departure_on_time(self):
        result = format_departure(make_departure(platform="1"))
        assert "+" not in result
        assert "Platform 1" in result

    def test_format_departure_cancelled(self):
        result = format_departure(make_departure(status=DepartureStatus.CANCELLED))
        assert "[CANCELLED]" in result

    def test_format_departure_without_platform(self):
        result = format_departure(make_departure(platform=None, line="81", destination="Montgomery"))
        assert "Platform" not in result
        assert "81 to Montgomery" in result

    def test_format_itinerary_with_legs(self):
        legs = [
            Leg(
                line="IC1832",
                departure_station="Gent-Sint-Pieters",
                departure_time="08:00",
                arrival_station="Bruxelles-Midi",
                arrival_time="08:30",
                platform="4",
            ),
            Leg(
                line="IC2345",
                departure_station="Bruxelles-Midi",
                departure_time="08:40",
                arrival_station="Liège-Guillemins",
                arrival_time="10:30",
                delay="+2 min",
            ),
        ]
        dep = make_departure(
            line="2-leg itinerary",
            destination="Liège-Guillemins",
            time="08:00",
            arrival_time="10:30",
            legs=legs,
        )
        lines = format_departure(dep).splitlines()
        assert lines[0].startswith("08:00 → 10:30 2-leg itinerary to Liège-Guillemins")
        assert lines[1] == "    IC1832: Gent-Sint-Pieters 08:00 → Bruxelles-Midi 08:30, Pl. 4"
        assert lines[2] == "    IC2345: Bruxelles-Midi 08:40 (+2 min) → Liège-Guillemins 10:30"

    def test_format_result_lists_sources(self):
        result = SearchResult(
            departures=[make_departure()],
            sources=[GroundingSource(title="iRail API (Open Data)", uri="https://irail.be")],
        )
        text = format_result(result, "SNCB departures at Antwerpen-Centraal")
        assert text.startswith("SNCB departures at Antwerpen-Centraal:")
        assert "Sources:" in text
        assert "iRail API (Open Data) - https://irail.be" in text

    def test_format_result_empty(self):
        assert "No departures found." in format_result(SearchResult(), "Heading")

    def test_format_result_is_truncated(self):
        departures = [make_departure(id=f"dep-{i}") for i in range(20)]
        text = format_result(SearchResult(departures=departures), "Heading")
        assert "... and 5 more" in text


class TestDescribeError:
    @pytest.mark.parametrize(
        "error, fragment",
        [
            (RateLimitError("429", 429), "Too many requests"),
            (StationNotFoundError("404", 404), "Station not found"),
            (MalformedResponseError("bad"), "unreadable data"),
            (UpstreamError("down", 503), "Could not reach"),
        ],
    )
    def test_messages_are_distinct(self, error, fragment):
        assert fragment in describe_error(error)


class TestMCPServerRegistration:
    """Test that MCP server tools are registered."""

    def test_app_has_tools(self):
        assert app is not None
        assert app.name == "betransport"

    @pytest.mark.asyncio
    async def test_tool_list(self):
        tools = {tool.name: tool for tool in await list_tools()}
        assert set(tools) == {"search_stops", "get_departures"}
        assert tools["get_departures"].inputSchema["required"] == ["station"]
        assert tools["search_stops"].inputSchema["properties"]["network"]["enum"] == [
            "SNCB",
            "STIB",
            "De Lijn",
        ]


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_not_started(self, monkeypatch):
        monkeypatch.setattr(server, "_services", None)
        [content] = await call_tool("search_stops", {"query": "Namur"})
        assert content.text.startswith("Error:")

    @pytest.mark.asyncio
    async def test_unknown_tool(self, install_services):
        install_services()
        [content] = await call_tool("get_disturbances", {})
        assert content.text == "Unknown tool: get_disturbances"

    @pytest.mark.asyncio
    async def test_search_stops(self, install_services):
        services = install_services(stops=FakeStops(["Gare Centrale", "Gare du Midi"]))
        [content] = await call_tool("search_stops", {"query": "Gare", "network": "STIB"})
        assert services.stops.calls == [("Gare", TransportNetwork.STIB)]
        assert "• Gare Centrale" in content.text
        assert "• Gare du Midi" in content.text

    @pytest.mark.asyncio
    async def test_search_stops_no_match(self, install_services):
        install_services()
        [content] = await call_tool("search_stops", {"query": "zz"})
        assert content.text == "No SNCB stops found matching 'zz'"

    @pytest.mark.asyncio
    async def test_get_departures(self, install_services):
        transport = FakeTransport(SearchResult(departures=[make_departure()]))
        install_services(transport=transport)

        [content] = await call_tool(
            "get_departures",
            {"station": "Antwerpen-Centraal", "date": "2024-02-07", "time": "14:30"},
        )

        stop_name, network, destination, options = transport.calls[0]
        assert (stop_name, network, destination) == ("Antwerpen-Centraal", TransportNetwork.SNCB, None)
        assert options.date.isoformat() == "2024-02-07"
        assert options.time.strftime("%H:%M") == "14:30"
        assert "SNCB departures at Antwerpen-Centraal on 2024-02-07 14:30" in content.text
        assert "IC1832 to Antwerpen-Centraal" in content.text

    @pytest.mark.asyncio
    async def test_get_departures_with_destination(self, install_services):
        transport = FakeTransport()
        install_services(transport=transport)
        [content] = await call_tool(
            "get_departures",
            {"station": "Gent-Sint-Pieters", "destination": "Namur", "date": "2024-02-07", "time": "08:00"},
        )
        assert transport.calls[0][2] == "Namur"
        assert "connections from Gent-Sint-Pieters to Namur" in content.text
        assert "No departures found." in content.text

    @pytest.mark.asyncio
    async def test_get_departures_requires_station(self, install_services):
        install_services()
        [content] = await call_tool("get_departures", {"network": "STIB"})
        assert content.text == "Error: 'station' parameter is required"

    @pytest.mark.asyncio
    async def test_get_departures_unknown_network(self, install_services):
        install_services()
        [content] = await call_tool("get_departures", {"station": "Namur", "network": "TEC"})
        assert "Unknown network" in content.text

    @pytest.mark.asyncio
    async def test_get_departures_upstream_error(self, install_services):
        install_services(transport=FakeTransport(error=RateLimitError("429", 429)))
        [content] = await call_tool("get_departures", {"station": "Rogier", "network": "STIB"})
        assert content.text.startswith("Error fetching departures: Too many requests")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
