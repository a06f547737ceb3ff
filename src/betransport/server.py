"""BeTransport MCP server for Belgian public transport departures."""

import logging

from mcp.server import Server
from mcp.types import TextContent, Tool

from .config import get_settings
from .dispatcher import Services, build_services
from .errors import MalformedResponseError, RateLimitError, StationNotFoundError, TransitError
from .irail_client import iRailClient
from .models import Departure, DepartureStatus, SearchResult, TransportNetwork
from .retrieval import RetrievalClient
from .time_format import parse_search_options

logger = logging.getLogger(__name__)

# Create MCP server
app = Server("betransport")

# Set once by main(), for the lifetime of the process.
_services: Services | None = None

NETWORK_NAMES = [network.value for network in TransportNetwork]


def parse_network(value: str | None) -> TransportNetwork:
    """Resolve a network name case-insensitively (default: SNCB)."""
    if not value:
        return TransportNetwork.SNCB
    for network in TransportNetwork:
        if value.strip().casefold() in (network.value.casefold(), network.name.casefold()):
            return network
    raise ValueError(f"Unknown network '{value}'. Choose one of: {', '.join(NETWORK_NAMES)}")


def format_departure(dep: Departure) -> str:
    """Format a departure record for display."""
    delay_str = f" ({dep.delay})" if dep.delay else ""
    arrival_str = f" → {dep.arrival_time}" if dep.arrival_time else ""
    platform_str = f", Platform {dep.platform}" if dep.platform else ""
    canceled_str = " [CANCELLED]" if dep.status is DepartureStatus.CANCELLED else ""

    lines = [
        f"{dep.time}{delay_str}{arrival_str} {dep.line} to {dep.destination}"
        f"{platform_str}{canceled_str}"
    ]
    for leg in dep.legs or []:
        leg_platform = f", Pl. {leg.platform}" if leg.platform else ""
        leg_delay = f" ({leg.delay})" if leg.delay else ""
        lines.append(
            f"    {leg.line}: {leg.departure_station} {leg.departure_time}{leg_delay}"
            f" → {leg.arrival_station} {leg.arrival_time}{leg_platform}"
        )
    return "\n".join(lines)


def format_result(result: SearchResult, heading: str) -> str:
    """Format a search result with its provenance footer."""
    lines = [f"{heading}:\n"]

    if not result.departures:
        lines.append("No departures found.")
    else:
        for dep in result.departures[:15]:  # Limit to 15
            lines.append(f"  {format_departure(dep)}")
        if len(result.departures) > 15:
            lines.append(f"\n  ... and {len(result.departures) - 15} more")

    if result.sources:
        lines.append("\nSources:")
        for source in result.sources:
            lines.append(f"  • {source.title} - {source.uri}")

    return "\n".join(lines)


def describe_error(error: TransitError) -> str:
    """User-facing explanation of a failed departure search."""
    if isinstance(error, RateLimitError):
        return "Too many requests: the API quota is temporarily exhausted. Please wait a minute."
    if isinstance(error, StationNotFoundError):
        return "Station not found. Check the spelling or use search_stops first."
    if isinstance(error, MalformedResponseError):
        return "The official servers returned unreadable data. Please try again."
    return "Could not reach the official servers. Please try again."


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="search_stops",
            description="Autocomplete a Belgian public transport stop name",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Partial stop name, at least 2 characters (e.g., 'Bruxelles', 'Gare')",
                    },
                    "network": {
                        "type": "string",
                        "enum": NETWORK_NAMES,
                        "description": "Transport network",
                        "default": "SNCB",
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_departures",
            description=(
                "Get real-time departures from a stop. For SNCB, a destination "
                "returns itineraries with every leg of the trip."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "station": {
                        "type": "string",
                        "description": "Stop or station name (e.g., 'Bruxelles-Central', 'De Brouckère')",
                    },
                    "network": {
                        "type": "string",
                        "enum": NETWORK_NAMES,
                        "description": "Transport network",
                        "default": "SNCB",
                    },
                    "destination": {
                        "type": "string",
                        "description": "Optional destination stop name",
                    },
                    "date": {
                        "type": "string",
                        "description": "Date in format YYYY-MM-DD or relative (today, tomorrow, +2 days)",
                    },
                    "time": {
                        "type": "string",
                        "description": "Time in 24-hour format (e.g., '14:30')",
                    },
                },
                "required": ["station"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if _services is None:
            raise RuntimeError("Server not started. Run through main().")

        if name == "search_stops":
            result = await _search_stops(_services, arguments)
        elif name == "get_departures":
            result = await _get_departures(_services, arguments)
        else:
            result = f"Unknown tool: {name}"

        return [TextContent(type="text", text=result)]
    except Exception as e:
        error_msg = f"Error: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return [TextContent(type="text", text=error_msg)]


async def _search_stops(services: Services, arguments: dict) -> str:
    """Autocomplete stop names."""
    query = arguments.get("query", "")

    try:
        network = parse_network(arguments.get("network"))
    except ValueError as e:
        return f"Error: {e}"

    names = await services.stops.resolve(query, network)

    if not names:
        return f"No {network.value} stops found matching '{query}'"

    lines = [f"{network.value} stops matching '{query}':\n"]
    lines.extend(f"• {name}" for name in names)
    return "\n".join(lines)


async def _get_departures(services: Services, arguments: dict) -> str:
    """Get departures or itineraries."""
    station = arguments.get("station", "")
    destination = arguments.get("destination") or None

    if not station:
        return "Error: 'station' parameter is required"

    try:
        network = parse_network(arguments.get("network"))
    except ValueError as e:
        return f"Error: {e}"

    options = parse_search_options(arguments.get("date"), arguments.get("time"))

    try:
        result = await services.transport.fetch_transport_data(station, network, destination, options)
    except TransitError as e:
        return f"Error fetching departures: {describe_error(e)}"

    moment = f"{options.date.isoformat()} {options.time.strftime('%H:%M')}"
    if destination:
        heading = f"{network.value} connections from {station} to {destination} departing {moment}"
    else:
        heading = f"{network.value} departures at {station} on {moment}"
    return format_result(result, heading)


async def main():
    """Run the MCP server."""
    from mcp.server.stdio import stdio_server

    global _services

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    async with iRailClient.from_settings(settings) as irail, RetrievalClient.from_settings(
        settings
    ) as retrieval:
        _services = build_services(settings, irail, retrieval)
        async with stdio_server() as (read_stream, write_stream):
            init_options = app.create_initialization_options()
            await app.run(read_stream, write_stream, init_options)


def cli():
    """Entry point for console script."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    cli()
