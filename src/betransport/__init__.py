"""Real-time departures for Belgian rail (SNCB) and regional networks (STIB, De Lijn)."""

from .dispatcher import Services, TransportService, build_services
from .errors import (
    MalformedResponseError,
    RateLimitError,
    StationNotFoundError,
    TransitError,
    UpstreamError,
)
from .models import (
    Departure,
    DepartureStatus,
    GroundingSource,
    Leg,
    SearchOptions,
    SearchResult,
    TransportNetwork,
)
from .stop_resolver import StopResolver

__version__ = "0.1.0"

__all__ = [
    "Departure",
    "DepartureStatus",
    "GroundingSource",
    "Leg",
    "MalformedResponseError",
    "RateLimitError",
    "SearchOptions",
    "SearchResult",
    "Services",
    "StationNotFoundError",
    "StopResolver",
    "TransitError",
    "TransportNetwork",
    "TransportService",
    "UpstreamError",
    "build_services",
]
