"""Data models: the uniform departure model and the raw iRail payloads it is built from."""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import MalformedResponseError


class TransportNetwork(str, Enum):
    """Belgian public transport networks."""

    SNCB = "SNCB"
    STIB = "STIB"
    DE_LIJN = "De Lijn"

    @property
    def official_domain(self) -> str:
        return _OFFICIAL_DOMAINS[self]

    @property
    def portal_url(self) -> str:
        return _PORTALS[self]

    @property
    def slug(self) -> str:
        return self.value.lower().replace(" ", "-")


_OFFICIAL_DOMAINS = {
    TransportNetwork.SNCB: "irail.be",
    TransportNetwork.STIB: "stib-mivb.be",
    TransportNetwork.DE_LIJN: "delijn.be",
}

_PORTALS = {
    TransportNetwork.SNCB: "https://irail.be",
    TransportNetwork.STIB: "https://www.stib-mivb.be",
    TransportNetwork.DE_LIJN: "https://www.delijn.be",
}


class DepartureStatus(str, Enum):
    ON_TIME = "on-time"
    DELAYED = "delayed"
    CANCELLED = "cancelled"


class _ValueModel(BaseModel):
    """Immutable value object serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class Leg(_ValueModel):
    """One vehicle segment within a multi-vehicle itinerary."""

    line: str
    departure_station: str
    departure_time: str  # HH:MM
    arrival_station: str
    arrival_time: str  # HH:MM
    platform: str | None = None
    delay: str | None = None


class Departure(_ValueModel):
    """One boarding opportunity at the origin stop."""

    id: str
    line: str
    destination: str
    time: str  # HH:MM, local time
    delay: str | None = None  # e.g. "+4 min"
    platform: str | None = None
    status: DepartureStatus = DepartureStatus.ON_TIME
    arrival_time: str | None = None
    legs: list[Leg] | None = None

    @field_validator("status", mode="before")
    @classmethod
    def accept_legacy_status(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("ontime", "on time", "on_time"):
            return DepartureStatus.ON_TIME
        return value


class GroundingSource(_ValueModel):
    """Citation for where a result came from."""

    title: str
    uri: str


class SearchResult(_ValueModel):
    """Response envelope returned to the presentation layer."""

    departures: list[Departure] = Field(default_factory=list)
    sources: list[GroundingSource] = Field(default_factory=list)


class SearchOptions(_ValueModel):
    """Reference moment of a query (not necessarily now)."""

    date: datetime.date
    time: datetime.time

    @classmethod
    def now(cls) -> SearchOptions:
        current = datetime.datetime.now()
        return cls(date=current.date(), time=current.time().replace(second=0, microsecond=0))


# ---------------------------------------------------------------------------
# Raw iRail payloads
#
# iRail encodes every scalar as a string ("300", "0"/"1") and collapses
# single-element lists into a bare object, so these models coerce leniently.
# ---------------------------------------------------------------------------


def _as_list(value: Any) -> Any:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class RawStop(_RawModel):
    """Departure or arrival sub-object of a connection or via."""

    station: str = ""
    time: int
    delay: int = 0
    platform: str | None = None
    canceled: bool = False
    vehicle: str | None = None


class RawLiveboardEntry(_RawModel):
    id: str | None = None
    station: str = ""
    time: int
    delay: int = 0
    platform: str | None = None
    canceled: bool = False
    vehicle: str = ""


class RawLiveboardDepartures(_RawModel):
    number: int = 0
    departure: list[RawLiveboardEntry] = Field(default_factory=list)

    @field_validator("departure", mode="before")
    @classmethod
    def wrap_single_item(cls, value: Any) -> Any:
        return _as_list(value)


class RawVia(_RawModel):
    """An interchange: the traveller arrives on one vehicle and departs on the next."""

    station: str = ""
    arrival: RawStop
    departure: RawStop
    vehicle: str | None = None


class RawVias(_RawModel):
    number: int = 0
    via: list[RawVia] = Field(default_factory=list)

    @field_validator("via", mode="before")
    @classmethod
    def wrap_single_item(cls, value: Any) -> Any:
        return _as_list(value)


class RawConnection(_RawModel):
    id: str | None = None
    departure: RawStop
    arrival: RawStop
    duration: int = 0
    vias: RawVias | None = None

    @property
    def via_list(self) -> list[RawVia]:
        return self.vias.via if self.vias else []


class LiveboardResponse(_RawModel):
    """Answer of /liveboard/: departures from one station."""

    kind: Literal["liveboard"] = "liveboard"
    station: str = ""
    departures: RawLiveboardDepartures = Field(default_factory=RawLiveboardDepartures)


class ConnectionResponse(_RawModel):
    """Answer of /connections/: itineraries between two stations."""

    kind: Literal["connection"] = "connection"
    connection: list[RawConnection] = Field(default_factory=list)

    @field_validator("connection", mode="before")
    @classmethod
    def wrap_single_item(cls, value: Any) -> Any:
        return _as_list(value)


JourneyResponse = Annotated[LiveboardResponse | ConnectionResponse, Field(discriminator="kind")]

_journey_adapter: TypeAdapter[LiveboardResponse | ConnectionResponse] = TypeAdapter(JourneyResponse)


def parse_journey_response(
    payload: Any, kind: Literal["liveboard", "connection"]
) -> LiveboardResponse | ConnectionResponse:
    """Decode a raw iRail payload into the tagged response union.

    The tag is supplied by the caller, which knows the endpoint it queried.
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected a JSON object from iRail, got {type(payload).__name__}"
        )
    try:
        return _journey_adapter.validate_python({**payload, "kind": kind})
    except ValidationError as exc:
        raise MalformedResponseError(f"Unexpected iRail {kind} payload: {exc}") from exc


class RawStation(_RawModel):
    name: str


class RawStationList(_RawModel):
    station: list[RawStation] = Field(default_factory=list)

    @field_validator("station", mode="before")
    @classmethod
    def wrap_single_item(cls, value: Any) -> Any:
        return _as_list(value)
