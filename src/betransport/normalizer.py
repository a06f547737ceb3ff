"""Turn raw iRail journey responses into the uniform departure model.

A liveboard entry becomes one departure without legs. A connection becomes
one departure whose legs chain the initial departure, every via and the final
arrival:

    leg 0      departure        -> vias[0] (or arrival when direct)
    leg i + 1  vias[i].departure -> vias[i + 1] (or arrival for the last via)

Via entries carry no top-level time; each leg's departure time is read from
the via's own nested departure object.
"""

from __future__ import annotations

from typing import NoReturn

from .models import (
    ConnectionResponse,
    Departure,
    DepartureStatus,
    GroundingSource,
    Leg,
    LiveboardResponse,
    RawConnection,
    RawLiveboardEntry,
    SearchResult,
)
from .time_format import format_clock, format_delay

IRAIL_SOURCE = GroundingSource(title="iRail API (Open Data)", uri="https://irail.be")


def line_label(vehicle: str | None) -> str:
    """Display label of a vehicle id: its last dot segment ("BE.NMBS.IC1234" -> "IC1234")."""
    if not vehicle:
        return ""
    return vehicle.rsplit(".", 1)[-1]


def departure_status(canceled: bool, delay_seconds: int) -> DepartureStatus:
    """Cancellation wins over delay."""
    if canceled:
        return DepartureStatus.CANCELLED
    if delay_seconds > 0:
        return DepartureStatus.DELAYED
    return DepartureStatus.ON_TIME


def normalize(response: LiveboardResponse | ConnectionResponse) -> SearchResult:
    """Normalize a decoded journey response into a SearchResult."""
    if response.kind == "liveboard":
        departures = [
            normalize_liveboard_entry(entry, index)
            for index, entry in enumerate(response.departures.departure)
        ]
    elif response.kind == "connection":
        departures = [
            normalize_connection(connection, index)
            for index, connection in enumerate(response.connection)
        ]
    else:
        _unreachable(response)
    return SearchResult(departures=departures, sources=[IRAIL_SOURCE])


def normalize_liveboard_entry(entry: RawLiveboardEntry, index: int) -> Departure:
    return Departure(
        id=entry.id if entry.id is not None else f"dep-{index}",
        line=line_label(entry.vehicle),
        destination=entry.station,
        time=format_clock(entry.time),
        delay=format_delay(entry.delay),
        platform=entry.platform or None,
        status=departure_status(entry.canceled, entry.delay),
    )


def build_legs(connection: RawConnection) -> list[Leg]:
    """Reconstruct the ordered vehicle segments of a connection.

    A leg's vehicle is read from its boarding point only. The via-level
    ``vehicle`` may name the arriving train, so it is never used.
    """
    vias = connection.via_list
    origin = connection.departure
    final = connection.arrival

    # Boarding points: the origin, then every via's own departure.
    boardings = [(origin.station, origin)]
    boardings += [(via.station or via.departure.station, via.departure) for via in vias]
    # Alighting points: every via's arrival, then the final destination.
    alightings = [(via.station or via.arrival.station, via.arrival) for via in vias]
    alightings += [(final.station, final)]

    legs = []
    for boarding, alighting in zip(boardings, alightings):
        from_station, board = boarding
        to_station, alight = alighting
        legs.append(
            Leg(
                line=line_label(board.vehicle),
                departure_station=from_station,
                departure_time=format_clock(board.time),
                arrival_station=to_station,
                arrival_time=format_clock(alight.time),
                platform=board.platform or None,
                delay=format_delay(board.delay),
            )
        )
    return legs


def normalize_connection(connection: RawConnection, index: int) -> Departure:
    legs = build_legs(connection)
    first = legs[0]
    origin = connection.departure
    return Departure(
        id=f"conn-{index}",
        line=first.line if len(legs) == 1 else f"{len(legs)}-leg itinerary",
        destination=connection.arrival.station,
        time=first.departure_time,
        delay=first.delay,
        platform=first.platform,
        status=departure_status(origin.canceled, origin.delay),
        arrival_time=format_clock(connection.arrival.time),
        legs=legs if len(legs) > 1 else None,
    )


def _unreachable(value: NoReturn) -> NoReturn:
    raise AssertionError(f"Unhandled journey response: {value!r}")
