"""Departures for networks without a public journey API (STIB, De Lijn).

A grounded retrieval call reads the operator's official real-time portal and
answers in JSON, which is validated into the same Departure model as the
rail path. Legs and arrival times are never populated here.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedResponseError
from .models import (
    Departure,
    DepartureStatus,
    GroundingSource,
    SearchOptions,
    SearchResult,
    TransportNetwork,
)
from .retrieval import RetrievalClient
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_CLOCK = re.compile(r"(\d{1,2}):(\d{2})")
_DELAY_MINUTES = re.compile(r"\+?\s*(\d+)")
_ON_TIME_SPELLINGS = {"on-time", "ontime", "on time", "on_time"}

DEPARTURES_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "departures": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "line": {"type": "STRING"},
                    "destination": {"type": "STRING"},
                    "time": {"type": "STRING", "description": "HH:mm, local time"},
                    "delay": {"type": "STRING", "nullable": True, "description": "+X min"},
                    "platform": {"type": "STRING", "nullable": True},
                    "status": {"type": "STRING", "enum": ["on-time", "delayed", "cancelled"]},
                },
                "required": ["line", "destination", "time", "status"],
            },
        }
    },
    "required": ["departures"],
}


class _SmartDeparture(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str | None = None
    line: str
    destination: str
    time: str
    delay: str | None = None
    platform: str | None = None
    status: str | None = None

    @field_validator("time")
    @classmethod
    def zero_pad_clock(cls, value: str) -> str:
        match = _CLOCK.fullmatch(value.strip())
        if not match:
            raise ValueError(f"expected HH:MM, got {value!r}")
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise ValueError(f"expected HH:MM, got {value!r}")
        return f"{hour:02d}:{minute:02d}"


class _SmartPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    departures: list[_SmartDeparture] = Field(default_factory=list)


def _system_instruction(stop_name: str, network: TransportNetwork, moment: str) -> str:
    return (
        f"You are a virtual real-time API for the Belgian public transport network {network.value}.\n"
        f'Extract the real-time departures at the stop "{stop_name}" for {moment}.\n'
        f"Use Google Search to read the official real-time portal of {network.official_domain} directly.\n"
        "Answer with JSON only, shaped as "
        '{"departures": [{"id": string, "line": string, "destination": string, '
        '"time": "HH:mm", "delay": "+X min" or null, "platform": string or null, '
        '"status": "on-time" | "delayed" | "cancelled"}]}.'
    )


def _prompt(
    stop_name: str, network: TransportNetwork, destination_name: str | None, moment: str
) -> str:
    towards = f" towards {destination_name}" if destination_name else ""
    return (
        f"Give me the next official real-time departures at the stop {stop_name} "
        f"({network.value}){towards} from {network.official_domain} for {moment}."
    )


def _delay_minutes(delay: str | None) -> int:
    """Minutes in a ``"+X min"`` delay string, 0 when absent or unreadable."""
    if not delay:
        return 0
    match = _DELAY_MINUTES.match(delay.strip())
    return int(match.group(1)) if match else 0


def _smart_status(raw: _SmartDeparture) -> str:
    """An on-time answer with a positive delay is delayed; other statuses pass through."""
    status = raw.status or DepartureStatus.ON_TIME.value
    if status.strip().lower() in _ON_TIME_SPELLINGS and _delay_minutes(raw.delay) > 0:
        return DepartureStatus.DELAYED.value
    return status


def parse_smart_departures(text: str, network: TransportNetwork) -> list[Departure]:
    """Validate the retrieval answer into Departures.

    Raises:
        MalformedResponseError: the text is not JSON or not shaped as expected.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            f"{network.value} retrieval answer is not valid JSON: {text[:120]!r}"
        ) from exc

    try:
        payload = _SmartPayload.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"{network.value} retrieval answer has an unexpected shape") from exc

    departures = []
    for index, raw in enumerate(payload.departures):
        status = _smart_status(raw)
        try:
            departure = Departure(
                id=raw.id or f"{network.slug}-{index}",
                line=raw.line,
                destination=raw.destination,
                time=raw.time,
                delay=raw.delay or None,
                platform=raw.platform or None,
                status=status,
            )
        except ValidationError as exc:
            raise MalformedResponseError(
                f"{network.value} retrieval answer has an invalid departure at index {index}"
            ) from exc
        departures.append(departure)
    return departures


def merge_sources(*groups: list[GroundingSource]) -> list[GroundingSource]:
    """Concatenate source lists, keeping the first occurrence of each URI."""
    seen: set[str] = set()
    merged = []
    for group in groups:
        for source in group:
            if source.uri in seen:
                continue
            seen.add(source.uri)
            merged.append(source)
    return merged


class SmartNetworkAdapter:
    """Fetches departures for networks served through grounded retrieval."""

    def __init__(self, retrieval: RetrievalClient, retry: RetryPolicy | None = None):
        self.retrieval = retrieval
        self.retry = retry or RetryPolicy()

    async def fetch_smart(
        self,
        stop_name: str,
        network: TransportNetwork,
        destination_name: str | None,
        options: SearchOptions,
    ) -> SearchResult:
        if network is TransportNetwork.SNCB:
            raise ValueError("SNCB is served by the iRail API, not the smart adapter")

        moment = f"{options.date.isoformat()} at {options.time.strftime('%H:%M')}"
        response = await self.retry.run(
            lambda: self.retrieval.generate(
                _prompt(stop_name, network, destination_name, moment),
                system_instruction=_system_instruction(stop_name, network, moment),
                response_schema=DEPARTURES_SCHEMA,
                grounded=True,
            )
        )

        departures = parse_smart_departures(response.text, network)
        portal = GroundingSource(title=f"Official {network.value} portal", uri=network.portal_url)
        logger.info(
            "%s: %d departure(s) at %s from %d grounding source(s)",
            network.value,
            len(departures),
            stop_name,
            len(response.sources),
        )
        return SearchResult(departures=departures, sources=merge_sources([portal], response.sources))
