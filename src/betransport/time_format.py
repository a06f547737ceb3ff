"""Conversions between caller-facing dates/times and the iRail encodings."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from .models import SearchOptions


def format_irail_date(value: date) -> str:
    """Encode a calendar date as iRail's ``ddmmyy``."""
    return value.strftime("%d%m%y")


def format_irail_time(value: time) -> str:
    """Encode a clock time as iRail's ``HHMM``."""
    return value.strftime("%H%M")


def format_clock(epoch_seconds: int) -> str:
    """Render an epoch timestamp as local ``HH:MM``."""
    return datetime.fromtimestamp(epoch_seconds).strftime("%H:%M")


def format_delay(delay_seconds: int) -> str | None:
    """Return ``"+N min"`` for a positive delay, ``None`` when on time."""
    if delay_seconds > 0:
        return f"+{delay_seconds // 60} min"
    return None


def parse_search_options(date_str: str | None, time_str: str | None) -> SearchOptions:
    """Parse loosely formatted date and time strings into SearchOptions.

    Supports various formats:
    - Date: "2024-02-07", "07/02/2024", "07.02.2024", "today", "tomorrow", "+2 days"
    - Time: "14:30", "2:30 PM", "14:30:00", "1430"

    Anything missing or unparsable falls back to the current date/time.
    """
    now = datetime.now()
    target_date = _parse_date(date_str, now)

    target_time = now.time().replace(second=0, microsecond=0)
    if time_str:
        for fmt in ["%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M:%S %p", "%H%M"]:
            try:
                parsed = datetime.strptime(time_str.strip(), fmt)
            except ValueError:
                continue
            target_time = time(parsed.hour, parsed.minute)
            break

    return SearchOptions(date=target_date, time=target_time)


def _parse_date(date_str: str | None, now: datetime) -> date:
    if not date_str:
        return now.date()

    text = date_str.strip().lower()
    if text == "today":
        return now.date()
    if text == "tomorrow":
        return (now + timedelta(days=1)).date()
    if text.startswith("+"):
        # "+2 days" format
        try:
            days = int(text.split()[0][1:])
        except ValueError:
            return now.date()
        return (now + timedelta(days=days)).date()

    for fmt in ["%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y"]:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return now.date()
