"""Exception taxonomy for upstream transit data access."""

from __future__ import annotations


class TransitError(Exception):
    """Base class for every failure raised by the aggregation layer."""


class UpstreamError(TransitError):
    """An upstream service could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(UpstreamError):
    """An upstream service rejected the request because of rate limiting (HTTP 429)."""


class StationNotFoundError(UpstreamError):
    """The rail API does not know the requested station."""


class MalformedResponseError(TransitError):
    """An upstream answered, but with data that cannot be parsed or has an unexpected shape."""


__all__ = [
    "TransitError",
    "UpstreamError",
    "RateLimitError",
    "StationNotFoundError",
    "MalformedResponseError",
]
