"""Error taxonomy shared by adapters, services and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AirQualityError(Exception):
    """Base error carrying a human-readable message and structured details."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UpstreamUnavailable(AirQualityError):
    """A provider call failed: network error, timeout, bad status or bad payload."""


class NotFound(AirQualityError):
    """A well-formed query legitimately has no match."""


class InvalidInput(AirQualityError):
    """Malformed or missing query parameters, detected before any upstream call."""


class MisconfiguredAdapter(AirQualityError):
    """An adapter was invoked without the credential it requires."""


class UnsupportedOperation(AirQualityError):
    """The adapter does not offer the requested operation."""


__all__ = [
    "AirQualityError",
    "UpstreamUnavailable",
    "NotFound",
    "InvalidInput",
    "MisconfiguredAdapter",
    "UnsupportedOperation",
]
