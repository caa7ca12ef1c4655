"""Shared plumbing for upstream air quality provider adapters."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from aqiops.cache import TTLCache, make_key
from aqiops.errors import MisconfiguredAdapter, UnsupportedOperation, UpstreamUnavailable
from aqiops.middleware.logging import log_info, log_warning, redact_params
from aqiops.models.reading import Coordinate, NormalizedReading, ProviderCapability

T = TypeVar("T")

_PLACEHOLDERS = {"", "-", "--", "---", "nan", "none", "null"}


def to_float(val: Any) -> Optional[float]:
    """Convert value to float, return None if not possible or blank/placeholder."""
    if val is None or isinstance(val, bool):
        return None
    try:
        s = str(val).strip()
        if s.lower() in _PLACEHOLDERS:
            return None
        result = float(s)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def to_int(val: Any) -> Optional[int]:
    """Convert value to int (rounding floats), or None."""
    result = to_float(val)
    return None if result is None else int(round(result))


def slugify(*parts: Optional[str]) -> str:
    """Deterministic id from name parts: lowercase, whitespace runs to hyphens."""
    text = "-".join(p for p in parts if p)
    return "-".join(text.lower().split())


class AirQualityAdapter(ABC):
    """Base class for provider adapters.

    Subclasses translate one upstream API into ``NormalizedReading``
    records.  Each instance owns (or is handed) a ``TTLCache`` and talks to
    its upstream through a short-lived ``httpx.AsyncClient``; tests inject
    an ``httpx.MockTransport`` via ``transport``.
    """

    name: str = "base"
    description: str = ""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str,
        timeout: float = 10.0,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or None
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache = cache if cache is not None else TTLCache()
        self._transport = transport

    # ------------------------------------------------------------------
    # Capability and operations
    # ------------------------------------------------------------------
    @property
    def is_available(self) -> bool:
        return self.api_key is not None

    @abstractmethod
    def capability(self) -> ProviderCapability:
        """Describe what this adapter supports and whether it is usable."""

    @abstractmethod
    async def fetch_by_coordinate(
        self, point: Coordinate, radius_km: float
    ) -> List[NormalizedReading]:
        """Readings within ``radius_km`` of ``point``, nearest first."""

    async def fetch_nearest(self, point: Coordinate) -> NormalizedReading:
        raise UnsupportedOperation(f"{self.name} does not support nearest-station lookup")

    async def fetch_by_name(
        self, city: str, region: Optional[str], country: str
    ) -> NormalizedReading:
        raise UnsupportedOperation(f"{self.name} does not support lookup by name")

    async def list_countries(self) -> List[str]:
        raise UnsupportedOperation(f"{self.name} does not support browsing countries")

    async def list_regions(self, country: str) -> List[str]:
        raise UnsupportedOperation(f"{self.name} does not support browsing regions")

    async def list_cities(self, region: str, country: str) -> List[str]:
        raise UnsupportedOperation(f"{self.name} does not support browsing cities")

    def clear_cache(self) -> None:
        self.cache.clear()
        log_info("cache_cleared", source=self.name)

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_key(self) -> str:
        if not self.api_key:
            raise MisconfiguredAdapter(
                f"{self.name} API key not configured", {"source": self.name}
            )
        return self.api_key

    async def _cached(self, key_parts: tuple, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key_parts`` or load and store it."""
        key = make_key(self.name, *key_parts)
        cached = self.cache.get(key)
        if cached is not None:
            log_info("cache_hit", source=self.name, key=key)
            return cached
        log_info("cache_miss", source=self.name, key=key)
        value = await loader()
        self.cache.set(key, value)
        return value

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """GET ``path`` from the upstream, mapping transport failures."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        log_info(
            "upstream_request", source=self.name, url=url, params=redact_params(params or {})
        )
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                return await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            log_warning("upstream_timeout", source=self.name, url=url, error=str(e))
            raise UpstreamUnavailable(
                f"{self.name} request timed out", {"source": self.name}
            ) from e
        except httpx.HTTPError as e:
            log_warning("upstream_request_error", source=self.name, url=url, error=str(e))
            raise UpstreamUnavailable(
                f"{self.name} request failed", {"source": self.name, "error": str(e)}
            ) from e

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON body or raise ``UpstreamUnavailable``."""
        try:
            return response.json()
        except ValueError as e:
            log_warning(
                "upstream_invalid_json",
                source=self.name,
                status_code=response.status_code,
                text=response.text[:500],
            )
            raise UpstreamUnavailable(
                f"{self.name} returned a malformed payload", {"source": self.name}
            ) from e


__all__ = ["AirQualityAdapter", "to_float", "to_int", "slugify"]
