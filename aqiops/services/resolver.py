"""Free-text city resolution against an exact-match-only provider.

The professional network only answers exact ``(city, state, country)``
lookups.  ``CityResolver`` tries a fixed sequence of heuristics until
one of them produces a reading.  Matching is fuzzy by nature: it
compares names case-insensitively and accepts substring containment in
either direction, so results are best effort.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence, Tuple

from aqiops.adapters.base import AirQualityAdapter
from aqiops.errors import AirQualityError, InvalidInput, NotFound
from aqiops.middleware.logging import log_info
from aqiops.models.aggregation import BatchItem, CityQuery, ResolvedCity, ResolveMethod

DEEP_SEARCH_REGION_LIMIT = 10
MAX_BATCH_SIZE = 20

SUGGESTIONS = [
    "Try /api/aqi/nearby with coordinates instead",
    "Verify the city name spelling",
    "Check /api/aqi/countries for valid country names",
    "Browse /api/aqi/states and /api/aqi/cities to find exact names",
]


def _fold(text: str) -> str:
    return " ".join(text.split()).casefold()


def best_region_match(query: str, regions: Sequence[str]) -> Optional[str]:
    """Pick the region that best matches ``query``.

    Exact (case-insensitive) equality wins.  Otherwise a region that
    contains the query, or is contained by it, qualifies; among those the
    one whose length is closest to the query's wins, and remaining ties go
    to upstream order.
    """
    q = _fold(query)
    if not q:
        return None
    for region in regions:
        if _fold(region) == q:
            return region
    candidates = [
        (abs(len(_fold(r)) - len(q)), index, r)
        for index, r in enumerate(regions)
        if _fold(r) and (q in _fold(r) or _fold(r) in q)
    ]
    if not candidates:
        return None
    return min(candidates)[2]


def best_city_match(query: str, cities: Sequence[str]) -> Optional[str]:
    """Exact city match first, else the shortest city name containing ``query``."""
    q = _fold(query)
    if not q:
        return None
    for city in cities:
        if _fold(city) == q:
            return city
    candidates = [(len(c), index, c) for index, c in enumerate(cities) if q in _fold(c)]
    if not candidates:
        return None
    return min(candidates)[2]


class CityResolver:
    """Resolve free-text place names through an ordered list of strategies."""

    def __init__(self, adapter: AirQualityAdapter) -> None:
        self.adapter = adapter

    async def resolve_city_query(
        self, query: str, region: Optional[str], country: str
    ) -> ResolvedCity:
        """Find a reading for ``query`` in ``country``; first strategy to succeed wins.

        1. ``(query, region, country)`` when a region was supplied.
        2. ``(query, query, country)`` for city-states.
        3. A region of ``country`` whose name matches the query.
        4. The cities of the first ten regions, looking for the query.

        Raises ``NotFound`` with the attempted query and suggestions when
        every strategy fails.
        """
        query = (query or "").strip()
        country = (country or "").strip()
        region = (region or "").strip() or None
        if not query or not country:
            raise InvalidInput(
                "Query and country are required",
                {"example": "/api/aqi/search-city?query=Bangkok&country=Thailand"},
            )

        if region:
            found = await self._attempt(ResolveMethod.WITH_REGION, query, region, country)
            if found:
                return ResolvedCity(
                    reading=found,
                    method=ResolveMethod.WITH_REGION,
                    message=f"Found {query} in {region}",
                )

        if not region or _fold(region) != _fold(query):
            found = await self._attempt(ResolveMethod.CITY_AS_REGION, query, query, country)
            if found:
                return ResolvedCity(
                    reading=found,
                    method=ResolveMethod.CITY_AS_REGION,
                    message="Found using city name as both city and state",
                )

        regions = await self._regions(country)

        match = best_region_match(query, regions)
        if match:
            found = await self._attempt(ResolveMethod.REGION_MATCH, query, match, country)
            if found:
                return ResolvedCity(
                    reading=found,
                    method=ResolveMethod.REGION_MATCH,
                    message=f"Found in state: {match}",
                )

        located = await self._deep_search(query, country, regions)
        if located:
            city, state = located
            found = await self._attempt(ResolveMethod.DEEP_SEARCH, city, state, country)
            if found:
                return ResolvedCity(
                    reading=found,
                    method=ResolveMethod.DEEP_SEARCH,
                    message=f"Found {city} in {state}",
                )

        log_info("resolver_exhausted", query=query, region=region, country=country)
        raise NotFound(
            "City not found using any search method",
            {
                "query": {"city": query, "state": region, "country": country},
                "suggestions": SUGGESTIONS,
            },
        )

    async def lookup_batch(self, queries: Sequence[CityQuery]) -> List[BatchItem]:
        """Exact lookups for several cities at once; failures are reported per item."""
        if not queries:
            raise InvalidInput("cities array is required with format: [{ city, state, country }]")
        if len(queries) > MAX_BATCH_SIZE:
            raise InvalidInput(
                f"Maximum {MAX_BATCH_SIZE} cities per request", {"count": len(queries)}
            )

        async def one(q: CityQuery) -> BatchItem:
            try:
                reading = await self.adapter.fetch_by_name(q.city, q.state, q.country)
            except AirQualityError as e:
                return BatchItem(query=q, error=e.message)
            return BatchItem(query=q, reading=reading)

        return list(await asyncio.gather(*(one(q) for q in queries)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _attempt(self, method: ResolveMethod, city: str, region: str, country: str):
        try:
            return await self.adapter.fetch_by_name(city, region, country)
        except AirQualityError as e:
            log_info(
                "resolver_strategy_failed",
                method=method.value,
                city=city,
                region=region,
                country=country,
                error=e.message,
            )
            return None

    async def _regions(self, country: str) -> List[str]:
        try:
            return await self.adapter.list_regions(country)
        except AirQualityError as e:
            log_info("resolver_region_listing_failed", country=country, error=e.message)
            return []

    async def _deep_search(
        self, query: str, country: str, regions: Sequence[str]
    ) -> Optional[Tuple[str, str]]:
        for region in regions[:DEEP_SEARCH_REGION_LIMIT]:
            try:
                cities = await self.adapter.list_cities(region, country)
            except AirQualityError as e:
                log_info("resolver_city_listing_failed", region=region, error=e.message)
                continue
            city = best_city_match(query, cities)
            if city:
                return city, region
        return None


__all__ = ["CityResolver", "best_region_match", "best_city_match"]
