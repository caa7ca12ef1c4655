"""Fan-out aggregation of nearby readings across provider adapters."""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from aqiops.adapters.base import AirQualityAdapter
from aqiops.errors import AirQualityError, InvalidInput, MisconfiguredAdapter
from aqiops.middleware.logging import log_info, log_warning
from aqiops.models.aggregation import AggregationResult, SourceReport
from aqiops.models.reading import Coordinate, NormalizedReading, ProviderCapability


class Aggregator:
    """Query every enabled, available adapter in parallel and merge the results.

    Adapter order is the registration order; it breaks distance ties in
    the merged output.  A failing adapter contributes nothing and is
    reported in the per-source diagnostics instead of failing the call.
    """

    def __init__(self, adapters: Sequence[AirQualityAdapter]) -> None:
        self._adapters: Dict[str, AirQualityAdapter] = {}
        for adapter in adapters:
            if adapter.name in self._adapters:
                raise ValueError(f"duplicate adapter name: {adapter.name}")
            self._adapters[adapter.name] = adapter

    @property
    def source_names(self) -> List[str]:
        return list(self._adapters)

    def get_adapter(self, name: str) -> AirQualityAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise InvalidInput(f"Unknown source: {name}", {"source": name}) from None

    def capabilities(self) -> List[ProviderCapability]:
        return [adapter.capability() for adapter in self._adapters.values()]

    def select_sources(self, sources: Optional[Iterable[str]]) -> List[str]:
        """Normalize a source selector; empty or ``None`` means all sources."""
        if sources is None:
            return self.source_names
        requested = {s.strip().lower() for s in sources if s and s.strip()}
        if not requested:
            return self.source_names
        unknown = sorted(requested - set(self._adapters))
        if unknown:
            raise InvalidInput(
                f"Unknown source(s): {', '.join(unknown)}",
                {"unknown": unknown, "available": self.source_names},
            )
        return [name for name in self._adapters if name in requested]

    async def aggregate(
        self,
        point: Coordinate,
        radius_km: float,
        sources: Optional[Iterable[str]] = None,
    ) -> List[NormalizedReading]:
        """Merged readings within ``radius_km`` of ``point``, nearest first."""
        result = await self.aggregate_detailed(point, radius_km, sources)
        return result.readings

    async def aggregate_detailed(
        self,
        point: Coordinate,
        radius_km: float,
        sources: Optional[Iterable[str]] = None,
    ) -> AggregationResult:
        """Like ``aggregate`` but also reports what happened per source."""
        if radius_km <= 0:
            raise InvalidInput("Radius must be positive", {"radius": radius_km})
        names = self.select_sources(sources)

        reports: Dict[str, SourceReport] = {}
        active: List[AirQualityAdapter] = []
        for name in names:
            adapter = self._adapters[name]
            if adapter.capability().is_available:
                active.append(adapter)
                reports[name] = SourceReport(available=True)
            else:
                reports[name] = SourceReport(
                    available=False, error=f"{name} is not configured"
                )
                log_info("aggregate_source_unavailable", source=name)

        outcomes = await asyncio.gather(
            *(self._invoke(adapter, point, radius_km, reports) for adapter in active)
        )

        merged: List[NormalizedReading] = []
        for readings in outcomes:
            merged.extend(readings)
        # ``sorted`` is stable, so equal distances keep adapter order.
        merged = sorted(merged, key=lambda r: r.distance_km or 0.0)

        log_info(
            "aggregate_complete",
            lat=point.lat,
            lon=point.lon,
            radius_km=radius_km,
            attempted=[a.name for a in active],
            count=len(merged),
        )
        return AggregationResult(readings=merged, sources=reports)

    async def _invoke(
        self,
        adapter: AirQualityAdapter,
        point: Coordinate,
        radius_km: float,
        reports: Dict[str, SourceReport],
    ) -> List[NormalizedReading]:
        """Run one adapter, absorbing its failure into ``reports``."""
        try:
            readings = await adapter.fetch_by_coordinate(point, radius_km)
        except MisconfiguredAdapter as e:
            reports[adapter.name] = SourceReport(available=False, error=e.message)
            log_warning("aggregate_source_misconfigured", source=adapter.name, error=e.message)
            return []
        except AirQualityError as e:
            reports[adapter.name] = SourceReport(available=True, ok=False, error=e.message)
            log_warning("aggregate_source_failed", source=adapter.name, error=e.message)
            return []
        except Exception as e:
            # Adapter bugs are absorbed like upstream failures.
            reports[adapter.name] = SourceReport(
                available=True, ok=False, error=f"{adapter.name} failed unexpectedly"
            )
            log_warning(
                "aggregate_source_failed",
                source=adapter.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []
        reports[adapter.name] = SourceReport(available=True, ok=True, count=len(readings))
        return list(readings)


__all__ = ["Aggregator"]
