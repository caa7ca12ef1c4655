"""Main application module for AQI Ops.

This module defines the FastAPI application, registers middleware and
error handlers, defines REST endpoints, and mounts an MCP server for
Model Context Protocol operations.  At startup, it constructs the
FastAPI app via ``create_app`` and exposes it as a module-level variable
named ``app`` so that ASGI servers like Uvicorn can discover it
automatically.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Sequence

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from fastapi_mcp import FastApiMCP

from .adapters import AirQualityAdapter, IQAirAdapter, PurpleAirAdapter
from .cache import TTLCache
from .config import Settings
from .errors import (
    AirQualityError,
    InvalidInput,
    MisconfiguredAdapter,
    NotFound,
    UnsupportedOperation,
    UpstreamUnavailable,
)
from .middleware import RequestLogMiddleware
from .middleware.logging import configure_logging, log_error
from .models import Coordinate, NormalizedReading
from .schemas import BatchRequest, CollectionRequest
from .services import Aggregator, CityResolver, HistoryService

ERROR_STATUS = {
    InvalidInput: 400,
    UnsupportedOperation: 400,
    NotFound: 404,
    UpstreamUnavailable: 502,
    MisconfiguredAdapter: 503,
}


def _dump(reading: NormalizedReading) -> dict:
    return reading.model_dump(mode="json", by_alias=True)


def build_adapters(settings: Settings) -> list[AirQualityAdapter]:
    """Default adapters, each with its own cache, in aggregation order."""
    return [
        IQAirAdapter(
            api_key=settings.iqair_api_key,
            base_url=settings.iqair_base_url,
            timeout=settings.upstream_timeout,
            cache=TTLCache(settings.cache_ttl_seconds),
        ),
        PurpleAirAdapter(
            api_key=settings.purpleair_api_key,
            base_url=settings.purpleair_base_url,
            timeout=settings.upstream_timeout,
            cache=TTLCache(settings.cache_ttl_seconds),
        ),
    ]


def create_app(
    settings: Optional[Settings] = None,
    adapters: Optional[Sequence[AirQualityAdapter]] = None,
    history: Optional[HistoryService] = None,
) -> FastAPI:
    """Factory function for constructing the FastAPI application.

    The returned application includes CORS middleware, request logging,
    optional API key authentication for administrative routes, and REST
    endpoints for nearby aggregation, city resolution, browsing, cache
    administration and reading history.  Adapters and the history service
    may be supplied explicitly; otherwise they are built from ``settings``
    (by default read from the environment).
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    adapters = list(adapters) if adapters is not None else build_adapters(settings)
    aggregator = Aggregator(adapters)
    # City lookups and browsing go to the first adapter that can browse.
    lookup_adapter = next(
        (a for a in adapters if a.capability().supports_browse),
        adapters[0] if adapters else None,
    )
    if lookup_adapter is None:
        raise ValueError("at least one adapter is required")
    resolver = CityResolver(lookup_adapter)
    history = history or HistoryService(lookup_adapter)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await history.stop_collection()

    app = FastAPI(title="AQI Ops", lifespan=lifespan)
    app.state.aggregator = aggregator
    app.state.resolver = resolver
    app.state.history = history

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogMiddleware)

    # -----------------------------------------------------------------------
    # Error handling
    # -----------------------------------------------------------------------
    @app.exception_handler(AirQualityError)
    async def air_quality_error_handler(request: Request, exc: AirQualityError) -> JSONResponse:
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500
        )
        if status >= 500:
            log_error(
                "request_failed",
                path=request.url.path,
                error=exc.message,
                error_type=type(exc).__name__,
            )
        return JSONResponse(
            status_code=status,
            content={**exc.details, "success": False, "error": exc.message},
        )

    # -----------------------------------------------------------------------
    # API key dependency
    # -----------------------------------------------------------------------
    api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)

    def require_api_key(x_api_key: Optional[str] = Depends(api_key_header)) -> None:
        """Validate the ``x-api-key`` header against ``API_KEY`` when one is set."""
        if settings.api_key and x_api_key != settings.api_key:
            raise HTTPException(status_code=401, detail="Missing or invalid API key")

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.get("/")
    def root():
        """Return a simple service descriptor for programmatic clients."""
        return {
            "ok": True,
            "service": "AQI Ops",
            "docs": "/docs",
            "health": "/health",
            "mcp": "/mcp",
        }

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"ok": True}

    @app.get(
        "/api/aqi/nearby",
        operation_id="aqi_nearby",
        tags=["AQI"],
    )
    async def rest_nearby(
        lat: float = Query(..., ge=-90, le=90, description="Latitude"),
        lon: float = Query(..., ge=-180, le=180, description="Longitude"),
        radius: float = Query(50, gt=0, le=1000, description="Search radius in km"),
        sources: Optional[str] = Query(
            None, description="Comma-separated sources (default: all available)"
        ),
    ) -> JSONResponse:
        """Aggregate readings from every available source around a point.

        Results from all sources are merged and sorted by distance.  A
        failing source contributes nothing; its outcome is reported under
        ``sources``.
        """
        selector = sources.split(",") if sources else None
        result = await aggregator.aggregate_detailed(
            Coordinate(lat=lat, lon=lon), radius, selector
        )
        return JSONResponse({
            "location": {"lat": lat, "lon": lon},
            "radius": radius,
            "count": len(result.readings),
            "stations": [_dump(r) for r in result.readings],
            "sources": {name: rep.model_dump() for name, rep in result.sources.items()},
        })

    @app.get(
        "/api/aqi/current",
        operation_id="aqi_current",
        tags=["AQI"],
    )
    async def rest_current(
        lat: float = Query(..., ge=-90, le=90, description="Latitude"),
        lon: float = Query(..., ge=-180, le=180, description="Longitude"),
    ) -> JSONResponse:
        """Return the nearest professional monitoring station to a point."""
        reading = await lookup_adapter.fetch_nearest(Coordinate(lat=lat, lon=lon))
        return JSONResponse({"record": _dump(reading)})

    @app.get(
        "/api/aqi/city",
        operation_id="aqi_city",
        tags=["AQI"],
    )
    async def rest_city(
        city: str = Query(..., min_length=1, description="City name"),
        country: str = Query(..., min_length=1, description="Country name"),
        state: Optional[str] = Query(None, description="State or region"),
    ) -> JSONResponse:
        """Look up a city by name, trying several strategies for the region."""
        resolved = await resolver.resolve_city_query(city, state, country)
        return JSONResponse({
            "record": _dump(resolved.reading),
            "method": resolved.method.value,
            "message": resolved.message,
        })

    @app.get(
        "/api/aqi/search-city",
        operation_id="aqi_search_city",
        tags=["AQI"],
    )
    async def rest_search_city(
        query: str = Query(..., min_length=1, description="Free-text city name"),
        country: str = Query(..., min_length=1, description="Country name"),
        state: Optional[str] = Query(None, description="State or region, if known"),
    ) -> JSONResponse:
        """Smart city search for a free-text place name.

        The lookup is heuristic: it tries the supplied region, the query as
        its own region, a matching region, and finally a search through the
        cities of the country's first regions.
        """
        resolved = await resolver.resolve_city_query(query, state, country)
        return JSONResponse({
            "record": _dump(resolved.reading),
            "method": resolved.method.value,
            "message": resolved.message,
        })

    @app.get(
        "/api/aqi/countries",
        operation_id="aqi_countries",
        tags=["Browse"],
    )
    async def rest_countries() -> JSONResponse:
        """List supported countries."""
        countries = await lookup_adapter.list_countries()
        return JSONResponse({"count": len(countries), "countries": countries})

    @app.get(
        "/api/aqi/states",
        operation_id="aqi_states",
        tags=["Browse"],
    )
    async def rest_states(
        country: str = Query(..., min_length=1, description="Country name"),
    ) -> JSONResponse:
        """List states (first-level regions) of a country."""
        states = await lookup_adapter.list_regions(country)
        return JSONResponse({"country": country, "count": len(states), "states": states})

    @app.get(
        "/api/aqi/cities",
        operation_id="aqi_cities",
        tags=["Browse"],
    )
    async def rest_cities(
        state: str = Query(..., min_length=1, description="State or region"),
        country: str = Query(..., min_length=1, description="Country name"),
    ) -> JSONResponse:
        """List cities of a state."""
        cities = await lookup_adapter.list_cities(state, country)
        return JSONResponse({
            "state": state,
            "country": country,
            "count": len(cities),
            "cities": cities,
        })

    @app.post("/api/aqi/batch", tags=["AQI"])
    async def rest_batch(body: BatchRequest) -> JSONResponse:
        """Fetch up to 20 cities at once; each item carries a record or an error."""
        items = await resolver.lookup_batch(body.cities)
        return JSONResponse({
            "count": len(items),
            "cities": [
                {
                    "query": item.query.model_dump(),
                    "record": _dump(item.reading) if item.reading else None,
                    "error": item.error,
                }
                for item in items
            ],
        })

    @app.get(
        "/api/aqi/sources",
        operation_id="aqi_sources",
        tags=["AQI"],
    )
    def rest_sources() -> JSONResponse:
        """Describe the configured data sources and whether they are usable."""
        return JSONResponse({
            "sources": [
                cap.model_dump(by_alias=True) for cap in aggregator.capabilities()
            ]
        })

    @app.delete("/api/aqi/cache", tags=["Admin"])
    def rest_clear_cache(_=Depends(require_api_key)) -> JSONResponse:
        """Clear every adapter cache."""
        for name in aggregator.source_names:
            aggregator.get_adapter(name).clear_cache()
        return JSONResponse({"success": True, "message": "All caches cleared successfully"})

    @app.get("/api/aqi/cache/stats", tags=["Admin"])
    def rest_cache_stats(_=Depends(require_api_key)) -> JSONResponse:
        """Per-source cache hit/miss counters and live key counts."""
        return JSONResponse({
            name: aggregator.get_adapter(name).cache_stats()
            for name in aggregator.source_names
        })

    # -----------------------------------------------------------------------
    # History Routes
    # -----------------------------------------------------------------------
    @app.post("/api/history/start-collection", tags=["History"])
    async def rest_start_collection(
        body: CollectionRequest, _=Depends(require_api_key)
    ) -> JSONResponse:
        """Start collecting readings for a city at a fixed interval."""
        started = await history.start_collection(
            body.city, body.state, body.country, body.intervalMinutes
        )
        if not started:
            return JSONResponse(
                status_code=409,
                content={"success": False, "error": "Data collection already running"},
            )
        return JSONResponse({
            "success": True,
            "message": (
                f"Started collecting data for {body.city} "
                f"every {body.intervalMinutes:g} minutes"
            ),
        })

    @app.post("/api/history/stop-collection", tags=["History"])
    async def rest_stop_collection(_=Depends(require_api_key)) -> JSONResponse:
        """Stop the running collection, if any."""
        stopped = await history.stop_collection()
        return JSONResponse({
            "success": True,
            "message": "Stopped data collection" if stopped else "No collection was running",
        })

    @app.delete("/api/history/clean", tags=["History"])
    def rest_clean_history(
        days_to_keep: int = Query(30, ge=0, alias="daysToKeep"),
        _=Depends(require_api_key),
    ) -> JSONResponse:
        """Delete stored readings older than ``daysToKeep`` days."""
        deleted = history.clean_old_data(days_to_keep)
        return JSONResponse({"success": True, "message": f"Cleaned {deleted} old readings"})

    @app.get(
        "/api/history/{station_id}",
        operation_id="history_readings",
        tags=["History"],
    )
    def rest_history(
        station_id: str,
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
    ) -> JSONResponse:
        """Stored readings for a station, newest first."""
        readings = history.get_history(station_id, start_date, end_date)
        return JSONResponse({
            "stationId": station_id,
            "count": len(readings),
            "readings": [r.model_dump(mode="json", by_alias=True) for r in readings],
        })

    @app.get(
        "/api/history/{station_id}/statistics",
        operation_id="history_statistics",
        tags=["History"],
    )
    def rest_history_statistics(
        station_id: str,
        days: int = Query(7, ge=1, le=365),
    ) -> JSONResponse:
        """Count, average, min, max and latest AQI over the last ``days`` days."""
        stats = history.get_statistics(station_id, days)
        if stats is None:
            raise HTTPException(status_code=404, detail="No data available for this station")
        return JSONResponse({"record": stats.model_dump(mode="json")})

    @app.get(
        "/api/history/{station_id}/hourly",
        operation_id="history_hourly",
        tags=["History"],
    )
    def rest_history_hourly(
        station_id: str,
        hours: int = Query(24, ge=1, le=24 * 30),
    ) -> JSONResponse:
        """Hourly AQI averages over the last ``hours`` hours."""
        hourly = history.get_hourly_averages(station_id, hours)
        return JSONResponse({
            "stationId": station_id,
            "count": len(hourly),
            "hourly": [h.model_dump(mode="json") for h in hourly],
        })

    # -----------------------------------------------------------------------
    # MCP server mount
    # -----------------------------------------------------------------------
    # Read-only operations exposed as MCP tools
    mcp = FastApiMCP(
        app,
        include_operations=[
            "aqi_nearby",
            "aqi_current",
            "aqi_city",
            "aqi_search_city",
            "aqi_countries",
            "aqi_states",
            "aqi_cities",
            "aqi_sources",
            "history_readings",
            "history_statistics",
            "history_hourly",
        ],
    )
    mcp.mount_http()

    return app


# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------
app = create_app()
