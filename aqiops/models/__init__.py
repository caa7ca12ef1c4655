"""Model exports."""

from .aggregation import (
    AggregationResult,
    BatchItem,
    CityQuery,
    ResolvedCity,
    ResolveMethod,
    SourceReport,
)
from .category import Category, CategoryLevel
from .history import HistoryReading, HistoryStatistics, HourlyAverage
from .reading import (
    AirQualityIndex,
    Coordinate,
    NormalizedReading,
    Pollutants,
    ProviderCapability,
    Weather,
)

__all__ = [
    "AggregationResult",
    "AirQualityIndex",
    "BatchItem",
    "Category",
    "CategoryLevel",
    "CityQuery",
    "Coordinate",
    "HistoryReading",
    "HistoryStatistics",
    "HourlyAverage",
    "NormalizedReading",
    "Pollutants",
    "ProviderCapability",
    "ResolvedCity",
    "ResolveMethod",
    "SourceReport",
    "Weather",
]
