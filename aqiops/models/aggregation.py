"""Pydantic models for aggregation and resolver results."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .reading import NormalizedReading


class SourceReport(BaseModel):
    """Outcome of one source during an aggregation."""

    requested: bool = True
    available: bool = True
    ok: bool = False
    count: int = 0
    error: Optional[str] = None


class AggregationResult(BaseModel):
    """Merged readings plus a per-source diagnostic report."""

    readings: List[NormalizedReading] = Field(default_factory=list)
    sources: Dict[str, SourceReport] = Field(default_factory=dict)


class ResolveMethod(str, Enum):
    """Which lookup strategy located a free-text city query."""

    WITH_REGION = "with-region"
    CITY_AS_REGION = "city-as-region"
    REGION_MATCH = "region-match"
    DEEP_SEARCH = "deep-search"


class ResolvedCity(BaseModel):
    """A reading found by the resolver, tagged with how it was found."""

    reading: NormalizedReading
    method: ResolveMethod
    message: str


class CityQuery(BaseModel):
    """One exact city lookup in a batch request."""

    city: str = Field(min_length=1)
    state: Optional[str] = None
    country: str = Field(min_length=1)


class BatchItem(BaseModel):
    """Per-city batch outcome: either a reading or an error."""

    query: CityQuery
    reading: Optional[NormalizedReading] = None
    error: Optional[str] = None
