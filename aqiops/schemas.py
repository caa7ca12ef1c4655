"""Request body schemas for the HTTP API."""

from typing import List, Optional

from pydantic import BaseModel, Field

from aqiops.models.aggregation import CityQuery


class BatchRequest(BaseModel):
    cities: List[CityQuery] = Field(default_factory=list)


class CollectionRequest(BaseModel):
    city: str = Field(min_length=1)
    state: Optional[str] = None
    country: str = Field(min_length=1)
    intervalMinutes: float = Field(default=60, gt=0)
