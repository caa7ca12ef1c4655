"""Pydantic models for AQI severity tiers."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class CategoryLevel(str, Enum):
    """US EPA severity tiers, in ascending order of severity."""

    GOOD = "Good"
    MODERATE = "Moderate"
    UNHEALTHY_SENSITIVE = "Unhealthy for Sensitive Groups"
    UNHEALTHY = "Unhealthy"
    VERY_UNHEALTHY = "Very Unhealthy"
    HAZARDOUS = "Hazardous"


class Category(BaseModel):
    """Severity tier with its health message and display colours."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    level: CategoryLevel
    healthText: str
    color: str
    textColor: str
