"""AQI categorization and pollutant-to-index conversion.

The US scale follows the EPA PM2.5 breakpoint table (pre-2024 revision),
and the China scale follows HJ 633-2012 for 24-hour PM2.5.  Conversions
interpolate linearly inside a segment and extrapolate the last segment
for concentrations above the table.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from aqiops.models.category import Category, CategoryLevel

# (concentration low, concentration high, index low, index high)
Breakpoint = Tuple[float, float, int, int]

US_PM25_BREAKPOINTS: List[Breakpoint] = [
    (0.0, 12.0, 0, 50),
    (12.1, 35.4, 51, 100),
    (35.5, 55.4, 101, 150),
    (55.5, 150.4, 151, 200),
    (150.5, 250.4, 201, 300),
    (250.5, 500.4, 301, 500),
]

CN_PM25_BREAKPOINTS: List[Breakpoint] = [
    (0.0, 35.0, 0, 50),
    (35.0, 75.0, 50, 100),
    (75.0, 115.0, 100, 150),
    (115.0, 150.0, 150, 200),
    (150.0, 250.0, 200, 300),
    (250.0, 350.0, 300, 400),
    (350.0, 500.0, 400, 500),
]

# Upper index bound of each tier, paired with the tier itself.
_TIERS: List[Tuple[Optional[int], Category]] = [
    (
        50,
        Category(
            level=CategoryLevel.GOOD,
            healthText="Air quality is satisfactory, and air pollution poses little or no risk",
            color="#00e400",
            textColor="#ffffff",
        ),
    ),
    (
        100,
        Category(
            level=CategoryLevel.MODERATE,
            healthText=(
                "Air quality is acceptable. However, there may be a risk for some "
                "people, particularly those who are unusually sensitive to air pollution"
            ),
            color="#ffff00",
            textColor="#000000",
        ),
    ),
    (
        150,
        Category(
            level=CategoryLevel.UNHEALTHY_SENSITIVE,
            healthText=(
                "Members of sensitive groups may experience health effects. "
                "The general public is less likely to be affected"
            ),
            color="#ff7e00",
            textColor="#000000",
        ),
    ),
    (
        200,
        Category(
            level=CategoryLevel.UNHEALTHY,
            healthText=(
                "Some members of the general public may experience health effects; "
                "members of sensitive groups may experience more serious health effects"
            ),
            color="#ff0000",
            textColor="#ffffff",
        ),
    ),
    (
        300,
        Category(
            level=CategoryLevel.VERY_UNHEALTHY,
            healthText="Health alert: The risk of health effects is increased for everyone",
            color="#8f3f97",
            textColor="#ffffff",
        ),
    ),
    (
        None,
        Category(
            level=CategoryLevel.HAZARDOUS,
            healthText=(
                "Health warning of emergency conditions: everyone is more likely to be affected"
            ),
            color="#7e0023",
            textColor="#ffffff",
        ),
    ),
]

_RANKS = {tier.level: rank for rank, (_, tier) in enumerate(_TIERS)}


def categorize(aqi_us: float) -> Category:
    """Map a US AQI value to its severity tier.

    Total over all numbers: negatives land in ``Good`` and anything above
    300 is ``Hazardous``.
    """
    for upper, tier in _TIERS:
        if upper is None or aqi_us <= upper:
            return tier
    return _TIERS[-1][1]


def category_rank(level: CategoryLevel) -> int:
    """Ordinal position of a tier, 0 for Good through 5 for Hazardous."""
    return _RANKS[CategoryLevel(level)]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _interpolate(conc: float, table: Sequence[Breakpoint]) -> int:
    if conc < 0:
        conc = 0.0
    for c_low, c_high, i_low, i_high in table:
        if conc <= c_high:
            break
    # Falls through with the last segment for values above the table,
    # which extrapolates it linearly.
    return _round_half_up((i_high - i_low) / (c_high - c_low) * (conc - c_low) + i_low)


def pm25_to_aqi(pm25: float) -> int:
    """Convert a PM2.5 concentration (µg/m³) to the US EPA index."""
    return _interpolate(pm25, US_PM25_BREAKPOINTS)


def pm25_to_aqi_cn(pm25: float) -> int:
    """Convert a PM2.5 concentration (µg/m³) to China's AQI sub-index."""
    return _interpolate(pm25, CN_PM25_BREAKPOINTS)


__all__ = [
    "categorize",
    "category_rank",
    "pm25_to_aqi",
    "pm25_to_aqi_cn",
    "US_PM25_BREAKPOINTS",
    "CN_PM25_BREAKPOINTS",
]
