"""AQI Ops: multi-source air quality aggregation service."""

__version__ = "0.1.0"
