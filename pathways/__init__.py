"""
Pathways: throughput-based forecasting and objective dependency scheduling.

Turns weekly completion history into per-team throughput, forecasts work
items, backlogs and multi-team projects, and gates objective release on
finish-to-start dependencies.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .engine import ForecastEngine
from .store import ForecastStore, InMemoryStore, SQLiteStore
from .cli import main

__all__ = ["ForecastEngine", "ForecastStore", "InMemoryStore", "SQLiteStore", "main"]
