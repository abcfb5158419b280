"""
Utility functions for Pathways.
"""

import math
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Any, Optional, Union

import colorama
from rich.logging import RichHandler

from .errors import InvalidParameterError

# Initialize colorama for cross-platform color support
colorama.init()


# Configure logging with Rich handler
def setup_logger(name: str = "pathways", level: str = "INFO") -> logging.Logger:
    """Set up a logger with Rich formatting."""
    logger = logging.getLogger(name)
    
    # Clear existing handlers
    logger.handlers = []
    
    handler = RichHandler(
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    
    return logger


# Global logger instance
logger = setup_logger()


def merge_dicts(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    
    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    
    return result


def to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Coerce a date, datetime or ISO string to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise InvalidParameterError(f"Invalid date: {value!r}")


def week_start(value: Union[date, datetime, str]) -> date:
    """Return the Monday of the calendar week containing ``value``."""
    day = to_date(value)
    return day - timedelta(days=day.weekday())


def add_weeks(start: date, weeks: Optional[float]) -> Optional[date]:
    """Add a whole number of weeks, rounding fractional weeks up."""
    if weeks is None:
        return None
    return start + timedelta(weeks=math.ceil(weeks))


def weeks_to_days(weeks: Optional[float]) -> Optional[int]:
    """Convert fractional weeks to whole days, rounding up."""
    if weeks is None:
        return None
    return math.ceil(weeks * 7)


def require_id(value: Any, label: str = "id") -> str:
    """Validate an entity identifier and return it as a string."""
    if value is None or not str(value).strip():
        raise InvalidParameterError(f"Missing {label}")
    return str(value)


def require_window(window_weeks: Any) -> int:
    """Validate a throughput window size."""
    if isinstance(window_weeks, bool) or not isinstance(window_weeks, int):
        raise InvalidParameterError(f"Window must be a positive integer, got {window_weeks!r}")
    if window_weeks <= 0:
        raise InvalidParameterError(f"Window must be a positive integer, got {window_weeks}")
    return window_weeks


def days_between(later: date, earlier: date) -> int:
    """Signed number of days from ``earlier`` to ``later``."""
    return (later - earlier).days
