"""Typed failures raised by the forecasting engine.

Confidence annotations (``insufficient-history``, ``partial``) are part of a
successful result and are never raised.
"""


class ForecastError(ValueError):
    """Base class for all engine failures."""


class InvalidParameterError(ForecastError):
    """Raised for bad window sizes, malformed ids or unknown enum values."""


class NotFoundError(ForecastError):
    """Raised when a team, work item, objective, project or edge is unknown."""


class DuplicateEdgeError(ForecastError):
    """Raised when an identical predecessor/successor pair already exists."""


class CycleDetectedError(ForecastError):
    """Raised when adding an edge would close a cycle, or stored edges form one."""

    def __init__(self, predecessor_id: str, successor_id: str, path=None):
        self.predecessor_id = predecessor_id
        self.successor_id = successor_id
        self.path = path or []
        chain = ' -> '.join(self.path) if self.path else f"{successor_id} -> {predecessor_id}"
        super().__init__(
            f"Cannot add {predecessor_id} -> {successor_id}: would create a circular dependency ({chain})"
        )
