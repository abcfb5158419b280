"""Data models shared by the forecasting components."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidParameterError
from .utils import to_date, week_start


class PriorityBucket(Enum):
    """Coarse priority class; P1 is processed first."""
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def order(self) -> int:
        return _BUCKET_ORDER[self]


_BUCKET_ORDER = {PriorityBucket.P1: 0, PriorityBucket.P2: 1, PriorityBucket.P3: 2}


class WorkItemStatus(Enum):
    """Lifecycle states of a work item."""
    BACKLOG = "Backlog"
    READY = "Ready"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    BLOCKED = "Blocked"

    @classmethod
    def parse(cls, value: Any) -> 'WorkItemStatus':
        if isinstance(value, cls):
            return value
        normalized = str(value).replace(' ', '').replace('_', '').lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        raise InvalidParameterError(f"Unknown work item status: {value!r}")


OPEN_STATUSES = frozenset({
    WorkItemStatus.BACKLOG,
    WorkItemStatus.READY,
    WorkItemStatus.IN_PROGRESS,
})


class DependencyType(Enum):
    """Precedence relation between two objectives."""
    FS = "FS"  # finish-to-start
    SS = "SS"  # start-to-start
    FF = "FF"  # finish-to-finish
    SF = "SF"  # start-to-finish

    @classmethod
    def parse(cls, value: Any) -> 'DependencyType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidParameterError(
                f"Invalid dependency type {value!r}. Must be FS, SS, FF, or SF"
            )


class Confidence(Enum):
    """Statistical strength of a successful forecast."""
    FULL = "full"
    LIMITED_HISTORY = "limited-history"
    INSUFFICIENT_HISTORY = "insufficient-history"
    PARTIAL = "partial"


def _parse_bucket(value: Any) -> PriorityBucket:
    if isinstance(value, PriorityBucket):
        return value
    try:
        return PriorityBucket(str(value).upper())
    except ValueError:
        raise InvalidParameterError(f"Unknown priority bucket: {value!r}")


@dataclass
class Team:
    """A leaf organizational unit."""
    id: str
    name: Optional[str] = None


@dataclass
class WeeklyThroughput:
    """Items a team completed in one calendar week (Monday start)."""
    team_id: str
    week_start: date
    items_completed: int

    def __post_init__(self):
        self.week_start = week_start(self.week_start)
        if self.items_completed < 0:
            raise InvalidParameterError(
                f"items_completed must be non-negative, got {self.items_completed}"
            )


@dataclass
class WorkItem:
    """A unit of queued work owned by a team."""
    id: str
    team_id: str
    priority: PriorityBucket
    stack_rank: int
    status: WorkItemStatus
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    title: str = ""
    objective_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.priority = _parse_bucket(self.priority)
        self.status = WorkItemStatus.parse(self.status)
        if self.created_at is None:
            self.created_at = datetime.now()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if (self.completed_at is not None) != (self.status == WorkItemStatus.DONE):
            raise InvalidParameterError(
                f"Work item {self.id}: completed_at must be set iff status is Done"
            )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def sort_key(self):
        return (self.priority.order, self.stack_rank)


@dataclass
class Project:
    """A project whose objectives are forecast together."""
    id: str
    name: str = ""
    start_date: Optional[date] = None
    target_date: Optional[date] = None

    def __post_init__(self):
        self.start_date = to_date(self.start_date)
        self.target_date = to_date(self.target_date)


@dataclass
class Objective:
    """A node of the dependency graph."""
    id: str
    project_id: str
    tier: str = "objective"
    target_date: Optional[date] = None
    parent_objective_id: Optional[str] = None
    title: str = ""

    def __post_init__(self):
        self.target_date = to_date(self.target_date)


@dataclass
class ObjectiveDependency:
    """A directed precedence edge between two objectives."""
    predecessor_id: str
    successor_id: str
    type: DependencyType = DependencyType.FS
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.type = DependencyType.parse(self.type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'predecessorId': self.predecessor_id,
            'successorId': self.successor_id,
            'type': self.type.value,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Alert:
    """A schedule warning attached to an objective or project forecast."""
    type: str
    severity: str  # warning, critical
    message: str
    work_item_id: Optional[str] = None
    days: Optional[int] = None
    objective_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'severity': self.severity,
            'message': self.message,
        }
        if self.work_item_id is not None:
            data['workItemId'] = self.work_item_id
        if self.days is not None:
            data['days'] = self.days
        if self.objective_ids:
            data['objectiveIds'] = list(self.objective_ids)
        return data
