"""Queue composition of a team's open work."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import NotFoundError
from .models import OPEN_STATUSES, PriorityBucket, WorkItem, WorkItemStatus
from .store import ForecastStore
from .utils import logger, require_id


@dataclass
class QueueSnapshot:
    """Counts per priority bucket plus the processing order."""
    team_id: str
    counts: Dict[PriorityBucket, int]
    total_open: int
    blocked_count: int
    ordered_items: List[WorkItem] = field(default_factory=list)

    def position_of(self, item_id: str) -> Optional[int]:
        """1-based processing position of an item, or None if not queued."""
        for index, item in enumerate(self.ordered_items, start=1):
            if item.id == item_id:
                return index
        return None

    def summary(self) -> Dict[str, int]:
        """Public counts without the item list."""
        return {
            'p1': self.counts[PriorityBucket.P1],
            'p2': self.counts[PriorityBucket.P2],
            'p3': self.counts[PriorityBucket.P3],
            'total': self.total_open,
            'blocked': self.blocked_count,
        }

    def to_dict(self) -> Dict:
        return {'teamId': self.team_id, **self.summary()}


class QueueAnalyzer:
    """Classifies a team's open work items by bucket and rank."""

    def __init__(self, store: ForecastStore):
        self.store = store

    def queue(self, team_id: str) -> QueueSnapshot:
        """Build the flattened processing order for a team.

        All P1 items by stack rank come first, then P2, then P3. Blocked
        items are left out of the order and only counted.
        """
        team_id = require_id(team_id, "team id")
        if not self.store.has_team(team_id):
            raise NotFoundError(f"Team {team_id} not found")

        open_items = []
        blocked_count = 0
        for item in self.store.get_open_work_items(team_id):
            if item.status == WorkItemStatus.BLOCKED:
                blocked_count += 1
            elif item.status in OPEN_STATUSES:
                open_items.append(item)

        ordered = sorted(open_items, key=lambda item: item.sort_key)

        counts = {bucket: 0 for bucket in PriorityBucket}
        for item in ordered:
            counts[item.priority] += 1

        logger.debug(
            f"Queue for {team_id}: {len(ordered)} open, {blocked_count} blocked"
        )
        return QueueSnapshot(
            team_id=team_id,
            counts=counts,
            total_open=len(ordered),
            blocked_count=blocked_count,
            ordered_items=ordered,
        )
