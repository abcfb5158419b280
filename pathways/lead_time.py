"""Lead-time forecasting from throughput and queue position."""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from .constants import (
    BUSY_THRESHOLD_WEEKS, OVERLOADED_THRESHOLD_WEEKS, TARGET_AT_RISK_DAYS,
)
from .errors import NotFoundError
from .models import Confidence, PriorityBucket, WorkItem
from .throughput import ThroughputCalculator, ThroughputSummary
from .utils import add_weeks, days_between, logger, require_id, to_date, weeks_to_days
from .work_queue import QueueAnalyzer, QueueSnapshot


@dataclass
class ItemForecast:
    """Predicted completion of one queued work item."""
    item_id: str
    team_id: str
    priority: PriorityBucket
    stack_rank: int
    position: int
    rate: float
    estimated_weeks: Optional[float]
    estimated_date: Optional[date]
    confidence: Confidence

    @property
    def lead_time_days(self) -> Optional[int]:
        return weeks_to_days(self.estimated_weeks)

    def to_dict(self) -> Dict:
        data = {
            'workItemId': self.item_id,
            'teamId': self.team_id,
            'priority': self.priority.value,
            'stackRank': self.stack_rank,
            'position': self.position,
            'throughput': self.rate,
            'estimatedWeeks': self.estimated_weeks,
            'leadTimeDays': self.lead_time_days,
            'confidence': self.confidence.value,
        }
        if self.estimated_date is not None:
            data['estimatedDate'] = self.estimated_date.isoformat()
        return data


@dataclass
class TeamLoad:
    """How many weeks of queued work a team carries."""
    team_id: str
    rate: float
    queue: Dict[str, int]
    implied_lead_time_weeks: Optional[float]
    p1_load_weeks: Optional[float]
    p2_load_weeks: Optional[float]
    status: str  # healthy, busy, overloaded, unknown
    confidence: Confidence
    lead_time_range_weeks: Optional[Tuple[float, Optional[float]]] = None

    def to_dict(self) -> Dict:
        return {
            'teamId': self.team_id,
            'throughput': self.rate,
            'queue': dict(self.queue),
            'impliedLeadTimeWeeks': self.implied_lead_time_weeks,
            'impliedLeadTimeDays': weeks_to_days(self.implied_lead_time_weeks),
            'p1LoadWeeks': self.p1_load_weeks,
            'p2LoadWeeks': self.p2_load_weeks,
            'status': self.status,
            'confidence': self.confidence.value,
            'leadTimeRangeWeeks': (
                list(self.lead_time_range_weeks) if self.lead_time_range_weeks else None
            ),
        }


@dataclass
class TargetVariance:
    """Difference between a forecast date and a target date."""
    variance_days: int
    status: str  # on_track, at_risk, critical

    @property
    def is_late(self) -> bool:
        return self.variance_days > 0

    def to_dict(self) -> Dict:
        text = f"+{self.variance_days} days" if self.is_late else f"{self.variance_days} days"
        return {
            'varianceDays': self.variance_days,
            'varianceText': text,
            'status': self.status,
            'isLate': self.is_late,
        }


@dataclass
class TargetRequirements:
    """What it would take for a team to clear its queue by a date."""
    team_id: str
    target_date: date
    required_rate: Optional[float]
    rate_increase: Optional[float]
    items_to_remove: int
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'teamId': self.team_id,
            'targetDate': self.target_date.isoformat(),
            'requiredThroughput': self.required_rate,
            'throughputIncrease': self.rate_increase,
            'itemsToRemove': self.items_to_remove,
            'recommendations': list(self.recommendations),
        }


def compare_to_target(estimated: Optional[date], target: Optional[date]) -> Optional[TargetVariance]:
    """Compare an estimated completion date to a target date."""
    if estimated is None or target is None:
        return None

    variance = days_between(estimated, target)
    if variance > TARGET_AT_RISK_DAYS:
        status = 'critical'
    elif variance > 0:
        status = 'at_risk'
    else:
        status = 'on_track'
    return TargetVariance(variance_days=variance, status=status)


class LeadTimeForecaster:
    """Combines throughput and queue position into completion dates."""

    def __init__(self, throughput: ThroughputCalculator, queues: QueueAnalyzer,
                 busy_threshold_weeks: float = BUSY_THRESHOLD_WEEKS,
                 overloaded_threshold_weeks: float = OVERLOADED_THRESHOLD_WEEKS):
        self.throughput = throughput
        self.queues = queues
        self.busy_threshold_weeks = busy_threshold_weeks
        self.overloaded_threshold_weeks = overloaded_threshold_weeks

    @staticmethod
    def _build_forecast(item: WorkItem, position: int, summary: ThroughputSummary,
                        as_of: date) -> ItemForecast:
        if summary.rate > 0:
            weeks = position / summary.rate
            estimated_date = add_weeks(as_of, weeks)
        else:
            weeks = None
            estimated_date = None

        return ItemForecast(
            item_id=item.id,
            team_id=item.team_id,
            priority=item.priority,
            stack_rank=item.stack_rank,
            position=position,
            rate=summary.rate,
            estimated_weeks=weeks,
            estimated_date=estimated_date,
            confidence=summary.confidence,
        )

    def forecast_item(self, item_id: str, team_id: str,
                      as_of: Optional[date] = None) -> ItemForecast:
        """Forecast a single work item in the team's open queue.

        Raises:
            NotFoundError: if the item is not in the team's open queue
                (Done, Blocked, absent, or owned by another team).
        """
        item_id = require_id(item_id, "work item id")
        as_of = to_date(as_of) or date.today()

        snapshot = self.queues.queue(team_id)
        position = snapshot.position_of(item_id)
        if position is None:
            raise NotFoundError(f"Work item {item_id} is not in the open queue of team {team_id}")

        summary = self.throughput.summary(team_id)
        forecast = self._build_forecast(
            snapshot.ordered_items[position - 1], position, summary, as_of
        )
        if forecast.estimated_weeks is None:
            logger.warning(f"Cannot estimate {item_id}: team {team_id} has no throughput")
        return forecast

    def forecast_backlog(self, team_id: str, as_of: Optional[date] = None) -> List[ItemForecast]:
        """Forecast every item of a team's open queue in processing order."""
        as_of = to_date(as_of) or date.today()
        snapshot = self.queues.queue(team_id)
        summary = self.throughput.summary(team_id)

        return [
            self._build_forecast(item, position, summary, as_of)
            for position, item in enumerate(snapshot.ordered_items, start=1)
        ]

    def _load_status(self, weeks: Optional[float]) -> str:
        if weeks is None:
            return 'unknown'
        if weeks > self.overloaded_threshold_weeks:
            return 'overloaded'
        if weeks > self.busy_threshold_weeks:
            return 'busy'
        return 'healthy'

    def team_load(self, team_id: str) -> TeamLoad:
        """Weeks needed to clear the current queue at current throughput."""
        summary = self.throughput.summary(team_id)
        snapshot: QueueSnapshot = self.queues.queue(team_id)
        counts = snapshot.counts
        rate = summary.rate

        if rate > 0:
            implied = snapshot.total_open / rate
            p1_weeks = counts[PriorityBucket.P1] / rate
            p2_weeks = (counts[PriorityBucket.P1] + counts[PriorityBucket.P2]) / rate
        else:
            implied = p1_weeks = p2_weeks = None

        lead_time_range = None
        if implied is not None and summary.band:
            low_rate, high_rate = summary.band
            optimistic = snapshot.total_open / high_rate if high_rate > 0 else None
            pessimistic = snapshot.total_open / low_rate if low_rate > 0 else None
            if optimistic is not None:
                lead_time_range = (optimistic, pessimistic)

        return TeamLoad(
            team_id=snapshot.team_id,
            rate=rate,
            queue=snapshot.summary(),
            implied_lead_time_weeks=implied,
            p1_load_weeks=p1_weeks,
            p2_load_weeks=p2_weeks,
            status=self._load_status(implied),
            confidence=summary.confidence,
            lead_time_range_weeks=lead_time_range,
        )

    def target_requirements(self, team_id: str, target_date: date,
                            as_of: Optional[date] = None) -> TargetRequirements:
        """Throughput or scope change needed to clear the queue by a date."""
        as_of = to_date(as_of) or date.today()
        target_date = to_date(target_date)
        rate = self.throughput.rate(team_id)
        snapshot = self.queues.queue(team_id)
        weeks_available = days_between(target_date, as_of) / 7

        if weeks_available <= 0:
            return TargetRequirements(
                team_id=snapshot.team_id,
                target_date=target_date,
                required_rate=None,
                rate_increase=None,
                items_to_remove=snapshot.total_open,
                recommendations=['Target date has passed - negotiate a new date with leadership'],
            )

        required = snapshot.total_open / weeks_available
        increase = required - rate
        items_to_remove = max(0, math.ceil(snapshot.total_open - rate * weeks_available))

        recommendations = []
        if increase > 0:
            recommendations.append(f"Increase throughput to {required:.2f} items/week")
        if items_to_remove > 0:
            recommendations.append(f"Reduce queue by {items_to_remove} items")
        recommendations.append('Negotiate target date with leadership')

        return TargetRequirements(
            team_id=snapshot.team_id,
            target_date=target_date,
            required_rate=required,
            rate_increase=increase,
            items_to_remove=items_to_remove,
            recommendations=recommendations,
        )
