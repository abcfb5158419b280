"""Historical throughput aggregation per team."""

import statistics
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .constants import DEFAULT_WINDOW_WEEKS, THROUGHPUT_BAND
from .errors import NotFoundError
from .models import Confidence, WeeklyThroughput
from .store import ForecastStore
from .utils import logger, require_id, require_window


@dataclass
class ThroughputSummary:
    """Throughput of one team over a rolling window."""
    team_id: str
    rate: float  # items per week
    window_weeks: int
    weeks_analyzed: int
    confidence: Confidence
    band: Optional[Tuple[float, float]] = None  # low/high weekly throughput

    def to_dict(self) -> Dict:
        return {
            'teamId': self.team_id,
            'throughput': self.rate,
            'windowWeeks': self.window_weeks,
            'weeksAnalyzed': self.weeks_analyzed,
            'confidence': self.confidence.value,
            'band': list(self.band) if self.band else None,
            'unit': 'items per week',
        }


class ThroughputCalculator:
    """Turns weekly completion records into an items-per-week rate."""

    def __init__(self, store: ForecastStore, default_window: int = DEFAULT_WINDOW_WEEKS):
        self.store = store
        self.default_window = default_window

    def _recent_records(self, team_id: str, window_weeks: int) -> List[WeeklyThroughput]:
        team_id = require_id(team_id, "team id")
        if not self.store.has_team(team_id):
            raise NotFoundError(f"Team {team_id} not found")

        records = sorted(
            self.store.get_weekly_throughput(team_id),
            key=lambda r: r.week_start,
            reverse=True
        )
        return records[:window_weeks]

    def rate(self, team_id: str, window_weeks: Optional[int] = None) -> float:
        """Mean items completed per week over the most recent weeks.

        Uses every available record when fewer than ``window_weeks`` exist.
        A team without history has a rate of 0.0.
        """
        window_weeks = require_window(
            self.default_window if window_weeks is None else window_weeks
        )
        records = self._recent_records(team_id, window_weeks)

        if not records:
            logger.debug(f"Team {team_id} has no throughput history")
            return 0.0

        return float(statistics.mean(r.items_completed for r in records))

    def all_teams_rate(self, window_weeks: Optional[int] = None) -> Dict[str, float]:
        """Rate for every known team, including teams without history."""
        window_weeks = require_window(
            self.default_window if window_weeks is None else window_weeks
        )
        return {
            team_id: self.rate(team_id, window_weeks)
            for team_id in self.store.list_teams()
        }

    def summary(self, team_id: str, window_weeks: Optional[int] = None) -> ThroughputSummary:
        """Rate plus history depth, confidence and a percentile band."""
        window_weeks = require_window(
            self.default_window if window_weeks is None else window_weeks
        )
        records = self._recent_records(team_id, window_weeks)
        counts = [r.items_completed for r in records]
        rate = float(statistics.mean(counts)) if counts else 0.0

        band = None
        if counts:
            low, high = np.percentile(counts, THROUGHPUT_BAND)
            band = (float(low), float(high))

        return ThroughputSummary(
            team_id=team_id,
            rate=rate,
            window_weeks=window_weeks,
            weeks_analyzed=len(counts),
            confidence=self.confidence_for(rate, len(counts), window_weeks),
            band=band,
        )

    @staticmethod
    def confidence_for(rate: float, weeks_analyzed: int, window_weeks: int) -> Confidence:
        if rate <= 0:
            return Confidence.INSUFFICIENT_HISTORY
        if weeks_analyzed < window_weeks:
            return Confidence.LIMITED_HISTORY
        return Confidence.FULL
