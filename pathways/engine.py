"""Facade wiring one store into every forecasting component."""

from datetime import date
from typing import Dict, List, Optional

from .config import ForecastConfig
from .dependency_graph import DependencyGraph, ReleaseCheck
from .lead_time import ItemForecast, LeadTimeForecaster, TargetRequirements, TeamLoad
from .models import DependencyType, ObjectiveDependency
from .project_forecast import ProjectForecast, ProjectForecaster
from .store import ForecastStore
from .throughput import ThroughputCalculator, ThroughputSummary
from .utils import logger
from .work_queue import QueueAnalyzer, QueueSnapshot


class ForecastEngine:
    """Single entry point for the CLI and the HTTP adapter."""

    def __init__(self, store: ForecastStore, config: Optional[ForecastConfig] = None):
        self.store = store
        self.settings = config or ForecastConfig()

        self.throughput = ThroughputCalculator(store, default_window=self.settings.window_weeks)
        self.queues = QueueAnalyzer(store)
        self.lead_time = LeadTimeForecaster(
            self.throughput,
            self.queues,
            busy_threshold_weeks=self.settings.busy_threshold_weeks,
            overloaded_threshold_weeks=self.settings.overloaded_threshold_weeks,
        )
        self.graph = DependencyGraph(store)
        self.projects = ProjectForecaster(
            store,
            self.lead_time,
            self.graph,
            stale_in_progress_days=self.settings.stale_in_progress_days,
        )
        logger.debug(f"Forecast engine ready (window {self.settings.window_weeks} weeks)")

    # Throughput and queues

    def team_throughput(self, team_id: str, window_weeks: Optional[int] = None) -> ThroughputSummary:
        return self.throughput.summary(team_id, window_weeks)

    def all_teams_throughput(self, window_weeks: Optional[int] = None) -> Dict[str, float]:
        return self.throughput.all_teams_rate(window_weeks)

    def team_queue(self, team_id: str) -> QueueSnapshot:
        return self.queues.queue(team_id)

    # Lead time

    def forecast_item(self, item_id: str, team_id: str,
                      as_of: Optional[date] = None) -> ItemForecast:
        return self.lead_time.forecast_item(item_id, team_id, as_of)

    def forecast_backlog(self, team_id: str, as_of: Optional[date] = None) -> List[ItemForecast]:
        return self.lead_time.forecast_backlog(team_id, as_of)

    def team_load(self, team_id: str) -> TeamLoad:
        return self.lead_time.team_load(team_id)

    def target_requirements(self, team_id: str, target_date: date,
                            as_of: Optional[date] = None) -> TargetRequirements:
        return self.lead_time.target_requirements(team_id, target_date, as_of)

    # Dependencies

    def add_dependency(self, predecessor_id: str, successor_id: str,
                       type=DependencyType.FS) -> ObjectiveDependency:
        return self.graph.add_edge(predecessor_id, successor_id, type)

    def remove_dependency(self, edge_id: str) -> ObjectiveDependency:
        return self.graph.remove_edge(edge_id)

    def can_release(self, objective_id: str) -> ReleaseCheck:
        return self.graph.can_release(objective_id)

    # Projects

    def forecast_project(self, project_id: str, as_of: Optional[date] = None) -> ProjectForecast:
        return self.projects.forecast_project(project_id, as_of)
