"""End-to-end project forecasts over the objective dependency graph."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .constants import (
    OBJECTIVE_LATE_CRITICAL_DAYS, PROJECT_LATE_CRITICAL_DAYS,
    STALE_CRITICAL_DAYS, STALE_IN_PROGRESS_DAYS,
)
from .dependency_graph import DependencyGraph
from .errors import NotFoundError
from .lead_time import LeadTimeForecaster, TeamLoad
from .models import Alert, Confidence, Objective, PriorityBucket, WorkItemStatus
from .store import ForecastStore
from .utils import add_weeks, days_between, logger, require_id, to_date

_SEVERITY_ORDER = {'critical': 0, 'warning': 1}


def _sort_alerts(alerts: List[Alert]) -> List[Alert]:
    return sorted(alerts, key=lambda a: _SEVERITY_ORDER.get(a.severity, 2))


@dataclass
class ObjectiveForecast:
    """Scheduled window of one objective inside a project forecast."""
    objective_id: str
    title: str
    team_ids: List[str]
    duration_weeks: Optional[float]  # None when a team cannot be estimated
    earliest_start_weeks: float
    finish_weeks: float
    estimated_date: date
    target_date: Optional[date] = None
    on_critical_path: bool = False
    alerts: List[Alert] = field(default_factory=list)

    @property
    def estimable(self) -> bool:
        return self.duration_weeks is not None

    @property
    def variance_days(self) -> Optional[int]:
        if self.target_date is None:
            return None
        return days_between(self.estimated_date, self.target_date)

    def to_dict(self) -> Dict:
        return {
            'objectiveId': self.objective_id,
            'title': self.title,
            'teamIds': list(self.team_ids),
            'durationWeeks': self.duration_weeks,
            'earliestStartWeeks': self.earliest_start_weeks,
            'finishWeeks': self.finish_weeks,
            'estimatedDate': self.estimated_date.isoformat(),
            'targetDate': self.target_date.isoformat() if self.target_date else None,
            'varianceDays': self.variance_days,
            'isOnCriticalPath': self.on_critical_path,
            'estimable': self.estimable,
            'alerts': [a.to_dict() for a in self.alerts],
        }


@dataclass
class ProjectForecast:
    """Forecast of a whole project, gated by its slowest dependency chain."""
    project_id: str
    anchor_date: date
    critical_path_weeks: float
    critical_path: List[str]
    estimated_completion_date: date
    confidence: Confidence
    objective_forecasts: List[ObjectiveForecast] = field(default_factory=list)
    unestimable_objectives: List[str] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)
    target_date: Optional[date] = None

    def to_dict(self) -> Dict:
        return {
            'projectId': self.project_id,
            'anchorDate': self.anchor_date.isoformat(),
            'criticalPathWeeks': self.critical_path_weeks,
            'criticalPath': list(self.critical_path),
            'estimatedDate': self.estimated_completion_date.isoformat(),
            'targetDate': self.target_date.isoformat() if self.target_date else None,
            'confidence': self.confidence.value,
            'unestimableObjectives': list(self.unestimable_objectives),
            'objectiveForecasts': [o.to_dict() for o in self.objective_forecasts],
            'alerts': [a.to_dict() for a in self.alerts],
        }


class ProjectForecaster:
    """Composes team lead times with the dependency graph."""

    def __init__(self, store: ForecastStore, lead_time: LeadTimeForecaster,
                 graph: DependencyGraph,
                 stale_in_progress_days: int = STALE_IN_PROGRESS_DAYS):
        self.store = store
        self.lead_time = lead_time
        self.graph = graph
        self.stale_in_progress_days = stale_in_progress_days

    def _objective_duration(self, team_ids: List[str],
                            loads: Dict[str, TeamLoad]) -> Optional[float]:
        """Slowest assigned team gates the objective."""
        if not team_ids:
            return 0.0

        durations = []
        for team_id in team_ids:
            if team_id not in loads:
                loads[team_id] = self.lead_time.team_load(team_id)
            weeks = loads[team_id].implied_lead_time_weeks
            if weeks is None:
                return None
            durations.append(weeks)
        return max(durations)

    def _work_item_alerts(self, objective: Objective, as_of: date) -> List[Alert]:
        alerts = []
        for item in self.store.get_work_items_for_objective(objective.id):
            if item.status == WorkItemStatus.IN_PROGRESS and item.updated_at is not None:
                stale_days = days_between(as_of, to_date(item.updated_at))
                if stale_days > self.stale_in_progress_days:
                    alerts.append(Alert(
                        type='blocked',
                        severity='critical' if stale_days > STALE_CRITICAL_DAYS else 'warning',
                        message=f"{item.title or item.id} has been in progress for {stale_days} days",
                        work_item_id=item.id,
                        days=stale_days,
                    ))
            if item.priority == PriorityBucket.P1 and item.status == WorkItemStatus.BACKLOG:
                alerts.append(Alert(
                    type='stuck',
                    severity='warning',
                    message=f'High priority item "{item.title or item.id}" is stuck in backlog',
                    work_item_id=item.id,
                ))
        return alerts

    def forecast_project(self, project_id: str, as_of: Optional[date] = None) -> ProjectForecast:
        """Forecast the completion date of a project.

        Each objective lasts as long as its slowest assigned team needs to
        clear its queue. Objectives are scheduled in topological order over
        finish-to-start edges, starting when their last predecessor finishes.
        The project ends when the longest chain ends.
        """
        project_id = require_id(project_id, "project id")
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        as_of = to_date(as_of) or date.today()
        anchor = max(project.start_date, as_of) if project.start_date else as_of

        objectives = {o.id: o for o in self.store.list_objectives_for_project(project_id)}
        self.graph.reload()
        order = self.graph.topological_order(objectives)
        subgraph = self.graph.fs_subgraph(objectives)

        loads: Dict[str, TeamLoad] = {}
        forecasts: Dict[str, ObjectiveForecast] = {}
        # Longest chain reaching each objective: (finish, length, previous id)
        chains: Dict[str, tuple] = {}
        unestimable = []

        for objective_id in order:
            objective = objectives[objective_id]
            team_ids = self.store.list_teams_for_objective(objective_id)
            duration = self._objective_duration(team_ids, loads)
            if duration is None:
                unestimable.append(objective_id)

            start, length, previous = 0.0, 0, None
            for predecessor in subgraph.predecessors(objective_id):
                p_finish, p_length, _ = chains[predecessor]
                if (p_finish, p_length) > (start, length):
                    start, length, previous = p_finish, p_length, predecessor

            finish = start + (duration or 0.0)
            chains[objective_id] = (finish, length + 1, previous)

            forecast = ObjectiveForecast(
                objective_id=objective_id,
                title=objective.title,
                team_ids=list(team_ids),
                duration_weeks=duration,
                earliest_start_weeks=start,
                finish_weeks=finish,
                estimated_date=add_weeks(anchor, finish),
                target_date=objective.target_date,
            )
            forecast.alerts = self._work_item_alerts(objective, as_of)

            variance = forecast.variance_days
            if variance is not None and variance > 0:
                forecast.alerts.append(Alert(
                    type='behind_schedule',
                    severity='critical' if variance > OBJECTIVE_LATE_CRITICAL_DAYS else 'warning',
                    message=f"Objective is {variance} days behind target date",
                    days=variance,
                ))
            forecast.alerts = _sort_alerts(forecast.alerts)
            forecasts[objective_id] = forecast

        critical_path = []
        critical_path_weeks = 0.0
        if chains:
            end = max(order, key=lambda oid: chains[oid][:2])
            critical_path_weeks = chains[end][0]
            node = end
            while node is not None:
                critical_path.append(node)
                node = chains[node][2]
            critical_path.reverse()

        for objective_id in critical_path:
            forecasts[objective_id].on_critical_path = True

        if any(oid in unestimable for oid in critical_path):
            confidence = Confidence.PARTIAL
        elif unestimable or any(l.confidence != Confidence.FULL for l in loads.values()):
            confidence = Confidence.LIMITED_HISTORY
        else:
            confidence = Confidence.FULL

        if unestimable:
            logger.warning(
                f"Project {project_id}: cannot estimate {', '.join(unestimable)}"
            )

        completion = add_weeks(anchor, critical_path_weeks)
        objective_forecasts = [forecasts[oid] for oid in order]
        result = ProjectForecast(
            project_id=project_id,
            anchor_date=anchor,
            critical_path_weeks=critical_path_weeks,
            critical_path=critical_path,
            estimated_completion_date=completion,
            confidence=confidence,
            objective_forecasts=objective_forecasts,
            unestimable_objectives=unestimable,
            alerts=self._project_alerts(project.target_date, completion, objective_forecasts),
            target_date=project.target_date,
        )
        logger.debug(
            f"Project {project_id}: {critical_path_weeks:.2f} weeks on critical path "
            f"{' -> '.join(critical_path) or '(empty)'}"
        )
        return result

    @staticmethod
    def _project_alerts(target: Optional[date], completion: date,
                        objective_forecasts: List[ObjectiveForecast]) -> List[Alert]:
        if target is None:
            return []

        variance = days_between(completion, target)
        if variance <= 0:
            return []

        behind = [
            o.objective_id for o in objective_forecasts
            if o.on_critical_path and any(a.type == 'behind_schedule' for a in o.alerts)
        ]
        alerts = [Alert(
            type='project_behind_schedule',
            severity='critical' if variance > PROJECT_LATE_CRITICAL_DAYS else 'warning',
            message=f"Project is {variance} days behind target date",
            days=variance,
            objective_ids=behind,
        )]
        if behind:
            alerts.append(Alert(
                type='critical_path_delay',
                severity='warning',
                message=f"{len(behind)} objective(s) on critical path are behind schedule",
                objective_ids=behind,
            ))
        return alerts
