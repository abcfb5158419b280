"""Tests for project forecasts over the dependency graph."""

import pytest
from datetime import date, datetime, timedelta

from pathways.dependency_graph import DependencyGraph
from pathways.errors import NotFoundError
from pathways.lead_time import LeadTimeForecaster
from pathways.models import Confidence, Objective, Project, WorkItem
from pathways.project_forecast import ProjectForecaster
from pathways.store import InMemoryStore
from pathways.throughput import ThroughputCalculator
from pathways.work_queue import QueueAnalyzer


AS_OF = date(2025, 3, 3)


def record_history(store, team_id, weekly):
    for offset in range(6):
        store.record_throughput(team_id, date(2025, 1, 6) + timedelta(weeks=offset), weekly)


def queue_items(store, team_id, count, objective_id=None):
    for rank in range(1, count + 1):
        store.add_work_item(WorkItem(
            f"{team_id}-{rank}", team_id, "P2", rank, "Ready", objective_id=objective_id
        ))


def build(store):
    graph = DependencyGraph(store)
    lead_time = LeadTimeForecaster(ThroughputCalculator(store), QueueAnalyzer(store))
    return graph, ProjectForecaster(store, lead_time, graph)


class TestProjectForecaster:
    """Test critical path scheduling."""

    @pytest.fixture
    def store(self):
        store = InMemoryStore()
        # fast: 5 items at 5/week -> 1 week; slow: 3 items at 1/week -> 3 weeks
        record_history(store, "fast", 5)
        queue_items(store, "fast", 5)
        record_history(store, "slow", 1)
        queue_items(store, "slow", 3)
        store.add_team("new")
        queue_items(store, "new", 2)

        store.add_project(Project(id="proj", name="Launch"))
        store.add_objective(Objective(id="A", project_id="proj"), ["fast"])
        store.add_objective(Objective(id="B", project_id="proj"), ["slow"])
        store.add_objective(Objective(id="C", project_id="proj"), ["fast"])
        return store

    def test_critical_path(self, store):
        graph, forecaster = build(store)
        graph.add_edge("A", "B")

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)

        assert forecast.critical_path == ["A", "B"]
        assert forecast.critical_path_weeks == 4.0
        assert forecast.estimated_completion_date == AS_OF + timedelta(weeks=4)
        assert forecast.confidence == Confidence.FULL
        assert forecast.unestimable_objectives == []

        by_id = {o.objective_id: o for o in forecast.objective_forecasts}
        assert by_id["B"].earliest_start_weeks == 1.0
        assert by_id["B"].finish_weeks == 4.0
        assert by_id["C"].earliest_start_weeks == 0.0
        assert by_id["A"].on_critical_path
        assert not by_id["C"].on_critical_path

    def test_objective_gated_by_slowest_team(self, store):
        store.add_objective(Objective(id="D", project_id="proj"), ["fast", "slow"])
        _, forecaster = build(store)

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        by_id = {o.objective_id: o for o in forecast.objective_forecasts}
        assert by_id["D"].duration_weeks == 3.0

    def test_non_fs_edges_do_not_chain(self, store):
        graph, forecaster = build(store)
        graph.add_edge("A", "B", "SS")

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        assert forecast.critical_path_weeks == 3.0
        assert forecast.critical_path == ["B"]

    def test_unestimable_on_critical_path_is_partial(self, store):
        store.objective_teams["B"] = ["new"]
        graph, forecaster = build(store)
        graph.add_edge("A", "B")

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        assert forecast.confidence == Confidence.PARTIAL
        assert forecast.critical_path == ["A", "B"]
        assert forecast.unestimable_objectives == ["B"]
        assert forecast.critical_path_weeks == 1.0

    def test_unestimable_off_critical_path_is_listed(self, store):
        store.objective_teams["C"] = ["new"]
        graph, forecaster = build(store)
        graph.add_edge("A", "B")

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        assert forecast.confidence == Confidence.LIMITED_HISTORY
        assert forecast.unestimable_objectives == ["C"]
        assert forecast.to_dict()["unestimableObjectives"] == ["C"]

    def test_objective_without_teams(self, store):
        store.add_objective(Objective(id="E", project_id="proj"))
        _, forecaster = build(store)

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        by_id = {o.objective_id: o for o in forecast.objective_forecasts}
        assert by_id["E"].duration_weeks == 0.0
        assert by_id["E"].estimable

    def test_project_without_objectives(self, store):
        store.add_project(Project(id="empty"))
        _, forecaster = build(store)

        forecast = forecaster.forecast_project("empty", as_of=AS_OF)
        assert forecast.critical_path_weeks == 0.0
        assert forecast.critical_path == []
        assert forecast.estimated_completion_date == AS_OF

    def test_future_project_start_is_anchor(self, store):
        store.projects["proj"].start_date = date(2025, 4, 7)
        _, forecaster = build(store)

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        assert forecast.anchor_date == date(2025, 4, 7)
        assert forecast.estimated_completion_date == date(2025, 4, 28)

    def test_past_project_start_uses_as_of(self, store):
        store.projects["proj"].start_date = date(2024, 1, 1)
        _, forecaster = build(store)

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        assert forecast.anchor_date == AS_OF

    def test_unknown_project(self, store):
        _, forecaster = build(store)
        with pytest.raises(NotFoundError):
            forecaster.forecast_project("missing", as_of=AS_OF)


class TestProjectAlerts:
    """Test schedule alerts."""

    @pytest.fixture
    def store(self):
        store = InMemoryStore()
        record_history(store, "slow", 1)
        store.add_project(Project(id="proj", target_date=AS_OF + timedelta(days=21)))
        store.add_objective(
            Objective(id="A", project_id="proj", target_date=AS_OF + timedelta(days=20)),
            ["slow"],
        )
        store.add_work_item(WorkItem(
            "stale", "slow", "P2", 1, "InProgress", title="Payment API",
            created_at=datetime(2025, 2, 1), updated_at=datetime(2025, 2, 21),
            objective_id="A",
        ))
        store.add_work_item(WorkItem(
            "very-stale", "slow", "P2", 2, "InProgress",
            created_at=datetime(2025, 1, 1), updated_at=datetime(2025, 2, 10),
            objective_id="A",
        ))
        store.add_work_item(WorkItem(
            "urgent", "slow", "P1", 1, "Backlog", title="Login fix", objective_id="A",
        ))
        store.add_work_item(WorkItem(
            "fresh", "slow", "P3", 1, "InProgress",
            created_at=datetime(2025, 3, 1), objective_id="A",
        ))
        return store

    def test_objective_alerts(self, store):
        _, forecaster = build(store)
        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        objective = forecast.objective_forecasts[0]

        # 4 items at 1/week -> 4 weeks, 8 days past the objective target
        assert objective.duration_weeks == 4.0
        alerts = {(a.type, a.work_item_id): a for a in objective.alerts}

        behind = alerts[("behind_schedule", None)]
        assert behind.severity == "critical"
        assert behind.days == 8

        assert alerts[("blocked", "stale")].severity == "warning"
        assert alerts[("blocked", "stale")].days == 10
        assert alerts[("blocked", "very-stale")].severity == "critical"
        assert ("blocked", "fresh") not in alerts
        assert alerts[("stuck", "urgent")].severity == "warning"

        severities = [a.severity for a in objective.alerts]
        assert severities == sorted(severities, key=lambda s: s != "critical")

    def test_project_alerts(self, store):
        _, forecaster = build(store)
        forecast = forecaster.forecast_project("proj", as_of=AS_OF)

        types = [a.type for a in forecast.alerts]
        assert types == ["project_behind_schedule", "critical_path_delay"]
        assert forecast.alerts[0].severity == "warning"
        assert forecast.alerts[0].days == 7
        assert forecast.alerts[1].objective_ids == ["A"]

    def test_no_alerts_when_on_time(self, store):
        store.projects["proj"].target_date = AS_OF + timedelta(weeks=10)
        _, forecaster = build(store)

        forecast = forecaster.forecast_project("proj", as_of=AS_OF)
        assert forecast.alerts == []
