"""Tests for lead-time forecasting."""

import pytest
from datetime import date, datetime, timedelta

from pathways.errors import NotFoundError
from pathways.lead_time import LeadTimeForecaster, compare_to_target
from pathways.models import Confidence, WorkItem
from pathways.store import InMemoryStore
from pathways.throughput import ThroughputCalculator
from pathways.work_queue import QueueAnalyzer


AS_OF = date(2025, 3, 3)


def record_history(store, team_id, weekly, weeks=6):
    for offset in range(weeks):
        store.record_throughput(team_id, date(2025, 1, 6) + timedelta(weeks=offset), weekly)


def make_forecaster(store):
    return LeadTimeForecaster(ThroughputCalculator(store), QueueAnalyzer(store))


class TestForecastItem:
    """Test single-item and backlog forecasts."""

    @pytest.fixture
    def store(self):
        store = InMemoryStore()
        record_history(store, "team-a", 5)
        for rank in range(1, 4):
            store.add_work_item(WorkItem(f"p1-{rank}", "team-a", "P1", rank, "Ready"))
        for rank in range(1, 3):
            store.add_work_item(WorkItem(f"p2-{rank}", "team-a", "P2", rank, "Backlog"))
        store.add_work_item(WorkItem("blocked", "team-a", "P1", 9, "Blocked"))
        store.add_work_item(
            WorkItem("done", "team-a", "P1", 10, "Done", completed_at=datetime(2025, 2, 1))
        )
        return store

    @pytest.fixture
    def forecaster(self, store):
        return make_forecaster(store)

    def test_second_p2_after_all_p1(self, forecaster):
        forecast = forecaster.forecast_item("p2-2", "team-a", as_of=AS_OF)
        assert forecast.position == 5
        assert forecast.estimated_weeks == 1.0
        assert forecast.estimated_date == AS_OF + timedelta(weeks=1)
        assert forecast.lead_time_days == 7
        assert forecast.confidence == Confidence.FULL

    def test_fractional_weeks_round_date_up(self, forecaster):
        forecast = forecaster.forecast_item("p1-3", "team-a", as_of=AS_OF)
        assert forecast.estimated_weeks == pytest.approx(0.6)
        assert forecast.estimated_date == AS_OF + timedelta(weeks=1)
        assert forecast.lead_time_days == 5

    def test_as_of_accepts_iso_string(self, forecaster):
        forecast = forecaster.forecast_item("p2-2", "team-a", as_of="2025-03-03")
        assert forecast.estimated_date == date(2025, 3, 10)

    @pytest.mark.parametrize("item_id", ["blocked", "done", "missing"])
    def test_item_not_in_open_queue(self, forecaster, item_id):
        with pytest.raises(NotFoundError):
            forecaster.forecast_item(item_id, "team-a", as_of=AS_OF)

    def test_item_of_another_team(self, store, forecaster):
        store.add_work_item(WorkItem("b-1", "team-b", "P1", 1, "Ready"))
        with pytest.raises(NotFoundError):
            forecaster.forecast_item("b-1", "team-a", as_of=AS_OF)

    def test_backlog_matches_single_forecasts(self, forecaster):
        backlog = forecaster.forecast_backlog("team-a", as_of=AS_OF)
        assert [f.item_id for f in backlog] == ["p1-1", "p1-2", "p1-3", "p2-1", "p2-2"]
        for forecast in backlog:
            single = forecaster.forecast_item(forecast.item_id, "team-a", as_of=AS_OF)
            assert single.to_dict() == forecast.to_dict()

    def test_single_bucket_position_equals_rank(self):
        store = InMemoryStore()
        record_history(store, "team-a", 2)
        for rank in range(1, 5):
            store.add_work_item(WorkItem(f"i-{rank}", "team-a", "P3", rank, "Backlog"))
        forecast = make_forecaster(store).forecast_item("i-4", "team-a", as_of=AS_OF)
        assert forecast.position == 4
        assert forecast.estimated_weeks == 2.0

    def test_zero_throughput(self):
        store = InMemoryStore()
        store.add_work_item(WorkItem("i-1", "team-new", "P1", 1, "Ready"))
        forecaster = make_forecaster(store)

        forecast = forecaster.forecast_item("i-1", "team-new", as_of=AS_OF)
        assert forecast.position == 1
        assert forecast.estimated_weeks is None
        assert forecast.estimated_date is None
        assert forecast.lead_time_days is None
        assert forecast.confidence == Confidence.INSUFFICIENT_HISTORY
        assert "estimatedDate" not in forecast.to_dict()

        backlog = forecaster.forecast_backlog("team-new", as_of=AS_OF)
        assert len(backlog) == 1
        assert backlog[0].estimated_weeks is None

    def test_unknown_team(self, forecaster):
        with pytest.raises(NotFoundError):
            forecaster.forecast_backlog("nobody")


class TestTeamLoad:
    """Test aggregate team load."""

    def _store(self, weekly, open_items):
        store = InMemoryStore()
        if weekly:
            record_history(store, "team-a", weekly)
        else:
            store.add_team("team-a")
        for rank in range(1, open_items + 1):
            store.add_work_item(WorkItem(f"i-{rank}", "team-a", "P1" if rank <= 2 else "P2", rank, "Ready"))
        return store

    def test_implied_lead_time(self):
        load = make_forecaster(self._store(5, 5)).team_load("team-a")
        assert load.rate == 5.0
        assert load.implied_lead_time_weeks == 1.0
        assert load.p1_load_weeks == pytest.approx(0.4)
        assert load.p2_load_weeks == pytest.approx(1.0)
        assert load.status == "healthy"
        assert load.queue["total"] == 5

    @pytest.mark.parametrize("open_items, status", [
        (8, "healthy"),
        (9, "busy"),
        (12, "busy"),
        (13, "overloaded"),
    ])
    def test_status_thresholds(self, open_items, status):
        load = make_forecaster(self._store(1, open_items)).team_load("team-a")
        assert load.status == status

    def test_zero_throughput_is_null_safe(self):
        load = make_forecaster(self._store(0, 3)).team_load("team-a")
        assert load.implied_lead_time_weeks is None
        assert load.p1_load_weeks is None
        assert load.status == "unknown"
        assert load.confidence == Confidence.INSUFFICIENT_HISTORY
        assert load.to_dict()["impliedLeadTimeDays"] is None

    def test_custom_thresholds(self):
        store = self._store(1, 5)
        forecaster = LeadTimeForecaster(
            ThroughputCalculator(store), QueueAnalyzer(store),
            busy_threshold_weeks=2, overloaded_threshold_weeks=4,
        )
        assert forecaster.team_load("team-a").status == "overloaded"

    def test_lead_time_range(self):
        load = make_forecaster(self._store(5, 10)).team_load("team-a")
        assert load.lead_time_range_weeks == (2.0, 2.0)


class TestTargets:
    """Test target comparison and requirements."""

    @pytest.mark.parametrize("offset, status", [
        (-2, "on_track"),
        (0, "on_track"),
        (3, "at_risk"),
        (5, "at_risk"),
        (6, "critical"),
    ])
    def test_compare_to_target(self, offset, status):
        variance = compare_to_target(AS_OF + timedelta(days=offset), AS_OF)
        assert variance.status == status
        assert variance.variance_days == offset

    def test_compare_without_dates(self):
        assert compare_to_target(None, AS_OF) is None
        assert compare_to_target(AS_OF, None) is None

    def test_requirements_when_on_track(self):
        store = InMemoryStore()
        record_history(store, "team-a", 5)
        for rank in range(1, 6):
            store.add_work_item(WorkItem(f"i-{rank}", "team-a", "P1", rank, "Ready"))
        result = make_forecaster(store).target_requirements(
            "team-a", AS_OF + timedelta(weeks=2), as_of=AS_OF
        )
        assert result.required_rate == 2.5
        assert result.rate_increase == -2.5
        assert result.items_to_remove == 0

    def test_requirements_when_behind(self):
        store = InMemoryStore()
        record_history(store, "team-a", 1)
        for rank in range(1, 6):
            store.add_work_item(WorkItem(f"i-{rank}", "team-a", "P1", rank, "Ready"))
        result = make_forecaster(store).target_requirements(
            "team-a", AS_OF + timedelta(weeks=2), as_of=AS_OF
        )
        assert result.required_rate == 2.5
        assert result.rate_increase == 1.5
        assert result.items_to_remove == 3
        assert len(result.recommendations) == 3

    def test_requirements_past_target(self):
        store = InMemoryStore()
        record_history(store, "team-a", 1)
        store.add_work_item(WorkItem("i-1", "team-a", "P1", 1, "Ready"))
        result = make_forecaster(store).target_requirements(
            "team-a", AS_OF - timedelta(days=1), as_of=AS_OF
        )
        assert result.required_rate is None
        assert result.items_to_remove == 1
