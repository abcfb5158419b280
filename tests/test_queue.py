"""Tests for queue composition."""

import pytest
from datetime import datetime

from pathways.errors import NotFoundError
from pathways.models import PriorityBucket, WorkItem
from pathways.store import InMemoryStore
from pathways.work_queue import QueueAnalyzer


class TestQueueAnalyzer:
    """Test the queue analyzer."""

    @pytest.fixture
    def store(self):
        store = InMemoryStore()
        items = [
            WorkItem("p2-1", "team-a", "P2", 1, "Backlog"),
            WorkItem("p1-2", "team-a", "P1", 2, "InProgress"),
            WorkItem("p1-1", "team-a", "P1", 1, "Ready"),
            WorkItem("p3-1", "team-a", "P3", 1, "Backlog"),
            WorkItem("blocked", "team-a", "P1", 0, "Blocked"),
            WorkItem("done", "team-a", "P1", 3, "Done", completed_at=datetime(2025, 1, 1)),
            WorkItem("other", "team-b", "P1", 1, "Ready"),
        ]
        for item in items:
            store.add_work_item(item)
        store.add_team("team-empty")
        return store

    @pytest.fixture
    def analyzer(self, store):
        return QueueAnalyzer(store)

    def test_processing_order(self, analyzer):
        snapshot = analyzer.queue("team-a")
        assert [i.id for i in snapshot.ordered_items] == ["p1-1", "p1-2", "p2-1", "p3-1"]

    def test_counts(self, analyzer):
        snapshot = analyzer.queue("team-a")
        assert snapshot.counts[PriorityBucket.P1] == 2
        assert snapshot.counts[PriorityBucket.P2] == 1
        assert snapshot.counts[PriorityBucket.P3] == 1
        assert snapshot.total_open == 4
        assert snapshot.blocked_count == 1

    def test_position_of(self, analyzer):
        snapshot = analyzer.queue("team-a")
        assert snapshot.position_of("p1-1") == 1
        assert snapshot.position_of("p3-1") == 4
        assert snapshot.position_of("blocked") is None
        assert snapshot.position_of("done") is None
        assert snapshot.position_of("other") is None

    def test_summary_has_no_items(self, analyzer):
        data = analyzer.queue("team-a").to_dict()
        assert data == {
            "teamId": "team-a",
            "p1": 2,
            "p2": 1,
            "p3": 1,
            "total": 4,
            "blocked": 1,
        }

    def test_empty_queue(self, analyzer):
        snapshot = analyzer.queue("team-empty")
        assert snapshot.total_open == 0
        assert snapshot.ordered_items == []

    def test_work_item_timestamps_default_to_now(self):
        before = datetime.now()
        item = WorkItem("w-1", "team-a", "P1", 1, "Ready")
        assert item.created_at >= before
        assert item.updated_at == item.created_at

    def test_unknown_team(self, analyzer):
        with pytest.raises(NotFoundError):
            analyzer.queue("nobody")
