"""
Storage access for the forecasting engine.

The engine never owns teams, work items, objectives or projects; it reads
them through a ForecastStore. Dependency edges are the only records the
engine writes.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import DuplicateEdgeError, NotFoundError
from .models import (
    DependencyType, Objective, ObjectiveDependency, Project, Team,
    WeeklyThroughput, WorkItem, WorkItemStatus,
)
from .utils import logger, week_start


class ForecastStore(ABC):
    """Read/write capability injected into every component."""

    @abstractmethod
    def list_teams(self) -> List[str]:
        """Ids of every known team."""

    @abstractmethod
    def has_team(self, team_id: str) -> bool:
        """Whether the team exists."""

    @abstractmethod
    def get_weekly_throughput(self, team_id: str) -> List[WeeklyThroughput]:
        """Throughput records for a team ordered by week_start ascending."""

    @abstractmethod
    def get_open_work_items(self, team_id: str) -> List[WorkItem]:
        """Every work item of the team that is not Done."""

    @abstractmethod
    def get_work_items_for_objective(self, objective_id: str) -> List[WorkItem]:
        """Every work item refined under the objective that is not Done."""

    @abstractmethod
    def get_objective(self, objective_id: str) -> Optional[Objective]:
        """The objective, or None."""

    @abstractmethod
    def objective_has_release_activity(self, objective_id: str) -> bool:
        """Whether any refinement activity exists for the objective."""

    @abstractmethod
    def get_project(self, project_id: str) -> Optional[Project]:
        """The project, or None."""

    @abstractmethod
    def list_objectives_for_project(self, project_id: str) -> List[Objective]:
        """Objectives belonging to the project."""

    @abstractmethod
    def list_teams_for_objective(self, objective_id: str) -> List[str]:
        """Ids of the teams assigned to the objective."""

    @abstractmethod
    def list_dependencies(self) -> List[ObjectiveDependency]:
        """Every persisted dependency edge."""

    @abstractmethod
    def save_dependency(self, dependency: ObjectiveDependency) -> None:
        """Persist a new edge. Raises DuplicateEdgeError on a repeated pair."""

    @abstractmethod
    def delete_dependency(self, dependency_id: str) -> None:
        """Delete an edge. Raises NotFoundError if absent."""


class InMemoryStore(ForecastStore):
    """Dictionary-backed store used for fixtures and tests."""

    def __init__(self):
        self.teams: Dict[str, Team] = {}
        self.throughput: Dict[str, Dict[date, WeeklyThroughput]] = {}
        self.work_items: Dict[str, WorkItem] = {}
        self.projects: Dict[str, Project] = {}
        self.objectives: Dict[str, Objective] = {}
        self.objective_teams: Dict[str, List[str]] = {}
        self.released: Set[str] = set()
        self.dependencies: Dict[str, ObjectiveDependency] = {}

    # Fixture helpers

    def add_team(self, team_id: str, name: Optional[str] = None) -> Team:
        team = Team(id=team_id, name=name)
        self.teams[team_id] = team
        self.throughput.setdefault(team_id, {})
        return team

    def record_throughput(self, team_id: str, week: date, items_completed: int) -> WeeklyThroughput:
        if team_id not in self.teams:
            self.add_team(team_id)
        record = WeeklyThroughput(team_id, week, items_completed)
        self.throughput[team_id][record.week_start] = record
        return record

    def add_work_item(self, item: WorkItem) -> WorkItem:
        if item.team_id not in self.teams:
            self.add_team(item.team_id)
        self.work_items[item.id] = item
        return item

    def add_project(self, project: Project) -> Project:
        self.projects[project.id] = project
        return project

    def add_objective(self, objective: Objective, team_ids: Iterable[str] = ()) -> Objective:
        self.objectives[objective.id] = objective
        self.objective_teams[objective.id] = list(team_ids)
        for team_id in self.objective_teams[objective.id]:
            if team_id not in self.teams:
                self.add_team(team_id)
        return objective

    def mark_released(self, objective_id: str) -> None:
        self.released.add(objective_id)

    # ForecastStore

    def list_teams(self) -> List[str]:
        return list(self.teams.keys())

    def has_team(self, team_id: str) -> bool:
        return team_id in self.teams

    def get_weekly_throughput(self, team_id: str) -> List[WeeklyThroughput]:
        records = self.throughput.get(team_id, {})
        return [records[week] for week in sorted(records)]

    def get_open_work_items(self, team_id: str) -> List[WorkItem]:
        return [
            item for item in self.work_items.values()
            if item.team_id == team_id and item.status != WorkItemStatus.DONE
        ]

    def get_work_items_for_objective(self, objective_id: str) -> List[WorkItem]:
        return [
            item for item in self.work_items.values()
            if item.objective_id == objective_id and item.status != WorkItemStatus.DONE
        ]

    def get_objective(self, objective_id: str) -> Optional[Objective]:
        return self.objectives.get(objective_id)

    def objective_has_release_activity(self, objective_id: str) -> bool:
        return objective_id in self.released

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)

    def list_objectives_for_project(self, project_id: str) -> List[Objective]:
        return [o for o in self.objectives.values() if o.project_id == project_id]

    def list_teams_for_objective(self, objective_id: str) -> List[str]:
        return list(self.objective_teams.get(objective_id, []))

    def list_dependencies(self) -> List[ObjectiveDependency]:
        return list(self.dependencies.values())

    def save_dependency(self, dependency: ObjectiveDependency) -> None:
        for existing in self.dependencies.values():
            if (existing.predecessor_id, existing.successor_id) == (
                    dependency.predecessor_id, dependency.successor_id):
                raise DuplicateEdgeError(
                    f"Dependency {dependency.predecessor_id} -> {dependency.successor_id} already exists"
                )
        self.dependencies[dependency.id] = dependency

    def delete_dependency(self, dependency_id: str) -> None:
        if dependency_id not in self.dependencies:
            raise NotFoundError(f"Dependency {dependency_id} not found")
        del self.dependencies[dependency_id]


class SQLiteStore(ForecastStore):
    """SQLite-backed store sharing the schema of the tracking application."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        if db_path is None:
            db_path = Path.cwd() / ".pathways" / "pathways.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()

        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self):
        """Initialize database schema."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.executescript("""
                CREATE TABLE IF NOT EXISTS teams (
                    id TEXT PRIMARY KEY,
                    name TEXT
                );

                CREATE TABLE IF NOT EXISTS weekly_throughput (
                    team_id TEXT NOT NULL,
                    week_start TEXT NOT NULL,
                    items_completed INTEGER NOT NULL,
                    PRIMARY KEY (team_id, week_start),
                    FOREIGN KEY (team_id) REFERENCES teams(id)
                );

                CREATE TABLE IF NOT EXISTS work_items (
                    id TEXT PRIMARY KEY,
                    team_id TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    stack_rank INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    updated_at TEXT,
                    title TEXT DEFAULT '',
                    objective_id TEXT,
                    FOREIGN KEY (team_id) REFERENCES teams(id)
                );

                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT DEFAULT '',
                    start_date TEXT,
                    target_date TEXT
                );

                CREATE TABLE IF NOT EXISTS objectives (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    parent_objective_id TEXT,
                    tier TEXT DEFAULT 'objective',
                    target_date TEXT,
                    title TEXT DEFAULT '',
                    FOREIGN KEY (project_id) REFERENCES projects(id)
                );

                CREATE TABLE IF NOT EXISTS objective_teams (
                    objective_id TEXT NOT NULL,
                    team_id TEXT NOT NULL,
                    PRIMARY KEY (objective_id, team_id)
                );

                CREATE TABLE IF NOT EXISTS refinement_sessions (
                    id TEXT PRIMARY KEY,
                    objective_id TEXT NOT NULL,
                    status TEXT
                );

                CREATE TABLE IF NOT EXISTS objective_dependencies (
                    id TEXT PRIMARY KEY,
                    predecessor_id TEXT NOT NULL,
                    successor_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (predecessor_id, successor_id)
                );

                CREATE INDEX IF NOT EXISTS idx_work_items_team
                ON work_items(team_id, status);

                CREATE INDEX IF NOT EXISTS idx_objectives_project
                ON objectives(project_id);
            """)
            conn.commit()
        finally:
            conn.close()

    def _query(self, sql: str, params: Tuple = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    @staticmethod
    def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
        return datetime.fromisoformat(value) if value else None

    def _row_to_work_item(self, row: sqlite3.Row) -> WorkItem:
        return WorkItem(
            id=row['id'],
            team_id=row['team_id'],
            priority=row['priority'],
            stack_rank=row['stack_rank'],
            status=row['status'],
            created_at=self._parse_datetime(row['created_at']),
            completed_at=self._parse_datetime(row['completed_at']),
            updated_at=self._parse_datetime(row['updated_at']),
            title=row['title'] or "",
            objective_id=row['objective_id'],
        )

    @staticmethod
    def _row_to_objective(row: sqlite3.Row) -> Objective:
        return Objective(
            id=row['id'],
            project_id=row['project_id'],
            parent_objective_id=row['parent_objective_id'],
            tier=row['tier'] or "objective",
            target_date=row['target_date'],
            title=row['title'] or "",
        )

    def list_teams(self) -> List[str]:
        return [row['id'] for row in self._query("SELECT id FROM teams ORDER BY id")]

    def has_team(self, team_id: str) -> bool:
        return bool(self._query("SELECT 1 FROM teams WHERE id = ?", (team_id,)))

    def get_weekly_throughput(self, team_id: str) -> List[WeeklyThroughput]:
        rows = self._query(
            "SELECT team_id, week_start, items_completed FROM weekly_throughput "
            "WHERE team_id = ? ORDER BY week_start ASC",
            (team_id,)
        )
        return [
            WeeklyThroughput(row['team_id'], week_start(row['week_start']), row['items_completed'])
            for row in rows
        ]

    def get_open_work_items(self, team_id: str) -> List[WorkItem]:
        rows = self._query(
            "SELECT * FROM work_items WHERE team_id = ? AND status != ?",
            (team_id, WorkItemStatus.DONE.value)
        )
        return [self._row_to_work_item(row) for row in rows]

    def get_work_items_for_objective(self, objective_id: str) -> List[WorkItem]:
        rows = self._query(
            "SELECT * FROM work_items WHERE objective_id = ? AND status != ?",
            (objective_id, WorkItemStatus.DONE.value)
        )
        return [self._row_to_work_item(row) for row in rows]

    def get_objective(self, objective_id: str) -> Optional[Objective]:
        rows = self._query("SELECT * FROM objectives WHERE id = ?", (objective_id,))
        return self._row_to_objective(rows[0]) if rows else None

    def objective_has_release_activity(self, objective_id: str) -> bool:
        return bool(self._query(
            "SELECT 1 FROM refinement_sessions WHERE objective_id = ? LIMIT 1",
            (objective_id,)
        ))

    def get_project(self, project_id: str) -> Optional[Project]:
        rows = self._query("SELECT * FROM projects WHERE id = ?", (project_id,))
        if not rows:
            return None
        row = rows[0]
        return Project(
            id=row['id'],
            name=row['name'] or "",
            start_date=row['start_date'],
            target_date=row['target_date'],
        )

    def list_objectives_for_project(self, project_id: str) -> List[Objective]:
        rows = self._query(
            "SELECT * FROM objectives WHERE project_id = ? ORDER BY id", (project_id,)
        )
        return [self._row_to_objective(row) for row in rows]

    def list_teams_for_objective(self, objective_id: str) -> List[str]:
        rows = self._query(
            "SELECT team_id FROM objective_teams WHERE objective_id = ? ORDER BY team_id",
            (objective_id,)
        )
        return [row['team_id'] for row in rows]

    def list_dependencies(self) -> List[ObjectiveDependency]:
        rows = self._query("SELECT * FROM objective_dependencies ORDER BY created_at")
        return [
            ObjectiveDependency(
                id=row['id'],
                predecessor_id=row['predecessor_id'],
                successor_id=row['successor_id'],
                type=DependencyType(row['type']),
                created_at=datetime.fromisoformat(row['created_at']),
            )
            for row in rows
        ]

    def save_dependency(self, dependency: ObjectiveDependency) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        "INSERT INTO objective_dependencies "
                        "(id, predecessor_id, successor_id, type, created_at) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (
                            dependency.id,
                            dependency.predecessor_id,
                            dependency.successor_id,
                            dependency.type.value,
                            dependency.created_at.isoformat(),
                        )
                    )
            except sqlite3.IntegrityError as e:
                logger.debug(f"Rejected dependency insert: {e}")
                raise DuplicateEdgeError(
                    f"Dependency {dependency.predecessor_id} -> {dependency.successor_id} already exists"
                ) from e
            finally:
                conn.close()

    def delete_dependency(self, dependency_id: str) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(
                        "DELETE FROM objective_dependencies WHERE id = ?", (dependency_id,)
                    )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"Dependency {dependency_id} not found")
            finally:
                conn.close()

    # Loading helpers for records owned by the tracking application

    def _execute(self, sql: str, params: Tuple = ()) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(sql, params)
            finally:
                conn.close()

    def add_team(self, team_id: str, name: Optional[str] = None) -> Team:
        self._execute(
            "INSERT OR REPLACE INTO teams (id, name) VALUES (?, ?)", (team_id, name)
        )
        return Team(id=team_id, name=name)

    def record_throughput(self, team_id: str, week: date, items_completed: int) -> WeeklyThroughput:
        record = WeeklyThroughput(team_id, week, items_completed)
        if not self.has_team(team_id):
            self.add_team(team_id)
        self._execute(
            "INSERT OR REPLACE INTO weekly_throughput (team_id, week_start, items_completed) "
            "VALUES (?, ?, ?)",
            (team_id, record.week_start.isoformat(), items_completed)
        )
        return record

    def add_work_item(self, item: WorkItem) -> WorkItem:
        if not self.has_team(item.team_id):
            self.add_team(item.team_id)
        self._execute(
            "INSERT OR REPLACE INTO work_items "
            "(id, team_id, priority, stack_rank, status, created_at, completed_at, "
            "updated_at, title, objective_id) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                item.id,
                item.team_id,
                item.priority.value,
                item.stack_rank,
                item.status.value,
                item.created_at.isoformat(),
                item.completed_at.isoformat() if item.completed_at else None,
                item.updated_at.isoformat() if item.updated_at else None,
                item.title,
                item.objective_id,
            )
        )
        return item

    def add_project(self, project: Project) -> Project:
        self._execute(
            "INSERT OR REPLACE INTO projects (id, name, start_date, target_date) "
            "VALUES (?, ?, ?, ?)",
            (
                project.id,
                project.name,
                project.start_date.isoformat() if project.start_date else None,
                project.target_date.isoformat() if project.target_date else None,
            )
        )
        return project

    def add_objective(self, objective: Objective, team_ids: Iterable[str] = ()) -> Objective:
        self._execute(
            "INSERT OR REPLACE INTO objectives "
            "(id, project_id, parent_objective_id, tier, target_date, title) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                objective.id,
                objective.project_id,
                objective.parent_objective_id,
                objective.tier,
                objective.target_date.isoformat() if objective.target_date else None,
                objective.title,
            )
        )
        for team_id in team_ids:
            if not self.has_team(team_id):
                self.add_team(team_id)
            self._execute(
                "INSERT OR IGNORE INTO objective_teams (objective_id, team_id) VALUES (?, ?)",
                (objective.id, team_id)
            )
        return objective

    def mark_released(self, objective_id: str, session_id: Optional[str] = None) -> None:
        """Record a refinement session, which counts as release activity."""
        self._execute(
            "INSERT OR IGNORE INTO refinement_sessions (id, objective_id, status) "
            "VALUES (?, ?, ?)",
            (session_id or f"{objective_id}-session", objective_id, "open")
        )
