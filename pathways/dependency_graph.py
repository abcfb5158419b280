"""Objective dependency graph with cycle detection and release gating."""
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import networkx as nx

from .errors import CycleDetectedError, DuplicateEdgeError, NotFoundError
from .models import DependencyType, ObjectiveDependency
from .store import ForecastStore
from .utils import logger, require_id


@dataclass
class ReleaseCheck:
    """Whether an objective may be released to its teams."""
    objective_id: str
    can_release: bool
    blocking_predecessors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'objectiveId': self.objective_id,
            'canRelease': self.can_release,
            'blockedBy': list(self.blocking_predecessors),
        }


class DependencyGraph:
    """Predecessor/successor edges between objectives.

    The graph is mirrored in a ``networkx.DiGraph`` loaded from the store.
    Mutations are serialised by a lock and persisted before they are applied
    in memory, so a failed write leaves the graph untouched.
    """

    def __init__(self, store: ForecastStore):
        self.store = store
        self.graph = nx.DiGraph()
        self.edges: Dict[str, ObjectiveDependency] = {}
        self._lock = threading.RLock()
        self.reload()
        logger.info(f"Loaded dependency graph with {len(self.edges)} edges")

    def reload(self) -> None:
        """Rebuild the in-memory graph from the store.

        Other writers share the store, so every public read or mutation
        reloads first.
        """
        with self._lock:
            self.graph = nx.DiGraph()
            self.edges = {}
            for dependency in self.store.list_dependencies():
                self._insert(dependency)
            logger.debug(f"Reloaded {len(self.edges)} dependencies")

    def _insert(self, dependency: ObjectiveDependency) -> None:
        self.edges[dependency.id] = dependency
        self.graph.add_edge(
            dependency.predecessor_id,
            dependency.successor_id,
            type=dependency.type,
            id=dependency.id,
        )

    def _require_objective(self, objective_id: str) -> str:
        objective_id = require_id(objective_id, "objective id")
        if self.store.get_objective(objective_id) is None:
            raise NotFoundError(f"Objective {objective_id} not found")
        return objective_id

    def find_path(self, source: str, target: str) -> Optional[List[str]]:
        """Iterative depth-first search for a directed path.

        Returns the chain of objective ids from ``source`` to ``target``,
        or None when ``target`` is unreachable.
        """
        if source == target:
            return [source]
        if source not in self.graph:
            return None

        parents = {source: None}
        stack = [source]
        while stack:
            node = stack.pop()
            for neighbour in self.graph.successors(node):
                if neighbour in parents:
                    continue
                parents[neighbour] = node
                if neighbour == target:
                    path = [target]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                stack.append(neighbour)
        return None

    def has_path(self, source: str, target: str) -> bool:
        """Check whether ``target`` is reachable from ``source``."""
        return self.find_path(source, target) is not None

    def add_edge(self, predecessor_id: str, successor_id: str,
                 type=DependencyType.FS) -> ObjectiveDependency:
        """Add a dependency: ``successor_id`` depends on ``predecessor_id``.

        Raises:
            InvalidParameterError: empty ids or unknown dependency type.
            NotFoundError: either objective is unknown.
            DuplicateEdgeError: the pair already exists.
            CycleDetectedError: the edge would close a cycle.
        """
        predecessor_id = require_id(predecessor_id, "predecessor id")
        successor_id = require_id(successor_id, "successor id")
        dependency_type = DependencyType.parse(type)

        with self._lock:
            self.reload()
            self._require_objective(predecessor_id)
            self._require_objective(successor_id)

            if self.graph.has_edge(predecessor_id, successor_id):
                raise DuplicateEdgeError(
                    f"Dependency {predecessor_id} -> {successor_id} already exists"
                )

            cycle = self.find_path(successor_id, predecessor_id)
            if cycle is not None:
                raise CycleDetectedError(predecessor_id, successor_id, cycle + [successor_id])

            dependency = ObjectiveDependency(
                predecessor_id=predecessor_id,
                successor_id=successor_id,
                type=dependency_type,
            )
            self.store.save_dependency(dependency)
            self._insert(dependency)

        logger.debug(
            f"Added dependency {predecessor_id} -[{dependency_type.value}]-> {successor_id}"
        )
        return dependency

    def remove_edge(self, edge_id: str) -> ObjectiveDependency:
        """Remove a dependency by id."""
        edge_id = require_id(edge_id, "dependency id")

        with self._lock:
            self.reload()
            dependency = self.edges.get(edge_id)
            if dependency is None:
                raise NotFoundError(f"Dependency {edge_id} not found")

            self.store.delete_dependency(edge_id)
            del self.edges[edge_id]
            self.graph.remove_edge(dependency.predecessor_id, dependency.successor_id)

        logger.debug(f"Removed dependency {edge_id}")
        return dependency

    def get_edge(self, edge_id: str) -> ObjectiveDependency:
        self.reload()
        dependency = self.edges.get(edge_id)
        if dependency is None:
            raise NotFoundError(f"Dependency {edge_id} not found")
        return dependency

    def can_release(self, objective_id: str) -> ReleaseCheck:
        """Check finish-to-start predecessors of an objective.

        A predecessor blocks release until it shows release activity. Only
        direct predecessors are checked; other dependency types never gate.
        """
        objective_id = self._require_objective(objective_id)
        self.reload()

        blocking = [
            predecessor
            for predecessor in self.predecessors(objective_id, DependencyType.FS)
            if not self.store.objective_has_release_activity(predecessor)
        ]
        if blocking:
            logger.debug(f"Objective {objective_id} blocked by {', '.join(blocking)}")

        return ReleaseCheck(
            objective_id=objective_id,
            can_release=not blocking,
            blocking_predecessors=blocking,
        )

    def predecessors(self, objective_id: str,
                     dependency_type: Optional[DependencyType] = None) -> List[str]:
        """Direct predecessors, optionally filtered by dependency type."""
        if objective_id not in self.graph:
            return []
        return sorted(
            source for source, _, data in self.graph.in_edges(objective_id, data=True)
            if dependency_type is None or data['type'] == dependency_type
        )

    def successors(self, objective_id: str,
                   dependency_type: Optional[DependencyType] = None) -> List[str]:
        """Direct successors, optionally filtered by dependency type."""
        if objective_id not in self.graph:
            return []
        return sorted(
            target for _, target, data in self.graph.out_edges(objective_id, data=True)
            if dependency_type is None or data['type'] == dependency_type
        )

    def all_dependencies(self) -> List[ObjectiveDependency]:
        self.reload()
        return sorted(self.edges.values(), key=lambda d: d.created_at)

    def dependencies_for_objective(self, objective_id: str) -> List[ObjectiveDependency]:
        """Edges touching an objective at either end."""
        objective_id = self._require_objective(objective_id)
        return [
            d for d in self.all_dependencies()
            if objective_id in (d.predecessor_id, d.successor_id)
        ]

    def dependencies_for_project(self, project_id: str) -> List[ObjectiveDependency]:
        """Edges with at least one end inside the project."""
        project_id = require_id(project_id, "project id")
        if self.store.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found")

        members = {o.id for o in self.store.list_objectives_for_project(project_id)}
        return [
            d for d in self.all_dependencies()
            if d.predecessor_id in members or d.successor_id in members
        ]

    def fs_subgraph(self, objective_ids: Iterable[str]) -> nx.DiGraph:
        """Finish-to-start edges restricted to the given objectives."""
        nodes: Set[str] = set(objective_ids)
        subgraph = nx.DiGraph()
        subgraph.add_nodes_from(nodes)
        for source, target, data in self.graph.edges(data=True):
            if source in nodes and target in nodes and data['type'] == DependencyType.FS:
                subgraph.add_edge(source, target, id=data['id'])
        return subgraph

    def topological_order(self, objective_ids: Iterable[str]) -> List[str]:
        """Order objectives so every FS predecessor precedes its successors."""
        subgraph = self.fs_subgraph(objective_ids)
        try:
            return list(nx.lexicographical_topological_sort(subgraph))
        except nx.NetworkXUnfeasible:
            cycle = nx.find_cycle(subgraph)
            path = [cycle[0][0]] + [target for _, target in cycle]
            raise CycleDetectedError(cycle[-1][0], cycle[-1][1], path) from None

    def get_statistics(self) -> Dict[str, int]:
        self.reload()
        by_type = {t.value: 0 for t in DependencyType}
        for dependency in self.edges.values():
            by_type[dependency.type.value] += 1
        return {
            'objectives': self.graph.number_of_nodes(),
            'dependencies': len(self.edges),
            **by_type,
        }
