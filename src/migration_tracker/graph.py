from __future__ import annotations

from collections import defaultdict, deque
from typing import Callable, Iterator

from .errors import CyclicDependency, UnknownPhase
from .models import DependencyEdge, PhaseStatus


class DependencyGraph:
    """Directed "depends on" graph over phase identifiers.

    Nodes and edges keep insertion order so that ``topological_order`` is
    deterministic: independent phases come out in the order they were added.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, None] = {}
        self._predecessors: dict[str, list[str]] = defaultdict(list)
        self._successors: dict[str, list[str]] = defaultdict(list)
        self._edges: list[DependencyEdge] = []

    def __contains__(self, phase_id: object) -> bool:
        return phase_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(self, phase_id: str) -> None:
        self._nodes.setdefault(phase_id, None)

    def _require(self, phase_id: str) -> None:
        if phase_id not in self._nodes:
            raise UnknownPhase(phase_id)

    def predecessors(self, phase_id: str) -> list[str]:
        self._require(phase_id)
        return list(self._predecessors.get(phase_id, []))

    def successors(self, phase_id: str) -> list[str]:
        self._require(phase_id)
        return list(self._successors.get(phase_id, []))

    def edges(self) -> list[DependencyEdge]:
        return list(self._edges)

    def reaches(self, start: str, target: str) -> bool:
        """Depth-first search along predecessor edges from ``start`` looking for ``target``."""
        stack = [start]
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._predecessors.get(current, []))
        return False

    def would_create_cycle(self, phase_id: str, depends_on: str) -> bool:
        # The new edge closes a cycle iff phase_id is already reachable from depends_on.
        return self.reaches(depends_on, phase_id)

    def check_edge(self, phase_id: str, depends_on: str) -> None:
        """Validate a prospective edge without inserting it."""
        self._require(phase_id)
        self._require(depends_on)
        if self.would_create_cycle(phase_id, depends_on):
            raise CyclicDependency(phase_id, depends_on)

    def add_edge(self, phase_id: str, depends_on: str) -> bool:
        """Insert ``phase_id -> depends_on``. Returns False when the edge already exists."""
        self.check_edge(phase_id, depends_on)
        if depends_on in self._predecessors.get(phase_id, []):
            return False
        self._predecessors[phase_id].append(depends_on)
        self._successors[depends_on].append(phase_id)
        self._edges.append(DependencyEdge(phase_id=phase_id, depends_on=depends_on))
        return True

    def pending_predecessors(self, phase_id: str, status_of: Callable[[str], PhaseStatus]) -> list[str]:
        return [dep for dep in self.predecessors(phase_id) if status_of(dep) != PhaseStatus.COMPLETED]

    def is_eligible(self, phase_id: str, status_of: Callable[[str], PhaseStatus]) -> bool:
        return not self.pending_predecessors(phase_id, status_of)

    def topological_order(self) -> Iterator[str]:
        indegree = {node: len(self._predecessors.get(node, [])) for node in self._nodes}
        position = {node: idx for idx, node in enumerate(self._nodes)}
        queue = deque(node for node in self._nodes if indegree[node] == 0)
        while queue:
            current = queue.popleft()
            yield current
            released = []
            for nxt in self._successors.get(current, []):
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    released.append(nxt)
            # Keep global insertion order among phases released in the same step.
            queue = deque(sorted([*queue, *released], key=position.__getitem__))
