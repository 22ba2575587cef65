"""Dependency graph: directed prerequisite edges between tasks."""

from collections.abc import Iterable, Mapping

import structlog

from task_graph.errors import CycleError, ValidationError
from task_graph.models import DependencyEdge, Task, TaskStatus
from task_graph.persistence import DELETE, DEPENDENCY, INSERT, Change
from task_graph.state import EngineState, add_pair, discard_pair

logger = structlog.get_logger()


def find_path(adjacency: Mapping[str, Iterable[str]], start: str, target: str) -> list[str] | None:
    """Return a path from start to target following adjacency, or None.

    Iterative depth-first search; cost is bounded by the number of edges
    reachable from start.
    """
    if start == target:
        return [start]
    came_from: dict[str, str | None] = {start: None}
    stack = [start]
    while stack:
        node = stack.pop()
        for neighbor in adjacency.get(node, ()):
            if neighbor in came_from:
                continue
            came_from[neighbor] = node
            if neighbor == target:
                path = [neighbor]
                step = came_from[neighbor]
                while step is not None:
                    path.append(step)
                    step = came_from[step]
                return path[::-1]
            stack.append(neighbor)
    return None


def _normalize_cycle(cycle: list[str]) -> tuple[str, ...]:
    rotations = [tuple(cycle[i:] + cycle[:i]) for i in range(len(cycle))]
    return min(rotations)


def find_cycles(edges: Iterable[tuple[str, str]]) -> list[list[str]]:
    """Find the cycles closed by back edges in an arbitrary edge set.

    Each cycle is reported once as the list of nodes along it, without
    repeating the first node at the end.
    """
    adjacency: dict[str, list[str]] = {}
    for source, target in edges:
        adjacency.setdefault(source, []).append(target)
        adjacency.setdefault(target, [])

    state: dict[str, int] = {}
    seen: set[tuple[str, ...]] = set()
    cycles: list[list[str]] = []

    for root in sorted(adjacency):
        if state.get(root):
            continue
        state[root] = 1
        path = [root]
        index_by_id = {root: 0}
        stack = [iter(sorted(adjacency[root]))]
        while stack:
            node = next(stack[-1], None)
            if node is None:
                stack.pop()
                done = path.pop()
                del index_by_id[done]
                state[done] = 2
                continue
            node_state = state.get(node, 0)
            if node_state == 0:
                state[node] = 1
                index_by_id[node] = len(path)
                path.append(node)
                stack.append(iter(sorted(adjacency[node])))
            elif node_state == 1:
                cycle = path[index_by_id[node] :]
                normalized = _normalize_cycle(cycle)
                if normalized not in seen:
                    seen.add(normalized)
                    cycles.append(cycle)
    return cycles


class DependencyGraph:
    """Prerequisite edges over task ids, kept acyclic.

    ``add_edge(a, b)`` means task ``a`` cannot be ready until ``b`` is completed.
    Tasks are referenced by id only; the graph never creates or removes tasks.
    """

    def __init__(self, state: EngineState) -> None:
        self._state = state

    def add_edge(self, task_id: str, depends_on_id: str) -> None:
        """Add a prerequisite edge.

        Raises:
            ValidationError: if either task is unknown or both ids are equal
            CycleError: if depends_on_id already (transitively) depends on task_id
        """
        with self._state.mutation():
            self._state.require_task(task_id)
            self._state.require_task(depends_on_id, role="Prerequisite task")
            if task_id == depends_on_id:
                logger.warning("Rejected self dependency", task_id=task_id)
                raise ValidationError(f"Task {task_id} cannot depend on itself")
            if depends_on_id in self._state.prerequisites.get(task_id, ()):
                logger.debug("Dependency already present", task_id=task_id, depends_on_id=depends_on_id)
                return

            path = find_path(self._state.prerequisites, depends_on_id, task_id)
            if path is not None:
                cycle = [task_id] + path
                logger.warning("Rejected dependency cycle", task_id=task_id, depends_on_id=depends_on_id, cycle=cycle)
                raise CycleError(
                    f"Task {task_id} cannot depend on {depends_on_id}: {' -> '.join(cycle)}",
                    path=cycle,
                )

            add_pair(self._state.prerequisites, task_id, depends_on_id)
            add_pair(self._state.dependents, depends_on_id, task_id)
            self._state.record(Change(DEPENDENCY, INSERT, DependencyEdge(task_id, depends_on_id).to_dict()))
            logger.info("Dependency added", task_id=task_id, depends_on_id=depends_on_id)

    def remove_edge(self, task_id: str, depends_on_id: str) -> None:
        """Remove a prerequisite edge; a missing edge is a no-op."""
        with self._state.mutation():
            if depends_on_id not in self._state.prerequisites.get(task_id, ()):
                logger.debug("Dependency not present", task_id=task_id, depends_on_id=depends_on_id)
                return
            self._unlink(task_id, depends_on_id)
            logger.info("Dependency removed", task_id=task_id, depends_on_id=depends_on_id)

    def _unlink(self, task_id: str, depends_on_id: str) -> None:
        discard_pair(self._state.prerequisites, task_id, depends_on_id)
        discard_pair(self._state.dependents, depends_on_id, task_id)
        self._state.record(Change(DEPENDENCY, DELETE, DependencyEdge(task_id, depends_on_id).to_dict()))

    def detach(self, task_id: str) -> None:
        """Drop every edge touching a task. Called by the task store on delete."""
        with self._state.mutation():
            for depends_on_id in sorted(self._state.prerequisites.get(task_id, ())):
                self._unlink(task_id, depends_on_id)
            for dependent_id in sorted(self._state.dependents.get(task_id, ())):
                self._unlink(dependent_id, task_id)

    def _is_ready(self, task: Task) -> bool:
        if task.status.terminal:
            return False
        return all(
            self._state.tasks[prerequisite].status is TaskStatus.COMPLETED
            for prerequisite in self._state.prerequisites.get(task.id, ())
        )

    def is_ready(self, task_id: str) -> bool | None:
        """True if the task is non-terminal and every direct prerequisite is completed.

        Returns None for an unknown task.
        """
        with self._state.reading():
            task = self._state.tasks.get(task_id)
            if task is None:
                return None
            return self._is_ready(task)

    def is_blocked(self, task_id: str) -> bool | None:
        """True if the task is non-terminal and some direct prerequisite is not completed."""
        with self._state.reading():
            task = self._state.tasks.get(task_id)
            if task is None:
                return None
            return not task.status.terminal and not self._is_ready(task)

    def prerequisites_of(self, task_id: str) -> set[Task] | None:
        with self._state.reading():
            if task_id not in self._state.tasks:
                return None
            return {self._state.tasks[i].copy() for i in self._state.prerequisites.get(task_id, ())}

    def dependents_of(self, task_id: str) -> set[Task] | None:
        with self._state.reading():
            if task_id not in self._state.tasks:
                return None
            return {self._state.tasks[i].copy() for i in self._state.dependents.get(task_id, ())}

    def edges(self) -> list[DependencyEdge]:
        with self._state.reading():
            return [
                DependencyEdge(task_id, depends_on_id)
                for task_id in sorted(self._state.prerequisites)
                for depends_on_id in sorted(self._state.prerequisites[task_id])
            ]
