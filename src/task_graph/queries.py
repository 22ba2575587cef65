"""Read-only queries composed over the task store, graph and link index."""

from collections.abc import Iterator

import structlog

from task_graph.errors import ValidationError
from task_graph.graph import DependencyGraph
from task_graph.models import Entity, Task, TaskStatus, recency_key, schedule_key
from task_graph.state import EngineState

logger = structlog.get_logger()

MATCH_POLICIES = ("substring", "prefix")


def check_match_policy(match: str) -> str:
    if match not in MATCH_POLICIES:
        raise ValidationError(f"Unknown match policy '{match}'. Expected one of: {', '.join(MATCH_POLICIES)}")
    return match


class QueryLayer:
    """Structural queries. Nothing here mutates engine state."""

    def __init__(self, state: EngineState, graph: DependencyGraph, search_match: str = "substring") -> None:
        self._state = state
        self._graph = graph
        self.search_match = check_match_policy(search_match)

    def ready_queue(self) -> list[Task]:
        """Ready tasks: scheduled ones first by start time, unscheduled last, newest first on ties."""
        with self._state.reading():
            ready = [task.copy() for task in self._state.tasks.values() if self._graph.is_ready(task.id)]
            logger.debug("Ready queue computed", count=len(ready))
            return sorted(ready, key=schedule_key)

    def blocked_list(self) -> list[Task]:
        """Blocked tasks, in the same order as the ready queue."""
        with self._state.reading():
            blocked = [task.copy() for task in self._state.tasks.values() if self._graph.is_blocked(task.id)]
            logger.debug("Blocked list computed", count=len(blocked))
            return sorted(blocked, key=schedule_key)

    def active_queue(self) -> list[Task]:
        """Every non-terminal task regardless of prerequisites."""
        with self._state.reading():
            active = [task.copy() for task in self._state.tasks.values() if not task.status.terminal]
            return sorted(active, key=schedule_key)

    def walk(self, task_id: str) -> Iterator[tuple[int, Task]]:
        """Yield (depth, task) pairs of the hierarchy rooted at task_id, depth first.

        The whole walk is collected under the lock before anything is yielded.
        """
        with self._state.reading():
            if task_id not in self._state.tasks:
                return
            visited: list[tuple[int, Task]] = []
            stack = [(0, task_id)]
            while stack:
                depth, current = stack.pop()
                visited.append((depth, self._state.tasks[current].copy()))
                kids = sorted(
                    (self._state.tasks[i] for i in self._state.children.get(current, ())),
                    key=schedule_key,
                    reverse=True,
                )
                stack.extend((depth + 1, kid.id) for kid in kids)
        yield from visited

    def subtree(self, task_id: str) -> list[Task] | None:
        """Depth-first (pre-order) listing of the hierarchy rooted at task_id."""
        with self._state.reading():
            if task_id not in self._state.tasks:
                return None
            return [task for _, task in self.walk(task_id)]

    def search(self, pattern: str, match: str | None = None) -> list[Entity]:
        """Entities whose name or any alias matches pattern, case-insensitively.

        Args:
            pattern: Text to look for
            match: "substring" or "prefix"; defaults to the configured policy

        Returns:
            Matching entities ordered by name
        """
        match = check_match_policy(match or self.search_match)
        needle = pattern.strip().casefold()

        def matches(text: str) -> bool:
            text = text.casefold()
            return text.startswith(needle) if match == "prefix" else needle in text

        with self._state.reading():
            found = [
                entity.copy()
                for entity in self._state.entities.values()
                if matches(entity.name) or any(matches(alias) for alias in entity.aliases)
            ]
        logger.debug("Entity search", pattern=pattern, match=match, count=len(found))
        return sorted(found, key=lambda e: (e.name.casefold(), e.id))

    def list_tasks(
        self,
        status: TaskStatus | str | None = None,
        tag: str | None = None,
        entity_id: str | None = None,
        parent_id: str | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        """Filtered task listing, most recently updated first.

        All given filters must match. Unknown tag, entity or parent ids simply
        match nothing. A limit of 0 returns nothing; negative limits are rejected.
        """
        if limit is not None and limit < 0:
            raise ValidationError(f"Limit must not be negative, got {limit}")
        wanted = TaskStatus.parse(status) if status is not None else None
        with self._state.reading():
            candidates = self._state.tasks.values()
            if tag is not None:
                ids = self._state.tag_tasks.get(tag.strip(), set())
                candidates = [task for task in candidates if task.id in ids]
            if entity_id is not None:
                ids = self._state.entity_tasks.get(entity_id, set())
                candidates = [task for task in candidates if task.id in ids]
            if parent_id is not None:
                candidates = [task for task in candidates if task.parent_id == parent_id]
            if wanted is not None:
                candidates = [task for task in candidates if task.status is wanted]
            tasks = sorted((task.copy() for task in candidates), key=recency_key)
        if limit is not None:
            tasks = tasks[:limit]
        return tasks
