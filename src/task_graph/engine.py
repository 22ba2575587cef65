"""Task engine: the single coordinating component over the shared state."""

from collections.abc import Callable
from datetime import datetime
from types import TracebackType

import structlog

from task_graph.errors import CycleError, ValidationError
from task_graph.graph import DependencyGraph, find_cycles
from task_graph.links import LinkIndex, normalize_tag
from task_graph.models import Entity, Task
from task_graph.persistence import MemoryPersistence, Persistence, Snapshot
from task_graph.queries import QueryLayer
from task_graph.registry import EntityRegistry
from task_graph.state import Clock, EngineState, add_pair
from task_graph.store import TaskStore

logger = structlog.get_logger()


class TaskEngine:
    """In-process task and dependency graph engine.

    Lifecycle: construct with a persistence collaborator, ``open()`` to load and
    validate its snapshot, use the components, ``close()`` to flush. All access
    goes through one re-entrant lock: mutations are exclusive, and queries
    serialize against them so they never see a half-applied change.

    Components:
        tasks: TaskStore
        dependencies: DependencyGraph
        links: LinkIndex
        entities: EntityRegistry
        queries: QueryLayer
    """

    def __init__(
        self,
        persistence: Persistence | None = None,
        clock: Callable[[], datetime] | None = None,
        search_match: str = "substring",
    ) -> None:
        self.persistence = persistence or MemoryPersistence()
        self._state = EngineState(clock=Clock(clock))
        self._state.sink = self.persistence.apply

        self.links = LinkIndex(self._state)
        self.dependencies = DependencyGraph(self._state)
        self.tasks = TaskStore(self._state, self.dependencies, self.links)
        self.entities = EntityRegistry(self._state, self.links)
        self.queries = QueryLayer(self._state, self.dependencies, search_match=search_match)

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    def open(self) -> "TaskEngine":
        """Load the persisted snapshot and start accepting calls.

        Raises:
            ValidationError: if a stored record breaks an invariant or references an unknown id
            CycleError: if the stored hierarchy or dependency edges contain a cycle
        """
        with self._state.lock:
            if self._state.is_open:
                return self
            snapshot = self.persistence.load()
            self._load(snapshot)
            self._state.is_open = True
            logger.info(
                "Task engine opened",
                tasks=len(self._state.tasks),
                entities=len(self._state.entities),
            )
            return self

    def close(self) -> None:
        with self._state.lock:
            if not self._state.is_open:
                return
            self.persistence.flush()
            self._state.is_open = False
            self._state.clear()
            logger.info("Task engine closed")

    def __enter__(self) -> "TaskEngine":
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def snapshot(self) -> Snapshot:
        """Serialize the current state in the persistence wire format."""
        with self._state.reading():
            return Snapshot(
                tasks=[task.to_dict() for task in self._state.tasks.values()],
                entities=[entity.to_dict() for entity in self._state.entities.values()],
                dependencies=[edge.to_dict() for edge in self.dependencies.edges()],
                tags=[
                    {"taskId": task_id, "tag": tag}
                    for task_id in sorted(self._state.task_tags)
                    for tag in sorted(self._state.task_tags[task_id])
                ],
                entity_links=[
                    {"taskId": task_id, "entityId": entity_id}
                    for task_id in sorted(self._state.task_entities)
                    for entity_id in sorted(self._state.task_entities[task_id])
                ],
            )

    def _load(self, snapshot: Snapshot) -> None:
        tasks: dict[str, Task] = {}
        for row in snapshot.tasks:
            task = Task.from_dict(row)
            if task.id in tasks:
                raise ValidationError(f"Duplicate task id in snapshot: {task.id}")
            tasks[task.id] = task

        entities: dict[str, Entity] = {}
        for row in snapshot.entities:
            entity = Entity.from_dict(row)
            if entity.id in entities:
                raise ValidationError(f"Duplicate entity id in snapshot: {entity.id}")
            entities[entity.id] = entity

        for task in tasks.values():
            if task.parent_id is not None and task.parent_id not in tasks:
                raise ValidationError(f"Task {task.id} has unknown parent {task.parent_id}")

        edges: set[tuple[str, str]] = set()
        for row in snapshot.dependencies:
            task_id, depends_on_id = row.get("taskId"), row.get("dependsOnId")
            if task_id not in tasks or depends_on_id not in tasks:
                raise ValidationError(f"Dependency {task_id} -> {depends_on_id} references an unknown task")
            if task_id == depends_on_id:
                raise ValidationError(f"Task {task_id} depends on itself")
            edges.add((task_id, depends_on_id))

        tags: set[tuple[str, str]] = set()
        for row in snapshot.tags:
            task_id = row.get("taskId")
            if task_id not in tasks:
                raise ValidationError(f"Tag row references unknown task {task_id}")
            tags.add((task_id, normalize_tag(str(row.get("tag") or ""))))

        entity_links: set[tuple[str, str]] = set()
        for row in snapshot.entity_links:
            task_id, entity_id = row.get("taskId"), row.get("entityId")
            if task_id not in tasks or entity_id not in entities:
                raise ValidationError(f"Entity link {task_id} -> {entity_id} references an unknown record")
            entity_links.add((task_id, entity_id))

        hierarchy = [(task.parent_id, task.id) for task in tasks.values() if task.parent_id is not None]
        for label, pairs in (("hierarchy", hierarchy), ("dependency", edges)):
            cycles = find_cycles(pairs)
            if cycles:
                logger.error("Stored graph contains cycles", graph=label, cycles=cycles)
                raise CycleError(f"Stored {label} contains a cycle: {' -> '.join(cycles[0])}", path=cycles[0])

        state = self._state
        state.clear()
        state.tasks.update(tasks)
        state.entities.update(entities)
        for parent_id, child_id in hierarchy:
            add_pair(state.children, parent_id, child_id)
        for task_id, depends_on_id in edges:
            add_pair(state.prerequisites, task_id, depends_on_id)
            add_pair(state.dependents, depends_on_id, task_id)
        for task_id, tag in tags:
            add_pair(state.task_tags, task_id, tag)
            add_pair(state.tag_tasks, tag, task_id)
        for task_id, entity_id in entity_links:
            add_pair(state.task_entities, task_id, entity_id)
            add_pair(state.entity_tasks, entity_id, task_id)
        for record in [*tasks.values(), *entities.values()]:
            state.clock.observe(record.updated_at)
            state.clock.observe(getattr(record, "completed_at", None))
        logger.debug("Snapshot loaded", edges=len(edges), tags=len(tags), entity_links=len(entity_links))
