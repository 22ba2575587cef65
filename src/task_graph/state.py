"""Shared in-memory state of a task engine."""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

import structlog

from task_graph.errors import EngineClosedError, ValidationError
from task_graph.models import Entity, Task, ensure_utc, utcnow
from task_graph.persistence import Change

logger = structlog.get_logger()

ChangeSink = Callable[[list[Change]], None]


class Clock:
    """Strictly increasing UTC clock.

    Consecutive readings never compare equal, so a window opened by one
    operation and closed by the next always has start < end.
    """

    def __init__(self, source: Callable[[], datetime] | None = None) -> None:
        self._source = source or utcnow
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = ensure_utc(self._source())
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current

    def observe(self, value: datetime | None) -> None:
        """Never hand out a reading at or before an already stored timestamp."""
        if value is not None and (self._last is None or value > self._last):
            self._last = value


def add_pair(index: dict[str, set[str]], key: str, value: str) -> None:
    index.setdefault(key, set()).add(value)


def discard_pair(index: dict[str, set[str]], key: str, value: str) -> None:
    values = index.get(key)
    if values is None:
        return
    values.discard(value)
    if not values:
        del index[key]


class EngineState:
    """Arena of records plus the adjacency sets that link them.

    Tasks and entities are stored by id. The hierarchy, dependency edges and
    link rows are separate id-keyed sets, indexed in both directions.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.lock = threading.RLock()
        self.clock = clock or Clock()
        self.sink: ChangeSink | None = None
        self.is_open = False

        self.tasks: dict[str, Task] = {}
        self.entities: dict[str, Entity] = {}
        self.children: dict[str, set[str]] = {}
        self.prerequisites: dict[str, set[str]] = {}
        self.dependents: dict[str, set[str]] = {}
        self.task_tags: dict[str, set[str]] = {}
        self.tag_tasks: dict[str, set[str]] = {}
        self.task_entities: dict[str, set[str]] = {}
        self.entity_tasks: dict[str, set[str]] = {}

        self._changes: list[Change] = []
        self._depth = 0

    def _records(self) -> tuple[dict[str, Task], dict[str, Entity]]:
        return self.tasks, self.entities

    def _adjacency(self) -> tuple[dict[str, set[str]], ...]:
        return (
            self.children,
            self.prerequisites,
            self.dependents,
            self.task_tags,
            self.tag_tasks,
            self.task_entities,
            self.entity_tasks,
        )

    def clear(self) -> None:
        for index in (*self._records(), *self._adjacency()):
            index.clear()

    def _save_point(self) -> tuple[list[dict], list[dict[str, set[str]]]]:
        # Records are replaced on commit, never edited in place, so shallow copies suffice
        records = [dict(index) for index in self._records()]
        adjacency = [{key: set(values) for key, values in index.items()} for index in self._adjacency()]
        return records, adjacency

    def _roll_back(self, save_point: tuple[list[dict], list[dict[str, set[str]]]]) -> None:
        records, adjacency = save_point
        for index, saved in zip((*self._records(), *self._adjacency()), (*records, *adjacency)):
            index.clear()
            index.update(saved)

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise EngineClosedError("Task engine is not open")

    @contextmanager
    def reading(self) -> Iterator[None]:
        with self.lock:
            self._ensure_open()
            yield

    @contextmanager
    def mutation(self) -> Iterator[None]:
        """Hold the writer lock for one mutation and publish its changes on success.

        Nested mutations (cascades) join the outermost one; changes are handed to
        the sink once, in commit order, when the outermost mutation finishes. If
        the mutation or the sink raises, every index is restored to the state it
        had when the outermost mutation began.
        """
        with self.lock:
            self._ensure_open()
            outermost = self._depth == 0
            save_point = self._save_point() if outermost else None
            self._depth += 1
            try:
                yield
                if outermost and self._changes:
                    changes, self._changes = self._changes, []
                    if self.sink is not None:
                        self.sink(changes)
            except BaseException as e:
                if outermost:
                    self._changes.clear()
                    self._roll_back(save_point)
                    logger.debug("Mutation rolled back", error=str(e))
                raise
            finally:
                self._depth -= 1

    def record(self, change: Change) -> None:
        self._changes.append(change)

    def require_task(self, task_id: str | None, role: str = "Task") -> Task:
        task = self.tasks.get(task_id) if task_id is not None else None
        if task is None:
            logger.warning("Unknown task referenced", task_id=task_id, role=role)
            raise ValidationError(f"{role} {task_id!r} does not exist")
        return task

    def require_entity(self, entity_id: str | None) -> Entity:
        entity = self.entities.get(entity_id) if entity_id is not None else None
        if entity is None:
            logger.warning("Unknown entity referenced", entity_id=entity_id)
            raise ValidationError(f"Entity {entity_id!r} does not exist")
        return entity
