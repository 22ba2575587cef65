"""Link index: task <-> tag and task <-> entity associations."""

import structlog

from task_graph.errors import ValidationError
from task_graph.models import Entity, Task, is_blank, recency_key
from task_graph.persistence import DELETE, ENTITY_LINK, INSERT, TAG, Change
from task_graph.state import EngineState, add_pair, discard_pair

logger = structlog.get_logger()


def normalize_tag(tag: str) -> str:
    if is_blank(tag):
        raise ValidationError("Tag must not be blank")
    return tag.strip()


class LinkIndex:
    """Many-to-many association rows between tasks, tags and entities.

    Rows are idempotent sets: adding a present row or removing a missing one is
    a no-op. The index never owns the tasks or entities it points at.
    """

    def __init__(self, state: EngineState) -> None:
        self._state = state

    def add_tag(self, task_id: str, tag: str) -> None:
        with self._state.mutation():
            self._state.require_task(task_id)
            tag = normalize_tag(tag)
            if tag in self._state.task_tags.get(task_id, ()):
                logger.debug("Tag already present", task_id=task_id, tag=tag)
                return
            add_pair(self._state.task_tags, task_id, tag)
            add_pair(self._state.tag_tasks, tag, task_id)
            self._state.record(Change(TAG, INSERT, {"taskId": task_id, "tag": tag}))
            logger.info("Tag added", task_id=task_id, tag=tag)

    def remove_tag(self, task_id: str, tag: str) -> None:
        with self._state.mutation():
            self._state.require_task(task_id)
            tag = normalize_tag(tag)
            if tag not in self._state.task_tags.get(task_id, ()):
                logger.debug("Tag not present", task_id=task_id, tag=tag)
                return
            self._untag(task_id, tag)
            logger.info("Tag removed", task_id=task_id, tag=tag)

    def add_entity_link(self, task_id: str, entity_id: str) -> None:
        with self._state.mutation():
            self._state.require_task(task_id)
            self._state.require_entity(entity_id)
            if entity_id in self._state.task_entities.get(task_id, ()):
                logger.debug("Entity link already present", task_id=task_id, entity_id=entity_id)
                return
            add_pair(self._state.task_entities, task_id, entity_id)
            add_pair(self._state.entity_tasks, entity_id, task_id)
            self._state.record(Change(ENTITY_LINK, INSERT, {"taskId": task_id, "entityId": entity_id}))
            logger.info("Entity link added", task_id=task_id, entity_id=entity_id)

    def remove_entity_link(self, task_id: str, entity_id: str) -> None:
        with self._state.mutation():
            self._state.require_task(task_id)
            self._state.require_entity(entity_id)
            if entity_id not in self._state.task_entities.get(task_id, ()):
                logger.debug("Entity link not present", task_id=task_id, entity_id=entity_id)
                return
            self._unlink_entity(task_id, entity_id)
            logger.info("Entity link removed", task_id=task_id, entity_id=entity_id)

    def _untag(self, task_id: str, tag: str) -> None:
        discard_pair(self._state.task_tags, task_id, tag)
        discard_pair(self._state.tag_tasks, tag, task_id)
        self._state.record(Change(TAG, DELETE, {"taskId": task_id, "tag": tag}))

    def _unlink_entity(self, task_id: str, entity_id: str) -> None:
        discard_pair(self._state.task_entities, task_id, entity_id)
        discard_pair(self._state.entity_tasks, entity_id, task_id)
        self._state.record(Change(ENTITY_LINK, DELETE, {"taskId": task_id, "entityId": entity_id}))

    def detach_task(self, task_id: str) -> None:
        """Drop every tag and entity link of a task. Called by the task store on delete."""
        with self._state.mutation():
            for tag in sorted(self._state.task_tags.get(task_id, ())):
                self._untag(task_id, tag)
            for entity_id in sorted(self._state.task_entities.get(task_id, ())):
                self._unlink_entity(task_id, entity_id)

    def detach_entity(self, entity_id: str) -> None:
        """Drop every task link of an entity. Called by the entity registry on delete."""
        with self._state.mutation():
            for task_id in sorted(self._state.entity_tasks.get(entity_id, ())):
                self._unlink_entity(task_id, entity_id)

    def _tasks(self, task_ids: set[str]) -> list[Task]:
        tasks = [self._state.tasks[task_id].copy() for task_id in task_ids]
        return sorted(tasks, key=recency_key)

    def tasks_by_tag(self, tag: str) -> list[Task]:
        """Tasks carrying a tag, most recently updated first."""
        with self._state.reading():
            return self._tasks(self._state.tag_tasks.get(tag.strip(), set()))

    def tasks_by_entity(self, entity_id: str) -> list[Task] | None:
        """Tasks linked to an entity, most recently updated first. None for an unknown entity."""
        with self._state.reading():
            if entity_id not in self._state.entities:
                return None
            return self._tasks(self._state.entity_tasks.get(entity_id, set()))

    def tags_of(self, task_id: str) -> list[str] | None:
        with self._state.reading():
            if task_id not in self._state.tasks:
                return None
            return sorted(self._state.task_tags.get(task_id, ()))

    def entities_of(self, task_id: str) -> list[Entity] | None:
        with self._state.reading():
            if task_id not in self._state.tasks:
                return None
            entities = [self._state.entities[i].copy() for i in self._state.task_entities.get(task_id, ())]
            return sorted(entities, key=recency_key)

    def tags(self) -> list[str]:
        """Every tag in use, sorted."""
        with self._state.reading():
            return sorted(self._state.tag_tasks)
