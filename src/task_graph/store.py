"""Task store: task records, the status lifecycle and the parent/child hierarchy."""

import uuid
from datetime import datetime

import structlog

from task_graph.errors import CycleError, InvalidTransitionError, ValidationError
from task_graph.graph import DependencyGraph, find_path
from task_graph.links import LinkIndex
from task_graph.models import Task, TaskStatus, ensure_utc, is_blank, schedule_key
from task_graph.persistence import DELETE, INSERT, TASK, UPDATE, Change
from task_graph.state import EngineState, add_pair, discard_pair

logger = structlog.get_logger()

LEGAL_TRANSITIONS = {
    (TaskStatus.PENDING, TaskStatus.IN_PROGRESS),
    (TaskStatus.PENDING, TaskStatus.COMPLETED),
    (TaskStatus.PENDING, TaskStatus.CANCELLED),
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED),
}


def new_task_id() -> str:
    return f"t-{uuid.uuid4().hex[:10]}"


class TaskStore:
    """Owns task identity, status transitions and hierarchy pointers.

    Every mutation builds a candidate copy of the record, validates it against
    the current state and only then swaps it in, so a rejected call leaves the
    store exactly as it was.
    """

    def __init__(self, state: EngineState, graph: DependencyGraph, links: LinkIndex) -> None:
        self._state = state
        self._graph = graph
        self._links = links

    def _commit(self, task: Task, op: str) -> Task:
        task.validate()
        self._state.tasks[task.id] = task
        self._state.record(Change(TASK, op, task.to_dict()))
        return task.copy()

    def create(
        self,
        title: str,
        description: str | None = None,
        parent_id: str | None = None,
        task_id: str | None = None,
        note: str | None = None,
    ) -> Task:
        """Create a pending task.

        Args:
            title: Non-blank title
            description: Optional description
            parent_id: Existing task to nest the new task under
            task_id: Explicit id; generated when omitted
            note: Free-form note

        Raises:
            ValidationError: on a blank title, an unknown parent, or a blank or taken id
        """
        with self._state.mutation():
            if is_blank(title):
                logger.warning("Rejected task with blank title")
                raise ValidationError("Task title must not be blank")
            if task_id is None:
                task_id = new_task_id()
                while task_id in self._state.tasks:
                    task_id = new_task_id()
            elif is_blank(task_id):
                raise ValidationError("Task id must not be blank")
            elif task_id in self._state.tasks:
                logger.warning("Duplicate task id", task_id=task_id)
                raise ValidationError(f"Task {task_id!r} already exists")
            if parent_id is not None:
                self._state.require_task(parent_id, role="Parent task")

            now = self._state.clock.now()
            task = Task(
                id=task_id,
                title=title,
                description=description,
                parent_id=parent_id,
                note=note,
                created_at=now,
                updated_at=now,
            )
            created = self._commit(task, INSERT)
            if parent_id is not None:
                add_pair(self._state.children, parent_id, task_id)
            logger.info("Task created", task_id=task_id, title=title, parent_id=parent_id)
            return created

    def get(self, task_id: str) -> Task | None:
        with self._state.reading():
            task = self._state.tasks.get(task_id)
            logger.debug("Task lookup", task_id=task_id, found=task is not None)
            return task.copy() if task is not None else None

    def update(
        self,
        task_id: str,
        title: str | None = None,
        description: str | None = None,
        note: str | None = None,
    ) -> Task:
        """Edit the free-text fields of a task. Always bumps updated_at."""
        with self._state.mutation():
            candidate = self._state.require_task(task_id).copy()
            if title is not None:
                candidate.title = title
            if description is not None:
                candidate.description = description
            if note is not None:
                candidate.note = note
            candidate.updated_at = self._state.clock.now()
            updated = self._commit(candidate, UPDATE)
            logger.info("Task updated", task_id=task_id)
            return updated

    def transition(self, task_id: str, target: TaskStatus | str) -> Task:
        """Move a task to another status.

        Entering in_progress stamps actual_start; entering completed or cancelled
        stamps completed_at and actual_end. Terminal tasks never change status.

        Raises:
            ValidationError: for an unknown task or status value
            InvalidTransitionError: if the lifecycle does not allow the move
        """
        target = TaskStatus.parse(target)
        with self._state.mutation():
            current = self._state.require_task(task_id)
            if (current.status, target) not in LEGAL_TRANSITIONS:
                logger.warning(
                    "Rejected status transition", task_id=task_id, current=current.status.value, target=target.value
                )
                raise InvalidTransitionError(task_id, current.status.value, target.value)

            now = self._state.clock.now()
            candidate = current.copy()
            candidate.status = target
            if target is TaskStatus.IN_PROGRESS and candidate.actual_start is None:
                candidate.actual_start = now
            if target.terminal:
                candidate.completed_at = now
                if candidate.actual_end is None:
                    candidate.actual_end = now
            candidate.updated_at = now
            moved = self._commit(candidate, UPDATE)
            logger.info("Task status changed", task_id=task_id, previous=current.status.value, status=target.value)
            return moved

    def start(self, task_id: str) -> Task:
        return self.transition(task_id, TaskStatus.IN_PROGRESS)

    def complete(self, task_id: str) -> Task:
        return self.transition(task_id, TaskStatus.COMPLETED)

    def cancel(self, task_id: str) -> Task:
        return self.transition(task_id, TaskStatus.CANCELLED)

    def set_schedule(self, task_id: str, start: datetime | None = None, end: datetime | None = None) -> Task:
        """Set the planned window. None clears a bound.

        Raises:
            ValidationError: if both bounds are given and start >= end
        """
        with self._state.mutation():
            candidate = self._state.require_task(task_id).copy()
            candidate.scheduled_start = ensure_utc(start)
            candidate.scheduled_end = ensure_utc(end)
            candidate.updated_at = self._state.clock.now()
            scheduled = self._commit(candidate, UPDATE)
            logger.info("Task scheduled", task_id=task_id, start=start, end=end)
            return scheduled

    def reparent(self, task_id: str, new_parent_id: str | None = None) -> Task:
        """Move a task under another parent, or to the top level with None.

        Raises:
            ValidationError: if the new parent is the task itself or unknown
            CycleError: if the new parent is a descendant of the task
        """
        with self._state.mutation():
            current = self._state.require_task(task_id)
            if new_parent_id is not None:
                if new_parent_id == task_id:
                    logger.warning("Rejected self parent", task_id=task_id)
                    raise ValidationError(f"Task {task_id} cannot be its own parent")
                self._state.require_task(new_parent_id, role="Parent task")
                path = find_path(self._state.children, task_id, new_parent_id)
                if path is not None:
                    logger.warning("Rejected hierarchy cycle", task_id=task_id, new_parent_id=new_parent_id)
                    raise CycleError(
                        f"Task {new_parent_id} is a descendant of {task_id}: {' -> '.join(path)}",
                        path=path,
                    )
            if current.parent_id == new_parent_id:
                logger.debug("Parent unchanged", task_id=task_id, parent_id=new_parent_id)
                return current.copy()

            candidate = current.copy()
            candidate.parent_id = new_parent_id
            candidate.updated_at = self._state.clock.now()
            moved = self._commit(candidate, UPDATE)
            if current.parent_id is not None:
                discard_pair(self._state.children, current.parent_id, task_id)
            if new_parent_id is not None:
                add_pair(self._state.children, new_parent_id, task_id)
            logger.info("Task reparented", task_id=task_id, previous=current.parent_id, parent_id=new_parent_id)
            return moved

    def delete(self, task_id: str) -> None:
        """Delete a task.

        Dependency edges and links touching the task go first, then its children
        are detached (parent_id cleared), then the record itself is removed.
        """
        with self._state.mutation():
            task = self._state.require_task(task_id)
            self._graph.detach(task_id)
            self._links.detach_task(task_id)

            for child_id in sorted(self._state.children.pop(task_id, set())):
                child = self._state.tasks[child_id].copy()
                child.parent_id = None
                child.updated_at = self._state.clock.now()
                self._commit(child, UPDATE)
            if task.parent_id is not None:
                discard_pair(self._state.children, task.parent_id, task_id)

            del self._state.tasks[task_id]
            self._state.record(Change(TASK, DELETE, task.to_dict()))
            logger.info("Task deleted", task_id=task_id)

    def children(self, task_id: str) -> list[Task] | None:
        """Direct children in queue order. None for an unknown task."""
        with self._state.reading():
            if task_id not in self._state.tasks:
                return None
            kids = [self._state.tasks[i].copy() for i in self._state.children.get(task_id, ())]
            return sorted(kids, key=schedule_key)

    def all(self) -> list[Task]:
        with self._state.reading():
            return [task.copy() for task in self._state.tasks.values()]
