"""Data models for the task graph."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from task_graph.errors import ValidationError

SUGGESTED_ENTITY_TYPES = ("person", "place", "organization", "project")

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)

    @classmethod
    def parse(cls, raw: "str | TaskStatus") -> "TaskStatus":
        try:
            return cls(raw)
        except ValueError as e:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(f"Unknown task status '{raw}'. Expected one of: {allowed}") from e


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_timestamp(raw: Any, field_name: str) -> datetime | None:
    """Parse an ISO-8601 string (or a datetime loaded by YAML) into UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    try:
        return ensure_utc(datetime.fromisoformat(str(raw)))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp for {field_name}: {raw!r}") from e


def _check_window(start: datetime | None, end: datetime | None, label: str) -> None:
    if start is not None and end is not None and start >= end:
        raise ValidationError(f"{label} start must be before its end ({start.isoformat()} >= {end.isoformat()})")


@dataclass
class Entity:
    """A canonical reference (person, place, organization, project, ...) that tasks point to."""

    id: str
    name: str
    type: str
    aliases: list[str] = field(default_factory=list)
    note: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __hash__(self) -> int:
        return hash(("entity", self.id))

    def copy(self) -> "Entity":
        return replace(self, aliases=list(self.aliases))

    def validate(self) -> None:
        if is_blank(self.id):
            raise ValidationError("Entity id must not be blank")
        if is_blank(self.name):
            raise ValidationError(f"Entity {self.id} name must not be blank")
        if is_blank(self.type):
            raise ValidationError(f"Entity {self.id} type must not be blank")
        if any(is_blank(alias) for alias in self.aliases):
            raise ValidationError(f"Entity {self.id} aliases must not be blank")
        if self.updated_at < self.created_at:
            raise ValidationError(f"Entity {self.id} updatedAt precedes createdAt")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "aliases": list(self.aliases),
            "note": self.note,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        aliases = data.get("aliases") or []
        if not isinstance(aliases, list):
            raise ValidationError(f"Entity {data.get('id')} aliases must be a list")
        created_at = parse_timestamp(data.get("createdAt"), "createdAt") or utcnow()
        entity = cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            type=str(data.get("type") or ""),
            aliases=[str(alias) for alias in aliases],
            note=data.get("note"),
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt"), "updatedAt") or created_at,
        )
        entity.validate()
        return entity


@dataclass
class Task:
    """A unit of work with a status lifecycle, a place in the hierarchy and time windows."""

    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    description: str | None = None
    parent_id: str | None = None
    scheduled_start: datetime | None = None
    scheduled_end: datetime | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    note: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    def __hash__(self) -> int:
        return hash(("task", self.id))

    def copy(self) -> "Task":
        return replace(self)

    def validate(self) -> None:
        """Check the per-record invariants.

        Raises:
            ValidationError: if any field or timestamp invariant is violated
        """
        if is_blank(self.id):
            raise ValidationError("Task id must not be blank")
        if is_blank(self.title):
            raise ValidationError(f"Task {self.id} title must not be blank")
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValidationError(f"Task {self.id} cannot be its own parent")
        _check_window(self.scheduled_start, self.scheduled_end, "Scheduled")
        _check_window(self.actual_start, self.actual_end, "Actual")
        if self.updated_at < self.created_at:
            raise ValidationError(f"Task {self.id} updatedAt precedes createdAt")
        if self.status.terminal != (self.completed_at is not None):
            raise ValidationError(f"Task {self.id} completedAt must be set exactly when status is terminal")
        if self.completed_at is not None and self.completed_at < self.created_at:
            raise ValidationError(f"Task {self.id} completedAt precedes createdAt")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "parentId": self.parent_id,
            "scheduledStart": format_timestamp(self.scheduled_start),
            "scheduledEnd": format_timestamp(self.scheduled_end),
            "actualStart": format_timestamp(self.actual_start),
            "actualEnd": format_timestamp(self.actual_end),
            "note": self.note,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "completedAt": format_timestamp(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        created_at = parse_timestamp(data.get("createdAt"), "createdAt") or utcnow()
        task = cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            status=TaskStatus.parse(data.get("status") or TaskStatus.PENDING),
            description=data.get("description"),
            parent_id=data.get("parentId") or None,
            scheduled_start=parse_timestamp(data.get("scheduledStart"), "scheduledStart"),
            scheduled_end=parse_timestamp(data.get("scheduledEnd"), "scheduledEnd"),
            actual_start=parse_timestamp(data.get("actualStart"), "actualStart"),
            actual_end=parse_timestamp(data.get("actualEnd"), "actualEnd"),
            note=data.get("note"),
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt"), "updatedAt") or created_at,
            completed_at=parse_timestamp(data.get("completedAt"), "completedAt"),
        )
        task.validate()
        return task


@dataclass(frozen=True)
class DependencyEdge:
    """Directed prerequisite edge: task_id depends on depends_on_id."""

    task_id: str
    depends_on_id: str

    def to_dict(self) -> dict[str, str]:
        return {"taskId": self.task_id, "dependsOnId": self.depends_on_id}


def schedule_key(task: Task) -> tuple[bool, datetime, float]:
    """Sort key for queues: scheduled first (earliest start), unscheduled last, newest first on ties."""
    return (task.scheduled_start is None, task.scheduled_start or _EARLIEST, -task.created_at.timestamp())


def recency_key(record: Task | Entity) -> float:
    """Sort key for "recently touched first" listings."""
    return -record.updated_at.timestamp()
