"""Persistence collaborators for the task engine.

The engine loads a full snapshot on open and then reports every committed
mutation as an ordered list of changes. Implementations decide how to make
those durable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from task_graph.errors import PersistenceError, ValidationError

logger = structlog.get_logger()

TASK = "task"
ENTITY = "entity"
DEPENDENCY = "dependency"
TAG = "tag"
ENTITY_LINK = "entity_link"

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"

# Fields that identify a row of each kind
KEY_FIELDS: dict[str, tuple[str, ...]] = {
    TASK: ("id",),
    ENTITY: ("id",),
    DEPENDENCY: ("taskId", "dependsOnId"),
    TAG: ("taskId", "tag"),
    ENTITY_LINK: ("taskId", "entityId"),
}

# Snapshot section holding each kind
SECTIONS: dict[str, str] = {
    TASK: "tasks",
    ENTITY: "entities",
    DEPENDENCY: "dependencies",
    TAG: "tags",
    ENTITY_LINK: "entity_links",
}


@dataclass(frozen=True)
class Change:
    """One committed row change: kind of record, operation and the serialized record."""

    kind: str
    op: str
    record: dict[str, Any]

    def key(self) -> tuple[Any, ...]:
        return tuple(self.record.get(name) for name in KEY_FIELDS[self.kind])


@dataclass
class Snapshot:
    """Full serialized engine state, one list of rows per record kind."""

    tasks: list[dict[str, Any]] = field(default_factory=list)
    entities: list[dict[str, Any]] = field(default_factory=list)
    dependencies: list[dict[str, Any]] = field(default_factory=list)
    tags: list[dict[str, Any]] = field(default_factory=list)
    entity_links: list[dict[str, Any]] = field(default_factory=list)

    def apply(self, change: Change) -> None:
        """Fold one change into the snapshot rows."""
        if change.kind not in SECTIONS:
            raise ValidationError(f"Unknown change kind: {change.kind}")
        rows: list[dict[str, Any]] = getattr(self, SECTIONS[change.kind])
        key_fields = KEY_FIELDS[change.kind]
        key = change.key()
        position = next(
            (i for i, row in enumerate(rows) if tuple(row.get(name) for name in key_fields) == key),
            None,
        )

        if change.op == DELETE:
            if position is not None:
                del rows[position]
        elif change.op in (INSERT, UPDATE):
            if position is None:
                rows.append(dict(change.record))
            else:
                rows[position] = dict(change.record)
        else:
            raise ValidationError(f"Unknown change operation: {change.op}")

    def to_dict(self) -> dict[str, Any]:
        return {section: list(getattr(self, section)) for section in SECTIONS.values()}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Snapshot":
        data = data or {}
        sections = {}
        for section in SECTIONS.values():
            rows = data.get(section) or []
            if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
                raise ValidationError(f"Snapshot section '{section}' must be a list of mappings")
            sections[section] = [dict(row) for row in rows]
        return cls(**sections)


class Persistence(ABC):
    """Abstract base class for persistence collaborators."""

    @abstractmethod
    def load(self) -> Snapshot:
        """Return a full snapshot of the stored state."""
        pass

    @abstractmethod
    def apply(self, changes: list[Change]) -> None:
        """Record the changes of one committed mutation, in commit order."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Make everything recorded so far durable."""
        pass


class MemoryPersistence(Persistence):
    """Keeps the snapshot in memory. Useful for embedding and tests."""

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self.snapshot = snapshot or Snapshot()

    def load(self) -> Snapshot:
        logger.debug("Loading in-memory snapshot", tasks=len(self.snapshot.tasks))
        return Snapshot.from_dict(self.snapshot.to_dict())

    def apply(self, changes: list[Change]) -> None:
        for change in changes:
            self.snapshot.apply(change)

    def flush(self) -> None:
        pass


class YamlPersistence(MemoryPersistence):
    """Stores the snapshot as one YAML document, written through on every mutation."""

    def __init__(self, path: Path | str) -> None:
        """Initialize the YAML store.

        Args:
            path: Store file; created (with its directory) on first write
        """
        super().__init__()
        self.path = Path(path)
        logger.debug("YAML store initialized", path=str(self.path))

    def load(self) -> Snapshot:
        if not self.path.exists():
            logger.debug("Store file does not exist, starting empty", path=str(self.path))
            self.snapshot = Snapshot()
            return super().load()

        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load store", path=str(self.path), error=str(e))
            raise PersistenceError(f"Failed to load store from {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError(f"Store file {self.path} does not contain a mapping")
        self.snapshot = Snapshot.from_dict(data)
        logger.debug("Store loaded successfully", path=str(self.path), tasks=len(self.snapshot.tasks))
        return super().load()

    def apply(self, changes: list[Change]) -> None:
        # The cached snapshot only advances once the file write succeeded
        pending = Snapshot.from_dict(self.snapshot.to_dict())
        for change in changes:
            pending.apply(change)
        self._save(pending)
        self.snapshot = pending

    def flush(self) -> None:
        self._save(self.snapshot)

    def _save(self, snapshot: Snapshot) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.safe_dump(snapshot.to_dict(), f, default_flow_style=False, sort_keys=False)
            logger.debug("Store saved successfully", path=str(self.path))
        except OSError as e:
            logger.error("Failed to save store", path=str(self.path), error=str(e))
            raise PersistenceError(f"Failed to save store to {self.path}: {e}") from e
