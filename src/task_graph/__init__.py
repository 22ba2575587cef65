"""Task and dependency graph engine."""

from task_graph.engine import TaskEngine
from task_graph.errors import (
    ConfigError,
    CycleError,
    EngineClosedError,
    InvalidTransitionError,
    PersistenceError,
    TaskGraphError,
    ValidationError,
)
from task_graph.models import SUGGESTED_ENTITY_TYPES, DependencyEdge, Entity, Task, TaskStatus
from task_graph.persistence import Change, MemoryPersistence, Persistence, Snapshot, YamlPersistence

__all__ = [
    "SUGGESTED_ENTITY_TYPES",
    "Change",
    "ConfigError",
    "CycleError",
    "DependencyEdge",
    "EngineClosedError",
    "Entity",
    "InvalidTransitionError",
    "MemoryPersistence",
    "Persistence",
    "PersistenceError",
    "Snapshot",
    "Task",
    "TaskEngine",
    "TaskGraphError",
    "TaskStatus",
    "ValidationError",
    "YamlPersistence",
]
