"""Exception types raised by the task graph engine."""


class TaskGraphError(Exception):
    """Base class for every rejected engine operation."""


class ValidationError(TaskGraphError, ValueError):
    """Malformed input, blank field, unknown id or bad time window."""


class InvalidTransitionError(TaskGraphError):
    """Status change that the task lifecycle does not allow."""

    def __init__(self, task_id: str, current: str, target: str) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id} cannot move from '{current}' to '{target}'")


class CycleError(TaskGraphError, ValueError):
    """Dependency or hierarchy edge that would close a cycle."""

    def __init__(self, message: str, path: list[str] | None = None) -> None:
        self.path = path or []
        super().__init__(message)


class EngineClosedError(TaskGraphError, RuntimeError):
    """Engine used before open() or after close()."""


class PersistenceError(TaskGraphError):
    """Persistence collaborator failed to read or write the store."""


class ConfigError(TaskGraphError):
    """Settings file could not be read or written."""
