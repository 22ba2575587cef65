"""CLI for task-graph."""

import sys
from datetime import datetime
from typing import Annotated, Literal

import structlog
from cyclopts import App, Parameter

from task_graph.config import get_config
from task_graph.config_commands import config_app
from task_graph.dep_commands import dep_app
from task_graph.engine import TaskEngine
from task_graph.entity_commands import entity_app
from task_graph.errors import TaskGraphError, ValidationError
from task_graph.models import Task, TaskStatus
from task_graph.persistence import YamlPersistence
from task_graph.tag_commands import tag_app
from task_graph.task_commands import task_app

logger = structlog.get_logger()

app = App(
    help="task-graph - Tasks, prerequisites and the entities they refer to",
)

app.command(task_app)
app.command(dep_app)
app.command(tag_app)
app.command(entity_app)
app.command(config_app)

STATUS_MARKERS = {
    TaskStatus.PENDING: "○",
    TaskStatus.IN_PROGRESS: "◐",
    TaskStatus.COMPLETED: "●",
    TaskStatus.CANCELLED: "✕",
}


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_engine() -> TaskEngine:
    """Build an engine over the configured YAML store. Use it as a context manager."""
    config = get_config()
    path = config.store_path()
    logger.debug("Using task store", path=str(path))
    return TaskEngine(YamlPersistence(path), search_match=config.get("search.match") or "substring")


def parse_time(value: str | None) -> datetime | None:
    """Parse an ISO-8601 command line value; empty means unset."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid time '{value}', expected ISO-8601 such as 2025-01-31T09:00") from e


def format_task(task: Task) -> str:
    line = f"{STATUS_MARKERS[task.status]} {task.id}: {task.title}"
    if task.scheduled_start:
        line += f" (from {task.scheduled_start.isoformat(timespec='minutes')})"
    return line


def print_tasks(tasks: list[Task], empty: str) -> None:
    if not tasks:
        print(empty)
        return
    print(f"Found {len(tasks)} task(s):\n")
    for task in tasks:
        print(format_task(task))


@app.command
def ready() -> None:
    """List tasks whose prerequisites are all completed."""
    with get_engine() as engine:
        print_tasks(engine.queries.ready_queue(), "No ready tasks")


@app.command
def blocked() -> None:
    """List tasks waiting on an incomplete prerequisite."""
    with get_engine() as engine:
        tasks = engine.queries.blocked_list()
        if not tasks:
            print("No blocked tasks")
            return
        print(f"Found {len(tasks)} blocked task(s):\n")
        for task in tasks:
            waiting = sorted(
                p.id for p in engine.dependencies.prerequisites_of(task.id) or set() if p.status != TaskStatus.COMPLETED
            )
            print(f"{format_task(task)} [waiting on {', '.join(waiting)}]")


@app.command
def active() -> None:
    """List every pending or in-progress task."""
    with get_engine() as engine:
        print_tasks(engine.queries.active_queue(), "No active tasks")


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    try:
        app(tokens)
    except TaskGraphError as e:
        print(f"Error: {e}")
        sys.exit(1)


def run() -> None:
    app.meta()


if __name__ == "__main__":
    run()
