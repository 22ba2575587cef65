"""Task commands for the task-graph CLI."""

from cyclopts import App

task_app = App(name="task", help="Create, move and finish tasks")


@task_app.command
def create(
    title: str,
    description: str | None = None,
    parent: str | None = None,
    id: str | None = None,
    note: str | None = None,
) -> None:
    """Create a new pending task."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        task = engine.tasks.create(title, description=description, parent_id=parent, task_id=id, note=note)
    print(f"Created task {task.id}: {task.title}")


@task_app.command
def show(task_id: str) -> None:
    """Show a task with its links."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        task = engine.tasks.get(task_id)
        if task is None:
            print(f"Task {task_id} not found")
            return

        print(f"Task: {task.id}")
        print(f"Title: {task.title}")
        if task.description:
            print(f"Description: {task.description}")
        print(f"Status: {task.status}")
        if task.parent_id:
            print(f"Parent: {task.parent_id}")
        if task.scheduled_start or task.scheduled_end:
            print(f"Scheduled: {task.scheduled_start or '-'} .. {task.scheduled_end or '-'}")
        if task.actual_start or task.actual_end:
            print(f"Actual: {task.actual_start or '-'} .. {task.actual_end or '-'}")
        if task.completed_at:
            print(f"Completed at: {task.completed_at}")
        if task.note:
            print(f"Note: {task.note}")
        tags = engine.links.tags_of(task_id)
        if tags:
            print(f"Tags: {', '.join(tags)}")
        entities = engine.links.entities_of(task_id)
        if entities:
            print(f"Entities: {', '.join(f'{e.id} ({e.name})' for e in entities)}")
        prerequisites = engine.dependencies.prerequisites_of(task_id)
        if prerequisites:
            print(f"Depends on: {', '.join(sorted(p.id for p in prerequisites))}")
        print(f"Ready: {'yes' if engine.dependencies.is_ready(task_id) else 'no'}")


@task_app.command
def update(
    task_id: str,
    title: str | None = None,
    description: str | None = None,
    note: str | None = None,
) -> None:
    """Edit the title, description or note of a task."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        task = engine.tasks.update(task_id, title=title, description=description, note=note)
    print(f"Updated task {task.id}: {task.title}")


@task_app.command
def start(task_id: str) -> None:
    """Mark a task as in progress."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        task = engine.tasks.start(task_id)
    print(f"Started task {task.id}")


@task_app.command
def complete(*task_ids: str) -> None:
    """Mark one or more tasks as completed."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for task_id in task_ids:
            engine.tasks.complete(task_id)
    print(f"Completed {len(task_ids)} task(s)")


@task_app.command
def cancel(*task_ids: str) -> None:
    """Cancel one or more tasks."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for task_id in task_ids:
            engine.tasks.cancel(task_id)
    print(f"Cancelled {len(task_ids)} task(s)")


@task_app.command
def delete(*task_ids: str) -> None:
    """Delete one or more tasks; their children move to the top level."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for task_id in task_ids:
            engine.tasks.delete(task_id)
    print(f"Deleted {len(task_ids)} task(s)")


@task_app.command
def reparent(task_id: str, parent: str | None = None) -> None:
    """Move a task under another parent, or to the top level without --parent."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        task = engine.tasks.reparent(task_id, parent)
    if task.parent_id:
        print(f"Moved task {task.id} under {task.parent_id}")
    else:
        print(f"Moved task {task.id} to the top level")


@task_app.command
def schedule(task_id: str, start: str | None = None, end: str | None = None) -> None:
    """Set the planned window of a task (ISO-8601 times; omit a bound to clear it)."""
    from task_graph.cli import get_engine, parse_time

    with get_engine() as engine:
        task = engine.tasks.set_schedule(task_id, parse_time(start), parse_time(end))
    print(f"Scheduled task {task.id}: {task.scheduled_start or '-'} .. {task.scheduled_end or '-'}")


@task_app.command(name="list")
def list_tasks(
    status: str | None = None,
    tag: str | None = None,
    entity: str | None = None,
    parent: str | None = None,
    limit: int | None = None,
) -> None:
    """List tasks, most recently updated first."""
    from task_graph.cli import get_engine, print_tasks

    with get_engine() as engine:
        tasks = engine.queries.list_tasks(status=status, tag=tag, entity_id=entity, parent_id=parent, limit=limit)
    print_tasks(tasks, "No tasks found")


@task_app.command
def tree(task_id: str) -> None:
    """Display the subtree rooted at a task."""
    from task_graph.cli import format_task, get_engine

    with get_engine() as engine:
        nodes = list(engine.queries.walk(task_id))
    if not nodes:
        print(f"Task {task_id} not found")
        return
    for depth, task in nodes:
        print(f"{'  ' * depth}{format_task(task)}")
