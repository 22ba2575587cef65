"""Tag commands for the task-graph CLI."""

from cyclopts import App

tag_app = App(name="tag", help="Tag tasks")


@tag_app.command
def add(task_id: str, *tags: str) -> None:
    """Add tags to a task."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for tag in tags:
            engine.links.add_tag(task_id, tag)
    print(f"Tagged {task_id} with {', '.join(tags)}")


@tag_app.command
def remove(task_id: str, *tags: str) -> None:
    """Remove tags from a task."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for tag in tags:
            engine.links.remove_tag(task_id, tag)
    print(f"Removed {len(tags)} tag(s) from {task_id}")


@tag_app.command(name="list")
def list_tags(tag: str | None = None) -> None:
    """List tags in use, or the tasks carrying one tag."""
    from task_graph.cli import get_engine, print_tasks

    with get_engine() as engine:
        if tag is None:
            tags = engine.links.tags()
            print("\n".join(tags) if tags else "No tags")
            return
        print_tasks(engine.links.tasks_by_tag(tag), f"No tasks tagged {tag}")
