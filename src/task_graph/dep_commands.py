"""Dependency commands for the task-graph CLI."""

from cyclopts import App

dep_app = App(name="dep", help="Manage prerequisites between tasks")


@dep_app.command
def add(task_id: str, *prerequisite_ids: str) -> None:
    """Make a task depend on one or more prerequisite tasks."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for prerequisite_id in prerequisite_ids:
            engine.dependencies.add_edge(task_id, prerequisite_id)
    print(f"Added {len(prerequisite_ids)} prerequisite(s) to {task_id}")


@dep_app.command
def remove(task_id: str, *prerequisite_ids: str) -> None:
    """Remove prerequisites from a task."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for prerequisite_id in prerequisite_ids:
            engine.dependencies.remove_edge(task_id, prerequisite_id)
    print(f"Removed {len(prerequisite_ids)} prerequisite(s) from {task_id}")


@dep_app.command(name="list")
def list_deps() -> None:
    """List every dependency edge."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        edges = engine.dependencies.edges()

    if not edges:
        print("No dependencies")
        return

    print(f"Found {len(edges)} dependency(ies):\n")
    for edge in edges:
        print(f"  {edge.task_id} --[depends on]--> {edge.depends_on_id}")


@dep_app.command
def tree(task_id: str) -> None:
    """Display the parent, children, prerequisites and dependents of a task."""
    from task_graph.cli import format_task, get_engine

    with get_engine() as engine:
        task = engine.tasks.get(task_id)
        if task is None:
            print(f"Task {task_id} not found")
            return
        parent = engine.tasks.get(task.parent_id) if task.parent_id else None
        links = {
            "parent": [parent] if parent else [],
            "children": engine.tasks.children(task_id) or [],
            "blocked_by": sorted(engine.dependencies.prerequisites_of(task_id) or set(), key=lambda t: t.id),
            "blocking": sorted(engine.dependencies.dependents_of(task_id) or set(), key=lambda t: t.id),
        }

    print(f"Task: {format_task(task)}\n")
    for link_type, linked in links.items():
        if not linked:
            continue
        display_name = link_type.replace("_", " ").title()
        print(f"{display_name}:")
        for item in linked:
            print(f"  - {format_task(item)}")
        print()
