"""Entity commands for the task-graph CLI."""

from cyclopts import App

entity_app = App(name="entity", help="Manage people, places, organizations and projects")


def _split_aliases(aliases: str | None) -> list[str] | None:
    if aliases is None:
        return None
    return [alias.strip() for alias in aliases.split(",") if alias.strip()]


@entity_app.command
def add(
    entity_id: str,
    name: str,
    type: str,
    aliases: str = "",
    note: str | None = None,
) -> None:
    """Register an entity. Aliases are comma separated."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        entity = engine.entities.register(entity_id, name, type, aliases=_split_aliases(aliases), note=note)
    print(f"Registered {entity.type} {entity.id}: {entity.name}")


@entity_app.command
def show(entity_id: str) -> None:
    """Show an entity and the tasks linked to it."""
    from task_graph.cli import format_task, get_engine

    with get_engine() as engine:
        entity = engine.entities.get(entity_id)
        if entity is None:
            print(f"Entity {entity_id} not found")
            return
        tasks = engine.links.tasks_by_entity(entity_id) or []

    print(f"Entity: {entity.id}")
    print(f"Name: {entity.name}")
    print(f"Type: {entity.type}")
    if entity.aliases:
        print(f"Aliases: {', '.join(entity.aliases)}")
    if entity.note:
        print(f"Note: {entity.note}")
    if tasks:
        print("Tasks:")
        for task in tasks:
            print(f"  {format_task(task)}")


@entity_app.command
def tasks(entity_id: str) -> None:
    """List tasks linked to an entity, most recently updated first."""
    from task_graph.cli import get_engine, print_tasks

    with get_engine() as engine:
        linked = engine.links.tasks_by_entity(entity_id)
    if linked is None:
        print(f"Entity {entity_id} not found")
        return
    print_tasks(linked, f"No tasks linked to {entity_id}")


@entity_app.command
def update(
    entity_id: str,
    name: str | None = None,
    type: str | None = None,
    aliases: str | None = None,
    note: str | None = None,
) -> None:
    """Edit an entity. Aliases replace the current list."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        entity = engine.entities.update(entity_id, name=name, type=type, aliases=_split_aliases(aliases), note=note)
    print(f"Updated entity {entity.id}: {entity.name}")


@entity_app.command
def delete(*entity_ids: str) -> None:
    """Delete entities and their task links."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for entity_id in entity_ids:
            engine.entities.delete(entity_id)
    print(f"Deleted {len(entity_ids)} entity(ies)")


@entity_app.command(name="list")
def list_entities(type: str | None = None) -> None:
    """List entities by name."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        entities = engine.entities.list(type=type)

    if not entities:
        print("No entities found")
        return
    print(f"Found {len(entities)} entity(ies):\n")
    for entity in entities:
        print(f"{entity.id}: {entity.name} [{entity.type}]")


@entity_app.command
def link(task_id: str, *entity_ids: str) -> None:
    """Link a task to entities."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for entity_id in entity_ids:
            engine.links.add_entity_link(task_id, entity_id)
    print(f"Linked {task_id} to {len(entity_ids)} entity(ies)")


@entity_app.command
def unlink(task_id: str, *entity_ids: str) -> None:
    """Remove links between a task and entities."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        for entity_id in entity_ids:
            engine.links.remove_entity_link(task_id, entity_id)
    print(f"Unlinked {task_id} from {len(entity_ids)} entity(ies)")


@entity_app.command
def search(pattern: str, prefix: bool = False) -> None:
    """Find entities by name or alias."""
    from task_graph.cli import get_engine

    with get_engine() as engine:
        entities = engine.queries.search(pattern, match="prefix" if prefix else None)

    if not entities:
        print(f"No entities match '{pattern}'")
        return
    for entity in entities:
        aliases = f" (aka {', '.join(entity.aliases)})" if entity.aliases else ""
        print(f"{entity.id}: {entity.name}{aliases} [{entity.type}]")
