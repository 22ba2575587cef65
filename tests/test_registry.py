"""Tests for the entity registry."""

import pytest

from task_graph.engine import TaskEngine
from task_graph.errors import ValidationError


def test_register_entity(engine: TaskEngine) -> None:
    """Test registering and reading an entity."""
    entity = engine.entities.register("acme", "Acme Corp", "organization", aliases=["ACME"], note="client")
    assert entity.created_at == entity.updated_at
    assert engine.entities.get("acme") == entity
    assert engine.entities.get("nobody") is None


def test_register_custom_type(engine: TaskEngine) -> None:
    """Test that entity types are an open set."""
    entity = engine.entities.register("k8s", "Kubernetes", "technology")
    assert entity.type == "technology"


@pytest.mark.parametrize(
    "entity_id, name, type_",
    [
        ("", "Name", "person"),
        ("id", " ", "person"),
        ("id", "Name", ""),
    ],
)
def test_register_rejects_blank_fields(engine: TaskEngine, entity_id: str, name: str, type_: str) -> None:
    """Test blank id, name and type."""
    with pytest.raises(ValidationError):
        engine.entities.register(entity_id, name, type_)
    assert engine.entities.list() == []


def test_register_duplicate(engine: TaskEngine) -> None:
    """Test that ids are unique."""
    engine.entities.register("ann", "Ann", "person")
    with pytest.raises(ValidationError, match="already exists"):
        engine.entities.register("ann", "Another Ann", "person")
    assert engine.entities.get("ann").name == "Ann"


def test_update_entity(engine: TaskEngine) -> None:
    """Test editing an entity bumps updated_at."""
    original = engine.entities.register("ann", "Ann", "person")
    updated = engine.entities.update("ann", name="Ann Lee", aliases=["Annie"])
    assert updated.name == "Ann Lee"
    assert updated.aliases == ["Annie"]
    assert updated.updated_at > original.updated_at
    assert updated.created_at == original.created_at

    with pytest.raises(ValidationError):
        engine.entities.update("ann", aliases=["ok", " "])
    assert engine.entities.get("ann").aliases == ["Annie"]


def test_delete_entity_cascades_links(engine: TaskEngine) -> None:
    """Test that deleting an entity removes its task links."""
    engine.entities.register("ann", "Ann", "person")
    task = engine.tasks.create("Call Ann")
    engine.links.add_entity_link(task.id, "ann")

    engine.entities.delete("ann")

    assert engine.entities.get("ann") is None
    assert engine.links.entities_of(task.id) == []
    with pytest.raises(ValidationError):
        engine.entities.delete("ann")


def test_list_entities(engine: TaskEngine) -> None:
    """Test listing by name and filtering by type."""
    engine.entities.register("zed", "zed", "person")
    engine.entities.register("amy", "Amy", "person")
    engine.entities.register("paris", "Paris", "place")

    assert [e.id for e in engine.entities.list()] == ["amy", "paris", "zed"]
    assert [e.id for e in engine.entities.list(type="person")] == ["amy", "zed"]
