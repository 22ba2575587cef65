"""Tests for the task store: lifecycle, schedule, hierarchy and delete."""

from datetime import datetime, timezone

import pytest

from task_graph.engine import TaskEngine
from task_graph.errors import CycleError, InvalidTransitionError, ValidationError
from task_graph.models import TaskStatus


def assert_invariants(engine: TaskEngine) -> None:
    for task in engine.tasks.all():
        assert task.status.terminal == (task.completed_at is not None)
        assert task.updated_at >= task.created_at
        if task.completed_at is not None:
            assert task.completed_at >= task.created_at


def test_create_task(engine: TaskEngine) -> None:
    """Test creating a task."""
    task = engine.tasks.create("Write report", description="Quarterly numbers")
    assert task.id.startswith("t-")
    assert task.status is TaskStatus.PENDING
    assert task.completed_at is None
    assert task.created_at == task.updated_at
    assert engine.tasks.get(task.id) == task


def test_create_with_blank_title_stores_nothing(engine: TaskEngine) -> None:
    """Test that a blank title is rejected and nothing is persisted."""
    with pytest.raises(ValidationError):
        engine.tasks.create(title="")
    with pytest.raises(ValidationError):
        engine.tasks.create(title="   ")
    assert engine.tasks.all() == []
    assert engine.persistence.snapshot.tasks == []


def test_create_with_unknown_parent(engine: TaskEngine) -> None:
    """Test that the parent must exist."""
    with pytest.raises(ValidationError, match="Parent task"):
        engine.tasks.create("Child", parent_id="missing")


def test_create_with_explicit_id(engine: TaskEngine) -> None:
    """Test explicit ids must be unique and non-blank."""
    engine.tasks.create("First", task_id="alpha")
    with pytest.raises(ValidationError, match="already exists"):
        engine.tasks.create("Second", task_id="alpha")
    with pytest.raises(ValidationError, match="blank"):
        engine.tasks.create("Third", task_id=" ")


def test_get_unknown_task_returns_none(engine: TaskEngine) -> None:
    """Test not-found lookups."""
    assert engine.tasks.get("missing") is None
    assert engine.tasks.children("missing") is None


def test_returned_tasks_are_copies(engine: TaskEngine) -> None:
    """Test that callers cannot mutate stored records."""
    task = engine.tasks.create("Original")
    task.title = "Changed"
    assert engine.tasks.get(task.id).title == "Original"


def test_update_bumps_updated_at(engine: TaskEngine) -> None:
    """Test editing free-text fields."""
    task = engine.tasks.create("Draft")
    updated = engine.tasks.update(task.id, title="Final", note="checked")
    assert updated.title == "Final"
    assert updated.note == "checked"
    assert updated.updated_at > task.updated_at
    with pytest.raises(ValidationError):
        engine.tasks.update(task.id, title="")
    assert engine.tasks.get(task.id).title == "Final"


def test_start_then_complete(engine: TaskEngine) -> None:
    """Test the normal lifecycle stamps the actual window and completedAt."""
    task = engine.tasks.create("Build")
    started = engine.tasks.start(task.id)
    assert started.status is TaskStatus.IN_PROGRESS
    assert started.actual_start is not None
    assert started.completed_at is None

    done = engine.tasks.complete(task.id)
    assert done.status is TaskStatus.COMPLETED
    assert done.completed_at is not None
    assert done.actual_start == started.actual_start
    assert done.actual_end > done.actual_start
    assert done.updated_at > started.updated_at
    assert_invariants(engine)


def test_pending_can_be_cancelled_directly(engine: TaskEngine) -> None:
    """Test pending -> cancelled."""
    task = engine.tasks.create("Maybe later")
    cancelled = engine.tasks.transition(task.id, "cancelled")
    assert cancelled.status is TaskStatus.CANCELLED
    assert cancelled.completed_at is not None
    assert cancelled.actual_start is None
    assert cancelled.actual_end == cancelled.completed_at


@pytest.mark.parametrize(
    "setup, target",
    [
        ([], TaskStatus.PENDING),
        ([TaskStatus.IN_PROGRESS], TaskStatus.IN_PROGRESS),
        ([TaskStatus.IN_PROGRESS], TaskStatus.PENDING),
        ([TaskStatus.COMPLETED], TaskStatus.PENDING),
        ([TaskStatus.COMPLETED], TaskStatus.COMPLETED),
        ([TaskStatus.CANCELLED], TaskStatus.COMPLETED),
        ([TaskStatus.CANCELLED], TaskStatus.IN_PROGRESS),
    ],
)
def test_illegal_transitions(engine: TaskEngine, setup: list[TaskStatus], target: TaskStatus) -> None:
    """Test that illegal transitions are rejected and leave the task unchanged."""
    task = engine.tasks.create("Subject")
    for status in setup:
        engine.tasks.transition(task.id, status)
    before = engine.tasks.get(task.id)

    with pytest.raises(InvalidTransitionError):
        engine.tasks.transition(task.id, target)

    assert engine.tasks.get(task.id) == before
    assert_invariants(engine)


def test_transition_unknown_task(engine: TaskEngine) -> None:
    """Test transitions on unknown ids."""
    with pytest.raises(ValidationError):
        engine.tasks.complete("missing")


def test_set_schedule(engine: TaskEngine) -> None:
    """Test setting and clearing the planned window."""
    task = engine.tasks.create("Meeting")
    start = datetime(2025, 2, 1, 10, 0, tzinfo=timezone.utc)
    end = datetime(2025, 2, 1, 11, 0, tzinfo=timezone.utc)

    scheduled = engine.tasks.set_schedule(task.id, start, end)
    assert scheduled.scheduled_start == start
    assert scheduled.scheduled_end == end

    cleared = engine.tasks.set_schedule(task.id, start)
    assert cleared.scheduled_end is None


def test_set_schedule_rejects_inverted_window(engine: TaskEngine) -> None:
    """Test that start must precede end."""
    task = engine.tasks.create("Meeting")
    start = datetime(2025, 2, 1, 10, 0, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        engine.tasks.set_schedule(task.id, start, start)
    assert engine.tasks.get(task.id).scheduled_start is None


def test_reparent(engine: TaskEngine) -> None:
    """Test moving a task between parents."""
    first = engine.tasks.create("First")
    second = engine.tasks.create("Second")
    child = engine.tasks.create("Child", parent_id=first.id)

    moved = engine.tasks.reparent(child.id, second.id)
    assert moved.parent_id == second.id
    assert engine.tasks.children(first.id) == []
    assert [t.id for t in engine.tasks.children(second.id)] == [child.id]

    top = engine.tasks.reparent(child.id, None)
    assert top.parent_id is None
    assert engine.tasks.children(second.id) == []


def test_reparent_to_self(engine: TaskEngine) -> None:
    """Test self parenting is a validation error."""
    task = engine.tasks.create("Solo")
    with pytest.raises(ValidationError):
        engine.tasks.reparent(task.id, task.id)


def test_reparent_under_descendant_is_a_cycle(engine: TaskEngine) -> None:
    """Test that a task cannot move under its own descendant."""
    root = engine.tasks.create("Root")
    middle = engine.tasks.create("Middle", parent_id=root.id)
    leaf = engine.tasks.create("Leaf", parent_id=middle.id)

    with pytest.raises(CycleError) as excinfo:
        engine.tasks.reparent(root.id, leaf.id)

    assert excinfo.value.path == [root.id, middle.id, leaf.id]
    assert engine.tasks.get(root.id).parent_id is None


def test_delete_parent_orphans_children(engine: TaskEngine) -> None:
    """Test that deleting a parent clears parent_id on its children."""
    parent = engine.tasks.create("P")
    child = engine.tasks.create("C", parent_id=parent.id)

    engine.tasks.delete(parent.id)

    assert engine.tasks.get(parent.id) is None
    orphan = engine.tasks.get(child.id)
    assert orphan.parent_id is None
    assert orphan.updated_at > child.updated_at


def test_delete_cascades_edges_and_links(engine: TaskEngine) -> None:
    """Test that delete removes dependency edges, tags and entity links."""
    a = engine.tasks.create("A")
    b = engine.tasks.create("B")
    engine.entities.register("ann", "Ann", "person")
    engine.dependencies.add_edge(a.id, b.id)
    engine.links.add_tag(b.id, "urgent")
    engine.links.add_entity_link(b.id, "ann")

    engine.tasks.delete(b.id)

    assert engine.dependencies.edges() == []
    assert engine.dependencies.prerequisites_of(a.id) == set()
    assert engine.links.tasks_by_tag("urgent") == []
    assert engine.links.tasks_by_entity("ann") == []
    assert engine.dependencies.is_ready(a.id) is True


def test_delete_unknown_task(engine: TaskEngine) -> None:
    """Test deleting an unknown id."""
    with pytest.raises(ValidationError):
        engine.tasks.delete("missing")
