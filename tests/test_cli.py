"""Tests for the CLI commands against an in-memory store."""

from pathlib import Path

import pytest

from task_graph import cli, config_commands, dep_commands, entity_commands, tag_commands, task_commands
from task_graph.config import Config
from task_graph.engine import TaskEngine
from task_graph.errors import CycleError, ValidationError
from task_graph.persistence import MemoryPersistence


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> MemoryPersistence:
    """Route every command to a fresh engine over one shared in-memory store."""
    persistence = MemoryPersistence()
    monkeypatch.setattr(cli, "get_engine", lambda: TaskEngine(persistence))
    return persistence


def test_create_and_show(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test creating a task and showing it with its links."""
    task_commands.create("Call the plumber", id="plumber", note="after 9")
    entity_commands.add("bob", "Bob", "person", aliases="Bobby, Rob")
    entity_commands.link("plumber", "bob")
    tag_commands.add("plumber", "home")
    capsys.readouterr()

    task_commands.show("plumber")

    out = capsys.readouterr().out
    assert "Task: plumber" in out
    assert "Title: Call the plumber" in out
    assert "Status: pending" in out
    assert "Note: after 9" in out
    assert "Tags: home" in out
    assert "Entities: bob (Bob)" in out
    assert "Ready: yes" in out


def test_show_unknown_task(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test showing a task that does not exist."""
    task_commands.show("ghost")
    assert "Task ghost not found" in capsys.readouterr().out


def test_ready_and_blocked(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the queue commands follow dependency edges."""
    task_commands.create("Paint", id="paint")
    task_commands.create("Buy paint", id="buy")
    dep_commands.add("paint", "buy")
    capsys.readouterr()

    cli.ready()
    out = capsys.readouterr().out
    assert "buy: Buy paint" in out
    assert "paint: Paint" not in out

    cli.blocked()
    assert "paint: Paint [waiting on buy]" in capsys.readouterr().out

    task_commands.complete("buy")
    capsys.readouterr()
    cli.ready()
    out = capsys.readouterr().out
    assert "paint: Paint" in out
    assert "buy: Buy paint" not in out


def test_dep_add_rejects_cycle(store: MemoryPersistence) -> None:
    """Test that the CLI surfaces cycle errors and keeps the store intact."""
    task_commands.create("A", id="a")
    task_commands.create("B", id="b")
    dep_commands.add("a", "b")

    with pytest.raises(CycleError):
        dep_commands.add("b", "a")
    assert store.snapshot.dependencies == [{"taskId": "a", "dependsOnId": "b"}]


def test_dep_list_and_tree(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test listing edges and the per-task neighborhood."""
    task_commands.create("Parent", id="p")
    task_commands.create("Child", id="c", parent="p")
    task_commands.create("Other", id="o")
    dep_commands.add("c", "o")
    capsys.readouterr()

    dep_commands.list_deps()
    assert "c --[depends on]--> o" in capsys.readouterr().out

    dep_commands.tree("c")
    out = capsys.readouterr().out
    assert "Parent:\n  - ○ p: Parent" in out
    assert "Blocked By:\n  - ○ o: Other" in out


def test_task_tree(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the indented subtree display."""
    task_commands.create("Root", id="root")
    task_commands.create("Leaf", id="leaf", parent="root")
    capsys.readouterr()

    task_commands.tree("root")
    assert capsys.readouterr().out.splitlines() == ["○ root: Root", "  ○ leaf: Leaf"]


def test_schedule_and_list(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test scheduling through ISO-8601 arguments and filtering the list."""
    task_commands.create("Dentist", id="dentist")
    task_commands.create("Groceries", id="groceries")
    tag_commands.add("groceries", "errand")
    task_commands.schedule("dentist", start="2025-03-01T09:00+00:00", end="2025-03-01T10:00+00:00")
    capsys.readouterr()

    task_commands.list_tasks(tag="errand")
    out = capsys.readouterr().out
    assert "Found 1 task(s)" in out
    assert "groceries: Groceries" in out

    cli.active()
    lines = capsys.readouterr().out.splitlines()
    assert lines[2] == "○ dentist: Dentist (from 2025-03-01T09:00+00:00)"
    assert lines[3] == "○ groceries: Groceries"


def test_schedule_rejects_bad_time(store: MemoryPersistence) -> None:
    """Test unparseable times."""
    task_commands.create("Dentist", id="dentist")
    with pytest.raises(ValidationError, match="Invalid time"):
        task_commands.schedule("dentist", start="next tuesday")


def test_entity_search(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test alias search and the prefix switch."""
    entity_commands.add("bob", "Bob", "person", aliases="Bobby")
    entity_commands.add("jim", "Jimbob", "person")
    capsys.readouterr()

    entity_commands.search("bob")
    out = capsys.readouterr().out
    assert "bob: Bob (aka Bobby) [person]" in out
    assert "jim: Jimbob" in out

    entity_commands.search("bob", prefix=True)
    out = capsys.readouterr().out
    assert "bob: Bob" in out
    assert "jim: Jimbob" not in out


def test_entity_tasks(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test listing the tasks linked to an entity."""
    task_commands.create("Visit", id="visit")
    task_commands.create("Call", id="call")
    entity_commands.add("ann", "Ann", "person")
    entity_commands.link("visit", "ann")
    capsys.readouterr()

    entity_commands.tasks("ann")
    out = capsys.readouterr().out
    assert "visit: Visit" in out
    assert "call: Call" not in out

    entity_commands.tasks("nobody")
    assert "Entity nobody not found" in capsys.readouterr().out


def test_entity_delete_removes_links(store: MemoryPersistence) -> None:
    """Test that deleting an entity drops its links from the store."""
    task_commands.create("Visit", id="visit")
    entity_commands.add("hq", "Headquarters", "place")
    entity_commands.link("visit", "hq")

    entity_commands.delete("hq")

    assert store.snapshot.entities == []
    assert store.snapshot.entity_links == []


def test_main_reports_errors(store: MemoryPersistence, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the meta entry point turns engine errors into exit code 1."""
    with pytest.raises(SystemExit) as excinfo:
        cli.main("task", "start", "ghost")
    assert excinfo.value.code == 1
    assert "Error: " in capsys.readouterr().out


def test_config_commands(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    """Test setting, reading and listing configuration."""
    monkeypatch.setattr(Path, "home", lambda: tmp_path / "home")

    def local_config(use_global: bool = False) -> Config:
        return Config(config_dir=tmp_path / ("global" if use_global else "local"))

    monkeypatch.setattr(config_commands, "get_config", local_config)

    config_commands.get("search.match")
    assert "search.match = substring (default)" in capsys.readouterr().out

    config_commands.set("search.match", "prefix")
    config_commands.get("search.match")
    assert "search.match = prefix\n" in capsys.readouterr().out

    config_commands.list_config()
    out = capsys.readouterr().out
    assert "search.match = prefix" in out
    assert "Defaults:" in out
    assert "store.path = .task-graph/store.yaml" in out

    with pytest.raises(ValidationError):
        config_commands.set("search.match", "fuzzy")
