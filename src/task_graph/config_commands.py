"""Configuration commands for the task-graph CLI."""

from cyclopts import App

from task_graph.config import DEFAULTS, get_config

config_app = App(name="config", help="Manage configuration (store.path, search.match)")


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: Configuration key, e.g. store.path or search.match
        value: Configuration value
        global_: Write to ~/.task-graph instead of ./.task-graph
    """
    config = get_config(use_global=global_)
    config.set(key, value)
    print(f"Set {key} = {value} ({config.scope})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Remove a setting so the next scope or the default applies again."""
    config = get_config(use_global=global_)
    config.unset(key)
    print(f"Unset {key} ({config.scope})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Print the effective value of a setting."""
    value = get_config(use_global=global_).get(key)
    if value is None:
        print(f"{key} is not set")
    elif key in DEFAULTS and value == DEFAULTS[key]:
        print(f"{key} = {value} (default)")
    else:
        print(f"{key} = {value}")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List explicit settings, then the defaults they leave in place."""
    config = get_config(use_global=global_)
    settings = config.list()
    defaults = {key: value for key, value in DEFAULTS.items() if key not in settings}

    if settings:
        print(f"{config.scope.title()} settings:\n")
        for key, value in settings.items():
            print(f"{key} = {value}")
    else:
        print(f"No {config.scope} configuration settings")

    if defaults:
        print("\nDefaults:\n")
        for key, value in defaults.items():
            print(f"{key} = {value}")
