"""Layered YAML settings for task-graph.

A setting is resolved from the writable scope first, then (for local
settings) the user's global file, then DEFAULTS.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
import yaml

from task_graph.errors import ConfigError
from task_graph.queries import check_match_policy

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".task-graph"
CONFIG_FILE_NAME = "config.yaml"

DEFAULTS: dict[str, str] = {
    "store.path": f"{CONFIG_DIR_NAME}/store.yaml",
    "search.match": "substring",
}

# Keys whose values are constrained
VALIDATORS: dict[str, Callable[[str], Any]] = {
    "search.match": check_match_policy,
}


def local_config_dir() -> Path:
    return Path.cwd() / CONFIG_DIR_NAME


def global_config_dir() -> Path:
    return Path.home() / CONFIG_DIR_NAME


def read_settings(path: Path) -> dict[str, Any]:
    """Read one settings file; a missing file is an empty mapping.

    Raises:
        ConfigError: if the file cannot be read or is not a YAML mapping
    """
    if not path.exists():
        logger.debug("No settings file", path=str(path))
        return {}
    try:
        with open(path, "r") as f:
            settings = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to read settings", path=str(path), error=str(e))
        raise ConfigError(f"Cannot read settings from {path}: {e}") from e
    if not isinstance(settings, dict):
        raise ConfigError(f"Settings file {path} does not contain a mapping")
    return settings


class Config:
    """Settings stored in .task-graph/config.yaml.

    Local settings live in the current directory and fall back to
    ~/.task-graph/config.yaml; global settings are the home file alone.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Open a settings scope.

        Args:
            use_global: Write to the global scope instead of the local one
            config_dir: Directory holding config.yaml; overrides the scope's usual location
        """
        if config_dir is None:
            config_dir = global_config_dir() if use_global else local_config_dir()
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / CONFIG_FILE_NAME
        self.is_global = use_global

        self._settings = read_settings(self.config_file)
        self._fallback: dict[str, Any] = {}
        if not use_global:
            global_file = global_config_dir() / CONFIG_FILE_NAME
            if global_file != self.config_file:
                try:
                    self._fallback = read_settings(global_file)
                except ConfigError as e:
                    logger.warning("Ignoring unreadable global settings", error=str(e))

        logger.debug("Config opened", config_file=str(self.config_file), scope=self.scope)

    @property
    def scope(self) -> str:
        return "global" if self.is_global else "local"

    def _write(self) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._settings, f, default_flow_style=False, sort_keys=True)
        except OSError as e:
            logger.error("Failed to write settings", path=str(self.config_file), error=str(e))
            raise ConfigError(f"Cannot write settings to {self.config_file}: {e}") from e

    def get(self, key: str, default: str | None = None) -> str | None:
        """Resolve a setting.

        Args:
            key: Setting name, e.g. store.path
            default: Returned when no file sets the key; takes precedence over DEFAULTS
        """
        for layer in (self._settings, self._fallback):
            if key in layer:
                return layer[key]
        if default is not None:
            return default
        return DEFAULTS.get(key)

    def set(self, key: str, value: str) -> None:
        """Store a setting in this scope.

        Raises:
            ValidationError: if the value is not acceptable for a constrained key
        """
        validate = VALIDATORS.get(key)
        if validate is not None:
            validate(value)
        self._settings[key] = value
        self._write()
        logger.info("Setting saved", key=key, scope=self.scope)

    def unset(self, key: str) -> None:
        if key not in self._settings:
            logger.debug("Setting not present", key=key, scope=self.scope)
            return
        del self._settings[key]
        self._write()
        logger.info("Setting removed", key=key, scope=self.scope)

    def list(self) -> dict[str, Any]:
        """Explicit settings visible from this scope, own values overriding global ones."""
        return {**self._fallback, **self._settings}

    def store_path(self) -> Path:
        """YAML store location; relative paths resolve against the working directory."""
        return Path(self.get("store.path") or DEFAULTS["store.path"])


def get_config(use_global: bool = False) -> Config:
    return Config(use_global=use_global)
