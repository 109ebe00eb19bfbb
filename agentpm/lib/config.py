"""
Project configuration for agentpm.

Loads and saves `.agentpm.json`, which points at the epic file the agent is
currently working on.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from . import validate
from .atomic import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "./.agentpm.json"
DEFAULT_ASSIGNEE = "agent"


class ConfigError(Exception):
    """Configuration could not be loaded, validated or saved."""


class ConfigNotFoundError(ConfigError):
    """Configuration file does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"configuration file not found: {path}")


class ConfigInvalidError(ConfigError):
    """Configuration file is malformed or fails validation."""


@dataclass
class Config:
    """Project configuration from .agentpm.json"""
    current_epic: str
    project_name: str = ""
    default_assignee: str = ""
    previous_epic: str = ""

    def validate(self) -> None:
        """Check required fields and fill defaults.

        Raises:
            ConfigInvalidError: If current_epic is empty
        """
        if not self.current_epic:
            raise ConfigInvalidError("current_epic is required")
        if not self.default_assignee:
            self.default_assignee = DEFAULT_ASSIGNEE

    def epic_file_path(self) -> str:
        """Path of the current epic; relative values are anchored at ./"""
        if os.path.isabs(self.current_epic):
            return self.current_epic
        return os.path.join(".", self.current_epic)

    def switch_to(self, target: str) -> None:
        """Make `target` current, remembering the old epic as previous."""
        if target == self.current_epic:
            return
        self.previous_epic = self.current_epic
        self.current_epic = target

    def switch_back(self) -> None:
        """Swap current and previous epic.

        Raises:
            ConfigError: If there is no previous epic
        """
        if not self.previous_epic:
            raise ConfigError("no previous epic to switch back to")
        self.current_epic, self.previous_epic = self.previous_epic, self.current_epic

    def to_dict(self) -> dict:
        data = {"current_epic": self.current_epic}
        if self.project_name:
            data["project_name"] = self.project_name
        if self.default_assignee:
            data["default_assignee"] = self.default_assignee
        if self.previous_epic:
            data["previous_epic"] = self.previous_epic
        return data


def config_exists(path: str | Path = DEFAULT_CONFIG_PATH) -> bool:
    """Check whether a configuration file exists at path."""
    return Path(path).is_file()


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> Config:
    """Load, schema-check and validate .agentpm.json.

    Raises:
        ConfigNotFoundError: If the file is missing
        ConfigInvalidError: On malformed JSON, schema violations or missing fields
    """
    path = Path(path)
    if not path.exists():
        raise ConfigNotFoundError(path)

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigInvalidError(f"invalid JSON in {path}: {e}") from None

    try:
        validate.validate(data, "config")
    except validate.ValidationError as e:
        raise ConfigInvalidError(str(e)) from None

    config = Config(
        current_epic=data.get("current_epic", ""),
        project_name=data.get("project_name", ""),
        default_assignee=data.get("default_assignee", ""),
        previous_epic=data.get("previous_epic", ""),
    )
    config.validate()
    return config


def save_config(config: Config, path: str | Path = DEFAULT_CONFIG_PATH) -> None:
    """Validate and atomically write configuration.

    Raises:
        ConfigInvalidError: If the config fails validation
        OSError: If the file cannot be written
    """
    config.validate()
    path = Path(path)
    atomic_write_text(path, json.dumps(config.to_dict(), indent=2) + "\n")
    logger.debug(f"Saved configuration to {path}")


def switch_epic(target: str, path: str | Path = DEFAULT_CONFIG_PATH, exists=None) -> Config:
    """Point the project at another epic file and save.

    Args:
        target: Epic file to make current
        path: Configuration file
        exists: Optional predicate checking that target is a loadable epic

    Raises:
        ConfigError: If target is empty or the predicate rejects it
    """
    if not target:
        raise ConfigError("epic file is required")
    if exists is not None and not exists(target):
        raise ConfigError(f"epic file not found: {target}")

    config = load_config(path)
    config.switch_to(target)
    save_config(config, path)
    logger.info(f"Switched to epic {target}")
    return config


def switch_back(path: str | Path = DEFAULT_CONFIG_PATH) -> Config:
    """Swap current and previous epic and save.

    Raises:
        ConfigError: If no previous epic is recorded
    """
    config = load_config(path)
    config.switch_back()
    save_config(config, path)
    logger.info(f"Switched back to epic {config.current_epic}")
    return config
