"""
Hint configuration.

Loads `.agentpm-hints.yaml` from the project directory. A missing file
yields the defaults; an unreadable or invalid file is reported as a warning
and also yields the defaults, so a broken hint file never blocks work.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

from agentpm.hints.registry import HintConfig, HintPriority
from agentpm.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)

HINTS_FILENAME = ".agentpm-hints.yaml"
KNOWN_KEYS = {"enabled", "show_commands", "show_references", "min_priority", "max_hints", "customizations"}


def hints_path_for(config_path: str | Path) -> Path:
    """Hint file that sits next to the project config."""
    return Path(config_path).resolve().parent / HINTS_FILENAME


def hint_config_from_dict(data: dict) -> HintConfig:
    """Build a HintConfig from a validated mapping; absent keys keep defaults."""
    validate(data, "hints")

    unknown = sorted(set(data) - KNOWN_KEYS)
    if unknown:
        logger.warning(f"Ignoring unknown hint config keys: {', '.join(unknown)}")

    config = HintConfig()
    if "enabled" in data:
        config.enabled = data["enabled"]
    if "show_commands" in data:
        config.show_commands = data["show_commands"]
    if "show_references" in data:
        config.show_references = data["show_references"]
    if "min_priority" in data:
        config.min_priority = HintPriority(data["min_priority"])
    if "max_hints" in data:
        config.max_hints = data["max_hints"]
    if "customizations" in data:
        config.customizations = dict(data["customizations"])
    return config


def load_hint_config(path: Optional[Path]) -> HintConfig:
    """Load hint settings from a YAML file, falling back to defaults."""
    if path is None or not path.exists():
        return HintConfig()

    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return HintConfig()

    if data is None:
        return HintConfig()
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: expected a mapping, got {type(data).__name__}")
        return HintConfig()

    try:
        return hint_config_from_dict(data)
    except ValidationError as e:
        logger.warning(f"Invalid hint config {path}: {e}")
        return HintConfig()
