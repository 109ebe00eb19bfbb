"""
agentpm init / config / switch - project configuration commands.
"""

import logging
from pathlib import Path

from agentpm.commands.context import CommandContext
from agentpm.commands.output import emit
from agentpm.epic.model import new_epic
from agentpm.lib.config import (
    Config,
    ConfigError,
    config_exists,
    load_config,
    save_config,
    switch_back,
    switch_epic,
)

logger = logging.getLogger(__name__)


def cmd_init(args, ctx: CommandContext) -> int:
    """Create .agentpm.json pointing at an epic, creating the epic if missing."""
    if config_exists(ctx.config_path) and not args.force:
        raise ConfigError(f"{ctx.config_path} already exists (use --force to overwrite)")

    epic_path = args.epic
    created = False
    if not ctx.storage.epic_exists(epic_path):
        stem = Path(epic_path).stem
        epic = new_epic(args.id or stem, args.name or stem)
        if args.assignee:
            epic.assignee = args.assignee
        ctx.storage.save_epic(epic, epic_path)
        created = True
        logger.info(f"Created epic {epic.id} at {epic_path}")

    config = Config(
        current_epic=epic_path,
        project_name=args.project or "",
        default_assignee=args.assignee or "",
    )
    save_config(config, ctx.config_path)

    data = {"config": config.to_dict(), "config_file": str(ctx.config_path), "epic_created": created}
    text = f"Initialized {ctx.config_path} (current epic: {epic_path})"
    if created:
        text += f"\nCreated new epic file {epic_path}"
    emit(ctx.format, "init", data, text)
    return 0


def cmd_config(args, ctx: CommandContext) -> int:
    """Show the project configuration."""
    config = load_config(ctx.config_path)
    data = config.to_dict()
    lines = [f"Configuration: {ctx.config_path}"]
    lines.append(f"  current_epic:     {config.current_epic}")
    if config.project_name:
        lines.append(f"  project_name:     {config.project_name}")
    lines.append(f"  default_assignee: {config.default_assignee}")
    if config.previous_epic:
        lines.append(f"  previous_epic:    {config.previous_epic}")
    emit(ctx.format, "config", data, "\n".join(lines))
    return 0


def cmd_switch(args, ctx: CommandContext) -> int:
    """Switch the current epic, or back to the previous one with --back."""
    if args.back:
        config = switch_back(ctx.config_path)
    else:
        if not args.epic:
            raise ConfigError("Specify an epic file or use --back")
        # Loading validates that the target is a readable epic
        ctx.storage.load_epic(args.epic)
        config = switch_epic(args.epic, ctx.config_path, exists=ctx.storage.epic_exists)

    data = {"current_epic": config.current_epic, "previous_epic": config.previous_epic}
    text = f"Switched to epic: {config.current_epic}"
    if config.previous_epic:
        text += f" (previous: {config.previous_epic})"
    emit(ctx.format, "switch", data, text)
    return 0
