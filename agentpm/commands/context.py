"""Per-invocation command context built from the global CLI options."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from agentpm.hints.config import hints_path_for, load_hint_config
from agentpm.hints.registry import HintRegistry, default_registry
from agentpm.lib.config import Config, load_config
from agentpm.lib.timeutil import parse_time_override
from agentpm.services.lifecycle import LifecycleService
from agentpm.services.query import QueryService
from agentpm.storage.base import EpicStorage
from agentpm.storage.file import FileStorage


@dataclass
class CommandContext:
    config_path: Path
    format: str = "text"
    epic_override: str = ""
    timestamp: Optional[datetime] = None
    storage: EpicStorage = field(default_factory=FileStorage)

    @classmethod
    def from_args(cls, args) -> "CommandContext":
        """Build from parsed arguments.

        Raises:
            ValueError: If --time is not a valid timestamp
        """
        timestamp = parse_time_override(args.time) if args.time else None
        return cls(
            config_path=Path(args.config),
            format=args.format,
            epic_override=args.file or "",
            timestamp=timestamp,
        )

    def config(self) -> Config:
        return load_config(self.config_path)

    def epic_file(self) -> str:
        """--file if given, else the configured current epic."""
        if self.epic_override:
            return self.epic_override
        return self.config().epic_file_path()

    def hints(self) -> HintRegistry:
        return default_registry(load_hint_config(hints_path_for(self.config_path)))

    def lifecycle(self) -> LifecycleService:
        return LifecycleService(self.storage, hints=self.hints())

    def query(self) -> QueryService:
        """Query service with the epic already loaded."""
        service = QueryService(self.storage)
        service.load_epic(self.epic_file())
        return service
