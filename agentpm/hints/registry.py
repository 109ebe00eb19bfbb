"""
Hint registry.

Translates a refused lifecycle operation into one actionable remediation.
Generators are plain functions registered with a priority; the registry asks
them in descending priority order and returns the first hint that clears the
configured minimum priority. Generators must not mutate their context.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from agentpm.epic.model import Epic, Phase, Task

logger = logging.getLogger(__name__)

DEFAULT_HINT_CONTENT = "Check the current state and try again"


class HintCategory(str, Enum):
    ACTIONABLE = "actionable"
    INFORMATIONAL = "informational"
    WORKFLOW = "workflow"
    CONFIGURATION = "configuration"

    def __str__(self) -> str:
        return self.value


class HintPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


@dataclass
class Hint:
    content: str
    category: HintCategory = HintCategory.INFORMATIONAL
    priority: HintPriority = HintPriority.LOW
    command: str = ""  # bare subcommand, e.g. "done-phase A"
    reference: str = ""
    conditions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "content": self.content,
            "category": self.category.value,
            "priority": self.priority.value,
        }
        if self.command:
            data["command"] = self.command
        if self.reference:
            data["reference"] = self.reference
        if self.conditions:
            data["conditions"] = list(self.conditions)
        return data


@dataclass
class HintContext:
    """Everything a generator may look at. Built from a refusal."""
    error_type: str
    operation: str = ""
    entity_type: str = ""
    entity_id: str = ""
    current_status: str = ""
    target_status: str = ""
    epic: Optional[Epic] = None
    active_phase: Optional[Phase] = None
    active_task: Optional[Task] = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class HintConfig:
    enabled: bool = True
    show_commands: bool = True
    show_references: bool = False
    min_priority: HintPriority = HintPriority.MEDIUM
    max_hints: int = 3
    customizations: dict[str, str] = field(default_factory=dict)

    def meets_minimum(self, priority: HintPriority) -> bool:
        return priority.rank >= self.min_priority.rank


@dataclass
class HintGenerator:
    """A named (predicate, builder) pair. Higher priority is consulted first."""
    name: str
    priority: int
    can_handle: Callable[[HintContext], bool]
    generate: Callable[[HintContext], Optional[Hint]]


class HintRegistry:
    def __init__(self, config: HintConfig | None = None):
        self.config = config or HintConfig()
        self._generators: list[HintGenerator] = []

    def register(self, generator: HintGenerator) -> None:
        self._generators.append(generator)
        # Stable: equal priorities keep registration order
        self._generators.sort(key=lambda g: g.priority, reverse=True)

    @property
    def generators(self) -> list[HintGenerator]:
        return list(self._generators)

    def _apply_config(self, hint: Hint, ctx: HintContext) -> Hint:
        content = self.config.customizations.get(ctx.error_type, hint.content)
        return Hint(
            content=content,
            category=hint.category,
            priority=hint.priority,
            command=hint.command if self.config.show_commands else "",
            reference=hint.reference if self.config.show_references else "",
            conditions=list(hint.conditions),
        )

    def candidates(self, ctx: HintContext) -> list[Hint]:
        """Every qualifying hint in priority order, capped at max_hints."""
        if not self.config.enabled:
            return []
        hints = []
        for generator in self._generators:
            if not generator.can_handle(ctx):
                continue
            hint = generator.generate(ctx)
            if hint is None or not hint.content:
                continue
            if not self.config.meets_minimum(hint.priority):
                continue
            hints.append(self._apply_config(hint, ctx))
            if len(hints) >= self.config.max_hints:
                break
        return hints

    def generate(self, ctx: HintContext) -> Optional[Hint]:
        """First qualifying hint, the default hint, or None when disabled."""
        if not self.config.enabled:
            return None

        hints = self.candidates(ctx)
        if hints:
            return hints[0]

        default = Hint(DEFAULT_HINT_CONTENT, HintCategory.INFORMATIONAL, HintPriority.LOW)
        if self.config.meets_minimum(default.priority):
            return self._apply_config(default, ctx)
        return None


def context_from_error(error, epic: Optional[Epic] = None) -> HintContext:
    """Build a HintContext from a LifecycleError and the loaded epic."""
    ctx = HintContext(
        error_type=error.error_type,
        operation=error.operation,
        entity_type=error.entity_type,
        entity_id=error.entity_id,
        epic=epic,
    )
    for attr in ("current_status", "target_status"):
        if hasattr(error, attr):
            setattr(ctx, attr, getattr(error, attr))
    ctx.data = error.details()

    if epic is not None:
        ctx.active_phase = epic.active_phase()
        ctx.active_task = epic.active_task()
        if ctx.entity_type == "epic" and not ctx.current_status:
            ctx.current_status = epic.status.value
    return ctx


def default_registry(config: HintConfig | None = None) -> HintRegistry:
    """Registry with every built-in generator."""
    from agentpm.hints.generators import BUILTIN_GENERATORS

    registry = HintRegistry(config)
    for generator in BUILTIN_GENERATORS:
        registry.register(generator)
    logger.debug(f"Hint registry with {len(registry.generators)} generators")
    return registry
