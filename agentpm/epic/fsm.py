"""Entity status state machines using transitions library.

One transition table per entity kind. The tables are the single source of
truth for `can_transition_to()` on the status enums and for the lifecycle
services, which drive an `EntityFSM` to apply an accepted change.

Usage:
    from agentpm.epic.fsm import EntityFSM

    fsm = EntityFSM("phase", phase)
    fsm.start()  # pending -> wip, writes phase.status
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from agentpm.epic.status import (
    KIND_OF,
    EpicStatus,
    PhaseStatus,
    TaskStatus,
    TestStatus,
)

logger = logging.getLogger(__name__)


STATUS_ENUM = {
    "epic": EpicStatus,
    "phase": PhaseStatus,
    "task": TaskStatus,
    "test": TestStatus,
}

STATES = {kind: [s.value for s in enum_cls] for kind, enum_cls in STATUS_ENUM.items()}

# Transitions defined as (trigger, source, dest)
# Each trigger becomes a method on the FSM
TRANSITIONS = {
    "epic": [
        {"trigger": "start", "source": "pending", "dest": "wip"},
        {"trigger": "complete", "source": "wip", "dest": "done"},
    ],
    "phase": [
        {"trigger": "start", "source": "pending", "dest": "wip"},
        {"trigger": "complete", "source": "wip", "dest": "done"},
    ],
    "task": [
        {"trigger": "start", "source": "pending", "dest": "wip"},
        {"trigger": "complete", "source": "wip", "dest": "done"},
        {"trigger": "cancel", "source": "pending", "dest": "cancelled"},
        {"trigger": "cancel", "source": "wip", "dest": "cancelled"},
    ],
    "test": [
        {"trigger": "start", "source": "pending", "dest": "wip"},
        {"trigger": "complete", "source": "wip", "dest": "done"},
        {"trigger": "cancel", "source": "pending", "dest": "cancelled"},
        {"trigger": "cancel", "source": "wip", "dest": "cancelled"},
        # A passed test can be re-opened when it starts failing again
        {"trigger": "reopen", "source": "done", "dest": "wip"},
    ],
}


# Pre-computed lookup: kind -> (source, dest) -> trigger name
def _build_trigger_lookup() -> dict[str, dict[tuple[str, str], str]]:
    """Build lookup from (source, dest) -> trigger name per kind."""
    lookup: dict[str, dict[tuple[str, str], str]] = {}
    for kind, transitions in TRANSITIONS.items():
        table: dict[tuple[str, str], str] = {}
        for t in transitions:
            key = (t["source"], t["dest"])
            if key not in table:
                table[key] = t["trigger"]
        lookup[kind] = table
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class InvalidTransition(Exception):
    """Raised when an FSM is asked for a transition its table does not allow."""

    def __init__(self, kind: str, entity_id: str, from_state: str, to_state: str):
        self.kind = kind
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid {kind} transition: {from_state} -> {to_state} ({kind}: {entity_id})")


def can_transition(current, target) -> bool:
    """Check a status pair against its kind's table.

    Both arguments must be members of the same status enum. Staying in the
    same status is never a transition.
    """
    kind = KIND_OF.get(type(current))
    if kind is None or type(target) is not type(current):
        return False
    return (current.value, target.value) in TRIGGER_FOR[kind]


def available_targets(current) -> list:
    """Statuses reachable from `current` in one step."""
    kind = KIND_OF[type(current)]
    enum_cls = STATUS_ENUM[kind]
    return [enum_cls(dest) for (src, dest) in TRIGGER_FOR[kind] if src == current.value]


class EntityFSM:
    """State machine around one epic entity.

    Wraps the transitions library with entity-specific logic:
    - Reads the initial state from the entity's status attribute
    - Writes the new status back to the entity after each transition
    - Logs all transitions
    """

    def __init__(
        self,
        kind: str,
        entity,
        status_attr: str = "status",
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """Initialize FSM for an entity.

        Args:
            kind: One of epic, phase, task, test
            entity: Model object carrying `id` and the status attribute
            status_attr: Name of the status attribute on the entity
            on_transition: Optional callback(from_state, to_state, trigger)
        """
        self.kind = kind
        self.entity = entity
        self.status_attr = status_attr
        self.on_transition = on_transition
        self.enum_cls = STATUS_ENUM[kind]

        initial = getattr(entity, status_attr)
        if not isinstance(initial, self.enum_cls):
            logger.warning(f"[FSM] {kind} {entity.id}: Unknown state '{initial}', defaulting to 'pending'")
            initial = self.enum_cls.PENDING

        self.machine = Machine(
            model=self,
            states=STATES[kind],
            transitions=TRANSITIONS[kind],
            initial=initial.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition.

        Writes the status back to the entity and logs the transition.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.kind} {self.entity.id}: {from_state} -> {to_state} ({trigger})")
        setattr(self.entity, self.status_attr, self.enum_cls(to_state))

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)

    def advance(self, target) -> str:
        """Move to `target` using whichever trigger connects the two states.

        Returns the trigger name.

        Raises:
            InvalidTransition: If the table has no such edge
        """
        target_value = target.value if isinstance(target, self.enum_cls) else str(target)
        trigger = TRIGGER_FOR[self.kind].get((self.state, target_value))
        if trigger is None:
            raise InvalidTransition(self.kind, self.entity.id, self.state, target_value)

        try:
            getattr(self, trigger)()
        except MachineError as e:
            raise InvalidTransition(self.kind, self.entity.id, self.state, target_value) from e
        return trigger


def apply_transition(kind: str, entity, target, status_attr: str = "status") -> str:
    """Drive `entity` to `target` through a throwaway FSM. Returns the trigger."""
    return EntityFSM(kind, entity, status_attr=status_attr).advance(target)
