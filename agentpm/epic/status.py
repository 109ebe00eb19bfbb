"""
Unified status vocabulary for epics, phases, tasks and tests.

The in-memory model only ever holds these enums. Older epic files use a
legacy vocabulary (planning, active, completed, on_hold); those tokens are
mapped here at the codec boundary and re-emitted canonically on save.

Usage:
    from agentpm.epic.status import PhaseStatus, unify_phase_status

    status = unify_phase_status("active")  # PhaseStatus.WIP
    status.can_transition_to(PhaseStatus.DONE)  # True
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class StatusError(ValueError):
    """Raised by the strict validate_*_status helpers."""

    def __init__(self, kind: str, token: str):
        self.kind = kind
        self.token = token
        super().__init__(f"invalid {kind} status: {token}")


class _Status(str, Enum):
    """Shared behavior for the status enums."""

    def __str__(self) -> str:
        return self.value

    def can_transition_to(self, target: "_Status") -> bool:
        """Whether the transition table for this kind allows current -> target."""
        from agentpm.epic.fsm import can_transition
        return can_transition(self, target)

    @property
    def is_terminal(self) -> bool:
        from agentpm.epic.fsm import available_targets
        return not available_targets(self)


class EpicStatus(_Status):
    PENDING = "pending"
    WIP = "wip"
    DONE = "done"


class PhaseStatus(_Status):
    PENDING = "pending"
    WIP = "wip"
    DONE = "done"


class TaskStatus(_Status):
    PENDING = "pending"
    WIP = "wip"
    DONE = "done"
    CANCELLED = "cancelled"


class TestStatus(_Status):
    __test__ = False  # not a pytest class

    PENDING = "pending"
    WIP = "wip"
    DONE = "done"
    CANCELLED = "cancelled"


class TestResult(_Status):
    __test__ = False

    PASSING = "passing"
    FAILING = "failing"


# Legacy token -> unified token. Applied to every entity kind.
LEGACY_ALIASES = {
    "planning": "pending",
    "active": "wip",
    "completed": "done",
    "on_hold": "pending",
}

# Tests additionally used outcome words as status values
LEGACY_TEST_ALIASES = {
    "passed": "done",
    "failed": "wip",
}

KIND_OF = {
    EpicStatus: "epic",
    PhaseStatus: "phase",
    TaskStatus: "task",
    TestStatus: "test",
}


def _lookup(enum_cls, token: str | None):
    if token is None:
        return None
    for member in enum_cls:
        if member.value == token:
            return member
    return None


def parse_status(enum_cls, token: str | None):
    """Parse a token into enum_cls, accepting legacy aliases.

    Returns None if the token is unknown.
    """
    if token is None:
        return None
    token = token.strip().lower()
    member = _lookup(enum_cls, token)
    if member is not None:
        return member
    if enum_cls is TestStatus and token in LEGACY_TEST_ALIASES:
        return _lookup(enum_cls, LEGACY_TEST_ALIASES[token])
    return _lookup(enum_cls, LEGACY_ALIASES.get(token))


def unify_status(enum_cls, token: str | None, entity: str = ""):
    """Lenient parse used when loading documents.

    Unrecognized tokens degrade to PENDING instead of failing the load.
    """
    member = parse_status(enum_cls, token)
    if member is not None:
        return member
    if token:
        where = f" on {entity}" if entity else ""
        logger.warning(f"Unknown {KIND_OF[enum_cls]} status '{token}'{where}, treating as pending")
    return enum_cls.PENDING


def unify_epic_status(token: str | None, entity: str = "") -> EpicStatus:
    return unify_status(EpicStatus, token, entity)


def unify_phase_status(token: str | None, entity: str = "") -> PhaseStatus:
    return unify_status(PhaseStatus, token, entity)


def unify_task_status(token: str | None, entity: str = "") -> TaskStatus:
    return unify_status(TaskStatus, token, entity)


def unify_test_status(token: str | None, entity: str = "") -> TestStatus:
    return unify_status(TestStatus, token, entity)


def parse_test_result(token: str | None) -> TestResult | None:
    """Parse a result attribute. Returns None if missing or unknown."""
    if token is None:
        return None
    return _lookup(TestResult, token.strip().lower())


def _strict(enum_cls, token: str):
    member = parse_status(enum_cls, token)
    if member is None:
        raise StatusError(KIND_OF[enum_cls], token)
    return member


def validate_epic_status(token: str) -> EpicStatus:
    """Strict parse. Raises StatusError on unknown tokens."""
    return _strict(EpicStatus, token)


def validate_phase_status(token: str) -> PhaseStatus:
    return _strict(PhaseStatus, token)


def validate_task_status(token: str) -> TaskStatus:
    return _strict(TaskStatus, token)


def validate_test_status(token: str) -> TestStatus:
    return _strict(TestStatus, token)
