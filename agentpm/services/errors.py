"""
Typed errors raised by the lifecycle services.

Every refusal carries enough structured data for the hint registry and for
JSON/XML error output. Refusals never mutate the epic.
"""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class BlockingItem:
    """A child entity that prevents its parent from completing."""
    type: str  # "task" or "test"
    id: str
    name: str
    status: str
    result: str = ""


class LifecycleError(Exception):
    """Base class for refused lifecycle operations."""

    error_type = "lifecycle_error"

    def __init__(
        self,
        message: str,
        entity_type: str = "",
        entity_id: str = "",
        suggestion: str = "",
        operation: str = "",
    ):
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.suggestion = suggestion
        self.operation = operation
        self.hint = None  # attached by the lifecycle service
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        """Error-specific structured fields."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.error_type,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
        }
        data.update(self.details())
        if self.suggestion:
            data["suggestion"] = self.suggestion
        if self.hint is not None:
            data["hint"] = self.hint.to_dict()
        return data


class TransitionRefused(LifecycleError):
    """Current status does not permit the requested target status."""

    error_type = "state_transition"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        target_status: str,
        message: str,
        suggestion: str = "",
        operation: str = "",
    ):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message, entity_type, entity_id, suggestion, operation)

    def details(self) -> dict[str, Any]:
        return {"current_status": self.current_status, "target_status": self.target_status}


class ConstraintViolation(LifecycleError):
    """Starting the entity would create a second active phase or task."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        active_id: str,
        message: str,
        phase_id: str = "",
        suggestion: str = "",
    ):
        self.active_id = active_id
        self.phase_id = phase_id
        super().__init__(message, entity_type, entity_id, suggestion, "start")

    @property
    def error_type(self) -> str:
        return f"{self.entity_type}_constraint"

    def details(self) -> dict[str, Any]:
        data = {"active_id": self.active_id, "attempted_id": self.entity_id}
        if self.phase_id:
            data["phase_id"] = self.phase_id
        return data


class ChildrenIncomplete(LifecycleError):
    """A phase or task still has outstanding tasks or tests."""

    error_type = "children_incomplete"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        entity_name: str,
        blocking_items: list[BlockingItem],
        message: str,
        suggestion: str = "",
    ):
        self.entity_name = entity_name
        self.blocking_items = blocking_items
        super().__init__(message, entity_type, entity_id, suggestion, "complete")

    def details(self) -> dict[str, Any]:
        return {"blocking_items": [asdict(i) for i in self.blocking_items]}


class PrerequisiteMissing(LifecycleError):
    """The parent entity is not in a state that allows the operation."""

    error_type = "missing_prerequisite"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        required_type: str,
        required_id: str,
        required_status: str,
        message: str,
        suggestion: str = "",
        operation: str = "start",
    ):
        self.required_type = required_type
        self.required_id = required_id
        self.required_status = required_status
        super().__init__(message, entity_type, entity_id, suggestion, operation)

    def details(self) -> dict[str, Any]:
        return {
            "required_type": self.required_type,
            "required_id": self.required_id,
            "required_status": self.required_status,
        }


class EntityNotFound(LifecycleError):
    error_type = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type,
            entity_id,
            "Use 'agentpm status' to list the epic's phases, tasks and tests",
        )


class MissingReason(LifecycleError):
    error_type = "missing_reason"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"cancellation reason is required for {entity_type} {entity_id}",
            entity_type,
            entity_id,
            "Pass a reason describing why the work is cancelled",
            "cancel",
        )


class CompletionBlocked(LifecycleError):
    """Epic completion refused; carries the full validation result."""

    error_type = "completion_blocked"

    def __init__(self, epic_id: str, validation, report: str):
        self.validation = validation
        self.report = report
        parts = []
        if validation.pending_phases:
            parts.append(f"{len(validation.pending_phases)} pending phases")
        if validation.failing_tests:
            parts.append(f"{len(validation.failing_tests)} failing tests")
        suggestion = "; ".join(validation.suggestions)
        super().__init__(
            f"Cannot complete epic: {', '.join(parts)}", "epic", epic_id, suggestion, "complete"
        )

    @property
    def pending_phases(self):
        return self.validation.pending_phases

    @property
    def failing_tests(self):
        return self.validation.failing_tests

    def details(self) -> dict[str, Any]:
        return {
            "pending_phases": [asdict(p) for p in self.validation.pending_phases],
            "failing_tests": [asdict(t) for t in self.validation.failing_tests],
            "summary": asdict(self.validation.summary),
            "suggestions": list(self.validation.suggestions),
        }


class InvalidEventType(LifecycleError):
    error_type = "invalid_event_type"

    def __init__(self, event_type: str, valid: tuple[str, ...]):
        super().__init__(
            f"invalid event type: {event_type} (valid types: {', '.join(valid)})",
            "event",
            "",
        )
