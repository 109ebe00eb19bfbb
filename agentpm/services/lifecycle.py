"""
Lifecycle service.

Command-level operations on an epic file. Every operation loads the epic
through the storage port, applies one of the phase/task/test services (or
the epic transition itself), and saves. Refusals are raised before anything
is mutated, get a hint attached, and never reach the save.

Usage:
    service = LifecycleService(FileStorage())
    result = service.start_phase(StartPhaseRequest("epic.xml", "P1"))
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterator, Optional

from agentpm.epic.fsm import apply_transition
from agentpm.epic.model import Epic
from agentpm.epic.status import EpicStatus, TaskStatus
from agentpm.hints.registry import HintRegistry, context_from_error
from agentpm.lib.timeutil import Clock, system_clock
from agentpm.services import autonext, events, phases, tasks, testcases
from agentpm.services.errors import (
    CompletionBlocked,
    InvalidEventType,
    LifecycleError,
    TransitionRefused,
)
from agentpm.services.validation import format_validation_error, validate_epic_completion
from agentpm.storage.base import EpicStorage

logger = logging.getLogger(__name__)


# Requests

@dataclass
class StartEpicRequest:
    epic_file: str
    timestamp: Optional[datetime] = None


@dataclass
class CompleteEpicRequest:
    epic_file: str
    timestamp: Optional[datetime] = None


@dataclass
class StartPhaseRequest:
    epic_file: str
    phase_id: str
    timestamp: Optional[datetime] = None


@dataclass
class CompletePhaseRequest:
    epic_file: str
    phase_id: str
    timestamp: Optional[datetime] = None


@dataclass
class StartTaskRequest:
    epic_file: str
    task_id: str
    timestamp: Optional[datetime] = None


@dataclass
class CompleteTaskRequest:
    epic_file: str
    task_id: str
    timestamp: Optional[datetime] = None


@dataclass
class CancelTaskRequest:
    epic_file: str
    task_id: str
    reason: str
    timestamp: Optional[datetime] = None


@dataclass
class StartTestRequest:
    epic_file: str
    test_id: str
    timestamp: Optional[datetime] = None


@dataclass
class PassTestRequest:
    epic_file: str
    test_id: str
    timestamp: Optional[datetime] = None


@dataclass
class FailTestRequest:
    epic_file: str
    test_id: str
    reason: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class CancelTestRequest:
    epic_file: str
    test_id: str
    reason: str
    timestamp: Optional[datetime] = None


@dataclass
class PassTestsRequest:
    epic_file: str
    test_ids: list[str]
    timestamp: Optional[datetime] = None


@dataclass
class FailTestsRequest:
    epic_file: str
    test_ids: list[str]
    reason: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class StartNextRequest:
    epic_file: str
    timestamp: Optional[datetime] = None


@dataclass
class LogEventRequest:
    epic_file: str
    message: str
    event_type: str = events.DEFAULT_MANUAL_TYPE
    timestamp: Optional[datetime] = None
    files: str = ""  # path:action,...


# Results

@dataclass
class EpicSummary:
    total_phases: int
    total_tasks: int
    total_tests: int
    passing_tests: int
    duration: str


@dataclass
class StartEpicResult:
    epic_id: str
    previous_status: EpicStatus
    new_status: EpicStatus
    started_at: datetime
    message: str
    event_created: bool = True


@dataclass
class CompleteEpicResult:
    epic_id: str
    previous_status: EpicStatus
    new_status: EpicStatus
    completed_at: datetime
    summary: EpicSummary
    message: str
    event_created: bool = True


@dataclass
class EntityResult:
    """Outcome of a phase, task or test operation."""
    entity_type: str
    entity_id: str
    name: str
    operation: str
    previous_status: str
    new_status: str
    timestamp: datetime
    message: str
    reason: str = ""


@dataclass
class BatchTestResult:
    operation: str
    test_ids: list[str]
    timestamp: datetime
    message: str
    reason: str = ""


@dataclass
class LogEventResult:
    event_id: str
    event_type: str
    timestamp: datetime
    message: str


@dataclass
class StartNextResult:
    action: str
    message: str
    phase_id: str = ""
    task_id: str = ""
    completed_phase_id: str = ""
    timestamp: Optional[datetime] = None
    details: dict = field(default_factory=dict)


def format_duration(delta: timedelta) -> str:
    """Human readable duration, e.g. '2 days, 3 hours'."""
    total_minutes = int(delta.total_seconds() // 60)
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)

    if days > 0:
        return f"{days} days, {hours} hours" if hours else f"{days} days"
    if hours > 0:
        return f"{hours} hours, {minutes} minutes" if minutes else f"{hours} hours"
    if minutes > 0:
        return f"{minutes} minutes"
    return "less than a minute"


def epic_started_at(epic: Epic) -> Optional[datetime]:
    """Timestamp of the first epic_started event, else the creation time."""
    for event in epic.events:
        if event.type == events.EPIC_STARTED and event.timestamp is not None:
            return event.timestamp
    return epic.created_at


class LifecycleService:
    """Load, mutate, record and save one epic per operation."""

    def __init__(
        self,
        storage: EpicStorage,
        clock: Clock = system_clock,
        hints: HintRegistry | None = None,
    ):
        self.storage = storage
        self.clock = clock
        self.hints = hints

    # Plumbing

    def _now(self, override: Optional[datetime]) -> datetime:
        return override if override is not None else self.clock()

    def _save(self, epic: Epic, path: str) -> None:
        self.storage.save_epic(epic, path)

    @contextmanager
    def _refusals(self, epic: Epic, operation: str) -> Iterator[None]:
        """Attach a hint to any refusal raised inside the block."""
        try:
            yield
        except LifecycleError as e:
            if e.hint is None and self.hints is not None:
                e.hint = self.hints.generate(context_from_error(e, epic))
            logger.info(f"[LIFECYCLE] {operation} refused: {e.message}")
            raise

    def _entity_result(self, kind, entity, operation, previous, timestamp, reason="") -> EntityResult:
        status = entity.test_status if kind == "test" else entity.status
        label = f"{kind.capitalize()} {entity.id}"
        message = {
            "start": f"{label} started",
            "complete": f"{label} completed",
            "cancel": f"{label} cancelled",
            "pass": f"{label} passed",
            "fail": f"{label} failed",
        }[operation]
        if reason:
            message += f": {reason}"
        logger.info(f"[LIFECYCLE] {message}")
        return EntityResult(
            entity_type=kind,
            entity_id=entity.id,
            name=entity.name,
            operation=operation,
            previous_status=previous,
            new_status=status.value,
            timestamp=timestamp,
            message=message,
            reason=reason,
        )

    # Epic

    def start_epic(self, request: StartEpicRequest) -> StartEpicResult:
        epic = self.storage.load_epic(request.epic_file)
        previous = epic.status

        with self._refusals(epic, "start-epic"):
            if not previous.can_transition_to(EpicStatus.WIP):
                raise TransitionRefused(
                    "epic", epic.id, previous.value, EpicStatus.WIP.value,
                    f"Epic is already started (current status: {previous.value})",
                    "Use 'agentpm current' to see active work",
                    "start",
                )

        started_at = self._now(request.timestamp)
        apply_transition("epic", epic, EpicStatus.WIP)
        events.append_event(epic, events.EPIC_STARTED, events.epic_event_data(epic, "started"), started_at)
        phases.refresh_next_action(epic)
        self._save(epic, request.epic_file)

        logger.info(f"[LIFECYCLE] Epic {epic.id} started")
        return StartEpicResult(
            epic_id=epic.id,
            previous_status=previous,
            new_status=epic.status,
            started_at=started_at,
            message=f"Epic {epic.id} started. Status changed to {epic.status.value}.",
        )

    def complete_epic(self, request: CompleteEpicRequest) -> CompleteEpicResult:
        epic = self.storage.load_epic(request.epic_file)
        previous = epic.status

        with self._refusals(epic, "done-epic"):
            if not previous.can_transition_to(EpicStatus.DONE):
                raise TransitionRefused(
                    "epic", epic.id, previous.value, EpicStatus.DONE.value,
                    f"Epic cannot be completed from status: {previous.value}",
                    "Epic must be started first using 'agentpm start-epic'",
                    "complete",
                )
            validation = validate_epic_completion(epic)
            if not validation.is_valid:
                raise CompletionBlocked(epic.id, validation, format_validation_error(validation, epic.id))

        completed_at = self._now(request.timestamp)
        started_at = epic_started_at(epic)
        duration = format_duration(completed_at - started_at) if started_at else "unknown"

        apply_transition("epic", epic, EpicStatus.DONE)
        events.append_event(epic, events.EPIC_COMPLETED, events.epic_event_data(epic, "completed"), completed_at)
        phases.refresh_next_action(epic)
        self._save(epic, request.epic_file)

        logger.info(f"[LIFECYCLE] Epic {epic.id} completed")
        return CompleteEpicResult(
            epic_id=epic.id,
            previous_status=previous,
            new_status=epic.status,
            completed_at=completed_at,
            summary=EpicSummary(
                total_phases=len(epic.phases),
                total_tasks=len(epic.tasks),
                total_tests=len(epic.tests),
                passing_tests=sum(1 for t in epic.tests if t.is_passing),
                duration=duration,
            ),
            message=f"Epic {epic.id} completed successfully. All phases and tests complete.",
        )

    # Phases

    def start_phase(self, request: StartPhaseRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "start-phase"):
            previous = phases.get_phase(epic, request.phase_id).status.value
            phase = phases.start_phase(epic, request.phase_id, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("phase", phase, "start", previous, timestamp)

    def complete_phase(self, request: CompletePhaseRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "done-phase"):
            previous = phases.get_phase(epic, request.phase_id).status.value
            phase = phases.complete_phase(epic, request.phase_id, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("phase", phase, "complete", previous, timestamp)

    # Tasks

    def start_task(self, request: StartTaskRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "start-task"):
            previous = tasks.get_task(epic, request.task_id).status.value
            task = tasks.start_task(epic, request.task_id, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("task", task, "start", previous, timestamp)

    def complete_task(self, request: CompleteTaskRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "done-task"):
            previous = tasks.get_task(epic, request.task_id).status.value
            task = tasks.complete_task(epic, request.task_id, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("task", task, "complete", previous, timestamp)

    def cancel_task(self, request: CancelTaskRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "cancel-task"):
            previous = tasks.get_task(epic, request.task_id).status.value
            task = tasks.cancel_task(epic, request.task_id, request.reason, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("task", task, "cancel", previous, timestamp, task.cancellation_reason)

    # Tests

    def start_test(self, request: StartTestRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "start-test"):
            previous = testcases.get_test(epic, request.test_id).test_status.value
            test = testcases.start_test(epic, request.test_id, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("test", test, "start", previous, timestamp)

    def pass_test(self, request: PassTestRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "pass-test"):
            previous = testcases.get_test(epic, request.test_id).test_status.value
            test = testcases.pass_test(epic, request.test_id, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("test", test, "pass", previous, timestamp)

    def fail_test(self, request: FailTestRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "fail-test"):
            previous = testcases.get_test(epic, request.test_id).test_status.value
            test = testcases.fail_test(epic, request.test_id, request.reason, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("test", test, "fail", previous, timestamp, test.failure_note)

    def cancel_test(self, request: CancelTestRequest) -> EntityResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "cancel-test"):
            previous = testcases.get_test(epic, request.test_id).test_status.value
            test = testcases.cancel_test(epic, request.test_id, request.reason, timestamp)
        self._save(epic, request.epic_file)
        return self._entity_result("test", test, "cancel", previous, timestamp, test.cancellation_reason)

    def pass_tests(self, request: PassTestsRequest) -> BatchTestResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "pass-test"):
            passed = testcases.pass_tests(epic, request.test_ids, timestamp)
        self._save(epic, request.epic_file)
        ids = [t.id for t in passed]
        logger.info(f"[LIFECYCLE] Tests passed: {', '.join(ids)}")
        return BatchTestResult("pass", ids, timestamp, f"{len(ids)} tests passed: {', '.join(ids)}")

    def fail_tests(self, request: FailTestsRequest) -> BatchTestResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "fail-test"):
            failed = testcases.fail_tests(epic, request.test_ids, request.reason, timestamp)
        self._save(epic, request.epic_file)
        ids = [t.id for t in failed]
        logger.info(f"[LIFECYCLE] Tests failed: {', '.join(ids)}")
        return BatchTestResult(
            "fail", ids, timestamp, f"{len(ids)} tests failed: {', '.join(ids)}", request.reason.strip()
        )

    # Automation and logging

    def start_next(self, request: StartNextRequest) -> StartNextResult:
        epic = self.storage.load_epic(request.epic_file)
        timestamp = self._now(request.timestamp)
        with self._refusals(epic, "start-next"):
            outcome = autonext.select_next(epic, timestamp)
        if outcome.changed:
            self._save(epic, request.epic_file)
        logger.info(f"[LIFECYCLE] start-next: {outcome.action}")

        details = {}
        if outcome.task_id:
            task = epic.find_task(outcome.task_id)
            details["task_name"] = task.name if task else ""
            details["task_status"] = task.status.value if task else TaskStatus.PENDING.value
        if outcome.phase_id:
            details["phase_name"] = outcome.phase_name
        return StartNextResult(
            action=outcome.action,
            message=outcome.message,
            phase_id=outcome.phase_id,
            task_id=outcome.task_id,
            completed_phase_id=outcome.completed_phase_id,
            timestamp=outcome.started_at,
            details=details,
        )

    def log_event(self, request: LogEventRequest) -> LogEventResult:
        epic = self.storage.load_epic(request.epic_file)
        event_type = request.event_type or events.DEFAULT_MANUAL_TYPE
        if event_type not in events.MANUAL_EVENT_TYPES:
            raise InvalidEventType(event_type, events.MANUAL_EVENT_TYPES)
        if not request.message or not request.message.strip():
            raise LifecycleError("log message cannot be empty", "event", "", "Pass the text to record", "log")
        changes = events.parse_file_changes(request.files)

        timestamp = self._now(request.timestamp)
        data = events.with_file_changes(request.message.strip(), changes)
        event = events.append_event(epic, event_type, data, timestamp)
        self._save(epic, request.epic_file)

        logger.info(f"[LIFECYCLE] Logged {event_type} event {event.id}")
        return LogEventResult(event.id, event_type, timestamp, f"Logged {event_type}: {event.data}")
