"""
Test operations on an in-memory epic.

`test_status` tracks the lifecycle and `result` tracks the verdict. Failing
a done test re-opens it (done -> wip) with a failing result, so the epic
cannot complete until the test is passed again.
"""

from datetime import datetime

from agentpm.epic.fsm import apply_transition
from agentpm.epic.model import Epic, Test
from agentpm.epic.status import PhaseStatus, TaskStatus, TestResult, TestStatus
from agentpm.services import events
from agentpm.services.errors import (
    EntityNotFound,
    MissingReason,
    PrerequisiteMissing,
    TransitionRefused,
)
from agentpm.services.phases import refresh_next_action

STATUS_ATTR = "test_status"


def get_test(epic: Epic, test_id: str) -> Test:
    test = epic.find_test(test_id)
    if test is None:
        raise EntityNotFound("test", test_id)
    return test


def _advance(test: Test, target: TestStatus) -> None:
    apply_transition("test", test, target, status_attr=STATUS_ATTR)


def check_start_test(epic: Epic, test_id: str) -> Test:
    test = get_test(epic, test_id)

    if test.test_status != TestStatus.PENDING:
        if test.test_status == TestStatus.WIP:
            message = f"Test {test_id} is already in progress"
            suggestion = f"Use 'agentpm pass-test {test_id}' or 'agentpm fail-test {test_id}'"
        else:
            message = f"Cannot start test {test_id}: test is not in pending status"
            suggestion = ""
        raise TransitionRefused(
            "test", test_id, test.test_status.value, TestStatus.WIP.value,
            message, suggestion, "start",
        )

    task = epic.find_task(test.task_id)
    if task is not None and task.status not in (TaskStatus.WIP, TaskStatus.DONE):
        raise PrerequisiteMissing(
            "test", test_id, "task", task.id, TaskStatus.WIP.value,
            f"Cannot start test {test_id}: associated task {task.id} is not active or completed "
            f"(status: {task.status.value})",
            f"Start task {task.id} first using 'agentpm start-task {task.id}'",
        )

    phase = epic.find_phase(epic.phase_of_test(test))
    if phase is not None and phase.status not in (PhaseStatus.WIP, PhaseStatus.DONE):
        raise PrerequisiteMissing(
            "test", test_id, "phase", phase.id, PhaseStatus.WIP.value,
            f"Cannot start test {test_id}: associated phase {phase.id} is not active or completed "
            f"(status: {phase.status.value})",
            f"Start phase {phase.id} first using 'agentpm start-phase {phase.id}'",
        )
    return test


def start_test(epic: Epic, test_id: str, timestamp: datetime) -> Test:
    test = check_start_test(epic, test_id)

    _advance(test, TestStatus.WIP)
    test.started_at = timestamp
    events.append_event(
        epic, events.TEST_STARTED,
        events.entity_event_data("Test", test.id, test.name, "started"),
        timestamp,
    )
    refresh_next_action(epic)
    return test


def check_pass_test(epic: Epic, test_id: str) -> Test:
    test = get_test(epic, test_id)
    if test.test_status != TestStatus.WIP:
        suggestion = ""
        if test.test_status == TestStatus.PENDING:
            suggestion = f"Start the test first using 'agentpm start-test {test_id}'"
        raise TransitionRefused(
            "test", test_id, test.test_status.value, TestStatus.DONE.value,
            f"Cannot pass test {test_id}: test is not currently in progress",
            suggestion, "pass",
        )
    return test


def _apply_pass(epic: Epic, test: Test, timestamp: datetime) -> None:
    _advance(test, TestStatus.DONE)
    test.result = TestResult.PASSING
    test.passed_at = timestamp
    test.failure_note = ""
    events.append_event(
        epic, events.TEST_PASSED,
        events.entity_event_data("Test", test.id, test.name, "passed"),
        timestamp,
    )


def pass_test(epic: Epic, test_id: str, timestamp: datetime) -> Test:
    """wip -> done with a passing result."""
    test = check_pass_test(epic, test_id)
    _apply_pass(epic, test, timestamp)
    refresh_next_action(epic)
    return test


def check_fail_test(epic: Epic, test_id: str) -> Test:
    test = get_test(epic, test_id)
    if test.test_status not in (TestStatus.WIP, TestStatus.DONE):
        suggestion = ""
        if test.test_status == TestStatus.PENDING:
            suggestion = f"Start the test first using 'agentpm start-test {test_id}'"
        raise TransitionRefused(
            "test", test_id, test.test_status.value, TestStatus.WIP.value,
            f"Cannot fail test {test_id}: test must be in progress (wip) or done to be failed",
            suggestion, "fail",
        )
    return test


def _apply_fail(epic: Epic, test: Test, reason: str, timestamp: datetime) -> None:
    if test.test_status == TestStatus.DONE:
        _advance(test, TestStatus.WIP)
    test.result = TestResult.FAILING
    test.failed_at = timestamp
    test.failure_note = reason
    events.append_event(
        epic, events.TEST_FAILED,
        events.entity_event_data("Test", test.id, test.name, "failed", reason),
        timestamp,
    )
    events.append_event(epic, events.BLOCKER, events.blocker_data(epic, test.id, reason), timestamp)


def fail_test(epic: Epic, test_id: str, reason: str, timestamp: datetime) -> Test:
    """Record a failing result; a done test is re-opened to wip."""
    test = check_fail_test(epic, test_id)
    _apply_fail(epic, test, reason.strip(), timestamp)
    refresh_next_action(epic)
    return test


def cancel_test(epic: Epic, test_id: str, reason: str, timestamp: datetime) -> Test:
    """pending|wip -> cancelled. A reason is mandatory."""
    test = get_test(epic, test_id)
    if not reason or not reason.strip():
        raise MissingReason("test", test_id)

    if not test.test_status.can_transition_to(TestStatus.CANCELLED):
        raise TransitionRefused(
            "test", test_id, test.test_status.value, TestStatus.CANCELLED.value,
            f"Cannot cancel test {test_id}: test is already {test.test_status.value}",
            "Only pending or in-progress tests can be cancelled", "cancel",
        )

    _advance(test, TestStatus.CANCELLED)
    test.cancelled_at = timestamp
    test.cancellation_reason = reason.strip()
    events.append_event(
        epic, events.TEST_CANCELLED,
        events.entity_event_data("Test", test.id, test.name, "cancelled", reason.strip()),
        timestamp,
    )
    refresh_next_action(epic)
    return test


def _unique(test_ids: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for test_id in test_ids:
        if test_id not in seen:
            seen.add(test_id)
            ordered.append(test_id)
    return ordered


def pass_tests(epic: Epic, test_ids: list[str], timestamp: datetime) -> list[Test]:
    """Pass several tests; nothing changes unless every one can pass."""
    tests = [check_pass_test(epic, test_id) for test_id in _unique(test_ids)]
    for test in tests:
        _apply_pass(epic, test, timestamp)
    refresh_next_action(epic)
    return tests


def fail_tests(epic: Epic, test_ids: list[str], reason: str, timestamp: datetime) -> list[Test]:
    """Fail several tests; nothing changes unless every one can fail."""
    tests = [check_fail_test(epic, test_id) for test_id in _unique(test_ids)]
    for test in tests:
        _apply_fail(epic, test, reason.strip(), timestamp)
    refresh_next_action(epic)
    return tests
