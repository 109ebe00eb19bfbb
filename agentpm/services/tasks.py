"""
Task operations on an in-memory epic.

A task may only start inside the active phase, and only one task per phase
may be active. Completion requires every test of the task to be closed.
"""

from datetime import datetime

from agentpm.epic.fsm import apply_transition
from agentpm.epic.model import Epic, Task
from agentpm.epic.status import PhaseStatus, TaskStatus
from agentpm.services import events
from agentpm.services.errors import (
    ChildrenIncomplete,
    ConstraintViolation,
    EntityNotFound,
    MissingReason,
    PrerequisiteMissing,
    TransitionRefused,
)
from agentpm.services.phases import refresh_next_action
from agentpm.services.validation import task_blocking_items


def get_task(epic: Epic, task_id: str) -> Task:
    task = epic.find_task(task_id)
    if task is None:
        raise EntityNotFound("task", task_id)
    return task


def check_start_task(epic: Epic, task_id: str) -> Task:
    task = get_task(epic, task_id)

    if task.status != TaskStatus.PENDING:
        if task.status == TaskStatus.WIP:
            message = f"Task {task_id} is already active"
        else:
            message = "Task is not in pending state"
        raise TransitionRefused(
            "task", task_id, task.status.value, TaskStatus.WIP.value,
            message, "Use 'agentpm pending' to find a task that has not started", "start",
        )

    phase = epic.find_phase(task.phase_id)
    if phase is None:
        raise EntityNotFound("phase", task.phase_id)
    if phase.status != PhaseStatus.WIP:
        raise PrerequisiteMissing(
            "task", task_id, "phase", phase.id, PhaseStatus.WIP.value,
            "Cannot start task: phase is not active",
            f"Start phase {phase.id} first using 'agentpm start-phase {phase.id}'",
        )

    active = epic.active_task(task.phase_id)
    if active is not None and active.id != task_id:
        raise ConstraintViolation(
            "task", task_id, active.id,
            "Cannot start task: another task is already active in this phase",
            phase_id=task.phase_id,
            suggestion=f"Complete task {active.id} first using 'agentpm done-task {active.id}'",
        )
    return task


def start_task(epic: Epic, task_id: str, timestamp: datetime) -> Task:
    """pending -> wip inside the active phase."""
    task = check_start_task(epic, task_id)

    apply_transition("task", task, TaskStatus.WIP)
    task.started_at = timestamp
    events.append_event(
        epic, events.TASK_STARTED,
        events.entity_event_data("Task", task.id, task.name, "started"),
        timestamp,
    )
    refresh_next_action(epic)
    return task


def check_complete_task(epic: Epic, task_id: str) -> Task:
    task = get_task(epic, task_id)

    if task.status != TaskStatus.WIP:
        suggestion = ""
        if task.status == TaskStatus.PENDING:
            suggestion = f"Start the task first using 'agentpm start-task {task_id}'"
        raise TransitionRefused(
            "task", task_id, task.status.value, TaskStatus.DONE.value,
            "Task is not in active state", suggestion, "complete",
        )

    blocking = task_blocking_items(epic, task_id)
    if blocking:
        raise ChildrenIncomplete(
            "task", task_id, task.name, blocking,
            f"Cannot complete task {task_id}: {len(blocking)} incomplete tests",
            "Pass or cancel every test of this task first",
        )
    return task


def complete_task(epic: Epic, task_id: str, timestamp: datetime) -> Task:
    """wip -> done once all of the task's tests are closed."""
    task = check_complete_task(epic, task_id)

    apply_transition("task", task, TaskStatus.DONE)
    task.completed_at = timestamp
    events.append_event(
        epic, events.TASK_COMPLETED,
        events.entity_event_data("Task", task.id, task.name, "completed"),
        timestamp,
    )
    refresh_next_action(epic)
    return task


def cancel_task(epic: Epic, task_id: str, reason: str, timestamp: datetime) -> Task:
    """pending|wip -> cancelled. A reason is mandatory."""
    task = get_task(epic, task_id)
    if not reason or not reason.strip():
        raise MissingReason("task", task_id)

    if not task.status.can_transition_to(TaskStatus.CANCELLED):
        raise TransitionRefused(
            "task", task_id, task.status.value, TaskStatus.CANCELLED.value,
            f"Task {task_id} cannot be cancelled from status: {task.status.value}",
            "Only pending or active tasks can be cancelled", "cancel",
        )

    apply_transition("task", task, TaskStatus.CANCELLED)
    task.cancelled_at = timestamp
    task.cancellation_reason = reason.strip()
    events.append_event(
        epic, events.TASK_CANCELLED,
        events.entity_event_data("Task", task.id, task.name, "cancelled", reason.strip()),
        timestamp,
    )
    refresh_next_action(epic)
    return task


def first_pending_task(epic: Epic, phase_id: str) -> Task | None:
    for task in epic.tasks_in_phase(phase_id):
        if task.status == TaskStatus.PENDING:
            return task
    return None
