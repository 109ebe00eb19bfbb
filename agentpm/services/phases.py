"""
Phase operations on an in-memory epic.

Each operation checks every precondition before touching the epic, so a
refusal leaves the document unchanged and appends no event.
"""

from datetime import datetime

from agentpm.epic.fsm import apply_transition
from agentpm.epic.model import CurrentState, Epic, Phase
from agentpm.epic.status import PhaseStatus
from agentpm.services import events
from agentpm.services.errors import (
    ChildrenIncomplete,
    ConstraintViolation,
    EntityNotFound,
    TransitionRefused,
)
from agentpm.services.query import QueryService
from agentpm.services.validation import phase_blocking_items


def get_phase(epic: Epic, phase_id: str) -> Phase:
    phase = epic.find_phase(phase_id)
    if phase is None:
        raise EntityNotFound("phase", phase_id)
    return phase


def current_state_of(epic: Epic) -> CurrentState:
    if epic.current_state is None:
        epic.current_state = CurrentState()
    return epic.current_state


def refresh_next_action(epic: Epic) -> None:
    """Recompute the cached next action after a mutation."""
    query = QueryService(storage=None)
    query.use_epic(epic)
    state = current_state_of(epic)
    state.active_phase = query.current_phase_id()
    state.active_task = query.current_task_id()
    state.next_action = query.next_action()


def check_start_phase(epic: Epic, phase_id: str) -> Phase:
    phase = get_phase(epic, phase_id)

    if phase.status != PhaseStatus.PENDING:
        if phase.status == PhaseStatus.WIP:
            message = f"Phase {phase_id} is already active"
            suggestion = f"Use 'agentpm start-task' to begin work in phase {phase_id}"
        else:
            message = "Phase is not in pending state"
            suggestion = "Use 'agentpm pending' to find a phase that has not started"
        raise TransitionRefused(
            "phase", phase_id, phase.status.value, PhaseStatus.WIP.value,
            message, suggestion, "start",
        )

    active = epic.active_phase()
    if active is not None and active.id != phase_id:
        raise ConstraintViolation(
            "phase", phase_id, active.id,
            "Cannot start phase: another phase is already active",
            suggestion=f"Complete phase {active.id} first using 'agentpm done-phase {active.id}'",
        )
    return phase


def start_phase(epic: Epic, phase_id: str, timestamp: datetime) -> Phase:
    """pending -> wip. Only one phase may be active."""
    phase = check_start_phase(epic, phase_id)

    apply_transition("phase", phase, PhaseStatus.WIP)
    phase.started_at = timestamp
    events.append_event(
        epic, events.PHASE_STARTED,
        events.entity_event_data("Phase", phase.id, phase.name, "started"),
        timestamp,
    )
    refresh_next_action(epic)
    return phase


def check_complete_phase(epic: Epic, phase_id: str) -> Phase:
    phase = get_phase(epic, phase_id)

    if phase.status != PhaseStatus.WIP:
        if phase.status == PhaseStatus.DONE:
            message = f"Phase {phase_id} is already completed"
        else:
            message = "Phase is not in active state"
        suggestion = ""
        if phase.status == PhaseStatus.PENDING:
            suggestion = f"Start the phase first using 'agentpm start-phase {phase_id}'"
        raise TransitionRefused(
            "phase", phase_id, phase.status.value, PhaseStatus.DONE.value,
            message, suggestion, "complete",
        )

    blocking = phase_blocking_items(epic, phase_id)
    if blocking:
        tasks = [i for i in blocking if i.type == "task"]
        tests = [i for i in blocking if i.type == "test"]
        parts = []
        if tasks:
            parts.append(f"{len(tasks)} pending tasks")
        if tests:
            parts.append(f"{len(tests)} incomplete tests")
        raise ChildrenIncomplete(
            "phase", phase_id, phase.name, blocking,
            f"Cannot complete phase {phase_id}: {', '.join(parts)}",
            "Complete or cancel all tasks and tests in this phase first",
        )
    return phase


def complete_phase(epic: Epic, phase_id: str, timestamp: datetime) -> Phase:
    """wip -> done once every task and test in the phase is closed."""
    phase = check_complete_phase(epic, phase_id)

    apply_transition("phase", phase, PhaseStatus.DONE)
    phase.completed_at = timestamp
    events.append_event(
        epic, events.PHASE_COMPLETED,
        events.entity_event_data("Phase", phase.id, phase.name, "completed"),
        timestamp,
    )
    refresh_next_action(epic)
    return phase


def first_pending_phase(epic: Epic) -> Phase | None:
    for phase in epic.phases:
        if phase.status == PhaseStatus.PENDING:
            return phase
    return None
