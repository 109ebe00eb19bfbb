"""
Built-in hint generators.

Each generator is a pair of pure functions over a HintContext. Commands are
stored without the program name; output layers add it.
"""

from agentpm.epic.model import Epic
from agentpm.epic.status import PhaseStatus
from agentpm.hints.registry import (
    Hint,
    HintCategory,
    HintContext,
    HintGenerator,
    HintPriority,
)

PHASE_CONSTRAINT = "phase_constraint"
TASK_CONSTRAINT = "task_constraint"
STATE_TRANSITION = "state_transition"
MISSING_PREREQUISITE = "missing_prerequisite"
CHILDREN_INCOMPLETE = "children_incomplete"
COMPLETION_BLOCKED = "completion_blocked"

# Operation -> command verb
_VERBS = {"start": "start", "complete": "done", "cancel": "cancel", "pass": "pass", "fail": "fail"}


def _command(operation: str, entity_type: str, entity_id: str = "") -> str:
    verb = _VERBS.get(operation, operation)
    command = f"{verb}-{entity_type}"
    if entity_id and entity_type != "epic":
        command += f" {entity_id}"
    return command


# Phase constraint

def _handles_phase_constraint(ctx: HintContext) -> bool:
    return ctx.error_type == PHASE_CONSTRAINT


def _phase_constraint_hint(ctx: HintContext) -> Hint:
    active_id = ctx.data.get("active_id", "")
    if not active_id and ctx.active_phase is not None:
        active_id = ctx.active_phase.id

    hint = Hint("", HintCategory.ACTIONABLE, HintPriority.HIGH)
    if active_id and ctx.entity_id:
        hint.content = f"Complete phase '{active_id}' before starting '{ctx.entity_id}'"
        hint.command = f"done-phase {active_id}"
        hint.conditions = [
            "Phases should be completed in dependency order",
            "Check phase prerequisites before starting",
        ]
    elif active_id:
        hint.content = f"Complete the current active phase '{active_id}' before starting a new one"
        hint.command = f"done-phase {active_id}"
        hint.conditions = [
            "Only one phase can be active at a time",
            "Complete active phase before starting another",
        ]
    else:
        hint.content = "Complete the current active phase before starting a new one"
        hint.command = "current"
        hint.conditions = [
            "Only one phase can be active at a time",
            "Complete active phase before starting another",
        ]
    return hint


# Task constraint

def _handles_task_constraint(ctx: HintContext) -> bool:
    return ctx.error_type == TASK_CONSTRAINT


def _task_constraint_hint(ctx: HintContext) -> Hint:
    active_id = ctx.data.get("active_id", "")
    phase_id = ctx.data.get("phase_id", "")
    if not active_id and ctx.active_task is not None:
        active_id = ctx.active_task.id
        phase_id = phase_id or ctx.active_task.phase_id

    conditions = [
        "Only one task per phase can be active",
        "Complete current task before starting another",
    ]
    hint = Hint("", HintCategory.ACTIONABLE, HintPriority.HIGH, conditions=conditions)
    if active_id and phase_id and ctx.entity_id:
        hint.content = f"Complete task '{active_id}' in phase '{phase_id}' before starting '{ctx.entity_id}'"
    elif active_id and ctx.entity_id:
        hint.content = f"Complete task '{active_id}' before starting task '{ctx.entity_id}'"
    elif active_id:
        hint.content = f"Complete task '{active_id}' before starting a new one"
    else:
        hint.content = "Complete the current active task before starting a new one in the same phase"
        hint.command = "current"
        return hint
    hint.command = f"done-task {active_id}"
    return hint


# Missing prerequisite

def _handles_missing_prerequisite(ctx: HintContext) -> bool:
    return ctx.error_type == MISSING_PREREQUISITE


def _missing_prerequisite_hint(ctx: HintContext) -> Hint:
    required_type = ctx.data.get("required_type", "")
    required_id = ctx.data.get("required_id", "")
    required_status = ctx.data.get("required_status", "wip")
    return Hint(
        content=(
            f"{ctx.entity_type.capitalize()} '{ctx.entity_id}' requires {required_type} "
            f"'{required_id}' to be {required_status} first"
        ),
        category=HintCategory.ACTIONABLE,
        priority=HintPriority.HIGH,
        command=_command("start", required_type, required_id),
        conditions=[f"{required_type} not active", f"trying to {ctx.operation or 'start'} {ctx.entity_type}"],
    )


# Invalid state transition

def _handles_state_transition(ctx: HintContext) -> bool:
    return ctx.error_type == STATE_TRANSITION


def _state_transition_hint(ctx: HintContext) -> Hint:
    hint = Hint(
        "", HintCategory.ACTIONABLE, HintPriority.MEDIUM,
        conditions=[
            "Entity must be in appropriate state for the operation",
            "Check current status before attempting transitions",
        ],
    )
    kind, entity_id, operation = ctx.entity_type, ctx.entity_id, ctx.operation
    label = kind.capitalize()

    if not (ctx.current_status and ctx.target_status and kind):
        hint.content = "Check the current status and ensure the entity is in the correct state for this operation"
        hint.command = "status"
        return hint

    if ctx.current_status == "done" and operation == "start":
        hint.content = f"{label} '{entity_id}' is already completed. Use 'agentpm status' to see available work"
        hint.command = "status"
    elif ctx.current_status == "pending" and operation != "start":
        hint.content = f"Start {kind} '{entity_id}' before marking it {_past(operation)}"
        hint.command = _command("start", kind, entity_id)
    elif ctx.current_status == "wip" and operation == "start":
        hint.content = f"{label} '{entity_id}' is already active. Use 'agentpm current' to see active work"
        hint.command = "current"
    elif ctx.current_status == "cancelled":
        hint.content = f"{label} '{entity_id}' was cancelled and cannot change status again"
        hint.command = "pending"
    else:
        hint.content = (
            f"Check the current status of {kind} '{entity_id}' and ensure it's in the correct "
            f"state for {operation} operation"
        )
        hint.command = "status"
    return hint


def _past(operation: str) -> str:
    return {"complete": "complete", "pass": "passed", "fail": "failed", "cancel": "cancelled"}.get(
        operation, operation
    )


# Epic-aware workflow guidance

_EPIC_AWARE = (PHASE_CONSTRAINT, TASK_CONSTRAINT, CHILDREN_INCOMPLETE, COMPLETION_BLOCKED)


def _handles_epic_aware(ctx: HintContext) -> bool:
    return ctx.epic is not None and ctx.error_type in _EPIC_AWARE


def _workflow_reference(epic: Epic) -> str:
    return f"Workflow: {epic.workflow}" if epic.workflow else ""


def _epic_aware_hint(ctx: HintContext) -> Hint | None:
    epic = ctx.epic
    hint = Hint("", HintCategory.WORKFLOW, HintPriority.MEDIUM, reference=_workflow_reference(epic))

    if ctx.error_type == PHASE_CONSTRAINT:
        active = epic.active_phase()
        target = epic.find_phase(ctx.entity_id)
        if active is None or target is None:
            return None
        hint.content = f"Complete phase '{active.id}' before starting '{target.id}'"
        hint.command = f"done-phase {active.id}"
        open_tasks = [t for t in epic.tasks_in_phase(active.id) if t.status.value in ("pending", "wip")]
        if open_tasks:
            hint.content += f". Dependencies: {len(open_tasks)} open tasks in '{active.id}'"
            hint.conditions = [
                "Phases should be completed in dependency order",
                "Check phase prerequisites before starting",
            ]
        return hint

    if ctx.error_type == TASK_CONSTRAINT:
        active = epic.active_task()
        if active is None:
            return None
        phase = epic.find_phase(active.phase_id)
        hint.content = (
            f"Complete task '{active.id}' in phase '{active.phase_id}' before starting "
            f"another task in the same phase"
        )
        hint.command = f"done-task {active.id}"
        hint.conditions = [
            "Only one task per phase can be active",
            "Complete current task before starting another",
        ]
        if phase is not None and phase.name:
            hint.reference = f"Phase: {phase.name}"
        return hint

    if ctx.error_type == CHILDREN_INCOMPLETE:
        items = ctx.data.get("blocking_items", [])
        if not items:
            return None
        first = items[0]
        verb = "Complete" if first["type"] == "task" else "Pass or cancel"
        hint.content = (
            f"{verb} {first['type']} '{first['id']}' ({first['status']}) before completing "
            f"{ctx.entity_type} '{ctx.entity_id}'"
        )
        if len(items) > 1:
            hint.content += f"; {len(items) - 1} more outstanding"
        if first["type"] == "task":
            hint.command = f"done-task {first['id']}" if first["status"] == "wip" else "pending"
        else:
            hint.command = f"pass-test {first['id']}" if first["status"] == "wip" else f"start-test {first['id']}"
        return hint

    # Completion blocked: name the first blocker in the document
    for phase in epic.phases:
        if phase.status != PhaseStatus.DONE:
            hint.content = f"Epic '{epic.id}' is blocked by phase '{phase.id}' ({phase.status.value})"
            hint.command = f"done-phase {phase.id}" if phase.status == PhaseStatus.WIP else f"start-phase {phase.id}"
            return hint
    for test in epic.tests:
        if test.is_failing:
            hint.content = f"Epic '{epic.id}' is blocked by failing test '{test.id}'"
            hint.command = "failing"
            return hint
    return None


# Catch-all

def _handles_anything(ctx: HintContext) -> bool:
    return True


def _workflow_hint(ctx: HintContext) -> Hint:
    hint = Hint(
        "", HintCategory.WORKFLOW, HintPriority.LOW,
        conditions=[
            "Follow the epic workflow: pending -> active phases -> done",
            "Use 'agentpm current' to see what to work on next",
        ],
    )
    epic = ctx.epic
    if epic is None:
        hint.content = "Use 'agentpm current' to see active work and 'agentpm status' for an overview"
        hint.command = "current"
    elif epic.status.value == "pending":
        hint.content = "Epic has not started yet. Start the epic to begin work"
        hint.command = "start-epic"
    elif epic.status.value == "wip":
        phase = epic.active_phase()
        if phase is not None:
            hint.content = f"Continue work in active phase '{phase.id}'. Use 'agentpm current' to see current task"
            hint.command = "current"
        else:
            hint.content = "Epic is active but no phase is started. Start a phase to begin work"
            hint.command = "start-next"
    else:
        hint.content = "Epic is completed. Use 'agentpm switch' to work on a different epic"
        hint.command = "switch"
    return hint


BUILTIN_GENERATORS = [
    HintGenerator("phase_constraint", 100, _handles_phase_constraint, _phase_constraint_hint),
    HintGenerator("task_constraint", 100, _handles_task_constraint, _task_constraint_hint),
    HintGenerator("epic_phase_aware", 90, _handles_epic_aware, _epic_aware_hint),
    HintGenerator("missing_prerequisite", 85, _handles_missing_prerequisite, _missing_prerequisite_hint),
    HintGenerator("state_transition", 80, _handles_state_transition, _state_transition_hint),
    HintGenerator("workflow", 10, _handles_anything, _workflow_hint),
]
