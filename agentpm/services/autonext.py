"""
Automatic next-work selection for start-next.

Order of preference:
1. Active phase with no active task: start its first pending task.
2. Active phase with nothing left open: complete it, then fall through.
3. No active phase: start the first pending phase and its first pending task.
4. Every phase done: report that the epic is ready for completion.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from agentpm.epic.model import Epic, Phase
from agentpm.services import phases, tasks
from agentpm.services.validation import phase_blocking_items

START_TASK = "start_task"
START_PHASE = "start_phase"
COMPLETE_PHASE = "complete_phase"
COMPLETE_EPIC = "complete_epic"
NO_WORK = "no_work"


@dataclass
class AutoNextResult:
    action: str
    message: str
    phase_id: str = ""
    phase_name: str = ""
    task_id: str = ""
    task_name: str = ""
    completed_phase_id: str = ""
    started_at: Optional[datetime] = None

    @property
    def changed(self) -> bool:
        """Whether the epic was mutated and needs saving."""
        return self.action in (START_TASK, START_PHASE) or bool(self.completed_phase_id)


def select_next(epic: Epic, timestamp: datetime) -> AutoNextResult:
    """Pick and start the next piece of work. Mutates the epic in place."""
    active = epic.active_phase()
    if active is not None:
        return _with_active_phase(epic, active, timestamp)
    return _without_active_phase(epic, timestamp)


def _with_active_phase(epic: Epic, phase: Phase, timestamp: datetime) -> AutoNextResult:
    active_task = epic.active_task(phase.id)
    if active_task is not None:
        return AutoNextResult(NO_WORK, f"Task {active_task.id} is already active in phase {phase.id}")

    task = tasks.first_pending_task(epic, phase.id)
    if task is not None:
        tasks.start_task(epic, task.id, timestamp)
        return AutoNextResult(
            START_TASK,
            f"Started Task {task.id}: {task.name} (auto-selected)",
            phase_id=phase.id,
            phase_name=phase.name,
            task_id=task.id,
            task_name=task.name,
            started_at=timestamp,
        )

    if phase_blocking_items(epic, phase.id):
        return AutoNextResult(NO_WORK, f"Phase {phase.id} has pending work but no tasks can be started")

    phases.complete_phase(epic, phase.id, timestamp)
    result = _without_active_phase(epic, timestamp)
    result.completed_phase_id = phase.id
    if result.action == COMPLETE_EPIC:
        result.action = COMPLETE_PHASE
        result.phase_id = phase.id
        result.phase_name = phase.name
        result.message = f"Completed Phase {phase.id}. All phases and tasks completed. Epic ready for completion."
    return result


def _without_active_phase(epic: Epic, timestamp: datetime) -> AutoNextResult:
    phase = phases.first_pending_phase(epic)
    if phase is None:
        return AutoNextResult(COMPLETE_EPIC, "All phases and tasks completed. Epic ready for completion.")

    phases.start_phase(epic, phase.id, timestamp)

    task = tasks.first_pending_task(epic, phase.id)
    if task is None:
        return AutoNextResult(
            START_PHASE,
            f"Started Phase {phase.id} (no tasks available)",
            phase_id=phase.id,
            phase_name=phase.name,
            started_at=timestamp,
        )

    tasks.start_task(epic, task.id, timestamp)
    return AutoNextResult(
        START_PHASE,
        f"Started Phase {phase.id} and Task {task.id} (auto-selected)",
        phase_id=phase.id,
        phase_name=phase.name,
        task_id=task.id,
        task_name=task.name,
        started_at=timestamp,
    )
