"""
Completion validation.

Decides whether an epic, phase or task may move to done, and explains why
not. Pure functions of the loaded epic; nothing here mutates.
"""

from dataclasses import dataclass, field

from agentpm.epic.model import Epic
from agentpm.epic.status import PhaseStatus, TaskStatus
from agentpm.services.errors import BlockingItem
from agentpm.services.progress import completion_percentage

MAX_LISTED_ITEMS = 3


@dataclass
class PendingPhase:
    id: str
    name: str


@dataclass
class FailingTest:
    id: str
    name: str
    description: str = ""


@dataclass
class ValidationSummary:
    total_phases: int = 0
    completed_phases: int = 0
    pending_phases: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    total_tests: int = 0
    passing_tests: int = 0
    failing_tests: int = 0
    completion_percentage: int = 0


@dataclass
class ValidationResult:
    is_valid: bool
    pending_phases: list[PendingPhase] = field(default_factory=list)
    failing_tests: list[FailingTest] = field(default_factory=list)
    summary: ValidationSummary = field(default_factory=ValidationSummary)
    suggestions: list[str] = field(default_factory=list)


def summarize(epic: Epic) -> ValidationSummary:
    """Totals and completed counts for each entity kind."""
    completed_phases = sum(1 for p in epic.phases if p.status == PhaseStatus.DONE)
    completed_tasks = sum(1 for t in epic.tasks if t.status == TaskStatus.DONE)
    passing_tests = sum(1 for t in epic.tests if t.is_passing)
    failing_tests = sum(1 for t in epic.tests if t.is_failing)
    return ValidationSummary(
        total_phases=len(epic.phases),
        completed_phases=completed_phases,
        pending_phases=len(epic.phases) - completed_phases,
        total_tasks=len(epic.tasks),
        completed_tasks=completed_tasks,
        pending_tasks=sum(1 for t in epic.tasks if t.status not in (TaskStatus.DONE, TaskStatus.CANCELLED)),
        total_tests=len(epic.tests),
        passing_tests=passing_tests,
        failing_tests=failing_tests,
        completion_percentage=completion_percentage(epic),
    )


def validate_epic_completion(epic: Epic) -> ValidationResult:
    """Check that every phase is done and no test is failing."""
    pending = [PendingPhase(p.id, p.name) for p in epic.phases if p.status != PhaseStatus.DONE]
    failing = [FailingTest(t.id, t.name, t.description) for t in epic.tests if t.is_failing]

    result = ValidationResult(
        is_valid=not pending and not failing,
        pending_phases=pending,
        failing_tests=failing,
        summary=summarize(epic),
    )
    result.suggestions = _suggestions(result)
    return result


def _suggestions(result: ValidationResult) -> list[str]:
    if result.is_valid:
        return ["Epic is ready for completion"]

    suggestions = []
    if result.pending_phases:
        if len(result.pending_phases) == 1:
            suggestions.append(f"Complete the pending phase: {result.pending_phases[0].name}")
        else:
            suggestions.append(f"Complete {len(result.pending_phases)} pending phases")
        suggestions.append("Use 'agentpm pending' to see all pending work")

    if result.failing_tests:
        if len(result.failing_tests) == 1:
            suggestions.append(f"Fix the failing test: {result.failing_tests[0].name}")
        else:
            suggestions.append(f"Fix {len(result.failing_tests)} failing tests")
        suggestions.append("Use 'agentpm failing' to see test details")

    if result.summary.completion_percentage > 0:
        suggestions.append(f"Epic is {result.summary.completion_percentage}% complete")
    return suggestions


def _listing(items, limit: int = MAX_LISTED_ITEMS) -> str:
    names = [f"{item.name} ({item.id})" for item in items[:limit]]
    if len(items) > limit:
        names.append(f"... and {len(items) - limit} more")
    return ", ".join(names)


def format_validation_error(result: ValidationResult, epic_id: str) -> str:
    """Multi-line explanation of a refused epic completion."""
    lines = []

    counts = []
    if result.pending_phases:
        counts.append(f"{len(result.pending_phases)} pending phases")
    if result.failing_tests:
        counts.append(f"{len(result.failing_tests)} failing tests")
    if counts:
        lines.append(f"Epic {epic_id} cannot be completed: {', '.join(counts)}")

    s = result.summary
    lines.append(
        f"Progress: {s.completion_percentage}% complete "
        f"({s.completed_phases}/{s.total_phases} phases, "
        f"{s.completed_tasks}/{s.total_tasks} tasks, "
        f"{s.passing_tests}/{s.total_tests} tests)"
    )

    if result.pending_phases:
        lines.append(f"Pending phases: {_listing(result.pending_phases)}")
    if result.failing_tests:
        lines.append(f"Failing tests: {_listing(result.failing_tests)}")
    if result.suggestions:
        lines.append(f"Suggestions: {'; '.join(result.suggestions)}")

    return "\n".join(lines)


def phase_blocking_items(epic: Epic, phase_id: str) -> list[BlockingItem]:
    """Tasks not done/cancelled and tests not closed within the phase."""
    items = [
        BlockingItem("task", t.id, t.name, t.status.value)
        for t in epic.tasks_in_phase(phase_id)
        if t.status not in (TaskStatus.DONE, TaskStatus.CANCELLED)
    ]
    items.extend(
        BlockingItem("test", t.id, t.name, t.test_status.value, t.effective_result.value)
        for t in epic.tests_in_phase(phase_id)
        if not t.is_closed
    )
    return items


def task_blocking_items(epic: Epic, task_id: str) -> list[BlockingItem]:
    """Tests of the task that are neither done nor cancelled."""
    return [
        BlockingItem("test", t.id, t.name, t.test_status.value, t.effective_result.value)
        for t in epic.tests_for_task(task_id)
        if not t.is_closed
    ]
