"""
Structural checks over a loaded epic.

`validate_structure` backs the validate command: identity fields, duplicate
ids, status values and foreign keys are errors; tasks without tests and the
active-work warnings from `state_warnings` are warnings. Nothing here gates
a lifecycle transition.
"""

from dataclasses import dataclass, field

from agentpm.epic.model import Epic
from agentpm.epic.status import EpicStatus, PhaseStatus, TaskStatus, TestStatus

PASSED = "passed"
FAILED = "failed"
WARNING = "warning"


@dataclass
class StructureReport:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    checks: dict[str, str] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def set_check(self, name: str, errors_before: int) -> None:
        """Mark a check failed if it added errors since errors_before."""
        self.checks[name] = FAILED if len(self.errors) > errors_before else PASSED

    @property
    def message(self) -> str:
        if self.errors:
            return f"Epic validation failed with {len(self.errors)} error(s)"
        if self.warnings:
            return f"Epic structure is valid with {len(self.warnings)} warning(s)"
        return "Epic structure is valid"

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "message": self.message,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "checks": dict(self.checks),
        }


def _check_ids(report: StructureReport, kind: str, ids: list[str]) -> None:
    seen = set()
    for entity_id in ids:
        if not entity_id:
            report.add_error(f"{kind} ID is required")
            continue
        if entity_id in seen:
            report.add_error(f"Duplicate {kind.lower()} ID: {entity_id}")
        seen.add(entity_id)


def _check_basic(epic: Epic, report: StructureReport) -> None:
    before = len(report.errors)
    if not epic.id:
        report.add_error("Epic ID is required")
    if not epic.name:
        report.add_error("Epic name is required")
    if epic.created_at is None:
        report.add_error("Epic created_at timestamp is required")
    _check_ids(report, "Phase", [p.id for p in epic.phases])
    _check_ids(report, "Task", [t.id for t in epic.tasks])
    _check_ids(report, "Test", [t.id for t in epic.tests])
    report.set_check("xml_structure", before)


def _check_status_values(epic: Epic, report: StructureReport) -> None:
    before = len(report.errors)
    if not isinstance(epic.status, EpicStatus):
        report.add_error(f"Invalid epic status: {epic.status}")
    for phase in epic.phases:
        if not isinstance(phase.status, PhaseStatus):
            report.add_error(f"Invalid phase status for {phase.id}: {phase.status}")
    for task in epic.tasks:
        if not isinstance(task.status, TaskStatus):
            report.add_error(f"Invalid task status for {task.id}: {task.status}")
    for test in epic.tests:
        if not isinstance(test.test_status, TestStatus):
            report.add_error(f"Invalid test status for {test.id}: {test.test_status}")
    report.set_check("status_values", before)


def _check_phase_dependencies(epic: Epic, report: StructureReport) -> None:
    # Duplicates are reported by the basic check
    unique = {p.id for p in epic.phases}
    report.checks["phase_dependencies"] = PASSED if len(unique) == len(epic.phases) else FAILED


def _check_task_phase_mapping(epic: Epic, report: StructureReport) -> None:
    before = len(report.errors)
    phase_ids = {p.id for p in epic.phases}
    for task in epic.tasks:
        if task.phase_id and task.phase_id not in phase_ids:
            report.add_error(f"Task {task.id} references non-existent phase: {task.phase_id}")
    report.set_check("task_phase_mapping", before)


def _check_test_coverage(epic: Epic, report: StructureReport) -> None:
    before = len(report.errors)
    tasks = {t.id: t for t in epic.tasks}
    for test in epic.tests:
        task = tasks.get(test.task_id)
        if test.task_id and task is None:
            report.add_error(f"Test {test.id} references non-existent task: {test.task_id}")
        elif task is not None and test.phase_id and test.phase_id != task.phase_id:
            report.add_error(
                f"Test {test.id} phase {test.phase_id} does not match task {task.id} phase {task.phase_id}"
            )

    warnings_before = len(report.warnings)
    covered = {t.task_id for t in epic.tests if t.task_id}
    for task in epic.tasks:
        if task.id not in covered:
            report.add_warning(f"Task {task.id} has no tests defined")

    if len(report.errors) > before:
        report.checks["test_coverage"] = FAILED
    elif len(report.warnings) > warnings_before:
        report.checks["test_coverage"] = WARNING
    else:
        report.checks["test_coverage"] = PASSED


def state_warnings(epic: Epic) -> list[str]:
    """Warnings about active work that breaks the single-active rules."""
    warnings = []

    active_phases = [p for p in epic.phases if p.status == PhaseStatus.WIP]
    if len(active_phases) > 1:
        ids = ", ".join(p.id for p in active_phases)
        warnings.append(f"Multiple active phases: {ids}")

    active_tasks = [t for t in epic.tasks if t.status == TaskStatus.WIP]
    by_phase: dict[str, list[str]] = {}
    for task in active_tasks:
        by_phase.setdefault(task.phase_id, []).append(task.id)
    for phase_id, ids in by_phase.items():
        if len(ids) > 1:
            warnings.append(f"Multiple active tasks in phase {phase_id}: {', '.join(ids)}")

    for task in active_tasks:
        phase = epic.find_phase(task.phase_id)
        if phase is None or phase.status != PhaseStatus.WIP:
            warnings.append(f"Active task {task.id} is in non-active phase {task.phase_id}")

    for phase in active_phases:
        tasks = epic.tasks_in_phase(phase.id)
        if tasks and all(t.status == TaskStatus.DONE for t in tasks):
            warnings.append(f"Phase {phase.id} has all tasks completed but is still active")

    return warnings


def validate_structure(epic: Epic) -> StructureReport:
    report = StructureReport()
    _check_basic(epic, report)
    _check_status_values(epic, report)
    _check_phase_dependencies(epic, report)
    _check_task_phase_mapping(epic, report)
    _check_test_coverage(epic, report)
    for warning in state_warnings(epic):
        report.add_warning(warning)
    return report
