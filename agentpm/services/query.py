"""
Read-only projections over a loaded epic.

A QueryService caches one epic for the lifetime of a command. Create a new
instance per invocation; nothing here mutates the epic.

Entity context (`show`) projects one phase, task or test with its parent
chain and children. Full detail adds siblings, prose fields and the events
whose text mentions the entity id.

Failing tests: a test counts as failing unless it is cancelled or done with
a passing result. The same projection gates epic completion.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from agentpm.epic.model import Epic, Event, Phase, Task, Test
from agentpm.epic.status import EpicStatus, PhaseStatus, TaskStatus, TestResult, TestStatus
from agentpm.epic.structure import state_warnings
from agentpm.services.errors import EntityNotFound
from agentpm.services.events import recent_events
from agentpm.services.progress import completion_percentage
from agentpm.storage.base import EpicStorage

logger = logging.getLogger(__name__)

DEFAULT_EVENT_LIMIT = 10
MAX_EVENT_LIMIT = 100
MAX_NAMED_FAILURES = 3


class NoEpicLoaded(Exception):
    def __init__(self):
        super().__init__("no epic loaded")


@dataclass
class EpicStatusReport:
    id: str
    name: str
    status: EpicStatus
    completed_phases: int
    total_phases: int
    passing_tests: int
    failing_tests: int
    completion_percentage: int
    current_phase: str = ""
    current_task: str = ""


@dataclass
class CurrentWork:
    epic_status: EpicStatus
    active_phase: str
    active_task: str
    next_action: str
    failing_tests: int


@dataclass
class PendingItem:
    type: str
    id: str
    name: str
    status: str
    phase_id: str = ""
    task_id: str = ""


@dataclass
class PendingWork:
    phases: list[PendingItem] = field(default_factory=list)
    tasks: list[PendingItem] = field(default_factory=list)
    tests: list[PendingItem] = field(default_factory=list)


@dataclass
class FailingTestDetail:
    id: str
    phase_id: str
    task_id: str
    name: str
    description: str = ""
    failure_note: str = ""


@dataclass
class RelatedItem:
    type: str
    id: str
    name: str
    relationship: str  # contains, validates, parent, ancestor


@dataclass
class ImpactAnalysis:
    affected_phases: list[str] = field(default_factory=list)
    affected_tasks: list[str] = field(default_factory=list)
    affected_tests: list[str] = field(default_factory=list)
    risk_level: str = "low"
    description: str = ""


@dataclass
class ProgressInsight:
    velocity: float = 0.0
    estimated_completion: str = ""
    bottlenecks: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class EntitySummary:
    type: str
    id: str
    name: str
    status: str
    description: str = ""


@dataclass
class ProgressSummary:
    total_tasks: int = 0
    completed_tasks: int = 0
    active_tasks: int = 0
    pending_tasks: int = 0
    cancelled_tasks: int = 0
    completion_percentage: int = 0
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    pending_tests: int = 0
    test_coverage_percentage: int = 0


@dataclass
class EntityContext:
    """One entity with its parents, children and, with full detail, siblings and events."""
    type: str
    id: str
    name: str
    status: str
    full: bool
    details: dict[str, Any] = field(default_factory=dict)
    parents: list[EntitySummary] = field(default_factory=list)
    children: list[EntitySummary] = field(default_factory=list)
    siblings: list[EntitySummary] = field(default_factory=list)
    progress: Optional[ProgressSummary] = None
    events: list[Event] = field(default_factory=list)


class QueryService:
    """Read-only queries over one cached epic."""

    def __init__(self, storage: EpicStorage):
        self.storage = storage
        self.epic: Epic | None = None

    def load_epic(self, path: str) -> Epic:
        """Load and cache the epic at path. Storage errors propagate."""
        self.epic = self.storage.load_epic(path)
        return self.epic

    def use_epic(self, epic: Epic) -> None:
        """Cache an already loaded epic."""
        self.epic = epic

    def _require(self) -> Epic:
        if self.epic is None:
            raise NoEpicLoaded()
        return self.epic

    # Active work

    def current_phase_id(self) -> str:
        epic = self._require()
        phase = epic.active_phase()
        if phase is not None:
            return phase.id
        task = epic.active_task()
        return task.phase_id if task is not None else ""

    def current_task_id(self) -> str:
        task = self._require().active_task()
        return task.id if task is not None else ""

    # Projections

    def epic_status(self) -> EpicStatusReport:
        epic = self._require()
        return EpicStatusReport(
            id=epic.id,
            name=epic.name,
            status=epic.status,
            completed_phases=sum(1 for p in epic.phases if p.status == PhaseStatus.DONE),
            total_phases=len(epic.phases),
            passing_tests=sum(1 for t in epic.tests if t.is_passing),
            failing_tests=sum(1 for t in epic.tests if t.is_failing),
            completion_percentage=completion_percentage(epic),
            current_phase=self.current_phase_id(),
            current_task=self.current_task_id(),
        )

    def current_state(self) -> CurrentWork:
        epic = self._require()
        return CurrentWork(
            epic_status=epic.status,
            active_phase=self.current_phase_id(),
            active_task=self.current_task_id(),
            next_action=self.next_action(),
            failing_tests=sum(1 for t in epic.tests if t.is_failing),
        )

    def pending_work(self) -> PendingWork:
        epic = self._require()
        pending = PendingWork()
        for phase in epic.phases:
            if phase.status != PhaseStatus.DONE:
                pending.phases.append(PendingItem("phase", phase.id, phase.name, phase.status.value))
        for task in epic.tasks:
            if task.status != TaskStatus.DONE:
                pending.tasks.append(
                    PendingItem("task", task.id, task.name, task.status.value, phase_id=task.phase_id)
                )
        for test in epic.tests:
            if not test.is_closed:
                pending.tests.append(PendingItem(
                    "test", test.id, test.name, test.test_status.value,
                    phase_id=epic.phase_of_test(test), task_id=test.task_id,
                ))
        return pending

    def failing_tests(self) -> list[FailingTestDetail]:
        epic = self._require()
        return [
            FailingTestDetail(
                id=t.id,
                phase_id=epic.phase_of_test(t),
                task_id=t.task_id,
                name=t.name,
                description=t.description,
                failure_note=t.failure_note,
            )
            for t in epic.tests
            if t.is_failing
        ]

    def recent_events(self, limit: int = DEFAULT_EVENT_LIMIT) -> list[Event]:
        """Newest-first events, limit clamped to [1, 100]."""
        epic = self._require()
        if limit <= 0:
            limit = DEFAULT_EVENT_LIMIT
        limit = min(limit, MAX_EVENT_LIMIT)
        return recent_events(epic, limit)

    def next_action(self) -> str:
        """What the agent should do next, in priority order."""
        epic = self._require()

        failing = [t for t in epic.tests if t.is_failing]
        if failing:
            names = ", ".join(t.name or t.id for t in failing[:MAX_NAMED_FAILURES])
            return f"Fix failing tests: {names}"

        task = epic.active_task()
        if task is not None:
            return f"Continue work on: {task.name or task.id}"

        phase_id = self.current_phase_id()
        if phase_id:
            for task in epic.tasks_in_phase(phase_id):
                if task.status == TaskStatus.PENDING:
                    return f"Start next task: {task.name or task.id}"

        for phase in epic.phases:
            if phase.status == PhaseStatus.PENDING:
                return f"Start next phase: {phase.name or phase.id}"

        return "Epic ready for completion"

    # Relationships

    def related_items(self, item_type: str, item_id: str) -> list[RelatedItem]:
        epic = self._require()
        related: list[RelatedItem] = []

        if item_type == "phase":
            for task in epic.tasks_in_phase(item_id):
                related.append(RelatedItem("task", task.id, task.name, "contains"))
            for test in epic.tests:
                task = epic.find_task(test.task_id)
                if task is not None and task.phase_id == item_id:
                    related.append(RelatedItem("test", test.id, test.name, "validates"))

        elif item_type == "task":
            task = epic.find_task(item_id)
            if task is not None:
                phase = epic.find_phase(task.phase_id)
                if phase is not None:
                    related.append(RelatedItem("phase", phase.id, phase.name, "parent"))
            for test in epic.tests_for_task(item_id):
                related.append(RelatedItem("test", test.id, test.name, "validates"))

        elif item_type == "test":
            test = epic.find_test(item_id)
            task = epic.find_task(test.task_id) if test is not None else None
            if task is not None:
                related.append(RelatedItem("task", task.id, task.name, "parent"))
                phase = epic.find_phase(task.phase_id)
                if phase is not None:
                    related.append(RelatedItem("phase", phase.id, phase.name, "ancestor"))

        return related

    def analyze_impact(self, item_type: str, item_id: str) -> ImpactAnalysis:
        epic = self._require()
        analysis = ImpactAnalysis()

        if item_type == "phase":
            for task in epic.tasks_in_phase(item_id):
                analysis.affected_tasks.append(task.id)
                analysis.affected_tests.extend(t.id for t in epic.tests_for_task(task.id))
            if len(analysis.affected_tasks) > 10:
                analysis.risk_level = "high"
            elif len(analysis.affected_tasks) > 5:
                analysis.risk_level = "medium"
            analysis.description = (
                f"Completing phase affects {len(analysis.affected_tasks)} tasks "
                f"and {len(analysis.affected_tests)} tests"
            )

        elif item_type == "task":
            analysis.affected_tests = [t.id for t in epic.tests_for_task(item_id)]
            task = epic.find_task(item_id)
            if task is not None:
                analysis.affected_phases.append(task.phase_id)
            if len(analysis.affected_tests) > 3:
                analysis.risk_level = "medium"
            analysis.description = f"Completing task affects {len(analysis.affected_tests)} tests"

        elif item_type == "test":
            test = epic.find_test(item_id)
            if test is not None:
                analysis.affected_tasks.append(test.task_id)
                task = epic.find_task(test.task_id)
                if task is not None:
                    analysis.affected_phases.append(task.phase_id)
            analysis.description = "Completing test affects its parent task"

        return analysis

    def progress_insights(self) -> ProgressInsight:
        epic = self._require()
        insight = ProgressInsight()

        total = len(epic.tasks) + len(epic.tests)
        completed = sum(1 for t in epic.tasks if t.status == TaskStatus.DONE)
        completed += sum(1 for t in epic.tests if t.is_passing)

        if completed > 0 and total > 0:
            rate = completed / total
            insight.velocity = rate
            if rate > 0.8:
                insight.estimated_completion = "Near completion"
            elif rate > 0.5:
                insight.estimated_completion = "Mid-progress"
            else:
                insight.estimated_completion = "Early stage"
        else:
            insight.estimated_completion = "Just started"

        failing = sum(1 for t in epic.tests if t.is_failing)
        active_tasks = sum(1 for t in epic.tasks if t.status == TaskStatus.WIP)

        if failing > 3:
            insight.bottlenecks.append("Multiple failing tests")
        if active_tasks > 2:
            insight.bottlenecks.append("Too many active tasks")

        if insight.bottlenecks:
            insight.recommendations.append("Focus on resolving bottlenecks first")
        if failing > 0:
            insight.recommendations.append("Prioritize fixing failing tests")
        if active_tasks == 0:
            insight.recommendations.append("Start next planned task")

        return insight

    def validate_state(self) -> list[str]:
        """Structural warnings about active work; never blocks anything."""
        return state_warnings(self._require())

    # Entity context

    def show(self, entity_type: str, entity_id: str = "", full: bool = False) -> EntityContext:
        """Context around one entity for `agentpm show`.

        Parents and children are always included. With full detail the
        summaries carry descriptions and the context adds siblings and the
        events that mention the entity.

        Raises:
            ValueError: Unknown entity type, or a missing ID for phase/task/test
            EntityNotFound: No entity with that ID
        """
        epic = self._require()
        if entity_type == "epic":
            context = self._epic_context(epic, full)
        elif entity_type not in ("phase", "task", "test"):
            raise ValueError(f"invalid entity type: {entity_type} (must be epic, phase, task, or test)")
        elif not entity_id:
            raise ValueError(f"{entity_type} requires an ID")
        elif entity_type == "phase":
            context = self._phase_context(epic, entity_id, full)
        elif entity_type == "task":
            context = self._task_context(epic, entity_id, full)
        else:
            context = self._test_context(epic, entity_id, full)

        if full:
            context.events = self._events_mentioning(epic, context.id)
        return context

    def phase_progress(self, phase_id: str) -> ProgressSummary:
        epic = self._require()
        return _progress(epic.tasks_in_phase(phase_id), epic.tests_in_phase(phase_id))

    def _epic_context(self, epic: Epic, full: bool) -> EntityContext:
        details = {
            "id": epic.id,
            "name": epic.name,
            "status": epic.status,
            "created_at": epic.created_at,
            "assignee": epic.assignee,
            "description": epic.description,
        }
        if full:
            details.update(workflow=epic.workflow, requirements=epic.requirements, dependencies=epic.dependencies)

        children = [_summary("phase", p, full) for p in epic.phases]
        children += [_summary("task", t, full) for t in epic.tasks]
        children += [_summary("test", t, full) for t in epic.tests]
        return EntityContext(
            "epic", epic.id, epic.name, epic.status.value, full,
            details=details,
            children=children,
            progress=_progress(epic.tasks, epic.tests),
        )

    def _phase_context(self, epic: Epic, phase_id: str, full: bool) -> EntityContext:
        phase = epic.find_phase(phase_id)
        if phase is None:
            raise EntityNotFound("phase", phase_id)

        children = [_summary("task", t, full) for t in epic.tasks_in_phase(phase_id)]
        children += [_summary("test", t, full) for t in epic.tests_in_phase(phase_id)]
        context = EntityContext(
            "phase", phase.id, phase.name, phase.status.value, full,
            details=_details(phase, full),
            children=children,
            progress=self.phase_progress(phase_id),
        )
        if full:
            context.siblings = [_summary("phase", p, full) for p in epic.phases if p.id != phase_id]
        return context

    def _task_context(self, epic: Epic, task_id: str, full: bool) -> EntityContext:
        task = epic.find_task(task_id)
        if task is None:
            raise EntityNotFound("task", task_id)

        context = EntityContext(
            "task", task.id, task.name, task.status.value, full,
            details=_details(task, full),
            children=[_summary("test", t, full) for t in epic.tests_for_task(task_id)],
        )
        phase = epic.find_phase(task.phase_id)
        if phase is not None:
            context.parents.append(_summary("phase", phase, full))
        if full:
            if phase is not None:
                context.progress = self.phase_progress(phase.id)
            context.siblings = [
                _summary("task", t, full) for t in epic.tasks_in_phase(task.phase_id) if t.id != task_id
            ]
        return context

    def _test_context(self, epic: Epic, test_id: str, full: bool) -> EntityContext:
        test = epic.find_test(test_id)
        if test is None:
            raise EntityNotFound("test", test_id)

        details = _details(test, full)
        details["phase_id"] = epic.phase_of_test(test)
        details["failing"] = test.is_failing
        context = EntityContext("test", test.id, test.name, test.test_status.value, full, details=details)

        task = epic.find_task(test.task_id)
        if task is not None:
            context.parents.append(_summary("task", task, full))
        phase = epic.find_phase(details["phase_id"])
        if phase is not None:
            context.parents.append(_summary("phase", phase, full))
            if full:
                context.progress = self.phase_progress(phase.id)
        if full:
            context.siblings = [
                _summary("test", t, full) for t in epic.tests_for_task(test.task_id) if t.id != test_id
            ]
        return context

    def _events_mentioning(self, epic: Epic, entity_id: str) -> list[Event]:
        pattern = re.compile(rf"(?<![\w-]){re.escape(entity_id)}(?![\w-])")
        return [e for e in epic.events if pattern.search(e.data)]


_FULL_ONLY_FIELDS = ("deliverables", "acceptance_criteria", "failure_note", "cancellation_reason")


def _details(entity: Phase | Task | Test, full: bool) -> dict[str, Any]:
    """Entity fields; prose other than the description only with full detail."""
    data = asdict(entity)
    if not full:
        for name in _FULL_ONLY_FIELDS:
            data.pop(name, None)
    return data


def _summary(entity_type: str, entity: Phase | Task | Test, full: bool) -> EntitySummary:
    status = entity.test_status if isinstance(entity, Test) else entity.status
    return EntitySummary(
        entity_type, entity.id, entity.name, status.value,
        description=entity.description if full else "",
    )


def _percent(part: int, total: int) -> int:
    return part * 100 // total if total else 0


def _progress(tasks: list[Task], tests: list[Test]) -> ProgressSummary:
    summary = ProgressSummary(total_tasks=len(tasks), total_tests=len(tests))
    for task in tasks:
        if task.status == TaskStatus.DONE:
            summary.completed_tasks += 1
        elif task.status == TaskStatus.WIP:
            summary.active_tasks += 1
        elif task.status == TaskStatus.CANCELLED:
            summary.cancelled_tasks += 1
        else:
            summary.pending_tasks += 1
    for test in tests:
        if test.is_passing:
            summary.passed_tests += 1
        elif test.test_status != TestStatus.CANCELLED and test.effective_result == TestResult.FAILING:
            summary.failed_tests += 1
        else:
            summary.pending_tests += 1
    summary.completion_percentage = _percent(summary.completed_tasks, summary.total_tasks)
    summary.test_coverage_percentage = _percent(summary.passed_tests, summary.total_tests)
    return summary
