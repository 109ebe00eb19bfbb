"""
Epic document model.

Plain dataclasses for the epic and its phases, tasks, tests and events. The
model owns only unified status enums; legacy tokens are mapped by the codec.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from agentpm.epic.status import (
    EpicStatus,
    PhaseStatus,
    TaskStatus,
    TestResult,
    TestStatus,
)
from agentpm.lib.timeutil import Clock, system_clock

DEFAULT_NEXT_ACTION = "Start next phase"


@dataclass
class Metadata:
    """Optional <metadata> block."""
    created: Optional[datetime] = None
    assignee: str = ""
    estimated_effort: str = ""


@dataclass
class CurrentState:
    """Cached projection of active work, stored in the document."""
    active_phase: str = ""
    active_task: str = ""
    next_action: str = ""


@dataclass
class Phase:
    id: str
    name: str = ""
    status: PhaseStatus = PhaseStatus.PENDING
    description: str = ""
    deliverables: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class Task:
    id: str
    phase_id: str
    name: str = ""
    status: TaskStatus = TaskStatus.PENDING
    assignee: str = ""
    description: str = ""
    acceptance_criteria: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: str = ""


@dataclass
class Test:
    """A verification item for one task.

    `test_status` is the lifecycle state; `result` is independent of it, so
    a done test can still be failing.
    """
    __test__ = False  # not a pytest class

    id: str
    task_id: str
    phase_id: str = ""
    name: str = ""
    description: str = ""
    test_status: TestStatus = TestStatus.PENDING
    result: Optional[TestResult] = None
    started_at: Optional[datetime] = None
    passed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    failure_note: str = ""
    cancellation_reason: str = ""

    @property
    def effective_result(self) -> TestResult:
        """Result with the legacy inference applied when none is recorded."""
        if self.result is not None:
            return self.result
        if self.test_status == TestStatus.WIP and self.failed_at is not None:
            return TestResult.FAILING
        return TestResult.PASSING

    @property
    def is_closed(self) -> bool:
        """Done or cancelled; no longer blocks its task or phase."""
        return self.test_status in (TestStatus.DONE, TestStatus.CANCELLED)

    @property
    def is_failing(self) -> bool:
        """Counts against epic completion.

        A test is failing unless it is cancelled or done with a passing result.
        """
        if self.test_status == TestStatus.CANCELLED:
            return False
        if self.test_status != TestStatus.DONE:
            return True
        return self.effective_result == TestResult.FAILING

    @property
    def is_passing(self) -> bool:
        return self.test_status == TestStatus.DONE and self.effective_result == TestResult.PASSING

    @property
    def has_details(self) -> bool:
        """Whether anything beyond the description needs child elements."""
        return any([
            self.started_at, self.passed_at, self.failed_at, self.cancelled_at,
            self.failure_note, self.cancellation_reason,
        ])


@dataclass
class Event:
    """Append-only activity log entry."""
    id: str
    type: str
    timestamp: Optional[datetime] = None
    data: str = ""


@dataclass
class Epic:
    id: str
    name: str = ""
    status: EpicStatus = EpicStatus.PENDING
    created_at: Optional[datetime] = None
    assignee: str = ""
    description: str = ""
    workflow: str = ""
    requirements: str = ""
    dependencies: str = ""
    metadata: Optional[Metadata] = None
    current_state: Optional[CurrentState] = None
    phases: list[Phase] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    tests: list[Test] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)

    # Lookups

    def find_phase(self, phase_id: str) -> Optional[Phase]:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def find_test(self, test_id: str) -> Optional[Test]:
        for test in self.tests:
            if test.id == test_id:
                return test
        return None

    def tasks_in_phase(self, phase_id: str) -> list[Task]:
        return [t for t in self.tasks if t.phase_id == phase_id]

    def tests_for_task(self, task_id: str) -> list[Test]:
        return [t for t in self.tests if t.task_id == task_id]

    def phase_of_test(self, test: Test) -> str:
        """Phase id of a test: its own phase_id, else its task's phase."""
        if test.phase_id:
            return test.phase_id
        task = self.find_task(test.task_id)
        return task.phase_id if task else ""

    def tests_in_phase(self, phase_id: str) -> list[Test]:
        return [t for t in self.tests if self.phase_of_test(t) == phase_id]

    def active_phase(self) -> Optional[Phase]:
        for phase in self.phases:
            if phase.status == PhaseStatus.WIP:
                return phase
        return None

    def active_task(self, phase_id: str | None = None) -> Optional[Task]:
        for task in self.tasks:
            if task.status != TaskStatus.WIP:
                continue
            if phase_id is None or task.phase_id == phase_id:
                return task
        return None


def new_epic(epic_id: str, name: str, clock: Clock = system_clock) -> Epic:
    """Create a pending epic with metadata and current-state defaults."""
    now = clock()
    return Epic(
        id=epic_id,
        name=name,
        status=EpicStatus.PENDING,
        created_at=now,
        metadata=Metadata(created=now),
        current_state=CurrentState(next_action=DEFAULT_NEXT_ACTION),
    )
