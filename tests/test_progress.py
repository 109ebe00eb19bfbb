"""Tests for agentpm.services.progress module."""

from agentpm.epic.model import Epic, Phase, Task, Test
from agentpm.epic.status import PhaseStatus, TaskStatus, TestStatus
from agentpm.services.progress import completion_percentage, weighted_completion


def _epic(phases, tasks, tests) -> Epic:
    """Epic with (done, total) counts per kind."""
    epic = Epic("E", "Progress")
    for i in range(phases[1]):
        epic.phases.append(Phase(f"P{i}", status=PhaseStatus.DONE if i < phases[0] else PhaseStatus.PENDING))
    for i in range(tasks[1]):
        epic.tasks.append(Task(f"T{i}", "P0", status=TaskStatus.DONE if i < tasks[0] else TaskStatus.PENDING))
    for i in range(tests[1]):
        status = TestStatus.DONE if i < tests[0] else TestStatus.PENDING
        epic.tests.append(Test(f"X{i}", "T0", test_status=status))
    return epic


class TestWeightedCompletion:
    def test_mixed_epic(self):
        """2 phases (1 done), 5 tasks (2 done), 4 tests (2 done) -> 46."""
        assert completion_percentage(_epic((1, 2), (2, 5), (2, 4))) == 46

    def test_empty_epic(self):
        assert completion_percentage(Epic("E")) == 0

    def test_all_done(self):
        assert completion_percentage(_epic((2, 2), (3, 3), (4, 4))) == 100

    def test_empty_kinds_contribute_zero(self):
        # Phases done, no tasks or tests
        assert completion_percentage(_epic((3, 3), (0, 0), (0, 0))) == 40

    def test_thirds_truncate(self):
        # 1/3 * 40 + 1/3 * 40 + 1/3 * 20 = 33.33...
        assert weighted_completion(1, 3, 1, 3, 1, 3) == 33

    def test_exact_fractions_do_not_lose_a_point(self):
        # 2/3*40 + 2/3*40 + 2/3*20 is exactly 66.66..., never 66 - epsilon below
        assert weighted_completion(2, 3, 2, 3, 2, 3) == 66
        assert weighted_completion(7, 10, 7, 10, 7, 10) == 70

    def test_never_decreases_as_work_completes(self):
        epic = _epic((0, 2), (0, 3), (0, 2))
        seen = [completion_percentage(epic)]
        for entity in epic.tests + epic.tasks + epic.phases:
            if isinstance(entity, Test):
                entity.test_status = TestStatus.DONE
            else:
                entity.status = TaskStatus.DONE if isinstance(entity, Task) else PhaseStatus.DONE
            seen.append(completion_percentage(epic))
        assert seen == sorted(seen)
        assert seen[-1] == 100
