"""
Weighted completion percentage.

Phases and tasks weigh 40 each, tests 20. Each part is completed/total for
its kind (an empty kind contributes 0) and the weighted sum is truncated to
an integer. The arithmetic is done in exact fractions.
"""

import math
from fractions import Fraction

from agentpm.epic.model import Epic
from agentpm.epic.status import PhaseStatus, TaskStatus, TestStatus

PHASE_WEIGHT = 40
TASK_WEIGHT = 40
TEST_WEIGHT = 20


def _fraction(done: int, total: int) -> Fraction:
    if total <= 0:
        return Fraction(0)
    return Fraction(done, total)


def weighted_completion(
    done_phases: int,
    total_phases: int,
    done_tasks: int,
    total_tasks: int,
    done_tests: int,
    total_tests: int,
) -> int:
    """int((phase_frac*40 + task_frac*40 + test_frac*20) / 100 * 100)"""
    weighted = (
        _fraction(done_phases, total_phases) * PHASE_WEIGHT
        + _fraction(done_tasks, total_tasks) * TASK_WEIGHT
        + _fraction(done_tests, total_tests) * TEST_WEIGHT
    )
    percent = math.floor(weighted / 100 * 100)
    return max(0, min(100, percent))


def completion_percentage(epic: Epic) -> int:
    """Completion of an epic; tests count once their status is done."""
    return weighted_completion(
        sum(1 for p in epic.phases if p.status == PhaseStatus.DONE),
        len(epic.phases),
        sum(1 for t in epic.tasks if t.status == TaskStatus.DONE),
        len(epic.tasks),
        sum(1 for t in epic.tests if t.test_status == TestStatus.DONE),
        len(epic.tests),
    )
