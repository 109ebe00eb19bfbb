"""Tests for agentpm.epic.status module."""

import logging

import pytest

from agentpm.epic.status import (
    EpicStatus,
    PhaseStatus,
    StatusError,
    TaskStatus,
    TestResult,
    TestStatus,
    parse_status,
    parse_test_result,
    unify_phase_status,
    unify_task_status,
    unify_test_status,
    validate_epic_status,
    validate_phase_status,
    validate_task_status,
    validate_test_status,
)


class TestLegacyMapping:
    """Legacy tokens map onto the unified vocabulary for every kind."""

    @pytest.mark.parametrize("token,expected", [
        ("planning", "pending"),
        ("active", "wip"),
        ("completed", "done"),
        ("on_hold", "pending"),
        ("pending", "pending"),
        ("wip", "wip"),
        ("done", "done"),
    ])
    def test_phase_tokens(self, token, expected):
        assert unify_phase_status(token).value == expected

    def test_task_cancelled_is_canonical(self):
        assert unify_task_status("cancelled") == TaskStatus.CANCELLED

    def test_tokens_are_case_and_space_insensitive(self):
        assert unify_phase_status("  Active ") == PhaseStatus.WIP

    def test_legacy_test_outcomes(self):
        """Tests used passed/failed as status values."""
        assert unify_test_status("passed") == TestStatus.DONE
        assert unify_test_status("failed") == TestStatus.WIP

    def test_passed_is_not_a_phase_status(self):
        assert parse_status(PhaseStatus, "passed") is None


class TestUnknownTokens:
    def test_unknown_degrades_to_pending(self, caplog):
        with caplog.at_level(logging.WARNING):
            status = unify_task_status("bogus", "task T1")
        assert status == TaskStatus.PENDING
        assert "Unknown task status 'bogus' on task T1" in caplog.text

    def test_missing_token_is_pending_without_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert unify_phase_status(None) == PhaseStatus.PENDING
        assert caplog.text == ""

    def test_strict_validation_raises(self):
        with pytest.raises(StatusError) as exc:
            validate_phase_status("bogus")
        assert exc.value.kind == "phase"
        assert exc.value.token == "bogus"
        assert "invalid phase status: bogus" in str(exc.value)

    def test_strict_validation_accepts_legacy(self):
        assert validate_task_status("completed") == TaskStatus.DONE

    def test_strict_validation_per_kind(self):
        assert validate_epic_status("active") == EpicStatus.WIP
        assert validate_test_status("passed") == TestStatus.DONE
        with pytest.raises(StatusError, match="invalid epic status: passed"):
            validate_epic_status("passed")


class TestTransitions:
    """can_transition_to follows the per-kind tables."""

    def test_epic_table(self):
        assert EpicStatus.PENDING.can_transition_to(EpicStatus.WIP)
        assert EpicStatus.WIP.can_transition_to(EpicStatus.DONE)
        assert not EpicStatus.PENDING.can_transition_to(EpicStatus.DONE)
        assert not EpicStatus.DONE.can_transition_to(EpicStatus.WIP)

    def test_same_status_is_not_a_transition(self):
        assert not EpicStatus.WIP.can_transition_to(EpicStatus.WIP)

    def test_task_can_be_cancelled_from_pending_or_wip(self):
        assert TaskStatus.PENDING.can_transition_to(TaskStatus.CANCELLED)
        assert TaskStatus.WIP.can_transition_to(TaskStatus.CANCELLED)
        assert not TaskStatus.DONE.can_transition_to(TaskStatus.CANCELLED)

    def test_done_test_can_reopen(self):
        assert TestStatus.DONE.can_transition_to(TestStatus.WIP)
        assert not TaskStatus.DONE.can_transition_to(TaskStatus.WIP)

    def test_cross_kind_is_refused(self):
        assert not PhaseStatus.PENDING.can_transition_to(TaskStatus.WIP)

    def test_terminal_statuses(self):
        assert EpicStatus.DONE.is_terminal
        assert TaskStatus.CANCELLED.is_terminal
        assert not TestStatus.DONE.is_terminal


class TestResults:
    def test_parse_result(self):
        assert parse_test_result("failing") == TestResult.FAILING
        assert parse_test_result("Passing") == TestResult.PASSING

    def test_unknown_result_is_none(self):
        assert parse_test_result("maybe") is None
        assert parse_test_result(None) is None
