"""Tests for agentpm.epic.fsm module."""

import logging

import pytest

from agentpm.epic.fsm import (
    STATES,
    TRANSITIONS,
    TRIGGER_FOR,
    EntityFSM,
    InvalidTransition,
    apply_transition,
    available_targets,
)
from agentpm.epic.model import Phase, Task, Test
from agentpm.epic.status import PhaseStatus, TaskStatus, TestStatus


class TestFSMStates:
    """Tests for FSM state definitions."""

    def test_all_states_defined(self):
        assert set(STATES["epic"]) == {"pending", "wip", "done"}
        assert set(STATES["phase"]) == {"pending", "wip", "done"}
        assert set(STATES["task"]) == {"pending", "wip", "done", "cancelled"}
        assert set(STATES["test"]) == {"pending", "wip", "done", "cancelled"}

    def test_every_transition_uses_known_states(self):
        for kind, transitions in TRANSITIONS.items():
            for t in transitions:
                assert t["source"] in STATES[kind]
                assert t["dest"] in STATES[kind]

    def test_trigger_lookup(self):
        assert TRIGGER_FOR["test"][("done", "wip")] == "reopen"
        assert TRIGGER_FOR["task"][("wip", "cancelled")] == "cancel"
        assert ("done", "wip") not in TRIGGER_FOR["phase"]

    def test_available_targets(self):
        assert set(available_targets(TaskStatus.PENDING)) == {TaskStatus.WIP, TaskStatus.CANCELLED}
        assert available_targets(PhaseStatus.DONE) == []


class TestEntityFSM:
    """EntityFSM drives the entity's status attribute."""

    def test_initial_state_from_entity(self):
        fsm = EntityFSM("phase", Phase("P1", status=PhaseStatus.WIP))
        assert fsm.state == "wip"

    def test_trigger_writes_status_back(self):
        phase = Phase("P1")
        fsm = EntityFSM("phase", phase)
        fsm.start()
        assert fsm.state == "wip"
        assert phase.status == PhaseStatus.WIP

    def test_unknown_initial_defaults_to_pending(self, caplog):
        task = Task("T1", "P1")
        task.status = "bogus"
        with caplog.at_level(logging.WARNING):
            fsm = EntityFSM("task", task)
        assert fsm.state == "pending"
        assert "Unknown state 'bogus'" in caplog.text

    def test_can_and_available_triggers(self):
        fsm = EntityFSM("task", Task("T1", "P1"))
        assert fsm.can("start")
        assert not fsm.can("complete")
        assert set(fsm.get_available_triggers()) == {"start", "cancel"}

    def test_transition_is_logged(self, caplog):
        with caplog.at_level(logging.INFO):
            apply_transition("phase", Phase("P1"), PhaseStatus.WIP)
        assert "[FSM] phase P1: pending -> wip (start)" in caplog.text

    def test_callback_receives_transition(self):
        seen = []
        fsm = EntityFSM("task", Task("T1", "P1"), on_transition=lambda *a: seen.append(a))
        fsm.advance(TaskStatus.CANCELLED)
        assert seen == [("pending", "cancelled", "cancel")]


class TestAdvance:
    def test_advance_returns_trigger(self):
        task = Task("T1", "P1", status=TaskStatus.WIP)
        assert apply_transition("task", task, TaskStatus.DONE) == "complete"
        assert task.status == TaskStatus.DONE

    def test_invalid_transition_raises(self):
        phase = Phase("P1")
        with pytest.raises(InvalidTransition) as exc:
            apply_transition("phase", phase, PhaseStatus.DONE)
        assert exc.value.from_state == "pending"
        assert exc.value.to_state == "done"
        assert phase.status == PhaseStatus.PENDING

    def test_reopen_test_uses_test_status_attribute(self):
        test = Test("TS1", "T1", test_status=TestStatus.DONE)
        assert apply_transition("test", test, TestStatus.WIP, status_attr="test_status") == "reopen"
        assert test.test_status == TestStatus.WIP
