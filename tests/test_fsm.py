"""Tests for stepgate.workflow.fsm module."""

import pytest

from stepgate.lib.errors import InvariantViolation
from stepgate.plan.models import ConfidenceLevel, Plan
from stepgate.workflow.fsm import (
    NON_TERMINAL,
    PhaseFSM,
    STATES,
    TRANSITIONS,
    TRIGGERS_BY_SOURCE,
)
from stepgate.workflow.phases import Phase, is_terminal, parse_phase


RESOLVED = Plan(subtasks=["a"], confidence=ConfidenceLevel.HIGH)
UNRESOLVED = Plan(subtasks=["a"], confidence=ConfidenceLevel.LOW, open_questions=["which db?"])


class TestFSMStates:
    """Tests for FSM state definitions."""

    def test_all_states_defined(self):
        """All phases should be states."""
        expected = [
            "analysis", "planning", "awaiting_approval", "executing",
            "awaiting_feedback", "paused", "done", "cancelled",
        ]
        assert set(STATES) == set(expected)

    def test_terminal_states_have_no_triggers(self):
        assert TRIGGERS_BY_SOURCE["done"] == set()
        assert TRIGGERS_BY_SOURCE["cancelled"] == set()

    def test_cancel_from_every_non_terminal(self):
        for state in NON_TERMINAL:
            assert "cancel" in TRIGGERS_BY_SOURCE[state], state

    def test_transitions_reference_known_states(self):
        for t in TRANSITIONS:
            sources = t["source"] if isinstance(t["source"], list) else [t["source"]]
            assert all(s in STATES for s in sources)
            assert t["dest"] in STATES


class TestFSMBasic:
    """Basic FSM functionality tests."""

    def test_initial_state(self):
        fsm = PhaseFSM("t1")
        assert fsm.phase == Phase.ANALYSIS

    def test_restored_initial_state(self):
        fsm = PhaseFSM("t1", initial=Phase.PAUSED)
        assert fsm.get_available_triggers() == ["cancel", "resume", "resume_feedback"]

    def test_full_happy_path(self):
        fsm = PhaseFSM("t1")
        fsm.fire("plan_ready", plan=RESOLVED)
        fsm.fire("submit", plan=RESOLVED)
        fsm.fire("approve")
        fsm.fire("await_feedback")
        fsm.fire("proceed")
        fsm.fire("await_feedback")
        assert fsm.fire("finish") == Phase.DONE

    def test_clarify_stays_in_analysis(self):
        fsm = PhaseFSM("t1")
        assert fsm.fire("clarify") == Phase.ANALYSIS

    def test_revert_goes_back_to_planning(self):
        fsm = PhaseFSM("t1", initial=Phase.AWAITING_APPROVAL)
        assert fsm.fire("revert") == Phase.PLANNING

    def test_pause_resume(self):
        fsm = PhaseFSM("t1", initial=Phase.AWAITING_FEEDBACK)
        assert fsm.fire("pause") == Phase.PAUSED
        assert fsm.fire("resume") == Phase.EXECUTING


class TestFSMGuards:
    """Unresolved plans never reach the approval gate."""

    def test_plan_ready_rejects_open_questions(self):
        fsm = PhaseFSM("t1")
        with pytest.raises(InvariantViolation):
            fsm.fire("plan_ready", plan=UNRESOLVED)
        assert fsm.phase == Phase.ANALYSIS

    def test_submit_rejects_open_questions(self):
        fsm = PhaseFSM("t1", initial=Phase.PLANNING)
        with pytest.raises(InvariantViolation):
            fsm.fire("submit", plan=UNRESOLVED)
        assert fsm.phase == Phase.PLANNING

    def test_revise_rejects_open_questions(self):
        fsm = PhaseFSM("t1", initial=Phase.AWAITING_APPROVAL)
        with pytest.raises(InvariantViolation):
            fsm.fire("revise", plan=UNRESOLVED)


class TestFSMInvalid:
    """Invalid triggers raise instead of being ignored."""

    def test_approve_from_analysis(self):
        fsm = PhaseFSM("t1")
        with pytest.raises(InvariantViolation):
            fsm.fire("approve")

    def test_unknown_trigger(self):
        fsm = PhaseFSM("t1")
        with pytest.raises(InvariantViolation):
            fsm.fire("explode")

    def test_nothing_leaves_terminal(self):
        fsm = PhaseFSM("t1", initial=Phase.CANCELLED)
        for trigger in ("cancel", "resume", "approve"):
            with pytest.raises(InvariantViolation):
                fsm.fire(trigger)

    def test_can(self):
        fsm = PhaseFSM("t1", initial=Phase.EXECUTING)
        assert fsm.can("await_feedback")
        assert not fsm.can("approve")


class TestFSMCallback:
    """on_transition receives every change."""

    def test_callback_called(self):
        calls = []
        fsm = PhaseFSM("t1", on_transition=lambda *args: calls.append(args))
        fsm.fire("plan_ready", plan=RESOLVED)
        fsm.fire("cancel")
        assert calls == [
            ("analysis", "planning", "plan_ready"),
            ("planning", "cancelled", "cancel"),
        ]

    def test_transition_logged(self, caplog):
        fsm = PhaseFSM("t1")
        with caplog.at_level("INFO", logger="stepgate.workflow.fsm"):
            fsm.fire("clarify")
        assert "[FSM] t1: analysis -> analysis (clarify)" in caplog.text


class TestPhases:
    """Tests for phase helpers."""

    def test_parse_phase(self):
        assert parse_phase("paused") == Phase.PAUSED
        assert parse_phase("bogus") is None
        assert parse_phase(None) is None

    def test_is_terminal(self):
        assert is_terminal(Phase.DONE)
        assert is_terminal(Phase.CANCELLED)
        assert not is_terminal(Phase.PAUSED)
