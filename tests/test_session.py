"""Tests for stepgate.runner.session and stepgate.runner.audit."""

import re

import pytest

from stepgate.lib.errors import GuidelineUnavailable, SessionClosed
from stepgate.lib.guidelines import GuidelineResolution
from stepgate.plan.models import ConfidenceLevel, Plan
from stepgate.runner.audit import Actor, AuditTrail
from stepgate.runner.session import Session, generate_task_id, validate_task_id
from stepgate.workflow.phases import Phase


class TestTaskIds:
    """Tests for task id generation and validation."""

    def test_generated_from_request(self):
        task_id = generate_task_id("Fix the Login bug!")
        assert re.match(r"^fix-the-login-bu-\d{14}$", task_id)
        validate_task_id(task_id)

    def test_generated_non_ascii(self):
        task_id = generate_task_id("Ünïcode ✓ 123")
        validate_task_id(task_id)

    def test_generated_empty_request(self):
        assert generate_task_id("!!!").startswith("task-")

    @pytest.mark.parametrize("task_id", ["Upper", "1abc", "has space", "a" * 40, ""])
    def test_invalid(self, task_id):
        with pytest.raises(ValueError):
            validate_task_id(task_id)


class TestSession:
    """Tests for the session aggregate."""

    def test_create(self):
        session = Session.create("Do things", "things")
        assert session.id == "things"
        assert session.phase == Phase.ANALYSIS
        assert len(session.plan_store) == 0
        assert session.queue is None
        assert not session.closed

    def test_create_rejects_bad_id(self):
        with pytest.raises(ValueError):
            Session.create("Do things", "Bad Id")

    def test_transitions_audited(self):
        session = Session.create("Do things", "things")
        plan = Plan(subtasks=["a"], confidence=ConfidenceLevel.HIGH)
        session.fire("plan_ready", plan=plan)
        entry = session.audit.events("transition")[0]
        assert entry.content == "analysis -> planning"
        assert entry.metadata == {"trigger": "plan_ready"}

    def test_terminal_tears_down(self):
        session = Session.create("Do things", "things")
        session.fire("cancel")
        assert session.closed
        assert session.close_reason == "cancelled"
        with pytest.raises(SessionClosed):
            session.queue
        with pytest.raises(SessionClosed):
            session.ensure_open()
        # Persistence can still read the final state
        assert session.snapshot_parts()["queue"] is None

    def test_teardown_idempotent(self):
        session = Session.create("Do things", "things")
        session.teardown("first")
        session.teardown("second")
        assert session.close_reason == "first"


class TestAuditTrail:
    """Tests for AuditTrail."""

    def test_record(self):
        audit = AuditTrail()
        entry = audit.record("analysis", Actor.WORKER, "plan_drafted", "1. a", confidence="high")
        assert entry.actor == "worker"
        assert entry.metadata == {"confidence": "high"}
        assert audit.events("plan_drafted") == [entry]

    def test_human_input(self):
        audit = AuditTrail()
        audit.record_human_input("awaiting_approval", "feedback", "add tests")
        audit.record_human_input("awaiting_approval", "approve")
        assert [e.content for e in audit.entries] == ["feedback: add tests", "approve"]

    def test_guidelines(self):
        audit = AuditTrail()
        audit.record_guidelines("analysis", GuidelineResolution(context="x"))
        audit.record_guidelines(
            "executing", GuidelineResolution(context="y", warning=GuidelineUnavailable("gone")),
        )
        assert [e.event for e in audit.entries] == ["guidelines_consulted", "guidelines_unavailable"]
        assert audit.entries[1].content == "Guidelines unavailable: gone"

    def test_save_load(self, tmp_path):
        audit = AuditTrail()
        audit.record("analysis", Actor.HUMAN, "task_requested", "Do things")
        path = tmp_path / "t" / "audit.json"
        audit.save(path)

        loaded = AuditTrail.load(path)
        assert loaded.to_list() == audit.to_list()

    def test_load_missing(self, tmp_path):
        assert AuditTrail.load(tmp_path / "none.json").entries == []
