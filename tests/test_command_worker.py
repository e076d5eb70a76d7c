"""Tests for stepgate.agents.command - the agent-CLI worker."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from stepgate.agents.command import CommandWorker, build_command, extract_json, strip_markdown_fences
from stepgate.agents.worker import DraftRequest, SubtaskResult, WorkerFailure
from stepgate.lib.config import WorkerConfig
from stepgate.lib.guidelines import GuidelineDocument, GuidelineScope
from stepgate.plan.models import ConfidenceLevel, FeedbackEntry, Plan, Subtask
from stepgate.runner.session import Clarification

PLAN_JSON = {"subtasks": ["Add model", "Add view"], "confidence": "medium", "summary": "Two steps"}
RESULT_JSON = {"status": "done", "summary": "Added model", "confidence": "high", "files": ["models.py"]}


def completed(stdout="", returncode=0, stderr=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def worker(tmp_path):
    return CommandWorker(WorkerConfig(), request="Add widgets", log_dir=tmp_path / "logs")


class TestBuildCommand:
    """Tests for build_command."""

    def test_stdin_by_default(self):
        cmd, stdin = build_command("claude -p --output-format json", "hello")
        assert cmd == ["claude", "-p", "--output-format", "json"]
        assert stdin == "hello"

    def test_prompt_argument(self):
        cmd, stdin = build_command("agent run --prompt {prompt}", "two words; $HOME")
        assert cmd == ["agent", "run", "--prompt", "two words; $HOME"]
        assert stdin is None


class TestExtractJson:
    """Tests for extract_json."""

    def test_plain(self):
        assert extract_json(json.dumps(PLAN_JSON)) == PLAN_JSON

    def test_result_wrapper(self):
        wrapped = json.dumps({"type": "result", "result": json.dumps(RESULT_JSON)})
        assert extract_json(wrapped) == RESULT_JSON

    def test_fenced_inside_wrapper(self):
        inner = "Here you go:\n```json\n" + json.dumps(PLAN_JSON) + "\n```\n"
        assert extract_json(json.dumps({"result": inner})) == PLAN_JSON

    def test_preceded_by_text(self):
        assert extract_json("Sure.\n" + json.dumps(RESULT_JSON)) == RESULT_JSON

    def test_none(self):
        assert extract_json("I could not do it") is None

    def test_strip_fences(self):
        assert strip_markdown_fences("```json\n{}\n```") == "{}"


class TestDraftPlan:
    """Tests for CommandWorker.draft_plan."""

    @patch("stepgate.agents.command.subprocess.run")
    def test_returns_plan(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps(PLAN_JSON))

        plan = worker.draft_plan(DraftRequest(request="Add widgets"), [])

        assert isinstance(plan, Plan)
        assert plan.subtasks == ("Add model", "Add view")
        assert plan.confidence == ConfidenceLevel.MEDIUM

    @patch("stepgate.agents.command.subprocess.run")
    def test_prompt_carries_context(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps(PLAN_JSON))
        draft = DraftRequest(
            request="Add widgets",
            clarifications=[Clarification("Which db?", "Postgres")],
            previous=Plan(["Old step"], ConfidenceLevel.LOW),
            feedback="Split it up",
        )
        docs = [GuidelineDocument("style", GuidelineScope(), "Use black.")]

        worker.draft_plan(draft, docs)

        prompt = mock_run.call_args.kwargs["input"]
        assert "Add widgets" in prompt
        assert "### style\n\nUse black." in prompt
        assert "**A:** Postgres" in prompt
        assert "Old step" in prompt
        assert "Split it up" in prompt
        assert "revision of an existing plan" in prompt

    @patch("stepgate.agents.command.subprocess.run")
    def test_remaining_only_mode(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps(PLAN_JSON))
        worker.draft_plan(DraftRequest(request="x", remaining_only=True, feedback="less"), [])
        assert "ONLY the subtasks that remain" in mock_run.call_args.kwargs["input"]

    @patch("stepgate.agents.command.subprocess.run")
    def test_schema_mismatch(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps({"subtasks": "one", "confidence": "sure"}))
        outcome = worker.draft_plan(DraftRequest(request="x"), [])
        assert isinstance(outcome, WorkerFailure)
        assert outcome.stage == "draft_plan"
        assert "invalid plan" in outcome.message

    @patch("stepgate.agents.command.subprocess.run")
    def test_nonzero_exit(self, mock_run, worker):
        mock_run.return_value = completed(returncode=1, stderr="rate limited")
        outcome = worker.draft_plan(DraftRequest(request="x"), [])
        assert isinstance(outcome, WorkerFailure)
        assert "rate limited" in outcome.message

    @patch("stepgate.agents.command.subprocess.run")
    def test_timeout(self, mock_run, worker):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="claude", timeout=600)
        outcome = worker.draft_plan(DraftRequest(request="x"), [])
        assert isinstance(outcome, WorkerFailure)
        assert "timed out" in outcome.message

    @patch("stepgate.agents.command.subprocess.run")
    def test_missing_binary(self, mock_run, worker):
        mock_run.side_effect = FileNotFoundError()
        outcome = worker.draft_plan(DraftRequest(request="x"), [])
        assert str(outcome) == "[draft_plan] Agent command not found: claude"

    @patch("stepgate.agents.command.subprocess.run")
    def test_agent_not_executable(self, mock_run, worker):
        mock_run.side_effect = PermissionError(13, "Permission denied")
        outcome = worker.draft_plan(DraftRequest(request="x"), [])
        assert isinstance(outcome, WorkerFailure)
        assert outcome.message.startswith("Cannot run agent command claude:")
        assert "Permission denied" in outcome.message

    @patch("stepgate.agents.command.subprocess.run")
    def test_undecodable_output_replaced(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps(PLAN_JSON))
        worker.draft_plan(DraftRequest(request="x"), [])
        assert mock_run.call_args.kwargs["errors"] == "replace"


class TestExecuteSubtask:
    """Tests for CommandWorker.execute_subtask."""

    @patch("stepgate.agents.command.subprocess.run")
    def test_returns_result(self, mock_run, worker, tmp_path):
        mock_run.return_value = completed(json.dumps(RESULT_JSON))

        result = worker.execute_subtask(Subtask(1, "Add model"), [])

        assert isinstance(result, SubtaskResult)
        assert result.summary == "Added model"
        assert result.confidence == ConfidenceLevel.HIGH
        assert result.details == {"files": ["models.py"]}
        assert (tmp_path / "logs" / "execute_subtask.log").exists()

    @patch("stepgate.agents.command.subprocess.run")
    def test_uses_execute_template(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps(RESULT_JSON))
        worker.execute_subtask(Subtask(1, "Add model"), [])
        assert "acceptEdits" in mock_run.call_args.args[0]

    @patch("stepgate.agents.command.subprocess.run")
    def test_feedback_in_prompt(self, mock_run, worker):
        mock_run.return_value = completed(json.dumps(RESULT_JSON))
        subtask = Subtask(2, "Add view", feedback=[FeedbackEntry("use templates")])

        worker.execute_subtask(subtask, [])

        prompt = mock_run.call_args.kwargs["input"]
        assert "Add widgets" in prompt
        assert "## Subtask 2" in prompt
        assert "**Human said:** use templates" in prompt

    @patch("stepgate.agents.command.subprocess.run")
    def test_reported_failure(self, mock_run, worker):
        failed = dict(RESULT_JSON, status="failed", error="tests do not pass")
        mock_run.return_value = completed(json.dumps(failed))
        outcome = worker.execute_subtask(Subtask(1, "Add model"), [])
        assert isinstance(outcome, WorkerFailure)
        assert outcome.message == "tests do not pass"

    @patch("stepgate.agents.command.subprocess.run")
    def test_no_json(self, mock_run, worker):
        mock_run.return_value = completed("All done!")
        outcome = worker.execute_subtask(Subtask(1, "Add model"), [])
        assert isinstance(outcome, WorkerFailure)
        assert "no JSON" in outcome.message
