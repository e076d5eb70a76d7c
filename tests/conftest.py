"""Shared fixtures: a scripted line channel and a scripted worker."""

from dataclasses import replace

import pytest

from stepgate.agents.worker import SubtaskResult, WorkerFailure
from stepgate.lib.errors import ChannelClosed
from stepgate.lib.guidelines import GuidelineResolver, InMemoryGuidelineStore
from stepgate.plan.models import ConfidenceLevel, Plan


class ScriptedChannel:
    """Line channel fed from a list of responses.

    Raises ChannelClosed once the script runs out, like a terminal at EOF.
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.output: list[str] = []
        self.reads = 0

    def write(self, text: str) -> None:
        self.output.append(text)

    def read_line(self, prompt: str = "") -> str:
        if not self.responses:
            raise ChannelClosed("script exhausted")
        self.reads += 1
        return self.responses.pop(0)

    @property
    def text(self) -> str:
        return "\n".join(self.output)


class ScriptedWorker:
    """Worker returning queued outcomes and recording every call."""

    def __init__(self, drafts=(), results=()):
        self.drafts = list(drafts)
        self.results = list(results)
        self.draft_calls = []
        self.execute_calls = []
        self.guidelines_seen = []

    def draft_plan(self, draft, guidelines):
        # The engine mutates the request between attempts, so keep a copy
        self.draft_calls.append(replace(draft, clarifications=list(draft.clarifications)))
        self.guidelines_seen.append([d.name for d in guidelines])
        if not self.drafts:
            raise AssertionError("unexpected draft_plan call")
        return self.drafts.pop(0)

    def execute_subtask(self, subtask, guidelines):
        self.execute_calls.append((subtask.id, subtask.description, [f.text for f in subtask.feedback]))
        self.guidelines_seen.append([d.name for d in guidelines])
        if not self.results:
            return SubtaskResult(summary=f"Did: {subtask.description}", confidence=ConfidenceLevel.HIGH)
        outcome = self.results.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_plan(*steps, confidence=ConfidenceLevel.HIGH, questions=(), summary=""):
    return Plan(subtasks=list(steps), confidence=confidence, open_questions=list(questions), summary=summary)


def make_result(summary="done", confidence=ConfidenceLevel.HIGH):
    return SubtaskResult(summary=summary, confidence=confidence)


def make_failure(message="agent crashed", stage="execute_subtask"):
    return WorkerFailure(stage=stage, message=message)


@pytest.fixture
def plan_factory():
    return make_plan


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def failure_factory():
    return make_failure


@pytest.fixture
def channel_factory():
    return ScriptedChannel


@pytest.fixture
def worker_factory():
    return ScriptedWorker


@pytest.fixture
def empty_resolver():
    return GuidelineResolver(InMemoryGuidelineStore())
