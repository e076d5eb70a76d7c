"""
Worker interface.

The worker is the content-producing side: it drafts plans and executes
subtasks. The engine only consumes the shapes defined here. Failures are
returned as WorkerFailure values, never raised, so the engine can put them
in front of the human.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, Union

from stepgate.lib.guidelines import GuidelineDocument
from stepgate.plan.models import ConfidenceLevel, Plan, Subtask


@dataclass
class DraftRequest:
    """Everything the worker needs to draft or revise a plan."""
    request: str
    clarifications: list = field(default_factory=list)   # Clarification objects
    previous: Optional[Plan] = None                       # Plan being revised
    feedback: Optional[str] = None                        # Human instruction for the revision
    settled: list[Subtask] = field(default_factory=list)  # Done/skipped work to keep
    remaining_only: bool = False                          # Return only the steps still to do


@dataclass
class SubtaskResult:
    """Outcome of executing one subtask."""
    summary: str
    confidence: ConfidenceLevel
    details: dict = field(default_factory=dict)


@dataclass
class WorkerFailure:
    """Drafting or execution failed."""
    stage: str            # "draft_plan" or "execute_subtask"
    message: str
    details: Optional[dict] = None

    def __str__(self):
        return f"[{self.stage}] {self.message}"


DraftOutcome = Union[Plan, WorkerFailure]
ExecutionOutcome = Union[SubtaskResult, WorkerFailure]


class Worker(Protocol):
    """Content-generation capability invoked by the engine."""

    def draft_plan(self, draft: DraftRequest, guidelines: Sequence[GuidelineDocument]) -> DraftOutcome:
        ...

    def execute_subtask(self, subtask: Subtask, guidelines: Sequence[GuidelineDocument]) -> ExecutionOutcome:
        ...
