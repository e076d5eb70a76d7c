"""
Session: everything mutable about one task, for the task's lifetime.

A session is created when a task starts and torn down when the task
reaches a terminal phase. Sessions never share state, so several can be
driven side by side.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from stepgate.lib.constants import MAX_TASK_ID_LEN, TASK_ID_PATTERN
from stepgate.lib.errors import SessionClosed
from stepgate.plan.models import ConfidenceLevel, Plan
from stepgate.plan.queue import SubtaskQueue
from stepgate.plan.store import PlanStore
from stepgate.runner.audit import AuditTrail
from stepgate.workflow.fsm import PhaseFSM
from stepgate.workflow.phases import Phase, is_terminal

logger = logging.getLogger(__name__)


@dataclass
class Task:
    """A unit of work requested by a user."""
    id: str
    request: str
    created: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class Clarification:
    """An open question raised during analysis and the human's answer."""
    question: str
    answer: str


def generate_task_id(request: str) -> str:
    """Derive a task id from the request text plus a timestamp suffix."""
    words = [w for w in "".join(c if c.isascii() and c.isalnum() else " " for c in request.lower()).split() if w]
    stem = "-".join(words)[:MAX_TASK_ID_LEN - 16].strip("-") or "task"
    if not stem[0].isalpha():
        stem = f"t{stem}"
    return f"{stem}-{datetime.now().strftime('%Y%m%d%H%M%S')}"


def validate_task_id(task_id: str) -> None:
    if len(task_id) > MAX_TASK_ID_LEN or not TASK_ID_PATTERN.match(task_id):
        raise ValueError(
            f"Invalid task id '{task_id}': use lowercase letters, digits, '-' or '_', "
            f"start with a letter, at most {MAX_TASK_ID_LEN} characters"
        )


class Session:
    """Per-task aggregate: plan store, subtask queue, phase and confidence."""

    def __init__(
        self,
        task: Task,
        phase: Phase = Phase.ANALYSIS,
        plan_store: PlanStore | None = None,
        queue: SubtaskQueue | None = None,
        confidence: ConfidenceLevel | None = None,
        audit: AuditTrail | None = None,
    ):
        self.task = task
        self.audit = audit or AuditTrail()
        self.fsm = PhaseFSM(task.id, initial=phase, on_transition=self.audit.record_transition)
        self._plan_store = plan_store or PlanStore()
        self._queue = queue
        self.confidence: Optional[ConfidenceLevel] = confidence
        self.clarifications: list[Clarification] = []
        # Draft produced in analysis (or by Modify) waiting to be pushed in planning
        self.pending_draft: Optional[Plan] = None
        # Subtask under review at the feedback gate
        self.feedback_subtask: Optional[int] = None
        self.last_result_summary: str = ""
        self._closed = False
        self.close_reason = ""

    @classmethod
    def create(cls, request: str, task_id: str | None = None) -> "Session":
        task_id = task_id or generate_task_id(request)
        validate_task_id(task_id)
        session = cls(Task(id=task_id, request=request))
        logger.info(f"[SESSION] {task_id}: created")
        return session

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def phase(self) -> Phase:
        return self.fsm.phase

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        """Raise SessionClosed if the session was torn down."""
        if self._closed:
            raise SessionClosed(
                f"Session {self.task.id} is closed ({self.close_reason or self.phase.value})"
            )

    @property
    def plan_store(self) -> PlanStore:
        self.ensure_open()
        return self._plan_store

    @property
    def queue(self) -> SubtaskQueue | None:
        self.ensure_open()
        return self._queue

    @queue.setter
    def queue(self, queue: SubtaskQueue) -> None:
        self.ensure_open()
        self._queue = queue

    def fire(self, trigger: str, **kwargs) -> Phase:
        """Run a phase trigger; tears the session down on terminal phases."""
        self.ensure_open()
        phase = self.fsm.fire(trigger, **kwargs)
        if is_terminal(phase):
            self.teardown(phase.value)
        return phase

    def teardown(self, reason: str) -> None:
        """Release the session. Every later operation raises SessionClosed."""
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason
        logger.info(f"[SESSION] {self.task.id}: torn down ({reason})")

    def snapshot_parts(self) -> dict:
        """Raw state for persistence, readable even after teardown."""
        return {
            "plan_store": self._plan_store,
            "queue": self._queue,
        }
