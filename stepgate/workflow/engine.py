"""
Protocol engine: drives one session through its phases.

The engine is a synchronous loop. Each step handles the session's current
phase, blocks on a gate when a human decision is needed, and fires exactly
one phase trigger. It stops when the session reaches a terminal phase or
is paused; only an explicit resume event continues a paused session.

Usage:
    engine = ProtocolEngine(worker, resolver, StdioChannel())
    session = engine.start("Add rate limiting to the login endpoint")
    engine.run(session)      # -> Phase.DONE, CANCELLED or PAUSED
    engine.resume(session)   # after a pause
"""

import logging
from contextlib import contextmanager
from typing import Callable

from stepgate.agents.worker import DraftRequest, SubtaskResult, Worker, WorkerFailure
from stepgate.lib.errors import InvariantViolation, QueueExhausted
from stepgate.lib.guidelines import GuidelineResolution, GuidelineResolver
from stepgate.plan.models import Plan, Subtask
from stepgate.plan.queue import SubtaskQueue
from stepgate.runner.audit import Actor
from stepgate.runner.session import Clarification, Session
from stepgate.workflow.menu_gate import (
    Freeform,
    GateResult,
    LineChannel,
    MenuAction,
    MenuGate,
    MenuOption,
)
from stepgate.workflow.phases import Phase

logger = logging.getLogger(__name__)

APPROVE = MenuOption("Approve plan", MenuAction.APPROVE)
REVERT = MenuOption("Revert to previous plan version", MenuAction.REVERT)
CANCEL = MenuOption("Cancel task", MenuAction.CANCEL)
CONTINUE = MenuOption("Continue with next subtask", MenuAction.CONTINUE)
MODIFY_PLAN = MenuOption("Modify remaining plan", MenuAction.MODIFY)
PAUSE = MenuOption("Pause", MenuAction.PAUSE)
RETRY = MenuOption("Retry", MenuAction.RETRY)
MODIFY = MenuOption("Modify", MenuAction.MODIFY)

# Free-text gates only offer Cancel, so any number is read as a menu choice
TEXT_ANSWER_HINT = "Answer in words; a number is read as a menu choice (1 cancels)."


def compose_plan(settled: list[Subtask], remaining: Plan) -> Plan:
    """Full plan made of already settled work followed by the remaining steps."""
    return Plan(
        subtasks=[s.description for s in settled] + list(remaining.subtasks),
        confidence=remaining.confidence,
        open_questions=remaining.open_questions,
        summary=remaining.summary,
    )


@contextmanager
def _fatal_on_violation(session: Session):
    """Tear the session down when an invariant violation escapes."""
    try:
        yield
    except InvariantViolation as e:
        if not session.closed:
            logger.error(f"[ENGINE] {session.id}: invariant violation: {e}")
            session.audit.record(session.phase.value, Actor.ENGINE, "invariant_violation", str(e))
            session.teardown(f"invariant violation: {e}")
        raise

class ProtocolEngine:
    """Phase state machine driver over a worker, a resolver and a gate."""

    def __init__(self, worker: Worker, resolver: GuidelineResolver, channel: LineChannel):
        self.worker = worker
        self.resolver = resolver
        self.channel = channel
        self.gate = MenuGate(channel)
        self._handlers: dict[Phase, Callable[[Session], None]] = {
            Phase.ANALYSIS: self._analysis,
            Phase.PLANNING: self._planning,
            Phase.AWAITING_APPROVAL: self._awaiting_approval,
            Phase.EXECUTING: self._executing,
            Phase.AWAITING_FEEDBACK: self._awaiting_feedback,
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start(self, request: str, task_id: str | None = None) -> Session:
        """Create the session for a new task, in analysis."""
        session = Session.create(request, task_id)
        session.audit.record(Phase.ANALYSIS.value, Actor.HUMAN, "task_requested", request)
        return session

    def run(self, session: Session) -> Phase:
        """Drive the session until it is terminal or paused."""
        session.ensure_open()
        with _fatal_on_violation(session):
            while not session.closed and session.phase != Phase.PAUSED:
                self.step(session)
        return session.phase

    def step(self, session: Session) -> Phase:
        """Handle the current phase once. Returns the resulting phase."""
        session.ensure_open()
        handler = self._handlers.get(session.phase)
        if handler is None:
            raise InvariantViolation(f"No step defined for phase {session.phase.value}")
        handler(session)
        return session.phase

    def apply_resume(self, session: Session) -> Phase:
        """External resume event for a paused session.

        Activates the next pending subtask, or re-renders the last feedback
        prompt when nothing is pending.
        """
        session.ensure_open()
        if session.phase != Phase.PAUSED:
            raise InvariantViolation(f"Cannot resume {session.id}: phase is {session.phase.value}")
        with _fatal_on_violation(session):
            session.audit.record_human_input(session.phase.value, "resume")
            queue = self._require_queue(session)
            if queue.has_pending():
                subtask = queue.activate()
                logger.info(f"[ENGINE] {session.id}: resuming with subtask {subtask.id}")
                session.fire("resume")
            else:
                session.fire("resume_feedback")
        return session.phase

    def resume(self, session: Session) -> Phase:
        """Resume a paused session (if paused) and keep driving it."""
        if session.phase == Phase.PAUSED:
            self.apply_resume(session)
        return self.run(session)

    def cancel(self, session: Session) -> Phase:
        """Cancel from any non-terminal phase."""
        session.ensure_open()
        session.audit.record_human_input(session.phase.value, MenuAction.CANCEL.value)
        return session.fire("cancel")

    # ------------------------------------------------------------------
    # Phase handlers
    # ------------------------------------------------------------------

    def _analysis(self, session: Session) -> None:
        draft = DraftRequest(
            request=session.task.request,
            clarifications=list(session.clarifications),
        )
        plan = self._draft(session, draft)
        if plan is None:
            return
        session.pending_draft = plan
        session.confidence = plan.confidence
        session.fire("plan_ready", plan=plan)

    def _planning(self, session: Session) -> None:
        store = session.plan_store
        if session.pending_draft is not None:
            plan = session.pending_draft
            if plan.open_questions:
                raise InvariantViolation(
                    f"Plan for {session.id} still has open questions: {list(plan.open_questions)}"
                )
            version = store.push(plan)
            session.pending_draft = None
            session.confidence = plan.confidence
            session.audit.record(
                session.phase.value, Actor.ENGINE, "plan_pushed", plan.render(),
                version=version.number, confidence=plan.confidence.value,
            )
        session.fire("submit", plan=store.current())

    def _awaiting_approval(self, session: Session) -> None:
        store = session.plan_store
        version = store.current_version()

        options = [APPROVE]
        if store.can_revert():
            options.append(REVERT)
        options.append(CANCEL)

        header = (
            f"Plan v{version.number} for: {session.task.request}\n\n"
            f"{version.plan.render()}\n\n"
            "Approve this plan, or type feedback to revise it."
        )
        result = self._prompt(session, options, header)

        if isinstance(result, Freeform):
            self._revise_plan(session, result.text)
        elif result.action == MenuAction.APPROVE:
            self._approve(session)
        elif result.action == MenuAction.REVERT:
            plan = store.revert()
            session.confidence = plan.confidence
            session.audit.record(
                session.phase.value, Actor.ENGINE, "plan_reverted",
                version=store.current_version().number, confidence=plan.confidence.value,
            )
            session.fire("revert")
        else:
            self._cancel(session)

    def _executing(self, session: Session) -> None:
        queue = self._require_queue(session)
        subtask = queue.active()
        if subtask is None:
            raise InvariantViolation(f"{session.id} is executing without an active subtask")

        resolution = self._consult(session, subtask.description)
        outcome = self.worker.execute_subtask(subtask, resolution.documents)

        if isinstance(outcome, WorkerFailure):
            self._record_failure(session, outcome)
            instruction = self._failure_gate(session, outcome)
            if instruction:
                queue.append_feedback(subtask.id, instruction)
            return

        self._complete(session, queue, subtask, outcome)

    def _awaiting_feedback(self, session: Session) -> None:
        queue = self._require_queue(session)
        if session.feedback_subtask is None:
            raise InvariantViolation(f"{session.id} awaits feedback without a reviewed subtask")
        subtask = queue.get(session.feedback_subtask)

        header = (
            f"Subtask {subtask.id}/{len(queue)} complete: {subtask.description}\n\n"
            f"{session.last_result_summary}\n\n"
            f"Confidence: {session.confidence.value if session.confidence else 'unknown'}\n"
            "Choose how to proceed, or type feedback to rework this subtask."
        )
        result = self._prompt(session, [CONTINUE, MODIFY_PLAN, PAUSE, CANCEL], header)

        if isinstance(result, Freeform):
            queue.append_feedback(subtask.id, result.text)
            queue.reopen(subtask.id)
            session.fire("rework")
        elif result.action == MenuAction.CONTINUE:
            try:
                nxt = queue.activate()
            except QueueExhausted:
                logger.info(f"[ENGINE] {session.id}: all subtasks settled")
                session.fire("finish")
                return
            logger.info(f"[ENGINE] {session.id}: starting subtask {nxt.id}")
            session.fire("proceed")
        elif result.action == MenuAction.MODIFY:
            self._modify_remaining(session)
        elif result.action == MenuAction.PAUSE:
            session.fire("pause")
        else:
            self._cancel(session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prompt(self, session: Session, options: list[MenuOption], header: str) -> GateResult:
        result = self.gate.prompt(options, header)
        phase = session.phase.value
        if isinstance(result, Freeform):
            session.audit.record_human_input(phase, "feedback", result.text)
        else:
            session.audit.record_human_input(phase, result.action.value)
        return result

    def _ask_text(self, session: Session, header: str) -> str | None:
        """Read free text with Cancel still on offer. None means cancelled."""
        result = self._prompt(session, [CANCEL], f"{header}\n{TEXT_ANSWER_HINT}")
        if isinstance(result, Freeform):
            return result.text
        self._cancel(session)
        return None

    def _cancel(self, session: Session) -> None:
        logger.info(f"[ENGINE] {session.id}: cancelled in {session.phase.value}")
        session.fire("cancel")

    def _consult(self, session: Session, context: str) -> GuidelineResolution:
        resolution = self.resolver.resolve(context)
        session.audit.record_guidelines(session.phase.value, resolution)
        return resolution

    def _record_failure(self, session: Session, failure: WorkerFailure) -> None:
        logger.warning(f"[ENGINE] {session.id}: worker failed {failure}")
        session.audit.record(
            session.phase.value, Actor.WORKER, "worker_failure", failure.message, stage=failure.stage,
        )

    def _failure_gate(self, session: Session, failure: WorkerFailure) -> str | None:
        """Put a worker failure in front of the human.

        Returns the instruction to retry with ("" for a plain retry), or
        None if the task was cancelled.
        """
        header = (
            f"The worker failed during {failure.stage.replace('_', ' ')}:\n"
            f"  {failure.message}\n\n"
            "Retry, give an instruction (Modify or type it), or cancel."
        )
        result = self._prompt(session, [RETRY, MODIFY, CANCEL], header)
        if isinstance(result, Freeform):
            return result.text
        if result.action == MenuAction.RETRY:
            return ""
        if result.action == MenuAction.MODIFY:
            return self._ask_text(session, "Describe how the worker should proceed:")
        self._cancel(session)
        return None

    def _ask_questions(self, session: Session, questions) -> list[Clarification] | None:
        answers = []
        for i, question in enumerate(questions, 1):
            text = self._ask_text(
                session, f"Open question {i}/{len(questions)}:\n  {question}"
            )
            if text is None:
                return None
            answers.append(Clarification(question=question, answer=text))
        return answers

    def _check_draft(self, outcome, draft: DraftRequest):
        if isinstance(outcome, WorkerFailure):
            return outcome
        if not isinstance(outcome, Plan):
            return WorkerFailure("draft_plan", f"Worker returned {type(outcome).__name__}, not a plan")
        if not outcome.subtasks and not draft.remaining_only:
            return WorkerFailure("draft_plan", "Plan contains no subtasks")
        return outcome

    def _draft(self, session: Session, draft: DraftRequest) -> Plan | None:
        """Draft until the worker returns a plan with no open questions.

        Failures go through the failure gate and open questions through
        clarification gates. Returns None if the task was cancelled.
        """
        while True:
            context = draft.request if not draft.feedback else f"{draft.request}\n{draft.feedback}"
            resolution = self._consult(session, context)
            outcome = self._check_draft(self.worker.draft_plan(draft, resolution.documents), draft)

            if isinstance(outcome, WorkerFailure):
                self._record_failure(session, outcome)
                instruction = self._failure_gate(session, outcome)
                if instruction is None:
                    return None
                if instruction:
                    draft.feedback = f"{draft.feedback}\n{instruction}" if draft.feedback else instruction
                continue

            session.audit.record(
                session.phase.value, Actor.WORKER, "plan_drafted", outcome.render(),
                confidence=outcome.confidence.value, open_questions=list(outcome.open_questions),
            )
            if not outcome.open_questions:
                return outcome

            answers = self._ask_questions(session, outcome.open_questions)
            if answers is None:
                return None
            session.clarifications.extend(answers)
            draft.clarifications = list(session.clarifications)
            if session.phase == Phase.ANALYSIS:
                session.fire("clarify")

    def _settled(self, session: Session) -> list[Subtask]:
        queue = session.queue
        if queue is None:
            return []
        return [s for s in queue if s.settled]

    def _revise_plan(self, session: Session, feedback: str) -> None:
        """Free-form feedback at the approval gate: push a revised version."""
        store = session.plan_store
        settled = self._settled(session)
        draft = DraftRequest(
            request=session.task.request,
            clarifications=list(session.clarifications),
            previous=store.current(),
            feedback=feedback,
            settled=settled,
            remaining_only=bool(settled),
        )
        revised = self._draft(session, draft)
        if revised is None:
            return
        if settled:
            revised = compose_plan(settled, revised)
        version = store.push(revised)
        session.confidence = revised.confidence
        session.audit.record(
            session.phase.value, Actor.ENGINE, "plan_pushed", revised.render(),
            version=version.number, confidence=revised.confidence.value,
        )
        session.fire("revise", plan=revised)

    def _approve(self, session: Session) -> None:
        plan = session.plan_store.current()
        if session.queue is None:
            session.queue = SubtaskQueue.from_plan(plan)
        else:
            session.queue.regenerate(plan)

        try:
            subtask = session.queue.activate()
        except QueueExhausted:
            logger.info(f"[ENGINE] {session.id}: approved plan leaves nothing pending")
            session.fire("finish")
            return
        logger.info(f"[ENGINE] {session.id}: plan approved, starting subtask {subtask.id}")
        session.fire("approve")

    def _complete(self, session: Session, queue: SubtaskQueue, subtask: Subtask, result: SubtaskResult) -> None:
        queue.complete(subtask.id)
        if subtask.feedback and subtask.feedback[-1].confidence is None:
            # The rework result is the feedback-integration step for the latest entry
            subtask.feedback[-1].confidence = result.confidence
        session.confidence = result.confidence
        session.feedback_subtask = subtask.id
        session.last_result_summary = result.summary
        session.audit.record(
            session.phase.value, Actor.WORKER, "subtask_completed", result.summary,
            subtask=subtask.id, confidence=result.confidence.value,
        )
        session.fire("await_feedback")

    def _modify_remaining(self, session: Session) -> None:
        instruction = self._ask_text(session, "Describe the change to the remaining plan:")
        if instruction is None:
            return
        settled = self._settled(session)
        draft = DraftRequest(
            request=session.task.request,
            clarifications=list(session.clarifications),
            previous=session.plan_store.current(),
            feedback=instruction,
            settled=settled,
            remaining_only=True,
        )
        revised = self._draft(session, draft)
        if revised is None:
            return
        plan = compose_plan(settled, revised)
        session.pending_draft = plan
        session.confidence = plan.confidence
        session.fire("modify", plan=plan)

    def _require_queue(self, session: Session) -> SubtaskQueue:
        queue = session.queue
        if queue is None:
            raise InvariantViolation(f"{session.id} has no subtask queue in {session.phase.value}")
        return queue

