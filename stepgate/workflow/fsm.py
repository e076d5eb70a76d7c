"""Task phase state machine using the transitions library.

Every phase change of a task goes through a named trigger:

    fsm = PhaseFSM("fix-login")
    fsm.fire("plan_ready", plan=draft)   # analysis -> planning
    fsm.fire("submit", plan=current)     # planning -> awaiting_approval
    fsm.fire("approve")                  # awaiting_approval -> executing

Triggers that are not valid from the current phase, or whose guard
rejects the transition, raise InvariantViolation.
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from stepgate.lib.errors import InvariantViolation
from stepgate.workflow.phases import Phase

logger = logging.getLogger(__name__)


STATES = [p.value for p in Phase]

NON_TERMINAL = [
    "analysis",
    "planning",
    "awaiting_approval",
    "executing",
    "awaiting_feedback",
    "paused",
]

# Transitions defined as (trigger, source, dest)
TRANSITIONS = [
    # Analysis: ask until the draft has no open questions
    {"trigger": "clarify", "source": "analysis", "dest": "analysis"},
    {"trigger": "plan_ready", "source": "analysis", "dest": "planning", "conditions": "_plan_is_resolved"},

    # Approval gate
    {"trigger": "submit", "source": "planning", "dest": "awaiting_approval", "conditions": "_plan_is_resolved"},
    {"trigger": "revise", "source": "awaiting_approval", "dest": "awaiting_approval", "conditions": "_plan_is_resolved"},
    {"trigger": "approve", "source": "awaiting_approval", "dest": "executing"},
    {"trigger": "revert", "source": "awaiting_approval", "dest": "planning"},

    # Execution loop
    {"trigger": "await_feedback", "source": "executing", "dest": "awaiting_feedback"},
    {"trigger": "proceed", "source": "awaiting_feedback", "dest": "executing"},
    {"trigger": "rework", "source": "awaiting_feedback", "dest": "executing"},
    {"trigger": "modify", "source": "awaiting_feedback", "dest": "planning", "conditions": "_plan_is_resolved"},
    {"trigger": "pause", "source": "awaiting_feedback", "dest": "paused"},

    # External resume event
    {"trigger": "resume", "source": "paused", "dest": "executing"},
    {"trigger": "resume_feedback", "source": "paused", "dest": "awaiting_feedback"},

    # Queue exhausted
    {"trigger": "finish", "source": "awaiting_feedback", "dest": "done"},
    {"trigger": "finish", "source": "awaiting_approval", "dest": "done"},

    # Cancel is offered at every gate
    {"trigger": "cancel", "source": NON_TERMINAL, "dest": "cancelled"},
]


def _build_triggers_by_source() -> dict[str, set[str]]:
    """Build lookup from source state -> trigger names."""
    lookup: dict[str, set[str]] = {state: set() for state in STATES}
    for t in TRANSITIONS:
        sources = t["source"] if isinstance(t["source"], list) else [t["source"]]
        for source in sources:
            lookup[source].add(t["trigger"])
    return lookup


TRIGGERS_BY_SOURCE = _build_triggers_by_source()


class PhaseFSM:
    """State machine for one task's phase.

    Wraps the transitions library with task-specific logic:
    - Guards that keep unresolved plans out of the approval gate
    - Logs all transitions
    - Reports transitions to an optional callback (the session audit trail)
    """

    def __init__(
        self,
        task_id: str,
        initial: Phase = Phase.ANALYSIS,
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """Initialize FSM for a task.

        Args:
            task_id: Task identifier, used in log lines
            initial: Phase to start in (restored sessions start mid-way)
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.task_id = task_id
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial.value,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    @property
    def phase(self) -> Phase:
        return Phase(self.state)

    def _plan_is_resolved(self, event) -> bool:
        """Guard: the plan passed with the trigger has no open questions."""
        plan = event.kwargs.get("plan")
        if plan is None:
            return True
        return not plan.open_questions

    def on_state_change(self, event) -> None:
        """Callback after any state transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.task_id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in TRIGGERS_BY_SOURCE.get(self.state, set())

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return sorted(TRIGGERS_BY_SOURCE.get(self.state, set()))

    def fire(self, trigger: str, **kwargs) -> Phase:
        """Run a trigger and return the new phase.

        Raises:
            InvariantViolation: if the trigger is not valid here or its guard fails
        """
        current = self.state
        if not self.can(trigger):
            raise InvariantViolation(
                f"Invalid transition for {self.task_id}: '{trigger}' from {current}"
            )
        try:
            moved = getattr(self, trigger)(**kwargs)
        except MachineError as e:
            raise InvariantViolation(
                f"Invalid transition for {self.task_id}: '{trigger}' from {current}"
            ) from e
        if not moved:
            raise InvariantViolation(
                f"Guard rejected '{trigger}' for {self.task_id} in {current}: plan has open questions"
            )
        return self.phase
