"""
Task phases.

Values match the PhaseFSM state strings so a phase can be persisted and
restored as plain text.
"""

from enum import Enum


class Phase(Enum):
    """All task phases. Exactly one is active per task."""

    ANALYSIS = "analysis"
    PLANNING = "planning"

    # Approval gate
    AWAITING_APPROVAL = "awaiting_approval"

    # Execution loop
    EXECUTING = "executing"
    AWAITING_FEEDBACK = "awaiting_feedback"
    PAUSED = "paused"

    # Terminal
    DONE = "done"
    CANCELLED = "cancelled"


TERMINAL_PHASES = frozenset({Phase.DONE, Phase.CANCELLED})

# Phases in which the current plan has been submitted for approval
APPROVAL_OR_LATER = frozenset({
    Phase.AWAITING_APPROVAL,
    Phase.EXECUTING,
    Phase.AWAITING_FEEDBACK,
    Phase.PAUSED,
    Phase.DONE,
})


def parse_phase(value: str | None) -> Phase | None:
    """Parse a phase string into Phase. Returns None if unknown."""
    if value is None:
        return None
    for phase in Phase:
        if phase.value == value:
            return phase
    return None


def is_terminal(phase: Phase) -> bool:
    return phase in TERMINAL_PHASES
