"""
Error taxonomy for stepgate.

RecoverableInput never leaves the menu gate, GuidelineUnavailable is a
warning value carried on a resolution result, worker failures are values
(see agents/worker.py). InvariantViolation and its subclasses always
propagate: they mean the engine itself tried something the protocol forbids.
"""


class StepgateError(Exception):
    """Base class for stepgate errors."""
    pass


class RecoverableInput(StepgateError):
    """A gate response that is neither a valid selection nor feedback."""

    def __init__(self, response: str, reason: str):
        self.response = response
        self.reason = reason
        super().__init__(f"Unusable response {response!r}: {reason}")


class GuidelineUnavailable(UserWarning):
    """The guideline document store could not be read."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Guidelines unavailable: {reason}")


class InvariantViolation(StepgateError):
    """A protocol invariant was about to be broken. Fatal for the session."""
    pass


class NoPlan(InvariantViolation):
    """The plan store holds no plan yet."""
    pass


class NoHistory(InvariantViolation):
    """Revert requested but only the initial plan version remains."""
    pass


class ActiveSubtaskExists(InvariantViolation):
    """A second subtask would become active."""
    pass


class SubtaskStateError(InvariantViolation):
    """A subtask operation is not allowed from the subtask's current status."""
    pass


class SessionClosed(InvariantViolation):
    """The session reached a terminal phase or was torn down."""
    pass


class QueueExhausted(StepgateError):
    """No pending subtask is left to activate."""
    pass


class ChannelClosed(StepgateError):
    """The prompt/response channel reached end of input."""
    pass
