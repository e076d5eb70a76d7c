"""
Plan module for stepgate.

Holds the plan data model, the versioned plan store and the subtask queue
derived from an approved plan.
"""

from stepgate.plan.models import (
    ConfidenceLevel,
    FeedbackEntry,
    Plan,
    PlanVersion,
    Subtask,
    SubtaskStatus,
    parse_confidence,
)
from stepgate.plan.store import PlanStore
from stepgate.plan.queue import SubtaskQueue

__all__ = [
    "ConfidenceLevel",
    "FeedbackEntry",
    "Plan",
    "PlanVersion",
    "Subtask",
    "SubtaskStatus",
    "parse_confidence",
    "PlanStore",
    "SubtaskQueue",
]
