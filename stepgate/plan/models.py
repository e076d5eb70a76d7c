"""
Data models for plans and subtasks.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ConfidenceLevel(Enum):
    """Declared confidence attached to a plan or a feedback-integration step."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def parse_confidence(value: str | None) -> ConfidenceLevel | None:
    """Parse a confidence string (case-insensitive). Returns None if unknown."""
    if value is None:
        return None
    for level in ConfidenceLevel:
        if level.value == str(value).strip().lower():
            return level
    return None


@dataclass(frozen=True)
class Plan:
    """Ordered subtask specifications plus declared confidence.

    A plan with open questions is a draft: it can never be submitted
    for approval.
    """
    subtasks: tuple[str, ...]
    confidence: ConfidenceLevel
    open_questions: tuple[str, ...] = ()
    summary: str = ""

    def __post_init__(self):
        # Accept lists from callers, store tuples so versions stay immutable
        object.__setattr__(self, "subtasks", tuple(self.subtasks))
        object.__setattr__(self, "open_questions", tuple(self.open_questions))

    @property
    def is_resolved(self) -> bool:
        return not self.open_questions

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "subtasks": list(self.subtasks),
            "confidence": self.confidence.value,
            "open_questions": list(self.open_questions),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Plan":
        confidence = parse_confidence(data.get("confidence"))
        if confidence is None:
            raise ValueError(f"Unknown confidence level: {data.get('confidence')!r}")
        return cls(
            subtasks=data["subtasks"],
            confidence=confidence,
            open_questions=data.get("open_questions", []),
            summary=data.get("summary", ""),
        )

    def render(self) -> str:
        """Human-readable plan text for the approval gate."""
        lines = []
        if self.summary:
            lines.extend([self.summary, ""])
        for i, step in enumerate(self.subtasks, 1):
            lines.append(f"  {i}. {step}")
        lines.append("")
        lines.append(f"Confidence: {self.confidence.value}")
        return "\n".join(lines)


@dataclass(frozen=True)
class PlanVersion:
    """Immutable numbered snapshot of a plan."""
    number: int
    plan: Plan

    def to_dict(self) -> dict:
        return {"version": self.number, "plan": self.plan.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "PlanVersion":
        return cls(number=data["version"], plan=Plan.from_dict(data["plan"]))


class SubtaskStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    SKIPPED = "skipped"


@dataclass
class FeedbackEntry:
    """One piece of feedback applied to a subtask."""
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    confidence: Optional[ConfidenceLevel] = None  # Declared by the rework result

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "timestamp": self.timestamp,
            "confidence": self.confidence.value if self.confidence else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeedbackEntry":
        return cls(
            text=data["text"],
            timestamp=data["timestamp"],
            confidence=parse_confidence(data.get("confidence")),
        )


@dataclass
class Subtask:
    """One executable unit derived from an approved plan."""
    id: int                                    # 1-based, unique within a queue
    description: str
    status: SubtaskStatus = SubtaskStatus.PENDING
    feedback: list[FeedbackEntry] = field(default_factory=list)

    @property
    def settled(self) -> bool:
        """Done or skipped - kept across plan modifications."""
        return self.status in (SubtaskStatus.DONE, SubtaskStatus.SKIPPED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "feedback": [f.to_dict() for f in self.feedback],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Subtask":
        return cls(
            id=data["id"],
            description=data["description"],
            status=SubtaskStatus(data["status"]),
            feedback=[FeedbackEntry.from_dict(f) for f in data.get("feedback", [])],
        )
