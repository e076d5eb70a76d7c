"""Audit trail for a task session.

Captures phase transitions, human inputs, worker calls and guideline
consultations, giving a full record from request to terminal phase.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path


class Actor(Enum):
    """Who produced an audit entry."""
    ENGINE = "engine"      # The protocol engine itself
    WORKER = "worker"      # Plan drafting / subtask execution
    HUMAN = "human"        # Human operator at a gate


@dataclass
class AuditEntry:
    """Single entry in the audit trail."""
    timestamp: str
    phase: str
    actor: str           # Actor enum value
    event: str           # Short machine-readable event name
    content: str = ""
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class AuditTrail:
    """
    Ordered record of everything that happened in a session.

    Usage:
        audit = AuditTrail()
        audit.record("analysis", Actor.WORKER, "plan_drafted", confidence="high")
        audit.save(task_dir / "audit.json")
    """

    def __init__(self, entries: list[AuditEntry] | None = None):
        self.entries: list[AuditEntry] = list(entries or [])

    def record(self, phase: str, actor: Actor, event: str, content: str = "", **metadata) -> AuditEntry:
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            phase=phase,
            actor=actor.value,
            event=event,
            content=content,
            metadata=metadata,
        )
        self.entries.append(entry)
        return entry

    def record_transition(self, from_phase: str, to_phase: str, trigger: str) -> None:
        self.record(to_phase, Actor.ENGINE, "transition", f"{from_phase} -> {to_phase}", trigger=trigger)

    def record_human_input(self, phase: str, action: str, feedback: str = "") -> None:
        """Record human intervention (selection or free-form feedback)."""
        content = action
        if feedback:
            content = f"{action}: {feedback}"
        self.record(phase, Actor.HUMAN, "human_input", content, action=action)

    def record_guidelines(self, phase: str, resolution) -> None:
        """Record which guidelines were consulted, or that none could be."""
        if resolution.warning is not None:
            self.record(
                phase, Actor.ENGINE, "guidelines_unavailable",
                str(resolution.warning), context=resolution.context,
            )
        else:
            self.record(
                phase, Actor.ENGINE, "guidelines_consulted",
                ", ".join(resolution.names), context=resolution.context,
            )

    def events(self, event: str) -> list[AuditEntry]:
        return [e for e in self.entries if e.event == event]

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self.entries]

    @classmethod
    def from_list(cls, data: list[dict]) -> "AuditTrail":
        return cls([AuditEntry(**d) for d in data])

    def save(self, path: Path) -> None:
        """Save audit trail to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"version": 1, "entries": self.to_list()}, indent=2))

    @classmethod
    def load(cls, path: Path) -> "AuditTrail":
        if not path.exists():
            return cls()
        data = json.loads(path.read_text())
        return cls.from_list(data.get("entries", []))
