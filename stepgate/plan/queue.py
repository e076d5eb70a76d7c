"""
Subtask queue: strict FIFO over pending subtasks, one active at a time.
"""

import logging
from collections import Counter

from stepgate.lib.errors import ActiveSubtaskExists, QueueExhausted, SubtaskStateError
from stepgate.plan.models import FeedbackEntry, Plan, Subtask, SubtaskStatus

logger = logging.getLogger(__name__)


class SubtaskQueue:
    """Ordered subtasks derived from an approved plan."""

    def __init__(self, subtasks: list[Subtask]):
        ids = [s.id for s in subtasks]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate subtask ids: {ids}")
        active = [s.id for s in subtasks if s.status == SubtaskStatus.ACTIVE]
        if len(active) > 1:
            raise ActiveSubtaskExists(f"More than one active subtask: {active}")
        self._subtasks = list(subtasks)

    @classmethod
    def from_plan(cls, plan: Plan) -> "SubtaskQueue":
        """One pending subtask per plan entry, in plan order."""
        return cls([Subtask(id=i, description=desc) for i, desc in enumerate(plan.subtasks, 1)])

    def __iter__(self):
        return iter(self._subtasks)

    def __len__(self) -> int:
        return len(self._subtasks)

    @property
    def subtasks(self) -> tuple[Subtask, ...]:
        return tuple(self._subtasks)

    def get(self, subtask_id: int) -> Subtask:
        for subtask in self._subtasks:
            if subtask.id == subtask_id:
                return subtask
        raise KeyError(f"No subtask with id {subtask_id}")

    def active(self) -> Subtask | None:
        for subtask in self._subtasks:
            if subtask.status == SubtaskStatus.ACTIVE:
                return subtask
        return None

    def pending(self) -> list[Subtask]:
        return [s for s in self._subtasks if s.status == SubtaskStatus.PENDING]

    def has_pending(self) -> bool:
        return any(s.status == SubtaskStatus.PENDING for s in self._subtasks)

    def _require_no_active(self, action: str) -> None:
        current = self.active()
        if current is not None:
            raise ActiveSubtaskExists(
                f"Cannot {action}: subtask {current.id} is already active"
            )

    def activate(self) -> Subtask:
        """Mark the first pending subtask active and return it.

        Raises:
            ActiveSubtaskExists: if a subtask is already active
            QueueExhausted: if no pending subtask remains
        """
        self._require_no_active("activate next subtask")
        for subtask in self._subtasks:
            if subtask.status == SubtaskStatus.PENDING:
                subtask.status = SubtaskStatus.ACTIVE
                logger.debug(f"[QUEUE] activated subtask {subtask.id}")
                return subtask
        raise QueueExhausted("No pending subtasks remain")

    def complete(self, subtask_id: int) -> Subtask:
        subtask = self.get(subtask_id)
        if subtask.status != SubtaskStatus.ACTIVE:
            raise SubtaskStateError(
                f"Cannot complete subtask {subtask_id}: status is {subtask.status.value}"
            )
        subtask.status = SubtaskStatus.DONE
        return subtask

    def skip(self, subtask_id: int) -> Subtask:
        subtask = self.get(subtask_id)
        if subtask.status not in (SubtaskStatus.ACTIVE, SubtaskStatus.PENDING):
            raise SubtaskStateError(
                f"Cannot skip subtask {subtask_id}: status is {subtask.status.value}"
            )
        subtask.status = SubtaskStatus.SKIPPED
        return subtask

    def reopen(self, subtask_id: int) -> Subtask:
        """Return a done subtask to active for rework after feedback."""
        subtask = self.get(subtask_id)
        if subtask.status == SubtaskStatus.ACTIVE:
            return subtask
        if subtask.status != SubtaskStatus.DONE:
            raise SubtaskStateError(
                f"Cannot reopen subtask {subtask_id}: status is {subtask.status.value}"
            )
        self._require_no_active(f"reopen subtask {subtask_id}")
        subtask.status = SubtaskStatus.ACTIVE
        return subtask

    def append_feedback(self, subtask_id: int, entry: FeedbackEntry | str) -> FeedbackEntry:
        """Append to a subtask's feedback log, whatever its status."""
        if isinstance(entry, str):
            entry = FeedbackEntry(text=entry)
        self.get(subtask_id).feedback.append(entry)
        return entry

    def regenerate(self, plan: Plan) -> None:
        """Rebuild pending entries from a modified plan.

        Settled (done/skipped) subtasks are kept with their logs. Each plan
        entry that matches a settled subtask's description is considered
        already represented; every other entry becomes a new pending subtask.
        """
        self._require_no_active("regenerate the queue")
        settled = [s for s in self._subtasks if s.settled]
        represented = Counter(s.description for s in settled)
        next_id = max((s.id for s in self._subtasks), default=0) + 1

        regenerated = list(settled)
        for desc in plan.subtasks:
            if represented[desc] > 0:
                represented[desc] -= 1
                continue
            regenerated.append(Subtask(id=next_id, description=desc))
            next_id += 1

        dropped = len([s for s in self._subtasks if not s.settled])
        logger.debug(
            f"[QUEUE] regenerated: kept {len(settled)}, dropped {dropped}, "
            f"added {len(regenerated) - len(settled)}"
        )
        self._subtasks = regenerated

    def to_list(self) -> list[dict]:
        return [s.to_dict() for s in self._subtasks]

    @classmethod
    def from_list(cls, data: list[dict]) -> "SubtaskQueue":
        return cls([Subtask.from_dict(d) for d in data])
