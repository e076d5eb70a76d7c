"""
Versioned plan history with linear undo.

The store is a stack: push adds a version, revert pops one. Pushing after
a revert discards the popped version for good (no redo). Version numbers
come from a counter that only grows, so a number is never handed out twice.
"""

import logging

from stepgate.lib.errors import NoHistory, NoPlan
from stepgate.plan.models import Plan, PlanVersion

logger = logging.getLogger(__name__)


class PlanStore:
    """Current plan plus the stack of prior versions (most recent last)."""

    def __init__(self, versions: list[PlanVersion] | None = None, next_number: int | None = None):
        self._versions: list[PlanVersion] = list(versions or [])
        highest = max((v.number for v in self._versions), default=0)
        if next_number is None:
            next_number = highest + 1
        if next_number <= highest:
            raise ValueError(f"next_number {next_number} would reuse a version number (highest {highest})")
        numbers = [v.number for v in self._versions]
        if numbers != sorted(set(numbers)):
            raise ValueError(f"Version numbers must be strictly increasing: {numbers}")
        self._next_number = next_number

    def __len__(self) -> int:
        return len(self._versions)

    @property
    def versions(self) -> tuple[PlanVersion, ...]:
        return tuple(self._versions)

    @property
    def next_number(self) -> int:
        return self._next_number

    def current_version(self) -> PlanVersion:
        if not self._versions:
            raise NoPlan("No plan has been stored yet")
        return self._versions[-1]

    def current(self) -> Plan:
        """Return the current plan. Raises NoPlan if the store is empty."""
        return self.current_version().plan

    def can_revert(self) -> bool:
        return len(self._versions) > 1

    def push(self, plan: Plan) -> PlanVersion:
        """Store plan as the new current version."""
        version = PlanVersion(number=self._next_number, plan=plan)
        self._next_number += 1
        self._versions.append(version)
        logger.debug(f"[STORE] pushed plan v{version.number} ({len(plan.subtasks)} subtasks)")
        return version

    def revert(self) -> Plan:
        """Drop the current version and return the one before it.

        Raises:
            NoHistory: if only the initial version remains
        """
        if not self._versions:
            raise NoPlan("No plan has been stored yet")
        if len(self._versions) == 1:
            raise NoHistory(f"Cannot revert past plan v{self._versions[0].number}")
        dropped = self._versions.pop()
        logger.debug(f"[STORE] reverted v{dropped.number} -> v{self._versions[-1].number}")
        return self._versions[-1].plan
