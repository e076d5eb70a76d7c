"""
stepgate skip - Skip a pending subtask of a paused task.
"""

from stepgate.lib.config import EngineConfig
from stepgate.lib.errors import InvariantViolation
from stepgate.lib.locking import LockTimeout, task_lock
from stepgate.lib.validate import ValidationError
from stepgate.runner.audit import Actor
from stepgate.runner.persistence import load_session, save_session
from stepgate.workflow.phases import Phase


def cmd_skip(args, config: EngineConfig) -> int:
    """Mark a pending subtask skipped so execution moves past it."""
    try:
        with task_lock(config.state_dir, args.id):
            return _skip(args, config)
    except LockTimeout as e:
        print(f"ERROR: {e}")
        return 2


def _skip(args, config: EngineConfig) -> int:
    try:
        session = load_session(config.tasks_dir, args.id)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        return 2
    except (ValidationError, InvariantViolation) as e:
        print(f"ERROR: Stored session for '{args.id}' is unusable: {e}")
        return 1

    if session.phase != Phase.PAUSED:
        print(f"ERROR: Task must be paused to skip subtasks (phase: {session.phase.value})")
        return 2

    queue = session.queue
    pending = queue.pending() if queue else []
    if args.subtask is not None:
        target = next((s for s in pending if s.id == args.subtask), None)
        if target is None:
            print(f"ERROR: Subtask {args.subtask} is not pending")
            return 2
    elif pending:
        target = pending[0]
    else:
        print("No pending subtasks")
        return 0

    queue.skip(target.id)
    reason = args.message or "Skipped by operator"
    session.audit.record(session.phase.value, Actor.HUMAN, "subtask_skipped", reason, subtask=target.id)
    save_session(config.tasks_dir, session)

    print(f"Skipped: {target.id}. {target.description}")
    print(f"  Reason: {reason}")
    remaining = len(queue.pending())
    if remaining:
        print(f"\n{remaining} subtask(s) remaining")
    else:
        print(f"\nNo subtasks remaining. Run: stepgate resume {session.id}")
    return 0
