"""
stepgate resume - Continue a stored task.

A paused task receives the resume event; a task interrupted at a gate
picks up at that gate.
"""

from stepgate.lib.config import EngineConfig
from stepgate.lib.errors import InvariantViolation
from stepgate.lib.locking import LockTimeout
from stepgate.lib.validate import ValidationError
from stepgate.runner.bootstrap import build_engine, drive
from stepgate.runner.persistence import load_session


def cmd_resume(args, config: EngineConfig) -> int:
    """Resume a stored task."""
    try:
        session = load_session(config.tasks_dir, args.id)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        return 2
    except (ValidationError, InvariantViolation) as e:
        print(f"ERROR: Stored session for '{args.id}' is unusable: {e}")
        return 1

    print(f"Resuming task: {session.id} ({session.phase.value})")
    print()

    engine = build_engine(config, session.task.request, session.id)
    try:
        return drive(engine, session, config, resume=True)
    except LockTimeout as e:
        print(f"ERROR: {e}")
        return 2
