"""
stepgate run - Start a new task and drive it interactively.
"""

from stepgate.lib.config import EngineConfig
from stepgate.lib.locking import LockTimeout
from stepgate.runner.bootstrap import build_engine, drive
from stepgate.runner.persistence import task_dir
from stepgate.runner.session import generate_task_id, validate_task_id


def cmd_run(args, config: EngineConfig) -> int:
    """Start a task from a request."""
    request = " ".join(args.request).strip()
    if not request:
        print("ERROR: Request cannot be empty")
        return 2

    task_id = args.id or generate_task_id(request)
    try:
        validate_task_id(task_id)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2

    if task_dir(config.tasks_dir, task_id).exists():
        print(f"ERROR: Task '{task_id}' already exists. Use 'stepgate resume {task_id}'")
        return 2

    engine = build_engine(config, request, task_id)
    session = engine.start(request, task_id)
    print(f"Task: {task_id}")
    print()

    try:
        return drive(engine, session, config)
    except LockTimeout as e:
        print(f"ERROR: {e}")
        return 2
