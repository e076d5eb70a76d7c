"""
stepgate list - List stored tasks.
"""

from stepgate.lib.config import EngineConfig
from stepgate.lib.validate import ValidationError
from stepgate.runner.persistence import list_task_ids, read_snapshot


def cmd_list(args, config: EngineConfig) -> int:
    """List open tasks, and archived ones with --all."""
    groups = [("Tasks", False)]
    if args.all:
        groups.append(("Archived", True))

    total = 0
    for title, archived in groups:
        rows = []
        for task_id in list_task_ids(config.tasks_dir, archived=archived):
            try:
                data = read_snapshot(config.tasks_dir, task_id, archived=archived)
            except ValidationError as e:
                print(f"  [WARN] Skipping {task_id}: {e}")
                continue
            rows.append(data)

        if not rows:
            print(f"{title}: none")
            print()
            continue

        print(title)
        print("-" * 60)
        for data in rows:
            request = data["task"]["request"]
            request = request[:36] + "..." if len(request) > 36 else request
            print(f"  {data['task']['id']:<32} {data['phase']:<18} {request}")
        print()
        total += len(rows)

    print(f"{total} task(s)")
    return 0
