"""
stepgate status - Show the state of a task.
"""

from stepgate.lib.config import EngineConfig
from stepgate.lib.constants import SESSION_FILENAME
from stepgate.lib.validate import ValidationError
from stepgate.runner.persistence import list_task_ids, read_snapshot, task_dir

STATUS_MARKERS = {
    "pending": " ",
    "active": ">",
    "done": "x",
    "skipped": "-",
}


def cmd_status(args, config: EngineConfig) -> int:
    """Print phase, confidence, current plan version and subtasks."""
    archived = not (task_dir(config.tasks_dir, args.id) / SESSION_FILENAME).exists()
    if archived and args.id not in list_task_ids(config.tasks_dir, archived=True):
        print(f"ERROR: Task '{args.id}' not found")
        return 2

    try:
        data = read_snapshot(config.tasks_dir, args.id, archived=archived)
    except ValidationError as e:
        print(f"ERROR: {e}")
        return 1

    task = data["task"]
    versions = data["plan_versions"]
    print(f"Task:       {task['id']}" + (" (archived)" if archived else ""))
    print(f"Request:    {task['request']}")
    print(f"Phase:      {data['phase']}")
    print(f"Confidence: {data['confidence'] or '-'}")
    if versions:
        print(f"Plan:       v{versions[-1]['version']} ({len(versions)} version(s) in history)")
    else:
        print("Plan:       none yet")
    print()

    subtasks = data.get("subtasks")
    if subtasks:
        print("Subtasks")
        print("-" * 60)
        for s in subtasks:
            marker = STATUS_MARKERS.get(s["status"], "?")
            notes = f"  ({len(s['feedback'])} feedback)" if s["feedback"] else ""
            print(f"  [{marker}] {s['id']:>2}. {s['description']}{notes}")
    elif versions:
        print("Planned steps")
        print("-" * 60)
        for i, step in enumerate(versions[-1]["plan"]["subtasks"], 1):
            print(f"  {i:>2}. {step}")
    return 0
