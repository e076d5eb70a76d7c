"""
stepgate guidelines - Show which guideline documents apply to a context.
"""

from stepgate.lib.config import EngineConfig
from stepgate.runner.bootstrap import build_resolver


def cmd_guidelines(args, config: EngineConfig) -> int:
    """Resolve guidelines for a task or subtask description."""
    context = " ".join(args.context).strip()
    resolution = build_resolver(config).resolve(context)

    if resolution.warning is not None:
        print(f"WARNING: {resolution.warning}")
        return 1

    if not resolution.documents:
        print("No guidelines apply")
        return 0

    print(f"Guidelines for: {context}")
    print()
    for doc in resolution.documents:
        print(f"{doc.name} ({doc.source or 'in memory'}):")
        if args.full:
            for line in doc.text.splitlines():
                print(f"  {line}")
            print()
    return 0
