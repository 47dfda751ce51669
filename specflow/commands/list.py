"""
feature list - List features and their phases.
"""

from specflow.workflow.engine import Engine


def cmd_list(args, engine: Engine) -> int:
    """List active features."""
    features = engine.list_features()
    if not features:
        print("No features")
        return 0

    print(f"{'ID':<40} {'PHASE':<12} UPDATED")
    print("-" * 80)
    for record in features:
        print(f"{record.id:<40} {record.phase.capitalize():<12} {record.updated_at}")
    print("-" * 80)
    print(f"{len(features)} feature(s)")
    return 0
