"""
feature new - Create a feature.

Creates features/<id>/ with meta.env (phase Specify) and an empty spec slot.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine


def cmd_new(args, engine: Engine) -> int:
    """Create a new feature."""
    outcome = engine.new_feature(args.id)
    code = emit(outcome)
    if outcome.ok:
        print(f"Write the spec with 'feature revise {args.id} spec --file spec.md'")
    return code
