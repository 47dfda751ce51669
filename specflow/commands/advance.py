"""
feature advance - Move a feature to its next phase.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine


def cmd_advance(args, engine: Engine) -> int:
    return emit(engine.advance(args.id, args.phase))
