"""
feature abandon - Stop work on a feature without completing it.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine


def cmd_abandon(args, engine: Engine) -> int:
    return emit(engine.abandon(args.id))
