"""
feature approve - Approve an artifact revision.

Defaults to the latest revision. Approving anything but the latest fails with
StaleRevision.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine


def cmd_approve(args, engine: Engine) -> int:
    """Approve an artifact revision."""
    return emit(engine.approve(args.id, args.kind, args.revision))
