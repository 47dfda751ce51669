"""
feature archive - Move a Done or Abandoned feature to _archive/.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine


def cmd_archive(args, engine: Engine) -> int:
    outcome = engine.archive(args.id)
    code = emit(outcome)
    if outcome.ok:
        print(f"  {outcome.data['path']}")
    return code
