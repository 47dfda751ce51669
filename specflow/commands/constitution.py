"""
feature constitution - Manage the project-scoped constitution.
"""

from specflow.commands.output import emit, read_body
from specflow.workflow.engine import Engine


def cmd_constitution_show(args, engine: Engine) -> int:
    artifact = engine.constitution()
    if artifact is None:
        print("No approved constitution")
        print("Set one with 'feature constitution set --file constitution.md'")
        return 0
    print(f"# constitution revision {artifact.revision} (approved {artifact.approved_at})")
    print()
    print(artifact.body)
    return 0


def cmd_constitution_set(args, engine: Engine) -> int:
    try:
        body = read_body(args.file)
    except OSError as e:
        print(f"ERROR: Cannot read {args.file}: {e}")
        return 1
    outcome = engine.set_constitution(body)
    code = emit(outcome)
    if outcome.ok:
        print("Approve with 'feature constitution approve'")
    return code


def cmd_constitution_approve(args, engine: Engine) -> int:
    return emit(engine.approve_constitution(args.revision))
