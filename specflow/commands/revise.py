"""
feature revise - Write a new revision of an artifact.

The body comes from --file or stdin. Open questions are the
[NEEDS CLARIFICATION: ...] markers found in the body plus any --question.
"""

from specflow.commands.output import emit, read_body
from specflow.lib.specparse import extract_clarification_markers
from specflow.workflow.engine import Engine


def cmd_revise(args, engine: Engine) -> int:
    """Create a new unapproved revision."""
    try:
        body = read_body(args.file)
    except OSError as e:
        print(f"ERROR: Cannot read {args.file}: {e}")
        return 1

    questions = extract_clarification_markers(body)
    for q in args.question or []:
        if q not in questions:
            questions.append(q)

    outcome = engine.create_revision(args.id, args.kind, body, questions)
    code = emit(outcome)
    if outcome.ok:
        artifact = outcome.data["artifact"]
        for q in artifact.open_questions:
            print(f"  {q.id}  {q.question}")
        print(f"Approve with 'feature approve {args.id} {artifact.kind.value} --revision {artifact.revision}'")
    return code
