"""
feature clarify - Manage open questions on the spec and clarifications.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine
from specflow.workflow.phases import ArtifactKind


def cmd_clarify_list(args, engine: Engine) -> int:
    """List open questions on a feature."""
    status = engine.status(args.id)
    if not status.ok:
        return emit(status)

    rows = []
    for kind in (ArtifactKind.SPEC, ArtifactKind.CLARIFICATIONS):
        latest = engine.store.latest(args.id, kind)
        if latest is None:
            continue
        for q in latest.open_questions:
            rows.append((q, kind, latest.revision))

    if not rows:
        print("No open questions")
        return 0

    print(f"Open questions for: {args.id}")
    print()
    print(f"{'ID':<8} {'ARTIFACT':<16} {'REV':<5} QUESTION")
    print("-" * 80)
    for q, kind, revision in rows:
        preview = q.question[:48] + "..." if len(q.question) > 48 else q.question
        print(f"{q.id:<8} {kind.value:<16} {revision:<5} {preview}")
    print("-" * 80)
    print(f"{len(rows)} open question(s)")
    print()
    print(f"Use 'feature clarify answer {args.id} <kind> <id> --answer ...' to answer")
    return 0


def cmd_clarify_ask(args, engine: Engine) -> int:
    """Open a question on the spec or clarifications."""
    return emit(engine.ask_question(args.id, args.kind, args.question, args.context or ""))


def cmd_clarify_answer(args, engine: Engine) -> int:
    """Answer an open question."""
    answer = args.answer
    if not answer:
        try:
            answer = input("Answer: ").strip()
        except EOFError:
            answer = ""
    if not answer:
        print("ERROR: Answer cannot be empty")
        return 1
    return emit(engine.answer_question(args.id, args.kind, args.question_id, answer, args.by))
