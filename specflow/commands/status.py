"""
feature status - Show a feature's phase, artifacts and analysis state.
"""

from specflow.commands.output import emit
from specflow.workflow.engine import Engine


def cmd_status(args, engine: Engine) -> int:
    """Show feature status."""
    outcome = engine.status(args.id)
    if not outcome.ok:
        return emit(outcome)

    data = outcome.data
    record = data["feature"]
    print(f"Feature: {record.id}")
    print("=" * 60)
    print(f"Phase:      {data['phase'].label}")
    if record.previous_phase:
        print(f"Abandoned:  from {record.previous_phase.capitalize()}")
    if data["next_phase"]:
        print(f"Next:       {data['next_phase'].label}")
    print(f"Created:    {record.created_at}")
    print(f"Updated:    {record.updated_at}")
    print()

    print("Artifacts")
    print("-" * 60)
    print(f"  {'KIND':<16} {'LATEST':<8} {'APPROVED':<10} QUESTIONS")
    for row in data["artifacts"]:
        approved = row["approved"] if row["approved"] is not None else "-"
        print(f"  {row['kind']:<16} {row['latest']:<8} {approved:<10} {row['open_questions']}")
    print()

    analysis = data["analysis"]
    if analysis is None:
        print("Analysis:   not run")
    else:
        stale = " (stale)" if analysis["stale"] else ""
        print(f"Analysis:   revision {analysis['revision']} {analysis['overall']}{stale}")
    if data["open_questions"]:
        print(f"Open questions: {data['open_questions']}")
    return 0
