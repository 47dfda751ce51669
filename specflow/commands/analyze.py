"""
feature analyze - Run the cross-artifact consistency checks.

Exit codes: 0 when the report passes (warnings allowed), 2 when it fails,
1 when the analysis could not run.
"""

from specflow.analysis.checks import Status
from specflow.analysis.report import STATUS_MARKERS, AnalysisReport, render_markdown
from specflow.commands.output import EXIT_ANALYSIS_FAILED, EXIT_OK, emit
from specflow.workflow.engine import Engine


def print_summary(report: AnalysisReport) -> None:
    revisions = ", ".join(f"{name} r{rev}" for name, rev in report.input_revisions().items())
    print(f"Analysis: {report.feature_id} ({revisions})")
    print("-" * 80)
    for check in report.checks:
        print(f"  {STATUS_MARKERS[check.status]:<5} {check.name:<24} {check.detail}")
        for finding in check.findings:
            print(f"        {finding.kind}: {finding.subject}: {finding.message}")
    print("-" * 80)
    print(f"Overall: {STATUS_MARKERS[report.overall_status]}")


def cmd_analyze(args, engine: Engine) -> int:
    outcome = engine.analyze(args.id, speculative=args.speculative)
    if not outcome.ok:
        return emit(outcome)

    report = outcome.data["report"]
    if args.markdown:
        print(render_markdown(report))
    else:
        print_summary(report)
    print(outcome.message)

    if report.overall_status is Status.FAIL:
        return EXIT_ANALYSIS_FAILED
    return EXIT_OK
