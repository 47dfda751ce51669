"""
Analysis report rendering and persistence.

persist() always writes a new analysis revision: a human-readable markdown
body plus the structured report in the sidecar. The report records the
spec, clarifications, plan and tasks revisions it was computed against; a later
approved revision of any of them makes it stale, which is detected by comparing
revisions, never timestamps.
"""

import logging
from dataclasses import dataclass

from specflow.lib import validate
from specflow.lib.config import now_iso
from specflow.lib.signals import StorageUnavailable
from specflow.store.artifacts import ArtifactStore
from specflow.workflow.phases import ArtifactKind
from specflow.analysis.checks import CheckResult, Status, overall_status

logger = logging.getLogger(__name__)

STATUS_MARKERS = {
    Status.PASS: "PASS",
    Status.WARN: "WARN",
    Status.FAIL: "FAIL",
}


@dataclass
class AnalysisReport:
    """Read-only result of one analysis run."""
    feature_id: str
    checks: list[CheckResult]
    overall_status: Status
    tasks_revision: int
    spec_revision: int
    created_at: str
    clarifications_revision: int = 0
    plan_revision: int = 0
    revision: int | None = None  # Analysis artifact revision once persisted

    def to_dict(self) -> dict:
        return {
            "featureId": self.feature_id,
            "checks": [c.to_dict() for c in self.checks],
            "overallStatus": self.overall_status.value,
            "tasksRevision": self.tasks_revision,
            "specRevision": self.spec_revision,
            "clarificationsRevision": self.clarifications_revision,
            "planRevision": self.plan_revision,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict, revision: int | None = None) -> "AnalysisReport":
        return cls(
            feature_id=data["featureId"],
            checks=[CheckResult.from_dict(c) for c in data["checks"]],
            overall_status=Status(data["overallStatus"]),
            tasks_revision=data["tasksRevision"],
            spec_revision=data["specRevision"],
            created_at=data["createdAt"],
            clarifications_revision=data.get("clarificationsRevision", 0),
            plan_revision=data.get("planRevision", 0),
            revision=revision,
        )

    @property
    def passing(self) -> bool:
        """Warnings permitted, failures block."""
        return self.overall_status is not Status.FAIL

    def findings(self, kind: str | None = None):
        for check in self.checks:
            for finding in check.findings:
                if kind is None or finding.kind == kind:
                    yield finding

    def input_revisions(self) -> dict[str, int]:
        """Revisions of the artifacts the report was computed against."""
        return {
            "spec": self.spec_revision,
            "clarifications": self.clarifications_revision,
            "plan": self.plan_revision,
            "tasks": self.tasks_revision,
        }

    def is_stale(self, spec_revision: int, tasks_revision: int,
                 clarifications_revision: int | None = None, plan_revision: int | None = None) -> bool:
        """True if any given revision differs from the one recorded. None skips a comparison."""
        current = {
            "spec": spec_revision,
            "clarifications": clarifications_revision,
            "plan": plan_revision,
            "tasks": tasks_revision,
        }
        recorded = self.input_revisions()
        return any(rev is not None and rev != recorded[name] for name, rev in current.items())


def make_report(feature_id: str, checks: list[CheckResult], spec_revision: int, tasks_revision: int,
                clarifications_revision: int = 0, plan_revision: int = 0) -> AnalysisReport:
    return AnalysisReport(
        feature_id=feature_id,
        checks=list(checks),
        overall_status=overall_status(checks),
        tasks_revision=tasks_revision,
        spec_revision=spec_revision,
        created_at=now_iso(),
        clarifications_revision=clarifications_revision,
        plan_revision=plan_revision,
    )


def render_markdown(report: AnalysisReport) -> str:
    """Render a report as the analysis artifact body."""
    lines = [
        f"# Analysis: {report.feature_id}",
        "",
        f"**Overall:** {STATUS_MARKERS[report.overall_status]}",
        f"**Spec revision:** {report.spec_revision}",
        f"**Clarifications revision:** {report.clarifications_revision}",
        f"**Plan revision:** {report.plan_revision}",
        f"**Tasks revision:** {report.tasks_revision}",
        f"**Generated:** {report.created_at}",
        "",
        "## Checks",
        "",
        "| Check | Status | Detail |",
        "|-------|--------|--------|",
    ]
    for check in report.checks:
        lines.append(f"| {check.name} | {STATUS_MARKERS[check.status]} | {check.detail} |")
    lines.append("")

    findings = [(check, f) for check in report.checks for f in check.findings]
    if findings:
        lines.extend(["## Findings", ""])
        for check, finding in findings:
            lines.append(
                f"- **{STATUS_MARKERS[finding.status]}** `{finding.kind}` "
                f"({check.name}) {finding.subject}: {finding.message}"
            )
        lines.append("")

    return "\n".join(lines)


def persist(store: ArtifactStore, feature_id: str, checks: list[CheckResult],
            spec_revision: int, tasks_revision: int,
            clarifications_revision: int = 0, plan_revision: int = 0) -> AnalysisReport:
    """Build a report from checks and write it as a new, approved analysis revision."""
    return persist_report(store, make_report(
        feature_id, checks, spec_revision, tasks_revision, clarifications_revision, plan_revision,
    ))


def persist_report(store: ArtifactStore, report: AnalysisReport) -> AnalysisReport:
    """Write an already built report. Returns it with its artifact revision set."""
    data = report.to_dict()
    try:
        validate.validate_before_write(data, "report", store.feature_dir(report.feature_id))
    except validate.ValidationError as e:
        raise StorageUnavailable(str(e)) from e

    artifact = store.create_revision(
        report.feature_id,
        ArtifactKind.ANALYSIS,
        render_markdown(report),
        report=data,
    )
    outcome = store.approve(report.feature_id, ArtifactKind.ANALYSIS, artifact.revision)
    if not outcome.ok:
        raise StorageUnavailable(f"Could not publish analysis revision {artifact.revision}: {outcome.message}")

    report.revision = artifact.revision
    logger.info(
        f"[ANALYZE] {report.feature_id}: report revision {artifact.revision} "
        f"{report.overall_status.value} (tasks r{report.tasks_revision}, spec r{report.spec_revision})"
    )
    return report


def load_report(store: ArtifactStore, feature_id: str) -> AnalysisReport | None:
    """Most recent persisted report, or None."""
    artifact = store.get(feature_id, ArtifactKind.ANALYSIS)
    if artifact is None or not artifact.report:
        return None
    try:
        validate.validate(artifact.report, "report")
    except validate.ValidationError as e:
        raise StorageUnavailable(f"Corrupt analysis report: {e}") from e
    return AnalysisReport.from_dict(artifact.report, revision=artifact.revision)
