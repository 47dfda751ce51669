"""Tests for specflow.analysis.report module."""

import pytest

from specflow.analysis.checks import CheckResult, Finding, Status
from specflow.analysis.report import AnalysisReport, load_report, make_report, persist, render_markdown
from specflow.lib.signals import StorageUnavailable
from specflow.store.artifacts import ArtifactStore
from specflow.workflow.phases import ArtifactKind


CHECKS = [
    CheckResult("requirement_coverage", Status.FAIL, "1/2 requirements covered by tasks", [
        Finding("CoverageGap", "FR-2", Status.FAIL, "FR-2 is not referenced by any task"),
    ]),
    CheckResult("plan_task_alignment", Status.WARN, "1/2 plan sections referenced by tasks", [
        Finding("UnreferencedPlanSection", "Mailer", Status.WARN, "Plan section 'Mailer' is not referenced"),
    ]),
    CheckResult("open_questions", Status.PASS, "No open questions"),
]


@pytest.fixture
def store(tmp_path):
    store = ArtifactStore(tmp_path)
    store.create_feature("001-login", "analyze", ArtifactKind.ANALYSIS)
    return store


class TestAnalysisReport:
    """Tests for report construction."""

    def test_make_report(self):
        report = make_report("001-login", CHECKS, spec_revision=2, tasks_revision=3)
        assert report.overall_status is Status.FAIL
        assert not report.passing
        assert report.revision is None

    def test_warn_is_passing(self):
        report = make_report("001-login", CHECKS[1:], 1, 1)
        assert report.overall_status is Status.WARN
        assert report.passing

    def test_findings_filter(self):
        report = make_report("001-login", CHECKS, 1, 1)
        assert [f.subject for f in report.findings("CoverageGap")] == ["FR-2"]
        assert len(list(report.findings())) == 2

    def test_staleness_by_revision(self):
        report = make_report("001-login", CHECKS, spec_revision=2, tasks_revision=3)
        assert not report.is_stale(2, 3)
        assert report.is_stale(2, 4)
        assert report.is_stale(3, 3)

    def test_staleness_covers_clarifications_and_plan(self):
        report = make_report("001-login", CHECKS, 2, 3, clarifications_revision=1, plan_revision=4)
        assert report.input_revisions() == {"spec": 2, "clarifications": 1, "plan": 4, "tasks": 3}
        assert not report.is_stale(2, 3, 1, 4)
        assert report.is_stale(2, 3, 2, 4)
        assert report.is_stale(2, 3, 1, 5)

    def test_dict_round_trip(self):
        report = make_report("001-login", CHECKS, 2, 3)
        assert AnalysisReport.from_dict(report.to_dict()) == report


class TestRenderMarkdown:
    """Tests for the analysis artifact body."""

    def test_contains_summary_and_findings(self):
        text = render_markdown(make_report("001-login", CHECKS, 2, 3))
        assert "# Analysis: 001-login" in text
        assert "**Overall:** FAIL" in text
        assert "**Tasks revision:** 3" in text
        assert "| requirement_coverage | FAIL | 1/2 requirements covered by tasks |" in text
        assert "`CoverageGap` (requirement_coverage) FR-2" in text

    def test_no_findings_section_when_clean(self):
        text = render_markdown(make_report("001-login", CHECKS[2:], 1, 1))
        assert "## Findings" not in text


class TestPersist:
    """Tests for report persistence."""

    def test_persist_creates_approved_revision(self, store):
        report = persist(store, "001-login", CHECKS, 2, 3)
        assert report.revision == 1
        artifact = store.get("001-login", ArtifactKind.ANALYSIS)
        assert artifact.approved
        assert artifact.report["tasksRevision"] == 3
        assert artifact.body.startswith("# Analysis: 001-login")

    def test_every_run_is_a_new_revision(self, store):
        persist(store, "001-login", CHECKS, 1, 1)
        second = persist(store, "001-login", CHECKS[1:], 1, 2)
        assert second.revision == 2
        assert store.revisions("001-login", ArtifactKind.ANALYSIS) == [0, 1, 2]
        assert load_report(store, "001-login").tasks_revision == 2

    def test_load_report_none(self, store):
        assert load_report(store, "001-login") is None

    def test_load_round_trip(self, store):
        persisted = persist(store, "001-login", CHECKS, 2, 3, clarifications_revision=1, plan_revision=4)
        loaded = load_report(store, "001-login")
        assert loaded == persisted
        assert (loaded.clarifications_revision, loaded.plan_revision) == (1, 4)

    def test_corrupt_report_is_storage_error(self, store):
        persist(store, "001-login", CHECKS, 2, 3)
        artifact = store.get("001-login", ArtifactKind.ANALYSIS)
        artifact.report["overallStatus"] = "maybe"
        # Bypass the engine: rewrite the current sidecar in place
        store._write(*store._current_paths("001-login", ArtifactKind.ANALYSIS), artifact)
        with pytest.raises(StorageUnavailable, match="Corrupt analysis report"):
            load_report(store, "001-login")
