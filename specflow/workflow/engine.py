"""
Workflow engine.

The single entry point for everything that changes a feature. Every mutating
operation runs under the feature's lock, checks its preconditions against the
store and returns an Outcome; expected failures are never raised.

Usage:
    from specflow.workflow.engine import Engine

    engine = Engine(root)
    engine.new_feature("001-login")
    rev = engine.create_revision("001-login", "spec", body).data["artifact"]
    engine.approve("001-login", "spec", rev.revision)
    engine.advance("001-login", "clarify")
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from specflow import clarifications
from specflow.analysis.checks import AnalysisInputs, run_checks
from specflow.analysis.report import AnalysisReport, load_report, make_report, persist_report
from specflow.lib.config import EngineConfig, FeatureRecord, load_engine_config, load_feature
from specflow.lib.constants import FEATURE_ID_PATTERN, MAX_FEATURE_ID_LEN, PROJECT_SCOPE
from specflow.lib.depgraph import DependencyGraph, build_graph
from specflow.lib.signals import Outcome, Signal, StorageUnavailable
from specflow.lib.specparse import extract_clarification_markers
from specflow.lib.traceability import TraceIndex, build
from specflow.store.artifacts import Artifact, ArtifactStore
from specflow.store.cache import IndexCache
from specflow.store.locking import LockTimeout, feature_lock
from specflow.workflow.fsm import TRIGGER_FOR, FeatureFSM
from specflow.workflow.phases import (
    ARTIFACT_FOR_PHASE,
    FEATURE_PHASES,
    INITIAL_PHASE,
    PHASE_FOR_ARTIFACT,
    QUESTION_KINDS,
    TERMINAL_PHASES,
    ArtifactKind,
    Phase,
    parse_kind,
    parse_phase,
    phase_index,
    successor,
)

logger = logging.getLogger(__name__)

# Kinds a feature owns, in phase order
FEATURE_KINDS = [ARTIFACT_FOR_PHASE[p] for p in FEATURE_PHASES if p in ARTIFACT_FOR_PHASE]

# Phases in which a persisted analysis report is meaningful
REPORTABLE_PHASES = frozenset({Phase.ANALYZE, Phase.IMPLEMENT})

# Kinds whose approved revisions an analysis report is pinned to
ANALYSED_KINDS = (ArtifactKind.SPEC, ArtifactKind.CLARIFICATIONS, ArtifactKind.PLAN, ArtifactKind.TASKS)


def _not_found(feature_id: str) -> Outcome:
    return Outcome.failure(
        Signal.FEATURE_NOT_FOUND,
        f"feature '{feature_id}' does not exist",
        f"create it with 'feature new {feature_id}'",
    )


def _as_kind(value) -> ArtifactKind | None:
    return parse_kind(value) if isinstance(value, str) else value


def _unknown_kind(value) -> Outcome:
    names = ", ".join(k.value for k in ArtifactKind)
    return Outcome.failure(Signal.ARTIFACT_NOT_FOUND, f"unknown artifact kind '{value}'", f"use one of: {names}")


def _empty_text(what: str) -> Outcome:
    return Outcome.failure(Signal.EMPTY_TEXT, f"{what} cannot be empty", f"provide the {what.lower()}")


class Engine:
    """Phase state machine, artifact gatekeeper and analysis runner."""

    def __init__(self, root: Path, config: EngineConfig | None = None, cache: IndexCache | None = None):
        self.root = Path(root)
        self.config = config if config is not None else load_engine_config(self.root)
        self.store = ArtifactStore(self.root, cache)

    # ------------------------------------------------------------- plumbing

    @contextmanager
    def _lock(self, feature_id: str):
        with feature_lock(
            self.root,
            feature_id,
            timeout=self.config.lock_timeout,
            stale_after=self.config.stale_lock_seconds,
        ):
            yield

    def _lock_failure(self, feature_id: str, e: LockTimeout) -> Outcome:
        return Outcome.failure(
            Signal.LOCK_TIMEOUT,
            str(e),
            f"another session is working on {feature_id}; retry later",
        )

    def feature(self, feature_id: str) -> FeatureRecord | None:
        """Feature record, or None if the feature does not exist."""
        if not self.store.feature_exists(feature_id):
            return None
        try:
            return load_feature(self.store.feature_dir(feature_id))
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Cannot read feature record: {e}", str(self.store.feature_dir(feature_id))) from e

    def current_phase(self, feature_id: str) -> Phase | None:
        record = self.feature(feature_id)
        if record is None:
            return None
        phase = parse_phase(record.phase)
        if phase is None:
            raise StorageUnavailable(f"Unknown phase '{record.phase}' for feature {feature_id}")
        return phase

    def list_features(self) -> list[FeatureRecord]:
        return [self.feature(fid) for fid in self.store.list_features()]

    # -------------------------------------------------------------- features

    def new_feature(self, feature_id: str) -> Outcome:
        """Create a feature in Specify with an empty spec slot."""
        if len(feature_id) > MAX_FEATURE_ID_LEN or not FEATURE_ID_PATTERN.match(feature_id):
            return Outcome.failure(
                Signal.INVALID_FEATURE_ID,
                f"invalid feature id '{feature_id}'",
                "use lowercase letters, digits and hyphens, e.g. 001-user-authentication",
            )
        try:
            with self._lock(feature_id):
                if self.store.feature_exists(feature_id):
                    return Outcome.failure(
                        Signal.FEATURE_EXISTS,
                        f"feature '{feature_id}' already exists",
                        f"inspect it with 'feature status {feature_id}'",
                    )
                if self.store.is_archived(feature_id):
                    return Outcome.failure(
                        Signal.FEATURE_ARCHIVED,
                        f"feature '{feature_id}' exists in the archive",
                        "choose a new id",
                    )
                self.store.create_feature(feature_id, INITIAL_PHASE.value, ArtifactKind.SPEC)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        return Outcome.success(f"Created feature {feature_id} in {INITIAL_PHASE.label}", phase=INITIAL_PHASE)

    def abandon(self, feature_id: str) -> Outcome:
        """Move a non-terminal feature to Abandoned."""
        try:
            with self._lock(feature_id):
                phase = self.current_phase(feature_id)
                if phase is None:
                    return _not_found(feature_id)
                if phase is Phase.ABANDONED:
                    return Outcome.success(f"Feature {feature_id} is already abandoned", phase=phase)
                if phase in TERMINAL_PHASES:
                    return Outcome.failure(
                        Signal.PHASE_OUT_OF_ORDER,
                        f"feature '{feature_id}' is {phase.label} and cannot be abandoned",
                    )
                FeatureFSM(self.store.feature_dir(feature_id)).abandon()
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        return Outcome.success(f"Abandoned feature {feature_id} (was {phase.label})", phase=Phase.ABANDONED)

    def archive(self, feature_id: str) -> Outcome:
        """Move a Done or Abandoned feature into the archive."""
        try:
            with self._lock(feature_id):
                phase = self.current_phase(feature_id)
                if phase is None:
                    return _not_found(feature_id)
                if phase not in TERMINAL_PHASES:
                    return Outcome.failure(
                        Signal.PHASE_OUT_OF_ORDER,
                        f"feature '{feature_id}' is still in {phase.label}",
                        f"finish it or run 'feature abandon {feature_id}' first",
                    )
                if self.store.is_archived(feature_id):
                    return Outcome.failure(
                        Signal.FEATURE_ARCHIVED,
                        f"an archived feature named '{feature_id}' already exists",
                    )
                target = self.store.archive_feature(feature_id)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        return Outcome.success(f"Archived feature {feature_id}", path=str(target))

    # ------------------------------------------------------------- artifacts

    def _write_gate(self, feature_id: str, kind: ArtifactKind) -> Outcome | None:
        """Reject writes the current phase does not allow. Caller holds the lock."""
        phase = self.current_phase(feature_id)
        if phase is None:
            return _not_found(feature_id)
        if kind is ArtifactKind.CONSTITUTION:
            return Outcome.failure(
                Signal.PHASE_OUT_OF_ORDER,
                "the constitution is project-scoped",
                "use 'feature constitution set'",
            )
        if kind is ArtifactKind.ANALYSIS:
            return Outcome.failure(
                Signal.PHASE_OUT_OF_ORDER,
                "analysis revisions are produced by analysis runs only",
                f"run 'feature analyze {feature_id}'",
            )
        if phase in TERMINAL_PHASES:
            return Outcome.failure(
                Signal.PHASE_OUT_OF_ORDER,
                f"feature '{feature_id}' is {phase.label}; its artifacts are frozen",
            )
        owner = PHASE_FOR_ARTIFACT[kind]
        if phase_index(owner) > phase_index(phase):
            return Outcome.failure(
                Signal.PHASE_OUT_OF_ORDER,
                f"cannot write {kind.value} while {feature_id} is in {phase.label}",
                f"advance to {owner.label} first",
            )
        return None

    def create_revision(self, feature_id: str, kind, body: str, open_questions: list[str] | None = None) -> Outcome:
        """Create revision latest + 1 of an artifact, unapproved.

        open_questions defaults to the [NEEDS CLARIFICATION: ...] markers in body.
        """
        parsed = _as_kind(kind)
        if parsed is None:
            return _unknown_kind(kind)
        kind = parsed
        if open_questions is None:
            open_questions = extract_clarification_markers(body)
        if any(not q.strip() for q in open_questions):
            return _empty_text("Question text")
        try:
            with self._lock(feature_id):
                failure = self._write_gate(feature_id, kind)
                if failure:
                    return failure
                artifact = self.store.create_revision(feature_id, kind, body, open_questions)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        return Outcome.success(
            f"Created {kind.value} revision {artifact.revision}"
            + (f" with {len(artifact.open_questions)} open question(s)" if artifact.open_questions else ""),
            artifact=artifact,
        )

    def approve(self, feature_id: str, kind, revision: int | None = None) -> Outcome:
        """Approve a revision (default: latest). Compare-and-swap under the lock."""
        parsed = _as_kind(kind)
        if parsed is None:
            return _unknown_kind(kind)
        kind = parsed
        try:
            with self._lock(feature_id):
                phase = self.current_phase(feature_id)
                if phase is None:
                    return _not_found(feature_id)
                if kind in (ArtifactKind.ANALYSIS, ArtifactKind.CONSTITUTION):
                    return Outcome.failure(
                        Signal.PHASE_OUT_OF_ORDER,
                        f"{kind.value} artifacts are not approved per feature",
                    )
                if phase in TERMINAL_PHASES:
                    return Outcome.failure(
                        Signal.PHASE_OUT_OF_ORDER,
                        f"feature '{feature_id}' is {phase.label}; its artifacts are frozen",
                    )
                if revision is None:
                    revision = self.store.latest_revision_number(feature_id, kind) or 0
                return self.store.approve(feature_id, kind, revision)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)

    def get(self, feature_id: str, kind) -> Artifact | None:
        """Latest approved revision, or None."""
        return self.store.get(feature_id, _as_kind(kind))

    # ---------------------------------------------------------- constitution

    def set_constitution(self, body: str) -> Outcome:
        try:
            with self._lock(PROJECT_SCOPE):
                artifact = self.store.create_revision(PROJECT_SCOPE, ArtifactKind.CONSTITUTION, body)
        except LockTimeout as e:
            return self._lock_failure(PROJECT_SCOPE, e)
        return Outcome.success(f"Created constitution revision {artifact.revision}", artifact=artifact)

    def approve_constitution(self, revision: int | None = None) -> Outcome:
        try:
            with self._lock(PROJECT_SCOPE):
                if revision is None:
                    revision = self.store.latest_revision_number(PROJECT_SCOPE, ArtifactKind.CONSTITUTION) or 0
                return self.store.approve(PROJECT_SCOPE, ArtifactKind.CONSTITUTION, revision)
        except LockTimeout as e:
            return self._lock_failure(PROJECT_SCOPE, e)

    def constitution(self) -> Artifact | None:
        return self.store.get(PROJECT_SCOPE, ArtifactKind.CONSTITUTION)

    # ------------------------------------------------------------- questions

    def ask_question(self, feature_id: str, kind, question: str, context: str = "") -> Outcome:
        parsed = _as_kind(kind)
        if parsed not in QUESTION_KINDS:
            return Outcome.failure(
                Signal.ARTIFACT_NOT_FOUND,
                f"questions are tracked on spec and clarifications, not {getattr(kind, 'value', kind)}",
            )
        kind = parsed
        if not question.strip():
            return _empty_text("Question text")
        try:
            with self._lock(feature_id):
                failure = self._write_gate(feature_id, kind)
                if failure:
                    return failure
                q = clarifications.ask(self.store, feature_id, kind, question, context)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        return Outcome.success(f"Opened {q.id} on {kind.value}", question=q)

    def answer_question(self, feature_id: str, kind, question_id: str, answer: str, by: str = "human") -> Outcome:
        parsed = _as_kind(kind)
        if parsed not in QUESTION_KINDS:
            return Outcome.failure(
                Signal.ARTIFACT_NOT_FOUND,
                f"questions are tracked on spec and clarifications, not {getattr(kind, 'value', kind)}",
            )
        kind = parsed
        if not answer.strip():
            return _empty_text("Answer text")
        try:
            with self._lock(feature_id):
                failure = self._write_gate(feature_id, kind)
                if failure:
                    return failure
                q = clarifications.answer(self.store, feature_id, kind, question_id, answer, by)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        if q is None:
            return Outcome.failure(
                Signal.QUESTION_NOT_FOUND,
                f"no open question {question_id} on {kind.value}",
                f"list them with 'feature clarify list {feature_id}'",
            )
        return Outcome.success(f"Answered {q.id} on {kind.value}", question=q)

    # -------------------------------------------------------------- advance

    def _unapproved(self, feature_id: str, kind: ArtifactKind, phase: Phase) -> Outcome | None:
        approved = self.store.get(feature_id, kind)
        latest = self.store.latest_revision_number(feature_id, kind)
        if approved is None or not approved.body.strip():
            return Outcome.failure(
                Signal.ARTIFACT_NOT_APPROVED,
                f"no approved {kind.value} for {feature_id}",
                f"write and approve the {kind.value} before leaving {phase.label}",
            )
        if latest is not None and latest > approved.revision:
            return Outcome.failure(
                Signal.ARTIFACT_NOT_APPROVED,
                f"{kind.value} revision {latest} is awaiting approval",
                f"approve or supersede it with 'feature approve {feature_id} {kind.value}'",
            )
        return None

    def _open_questions(self, feature_id: str, kind: ArtifactKind, target: Phase) -> Outcome | None:
        approved = self.store.get(feature_id, kind)
        count = len(approved.open_questions) if approved else 0
        if count == 0:
            return None
        return Outcome.failure(
            Signal.OPEN_QUESTIONS_REMAIN,
            f"{count} unresolved item{'s' if count != 1 else ''} in {kind.value}",
            f"resolve before advancing to {target.label}",
            count=count,
        )

    def _analysis_gate(self, feature_id: str) -> Outcome | None:
        report = load_report(self.store, feature_id)
        if report is None:
            return Outcome.failure(
                Signal.ANALYSIS_NOT_PASSING,
                f"no analysis report for {feature_id}",
                f"run 'feature analyze {feature_id}'",
            )
        current = self._approved_revisions(feature_id)
        if self._is_stale(report, current):
            changed = [
                f"{name} r{recorded} -> r{current[name]}"
                for name, recorded in report.input_revisions().items()
                if current[name] != recorded
            ]
            return Outcome.failure(
                Signal.ANALYSIS_NOT_PASSING,
                f"analysis report is stale ({', '.join(changed)} since it ran)",
                f"re-run 'feature analyze {feature_id}'",
            )
        if not report.passing:
            failing = [c.name for c in report.checks if c.status.value == "fail"]
            return Outcome.failure(
                Signal.ANALYSIS_NOT_PASSING,
                f"latest analysis failed: {', '.join(failing)}",
                f"fix the findings and re-run 'feature analyze {feature_id}'",
            )
        return None

    def _preconditions(self, feature_id: str, current: Phase, target: Phase) -> Outcome | None:
        if target is Phase.IMPLEMENT:
            return self._analysis_gate(feature_id)

        kind = ARTIFACT_FOR_PHASE.get(current)
        if kind is None:
            return None

        failure = self._unapproved(feature_id, kind, current)
        if failure:
            return failure

        if kind in QUESTION_KINDS:
            failure = self._open_questions(feature_id, kind, target)
            if failure:
                return failure
        if current is Phase.CLARIFY:
            # A spec revision approved after Specify may have reopened questions
            return self._open_questions(feature_id, ArtifactKind.SPEC, target)
        return None

    def advance(self, feature_id: str, target) -> Outcome:
        """Move a feature to the immediate successor phase.

        Advancing to the phase the feature is already in is a no-op success.
        """
        target_phase = parse_phase(target) if isinstance(target, str) else target
        try:
            with self._lock(feature_id):
                current = self.current_phase(feature_id)
                if current is None:
                    return _not_found(feature_id)
                if target_phase is None:
                    return Outcome.failure(
                        Signal.PHASE_OUT_OF_ORDER,
                        f"unknown phase '{target}'",
                        "phases: " + ", ".join(p.label for p in FEATURE_PHASES),
                    )
                if target_phase is current:
                    return Outcome.success(f"{feature_id} is already in {current.label}", phase=current, changed=False)

                expected = successor(current)
                if target_phase is not expected:
                    hint = (f"the next phase is {expected.label}" if expected
                            else f"{current.label} is terminal")
                    return Outcome.failure(
                        Signal.PHASE_OUT_OF_ORDER,
                        f"cannot move {feature_id} from {current.label} to {target_phase.label}",
                        hint,
                    )

                failure = self._preconditions(feature_id, current, target_phase)
                if failure:
                    return failure

                fsm = FeatureFSM(self.store.feature_dir(feature_id), on_transition=self._seed_next_slot(feature_id))
                getattr(fsm, TRIGGER_FOR[(current.value, target_phase.value)])()
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)

        return Outcome.success(
            f"{feature_id}: {current.label} -> {target_phase.label}",
            phase=target_phase,
            changed=True,
        )

    def _seed_next_slot(self, feature_id: str):
        def seed(from_state: str, to_state: str, trigger: str) -> None:
            kind = ARTIFACT_FOR_PHASE.get(Phase(to_state))
            if kind is not None:
                self.store.seed_slot(feature_id, kind)
        return seed

    # ------------------------------------------------------------- analysis

    def _approved_revisions(self, feature_id: str) -> dict[str, int]:
        """Approved revision per analysed kind, 0 when none is approved."""
        revisions = {}
        for kind in ANALYSED_KINDS:
            artifact = self.store.get(feature_id, kind)
            revisions[kind.value] = artifact.revision if artifact else 0
        return revisions

    @staticmethod
    def _is_stale(report: AnalysisReport, current: dict[str, int]) -> bool:
        return report.is_stale(
            current["spec"], current["tasks"], current["clarifications"], current["plan"],
        )

    def _pick(self, feature_id: str, kind: ArtifactKind, speculative: bool) -> Artifact | None:
        if speculative:
            latest = self.store.latest(feature_id, kind)
            if latest is not None and not latest.is_slot:
                return latest
        return self.store.get(feature_id, _as_kind(kind))

    def analysis_inputs(self, feature_id: str, speculative: bool = False) -> AnalysisInputs:
        """Artifacts an analysis reads: approved ones, or latest when speculative."""
        return AnalysisInputs(
            feature_id=feature_id,
            spec=self._pick(feature_id, ArtifactKind.SPEC, speculative),
            clarifications=self._pick(feature_id, ArtifactKind.CLARIFICATIONS, speculative),
            plan=self._pick(feature_id, ArtifactKind.PLAN, speculative),
            tasks=self._pick(feature_id, ArtifactKind.TASKS, speculative),
            constitution=self.constitution(),
        )

    def index(self, feature_id: str, inputs: AnalysisInputs | None = None) -> tuple[TraceIndex, DependencyGraph]:
        """Traceability index and dependency graph, built lazily and cached."""
        inputs = inputs or self.analysis_inputs(feature_id)
        # Unapproved revisions are amended in place, so the hash is part of the key
        key = tuple(
            (artifact.revision, artifact.approved, artifact.content_hash) if artifact else None
            for artifact in (inputs.spec, inputs.tasks)
        )
        cached = self.store.cache.get(feature_id, key)
        if cached is not None:
            return cached

        trace = build(
            inputs.spec.body if inputs.spec else None,
            inputs.tasks.body if inputs.tasks else None,
        )
        views = (trace, build_graph(trace.tasks))
        self.store.cache.put(feature_id, key, views)
        return views

    def _run(self, feature_id: str, speculative: bool) -> AnalysisReport:
        inputs = self.analysis_inputs(feature_id, speculative)
        trace, graph = self.index(feature_id, inputs)
        checks = run_checks(inputs, self.config, trace, graph)
        return make_report(
            feature_id, checks, inputs.spec_revision, inputs.tasks_revision,
            inputs.clarifications_revision, inputs.plan_revision,
        )

    def analyze(self, feature_id: str, speculative: bool = False) -> Outcome:
        """Run the consistency checks.

        The report is persisted when the feature is in Analyze or Implement and
        the run is not speculative. A failing report is still a successful
        Outcome; callers inspect data["report"].overall_status.
        """
        if speculative:
            if self.current_phase(feature_id) is None:
                return _not_found(feature_id)
            report = self._run(feature_id, speculative=True)
            return Outcome.success("Speculative analysis (not persisted)", report=report, persisted=False)

        try:
            with self._lock(feature_id):
                phase = self.current_phase(feature_id)
                if phase is None:
                    return _not_found(feature_id)
                report = self._run(feature_id, speculative=False)
                if phase not in REPORTABLE_PHASES:
                    return Outcome.success(
                        f"Analysis not persisted: {feature_id} is in {phase.label}",
                        report=report,
                        persisted=False,
                    )
                persist_report(self.store, report)
        except LockTimeout as e:
            return self._lock_failure(feature_id, e)
        return Outcome.success(f"Analysis revision {report.revision} recorded", report=report, persisted=True)

    def latest_report(self, feature_id: str) -> AnalysisReport | None:
        return load_report(self.store, feature_id)

    # --------------------------------------------------------------- status

    def status(self, feature_id: str) -> Outcome:
        record = self.feature(feature_id)
        if record is None:
            return _not_found(feature_id)
        phase = parse_phase(record.phase)

        artifacts = []
        open_count = 0
        for kind in FEATURE_KINDS:
            latest = self.store.latest(feature_id, kind)
            if latest is None:
                continue
            approved = self.store.get(feature_id, kind)
            artifacts.append({
                "kind": kind.value,
                "latest": latest.revision,
                "approved": approved.revision if approved else None,
                "open_questions": len(latest.open_questions),
            })
            if kind in QUESTION_KINDS:
                open_count += len(latest.open_questions)

        report = self.latest_report(feature_id)
        analysis = None
        if report is not None:
            analysis = {
                "revision": report.revision,
                "overall": report.overall_status.value,
                "stale": self._is_stale(report, self._approved_revisions(feature_id)),
            }

        return Outcome.success(
            record.id,
            feature=record,
            phase=phase,
            next_phase=successor(phase) if phase else None,
            artifacts=artifacts,
            open_questions=open_count,
            analysis=analysis,
        )
