"""
Cross-artifact consistency checks.

Each check is an independent function over the approved artifacts and their
derived index and dependency graph. All checks always run; a failing check
never short-circuits the ones after it. Nothing here writes to the store.

Checks, in order:
- requirement_coverage: every requirement has at least one task
- task_coverage: every task references existing requirements
- dependency_integrity: dependencies resolve and form a DAG
- plan_task_alignment: every named plan section is referenced by a task
- open_questions: spec and clarifications carry no open questions
- constitution_alignment: plan mentions every constitution principle
  (only when a constitution is approved and the check is enabled)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from specflow.lib.config import EngineConfig
from specflow.lib.depgraph import DependencyGraph, build_graph, parallel_conflicts
from specflow.lib.specparse import mentions, parse_sections, section_name
from specflow.lib.traceability import TraceIndex, build
from specflow.store.artifacts import Artifact

logger = logging.getLogger(__name__)


class Status(str, Enum):
    """Status of a check, a finding or a whole report."""
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class Finding:
    """One concrete problem found by a check."""
    kind: str  # CoverageGap, DanglingReference, CircularDependency, ...
    subject: str  # The requirement, task or section it is about
    status: Status
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "subject": self.subject,
            "status": self.status.value,
            "message": self.message,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Finding":
        return cls(
            kind=data["kind"],
            subject=data["subject"],
            status=Status(data["status"]),
            message=data.get("message", ""),
            data=data.get("data", {}),
        )


@dataclass
class CheckResult:
    name: str
    status: Status
    detail: str
    findings: list[Finding] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "detail": self.detail,
            "findings": [f.to_dict() for f in self.findings],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckResult":
        return cls(
            name=data["name"],
            status=Status(data["status"]),
            detail=data["detail"],
            findings=[Finding.from_dict(f) for f in data.get("findings", [])],
        )


@dataclass
class AnalysisInputs:
    """Artifacts an analysis run reads. Any of them may be missing."""
    feature_id: str
    spec: Artifact | None = None
    clarifications: Artifact | None = None
    plan: Artifact | None = None
    tasks: Artifact | None = None
    constitution: Artifact | None = None

    @property
    def spec_revision(self) -> int:
        return self.spec.revision if self.spec else 0

    @property
    def tasks_revision(self) -> int:
        return self.tasks.revision if self.tasks else 0

    @property
    def clarifications_revision(self) -> int:
        return self.clarifications.revision if self.clarifications else 0

    @property
    def plan_revision(self) -> int:
        return self.plan.revision if self.plan else 0


def _worst(findings: list[Finding]) -> Status:
    statuses = {f.status for f in findings}
    if Status.FAIL in statuses:
        return Status.FAIL
    if Status.WARN in statuses:
        return Status.WARN
    return Status.PASS


def overall_status(checks: list[CheckResult]) -> Status:
    """fail if any check fails, warn if any warns, else pass."""
    statuses = {c.status for c in checks}
    if Status.FAIL in statuses:
        return Status.FAIL
    if Status.WARN in statuses:
        return Status.WARN
    return Status.PASS


def check_requirement_coverage(inputs: AnalysisInputs, index: TraceIndex) -> CheckResult:
    name = "requirement_coverage"
    if inputs.spec is None:
        return CheckResult(name, Status.FAIL, "No approved spec to trace requirements from")

    findings = [
        Finding("CoverageGap", req_id, Status.FAIL, f"{req_id} is not referenced by any task")
        for req_id in index.coverage_gaps
    ]
    findings += [
        Finding("DuplicateId", req_id, Status.WARN, f"{req_id} is defined more than once in the spec")
        for req_id in index.duplicate_requirements
    ]

    total = len(index.requirements)
    if total == 0:
        findings.append(Finding("NoRequirements", "spec", Status.WARN, "Spec declares no FR-/NFR- requirements"))
    covered = total - len(index.coverage_gaps)
    return CheckResult(name, _worst(findings), f"{covered}/{total} requirements covered by tasks", findings)


def check_task_coverage(inputs: AnalysisInputs, index: TraceIndex, config: EngineConfig) -> CheckResult:
    name = "task_coverage"
    if inputs.tasks is None:
        return CheckResult(name, Status.FAIL, "No approved tasks artifact")

    findings = [
        Finding(
            "DanglingReference", ref.task_id, Status.FAIL,
            f"Task {ref.task_id} references {ref.requirement_id}, which is not in the approved spec",
            {"requirementId": ref.requirement_id},
        )
        for ref in index.dangling_references
    ]
    unmapped_status = Status(config.unmapped_task_status)
    findings += [
        Finding("UnmappedTask", task_id, unmapped_status, f"Task {task_id} references no requirement")
        for task_id in index.unmapped_tasks
    ]
    findings += [
        Finding("DuplicateId", task_id, Status.WARN, f"Task {task_id} is defined more than once")
        for task_id in index.duplicate_tasks
    ]

    total = len(index.tasks)
    mapped = total - len(index.unmapped_tasks)
    return CheckResult(name, _worst(findings), f"{mapped}/{total} tasks reference requirements", findings)


def _format_waves(waves: list[list[str]]) -> str:
    return " -> ".join("[" + ", ".join(wave) + "]" for wave in waves)


def check_dependency_integrity(inputs: AnalysisInputs, index: TraceIndex, graph: DependencyGraph) -> CheckResult:
    name = "dependency_integrity"
    if inputs.tasks is None:
        return CheckResult(name, Status.FAIL, "No approved tasks artifact")

    findings = [
        Finding(
            "CircularDependency", " -> ".join(cycle), Status.FAIL,
            f"Tasks {', '.join(cycle)} depend on each other in a cycle",
            {"cycle": cycle},
        )
        for cycle in graph.cycles
    ]
    findings += [
        Finding(
            "UnknownDependency", dep.task_id, Status.FAIL,
            f"Task {dep.task_id} depends on task {dep.missing_id}, which does not exist",
            {"missingId": dep.missing_id},
        )
        for dep in graph.unknown
    ]
    findings += [
        Finding(
            "ParallelConflict", f"{a}, {b}", Status.WARN,
            f"Tasks {a} and {b} are both marked [P] but one depends on the other",
            {"tasks": [a, b]},
        )
        for a, b in parallel_conflicts(index.tasks, graph)
    ]

    if graph.is_acyclic:
        detail = f"{len(graph.nodes)} tasks, {len(graph.edges)} edges, acyclic"
        if graph.waves:
            detail += f"; waves {_format_waves(graph.waves)}"
    else:
        detail = f"{len(graph.cycles)} cycle(s) in {len(graph.nodes)} tasks"
    return CheckResult(name, _worst(findings), detail, findings)


def check_plan_task_alignment(inputs: AnalysisInputs, index: TraceIndex, config: EngineConfig) -> CheckResult:
    name = "plan_task_alignment"
    if inputs.plan is None:
        return CheckResult(name, Status.WARN, "No approved plan to align tasks against")

    ignored = {s.lower() for s in config.plan_ignore_sections}
    names = []
    for section in parse_sections(inputs.plan.body, config.plan_section_levels):
        section_title = section_name(section.title)
        if section_title and section_title.lower() not in ignored and section_title not in names:
            names.append(section_title)

    task_text = "\n".join(t.block_content for t in index.tasks)
    findings = [
        Finding(
            "UnreferencedPlanSection", section_title, Status.WARN,
            f"Plan section '{section_title}' is not referenced by any task",
        )
        for section_title in names
        if not mentions(task_text, section_title)
    ]
    referenced = len(names) - len(findings)
    return CheckResult(name, _worst(findings), f"{referenced}/{len(names)} plan sections referenced by tasks", findings)


def check_open_questions(inputs: AnalysisInputs) -> CheckResult:
    name = "open_questions"
    findings = []
    for artifact in (inputs.spec, inputs.clarifications):
        if artifact is None:
            continue
        for question in artifact.open_questions:
            findings.append(Finding(
                "OpenQuestion", f"{artifact.kind.value}:{question.id}", Status.FAIL,
                question.question,
                {"artifact": artifact.kind.value, "revision": artifact.revision},
            ))
    detail = f"{len(findings)} unresolved question(s)" if findings else "No open questions"
    return CheckResult(name, _worst(findings), detail, findings)


def check_constitution_alignment(inputs: AnalysisInputs) -> CheckResult:
    name = "constitution_alignment"
    principles = []
    for section in parse_sections(inputs.constitution.body, [2, 3]):
        principle = section_name(section.title)
        if principle and principle not in principles:
            principles.append(principle)

    plan_body = inputs.plan.body if inputs.plan else ""
    findings = [
        Finding(
            "UnaddressedPrinciple", principle, Status.WARN,
            f"Constitution principle '{principle}' is not addressed in the plan",
        )
        for principle in principles
        if not mentions(plan_body, principle)
    ]
    addressed = len(principles) - len(findings)
    return CheckResult(name, _worst(findings), f"{addressed}/{len(principles)} principles addressed in plan", findings)


def run_checks(
    inputs: AnalysisInputs,
    config: EngineConfig | None = None,
    index: TraceIndex | None = None,
    graph: DependencyGraph | None = None,
) -> list[CheckResult]:
    """Run every check and return results in fixed order.

    index and graph are built from inputs when not supplied (e.g. from cache).
    """
    config = config or EngineConfig()
    if index is None:
        index = build(
            inputs.spec.body if inputs.spec else None,
            inputs.tasks.body if inputs.tasks else None,
        )
    if graph is None:
        graph = build_graph(index.tasks)

    checks = [
        check_requirement_coverage(inputs, index),
        check_task_coverage(inputs, index, config),
        check_dependency_integrity(inputs, index, graph),
        check_plan_task_alignment(inputs, index, config),
        check_open_questions(inputs),
    ]
    if config.constitution_check and inputs.constitution is not None:
        checks.append(check_constitution_alignment(inputs))

    for check in checks:
        logger.debug(f"[ANALYZE] {inputs.feature_id}: {check.name} {check.status.value} ({check.detail})")
    return checks
