"""
Requirement/Task index and traceability matrix.

build() is a pure function over the spec and tasks bodies. Coverage gaps and
dangling references are reported, never guessed around; running it twice over
the same approved artifacts yields the same result.
"""

from dataclasses import dataclass, field

from .specparse import parse_requirements
from .taskparse import parse_tasks
from .types import (
    Requirement,
    Task,
    TraceabilityEntry,
    requirement_sort_key,
    task_sort_key,
)


@dataclass
class DanglingReference:
    task_id: str
    requirement_id: str


@dataclass
class TraceIndex:
    """Derived view of one (spec, tasks) pair."""
    requirements: list[Requirement] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    entries: list[TraceabilityEntry] = field(default_factory=list)
    duplicate_requirements: list[str] = field(default_factory=list)
    duplicate_tasks: list[str] = field(default_factory=list)

    @property
    def coverage_gaps(self) -> list[str]:
        """Requirement ids no task references."""
        return [e.requirement_id for e in self.entries if not e.task_ids]

    @property
    def dangling_references(self) -> list[DanglingReference]:
        """Task references to requirement ids absent from the spec."""
        known = {r.id for r in self.requirements}
        dangling = []
        for task in self.tasks:
            for ref in sorted(task.requirement_refs - known, key=requirement_sort_key):
                dangling.append(DanglingReference(task_id=task.id, requirement_id=ref))
        return dangling

    @property
    def unmapped_tasks(self) -> list[str]:
        """Task ids that reference no requirement at all."""
        return [t.id for t in self.tasks if not t.requirement_refs]

    def tasks_for(self, requirement_id: str) -> list[str]:
        for entry in self.entries:
            if entry.requirement_id == requirement_id:
                return list(entry.task_ids)
        return []

    def requirements_for(self, task_id: str) -> list[str]:
        for task in self.tasks:
            if task.id == task_id:
                return sorted(task.requirement_refs, key=requirement_sort_key)
        return []

    def task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


def build(spec_body: str | None, tasks_body: str | None) -> TraceIndex:
    """Build requirements, tasks and traceability entries.

    Either body may be None (artifact not approved yet); the corresponding
    side of the index is then empty.
    """
    requirements, dup_reqs = parse_requirements(spec_body or "")
    tasks, dup_tasks = parse_tasks(tasks_body or "")

    entries = []
    for req in requirements:
        task_ids = sorted(
            (t.id for t in tasks if req.id in t.requirement_refs),
            key=task_sort_key,
        )
        entries.append(TraceabilityEntry(requirement_id=req.id, task_ids=task_ids))

    return TraceIndex(
        requirements=requirements,
        tasks=tasks,
        entries=entries,
        duplicate_requirements=dup_reqs,
        duplicate_tasks=dup_tasks,
    )
