"""
Tasks artifact parser.

Extracts task blocks from a tasks document. A block starts at a task heading
and runs to the next task heading:

    ## Task 3: Session store [P]
    Implements FR-1 and NFR-2.
    Depends on: 1, 2
"""

import re

from .specparse import FENCE_RE, find_requirement_refs
from .types import Task

HEADING_RE = re.compile(
    r'^#{2,4}\s+(?:Task\s+)?T?(?P<id>\d+(?:\.\d+)?)\b\s*[:.)\-]?\s*(?P<rest>.*?)\s*$',
    re.IGNORECASE,
)
PARALLEL_RE = re.compile(r'\[P\]', re.IGNORECASE)
DEPENDS_RE = re.compile(r'^\s*(?:[-*+]\s+)?(?:\*\*)?depends(?:[\s_-]*on)?(?:\*\*)?\s*:(?:\*\*)?\s*(?P<refs>.*)$', re.IGNORECASE)
DEP_ID_RE = re.compile(r'\b(?:Task\s+|T)?(\d+(?:\.\d+)?)\b', re.IGNORECASE)
NONE_RE = re.compile(r'^\s*(none|n/a|-)?\s*$', re.IGNORECASE)


def normalize_task_id(task_id: str) -> str:
    """'03' -> '3', '3.01' -> '3.1'"""
    return ".".join(str(int(part)) for part in task_id.split("."))


def parse_dependency_refs(refs: str) -> set[str]:
    """Task ids listed on a 'Depends on:' line."""
    if NONE_RE.match(refs):
        return set()
    refs = re.sub(r'\bN?FR-\d+\b', '', refs, flags=re.IGNORECASE)
    return {normalize_task_id(m) for m in DEP_ID_RE.findall(refs)}


def parse_tasks(text: str) -> tuple[list[Task], list[str]]:
    """Parse a tasks document.

    Returns:
        (tasks in document order, ids defined more than once).
        The first definition of a duplicated id wins.
    """
    tasks: list[Task] = []
    duplicates: list[str] = []
    seen: set[str] = set()
    current: Task | None = None
    current_lines: list[str] = []
    in_fence = False

    def finish():
        if current is None:
            return
        current.block_content = "\n".join(current_lines)
        current.requirement_refs = find_requirement_refs(current.block_content)
        if current.id in seen:
            if current.id not in duplicates:
                duplicates.append(current.id)
            return
        seen.add(current.id)
        tasks.append(current)

    for lineno, line in enumerate(text.splitlines(), 1):
        if FENCE_RE.match(line):
            in_fence = not in_fence
        heading = None if in_fence else HEADING_RE.match(line)

        if heading:
            finish()
            rest = heading.group("rest")
            current = Task(
                id=normalize_task_id(heading.group("id")),
                title=PARALLEL_RE.sub("", rest).strip(" -:"),
                parallel_eligible=bool(PARALLEL_RE.search(rest)),
                line_number=lineno,
            )
            current_lines = [line]
            continue

        if current is None:
            continue

        current_lines.append(line)
        if not in_fence:
            depends = DEPENDS_RE.match(line)
            if depends:
                current.depends_on |= parse_dependency_refs(depends.group("refs"))

    finish()
    return tasks, duplicates
