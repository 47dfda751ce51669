"""
Spec, plan and constitution parsers.

Extracts requirement identifiers, clarification markers and named sections.
Purely textual: lines that don't match are ignored, nothing is guessed.
"""

import re
from dataclasses import dataclass

from .constants import CLARIFICATION_MARKER_RE
from .types import Requirement

# "FR-1: text", "- **FR-001**: text", "NFR-2. text"
REQUIREMENT_RE = re.compile(
    r'^\s*(?:[-*+]\s+)?(?:\*\*)?(?P<id>N?FR-\d+)\b(?:\*\*)?\s*[:.\-]?\s*(?:\*\*)?\s*(?P<text>.*?)\s*$'
)
HEADING_RE = re.compile(r'^(?P<hashes>#{1,6})\s+(?P<title>.+?)\s*#*\s*$')
FENCE_RE = re.compile(r'^\s*(```|~~~)')


@dataclass
class Section:
    """A markdown heading in a plan or constitution."""
    title: str
    level: int
    line_number: int


def normalize_requirement_id(req_id: str) -> str:
    """FR-001 -> FR-1, so zero padding never splits one requirement in two."""
    prefix, _, number = req_id.upper().partition("-")
    return f"{prefix}-{int(number)}"


def _strip_comments(line: str, in_comment: bool) -> tuple[str, bool]:
    """Remove HTML comment spans from one line.

    Returns the remaining text and whether a comment is still open at the end
    of the line.
    """
    kept = []
    rest = line
    while rest:
        if in_comment:
            end = rest.find('-->')
            if end == -1:
                break
            rest = rest[end + 3:]
            in_comment = False
        else:
            start = rest.find('<!--')
            if start == -1:
                kept.append(rest)
                break
            kept.append(rest[:start])
            rest = rest[start + 4:]
            in_comment = True
    return "".join(kept), in_comment


def _content_lines(text: str):
    """Yield (lineno, line) outside fenced code blocks, with HTML comments removed."""
    in_fence = False
    in_comment = False
    for lineno, line in enumerate(text.splitlines(), 1):
        if not in_comment and FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        had_comment = in_comment or '<!--' in line
        line, in_comment = _strip_comments(line, in_comment)
        if had_comment and not line.strip():
            continue
        yield lineno, line


def parse_requirements(text: str) -> tuple[list[Requirement], list[str]]:
    """Parse requirement lines from a spec body.

    Returns:
        (requirements in document order, ids defined more than once).
        The first definition of a duplicated id wins.
    """
    requirements = []
    seen: set[str] = set()
    duplicates: list[str] = []

    for lineno, line in _content_lines(text):
        match = REQUIREMENT_RE.match(line)
        if not match:
            continue
        req_id = normalize_requirement_id(match.group("id"))
        if req_id in seen:
            if req_id not in duplicates:
                duplicates.append(req_id)
            continue
        seen.add(req_id)
        requirements.append(Requirement(
            id=req_id,
            kind="non-functional" if req_id.startswith("NFR") else "functional",
            text=match.group("text").strip("* "),
            line_number=lineno,
        ))

    return requirements, duplicates


def find_requirement_refs(text: str) -> set[str]:
    """Every requirement id token appearing anywhere in text."""
    return {normalize_requirement_id(m) for m in re.findall(r'\bN?FR-\d+\b', text, re.IGNORECASE)}


def extract_clarification_markers(text: str) -> list[str]:
    """Questions from [NEEDS CLARIFICATION: ...] markers, in order, deduplicated."""
    questions = []
    for match in CLARIFICATION_MARKER_RE.finditer(text):
        question = match.group(1).strip()
        if question and question not in questions:
            questions.append(question)
    return questions


def parse_sections(text: str, levels: list[int] | None = None) -> list[Section]:
    """Markdown headings at the given levels (default: 2 and 3)."""
    levels = levels or [2, 3]
    sections = []
    for lineno, line in _content_lines(text):
        match = HEADING_RE.match(line)
        if not match:
            continue
        level = len(match.group("hashes"))
        if level in levels:
            sections.append(Section(
                title=match.group("title").strip(),
                level=level,
                line_number=lineno,
            ))
    return sections


def section_name(title: str) -> str:
    """Strip numbering and emphasis: '### 2. **Auth Service**' -> 'Auth Service'."""
    name = re.sub(r'^(?:Phase\s+)?\d+(?:\.\d+)*[.:)]?\s*', '', title, flags=re.IGNORECASE)
    name = name.replace("**", "").replace("`", "").strip()
    return name.rstrip(":").strip()


def mentions(haystack: str, name: str) -> bool:
    """Case-insensitive, whitespace-tolerant containment check."""
    if not name:
        return False
    pattern = r'\s+'.join(re.escape(word) for word in name.split())
    return re.search(pattern, haystack, re.IGNORECASE) is not None
