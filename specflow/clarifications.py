"""
Open-question management for Spec and Clarifications artifacts.

Open questions block advancement out of Specify and Clarify. They live on the
artifact revision: asking or answering edits the latest revision while it is
unapproved, otherwise a new revision is created that carries the approved body
and question history forward. Approved revisions are never touched.
"""

import logging
import re

from specflow.lib.config import now_iso
from specflow.lib.constants import CLARIFICATION_MARKER_RE
from specflow.lib.types import Question
from specflow.store.artifacts import Artifact, ArtifactStore, generate_question_id
from specflow.workflow.phases import QUESTION_KINDS, ArtifactKind

logger = logging.getLogger(__name__)

CLARIFICATIONS_HEADING = "## Clarifications"


def _check_kind(kind: ArtifactKind) -> None:
    if kind not in QUESTION_KINDS:
        raise ValueError(f"Questions are only tracked on spec and clarifications, not {kind.value}")


def pending_questions(store: ArtifactStore, feature_id: str, kind: ArtifactKind) -> list[Question]:
    """Open questions on the latest revision of an artifact."""
    _check_kind(kind)
    latest = store.latest(feature_id, kind)
    return list(latest.open_questions) if latest else []


def get_question(store: ArtifactStore, feature_id: str, kind: ArtifactKind, question_id: str) -> Question | None:
    """A question by ID from the latest revision (open or answered)."""
    latest = store.latest(feature_id, kind)
    if latest is None:
        return None
    for q in latest.open_questions + latest.answered:
        if q.id == question_id:
            return q
    return None


def editable_revision(store: ArtifactStore, feature_id: str, kind: ArtifactKind) -> Artifact:
    """Latest revision if it can still be edited, else a fresh copy of it."""
    latest = store.latest(feature_id, kind)
    if latest is not None and not latest.approved and not latest.is_slot:
        return latest

    body = latest.body if latest else ""
    revision = store.create_revision(feature_id, kind, body)
    if latest is not None:
        revision.open_questions = list(latest.open_questions)
        revision.answered = list(latest.answered)
        store.amend(revision)
    return revision


def ask(store: ArtifactStore, feature_id: str, kind: ArtifactKind, question: str, context: str = "") -> Question:
    """Add an open question to the artifact.

    Returns:
        The created Question
    """
    _check_kind(kind)
    if not question.strip():
        raise ValueError("Question text cannot be empty")
    artifact = editable_revision(store, feature_id, kind)

    q = Question(
        id=generate_question_id(artifact.open_questions + artifact.answered),
        question=question.strip(),
        context=context,
        created=now_iso(),
    )
    artifact.open_questions.append(q)
    store.amend(artifact)
    logger.info(f"{feature_id}: {q.id} opened on {kind.value} revision {artifact.revision}")
    return q


def answer(
    store: ArtifactStore,
    feature_id: str,
    kind: ArtifactKind,
    question_id: str,
    answer_text: str,
    by: str = "human",
) -> Question | None:
    """Record an answer and close the question.

    Returns the answered Question, or None if no open question has that ID.
    """
    _check_kind(kind)
    if not answer_text.strip():
        raise ValueError("Answer text cannot be empty")
    latest = store.latest(feature_id, kind)
    if latest is None or not any(q.id == question_id for q in latest.open_questions):
        return None

    artifact = editable_revision(store, feature_id, kind)
    q = next(q for q in artifact.open_questions if q.id == question_id)
    artifact.open_questions = [o for o in artifact.open_questions if o.id != question_id]

    q.answer = answer_text.strip()
    q.answered = now_iso()
    q.answered_by = by
    artifact.answered.append(q)
    artifact.body = record_answer(artifact.body, q)

    store.amend(artifact)
    logger.info(f"{feature_id}: {q.id} answered on {kind.value} revision {artifact.revision}")
    return q


def record_answer(body: str, q: Question) -> str:
    """Fold an answer into an artifact body.

    Replaces the question's [NEEDS CLARIFICATION: ...] marker with the answer
    and logs the exchange under the Clarifications heading.
    """
    def replace(match: re.Match) -> str:
        return q.answer if match.group(1).strip() == q.question else match.group(0)

    body = CLARIFICATION_MARKER_RE.sub(replace, body)

    entry = f"- Q: {q.question} → A: {q.answer}"
    lines = body.rstrip("\n").splitlines() if body.strip() else []
    if CLARIFICATIONS_HEADING in lines:
        # Append after the last entry of the existing section
        start = lines.index(CLARIFICATIONS_HEADING) + 1
        end = start
        while end < len(lines) and not lines[end].startswith("## "):
            end += 1
        while end > start and not lines[end - 1].strip():
            end -= 1
        lines.insert(end, entry)
    else:
        if lines:
            lines.append("")
        lines.extend([CLARIFICATIONS_HEADING, "", entry])
    return "\n".join(lines) + "\n"
