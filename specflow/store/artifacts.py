"""
File-backed Artifact Store.

Layout under the engine root:

    features/<id>/meta.env
    features/<id>/<kind>.md              current approved body
    features/<id>/<kind>.json            sidecar of the current approved revision
    features/<id>/revisions/<kind>-NNNN.md|.json
    _project/...                          project-scoped constitution, same shape

Revision 0 is the empty slot seeded when a phase starts. Approved revisions
are never rewritten; edits always create revision latest + 1. The store does
no locking of its own; the engine serializes callers per feature.
"""

import hashlib
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from specflow.lib import validate
from specflow.lib.config import now_iso, write_feature_meta
from specflow.lib.constants import (
    ARCHIVE_DIR,
    FEATURES_DIR,
    META_FILE,
    PROJECT_SCOPE,
    REVISIONS_DIR,
)
from specflow.lib.fileio import atomic_write_json, atomic_write_text
from specflow.lib.signals import Outcome, Signal, StorageUnavailable
from specflow.lib.types import Question
from specflow.store.cache import IndexCache
from specflow.workflow.phases import INDEXED_KINDS, ArtifactKind

logger = logging.getLogger(__name__)

SLOT_REVISION = 0


def content_hash(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass
class Artifact:
    """One revision of a phase document."""
    feature_id: str
    kind: ArtifactKind
    revision: int
    content_hash: str
    body: str
    approved: bool
    created_at: str
    approved_at: str | None = None
    open_questions: list[Question] = field(default_factory=list)
    answered: list[Question] = field(default_factory=list)
    report: dict | None = None

    @property
    def is_slot(self) -> bool:
        return self.revision == SLOT_REVISION

    def sidecar(self) -> dict:
        return {
            "featureId": self.feature_id,
            "kind": self.kind.value,
            "revision": self.revision,
            "contentHash": self.content_hash,
            "approved": self.approved,
            "createdAt": self.created_at,
            "approvedAt": self.approved_at,
            "openQuestions": [q.to_dict() for q in self.open_questions],
            "answered": [q.to_dict() for q in self.answered],
            "report": self.report,
        }

    @classmethod
    def from_sidecar(cls, data: dict, body: str) -> "Artifact":
        return cls(
            feature_id=data["featureId"],
            kind=ArtifactKind(data["kind"]),
            revision=data["revision"],
            content_hash=data["contentHash"],
            body=body,
            approved=data["approved"],
            created_at=data["createdAt"],
            approved_at=data.get("approvedAt"),
            open_questions=[Question.from_dict(q) for q in data.get("openQuestions", [])],
            answered=[Question.from_dict(q) for q in data.get("answered", [])],
            report=data.get("report"),
        )


def generate_question_id(existing: list[Question]) -> str:
    """Next Q-NNN id after every id already used on the artifact."""
    nums = []
    for q in existing:
        try:
            nums.append(int(q.id.split("-")[1]))
        except (ValueError, IndexError):
            logger.warning(f"Malformed question ID ignored: {q.id}")
    return f"Q-{max(nums, default=0) + 1:03d}"


class ArtifactStore:
    """Versioned per-feature document persistence."""

    def __init__(self, root: Path, cache: IndexCache | None = None):
        self.root = Path(root)
        self.cache = cache if cache is not None else IndexCache()

    # ----------------------------------------------------------------- paths

    def feature_dir(self, feature_id: str) -> Path:
        if feature_id == PROJECT_SCOPE:
            return self.root / PROJECT_SCOPE
        return self.root / FEATURES_DIR / feature_id

    def archive_dir(self, feature_id: str) -> Path:
        return self.root / ARCHIVE_DIR / feature_id

    def _revision_paths(self, feature_id: str, kind: ArtifactKind, revision: int) -> tuple[Path, Path]:
        base = self.feature_dir(feature_id) / REVISIONS_DIR / f"{kind.value}-{revision:04d}"
        return base.with_suffix(".md"), base.with_suffix(".json")

    def _current_paths(self, feature_id: str, kind: ArtifactKind) -> tuple[Path, Path]:
        base = self.feature_dir(feature_id) / kind.value
        return base.with_suffix(".md"), base.with_suffix(".json")

    # -------------------------------------------------------------- features

    def feature_exists(self, feature_id: str) -> bool:
        return (self.feature_dir(feature_id) / META_FILE).exists()

    def is_archived(self, feature_id: str) -> bool:
        return (self.archive_dir(feature_id) / META_FILE).exists()

    def list_features(self) -> list[str]:
        features_dir = self.root / FEATURES_DIR
        if not features_dir.exists():
            return []
        return sorted(
            d.name for d in features_dir.iterdir()
            if d.is_dir() and (d / META_FILE).exists()
        )

    def create_feature(self, feature_id: str, phase: str, first_kind: ArtifactKind) -> None:
        """Write the feature record and seed the first artifact slot."""
        created = now_iso()
        try:
            self.feature_dir(feature_id).mkdir(parents=True, exist_ok=False)
            self.seed_slot(feature_id, first_kind)
            write_feature_meta(self.feature_dir(feature_id), {
                "ID": feature_id,
                "PHASE": phase,
                "CREATED_AT": created,
                "UPDATED_AT": created,
            })
        except OSError as e:
            raise StorageUnavailable(f"Cannot create feature: {e}", str(self.feature_dir(feature_id))) from e
        logger.info(f"[STORE] Created feature {feature_id}")

    def archive_feature(self, feature_id: str) -> Path:
        """Move a feature directory under _archive/. Returns the new location."""
        target = self.archive_dir(feature_id)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(self.feature_dir(feature_id)), str(target))
        except OSError as e:
            raise StorageUnavailable(f"Cannot archive feature: {e}", str(target)) from e
        self.cache.invalidate(feature_id)
        logger.info(f"[STORE] Archived feature {feature_id} to {target}")
        return target

    # ------------------------------------------------------------- revisions

    def revisions(self, feature_id: str, kind: ArtifactKind) -> list[int]:
        """All revision numbers for a kind, ascending (slot included)."""
        rev_dir = self.feature_dir(feature_id) / REVISIONS_DIR
        if not rev_dir.exists():
            return []
        numbers = []
        for path in rev_dir.glob(f"{kind.value}-*.json"):
            try:
                numbers.append(int(path.stem.rsplit("-", 1)[1]))
            except (ValueError, IndexError):
                logger.warning(f"[STORE] Ignoring malformed revision file {path.name}")
        return sorted(numbers)

    def latest_revision_number(self, feature_id: str, kind: ArtifactKind) -> int | None:
        numbers = self.revisions(feature_id, kind)
        return numbers[-1] if numbers else None

    def _read(self, body_path: Path, sidecar_path: Path) -> Artifact | None:
        if not sidecar_path.exists():
            return None
        try:
            data = validate.validate_file(sidecar_path, "sidecar")
            body = ""
            if body_path.exists():
                with open(body_path, encoding="utf-8", newline="") as f:
                    body = f.read()
        except validate.ValidationError as e:
            raise StorageUnavailable(f"Corrupt sidecar: {e}", str(sidecar_path)) from e
        except OSError as e:
            raise StorageUnavailable(f"Cannot read artifact: {e}", str(body_path)) from e
        artifact = Artifact.from_sidecar(data, body)
        if artifact.content_hash != content_hash(body):
            raise StorageUnavailable("Artifact body does not match its content hash", str(body_path))
        return artifact

    def _write(self, body_path: Path, sidecar_path: Path, artifact: Artifact) -> None:
        data = artifact.sidecar()
        try:
            validate.validate_before_write(data, "sidecar", sidecar_path)
        except validate.ValidationError as e:
            raise StorageUnavailable(str(e), str(sidecar_path)) from e
        try:
            # Body first: a sidecar never points at a body that was not written
            atomic_write_text(body_path, artifact.body)
            atomic_write_json(sidecar_path, data)
        except OSError as e:
            raise StorageUnavailable(f"Cannot write artifact: {e}", str(sidecar_path)) from e

    def load(self, feature_id: str, kind: ArtifactKind, revision: int) -> Artifact | None:
        """A specific revision, or None."""
        return self._read(*self._revision_paths(feature_id, kind, revision))

    def latest(self, feature_id: str, kind: ArtifactKind) -> Artifact | None:
        """Most recent revision regardless of approval (may be the empty slot)."""
        number = self.latest_revision_number(feature_id, kind)
        if number is None:
            return None
        return self.load(feature_id, kind, number)

    def get(self, feature_id: str, kind: ArtifactKind) -> Artifact | None:
        """Latest approved revision, or None (NotFound)."""
        return self._read(*self._current_paths(feature_id, kind))

    def seed_slot(self, feature_id: str, kind: ArtifactKind) -> Artifact | None:
        """Create the empty revision-0 slot if the kind has no revisions yet."""
        if self.revisions(feature_id, kind):
            return None
        slot = Artifact(
            feature_id=feature_id,
            kind=kind,
            revision=SLOT_REVISION,
            content_hash=content_hash(""),
            body="",
            approved=False,
            created_at=now_iso(),
        )
        self._write(*self._revision_paths(feature_id, kind, SLOT_REVISION), slot)
        logger.debug(f"[STORE] {feature_id}: seeded {kind.value} slot")
        return slot

    def create_revision(
        self,
        feature_id: str,
        kind: ArtifactKind,
        body: str,
        open_questions: list[str] | None = None,
        report: dict | None = None,
    ) -> Artifact:
        """Write revision latest + 1, unapproved."""
        latest = self.latest_revision_number(feature_id, kind)
        revision = (latest if latest is not None else SLOT_REVISION) + 1

        created = now_iso()
        questions: list[Question] = []
        for text in open_questions or []:
            questions.append(Question(id=generate_question_id(questions), question=text, created=created))

        artifact = Artifact(
            feature_id=feature_id,
            kind=kind,
            revision=revision,
            content_hash=content_hash(body),
            body=body,
            approved=False,
            created_at=created,
            open_questions=questions,
            report=report,
        )
        self._write(*self._revision_paths(feature_id, kind, revision), artifact)
        logger.info(f"[STORE] {feature_id}: {kind.value} revision {revision} created")
        return artifact

    def amend(self, artifact: Artifact) -> Artifact:
        """Rewrite an unapproved revision in place (body and/or questions).

        Raises:
            ValueError: if the revision is approved or not the latest
        """
        if artifact.approved:
            raise ValueError(f"{artifact.kind.value} revision {artifact.revision} is approved and immutable")
        if artifact.revision != self.latest_revision_number(artifact.feature_id, artifact.kind):
            raise ValueError(f"{artifact.kind.value} revision {artifact.revision} is not the latest")
        artifact.content_hash = content_hash(artifact.body)
        self._write(*self._revision_paths(artifact.feature_id, artifact.kind, artifact.revision), artifact)
        return artifact

    def approve(self, feature_id: str, kind: ArtifactKind, revision: int) -> Outcome:
        """Mark a revision approved and publish it as the current document.

        Idempotent. Fails with StaleRevision if a newer revision exists.
        """
        artifact = self.load(feature_id, kind, revision)
        if artifact is None or artifact.is_slot:
            return Outcome.failure(
                Signal.ARTIFACT_NOT_FOUND,
                f"{kind.value} revision {revision} does not exist for {feature_id}",
                f"create one with 'feature revise {feature_id} {kind.value}'",
            )

        latest = self.latest_revision_number(feature_id, kind)
        if latest is not None and latest > revision:
            return Outcome.failure(
                Signal.STALE_REVISION,
                f"{kind.value} revision {revision} is superseded by revision {latest}",
                f"review and approve revision {latest} instead",
                latest=latest,
            )

        if artifact.approved:
            return Outcome.success(f"{kind.value} revision {revision} already approved", revision=revision)

        artifact.approved = True
        artifact.approved_at = now_iso()
        self._write(*self._revision_paths(feature_id, kind, revision), artifact)
        self._write(*self._current_paths(feature_id, kind), artifact)

        if kind in INDEXED_KINDS:
            self.cache.invalidate(feature_id)

        logger.info(f"[STORE] {feature_id}: {kind.value} revision {revision} approved")
        return Outcome.success(f"Approved {kind.value} revision {revision}", revision=revision)
