"""Tests for specflow.store.artifacts and specflow.store.cache modules."""

import json

import pytest
from unittest.mock import patch

from specflow.lib.signals import Signal, StorageUnavailable
from specflow.lib.types import Question
from specflow.store.artifacts import ArtifactStore, content_hash, generate_question_id
from specflow.store.cache import IndexCache
from specflow.workflow.phases import ArtifactKind


@pytest.fixture
def store(tmp_path):
    store = ArtifactStore(tmp_path)
    store.create_feature("001-login", "specify", ArtifactKind.SPEC)
    return store


class TestFeatures:
    """Tests for feature directories."""

    def test_create_feature_layout(self, store, tmp_path):
        feature_dir = tmp_path / "features" / "001-login"
        assert (feature_dir / "meta.env").exists()
        assert (feature_dir / "revisions" / "spec-0000.md").exists()
        assert (feature_dir / "revisions" / "spec-0000.json").exists()
        assert store.feature_exists("001-login")
        assert store.list_features() == ["001-login"]

    def test_create_twice_is_storage_error(self, store):
        with pytest.raises(StorageUnavailable):
            store.create_feature("001-login", "specify", ArtifactKind.SPEC)

    def test_archive(self, store, tmp_path):
        target = store.archive_feature("001-login")
        assert target == tmp_path / "_archive" / "001-login"
        assert store.is_archived("001-login")
        assert not store.feature_exists("001-login")
        assert store.list_features() == []

    def test_project_scope_dir(self, store, tmp_path):
        assert store.feature_dir("_project") == tmp_path / "_project"


class TestRevisions:
    """Tests for revision creation and reads."""

    def test_slot_is_latest_but_not_approved(self, store):
        slot = store.latest("001-login", ArtifactKind.SPEC)
        assert slot.is_slot
        assert slot.body == ""
        assert store.get("001-login", ArtifactKind.SPEC) is None

    def test_create_increments_by_one(self, store):
        first = store.create_revision("001-login", ArtifactKind.SPEC, "FR-1: a\n")
        second = store.create_revision("001-login", ArtifactKind.SPEC, "FR-1: b\n")
        assert (first.revision, second.revision) == (1, 2)
        assert store.revisions("001-login", ArtifactKind.SPEC) == [0, 1, 2]

    def test_round_trip(self, store):
        body = "# Spec\r\n\nFR-1: Login ✓\n"
        created = store.create_revision("001-login", ArtifactKind.SPEC, body)
        loaded = store.latest("001-login", ArtifactKind.SPEC)
        assert loaded.body == body
        assert loaded.revision == created.revision
        assert loaded.content_hash == content_hash(body)
        assert not loaded.approved

    def test_questions_recorded(self, store):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "x", ["Which IdP?", "Session length?"])
        assert [q.id for q in artifact.open_questions] == ["Q-001", "Q-002"]
        loaded = store.load("001-login", ArtifactKind.SPEC, artifact.revision)
        assert [q.question for q in loaded.open_questions] == ["Which IdP?", "Session length?"]

    def test_first_revision_without_slot(self, store):
        artifact = store.create_revision("001-login", ArtifactKind.PLAN, "## Auth\n")
        assert artifact.revision == 1

    def test_tampered_body_detected(self, store, tmp_path):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "FR-1: a\n")
        body_path = tmp_path / "features" / "001-login" / "revisions" / f"spec-{artifact.revision:04d}.md"
        body_path.write_text("FR-1: edited behind our back\n")
        with pytest.raises(StorageUnavailable, match="content hash"):
            store.latest("001-login", ArtifactKind.SPEC)

    def test_corrupt_sidecar_detected(self, store, tmp_path):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "FR-1: a\n")
        sidecar = tmp_path / "features" / "001-login" / "revisions" / f"spec-{artifact.revision:04d}.json"
        data = json.loads(sidecar.read_text())
        data["kind"] = "diagram"
        sidecar.write_text(json.dumps(data))
        with pytest.raises(StorageUnavailable, match="Corrupt sidecar"):
            store.latest("001-login", ArtifactKind.SPEC)

    def test_write_failure_is_storage_error(self, store):
        with patch("specflow.store.artifacts.atomic_write_text", side_effect=OSError("disk full")):
            with pytest.raises(StorageUnavailable, match="disk full"):
                store.create_revision("001-login", ArtifactKind.SPEC, "FR-1: a\n")
        assert store.revisions("001-login", ArtifactKind.SPEC) == [0]

    def test_malformed_revision_file_ignored(self, store, tmp_path, caplog):
        (tmp_path / "features" / "001-login" / "revisions" / "spec-draft.json").write_text("{}")
        assert store.revisions("001-login", ArtifactKind.SPEC) == [0]
        assert "malformed revision file" in caplog.text


class TestAmend:
    """Tests for in-place edits of unapproved revisions."""

    def test_amend_latest(self, store):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        artifact.body = "b"
        store.amend(artifact)
        loaded = store.latest("001-login", ArtifactKind.SPEC)
        assert loaded.body == "b"
        assert loaded.revision == artifact.revision

    def test_amend_approved_refused(self, store):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        store.approve("001-login", ArtifactKind.SPEC, artifact.revision)
        approved = store.get("001-login", ArtifactKind.SPEC)
        approved.body = "changed"
        with pytest.raises(ValueError, match="immutable"):
            store.amend(approved)

    def test_amend_old_revision_refused(self, store):
        old = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        store.create_revision("001-login", ArtifactKind.SPEC, "b")
        with pytest.raises(ValueError, match="not the latest"):
            store.amend(old)


class TestApprove:
    """Tests for approval."""

    def test_approve_publishes_current(self, store, tmp_path):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "FR-1: a\n")
        outcome = store.approve("001-login", ArtifactKind.SPEC, artifact.revision)
        assert outcome.ok
        current = store.get("001-login", ArtifactKind.SPEC)
        assert current.approved
        assert current.approved_at
        assert current.revision == artifact.revision
        assert (tmp_path / "features" / "001-login" / "spec.md").read_text() == "FR-1: a\n"

    def test_idempotent(self, store):
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        first = store.approve("001-login", ArtifactKind.SPEC, artifact.revision)
        second = store.approve("001-login", ArtifactKind.SPEC, artifact.revision)
        assert first.ok and second.ok
        assert "already approved" in second.message

    def test_stale_revision(self, store):
        old = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        store.create_revision("001-login", ArtifactKind.SPEC, "b")
        outcome = store.approve("001-login", ArtifactKind.SPEC, old.revision)
        assert not outcome.ok
        assert outcome.signal is Signal.STALE_REVISION
        assert outcome.data["latest"] == 2
        assert store.get("001-login", ArtifactKind.SPEC) is None

    def test_missing_revision(self, store):
        outcome = store.approve("001-login", ArtifactKind.SPEC, 7)
        assert outcome.signal is Signal.ARTIFACT_NOT_FOUND

    def test_slot_cannot_be_approved(self, store):
        outcome = store.approve("001-login", ArtifactKind.SPEC, 0)
        assert outcome.signal is Signal.ARTIFACT_NOT_FOUND

    def test_get_returns_latest_approved(self, store):
        first = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        store.approve("001-login", ArtifactKind.SPEC, first.revision)
        store.create_revision("001-login", ArtifactKind.SPEC, "b")
        assert store.get("001-login", ArtifactKind.SPEC).body == "a"
        assert store.latest("001-login", ArtifactKind.SPEC).body == "b"


class TestCacheInvalidation:
    """Tests for lazy invalidation of derived views."""

    def test_spec_approval_invalidates(self, store):
        store.cache.put("001-login", "index", object())
        artifact = store.create_revision("001-login", ArtifactKind.SPEC, "a")
        assert "001-login" in store.cache
        store.approve("001-login", ArtifactKind.SPEC, artifact.revision)
        assert "001-login" not in store.cache

    def test_plan_approval_keeps_cache(self, store):
        store.cache.put("001-login", "index", object())
        artifact = store.create_revision("001-login", ArtifactKind.PLAN, "## Auth\n")
        store.approve("001-login", ArtifactKind.PLAN, artifact.revision)
        assert "001-login" in store.cache

    def test_features_independent(self):
        cache = IndexCache()
        cache.put("a", 1, "view-a")
        cache.put("b", 1, "view-b")
        cache.invalidate("a")
        assert cache.get("a", 1) is None
        assert cache.get("b", 1) == "view-b"


class TestQuestionIds:
    """Tests for question id generation."""

    def test_first(self):
        assert generate_question_id([]) == "Q-001"

    def test_after_highest(self):
        existing = [Question(id="Q-001", question="a"), Question(id="Q-004", question="b")]
        assert generate_question_id(existing) == "Q-005"
