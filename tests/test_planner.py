"""Tests for the plan decision engine."""

from objectsync.differ import UNCHANGED, Change, ChangeKind, ChangeSet, diff
from objectsync.models import ObservedState
from objectsync.planner import PlanAction, decide

from conftest import desired

HASH = "aa48b42f36a2652cbee40c30a5df7d25"


def _modified(old="a", new="b") -> Change:
    return Change(ChangeKind.MODIFIED, old, new)


def _decide(**changes):
    return decide(ChangeSet(changes=dict(changes)))


class TestDecide:
    """Tests for decide()."""

    def test_missing_object_is_create(self):
        plan = decide(ChangeSet(exists=False))
        assert plan.action is PlanAction.CREATE
        assert plan.writes_content

    def test_nothing_changed_is_no_op(self):
        plan = _decide(content=UNCHANGED, tags=UNCHANGED)
        assert plan.action is PlanAction.NO_OP
        assert not plan.writes_content

    def test_bucket_change_is_full_replace(self):
        plan = _decide(bucket=_modified(), content=_modified())
        assert plan.action is PlanAction.FULL_REPLACE
        assert "bucket" in plan.reason

    def test_key_change_is_full_replace(self):
        assert _decide(key=_modified()).action is PlanAction.FULL_REPLACE

    def test_content_change_is_replace_content(self):
        plan = _decide(content=_modified(), **{"tags.a": _modified()})
        assert plan.action is PlanAction.REPLACE_CONTENT
        assert plan.reason == "content changed"

    def test_source_hash_change_is_replace_content(self):
        assert _decide(source_hash=_modified()).action is PlanAction.REPLACE_CONTENT

    def test_etag_change_is_replace_content(self):
        plan = _decide(etag=_modified())
        assert plan.action is PlanAction.REPLACE_CONTENT
        assert plan.reason == "etag changed"

    def test_content_encoding_change_is_replace_content(self):
        plan = _decide(content_encoding=Change(ChangeKind.ADDED, None, "gzip"))
        assert plan.action is PlanAction.REPLACE_CONTENT

    def test_tags_only_is_replace_tags(self):
        plan = _decide(**{"tags.Key1": _modified(), "tags.Key3": Change(ChangeKind.REMOVED, "C")})
        assert plan.action is PlanAction.REPLACE_TAGS
        assert plan.reason == "tags.Key1, tags.Key3 changed"

    def test_content_type_is_metadata_only(self):
        assert _decide(content_type=_modified()).action is PlanAction.UPDATE_METADATA_ONLY

    def test_metadata_and_tags_is_metadata_only(self):
        plan = _decide(**{"metadata.k": _modified(), "tags.t": _modified()})
        assert plan.action is PlanAction.UPDATE_METADATA_ONLY

    def test_lock_only_is_metadata_only(self):
        plan = _decide(object_lock_legal_hold_status=_modified("OFF", "ON"))
        assert plan.action is PlanAction.UPDATE_METADATA_ONLY

    def test_acl_only_is_metadata_only(self):
        assert _decide(acl=_modified("private", "public-read")).action is (
            PlanAction.UPDATE_METADATA_ONLY
        )

    def test_storage_class_is_metadata_only(self):
        assert _decide(storage_class=_modified("STANDARD", "STANDARD_IA")).action is (
            PlanAction.UPDATE_METADATA_ONLY
        )

    def test_changes_kept_on_plan(self):
        changes = ChangeSet(changes={"tags.a": _modified()})
        assert decide(changes).changes is changes


class TestNoSpuriousVersioning:
    """Unchanged content never plans a content write."""

    def test_tag_and_metadata_edits_never_replace_content(self):
        observed = ObservedState(
            bucket="plain-bucket",
            key="test-key",
            etag=HASH,
            content_hash=HASH,
            tags={"Key1": "A"},
            metadata={"key1": "v"},
        )
        variants = [
            desired(content="lane 8", tags={"Key1": "A"}, metadata={"key1": "v"}),
            desired(content="lane 8", tags={"Key1": "B"}, metadata={"key1": "v"}),
            desired(content="lane 8", tags={}, metadata={"key1": "v"}),
            desired(content="lane 8", tags={"Key1": "A"}, metadata={"key1": "w"}),
            desired(content="lane 8", tags={"Key1": "A"}, metadata={"key1": "v"}, cache_control="max-age=60"),
        ]
        for variant in variants:
            plan = decide(diff(variant, observed, content_hash=HASH))
            assert plan.action not in (
                PlanAction.REPLACE_CONTENT,
                PlanAction.FULL_REPLACE,
                PlanAction.CREATE,
            )

    def test_identical_state_is_no_op(self):
        observed = ObservedState(
            bucket="plain-bucket", key="test-key", etag=HASH, tags={"Key1": "A"}
        )
        plan = decide(diff(desired(content="lane 8", tags={"Key1": "A"}), observed, content_hash=HASH))
        assert plan.action is PlanAction.NO_OP
