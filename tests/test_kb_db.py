"""Tests for kb_db.py - SQLite knowledge store.

Tests:
- Space lifecycle and key rules
- Page creation, positions and slugs
- Updates, version snapshots and restore
- Move and delete tree maintenance
- Labels, templates, comments, activity and recent pages
"""

from __future__ import annotations

from pathlib import Path

import pytest

from folio.errors import PersistenceError, ValidationError
from folio.kb.blocks_models import BlockType, create_content_block
from folio.kb.kb_db import SCHEMA_VERSION, SqliteKnowledgeStore, default_db_path
from folio.kb.models import (
    ActivityAction,
    CreatePageInput,
    CreateSpaceInput,
    CreateTemplateInput,
    MovePageInput,
    PageStatus,
    SpaceStatus,
    UpdatePageInput,
    UpdateSpaceInput,
)
from folio.settings import settings

ACTOR = "user-1"


def _blocks(*texts: str):
    return [create_content_block(BlockType.PARAGRAPH, text) for text in texts]


# =============================================================================
# Store Setup
# =============================================================================


class TestStoreSetup:
    def test_default_path_follows_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FOLIO_DATA_DIR", str(tmp_path / "data"))

        assert default_db_path() == tmp_path / "data" / "kb" / "kb.db"

    def test_schema_version_recorded(self, store: SqliteKnowledgeStore) -> None:
        with store._reading() as conn:
            row = conn.execute("SELECT version FROM schema_version").fetchone()

        assert row[0] == SCHEMA_VERSION

    def test_reopen_keeps_data(self, tmp_path: Path) -> None:
        path = tmp_path / "reopen.db"
        with SqliteKnowledgeStore(path) as kb:
            kb.create_space(CreateSpaceInput(key="ENG", name="Engineering"), actor_id=ACTOR)

        with SqliteKnowledgeStore(path) as kb:
            assert [s.key for s in kb.list_spaces()] == ["ENG"]

    def test_in_memory_store(self) -> None:
        with SqliteKnowledgeStore(":memory:") as kb:
            assert kb.list_spaces() == []

    def test_closed_store_raises_persistence_error(self, tmp_path: Path) -> None:
        kb = SqliteKnowledgeStore(tmp_path / "closed.db")
        kb.close()

        with pytest.raises(PersistenceError):
            kb.list_spaces()


# =============================================================================
# Spaces
# =============================================================================


class TestSpaces:
    def test_create_normalizes_key(self, store: SqliteKnowledgeStore) -> None:
        space = store.create_space(CreateSpaceInput(key="ops", name=" Operations "), actor_id=ACTOR)

        assert space.key == "OPS"
        assert space.name == "Operations"
        assert space.status == SpaceStatus.ACTIVE
        assert store.get_space_by_key("ops").id == space.id

    def test_duplicate_key_rejected(self, store: SqliteKnowledgeStore, space) -> None:
        with pytest.raises(ValidationError) as exc_info:
            store.create_space(CreateSpaceInput(key="eng", name="Other"), actor_id=ACTOR)
        assert exc_info.value.field == "key"

    def test_empty_name_rejected(self, store: SqliteKnowledgeStore) -> None:
        with pytest.raises(ValidationError):
            store.create_space(CreateSpaceInput(key="DOCS", name="  "), actor_id=ACTOR)

    def test_update(self, store: SqliteKnowledgeStore, space) -> None:
        updated = store.update_space(space.id, UpdateSpaceInput(name="Eng", icon="E"), actor_id="user-2")

        assert updated.name == "Eng"
        assert updated.icon == "E"
        assert updated.updated_by == "user-2"
        assert store.update_space("space-missing", UpdateSpaceInput(name="x"), actor_id=ACTOR) is None

    def test_deleted_space_hidden(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        page = make_page("Home")

        assert store.delete_space(space.id, actor_id=ACTOR)
        assert not store.delete_space(space.id, actor_id=ACTOR)

        assert store.list_spaces() == []
        assert store.get_space_by_id(space.id) is None
        assert store.get_space_by_key("ENG") is None
        assert store.get_page_by_id(page.id) is None
        assert store.search("Home") == []

    def test_cannot_create_page_in_deleted_space(self, store: SqliteKnowledgeStore, space) -> None:
        store.delete_space(space.id, actor_id=ACTOR)

        with pytest.raises(ValidationError):
            store.create_page(CreatePageInput(space_id=space.id, title="Late"), actor_id=ACTOR)

    def test_count_pages(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        make_page("A")
        make_page("B")

        assert store.count_pages(space.id) == 2


# =============================================================================
# Page Creation
# =============================================================================


class TestCreatePage:
    def test_first_page(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Getting Started Guide")

        assert page.version == 1
        assert page.position == 0
        assert page.slug == "getting-started-guide"
        assert page.status == PageStatus.DRAFT
        assert page.published_at is None
        assert len(page.content) == 1
        assert page.content[0].type == BlockType.PARAGRAPH
        assert page.content[0].content == ""

    def test_siblings_append(self, make_page) -> None:
        first = make_page("One")
        second = make_page("Two")
        child = make_page("Child", parent_id=first.id)

        assert second.position == 1
        assert child.position == 0

    def test_creation_snapshot(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Snap")

        versions = store.list_versions(page.id)

        assert [v.version for v in versions] == [1]
        assert versions[0].change_message == "Created"
        assert versions[0].title == "Snap"

    def test_published_on_create(self, make_page) -> None:
        page = make_page("Live", status=PageStatus.PUBLISHED)

        assert page.published_at is not None

    def test_empty_title_rejected(self, make_page) -> None:
        with pytest.raises(ValidationError):
            make_page("   ")

    def test_parent_must_share_space(self, store: SqliteKnowledgeStore, make_page) -> None:
        other = store.create_space(CreateSpaceInput(key="OPS", name="Ops"), actor_id=ACTOR)
        foreign = make_page("Foreign", space_id=other.id)

        with pytest.raises(ValidationError):
            make_page("Child", parent_id=foreign.id)

    def test_from_builtin_template(self, make_page) -> None:
        page = make_page("Weekly Sync", template_id="tpl-meeting-notes")

        assert page.content[0].type == BlockType.HEADING
        assert len(page.content) > 1

    def test_unknown_template_rejected(self, make_page) -> None:
        with pytest.raises(ValidationError):
            make_page("Weekly Sync", template_id="tpl-nope")

    def test_explicit_content_kept(self, make_page) -> None:
        page = make_page("Body", content=_blocks("a", "b"))

        assert [b.content for b in page.content] == ["a", "b"]


# =============================================================================
# Lookups
# =============================================================================


class TestLookups:
    def test_get_page_with_meta(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        root = make_page("Home")
        child = make_page("Guides", parent_id=root.id)
        leaf = make_page("Deploy", parent_id=child.id)

        meta = store.get_page_by_id(leaf.id)

        assert meta.page.id == leaf.id
        assert meta.space_key == "ENG"
        assert [c.title for c in meta.breadcrumbs] == ["Home", "Guides"]
        assert meta.author.id == ACTOR
        assert meta.attachment_count == 0
        assert store.get_page_by_id(root.id).child_count == 1

    def test_get_by_slug(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Deploy Guide")

        assert store.get_page_by_slug("ENG", "deploy-guide").page.id == page.id
        assert store.get_page_by_slug("eng", "deploy-guide").page.id == page.id
        assert store.get_page_by_slug("ENG", "missing") is None
        assert store.get_page_by_slug("NOPE", "deploy-guide") is None

    def test_slug_collision_lowest_position_wins(self, store: SqliteKnowledgeStore, make_page) -> None:
        first = make_page("Notes")
        make_page("Notes")

        assert store.get_page_by_slug("ENG", "notes").page.id == first.id

    def test_custom_user_resolver(self, tmp_path: Path) -> None:
        from folio.kb.models import UserInfo

        with SqliteKnowledgeStore(
            tmp_path / "resolver.db",
            user_resolver=lambda actor_id: UserInfo(id=actor_id, name=actor_id.title()),
        ) as kb:
            space = kb.create_space(CreateSpaceInput(key="ENG", name="Engineering"), actor_id="alex")
            page = kb.create_page(CreatePageInput(space_id=space.id, title="Home"), actor_id="alex")

            assert kb.get_page_by_id(page.id).author.name == "Alex"

    def test_list_pages_in_position_order(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        make_page("A")
        make_page("B")

        assert [p.title for p in store.list_pages_by_space(space.id)] == ["A", "B"]

    def test_build_page_tree(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        root = make_page("Root")
        make_page("Leaf", parent_id=root.id)

        tree = store.build_page_tree(space.id)

        assert [n.title for n in tree] == ["Root"]
        assert [n.title for n in tree[0].children] == ["Leaf"]


# =============================================================================
# Updates and Versions
# =============================================================================


class TestUpdatesAndVersions:
    def test_each_update_bumps_version_once(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Runbook")

        for i in range(3):
            page = store.update_page(page.id, UpdatePageInput(content=_blocks(f"rev {i}")), actor_id=ACTOR)

        assert page.version == 4
        versions = store.list_versions(page.id)
        assert [v.version for v in versions] == [4, 3, 2, 1]
        assert versions[0].content[0].content == "rev 2"

    def test_title_change_rederives_slug(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Old Name")

        updated = store.update_page(page.id, UpdatePageInput(title="New Name"), actor_id=ACTOR)

        assert updated.slug == "new-name"

    def test_empty_update_is_noop(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Same")

        assert store.update_page(page.id, UpdatePageInput(), actor_id=ACTOR).version == 1

    def test_empty_content_rejected(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Body")

        with pytest.raises(ValidationError):
            store.update_page(page.id, UpdatePageInput(content=[]), actor_id=ACTOR)
        assert store.get_page(page.id).version == 1

    def test_missing_page_returns_none(self, store: SqliteKnowledgeStore) -> None:
        assert store.update_page("page-missing", UpdatePageInput(title="x"), actor_id=ACTOR) is None

    def test_published_at_stamped_once(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Release")

        first = store.update_page(page.id, UpdatePageInput(status="published"), actor_id=ACTOR)
        again = store.update_page(page.id, UpdatePageInput(status="published", title="Release 2"), actor_id=ACTOR)

        assert first.published_at is not None
        assert again.published_at == first.published_at

    def test_restore_creates_new_version(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Doc", content=_blocks("original"))
        store.update_page(page.id, UpdatePageInput(title="Doc v2", content=_blocks("changed")), actor_id=ACTOR)

        restored = store.restore_version(page.id, 1, actor_id=ACTOR)

        assert restored.version == 3
        assert restored.title == "Doc"
        assert restored.content[0].content == "original"
        assert store.get_version(page.id, 3).change_message == "Restored version 1"
        assert store.restore_version(page.id, 99, actor_id=ACTOR) is None

    def test_get_version_missing(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Doc")

        assert store.get_version(page.id, 2) is None


# =============================================================================
# Move and Delete
# =============================================================================


class TestMoveAndDelete:
    def test_move_to_front_shifts_siblings(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        a = make_page("A")
        b = make_page("B")
        c = make_page("C")

        moved = store.move_page(c.id, MovePageInput(target_position=0), actor_id=ACTOR)

        assert moved.position == 0
        assert moved.version == c.version
        order = [p.id for p in store.list_pages_by_space(space.id)]
        assert order == [c.id, a.id, b.id]
        assert store.get_page(b.id).position == 2

    def test_move_under_new_parent_appends(self, store: SqliteKnowledgeStore, make_page) -> None:
        parent = make_page("Parent")
        make_page("Existing", parent_id=parent.id)
        loose = make_page("Loose")

        moved = store.move_page(loose.id, MovePageInput(target_parent_id=parent.id), actor_id=ACTOR)

        assert moved.parent_id == parent.id
        assert moved.position == 1

    def test_move_into_descendant_rejected(self, store: SqliteKnowledgeStore, make_page) -> None:
        root = make_page("Root")
        child = make_page("Child", parent_id=root.id)
        grandchild = make_page("Grandchild", parent_id=child.id)

        with pytest.raises(ValidationError):
            store.move_page(root.id, MovePageInput(target_parent_id=grandchild.id), actor_id=ACTOR)
        with pytest.raises(ValidationError):
            store.move_page(root.id, MovePageInput(target_parent_id=root.id), actor_id=ACTOR)

    def test_negative_position_rejected(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("A")

        with pytest.raises(ValidationError):
            store.move_page(page.id, MovePageInput(target_position=-1), actor_id=ACTOR)

    def test_move_to_other_space_takes_descendants(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        other = store.create_space(CreateSpaceInput(key="OPS", name="Ops"), actor_id=ACTOR)
        root = make_page("Root")
        child = make_page("Child", parent_id=root.id)

        store.move_page(root.id, MovePageInput(target_space_id=other.id), actor_id=ACTOR)

        assert store.get_page(root.id).space_id == other.id
        assert store.get_page(child.id).space_id == other.id
        assert store.list_pages_by_space(space.id) == []

    def test_move_missing_page(self, store: SqliteKnowledgeStore) -> None:
        assert store.move_page("page-missing", MovePageInput(), actor_id=ACTOR) is None


class TestNestingDepth:
    @pytest.fixture
    def chain(self, make_page) -> list:
        """Root page plus ``max_tree_depth`` levels of single children."""
        pages = [make_page("Level 0")]
        for level in range(1, settings.max_tree_depth + 1):
            pages.append(make_page(f"Level {level}", parent_id=pages[-1].id))
        return pages

    def test_deepest_accepted_page_is_readable(self, store: SqliteKnowledgeStore, space, chain) -> None:
        deepest = chain[-1]

        meta = store.get_page_by_id(deepest.id)
        by_slug = store.get_page_by_slug(space.key, deepest.slug)

        assert len(meta.breadcrumbs) == settings.max_tree_depth
        assert by_slug.page.id == deepest.id
        assert len(store.build_page_tree(space.id)) == 1

    def test_create_below_max_depth_rejected(self, store: SqliteKnowledgeStore, chain, make_page) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_page("Too deep", parent_id=chain[-1].id)

        assert exc_info.value.context["field"] == "parent_id"
        assert len(store.list_pages_by_space(chain[0].space_id)) == len(chain)

    def test_move_below_max_depth_rejected(self, store: SqliteKnowledgeStore, chain, make_page) -> None:
        loose = make_page("Loose")

        with pytest.raises(ValidationError) as exc_info:
            store.move_page(loose.id, MovePageInput(target_parent_id=chain[-1].id), actor_id=ACTOR)

        assert exc_info.value.context["field"] == "target_parent_id"
        assert store.get_page(loose.id).parent_id is None

    def test_move_counts_subtree_levels(self, store: SqliteKnowledgeStore, chain, make_page) -> None:
        loose = make_page("Loose")
        make_page("Loose child", parent_id=loose.id)

        with pytest.raises(ValidationError):
            store.move_page(loose.id, MovePageInput(target_parent_id=chain[-2].id), actor_id=ACTOR)

        moved = store.move_page(loose.id, MovePageInput(target_parent_id=chain[-3].id), actor_id=ACTOR)
        assert moved.parent_id == chain[-3].id
        assert store.get_page_by_id(loose.id).page.id == loose.id

    def test_delete_reparents_children(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        sibling = make_page("Sibling")
        doomed = make_page("Doomed")
        first = make_page("First", parent_id=doomed.id)
        second = make_page("Second", parent_id=doomed.id)

        assert store.delete_page(doomed.id)

        assert store.get_page(doomed.id) is None
        assert store.list_versions(doomed.id) == []
        tree = store.build_page_tree(space.id)
        assert [n.id for n in tree] == [sibling.id, first.id, second.id]
        assert store.get_page(first.id).parent_id is None

    def test_delete_homepage_clears_space(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        home = make_page("Home")
        store.update_space(space.id, UpdateSpaceInput(homepage_id=home.id), actor_id=ACTOR)

        store.delete_page(home.id)

        assert store.get_space_by_id(space.id).homepage_id is None

    def test_delete_missing(self, store: SqliteKnowledgeStore) -> None:
        assert not store.delete_page("page-missing")


# =============================================================================
# Labels, Templates, Comments, Activity
# =============================================================================


class TestLabels:
    def test_label_lifecycle(self, store: SqliteKnowledgeStore, space, make_page) -> None:
        page = make_page("Doc")
        label = store.create_label(space.id, " Backend ", "green")

        assert label.name == "backend"
        assert store.add_label_to_page(page.id, label.id, actor_id=ACTOR)
        assert not store.add_label_to_page(page.id, label.id, actor_id=ACTOR)
        assert [label.name for label in store.list_page_labels(page.id)] == ["backend"]
        assert [label.name for label in store.get_page_by_id(page.id).labels] == ["backend"]

        assert store.remove_label_from_page(page.id, label.id)
        assert store.list_page_labels(page.id) == []

    def test_duplicate_label_rejected(self, store: SqliteKnowledgeStore, space) -> None:
        store.create_label(space.id, "api")

        with pytest.raises(ValidationError):
            store.create_label(space.id, "API")

    def test_label_from_other_space_rejected(self, store: SqliteKnowledgeStore, make_page) -> None:
        other = store.create_space(CreateSpaceInput(key="OPS", name="Ops"), actor_id=ACTOR)
        label = store.create_label(other.id, "infra")
        page = make_page("Doc")

        with pytest.raises(ValidationError):
            store.add_label_to_page(page.id, label.id, actor_id=ACTOR)


class TestTemplates:
    def test_builtins_listed_first(self, store: SqliteKnowledgeStore, space) -> None:
        created = store.create_template(
            CreateTemplateInput(name="Postmortem", content=_blocks("What happened"), space_id=space.id),
            actor_id=ACTOR,
        )

        templates = store.list_templates(space.id)

        ids = [t.id for t in templates]
        assert ids[:3] == ["tpl-meeting-notes", "tpl-how-to", "tpl-decision"]
        assert created.id in ids
        assert created.id not in [t.id for t in store.list_templates()]
        assert store.get_template(created.id).name == "Postmortem"

    def test_global_template(self, store: SqliteKnowledgeStore) -> None:
        created = store.create_template(CreateTemplateInput(name="Blank", content=_blocks("")), actor_id=ACTOR)

        assert created.is_global
        assert created.id in [t.id for t in store.list_templates("space-any")]

    def test_template_needs_content(self, store: SqliteKnowledgeStore) -> None:
        with pytest.raises(ValidationError):
            store.create_template(CreateTemplateInput(name="Empty", content=[]), actor_id=ACTOR)


class TestCommentsAndActivity:
    def test_comments(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Doc")
        top = store.add_comment(page.id, "Looks good", actor_id=ACTOR)
        reply = store.add_comment(page.id, "Thanks", actor_id="user-2", parent_id=top.id)

        assert [c.id for c in store.list_comments(page.id)] == [top.id, reply.id]
        assert store.resolve_comment(top.id)
        assert store.list_comments(page.id)[0].is_resolved
        assert store.get_page_by_id(page.id).comment_count == 2

    def test_empty_comment_rejected(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Doc")

        with pytest.raises(ValidationError):
            store.add_comment(page.id, "  ", actor_id=ACTOR)

    def test_activity_newest_first(self, store: SqliteKnowledgeStore, make_page) -> None:
        page = make_page("Doc")
        store.update_page(page.id, UpdatePageInput(title="Doc 2"), actor_id=ACTOR)
        store.update_page(page.id, UpdatePageInput(status="published"), actor_id=ACTOR)

        actions = [a.action for a in store.list_page_activity(page.id)]

        assert actions == [ActivityAction.PUBLISHED, ActivityAction.UPDATED, ActivityAction.CREATED]
        assert len(store.list_page_activity(page.id, limit=1)) == 1


class TestRecentPages:
    def test_revisit_moves_to_front(self, store: SqliteKnowledgeStore, make_page) -> None:
        a = make_page("A")
        b = make_page("B")

        store.record_page_visit(a.id, ACTOR)
        store.record_page_visit(b.id, ACTOR)
        store.record_page_visit(a.id, ACTOR)

        recent = store.list_recent_pages(ACTOR)
        assert [r.page_id for r in recent] == [a.id, b.id]
        assert recent[0].space_key == "ENG"
        assert store.list_recent_pages("someone-else") == []

    def test_unknown_page_ignored(self, store: SqliteKnowledgeStore) -> None:
        store.record_page_visit("page-missing", ACTOR)

        assert store.list_recent_pages(ACTOR) == []
