"""Tests for page_tree.py - navigation tree and ancestor walks."""

from __future__ import annotations

import sys

import pytest

from folio.errors import TreeCorruptionError
from folio.kb.models import Page, PageStatus
from folio.kb.page_tree import (
    build_breadcrumbs,
    build_page_tree,
    find_node,
    flatten_tree,
    get_ancestor_ids,
    subtree_height,
)


def _page(page_id: str, parent_id: str | None = None, position: int = 0, title: str | None = None) -> Page:
    return Page(
        id=page_id,
        space_id="space-1",
        title=title or page_id.upper(),
        slug=page_id,
        content=[],
        status=PageStatus.DRAFT,
        position=position,
        version=1,
        created_by="user-1",
        created_at="2024-01-01T00:00:00+00:00",
        updated_by="user-1",
        updated_at="2024-01-01T00:00:00+00:00",
        parent_id=parent_id,
    )


# =============================================================================
# Tree Construction
# =============================================================================


class TestBuildPageTree:
    """Grouping by parent and ordering by position."""

    def test_roots_and_children(self) -> None:
        pages = [
            _page("b", position=1),
            _page("a", position=0),
            _page("a2", parent_id="a", position=1),
            _page("a1", parent_id="a", position=0),
        ]

        tree = build_page_tree(pages)

        assert [node.id for node in tree] == ["a", "b"]
        assert [child.id for child in tree[0].children] == ["a1", "a2"]
        assert tree[0].has_children
        assert not tree[1].has_children
        assert tree[0].is_expanded is False

    def test_every_page_appears_once(self) -> None:
        pages = [_page("a"), _page("b", "a"), _page("c", "b"), _page("d", "a", 1)]

        ids = [node.id for node in flatten_tree(build_page_tree(pages))]

        assert sorted(ids) == ["a", "b", "c", "d"]

    def test_missing_parent_becomes_root(self) -> None:
        tree = build_page_tree([_page("orphan", parent_id="gone")])

        assert [node.id for node in tree] == ["orphan"]

    def test_equal_positions_keep_input_order(self) -> None:
        pages = [_page("x", position=0), _page("y", position=0), _page("z", position=0)]

        assert [node.id for node in build_page_tree(pages)] == ["x", "y", "z"]

    def test_cycle_raises(self) -> None:
        pages = [_page("root"), _page("p", parent_id="q"), _page("q", parent_id="p")]

        with pytest.raises(TreeCorruptionError):
            build_page_tree(pages)

    def test_empty(self) -> None:
        assert build_page_tree([]) == []

    def test_find_node(self) -> None:
        tree = build_page_tree([_page("a"), _page("b", "a")])

        assert find_node(tree, "b").id == "b"
        assert find_node(tree, "nope") is None

    def test_chain_deeper_than_recursion_limit(self) -> None:
        depth = sys.getrecursionlimit() + 200
        pages = [_page(f"p{i}", parent_id=f"p{i - 1}" if i else None) for i in range(depth)]

        tree = build_page_tree(pages)

        flat = flatten_tree(tree)
        assert [node.id for node in flat] == [f"p{i}" for i in range(depth)]
        assert flat[-1].has_children is False
        assert flat[-2].has_children is True
        assert find_node(tree, f"p{depth - 1}").id == f"p{depth - 1}"


# =============================================================================
# Ancestors and Breadcrumbs
# =============================================================================


class TestAncestors:
    def test_chain_to_root(self) -> None:
        parent_of = {"a": None, "b": "a", "c": "b"}

        assert get_ancestor_ids("c", parent_of) == ["b", "a"]

    def test_root_has_no_ancestors(self) -> None:
        assert get_ancestor_ids("a", {"a": None}) == []

    def test_cycle_detected(self) -> None:
        with pytest.raises(TreeCorruptionError):
            get_ancestor_ids("a", {"a": "b", "b": "c", "c": "a"})

    def test_depth_limit(self) -> None:
        parent_of = {f"p{i}": (f"p{i - 1}" if i else None) for i in range(10)}

        with pytest.raises(TreeCorruptionError):
            get_ancestor_ids("p9", parent_of, max_depth=3)

    def test_subtree_height(self) -> None:
        parent_of = {"a": None, "b": "a", "c": "b", "d": "a", "e": None}

        assert subtree_height("a", parent_of) == 2
        assert subtree_height("c", parent_of) == 0
        assert subtree_height("e", parent_of) == 0

    def test_breadcrumbs_root_first(self) -> None:
        pages = {p.id: p for p in [_page("a", title="Home"), _page("b", "a", title="Guides"), _page("c", "b")]}

        crumbs = build_breadcrumbs(pages["c"], pages)

        assert [crumb.title for crumb in crumbs] == ["Home", "Guides"]
        assert crumbs[0].to_dict() == {"id": "a", "title": "Home", "slug": "a"}
