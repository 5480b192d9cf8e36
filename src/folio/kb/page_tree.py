"""Navigation tree over the pages of a space.

All functions here are pure: they take page lists or parent maps that the
store already loaded and never touch the database.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Mapping

from ..errors import TreeCorruptionError
from ..settings import settings
from .models import Breadcrumb, Page, PageTreeNode

logger = logging.getLogger(__name__)


# =============================================================================
# Tree Construction
# =============================================================================


def build_page_tree(pages: Iterable[Page]) -> list[PageTreeNode]:
    """Build the nested navigation tree for one space.

    Pages are grouped by parent in a single pass and each group is sorted by
    position. The sort is stable, so equal positions keep input order. A page
    whose parent is not among ``pages`` becomes a root.

    Raises:
        TreeCorruptionError: If some pages can only be reached through a
            parent cycle.
    """
    pages = list(pages)
    by_id = {page.id: page for page in pages}

    children_index: dict[str | None, list[Page]] = defaultdict(list)
    for page in pages:
        parent_id = page.parent_id if page.parent_id in by_id else None
        children_index[parent_id].append(page)

    for group in children_index.values():
        group.sort(key=lambda p: p.position)

    visited: set[str] = set()
    roots: list[PageTreeNode] = []
    # (page, list the finished node is appended to)
    stack: list[tuple[Page, list[PageTreeNode]]] = [
        (page, roots) for page in reversed(children_index.get(None, []))
    ]
    while stack:
        page, siblings = stack.pop()
        if page.id in visited:
            continue
        visited.add(page.id)
        node = _new_node(page)
        siblings.append(node)
        children = [child for child in children_index.get(page.id, []) if child.id not in visited]
        node.has_children = bool(children)
        stack.extend((child, node.children) for child in reversed(children))

    if len(visited) < len(by_id):
        stranded = next(page.id for page in pages if page.id not in visited)
        logger.error("Parent cycle detected in page tree at %s", stranded)
        raise TreeCorruptionError("Page parent chain contains a cycle", page_id=stranded)

    return roots


def _new_node(page: Page) -> PageTreeNode:
    return PageTreeNode(
        id=page.id,
        title=page.title,
        slug=page.slug,
        status=page.status,
        position=page.position,
        children=[],
        has_children=False,
        is_expanded=False,
    )


def flatten_tree(nodes: Iterable[PageTreeNode]) -> list[PageTreeNode]:
    """Depth-first listing of every node, parents before children."""
    result: list[PageTreeNode] = []
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node.children))
    return result


def find_node(nodes: Iterable[PageTreeNode], page_id: str) -> PageTreeNode | None:
    for node in flatten_tree(nodes):
        if node.id == page_id:
            return node
    return None


# =============================================================================
# Ancestor Walks
# =============================================================================


def get_ancestor_ids(
    page_id: str,
    parent_of: Mapping[str, str | None],
    max_depth: int | None = None,
) -> list[str]:
    """Walk parent links upward from ``page_id``.

    Args:
        page_id: Page to start from (not included in the result).
        parent_of: Map of page id to parent id for the pages in scope.
        max_depth: Maximum number of ancestors before the chain is reported
            as corrupt. Defaults to ``settings.max_tree_depth``.

    Returns:
        Ancestor ids from immediate parent up to the root. The walk stops at
        the first parent that is not in ``parent_of``.

    Raises:
        TreeCorruptionError: On a cycle or a chain deeper than ``max_depth``.
    """
    limit = settings.max_tree_depth if max_depth is None else max_depth
    ancestors: list[str] = []
    seen = {page_id}
    current = parent_of.get(page_id)

    while current is not None and current in parent_of:
        if current in seen:
            raise TreeCorruptionError("Page parent chain contains a cycle", page_id=current)
        if len(ancestors) >= limit:
            raise TreeCorruptionError(
                "Page parent chain exceeds maximum depth",
                page_id=page_id,
                depth=limit,
            )
        ancestors.append(current)
        seen.add(current)
        current = parent_of.get(current)

    return ancestors


def subtree_height(page_id: str, parent_of: Mapping[str, str | None]) -> int:
    """Levels below ``page_id``; 0 for a leaf."""
    children: dict[str, list[str]] = defaultdict(list)
    for child_id, parent_id in parent_of.items():
        if parent_id is not None:
            children[parent_id].append(child_id)

    height = 0
    seen = {page_id}
    level = [page_id]
    while True:
        level = [child for pid in level for child in children.get(pid, []) if child not in seen]
        if not level:
            return height
        seen.update(level)
        height += 1


def build_breadcrumbs(
    page: Page,
    pages_by_id: Mapping[str, Page],
    max_depth: int | None = None,
) -> list[Breadcrumb]:
    """Root-first trail of the ancestors of ``page``."""
    parent_of = {pid: p.parent_id for pid, p in pages_by_id.items()}
    parent_of[page.id] = page.parent_id
    ancestor_ids = get_ancestor_ids(page.id, parent_of, max_depth)
    return [
        Breadcrumb(id=pid, title=pages_by_id[pid].title, slug=pages_by_id[pid].slug)
        for pid in reversed(ancestor_ids)
    ]
