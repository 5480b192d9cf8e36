"""Page RPC handlers - pages, tree, versions, search and Markdown.

These handlers expose the page lifecycle of the knowledge base. Page bodies
travel as lists of block dicts (see ``ContentBlock.to_dict``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from folio.kb.markdown_parser import parse_markdown
from folio.kb.markdown_renderer import render_markdown
from folio.kb.models import CreatePageInput, MovePageInput, PageStatus, UpdatePageInput
from folio.kb.versions import compare_versions

from ._base import parse_blocks, require_found, rpc_handler

if TYPE_CHECKING:
    from folio.kb.store import KnowledgeStore

logger = logging.getLogger(__name__)


# =============================================================================
# Page CRUD Handlers
# =============================================================================


@rpc_handler("kb/pages/list")
def handle_kb_pages_list(store: KnowledgeStore, *, space_id: str) -> dict[str, Any]:
    return {"pages": [page.to_dict() for page in store.list_pages_by_space(space_id)]}


@rpc_handler("kb/pages/get")
def handle_kb_pages_get(
    store: KnowledgeStore,
    *,
    actor_id: str,
    page_id: str | None = None,
    space_key: str | None = None,
    slug: str | None = None,
) -> dict[str, Any]:
    """Get a page with its metadata, by id or by space key and slug.

    Opening a page counts as a visit for the caller's recent pages.
    """
    if page_id is not None:
        page = require_found(store.get_page_by_id(page_id), "page", page_id)
    elif space_key is not None and slug is not None:
        page = require_found(store.get_page_by_slug(space_key, slug), "page", f"{space_key}/{slug}")
    else:
        raise ValueError("page_id or space_key and slug are required")

    store.record_page_visit(page.page.id, actor_id)
    return {"page": page.to_dict()}


@rpc_handler("kb/pages/create")
def handle_kb_pages_create(
    store: KnowledgeStore,
    *,
    actor_id: str,
    space_id: str,
    title: str,
    content: list[dict[str, Any]] | None = None,
    parent_id: str | None = None,
    status: str = PageStatus.DRAFT.value,
    template_id: str | None = None,
) -> dict[str, Any]:
    page = store.create_page(
        CreatePageInput(
            space_id=space_id,
            title=title,
            content=parse_blocks(content),
            parent_id=parent_id,
            status=status,
            template_id=template_id,
        ),
        actor_id=actor_id,
    )
    return {"page": page.to_dict()}


@rpc_handler("kb/pages/update")
def handle_kb_pages_update(
    store: KnowledgeStore,
    *,
    actor_id: str,
    page_id: str,
    title: str | None = None,
    content: list[dict[str, Any]] | None = None,
    status: str | None = None,
    change_message: str | None = None,
) -> dict[str, Any]:
    page = store.update_page(
        page_id,
        UpdatePageInput(
            title=title,
            content=parse_blocks(content),
            status=status,
            change_message=change_message,
        ),
        actor_id=actor_id,
    )
    return {"page": require_found(page, "page", page_id).to_dict()}


@rpc_handler("kb/pages/move")
def handle_kb_pages_move(
    store: KnowledgeStore,
    *,
    actor_id: str,
    page_id: str,
    target_parent_id: str | None = None,
    target_position: int | None = None,
    target_space_id: str | None = None,
) -> dict[str, Any]:
    if target_position is not None and not isinstance(target_position, int):
        raise ValueError("target_position must be an integer")
    page = store.move_page(
        page_id,
        MovePageInput(
            target_parent_id=target_parent_id,
            target_position=target_position,
            target_space_id=target_space_id,
        ),
        actor_id=actor_id,
    )
    return {"page": require_found(page, "page", page_id).to_dict()}


@rpc_handler("kb/pages/delete")
def handle_kb_pages_delete(store: KnowledgeStore, *, page_id: str) -> dict[str, Any]:
    return {"ok": store.delete_page(page_id)}


@rpc_handler("kb/tree")
def handle_kb_tree(store: KnowledgeStore, *, space_id: str) -> dict[str, Any]:
    require_found(store.get_space_by_id(space_id), "space", space_id)
    return {"tree": [node.to_dict() for node in store.build_page_tree(space_id)]}


# =============================================================================
# Version Handlers
# =============================================================================


@rpc_handler("kb/versions/list")
def handle_kb_versions_list(store: KnowledgeStore, *, page_id: str) -> dict[str, Any]:
    versions = store.list_versions(page_id)
    return {
        "versions": [
            {k: v for k, v in version.to_dict().items() if k != "content"}
            for version in versions
        ]
    }


@rpc_handler("kb/versions/get")
def handle_kb_versions_get(store: KnowledgeStore, *, page_id: str, version: int) -> dict[str, Any]:
    snapshot = require_found(store.get_version(page_id, version), "version", f"{page_id}@{version}")
    return {"version": snapshot.to_dict()}


@rpc_handler("kb/versions/compare")
def handle_kb_versions_compare(
    store: KnowledgeStore,
    *,
    page_id: str,
    from_version: int,
    to_version: int,
) -> dict[str, Any]:
    older = require_found(store.get_version(page_id, from_version), "version", f"{page_id}@{from_version}")
    newer = require_found(store.get_version(page_id, to_version), "version", f"{page_id}@{to_version}")
    return {"diff": compare_versions(older, newer).to_dict()}


@rpc_handler("kb/versions/restore")
def handle_kb_versions_restore(
    store: KnowledgeStore,
    *,
    actor_id: str,
    page_id: str,
    version: int,
) -> dict[str, Any]:
    page = store.restore_version(page_id, version, actor_id=actor_id)
    return {"page": require_found(page, "version", f"{page_id}@{version}").to_dict()}


# =============================================================================
# Search and Markdown Handlers
# =============================================================================


@rpc_handler("kb/search")
def handle_kb_search(
    store: KnowledgeStore,
    *,
    query: str,
    space_id: str | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    results = store.search(query, space_id=space_id, limit=limit)
    return {"results": [result.to_dict() for result in results]}


@rpc_handler("kb/pages/markdown")
def handle_kb_pages_markdown(
    store: KnowledgeStore,
    *,
    page_id: str,
    include_title: bool = True,
) -> dict[str, Any]:
    """Export a page body as Markdown."""
    page = require_found(store.get_page(page_id), "page", page_id)
    return {"markdown": render_markdown(page.content, title=page.title if include_title else None)}


@rpc_handler("kb/pages/import_markdown")
def handle_kb_pages_import_markdown(
    store: KnowledgeStore,
    *,
    actor_id: str,
    markdown: str,
    space_id: str | None = None,
    title: str | None = None,
    parent_id: str | None = None,
    page_id: str | None = None,
) -> dict[str, Any]:
    """Create a page from Markdown, or replace an existing page's body.

    With ``page_id`` the page body is replaced (a new version); otherwise a
    page is created in ``space_id`` titled ``title``.
    """
    blocks = parse_markdown(markdown)
    logger.debug("Imported %d blocks from markdown", len(blocks))

    if page_id is not None:
        page = store.update_page(
            page_id,
            UpdatePageInput(content=blocks or None, change_message="Imported from Markdown"),
            actor_id=actor_id,
        )
        return {"page": require_found(page, "page", page_id).to_dict(), "block_count": len(blocks)}

    if space_id is None or title is None:
        raise ValueError("space_id and title are required to create a page")
    page = store.create_page(
        CreatePageInput(space_id=space_id, title=title, content=blocks, parent_id=parent_id),
        actor_id=actor_id,
    )
    return {"page": page.to_dict(), "block_count": len(blocks)}
