"""Labels, templates, comments, activity and recent-page RPC handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from folio.kb.models import CreateTemplateInput, LabelColor

from ._base import parse_blocks, require_found, rpc_handler

if TYPE_CHECKING:
    from folio.kb.store import KnowledgeStore


# =============================================================================
# Labels
# =============================================================================


@rpc_handler("kb/labels/list")
def handle_kb_labels_list(
    store: KnowledgeStore,
    *,
    space_id: str | None = None,
    page_id: str | None = None,
) -> dict[str, Any]:
    """Labels of a space, or the labels attached to one page."""
    if page_id is not None:
        labels = store.list_page_labels(page_id)
    elif space_id is not None:
        labels = store.list_labels(space_id)
    else:
        raise ValueError("space_id or page_id is required")
    return {"labels": [label.to_dict() for label in labels]}


@rpc_handler("kb/labels/create")
def handle_kb_labels_create(
    store: KnowledgeStore,
    *,
    space_id: str,
    name: str,
    color: str = LabelColor.BLUE.value,
    description: str | None = None,
) -> dict[str, Any]:
    label = store.create_label(space_id, name, color, description=description)
    return {"label": label.to_dict()}


@rpc_handler("kb/labels/add")
def handle_kb_labels_add(store: KnowledgeStore, *, actor_id: str, page_id: str, label_id: str) -> dict[str, Any]:
    return {"ok": store.add_label_to_page(page_id, label_id, actor_id=actor_id)}


@rpc_handler("kb/labels/remove")
def handle_kb_labels_remove(store: KnowledgeStore, *, page_id: str, label_id: str) -> dict[str, Any]:
    return {"ok": store.remove_label_from_page(page_id, label_id)}


# =============================================================================
# Templates
# =============================================================================


@rpc_handler("kb/templates/list")
def handle_kb_templates_list(store: KnowledgeStore, *, space_id: str | None = None) -> dict[str, Any]:
    return {"templates": [template.to_dict() for template in store.list_templates(space_id)]}


@rpc_handler("kb/templates/get")
def handle_kb_templates_get(store: KnowledgeStore, *, template_id: str) -> dict[str, Any]:
    template = require_found(store.get_template(template_id), "template", template_id)
    return {"template": template.to_dict()}


@rpc_handler("kb/templates/create")
def handle_kb_templates_create(
    store: KnowledgeStore,
    *,
    actor_id: str,
    name: str,
    content: list[dict[str, Any]],
    description: str = "",
    space_id: str | None = None,
    category: str | None = None,
) -> dict[str, Any]:
    template = store.create_template(
        CreateTemplateInput(
            name=name,
            content=parse_blocks(content) or [],
            description=description,
            space_id=space_id,
            category=category,
        ),
        actor_id=actor_id,
    )
    return {"template": template.to_dict()}


# =============================================================================
# Comments
# =============================================================================


@rpc_handler("kb/comments/list")
def handle_kb_comments_list(store: KnowledgeStore, *, page_id: str) -> dict[str, Any]:
    return {"comments": [comment.to_dict() for comment in store.list_comments(page_id)]}


@rpc_handler("kb/comments/add")
def handle_kb_comments_add(
    store: KnowledgeStore,
    *,
    actor_id: str,
    page_id: str,
    content: str,
    parent_id: str | None = None,
) -> dict[str, Any]:
    comment = store.add_comment(page_id, content, actor_id=actor_id, parent_id=parent_id)
    return {"comment": comment.to_dict()}


@rpc_handler("kb/comments/resolve")
def handle_kb_comments_resolve(store: KnowledgeStore, *, comment_id: str) -> dict[str, Any]:
    return {"ok": store.resolve_comment(comment_id)}


# =============================================================================
# Activity and Recent Pages
# =============================================================================


@rpc_handler("kb/activity")
def handle_kb_activity(store: KnowledgeStore, *, page_id: str, limit: int | None = None) -> dict[str, Any]:
    return {"activity": [entry.to_dict() for entry in store.list_page_activity(page_id, limit)]}


@rpc_handler("kb/recent/list")
def handle_kb_recent_list(store: KnowledgeStore, *, actor_id: str, limit: int = 10) -> dict[str, Any]:
    return {"pages": [recent.to_dict() for recent in store.list_recent_pages(actor_id, limit)]}


@rpc_handler("kb/recent/record")
def handle_kb_recent_record(store: KnowledgeStore, *, actor_id: str, page_id: str) -> dict[str, Any]:
    store.record_page_visit(page_id, actor_id)
    return {"ok": True}
