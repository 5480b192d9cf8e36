"""Space RPC handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from folio.kb.models import CreateSpaceInput, SpaceType, UpdateSpaceInput

from ._base import require_found, rpc_handler

if TYPE_CHECKING:
    from folio.kb.store import KnowledgeStore


@rpc_handler("kb/spaces/list")
def handle_kb_spaces_list(store: KnowledgeStore) -> dict[str, Any]:
    """List spaces that are not deleted, each with its page count."""
    spaces = []
    for space in store.list_spaces():
        data = space.to_dict()
        data["page_count"] = store.count_pages(space.id)
        spaces.append(data)
    return {"spaces": spaces}


@rpc_handler("kb/spaces/get")
def handle_kb_spaces_get(
    store: KnowledgeStore,
    *,
    space_id: str | None = None,
    key: str | None = None,
) -> dict[str, Any]:
    """Get a space by id or by key."""
    if space_id is None and key is None:
        raise ValueError("space_id or key is required")
    if space_id is not None:
        space = require_found(store.get_space_by_id(space_id), "space", space_id)
    else:
        space = require_found(store.get_space_by_key(key), "space", key)
    return {"space": space.to_dict()}


@rpc_handler("kb/spaces/create")
def handle_kb_spaces_create(
    store: KnowledgeStore,
    *,
    actor_id: str,
    key: str,
    name: str,
    description: str = "",
    type: str = SpaceType.TEAM.value,
    icon: str | None = None,
    color: str | None = None,
) -> dict[str, Any]:
    space = store.create_space(
        CreateSpaceInput(key=key, name=name, description=description, type=type, icon=icon, color=color),
        actor_id=actor_id,
    )
    return {"space": space.to_dict()}


@rpc_handler("kb/spaces/update")
def handle_kb_spaces_update(
    store: KnowledgeStore,
    *,
    actor_id: str,
    space_id: str,
    name: str | None = None,
    description: str | None = None,
    status: str | None = None,
    icon: str | None = None,
    color: str | None = None,
    homepage_id: str | None = None,
) -> dict[str, Any]:
    space = store.update_space(
        space_id,
        UpdateSpaceInput(
            name=name,
            description=description,
            status=status,
            icon=icon,
            color=color,
            homepage_id=homepage_id,
        ),
        actor_id=actor_id,
    )
    return {"space": require_found(space, "space", space_id).to_dict()}


@rpc_handler("kb/spaces/delete")
def handle_kb_spaces_delete(store: KnowledgeStore, *, actor_id: str, space_id: str) -> dict[str, Any]:
    return {"ok": store.delete_space(space_id, actor_id=actor_id)}
