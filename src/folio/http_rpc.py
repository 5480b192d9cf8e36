"""FastAPI APIRouter exposing the knowledge base over JSON-RPC 2.0.

Auth model: every request carries ``Authorization: Bearer <actor id>``.
Identity verification happens in front of this service; the router only
checks that a well-formed actor id is present and injects it into handlers
that record who did what.

The dispatcher is a flat `_METHODS` registry mapping JSON-RPC method names to
`(handler, needs_actor)` pairs so adding a new handler is a one-line change.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from folio.kb.store import KnowledgeStore
from folio.rpc_handlers import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RpcError,
)
from folio.rpc_handlers.collaboration import (
    handle_kb_activity,
    handle_kb_comments_add,
    handle_kb_comments_list,
    handle_kb_comments_resolve,
    handle_kb_labels_add,
    handle_kb_labels_create,
    handle_kb_labels_list,
    handle_kb_labels_remove,
    handle_kb_recent_list,
    handle_kb_recent_record,
    handle_kb_templates_create,
    handle_kb_templates_get,
    handle_kb_templates_list,
)
from folio.rpc_handlers.pages import (
    handle_kb_pages_create,
    handle_kb_pages_delete,
    handle_kb_pages_get,
    handle_kb_pages_import_markdown,
    handle_kb_pages_list,
    handle_kb_pages_markdown,
    handle_kb_pages_move,
    handle_kb_pages_update,
    handle_kb_search,
    handle_kb_tree,
    handle_kb_versions_compare,
    handle_kb_versions_get,
    handle_kb_versions_list,
    handle_kb_versions_restore,
)
from folio.rpc_handlers.spaces import (
    handle_kb_spaces_create,
    handle_kb_spaces_delete,
    handle_kb_spaces_get,
    handle_kb_spaces_list,
    handle_kb_spaces_update,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=False)

_ACTOR_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._@:-]{0,127}$")


async def require_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),  # noqa: B008
) -> str:
    """FastAPI dependency: return the actor id carried by the Bearer credential."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    actor_id = credentials.credentials.strip()
    if not _ACTOR_ID.match(actor_id):
        raise HTTPException(status_code=401, detail="Malformed actor id")
    return actor_id


def get_store(request: Request) -> KnowledgeStore:
    """FastAPI dependency: the store attached to the running app."""
    return request.app.state.store


# ---------------------------------------------------------------------------
# Method registry
# ---------------------------------------------------------------------------

_METHODS: dict[str, tuple[Callable[..., Any], bool]] = {
    # spaces
    "kb/spaces/list": (handle_kb_spaces_list, False),
    "kb/spaces/get": (handle_kb_spaces_get, False),
    "kb/spaces/create": (handle_kb_spaces_create, True),
    "kb/spaces/update": (handle_kb_spaces_update, True),
    "kb/spaces/delete": (handle_kb_spaces_delete, True),
    # pages
    "kb/pages/list": (handle_kb_pages_list, False),
    "kb/pages/get": (handle_kb_pages_get, True),
    "kb/pages/create": (handle_kb_pages_create, True),
    "kb/pages/update": (handle_kb_pages_update, True),
    "kb/pages/move": (handle_kb_pages_move, True),
    "kb/pages/delete": (handle_kb_pages_delete, False),
    "kb/pages/markdown": (handle_kb_pages_markdown, False),
    "kb/pages/import_markdown": (handle_kb_pages_import_markdown, True),
    "kb/tree": (handle_kb_tree, False),
    # versions
    "kb/versions/list": (handle_kb_versions_list, False),
    "kb/versions/get": (handle_kb_versions_get, False),
    "kb/versions/compare": (handle_kb_versions_compare, False),
    "kb/versions/restore": (handle_kb_versions_restore, True),
    # search
    "kb/search": (handle_kb_search, False),
    # labels
    "kb/labels/list": (handle_kb_labels_list, False),
    "kb/labels/create": (handle_kb_labels_create, False),
    "kb/labels/add": (handle_kb_labels_add, True),
    "kb/labels/remove": (handle_kb_labels_remove, False),
    # templates
    "kb/templates/list": (handle_kb_templates_list, False),
    "kb/templates/get": (handle_kb_templates_get, False),
    "kb/templates/create": (handle_kb_templates_create, True),
    # comments
    "kb/comments/list": (handle_kb_comments_list, False),
    "kb/comments/add": (handle_kb_comments_add, True),
    "kb/comments/resolve": (handle_kb_comments_resolve, False),
    # activity / recent
    "kb/activity": (handle_kb_activity, False),
    "kb/recent/list": (handle_kb_recent_list, True),
    "kb/recent/record": (handle_kb_recent_record, True),
}


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 dispatcher
# ---------------------------------------------------------------------------


class RpcRequest(BaseModel):
    """Envelope of a single JSON-RPC 2.0 request."""

    jsonrpc: str = "2.0"
    id: str | int | None = None
    method: str = Field(min_length=1)
    params: dict[str, Any] | None = None


def _build_rpc_error(
    req_id: str | int | None, code: int, message: str, data: Any = None
) -> dict[str, Any]:
    err: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": "2.0", "id": req_id, "error": err}


def _build_rpc_result(req_id: str | int | None, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


async def _dispatch(store: KnowledgeStore, body: dict[str, Any], actor_id: str) -> dict[str, Any]:
    """Core JSON-RPC 2.0 dispatcher for a single request object.

    Separated from the route handler so it can be tested without a full HTTP
    request cycle.
    """
    raw_id = body.get("id")
    try:
        request = RpcRequest.model_validate(body)
    except PydanticValidationError as exc:
        req_id = raw_id if isinstance(raw_id, (str, int)) else None
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        return _build_rpc_error(
            req_id,
            INVALID_REQUEST,
            f"Invalid Request: bad {', '.join(fields) or 'envelope'}",
            {"fields": fields},
        )

    req_id = request.id
    method = request.method
    params = request.params or {}

    entry = _METHODS.get(method)
    if entry is None:
        return _build_rpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    handler, needs_actor = entry

    # The actor always comes from the credential, never from params.
    handler_params = {k: v for k, v in params.items() if not k.startswith("__") and k != "actor_id"}
    if needs_actor:
        handler_params["actor_id"] = actor_id

    try:
        result = await asyncio.to_thread(handler, store, **handler_params)
        return _build_rpc_result(req_id, result)
    except RpcError as exc:
        return _build_rpc_error(req_id, exc.code, exc.message, exc.data)
    except TypeError as exc:
        # Wrong or missing parameters surface as invalid params
        return _build_rpc_error(req_id, INVALID_PARAMS, f"Invalid parameters: {exc}")
    except Exception as exc:
        logger.exception("Unexpected error in method=%s", method)
        return _build_rpc_error(
            req_id,
            INTERNAL_ERROR,
            f"Internal error in {method}",
            {"error_type": type(exc).__name__},
        )


@router.post("/rpc")
async def rpc_dispatch(
    request: Request,
    actor_id: str = Depends(require_auth),
    store: KnowledgeStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    """JSON-RPC 2.0 endpoint for all knowledge base calls.

    Accepts a single JSON-RPC request object (batch not supported).
    """
    try:
        body = await request.json()
    except Exception:
        return _build_rpc_error(None, PARSE_ERROR, "Parse error: invalid JSON")

    if not isinstance(body, dict):
        return _build_rpc_error(None, INVALID_REQUEST, "Invalid Request: expected a JSON object")

    return await _dispatch(store, body, actor_id)
