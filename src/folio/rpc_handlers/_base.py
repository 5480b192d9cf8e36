"""Base utilities for RPC handlers.

Provides decorators and helpers for standardized error handling across
all RPC handler modules.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable

from folio.errors import FolioError, NotFoundError, get_error_code
from folio.kb.blocks_models import ContentBlock, blocks_from_json

from . import INTERNAL_ERROR, INVALID_PARAMS, RpcError

if TYPE_CHECKING:
    from folio.kb.store import KnowledgeStore

logger = logging.getLogger(__name__)


def rpc_handler(method_name: str) -> Callable:
    """Decorator that converts domain errors to RpcError.

    Standardizes error handling for RPC handlers by:
    1. Propagating RpcError unchanged
    2. Converting FolioError to structured RpcError
    3. Converting ValueError to parameter error (-32602)
    4. Logging and converting unexpected exceptions to internal error (-32603)

    Args:
        method_name: The RPC method name (e.g., "kb/pages/create")

    Usage:
        @rpc_handler("kb/spaces/get")
        def handle_kb_spaces_get(store: KnowledgeStore, *, key: str) -> dict:
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(store: "KnowledgeStore", **kwargs: Any) -> Any:
            try:
                return func(store, **kwargs)
            except RpcError:
                # Already an RPC error, propagate as-is
                raise
            except FolioError as e:
                # Convert domain error to RPC error with structured data
                raise RpcError(
                    code=get_error_code(e),
                    message=e.message,
                    data=e.to_dict(),
                ) from e
            except ValueError as e:
                # Parameter validation errors
                raise RpcError(
                    code=INVALID_PARAMS,
                    message=str(e),
                ) from e
            except TypeError as e:
                # Missing or wrong parameter type
                raise RpcError(
                    code=INVALID_PARAMS,
                    message=f"Invalid parameter: {e}",
                ) from e
            except Exception as e:
                logger.error(
                    "Internal error in RPC handler %s: %s",
                    method_name,
                    e,
                    exc_info=True,
                )
                raise RpcError(
                    code=INTERNAL_ERROR,
                    message=f"Internal error in {method_name}",
                    data={"error_type": type(e).__name__},
                ) from e

        return wrapper

    return decorator


def require_found(value: Any, resource_type: str, resource_id: str) -> Any:
    """Turn a store's None into NotFoundError for the RPC caller."""
    if value is None:
        raise NotFoundError(
            f"{resource_type.capitalize()} not found: {resource_id}",
            resource_type=resource_type,
            resource_id=resource_id,
        )
    return value


def parse_blocks(content: Any) -> list[ContentBlock] | None:
    """Decode a JSON block list param; None stays None."""
    if content is None:
        return None
    if not isinstance(content, list):
        raise ValueError("content must be a list of blocks")
    return blocks_from_json(content)
