"""Folio Error Hierarchy.

Provides a structured error hierarchy for all knowledge base operations:
- FolioError: Base exception for all application errors
- ValidationError: Input validation failures (bad title, key, slug, tree shape)
- NotFoundError: Missing resource (RPC layer only; store reads return None)
- ConflictError: Concurrent version mismatch (reserved, never raised yet)
- PersistenceError: The storage collaborator failed
- ConfigurationError: Configuration/setup issues

Each error type includes:
- Descriptive message
- Optional context for debugging
- Recoverable flag for retry logic
- Structured representation for RPC responses

Usage:
    from folio.errors import ValidationError

    if not title.strip():
        raise ValidationError("Page title cannot be empty", field="title")
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable

logger = logging.getLogger(__name__)


# =============================================================================
# Error Base Class
# =============================================================================


class FolioError(Exception):
    """Base exception for all Folio application errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to structured dictionary for RPC responses."""
        return {
            "type": type(self).__name__.lower().replace("error", ""),
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(FolioError):
    """Input validation failed.

    Example:
        raise ValidationError("Space key is malformed", field="key", value=key)
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if constraint:
            context["constraint"] = constraint
        if value is not None:
            context["value"] = _truncate(str(value), 100)
        super().__init__(message, recoverable=False, context=context)
        self.field = field
        self.constraint = constraint


class TreeCorruptionError(ValidationError):
    """A page parent chain loops or exceeds the maximum depth."""

    def __init__(
        self,
        message: str,
        *,
        page_id: str | None = None,
        depth: int | None = None,
    ) -> None:
        super().__init__(
            message,
            field="parent_id",
            constraint="acyclic",
            context={"page_id": page_id, "depth": depth},
        )
        self.page_id = page_id


# =============================================================================
# Lookup / Concurrency Errors
# =============================================================================


class NotFoundError(FolioError):
    """Resource not found."""

    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={"resource_type": resource_type, "resource_id": resource_id},
        )


class ConflictError(FolioError):
    """Page was changed by someone else since it was loaded.

    Nothing raises this yet: writes are last-writer-wins until a version
    check policy is decided.
    """

    def __init__(
        self,
        message: str,
        *,
        page_id: str | None = None,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=True,
            context={
                "page_id": page_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class SaveInProgressError(FolioError):
    """A save for this editor session is still outstanding."""

    def __init__(self, message: str = "A save is already in progress", *, page_id: str | None = None) -> None:
        super().__init__(message, recoverable=True, context={"page_id": page_id})


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(FolioError):
    """Storage operation failed."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        table: str | None = None,
        recoverable: bool = False,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if operation:
            context["operation"] = operation
        if table:
            context["table"] = table
        super().__init__(message, recoverable=recoverable, context=context)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(FolioError):
    """Configuration or setup issue."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={
                "setting": setting,
                "expected": expected,
                "suggestion": suggestion,
            },
        )


# =============================================================================
# Error Handling Decorator
# =============================================================================


def handle_errors(operation: str, *, table: str | None = None) -> Callable:
    """Decorator that turns storage failures into PersistenceError.

    FolioError exceptions propagate as-is since they're already structured.
    ``sqlite3.Error`` (and anything else unexpected) is logged with context and
    re-raised as PersistenceError, chained to the original.

    Usage:
        @handle_errors("create page", table="pages")
        def create_page(self, data, *, actor_id): ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except FolioError:
                raise
            except sqlite3.OperationalError as e:
                logger.error("Failed to %s: %s (function=%s)", operation, e, func.__name__)
                raise PersistenceError(
                    f"Failed to {operation}: {e}",
                    operation=operation,
                    table=table,
                    recoverable=True,
                ) from e
            except Exception as e:
                logger.error(
                    "Failed to %s: %s (function=%s, args_preview=%s)",
                    operation,
                    e,
                    func.__name__,
                    str(args[1:])[:100],
                )
                raise PersistenceError(
                    f"Failed to {operation}: {e}",
                    operation=operation,
                    table=table,
                    context={"error_type": type(e).__name__},
                ) from e

        return wrapper

    return decorator


# =============================================================================
# Helpers
# =============================================================================


def _truncate(value: str | None, max_len: int) -> str | None:
    """Truncate a string value for safe logging."""
    if value is None:
        return None
    if len(value) <= max_len:
        return value
    return value[:max_len] + "..."


# =============================================================================
# Error Response Helpers
# =============================================================================


@dataclass
class ErrorResponse:
    """Structured error response for API/RPC layers."""

    error_type: str
    message: str
    recoverable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "error": {
                "type": self.error_type,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


def error_response(exc: Exception) -> ErrorResponse:
    """Convert an exception to a structured error response."""
    if isinstance(exc, FolioError):
        return ErrorResponse(
            error_type=type(exc).__name__.lower().replace("error", ""),
            message=exc.message,
            recoverable=exc.recoverable,
            details=exc.context,
        )

    return ErrorResponse(
        error_type="internal",
        message=str(exc) if str(exc) else "An unexpected error occurred",
        recoverable=False,
    )


# =============================================================================
# RPC Error Code Mapping
# =============================================================================


ERROR_CODES: dict[type[FolioError], int] = {
    ValidationError: -32000,
    TreeCorruptionError: -32000,
    NotFoundError: -32003,
    ConflictError: -32005,
    SaveInProgressError: -32006,
    PersistenceError: -32020,
    ConfigurationError: -32030,
}


def get_error_code(exc: FolioError) -> int:
    """Get the JSON-RPC error code for a domain error."""
    if type(exc) in ERROR_CODES:
        return ERROR_CODES[type(exc)]
    for error_type, code in ERROR_CODES.items():
        if isinstance(exc, error_type):
            return code
    return -32603
