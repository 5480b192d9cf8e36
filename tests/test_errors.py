from __future__ import annotations

import sqlite3

import pytest

from folio.errors import (
    ConfigurationError,
    ConflictError,
    FolioError,
    NotFoundError,
    PersistenceError,
    SaveInProgressError,
    TreeCorruptionError,
    ValidationError,
    error_response,
    get_error_code,
    handle_errors,
)
from folio.kb.kb_db import _retry_on_locked


# =============================================================================
# Error Hierarchy Tests
# =============================================================================


class TestErrorHierarchy:
    def test_all_errors_are_folio_errors(self) -> None:
        for exc in (
            ValidationError("x"),
            TreeCorruptionError("x"),
            NotFoundError("x"),
            ConflictError("x"),
            SaveInProgressError(),
            PersistenceError("x"),
            ConfigurationError("x"),
        ):
            assert isinstance(exc, FolioError)

    def test_validation_context(self) -> None:
        exc = ValidationError("Bad key", field="key", value="x" * 200, constraint="pattern")

        data = exc.to_dict()

        assert data["type"] == "validation"
        assert data["field"] == "key"
        assert data["constraint"] == "pattern"
        assert data["value"].endswith("...")
        assert len(data["value"]) == 103

    def test_tree_corruption_is_validation(self) -> None:
        exc = TreeCorruptionError("loop", page_id="page-1")

        assert isinstance(exc, ValidationError)
        assert exc.to_dict()["page_id"] == "page-1"

    def test_recoverable_flags(self) -> None:
        assert SaveInProgressError().recoverable
        assert ConflictError("x").recoverable
        assert not NotFoundError("x").recoverable


class TestErrorCodes:
    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (ValidationError("x"), -32000),
            (TreeCorruptionError("x"), -32000),
            (NotFoundError("x"), -32003),
            (ConflictError("x"), -32005),
            (SaveInProgressError(), -32006),
            (PersistenceError("x"), -32020),
            (ConfigurationError("x"), -32030),
            (FolioError("x"), -32603),
        ],
    )
    def test_codes(self, exc: FolioError, code: int) -> None:
        assert get_error_code(exc) == code

    def test_error_response_for_plain_exception(self) -> None:
        response = error_response(RuntimeError("boom"))

        assert response.to_dict() == {"error": {"type": "internal", "message": "boom", "recoverable": False}}

    def test_error_response_for_domain_error(self) -> None:
        response = error_response(NotFoundError("gone", resource_type="page", resource_id="page-1"))

        assert response.error_type == "notfound"
        assert response.details["resource_id"] == "page-1"


# =============================================================================
# Decorators
# =============================================================================


class TestHandleErrors:
    def test_domain_errors_pass_through(self) -> None:
        @handle_errors("do thing")
        def fn() -> None:
            raise ValidationError("bad")

        with pytest.raises(ValidationError):
            fn()

    def test_operational_error_is_recoverable(self) -> None:
        @handle_errors("write page", table="pages")
        def fn() -> None:
            raise sqlite3.OperationalError("disk I/O error")

        with pytest.raises(PersistenceError) as exc_info:
            fn()

        assert exc_info.value.recoverable
        assert exc_info.value.context["table"] == "pages"
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)

    def test_unexpected_error_wrapped(self) -> None:
        @handle_errors("read page")
        def fn() -> None:
            raise KeyError("content")

        with pytest.raises(PersistenceError) as exc_info:
            fn()

        assert exc_info.value.context["error_type"] == "KeyError"
        assert not exc_info.value.recoverable


class TestRetryOnLocked:
    def test_locked_write_retried(self) -> None:
        calls = []

        @_retry_on_locked
        def write() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "ok"

        assert write() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_three_attempts(self) -> None:
        calls = []

        @_retry_on_locked
        def write() -> None:
            calls.append(1)
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(sqlite3.OperationalError):
            write()
        assert len(calls) == 3

    def test_other_errors_not_retried(self) -> None:
        calls = []

        @_retry_on_locked
        def write() -> None:
            calls.append(1)
            raise sqlite3.IntegrityError("UNIQUE constraint failed")

        with pytest.raises(sqlite3.IntegrityError):
            write()
        assert len(calls) == 1
