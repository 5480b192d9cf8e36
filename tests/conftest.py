from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from folio.app import create_app
from folio.kb.kb_db import SqliteKnowledgeStore
from folio.kb.models import CreatePageInput, CreateSpaceInput, Page, Space

ACTOR = "user-1"


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[SqliteKnowledgeStore]:
    """A store backed by a throwaway database file.

    ``FOLIO_DATA_DIR`` is pointed at the temp dir too, so nothing in a test
    can reach the real data directory.
    """
    monkeypatch.setenv("FOLIO_DATA_DIR", str(tmp_path))
    kb = SqliteKnowledgeStore(tmp_path / "kb-test.db")
    try:
        yield kb
    finally:
        kb.close()


@pytest.fixture
def actor() -> str:
    return ACTOR


@pytest.fixture
def space(store: SqliteKnowledgeStore) -> Space:
    return store.create_space(CreateSpaceInput(key="ENG", name="Engineering"), actor_id=ACTOR)


@pytest.fixture
def make_page(store: SqliteKnowledgeStore, space: Space):
    """Factory creating pages in the default space."""

    def _make(title: str, parent_id: str | None = None, **kwargs) -> Page:
        return store.create_page(
            CreatePageInput(space_id=kwargs.pop("space_id", space.id), title=title, parent_id=parent_id, **kwargs),
            actor_id=ACTOR,
        )

    return _make


@pytest.fixture
def client(store: SqliteKnowledgeStore) -> Iterator[TestClient]:
    """HTTP client against an app serving ``store``."""
    app = create_app(store, seed_demo=False)
    with TestClient(app, headers={"Authorization": f"Bearer {ACTOR}"}) as test_client:
        yield test_client
