"""FastAPI application factory.

The knowledge store is created here (or injected by the caller) and attached
to ``app.state.store``; nothing below this module holds a global store.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from . import __version__
from .http_rpc import router
from .kb.kb_db import SqliteKnowledgeStore
from .kb.store import KnowledgeStore
from .kb.templates import seed_demo_data
from .settings import settings

logger = logging.getLogger(__name__)


def create_app(store: KnowledgeStore | None = None, *, seed_demo: bool | None = None) -> FastAPI:
    """Build the HTTP app.

    Args:
        store: Store to serve. When omitted a ``SqliteKnowledgeStore`` at the
            default path is opened and closed with the app.
        seed_demo: Seed demo spaces into an empty store. Defaults to
            ``settings.seed_demo_data``.
    """
    owns_store = store is None
    active_store = store if store is not None else SqliteKnowledgeStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_store and isinstance(active_store, SqliteKnowledgeStore):
            active_store.close()

    app = FastAPI(title="Folio", version=__version__, lifespan=lifespan)
    app.state.store = active_store

    if settings.seed_demo_data if seed_demo is None else seed_demo:
        if seed_demo_data(active_store):
            logger.info("Demo data seeded")

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    return app
