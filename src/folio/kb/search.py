"""Title search over pages."""

from __future__ import annotations

import re
from typing import Iterable, Mapping

from ..settings import settings
from .blocks_models import BlockType, ContentBlock
from .models import Page, SearchResult, Space, SpaceStatus

# Paragraph blocks that make up a result excerpt
EXCERPT_PARAGRAPHS = 2


def build_excerpt(content: Iterable[ContentBlock], max_length: int | None = None) -> str:
    """First paragraphs of a page body, joined by spaces and cut to length."""
    limit = settings.excerpt_length if max_length is None else max_length
    paragraphs = [b.content for b in content if b.type == BlockType.PARAGRAPH][:EXCERPT_PARAGRAPHS]
    return " ".join(paragraphs)[:limit]


def highlight_matches(text: str, query: str) -> str:
    """Wrap each case-insensitive occurrence of ``query`` in ``<mark>`` tags."""
    if not query:
        return text
    pattern = re.compile(f"({re.escape(query)})", re.IGNORECASE)
    return pattern.sub(r"<mark>\1</mark>", text)


def search_pages(
    pages: Iterable[Page],
    spaces_by_id: Mapping[str, Space],
    query: str,
    space_id: str | None = None,
    limit: int | None = None,
) -> list[SearchResult]:
    """Find pages whose title contains ``query``.

    Pages are scanned in the given order; pages in missing or deleted spaces
    are skipped. The scan stops once ``limit`` results are collected.

    Args:
        pages: Candidate pages.
        spaces_by_id: Spaces for looking up key and name.
        query: Text to look for, matched case-insensitively with leading and
            trailing whitespace removed, so " deploy " finds "Deploy Guide".
            Blank queries return no results.
        space_id: Only search this space.
        limit: Maximum results (defaults to ``settings.search_limit``).
    """
    needle = query.strip().lower() if query else ""
    if not needle:
        return []
    max_results = settings.search_limit if limit is None else limit

    results: list[SearchResult] = []
    for page in pages:
        if len(results) >= max_results:
            break
        space = spaces_by_id.get(page.space_id)
        if space is None or space.status == SpaceStatus.DELETED:
            continue
        if space_id is not None and page.space_id != space_id:
            continue
        if needle not in page.title.lower():
            continue

        results.append(SearchResult(
            id=page.id,
            title=page.title,
            excerpt=build_excerpt(page.content),
            space_key=space.key,
            space_name=space.name,
            page_id=page.id,
            page_title=page.title,
            updated_at=page.updated_at,
            highlight=highlight_matches(page.title, query.strip()),
        ))

    return results
