"""Page version history.

Snapshots are written by the store inside the same transaction that bumps
``pages.version``, so version row N always describes the page exactly as it
was at version N. The helpers here take an open connection and never commit.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from .blocks_models import ContentBlock, blocks_from_json
from .models import PageVersion

logger = logging.getLogger(__name__)


def _row_to_version(row: sqlite3.Row) -> PageVersion:
    return PageVersion(
        id=row["version_id"],
        page_id=row["page_id"],
        version=row["version"],
        title=row["title"],
        content=blocks_from_json(json.loads(row["content"])),
        change_message=row["change_message"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def record_snapshot(
    conn: sqlite3.Connection,
    page_id: str,
    *,
    change_message: str | None,
    actor_id: str,
) -> PageVersion:
    """Copy the current row of ``page_id`` into page_versions.

    Must run in the transaction that last modified the page.
    """
    row = conn.execute(
        "SELECT version, title, content FROM pages WHERE page_id = ?",
        (page_id,),
    ).fetchone()
    if row is None:
        raise LookupError(f"Page {page_id} vanished during snapshot")

    version_id = f"ver-{uuid4().hex[:12]}"
    now = datetime.now(timezone.utc).isoformat()
    conn.execute(
        """
        INSERT INTO page_versions
            (version_id, page_id, version, title, content, change_message, created_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (version_id, page_id, row["version"], row["title"], row["content"], change_message, actor_id, now),
    )
    logger.debug("Recorded version %d of page %s", row["version"], page_id)
    return PageVersion(
        id=version_id,
        page_id=page_id,
        version=row["version"],
        title=row["title"],
        content=blocks_from_json(json.loads(row["content"])),
        change_message=change_message,
        created_by=actor_id,
        created_at=now,
    )


def list_versions(conn: sqlite3.Connection, page_id: str) -> list[PageVersion]:
    """All snapshots of a page, newest first."""
    rows = conn.execute(
        "SELECT * FROM page_versions WHERE page_id = ? ORDER BY version DESC",
        (page_id,),
    ).fetchall()
    return [_row_to_version(row) for row in rows]


def get_version(conn: sqlite3.Connection, page_id: str, version: int) -> PageVersion | None:
    row = conn.execute(
        "SELECT * FROM page_versions WHERE page_id = ? AND version = ?",
        (page_id, version),
    ).fetchone()
    return _row_to_version(row) if row else None


# =============================================================================
# Comparing Versions
# =============================================================================


@dataclass
class VersionDiff:
    """Block-level differences between two snapshots of a page.

    Blocks are matched by id, so a retyped or edited block shows up in
    ``changed`` rather than as a removal plus an addition.
    """

    from_version: int
    to_version: int
    title_changed: bool
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    reordered: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.title_changed or self.added or self.removed or self.changed or self.reordered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "title_changed": self.title_changed,
            "added": self.added,
            "removed": self.removed,
            "changed": self.changed,
            "reordered": self.reordered,
        }


def compare_versions(older: PageVersion, newer: PageVersion) -> VersionDiff:
    old_blocks: dict[str, ContentBlock] = {b.id: b for b in older.content}
    new_blocks: dict[str, ContentBlock] = {b.id: b for b in newer.content}

    added = [bid for bid in new_blocks if bid not in old_blocks]
    removed = [bid for bid in old_blocks if bid not in new_blocks]
    changed = [
        bid for bid, block in new_blocks.items()
        if bid in old_blocks and block != old_blocks[bid]
    ]
    kept_old = [bid for bid in old_blocks if bid in new_blocks]
    kept_new = [bid for bid in new_blocks if bid in old_blocks]

    return VersionDiff(
        from_version=older.version,
        to_version=newer.version,
        title_changed=older.title != newer.title,
        added=added,
        removed=removed,
        changed=changed,
        reordered=kept_old != kept_new,
    )
