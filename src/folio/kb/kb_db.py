"""SQLite-backed knowledge store.

Each ``SqliteKnowledgeStore`` owns one connection. The connection is opened
with ``check_same_thread=False`` and every access goes through a re-entrant
lock, so the editor controller can save from ``asyncio.to_thread`` workers.

Transient "database is locked" failures on writes are retried with tenacity
before they surface as PersistenceError.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator
from uuid import uuid4

import tenacity

from ..errors import PersistenceError, ValidationError, handle_errors
from ..settings import settings
from . import versions as version_history
from .blocks_models import (
    BlockType,
    ContentBlock,
    blocks_from_json,
    blocks_to_json,
    create_content_block,
    duplicate_content_block,
)
from .models import (
    ActivityAction,
    CreatePageInput,
    CreateSpaceInput,
    CreateTemplateInput,
    Label,
    LabelColor,
    MovePageInput,
    Page,
    PageActivity,
    PageComment,
    PageStatus,
    PageTemplate,
    PageTreeNode,
    PageVersion,
    PageWithMeta,
    RecentPage,
    SearchResult,
    Space,
    SpaceStatus,
    SpaceType,
    UpdatePageInput,
    UpdateSpaceInput,
    UserInfo,
)
from .page_tree import build_breadcrumbs, build_page_tree, get_ancestor_ids, subtree_height
from .search import search_pages
from .slugs import generate_slug, normalize_space_key
from .templates import builtin_templates, get_builtin_template

logger = logging.getLogger(__name__)

# Schema version for migrations
# v1: Initial schema
SCHEMA_VERSION = 1


def default_db_path() -> Path:
    """Get the path to the knowledge base database."""
    base = Path(os.environ.get("FOLIO_DATA_DIR", settings.data_dir))
    return base / "kb" / "kb.db"


def _now_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def _new_id(prefix: str) -> str:
    """Generate a new unique ID with prefix."""
    return f"{prefix}-{uuid4().hex[:12]}"


def _default_user_resolver(actor_id: str) -> UserInfo:
    return UserInfo(id=actor_id, name=actor_id)


# =============================================================================
# Retry Configuration
# =============================================================================


def _is_locked_error(exc: BaseException) -> bool:
    """Check if an exception is a transient SQLite lock."""
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


_retry_on_locked = tenacity.retry(
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=0.05, min=0.05, max=0.5),
    retry=tenacity.retry_if_exception(_is_locked_error),
    before_sleep=lambda retry_state: logger.debug(
        "Retrying knowledge base write (attempt %d) after error: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else "unknown",
    ),
    reraise=True,
)


# =============================================================================
# Schema
# =============================================================================


_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS spaces (
    space_id TEXT PRIMARY KEY,
    key TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT 'team',
    status TEXT NOT NULL DEFAULT 'active',
    icon TEXT,
    color TEXT,
    homepage_id TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_by TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pages (
    page_id TEXT PRIMARY KEY,
    space_id TEXT NOT NULL REFERENCES spaces(space_id),
    parent_id TEXT,
    title TEXT NOT NULL,
    slug TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'draft',
    position INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 1,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_by TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    published_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_pages_space ON pages(space_id, parent_id, position);
CREATE INDEX IF NOT EXISTS idx_pages_slug ON pages(space_id, slug);

CREATE TABLE IF NOT EXISTS page_versions (
    version_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    version INTEGER NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    change_message TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (page_id, version)
);

CREATE TABLE IF NOT EXISTS labels (
    label_id TEXT PRIMARY KEY,
    space_id TEXT NOT NULL REFERENCES spaces(space_id),
    name TEXT NOT NULL,
    color TEXT NOT NULL DEFAULT 'blue',
    description TEXT,
    UNIQUE (space_id, name)
);

CREATE TABLE IF NOT EXISTS page_labels (
    page_id TEXT NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    label_id TEXT NOT NULL REFERENCES labels(label_id) ON DELETE CASCADE,
    added_by TEXT NOT NULL,
    added_at TEXT NOT NULL,
    PRIMARY KEY (page_id, label_id)
);

CREATE TABLE IF NOT EXISTS templates (
    template_id TEXT PRIMARY KEY,
    space_id TEXT REFERENCES spaces(space_id),
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL,
    is_global INTEGER NOT NULL DEFAULT 0,
    category TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS comments (
    comment_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    parent_id TEXT,
    content TEXT NOT NULL,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_resolved INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS page_activity (
    activity_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    action TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    details TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_activity_page ON page_activity(page_id, created_at);

CREATE TABLE IF NOT EXISTS recent_pages (
    visit_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    visited_at TEXT NOT NULL,
    UNIQUE (page_id, user_id)
);
"""


# =============================================================================
# Row Conversion
# =============================================================================


def _row_to_space(row: sqlite3.Row) -> Space:
    return Space(
        id=row["space_id"],
        key=row["key"],
        name=row["name"],
        description=row["description"],
        type=SpaceType(row["type"]),
        status=SpaceStatus(row["status"]),
        icon=row["icon"],
        color=row["color"],
        homepage_id=row["homepage_id"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_by=row["updated_by"],
        updated_at=row["updated_at"],
    )


def _row_to_page(row: sqlite3.Row) -> Page:
    return Page(
        id=row["page_id"],
        space_id=row["space_id"],
        parent_id=row["parent_id"],
        title=row["title"],
        slug=row["slug"],
        content=blocks_from_json(json.loads(row["content"])),
        status=PageStatus(row["status"]),
        position=row["position"],
        version=row["version"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_by=row["updated_by"],
        updated_at=row["updated_at"],
        published_at=row["published_at"],
    )


def _row_to_label(row: sqlite3.Row) -> Label:
    return Label(
        id=row["label_id"],
        space_id=row["space_id"],
        name=row["name"],
        color=LabelColor(row["color"]),
        description=row["description"],
    )


def _row_to_template(row: sqlite3.Row) -> PageTemplate:
    return PageTemplate(
        id=row["template_id"],
        space_id=row["space_id"],
        name=row["name"],
        description=row["description"],
        content=blocks_from_json(json.loads(row["content"])),
        is_global=bool(row["is_global"]),
        category=row["category"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def _row_to_comment(row: sqlite3.Row) -> PageComment:
    return PageComment(
        id=row["comment_id"],
        page_id=row["page_id"],
        parent_id=row["parent_id"],
        content=row["content"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        is_resolved=bool(row["is_resolved"]),
    )


def _row_to_activity(row: sqlite3.Row) -> PageActivity:
    return PageActivity(
        id=row["activity_id"],
        page_id=row["page_id"],
        action=ActivityAction(row["action"]),
        actor_id=row["actor_id"],
        details=row["details"],
        created_at=row["created_at"],
    )


def _content_json(content: list[ContentBlock]) -> str:
    return json.dumps(blocks_to_json(content))


def _parse_enum(enum_cls: type, value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field_name}", field=field_name, value=value) from exc


def _require_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Page title cannot be empty", field="title", value=title)
    return cleaned


# =============================================================================
# Store
# =============================================================================


class SqliteKnowledgeStore:
    """Knowledge store persisted in a single SQLite database file.

    Args:
        db_path: Database file, or ":memory:". Defaults to
            ``$FOLIO_DATA_DIR/kb/kb.db``.
        user_resolver: Maps actor ids to display identities for page views.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        *,
        user_resolver: Callable[[str], UserInfo] | None = None,
    ) -> None:
        self.db_path = str(db_path) if db_path is not None else str(default_db_path())
        self._user_resolver = user_resolver or _default_user_resolver
        self._lock = threading.RLock()

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # Enable foreign keys
        self._conn.execute("PRAGMA foreign_keys = ON")
        if self.db_path != ":memory:":
            # WAL mode for better concurrent access
            self._conn.execute("PRAGMA journal_mode = WAL")

        with self._transaction() as conn:
            self._init_schema(conn)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> SqliteKnowledgeStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            yield self._conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(_SCHEMA)
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        if row is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            logger.info("Initialized knowledge base schema v%d at %s", SCHEMA_VERSION, self.db_path)
        elif row[0] > SCHEMA_VERSION:
            raise PersistenceError(
                f"Database schema v{row[0]} is newer than supported v{SCHEMA_VERSION}",
                operation="open database",
                table="schema_version",
            )

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _record_activity(
        self,
        conn: sqlite3.Connection,
        page_id: str,
        action: ActivityAction,
        actor_id: str,
        details: str | None = None,
    ) -> None:
        conn.execute(
            """
            INSERT INTO page_activity (activity_id, page_id, action, actor_id, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (_new_id("act"), page_id, action.value, actor_id, details, _now_iso()),
        )

    def _active_space(self, conn: sqlite3.Connection, space_id: str | None) -> Space | None:
        if space_id is None:
            return None
        row = conn.execute("SELECT * FROM spaces WHERE space_id = ?", (space_id,)).fetchone()
        if row is None or row["status"] == SpaceStatus.DELETED.value:
            return None
        return _row_to_space(row)

    def _page_row(self, conn: sqlite3.Connection, page_id: str) -> sqlite3.Row | None:
        return conn.execute("SELECT * FROM pages WHERE page_id = ?", (page_id,)).fetchone()

    def _parent_map(self, conn: sqlite3.Connection, space_id: str) -> dict[str, str | None]:
        rows = conn.execute("SELECT page_id, parent_id FROM pages WHERE space_id = ?", (space_id,)).fetchall()
        return {row["page_id"]: row["parent_id"] for row in rows}

    def _check_nesting_depth(
        self,
        conn: sqlite3.Connection,
        space_id: str,
        parent_id: str,
        subtree_levels: int = 0,
        field: str = "parent_id",
    ) -> None:
        """Reject writes that would put a page deeper than ``max_tree_depth``."""
        limit = settings.max_tree_depth
        depth = len(get_ancestor_ids(parent_id, self._parent_map(conn, space_id), limit)) + 1
        if depth + subtree_levels > limit:
            raise ValidationError(
                "Page tree is too deep",
                field=field,
                value=parent_id,
                constraint=f"max_depth={limit}",
            )

    def _next_sibling_position(
        self,
        conn: sqlite3.Connection,
        space_id: str,
        parent_id: str | None,
        exclude_page_id: str | None = None,
    ) -> int:
        row = conn.execute(
            """
            SELECT COALESCE(MAX(position), -1) + 1 FROM pages
            WHERE space_id = ? AND parent_id IS ? AND page_id IS NOT ?
            """,
            (space_id, parent_id, exclude_page_id),
        ).fetchone()
        return row[0]

    def _with_meta(self, conn: sqlite3.Connection, page: Page, space: Space) -> PageWithMeta:
        rows = conn.execute("SELECT * FROM pages WHERE space_id = ?", (page.space_id,)).fetchall()
        pages_by_id = {row["page_id"]: _row_to_page(row) for row in rows}
        counts = conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM pages WHERE parent_id = ?) AS child_count,
                (SELECT COUNT(*) FROM comments WHERE page_id = ?) AS comment_count
            """,
            (page.id, page.id),
        ).fetchone()
        return PageWithMeta(
            page=page,
            space_key=space.key,
            space_name=space.name,
            author=self._user_resolver(page.created_by),
            last_editor=self._user_resolver(page.updated_by),
            labels=self._page_labels(conn, page.id),
            breadcrumbs=build_breadcrumbs(page, pages_by_id),
            child_count=counts["child_count"],
            comment_count=counts["comment_count"],
        )

    def _page_labels(self, conn: sqlite3.Connection, page_id: str) -> list[Label]:
        rows = conn.execute(
            """
            SELECT l.* FROM labels l
            JOIN page_labels pl ON pl.label_id = l.label_id
            WHERE pl.page_id = ?
            ORDER BY l.name
            """,
            (page_id,),
        ).fetchall()
        return [_row_to_label(row) for row in rows]

    # =========================================================================
    # Spaces
    # =========================================================================

    @handle_errors("list spaces", table="spaces")
    def list_spaces(self) -> list[Space]:
        """All spaces that are not deleted, in creation order."""
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM spaces WHERE status != ? ORDER BY created_at, rowid",
                (SpaceStatus.DELETED.value,),
            ).fetchall()
        return [_row_to_space(row) for row in rows]

    @handle_errors("count pages", table="pages")
    def count_pages(self, space_id: str) -> int:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM pages WHERE space_id = ? AND status != ?",
                (space_id, PageStatus.ARCHIVED.value),
            ).fetchone()
        return row[0]

    @handle_errors("get space", table="spaces")
    def get_space_by_id(self, space_id: str) -> Space | None:
        with self._reading() as conn:
            return self._active_space(conn, space_id)

    @handle_errors("get space", table="spaces")
    def get_space_by_key(self, key: str) -> Space | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT * FROM spaces WHERE key = ? AND status != ?",
                ((key or "").strip().upper(), SpaceStatus.DELETED.value),
            ).fetchone()
        return _row_to_space(row) if row else None

    @handle_errors("create space", table="spaces")
    @_retry_on_locked
    def create_space(self, data: CreateSpaceInput, *, actor_id: str) -> Space:
        """Create an active space.

        Raises:
            ValidationError: Malformed or duplicate key, empty name, unknown type.
        """
        key = normalize_space_key(data.key)
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Space name cannot be empty", field="name")
        space_type = _parse_enum(SpaceType, data.type, "type")

        space_id = _new_id("space")
        now = _now_iso()
        with self._transaction() as conn:
            existing = conn.execute("SELECT 1 FROM spaces WHERE key = ?", (key,)).fetchone()
            if existing:
                raise ValidationError(f"Space key {key} is already in use", field="key", value=key, constraint="unique")
            conn.execute(
                """
                INSERT INTO spaces
                    (space_id, key, name, description, type, status, icon, color,
                     created_by, created_at, updated_by, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    space_id, key, name, data.description or "", space_type.value,
                    SpaceStatus.ACTIVE.value, data.icon, data.color,
                    actor_id, now, actor_id, now,
                ),
            )
            row = conn.execute("SELECT * FROM spaces WHERE space_id = ?", (space_id,)).fetchone()

        logger.info("Created space %s (%s)", key, space_id)
        return _row_to_space(row)

    @handle_errors("update space", table="spaces")
    @_retry_on_locked
    def update_space(self, space_id: str, data: UpdateSpaceInput, *, actor_id: str) -> Space | None:
        """Apply a partial update. Returns None if the space does not exist."""
        updates: dict[str, Any] = {}
        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise ValidationError("Space name cannot be empty", field="name")
            updates["name"] = name
        if data.description is not None:
            updates["description"] = data.description
        if data.status is not None:
            updates["status"] = _parse_enum(SpaceStatus, data.status, "status").value
        for column in ("icon", "color", "homepage_id"):
            value = getattr(data, column)
            if value is not None:
                updates[column] = value

        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM spaces WHERE space_id = ?", (space_id,)).fetchone() is None:
                return None
            updates["updated_by"] = actor_id
            updates["updated_at"] = _now_iso()
            assignments = ", ".join(f"{column} = ?" for column in updates)
            conn.execute(
                f"UPDATE spaces SET {assignments} WHERE space_id = ?",
                (*updates.values(), space_id),
            )
            row = conn.execute("SELECT * FROM spaces WHERE space_id = ?", (space_id,)).fetchone()
        return _row_to_space(row)

    @handle_errors("delete space", table="spaces")
    @_retry_on_locked
    def delete_space(self, space_id: str, *, actor_id: str) -> bool:
        """Soft-delete a space. Its pages stay but become unreachable."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE spaces SET status = ?, updated_by = ?, updated_at = ?
                WHERE space_id = ? AND status != ?
                """,
                (SpaceStatus.DELETED.value, actor_id, _now_iso(), space_id, SpaceStatus.DELETED.value),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted space %s", space_id)
        return deleted

    # =========================================================================
    # Pages
    # =========================================================================

    @handle_errors("list pages", table="pages")
    def list_pages_by_space(self, space_id: str) -> list[Page]:
        """Pages of a space that are not archived, ordered by position."""
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT * FROM pages WHERE space_id = ? AND status != ?
                ORDER BY position, created_at, rowid
                """,
                (space_id, PageStatus.ARCHIVED.value),
            ).fetchall()
        return [_row_to_page(row) for row in rows]

    @handle_errors("get page", table="pages")
    def get_page(self, page_id: str) -> Page | None:
        """The bare page, regardless of its space's status."""
        with self._reading() as conn:
            row = self._page_row(conn, page_id)
        return _row_to_page(row) if row else None

    @handle_errors("get page", table="pages")
    def get_page_by_id(self, page_id: str) -> PageWithMeta | None:
        with self._reading() as conn:
            row = self._page_row(conn, page_id)
            if row is None:
                return None
            space = self._active_space(conn, row["space_id"])
            if space is None:
                return None
            return self._with_meta(conn, _row_to_page(row), space)

    @handle_errors("get page", table="pages")
    def get_page_by_slug(self, space_key: str, slug: str) -> PageWithMeta | None:
        """Look a page up by space key and slug.

        Slugs are not unique; on a collision the page with the lowest
        position (then earliest creation) wins.
        """
        space = self.get_space_by_key(space_key)
        if space is None:
            return None
        with self._reading() as conn:
            row = conn.execute(
                """
                SELECT * FROM pages WHERE space_id = ? AND slug = ?
                ORDER BY position, created_at, rowid LIMIT 1
                """,
                (space.id, slug),
            ).fetchone()
            if row is None:
                return None
            return self._with_meta(conn, _row_to_page(row), space)

    @handle_errors("create page", table="pages")
    @_retry_on_locked
    def create_page(self, data: CreatePageInput, *, actor_id: str) -> Page:
        """Create a page at the end of its sibling list.

        The body is ``data.content`` if given, else a copy of the template's
        blocks, else one empty paragraph. Version 1 is snapshotted.

        Raises:
            ValidationError: Empty title, missing/deleted space, parent not in
                the space, parent already at maximum depth, unknown template or
                status.
        """
        title = _require_title(data.title)
        status = _parse_enum(PageStatus, data.status, "status")

        if data.content:
            content = list(data.content)
        elif data.template_id:
            template = self.get_template(data.template_id)
            if template is None:
                raise ValidationError("Template not found", field="template_id", value=data.template_id)
            content = [duplicate_content_block(block) for block in template.content]
        else:
            content = [create_content_block(BlockType.PARAGRAPH)]

        page_id = _new_id("page")
        now = _now_iso()
        with self._transaction() as conn:
            if self._active_space(conn, data.space_id) is None:
                raise ValidationError("Space not found or deleted", field="space_id", value=data.space_id)
            if data.parent_id is not None:
                parent = self._page_row(conn, data.parent_id)
                if parent is None or parent["space_id"] != data.space_id:
                    raise ValidationError(
                        "Parent page not found in this space",
                        field="parent_id",
                        value=data.parent_id,
                    )
                self._check_nesting_depth(conn, data.space_id, data.parent_id)

            position = self._next_sibling_position(conn, data.space_id, data.parent_id)
            conn.execute(
                """
                INSERT INTO pages
                    (page_id, space_id, parent_id, title, slug, content, status, position, version,
                     created_by, created_at, updated_by, updated_at, published_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?, ?)
                """,
                (
                    page_id, data.space_id, data.parent_id, title, generate_slug(title),
                    _content_json(content), status.value, position,
                    actor_id, now, actor_id, now,
                    now if status == PageStatus.PUBLISHED else None,
                ),
            )
            version_history.record_snapshot(conn, page_id, change_message="Created", actor_id=actor_id)
            self._record_activity(conn, page_id, ActivityAction.CREATED, actor_id)
            if status == PageStatus.PUBLISHED:
                self._record_activity(conn, page_id, ActivityAction.PUBLISHED, actor_id)
            row = self._page_row(conn, page_id)

        logger.info("Created page %s in space %s at position %d", page_id, data.space_id, position)
        return _row_to_page(row)

    @handle_errors("update page", table="pages")
    @_retry_on_locked
    def update_page(self, page_id: str, data: UpdatePageInput, *, actor_id: str) -> Page | None:
        """Apply a content-affecting update.

        The version goes up by exactly one and the post-update page is
        snapshotted in the same transaction. A title change re-derives the
        slug; the first transition to published stamps ``published_at``.
        Returns None if the page does not exist.
        """
        updates: dict[str, Any] = {}
        if data.title is not None:
            title = _require_title(data.title)
            updates["title"] = title
            updates["slug"] = generate_slug(title)
        if data.content is not None:
            if not data.content:
                raise ValidationError("A page must keep at least one block", field="content")
            updates["content"] = _content_json(list(data.content))
        status = _parse_enum(PageStatus, data.status, "status") if data.status is not None else None
        if status is not None:
            updates["status"] = status.value

        with self._transaction() as conn:
            row = self._page_row(conn, page_id)
            if row is None:
                return None
            if data.is_empty():
                return _row_to_page(row)

            now = _now_iso()
            newly_published = status == PageStatus.PUBLISHED and row["status"] != PageStatus.PUBLISHED.value
            if newly_published:
                updates["published_at"] = now
            updates["updated_by"] = actor_id
            updates["updated_at"] = now

            assignments = ", ".join(f"{column} = ?" for column in updates)
            conn.execute(
                f"UPDATE pages SET {assignments}, version = version + 1 WHERE page_id = ?",
                (*updates.values(), page_id),
            )
            version_history.record_snapshot(conn, page_id, change_message=data.change_message, actor_id=actor_id)
            self._record_activity(
                conn,
                page_id,
                ActivityAction.PUBLISHED if newly_published else ActivityAction.UPDATED,
                actor_id,
                data.change_message,
            )
            row = self._page_row(conn, page_id)

        logger.debug("Updated page %s to version %d", page_id, row["version"])
        return _row_to_page(row)

    @handle_errors("move page", table="pages")
    @_retry_on_locked
    def move_page(self, page_id: str, data: MovePageInput, *, actor_id: str) -> Page | None:
        """Re-parent and/or reposition a page, possibly into another space.

        Siblings at or after ``target_position`` in the destination shift down
        by one. Descendants follow the page into the target space. Moving is
        not content-affecting: the version is unchanged.

        Raises:
            ValidationError: Target space missing/deleted, target parent not
                in the target space, target parent is the page itself or one
                of its descendants, negative position, or the subtree would end
                up deeper than ``settings.max_tree_depth``.
        """
        if data.target_position is not None and data.target_position < 0:
            raise ValidationError("Position cannot be negative", field="target_position", value=data.target_position)

        with self._transaction() as conn:
            row = self._page_row(conn, page_id)
            if row is None:
                return None

            space_id = data.target_space_id or row["space_id"]
            if self._active_space(conn, space_id) is None:
                raise ValidationError("Target space not found or deleted", field="target_space_id", value=space_id)

            parent_id = data.target_parent_id
            if parent_id is not None:
                if parent_id == page_id:
                    raise ValidationError("Cannot move a page under itself", field="target_parent_id", value=parent_id)
                parent = self._page_row(conn, parent_id)
                if parent is None or parent["space_id"] != space_id:
                    raise ValidationError(
                        "Target parent not found in the target space",
                        field="target_parent_id",
                        value=parent_id,
                    )
                parent_of = self._parent_map(conn, parent["space_id"])
                if page_id in get_ancestor_ids(parent_id, parent_of):
                    raise ValidationError(
                        "Cannot move a page into its own descendant",
                        field="target_parent_id",
                        value=parent_id,
                    )
                self._check_nesting_depth(
                    conn,
                    space_id,
                    parent_id,
                    subtree_height(page_id, self._parent_map(conn, row["space_id"])),
                    field="target_parent_id",
                )

            if data.target_position is None:
                position = self._next_sibling_position(conn, space_id, parent_id, exclude_page_id=page_id)
            else:
                position = data.target_position
                conn.execute(
                    """
                    UPDATE pages SET position = position + 1
                    WHERE space_id = ? AND parent_id IS ? AND position >= ? AND page_id != ?
                    """,
                    (space_id, parent_id, position, page_id),
                )

            conn.execute(
                """
                UPDATE pages SET space_id = ?, parent_id = ?, position = ?, updated_by = ?, updated_at = ?
                WHERE page_id = ?
                """,
                (space_id, parent_id, position, actor_id, _now_iso(), page_id),
            )

            if space_id != row["space_id"]:
                descendants = self._descendant_ids(conn, row["space_id"], page_id)
                conn.executemany(
                    "UPDATE pages SET space_id = ? WHERE page_id = ?",
                    [(space_id, descendant) for descendant in descendants],
                )

            row = self._page_row(conn, page_id)

        logger.info("Moved page %s to space %s parent %s position %d", page_id, space_id, parent_id, position)
        return _row_to_page(row)

    def _descendant_ids(self, conn: sqlite3.Connection, space_id: str, page_id: str) -> list[str]:
        children: dict[str | None, list[str]] = {}
        for child_id, parent_id in self._parent_map(conn, space_id).items():
            children.setdefault(parent_id, []).append(child_id)

        result: list[str] = []
        seen = {page_id}
        stack = list(children.get(page_id, []))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(children.get(current, []))
        return result

    @handle_errors("delete page", table="pages")
    @_retry_on_locked
    def delete_page(self, page_id: str) -> bool:
        """Delete a page, handing its children to its own parent.

        Re-parented children are appended after the existing siblings at
        their new level, keeping their relative order.
        """
        with self._transaction() as conn:
            row = self._page_row(conn, page_id)
            if row is None:
                return False

            space_id, parent_id = row["space_id"], row["parent_id"]
            children = conn.execute(
                "SELECT page_id FROM pages WHERE parent_id = ? ORDER BY position, created_at, rowid",
                (page_id,),
            ).fetchall()
            start = self._next_sibling_position(conn, space_id, parent_id, exclude_page_id=page_id)
            conn.executemany(
                "UPDATE pages SET parent_id = ?, position = ? WHERE page_id = ?",
                [(parent_id, start + offset, child["page_id"]) for offset, child in enumerate(children)],
            )
            conn.execute("UPDATE spaces SET homepage_id = NULL WHERE homepage_id = ?", (page_id,))
            conn.execute("DELETE FROM pages WHERE page_id = ?", (page_id,))

        logger.info("Deleted page %s (%d children re-parented)", page_id, len(children))
        return True

    def build_page_tree(self, space_id: str) -> list[PageTreeNode]:
        return build_page_tree(self.list_pages_by_space(space_id))

    # =========================================================================
    # Versions
    # =========================================================================

    @handle_errors("list versions", table="page_versions")
    def list_versions(self, page_id: str) -> list[PageVersion]:
        with self._reading() as conn:
            return version_history.list_versions(conn, page_id)

    @handle_errors("get version", table="page_versions")
    def get_version(self, page_id: str, version: int) -> PageVersion | None:
        with self._reading() as conn:
            return version_history.get_version(conn, page_id, version)

    def restore_version(self, page_id: str, version: int, *, actor_id: str) -> Page | None:
        """Make version ``version`` current again as a new version."""
        snapshot = self.get_version(page_id, version)
        if snapshot is None:
            return None
        return self.update_page(
            page_id,
            UpdatePageInput(
                title=snapshot.title,
                content=snapshot.content,
                change_message=f"Restored version {version}",
            ),
            actor_id=actor_id,
        )

    # =========================================================================
    # Labels
    # =========================================================================

    @handle_errors("list labels", table="labels")
    def list_labels(self, space_id: str) -> list[Label]:
        with self._reading() as conn:
            rows = conn.execute("SELECT * FROM labels WHERE space_id = ? ORDER BY name", (space_id,)).fetchall()
        return [_row_to_label(row) for row in rows]

    @handle_errors("create label", table="labels")
    @_retry_on_locked
    def create_label(
        self,
        space_id: str,
        name: str,
        color: LabelColor | str = LabelColor.BLUE,
        *,
        description: str | None = None,
    ) -> Label:
        cleaned = (name or "").strip().lower()
        if not cleaned:
            raise ValidationError("Label name cannot be empty", field="name")
        label_color = _parse_enum(LabelColor, color, "color")

        label_id = _new_id("label")
        with self._transaction() as conn:
            if self._active_space(conn, space_id) is None:
                raise ValidationError("Space not found or deleted", field="space_id", value=space_id)
            existing = conn.execute(
                "SELECT 1 FROM labels WHERE space_id = ? AND name = ?", (space_id, cleaned)
            ).fetchone()
            if existing:
                raise ValidationError("Label already exists", field="name", value=cleaned, constraint="unique")
            conn.execute(
                "INSERT INTO labels (label_id, space_id, name, color, description) VALUES (?, ?, ?, ?, ?)",
                (label_id, space_id, cleaned, label_color.value, description),
            )
        return Label(id=label_id, space_id=space_id, name=cleaned, color=label_color, description=description)

    @handle_errors("label page", table="page_labels")
    @_retry_on_locked
    def add_label_to_page(self, page_id: str, label_id: str, *, actor_id: str) -> bool:
        """Attach a label of the page's space. Returns False if already attached."""
        with self._transaction() as conn:
            page = self._page_row(conn, page_id)
            label = conn.execute("SELECT * FROM labels WHERE label_id = ?", (label_id,)).fetchone()
            if page is None or label is None:
                raise ValidationError("Page or label not found", field="label_id", value=label_id)
            if page["space_id"] != label["space_id"]:
                raise ValidationError("Label belongs to another space", field="label_id", value=label_id)
            cursor = conn.execute(
                "INSERT OR IGNORE INTO page_labels (page_id, label_id, added_by, added_at) VALUES (?, ?, ?, ?)",
                (page_id, label_id, actor_id, _now_iso()),
            )
            added = cursor.rowcount > 0
            if added:
                self._record_activity(conn, page_id, ActivityAction.LABELED, actor_id, label["name"])
        return added

    @handle_errors("unlabel page", table="page_labels")
    @_retry_on_locked
    def remove_label_from_page(self, page_id: str, label_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM page_labels WHERE page_id = ? AND label_id = ?",
                (page_id, label_id),
            )
        return cursor.rowcount > 0

    @handle_errors("list page labels", table="page_labels")
    def list_page_labels(self, page_id: str) -> list[Label]:
        with self._reading() as conn:
            return self._page_labels(conn, page_id)

    # =========================================================================
    # Templates
    # =========================================================================

    @handle_errors("list templates", table="templates")
    def list_templates(self, space_id: str | None = None) -> list[PageTemplate]:
        """Built-in templates, then stored global and space templates."""
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT * FROM templates WHERE is_global = 1 OR space_id IS ?
                ORDER BY name
                """,
                (space_id,),
            ).fetchall()
        return builtin_templates() + [_row_to_template(row) for row in rows]

    @handle_errors("get template", table="templates")
    def get_template(self, template_id: str) -> PageTemplate | None:
        builtin = get_builtin_template(template_id)
        if builtin is not None:
            return builtin
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM templates WHERE template_id = ?", (template_id,)).fetchone()
        return _row_to_template(row) if row else None

    @handle_errors("create template", table="templates")
    @_retry_on_locked
    def create_template(self, data: CreateTemplateInput, *, actor_id: str) -> PageTemplate:
        """Store a template; without ``space_id`` it is global."""
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Template name cannot be empty", field="name")
        if not data.content:
            raise ValidationError("A template needs at least one block", field="content")

        template_id = _new_id("tpl")
        with self._transaction() as conn:
            if data.space_id is not None and self._active_space(conn, data.space_id) is None:
                raise ValidationError("Space not found or deleted", field="space_id", value=data.space_id)
            conn.execute(
                """
                INSERT INTO templates
                    (template_id, space_id, name, description, content, is_global, category, created_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    template_id, data.space_id, name, data.description or "",
                    _content_json(list(data.content)), 1 if data.space_id is None else 0,
                    data.category, actor_id, _now_iso(),
                ),
            )
            row = conn.execute("SELECT * FROM templates WHERE template_id = ?", (template_id,)).fetchone()
        return _row_to_template(row)

    # =========================================================================
    # Comments
    # =========================================================================

    @handle_errors("list comments", table="comments")
    def list_comments(self, page_id: str) -> list[PageComment]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM comments WHERE page_id = ? ORDER BY created_at, rowid",
                (page_id,),
            ).fetchall()
        return [_row_to_comment(row) for row in rows]

    @handle_errors("add comment", table="comments")
    @_retry_on_locked
    def add_comment(
        self,
        page_id: str,
        content: str,
        *,
        actor_id: str,
        parent_id: str | None = None,
    ) -> PageComment:
        text = (content or "").strip()
        if not text:
            raise ValidationError("Comment cannot be empty", field="content")

        comment_id = _new_id("cmt")
        now = _now_iso()
        with self._transaction() as conn:
            if self._page_row(conn, page_id) is None:
                raise ValidationError("Page not found", field="page_id", value=page_id)
            if parent_id is not None:
                parent = conn.execute(
                    "SELECT page_id FROM comments WHERE comment_id = ?", (parent_id,)
                ).fetchone()
                if parent is None or parent["page_id"] != page_id:
                    raise ValidationError("Reply target not found on this page", field="parent_id", value=parent_id)
            conn.execute(
                """
                INSERT INTO comments (comment_id, page_id, parent_id, content, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (comment_id, page_id, parent_id, text, actor_id, now, now),
            )
            self._record_activity(conn, page_id, ActivityAction.COMMENTED, actor_id)

        return PageComment(
            id=comment_id,
            page_id=page_id,
            parent_id=parent_id,
            content=text,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )

    @handle_errors("resolve comment", table="comments")
    @_retry_on_locked
    def resolve_comment(self, comment_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE comments SET is_resolved = 1, updated_at = ? WHERE comment_id = ?",
                (_now_iso(), comment_id),
            )
        return cursor.rowcount > 0

    # =========================================================================
    # Activity and Recent Visits
    # =========================================================================

    @handle_errors("list activity", table="page_activity")
    def list_page_activity(self, page_id: str, limit: int | None = None) -> list[PageActivity]:
        """Newest first."""
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT * FROM page_activity WHERE page_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
                """,
                (page_id, limit if limit is not None else settings.activity_limit),
            ).fetchall()
        return [_row_to_activity(row) for row in rows]

    @handle_errors("record visit", table="recent_pages")
    @_retry_on_locked
    def record_page_visit(self, page_id: str, user_id: str) -> None:
        """Remember that ``user_id`` opened ``page_id``.

        Revisits move the page to the front; only the newest
        ``settings.recent_pages_per_user`` visits are kept. Unknown pages are
        ignored.
        """
        with self._transaction() as conn:
            if self._page_row(conn, page_id) is None:
                return
            conn.execute(
                """
                INSERT INTO recent_pages (visit_id, page_id, user_id, visited_at) VALUES (?, ?, ?, ?)
                ON CONFLICT (page_id, user_id) DO UPDATE SET visited_at = excluded.visited_at
                """,
                (_new_id("visit"), page_id, user_id, _now_iso()),
            )
            conn.execute(
                """
                DELETE FROM recent_pages WHERE user_id = ? AND visit_id NOT IN (
                    SELECT visit_id FROM recent_pages WHERE user_id = ?
                    ORDER BY visited_at DESC, rowid DESC LIMIT ?
                )
                """,
                (user_id, user_id, settings.recent_pages_per_user),
            )

    @handle_errors("list recent pages", table="recent_pages")
    def list_recent_pages(self, user_id: str, limit: int = 10) -> list[RecentPage]:
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT r.visit_id, r.page_id, r.user_id, r.visited_at,
                       p.title AS page_title, s.space_id, s.key AS space_key, s.name AS space_name
                FROM recent_pages r
                JOIN pages p ON p.page_id = r.page_id
                JOIN spaces s ON s.space_id = p.space_id
                WHERE r.user_id = ? AND s.status != ?
                ORDER BY r.visited_at DESC, r.rowid DESC
                LIMIT ?
                """,
                (user_id, SpaceStatus.DELETED.value, limit),
            ).fetchall()
        return [
            RecentPage(
                id=row["visit_id"],
                page_id=row["page_id"],
                user_id=row["user_id"],
                space_id=row["space_id"],
                space_key=row["space_key"],
                space_name=row["space_name"],
                page_title=row["page_title"],
                visited_at=row["visited_at"],
            )
            for row in rows
        ]

    # =========================================================================
    # Search
    # =========================================================================

    @handle_errors("search", table="pages")
    def search(self, query: str, *, space_id: str | None = None, limit: int | None = None) -> list[SearchResult]:
        """Title search across all spaces that are not deleted."""
        if not (query or "").strip():
            return []
        with self._reading() as conn:
            space_rows = conn.execute("SELECT * FROM spaces").fetchall()
            page_rows = conn.execute("SELECT * FROM pages ORDER BY created_at, rowid").fetchall()
        spaces_by_id = {row["space_id"]: _row_to_space(row) for row in space_rows}
        pages = (_row_to_page(row) for row in page_rows)
        return search_pages(pages, spaces_by_id, query, space_id=space_id, limit=limit)
