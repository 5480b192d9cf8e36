"""Domain entities for the knowledge base.

Spaces own pages; pages own an ordered list of ContentBlock. Everything here
is a plain dataclass with ``to_dict``/``from_dict`` so the store and the RPC
layer can move them across the JSON boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .blocks_models import ContentBlock, blocks_from_json, blocks_to_json


class SpaceType(str, Enum):
    TEAM = "team"
    PROJECT = "project"
    PERSONAL = "personal"
    DOCUMENTATION = "documentation"


class SpaceStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class PageStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class LabelColor(str, Enum):
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    PURPLE = "purple"
    GRAY = "gray"


class ActivityAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    PUBLISHED = "published"
    COMMENTED = "commented"
    LABELED = "labeled"
    VIEWED = "viewed"


# =============================================================================
# Spaces
# =============================================================================


@dataclass
class Space:
    """A top-level container of pages, addressed by a short uppercase key."""

    id: str
    key: str
    name: str
    type: SpaceType
    status: SpaceStatus
    created_by: str
    created_at: str
    updated_by: str
    updated_at: str
    description: str = ""
    icon: str | None = None
    color: str | None = None
    homepage_id: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.status == SpaceStatus.DELETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "status": self.status.value,
            "icon": self.icon,
            "color": self.color,
            "homepage_id": self.homepage_id,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Space:
        return cls(
            id=data["id"],
            key=data["key"],
            name=data["name"],
            description=data.get("description") or "",
            type=SpaceType(data.get("type", SpaceType.TEAM.value)),
            status=SpaceStatus(data.get("status", SpaceStatus.ACTIVE.value)),
            icon=data.get("icon"),
            color=data.get("color"),
            homepage_id=data.get("homepage_id"),
            created_by=data["created_by"],
            created_at=data["created_at"],
            updated_by=data.get("updated_by", data["created_by"]),
            updated_at=data.get("updated_at", data["created_at"]),
        )


@dataclass
class CreateSpaceInput:
    key: str
    name: str
    description: str = ""
    type: SpaceType | str = SpaceType.TEAM
    icon: str | None = None
    color: str | None = None


@dataclass
class UpdateSpaceInput:
    """Partial update; None means leave unchanged."""

    name: str | None = None
    description: str | None = None
    status: SpaceStatus | str | None = None
    icon: str | None = None
    color: str | None = None
    homepage_id: str | None = None


# =============================================================================
# Pages
# =============================================================================


@dataclass
class Page:
    """A titled document in a space, with an ordered block body."""

    id: str
    space_id: str
    title: str
    slug: str
    content: list[ContentBlock]
    status: PageStatus
    position: int
    version: int
    created_by: str
    created_at: str
    updated_by: str
    updated_at: str
    parent_id: str | None = None
    published_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "space_id": self.space_id,
            "title": self.title,
            "slug": self.slug,
            "content": blocks_to_json(self.content),
            "status": self.status.value,
            "parent_id": self.parent_id,
            "position": self.position,
            "version": self.version,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at,
            "published_at": self.published_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Page:
        return cls(
            id=data["id"],
            space_id=data["space_id"],
            title=data["title"],
            slug=data["slug"],
            content=blocks_from_json(data.get("content")),
            status=PageStatus(data.get("status", PageStatus.DRAFT.value)),
            parent_id=data.get("parent_id"),
            position=int(data.get("position", 0)),
            version=int(data.get("version", 1)),
            created_by=data["created_by"],
            created_at=data["created_at"],
            updated_by=data.get("updated_by", data["created_by"]),
            updated_at=data.get("updated_at", data["created_at"]),
            published_at=data.get("published_at"),
        )


@dataclass
class CreatePageInput:
    space_id: str
    title: str
    content: list[ContentBlock] | None = None
    parent_id: str | None = None
    status: PageStatus | str = PageStatus.DRAFT
    template_id: str | None = None


@dataclass
class UpdatePageInput:
    """Partial update; None means leave unchanged.

    Supplying any of ``title``, ``content`` or ``status`` makes the update
    content-affecting: the page version is bumped and a snapshot is written.
    """

    title: str | None = None
    content: list[ContentBlock] | None = None
    status: PageStatus | str | None = None
    change_message: str | None = None

    def is_empty(self) -> bool:
        return self.title is None and self.content is None and self.status is None


@dataclass
class MovePageInput:
    """Where a page should land.

    ``target_space_id`` None keeps the current space; ``target_position`` None
    appends after the last sibling.
    """

    target_parent_id: str | None = None
    target_position: int | None = None
    target_space_id: str | None = None


@dataclass
class Breadcrumb:
    id: str
    title: str
    slug: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "slug": self.slug}


@dataclass
class UserInfo:
    """Display identity for an actor id; resolution is up to the caller."""

    id: str
    name: str
    email: str | None = None
    avatar_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar_url": self.avatar_url,
        }


@dataclass
class PageTreeNode:
    """Read model for one page in the navigation tree."""

    id: str
    title: str
    slug: str
    status: PageStatus
    position: int
    children: list[PageTreeNode] = field(default_factory=list)
    has_children: bool = False
    is_expanded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "status": self.status.value,
            "position": self.position,
            "has_children": self.has_children,
            "is_expanded": self.is_expanded,
            "children": [child.to_dict() for child in self.children],
        }


# =============================================================================
# Labels, Versions, Templates, Comments, Activity
# =============================================================================


@dataclass
class Label:
    id: str
    space_id: str
    name: str
    color: LabelColor = LabelColor.BLUE
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "space_id": self.space_id,
            "name": self.name,
            "color": self.color.value,
            "description": self.description,
        }


@dataclass
class PageVersion:
    """Immutable snapshot of a page as it was at ``version``."""

    id: str
    page_id: str
    version: int
    title: str
    content: list[ContentBlock]
    created_by: str
    created_at: str
    change_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "page_id": self.page_id,
            "version": self.version,
            "title": self.title,
            "content": blocks_to_json(self.content),
            "change_message": self.change_message,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }


@dataclass
class PageTemplate:
    id: str
    name: str
    description: str
    content: list[ContentBlock]
    is_global: bool
    created_by: str
    created_at: str
    space_id: str | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "space_id": self.space_id,
            "name": self.name,
            "description": self.description,
            "content": blocks_to_json(self.content),
            "is_global": self.is_global,
            "category": self.category,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }


@dataclass
class CreateTemplateInput:
    name: str
    content: list[ContentBlock]
    description: str = ""
    space_id: str | None = None
    category: str | None = None


@dataclass
class PageComment:
    id: str
    page_id: str
    content: str
    created_by: str
    created_at: str
    updated_at: str
    parent_id: str | None = None
    is_resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "page_id": self.page_id,
            "parent_id": self.parent_id,
            "content": self.content,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_resolved": self.is_resolved,
        }


@dataclass
class PageActivity:
    id: str
    page_id: str
    action: ActivityAction
    actor_id: str
    created_at: str
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "page_id": self.page_id,
            "action": self.action.value,
            "actor_id": self.actor_id,
            "details": self.details,
            "created_at": self.created_at,
        }


@dataclass
class RecentPage:
    id: str
    page_id: str
    user_id: str
    space_id: str
    space_key: str
    space_name: str
    page_title: str
    visited_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "page_id": self.page_id,
            "user_id": self.user_id,
            "space_id": self.space_id,
            "space_key": self.space_key,
            "space_name": self.space_name,
            "page_title": self.page_title,
            "visited_at": self.visited_at,
        }


# =============================================================================
# Read Models
# =============================================================================


@dataclass
class PageWithMeta:
    """A page enriched with what a page view needs in one round trip."""

    page: Page
    space_key: str
    space_name: str
    author: UserInfo
    last_editor: UserInfo
    labels: list[Label] = field(default_factory=list)
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    child_count: int = 0
    comment_count: int = 0
    # No attachment storage yet; always 0.
    attachment_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        result = self.page.to_dict()
        result.update({
            "space_key": self.space_key,
            "space_name": self.space_name,
            "author": self.author.to_dict(),
            "last_editor": self.last_editor.to_dict(),
            "labels": [label.to_dict() for label in self.labels],
            "breadcrumbs": [crumb.to_dict() for crumb in self.breadcrumbs],
            "child_count": self.child_count,
            "comment_count": self.comment_count,
            "attachment_count": self.attachment_count,
        })
        return result


@dataclass
class SearchResult:
    id: str
    title: str
    excerpt: str
    space_key: str
    space_name: str
    page_id: str
    page_title: str
    updated_at: str
    highlight: str
    type: str = "page"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "excerpt": self.excerpt,
            "space_key": self.space_key,
            "space_name": self.space_name,
            "page_id": self.page_id,
            "page_title": self.page_title,
            "updated_at": self.updated_at,
            "highlight": self.highlight,
        }
