"""Store accessor interface.

Everything above the persistence layer (editor controller, RPC handlers)
talks to a ``KnowledgeStore``. ``SqliteKnowledgeStore`` in ``kb_db`` is the
implementation shipped with the service; tests may substitute their own.

Read methods return None or an empty list when something does not exist.
Write methods raise ValidationError for bad input and PersistenceError when
the backend fails. ``actor_id`` always comes from the caller.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import (
    CreatePageInput,
    CreateSpaceInput,
    CreateTemplateInput,
    Label,
    LabelColor,
    MovePageInput,
    Page,
    PageActivity,
    PageComment,
    PageTemplate,
    PageTreeNode,
    PageVersion,
    PageWithMeta,
    RecentPage,
    SearchResult,
    Space,
    UpdatePageInput,
    UpdateSpaceInput,
)


@runtime_checkable
class KnowledgeStore(Protocol):
    # Spaces
    def list_spaces(self) -> list[Space]: ...
    def count_pages(self, space_id: str) -> int: ...
    def get_space_by_id(self, space_id: str) -> Space | None: ...
    def get_space_by_key(self, key: str) -> Space | None: ...
    def create_space(self, data: CreateSpaceInput, *, actor_id: str) -> Space: ...
    def update_space(self, space_id: str, data: UpdateSpaceInput, *, actor_id: str) -> Space | None: ...
    def delete_space(self, space_id: str, *, actor_id: str) -> bool: ...

    # Pages
    def list_pages_by_space(self, space_id: str) -> list[Page]: ...
    def get_page(self, page_id: str) -> Page | None: ...
    def get_page_by_id(self, page_id: str) -> PageWithMeta | None: ...
    def get_page_by_slug(self, space_key: str, slug: str) -> PageWithMeta | None: ...
    def create_page(self, data: CreatePageInput, *, actor_id: str) -> Page: ...
    def update_page(self, page_id: str, data: UpdatePageInput, *, actor_id: str) -> Page | None: ...
    def move_page(self, page_id: str, data: MovePageInput, *, actor_id: str) -> Page | None: ...
    def delete_page(self, page_id: str) -> bool: ...
    def build_page_tree(self, space_id: str) -> list[PageTreeNode]: ...

    # Versions
    def list_versions(self, page_id: str) -> list[PageVersion]: ...
    def get_version(self, page_id: str, version: int) -> PageVersion | None: ...
    def restore_version(self, page_id: str, version: int, *, actor_id: str) -> Page | None: ...

    # Labels
    def list_labels(self, space_id: str) -> list[Label]: ...
    def create_label(
        self,
        space_id: str,
        name: str,
        color: LabelColor | str = LabelColor.BLUE,
        *,
        description: str | None = None,
    ) -> Label: ...
    def add_label_to_page(self, page_id: str, label_id: str, *, actor_id: str) -> bool: ...
    def remove_label_from_page(self, page_id: str, label_id: str) -> bool: ...
    def list_page_labels(self, page_id: str) -> list[Label]: ...

    # Templates
    def list_templates(self, space_id: str | None = None) -> list[PageTemplate]: ...
    def get_template(self, template_id: str) -> PageTemplate | None: ...
    def create_template(self, data: CreateTemplateInput, *, actor_id: str) -> PageTemplate: ...

    # Comments
    def list_comments(self, page_id: str) -> list[PageComment]: ...
    def add_comment(
        self,
        page_id: str,
        content: str,
        *,
        actor_id: str,
        parent_id: str | None = None,
    ) -> PageComment: ...
    def resolve_comment(self, comment_id: str) -> bool: ...

    # Activity and recent visits
    def list_page_activity(self, page_id: str, limit: int | None = None) -> list[PageActivity]: ...
    def record_page_visit(self, page_id: str, user_id: str) -> None: ...
    def list_recent_pages(self, user_id: str, limit: int = 10) -> list[RecentPage]: ...

    # Search
    def search(self, query: str, *, space_id: str | None = None, limit: int | None = None) -> list[SearchResult]: ...

