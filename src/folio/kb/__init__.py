"""Knowledge base: spaces, pages, content blocks and their editor."""

from __future__ import annotations

from .blocks_models import BlockType, ContentBlock, create_content_block, duplicate_content_block
from .editor import BlockEditorController, EditorState, KeyEvent, KeyResult, intent_for_key, reduce
from .kb_db import SqliteKnowledgeStore
from .models import Page, PageStatus, Space, SpaceStatus, SpaceType
from .page_tree import build_page_tree
from .search import search_pages
from .slash_commands import SLASH_COMMANDS, filter_commands, group_commands
from .slugs import generate_slug, next_position
from .store import KnowledgeStore

__all__ = [
    "BlockEditorController",
    "BlockType",
    "ContentBlock",
    "EditorState",
    "KeyEvent",
    "KeyResult",
    "KnowledgeStore",
    "Page",
    "PageStatus",
    "SLASH_COMMANDS",
    "Space",
    "SpaceStatus",
    "SpaceType",
    "SqliteKnowledgeStore",
    "build_page_tree",
    "create_content_block",
    "duplicate_content_block",
    "filter_commands",
    "generate_slug",
    "group_commands",
    "intent_for_key",
    "next_position",
    "reduce",
    "search_pages",
]
