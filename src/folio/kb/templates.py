"""Built-in page templates and the demo space.

Built-in templates are not stored; the store merges them into its template
listings. Their block ids are minted fresh on every call, and pages created
from a template get their own copies anyway.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .blocks_models import (
    BlockType,
    CalloutAttributes,
    CalloutType,
    ContentBlock,
    HeadingAttributes,
    ListAttributes,
    ListType,
    create_content_block,
)
from .models import CreatePageInput, CreateSpaceInput, PageStatus, PageTemplate, SpaceType, UpdateSpaceInput

if TYPE_CHECKING:
    from .store import KnowledgeStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
# Fixed so the set of built-ins is stable across restarts
BUILTIN_CREATED_AT = "1970-01-01T00:00:00+00:00"


def _heading(text: str, level: int) -> ContentBlock:
    return create_content_block(BlockType.HEADING, text, HeadingAttributes(level=level))


def _paragraph(text: str) -> ContentBlock:
    return create_content_block(BlockType.PARAGRAPH, text)


def _list(text: str, list_type: ListType) -> ContentBlock:
    return create_content_block(BlockType.LIST, text, ListAttributes(list_type=list_type))


def _callout(text: str, kind: CalloutType = CalloutType.INFO) -> ContentBlock:
    return create_content_block(BlockType.CALLOUT, text, CalloutAttributes(callout_type=kind))


# =============================================================================
# Built-in Templates
# =============================================================================


def meeting_notes_blocks() -> list[ContentBlock]:
    return [
        _heading("Meeting Notes", 1),
        _paragraph("**Date:** [Date]\n**Attendees:** [Names]\n**Location:** [Location/Link]"),
        _heading("Agenda", 2),
        _list("- Item 1\n- Item 2\n- Item 3", ListType.UNORDERED),
        _heading("Discussion Notes", 2),
        _paragraph("[Add discussion notes here]"),
        _heading("Action Items", 2),
        _list("- [ ] Action 1 - @owner\n- [ ] Action 2 - @owner", ListType.TASK),
    ]


def how_to_blocks() -> list[ContentBlock]:
    return [
        _heading("How to [Task Name]", 1),
        _callout("Brief overview of what this guide covers and who it is for."),
        _heading("Prerequisites", 2),
        _list("- Prerequisite 1\n- Prerequisite 2", ListType.UNORDERED),
        _heading("Steps", 2),
        _list("1. Step 1\n2. Step 2\n3. Step 3", ListType.ORDERED),
        _heading("Troubleshooting", 2),
        _paragraph("Common issues and their solutions."),
    ]


def decision_record_blocks() -> list[ContentBlock]:
    return [
        _heading("Decision: [Title]", 1),
        _paragraph("**Status:** [Proposed/Accepted/Deprecated]\n**Date:** [Date]\n**Deciders:** [Names]"),
        _heading("Context", 2),
        _paragraph("What is the issue that we are seeing that is motivating this decision?"),
        _heading("Decision", 2),
        _paragraph("What is the change that we are proposing and/or doing?"),
        _heading("Consequences", 2),
        _paragraph("What becomes easier or more difficult to do because of this change?"),
    ]


def builtin_templates() -> list[PageTemplate]:
    """Global templates every space can use."""
    specs = [
        ("tpl-meeting-notes", "Meeting Notes",
         "Template for capturing meeting notes and action items", meeting_notes_blocks, "meetings"),
        ("tpl-how-to", "How-To Guide",
         "Step-by-step instructional guide", how_to_blocks, "documentation"),
        ("tpl-decision", "Decision Record",
         "Document important decisions and their context", decision_record_blocks, "decisions"),
    ]
    return [
        PageTemplate(
            id=template_id,
            name=name,
            description=description,
            content=make_blocks(),
            is_global=True,
            category=category,
            created_by=SYSTEM_ACTOR,
            created_at=BUILTIN_CREATED_AT,
        )
        for template_id, name, description, make_blocks, category in specs
    ]


def get_builtin_template(template_id: str) -> PageTemplate | None:
    for template in builtin_templates():
        if template.id == template_id:
            return template
    return None


# =============================================================================
# Demo Data
# =============================================================================


def welcome_blocks() -> list[ContentBlock]:
    return [
        _heading("Welcome to the Engineering Knowledge Base", 1),
        _paragraph("This is your central hub for all engineering documentation, guides, and best practices."),
        _callout("Start by exploring the page tree on the left or create a new page using the button above."),
        _heading("Quick Links", 2),
        _list(
            "- Getting Started Guide\n- Architecture Overview\n- API Documentation\n- Deployment Procedures",
            ListType.UNORDERED,
        ),
    ]


_DEMO_SPACES = [
    ("PROD", "Product", "Product management documentation", SpaceType.TEAM, "📦", "#10b981"),
    ("OPS", "Operations", "DevOps and infrastructure guides", SpaceType.TEAM, "⚙️", "#f59e0b"),
    ("DOCS", "Documentation", "Public documentation", SpaceType.DOCUMENTATION, "📚", "#8b5cf6"),
]


def seed_demo_data(store: KnowledgeStore) -> bool:
    """Create the demo spaces and welcome page on an empty store.

    Returns:
        True if data was seeded, False if the store already had spaces.
    """
    if store.list_spaces():
        return False

    engineering = store.create_space(
        CreateSpaceInput(
            key="ENG",
            name="Engineering",
            description="Engineering team documentation and knowledge base",
            type=SpaceType.TEAM,
            icon="🛠️",
            color="#3b82f6",
        ),
        actor_id=SYSTEM_ACTOR,
    )
    welcome = store.create_page(
        CreatePageInput(
            space_id=engineering.id,
            title="Welcome to Engineering",
            content=welcome_blocks(),
            status=PageStatus.PUBLISHED,
        ),
        actor_id=SYSTEM_ACTOR,
    )
    store.update_space(engineering.id, UpdateSpaceInput(homepage_id=welcome.id), actor_id=SYSTEM_ACTOR)

    for key, name, description, space_type, icon, color in _DEMO_SPACES:
        store.create_space(
            CreateSpaceInput(key=key, name=name, description=description, type=space_type, icon=icon, color=color),
            actor_id=SYSTEM_ACTOR,
        )

    logger.info("Seeded demo knowledge base (%d spaces)", len(_DEMO_SPACES) + 1)
    return True
