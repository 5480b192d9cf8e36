"""Slash command catalog for the block editor.

Typing "/" at the start of a block opens a menu of these commands; choosing
one retypes the block in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .blocks_models import (
    BlockAttributes,
    BlockType,
    CalloutAttributes,
    CalloutType,
    HeadingAttributes,
    ListAttributes,
    ListType,
    default_attributes,
)


class CommandCategory(str, Enum):
    TEXT = "text"
    LIST = "list"
    MEDIA = "media"
    ADVANCED = "advanced"


CATEGORY_LABELS: dict[CommandCategory, str] = {
    CommandCategory.TEXT: "Text",
    CommandCategory.LIST: "Lists",
    CommandCategory.MEDIA: "Media",
    CommandCategory.ADVANCED: "Advanced",
}


@dataclass(frozen=True)
class SlashCommand:
    id: str
    label: str
    description: str
    block_type: BlockType
    category: CommandCategory
    attributes: BlockAttributes | None = field(default=None, compare=False)

    def block_attributes(self) -> BlockAttributes:
        """Attributes a block gets when this command is applied."""
        if self.attributes is not None:
            return self.attributes
        return default_attributes(self.block_type)

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "block_type": self.block_type.value,
            "category": self.category.value,
            "category_label": CATEGORY_LABELS[self.category],
        }


def _callout(kind: CalloutType, label: str, description: str) -> SlashCommand:
    return SlashCommand(
        id=f"callout-{kind.value}",
        label=label,
        description=description,
        block_type=BlockType.CALLOUT,
        category=CommandCategory.ADVANCED,
        attributes=CalloutAttributes(callout_type=kind),
    )


SLASH_COMMANDS: tuple[SlashCommand, ...] = (
    SlashCommand("paragraph", "Text", "Plain text paragraph", BlockType.PARAGRAPH, CommandCategory.TEXT),
    SlashCommand(
        "heading1", "Heading 1", "Large section heading",
        BlockType.HEADING, CommandCategory.TEXT, HeadingAttributes(level=1),
    ),
    SlashCommand(
        "heading2", "Heading 2", "Medium section heading",
        BlockType.HEADING, CommandCategory.TEXT, HeadingAttributes(level=2),
    ),
    SlashCommand(
        "heading3", "Heading 3", "Small section heading",
        BlockType.HEADING, CommandCategory.TEXT, HeadingAttributes(level=3),
    ),
    SlashCommand(
        "bullet-list", "Bullet List", "Unordered list with bullets",
        BlockType.LIST, CommandCategory.LIST, ListAttributes(list_type=ListType.UNORDERED),
    ),
    SlashCommand(
        "numbered-list", "Numbered List", "Ordered list with numbers",
        BlockType.LIST, CommandCategory.LIST, ListAttributes(list_type=ListType.ORDERED),
    ),
    SlashCommand(
        "task-list", "Task List", "Checklist with checkboxes",
        BlockType.LIST, CommandCategory.LIST, ListAttributes(list_type=ListType.TASK),
    ),
    SlashCommand(
        "code", "Code Block", "Display code with syntax highlighting",
        BlockType.CODE, CommandCategory.ADVANCED,
    ),
    SlashCommand("quote", "Quote", "Capture a quote or citation", BlockType.QUOTE, CommandCategory.ADVANCED),
    _callout(CalloutType.INFO, "Info Callout", "Blue informational callout"),
    _callout(CalloutType.SUCCESS, "Success Callout", "Green success callout"),
    _callout(CalloutType.WARNING, "Warning Callout", "Yellow warning callout"),
    _callout(CalloutType.ERROR, "Error Callout", "Red error callout"),
    SlashCommand("divider", "Divider", "Horizontal divider line", BlockType.DIVIDER, CommandCategory.ADVANCED),
    SlashCommand("image", "Image", "Upload or embed an image", BlockType.IMAGE, CommandCategory.MEDIA),
    SlashCommand("table", "Table", "Insert a table", BlockType.TABLE, CommandCategory.MEDIA),
)

_BY_ID = {command.id: command for command in SLASH_COMMANDS}


def get_command(command_id: str) -> SlashCommand | None:
    return _BY_ID.get(command_id)


def filter_commands(query: str) -> list[SlashCommand]:
    """Commands whose label or description contains ``query``.

    Matching is a case-insensitive substring test; an empty query returns the
    whole catalog. Catalog order is preserved.
    """
    if not query:
        return list(SLASH_COMMANDS)
    needle = query.lower()
    return [
        command
        for command in SLASH_COMMANDS
        if needle in command.label.lower() or needle in command.description.lower()
    ]


def group_commands(commands: list[SlashCommand]) -> list[tuple[CommandCategory, list[SlashCommand]]]:
    """Partition commands by category, categories in first-seen order."""
    groups: dict[CommandCategory, list[SlashCommand]] = {}
    for command in commands:
        groups.setdefault(command.category, []).append(command)
    return list(groups.items())


def flatten_groups(groups: list[tuple[CommandCategory, list[SlashCommand]]]) -> list[SlashCommand]:
    """Menu navigation order: each group's commands, group after group."""
    return [command for _, commands in groups for command in commands]


def menu_commands(query: str) -> list[SlashCommand]:
    """Commands in the order the menu shows them for ``query``."""
    return flatten_groups(group_commands(filter_commands(query)))


def move_highlight(index: int, count: int, step: int) -> int:
    """Move a highlighted index by ``step`` with wraparound.

    Returns 0 for an empty menu.
    """
    if count <= 0:
        return 0
    return (index + step) % count
