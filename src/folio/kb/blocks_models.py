"""Data models for page content blocks.

A page body is an ordered list of ContentBlock. Each block carries a type tag,
a raw content string and an attribute object whose class is determined by the
type tag (see ATTRIBUTE_TYPES). Attribute classes only hold the fields that
make sense for their block type.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union
from uuid import uuid4

from ..errors import ValidationError


class BlockType(str, Enum):
    """Closed set of block types a page can contain."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    LIST = "list"
    CODE = "code"
    QUOTE = "quote"
    TABLE = "table"
    IMAGE = "image"
    DIVIDER = "divider"
    CALLOUT = "callout"
    EXPAND = "expand"
    ISSUE_REFERENCE = "issue-reference"
    ISSUE_MACRO = "issue-macro"


# Block types that may hold nested child blocks
NESTABLE_TYPES = frozenset({
    BlockType.LIST,
    BlockType.QUOTE,
    BlockType.CALLOUT,
    BlockType.EXPAND,
})


class Alignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ListType(str, Enum):
    ORDERED = "ordered"
    UNORDERED = "unordered"
    TASK = "task"


class CalloutType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    NOTE = "note"


# =============================================================================
# Attribute Variants
# =============================================================================


@dataclass(frozen=True)
class TextAttributes:
    """Paragraph, quote and divider blocks."""

    alignment: Alignment | None = None


@dataclass(frozen=True)
class HeadingAttributes:
    level: int = 1
    alignment: Alignment | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.level, int) or isinstance(self.level, bool) or not 1 <= self.level <= 6:
            raise ValidationError(
                "Heading level must be between 1 and 6",
                field="level",
                value=self.level,
            )


@dataclass(frozen=True)
class ListAttributes:
    list_type: ListType = ListType.UNORDERED


@dataclass(frozen=True)
class CodeAttributes:
    language: str | None = None


@dataclass(frozen=True)
class CalloutAttributes:
    callout_type: CalloutType = CalloutType.INFO


@dataclass(frozen=True)
class ExpandAttributes:
    title: str | None = None


@dataclass(frozen=True)
class TableData:
    headers: tuple[str, ...] = ()
    rows: tuple[tuple[str, ...], ...] = ()
    has_header: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": list(self.headers),
            "rows": [list(row) for row in self.rows],
            "has_header": self.has_header,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableData:
        has_header = data.get("has_header", data.get("hasHeader", True))
        return cls(
            headers=tuple(str(h) for h in data.get("headers", [])),
            rows=tuple(tuple(str(cell) for cell in row) for row in data.get("rows", [])),
            has_header=bool(has_header),
        )


@dataclass(frozen=True)
class TableAttributes:
    table_data: TableData = field(default_factory=TableData)


@dataclass(frozen=True)
class ImageAttributes:
    image_url: str | None = None
    image_alt: str | None = None
    alignment: Alignment | None = None


@dataclass(frozen=True)
class IssueReferenceAttributes:
    issue_key: str | None = None


@dataclass(frozen=True)
class IssueMacroAttributes:
    macro_type: str | None = None
    macro_params: dict[str, str] = field(default_factory=dict)


BlockAttributes = Union[
    TextAttributes,
    HeadingAttributes,
    ListAttributes,
    CodeAttributes,
    CalloutAttributes,
    ExpandAttributes,
    TableAttributes,
    ImageAttributes,
    IssueReferenceAttributes,
    IssueMacroAttributes,
]

ATTRIBUTE_TYPES: dict[BlockType, type] = {
    BlockType.PARAGRAPH: TextAttributes,
    BlockType.QUOTE: TextAttributes,
    BlockType.HEADING: HeadingAttributes,
    BlockType.LIST: ListAttributes,
    BlockType.CODE: CodeAttributes,
    BlockType.CALLOUT: CalloutAttributes,
    BlockType.EXPAND: ExpandAttributes,
    BlockType.TABLE: TableAttributes,
    BlockType.IMAGE: ImageAttributes,
    BlockType.DIVIDER: TextAttributes,
    BlockType.ISSUE_REFERENCE: IssueReferenceAttributes,
    BlockType.ISSUE_MACRO: IssueMacroAttributes,
}

# Older payloads used camelCase attribute names
_ATTRIBUTE_ALIASES = {
    "listType": "list_type",
    "calloutType": "callout_type",
    "imageUrl": "image_url",
    "imageAlt": "image_alt",
    "issueKey": "issue_key",
    "macroType": "macro_type",
    "macroParams": "macro_params",
    "tableData": "table_data",
}

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "alignment": Alignment,
    "list_type": ListType,
    "callout_type": CalloutType,
}


def default_attributes(block_type: BlockType | str) -> BlockAttributes:
    """Return the default attribute object for a block type."""
    return ATTRIBUTE_TYPES[BlockType(block_type)]()


def attributes_from_dict(block_type: BlockType | str, data: dict[str, Any] | None) -> BlockAttributes:
    """Build the attribute variant for ``block_type`` from a plain dict.

    Keys that do not belong to the variant are dropped. Enum-valued fields
    must hold a known value.

    Raises:
        ValidationError: If the block type or a field value is invalid.
    """
    try:
        block_type = BlockType(block_type)
    except ValueError as exc:
        raise ValidationError("Unknown block type", field="type", value=block_type) from exc

    attr_cls = ATTRIBUTE_TYPES[block_type]
    allowed = {f.name for f in dataclasses.fields(attr_cls)}
    kwargs: dict[str, Any] = {}

    for raw_key, value in (data or {}).items():
        key = _ATTRIBUTE_ALIASES.get(raw_key, raw_key)
        if key not in allowed or value is None:
            continue
        if key in _ENUM_FIELDS:
            try:
                value = _ENUM_FIELDS[key](value)
            except ValueError as exc:
                raise ValidationError(f"Invalid {key}", field=key, value=value) from exc
        elif key == "table_data" and isinstance(value, dict):
            value = TableData.from_dict(value)
        elif key == "macro_params":
            value = {str(k): str(v) for k, v in dict(value).items()}
        kwargs[key] = value

    return attr_cls(**kwargs)


def attributes_to_dict(attributes: BlockAttributes) -> dict[str, Any]:
    """Convert an attribute variant to a JSON-ready dict, omitting unset fields."""
    result: dict[str, Any] = {}
    for f in dataclasses.fields(attributes):
        value = getattr(attributes, f.name)
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, TableData):
            value = value.to_dict()
        elif isinstance(value, dict):
            value = dict(value)
        result[f.name] = value
    return result


# =============================================================================
# Content Block
# =============================================================================


def new_block_id() -> str:
    """Generate a new unique block ID."""
    return f"blk-{uuid4().hex[:12]}"


@dataclass(frozen=True)
class ContentBlock:
    """One typed unit of page content.

    Blocks are immutable; editing produces a new block with the same ``id``
    via ``dataclasses.replace``. Duplicating produces a new ``id``.
    """

    id: str
    type: BlockType
    content: str = ""
    attributes: BlockAttributes = field(default_factory=TextAttributes)
    children: tuple[ContentBlock, ...] = ()

    def __post_init__(self) -> None:
        expected = ATTRIBUTE_TYPES[self.type]
        if not isinstance(self.attributes, expected):
            raise ValidationError(
                f"Block type '{self.type.value}' requires {expected.__name__}",
                field="attributes",
                value=type(self.attributes).__name__,
            )

    def to_dict(self, include_children: bool = True) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "attributes": attributes_to_dict(self.attributes),
        }
        if include_children and self.children:
            result["children"] = [child.to_dict() for child in self.children]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentBlock:
        """Create from dictionary.

        A missing ``id`` gets a fresh one so imported payloads stay valid.
        """
        try:
            block_type = BlockType(data["type"])
        except (KeyError, ValueError) as exc:
            raise ValidationError("Unknown block type", field="type", value=data.get("type")) from exc

        return cls(
            id=data.get("id") or new_block_id(),
            type=block_type,
            content=str(data.get("content") or ""),
            attributes=attributes_from_dict(block_type, data.get("attributes")),
            children=tuple(cls.from_dict(child) for child in data.get("children") or []),
        )

    def plain_text(self) -> str:
        """Raw content of this block and its children, newline separated."""
        parts = [self.content] if self.content else []
        parts.extend(child.plain_text() for child in self.children)
        return "\n".join(p for p in parts if p)

    def is_nestable(self) -> bool:
        """Check if this block type supports children."""
        return self.type in NESTABLE_TYPES

    def has_children(self) -> bool:
        return len(self.children) > 0


def create_content_block(
    type: BlockType | str,
    content: str = "",
    attributes: BlockAttributes | dict[str, Any] | None = None,
) -> ContentBlock:
    """Create a block with a fresh identity.

    ``attributes`` may be a variant instance or a plain dict; None means the
    type's defaults.
    """
    block_type = BlockType(type)
    if attributes is None:
        attrs = default_attributes(block_type)
    elif isinstance(attributes, dict):
        attrs = attributes_from_dict(block_type, attributes)
    else:
        attrs = attributes
    return ContentBlock(id=new_block_id(), type=block_type, content=content, attributes=attrs)


def duplicate_content_block(block: ContentBlock) -> ContentBlock:
    """Copy a block (and its children) under fresh identities.

    Attribute objects are immutable, so they can be shared between the
    original and the copy; ``macro_params`` is the only mutable field and is
    copied.
    """
    attributes = block.attributes
    if isinstance(attributes, IssueMacroAttributes):
        attributes = dataclasses.replace(attributes, macro_params=dict(attributes.macro_params))
    return dataclasses.replace(
        block,
        id=new_block_id(),
        attributes=attributes,
        children=tuple(duplicate_content_block(child) for child in block.children),
    )


def blocks_to_json(blocks: list[ContentBlock] | tuple[ContentBlock, ...]) -> list[dict[str, Any]]:
    return [block.to_dict() for block in blocks]


def blocks_from_json(data: list[dict[str, Any]] | None) -> list[ContentBlock]:
    return [ContentBlock.from_dict(item) for item in data or []]
