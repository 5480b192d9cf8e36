"""Parse Markdown into content blocks.

This module converts Markdown text into ContentBlock objects using the
mistletoe library. Block content keeps inline Markdown (``**bold**``,
``[links](...)``) as raw text, the same way the editor stores it.
"""

from __future__ import annotations

import re
from typing import Any

from mistletoe import Document
from mistletoe.block_token import (
    BlockCode,
    CodeFence,
    Heading,
    List,
    ListItem,
    Paragraph,
    Quote,
    Table,
    ThematicBreak,
)
from mistletoe.span_token import (
    Emphasis,
    EscapeSequence,
    Image,
    InlineCode,
    LineBreak,
    Link,
    RawText,
    Strikethrough,
    Strong,
)

from .blocks_models import (
    BlockType,
    CalloutAttributes,
    CalloutType,
    CodeAttributes,
    ContentBlock,
    HeadingAttributes,
    ImageAttributes,
    ListAttributes,
    ListType,
    TableAttributes,
    TableData,
    create_content_block,
)

_CHECKBOX = re.compile(r"^\[([xX ])\]\s*(.*)$", re.DOTALL)
# GitHub-style alert marker opening a blockquote: "> [!WARNING]"
_ALERT = re.compile(r"^\[!(\w+)\]\s*", re.IGNORECASE)


def parse_markdown(markdown: str) -> list[ContentBlock]:
    """Parse Markdown text into content blocks.

    Args:
        markdown: The Markdown text to parse.

    Returns:
        Blocks in document order; an empty document yields an empty list.
    """
    doc = Document(markdown)
    blocks = []
    for token in doc.children:
        block = _convert_token(token)
        if block is not None:
            blocks.append(block)
    return blocks


def _convert_token(token: Any) -> ContentBlock | None:
    """Convert a mistletoe block token."""
    if isinstance(token, Heading):
        return create_content_block(
            BlockType.HEADING,
            _inline_markdown(token.children),
            HeadingAttributes(level=token.level),
        )
    elif isinstance(token, Paragraph):
        return _convert_paragraph(token)
    elif isinstance(token, (BlockCode, CodeFence)):
        return _convert_code(token)
    elif isinstance(token, List):
        return _convert_list(token)
    elif isinstance(token, Quote):
        return _convert_quote(token)
    elif isinstance(token, Table):
        return _convert_table(token)
    elif isinstance(token, ThematicBreak):
        return create_content_block(BlockType.DIVIDER)
    else:
        # Unknown token type - try to extract text
        if hasattr(token, "children"):
            text = _extract_text(token)
            if text.strip():
                return create_content_block(BlockType.PARAGRAPH, text.strip())
    return None


def _convert_paragraph(token: Paragraph) -> ContentBlock:
    children = [c for c in token.children if not (isinstance(c, RawText) and not c.content.strip())]
    if len(children) == 1 and isinstance(children[0], Image):
        image = children[0]
        return create_content_block(
            BlockType.IMAGE,
            attributes=ImageAttributes(image_url=image.src, image_alt=_extract_text(image) or None),
        )
    return create_content_block(BlockType.PARAGRAPH, _inline_markdown(token.children))


def _convert_code(token: BlockCode | CodeFence) -> ContentBlock:
    """Convert a code block token."""
    language = None
    if isinstance(token, CodeFence) and token.language:
        language = token.language

    content = _extract_text(token) if token.children else ""
    return create_content_block(
        BlockType.CODE,
        content.rstrip("\n"),
        CodeAttributes(language=language),
    )


def _convert_list(token: List) -> ContentBlock:
    """Convert a whole list into one list block with one line per item."""
    lines = _list_lines(token, depth=0)
    is_task = bool(lines) and all(is_task_line for _, is_task_line in lines)
    if is_task:
        list_type = ListType.TASK
    elif token.start is not None:
        list_type = ListType.ORDERED
    else:
        list_type = ListType.UNORDERED
    return create_content_block(
        BlockType.LIST,
        "\n".join(line for line, _ in lines),
        ListAttributes(list_type=list_type),
    )


def _list_lines(token: List, depth: int) -> list[tuple[str, bool]]:
    indent = "  " * depth
    number = token.start
    lines: list[tuple[str, bool]] = []

    for item in token.children:
        if not isinstance(item, ListItem):
            continue
        text_parts = []
        nested: list[tuple[str, bool]] = []
        for child in item.children:
            if isinstance(child, List):
                nested.extend(_list_lines(child, depth + 1))
            elif hasattr(child, "children"):
                text_parts.append(_inline_markdown(child.children))
        text = " ".join(text_parts)

        checkbox = _CHECKBOX.match(text)
        if checkbox:
            mark = "x" if checkbox.group(1).lower() == "x" else " "
            lines.append((f"{indent}- [{mark}] {checkbox.group(2)}", True))
        elif number is not None:
            lines.append((f"{indent}{number}. {text}", False))
        else:
            lines.append((f"{indent}- {text}", False))

        if number is not None:
            number += 1
        lines.extend(nested)

    return lines


def _convert_quote(token: Quote) -> ContentBlock:
    """Blockquotes become quotes, or callouts when they open with an alert marker."""
    paragraphs = [_inline_markdown(child.children) for child in token.children if hasattr(child, "children")]
    text = "\n\n".join(paragraphs)

    alert = _ALERT.match(text)
    if alert:
        kind = alert.group(1).lower()
        try:
            callout_type = CalloutType(kind)
        except ValueError:
            callout_type = CalloutType.WARNING if kind == "caution" else CalloutType.INFO
        return create_content_block(
            BlockType.CALLOUT,
            text[alert.end():].lstrip("\n"),
            CalloutAttributes(callout_type=callout_type),
        )
    return create_content_block(BlockType.QUOTE, text)


def _convert_table(token: Table) -> ContentBlock:
    header = getattr(token, "header", None)
    headers = tuple(_inline_markdown(cell.children) for cell in header.children) if header else ()
    rows = tuple(
        tuple(_inline_markdown(cell.children) for cell in row.children)
        for row in token.children
    )
    return create_content_block(
        BlockType.TABLE,
        attributes=TableAttributes(table_data=TableData(headers=headers, rows=rows, has_header=bool(headers))),
    )


# =============================================================================
# Inline Tokens
# =============================================================================


def _inline_markdown(tokens: Any) -> str:
    """Rebuild inline Markdown source from span tokens."""
    return "".join(_inline_token(token) for token in tokens or [])


def _inline_token(token: Any) -> str:
    if isinstance(token, RawText):
        return token.content
    elif isinstance(token, Strong):
        return f"**{_inline_markdown(token.children)}**"
    elif isinstance(token, Emphasis):
        return f"*{_inline_markdown(token.children)}*"
    elif isinstance(token, Strikethrough):
        return f"~~{_inline_markdown(token.children)}~~"
    elif isinstance(token, InlineCode):
        return f"`{token.children[0].content if token.children else ''}`"
    elif isinstance(token, Image):
        return f"![{_extract_text(token)}]({token.src})"
    elif isinstance(token, Link):
        return f"[{_inline_markdown(token.children)}]({token.target})"
    elif isinstance(token, LineBreak):
        return "\n"
    elif isinstance(token, EscapeSequence):
        return token.children[0].content if token.children else ""
    elif hasattr(token, "children"):
        return _inline_markdown(token.children)
    return ""


def _extract_text(token: Any) -> str:
    """Extract plain text from a token."""
    if isinstance(token, RawText):
        return token.content
    elif hasattr(token, "children") and token.children:
        return "".join(_extract_text(child) for child in token.children)
    return ""
