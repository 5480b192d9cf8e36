"""Render content blocks to Markdown.

This module converts ContentBlock objects back to Markdown text for export.
"""

from __future__ import annotations

from typing import Iterable

from .blocks_models import (
    BlockType,
    CalloutAttributes,
    CodeAttributes,
    ContentBlock,
    ExpandAttributes,
    HeadingAttributes,
    ImageAttributes,
    IssueMacroAttributes,
    IssueReferenceAttributes,
    TableAttributes,
)


def render_markdown(blocks: Iterable[ContentBlock], title: str | None = None) -> str:
    """Render blocks to Markdown.

    Args:
        blocks: Blocks to render, in order.
        title: Optional page title, rendered as a leading level-1 heading.

    Returns:
        Markdown text, blocks separated by blank lines.
    """
    parts = []
    if title:
        parts.append(f"# {title}")
    for block in blocks:
        rendered = _render_block(block)
        if rendered:
            parts.append(rendered)
    return "\n\n".join(parts) + ("\n" if parts else "")


def _render_block(block: ContentBlock) -> str:
    """Render a single block to Markdown."""
    if block.type == BlockType.PARAGRAPH:
        return block.content
    elif block.type == BlockType.HEADING:
        return _render_heading(block)
    elif block.type == BlockType.LIST:
        return _with_children(block.content, block)
    elif block.type == BlockType.CODE:
        return _render_code(block)
    elif block.type == BlockType.QUOTE:
        return _with_children(_quote_lines(block.content), block, quoted=True)
    elif block.type == BlockType.TABLE:
        return _render_table(block)
    elif block.type == BlockType.IMAGE:
        return _render_image(block)
    elif block.type == BlockType.DIVIDER:
        return "---"
    elif block.type == BlockType.CALLOUT:
        return _render_callout(block)
    elif block.type == BlockType.EXPAND:
        return _render_expand(block)
    elif block.type == BlockType.ISSUE_REFERENCE:
        return _render_issue_reference(block)
    elif block.type == BlockType.ISSUE_MACRO:
        return _render_issue_macro(block)
    # Default: render as paragraph
    return block.content


def _with_children(text: str, block: ContentBlock, quoted: bool = False) -> str:
    if not block.children:
        return text
    rendered = render_markdown(block.children).rstrip("\n")
    if quoted:
        rendered = _quote_lines(rendered)
        return f"{text}\n>\n{rendered}"
    return f"{text}\n\n{rendered}"


def _quote_lines(text: str) -> str:
    return "\n".join(f"> {line}" if line else ">" for line in text.split("\n"))


def _render_heading(block: ContentBlock) -> str:
    attrs = block.attributes
    level = attrs.level if isinstance(attrs, HeadingAttributes) else 1
    return f"{'#' * level} {block.content}"


def _render_code(block: ContentBlock) -> str:
    attrs = block.attributes
    language = attrs.language if isinstance(attrs, CodeAttributes) and attrs.language else ""
    return f"```{language}\n{block.content}\n```"


def _render_table(block: ContentBlock) -> str:
    attrs = block.attributes
    if not isinstance(attrs, TableAttributes):
        return ""
    data = attrs.table_data
    width = max([len(data.headers)] + [len(row) for row in data.rows])
    if width == 0:
        return ""

    def row_line(cells: tuple[str, ...]) -> str:
        padded = list(cells) + [""] * (width - len(cells))
        return "| " + " | ".join(cell.replace("|", "\\|") for cell in padded) + " |"

    # Markdown tables always need a header row
    header = data.headers if data.has_header and data.headers else tuple("" for _ in range(width))
    lines = [row_line(header), "| " + " | ".join("---" for _ in range(width)) + " |"]
    lines.extend(row_line(row) for row in data.rows)
    return "\n".join(lines)


def _render_image(block: ContentBlock) -> str:
    attrs = block.attributes
    if not isinstance(attrs, ImageAttributes) or not attrs.image_url:
        return ""
    return f"![{attrs.image_alt or ''}]({attrs.image_url})"


def _render_callout(block: ContentBlock) -> str:
    attrs = block.attributes
    kind = attrs.callout_type.value if isinstance(attrs, CalloutAttributes) else "info"
    body = _quote_lines(block.content) if block.content else ">"
    return _with_children(f"> [!{kind.upper()}]\n{body}", block, quoted=True)


def _render_expand(block: ContentBlock) -> str:
    attrs = block.attributes
    summary = attrs.title if isinstance(attrs, ExpandAttributes) and attrs.title else "Details"
    inner = [block.content] if block.content else []
    if block.children:
        inner.append(render_markdown(block.children).rstrip("\n"))
    body = "\n\n".join(inner)
    return f"<details>\n<summary>{summary}</summary>\n\n{body}\n\n</details>"


def _render_issue_reference(block: ContentBlock) -> str:
    attrs = block.attributes
    key = attrs.issue_key if isinstance(attrs, IssueReferenceAttributes) else None
    return f"[{key}]" if key else block.content


def _render_issue_macro(block: ContentBlock) -> str:
    attrs = block.attributes
    if not isinstance(attrs, IssueMacroAttributes) or not attrs.macro_type:
        return block.content
    params = "|".join(f"{k}={v}" for k, v in sorted(attrs.macro_params.items()))
    macro = f"{{issues:{attrs.macro_type}{'|' + params if params else ''}}}"
    return f"{macro}\n\n{block.content}" if block.content else macro
