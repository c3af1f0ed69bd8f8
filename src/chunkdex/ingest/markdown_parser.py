"""Markdown block parser: turns a document into an ordered sequence of typed nodes.

Supports the block constructs that occur in the book sources: YAML
frontmatter, ATX and setext headings, fenced code, bullet/ordered lists,
block quotes, pipe tables, HTML blocks, thematic breaks, and paragraphs.
It is line-oriented and small; it is not a CommonMark
implementation.

Every node carries two renderings:

- ``text``: plain text with inline markup removed (what gets embedded)
- ``markdown``: the block as markdown, newline-terminated (what gets displayed)
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_FRONTMATTER_OPEN_RE = re.compile(r"^---[ \t]*$")
_FRONTMATTER_CLOSE_RE = re.compile(r"^(?:---|\.\.\.)[ \t]*$")
_FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})[ \t]*(.*?)[ \t]*$")
_ATX_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_ATX_CLOSING_RE = re.compile(r"(?:^|[ \t]+)#+$")
_SETEXT_H1_RE = re.compile(r"^ {0,3}=+[ \t]*$")
_SETEXT_H2_RE = re.compile(r"^ {0,3}-+[ \t]*$")
_THEMATIC_BREAK_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
_BLOCKQUOTE_RE = re.compile(r"^ {0,3}> ?(.*)$")
_TABLE_RE = re.compile(r"^ {0,3}\|")
_TABLE_DELIMITER_RE = re.compile(r"^[\s|:-]+$")
_HTML_RE = re.compile(r"^ {0,3}<(?:[A-Za-z][A-Za-z0-9-]*|/[A-Za-z]|!--)")
_LIST_ITEM_RE = re.compile(r"^( {0,3})([-*+]|\d{1,9}[.)])(?:([ \t]+)(.*))?$")

# Inline markup
_CODE_SPAN_RE = re.compile(r"(`+)(.+?)\1", re.DOTALL)
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_REF_LINK_RE = re.compile(r"\[([^\]]+)\]\[[^\]]*\]")
_AUTOLINK_RE = re.compile(r"<((?:https?|mailto|ftp):[^>\s]+)>")
_STRONG_RE = re.compile(r"(\*\*|__)(?=\S)(.+?)(?<=\S)\1", re.DOTALL)
_EMPH_STAR_RE = re.compile(r"\*(?=\S)(.+?)(?<=\S)\*", re.DOTALL)
_EMPH_UNDERSCORE_RE = re.compile(r"(?<!\w)_(?=\S)(.+?)(?<=\S)_(?!\w)", re.DOTALL)
_HARD_BREAK_RE = re.compile(r"(?:\\| {2,})$", re.MULTILINE)
_ESCAPE_RE = re.compile(r"\\([!\"#$%&'()*+,\-./:;<=>?@\[\\\]^_`{|}~])")


class ParseError(ValueError):
    """Raised when document input or a node stream is malformed."""


@dataclass(frozen=True)
class DocumentNode:
    """A top-level block of a parsed document.

    Attributes:
        type: Node type: yaml, heading, list, paragraph, code, blockquote,
            table, html, or thematicBreak.
        text: Plain text content.
        markdown: Markdown rendering, newline-terminated.
        level: Heading depth 1..6 (headings only).
        lang: Fence info language (code only).
        meta: Rest of the fence info string (code only).
        value: Raw code content (code only).
        items: List items (lists only).
        ordered: Whether the list is numbered (lists only).
        start: First item number of an ordered list.
        spread: Whether list items are separated by blank lines.
        marker: Bullet character or ordered delimiter of a list.
    """

    type: str
    text: str
    markdown: str
    level: int | None = None
    lang: str | None = None
    meta: str | None = None
    value: str | None = None
    items: tuple[ListItem, ...] = ()
    ordered: bool = False
    start: int | None = None
    spread: bool = False
    marker: str = "-"


@dataclass(frozen=True)
class ListItem:
    """One list item; ``children`` are the item's own parsed blocks."""

    text: str
    children: tuple[DocumentNode, ...]


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def parse_markdown(content: str) -> list[DocumentNode]:
    """Parse *content* into an ordered list of top-level ``DocumentNode``s.

    Raises:
        ParseError: If *content* is not a string.
    """
    if not isinstance(content, str):
        raise ParseError(f"expected markdown text, got {type(content).__name__}")
    lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return _Parser(lines).parse(allow_frontmatter=True)


def inline_to_text(source: str) -> str:
    """Strip inline markdown (emphasis, code ticks, links, images) from *source*."""
    parts: list[str] = []
    pos = 0
    for m in _CODE_SPAN_RE.finditer(source):
        parts.append(_strip_inline(source[pos : m.start()]))
        code = m.group(2)
        if code.startswith(" ") and code.endswith(" ") and code.strip():
            code = code[1:-1]
        parts.append(code)
        pos = m.end()
    parts.append(_strip_inline(source[pos:]))
    return "".join(parts)


def render_list_item(
    item: ListItem,
    *,
    ordered: bool,
    number: int | None = None,
    spread: bool = False,
    marker: str = "-",
) -> str:
    """Render *item* as a one-item markdown list.

    Ordered items are numbered ``number`` with the list's delimiter; bullets
    keep the list's bullet character. Spread lists keep blank lines between
    the item's child blocks.
    """
    if ordered:
        prefix = f"{number if number is not None else 1}{marker}"
    else:
        prefix = marker
    joiner = "\n" if spread else ""
    body = joiner.join(child.markdown for child in item.children).rstrip("\n")
    pad = " " * (len(prefix) + 1)
    out: list[str] = []
    for i, line in enumerate(body.split("\n")):
        if i == 0:
            out.append(f"{prefix} {line}" if line else prefix)
        else:
            out.append(f"{pad}{line}" if line else "")
    return "\n".join(out) + "\n"


# ------------------------------------------------------------------
# Inline helpers
# ------------------------------------------------------------------


def _strip_inline(text: str) -> str:
    text = _IMAGE_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _REF_LINK_RE.sub(r"\1", text)
    text = _AUTOLINK_RE.sub(r"\1", text)
    text = _STRONG_RE.sub(r"\2", text)
    text = _EMPH_STAR_RE.sub(r"\1", text)
    text = _EMPH_UNDERSCORE_RE.sub(r"\1", text)
    text = _HARD_BREAK_RE.sub("", text)
    return _ESCAPE_RE.sub(r"\1", text)


def _is_blank(line: str) -> bool:
    return not line.strip()


def _indent_of(line: str) -> int:
    expanded = line.expandtabs(4)
    return len(expanded) - len(expanded.lstrip(" "))


def _dedent(line: str, width: int) -> str:
    expanded = line.expandtabs(4)
    strip = min(width, _indent_of(expanded))
    return expanded[strip:]


def _list_kind(marker: str) -> str:
    return marker if marker in "-*+" else marker[-1]


# ------------------------------------------------------------------
# Block parser
# ------------------------------------------------------------------


class _Parser:
    def __init__(self, lines: list[str]) -> None:
        self._lines = lines
        self._i = 0

    def parse(self, allow_frontmatter: bool = False) -> list[DocumentNode]:
        nodes: list[DocumentNode] = []
        if allow_frontmatter:
            front = self._frontmatter()
            if front is not None:
                nodes.append(front)

        while self._i < len(self._lines):
            line = self._lines[self._i]
            if _is_blank(line):
                self._i += 1
                continue
            nodes.append(self._block(line))
        return nodes

    def _block(self, line: str) -> DocumentNode:
        if _FENCE_RE.match(line):
            return self._code()
        if _ATX_RE.match(line):
            return self._atx_heading()
        if _THEMATIC_BREAK_RE.match(line):
            self._i += 1
            return DocumentNode(type="thematicBreak", text="", markdown="***\n")
        if _BLOCKQUOTE_RE.match(line):
            return self._blockquote()
        if _TABLE_RE.match(line):
            return self._table()
        if _HTML_RE.match(line):
            return self._html()
        if _LIST_ITEM_RE.match(line):
            return self._list()
        return self._paragraph()

    def _interrupts_paragraph(self, line: str) -> bool:
        if _FENCE_RE.match(line) or _ATX_RE.match(line) or _BLOCKQUOTE_RE.match(line):
            return True
        if _THEMATIC_BREAK_RE.match(line) or _HTML_RE.match(line):
            return True
        m = _LIST_ITEM_RE.match(line)
        # Only bullets and lists starting at 1 may interrupt a paragraph.
        return bool(m and m.group(4) and (m.group(2) in "-*+" or m.group(2)[:-1] == "1"))

    # -- frontmatter -------------------------------------------------

    def _frontmatter(self) -> DocumentNode | None:
        if not self._lines or not _FRONTMATTER_OPEN_RE.match(self._lines[0]):
            return None
        for j in range(1, len(self._lines)):
            if _FRONTMATTER_CLOSE_RE.match(self._lines[j]):
                value = "\n".join(self._lines[1:j])
                self._i = j + 1
                return DocumentNode(
                    type="yaml", text=value, markdown=f"---\n{value}\n---\n", value=value
                )
        return None

    # -- leaf blocks -------------------------------------------------

    def _code(self) -> DocumentNode:
        m = _FENCE_RE.match(self._lines[self._i])
        assert m is not None
        indent, fence, info = len(m.group(1)), m.group(2), m.group(3)
        close_re = re.compile(rf"^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}[ \t]*$")
        self._i += 1

        body: list[str] = []
        while self._i < len(self._lines):
            line = self._lines[self._i]
            self._i += 1
            if close_re.match(line):
                break
            body.append(_dedent(line, indent))

        lang, _, meta = info.partition(" ")
        value = "\n".join(body)
        return _code_node(value, lang or None, meta.strip() or None, fence=fence)

    def _atx_heading(self) -> DocumentNode:
        m = _ATX_RE.match(self._lines[self._i])
        assert m is not None
        self._i += 1
        level = len(m.group(1))
        content = _ATX_CLOSING_RE.sub("", m.group(2) or "").strip()
        return _heading_node(level, content)

    def _blockquote(self) -> DocumentNode:
        inner: list[str] = []
        while self._i < len(self._lines):
            m = _BLOCKQUOTE_RE.match(self._lines[self._i])
            if m is None:
                break
            inner.append(m.group(1))
            self._i += 1
        children = _Parser(inner).parse()
        text = "\n".join(c.text for c in children)
        markdown = "\n".join(f"> {l}" if l else ">" for l in inner) + "\n"
        return DocumentNode(type="blockquote", text=text, markdown=markdown)

    def _table(self) -> DocumentNode:
        rows: list[str] = []
        while self._i < len(self._lines) and _TABLE_RE.match(self._lines[self._i]):
            rows.append(self._lines[self._i].strip())
            self._i += 1
        text_rows: list[str] = []
        for row in rows:
            if _TABLE_DELIMITER_RE.match(row):
                continue
            cells = [inline_to_text(c.strip()) for c in row.strip("|").split("|")]
            text_rows.append(" ".join(c for c in cells if c))
        return DocumentNode(type="table", text="\n".join(text_rows), markdown="\n".join(rows) + "\n")

    def _html(self) -> DocumentNode:
        block: list[str] = []
        while self._i < len(self._lines) and not _is_blank(self._lines[self._i]):
            block.append(self._lines[self._i])
            self._i += 1
        value = "\n".join(block)
        return DocumentNode(type="html", text=value, markdown=value + "\n", value=value)

    def _paragraph(self) -> DocumentNode:
        block: list[str] = [self._lines[self._i].strip()]
        self._i += 1
        while self._i < len(self._lines):
            line = self._lines[self._i]
            if _is_blank(line):
                break
            if _SETEXT_H1_RE.match(line) or _SETEXT_H2_RE.match(line):
                self._i += 1
                level = 1 if _SETEXT_H1_RE.match(line) else 2
                return _heading_node(level, " ".join(block))
            if self._interrupts_paragraph(line):
                break
            block.append(line.strip())
            self._i += 1
        source = "\n".join(block)
        return DocumentNode(type="paragraph", text=inline_to_text(source), markdown=source + "\n")

    # -- lists -------------------------------------------------------

    def _list(self) -> DocumentNode:
        first = _LIST_ITEM_RE.match(self._lines[self._i])
        assert first is not None
        kind = _list_kind(first.group(2))
        ordered = kind not in "-*+"
        start = int(first.group(2)[:-1]) if ordered else None

        items: list[ListItem] = []
        spread = False
        while self._i < len(self._lines):
            m = _LIST_ITEM_RE.match(self._lines[self._i])
            if m is None or _list_kind(m.group(2)) != kind:
                break
            if _THEMATIC_BREAK_RE.match(self._lines[self._i]):
                break
            body, had_gap = self._list_item(m)
            items.append(_list_item(body))
            if had_gap:
                # A blank line followed by another item of this list.
                nxt = self._lines[self._i] if self._i < len(self._lines) else ""
                nm = _LIST_ITEM_RE.match(nxt)
                if nm is not None and _list_kind(nm.group(2)) == kind:
                    spread = True
                else:
                    break

        text = "\n".join(item.text for item in items)
        node = DocumentNode(
            type="list",
            text=text,
            markdown="",
            items=tuple(items),
            ordered=ordered,
            start=start,
            spread=spread,
            marker=kind,
        )
        return _with_list_markdown(node)

    def _list_item(self, m: re.Match[str]) -> tuple[list[str], bool]:
        """Consume one item; return its dedented body lines and whether a blank
        line trails it."""
        spacing = m.group(3) or ""
        rest = m.group(4) or ""
        width = len(m.group(1)) + len(m.group(2))
        if not rest or len(spacing.expandtabs(4)) > 4:
            content_indent = width + 1
        else:
            content_indent = width + len(spacing.expandtabs(4))

        body: list[str] = [rest]
        self._i += 1
        pending_blank = False
        while self._i < len(self._lines):
            line = self._lines[self._i]
            if _is_blank(line):
                pending_blank = True
                self._i += 1
                continue
            indent = _indent_of(line)
            if indent >= content_indent:
                if pending_blank:
                    body.append("")
                body.append(_dedent(line, content_indent))
                pending_blank = False
                self._i += 1
                continue
            if pending_blank:
                break
            if _LIST_ITEM_RE.match(line) or self._interrupts_paragraph(line):
                break
            # Lazy continuation of the item's paragraph.
            body.append(line.strip())
            self._i += 1

        while body and not body[-1].strip():
            body.pop()
        return body, pending_blank


# ------------------------------------------------------------------
# Node constructors
# ------------------------------------------------------------------


def _heading_node(level: int, content: str) -> DocumentNode:
    return DocumentNode(
        type="heading",
        text=inline_to_text(content),
        markdown=f"{'#' * level} {content}\n",
        level=level,
    )


def code_fence_for(value: str, fence: str = "```") -> str:
    """Return a fence long enough not to collide with backtick runs in *value*."""
    longest = max((len(run) for run in re.findall(rf"{re.escape(fence[0])}+", value)), default=0)
    return fence[0] * max(len(fence), longest + 1)


def _code_node(value: str, lang: str | None, meta: str | None, fence: str = "```") -> DocumentNode:
    fence = code_fence_for(value, fence)
    info = " ".join(p for p in (lang, meta) if p)
    markdown = f"{fence}{info}\n{value}\n{fence}\n" if value else f"{fence}{info}\n{fence}\n"
    return DocumentNode(
        type="code", text=value, markdown=markdown, lang=lang, meta=meta, value=value
    )


def code_node(value: str, lang: str | None = None, meta: str | None = None) -> DocumentNode:
    """Build a code node from raw content (used when splitting code blocks)."""
    return _code_node(value, lang, meta)


def _list_item(body: list[str]) -> ListItem:
    children = tuple(_Parser(body).parse())
    return ListItem(text="\n".join(c.text for c in children), children=children)


def _with_list_markdown(node: DocumentNode) -> DocumentNode:
    rendered: list[str] = []
    for idx, item in enumerate(node.items):
        number = (node.start or 0) + idx if node.ordered else None
        rendered.append(
            render_list_item(
                item, ordered=node.ordered, number=number, spread=node.spread, marker=node.marker
            )
        )
    joiner = "\n" if node.spread else ""
    return DocumentNode(
        type=node.type,
        text=node.text,
        markdown=joiner.join(rendered),
        items=node.items,
        ordered=node.ordered,
        start=node.start,
        spread=node.spread,
        marker=node.marker,
    )
