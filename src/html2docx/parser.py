"""HTML parser that produces a read-only node tree for DOCX conversion.

Uses BeautifulSoup to build the tree and converts it into lightweight
:class:`Node` values.  Markdown input is rendered to HTML with mistune
first and then goes through the same path.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

import mistune
from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag


# ---------------------------------------------------------------------------
# Node definitions
# ---------------------------------------------------------------------------

class NodeKind(Enum):
    DOCUMENT = "document"
    TEXT = "text"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    CONTAINER = "container"
    BLOCKQUOTE = "blockquote"
    PREFORMATTED = "preformatted"
    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    STRIKETHROUGH = "strikethrough"
    SPAN = "span"
    LINK = "link"
    CODE = "code"
    LIST = "list"
    LIST_ITEM = "list_item"
    TABLE = "table"
    TABLE_SECTION = "table_section"
    TABLE_ROW = "table_row"
    TABLE_CELL = "table_cell"
    IMAGE = "image"
    LINE_BREAK = "line_break"
    PAGE_BREAK = "page_break"
    PAGE_NUMBER = "page_number"
    HORIZONTAL_RULE = "horizontal_rule"
    UNKNOWN = "unknown"


_TAG_KINDS = {
    "p": NodeKind.PARAGRAPH,
    "h1": NodeKind.HEADING,
    "h2": NodeKind.HEADING,
    "h3": NodeKind.HEADING,
    "h4": NodeKind.HEADING,
    "h5": NodeKind.HEADING,
    "h6": NodeKind.HEADING,
    "body": NodeKind.CONTAINER,
    "html": NodeKind.CONTAINER,
    "div": NodeKind.CONTAINER,
    "section": NodeKind.CONTAINER,
    "article": NodeKind.CONTAINER,
    "header": NodeKind.CONTAINER,
    "footer": NodeKind.CONTAINER,
    "main": NodeKind.CONTAINER,
    "aside": NodeKind.CONTAINER,
    "nav": NodeKind.CONTAINER,
    "figure": NodeKind.CONTAINER,
    "figcaption": NodeKind.CONTAINER,
    "address": NodeKind.CONTAINER,
    "blockquote": NodeKind.BLOCKQUOTE,
    "pre": NodeKind.PREFORMATTED,
    "b": NodeKind.BOLD,
    "strong": NodeKind.BOLD,
    "i": NodeKind.ITALIC,
    "em": NodeKind.ITALIC,
    "cite": NodeKind.ITALIC,
    "var": NodeKind.ITALIC,
    "u": NodeKind.UNDERLINE,
    "ins": NodeKind.UNDERLINE,
    "s": NodeKind.STRIKETHROUGH,
    "strike": NodeKind.STRIKETHROUGH,
    "del": NodeKind.STRIKETHROUGH,
    "span": NodeKind.SPAN,
    "font": NodeKind.SPAN,
    "small": NodeKind.SPAN,
    "mark": NodeKind.SPAN,
    "label": NodeKind.SPAN,
    "abbr": NodeKind.SPAN,
    "a": NodeKind.LINK,
    "code": NodeKind.CODE,
    "kbd": NodeKind.CODE,
    "samp": NodeKind.CODE,
    "tt": NodeKind.CODE,
    "ul": NodeKind.LIST,
    "ol": NodeKind.LIST,
    "li": NodeKind.LIST_ITEM,
    "table": NodeKind.TABLE,
    "thead": NodeKind.TABLE_SECTION,
    "tbody": NodeKind.TABLE_SECTION,
    "tfoot": NodeKind.TABLE_SECTION,
    "tr": NodeKind.TABLE_ROW,
    "td": NodeKind.TABLE_CELL,
    "th": NodeKind.TABLE_CELL,
    "img": NodeKind.IMAGE,
    "br": NodeKind.LINE_BREAK,
    "hr": NodeKind.HORIZONTAL_RULE,
    "page-break": NodeKind.PAGE_BREAK,
    "page-number": NodeKind.PAGE_NUMBER,
}

TEXT_TAG = "#text"
DOCUMENT_TAG = "#document"


@dataclass(frozen=True)
class Node:
    """One element or text node.  Treated as read-only by the converter."""

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: tuple[Node, ...] = ()
    text: str = ""

    @property
    def kind(self) -> NodeKind:
        if self.tag == TEXT_TAG:
            return NodeKind.TEXT
        if self.tag == DOCUMENT_TAG:
            return NodeKind.DOCUMENT
        if "data-page-break" in self.attrs and not self.has_content:
            return NodeKind.PAGE_BREAK
        return _TAG_KINDS.get(self.tag, NodeKind.UNKNOWN)

    @property
    def style(self) -> str:
        """The raw inline ``style`` declaration string."""
        return self.attrs.get("style", "")

    @property
    def has_content(self) -> bool:
        return any(
            child.tag != TEXT_TAG or child.text.strip() for child in self.children
        )

    @property
    def heading_level(self) -> int:
        if self.kind is NodeKind.HEADING:
            return int(self.tag[1])
        return 0

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attrs.get(name, default)

    def has(self, name: str) -> bool:
        return name in self.attrs

    def elements(self) -> Iterator[Node]:
        """Child nodes that are elements (text nodes skipped)."""
        return (child for child in self.children if child.tag != TEXT_TAG)

    def text_content(self) -> str:
        """Concatenated text of the whole subtree."""
        if self.tag == TEXT_TAG:
            return self.text
        return "".join(child.text_content() for child in self.children)


# ---------------------------------------------------------------------------
# HTML parser
# ---------------------------------------------------------------------------

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Elements removed together with their content.
DROPPED_TAGS = frozenset({
    "head", "title", "meta", "link", "script", "style", "noscript",
    "template", "iframe", "object", "embed", "form", "input", "button",
    "select", "textarea",
})


class HtmlParser:
    """Parse HTML text into a :class:`Node` tree rooted at a DOCUMENT node."""

    def __init__(self, features: str = "html.parser") -> None:
        self.features = features

    # -- public API ---------------------------------------------------------

    def parse(self, html: str) -> Node:
        """Return a *DOCUMENT* ``Node`` for *html*."""
        cleaned = _CONTROL_CHARS_RE.sub("", html or "")
        soup = BeautifulSoup(cleaned, self.features)
        root = soup.body if soup.body is not None else soup
        return Node(tag=DOCUMENT_TAG, children=self._convert_children(root))

    # -- tree conversion ----------------------------------------------------

    def _convert_children(self, tag: Tag) -> tuple[Node, ...]:
        nodes: list[Node] = []
        for child in tag.children:
            node = self._convert(child)
            if node is not None:
                nodes.append(node)
        return tuple(nodes)

    def _convert(self, element: object) -> Optional[Node]:
        if isinstance(element, Tag):
            name = element.name.lower()
            if name in DROPPED_TAGS:
                return None
            return Node(
                tag=name,
                attrs=self._convert_attrs(element),
                children=self._convert_children(element),
            )
        # Comments, doctypes, CDATA and processing instructions.
        if isinstance(element, PreformattedString):
            return None
        if isinstance(element, NavigableString):
            return Node(tag=TEXT_TAG, text=str(element))
        return None

    @staticmethod
    def _convert_attrs(element: Tag) -> dict[str, str]:
        attrs: dict[str, str] = {}
        for key, value in element.attrs.items():
            if isinstance(value, (list, tuple)):
                value = " ".join(value)
            attrs[key.lower()] = "" if value is None else str(value)
        return attrs


# ---------------------------------------------------------------------------
# Markdown front end
# ---------------------------------------------------------------------------

class MarkdownParser:
    """Render Markdown to HTML with mistune and parse the result."""

    def __init__(self, html_parser: Optional[HtmlParser] = None) -> None:
        self._md = mistune.create_markdown(
            escape=False,
            plugins=["table", "strikethrough", "task_lists"],
        )
        self.html_parser = html_parser or HtmlParser()

    def to_html(self, markdown_text: str) -> str:
        return str(self._md(markdown_text or ""))

    def parse(self, markdown_text: str) -> Node:
        """Return a *DOCUMENT* ``Node`` for *markdown_text*."""
        return self.html_parser.parse(self.to_html(markdown_text))
