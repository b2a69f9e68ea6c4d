"""Node transducer - converts a :class:`~html2docx.parser.Node` tree into fragments.

The transducer walks the tree depth-first, left to right, and emits
WordprocessingML :class:`~html2docx.fragments.Fragment` values in exactly
that order.  Each node's style is the parent's baseline overlaid with the
element's implied style and then its own inline declarations.

Block elements dispatch through ``_render_<kind>`` methods; runs of
consecutive inline siblings are grouped into one anonymous paragraph.
Emphasis elements never produce fragments of their own: they only change
the style threaded down to the text below them.
"""

from __future__ import annotations

import html
import itertools
import re
from dataclasses import replace
from typing import Callable, Iterable, Iterator, Optional, Sequence

from html2docx import shapes
from html2docx.fragments import (
    Fragment,
    FragmentKind,
    line_break_run,
    make_paragraph,
    page_break_paragraph,
    page_break_run,
    page_number_runs,
    text_run,
)
from html2docx.logger import get_logger
from html2docx.media import (
    MediaAsset,
    MediaManager,
    anchored_image_run,
    floating_image_run,
    inline_image_run,
)
from html2docx.options import HEADING_PLACEHOLDER, ConversionOptions
from html2docx.parser import HtmlParser, Node, NodeKind
from html2docx.style_resolver import EMPTY_STYLE, Box, StyleRecord, resolve_style
from html2docx.table_handler import TableHandler
from html2docx.units import EMU_PER_PIXEL, EMU_PER_TWIP, to_emu

LOGGER = get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INLINE_KINDS = frozenset({
    NodeKind.TEXT,
    NodeKind.BOLD,
    NodeKind.ITALIC,
    NodeKind.UNDERLINE,
    NodeKind.STRIKETHROUGH,
    NodeKind.SPAN,
    NodeKind.LINK,
    NodeKind.CODE,
    NodeKind.IMAGE,
    NodeKind.LINE_BREAK,
    NodeKind.PAGE_NUMBER,
})

# Kinds that become a VML text box when their style is a decorated box.
BOX_KINDS = frozenset({
    NodeKind.PARAGRAPH,
    NodeKind.HEADING,
    NodeKind.CONTAINER,
    NodeKind.BLOCKQUOTE,
    NodeKind.PREFORMATTED,
})

MONOSPACE_FONT = "Consolas"
LINK_COLOR = "0563C1"
BLOCKQUOTE_INDENT = 720  # twips
LIST_CONTINUATION_INDENT = 720
DEFAULT_IMAGE_SIZE_PX = (300, 200)

_IMPLIED_STYLES = {
    NodeKind.BOLD: StyleRecord(bold=True),
    NodeKind.ITALIC: StyleRecord(italic=True),
    NodeKind.UNDERLINE: StyleRecord(underline=True),
    NodeKind.STRIKETHROUGH: StyleRecord(strike=True),
    NodeKind.LINK: StyleRecord(underline=True, color=LINK_COLOR),
    NodeKind.CODE: StyleRecord(font_family=MONOSPACE_FONT),
    NodeKind.PREFORMATTED: StyleRecord(font_family=MONOSPACE_FONT),
    NodeKind.BLOCKQUOTE: StyleRecord(indent_left=BLOCKQUOTE_INDENT),
}

_WHITESPACE_RE = re.compile(r"\s+")

# Marks the boundary of a block element flattened into inline content.
_SEPARATOR = object()

Handler = Callable[[Node, StyleRecord], list]


# ---------------------------------------------------------------------------
# NodeTransducer
# ---------------------------------------------------------------------------

class NodeTransducer:
    """Converts node trees to fragment streams for one conversion call.

    Args:
        options: Sanitized conversion options (page geometry, heading
            replacement templates).
        media: The conversion's image accumulator.
        parser: Parser used to re-enter the pipeline from literal markup.
    """

    MAX_REENTRY_DEPTH = 1
    FIRST_SHAPE_ID = 1025

    def __init__(
        self,
        options: ConversionOptions,
        media: MediaManager,
        parser: Optional[HtmlParser] = None,
    ) -> None:
        self.options = options
        self.media = media
        self.parser = parser or HtmlParser()
        self.tables = TableHandler(self)
        self._shape_ids = itertools.count(self.FIRST_SHAPE_ID)
        self._part = "document"
        self._depth = 0

    # ======================================================================
    # Public API
    # ======================================================================

    def transduce(
        self,
        root: Node,
        *,
        part: str = "document",
        baseline: Optional[StyleRecord] = None,
    ) -> list[Fragment]:
        """Render *root* into block fragments owned by *part*.

        Args:
            root: A DOCUMENT node, or any single node.
            part: ``document``, ``header`` or ``footer``; images resolved
                during this call are registered against it.
            baseline: Style inherited by the top-level nodes.

        Returns:
            Block fragments in document order.
        """
        previous = self._part
        self._part = part
        try:
            nodes = root.children if root.kind is NodeKind.DOCUMENT else (root,)
            return self.render_blocks(nodes, baseline or EMPTY_STYLE)
        finally:
            self._part = previous

    def process_markup(
        self,
        markup: str,
        baseline: Optional[StyleRecord] = None,
    ) -> list[Fragment]:
        """Parse *markup* and run it through the pipeline from the top.

        Heading replacement uses this to turn a heading into an arbitrary
        sub-tree.  Nested calls are counted so that a template containing
        a heading is rendered as a plain heading instead of re-entering.
        """
        self._depth += 1
        try:
            root = self.parser.parse(markup)
            return self.render_blocks(root.children, baseline or EMPTY_STYLE)
        finally:
            self._depth -= 1

    def next_shape_id(self) -> int:
        return next(self._shape_ids)

    def style_for(self, node: Node, baseline: StyleRecord) -> StyleRecord:
        """Inherited baseline, then the element's implied style, then its own."""
        implied = _IMPLIED_STYLES.get(node.kind, EMPTY_STYLE)
        return baseline.merge(implied).merge(resolve_style(node))

    def render_blocks(
        self,
        nodes: Iterable[Node],
        baseline: StyleRecord,
    ) -> list[Fragment]:
        """Render siblings, grouping consecutive inline nodes into paragraphs."""
        fragments: list[Fragment] = []
        pending: list[Node] = []
        for node in _unwrap_unknown(nodes):
            if node.kind in INLINE_KINDS:
                pending.append(node)
                continue
            fragments.extend(self._flush_inline(pending, baseline))
            pending = []
            fragments.extend(self.render_node(node, baseline))
        fragments.extend(self._flush_inline(pending, baseline))
        return fragments

    def render_node(self, node: Node, baseline: StyleRecord) -> list[Fragment]:
        """Render one node; page-break flags wrap whatever it produced."""
        if node.kind in INLINE_KINDS:
            return self._flush_inline([node], baseline)
        if node.kind is NodeKind.UNKNOWN:
            return self.render_blocks(node.children, baseline)

        style = self.style_for(node, baseline)
        handler: Handler = getattr(self, f"_render_{node.kind.value}")

        fragments: Optional[list[Fragment]] = None
        if node.kind is NodeKind.HEADING:
            fragments = self._replace_heading(node, style)
        if fragments is None:
            if node.kind in BOX_KINDS and style.is_decorated_box:
                fragments = self._decorate(node, style, handler)
            else:
                fragments = handler(node, style)
        return self._wrap_page_breaks(fragments, style)

    # ======================================================================
    # Per-kind renderers
    # ======================================================================

    def _render_paragraph(self, node: Node, style: StyleRecord) -> list[Fragment]:
        return [self._paragraph(node.children, style)]

    def _render_heading(self, node: Node, style: StyleRecord) -> list[Fragment]:
        return [self._paragraph(node.children, style)]

    def _render_container(self, node: Node, style: StyleRecord) -> list[Fragment]:
        return self.render_blocks(node.children, style.inheritable())

    _render_document = _render_container
    _render_blockquote = _render_container
    # Table parts outside a table degrade to containers.
    _render_table_section = _render_container
    _render_table_row = _render_container
    _render_table_cell = _render_container

    def _render_preformatted(self, node: Node, style: StyleRecord) -> list[Fragment]:
        text = node.text_content()
        if text.startswith("\n"):
            text = text[1:]
        text = text.rstrip("\n")
        runs = [text_run(text, style.inheritable())] if text else []
        return [make_paragraph(runs, style)]

    def _render_horizontal_rule(self, _node: Node, style: StyleRecord) -> list[Fragment]:
        return [make_paragraph([], style, bottom_border=True)]

    def _render_page_break(self, _node: Node, _style: StyleRecord) -> list[Fragment]:
        return [page_break_paragraph()]

    def _render_table(self, node: Node, style: StyleRecord) -> list[Fragment]:
        return [self.tables.render_table(node, style)]

    def _render_list(self, node: Node, style: StyleRecord) -> list[Fragment]:
        list_type = "ordered" if node.tag == "ol" else "bullet"
        item_baseline = replace(style.inheritable(), list_type=list_type, list_level=0)
        fragments: list[Fragment] = []
        for child in _unwrap_unknown(node.children):
            if child.kind is NodeKind.LIST_ITEM:
                fragments.extend(self.render_node(child, item_baseline))
            elif child.kind is NodeKind.TEXT and not child.text.strip():
                continue
            else:
                fragments.extend(self.render_blocks((child,), style.inheritable()))
        return fragments

    def _render_list_item(self, node: Node, style: StyleRecord) -> list[Fragment]:
        """One numbered paragraph, then any nested blocks in document order."""
        if style.list_type is None:
            style = replace(style, list_type="bullet", list_level=0)

        leading: list[Node] = []
        rest: list[Node] = []
        for child in _unwrap_unknown(node.children):
            if child.kind in INLINE_KINDS and not rest:
                leading.append(child)
            else:
                rest.append(child)

        item_style = style
        if not _has_text(leading) and rest and rest[0].kind is NodeKind.PARAGRAPH:
            # Loose list items wrap their text in <p>
            first = rest.pop(0)
            item_style = style.merge(resolve_style(first))
            leading = list(first.children)

        fragments = [self._paragraph(leading, item_style)]
        if rest:
            continuation = replace(
                style.inheritable(),
                list_type=None,
                list_level=None,
                indent_left=LIST_CONTINUATION_INDENT,
            )
            fragments.extend(self.render_blocks(rest, continuation))
        return fragments

    # ======================================================================
    # Cross-cutting wrappers
    # ======================================================================

    def _replace_heading(self, node: Node, style: StyleRecord) -> Optional[list[Fragment]]:
        template = self.options.heading_replacements.get(node.heading_level)
        if not template or self._depth >= self.MAX_REENTRY_DEPTH:
            return None
        text = html.escape(node.text_content().strip())
        LOGGER.debug("Replacing h%d %r with template", node.heading_level, text)
        return self.process_markup(template.replace(HEADING_PLACEHOLDER, text), style.inheritable())

    def _decorate(self, node: Node, style: StyleRecord, handler: Handler) -> list[Fragment]:
        inner = replace(style.without_box(), heading_level=style.heading_level)
        content = handler(node, inner)
        return [
            shapes.text_box(
                content,
                style,
                shape_id=self.next_shape_id(),
                options=self.options,
            )
        ]

    @staticmethod
    def _wrap_page_breaks(fragments: list[Fragment], style: StyleRecord) -> list[Fragment]:
        if style.page_break_before:
            fragments = [page_break_paragraph()] + fragments
        if style.page_break_after:
            fragments = fragments + [page_break_paragraph()]
        return fragments

    # ======================================================================
    # Inline content
    # ======================================================================

    def _paragraph(self, nodes: Sequence[Node], style: StyleRecord) -> Fragment:
        return make_paragraph(self._inline_runs(nodes, style.inheritable()), style)

    def _flush_inline(self, nodes: list[Node], baseline: StyleRecord) -> list[Fragment]:
        if not _has_text(nodes):
            return []
        runs = self._inline_runs(nodes, baseline)
        if not runs:
            return []
        return [make_paragraph(runs, baseline)]

    def _inline_runs(self, nodes: Iterable[Node], baseline: StyleRecord) -> list[Fragment]:
        items: list = []
        for node in nodes:
            self._collect_inline(node, baseline, items)
        return _finish_runs(items)

    def _collect_inline(
        self,
        node: Node,
        baseline: StyleRecord,
        items: list,
    ) -> None:
        kind = node.kind
        if kind is NodeKind.TEXT:
            text = _WHITESPACE_RE.sub(" ", node.text)
            if text:
                items.append((text, baseline))
            return
        if kind is NodeKind.UNKNOWN:
            for child in node.children:
                self._collect_inline(child, baseline, items)
            return

        style = self.style_for(node, baseline)
        if style.page_break_before:
            items.append(page_break_run())

        if kind is NodeKind.LINE_BREAK:
            items.append(line_break_run())
        elif kind is NodeKind.PAGE_BREAK:
            items.append(page_break_run())
        elif kind is NodeKind.PAGE_NUMBER:
            items.extend(page_number_runs(style.inheritable()))
        elif kind is NodeKind.IMAGE:
            run = self._image_run(node, style)
            if run is not None:
                items.append(run)
        elif kind is NodeKind.PREFORMATTED:
            items.append(_SEPARATOR)
            items.append((node.text_content().strip("\n"), style.inheritable()))
            items.append(_SEPARATOR)
        elif kind in INLINE_KINDS:
            child_style = style.inheritable()
            for child in node.children:
                self._collect_inline(child, child_style, items)
        else:
            # Block content inside a paragraph is flattened onto its own line.
            LOGGER.debug("Flattening <%s> inside inline content", node.tag)
            items.append(_SEPARATOR)
            child_style = style.inheritable()
            for child in node.children:
                self._collect_inline(child, child_style, items)
            items.append(_SEPARATOR)

        if style.page_break_after:
            items.append(page_break_run())

    # ======================================================================
    # Images
    # ======================================================================

    def _image_run(self, node: Node, style: StyleRecord) -> Optional[Fragment]:
        src = node.get("src")
        if not src:
            LOGGER.debug("Skipping <img> without src")
            return None
        asset = self.media.resolve(src, node.get("alt") or "Image", self._part)
        if asset is None:
            return None

        if node.has("data-cover"):
            cx, cy = self._image_extent(asset, style, full_width=True)
            return anchored_image_run(
                asset,
                cx,
                cy,
                horizontal=("page", "posOffset", 0),
                vertical=("paragraph", "posOffset", 0),
                wrap="topAndBottom",
            )

        cx, cy = self._image_extent(asset, style)
        if node.has("data-section-header"):
            return anchored_image_run(
                asset,
                cx,
                cy,
                horizontal=("margin", "align", "center"),
                vertical=("paragraph", "posOffset", 0),
                wrap="topAndBottom",
            )
        if style.float_side in ("left", "right"):
            margin = style.margin or Box()
            distances = tuple(
                max(value or 0, 0) * EMU_PER_TWIP
                for value in (margin.top, margin.bottom, margin.left, margin.right)
            )
            return floating_image_run(asset, cx, cy, style.float_side, distances)
        return inline_image_run(asset, cx, cy)

    def _image_extent(
        self,
        asset: MediaAsset,
        style: StyleRecord,
        *,
        full_width: bool = False,
    ) -> tuple[int, int]:
        """Image size in EMU.

        Explicit dimensions win; a single dimension keeps the aspect ratio
        of the intrinsic size.  The result never exceeds the content width
        (or spans the page width exactly for cover images).
        """
        native_w, native_h = asset.pixel_size or DEFAULT_IMAGE_SIZE_PX
        native_w, native_h = max(native_w, 1), max(native_h, 1)
        content_width = self.options.content_width_emu

        width = to_emu(style.width, percent_base=content_width) if style.width else None
        height = (
            to_emu(style.height, percent_base=self.options.content_height_twips * EMU_PER_TWIP)
            if style.height
            else None
        )
        width = width if width and width > 0 else None
        height = height if height and height > 0 else None

        if width and not height:
            height = width * native_h / native_w
        elif height and not width:
            width = height * native_w / native_h
        elif not width and not height:
            width, height = native_w * EMU_PER_PIXEL, native_h * EMU_PER_PIXEL

        limit = self.options.page_width_emu if full_width else content_width
        if full_width or width > limit:
            height = height * limit / width
            width = limit
        return int(round(width)), int(round(height))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _unwrap_unknown(nodes: Iterable[Node]) -> Iterator[Node]:
    """Yield *nodes*, replacing unrecognised elements by their children."""
    for node in nodes:
        if node.kind is NodeKind.UNKNOWN:
            LOGGER.debug("Unwrapping unknown element <%s>", node.tag)
            yield from _unwrap_unknown(node.children)
        else:
            yield node


def _has_text(nodes: Iterable[Node]) -> bool:
    return any(n.kind is not NodeKind.TEXT or n.text.strip() for n in nodes)


def _is_line_end(item: object) -> bool:
    return item is _SEPARATOR or (
        isinstance(item, Fragment) and item.kind is FragmentKind.BREAK
    )


def _ends_line(items: list, idx: int) -> bool:
    return idx + 1 >= len(items) or _is_line_end(items[idx + 1])


def _finish_runs(items: list) -> list[Fragment]:
    """Turn collected items into runs, trimming whitespace at line edges."""
    cleaned: list = []
    for item in items:
        if item is _SEPARATOR and (not cleaned or _is_line_end(cleaned[-1])):
            continue
        cleaned.append(item)
    while cleaned and cleaned[-1] is _SEPARATOR:
        cleaned.pop()

    runs: list[Fragment] = []
    line_start = True
    for idx, item in enumerate(cleaned):
        if item is _SEPARATOR:
            runs.append(line_break_run())
            line_start = True
            continue
        if isinstance(item, Fragment):
            runs.append(item)
            line_start = item.kind is FragmentKind.BREAK
            continue
        text, style = item
        if line_start:
            text = text.lstrip(" ")
        if _ends_line(cleaned, idx):
            text = text.rstrip(" ")
        if not text:
            continue
        runs.append(text_run(text, style))
        line_start = text.endswith(" ")
    return runs
