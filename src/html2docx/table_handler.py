"""Table handler for converting HTML tables to WordprocessingML.

This module converts TABLE nodes into ``w:tbl`` fragments. It supports:
- Column grid taken from the first row's width hints (px or %)
- ``colspan`` via ``w:gridSpan``
- Header rows (``th``) rendered bold and repeated on each page
- Cell shading, borders, padding and vertical alignment
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Optional
from xml.etree.ElementTree import Element, SubElement

from html2docx.fragments import Fragment, FragmentKind, empty_paragraph, qn
from html2docx.parser import Node, NodeKind
from html2docx.style_resolver import BorderSpec, StyleRecord, resolve_style
from html2docx.units import parse_percentage, percent_to_pct, to_twips

if TYPE_CHECKING:
    from html2docx.transducer import NodeTransducer

_BORDER_VALUES = {
    "solid": "single",
    "dotted": "dotted",
    "dashed": "dashed",
    "double": "double",
    "groove": "threeDEngrave",
    "ridge": "threeDEmboss",
    "inset": "inset",
    "outset": "outset",
}

_HEADER_CELL_STYLE = StyleRecord(bold=True)


def _colspan(cell: Node) -> int:
    try:
        return max(int(cell.get("colspan", "1") or 1), 1)
    except ValueError:
        return 1


def _border_element(parent: Element, tag: str, border: BorderSpec) -> None:
    edge = SubElement(parent, qn(f"w:{tag}"))
    edge.set(qn("w:val"), _BORDER_VALUES.get(border.style, "single"))
    edge.set(qn("w:sz"), str(max(int(round(border.width * 8)), 2)))  # eighths of a point
    edge.set(qn("w:space"), "0")
    edge.set(qn("w:color"), border.color)


class TableHandler:
    """Converts TABLE nodes to ``w:tbl`` fragments."""

    def __init__(self, transducer: NodeTransducer) -> None:
        """Initialize table handler with default formatting values."""
        self.transducer = transducer
        self.cell_margin_left = 108  # twips
        self.cell_margin_right = 108
        self.min_col_width = 360

    def render_table(self, table_node: Node, style: StyleRecord) -> Fragment:
        """Convert a TABLE node to a ``w:tbl`` fragment.

        Args:
            table_node: TABLE node containing rows, directly or in sections
            style: Resolved style of the table element

        Returns:
            TABLE fragment

        Raises:
            ValueError: If table_node is not a TABLE node
        """
        if table_node.kind is not NodeKind.TABLE:
            raise ValueError(f"Expected TABLE node, got {table_node.kind}")

        rows = self._collect_rows(table_node)
        if not rows:
            # Empty table - create a 1x1 placeholder
            rows = [Node(tag="tr", children=(Node(tag="td"),))]

        if style.border is None and table_node.get("border") not in (None, "", "0"):
            style = style.merge(StyleRecord(border=BorderSpec()))

        width_type, width_value, table_twips = self._table_width(style)
        grid, explicit = self.column_grid(rows[0], table_twips)

        tbl = Element(qn("w:tbl"))
        tbl_pr = SubElement(tbl, qn("w:tblPr"))
        tbl_w = SubElement(tbl_pr, qn("w:tblW"))
        tbl_w.set(qn("w:w"), str(width_value))
        tbl_w.set(qn("w:type"), width_type)
        if style.alignment in ("center", "right"):
            SubElement(tbl_pr, qn("w:jc")).set(qn("w:val"), style.alignment)
        if style.border is not None and style.border.visible:
            borders = SubElement(tbl_pr, qn("w:tblBorders"))
            for edge in ("top", "left", "bottom", "right", "insideH", "insideV"):
                _border_element(borders, edge, style.border)
        if explicit:
            SubElement(tbl_pr, qn("w:tblLayout")).set(qn("w:type"), "fixed")
        cell_mar = SubElement(tbl_pr, qn("w:tblCellMar"))
        for side, value in (("left", self.cell_margin_left), ("right", self.cell_margin_right)):
            margin = SubElement(cell_mar, qn(f"w:{side}"))
            margin.set(qn("w:w"), str(value))
            margin.set(qn("w:type"), "dxa")
        look = SubElement(tbl_pr, qn("w:tblLook"))
        look.set(qn("w:val"), "04A0")

        tbl_grid = SubElement(tbl, qn("w:tblGrid"))
        for width in grid:
            SubElement(tbl_grid, qn("w:gridCol")).set(qn("w:w"), str(width))

        row_baseline = style.inheritable()
        for row_idx, row_node in enumerate(rows):
            tbl.append(self._render_row(row_node, row_idx, grid, row_baseline))

        return Fragment(FragmentKind.TABLE, tbl)

    # ------------------------------------------------------------------
    # Grid
    # ------------------------------------------------------------------

    def _table_width(self, style: StyleRecord) -> tuple[str, int, int]:
        """(``w:type``, ``w:w``, width in twips used for grid arithmetic)."""
        content = self.transducer.options.content_width_twips
        if style.width:
            percent = parse_percentage(style.width)
            if percent is not None and percent > 0:
                return "pct", percent_to_pct(percent), int(round(content * percent / 100.0))
            twips = to_twips(style.width)
            if twips and twips > 0:
                return "dxa", twips, twips
        return "auto", 0, content

    def column_grid(self, first_row: Node, table_twips: int) -> tuple[list[int], bool]:
        """Derive column widths (twips) from the first row only.

        Returns the widths plus whether any cell carried an explicit width.
        Cells without a width share whatever the table width leaves over.
        """
        columns: list[Optional[int]] = []
        for cell in self._cells(first_row):
            span = _colspan(cell)
            width = self._cell_width(cell, table_twips)
            share = None if width is None else int(round(width / span))
            columns.extend([share] * span)
        if not columns:
            columns = [None]

        known = [w for w in columns if w is not None]
        unknown = len(columns) - len(known)
        if unknown:
            remaining = table_twips - sum(known)
            fill = max(int(remaining / unknown), self.min_col_width)
            columns = [fill if w is None else w for w in columns]
        return [int(w) for w in columns], bool(known)  # type: ignore[arg-type]

    def _cell_width(self, cell: Node, table_twips: int) -> Optional[int]:
        width = resolve_style(cell).width
        if not width:
            return None
        percent = parse_percentage(width)
        if percent is not None:
            return int(round(table_twips * percent / 100.0)) if percent > 0 else None
        twips = to_twips(width)
        return twips if twips and twips > 0 else None

    # ------------------------------------------------------------------
    # Rows and cells
    # ------------------------------------------------------------------

    def _collect_rows(self, table_node: Node) -> list[Node]:
        rows: list[Node] = []
        for child in table_node.elements():
            if child.kind is NodeKind.TABLE_ROW:
                rows.append(child)
            elif child.kind is NodeKind.TABLE_SECTION:
                rows.extend(c for c in child.elements() if c.kind is NodeKind.TABLE_ROW)
        return rows

    @staticmethod
    def _cells(row_node: Node) -> list[Node]:
        return [c for c in row_node.elements() if c.kind is NodeKind.TABLE_CELL]

    def _render_row(
        self,
        row_node: Node,
        row_idx: int,
        grid: list[int],
        baseline: StyleRecord,
    ) -> Element:
        """Render a single table row, padded or truncated to the grid."""
        row_style = baseline.merge(resolve_style(row_node))
        cells = self._cells(row_node)

        tr = Element(qn("w:tr"))
        tr_pr = Element(qn("w:trPr"))
        height = to_twips(row_style.height) if row_style.height else None
        if height and height > 0:
            tr_height = SubElement(tr_pr, qn("w:trHeight"))
            tr_height.set(qn("w:val"), str(height))
            tr_height.set(qn("w:hRule"), "atLeast")
        if row_idx == 0 and cells and all(c.tag == "th" for c in cells):
            SubElement(tr_pr, qn("w:tblHeader"))
        if len(tr_pr):
            tr.append(tr_pr)

        col = 0
        cell_baseline = row_style.inheritable()
        for cell_node in cells:
            if col >= len(grid):
                break  # Don't exceed column count
            span = min(_colspan(cell_node), len(grid) - col)
            tr.append(self._render_cell(cell_node, grid[col:col + span], cell_baseline))
            col += span

        # Pad row with empty cells if needed
        while col < len(grid):
            tr.append(self._render_empty_cell(grid[col]))
            col += 1

        return tr

    def _render_cell(
        self,
        cell_node: Node,
        widths: list[int],
        baseline: StyleRecord,
    ) -> Element:
        style = baseline
        if cell_node.tag == "th":
            style = style.merge(_HEADER_CELL_STYLE)
        style = style.merge(resolve_style(cell_node))

        tc = Element(qn("w:tc"))
        tc_pr = SubElement(tc, qn("w:tcPr"))
        tc_w = SubElement(tc_pr, qn("w:tcW"))
        tc_w.set(qn("w:w"), str(sum(widths)))
        tc_w.set(qn("w:type"), "dxa")
        if len(widths) > 1:
            SubElement(tc_pr, qn("w:gridSpan")).set(qn("w:val"), str(len(widths)))
        if style.border is not None and style.border.visible:
            borders = SubElement(tc_pr, qn("w:tcBorders"))
            for edge in ("top", "left", "bottom", "right"):
                _border_element(borders, edge, style.border)
        if style.background:
            shd = SubElement(tc_pr, qn("w:shd"))
            shd.set(qn("w:val"), "clear")
            shd.set(qn("w:color"), "auto")
            shd.set(qn("w:fill"), style.background)
        if style.padding is not None:
            mar = SubElement(tc_pr, qn("w:tcMar"))
            for side in ("top", "left", "bottom", "right"):
                value = getattr(style.padding, side)
                if value is not None:
                    edge = SubElement(mar, qn(f"w:{side}"))
                    edge.set(qn("w:w"), str(max(value, 0)))
                    edge.set(qn("w:type"), "dxa")
        if style.vertical_align:
            SubElement(tc_pr, qn("w:vAlign")).set(qn("w:val"), style.vertical_align)

        # Cell shading already carries the background; runs must not repeat it.
        content_style = replace(style.inheritable(), background=None)
        blocks = self.transducer.render_blocks(cell_node.children, content_style)
        if not blocks or blocks[-1].kind is FragmentKind.TABLE:
            blocks.append(empty_paragraph())
        for fragment in blocks:
            tc.append(fragment.element())
        return tc

    def _render_empty_cell(self, width: int) -> Element:
        """Render an empty table cell for padding."""
        tc = Element(qn("w:tc"))
        tc_pr = SubElement(tc, qn("w:tcPr"))
        tc_w = SubElement(tc_pr, qn("w:tcW"))
        tc_w.set(qn("w:w"), str(width))
        tc_w.set(qn("w:type"), "dxa")
        tc.append(empty_paragraph().element())
        return tc
