"""WordprocessingML fragments and the builders that produce them.

A :class:`Fragment` wraps one generated element (paragraph, table, run,
shape).  It keeps a private copy of the element and hands out copies, so a
fragment never changes after it is built.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional
from xml.etree.ElementTree import Element, SubElement, tostring

from html2docx.style_resolver import EMPTY_STYLE, StyleRecord

# ---------------------------------------------------------------------------
# Namespaces
# ---------------------------------------------------------------------------

NS = {
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "wp": "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "pic": "http://schemas.openxmlformats.org/drawingml/2006/picture",
    "v": "urn:schemas-microsoft-com:vml",
    "o": "urn:schemas-microsoft-com:office:office",
    "w10": "urn:schemas-microsoft-com:office:word",
}

for _prefix, _uri in NS.items():
    ET.register_namespace(_prefix, _uri)

# Declarations placed on the root element of every body/header/footer part.
NS_DECLARATIONS = "".join(f' xmlns:{prefix}="{uri}"' for prefix, uri in NS.items())

XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"

BULLET_NUM_ID = 1
ORDERED_NUM_ID = 2


def qn(name: str) -> str:
    """``"w:p"`` -> ``"{http://...main}p"``."""
    prefix, local = name.split(":", 1)
    return f"{{{NS[prefix]}}}{local}"


_START_TAG_NAME_RE = re.compile(r"<[^\s/>]+")
_ATTRIBUTE_RE = re.compile(r'\s+([^\s=]+)="([^"]*)"')


def elem_to_str(elem: Element) -> str:
    """Serialize *elem* without namespace declarations.

    The declarations live on the part's root element, so serialized
    fragments must not repeat them.  ElementTree writes every declaration
    on the outermost start tag and escapes ``>`` and ``"`` in attribute
    values, so only that tag is rewritten; text content is left alone.
    """
    raw = tostring(elem, encoding="unicode")
    tag_end = raw.index(">")
    name = _START_TAG_NAME_RE.match(raw).group(0)
    kept = [name]
    pos = len(name)
    for m in _ATTRIBUTE_RE.finditer(raw, pos, tag_end):
        attr = m.group(1)
        if attr != "xmlns" and not attr.startswith("xmlns:"):
            kept.append(m.group(0))
        pos = m.end()
    return "".join(kept) + raw[pos:]


def xml_escape(s: str) -> str:
    """Escape XML special characters for string-built XML."""
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


# ---------------------------------------------------------------------------
# Fragment
# ---------------------------------------------------------------------------

class FragmentKind(Enum):
    PARAGRAPH = "paragraph"
    TABLE = "table"
    SHAPE = "shape"
    PAGE_BREAK = "page_break"
    RUN = "run"
    BREAK = "break"


BLOCK_KINDS = frozenset({
    FragmentKind.PARAGRAPH,
    FragmentKind.TABLE,
    FragmentKind.SHAPE,
    FragmentKind.PAGE_BREAK,
})


@dataclass(frozen=True, eq=False)
class Fragment:
    """One immutable unit of generated markup."""

    kind: FragmentKind
    _element: Element = field(repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_element", deepcopy(self._element))

    @property
    def is_block(self) -> bool:
        return self.kind in BLOCK_KINDS

    @property
    def tag(self) -> str:
        return self._element.tag

    def element(self) -> Element:
        """Return a fresh copy of the wrapped element."""
        return deepcopy(self._element)

    def to_xml(self) -> str:
        return elem_to_str(self._element)


def serialize(fragments: Iterable[Fragment]) -> str:
    return "".join(f.to_xml() for f in fragments)


# ---------------------------------------------------------------------------
# Property builders
# ---------------------------------------------------------------------------

def run_properties(style: StyleRecord) -> Optional[Element]:
    """Build ``w:rPr`` for *style*, or ``None`` when nothing is set."""
    rpr = Element(qn("w:rPr"))
    if style.font_family:
        fonts = SubElement(rpr, qn("w:rFonts"))
        for attr in ("w:ascii", "w:hAnsi", "w:eastAsia", "w:cs"):
            fonts.set(qn(attr), style.font_family)
    if style.bold is not None:
        b = SubElement(rpr, qn("w:b"))
        if not style.bold:
            b.set(qn("w:val"), "0")
    if style.italic is not None:
        i = SubElement(rpr, qn("w:i"))
        if not style.italic:
            i.set(qn("w:val"), "0")
    if style.strike:
        SubElement(rpr, qn("w:strike"))
    if style.color:
        SubElement(rpr, qn("w:color")).set(qn("w:val"), style.color)
    if style.font_size:
        SubElement(rpr, qn("w:sz")).set(qn("w:val"), str(style.font_size))
        SubElement(rpr, qn("w:szCs")).set(qn("w:val"), str(style.font_size))
    if style.underline:
        SubElement(rpr, qn("w:u")).set(qn("w:val"), "single")
    if style.background:
        shd = SubElement(rpr, qn("w:shd"))
        shd.set(qn("w:val"), "clear")
        shd.set(qn("w:color"), "auto")
        shd.set(qn("w:fill"), style.background)
    return rpr if len(rpr) else None


def paragraph_properties(
    style: StyleRecord,
    *,
    bottom_border: bool = False,
) -> Optional[Element]:
    """Build ``w:pPr`` for *style*, children in schema order."""
    ppr = Element(qn("w:pPr"))
    if style.heading_level:
        SubElement(ppr, qn("w:pStyle")).set(qn("w:val"), f"Heading{style.heading_level}")
    if style.list_type:
        num_pr = SubElement(ppr, qn("w:numPr"))
        SubElement(num_pr, qn("w:ilvl")).set(qn("w:val"), str(style.list_level or 0))
        num_id = ORDERED_NUM_ID if style.list_type == "ordered" else BULLET_NUM_ID
        SubElement(num_pr, qn("w:numId")).set(qn("w:val"), str(num_id))
    if bottom_border:
        pbdr = SubElement(ppr, qn("w:pBdr"))
        bottom = SubElement(pbdr, qn("w:bottom"))
        bottom.set(qn("w:val"), "single")
        bottom.set(qn("w:sz"), "6")
        bottom.set(qn("w:space"), "1")
        bottom.set(qn("w:color"), "auto")
    if style.no_spacing:
        spacing = SubElement(ppr, qn("w:spacing"))
        spacing.set(qn("w:before"), "0")
        spacing.set(qn("w:after"), "0")
        spacing.set(qn("w:line"), "240")
        spacing.set(qn("w:lineRule"), "auto")
    elif style.spacing_before is not None or style.spacing_after is not None:
        spacing = SubElement(ppr, qn("w:spacing"))
        if style.spacing_before is not None:
            spacing.set(qn("w:before"), str(style.spacing_before))
        if style.spacing_after is not None:
            spacing.set(qn("w:after"), str(style.spacing_after))
    if not style.list_type and (style.indent_left or style.indent_right):
        ind = SubElement(ppr, qn("w:ind"))
        if style.indent_left:
            ind.set(qn("w:left"), str(style.indent_left))
        if style.indent_right:
            ind.set(qn("w:right"), str(style.indent_right))
    if style.alignment:
        SubElement(ppr, qn("w:jc")).set(qn("w:val"), style.alignment)
    return ppr if len(ppr) else None


# ---------------------------------------------------------------------------
# Fragment builders
# ---------------------------------------------------------------------------

def _text_element(run: Element, text: str) -> None:
    t = SubElement(run, qn("w:t"))
    t.set(XML_SPACE, "preserve")
    t.text = text


def text_run(text: str, style: StyleRecord = EMPTY_STYLE) -> Fragment:
    """A ``w:r`` carrying *text*; embedded newlines become ``w:br``."""
    r = Element(qn("w:r"))
    rpr = run_properties(style)
    if rpr is not None:
        r.append(rpr)
    for idx, line in enumerate(text.split("\n")):
        if idx:
            SubElement(r, qn("w:br"))
        if line:
            _text_element(r, line)
    return Fragment(FragmentKind.RUN, r)


def line_break_run() -> Fragment:
    r = Element(qn("w:r"))
    SubElement(r, qn("w:br"))
    return Fragment(FragmentKind.BREAK, r)


def page_break_run() -> Fragment:
    r = Element(qn("w:r"))
    SubElement(r, qn("w:br")).set(qn("w:type"), "page")
    return Fragment(FragmentKind.BREAK, r)


def page_break_paragraph() -> Fragment:
    p = Element(qn("w:p"))
    p.append(page_break_run().element())
    return Fragment(FragmentKind.PAGE_BREAK, p)


def page_number_runs(style: StyleRecord = EMPTY_STYLE) -> list[Fragment]:
    """Runs of a complex ``PAGE`` field."""
    runs: list[Fragment] = []
    for part in ("begin", "instr", "separate", "result", "end"):
        r = Element(qn("w:r"))
        rpr = run_properties(style)
        if rpr is not None:
            r.append(rpr)
        if part == "instr":
            instr = SubElement(r, qn("w:instrText"))
            instr.set(XML_SPACE, "preserve")
            instr.text = " PAGE "
        elif part == "result":
            _text_element(r, "1")
        else:
            SubElement(r, qn("w:fldChar")).set(qn("w:fldCharType"), part)
        runs.append(Fragment(FragmentKind.RUN, r))
    return runs


def make_paragraph(
    runs: Iterable[Fragment],
    style: StyleRecord = EMPTY_STYLE,
    *,
    bottom_border: bool = False,
) -> Fragment:
    """Build a ``w:p`` from run fragments."""
    p = Element(qn("w:p"))
    ppr = paragraph_properties(style, bottom_border=bottom_border)
    if ppr is not None:
        p.append(ppr)
    for run in runs:
        p.append(run.element())
    return Fragment(FragmentKind.PARAGRAPH, p)


def empty_paragraph() -> Fragment:
    return Fragment(FragmentKind.PARAGRAPH, Element(qn("w:p")))
