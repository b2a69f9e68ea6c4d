"""Tests for the node transducer: dispatch, inheritance and ordering."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

import pytest

from conftest import data_url, make_png
from html2docx.fragments import Fragment, FragmentKind, qn
from html2docx.media import MediaManager
from html2docx.options import ConversionOptions
from html2docx.parser import HtmlParser
from html2docx.transducer import NodeTransducer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def options() -> ConversionOptions:
    return ConversionOptions()


@pytest.fixture
def media() -> MediaManager:
    return MediaManager()


@pytest.fixture
def transducer(options: ConversionOptions, media: MediaManager) -> NodeTransducer:
    return NodeTransducer(options, media)


def render(transducer: NodeTransducer, html: str) -> list[Fragment]:
    return transducer.transduce(HtmlParser().parse(html))


def texts(fragment: Fragment) -> list[str]:
    return [t.text for t in fragment.element().iter(qn("w:t"))]


def runs(fragment: Fragment) -> list[ET.Element]:
    return fragment.element().findall(qn("w:r"))


def ppr_child(fragment: Fragment, name: str) -> ET.Element:
    ppr = fragment.element().find(qn("w:pPr"))
    assert ppr is not None, "paragraph has no w:pPr"
    found = ppr.find(qn(name))
    assert found is not None, f"no {name} in w:pPr"
    return found


def attr(elem: ET.Element, name: str) -> str:
    return elem.get(qn(name))


# ---------------------------------------------------------------------------
# Paragraphs and inline emphasis
# ---------------------------------------------------------------------------

class TestParagraphs:

    def test_bold_italic_span_is_one_run(self, transducer):
        fragments = render(transducer, "<p><b><i>both</i></b></p>")
        assert len(fragments) == 1
        assert fragments[0].kind is FragmentKind.PARAGRAPH
        (run,) = runs(fragments[0])
        rpr = run.find(qn("w:rPr"))
        assert [child.tag for child in rpr] == [qn("w:b"), qn("w:i")]
        assert texts(fragments[0]) == ["both"]

    def test_emphasis_emits_no_fragment(self, transducer):
        fragments = render(transducer, "<p>plain <strong>strong</strong> <em>em</em></p>")
        assert len(fragments) == 1
        assert len(runs(fragments[0])) == 4

    def test_whitespace_collapses(self, transducer):
        (p,) = render(transducer, "<p>\n  Hello   <b>big</b>  world  \n</p>")
        assert texts(p) == ["Hello ", "big", " world"]

    def test_loose_inline_content_grouped(self, transducer):
        fragments = render(transducer, "Intro <i>text</i><p>Next</p>tail")
        assert [f.kind for f in fragments] == [FragmentKind.PARAGRAPH] * 3
        assert texts(fragments[0]) == ["Intro ", "text"]
        assert texts(fragments[2]) == ["tail"]

    def test_whitespace_between_blocks_ignored(self, transducer):
        fragments = render(transducer, "<p>a</p>\n\n   <p>b</p>\n")
        assert len(fragments) == 2

    def test_style_inherits_into_runs(self, transducer):
        (p,) = render(transducer, '<p style="color:#336699">a <span style="color:red">b</span></p>')
        colors = [r.find(qn("w:rPr")).find(qn("w:color")) for r in runs(p)]
        assert [attr(c, "w:val") for c in colors] == ["336699", "FF0000"]

    def test_alignment(self, transducer):
        (p,) = render(transducer, '<p style="text-align:center">x</p>')
        assert attr(ppr_child(p, "w:jc"), "w:val") == "center"

    def test_margins_become_spacing_and_indent(self, transducer):
        (p,) = render(transducer, '<p style="margin: 10px 0 20px 30px">x</p>')
        spacing = ppr_child(p, "w:spacing")
        assert attr(spacing, "w:before") == "150"
        assert attr(spacing, "w:after") == "300"
        assert attr(ppr_child(p, "w:ind"), "w:left") == "450"

    def test_no_spacing_marker_wins(self, transducer):
        html = '<div style="margin:20px"><p data-no-spacing style="margin:40px">x</p></div>'
        (p,) = render(transducer, html)
        spacing = ppr_child(p, "w:spacing")
        assert attr(spacing, "w:before") == "0"
        assert attr(spacing, "w:after") == "0"
        assert attr(spacing, "w:line") == "240"
        assert attr(spacing, "w:lineRule") == "auto"

    def test_line_break(self, transducer):
        (p,) = render(transducer, "<p>a<br>b</p>")
        assert texts(p) == ["a", "b"]
        assert len(list(p.element().iter(qn("w:br")))) == 1

    def test_link_and_code(self, transducer):
        (p,) = render(transducer, '<p><a href="https://x.test">site</a> <code>x=1</code></p>')
        link_rpr = runs(p)[0].find(qn("w:rPr"))
        assert attr(link_rpr.find(qn("w:color")), "w:val") == "0563C1"
        assert link_rpr.find(qn("w:u")) is not None
        code_rpr = runs(p)[-1].find(qn("w:rPr"))
        assert attr(code_rpr.find(qn("w:rFonts")), "w:ascii") == "Consolas"

    def test_block_inside_inline_flattened(self, transducer):
        (p,) = render(transducer, "<span>a<div>b</div>c</span>")
        assert texts(p) == ["a", "b", "c"]
        assert len(list(p.element().iter(qn("w:br")))) == 2

    def test_unknown_element_is_transparent(self, transducer):
        fragments = render(transducer, "<x-card><p>a</p><p>b</p></x-card>")
        assert [texts(f) for f in fragments] == [["a"], ["b"]]

    def test_document_order(self, transducer):
        html = "<h1>1</h1><p>2</p><ul><li>3</li></ul><table><tr><td>4</td></tr></table><p>5</p>"
        fragments = render(transducer, html)
        assert [t for f in fragments for t in texts(f)] == ["1", "2", "3", "4", "5"]


# ---------------------------------------------------------------------------
# Block kinds
# ---------------------------------------------------------------------------

class TestBlocks:

    @pytest.mark.parametrize("level", [1, 2, 6])
    def test_heading_style(self, transducer, level):
        (p,) = render(transducer, f"<h{level}>Title</h{level}>")
        assert attr(ppr_child(p, "w:pStyle"), "w:val") == f"Heading{level}"

    def test_horizontal_rule(self, transducer):
        (p,) = render(transducer, "<hr>")
        bottom = ppr_child(p, "w:pBdr").find(qn("w:bottom"))
        assert attr(bottom, "w:val") == "single"

    def test_preformatted(self, transducer):
        (p,) = render(transducer, "<pre>line1\n  line2</pre>")
        assert texts(p) == ["line1", "  line2"]
        (run,) = runs(p)
        assert run.find(qn("w:br")) is not None
        assert attr(run.find(qn("w:rPr")).find(qn("w:rFonts")), "w:ascii") == "Consolas"

    def test_blockquote_indent(self, transducer):
        (p,) = render(transducer, "<blockquote><p>quoted</p></blockquote>")
        assert attr(ppr_child(p, "w:ind"), "w:left") == "720"


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

def num_id(fragment: Fragment) -> str:
    return attr(ppr_child(fragment, "w:numPr").find(qn("w:numId")), "w:val")


def ilvl(fragment: Fragment) -> str:
    return attr(ppr_child(fragment, "w:numPr").find(qn("w:ilvl")), "w:val")


class TestLists:

    def test_bullet_list(self, transducer):
        fragments = render(transducer, "<ul><li>a</li><li>b</li></ul>")
        assert [num_id(f) for f in fragments] == ["1", "1"]
        assert [texts(f) for f in fragments] == [["a"], ["b"]]

    def test_ordered_list(self, transducer):
        fragments = render(transducer, "<ol><li>one</li><li>two</li></ol>")
        assert [num_id(f) for f in fragments] == ["2", "2"]

    def test_nesting_depth_is_fixed(self, transducer):
        html = "<ul><li>outer<ol><li>inner</li></ol></li><li>after</li></ul>"
        fragments = render(transducer, html)
        assert [texts(f) for f in fragments] == [["outer"], ["inner"], ["after"]]
        assert [ilvl(f) for f in fragments] == ["0", "0", "0"]
        assert [num_id(f) for f in fragments] == ["1", "2", "1"]

    def test_loose_item_uses_first_paragraph(self, transducer):
        html = "<ul>\n<li>\n<p>first</p>\n<p>second</p>\n</li>\n</ul>"
        first, second = render(transducer, html)
        assert num_id(first) == "1"
        assert texts(first) == ["first"]
        assert second.element().find(qn("w:pPr")).find(qn("w:numPr")) is None
        assert attr(ppr_child(second, "w:ind"), "w:left") == "720"


# ---------------------------------------------------------------------------
# Page breaks
# ---------------------------------------------------------------------------

def is_page_break(fragment: Fragment) -> bool:
    return fragment.kind is FragmentKind.PAGE_BREAK and any(
        attr(br, "w:type") == "page" for br in fragment.element().iter(qn("w:br"))
    )


class TestPageBreaks:

    def test_marker_element(self, transducer):
        fragments = render(transducer, "<p>a</p><page-break></page-break><p>b</p>")
        assert [f.kind for f in fragments] == [
            FragmentKind.PARAGRAPH,
            FragmentKind.PAGE_BREAK,
            FragmentKind.PARAGRAPH,
        ]
        assert is_page_break(fragments[1])

    def test_data_attribute_marker(self, transducer):
        fragments = render(transducer, '<p>a</p><div data-page-break="1"></div>')
        assert is_page_break(fragments[1])

    def test_before_and_after_wrap_paragraph(self, transducer):
        html = '<p style="page-break-before:always; page-break-after:always">x</p>'
        before, body, after = render(transducer, html)
        assert is_page_break(before) and is_page_break(after)
        assert texts(body) == ["x"]

    def test_wraps_table(self, transducer):
        html = '<table style="break-after:page"><tr><td>x</td></tr></table>'
        table, brk = render(transducer, html)
        assert table.kind is FragmentKind.TABLE
        assert is_page_break(brk)

    def test_wraps_list_item(self, transducer):
        html = '<ul><li>a</li><li style="page-break-before:always">b</li></ul>'
        fragments = render(transducer, html)
        assert [f.kind for f in fragments] == [
            FragmentKind.PARAGRAPH,
            FragmentKind.PAGE_BREAK,
            FragmentKind.PARAGRAPH,
        ]

    def test_wraps_decorated_box(self, transducer):
        html = '<div style="background:#eee;padding:8px;page-break-after:always"><p>x</p></div>'
        shape, brk = render(transducer, html)
        assert shape.kind is FragmentKind.SHAPE
        assert is_page_break(brk)

    def test_inline_flag_becomes_break_run(self, transducer):
        (p,) = render(transducer, '<p>a<span style="page-break-before:always">b</span></p>')
        breaks = [br for br in p.element().iter(qn("w:br")) if attr(br, "w:type") == "page"]
        assert len(breaks) == 1


# ---------------------------------------------------------------------------
# Decorated boxes
# ---------------------------------------------------------------------------

def box_runs(shape: Fragment) -> list[ET.Element]:
    txbx = next(shape.element().iter(qn("w:txbxContent")))
    return [r for p in txbx.findall(qn("w:p")) for r in p.findall(qn("w:r"))]


class TestDecoratedBoxes:

    def test_box_requires_background_and_geometry(self, transducer):
        (plain,) = render(transducer, '<p style="background:#eeeeee">x</p>')
        (boxed,) = render(transducer, '<p style="background:#eeeeee;padding:6px">x</p>')
        assert plain.kind is FragmentKind.PARAGRAPH
        assert boxed.kind is FragmentKind.SHAPE

    def test_run_content_identical(self, transducer):
        (plain,) = render(transducer, "<p><b>Same</b> text</p>")
        (boxed,) = render(
            transducer,
            '<p style="background:#eeeeee;padding:6px;border-radius:4px"><b>Same</b> text</p>',
        )
        plain_xml = [ET.tostring(r) for r in runs(plain)]
        boxed_xml = [ET.tostring(r) for r in box_runs(boxed)]
        assert boxed_xml == plain_xml

    def test_boxes_do_not_nest(self, transducer):
        html = (
            '<div style="background:#eee;width:50%">'
            '<p style="background:#ccc;padding:4px">inner</p></div>'
        )
        (shape,) = render(transducer, html)
        assert len(list(shape.element().iter(qn("w:pict")))) == 1

    def test_shape_ids_are_unique(self, transducer):
        html = '<p style="background:#eee;padding:4px">a</p>' * 2
        ids = [next(f.element().iter(qn("v:rect"))).get("id") for f in render(transducer, html)]
        assert ids == ["_x0000_s1025", "_x0000_s1026"]

    def test_decorated_heading_keeps_style(self, transducer):
        (shape,) = render(transducer, '<h2 style="background:#eee;padding:4px">T</h2>')
        txbx = next(shape.element().iter(qn("w:txbxContent")))
        pstyle = txbx.find(qn("w:p")).find(qn("w:pPr")).find(qn("w:pStyle"))
        assert attr(pstyle, "w:val") == "Heading2"


# ---------------------------------------------------------------------------
# Heading replacement
# ---------------------------------------------------------------------------

BOX_TEMPLATE = '<div style="background:#1F4E79;padding:8px"><p style="color:white">HEADING_TEXT</p></div>'


class TestHeadingReplacement:

    def test_template_replaces_heading(self, media):
        options = ConversionOptions(heading_replacements={1: BOX_TEMPLATE})
        (shape,) = render(NodeTransducer(options, media), "<h1>Intro</h1>")
        assert shape.kind is FragmentKind.SHAPE
        assert [t.text for t in shape.element().iter(qn("w:t"))] == ["Intro"]

    def test_other_levels_untouched(self, media):
        options = ConversionOptions(heading_replacements={1: BOX_TEMPLATE})
        (p,) = render(NodeTransducer(options, media), "<h2>Plain</h2>")
        assert p.kind is FragmentKind.PARAGRAPH

    def test_text_is_escaped_before_reparse(self, media):
        options = ConversionOptions(heading_replacements={2: "<p>HEADING_TEXT</p>"})
        (p,) = render(NodeTransducer(options, media), "<h2>A &lt;b&gt; &amp; B</h2>")
        assert texts(p) == ["A <b> & B"]

    def test_deterministic(self, media):
        options = ConversionOptions(heading_replacements={1: BOX_TEMPLATE})
        first = render(NodeTransducer(options, MediaManager()), "<h1>Same</h1>")
        second = render(NodeTransducer(options, MediaManager()), "<h1>Same</h1>")
        assert [f.to_xml() for f in first] == [f.to_xml() for f in second]

    def test_self_referencing_template_reenters_once(self, media):
        options = ConversionOptions(heading_replacements={1: "<h1>[HEADING_TEXT]</h1>"})
        (p,) = render(NodeTransducer(options, media), "<h1>Loop</h1>")
        assert texts(p) == ["[Loop]"]
        assert attr(ppr_child(p, "w:pStyle"), "w:val") == "Heading1"

    def test_list_form_of_templates(self, media):
        options = ConversionOptions(heading_replacements=["<p>one: HEADING_TEXT</p>"])
        (p,) = render(NodeTransducer(options, media), "<h1>X</h1>")
        assert texts(p) == ["one: X"]


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

def extent(fragment: Fragment) -> tuple[int, int]:
    ext = next(fragment.element().iter(qn("wp:extent")))
    return int(ext.get("cx")), int(ext.get("cy"))


class TestImages:

    def test_inline_image_intrinsic_size(self, transducer, media, png_data_url):
        (p,) = render(transducer, f'<p><img src="{png_data_url}" alt="dot"></p>')
        assert next(p.element().iter(qn("wp:inline")), None) is not None
        assert extent(p) == (100 * 9525, 50 * 9525)
        (asset,) = media.assets("document")
        assert asset.rel_id == "rId100"
        assert asset.filename == "image_1.png"
        blip = next(p.element().iter(qn("a:blip")))
        assert blip.get(qn("r:embed")) == "rId100"

    def test_single_dimension_keeps_aspect(self, transducer, png_data_url):
        (p,) = render(transducer, f'<img src="{png_data_url}" width="50">')
        assert extent(p) == (50 * 9525, 25 * 9525)

    def test_width_capped_to_content(self, transducer, options):
        src = data_url(make_png(2000, 1000))
        (p,) = render(transducer, f'<img src="{src}">')
        cx, cy = extent(p)
        assert cx == options.content_width_emu
        assert cy == options.content_width_emu // 2

    def test_percentage_width(self, transducer, options, png_data_url):
        (p,) = render(transducer, f'<img src="{png_data_url}" style="width:50%">')
        assert extent(p)[0] == options.content_width_emu // 2

    def test_float_right_anchors(self, transducer, png_data_url):
        html = f'<p><img src="{png_data_url}" style="float:right;margin-left:10px">text</p>'
        (p,) = render(transducer, html)
        anchor = next(p.element().iter(qn("wp:anchor")))
        assert anchor.find(qn("wp:wrapSquare")).get("wrapText") == "left"
        assert anchor.find(qn("wp:positionH")).find(qn("wp:align")).text == "right"
        assert anchor.get("distL") == str(150 * 635)

    def test_cover_spans_page(self, transducer, options, png_data_url):
        (p,) = render(transducer, f'<img data-cover src="{png_data_url}">')
        anchor = next(p.element().iter(qn("wp:anchor")))
        assert anchor.find(qn("wp:positionH")).get("relativeFrom") == "page"
        assert anchor.find(qn("wp:wrapTopAndBottom")) is not None
        assert extent(p)[0] == options.page_width_emu

    def test_section_header_centred(self, transducer, png_data_url):
        (p,) = render(transducer, f'<img data-section-header src="{png_data_url}">')
        position = next(p.element().iter(qn("wp:positionH")))
        assert position.get("relativeFrom") == "margin"
        assert position.find(qn("wp:align")).text == "center"

    def test_invalid_base64_omitted(self, transducer, media, caplog):
        with caplog.at_level(logging.WARNING):
            fragments = render(transducer, '<p>a<img src="data:image/png;base64,@@not-base64@@">b</p>')
        (p,) = fragments
        assert next(p.element().iter(qn("w:drawing")), None) is None
        assert media.assets() == []
        assert any("base64" in r.getMessage() for r in caplog.records)

    def test_duplicates_stay_distinct(self, transducer, media, png_data_url):
        render(transducer, f'<img src="{png_data_url}"><img src="{png_data_url}">')
        assets = media.assets()
        assert [a.filename for a in assets] == ["image_1.png", "image_2.png"]
        assert [a.rel_id for a in assets] == ["rId100", "rId101"]

    def test_header_part_registration(self, transducer, media, png_data_url):
        root = HtmlParser().parse(f'<img src="{png_data_url}">')
        transducer.transduce(root, part="header")
        (asset,) = media.assets("header")
        assert asset.rel_id == "rId100"
        assert media.assets("document") == []


class TestPageNumbers:

    def test_page_field(self, transducer):
        (p,) = render(transducer, '<p style="text-align:right">Page <page-number></page-number></p>')
        instr = next(p.element().iter(qn("w:instrText")))
        assert instr.text == " PAGE "
        kinds = [fc.get(qn("w:fldCharType")) for fc in p.element().iter(qn("w:fldChar"))]
        assert kinds == ["begin", "separate", "end"]
