"""Integration tests for the Converter orchestrator."""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from conftest import read_part
from html2docx import convert_html, convert_html_to_file
from html2docx.converter import Converter
from html2docx.fragments import qn
from html2docx.options import ConversionOptions, PageBorder

FIXTURE_DIR = Path(__file__).parent / "fixtures"
SAMPLE_HTML = FIXTURE_DIR / "sample.html"
SAMPLE_MD = FIXTURE_DIR / "sample.md"

REQUIRED_PARTS = [
    "[Content_Types].xml",
    "_rels/.rels",
    "word/document.xml",
    "word/_rels/document.xml.rels",
    "word/styles.xml",
    "word/numbering.xml",
    "word/settings.xml",
    "word/fontTable.xml",
    "word/webSettings.xml",
    "docProps/app.xml",
    "docProps/core.xml",
]


def names(docx: bytes) -> list[str]:
    with zipfile.ZipFile(io.BytesIO(docx)) as zf:
        return zf.namelist()


def body_texts(docx: bytes) -> list[str]:
    body = read_part(docx, "word/document.xml").find(qn("w:body"))
    return [t.text for t in body.iter(qn("w:t"))]


def relationships(docx: bytes, name: str) -> dict[str, str]:
    root = read_part(docx, name)
    return {rel.get("Id"): rel.get("Target") for rel in root}


class TestConverterInit:
    """Test Converter construction."""

    def test_default_preset(self):
        c = Converter()
        assert c.style_preset == "default"
        assert c.options.font_family == "Calibri"

    def test_custom_preset(self):
        c = Converter(style_preset="academic")
        assert c.options.font_family == "Times New Roman"

    def test_invalid_preset_raises(self):
        with pytest.raises(ValueError):
            Converter(style_preset="nonexistent")

    def test_explicit_options_win(self):
        options = ConversionOptions(font_size=15)
        assert Converter("academic", options).options.font_size == 15


class TestConvertText:
    """Test convert_text produces a valid DOCX archive."""

    def test_output_is_zip(self):
        data = Converter().convert_text("<p>Some text</p>")
        assert isinstance(data, bytes)
        assert zipfile.is_zipfile(io.BytesIO(data))

    def test_required_parts_in_order(self):
        parts = names(Converter().convert_text("<h1>Test</h1><p>Paragraph text.</p>"))
        assert parts == REQUIRED_PARTS

    def test_content_in_document_order(self):
        data = Converter().convert_text("<h1>One</h1><p>Two <b>three</b></p><ul><li>four</li></ul>")
        assert body_texts(data) == ["One", "Two ", "three", "four"]

    def test_text_resembling_namespace_declaration_kept(self):
        html = '<p>set xmlns="urn:x" on root, or xmlns:foo="urn:y"</p>'
        data = Converter().convert_text(html)
        assert body_texts(data) == ['set xmlns="urn:x" on root, or xmlns:foo="urn:y"']

    def test_section_properties_last(self):
        body = read_part(Converter().convert_text("<p>x</p>"), "word/document.xml").find(qn("w:body"))
        sect = body[-1]
        assert sect.tag == qn("w:sectPr")
        pg_sz = sect.find(qn("w:pgSz"))
        assert (pg_sz.get(qn("w:w")), pg_sz.get(qn("w:h"))) == ("12240", "15840")
        assert sect.find(qn("w:pgMar")).get(qn("w:left")) == "1440"

    def test_landscape(self):
        options = ConversionOptions(page_size={"width": 11, "height": 8.5})
        body = read_part(Converter(options=options).convert_text("<p>x</p>"), "word/document.xml")
        pg_sz = next(body.iter(qn("w:pgSz")))
        assert pg_sz.get(qn("w:orient")) == "landscape"

    def test_empty_input_still_valid(self):
        data = Converter().convert_text("")
        body = read_part(data, "word/document.xml").find(qn("w:body"))
        assert [child.tag for child in body] == [qn("w:p"), qn("w:sectPr")]

    def test_trailing_table_gets_paragraph(self):
        body = read_part(
            Converter().convert_text("<table><tr><td>x</td></tr></table>"), "word/document.xml"
        ).find(qn("w:body"))
        assert [child.tag for child in body] == [qn("w:tbl"), qn("w:p"), qn("w:sectPr")]

    def test_styles_follow_preset(self):
        styles = read_part(Converter("academic").convert_text("<p>x</p>"), "word/styles.xml")
        fonts = next(styles.iter(qn("w:rFonts")))
        assert fonts.get(qn("w:ascii")) == "Times New Roman"
        ids = [s.get(qn("w:styleId")) for s in styles.iter(qn("w:style"))]
        assert ids == ["Normal"] + [f"Heading{n}" for n in range(1, 7)]

    def test_numbering_definitions(self):
        numbering = read_part(Converter().convert_text("<p>x</p>"), "word/numbering.xml")
        nums = [n.get(qn("w:numId")) for n in numbering.findall(qn("w:num"))]
        assert nums == ["1", "2"]

    def test_uncompressed(self):
        data = Converter(options=ConversionOptions(compress=False)).convert_text("<p>x</p>")
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert {info.compress_type for info in zf.infolist()} == {zipfile.ZIP_STORED}

    def test_deterministic_with_fixed_timestamp(self):
        created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        html = '<div style="background:#eee;padding:4px"><p>x</p></div>'
        first = Converter().build_package(html, created=created)
        second = Converter().build_package(html, created=created)
        assert first.parts == second.parts
        assert b"2024-01-02T03:04:05Z" in first["docProps/core.xml"]


class TestImages:

    def test_body_image_embedded(self, png_data_url):
        data = Converter().convert_text(f'<p><img src="{png_data_url}" alt="dot"></p>')
        assert "word/media/image_1.png" in names(data)
        rels = relationships(data, "word/_rels/document.xml.rels")
        assert rels["rId100"] == "media/image_1.png"
        content_types = read_part(data, "[Content_Types].xml")
        defaults = {d.get("Extension") for d in content_types if d.get("Extension")}
        assert "png" in defaults

    def test_unresolvable_image_dropped(self):
        data = Converter().convert_text('<p>before<img src="missing.png">after</p>')
        assert not any(name.startswith("word/media/") for name in names(data))
        assert body_texts(data) == ["before", "after"]

    def test_remote_image_with_client(self, png_bytes):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        data = Converter(client=client).convert_text('<img src="https://example.test/a.png">')
        assert "word/media/image_1.png" in names(data)

    def test_image_fetch_timeout_omits_image(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with caplog.at_level(logging.WARNING):
            data = Converter(client=client).convert_text(
                '<p>before<img src="https://example.test/slow.png">after</p>'
            )
        document = read_part(data, "word/document.xml")
        assert next(document.iter(qn("w:drawing")), None) is None
        assert body_texts(data) == ["before", "after"]
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_invalid_embedded_image_omitted(self, caplog):
        with caplog.at_level(logging.WARNING):
            data = Converter().convert_text('<p>a<img src="data:image/png;base64,!!notbase64">b</p>')
        assert not any(name.startswith("word/media/") for name in names(data))
        assert body_texts(data) == ["a", "b"]
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_malformed_image_url_omitted(self):
        data = Converter().convert_text('<p>a<img src="http://[broken/x.png">b</p>')
        assert body_texts(data) == ["a", "b"]

    def test_media_is_per_call(self, png_data_url):
        converter = Converter()
        converter.convert_text(f'<img src="{png_data_url}">')
        data = converter.convert_text(f'<img src="{png_data_url}">')
        media = [n for n in names(data) if n.startswith("word/media/")]
        assert media == ["word/media/image_1.png"]


class TestHeaderFooter:

    def test_no_margin_parts_by_default(self):
        parts = names(Converter().convert_text("<p>x</p>"))
        assert "word/header1.xml" not in parts
        assert "word/footer1.xml" not in parts

    def test_header_markup(self):
        options = ConversionOptions(header="<p>Company <b>Confidential</b></p>")
        data = Converter(options=options).convert_text("<p>body</p>")
        header = read_part(data, "word/header1.xml")
        assert header.tag == qn("w:hdr")
        assert [t.text for t in header.iter(qn("w:t"))] == ["Company ", "Confidential"]
        assert relationships(data, "word/_rels/document.xml.rels")["rId6"] == "header1.xml"
        sect = next(read_part(data, "word/document.xml").iter(qn("w:sectPr")))
        assert sect.find(qn("w:headerReference")).get(qn("r:id")) == "rId6"

    def test_header_disabled(self):
        options = ConversionOptions(header="<p>x</p>", enable_header=False)
        assert "word/header1.xml" not in names(Converter(options=options).convert_text("<p>b</p>"))

    def test_header_image_is_part_scoped(self, png_data_url):
        options = ConversionOptions(header=png_data_url)
        data = Converter(options=options).convert_text(f'<img src="{png_data_url}">')
        assert relationships(data, "word/_rels/header1.xml.rels") == {"rId100": "media/image_2.png"}
        doc_rels = relationships(data, "word/_rels/document.xml.rels")
        assert doc_rels["rId100"] == "media/image_1.png"
        anchor = next(read_part(data, "word/header1.xml").iter(qn("wp:anchor")))
        assert anchor.find(qn("wp:extent")).get("cx") == "7772400"
        assert anchor.find(qn("wp:extent")).get("cy") == "914400"

    def test_footer_image_sits_at_page_bottom(self, png_data_url):
        options = ConversionOptions(footer=png_data_url, footer_height=0.5)
        data = Converter(options=options).convert_text("<p>x</p>")
        anchor = next(read_part(data, "word/footer1.xml").iter(qn("wp:anchor")))
        offset = anchor.find(qn("wp:positionV")).find(qn("wp:posOffset")).text
        assert int(offset) == 15840 * 635 - 457200

    def test_page_numbers(self):
        options = ConversionOptions(enable_page_numbers=True, page_number_alignment="right")
        data = Converter(options=options).convert_text("<p>x</p>")
        footer = read_part(data, "word/footer1.xml")
        assert next(footer.iter(qn("w:instrText"))).text == " PAGE "
        assert next(footer.iter(qn("w:jc"))).get(qn("w:val")) == "right"

    def test_page_numbers_need_footer(self):
        options = ConversionOptions(enable_page_numbers=True, enable_footer=False)
        assert "word/footer1.xml" not in names(Converter(options=options).convert_text("<p>x</p>"))

    def test_footer_markup_with_own_page_number(self):
        options = ConversionOptions(
            footer="<p>Page <page-number></page-number></p>", enable_page_numbers=True
        )
        footer = read_part(Converter(options=options).convert_text("<p>x</p>"), "word/footer1.xml")
        assert len(list(footer.iter(qn("w:instrText")))) == 1

    def test_page_border_in_header(self):
        options = ConversionOptions(page_border=PageBorder(style="double", color="1F4E79"))
        data = Converter(options=options).convert_text("<p>x</p>")
        header = read_part(data, "word/header1.xml")
        rect = next(header.iter(qn("v:rect")))
        assert rect.get("strokecolor") == "#1F4E79"
        assert "position:absolute" in rect.get("style")

    def test_page_border_flag_without_descriptor(self):
        options = ConversionOptions.from_dict({"enablePageBorder": True})
        data = Converter(options=options).convert_text("<p>x</p>")
        header = read_part(data, "word/header1.xml")
        rect = next(header.iter(qn("v:rect")))
        assert rect.get("strokecolor") == "#000000"

    def test_bad_header_and_border_config_still_converts(self, caplog):
        with caplog.at_level(logging.WARNING):
            options = ConversionOptions.from_dict({"header": 123, "pageBorder": True})
            data = Converter(options=options).convert_text("<p>body</p>")
        assert "word/header1.xml" not in names(data)
        assert body_texts(data) == ["body"]
        assert "Ignoring" in caplog.text


class TestHeadingReplacement:

    def test_heading_becomes_box(self):
        options = ConversionOptions(
            heading_replacements={
                1: '<div style="background:#1F4E79;padding:10px"><p style="color:#FFFFFF">HEADING_TEXT</p></div>'
            }
        )
        data = Converter(options=options).convert_text("<h1>Overview</h1><p>text</p>")
        body = read_part(data, "word/document.xml").find(qn("w:body"))
        assert next(body.iter(qn("w:txbxContent"))) is not None
        assert body_texts(data) == ["Overview", "text"]


class TestMarkdownAndFiles:

    def test_convert_markdown(self):
        data = Converter().convert_markdown("# Title\n\n- a\n- b\n")
        assert body_texts(data) == ["Title", "a", "b"]

    def test_convert_html_file(self, tmp_path):
        out = tmp_path / "nested" / "report.docx"
        Converter().convert_file(SAMPLE_HTML, out)
        data = out.read_bytes()
        texts = body_texts(data)
        assert texts[0] == "Quarterly Report"
        assert "Appendix" in texts
        assert "p { color: red; }" not in "".join(texts)

    def test_convert_markdown_file(self, tmp_path):
        out = tmp_path / "notes.docx"
        Converter().convert_file(SAMPLE_MD, out)
        texts = body_texts(out.read_bytes())
        assert texts[0] == "Project Notes"
        assert "Raw HTML callout." in texts

    def test_local_image_relative_to_input(self, tmp_path, png_bytes):
        (tmp_path / "logo.png").write_bytes(png_bytes)
        source = tmp_path / "page.html"
        source.write_text('<p><img src="logo.png"></p>', encoding="utf-8")
        out = tmp_path / "page.docx"
        Converter().convert_file(source, out)
        assert "word/media/image_1.png" in names(out.read_bytes())

    def test_encoding(self, tmp_path):
        source = tmp_path / "latin.html"
        source.write_bytes("<p>caf\xe9</p>".encode("latin-1"))
        out = tmp_path / "latin.docx"
        Converter().convert_file(source, out, encoding="latin-1")
        assert body_texts(out.read_bytes()) == ["caf\xe9"]


class TestConvenienceFunctions:

    def test_convert_html(self):
        assert zipfile.is_zipfile(io.BytesIO(convert_html("<p>x</p>", style_preset="minimal")))

    def test_convert_html_to_file(self, tmp_path):
        path = convert_html_to_file("<p>x</p>", tmp_path / "sub" / "out.docx")
        assert path.exists()
        assert body_texts(path.read_bytes()) == ["x"]
