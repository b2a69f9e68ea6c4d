"""DOCX assembly and packaging.

This module combines the body, header and footer fragment streams with the
media manifest and page geometry into the fixed set of WordprocessingML
parts, then writes them to a ZIP archive.

Relationship ids inside ``word/_rels/document.xml.rels`` are fixed for the
definition parts (``rId1`` .. ``rId7``); images use the part-scoped ids the
:class:`~html2docx.media.MediaManager` assigned (``rId100`` upwards).
"""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from html2docx import __version__
from html2docx.fragments import (
    NS_DECLARATIONS,
    Fragment,
    FragmentKind,
    empty_paragraph,
    make_paragraph,
    xml_escape,
)
from html2docx.logger import get_logger
from html2docx.media import CONTENT_TYPES, MediaManager
from html2docx.options import ConversionOptions

LOGGER = get_logger(__name__)

# ---------------------------------------------------------------------------
# Package constants
# ---------------------------------------------------------------------------

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'

_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
_DOC_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
_WML = "application/vnd.openxmlformats-officedocument.wordprocessingml"

# (rId, relationship type suffix, target) for word/document.xml
DEFINITION_RELATIONSHIPS = (
    ("rId1", "styles", "styles.xml"),
    ("rId2", "numbering", "numbering.xml"),
    ("rId3", "settings", "settings.xml"),
    ("rId4", "fontTable", "fontTable.xml"),
    ("rId5", "webSettings", "webSettings.xml"),
)
HEADER_REL_ID = "rId6"
FOOTER_REL_ID = "rId7"

_OVERRIDES = (
    ("/word/document.xml", f"{_WML}.document.main+xml"),
    ("/word/styles.xml", f"{_WML}.styles+xml"),
    ("/word/numbering.xml", f"{_WML}.numbering+xml"),
    ("/word/settings.xml", f"{_WML}.settings+xml"),
    ("/word/fontTable.xml", f"{_WML}.fontTable+xml"),
    ("/word/webSettings.xml", f"{_WML}.webSettings+xml"),
    ("/docProps/core.xml", "application/vnd.openxmlformats-package.core-properties+xml"),
    ("/docProps/app.xml", "application/vnd.openxmlformats-officedocument.extended-properties+xml"),
)

# Heading sizes in half-points, h1..h6
HEADING_SIZES = (32, 26, 24, 22, 20, 20)

_BULLET_GLYPHS = ("•", "o", "▪")
_LIST_LEVELS = 9


# ---------------------------------------------------------------------------
# Archive writer
# ---------------------------------------------------------------------------

def write_archive(parts: dict[str, bytes], *, compress: bool = True) -> bytes:
    """Write *parts* (name -> bytes) to a ZIP archive in insertion order.

    I/O and ZIP errors propagate: without the archive there is no result.
    """
    method = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
    buf = io.BytesIO()
    kwargs = {"compresslevel": 9} if compress else {}
    with zipfile.ZipFile(buf, "w", method, **kwargs) as zf:
        for name, data in parts.items():
            zf.writestr(name, data)
    return buf.getvalue()


@dataclass
class DocumentPackage:
    """All named parts of one document, prior to archival."""

    parts: dict[str, bytes] = field(default_factory=dict)

    def add(self, name: str, content: Union[str, bytes]) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.parts[name] = content

    def __contains__(self, name: object) -> bool:
        return name in self.parts

    def __getitem__(self, name: str) -> bytes:
        return self.parts[name]

    @property
    def names(self) -> list[str]:
        return list(self.parts)

    def to_bytes(self, compress: bool = True) -> bytes:
        return write_archive(self.parts, compress=compress)


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

def _as_blocks(fragments: Iterable[Fragment]) -> list[Fragment]:
    """Wrap stray run fragments in paragraphs; end tables with a paragraph."""
    blocks: list[Fragment] = []
    pending: list[Fragment] = []
    for fragment in fragments:
        if fragment.is_block:
            if pending:
                blocks.append(make_paragraph(pending))
                pending = []
            blocks.append(fragment)
        else:
            pending.append(fragment)
    if pending:
        blocks.append(make_paragraph(pending))
    if not blocks or blocks[-1].kind is FragmentKind.TABLE:
        blocks.append(empty_paragraph())
    return blocks


class DocumentAssembler:
    """Builds a :class:`DocumentPackage` from fragment streams."""

    def __init__(self, options: ConversionOptions) -> None:
        self.options = options

    # ======================================================================
    # Public API
    # ======================================================================

    def assemble(
        self,
        body: Iterable[Fragment],
        media: MediaManager,
        *,
        header: Optional[Iterable[Fragment]] = None,
        footer: Optional[Iterable[Fragment]] = None,
        created: Optional[datetime] = None,
    ) -> DocumentPackage:
        """Produce every part of the document.

        Args:
            body: Block fragments of the main document.
            media: The conversion's media manager, read for its manifest.
            header: Header fragments, or ``None`` for no header part.
            footer: Footer fragments, or ``None`` for no footer part.
            created: Creation timestamp for ``docProps/core.xml``.

        Returns:
            A complete name -> bytes mapping.
        """
        has_header = header is not None
        has_footer = footer is not None
        created = created or datetime.now(timezone.utc)

        package = DocumentPackage()
        package.add("[Content_Types].xml", self._build_content_types_xml(media, has_header, has_footer))
        package.add("_rels/.rels", self._build_package_rels_xml())
        package.add("word/document.xml", self._build_document_xml(_as_blocks(body), has_header, has_footer))
        package.add("word/_rels/document.xml.rels", self._build_document_rels_xml(media, has_header, has_footer))
        package.add("word/styles.xml", self._build_styles_xml())
        package.add("word/numbering.xml", self._build_numbering_xml())
        package.add("word/settings.xml", self._build_settings_xml())
        package.add("word/fontTable.xml", self._build_font_table_xml())
        package.add("word/webSettings.xml", self._build_web_settings_xml())
        if has_header:
            package.add("word/header1.xml", self._build_hdr_ftr_xml("hdr", header))
            package.add("word/_rels/header1.xml.rels", self._build_part_rels_xml(media, "header"))
        if has_footer:
            package.add("word/footer1.xml", self._build_hdr_ftr_xml("ftr", footer))
            package.add("word/_rels/footer1.xml.rels", self._build_part_rels_xml(media, "footer"))
        for asset in media.assets():
            package.add(asset.zip_path, asset.data)
        package.add("docProps/app.xml", self._build_app_xml())
        package.add("docProps/core.xml", self._build_core_xml(created))

        LOGGER.debug("Assembled %d parts (%d images)", len(package.parts), len(media.assets()))
        return package

    # ======================================================================
    # Manifests
    # ======================================================================

    def _build_content_types_xml(
        self, media: MediaManager, has_header: bool, has_footer: bool
    ) -> str:
        L = []  # noqa: E741
        a = L.append
        a(XML_DECLARATION)
        a(f'<Types xmlns="{_CT_NS}">')
        a('<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>')
        a('<Default Extension="xml" ContentType="application/xml"/>')
        for ext in media.extensions:
            content_type = CONTENT_TYPES.get(ext, "application/octet-stream")
            a(f'<Default Extension="{ext}" ContentType="{content_type}"/>')
        for part_name, content_type in _OVERRIDES:
            a(f'<Override PartName="{part_name}" ContentType="{content_type}"/>')
        if has_header:
            a(f'<Override PartName="/word/header1.xml" ContentType="{_WML}.header+xml"/>')
        if has_footer:
            a(f'<Override PartName="/word/footer1.xml" ContentType="{_WML}.footer+xml"/>')
        a('</Types>')
        return "".join(L)

    def _build_package_rels_xml(self) -> str:
        return (
            XML_DECLARATION
            + f'<Relationships xmlns="{_REL_NS}">'
            f'<Relationship Id="rId1" Type="{_DOC_REL}/officeDocument" Target="word/document.xml"/>'
            '<Relationship Id="rId2"'
            ' Type="http://schemas.openxmlformats.org/package/2006/relationships/metadata/core-properties"'
            ' Target="docProps/core.xml"/>'
            f'<Relationship Id="rId3" Type="{_DOC_REL}/extended-properties" Target="docProps/app.xml"/>'
            '</Relationships>'
        )

    def _build_document_rels_xml(
        self, media: MediaManager, has_header: bool, has_footer: bool
    ) -> str:
        rels = [(rid, f"{_DOC_REL}/{kind}", target) for rid, kind, target in DEFINITION_RELATIONSHIPS]
        if has_header:
            rels.append((HEADER_REL_ID, f"{_DOC_REL}/header", "header1.xml"))
        if has_footer:
            rels.append((FOOTER_REL_ID, f"{_DOC_REL}/footer", "footer1.xml"))
        rels.extend(media.relationships("document"))
        return self._relationships_xml(rels)

    def _build_part_rels_xml(self, media: MediaManager, part: str) -> str:
        return self._relationships_xml(media.relationships(part))

    @staticmethod
    def _relationships_xml(rels: Iterable[tuple[str, str, str]]) -> str:
        L = [XML_DECLARATION, f'<Relationships xmlns="{_REL_NS}">']  # noqa: E741
        for rel_id, rel_type, target in rels:
            L.append(
                f'<Relationship Id="{rel_id}" Type="{rel_type}" Target="{xml_escape(target)}"/>'
            )
        L.append('</Relationships>')
        return "".join(L)

    # ======================================================================
    # Content parts
    # ======================================================================

    def _build_document_xml(
        self, blocks: list[Fragment], has_header: bool, has_footer: bool
    ) -> str:
        L = []  # noqa: E741
        a = L.append
        a(XML_DECLARATION)
        a(f'<w:document{NS_DECLARATIONS}>')
        a('<w:body>')
        for fragment in blocks:
            a(fragment.to_xml())
        a(self._build_section_properties(has_header, has_footer))
        a('</w:body>')
        a('</w:document>')
        return "".join(L)

    def _build_section_properties(self, has_header: bool, has_footer: bool) -> str:
        opts = self.options
        L = ['<w:sectPr>']  # noqa: E741
        a = L.append
        if has_header:
            a(f'<w:headerReference w:type="default" r:id="{HEADER_REL_ID}"/>')
        if has_footer:
            a(f'<w:footerReference w:type="default" r:id="{FOOTER_REL_ID}"/>')
        orient = ' w:orient="landscape"' if opts.landscape else ""
        a(f'<w:pgSz w:w="{opts.page_width_twips}" w:h="{opts.page_height_twips}"{orient}/>')
        a(
            f'<w:pgMar w:top="{opts.margin_twips("top")}"'
            f' w:right="{opts.margin_twips("right")}"'
            f' w:bottom="{opts.margin_twips("bottom")}"'
            f' w:left="{opts.margin_twips("left")}"'
            f' w:header="{opts.margin_twips("header")}"'
            f' w:footer="{opts.margin_twips("footer")}"'
            ' w:gutter="0"/>'
        )
        a('<w:cols w:space="720"/>')
        a('<w:docGrid w:linePitch="360"/>')
        a('</w:sectPr>')
        return "".join(L)

    def _build_hdr_ftr_xml(self, root: str, fragments: Iterable[Fragment]) -> str:
        blocks = _as_blocks(fragments)
        return (
            XML_DECLARATION
            + f'<w:{root}{NS_DECLARATIONS}>'
            + "".join(fragment.to_xml() for fragment in blocks)
            + f'</w:{root}>'
        )

    # ======================================================================
    # Definition parts
    # ======================================================================

    def _build_styles_xml(self) -> str:
        """Build ``word/styles.xml``: document defaults, Normal, Heading1-6."""
        opts = self.options
        font = xml_escape(opts.font_family)
        size = opts.font_size_half_points
        L = []  # noqa: E741
        a = L.append

        a(XML_DECLARATION)
        a(f'<w:styles{NS_DECLARATIONS}>')
        a('<w:docDefaults>')
        a('<w:rPrDefault><w:rPr>')
        a(f'<w:rFonts w:ascii="{font}" w:hAnsi="{font}" w:eastAsia="{font}" w:cs="{font}"/>')
        a(f'<w:sz w:val="{size}"/><w:szCs w:val="{size}"/>')
        a('<w:lang w:val="en-US" w:eastAsia="en-US" w:bidi="ar-SA"/>')
        a('</w:rPr></w:rPrDefault>')
        a('<w:pPrDefault><w:pPr>')
        a(f'<w:spacing w:after="160" w:line="{opts.line_twips}" w:lineRule="auto"/>')
        a('</w:pPr></w:pPrDefault>')
        a('</w:docDefaults>')

        a('<w:style w:type="paragraph" w:default="1" w:styleId="Normal">')
        a('<w:name w:val="Normal"/><w:qFormat/>')
        a('</w:style>')

        for level, heading_size in enumerate(HEADING_SIZES, start=1):
            a(f'<w:style w:type="paragraph" w:styleId="Heading{level}">')
            a(f'<w:name w:val="heading {level}"/>')
            a('<w:basedOn w:val="Normal"/><w:next w:val="Normal"/>')
            a('<w:uiPriority w:val="9"/><w:qFormat/>')
            a('<w:pPr><w:keepNext/><w:keepLines/>')
            a('<w:spacing w:before="240" w:after="120"/>')
            a(f'<w:outlineLvl w:val="{level - 1}"/></w:pPr>')
            a(f'<w:rPr><w:b/><w:bCs/><w:sz w:val="{heading_size}"/><w:szCs w:val="{heading_size}"/></w:rPr>')
            a('</w:style>')

        a('</w:styles>')
        return "".join(L)

    def _build_numbering_xml(self) -> str:
        """Bullet list (numId 1) and decimal list (numId 2)."""
        L = []  # noqa: E741
        a = L.append
        a(XML_DECLARATION)
        a(f'<w:numbering{NS_DECLARATIONS}>')
        for abstract_id, ordered in ((0, False), (1, True)):
            a(f'<w:abstractNum w:abstractNumId="{abstract_id}">')
            a('<w:multiLevelType w:val="hybridMultilevel"/>')
            for lvl in range(_LIST_LEVELS):
                if ordered:
                    fmt, text = "decimal", f"%{lvl + 1}."
                else:
                    fmt, text = "bullet", _BULLET_GLYPHS[lvl % len(_BULLET_GLYPHS)]
                a(f'<w:lvl w:ilvl="{lvl}">')
                a(f'<w:start w:val="1"/><w:numFmt w:val="{fmt}"/>')
                a(f'<w:lvlText w:val="{text}"/><w:lvlJc w:val="left"/>')
                a(f'<w:pPr><w:ind w:left="{720 * (lvl + 1)}" w:hanging="360"/></w:pPr>')
                a('</w:lvl>')
            a('</w:abstractNum>')
        a('<w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num>')
        a('<w:num w:numId="2"><w:abstractNumId w:val="1"/></w:num>')
        a('</w:numbering>')
        return "".join(L)

    def _build_settings_xml(self) -> str:
        return (
            XML_DECLARATION
            + f'<w:settings{NS_DECLARATIONS}>'
            '<w:zoom w:percent="100"/>'
            '<w:defaultTabStop w:val="720"/>'
            '<w:characterSpacingControl w:val="doNotCompress"/>'
            '<w:compat>'
            '<w:compatSetting w:name="compatibilityMode"'
            ' w:uri="http://schemas.microsoft.com/office/word" w:val="15"/>'
            '</w:compat>'
            '</w:settings>'
        )

    def _build_font_table_xml(self) -> str:
        fonts = [self.options.font_family]
        if "Consolas" not in fonts:
            fonts.append("Consolas")
        L = [XML_DECLARATION, f'<w:fonts{NS_DECLARATIONS}>']  # noqa: E741
        for name in fonts:
            L.append(f'<w:font w:name="{xml_escape(name)}"><w:charset w:val="00"/></w:font>')
        L.append('</w:fonts>')
        return "".join(L)

    def _build_web_settings_xml(self) -> str:
        return (
            XML_DECLARATION
            + f'<w:webSettings{NS_DECLARATIONS}>'
            '<w:optimizeForBrowser/><w:allowPNG/>'
            '</w:webSettings>'
        )

    # ======================================================================
    # Metadata
    # ======================================================================

    def _build_app_xml(self) -> str:
        return (
            XML_DECLARATION
            + '<Properties'
            ' xmlns="http://schemas.openxmlformats.org/officeDocument/2006/extended-properties"'
            ' xmlns:vt="http://schemas.openxmlformats.org/officeDocument/2006/docPropsVTypes">'
            '<Application>html2docx</Application>'
            '<DocSecurity>0</DocSecurity>'
            '<ScaleCrop>false</ScaleCrop>'
            '<LinksUpToDate>false</LinksUpToDate>'
            '<SharedDoc>false</SharedDoc>'
            '<HyperlinksChanged>false</HyperlinksChanged>'
            '</Properties>'
        )

    def _build_core_xml(self, created: datetime) -> str:
        stamp = created.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        creator = xml_escape(self.options.creator or f"html2docx {__version__}")
        return (
            XML_DECLARATION
            + '<cp:coreProperties'
            ' xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties"'
            ' xmlns:dc="http://purl.org/dc/elements/1.1/"'
            ' xmlns:dcterms="http://purl.org/dc/terms/"'
            ' xmlns:dcmitype="http://purl.org/dc/dcmitype/"'
            ' xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
            f'<dc:title>{xml_escape(self.options.title)}</dc:title>'
            f'<dc:creator>{creator}</dc:creator>'
            f'<cp:lastModifiedBy>{creator}</cp:lastModifiedBy>'
            f'<dcterms:created xsi:type="dcterms:W3CDTF">{stamp}</dcterms:created>'
            f'<dcterms:modified xsi:type="dcterms:W3CDTF">{stamp}</dcterms:modified>'
            '</cp:coreProperties>'
        )
