"""High-level HTML-to-DOCX conversion orchestrator.

Ties together the parser, transducer, media manager and assembler into a
single public API for converting HTML (or Markdown) text or files to DOCX.
Every conversion call gets its own media manager and transducer; nothing
is shared between calls.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import httpx

from html2docx.fragments import Fragment, make_paragraph, page_number_runs
from html2docx.logger import get_logger
from html2docx.media import MediaManager, page_width_image_run
from html2docx.options import ConversionOptions
from html2docx.packager import DocumentAssembler, DocumentPackage
from html2docx.parser import HtmlParser, MarkdownParser
from html2docx.shapes import page_border_shape
from html2docx.style_resolver import StyleRecord
from html2docx.transducer import NodeTransducer
from html2docx.units import EMU_PER_INCH

LOGGER = get_logger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")


class Converter:
    """Convert HTML content to DOCX format.

    Usage::

        converter = Converter(style_preset="default")
        converter.convert_file("input.html", "output.docx")

        # or from string
        docx_bytes = converter.convert_text("<h1>Hello</h1>")
    """

    STYLE_PRESETS = ConversionOptions.PRESETS

    def __init__(
        self,
        style_preset: str = "default",
        options: Optional[ConversionOptions] = None,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if style_preset not in self.STYLE_PRESETS:
            raise ValueError(
                f"Unknown preset {style_preset!r}. Choose from: {', '.join(self.STYLE_PRESETS)}"
            )
        self.style_preset = style_preset
        self.options = options if options is not None else ConversionOptions.from_preset(style_preset)
        self.parser = HtmlParser()
        self.markdown = MarkdownParser(self.parser)
        self.client = client

    # ======================================================================
    # Public API
    # ======================================================================

    def build_package(
        self,
        html_text: str,
        *,
        base_path: Optional[Path] = None,
        created: Optional[datetime] = None,
    ) -> DocumentPackage:
        """Run the whole pipeline and return the parts before archival.

        Args:
            html_text: HTML source string.
            base_path: Directory relative image paths are resolved against.
            created: Timestamp recorded in the document properties.
        """
        media = MediaManager(
            timeout=self.options.image_timeout,
            client=self.client,
            base_path=base_path,
        )
        transducer = NodeTransducer(self.options, media, self.parser)

        body = transducer.transduce(self.parser.parse(html_text), part="document")
        header = self._render_header(transducer, media)
        footer = self._render_footer(transducer, media)
        LOGGER.debug(
            "Transduced %d body fragments (header=%s, footer=%s)",
            len(body),
            header is not None,
            footer is not None,
        )
        return DocumentAssembler(self.options).assemble(
            body, media, header=header, footer=footer, created=created
        )

    def convert_text(self, html_text: str, *, base_path: Optional[Path] = None) -> bytes:
        """Convert HTML text to DOCX bytes.

        Args:
            html_text: HTML source string.
            base_path: Directory relative image paths are resolved against.

        Returns:
            DOCX file content as bytes.
        """
        package = self.build_package(html_text, base_path=base_path)
        return package.to_bytes(compress=self.options.compress)

    def convert_markdown(self, markdown_text: str, *, base_path: Optional[Path] = None) -> bytes:
        """Convert Markdown text to DOCX bytes via its HTML rendering."""
        return self.convert_text(self.markdown.to_html(markdown_text), base_path=base_path)

    def convert_file(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
        *,
        encoding: str = "utf-8",
    ) -> None:
        """Read an HTML or Markdown file and write the DOCX output.

        Args:
            input_path: Path to the input ``.html`` or ``.md`` file.
            output_path: Path for the output ``.docx`` file.
            encoding: Text encoding of the source file.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)

        source = input_path.read_text(encoding=encoding)
        base_path = input_path.resolve().parent
        if input_path.suffix.lower() in MARKDOWN_SUFFIXES:
            docx_bytes = self.convert_markdown(source, base_path=base_path)
        else:
            docx_bytes = self.convert_text(source, base_path=base_path)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(docx_bytes)

    # ======================================================================
    # Header / footer
    # ======================================================================

    def _render_header(
        self, transducer: NodeTransducer, media: MediaManager
    ) -> Optional[list[Fragment]]:
        opts = self.options
        fragments: Optional[list[Fragment]] = None
        if opts.enable_header and opts.header:
            fragments = self._render_margin_part(transducer, media, opts.header, "header")
        if opts.page_border is not None:
            # Anchored to the page from the header so it repeats on every page.
            border = page_border_shape(opts.page_border, opts, shape_id=transducer.next_shape_id())
            fragments = [border] + (fragments or [])
        return fragments

    def _render_footer(
        self, transducer: NodeTransducer, media: MediaManager
    ) -> Optional[list[Fragment]]:
        opts = self.options
        if not opts.enable_footer:
            return None
        fragments: Optional[list[Fragment]] = None
        if opts.footer:
            fragments = self._render_margin_part(transducer, media, opts.footer, "footer")
        has_number = bool(opts.footer) and "<page-number" in opts.footer.lower()
        if opts.enable_page_numbers and not has_number:
            alignment = StyleRecord(alignment=opts.page_number_alignment)
            fragments = (fragments or []) + [make_paragraph(page_number_runs(), alignment)]
        return fragments

    def _render_margin_part(
        self,
        transducer: NodeTransducer,
        media: MediaManager,
        value: str,
        part: str,
    ) -> list[Fragment]:
        """Markup through the transducer, or a full-bleed embedded image."""
        opts = self.options
        value = value.strip()
        if not value.startswith("data:image"):
            return transducer.transduce(self.parser.parse(value), part=part)

        asset = media.resolve(value, f"{part.title()} image", part)
        if asset is None:
            return []
        height_inches = opts.header_height if part == "header" else opts.footer_height
        cy = int(round(height_inches * EMU_PER_INCH))
        offset = 0 if part == "header" else max(opts.page_height_emu - cy, 0)
        run = page_width_image_run(asset, opts.page_width_emu, cy, vertical_offset=offset)
        return [make_paragraph([run])]


# ---------------------------------------------------------------------------
# Convenience functions
# ---------------------------------------------------------------------------

def convert_html(
    html_text: str,
    options: Optional[ConversionOptions] = None,
    *,
    style_preset: str = "default",
) -> bytes:
    """Convert *html_text* to DOCX bytes in one call."""
    return Converter(style_preset, options).convert_text(html_text)


def convert_html_to_file(
    html_text: str,
    output_path: Union[str, Path],
    options: Optional[ConversionOptions] = None,
    *,
    style_preset: str = "default",
) -> Path:
    """Convert *html_text* and write the DOCX to *output_path*."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(convert_html(html_text, options, style_preset=style_preset))
    return output_path
