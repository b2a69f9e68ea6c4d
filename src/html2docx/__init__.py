"""html2docx - convert HTML (and Markdown) documents to DOCX."""

__version__ = "0.1.0"

from html2docx.converter import Converter, convert_html, convert_html_to_file  # noqa: E402
from html2docx.options import ConversionOptions, PageBorder  # noqa: E402

__all__ = [
    "__version__",
    "ConversionOptions",
    "Converter",
    "PageBorder",
    "convert_html",
    "convert_html_to_file",
]
