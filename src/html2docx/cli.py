"""Command-line interface for html2docx.

Usage::

    html2docx input.html                       # writes input.docx
    html2docx input.md -o output.docx          # Markdown input, explicit output
    html2docx input.html --style academic      # use academic preset
    html2docx input.html -c options.json       # options from a JSON file
    html2docx --list-styles                    # list available presets
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from html2docx import __version__
from html2docx.converter import Converter
from html2docx.logger import configure_logging
from html2docx.options import PAGE_SIZES, ConversionOptions


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="html2docx",
        description="Convert HTML (or Markdown) files to DOCX format.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        help="Path to the HTML or Markdown file to convert.",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output DOCX file path. Defaults to <input>.docx.",
    )
    parser.add_argument(
        "-s", "--style",
        default="default",
        choices=ConversionOptions.PRESETS,
        help="Style preset (default: %(default)s).",
    )
    parser.add_argument(
        "-e", "--encoding",
        default="utf-8",
        help="Input file encoding (default: %(default)s).",
    )
    parser.add_argument(
        "-c", "--config",
        help="JSON file with conversion options (snake_case or camelCase keys).",
    )
    parser.add_argument(
        "--page-size",
        choices=list(PAGE_SIZES),
        help="Page size, overriding the preset and config file.",
    )
    parser.add_argument(
        "--page-numbers",
        action="store_true",
        help="Add a page number to the footer.",
    )
    parser.add_argument(
        "--list-styles",
        action="store_true",
        help="List available style presets and exit.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print progress information.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def _load_options(args: argparse.Namespace) -> ConversionOptions:
    data: dict = {}
    if args.config:
        data = json.loads(Path(args.config).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"config file must contain a JSON object: {args.config}")
    if args.page_size:
        data["page_size"] = args.page_size
    if args.page_numbers:
        data["enable_page_numbers"] = True
    return ConversionOptions.from_dict(data, preset=args.style)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.list_styles:
        print("Available style presets:")
        for preset in ConversionOptions.PRESETS:
            print(f"  - {preset}")
        return 0

    if not args.input:
        parser.error("the following argument is required: input")

    configure_logging(args.verbose)

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        return 1

    # Determine output path
    if args.output:
        output_path = Path(args.output)
    else:
        output_path = input_path.with_suffix(".docx")

    if args.verbose:
        print(f"Input:  {input_path}")
        print(f"Output: {output_path}")
        print(f"Style:  {args.style}")

    try:
        options = _load_options(args)
        converter = Converter(style_preset=args.style, options=options)
        converter.convert_file(input_path, output_path, encoding=args.encoding)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"Done. {output_path.stat().st_size} bytes written.")
    else:
        print(f"Converted: {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
