"""FastAPI web service for HTML to DOCX conversion.

Endpoints::

    GET  /              Web UI (single-page HTML).
    POST /convert       Upload a .html or .md file and receive .docx back.
    POST /convert/text  Send raw HTML text, receive .docx bytes.
    GET  /health        Health check.
    GET  /styles        List available style presets.

Run::

    uvicorn html2docx.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, Response

from html2docx import __version__
from html2docx.converter import MARKDOWN_SUFFIXES, Converter
from html2docx.logger import get_logger
from html2docx.options import ConversionOptions

LOGGER = get_logger(__name__)

app = FastAPI(
    title="html2docx",
    description="HTML to DOCX conversion service",
    version=__version__,
)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _content_disposition(filename: str) -> str:
    """Build Content-Disposition header, RFC 5987 for non-ASCII names."""
    try:
        filename.encode("ascii")
        return f'attachment; filename="{filename}"'
    except UnicodeEncodeError:
        encoded = quote(filename)
        return f"attachment; filename*=UTF-8''{encoded}"


def _build_converter(style: str, options_json: Optional[str]) -> Converter:
    """Validate the preset and options form fields, raising HTTP 400."""
    if style not in ConversionOptions.PRESETS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown style {style!r}. Choose from: {', '.join(ConversionOptions.PRESETS)}",
        )
    data = {}
    if options_json:
        try:
            data = json.loads(options_json)
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid options JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Options must be a JSON object")
    options = ConversionOptions.from_dict(data, preset=style)
    return Converter(style_preset=style, options=options)


def _docx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": _content_disposition(filename)},
    )


_STATIC_DIR = Path(__file__).parent / "static"
try:
    _INDEX_HTML = (_STATIC_DIR / "index.html").read_text(encoding="utf-8")
except FileNotFoundError:
    _INDEX_HTML = "<html><body><h1>html2docx</h1><p>Web UI not found.</p></body></html>"


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve the web UI."""
    return HTMLResponse(content=_INDEX_HTML)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@app.get("/styles")
async def list_styles() -> dict[str, list[str]]:
    """List available style presets."""
    return {"presets": ConversionOptions.PRESETS}


@app.post("/convert")
async def convert_file(
    file: UploadFile = File(...),
    style: str = Form("default"),
    encoding: str = Form("utf-8"),
    options: Optional[str] = Form(None),
) -> Response:
    """Upload an HTML or Markdown file and receive DOCX back.

    - **file**: HTML (.html) or Markdown (.md) file
    - **style**: Style preset name (default, academic, business, minimal)
    - **encoding**: Source file encoding
    - **options**: Optional JSON object of conversion options
    """
    converter = _build_converter(style, options)
    raw = await file.read()
    try:
        text = raw.decode(encoding)
    except (UnicodeDecodeError, LookupError) as exc:
        raise HTTPException(status_code=400, detail=f"Cannot decode upload: {exc}") from exc

    source_name = file.filename or "document.html"
    if Path(source_name).suffix.lower() in MARKDOWN_SUFFIXES:
        docx_bytes = await run_in_threadpool(converter.convert_markdown, text)
    else:
        docx_bytes = await run_in_threadpool(converter.convert_text, text)

    filename = source_name.rsplit(".", 1)[0] + ".docx"
    LOGGER.info("Converted %s (%d bytes)", source_name, len(docx_bytes))
    return _docx_response(docx_bytes, filename)


@app.post("/convert/text")
async def convert_text(
    html: str = Form(...),
    style: str = Form("default"),
    options: Optional[str] = Form(None),
) -> Response:
    """Send raw HTML text and receive DOCX bytes.

    - **html**: HTML source text
    - **style**: Style preset name
    - **options**: Optional JSON object of conversion options
    """
    converter = _build_converter(style, options)
    docx_bytes = await run_in_threadpool(converter.convert_text, html)
    return _docx_response(docx_bytes, "document.docx")
