"""Shared fixtures: generated images and XML helpers."""

from __future__ import annotations

import base64
import io
import xml.etree.ElementTree as ET
import zipfile

import pytest
from PIL import Image

from html2docx.fragments import NS


def make_png(width: int = 100, height: int = 50, color: str = "red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def data_url(data: bytes, subtype: str = "png") -> str:
    return f"data:image/{subtype};base64," + base64.b64encode(data).decode("ascii")


def read_part(docx: bytes, name: str) -> ET.Element:
    """Parse one XML part of a DOCX archive."""
    with zipfile.ZipFile(io.BytesIO(docx)) as zf:
        return ET.fromstring(zf.read(name))


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_data_url(png_bytes: bytes) -> str:
    return data_url(png_bytes)


@pytest.fixture
def ns() -> dict[str, str]:
    return NS
