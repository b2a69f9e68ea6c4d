"""Image resolution, relationship bookkeeping and DrawingML builders.

One :class:`MediaManager` lives for exactly one conversion.  It resolves
image references from the body, header and footer parts, gives every asset
a part-scoped relationship id plus a document-wide number, and later feeds
the per-part relationship manifests to the packager.

Resolution fails soft: a bad data URL, an unreachable host or a timeout is
logged and yields ``None``, and the caller simply omits the image.
"""

from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse
from xml.etree.ElementTree import Element, SubElement

import httpx
from PIL import Image

from html2docx.fragments import Fragment, FragmentKind, qn
from html2docx.logger import get_logger

LOGGER = get_logger(__name__)

PARTS = ("document", "header", "footer")

IMAGE_RELATIONSHIP_TYPE = (
    "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
)
PICTURE_URI = "http://schemas.openxmlformats.org/drawingml/2006/picture"

CONTENT_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "ico": "image/x-icon",
}

_SUBTYPE_EXTENSIONS = {
    "svg+xml": "svg",
    "x-icon": "ico",
    "vnd.microsoft.icon": "ico",
    "pjpeg": "jpeg",
}

_PIL_EXTENSIONS = {
    "PNG": "png",
    "JPEG": "jpeg",
    "GIF": "gif",
    "BMP": "bmp",
    "TIFF": "tiff",
    "WEBP": "webp",
    "ICO": "ico",
}

_DATA_URL_RE = re.compile(
    r"^data:image/([a-zA-Z0-9.+-]+)(?:;[^,;]*)*?;base64,(.*)$", re.DOTALL
)

DEFAULT_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# MediaAsset
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MediaAsset:
    """One embedded image."""

    data: bytes
    filename: str
    rel_id: str
    number: int
    part: str
    alt: str = "Image"
    pixel_size: Optional[tuple[int, int]] = None

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1]

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES.get(self.extension, "application/octet-stream")

    @property
    def target(self) -> str:
        """Relationship target relative to ``word/``."""
        return f"media/{self.filename}"

    @property
    def zip_path(self) -> str:
        return f"word/media/{self.filename}"


def _normalize_extension(subtype: str) -> str:
    subtype = subtype.lower()
    return _SUBTYPE_EXTENSIONS.get(subtype, subtype)


def _measure(data: bytes) -> tuple[Optional[tuple[int, int]], Optional[str]]:
    """Pixel size and format of *data*, or ``(None, None)`` if Pillow cannot read it."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size, _PIL_EXTENSIONS.get(img.format or "")
    except (OSError, ValueError, Image.DecompressionBombError):
        return None, None


# ---------------------------------------------------------------------------
# MediaManager
# ---------------------------------------------------------------------------

class MediaManager:
    """Accumulates the images of one conversion."""

    FIRST_RELATIONSHIP_ID = 100

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.Client] = None,
        base_path: Optional[Path] = None,
    ) -> None:
        self.timeout = timeout
        self.base_path = Path(base_path) if base_path is not None else None
        self._client = client
        self._assets: list[MediaAsset] = []
        self._next_rel = {part: self.FIRST_RELATIONSHIP_ID for part in PARTS}
        self._next_number = 1

    # ======================================================================
    # Public API
    # ======================================================================

    def resolve(
        self,
        reference: str,
        alt: str = "Image",
        part: str = "document",
    ) -> Optional[MediaAsset]:
        """Resolve *reference* into a stored :class:`MediaAsset`.

        Args:
            reference: A ``data:image/...;base64,`` URL, an ``http(s)`` URL,
                or a path relative to :attr:`base_path`.
            alt: Alternative text for the drawing properties.
            part: Owning part, one of ``document``, ``header``, ``footer``.

        Returns:
            The new asset, or ``None`` when the image cannot be resolved.
        """
        if part not in PARTS:
            raise ValueError(f"Unknown part {part!r}. Choose from: {', '.join(PARTS)}")
        reference = (reference or "").strip()
        if not reference:
            return None

        try:
            scheme = urlparse(reference).scheme
        except ValueError as exc:
            LOGGER.warning("Malformed image reference %.60s: %s", reference, exc)
            return None

        if reference.startswith("data:"):
            loaded = self._decode_data_url(reference)
        elif reference.startswith("//"):
            loaded = self._fetch("https:" + reference)
        elif scheme in ("http", "https"):
            loaded = self._fetch(reference)
        else:
            loaded = self._read_local(reference)

        if loaded is None:
            return None
        data, extension = loaded
        return self._store(data, extension, alt or "Image", part)

    def assets(self, part: Optional[str] = None) -> list[MediaAsset]:
        if part is None:
            return list(self._assets)
        return [asset for asset in self._assets if asset.part == part]

    def relationships(self, part: str) -> list[tuple[str, str, str]]:
        """``(id, type, target)`` triples for the images owned by *part*."""
        return [
            (asset.rel_id, IMAGE_RELATIONSHIP_TYPE, asset.target)
            for asset in self.assets(part)
        ]

    @property
    def extensions(self) -> list[str]:
        return sorted({asset.extension for asset in self._assets})

    # ======================================================================
    # Loaders
    # ======================================================================

    def _decode_data_url(self, reference: str) -> Optional[tuple[bytes, str]]:
        m = _DATA_URL_RE.match(reference)
        if not m:
            LOGGER.warning("Unsupported data URL (expected base64 image): %.60s", reference)
            return None
        payload = re.sub(r"\s+", "", m.group(2))
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            LOGGER.warning("Invalid base64 image data: %s", exc)
            return None
        if not data:
            LOGGER.warning("Empty image in data URL")
            return None
        return data, _normalize_extension(m.group(1))

    def _fetch(self, url: str) -> Optional[tuple[bytes, str]]:
        get: Callable[..., httpx.Response] = (
            self._client.get if self._client is not None else httpx.get
        )
        try:
            response = get(url, timeout=self.timeout, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            LOGGER.warning("Failed to fetch image %s: %s", url, exc)
            return None
        if not response.content:
            LOGGER.warning("Empty response for image %s", url)
            return None

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        extension = ""
        if content_type.startswith("image/"):
            extension = _normalize_extension(content_type[len("image/"):])
        if not extension:
            extension = _normalize_extension(Path(urlparse(url).path).suffix.lstrip("."))
        return response.content, extension

    def _read_local(self, reference: str) -> Optional[tuple[bytes, str]]:
        if self.base_path is None:
            LOGGER.warning("Cannot resolve image reference without a base path: %s", reference)
            return None
        path = self.base_path / reference
        try:
            data = path.read_bytes()
        except OSError as exc:
            LOGGER.warning("Failed to read image %s: %s", path, exc)
            return None
        return data, _normalize_extension(path.suffix.lstrip("."))

    # ======================================================================
    # Accumulation
    # ======================================================================

    def _store(self, data: bytes, extension: str, alt: str, part: str) -> MediaAsset:
        size, detected = _measure(data)
        if extension not in CONTENT_TYPES:
            extension = detected or "png"
        number = self._next_number
        self._next_number += 1
        rel_id = f"rId{self._next_rel[part]}"
        self._next_rel[part] += 1
        asset = MediaAsset(
            data=data,
            filename=f"image_{number}.{extension}",
            rel_id=rel_id,
            number=number,
            part=part,
            alt=alt,
            pixel_size=size,
        )
        self._assets.append(asset)
        LOGGER.debug("Stored %s as %s (%s)", asset.filename, rel_id, part)
        return asset


# ---------------------------------------------------------------------------
# DrawingML builders
# ---------------------------------------------------------------------------

def _set_all(elem: Element, **attrs: object) -> Element:
    for key, value in attrs.items():
        elem.set(key, str(value))
    return elem


def _graphic(parent: Element, asset: MediaAsset, cx: int, cy: int) -> None:
    """Append ``docPr``, frame locks and the ``a:graphic`` picture."""
    doc_pr = SubElement(parent, qn("wp:docPr"))
    _set_all(doc_pr, id=asset.number, name=f"Picture {asset.number}", descr=asset.alt)

    frame = SubElement(parent, qn("wp:cNvGraphicFramePr"))
    SubElement(frame, qn("a:graphicFrameLocks")).set("noChangeAspect", "1")

    graphic = SubElement(parent, qn("a:graphic"))
    data = SubElement(graphic, qn("a:graphicData"))
    data.set("uri", PICTURE_URI)
    pic = SubElement(data, qn("pic:pic"))

    nv = SubElement(pic, qn("pic:nvPicPr"))
    _set_all(SubElement(nv, qn("pic:cNvPr")), id=asset.number, name=asset.filename, descr=asset.alt)
    SubElement(nv, qn("pic:cNvPicPr"))

    fill = SubElement(pic, qn("pic:blipFill"))
    SubElement(fill, qn("a:blip")).set(qn("r:embed"), asset.rel_id)
    SubElement(SubElement(fill, qn("a:stretch")), qn("a:fillRect"))

    sp_pr = SubElement(pic, qn("pic:spPr"))
    xfrm = SubElement(sp_pr, qn("a:xfrm"))
    _set_all(SubElement(xfrm, qn("a:off")), x=0, y=0)
    _set_all(SubElement(xfrm, qn("a:ext")), cx=cx, cy=cy)
    geom = SubElement(sp_pr, qn("a:prstGeom"))
    geom.set("prst", "rect")
    SubElement(geom, qn("a:avLst"))


def _extent(parent: Element, cx: int, cy: int) -> None:
    _set_all(SubElement(parent, qn("wp:extent")), cx=cx, cy=cy)
    _set_all(SubElement(parent, qn("wp:effectExtent")), l=0, t=0, r=0, b=0)


def _drawing_run(child: Element) -> Fragment:
    r = Element(qn("w:r"))
    SubElement(r, qn("w:drawing")).append(child)
    return Fragment(FragmentKind.RUN, r)


def inline_image_run(asset: MediaAsset, cx: int, cy: int) -> Fragment:
    """An image flowing in the run stream."""
    inline = Element(qn("wp:inline"))
    _set_all(inline, distT=0, distB=0, distL=0, distR=0)
    _extent(inline, cx, cy)
    _graphic(inline, asset, cx, cy)
    return _drawing_run(inline)


def anchored_image_run(
    asset: MediaAsset,
    cx: int,
    cy: int,
    *,
    horizontal: tuple[str, str, object],
    vertical: tuple[str, str, object],
    wrap: str = "square",
    wrap_text: str = "bothSides",
    distances: tuple[int, int, int, int] = (0, 0, 0, 0),
    behind_text: bool = False,
) -> Fragment:
    """A floating image.

    Args:
        asset: The image.
        cx: Width in EMU.
        cy: Height in EMU.
        horizontal: ``(relativeFrom, "align" | "posOffset", value)``.
        vertical: Same shape as *horizontal*.
        wrap: ``square``, ``topAndBottom`` or ``none``.
        wrap_text: Side(s) text may wrap on, for square wrapping.
        distances: Wrap distances (top, bottom, left, right) in EMU.
        behind_text: Place the image behind the text layer.
    """
    top, bottom, left, right = distances
    anchor = Element(qn("wp:anchor"))
    _set_all(
        anchor,
        distT=top,
        distB=bottom,
        distL=left,
        distR=right,
        simplePos=0,
        relativeHeight=251658240 + asset.number,
        behindDoc=1 if behind_text else 0,
        locked=0,
        layoutInCell=1,
        allowOverlap=1,
    )
    _set_all(SubElement(anchor, qn("wp:simplePos")), x=0, y=0)
    for tag, (relative, mode, value) in (
        ("wp:positionH", horizontal),
        ("wp:positionV", vertical),
    ):
        position = SubElement(anchor, qn(tag))
        position.set("relativeFrom", relative)
        SubElement(position, qn(f"wp:{mode}")).text = str(value)
    _extent(anchor, cx, cy)
    if wrap == "square":
        SubElement(anchor, qn("wp:wrapSquare")).set("wrapText", wrap_text)
    elif wrap == "topAndBottom":
        SubElement(anchor, qn("wp:wrapTopAndBottom"))
    else:
        SubElement(anchor, qn("wp:wrapNone"))
    _graphic(anchor, asset, cx, cy)
    return _drawing_run(anchor)


def floating_image_run(
    asset: MediaAsset,
    cx: int,
    cy: int,
    side: str,
    distances: tuple[int, int, int, int] = (0, 0, 0, 0),
) -> Fragment:
    """Float left or right of the column; text wraps on the other side."""
    return anchored_image_run(
        asset,
        cx,
        cy,
        horizontal=("column", "align", side),
        vertical=("paragraph", "posOffset", 0),
        wrap="square",
        wrap_text="right" if side == "left" else "left",
        distances=distances,
    )


def page_width_image_run(
    asset: MediaAsset,
    cx: int,
    cy: int,
    *,
    vertical_offset: int = 0,
) -> Fragment:
    """Full-bleed image anchored to the page edge (header/footer images)."""
    return anchored_image_run(
        asset,
        cx,
        cy,
        horizontal=("page", "posOffset", 0),
        vertical=("page", "posOffset", vertical_offset),
        wrap="square",
        wrap_text="bothSides",
    )
