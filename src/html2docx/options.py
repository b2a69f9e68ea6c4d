"""Conversion options and style presets.

:class:`ConversionOptions` is sanitized in ``__post_init__``: any numeric
value that is missing, non-finite or out of range is replaced by its
documented default, and a header, footer or page border of the wrong type is
dropped (a warning is logged either way), so nothing downstream has to
re-validate.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional, Sequence, Union

from html2docx.logger import get_logger
from html2docx.units import (
    EMU_PER_TWIP,
    POINTS_PER_INCH,
    inches_to_twips,
    is_color_token,
    parse_color,
)

LOGGER = get_logger(__name__)

# Page sizes in twips (width, height).
PAGE_SIZES = {
    "A4": (11906, 16838),
    "LETTER": (12240, 15840),
    "LEGAL": (12240, 20160),
}

DEFAULT_PAGE_SIZE = "Letter"
HEADING_PLACEHOLDER = "HEADING_TEXT"

PAGE_BORDER_STYLES = ("solid", "dotted", "dashed", "double", "thick")
PAGE_NUMBER_ALIGNMENTS = ("left", "center", "right")

PageSize = Union[str, Sequence[float], Mapping[str, float]]


# ---------------------------------------------------------------------------
# Sanitizers
# ---------------------------------------------------------------------------

def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _positive(name: str, value: Any, default: float) -> float:
    number = _as_number(value)
    if number is None or number <= 0:
        LOGGER.warning("Invalid %s %r; using default %s", name, value, default)
        return default
    return number


def _non_negative(name: str, value: Any, default: float) -> float:
    number = _as_number(value)
    if number is None or number < 0:
        LOGGER.warning("Invalid %s %r; using default %s", name, value, default)
        return default
    return number


def _normalize_page_size(value: Any) -> tuple[int, int]:
    if isinstance(value, str):
        size = PAGE_SIZES.get(value.strip().upper())
        if size is not None:
            return size
    elif isinstance(value, Mapping):
        width = _as_number(value.get("width"))
        height = _as_number(value.get("height"))
        if width and height and width > 0 and height > 0:
            return inches_to_twips(width), inches_to_twips(height)
    elif isinstance(value, Sequence) and len(value) == 2:
        width, height = _as_number(value[0]), _as_number(value[1])
        if width and height and width > 0 and height > 0:
            return inches_to_twips(width), inches_to_twips(height)
    LOGGER.warning("Unknown page size %r; using %s", value, DEFAULT_PAGE_SIZE)
    return PAGE_SIZES[DEFAULT_PAGE_SIZE.upper()]


def _normalize_replacements(value: Any) -> dict[int, str]:
    """Accept ``{level: template}`` or a list indexed by ``level - 1``."""
    if not value:
        return {}
    items: Any
    if isinstance(value, Mapping):
        items = value.items()
    elif isinstance(value, Sequence) and not isinstance(value, str):
        items = ((idx + 1, template) for idx, template in enumerate(value))
    else:
        LOGGER.warning("Ignoring heading replacements of type %s", type(value).__name__)
        return {}
    result: dict[int, str] = {}
    for level, template in items:
        try:
            level = int(level)
        except (TypeError, ValueError):
            continue
        if 1 <= level <= 6 and isinstance(template, str) and template.strip():
            result[level] = template
    return result


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class PageBorder:
    """Page border overlay drawn around the text area on every page."""

    style: str = "solid"
    color: str = "000000"
    size: float = 1.0  # pt
    radius: float = 0.0  # pt
    margin_offset: Optional[float] = None  # inches, defaults to half the left margin

    def __post_init__(self) -> None:
        style = str(self.style or "").lower()
        self.style = style if style in PAGE_BORDER_STYLES else "solid"
        color = str(self.color or "").strip()
        if color and not color.startswith("#") and is_color_token("#" + color):
            color = "#" + color
        self.color = parse_color(color)
        self.size = _positive("page border size", self.size, 1.0)
        self.radius = _non_negative("page border radius", self.radius, 0.0)
        if self.margin_offset is not None:
            offset = _as_number(self.margin_offset)
            self.margin_offset = offset if offset is not None and offset >= 0 else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PageBorder:
        kwargs = {_snake(k): v for k, v in data.items()}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in kwargs.items() if k in known})


def _normalize_page_border(value: Any) -> Optional[PageBorder]:
    if value is None or isinstance(value, PageBorder):
        return value
    if isinstance(value, Mapping):
        return PageBorder.from_dict(value)
    LOGGER.warning("Ignoring page border of type %s", type(value).__name__)
    return None


def _optional_markup(name: str, value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    LOGGER.warning("Ignoring %s of type %s", name, type(value).__name__)
    return None


@dataclass
class ConversionOptions:
    """Validated configuration for one conversion."""

    font_family: str = "Calibri"
    font_size: float = 11.0  # pt
    line_height: float = 1.15

    page_size: PageSize = DEFAULT_PAGE_SIZE
    margin_top: float = 1.0  # inches
    margin_right: float = 1.0
    margin_bottom: float = 1.0
    margin_left: float = 1.0
    margin_header: float = 0.5
    margin_footer: float = 0.5

    header: Optional[str] = None
    footer: Optional[str] = None
    enable_header: bool = True
    enable_footer: bool = True
    header_height: float = 1.0  # inches, full-bleed header image
    footer_height: float = 1.0

    enable_page_numbers: bool = False
    page_number_alignment: str = "center"
    page_border: Optional[PageBorder] = None

    heading_replacements: dict[int, str] = field(default_factory=dict)

    title: str = ""
    creator: str = "html2docx"
    image_timeout: float = 10.0  # seconds
    compress: bool = True

    PRESETS = ["default", "academic", "business", "minimal"]

    def __post_init__(self) -> None:
        self.font_family = str(self.font_family or "").strip() or "Calibri"
        self.font_size = _positive("font size", self.font_size, 11.0)
        self.line_height = _positive("line height", self.line_height, 1.15)
        for name, default in (
            ("margin_top", 1.0),
            ("margin_right", 1.0),
            ("margin_bottom", 1.0),
            ("margin_left", 1.0),
            ("margin_header", 0.5),
            ("margin_footer", 0.5),
        ):
            setattr(self, name, _non_negative(name, getattr(self, name), default))
        self.header_height = _positive("header height", self.header_height, 1.0)
        self.footer_height = _positive("footer height", self.footer_height, 1.0)
        self.image_timeout = _positive("image timeout", self.image_timeout, 10.0)
        self._page_twips = _normalize_page_size(self.page_size)

        alignment = str(self.page_number_alignment or "").lower()
        self.page_number_alignment = (
            alignment if alignment in PAGE_NUMBER_ALIGNMENTS else "center"
        )
        self.header = _optional_markup("header", self.header)
        self.footer = _optional_markup("footer", self.footer)
        self.page_border = _normalize_page_border(self.page_border)
        self.heading_replacements = _normalize_replacements(self.heading_replacements)

    # -- construction -------------------------------------------------------

    @classmethod
    def from_preset(cls, preset: str = "default", **overrides: Any) -> ConversionOptions:
        """Build options from a named preset plus keyword overrides.

        Raises:
            ValueError: If *preset* is not one of :attr:`PRESETS`.
        """
        if preset not in _PRESET_VALUES:
            raise ValueError(
                f"Unknown preset {preset!r}. Choose from: {', '.join(_PRESET_VALUES)}"
            )
        values = dict(_PRESET_VALUES[preset])
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        preset: str = "default",
    ) -> ConversionOptions:
        """Build options from a loosely typed mapping (JSON config, form data).

        Keys may be snake_case or camelCase.  Unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        border_enabled: Optional[bool] = None
        for key, value in data.items():
            name = _snake(key)
            if name == "enable_page_border":
                border_enabled = bool(value)
            elif name in known:
                values[name] = value
            else:
                LOGGER.warning("Ignoring unknown option %r", key)
        if border_enabled is False:
            values["page_border"] = None
        elif border_enabled and values.get("page_border") is None:
            values["page_border"] = PageBorder()
        return cls.from_preset(preset, **values)

    # -- page geometry (twips) ---------------------------------------------

    @property
    def page_width_twips(self) -> int:
        return self._page_twips[0]

    @property
    def page_height_twips(self) -> int:
        return self._page_twips[1]

    @property
    def landscape(self) -> bool:
        return self.page_width_twips > self.page_height_twips

    def margin_twips(self, side: str) -> int:
        """Margin for *side* (top, right, bottom, left, header, footer)."""
        return inches_to_twips(getattr(self, f"margin_{side}"))

    @property
    def content_width_twips(self) -> int:
        return max(
            self.page_width_twips - self.margin_twips("left") - self.margin_twips("right"),
            TWIPS_MIN_CONTENT,
        )

    @property
    def content_height_twips(self) -> int:
        return max(
            self.page_height_twips - self.margin_twips("top") - self.margin_twips("bottom"),
            TWIPS_MIN_CONTENT,
        )

    @property
    def content_width_emu(self) -> int:
        return self.content_width_twips * EMU_PER_TWIP

    @property
    def page_width_emu(self) -> int:
        return self.page_width_twips * EMU_PER_TWIP

    @property
    def page_height_emu(self) -> int:
        return self.page_height_twips * EMU_PER_TWIP

    @property
    def font_size_half_points(self) -> int:
        return int(round(self.font_size * 2))

    @property
    def line_twips(self) -> int:
        """``w:line`` value for auto line spacing (240 == single)."""
        return int(round(self.line_height * 240))

    def margin_points(self, side: str) -> float:
        return getattr(self, f"margin_{side}") * POINTS_PER_INCH


TWIPS_MIN_CONTENT = 720

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_RE.sub("_", str(name)).lower()


# ---------------------------------------------------------------------------
# Preset registry
# ---------------------------------------------------------------------------

_PRESET_VALUES: dict[str, dict[str, Any]] = {
    "default": {},
    "academic": {
        "font_family": "Times New Roman",
        "font_size": 12.0,
        "line_height": 2.0,
    },
    "business": {
        "font_family": "Arial",
        "font_size": 10.0,
        "line_height": 1.15,
        "margin_left": 0.75,
        "margin_right": 0.75,
    },
    "minimal": {
        "font_family": "Helvetica Neue",
        "font_size": 10.0,
        "line_height": 1.0,
        "margin_top": 0.75,
        "margin_bottom": 0.75,
        "margin_left": 0.75,
        "margin_right": 0.75,
    },
}
