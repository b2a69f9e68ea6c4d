"""Inline style resolution.

:func:`resolve_style` reads one node's own ``style`` declarations and
structural attributes into a :class:`StyleRecord`.  It knows nothing about
ancestors: the transducer layers records with :meth:`StyleRecord.merge`,
parent first.

Every field is optional.  ``None`` means "inherit"; any other value, even
``False`` or ``0``, is an explicit override.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from typing import Any, Optional

from html2docx.parser import Node
from html2docx.units import (
    Gradient,
    is_color_token,
    parse_color,
    parse_gradient,
    parse_length,
    to_half_points,
    to_twips,
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Box:
    """Four-sided measurement in twips (margins, padding)."""

    top: Optional[int] = None
    right: Optional[int] = None
    bottom: Optional[int] = None
    left: Optional[int] = None


@dataclass(frozen=True)
class BorderSpec:
    """A resolved CSS border: width in points, style keyword, ``RRGGBB``."""

    width: float = 0.75
    style: str = "solid"
    color: str = "000000"

    @property
    def visible(self) -> bool:
        return self.width > 0 and self.style not in ("none", "hidden")


@dataclass(frozen=True)
class StyleRecord:
    """Flat, mergeable set of presentation attributes for one node."""

    # Run level
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    strike: Optional[bool] = None
    color: Optional[str] = None
    background: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[int] = None  # half-points

    # Paragraph level
    alignment: Optional[str] = None  # left, center, right, both
    spacing_before: Optional[int] = None  # twips
    spacing_after: Optional[int] = None
    indent_left: Optional[int] = None
    indent_right: Optional[int] = None
    heading_level: Optional[int] = None
    list_type: Optional[str] = None  # bullet, ordered
    list_level: Optional[int] = None
    no_spacing: Optional[bool] = None

    # Box level
    border: Optional[BorderSpec] = None
    padding: Optional[Box] = None
    margin: Optional[Box] = None
    width: Optional[str] = None  # raw CSS length, resolved against context
    height: Optional[str] = None
    border_radius: Optional[float] = None  # pixels
    gradient: Optional[Gradient] = None
    float_side: Optional[str] = None
    vertical_align: Optional[str] = None

    # Flow
    page_break_before: Optional[bool] = None
    page_break_after: Optional[bool] = None
    in_decorated_box: Optional[bool] = None

    def merge(self, other: StyleRecord) -> StyleRecord:
        """Return *self* overlaid with every field *other* sets explicitly."""
        overrides = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if getattr(other, f.name) is not None
        }
        if not overrides:
            return self
        return replace(self, **overrides)

    def inheritable(self) -> StyleRecord:
        """Drop attributes that belong to this node's own box."""
        return replace(self, **{name: None for name in _BLOCK_ONLY_FIELDS})

    def without_box(self) -> StyleRecord:
        """Record used for content placed inside a decorated box."""
        cleared = {name: None for name in _BLOCK_ONLY_FIELDS}
        cleared.update(background=None, indent_left=None, indent_right=None)
        return replace(self, in_decorated_box=True, **cleared)

    @property
    def has_background(self) -> bool:
        return self.background is not None or self.gradient is not None

    @property
    def is_decorated_box(self) -> bool:
        """Background plus at least one of padding, width or corner radius."""
        if self.in_decorated_box or not self.has_background:
            return False
        return (
            self.padding is not None
            or self.width is not None
            or self.border_radius is not None
        )


# Fields that describe the node's own box rather than its text; children
# never inherit them.
_BLOCK_ONLY_FIELDS = (
    "spacing_before",
    "spacing_after",
    "heading_level",
    "no_spacing",
    "border",
    "padding",
    "margin",
    "width",
    "height",
    "border_radius",
    "gradient",
    "float_side",
    "vertical_align",
    "page_break_before",
    "page_break_after",
)

EMPTY_STYLE = StyleRecord()


# ---------------------------------------------------------------------------
# Declaration parsing
# ---------------------------------------------------------------------------

_IMPORTANT_RE = re.compile(r"\s*!important\s*$", re.IGNORECASE)


def parse_declarations(style_text: Optional[str]) -> dict[str, str]:
    """Split an inline ``style`` attribute into ``{property: value}``."""
    decls: dict[str, str] = {}
    if not style_text:
        return decls
    for chunk in style_text.split(";"):
        name, sep, value = chunk.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        value = _IMPORTANT_RE.sub("", value.strip())
        if name and value:
            decls[name] = value
    return decls


_ALIGNMENTS = {
    "left": "left",
    "start": "left",
    "center": "center",
    "right": "right",
    "end": "right",
    "justify": "both",
}

_VERTICAL_ALIGNMENTS = {
    "top": "top",
    "middle": "center",
    "center": "center",
    "bottom": "bottom",
}

_BORDER_STYLES = frozenset({
    "none", "hidden", "solid", "dotted", "dashed", "double",
    "groove", "ridge", "inset", "outset",
})

_BORDER_WIDTH_KEYWORDS = {"thin": 1.0, "medium": 3.0, "thick": 5.0}  # px

_NO_BACKGROUND = frozenset({"none", "transparent", "inherit", "initial", "unset"})

_PAGE_BREAK_VALUES = frozenset({"always", "page", "left", "right", "recto", "verso"})


def _text_align(value: str) -> dict[str, Any]:
    alignment = _ALIGNMENTS.get(value.lower())
    return {"alignment": alignment} if alignment else {}


def _font_weight(value: str) -> dict[str, Any]:
    v = value.lower()
    if v in ("bold", "bolder"):
        return {"bold": True}
    if v in ("normal", "lighter"):
        return {"bold": False}
    if v.isdigit():
        return {"bold": int(v) >= 600}
    return {}


def _font_style(value: str) -> dict[str, Any]:
    v = value.lower()
    if v.startswith(("italic", "oblique")):
        return {"italic": True}
    if v == "normal":
        return {"italic": False}
    return {}


def _text_decoration(value: str) -> dict[str, Any]:
    v = value.lower()
    if "none" in v.split():
        return {"underline": False, "strike": False}
    result: dict[str, Any] = {}
    if "underline" in v:
        result["underline"] = True
    if "line-through" in v:
        result["strike"] = True
    return result


def _color(value: str) -> dict[str, Any]:
    return {"color": parse_color(value)}


def _background_color(value: str) -> dict[str, Any]:
    if value.strip().lower() in _NO_BACKGROUND:
        return {}
    return {"background": parse_color(value)}


def _background(value: str) -> dict[str, Any]:
    gradient = parse_gradient(value)
    if gradient is not None:
        return {"gradient": gradient}
    if "gradient(" in value.lower():
        # Unsupported gradient kinds; no solid colour to fall back on.
        return {}
    for token in value.split():
        if token.lower() in _NO_BACKGROUND:
            return {}
        if is_color_token(token):
            return {"background": parse_color(token)}
    return {}


def _font_size(value: str) -> dict[str, Any]:
    size = to_half_points(value, default_unit="pt")
    if size is None or size <= 0:
        return {}
    return {"font_size": size}


def _font_family(value: str) -> dict[str, Any]:
    first = value.split(",")[0].strip().strip("'\"").strip()
    return {"font_family": first} if first else {}


def _dimension(name: str):
    def handler(value: str) -> dict[str, Any]:
        v = value.strip().lower()
        if v == "auto" or parse_length(v) is None:
            return {}
        return {name: v}
    return handler


def _border_radius(value: str) -> dict[str, Any]:
    parsed = parse_length(value.split()[0]) if value.split() else None
    if parsed is None:
        return {}
    number, unit = parsed
    if unit in ("em", "rem"):
        number *= 16.0
    elif unit == "pt":
        number *= 4.0 / 3.0
    # Percentages are read as pixels.
    return {"border_radius": max(number, 0.0)}


def _page_break(name: str):
    def handler(value: str) -> dict[str, Any]:
        v = value.strip().lower()
        if v in _PAGE_BREAK_VALUES:
            return {name: True}
        if v in ("avoid", "auto", "avoid-page"):
            return {name: False}
        return {}
    return handler


def _float(value: str) -> dict[str, Any]:
    v = value.strip().lower()
    return {"float_side": v} if v in ("left", "right") else {}


def _vertical_align(value: str) -> dict[str, Any]:
    v = _VERTICAL_ALIGNMENTS.get(value.strip().lower())
    return {"vertical_align": v} if v else {}


_PROPERTY_HANDLERS = {
    "text-align": _text_align,
    "font-weight": _font_weight,
    "font-style": _font_style,
    "text-decoration": _text_decoration,
    "text-decoration-line": _text_decoration,
    "color": _color,
    "background-color": _background_color,
    "background": _background,
    "background-image": _background,
    "font-size": _font_size,
    "font-family": _font_family,
    "width": _dimension("width"),
    "height": _dimension("height"),
    "border-radius": _border_radius,
    "page-break-before": _page_break("page_break_before"),
    "page-break-after": _page_break("page_break_after"),
    "break-before": _page_break("page_break_before"),
    "break-after": _page_break("page_break_after"),
    "float": _float,
    "vertical-align": _vertical_align,
}


# ---------------------------------------------------------------------------
# Shorthand expansion
# ---------------------------------------------------------------------------

_SIDES = ("top", "right", "bottom", "left")


def expand_shorthand(value: str) -> tuple[str, str, str, str]:
    """Expand a 1-4 value CSS shorthand into (top, right, bottom, left)."""
    parts = value.split()
    if not parts:
        return ("", "", "", "")
    if len(parts) == 1:
        return (parts[0],) * 4  # type: ignore[return-value]
    if len(parts) == 2:
        return (parts[0], parts[1], parts[0], parts[1])
    if len(parts) == 3:
        return (parts[0], parts[1], parts[2], parts[1])
    return (parts[0], parts[1], parts[2], parts[3])


def _collect_box(decls: dict[str, str], prefix: str) -> Optional[Box]:
    """Fold ``prefix`` and ``prefix-<side>`` declarations, in order, into a Box."""
    sides: dict[str, Optional[int]] = {}
    seen = False
    for name, value in decls.items():
        if name == prefix:
            seen = True
            for side, token in zip(_SIDES, expand_shorthand(value)):
                sides[side] = to_twips(token)
        elif name.startswith(prefix + "-") and name[len(prefix) + 1:] in _SIDES:
            seen = True
            sides[name[len(prefix) + 1:]] = to_twips(value)
    if not seen:
        return None
    return Box(**sides)


def _border_width(token: str) -> Optional[float]:
    if token in _BORDER_WIDTH_KEYWORDS:
        return _BORDER_WIDTH_KEYWORDS[token] * 0.75
    parsed = parse_length(token)
    if parsed is None:
        return None
    number, unit = parsed
    if unit == "pt":
        return number
    return number * 0.75


def _collect_border(decls: dict[str, str]) -> Optional[BorderSpec]:
    width: Optional[float] = None
    style: Optional[str] = None
    color: Optional[str] = None
    seen = False
    for name, value in decls.items():
        if name == "border":
            seen = True
            for token in value.lower().split():
                if token in _BORDER_STYLES:
                    style = token
                elif _border_width(token) is not None:
                    width = _border_width(token)
                elif token != "0":
                    color = parse_color(token)
            if value.strip() in ("0", "none"):
                width, style = 0.0, "none"
        elif name == "border-width":
            seen = True
            width = _border_width(value.lower().split()[0]) if value.split() else None
        elif name == "border-style":
            seen = True
            style = value.lower().split()[0] if value.split() else None
        elif name == "border-color":
            seen = True
            color = parse_color(value.split()[0]) if value.split() else None
    if not seen:
        return None
    return BorderSpec(
        width=0.75 if width is None else width,
        style=style or "solid",
        color=color or "000000",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve_style(node: Node) -> StyleRecord:
    """Return the :class:`StyleRecord` for *node*'s own declarations."""
    decls = parse_declarations(node.style)
    values: dict[str, Any] = {}

    _apply_presentational_attributes(node, values)

    for name, value in decls.items():
        handler = _PROPERTY_HANDLERS.get(name)
        if handler is not None:
            values.update(handler(value))

    margin = _collect_box(decls, "margin")
    if margin is not None:
        values["margin"] = margin
        for key, side in (
            ("spacing_before", margin.top),
            ("spacing_after", margin.bottom),
            ("indent_left", margin.left),
            ("indent_right", margin.right),
        ):
            if side is not None:
                values[key] = max(side, 0) if key.startswith("spacing") else side

    padding = _collect_box(decls, "padding")
    if padding is not None:
        values["padding"] = padding

    border = _collect_border(decls)
    if border is not None:
        values["border"] = border

    if node.heading_level:
        values["heading_level"] = node.heading_level
    if node.has("data-no-spacing"):
        values["no_spacing"] = True

    return StyleRecord(**values)


def _apply_presentational_attributes(node: Node, values: dict[str, Any]) -> None:
    """Legacy HTML attributes; inline declarations applied later win."""
    align = node.get("align")
    if align:
        values.update(_text_align(align))
    valign = node.get("valign")
    if valign:
        values.update(_vertical_align(valign))
    bgcolor = node.get("bgcolor")
    if bgcolor:
        values.update(_background_color(bgcolor))
    for attr in ("width", "height"):
        raw = node.get(attr)
        if raw and parse_length(raw) is not None:
            values[attr] = raw.strip().lower()
