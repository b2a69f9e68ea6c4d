"""Length, colour and gradient conversion for CSS values.

Every length is routed through points, then scaled to the unit family the
caller asks for:

* ``"half_points"`` -- font sizes (``w:sz``)
* ``"twips"``       -- spacing, indents, table widths (1pt = 20)
* ``"emu"``         -- drawing and shape geometry (1in = 914400)
* ``"pt"`` / ``"px"``

Pixels use the 96 px per inch reference, so ``1px == 0.75pt == 9525 EMU``.
Nothing in this module raises for bad input; unparseable values come back
as ``None`` (lengths) or black (colours).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional, Union

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMU_PER_INCH = 914400
EMU_PER_POINT = 12700
EMU_PER_PIXEL = 9525
EMU_PER_TWIP = 635
TWIPS_PER_INCH = 1440
TWIPS_PER_POINT = 20
POINTS_PER_INCH = 72
PIXELS_PER_INCH = 96
PCT_PER_PERCENT = 50  # w:type="pct" widths are fiftieths of a percent

# Full content width of a Letter page with 1in margins (6.5in).
DEFAULT_CONTENT_WIDTH_EMU = 5943600

_POINTS_PER_UNIT = {
    "px": 0.75,
    "pt": 1.0,
    "pc": 12.0,
    "in": 72.0,
    "cm": 72.0 / 2.54,
    "mm": 72.0 / 25.4,
    "em": 12.0,
    "rem": 12.0,
}

_TARGET_PER_POINT = {
    "pt": 1.0,
    "px": 1.0 / 0.75,
    "half_points": 2.0,
    "twips": float(TWIPS_PER_POINT),
    "emu": float(EMU_PER_POINT),
}

_LENGTH_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))\s*([a-zA-Z%]*)\s*$")

Number = Union[int, float]


# ---------------------------------------------------------------------------
# Lengths
# ---------------------------------------------------------------------------

def parse_length(value: object) -> Optional[tuple[float, str]]:
    """Split a CSS length such as ``"12.5px"`` into ``(12.5, "px")``.

    The unit is ``""`` when absent.  Returns ``None`` for anything that is
    not a single number with an optional unit suffix.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return float(value), ""
    m = _LENGTH_RE.match(str(value))
    if not m:
        return None
    return float(m.group(1)), m.group(2).lower()


def convert_length(
    value: Number,
    unit: str,
    target: str,
    *,
    default_unit: str = "px",
) -> float:
    """Convert *value* expressed in *unit* into the *target* unit family.

    Missing or unknown units (including ``%``, which needs a reference
    length) are read as *default_unit*.

    Raises:
        ValueError: If *target* is not a known unit family.
    """
    if target not in _TARGET_PER_POINT:
        raise ValueError(
            f"Unknown target unit {target!r}. Choose from: {', '.join(_TARGET_PER_POINT)}"
        )
    factor = _POINTS_PER_UNIT.get(unit)
    if factor is None:
        factor = _POINTS_PER_UNIT.get(default_unit, _POINTS_PER_UNIT["px"])
    return float(value) * factor * _TARGET_PER_POINT[target]


def length_to(
    value: object,
    target: str,
    *,
    default_unit: str = "px",
    percent_base: Optional[float] = None,
) -> Optional[float]:
    """Parse and convert a CSS length string in one step.

    Percentages are resolved against *percent_base* (already expressed in
    the *target* family); without a base they yield ``None``.
    """
    parsed = parse_length(value)
    if parsed is None:
        return None
    number, unit = parsed
    if unit == "%":
        if percent_base is None:
            return None
        return number / 100.0 * percent_base
    return convert_length(number, unit, target, default_unit=default_unit)


def to_half_points(value: object, default_unit: str = "pt") -> Optional[int]:
    """Font size in half-points.  Unitless sizes are read as points."""
    result = length_to(value, "half_points", default_unit=default_unit)
    return None if result is None else int(round(result))


def to_twips(value: object, default_unit: str = "px") -> Optional[int]:
    result = length_to(value, "twips", default_unit=default_unit)
    return None if result is None else int(round(result))


def to_emu(
    value: object,
    default_unit: str = "px",
    percent_base: Optional[float] = None,
) -> Optional[int]:
    result = length_to(
        value, "emu", default_unit=default_unit, percent_base=percent_base
    )
    return None if result is None else int(round(result))


def to_points(
    value: object,
    default_unit: str = "px",
    percent_base: Optional[float] = None,
) -> Optional[float]:
    return length_to(
        value, "pt", default_unit=default_unit, percent_base=percent_base
    )


def parse_percentage(value: object) -> Optional[float]:
    """Return the number in ``"45%"`` or ``None`` if *value* is not a percentage."""
    parsed = parse_length(value)
    if parsed is None or parsed[1] != "%":
        return None
    return parsed[0]


def percent_to_pct(percent: Number) -> int:
    """Percentage to the fiftieths-of-a-percent used by ``w:type="pct"``."""
    return int(round(float(percent) * PCT_PER_PERCENT))


def inches_to_twips(inches: Number) -> int:
    return int(round(float(inches) * TWIPS_PER_INCH))


def twips_to_emu(twips: Number) -> int:
    return int(round(float(twips) * EMU_PER_TWIP))


def twips_to_points(twips: Number) -> float:
    return float(twips) / TWIPS_PER_POINT


def emu_to_points(emu: Number) -> float:
    return float(emu) / EMU_PER_POINT


# ---------------------------------------------------------------------------
# Colours
# ---------------------------------------------------------------------------

FALLBACK_COLOR = "000000"

NAMED_COLORS = {
    "black": "000000",
    "white": "FFFFFF",
    "red": "FF0000",
    "green": "008000",
    "blue": "0000FF",
    "yellow": "FFFF00",
    "orange": "FFA500",
    "purple": "800080",
    "gray": "808080",
    "grey": "808080",
    "silver": "C0C0C0",
    "maroon": "800000",
    "navy": "000080",
    "teal": "008080",
    "olive": "808000",
    "lime": "00FF00",
    "aqua": "00FFFF",
    "fuchsia": "FF00FF",
}

_HEX_RE = re.compile(r"^#([0-9a-fA-F]+)$")


def parse_color(value: Optional[str]) -> str:
    """Normalise a CSS colour to ``RRGGBB`` (upper case, no ``#``).

    Hex forms with 3, 4, 6 or 8 digits are accepted (alpha is dropped), as
    are the names in :data:`NAMED_COLORS`.  Every other notation, including
    ``rgb()`` and ``hsl()``, becomes black.
    """
    if not value:
        return FALLBACK_COLOR
    text = value.strip().lower()
    if text in NAMED_COLORS:
        return NAMED_COLORS[text]
    m = _HEX_RE.match(text)
    if not m:
        return FALLBACK_COLOR
    digits = m.group(1)
    if len(digits) in (3, 4):
        return "".join(ch * 2 for ch in digits[:3]).upper()
    if len(digits) in (6, 8):
        return digits[:6].upper()
    return FALLBACK_COLOR


def is_color_token(value: str) -> bool:
    """True for tokens :func:`parse_color` understands without falling back."""
    text = value.strip().lower()
    if text in NAMED_COLORS:
        return True
    m = _HEX_RE.match(text)
    return bool(m) and len(m.group(1)) in (3, 4, 6, 8)


# ---------------------------------------------------------------------------
# Gradients
# ---------------------------------------------------------------------------

# CSS angle convention: 0deg points to the top, angles grow clockwise.
DIRECTION_ANGLES = {
    "to top": 0.0,
    "to top right": 45.0,
    "to right top": 45.0,
    "to right": 90.0,
    "to bottom right": 135.0,
    "to right bottom": 135.0,
    "to bottom": 180.0,
    "to bottom left": 225.0,
    "to left bottom": 225.0,
    "to left": 270.0,
    "to top left": 315.0,
    "to left top": 315.0,
}

_GRADIENT_RE = re.compile(r"linear-gradient\s*\((.*)\)", re.IGNORECASE | re.DOTALL)
_ANGLE_RE = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+))\s*(deg|turn|rad|grad)$")


@dataclass(frozen=True)
class Gradient:
    """A parsed linear gradient: CSS angle plus ordered stop colours."""

    angle: float
    colors: tuple[str, ...]

    @property
    def start_color(self) -> str:
        return self.colors[0]

    @property
    def end_color(self) -> str:
        return self.colors[-1]


def _split_arguments(text: str) -> list[str]:
    """Split on commas that are not nested inside parentheses."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    parts.append("".join(current).strip())
    return [p for p in parts if p]


def _parse_angle(text: str) -> Optional[float]:
    m = _ANGLE_RE.match(text)
    if not m:
        return None
    number, unit = float(m.group(1)), m.group(2)
    if unit == "turn":
        number *= 360.0
    elif unit == "rad":
        number = math.degrees(number)
    elif unit == "grad":
        number *= 0.9
    return number % 360.0


def parse_gradient(value: Optional[str]) -> Optional[Gradient]:
    """Parse a ``linear-gradient(...)`` declaration.

    Returns ``None`` when *value* holds no linear gradient or fewer than two
    colour stops; the caller decides on a solid fallback.
    """
    if not value:
        return None
    m = _GRADIENT_RE.search(value)
    if not m:
        return None
    args = _split_arguments(m.group(1))
    if not args:
        return None

    angle = DIRECTION_ANGLES["to bottom"]
    head = " ".join(args[0].lower().split())
    if head.startswith("to "):
        if head not in DIRECTION_ANGLES:
            return None
        angle = DIRECTION_ANGLES[head]
        args = args[1:]
    else:
        explicit = _parse_angle(head)
        if explicit is not None:
            angle = explicit
            args = args[1:]

    colors = tuple(parse_color(stop.split()[0]) for stop in args)
    if len(colors) < 2:
        return None
    return Gradient(angle=angle, colors=colors)
