"""VML shapes: decorated text boxes and the page border overlay.

Decorated boxes are written as ``v:roundrect`` (or ``v:rect`` when square)
inside ``w:pict``, with the box content placed in ``w:txbxContent``.
Sizes inside VML ``style`` attributes are in points.
"""

from __future__ import annotations

from typing import Optional, Sequence
from xml.etree.ElementTree import Element, SubElement

from html2docx.fragments import Fragment, FragmentKind, empty_paragraph, qn
from html2docx.options import ConversionOptions, PageBorder
from html2docx.style_resolver import Box, StyleRecord
from html2docx.units import (
    DIRECTION_ANGLES,
    EMU_PER_TWIP,
    emu_to_points,
    to_emu,
    twips_to_points,
)

DEFAULT_BOX_PADDING_TWIPS = 100
DEFAULT_LINE_FACTOR = 1.2

# CSS measures gradient angles clockwise from "towards the top"; VML fill
# angles run counter-clockwise with 0 meaning first colour at the top.
VML_DIRECTION_ANGLES = {
    "to bottom": 0,
    "to right": 90,
    "to top": 180,
    "to left": 270,
}

_DASH_STYLES = {"dotted": "dot", "dashed": "dash"}


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def corner_arcsize(radius: float, width: float, height: float) -> float:
    """Corner radius as a fraction of half the shorter side, in [0, 1].

    All three lengths must share one unit.
    """
    half = min(width, height) / 2.0
    if half <= 0 or radius <= 0:
        return 0.0
    return min(radius, half) / half


def vml_gradient_angle(css_angle: float) -> int:
    """Map a CSS gradient angle onto the VML ``v:fill`` angle."""
    for keyword, vml in VML_DIRECTION_ANGLES.items():
        if DIRECTION_ANGLES[keyword] == css_angle % 360:
            return vml
    return int(round(180 - css_angle)) % 360


def _fmt(value: float) -> str:
    """Compact point value for VML style strings."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def _padding_points(padding: Optional[Box]) -> tuple[float, float, float, float]:
    """(left, top, right, bottom) insets in points."""
    default = DEFAULT_BOX_PADDING_TWIPS
    if padding is None:
        sides = (default, default, default, default)
    else:
        sides = tuple(
            side if side is not None else 0
            for side in (padding.left, padding.top, padding.right, padding.bottom)
        )
    return tuple(twips_to_points(max(side, 0)) for side in sides)  # type: ignore[return-value]


def estimate_height_points(
    content: Sequence[Fragment],
    font_size_pt: float,
    padding_top: float,
    padding_bottom: float,
) -> float:
    """Rough box height; Word grows the shape to fit its text anyway."""
    blocks = sum(1 for fragment in content if fragment.is_block) or 1
    return blocks * font_size_pt * DEFAULT_LINE_FACTOR + padding_top + padding_bottom


# ---------------------------------------------------------------------------
# Decorated text box
# ---------------------------------------------------------------------------

def text_box(
    content: Sequence[Fragment],
    style: StyleRecord,
    *,
    shape_id: int,
    options: ConversionOptions,
) -> Fragment:
    """Wrap *content* in a filled VML shape.

    Args:
        content: Block fragments placed inside the box.
        style: The box's resolved style (background/gradient, border,
            padding, width, height, corner radius, outer spacing).
        shape_id: Document-unique shape number.
        options: Page geometry and default font size.

    Returns:
        A SHAPE fragment: a paragraph holding the ``w:pict``.
    """
    content_width = options.content_width_emu
    width_emu = to_emu(style.width, percent_base=content_width) if style.width else None
    if not width_emu or width_emu <= 0:
        width_emu = content_width
    width_pt = emu_to_points(width_emu)

    pad_left, pad_top, pad_right, pad_bottom = _padding_points(style.padding)
    height_base = options.content_height_twips * EMU_PER_TWIP
    height_emu = to_emu(style.height, percent_base=height_base) if style.height else None
    if height_emu and height_emu > 0:
        height_pt = emu_to_points(height_emu)
    else:
        font_pt = (style.font_size / 2.0) if style.font_size else options.font_size
        height_pt = estimate_height_points(content, font_pt, pad_top, pad_bottom)

    arcsize = corner_arcsize((style.border_radius or 0.0) * 0.75, width_pt, height_pt)

    p = Element(qn("w:p"))
    ppr = SubElement(p, qn("w:pPr"))
    spacing = SubElement(ppr, qn("w:spacing"))
    spacing.set(qn("w:before"), str(style.spacing_before or 0))
    spacing.set(qn("w:after"), str(style.spacing_after or 0))
    r = SubElement(p, qn("w:r"))
    pict = SubElement(r, qn("w:pict"))

    shape = SubElement(pict, qn("v:roundrect" if arcsize > 0 else "v:rect"))
    shape.set("id", f"_x0000_s{shape_id}")
    shape.set(
        "style",
        f"width:{_fmt(width_pt)}pt;height:{_fmt(height_pt)}pt;"
        "mso-wrap-style:square;v-text-anchor:top",
    )
    if arcsize > 0:
        shape.set("arcsize", f"{arcsize:.4f}")

    gradient = style.gradient
    fill_color = gradient.start_color if gradient is not None else (style.background or "FFFFFF")
    shape.set("fillcolor", f"#{fill_color}")

    border = style.border
    if border is not None and border.visible:
        shape.set("strokecolor", f"#{border.color}")
        shape.set("strokeweight", f"{_fmt(border.width)}pt")
    else:
        shape.set("stroked", "f")

    if gradient is not None:
        fill = SubElement(shape, qn("v:fill"))
        fill.set("type", "gradient")
        fill.set("color2", f"#{gradient.end_color}")
        fill.set("angle", str(vml_gradient_angle(gradient.angle)))
    if border is not None and border.visible and border.style in _DASH_STYLES:
        SubElement(shape, qn("v:stroke")).set("dashstyle", _DASH_STYLES[border.style])

    textbox = SubElement(shape, qn("v:textbox"))
    textbox.set("style", "mso-fit-shape-to-text:t")
    textbox.set(
        "inset",
        ",".join(f"{_fmt(v)}pt" for v in (pad_left, pad_top, pad_right, pad_bottom)),
    )
    txbx = SubElement(textbox, qn("w:txbxContent"))
    blocks = [fragment for fragment in content if fragment.is_block] or [empty_paragraph()]
    for fragment in blocks:
        txbx.append(fragment.element())
    if blocks[-1].kind is FragmentKind.TABLE:
        txbx.append(empty_paragraph().element())

    return Fragment(FragmentKind.SHAPE, p)


# ---------------------------------------------------------------------------
# Page border overlay
# ---------------------------------------------------------------------------

def page_border_shape(
    border: PageBorder,
    options: ConversionOptions,
    *,
    shape_id: int,
) -> Fragment:
    """An absolutely positioned rectangle framing the text area.

    The frame sits *margin_offset* outside the margins (half the left
    margin by default) and is anchored to the page, so placing it in the
    header repeats it on every page.
    """
    margin_left = options.margin_points("left")
    margin_right = options.margin_points("right")
    margin_top = options.margin_points("top")
    margin_bottom = options.margin_points("bottom")
    page_width = twips_to_points(options.page_width_twips)
    page_height = twips_to_points(options.page_height_twips)

    if border.margin_offset is not None:
        offset = border.margin_offset * 72.0
    else:
        offset = margin_left / 2.0

    left = max(margin_left - offset, 0.0)
    top = max(margin_top - offset, 0.0)
    width = max(page_width - margin_left - margin_right + 2 * offset, 1.0)
    height = max(page_height - margin_top - margin_bottom + 2 * offset, 1.0)

    weight = border.size
    if border.style == "thick":
        weight = max(weight * 1.5, weight + 2)

    arcsize = corner_arcsize(border.radius, width, height)

    p = Element(qn("w:p"))
    r = SubElement(p, qn("w:r"))
    pict = SubElement(r, qn("w:pict"))
    shape = SubElement(pict, qn("v:roundrect" if arcsize > 0 else "v:rect"))
    shape.set("id", f"_x0000_s{shape_id}")
    shape.set(
        "style",
        f"position:absolute;margin-left:{_fmt(left)}pt;margin-top:{_fmt(top)}pt;"
        f"width:{_fmt(width)}pt;height:{_fmt(height)}pt;z-index:-251657216;"
        "mso-position-horizontal-relative:page;mso-position-vertical-relative:page",
    )
    if arcsize > 0:
        shape.set("arcsize", f"{arcsize:.4f}")
    shape.set("filled", "f")
    shape.set("strokecolor", f"#{border.color}")
    shape.set("strokeweight", f"{_fmt(weight)}pt")

    stroke = SubElement(shape, qn("v:stroke"))
    if border.style in _DASH_STYLES:
        stroke.set("dashstyle", _DASH_STYLES[border.style])
    elif border.style == "double":
        stroke.set("linestyle", "thickThin")
    stroke.set("insetpen", "t")

    wrap = SubElement(shape, qn("w10:wrap"))
    wrap.set("anchorx", "page")
    wrap.set("anchory", "page")

    return Fragment(FragmentKind.SHAPE, p)
