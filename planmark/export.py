# export.py: flatten annotation layers onto rendered page images (PNG / PDF)

import io
import math
import re
from typing import Iterable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from .geometry import (
    ANGLE_ARC_RADIUS,
    absolute_points,
    angle_label,
    arc_for_angle,
    arrow_head,
    measurement_label,
    normalize_rect,
)
from .shapes import Layer, LayerType, Shape, ShapeType

_NAMED = {"black": (0, 0, 0), "white": (1, 1, 1), "red": (1, 0, 0), "green": (0, 0.5, 0), "blue": (0, 0, 1)}
_RGBA_RE = re.compile(r"rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+)\s*)?\)")


def parse_color(value: Optional[str]) -> Optional[Tuple[float, float, float]]:
    """CSS-ish colour string to a PyMuPDF RGB tuple; None for transparent/empty."""
    if not value or value == "transparent":
        return None
    value = value.strip().lower()
    if value in _NAMED:
        return _NAMED[value]
    if value.startswith("#"):
        h = value[1:]
        if len(h) == 3:
            h = "".join(c * 2 for c in h)
        if len(h) in (6, 8):
            try:
                return tuple(int(h[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
            except ValueError:
                pass
    m = _RGBA_RE.match(value)
    if m:
        return tuple(max(0, min(255, float(c))) / 255.0 for c in m.groups()[:3])
    return (0, 0, 0)


def _pairs(points: Sequence[float]) -> List[fitz.Point]:
    return [fitz.Point(points[i], points[i + 1]) for i in range(0, len(points) - 1, 2)]


def _dashes(shape: Shape) -> Optional[str]:
    dash = shape.line_style.dash
    if shape.type == ShapeType.MEASUREMENT:
        dash = [5, 5]
    return f"[{' '.join(str(d) for d in dash)}] 0" if dash else None


def _draw_shape(page: fitz.Page, shape: Shape) -> None:
    stroke = parse_color(shape.stroke_color) or (0, 0, 0)
    fill = parse_color(shape.fill_color) if shape.type in (ShapeType.RECT, ShapeType.CIRCLE) else None
    opacity = max(0.0, min(1.0, shape.opacity if shape.opacity is not None else 1.0))
    width = shape.stroke_width or 2
    pts = absolute_points(shape)
    t = shape.type

    if t == ShapeType.TEXT:
        if shape.text:
            size = shape.font_size or 16
            page.insert_text(fitz.Point(shape.x, shape.y + size), shape.text, fontsize=size,
                             color=stroke, fill_opacity=opacity, stroke_opacity=opacity)
        return

    draw = page.new_shape()
    if t == ShapeType.RECT:
        draw.draw_rect(fitz.Rect(*normalize_rect(shape.x, shape.y, shape.width or 0, shape.height or 0)))
    elif t == ShapeType.CIRCLE:
        if not shape.radius:
            return
        draw.draw_circle(fitz.Point(shape.x, shape.y), shape.radius)
    elif t in (ShapeType.LINE, ShapeType.FREEHAND, ShapeType.MEASUREMENT):
        if len(pts) < 2:
            return
        if len(pts) == 2:
            pts = pts + [pts[0] + 1, pts[1]]
        draw.draw_polyline(_pairs(pts))
    elif t == ShapeType.ARROW:
        if len(pts) < 4:
            return
        tip = fitz.Point(pts[-2], pts[-1])
        draw.draw_line(fitz.Point(pts[0], pts[1]), tip)
        for barb in arrow_head(pts):
            draw.draw_line(tip, fitz.Point(*barb))
    elif t == ShapeType.ANGLE:
        if len(pts) < 6:
            return
        draw.draw_polyline(_pairs(pts[:6]))
    draw.finish(color=stroke, fill=fill, width=width, dashes=_dashes(shape),
                stroke_opacity=opacity, fill_opacity=opacity, closePath=False)
    draw.commit()

    if t == ShapeType.MEASUREMENT:
        mid = fitz.Point((pts[0] + pts[2]) / 2, (pts[1] + pts[3]) / 2)
        label = measurement_label(pts, shape.measurement_unit)
        page.insert_text(fitz.Point(mid.x - 30, mid.y - 6), label, fontsize=14, fontname="cour",
                         color=stroke, fill_opacity=opacity)
    elif t == ShapeType.ANGLE:
        _draw_angle_badge(page, pts, shape, stroke, opacity)


def _draw_angle_badge(page, pts, shape, stroke, opacity) -> None:
    vx, vy = pts[2], pts[3]
    start, sweep = arc_for_angle(pts)
    if sweep > 0:
        arc = page.new_shape()
        first = fitz.Point(vx + ANGLE_ARC_RADIUS * math.cos(start), vy + ANGLE_ARC_RADIUS * math.sin(start))
        arc.draw_sector(fitz.Point(vx, vy), first, math.degrees(sweep), fullSector=False)
        arc.finish(color=stroke, width=1, stroke_opacity=opacity, closePath=False)
        arc.commit()

    badge = page.new_shape()
    badge.draw_rect(fitz.Rect(vx + 30, vy - 22, vx + 90, vy + 2))
    badge.finish(color=None, fill=(0, 0, 0), fill_opacity=0.75)
    badge.commit()
    page.insert_text(fitz.Point(vx + 35, vy - 4), angle_label(shape.angle_value), fontsize=16,
                     fontname="cobo", color=(1, 1, 1))


def draw_layers(page: fitz.Page, layers: Iterable[Layer]) -> int:
    """Draw every visible shape of the visible annotation layers; returns the count drawn."""
    drawn = 0
    for layer in layers:
        if not layer.visible or layer.type == LayerType.PDF:
            continue
        for shape in layer.shapes:
            if shape.visible:
                _draw_shape(page, shape)
                drawn += 1
    return drawn


def _annotated_document(image_bytes: bytes, layers: Iterable[Layer]) -> fitz.Document:
    pix = fitz.Pixmap(image_bytes)
    doc = fitz.open()
    page = doc.new_page(width=pix.width, height=pix.height)
    page.insert_image(page.rect, stream=image_bytes)
    draw_layers(page, layers)
    return doc


def render_page_pdf(image_bytes: bytes, layers: Iterable[Layer]) -> bytes:
    with _annotated_document(image_bytes, layers) as doc:
        out = io.BytesIO()
        doc.save(out)
        return out.getvalue()


def export_page_png(image_bytes: bytes, layers: Iterable[Layer], scale: float = 2.0) -> bytes:
    with _annotated_document(image_bytes, layers) as doc:
        pix = doc[0].get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return pix.tobytes("png")


def export_project_pdf(pages: Iterable[Tuple[bytes, List[Layer]]]) -> bytes:
    """One PDF with every (page image, layers) pair in order."""
    out_doc = fitz.open()
    with out_doc:
        for image_bytes, layers in pages:
            with _annotated_document(image_bytes, layers) as one:
                out_doc.insert_pdf(one)
        if len(out_doc) == 0:
            raise ValueError("nothing to export")
        out = io.BytesIO()
        out_doc.save(out)
        return out.getvalue()
