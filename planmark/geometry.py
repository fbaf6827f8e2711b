# geometry.py: vector math for shape construction plus the screen <-> document viewport

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .shapes import Shape, ShapeType

MIN_ZOOM, MAX_ZOOM = 0.1, 5.0
ZOOM_STEP = 0.1
FIT_MARGIN = 0.95
FREEHAND_MIN_STEP = 3.0
ARROW_HEAD_LENGTH = 15.0
ANGLE_ARC_RADIUS = 25.0

Bounds = Tuple[float, float, float, float]  # x0, y0, x1, y1

# shapes whose points are relative to (x, y); angle points are absolute and x/y mark the vertex
_OFFSET_POINT_TYPES = {ShapeType.LINE, ShapeType.ARROW, ShapeType.FREEHAND, ShapeType.MEASUREMENT}


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def angle_at_vertex(points: Sequence[float]) -> float:
    """Angle in degrees between the arms p2->p1 and p2->p3 of ``[x1, y1, x2, y2, x3, y3]``."""
    x1, y1, x2, y2, x3, y3 = points[:6]
    v1x, v1y = x1 - x2, y1 - y2
    v2x, v2y = x3 - x2, y3 - y2
    mag1, mag2 = math.hypot(v1x, v1y), math.hypot(v2x, v2y)
    if mag1 == 0 or mag2 == 0:
        return 0.0
    cos_angle = (v1x * v2x + v1y * v2y) / (mag1 * mag2)
    return math.degrees(math.acos(max(-1.0, min(1.0, cos_angle))))


def arc_for_angle(points: Sequence[float]) -> Tuple[float, float]:
    """(start, sweep) in radians of the arc drawn at the vertex; sweep never exceeds pi."""
    x1, y1, x2, y2, x3, y3 = points[:6]
    a1 = math.atan2(y1 - y2, x1 - x2)
    a2 = math.atan2(y3 - y2, x3 - x2)
    sweep = abs(a2 - a1)
    if sweep > math.pi:
        sweep = 2 * math.pi - sweep
    return min(a1, a2), sweep


def rect_from_drag(points: Sequence[float]) -> Tuple[float, float, float, float]:
    x0, y0, x1, y1 = points[:4]
    return x0, y0, x1 - x0, y1 - y0


def normalize_rect(x: float, y: float, w: float, h: float) -> Bounds:
    return min(x, x + w), min(y, y + h), max(x, x + w), max(y, y + h)


def circle_radius(points: Sequence[float]) -> float:
    return distance(*points[:4])


def arrow_head(points: Sequence[float], length: float = ARROW_HEAD_LENGTH):
    """The two barb end points of an arrow pointing at (x2, y2)."""
    x1, y1, x2, y2 = points[-4:]
    a = math.atan2(y2 - y1, x2 - x1)
    left = (x2 - length * math.cos(a - math.pi / 6), y2 - length * math.sin(a - math.pi / 6))
    right = (x2 - length * math.cos(a + math.pi / 6), y2 - length * math.sin(a + math.pi / 6))
    return left, right


def measurement_display(points: Sequence[float]) -> float:
    # page images are rendered at a fixed dpi, ten image pixels per displayed unit
    return distance(*points[:4]) / 10


def measurement_label(points: Sequence[float], unit) -> str:
    unit = getattr(unit, "value", unit) or "cm"
    return f"{measurement_display(points):.1f} {unit}"


def angle_label(value: Optional[float]) -> str:
    return f"{(value or 0.0):.1f}°"


def should_extend_freehand(points: Sequence[float], x: float, y: float,
                           min_step: float = FREEHAND_MIN_STEP) -> bool:
    if len(points) < 2:
        return True
    return distance(points[-2], points[-1], x, y) > min_step


def absolute_points(shape: Shape) -> List[float]:
    pts = list(shape.points or [])
    if shape.type in _OFFSET_POINT_TYPES and (shape.x or shape.y):
        pts = [v + (shape.x if i % 2 == 0 else shape.y) for i, v in enumerate(pts)]
    return pts


def text_extent(shape: Shape) -> Tuple[float, float]:
    size = shape.font_size or 16
    lines = (shape.text or "Text").split("\n")
    return max(len(line) for line in lines) * size * 0.6, len(lines) * size * 1.2


def shape_bounds(shape: Shape) -> Bounds:
    if shape.type == ShapeType.RECT:
        return normalize_rect(shape.x, shape.y, shape.width or 0, shape.height or 0)
    if shape.type == ShapeType.CIRCLE:
        r = shape.radius or 0
        return shape.x - r, shape.y - r, shape.x + r, shape.y + r
    if shape.type == ShapeType.TEXT:
        w, h = text_extent(shape)
        return shape.x, shape.y, shape.x + w, shape.y + h
    pts = absolute_points(shape)
    if not pts:
        return shape.x, shape.y, shape.x, shape.y
    xs, ys = pts[0::2], pts[1::2]
    return min(xs), min(ys), max(xs), max(ys)


def _segment_distance(px, py, x1, y1, x2, y2) -> float:
    dx, dy = x2 - x1, y2 - y1
    seg_len2 = dx * dx + dy * dy
    if seg_len2 == 0:
        return distance(px, py, x1, y1)
    t = max(0.0, min(1.0, ((px - x1) * dx + (py - y1) * dy) / seg_len2))
    return distance(px, py, x1 + t * dx, y1 + t * dy)


def hit_test(shape: Shape, x: float, y: float, tolerance: float = 4.0) -> bool:
    """Whether the document point (x, y) lands on ``shape``."""
    if not shape.visible:
        return False
    reach = tolerance + (shape.stroke_width or 0) / 2
    if shape.type == ShapeType.CIRCLE:
        d = distance(shape.x, shape.y, x, y)
        r = shape.radius or 0
        return d <= r + reach if shape.has_fill else abs(d - r) <= reach
    if shape.type in (ShapeType.RECT, ShapeType.TEXT):
        x0, y0, x1, y1 = shape_bounds(shape)
        inside = x0 - reach <= x <= x1 + reach and y0 - reach <= y <= y1 + reach
        if not inside or shape.type == ShapeType.TEXT or shape.has_fill:
            return inside
        return min(abs(x - x0), abs(x - x1), abs(y - y0), abs(y - y1)) <= reach
    pts = absolute_points(shape)
    if len(pts) == 2:
        return distance(pts[0], pts[1], x, y) <= reach
    return any(
        _segment_distance(x, y, pts[i], pts[i + 1], pts[i + 2], pts[i + 3]) <= reach
        for i in range(0, len(pts) - 2, 2)
    )


@dataclass
class Viewport:
    """Stage transform: ``screen = document * zoom + position``."""
    width: float = 800.0
    height: float = 600.0
    zoom: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def screen_to_document(self, sx: float, sy: float) -> Tuple[float, float]:
        return (sx - self.x) / self.zoom, (sy - self.y) / self.zoom

    def document_to_screen(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.zoom + self.x, y * self.zoom + self.y

    def zoom_at(self, sx: float, sy: float, delta_y: float) -> float:
        """Wheel zoom that keeps the document point under the pointer in place."""
        doc_x, doc_y = self.screen_to_document(sx, sy)
        factor = 0.9 if delta_y > 0 else 1.1
        self.zoom = _clamp_zoom(self.zoom * factor)
        self.x = sx - doc_x * self.zoom
        self.y = sy - doc_y * self.zoom
        return self.zoom

    def zoom_in(self) -> float:
        self.zoom = _clamp_zoom(self.zoom + ZOOM_STEP)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = _clamp_zoom(self.zoom - ZOOM_STEP)
        return self.zoom

    def fit(self, content_width: float, content_height: float) -> float:
        if content_width <= 0 or content_height <= 0:
            return self.zoom
        self.zoom = min(self.width / content_width, self.height / content_height) * FIT_MARGIN
        self.x = (self.width - content_width * self.zoom) / 2
        self.y = (self.height - content_height * self.zoom) / 2
        return self.zoom

    def resize(self, width: float, height: float) -> None:
        self.width, self.height = width, height

    def pan_to(self, x: float, y: float) -> None:
        self.x, self.y = x, y

    @property
    def percent(self) -> int:
        return round(self.zoom * 100)


def _clamp_zoom(z: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, z))
