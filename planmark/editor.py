"""
Annotation editor session.

Holds everything one open page needs: the active tool and in-progress shape
construction, the layer document with its undo history, the viewport used to
turn pointer (screen) coordinates into document coordinates, text editing
state and the debounced autosave back to the server.

Pointer handlers take screen coordinates; every stored shape is in document
space (pixels of the rendered page image).
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from . import config
from .autosave import AutoSaver
from .client import AnnotationClient, ApiError
from .geometry import (
    Viewport,
    angle_at_vertex,
    angle_label,
    circle_radius,
    distance,
    hit_test,
    measurement_label,
    rect_from_drag,
    should_extend_freehand,
)
from .history import History
from .shapes import (
    ANNOTATION_LAYER_ID,
    MEASUREMENT_LAYER_ID,
    TRANSPARENT,
    InvalidShapeError,
    Layer,
    LayerType,
    LineStyle,
    MeasurementUnit,
    Shape,
    ShapeType,
    clone_layers,
    default_layers,
    new_shape_id,
)

log = logging.getLogger(__name__)

PDF_IMAGE_ID = "pdf-image"
DEFAULT_FONT_SIZE = 16
MIN_SHAPE_EXTENT = 5
MIN_FONT_SIZE = 8


class Tool(Enum):
    SELECT = "select"
    PAN = "pan"
    FREEHAND = "freehand"
    LINE = "line"
    ARROW = "arrow"
    RECT = "rect"
    CIRCLE = "circle"
    TEXT = "text"
    MEASUREMENT = "measurement"
    ANGLE = "angle"
    ERASER = "eraser"


TOOL_SHORTCUTS = {
    "V": Tool.SELECT,
    "H": Tool.PAN,
    "P": Tool.FREEHAND,
    "L": Tool.LINE,
    "A": Tool.ARROW,
    "R": Tool.RECT,
    "C": Tool.CIRCLE,
    "T": Tool.TEXT,
    "M": Tool.MEASUREMENT,
    "G": Tool.ANGLE,
    "E": Tool.ERASER,
}

COLOR_PRESETS = [
    "#ef4444", "#f97316", "#eab308", "#22c55e", "#14b8a6",
    "#3b82f6", "#8b5cf6", "#ec4899", "#ffffff", "#000000",
]

# tools that build a shape from a press-drag-release gesture
_DRAG_SHAPES = {
    Tool.FREEHAND: ShapeType.FREEHAND,
    Tool.LINE: ShapeType.LINE,
    Tool.ARROW: ShapeType.ARROW,
    Tool.RECT: ShapeType.RECT,
    Tool.CIRCLE: ShapeType.CIRCLE,
    Tool.MEASUREMENT: ShapeType.MEASUREMENT,
}


@dataclass
class ToolStyle:
    stroke_color: str = "#3b82f6"
    fill_color: str = TRANSPARENT
    stroke_width: float = 2.0
    opacity: int = 100  # percent; shapes store 0..1
    line_style: LineStyle = LineStyle.SOLID
    measurement_unit: MeasurementUnit = MeasurementUnit.CM


def target_layer_id(shape_type: ShapeType) -> str:
    if shape_type in (ShapeType.MEASUREMENT, ShapeType.ANGLE):
        return MEASUREMENT_LAYER_ID
    return ANNOTATION_LAYER_ID


class EditorSession:
    def __init__(self, project_id: str, client: Optional[AnnotationClient] = None,
                 autosave_delay: float = config.AUTOSAVE_DELAY, total_pages: int = 1,
                 on_status: Optional[Callable[[str], None]] = None):
        self.project_id = project_id
        self.client = client

        self.active_tool = Tool.SELECT
        self.style = ToolStyle()
        self.selected_id: Optional[str] = None

        self.is_drawing = False
        self.current_points: List[float] = []
        self.angle_points: List[float] = []
        self.angle_preview: Optional[Tuple[float, float]] = None

        self.editing_text_id: Optional[str] = None
        self.editing_text_value = ""

        self.viewport = Viewport()
        self.current_page = 1
        self.total_pages = max(1, total_pages)
        self.image_url: Optional[str] = None

        self.layers: List[Layer] = default_layers()
        self.history = History()
        self.history.reset(self.layers)
        self.autosave = AutoSaver(self._save_page, delay=autosave_delay, on_status=on_status)

    # ───────── Persistence ─────────
    def _save_page(self, payload) -> None:
        page_number, layers = payload
        if self.client is None:
            return
        self.client.save_annotations(self.project_id, page_number, layers)

    def _schedule_save(self) -> None:
        page_number = self.current_page
        self.autosave.trigger(lambda: (page_number, clone_layers(self.layers)))

    def open(self, page_number: int = 1) -> None:
        """Fetch page count and image for ``page_number`` and load its annotations."""
        if self.client is not None:
            info = self.client.get_page(self.project_id, page_number)
            self.total_pages = max(1, int(info.get("total_pages") or 1))
            self.image_url = info.get("image_url")
        self.load_page(page_number)

    def load_page(self, page_number: int, layers: Optional[List[Layer]] = None) -> None:
        """Switch to ``page_number``; pending edits of the previous page are saved first."""
        self.autosave.flush()
        self.current_page = max(1, min(self.total_pages, page_number))

        if layers is None and self.client is not None:
            try:
                layers = self.client.get_annotations(self.project_id, self.current_page)
            except (ApiError, requests.RequestException, InvalidShapeError) as e:
                log.warning("Failed to load annotations for page %s: %s", self.current_page, e)
                layers = None
        self.layers = clone_layers(layers) if layers else default_layers()
        self.history.reset(self.layers)

        self.selected_id = None
        self._reset_construction()
        self.editing_text_id = None
        self.editing_text_value = ""

    def next_page(self) -> None:
        if self.current_page < self.total_pages:
            self.load_page(self.current_page + 1)

    def previous_page(self) -> None:
        if self.current_page > 1:
            self.load_page(self.current_page - 1)

    def save_project(self) -> Optional[Dict[str, Any]]:
        self.autosave.flush()
        if self.client is None:
            return None
        return self.client.save_project(self.project_id)

    def close(self) -> None:
        self.autosave.flush()

    # ───────── Document lookup ─────────
    def layer(self, layer_id: str) -> Optional[Layer]:
        return next((l for l in self.layers if l.id == layer_id), None)

    def find_shape(self, shape_id: str) -> Tuple[Optional[Layer], Optional[Shape]]:
        for layer in self.layers:
            shape = layer.find(shape_id)
            if shape is not None:
                return layer, shape
        return None, None

    def all_shapes(self) -> List[Tuple[str, Shape]]:
        return [(layer.id, s) for layer in self.layers if layer.type != LayerType.PDF for s in layer.shapes]

    def shape_at(self, x: float, y: float) -> Optional[str]:
        """Id of the topmost visible shape at document point (x, y)."""
        tolerance = 4.0 / self.viewport.zoom
        for layer in reversed(self.layers):
            if layer.type == LayerType.PDF or not layer.visible:
                continue
            for shape in reversed(layer.shapes):
                if hit_test(shape, x, y, tolerance):
                    return shape.id
        return None

    def _editable(self, shape_id: str) -> bool:
        layer, shape = self.find_shape(shape_id)
        return shape is not None and not shape.locked and not layer.locked

    # ───────── Mutations ─────────
    def _mutate(self, change: Callable[[List[Layer]], bool], record: bool = True) -> bool:
        # copy-on-write: the autosave thread may be cloning the previous list
        layers = clone_layers(self.layers)
        if not change(layers):
            return False
        self.layers = layers
        if record:
            self.history.push(layers)
        self._schedule_save()
        return True

    def add_shape(self, shape: Shape, layer_id: Optional[str] = None) -> bool:
        layer_id = layer_id or target_layer_id(shape.type)

        def change(layers):
            layer = next((l for l in layers if l.id == layer_id), None)
            if layer is None:
                return False
            layer.shapes.append(shape)
            return True
        return self._mutate(change)

    def update_shape(self, shape_id: str, **changes) -> bool:
        unknown = [k for k in changes if k in ("id", "type") or k not in Shape.__dataclass_fields__]
        if unknown:
            raise AttributeError(f"cannot update shape fields: {', '.join(unknown)}")

        def change(layers):
            for layer in layers:
                shape = layer.find(shape_id)
                if shape is not None:
                    for key, value in changes.items():
                        setattr(shape, key, value)
                    return True
            return False
        return self._mutate(change)

    def delete_shape(self, shape_id: str) -> bool:
        def change(layers):
            for layer in layers:
                shape = layer.find(shape_id)
                if shape is not None:
                    layer.shapes.remove(shape)
                    return True
            return False
        deleted = self._mutate(change)
        self.selected_id = None
        return deleted

    def move_shape(self, shape_id: str, dx: float, dy: float) -> bool:
        """Drag end: translate a shape by (dx, dy) in document space."""
        if not self._editable(shape_id):
            return False
        _, shape = self.find_shape(shape_id)
        if shape.type == ShapeType.ANGLE and shape.points:
            points = [v + (dx if i % 2 == 0 else dy) for i, v in enumerate(shape.points)]
            return self.update_shape(shape_id, x=shape.x + dx, y=shape.y + dy, points=points)
        return self.update_shape(shape_id, x=shape.x + dx, y=shape.y + dy)

    def transform_shape(self, shape_id: str, scale_x: float, scale_y: float,
                        rotation: Optional[float] = None, x: Optional[float] = None,
                        y: Optional[float] = None) -> bool:
        """Transform end: bake the handle scale into the shape's own dimensions."""
        if not self._editable(shape_id):
            return False
        _, shape = self.find_shape(shape_id)
        changes: Dict[str, Any] = {}
        if x is not None:
            changes["x"] = x
        if y is not None:
            changes["y"] = y
        if shape.width is not None:
            changes["width"] = max(MIN_SHAPE_EXTENT, shape.width * scale_x)
        if shape.height is not None:
            changes["height"] = max(MIN_SHAPE_EXTENT, shape.height * scale_y)
        if shape.radius:
            changes["radius"] = max(MIN_SHAPE_EXTENT, shape.radius * max(scale_x, scale_y))
        if shape.font_size:
            changes["font_size"] = max(MIN_FONT_SIZE, shape.font_size * scale_y)
        if rotation is not None:
            changes["rotation"] = rotation
        return self.update_shape(shape_id, **changes)

    def toggle_shape_visibility(self, shape_id: str) -> bool:
        def change(layers):
            for layer in layers:
                shape = layer.find(shape_id)
                if shape is not None:
                    shape.visible = not shape.visible
                    return True
            return False
        return self._mutate(change, record=False)

    def toggle_layer_visibility(self, layer_id: str) -> bool:
        def change(layers):
            layer = next((l for l in layers if l.id == layer_id), None)
            if layer is None:
                return False
            layer.visible = not layer.visible
            return True
        return self._mutate(change, record=False)

    def toggle_layer_lock(self, layer_id: str) -> bool:
        def change(layers):
            layer = next((l for l in layers if l.id == layer_id), None)
            if layer is None or layer.type == LayerType.PDF:
                return False
            layer.locked = not layer.locked
            return True
        return self._mutate(change, record=False)

    def move_shape_in_layer(self, shape_id: str, direction: str) -> bool:
        """Swap with the neighbour above ("up") or below ("down") in paint order."""
        if direction not in ("up", "down"):
            raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")

        def change(layers):
            for layer in layers:
                idx = next((i for i, s in enumerate(layer.shapes) if s.id == shape_id), -1)
                if idx == -1:
                    continue
                target = idx + 1 if direction == "up" else idx - 1
                if not 0 <= target < len(layer.shapes):
                    return False
                layer.shapes[idx], layer.shapes[target] = layer.shapes[target], layer.shapes[idx]
                return True
            return False
        return self._mutate(change)

    def undo(self) -> bool:
        return self._restore(self.history.undo())

    def redo(self) -> bool:
        return self._restore(self.history.redo())

    def _restore(self, snapshot: Optional[List[Layer]]) -> bool:
        if snapshot is None:
            return False
        self.layers = snapshot
        if self.selected_id and self.find_shape(self.selected_id)[1] is None:
            self.selected_id = None
        self._schedule_save()
        return True

    # ───────── Tools and keyboard ─────────
    def set_tool(self, tool) -> None:
        self.active_tool = Tool(tool)
        self._reset_construction()

    def handle_key(self, key: str, ctrl: bool = False, shift: bool = False) -> Optional[str]:
        """Apply a keyboard shortcut; returns the name of the action taken."""
        if self.editing_text_id is not None:
            if key == "Escape":
                self.cancel_text_edit()
                return "cancel-text"
            if key == "Enter" and not shift:
                self.finish_text_edit()
                return "finish-text"
            return None

        if ctrl:
            lowered = key.lower()
            if lowered == "z" and shift or lowered == "y":
                return "redo" if self.redo() else None
            if lowered == "z":
                return "undo" if self.undo() else None
            if lowered == "s":
                self.save_project()
                return "save"
            return None

        tool = TOOL_SHORTCUTS.get(key.upper()) if len(key) == 1 else None
        if tool is not None:
            self.set_tool(tool)
            return f"tool:{tool.value}"
        if key in ("Delete", "Backspace") and self.selected_id:
            if not self._editable(self.selected_id):
                return None
            self.delete_shape(self.selected_id)
            return "delete"
        if key == "Escape":
            self.selected_id = None
            self._reset_construction()
            return "clear"
        return None

    def _reset_construction(self) -> None:
        self.is_drawing = False
        self.current_points = []
        self.angle_points = []
        self.angle_preview = None

    def _base_shape(self, shape_type: ShapeType, **attrs) -> Shape:
        return Shape(
            id=new_shape_id(),
            type=shape_type,
            stroke_color=self.style.stroke_color,
            fill_color=self.style.fill_color,
            stroke_width=self.style.stroke_width,
            opacity=self.style.opacity / 100,
            line_style=self.style.line_style,
            name=f"{shape_type.value} {int(time.time() * 1000)}",
            **attrs,
        )

    def _layer_locked(self, shape_type: ShapeType) -> bool:
        layer = self.layer(target_layer_id(shape_type))
        return layer is None or layer.locked

    # ───────── Pointer events ─────────
    def pointer_down(self, sx: float, sy: float, target_id: Optional[str] = None) -> None:
        if self.editing_text_id is not None:
            self.finish_text_edit()
            return

        x, y = self.viewport.screen_to_document(sx, sy)
        tool = self.active_tool

        if tool in (Tool.SELECT, Tool.PAN, Tool.ERASER):
            if target_id is None and tool != Tool.PAN:
                target_id = self.shape_at(x, y)
            if target_id in (None, PDF_IMAGE_ID) or self.find_shape(target_id)[1] is None:
                if tool != Tool.ERASER:
                    self.selected_id = None
                return
            if tool == Tool.SELECT:
                self.selected_id = target_id
            elif tool == Tool.ERASER and self._editable(target_id):
                self.delete_shape(target_id)
            return

        if tool == Tool.ANGLE:
            if self._layer_locked(ShapeType.ANGLE):
                return
            if len(self.angle_points) < 6:
                self.angle_points += [x, y]
            if len(self.angle_points) == 6:
                self._commit_angle()
            return

        if tool == Tool.TEXT:
            if self._layer_locked(ShapeType.TEXT):
                return
            shape = self._base_shape(ShapeType.TEXT, x=x, y=y, text="", font_size=DEFAULT_FONT_SIZE)
            self.add_shape(shape)
            self.selected_id = shape.id
            self.begin_text_edit(shape.id)
            return

        if self._layer_locked(_DRAG_SHAPES[tool]):
            return
        self.is_drawing = True
        self.current_points = [x, y] if tool == Tool.FREEHAND else [x, y, x, y]

    def pointer_move(self, sx: float, sy: float) -> None:
        x, y = self.viewport.screen_to_document(sx, sy)

        if self.active_tool == Tool.ANGLE and len(self.angle_points) >= 2:
            self.angle_preview = (x, y)
            return
        if not self.is_drawing:
            return

        if self.active_tool == Tool.FREEHAND:
            if should_extend_freehand(self.current_points, x, y):
                self.current_points += [x, y]
        else:
            self.current_points[2:4] = [x, y]

    def pointer_up(self) -> Optional[Shape]:
        points = self.current_points
        if not self.is_drawing or len(points) < 4:
            self._reset_construction()
            return None

        tool = self.active_tool
        shape_type = _DRAG_SHAPES[tool]
        if tool in (Tool.FREEHAND, Tool.LINE, Tool.ARROW):
            shape = self._base_shape(shape_type, points=list(points))
        elif tool == Tool.RECT:
            x, y, w, h = rect_from_drag(points)
            shape = self._base_shape(shape_type, x=x, y=y, width=w, height=h)
        elif tool == Tool.CIRCLE:
            shape = self._base_shape(shape_type, x=points[0], y=points[1], radius=circle_radius(points))
        else:
            shape = self._base_shape(
                shape_type,
                points=list(points),
                measurement_value=distance(*points[:4]),
                measurement_unit=self.style.measurement_unit,
            )

        self.add_shape(shape)
        self._reset_construction()
        return shape

    def _commit_angle(self) -> Shape:
        points = list(self.angle_points)
        shape = self._base_shape(
            ShapeType.ANGLE,
            x=points[2],
            y=points[3],
            points=points,
            angle_value=angle_at_vertex(points),
        )
        self.add_shape(shape)
        self.angle_points = []
        self.angle_preview = None
        return shape

    def drawing_preview(self) -> Optional[Dict[str, Any]]:
        """The shape under construction, for a renderer to draw."""
        if self.active_tool == Tool.ANGLE and self.angle_points:
            points = list(self.angle_points)
            if self.angle_preview is not None:
                points += list(self.angle_preview)
            preview: Dict[str, Any] = {"tool": "angle", "points": points}
            if len(points) >= 6:
                preview["label"] = angle_label(angle_at_vertex(points))
            return preview
        if not self.is_drawing or not self.current_points:
            return None
        preview = {"tool": self.active_tool.value, "points": list(self.current_points)}
        if self.active_tool == Tool.MEASUREMENT and len(self.current_points) >= 4:
            preview["label"] = measurement_label(self.current_points, self.style.measurement_unit)
        return preview

    # ───────── Text editing ─────────
    def begin_text_edit(self, shape_id: str) -> Optional[Tuple[float, float]]:
        """Start editing a text shape; returns the screen position for the input overlay."""
        _, shape = self.find_shape(shape_id)
        if shape is None or shape.type != ShapeType.TEXT:
            return None
        self.editing_text_id = shape_id
        self.editing_text_value = shape.text or ""
        return self.viewport.document_to_screen(shape.x, shape.y)

    def set_text_value(self, value: str) -> None:
        self.editing_text_value = value

    def finish_text_edit(self) -> None:
        if self.editing_text_id and self.editing_text_value.strip():
            self.update_shape(self.editing_text_id, text=self.editing_text_value)
        self.cancel_text_edit()

    def cancel_text_edit(self) -> None:
        self.editing_text_id = None
        self.editing_text_value = ""

    # ───────── Viewport ─────────
    def resize(self, width: float, height: float) -> None:
        self.viewport.resize(width, height)

    def fit_to_screen(self, content_width: float, content_height: float) -> float:
        return self.viewport.fit(content_width, content_height)

    def wheel(self, sx: float, sy: float, delta_y: float) -> float:
        return self.viewport.zoom_at(sx, sy, delta_y)

    def zoom_in(self) -> float:
        return self.viewport.zoom_in()

    def zoom_out(self) -> float:
        return self.viewport.zoom_out()

    def pan_to(self, x: float, y: float) -> None:
        if self.active_tool == Tool.PAN and not self.is_drawing:
            self.viewport.pan_to(x, y)
