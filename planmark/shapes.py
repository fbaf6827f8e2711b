"""
Annotation document model.

A page's annotations are a list of layers, each holding an ordered list of
shapes (last drawn is topmost). The ``to_dict``/``from_dict`` pair defines the
JSON blob persisted per project page.
"""
import copy
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class InvalidShapeError(ValueError):
    """Raised when stored or submitted annotation data cannot be parsed."""


class ShapeType(Enum):
    RECT = "rect"
    CIRCLE = "circle"
    LINE = "line"
    ARROW = "arrow"
    FREEHAND = "freehand"
    TEXT = "text"
    MEASUREMENT = "measurement"
    ANGLE = "angle"


class LayerType(Enum):
    PDF = "pdf"
    ANNOTATION = "annotation"
    MEASUREMENT = "measurement"


class LineStyle(Enum):
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"

    @property
    def dash(self) -> List[int]:
        return {"dashed": [10, 5], "dotted": [2, 4]}.get(self.value, [])


class MeasurementUnit(Enum):
    MM = "mm"
    CM = "cm"
    FT = "ft"


PDF_LAYER_ID = "pdf-background"
ANNOTATION_LAYER_ID = "annotations"
MEASUREMENT_LAYER_ID = "measurements"
TRANSPARENT = "transparent"

# optional attributes, python name -> wire key
_OPTIONAL_KEYS = {
    "width": "width",
    "height": "height",
    "radius": "radius",
    "points": "points",
    "text": "text",
    "font_size": "fontSize",
    "rotation": "rotation",
    "scale_x": "scaleX",
    "scale_y": "scaleY",
    "measurement_value": "measurementValue",
    "measurement_unit": "measurementUnit",
    "angle_value": "angleValue",
}


def new_shape_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"shape-{int(time.time() * 1000)}-{suffix}"


def _enum(enum_cls, value, what):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidShapeError(f"unknown {what}: {value!r}") from None


def _number(data, key, default=None):
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidShapeError(f"{key} must be a number, got {value!r}")
    return float(value)


def _string(data, key, default=None):
    value = data.get(key, default)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidShapeError(f"{key} must be a string, got {value!r}")
    return value


@dataclass
class Shape:
    """A single vector primitive in document (page image pixel) space."""
    id: str
    type: ShapeType
    x: float = 0.0
    y: float = 0.0
    stroke_color: str = "#3b82f6"
    fill_color: str = TRANSPARENT
    stroke_width: float = 2.0
    opacity: float = 1.0
    line_style: LineStyle = LineStyle.SOLID
    visible: bool = True
    locked: bool = False
    name: str = ""

    width: Optional[float] = None
    height: Optional[float] = None
    radius: Optional[float] = None
    points: Optional[List[float]] = None
    text: Optional[str] = None
    font_size: Optional[float] = None
    rotation: Optional[float] = None
    scale_x: Optional[float] = None
    scale_y: Optional[float] = None
    measurement_value: Optional[float] = None
    measurement_unit: Optional[MeasurementUnit] = None
    angle_value: Optional[float] = None

    @property
    def has_fill(self) -> bool:
        return bool(self.fill_color) and self.fill_color != TRANSPARENT

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "x": self.x,
            "y": self.y,
            "strokeColor": self.stroke_color,
            "fillColor": self.fill_color,
            "strokeWidth": self.stroke_width,
            "opacity": self.opacity,
            "lineStyle": self.line_style.value,
            "visible": self.visible,
            "locked": self.locked,
            "name": self.name,
        }
        for attr, key in _OPTIONAL_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            data[key] = value
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Shape":
        if not isinstance(data, dict):
            raise InvalidShapeError("shape must be an object")
        if not data.get("id"):
            raise InvalidShapeError("shape is missing an id")

        points = data.get("points")
        if points is not None:
            if not isinstance(points, list) or len(points) % 2:
                raise InvalidShapeError("points must be a flat list of x, y pairs")
            if any(isinstance(p, bool) or not isinstance(p, (int, float)) for p in points):
                raise InvalidShapeError("points must be numbers")
            points = [float(p) for p in points]

        unit = data.get("measurementUnit")
        text = data.get("text")
        return Shape(
            id=str(data["id"]),
            type=_enum(ShapeType, data.get("type"), "shape type"),
            x=_number(data, "x", 0.0),
            y=_number(data, "y", 0.0),
            stroke_color=_string(data, "strokeColor") or "#000000",
            fill_color=_string(data, "fillColor") or TRANSPARENT,
            stroke_width=_number(data, "strokeWidth", 2.0),
            opacity=_number(data, "opacity", 1.0),
            line_style=_enum(LineStyle, data.get("lineStyle", "solid"), "line style"),
            visible=bool(data.get("visible", True)),
            locked=bool(data.get("locked", False)),
            name=str(data.get("name", "")),
            width=_number(data, "width"),
            height=_number(data, "height"),
            radius=_number(data, "radius"),
            points=points,
            text=None if text is None else str(text),
            font_size=_number(data, "fontSize"),
            rotation=_number(data, "rotation"),
            scale_x=_number(data, "scaleX"),
            scale_y=_number(data, "scaleY"),
            measurement_value=_number(data, "measurementValue"),
            measurement_unit=None if unit is None else _enum(MeasurementUnit, unit, "measurement unit"),
            angle_value=_number(data, "angleValue"),
        )


@dataclass
class Layer:
    id: str
    name: str
    type: LayerType
    visible: bool = True
    locked: bool = False
    shapes: List[Shape] = field(default_factory=list)

    def find(self, shape_id: str) -> Optional[Shape]:
        return next((s for s in self.shapes if s.id == shape_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "visible": self.visible,
            "locked": self.locked,
            "shapes": [s.to_dict() for s in self.shapes],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Layer":
        if not isinstance(data, dict) or not data.get("id"):
            raise InvalidShapeError("layer must be an object with an id")
        shapes = data.get("shapes", [])
        if not isinstance(shapes, list):
            raise InvalidShapeError("layer shapes must be a list")
        return Layer(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            type=_enum(LayerType, data.get("type"), "layer type"),
            visible=bool(data.get("visible", True)),
            locked=bool(data.get("locked", False)),
            shapes=[Shape.from_dict(s) for s in shapes],
        )


@dataclass
class PageAnnotations:
    page_number: int
    layers: List[Layer]
    scale: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageNumber": self.page_number,
            "layers": layers_to_data(self.layers),
            "scale": self.scale,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PageAnnotations":
        return PageAnnotations(
            page_number=int(data["pageNumber"]),
            layers=layers_from_data(data.get("layers")),
            scale=float(data.get("scale", 1.0)),
        )


def default_layers() -> List[Layer]:
    return [
        Layer(PDF_LAYER_ID, "PDF Background", LayerType.PDF, locked=True),
        Layer(ANNOTATION_LAYER_ID, "Annotations", LayerType.ANNOTATION),
        Layer(MEASUREMENT_LAYER_ID, "Measurements", LayerType.MEASUREMENT),
    ]


def layers_to_data(layers: List[Layer]) -> List[Dict[str, Any]]:
    return [layer.to_dict() for layer in layers]


def layers_from_data(data) -> List[Layer]:
    """Parse a stored page blob; anything that is not a list means "no annotations yet"."""
    if not isinstance(data, list):
        return default_layers()
    return [Layer.from_dict(item) for item in data]


def clone_layers(layers: List[Layer]) -> List[Layer]:
    return copy.deepcopy(layers)
