# Third-party imports
import pytest

# PlanMark imports
from planmark.shapes import (
    ANNOTATION_LAYER_ID,
    MEASUREMENT_LAYER_ID,
    PDF_LAYER_ID,
    InvalidShapeError,
    Layer,
    LayerType,
    LineStyle,
    MeasurementUnit,
    PageAnnotations,
    Shape,
    ShapeType,
    clone_layers,
    default_layers,
    layers_from_data,
    layers_to_data,
    new_shape_id,
)


@pytest.fixture
def measurement_dict():
    return {
        "id": "shape-1",
        "type": "measurement",
        "x": 0,
        "y": 0,
        "points": [0, 0, 30, 40],
        "strokeColor": "#ef4444",
        "fillColor": "transparent",
        "strokeWidth": 2,
        "opacity": 0.5,
        "lineStyle": "dashed",
        "visible": True,
        "locked": False,
        "name": "measurement 1",
        "measurementValue": 50,
        "measurementUnit": "ft",
    }


class TestShape:
    def test_from_dict_reads_wire_keys(self, measurement_dict):
        """camelCase keys map onto the dataclass fields"""
        shape = Shape.from_dict(measurement_dict)
        assert shape.type is ShapeType.MEASUREMENT
        assert shape.points == [0.0, 0.0, 30.0, 40.0]
        assert shape.stroke_color == "#ef4444"
        assert shape.line_style is LineStyle.DASHED
        assert shape.measurement_unit is MeasurementUnit.FT
        assert shape.measurement_value == 50.0
        assert shape.radius is None

    def test_to_dict_omits_unset_optionals(self):
        shape = Shape(id="s", type=ShapeType.RECT, x=1, y=2, width=10, height=-5)
        data = shape.to_dict()
        assert data["type"] == "rect"
        assert data["width"] == 10 and data["height"] == -5
        assert "radius" not in data
        assert "points" not in data
        assert data["lineStyle"] == "solid"

    def test_dict_form_is_stable(self, measurement_dict):
        """Parsing then serialising keeps every supplied key"""
        data = Shape.from_dict(measurement_dict).to_dict()
        assert set(measurement_dict) <= set(data)
        assert data["measurementUnit"] == "ft"

    @pytest.mark.parametrize("key,value", [
        ("type", "hexagon"),
        ("lineStyle", "wavy"),
        ("measurementUnit", "parsec"),
        ("points", [1, 2, 3]),
        ("points", [1, "2"]),
        ("x", "left"),
        ("strokeColor", 5),
        ("fillColor", ["#ffffff"]),
    ])
    def test_rejects_bad_values(self, measurement_dict, key, value):
        measurement_dict[key] = value
        with pytest.raises(InvalidShapeError):
            Shape.from_dict(measurement_dict)

    def test_rejects_missing_id(self, measurement_dict):
        del measurement_dict["id"]
        with pytest.raises(InvalidShapeError):
            Shape.from_dict(measurement_dict)

    def test_invalid_shape_error_is_value_error(self):
        assert issubclass(InvalidShapeError, ValueError)

    def test_has_fill(self):
        assert not Shape(id="a", type=ShapeType.RECT).has_fill
        assert Shape(id="a", type=ShapeType.RECT, fill_color="#000000").has_fill

    def test_line_style_dash_patterns(self):
        assert LineStyle.SOLID.dash == []
        assert LineStyle.DASHED.dash == [10, 5]
        assert LineStyle.DOTTED.dash == [2, 4]


class TestLayers:
    def test_default_layers(self):
        layers = default_layers()
        assert [l.id for l in layers] == [PDF_LAYER_ID, ANNOTATION_LAYER_ID, MEASUREMENT_LAYER_ID]
        assert [l.type for l in layers] == [LayerType.PDF, LayerType.ANNOTATION, LayerType.MEASUREMENT]
        assert layers[0].locked and not layers[1].locked and not layers[2].locked
        assert all(l.visible and l.shapes == [] for l in layers)

    @pytest.mark.parametrize("blob", [None, {}, "nope", 3])
    def test_missing_blob_gives_default_layers(self, blob):
        assert [l.id for l in layers_from_data(blob)] == [PDF_LAYER_ID, ANNOTATION_LAYER_ID, MEASUREMENT_LAYER_ID]

    def test_layers_from_data(self, measurement_dict):
        data = layers_to_data(default_layers())
        data[2]["shapes"].append(measurement_dict)
        layers = layers_from_data(data)
        assert layers[2].find("shape-1").measurement_unit is MeasurementUnit.FT
        assert layers[1].find("shape-1") is None

    def test_bad_layer_type(self):
        with pytest.raises(InvalidShapeError):
            Layer.from_dict({"id": "x", "type": "overlay", "shapes": []})

    def test_clone_is_independent(self):
        layers = default_layers()
        layers[1].shapes.append(Shape(id="a", type=ShapeType.LINE, points=[0, 0, 1, 1]))
        copy = clone_layers(layers)
        copy[1].shapes[0].points.append(5)
        copy[1].shapes.append(Shape(id="b", type=ShapeType.TEXT))
        assert layers[1].shapes[0].points == [0, 0, 1, 1]
        assert len(layers[1].shapes) == 1


class TestPageAnnotations:
    def test_page_annotations_dict(self):
        page = PageAnnotations(page_number=3, layers=default_layers(), scale=1.5)
        again = PageAnnotations.from_dict(page.to_dict())
        assert again.page_number == 3
        assert again.scale == 1.5
        assert len(again.layers) == 3


def test_new_shape_id_format():
    ids = {new_shape_id() for _ in range(50)}
    assert len(ids) == 50
    prefix, millis, suffix = next(iter(ids)).split("-")
    assert prefix == "shape" and millis.isdigit() and len(suffix) == 9
