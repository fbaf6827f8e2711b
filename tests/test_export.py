# Third-party imports
import fitz
import pytest

# PlanMark imports
from planmark.export import (
    draw_layers,
    export_page_png,
    export_project_pdf,
    parse_color,
    render_page_pdf,
)
from planmark.shapes import (
    LineStyle,
    MeasurementUnit,
    Shape,
    ShapeType,
    default_layers,
)


@pytest.fixture
def annotated_layers():
    """One shape of every kind spread over the two annotation layers"""
    layers = default_layers()
    layers[1].shapes = [
        Shape(id="r", type=ShapeType.RECT, x=2, y=2, width=20, height=10, fill_color="#22c55e", opacity=0.5),
        Shape(id="c", type=ShapeType.CIRCLE, x=20, y=15, radius=5, line_style=LineStyle.DOTTED),
        Shape(id="l", type=ShapeType.LINE, x=1, y=1, points=[0, 0, 30, 0], line_style=LineStyle.DASHED),
        Shape(id="a", type=ShapeType.ARROW, points=[0, 20, 35, 20]),
        Shape(id="f", type=ShapeType.FREEHAND, points=[5, 5, 8, 9, 12, 11]),
        Shape(id="t", type=ShapeType.TEXT, x=4, y=4, text="Door", font_size=8),
        Shape(id="hidden", type=ShapeType.RECT, x=0, y=0, width=5, height=5, visible=False),
    ]
    layers[2].shapes = [
        Shape(id="m", type=ShapeType.MEASUREMENT, points=[20, 60, 80, 60],
              measurement_value=60, measurement_unit=MeasurementUnit.FT),
        Shape(id="g", type=ShapeType.ANGLE, x=40, y=50, points=[60, 50, 40, 50, 40, 70], angle_value=90),
    ]
    return layers


class TestParseColor:
    @pytest.mark.parametrize("value,expected", [
        ("#ffffff", (1.0, 1.0, 1.0)),
        ("#000", (0.0, 0.0, 0.0)),
        ("#ff000080", (1.0, 0.0, 0.0)),
        ("rgb(255, 0, 0)", (1.0, 0.0, 0.0)),
        ("rgba(0,0,255,0.5)", (0.0, 0.0, 1.0)),
        ("White", (1, 1, 1)),
    ])
    def test_known_formats(self, value, expected):
        assert parse_color(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "transparent"])
    def test_transparent(self, value):
        assert parse_color(value) is None

    def test_unknown_falls_back_to_black(self):
        assert parse_color("chartreuse-ish") == (0, 0, 0)
        assert parse_color("#zzzzzz") == (0, 0, 0)


class TestDrawLayers:
    def test_counts_visible_shapes(self, annotated_layers):
        doc = fitz.open()
        page = doc.new_page(width=40, height=30)
        assert draw_layers(page, annotated_layers) == 8
        assert len(page.get_drawings()) > 0

    def test_hidden_layer_is_skipped(self, annotated_layers):
        annotated_layers[2].visible = False
        doc = fitz.open()
        page = doc.new_page(width=40, height=30)
        assert draw_layers(page, annotated_layers) == 6

    def test_labels_are_written(self, annotated_layers):
        doc = fitz.open()
        page = doc.new_page(width=200, height=100)
        draw_layers(page, annotated_layers)
        text = page.get_text()
        assert "Door" in text
        assert "6.0 ft" in text
        assert "90.0" in text


class TestExport:
    def test_page_png_scales(self, png_bytes, annotated_layers):
        pix = fitz.Pixmap(export_page_png(png_bytes, annotated_layers, scale=2))
        assert (pix.width, pix.height) == (80, 60)

    def test_page_pdf(self, png_bytes, annotated_layers):
        with fitz.open(stream=render_page_pdf(png_bytes, annotated_layers), filetype="pdf") as doc:
            assert len(doc) == 1
            assert (doc[0].rect.width, doc[0].rect.height) == (40, 30)

    def test_project_pdf_keeps_page_order(self, png_bytes, annotated_layers):
        wide = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 60, 30), False)
        wide.clear_with(200)
        wide = wide.tobytes("png")
        data = export_project_pdf([(png_bytes, annotated_layers), (wide, default_layers())])
        with fitz.open(stream=data, filetype="pdf") as doc:
            assert len(doc) == 2
            assert doc[0].rect.width == 40
            assert doc[1].rect.width == 60

    def test_empty_project_pdf(self):
        with pytest.raises(ValueError, match="nothing to export"):
            export_project_pdf([])
