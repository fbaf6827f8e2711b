# Third-party imports
import pytest

# PlanMark imports
from planmark.history import History
from planmark.shapes import Shape, ShapeType, default_layers


def _with_shapes(*ids):
    layers = default_layers()
    layers[1].shapes = [Shape(id=i, type=ShapeType.RECT, width=1, height=1) for i in ids]
    return layers


def _ids(layers):
    return [s.id for s in layers[1].shapes]


class TestHistory:
    @pytest.fixture
    def history(self):
        h = History()
        h.reset(_with_shapes())
        return h

    def test_reset_has_one_entry(self, history):
        assert len(history) == 1
        assert history.index == 0
        assert not history.can_undo()
        assert not history.can_redo()

    def test_undo_redo_walk(self, history):
        history.push(_with_shapes("a"))
        history.push(_with_shapes("a", "b"))
        assert _ids(history.undo()) == ["a"]
        assert _ids(history.undo()) == []
        assert history.undo() is None
        assert _ids(history.redo()) == ["a"]
        assert _ids(history.redo()) == ["a", "b"]
        assert history.redo() is None

    def test_push_discards_redo_branch(self, history):
        history.push(_with_shapes("a"))
        history.push(_with_shapes("a", "b"))
        history.undo()
        history.push(_with_shapes("a", "c"))
        assert not history.can_redo()
        assert len(history) == 3
        assert _ids(history.undo()) == ["a"]

    def test_snapshots_are_copies(self, history):
        live = _with_shapes("a")
        history.push(live)
        live[1].shapes.clear()
        restored = history.undo()
        restored[1].shapes.append(Shape(id="zz", type=ShapeType.TEXT))
        assert _ids(history.redo()) == ["a"]

    def test_capacity_drops_oldest(self):
        history = History(max_size=3)
        history.reset(_with_shapes())
        for name in ("a", "b", "c"):
            history.push(_with_shapes(name))
        assert len(history) == 3
        assert history.index == 2
        assert _ids(history.undo()) == ["b"]
        assert _ids(history.undo()) == ["a"]
        assert history.undo() is None
