"""HSV color model and line rasterization tests."""

import pytest

from backend.turtlescript.color import HSV, apply_hsv, wrap_hue
from backend.turtlescript.errors import TurtleRuntimeError
from backend.turtlescript.expressions import VarRef
from backend.turtlescript.interpreter import interpret
from backend.turtlescript.nodes import Absolute, Ignore, Offset
from backend.turtlescript.raster import iter_line, raster_line, round_half_up


def test_absolute_hsv_replaces_color():
    for start in [(0, 0, 100), (359, 100, 0), (120, 50, 50)]:
        res = interpret("hsv 200 80 90", initial_hsv=start)
        assert res.color == HSV(200, 80, 90)


def test_hue_offset_wraps_and_leaves_others():
    res = interpret("hsv +400 _ _", initial_hsv=(0, 30, 70))
    assert res.color == HSV(40, 30, 70)
    res = interpret("hsv -30 _ _", initial_hsv=(10, 30, 70))
    assert res.color.h == 340


def test_saturation_and_value_clamp():
    res = interpret("hsv _ +150 -200", initial_hsv=(0, 50, 50))
    assert res.color == HSV(0, 100, 0)
    res = interpret("hsv 720 -5 101")
    assert res.color == HSV(0, 0, 100)


def test_params_by_variable():
    res = interpret("var d = 30\nhsv +d -d _", initial_hsv=(0, 50, 100))
    assert res.color == HSV(30, 20, 100)
    res = interpret("var d = 30\nhsv d d d")
    assert res.color == HSV(30, 30, 30)


def test_undefined_variable_in_hsv_is_runtime_error():
    with pytest.raises(TurtleRuntimeError) as exc:
        interpret("hsv +q _ _")
    assert "Undefined variable 'q' in hsv" in exc.value.msg
    assert exc.value.line == 1


def test_apply_hsv_direct():
    color = apply_hsv(HSV(350, 10, 10), Offset(20.0), Ignore(), Absolute(VarRef("v")), {"v": 55})
    assert color == HSV(10, 10, 55)


def test_wrap_hue_range():
    for h in [-1e-12, -720.5, -360, -1, 0, 359.999, 360, 361, 1e9]:
        wrapped = wrap_hue(h)
        assert 0 <= wrapped < 360


@pytest.mark.parametrize("k", [-3, -1, 1, 2, 5])
@pytest.mark.parametrize("h", [0, 1, 90, 359, -45, 720])
def test_wrap_hue_is_periodic(h, k):
    assert wrap_hue(h) == wrap_hue(h + 360 * k)


@pytest.mark.parametrize("k", [-3, -1, 1, 2, 5])
@pytest.mark.parametrize("h", [0.5, 12.25, 359.75, -0.3, 180.1])
def test_wrap_hue_is_periodic_fractional(h, k):
    assert wrap_hue(h) == pytest.approx(wrap_hue(h + 360 * k), abs=1e-9)


def test_hsv_from_value_forms():
    assert HSV.from_value(None) == HSV(0, 0, 100)
    assert HSV.from_value({"h": 5}) == HSV(5, 0, 100)
    assert HSV.from_value([1, 2, 3]) == HSV(1, 2, 3)
    assert HSV(1, 2, 3).to_dict() == {"h": 1, "s": 2, "v": 3}


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(0.49) == 0
    assert round_half_up(-0.51) == -1


def test_line_horizontal_and_diagonal():
    assert list(iter_line(0, 0, 3, 0)) == [(0, 0), (1, 0), (2, 0), (3, 0)]
    assert list(iter_line(0, 0, 3, 3)) == [(0, 0), (1, 1), (2, 2), (3, 3)]
    assert list(iter_line(2, 1, 2, 1)) == [(2, 1)]


def test_line_is_connected_with_endpoints():
    for x1, y1 in [(1, 5), (-4, 2), (7, -3), (-2, -6)]:
        cells = list(iter_line(0, 0, x1, y1))
        assert cells[0] == (0, 0)
        assert cells[-1] == (x1, y1)
        assert len(cells) == max(abs(x1), abs(y1)) + 1
        for (ax, ay), (bx, by) in zip(cells, cells[1:]):
            assert max(abs(ax - bx), abs(ay - by)) == 1


def test_raster_line_visits_each_cell_once():
    visited = []
    raster_line(0.4, 0.5, -2.6, 1.2, lambda x, y: visited.append((x, y)))
    assert visited[0] == (0, 1)
    assert visited[-1] == (-3, 1)
    assert len(visited) == len(set(visited)) == 4
