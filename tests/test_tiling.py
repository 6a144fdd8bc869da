"""Geometry of the tiled watermark layout."""

import math

import pytest

import config
from services.exceptions import InvalidStyleError
from services.style_service import build_style
from services.tiling import plan_tiles, resolve_font_size, resolve_step, tile_centers, to_canvas


def make_style(**fields):
    values = {"text": "TEST", "opacity": 0.25, "color": "#FFFFFF", "angle": -45}
    values.update(fields)
    return build_style(values)


def test_square_800_layout_has_25_tiles():
    style = make_style(font_size_relative=0.1)
    layout = plan_tiles(800, 800, style, measure=lambda text, size: 100)

    assert layout.font_size == 80
    assert layout.step == 240
    assert layout.diagonal == pytest.approx(1131.37, abs=0.01)
    assert len(layout.centers) == 25
    first_x, first_y = layout.centers[0]
    assert first_x == pytest.approx(-565.685, abs=0.001)
    assert first_y == pytest.approx(-565.685, abs=0.001)


def test_tile_count_matches_ceil_of_diagonal_over_step():
    diagonal, centers = tile_centers(800, 600, 210)
    per_axis = math.ceil(diagonal / 210)
    assert diagonal == pytest.approx(1000.0)
    assert len(centers) == per_axis ** 2
    assert all(-500 <= x < 500 and -500 <= y < 500 for x, y in centers)


def test_layout_is_deterministic():
    style = make_style(font_size_relative=0.1)
    first = plan_tiles(1024, 768, style, measure=lambda text, size: size * 2.4)
    second = plan_tiles(1024, 768, style, measure=lambda text, size: size * 2.4)
    assert first == second
    assert first.canvas_points() == second.canvas_points()


def test_step_uses_wide_text_width():
    style = make_style(font_size_px=40)
    assert resolve_step(style, 40, text_width=200) == 300
    assert resolve_step(style, 40, text_width=10) == 120


def test_step_without_measurement_falls_back_to_font_size():
    style = make_style(font_size_px=40)
    assert resolve_step(style, 40) == 120


def test_explicit_spacing_wins():
    style = make_style(font_size_px=40, tile_spacing=100)
    layout = plan_tiles(500, 500, style, measure=lambda text, size: 400)
    assert layout.step == 100


@pytest.mark.parametrize("width,height,relative,expected", [
    (800, 800, 0.1, 80),
    (801, 600, 0.1, 60),
    (4096, 4096, 0.1, 409),
    (1, 1, 0.1, 1),
])
def test_relative_font_size_uses_shorter_side(width, height, relative, expected):
    style = make_style(font_size_relative=relative)
    assert resolve_font_size(style, width, height) == expected


def test_absolute_font_size():
    style = make_style(font_size_px=11)
    assert resolve_font_size(style, 2000, 2000) == 11


def test_missing_font_size_uses_fallback():
    style = make_style()
    assert resolve_font_size(style, 300, 300) == 11


def test_invalid_style_cannot_reach_layout():
    with pytest.raises(InvalidStyleError):
        make_style(font_size_px=0)


def test_to_canvas_rotation_convention():
    origin = (100.0, 50.0)
    assert to_canvas((10, 0), 0, origin) == pytest.approx((110.0, 50.0))
    # y 轴向下，正角度顺时针
    assert to_canvas((10, 0), 90, origin) == pytest.approx((100.0, 60.0))
    # -45 度时基线向右上倾斜
    x, y = to_canvas((10, 0), -45, origin)
    assert x == pytest.approx(100 + 10 / math.sqrt(2))
    assert y == pytest.approx(50 - 10 / math.sqrt(2))


def test_canvas_points_are_centered_on_image():
    style = make_style(font_size_px=10, tile_spacing=50, angle=0)
    layout = plan_tiles(100, 100, style)
    points = layout.canvas_points()
    assert len(points) == len(layout.centers)
    assert points[0] == pytest.approx((50 - layout.diagonal / 2, 50 - layout.diagonal / 2))


def test_non_positive_dimensions_rejected():
    with pytest.raises(ValueError):
        plan_tiles(0, 10, make_style(font_size_px=10))


@pytest.mark.parametrize("fields", [
    {"tile_spacing": float("inf")},
    {"tile_spacing": float("nan")},
    {"tile_spacing": 0.5},
    {"tile_spacing": 19.9},
    {"angle": float("nan")},
    {"angle": float("inf")},
    {"font_size_px": 5000},
])
def test_unbounded_style_values_are_rejected(fields):
    with pytest.raises(InvalidStyleError):
        make_style(**fields)


def test_relative_font_size_is_capped(monkeypatch):
    monkeypatch.setattr(config, "MAX_FONT_SIZE_PX", 50)
    style = make_style(font_size_relative=0.1)
    assert resolve_font_size(style, 500, 500) == 50
    with pytest.raises(InvalidStyleError):
        resolve_font_size(style, 800, 800)


def test_tile_count_is_capped(monkeypatch):
    monkeypatch.setattr(config, "MAX_TILES", 10)
    style = make_style(font_size_relative=0.1)
    with pytest.raises(InvalidStyleError):
        plan_tiles(800, 800, style, measure=lambda text, size: 100)


def test_tiny_derived_step_on_large_image_is_rejected():
    style = make_style(font_size_px=1)
    with pytest.raises(InvalidStyleError):
        plan_tiles(4096, 4096, style, measure=lambda text, size: 2)


def test_smallest_spacing_still_tiles():
    style = make_style(font_size_px=10, tile_spacing=20)
    layout = plan_tiles(200, 200, style)
    assert len(layout.centers) == math.ceil(layout.diagonal / 20) ** 2
