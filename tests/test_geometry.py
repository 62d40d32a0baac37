"""Tests for preview-to-full-resolution coordinate mapping."""

import itertools

import pytest

from docsheet.ocr.geometry import (
    MIN_SELECTION_SIZE,
    Rect,
    Size,
    map_selection,
    round_half_up,
    scale_rect,
    to_display,
)


class TestRect:
    """Tests for the Rect value type."""

    def test_from_points_any_corner_order(self) -> None:
        assert Rect.from_points(30, 40, 10, 5) == Rect(10, 5, 20, 35)

    def test_as_dict(self) -> None:
        assert Rect(1, 2, 3, 4).as_dict() == {
            "left": 1,
            "top": 2,
            "width": 3,
            "height": 4,
        }


class TestRoundHalfUp:
    """Tests for half-up rounding."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.5, 1), (2.5, 3), (52.5, 53), (2.49, 2), (7.0, 7)],
    )
    def test_rounds_halves_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected


class TestScaleRect:
    """Tests for axis-independent rescaling."""

    def test_scales_each_axis_independently(self) -> None:
        rect = scale_rect(Rect(10, 10, 20, 20), Size(100, 50), Size(400, 100))
        assert rect == Rect(40, 20, 80, 40)

    def test_rounds_to_nearest_integer(self) -> None:
        rect = scale_rect(Rect(1, 1, 3, 3), Size(3, 3), Size(10, 10))
        assert rect == Rect(3, 3, 10, 10)

    def test_halves_round_up(self) -> None:
        mapped = map_selection(Rect(5, 5, 10, 10), Size(100, 100), Size(50, 50))
        assert mapped == Rect(3, 3, 5, 5)

    def test_out_of_bounds_kept(self) -> None:
        rect = scale_rect(Rect(90, 90, 20, 20), Size(100, 100), Size(200, 200))
        assert rect == Rect(180, 180, 40, 40)

    def test_zero_source_rejected(self) -> None:
        with pytest.raises(ValueError):
            scale_rect(Rect(0, 0, 1, 1), Size(0, 10), Size(10, 10))


class TestMapSelection:
    """Tests for mapping preview selections."""

    def test_maps_to_original(self) -> None:
        mapped = map_selection(Rect(50, 25, 100, 50), Size(300, 150), Size(1200, 600))
        assert mapped == Rect(200, 100, 400, 200)

    @pytest.mark.parametrize(
        "rect",
        [
            Rect(0, 0, MIN_SELECTION_SIZE - 1, 50),
            Rect(0, 0, 50, MIN_SELECTION_SIZE - 1),
            Rect(10, 10, 0, 0),
        ],
    )
    def test_small_selection_discarded(self, rect: Rect) -> None:
        assert map_selection(rect, Size(300, 150), Size(1200, 600)) is None

    def test_minimum_size_accepted(self) -> None:
        rect = Rect(0, 0, MIN_SELECTION_SIZE, MIN_SELECTION_SIZE)
        assert map_selection(rect, Size(100, 100), Size(100, 100)) == rect

    def test_round_trip_within_one_pixel(self) -> None:
        display = Size(283, 367)
        original = Size(1190, 1684)
        for left, top, width, height in itertools.product(
            (0, 7, 33, 150), (0, 13, 99), (5, 17, 101), (5, 42)
        ):
            drawn = Rect(left, top, width, height)
            mapped = map_selection(drawn, display, original)
            assert mapped is not None
            back = scale_rect(mapped, original, display)
            assert abs(back.left - drawn.left) <= 1
            assert abs(back.top - drawn.top) <= 1
            assert abs(back.width - drawn.width) <= 1
            assert abs(back.height - drawn.height) <= 1


class TestToDisplay:
    """Tests for projecting stored regions onto previews."""

    def test_unrounded_projection(self) -> None:
        result = to_display(Rect(10, 10, 30, 30), Size(40, 40), Size(10, 20))
        assert result == pytest.approx((2.5, 5.0, 7.5, 15.0))
