"""
Image Adjuster Tests
"""
import io

import pytest
from PIL import Image

from snapnotes.models import MAX_SCALE, MIN_SCALE, AdjustmentState
from snapnotes.services.adjust_service import ImageAdjuster, canvas_size

RED = (255, 0, 0)
BLUE = (0, 0, 255)


def is_close(pixel, color, tol=10):
    return all(abs(p - c) <= tol for p, c in zip(pixel, color))


@pytest.fixture
def adjuster(split_capture):
    adj = ImageAdjuster()
    adj.load(split_capture)
    return adj


class TestRotation:
    """Test quarter-turn rotation"""

    @pytest.mark.parametrize("count", range(0, 10))
    def test_rotation_tracks_call_count(self, adjuster, count):
        for _ in range(count):
            adjuster.rotate()
        assert adjuster.rotation == (90 * count) % 360

    def test_four_turns_return_to_zero(self, adjuster):
        values = [adjuster.rotate() for _ in range(4)]
        assert values == [90, 180, 270, 0]

    def test_quarter_turn_swaps_dimensions(self, adjuster):
        adjuster.rotate()
        assert adjuster.preview().size == (10, 20)
        adjuster.rotate()
        assert adjuster.preview().size == (20, 10)

    def test_quarter_turn_is_clockwise(self, adjuster):
        """Left half (red) ends up on top after one clockwise turn"""
        adjuster.rotate()
        img = adjuster.preview()
        assert is_close(img.getpixel((5, 4)), RED)
        assert is_close(img.getpixel((5, 15)), BLUE)

    def test_half_turn_mirrors_both_axes(self, adjuster):
        adjuster.rotate()
        adjuster.rotate()
        img = adjuster.preview()
        assert is_close(img.getpixel((3, 5)), BLUE)
        assert is_close(img.getpixel((16, 5)), RED)

    def test_invalid_rotation_state_is_rejected(self):
        with pytest.raises(ValueError):
            AdjustmentState(rotation=45)
        with pytest.raises(ValueError):
            AdjustmentState(rotation=360)


class TestScale:
    """Test scale clamping"""

    @pytest.mark.parametrize("value,expected", [
        (-3, MIN_SCALE),
        (0, MIN_SCALE),
        (0.25, MIN_SCALE),
        (0.5, 0.5),
        (1.3, 1.3),
        (2.0, 2.0),
        (7.5, MAX_SCALE),
    ])
    def test_scale_is_clamped(self, adjuster, value, expected):
        assert adjuster.set_scale(value) == pytest.approx(expected)
        assert MIN_SCALE <= adjuster.scale <= MAX_SCALE

    def test_reset_restores_defaults(self, adjuster):
        adjuster.set_scale(0.5)
        adjuster.set_scale(2.0)
        adjuster.rotate()
        adjuster.reset()
        assert adjuster.scale == 1.0
        assert adjuster.rotation == 0
        assert adjuster.source is not None

    def test_scale_resizes_canvas(self, adjuster):
        adjuster.set_scale(2.0)
        img = adjuster.preview()
        assert img.size == (40, 20)
        assert is_close(img.getpixel((8, 10)), RED)
        assert is_close(img.getpixel((32, 10)), BLUE)

    def test_canvas_size_combines_rotation_and_scale(self):
        state = AdjustmentState(rotation=270, scale=0.5)
        assert canvas_size(20, 10, state) == (5, 10)

    def test_canvas_never_collapses(self):
        assert canvas_size(1, 1, AdjustmentState(scale=0.5)) == (1, 1)


class TestFinalize:
    """Test rendering the adjusted image for recognition"""

    def test_finalize_returns_png(self, adjuster):
        adjuster.rotate()
        finalized = adjuster.finalize()
        assert finalized.media_type == "image/png"
        assert (finalized.width, finalized.height) == (10, 20)
        img = Image.open(io.BytesIO(finalized.data))
        assert img.format == "PNG"
        assert img.size == (10, 20)

    def test_finalize_is_deterministic(self, adjuster):
        adjuster.rotate()
        adjuster.set_scale(1.5)
        assert adjuster.finalize().data == adjuster.finalize().data

    def test_finalize_does_not_touch_source(self, adjuster, split_capture):
        adjuster.rotate()
        adjuster.finalize()
        assert split_capture.image.size == (20, 10)

    def test_preview_without_image(self):
        with pytest.raises(ValueError):
            ImageAdjuster().preview()

    def test_cancel_drops_image(self, adjuster):
        adjuster.rotate()
        adjuster.cancel()
        assert adjuster.source is None
        assert adjuster.rotation == 0

    def test_load_resets_adjustment(self, adjuster, split_capture):
        adjuster.rotate()
        adjuster.set_scale(2.0)
        adjuster.load(split_capture)
        assert adjuster.state == AdjustmentState()
