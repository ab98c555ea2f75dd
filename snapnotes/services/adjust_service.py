"""Rotate/scale adjustment applied to a captured image before OCR."""
from __future__ import annotations

import io
from typing import Optional, Tuple

from PIL import Image

from snapnotes.models import AdjustmentState, CapturedImage, FinalizedImage

BACKGROUND = (255, 255, 255)

# Exact (cos, sin) for clockwise quarter turns, so renders never pick up float noise.
_QUARTER_TURNS = {
    0: (1, 0),
    90: (0, 1),
    180: (-1, 0),
    270: (0, -1),
}


def canvas_size(width: int, height: int, state: AdjustmentState) -> Tuple[int, int]:
    if state.is_quarter_turn:
        width, height = height, width
    return max(1, int(width * state.scale)), max(1, int(height * state.scale))


def _inverse_affine(src_w: int, src_h: int, dst_w: int, dst_h: int, state: AdjustmentState):
    """Coefficients mapping canvas pixels back onto the source image.

    The forward transform is translate(canvas center), rotate, scale, then
    draw the image centered on its own origin. Pillow wants the inverse.
    """
    cos, sin = _QUARTER_TURNS[state.rotation]
    s = state.scale
    cx, cy = dst_w / 2.0, dst_h / 2.0
    a, b = cos / s, sin / s
    d, e = -sin / s, cos / s
    c = src_w / 2.0 - (a * cx + b * cy)
    f = src_h / 2.0 - (d * cx + e * cy)
    return (a, b, c, d, e, f)


def render(captured: CapturedImage, state: AdjustmentState) -> Image.Image:
    img = captured.image
    dst_w, dst_h = canvas_size(img.width, img.height, state)
    coeffs = _inverse_affine(img.width, img.height, dst_w, dst_h, state)
    return img.transform(
        (dst_w, dst_h),
        Image.Transform.AFFINE,
        coeffs,
        resample=Image.Resampling.BICUBIC,
        fillcolor=BACKGROUND,
    )


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class ImageAdjuster:
    """Holds the pending adjustment for one captured image."""

    def __init__(self):
        self._source: Optional[CapturedImage] = None
        self._state = AdjustmentState()

    @property
    def source(self) -> Optional[CapturedImage]:
        return self._source

    @property
    def state(self) -> AdjustmentState:
        return self._state

    @property
    def rotation(self) -> int:
        return self._state.rotation

    @property
    def scale(self) -> float:
        return self._state.scale

    def load(self, captured: CapturedImage) -> None:
        self._source = captured
        self._state = AdjustmentState()

    def rotate(self) -> int:
        self._state = self._state.rotated()
        return self._state.rotation

    def set_scale(self, scale: float) -> float:
        self._state = self._state.with_scale(scale)
        return self._state.scale

    def reset(self) -> None:
        self._state = AdjustmentState()

    def preview(self) -> Image.Image:
        if self._source is None:
            raise ValueError("No image loaded")
        return render(self._source, self._state)

    def finalize(self) -> FinalizedImage:
        canvas = self.preview()
        return FinalizedImage(encode_png(canvas), canvas.width, canvas.height)

    def cancel(self) -> None:
        self._source = None
        self._state = AdjustmentState()
