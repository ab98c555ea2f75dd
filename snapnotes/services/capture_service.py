"""Image acquisition from uploads and camera devices.

Both paths normalize into a ``CapturedImage``. Camera streams are only ever
handed out through ``ImageSource.open_camera`` so that the device is released
on every exit path.
"""
from __future__ import annotations

import abc
import asyncio
import io
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from snapnotes.errors import CameraPermissionError, DeviceError, InvalidInputError
from snapnotes.models import CapturedImage, Facing

try:
    import cv2
except Exception:
    cv2 = None

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> Image.Image:
    if not data:
        raise InvalidInputError("The uploaded file is empty")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInputError(f"Could not read image: {e}") from e
    # Phone photos carry their orientation in EXIF rather than in the pixels.
    img = ImageOps.exif_transpose(img)
    if img.mode != "RGB":
        img = img.convert("RGB")
    return img


class CameraStream(abc.ABC):
    """An open device stream. Subclasses implement ``read_frame``/``_close``."""

    def __init__(self, facing: Facing):
        self.facing = facing
        self.released = False

    @abc.abstractmethod
    def read_frame(self) -> Image.Image:
        ...

    def _close(self) -> None:
        pass

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            self._close()
        finally:
            logger.debug("Released %s camera", self.facing.value)


class CameraBackend(abc.ABC):
    """Opens device streams. ``open`` may block until permission is decided."""

    @abc.abstractmethod
    def open(self, facing: Facing) -> CameraStream:
        ...


class OpenCVStream(CameraStream):
    def __init__(self, facing: Facing, cap):
        super().__init__(facing)
        self.cap = cap

    def read_frame(self) -> Image.Image:
        ok, frame = self.cap.read()
        if not ok or frame is None:
            raise DeviceError("Could not read a frame from the camera")
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return Image.fromarray(rgb)

    def _close(self) -> None:
        self.cap.release()


class OpenCVCameraBackend(CameraBackend):
    """Maps facing modes onto OpenCV device indexes."""

    def __init__(self, device_indexes: Optional[Dict[Facing, int]] = None,
                 frame_width: int = 1920, frame_height: int = 1080):
        self.device_indexes = device_indexes or {Facing.USER: 0, Facing.ENVIRONMENT: 1}
        self.frame_width = frame_width
        self.frame_height = frame_height

    @classmethod
    def from_config(cls, cfg) -> "OpenCVCameraBackend":
        return cls(
            device_indexes={
                Facing.USER: cfg.CAMERA_INDEX_USER,
                Facing.ENVIRONMENT: cfg.CAMERA_INDEX_ENVIRONMENT,
            },
            frame_width=cfg.CAMERA_FRAME_WIDTH,
            frame_height=cfg.CAMERA_FRAME_HEIGHT,
        )

    def _check_permission(self, index: int) -> None:
        if not sys.platform.startswith("linux"):
            return
        node = f"/dev/video{index}"
        if os.path.exists(node) and not os.access(node, os.R_OK):
            raise CameraPermissionError(f"Camera access denied for {node}")

    def open(self, facing: Facing) -> CameraStream:
        if cv2 is None:
            raise DeviceError("OpenCV is not installed")
        index = self.device_indexes.get(facing, 0)
        self._check_permission(index)

        cap = cv2.VideoCapture(index)
        if not cap.isOpened():
            cap.release()
            raise DeviceError(f"Could not open camera {index} ({facing.value})")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.frame_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.frame_height)
        return OpenCVStream(facing, cap)


class ImageSource:
    """Supplies still images from uploads or from a single camera stream."""

    def __init__(self, camera_backend: Optional[CameraBackend] = None):
        self.camera_backend = camera_backend or OpenCVCameraBackend()
        self._active: Optional[CameraStream] = None

    @property
    def active_stream(self) -> Optional[CameraStream]:
        return self._active

    def capture_from_file(self, data: bytes, media_type: str, filename: str = "") -> CapturedImage:
        media_type = (media_type or "").strip().lower()
        if not media_type.startswith("image/"):
            raise InvalidInputError("Please upload an image file")
        img = decode_image(data)
        logger.info("Captured %s (%dx%d) from file", filename or "upload", img.width, img.height)
        return CapturedImage.from_image(img, source="file", media_type=media_type)

    def release_active(self) -> None:
        if self._active is not None:
            stream, self._active = self._active, None
            stream.release()

    @asynccontextmanager
    async def open_camera(self, facing: Facing) -> AsyncIterator[CameraStream]:
        # Only one device stream may be open at a time.
        self.release_active()
        try:
            stream = await asyncio.to_thread(self.camera_backend.open, facing)
        except (CameraPermissionError, DeviceError):
            raise
        except Exception as e:
            raise DeviceError(f"Camera error: {e}") from e

        self._active = stream
        logger.info("Opened %s camera", facing.value)
        try:
            yield stream
        finally:
            stream.release()
            if self._active is stream:
                self._active = None

    async def grab(self, stream: CameraStream) -> CapturedImage:
        if stream.released:
            raise DeviceError("The camera stream is already closed")
        try:
            frame = await asyncio.to_thread(stream.read_frame)
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(f"Could not capture photo: {e}") from e
        if frame.mode != "RGB":
            frame = frame.convert("RGB")
        return CapturedImage.from_image(frame, source="camera", media_type="image/png")

    async def capture_from_camera(self, facing: Facing = Facing.ENVIRONMENT) -> CapturedImage:
        async with self.open_camera(facing) as stream:
            return await self.grab(stream)
