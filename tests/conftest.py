"""
Test Configuration and Fixtures
"""
import asyncio
import io
import threading
import time

import pytest
from PIL import Image

from snapnotes import create_app
from snapnotes.errors import CameraPermissionError, DeviceError
from snapnotes.models import CapturedImage
from snapnotes.services.capture_service import CameraBackend, CameraStream
from snapnotes.services.ocr_service import OCREngine


@pytest.fixture(scope='session')
def app():
    """Create application for testing"""
    app = create_app('testing')
    app.config['TESTING'] = True
    yield app


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


def make_png(width=40, height=20, color=(255, 255, 255), mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_split_image(width=20, height=10) -> Image.Image:
    """Left half red, right half blue."""
    img = Image.new("RGB", (width, height), (0, 0, 255))
    img.paste((255, 0, 0), (0, 0, width // 2, height))
    return img


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def split_capture():
    return CapturedImage.from_image(make_split_image(), source="file", media_type="image/png")


class FakeEngine(OCREngine):
    """Reports the given progress steps and returns ``text`` (or raises ``error``)."""

    def __init__(self, text="The sky is blue.", steps=(10, 50, 90), error=None, hook=None):
        self.text = text
        self.steps = steps
        self.error = error
        self.hook = hook
        self.gate = None
        self.progress = None
        self.calls = []

    async def recognize(self, image, language, progress):
        self.calls.append((image.size, language))
        self.progress = progress
        for pct in self.steps:
            progress(pct)
            if self.hook is not None:
                self.hook(pct)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


class FakeGenerator:
    """Async stand-in for the generation service.

    ``gate(task)`` must be called inside the running loop; the matching
    request then waits until the returned event is set.
    """

    def __init__(self, responses=None, error=None):
        self.responses = dict(responses or {})
        self.error = error
        self.calls = []
        self.gates = {}

    def gate(self, task):
        event = asyncio.Event()
        self.gates[task] = event
        return event

    async def __call__(self, document, task, question=None):
        self.calls.append((document, task, question))
        gate = self.gates.get(task)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        response = self.responses.get(task, f"{task} result")
        if isinstance(response, Exception):
            raise response
        return response


class FakeStream(CameraStream):
    def __init__(self, facing, frame=None, error=None):
        super().__init__(facing)
        self.frame = frame or Image.new("RGB", (64, 48), (200, 200, 200))
        self.error = error
        self.close_count = 0

    def read_frame(self):
        if self.error is not None:
            raise self.error
        return self.frame

    def _close(self):
        self.close_count += 1


class FakeCameraBackend(CameraBackend):
    """Hands out FakeStreams; ``deny``/``missing`` simulate host failures.

    ``delay`` makes ``open`` block like a host permission prompt.
    ``max_open`` records the most streams ever open at once.
    """

    def __init__(self, deny=False, missing=False, read_error=None, delay=0):
        self.deny = deny
        self.missing = missing
        self.read_error = read_error
        self.delay = delay
        self.streams = []
        self.max_open = 0
        self.permission_gate = None

    def block_until_granted(self):
        self.permission_gate = threading.Event()
        return self.permission_gate

    def open(self, facing):
        if self.permission_gate is not None:
            self.permission_gate.wait(5)
        if self.delay:
            time.sleep(self.delay)
        if self.deny:
            raise CameraPermissionError()
        if self.missing:
            raise DeviceError("No camera found")
        stream = FakeStream(facing, error=self.read_error)
        self.streams.append(stream)
        self.max_open = max(self.max_open, len(self.open_streams))
        return stream

    @property
    def open_streams(self):
        return [s for s in self.streams if not s.released]


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def camera():
    return FakeCameraBackend()
