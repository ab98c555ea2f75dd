"""
Capture-to-text workflow.

Drives one document through capture, adjustment and recognition, then hands
the text to a StudySession. Every public coroutine catches its own failure
and turns it into a Notification, so no call leaves a stage or flag stuck.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Callable, List, Optional

from snapnotes.errors import (
    CameraPermissionError,
    DeviceError,
    GenerationError,
    InvalidInputError,
    RecognitionFailure,
    SnapNotesError,
)
from snapnotes.models import CaptureStage, Facing, Notification, StudyKind
from snapnotes.services import export_service
from snapnotes.services.adjust_service import ImageAdjuster
from snapnotes.services.capture_service import CameraStream, ImageSource
from snapnotes.services.ocr_service import RecognitionPipeline
from snapnotes.session import GenerateFn, StudySession

logger = logging.getLogger(__name__)

NotifySink = Callable[[Notification], None]


class Export:
    def __init__(self, filename: str, data: bytes, mimetype: str):
        self.filename = filename
        self.data = data
        self.mimetype = mimetype


class CaptureWorkflow:
    def __init__(
        self,
        generate: GenerateFn,
        source: Optional[ImageSource] = None,
        pipeline: Optional[RecognitionPipeline] = None,
        notify: Optional[NotifySink] = None,
        language: str = "eng",
        export_prefix: str = "extracted-text",
    ):
        self.source = source or ImageSource()
        self.adjuster = ImageAdjuster()
        self.pipeline = pipeline or RecognitionPipeline()
        self.session = StudySession(generate)
        self.notifications: List[Notification] = []
        self._notify = notify or self.notifications.append
        self.language = language
        self.export_prefix = export_prefix

        self.stage = CaptureStage.IDLE
        self.progress: Optional[int] = None
        self.facing = Facing.ENVIRONMENT
        self._camera: Optional[CameraStream] = None
        self._camera_scope: Optional[AsyncExitStack] = None
        self._camera_token = 0
        self._camera_lock = asyncio.Lock()
        self._run_token = 0

    # -- notifications -----------------------------------------------------

    def notify(self, title: str, description: str = "", error: bool = False) -> None:
        self._notify(Notification(title, description, "destructive" if error else "default"))

    def _fail(self, title: str, err: SnapNotesError) -> None:
        logger.info("%s: %s", title, err.message)
        self.notify(title, err.message, error=True)

    # -- capture -----------------------------------------------------------

    def _begin_capture(self) -> None:
        # A new capture supersedes any recognition in flight and the old text.
        self._run_token += 1
        self.progress = None
        self.session.clear()

    def load_file(self, data: bytes, media_type: str, filename: str = "") -> bool:
        try:
            captured = self.source.capture_from_file(data, media_type, filename)
        except InvalidInputError as e:
            self._fail("Invalid file type", e)
            return False
        self._begin_capture()
        self.adjuster.load(captured)
        self.stage = CaptureStage.ADJUSTING
        return True

    async def _release_camera(self) -> None:
        scope, self._camera_scope, self._camera = self._camera_scope, None, None
        if scope is not None:
            await scope.aclose()

    async def _close_camera(self) -> None:
        # Bumping the token makes any open still waiting on the host drop its stream.
        self._camera_token += 1
        await self._release_camera()

    async def open_camera(self, facing: Optional[Facing] = None) -> bool:
        self._camera_token += 1
        token = self._camera_token
        self.facing = facing or self.facing
        self.stage = CaptureStage.CAPTURING

        # One acquisition at a time: the previous stream is released before the
        # next backend open starts.
        async with self._camera_lock:
            await self._release_camera()
            if token != self._camera_token:
                return False
            scope = AsyncExitStack()
            try:
                stream = await scope.enter_async_context(self.source.open_camera(self.facing))
            except CameraPermissionError as e:
                if token == self._camera_token:
                    self.stage = CaptureStage.IDLE
                    self._fail("Camera access denied", e)
                return False
            except DeviceError as e:
                if token == self._camera_token:
                    self.stage = CaptureStage.IDLE
                    self._fail("Camera unavailable", e)
                return False

            if token != self._camera_token:
                # Cancelled or switched while the host was deciding on permission.
                await scope.aclose()
                return False
            self._camera_scope = scope
            self._camera = stream
            return True

    async def switch_camera(self) -> bool:
        return await self.open_camera(self.facing.flipped())

    async def cancel_camera(self) -> None:
        await self._close_camera()
        if self.stage is CaptureStage.CAPTURING:
            self.stage = CaptureStage.IDLE

    async def take_photo(self) -> bool:
        if self._camera is None:
            self.notify("Camera not ready", "Open the camera before taking a photo", error=True)
            return False
        try:
            captured = await self.source.grab(self._camera)
        except DeviceError as e:
            self.stage = CaptureStage.IDLE
            self._fail("Capture failed", e)
            return False
        finally:
            await self._close_camera()
        self._begin_capture()
        self.adjuster.load(captured)
        self.stage = CaptureStage.ADJUSTING
        self.notify("Photo captured!", "Adjust the image before processing")
        return True

    # -- adjustment --------------------------------------------------------

    def rotate(self) -> int:
        return self.adjuster.rotate()

    def set_scale(self, scale: float) -> float:
        return self.adjuster.set_scale(scale)

    def reset_adjustments(self) -> None:
        self.adjuster.reset()

    def cancel_adjustment(self) -> None:
        self.adjuster.cancel()
        if self.stage is CaptureStage.ADJUSTING:
            self.stage = CaptureStage.IDLE

    # -- recognition -------------------------------------------------------

    def _on_progress(self, token: int):
        def update(pct: int) -> None:
            if token == self._run_token:
                self.progress = pct
        return update

    async def process(self, language: Optional[str] = None) -> Optional[str]:
        if self.stage is not CaptureStage.ADJUSTING or self.adjuster.source is None:
            self.notify("Nothing to process", "Upload an image or take a photo first", error=True)
            return None

        finalized = self.adjuster.finalize()
        self.adjuster.cancel()
        self._run_token += 1
        token = self._run_token
        self.stage = CaptureStage.RECOGNIZING
        self.progress = 0
        try:
            text = await self.pipeline.recognize(
                finalized, language or self.language, on_progress=self._on_progress(token)
            )
        except RecognitionFailure as e:
            if token == self._run_token:
                self._fail("Extraction failed", e)
            return None
        finally:
            if token == self._run_token:
                self.progress = None
                self.stage = CaptureStage.IDLE

        if token != self._run_token:
            logger.debug("Discarding recognition result for a superseded image")
            return None
        self.session.set_text(text)
        self.notify("Text extracted successfully!", "Your text is ready to copy or use")
        return text

    # -- study -------------------------------------------------------------

    async def ask(self, question: str) -> Optional[str]:
        try:
            return await self.session.ask(question)
        except GenerationError as e:
            self._fail("Could not answer", e)
            return None

    async def generate(self, kind: StudyKind) -> Optional[str]:
        try:
            return await self.session.generate(kind)
        except GenerationError as e:
            self._fail("Generation failed", e)
            return None

    # -- export ------------------------------------------------------------

    def _export_text(self) -> Optional[str]:
        if not self.session.has_text:
            self.notify("Nothing to export", "Extract text from an image first", error=True)
            return None
        return self.session.text

    def export_text(self) -> Optional[Export]:
        text = self._export_text()
        if text is None:
            return None
        return Export(
            export_service.export_filename("txt", self.export_prefix),
            export_service.to_plain_text(text),
            "text/plain",
        )

    def export_pdf(self) -> Optional[Export]:
        text = self._export_text()
        if text is None:
            return None
        return Export(
            export_service.export_filename("pdf", self.export_prefix),
            export_service.to_paginated_document(text),
            "application/pdf",
        )

    # -- reset -------------------------------------------------------------

    async def reset(self) -> None:
        await self._close_camera()
        self.adjuster.cancel()
        self._begin_capture()
        self.stage = CaptureStage.IDLE

    async def aclose(self) -> None:
        await self._close_camera()
