"""OCR over a finalized image.

``RecognitionPipeline`` owns the ordering guarantees: progress is clamped to
[0, 100], never goes backwards and is never reported after the terminal
outcome. The engine itself is swappable; ``TesseractEngine`` is the default.
"""
from __future__ import annotations

import abc
import asyncio
import io
import logging
import os
import shutil
from typing import Callable, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from snapnotes.errors import RecognitionFailure
from snapnotes.models import FinalizedImage

try:
    import pytesseract
except Exception:
    pytesseract = None

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def configure_tesseract(cmd: str = "") -> None:
    """Point pytesseract at the tesseract binary on common hosts."""
    if pytesseract is None:
        return
    if cmd:
        pytesseract.pytesseract.tesseract_cmd = cmd
        return
    if shutil.which("tesseract") is None:
        for cand in ("/usr/bin/tesseract", "/usr/local/bin/tesseract", "/opt/homebrew/bin/tesseract"):
            if os.path.exists(cand):
                pytesseract.pytesseract.tesseract_cmd = cand
                break


def ocr_ready() -> Tuple[bool, str]:
    if pytesseract is None:
        return False, "pytesseract not available"
    try:
        _ = pytesseract.get_tesseract_version()
    except Exception as e:
        return False, f"tesseract not available: {e}"
    return True, ""


def prep(img: Image.Image) -> Image.Image:
    """Lightweight preprocessing to improve OCR on photographed pages."""
    g = img.convert("L")
    # Simple contrast stretch
    return Image.eval(g, lambda x: 0 if x < 15 else (255 if x > 240 else x))


class OCREngine(abc.ABC):
    """Black box: image -> text, reporting fractional progress as it goes."""

    @abc.abstractmethod
    async def recognize(self, image: Image.Image, language: str, progress: ProgressCallback) -> str:
        ...


class TesseractEngine(OCREngine):
    def __init__(self, config: str = "--psm 3"):
        self.config = config

    async def recognize(self, image: Image.Image, language: str, progress: ProgressCallback) -> str:
        if pytesseract is None:
            raise RecognitionFailure("OCR dependencies missing")
        progress(5)
        img = prep(image)
        progress(15)
        try:
            text = await asyncio.to_thread(
                pytesseract.image_to_string, img, lang=language, config=self.config
            )
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionFailure("tesseract is not installed") from e
        except pytesseract.TesseractError as e:
            raise RecognitionFailure(f"OCR failed: {e.message}") from e
        progress(100)
        return text or ""


class _ProgressGuard:
    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.value = -1
        self.closed = False

    def __call__(self, pct) -> None:
        if self.closed:
            return
        pct = max(0, min(100, int(round(pct))))
        if pct <= self.value:
            return
        self.value = pct
        if self.callback is not None:
            self.callback(pct)

    def close(self) -> None:
        self.closed = True


class RecognitionPipeline:
    def __init__(self, engine: Optional[OCREngine] = None, default_language: str = "eng"):
        self.engine = engine or TesseractEngine()
        self.default_language = default_language

    def _load(self, finalized: FinalizedImage) -> Image.Image:
        if finalized.discarded:
            raise RecognitionFailure("The image is empty or was already processed")
        try:
            img = Image.open(io.BytesIO(finalized.data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise RecognitionFailure(f"Unsupported or corrupt image: {e}") from e
        finally:
            # The encoded canvas is no longer needed once decoded.
            finalized.discard()
        if img.width == 0 or img.height == 0:
            raise RecognitionFailure("The image is empty")
        return img

    async def recognize(self, finalized: FinalizedImage, language: Optional[str] = None,
                        on_progress: Optional[ProgressCallback] = None) -> str:
        language = language or self.default_language
        guard = _ProgressGuard(on_progress)
        try:
            guard(0)
            img = self._load(finalized)
            try:
                text = await self.engine.recognize(img, language, guard)
            except RecognitionFailure:
                raise
            except Exception as e:
                logger.exception("OCR engine error")
                raise RecognitionFailure(f"OCR failed: {e}") from e
            finally:
                img.close()

            text = (text or "").strip()
            if not text:
                raise RecognitionFailure("OCR produced no readable text")
            guard(100)
            logger.info("Recognized %d characters", len(text))
            return text
        finally:
            guard.close()
