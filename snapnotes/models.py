"""
Data Models

Key Models:
- CapturedImage: raster produced by a file upload or camera grab
- AdjustmentState: pending rotation/scale applied before recognition
- FinalizedImage: rendered PNG submitted for OCR
- QATurn / StudyArtifact: results derived from the extracted text
- Stage enums: one explicit state per concern instead of loose flags
"""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace
from typing import Optional

from PIL import Image

MIN_SCALE = 0.5
MAX_SCALE = 2.0
ROTATION_STEP = 90


class _PendingAnswer(str):
    def __repr__(self):
        return "PENDING_ANSWER"


# Compared by identity so a real "..." answer is never mistaken for it.
PENDING_ANSWER = _PendingAnswer("...")


class CaptureStage(enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    ADJUSTING = "adjusting"
    RECOGNIZING = "recognizing"


class QAState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"


class ArtifactState(enum.Enum):
    NONE = "none"
    PENDING = "pending"
    READY = "ready"


class StudyKind(enum.Enum):
    """Study features; values double as the generation service action names."""
    LESSON = "lesson"
    FLASHCARDS = "flashcards"
    SUMMARIZE = "summarize"
    QUIZ = "quiz"


class Facing(enum.Enum):
    USER = "user"
    ENVIRONMENT = "environment"

    def flipped(self) -> "Facing":
        return Facing.USER if self is Facing.ENVIRONMENT else Facing.ENVIRONMENT


@dataclass(frozen=True)
class CapturedImage:
    image: Image.Image
    width: int
    height: int
    source: str = "file"
    media_type: str = "image/png"

    @classmethod
    def from_image(cls, image: Image.Image, source: str, media_type: str) -> "CapturedImage":
        return cls(image=image, width=image.width, height=image.height, source=source, media_type=media_type)


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, float(scale)))


@dataclass(frozen=True)
class AdjustmentState:
    rotation: int = 0
    scale: float = 1.0

    def __post_init__(self):
        if self.rotation % ROTATION_STEP != 0 or not 0 <= self.rotation < 360:
            raise ValueError(f"rotation must be a multiple of 90 in [0, 360), got {self.rotation}")
        object.__setattr__(self, "scale", clamp_scale(self.scale))

    @property
    def is_quarter_turn(self) -> bool:
        """True when width and height swap (odd multiple of 90 degrees)."""
        return self.rotation % 180 != 0

    def rotated(self) -> "AdjustmentState":
        return replace(self, rotation=(self.rotation + ROTATION_STEP) % 360)

    def with_scale(self, scale: float) -> "AdjustmentState":
        return replace(self, scale=clamp_scale(scale))


class FinalizedImage:
    """PNG bytes of the adjusted canvas, discarded once recognition starts."""

    media_type = "image/png"

    def __init__(self, data: bytes, width: int, height: int):
        self._data = data
        self.width = width
        self.height = height

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def discarded(self) -> bool:
        return not self._data

    def discard(self) -> None:
        self._data = b""

    def __repr__(self):
        return f"FinalizedImage({self.width}x{self.height}, {len(self._data)} bytes)"


@dataclass(frozen=True)
class QATurn:
    question: str
    answer: str = PENDING_ANSWER
    created_at: float = field(default_factory=time.monotonic)

    @property
    def is_pending(self) -> bool:
        return self.answer is PENDING_ANSWER

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "answer": None if self.is_pending else self.answer,
            "pending": self.is_pending,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class StudyArtifact:
    kind: StudyKind
    content: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.content is not None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "content": self.content}


@dataclass(frozen=True)
class Notification:
    title: str
    description: str = ""
    variant: str = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"
