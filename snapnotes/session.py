"""
Study session over one extracted document.

The extracted text is the only input to every QA turn and study artifact.
Replacing it bumps a document token; every request captures the tokens that
were current when it started and applies its result only if they still are.
Artifacts additionally use a request token so the most recent ``generate``
call wins and earlier results are dropped when they arrive.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Tuple

from snapnotes.errors import GenerationError, QAInFlightError
from snapnotes.models import (
    ArtifactState,
    QAState,
    QATurn,
    StudyArtifact,
    StudyKind,
)

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str, str, Optional[str]], Awaitable[str]]


class StudySession:
    def __init__(self, generate: GenerateFn):
        self._generate = generate
        self._text: Optional[str] = None
        self._doc_token = 0
        self._history: List[QATurn] = []
        self._pending_turn: Optional[QATurn] = None
        self._artifact: Optional[StudyArtifact] = None
        self._artifact_token = 0

    # -- state -------------------------------------------------------------

    @property
    def text(self) -> Optional[str]:
        return self._text

    @property
    def has_text(self) -> bool:
        return bool(self._text)

    @property
    def history(self) -> Tuple[QATurn, ...]:
        return tuple(self._history)

    @property
    def artifact(self) -> Optional[StudyArtifact]:
        return self._artifact

    @property
    def qa_state(self) -> QAState:
        return QAState.PENDING if self._pending_turn is not None else QAState.IDLE

    @property
    def artifact_state(self) -> ArtifactState:
        if self._artifact is None:
            return ArtifactState.NONE
        return ArtifactState.READY if self._artifact.is_ready else ArtifactState.PENDING

    @property
    def is_asking(self) -> bool:
        return self.qa_state is QAState.PENDING

    @property
    def is_generating(self) -> bool:
        return self.artifact_state is ArtifactState.PENDING

    # -- document ----------------------------------------------------------

    def set_text(self, text: Optional[str]) -> None:
        """Replace the document and drop everything derived from the old one."""
        self._doc_token += 1
        self._text = text or None
        self._history = []
        self._pending_turn = None
        self._artifact = None
        self._artifact_token += 1

    def clear(self) -> None:
        self.set_text(None)

    # -- QA ----------------------------------------------------------------

    def _require_text(self) -> str:
        if not self._text:
            raise GenerationError("Extract text from an image first")
        return self._text

    async def ask(self, question: str) -> Optional[str]:
        """Ask about the document. Returns None if the document was replaced meanwhile."""
        question = (question or "").strip()
        document = self._require_text()
        if not question:
            raise GenerationError("Please enter a question")
        if self._pending_turn is not None:
            raise QAInFlightError()

        doc_token = self._doc_token
        turn = QATurn(question=question)
        self._history.append(turn)
        self._pending_turn = turn
        try:
            answer = await self._generate(document, "qa", question)
            if not answer:
                raise GenerationError("Empty answer from study tools service")
        except asyncio.CancelledError:
            if doc_token == self._doc_token:
                self._history.remove(turn)
            raise
        except Exception as e:
            if doc_token != self._doc_token:
                logger.debug("Ignoring failed answer for a replaced document: %s", e)
                return None
            self._history.remove(turn)
            if isinstance(e, GenerationError):
                raise
            raise GenerationError(str(e) or None) from e
        finally:
            if self._pending_turn is turn:
                self._pending_turn = None

        if doc_token != self._doc_token:
            logger.debug("Dropping answer for a replaced document")
            return None
        idx = self._history.index(turn)
        self._history[idx] = replace(turn, answer=answer)
        return answer

    # -- study artifacts ---------------------------------------------------

    async def generate(self, kind: StudyKind) -> Optional[str]:
        """Generate a study artifact. Returns None if a newer request replaced it."""
        try:
            kind = StudyKind(kind)
        except ValueError:
            raise GenerationError("Unknown study tool") from None
        document = self._require_text()

        self._artifact_token += 1
        token = self._artifact_token
        self._artifact = StudyArtifact(kind=kind)
        try:
            content = await self._generate(document, kind.value, None)
            if not content:
                raise GenerationError("Empty response from study tools service")
        except asyncio.CancelledError:
            if token == self._artifact_token:
                self._artifact = None
            raise
        except Exception as e:
            if token != self._artifact_token:
                logger.debug("Ignoring failure of superseded %s request: %s", kind.value, e)
                return None
            self._artifact = None
            if isinstance(e, GenerationError):
                raise
            raise GenerationError(str(e) or None) from e

        if token != self._artifact_token:
            logger.debug("Discarding late %s result", kind.value)
            return None
        self._artifact = StudyArtifact(kind=kind, content=content)
        return content
