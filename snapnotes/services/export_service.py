"""Plain text and paginated PDF export of the extracted text.

Layout is deterministic: the same text always wraps and paginates the same
way, and the PDF is written with reportlab's invariant mode so the bytes are
reproducible too.
"""
from __future__ import annotations

import io
import re
import time
from typing import List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

PAGE_SIZE = A4
MARGIN = 15 * mm
FONT_NAME = "Helvetica"
FONT_SIZE = 12
LEADING = FONT_SIZE * 1.15
TAB_SIZE = 4

CONTENT_WIDTH = PAGE_SIZE[0] - 2 * MARGIN
CONTENT_HEIGHT = PAGE_SIZE[1] - 2 * MARGIN
LINES_PER_PAGE = max(1, int(CONTENT_HEIGHT // LEADING))

_TOKENS = re.compile(r"\S+|\s+")


def to_plain_text(text: str) -> bytes:
    return text.encode("utf-8")


def normalize_text(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").expandtabs(TAB_SIZE)


def _width(s: str) -> float:
    return stringWidth(s, FONT_NAME, FONT_SIZE)


def _split_word(word: str, max_width: float) -> List[str]:
    pieces: List[str] = []
    current = ""
    for ch in word:
        if current and _width(current + ch) > max_width:
            pieces.append(current)
            current = ch
        else:
            current += ch
    if current:
        pieces.append(current)
    return pieces


def wrap_line(paragraph: str, max_width: float = CONTENT_WIDTH) -> List[str]:
    """Greedy word wrap of one paragraph.

    The whitespace where a break happens stays at the end of the previous
    line, so ``"".join(wrap_line(p)) == p``. Trailing whitespace does not
    count toward the measured width.
    """
    if not paragraph:
        return [""]
    lines: List[str] = []
    current = ""
    for token in _TOKENS.findall(paragraph):
        if token.isspace():
            current += token
            continue
        if _width(current + token) <= max_width:
            current += token
            continue
        if current.strip():
            lines.append(current)
            current = ""
        if _width(current + token) <= max_width:
            current += token
            continue
        # A single word wider than the page is broken by character.
        pieces = _split_word(current + token, max_width)
        lines.extend(pieces[:-1])
        current = pieces[-1]
    lines.append(current)
    return lines


def wrap_text(text: str, max_width: float = CONTENT_WIDTH) -> List[str]:
    lines: List[str] = []
    for paragraph in normalize_text(text).split("\n"):
        lines.extend(wrap_line(paragraph, max_width))
    return lines


def paginate(text: str, lines_per_page: int = LINES_PER_PAGE) -> List[List[str]]:
    lines = wrap_text(text)
    return [lines[i:i + lines_per_page] for i in range(0, len(lines), lines_per_page)]


def to_paginated_document(text: str, title: Optional[str] = None) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=PAGE_SIZE, invariant=1)
    c.setTitle(title or "Extracted Text")
    for page in paginate(text):
        c.setFont(FONT_NAME, FONT_SIZE)
        y = PAGE_SIZE[1] - MARGIN - FONT_SIZE
        for line in page:
            c.drawString(MARGIN, y, line)
            y -= LEADING
        c.showPage()
    c.save()
    return buf.getvalue()


def export_filename(ext: str, prefix: str = "extracted-text", now: Optional[float] = None) -> str:
    ts = int((time.time() if now is None else now) * 1000)
    return f"{prefix}-{ts}.{ext}"
