"""
Memories Backend: Rich Text Body
=================================

What:  The styled text that fills a page body (font and color spans).
How:   An immutable list of runs. Every edit returns a new RichText whose
       runs are normalized: no empty runs, no two neighbours with equal style.

Serialized form (stored in PageDocument.attributed_body_text):

    {"format": "memories.richtext/1",
     "runs": [{"text": "Dear ", "font": {"family": "DejaVuSans", "size": 32.0},
               "color": "#000000"}, ...]}

Positions and lengths count Unicode code points.
"""

import json
import logging
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from memories.canvas.document import PageDocument, normalize_color
from memories.config import settings
from memories.exceptions import DecodeError

logger = logging.getLogger(__name__)

RICH_TEXT_FORMAT = "memories.richtext/1"


class FontSpec(BaseModel):
    family: str = Field(min_length=1)
    size: float = Field(gt=0)

    model_config = {"frozen": True}


class TextStyle(BaseModel):
    """Font and color applied to a span. Color is #RRGGBB or #RRGGBBAA."""

    font: FontSpec
    color: str

    model_config = {"frozen": True}

    @field_validator("color")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_color(v)


class TextRun(BaseModel):
    text: str
    style: TextStyle

    model_config = {"frozen": True}


def _normalized(runs: List[TextRun]) -> List[TextRun]:
    merged: List[TextRun] = []
    for run in runs:
        if not run.text:
            continue
        if merged and merged[-1].style == run.style:
            merged[-1] = TextRun(text=merged[-1].text + run.text, style=run.style)
        else:
            merged.append(run)
    return merged


class RichText(BaseModel):
    runs: List[TextRun] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("runs")
    @classmethod
    def _merge_runs(cls, v: List[TextRun]) -> List[TextRun]:
        return _normalized(v)

    # ── Construction ──────────────────────────────────────────────────────

    @classmethod
    def from_plain(cls, text: str, style: TextStyle) -> "RichText":
        return cls(runs=[TextRun(text=text, style=style)])

    @classmethod
    def from_bytes(cls, raw: bytes) -> "RichText":
        """
        Decodes the stored rich text.

        Raises:
            DecodeError: Not JSON, wrong format tag, or malformed runs.
        """
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(
                message="The page text could not be read",
                context={"error": str(e)},
            ) from e
        if not isinstance(payload, dict) or payload.get("format") != RICH_TEXT_FORMAT:
            raise DecodeError(
                message="The page text uses an unknown format",
                context={"format": payload.get("format") if isinstance(payload, dict) else None},
            )
        try:
            runs = [
                TextRun(
                    text=entry["text"],
                    style=TextStyle(font=entry["font"], color=entry["color"]),
                )
                for entry in payload.get("runs", [])
            ]
            return cls(runs=runs)
        except (KeyError, TypeError, PydanticValidationError) as e:
            raise DecodeError(
                message="The page text could not be read",
                context={"error": str(e)},
            ) from e

    def to_bytes(self) -> bytes:
        payload = {
            "format": RICH_TEXT_FORMAT,
            "runs": [
                {"text": run.text, "font": run.style.font.model_dump(), "color": run.style.color}
                for run in self.runs
            ],
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    # ── Queries ───────────────────────────────────────────────────────────

    @property
    def plain_text(self) -> str:
        return "".join(run.text for run in self.runs)

    @property
    def length(self) -> int:
        return sum(len(run.text) for run in self.runs)

    def style_at(self, position: int) -> Optional[TextStyle]:
        """
        Style a character typed at `position` would inherit from its
        neighbour: the character before it, or the first one at position 0.
        None for empty text.
        """
        if not self.runs:
            return None
        target = max(0, min(position, self.length) - 1)
        offset = 0
        for run in self.runs:
            if target < offset + len(run.text):
                return run.style
            offset += len(run.text)
        return self.runs[-1].style

    # ── Edits ─────────────────────────────────────────────────────────────

    def _clamp(self, start: int, length: int):
        total = self.length
        begin = max(0, min(start, total))
        end = max(begin, min(start + max(length, 0), total))
        return begin, end

    def apply_style(self, start: int, length: int, style: TextStyle) -> "RichText":
        """Restyles [start, start+length), clamped to the text. Empty range is a no-op."""
        begin, end = self._clamp(start, length)
        if begin == end:
            return self
        pieces: List[TextRun] = []
        offset = 0
        for run in self.runs:
            run_start, run_end = offset, offset + len(run.text)
            offset = run_end
            if run_end <= begin or run_start >= end:
                pieces.append(run)
                continue
            lo = max(begin, run_start) - run_start
            hi = min(end, run_end) - run_start
            pieces.append(TextRun(text=run.text[:lo], style=run.style))
            pieces.append(TextRun(text=run.text[lo:hi], style=style))
            pieces.append(TextRun(text=run.text[hi:], style=run.style))
        return RichText(runs=pieces)

    def insert_text(self, position: int, text: str, style: TextStyle) -> "RichText":
        if not text:
            return self
        at, _ = self._clamp(position, 0)
        pieces: List[TextRun] = []
        offset = 0
        inserted = False
        for run in self.runs:
            run_start, run_end = offset, offset + len(run.text)
            offset = run_end
            if not inserted and run_start <= at <= run_end:
                split = at - run_start
                pieces.append(TextRun(text=run.text[:split], style=run.style))
                pieces.append(TextRun(text=text, style=style))
                pieces.append(TextRun(text=run.text[split:], style=run.style))
                inserted = True
            else:
                pieces.append(run)
        if not inserted:
            pieces.append(TextRun(text=text, style=style))
        return RichText(runs=pieces)

    def delete(self, start: int, length: int) -> "RichText":
        begin, end = self._clamp(start, length)
        if begin == end:
            return self
        pieces: List[TextRun] = []
        offset = 0
        for run in self.runs:
            run_start, run_end = offset, offset + len(run.text)
            offset = run_end
            lo = min(max(begin, run_start), run_end) - run_start
            hi = min(max(end, run_start), run_end) - run_start
            pieces.append(TextRun(text=run.text[:lo] + run.text[hi:], style=run.style))
        return RichText(runs=pieces)


def default_text_style() -> TextStyle:
    """Style for text typed before the user picked one (from settings)."""
    return TextStyle(
        font=FontSpec(family=settings.default_font_family, size=settings.default_font_size),
        color=settings.default_text_color,
    )


def body_rich_text(document: PageDocument) -> RichText:
    """
    The page body as rich text. Documents without (or with unreadable)
    attributed text fall back to the plain body in the default style.
    """
    if document.attributed_body_text:
        try:
            return RichText.from_bytes(document.attributed_body_text)
        except DecodeError:
            logger.warning("Page %s: attributed body text unreadable, using plain text", document.id)
    return RichText.from_plain(document.body_text, default_text_style())
