"""
Memories Backend: Page Document Model
======================================

What:  The serializable representation of one canvas page and its items.
How:   Pydantic models with camelCase aliases. Binary blobs travel as base64
       strings in JSON and stay raw bytes in Python.
Who:   Owned by an EditorSession while editing; stored by a DocumentStore.
When:  Created empty for a new page, or decoded from stored JSON.

Persisted format (field names are stable, the mobile client reads them):

    {
      "id": "6F9619FF-8B86-D011-B42D-00C04FC964FF",
      "drawingData": "<base64>",
      "items": [
        {"id": "...", "frame": [[375, 637.5], [250, 125]], "rotation": 0.0,
         "type": "image", "imageData": "<base64>", "textContent": null}
      ],
      "bodyText": "Dear Anna...",
      "attributedBodyText": "<base64 rich text>",
      "backgroundColor": "#FFF6E0",
      "backgroundImageName": "letterbg1"
    }

This module performs no I/O and keeps no references to collaborators.
"""

import base64
import binascii
import json
import uuid
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from memories.canvas.geometry import Rect, Size


# Fixed page dimensions; every frame and text layout lives in this space.
VIRTUAL_PAGE_SIZE = Size(width=1000, height=1400)

DEFAULT_BACKGROUND_COLOR = "#FFFFFF"


def _decode_blob(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"blob is not valid base64: {e}") from e
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def _encode_blob(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


# Raw bytes in Python, base64 text in JSON.
Blob = Annotated[
    bytes,
    BeforeValidator(_decode_blob),
    PlainSerializer(_encode_blob, return_type=str, when_used="json"),
]


def normalize_color(value: str) -> str:
    """
    Normalizes a color to upper-case #RRGGBB or #RRGGBBAA.

    Raises ValueError for anything else.
    """
    body = value.strip().lstrip("#")
    if len(body) not in (6, 8):
        raise ValueError(f"color '{value}' must be #RRGGBB or #RRGGBBAA")
    try:
        int(body, 16)
    except ValueError as e:
        raise ValueError(f"color '{value}' is not hexadecimal") from e
    return "#" + body.upper()


class _CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "validate_assignment": True,
    }


# ══════════════════════════════════════════════════════════════════════════
# Canvas Items
# ══════════════════════════════════════════════════════════════════════════

class ItemType(str, Enum):
    """Variant tag for canvas items. TEXT is the legacy floating text box."""

    IMAGE = "image"
    TEXT = "text"


class CanvasItem(_CamelModel):
    """
    One positioned element on the page.

    Invariants:
        - `frame` is the unrotated rectangle in virtual page units.
        - `rotation` is in radians, applied about frame.center.
        - `image_data` is present iff type is IMAGE.
        - `text_content` is present iff type is TEXT.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    frame: Rect
    rotation: float = 0.0
    type: ItemType
    image_data: Optional[Blob] = None
    text_content: Optional[str] = None

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "CanvasItem":
        if self.type is ItemType.IMAGE:
            if self.image_data is None:
                raise ValueError("image items require imageData")
            if self.text_content is not None:
                raise ValueError("image items cannot carry textContent")
        else:
            if self.text_content is None:
                raise ValueError("text items require textContent")
            if self.image_data is not None:
                raise ValueError("text items cannot carry imageData")
        return self

    @property
    def is_legacy_text(self) -> bool:
        return self.type is ItemType.TEXT


# ══════════════════════════════════════════════════════════════════════════
# Background Variant
# ══════════════════════════════════════════════════════════════════════════

class BackgroundKind(str, Enum):
    NONE = "none"
    COLOR = "color"
    IMAGE = "image"


class Background(BaseModel):
    """
    The background that is actually displayed: nothing, a color, or a
    named template image. Exactly one is active at a time.
    """

    kind: BackgroundKind = BackgroundKind.NONE
    value: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def none(cls) -> "Background":
        return cls()

    @classmethod
    def color(cls, value: str) -> "Background":
        return cls(kind=BackgroundKind.COLOR, value=normalize_color(value))

    @classmethod
    def image(cls, name: str) -> "Background":
        if not name:
            raise ValueError("template name must not be empty")
        return cls(kind=BackgroundKind.IMAGE, value=name)

    @property
    def fill_color(self) -> str:
        """Color painted beneath everything (white unless a color is active)."""
        if self.kind is BackgroundKind.COLOR and self.value:
            return self.value
        return DEFAULT_BACKGROUND_COLOR


# ══════════════════════════════════════════════════════════════════════════
# Page Document
# ══════════════════════════════════════════════════════════════════════════

class PageDocument(_CamelModel):
    """
    The persisted state of one page.

    `attributed_body_text` is authoritative for rendering; `body_text` is its
    plain mirror for search and previews. Both are written together by the
    PageController; the setters here do not derive one from the other.

    Both background fields may be stored, but only one is displayed:
    the template image wins when present (see `background`).
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, frozen=True)
    drawing_data: Blob = b""
    items: List[CanvasItem] = Field(default_factory=list)
    body_text: str = ""
    attributed_body_text: Optional[Blob] = None
    background_color: Optional[str] = None
    background_image_name: Optional[str] = None

    @field_validator("background_color")
    @classmethod
    def _validate_background_color(cls, v: Optional[str]) -> Optional[str]:
        return normalize_color(v) if v is not None else None

    # ── Construction ──────────────────────────────────────────────────────

    @classmethod
    def create_empty(cls) -> "PageDocument":
        """New id, no items, empty drawing, default (white) background."""
        return cls()

    # ── Accessors / Mutators ──────────────────────────────────────────────

    def set_body_text(self, text: str) -> None:
        self.body_text = text

    def set_attributed_body_text(self, rich_bytes: Optional[bytes]) -> None:
        self.attributed_body_text = rich_bytes

    def set_background_color(self, color: Optional[str]) -> None:
        """Stores the color. Clearing backgroundImageName is the caller's job."""
        self.background_color = color

    def set_background_image(self, name: Optional[str]) -> None:
        """Stores the template name; any stored color becomes superseded."""
        self.background_image_name = name or None

    @property
    def background(self) -> Background:
        if self.background_image_name:
            return Background.image(self.background_image_name)
        if self.background_color:
            return Background.color(self.background_color)
        return Background.none()

    def find_item(self, item_id: uuid.UUID) -> Optional[CanvasItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    # ── Serialization ─────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        """JSON-compatible dict using the persisted field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> "PageDocument":
        return cls.model_validate(data)

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PageDocument":
        return cls.model_validate_json(raw)
