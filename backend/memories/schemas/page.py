"""
Memories Backend: Page & Layout API Schemas
============================================

What:  Request/response contracts for the page editing endpoints and the
       layout math endpoints.
How:   Pydantic models; canvas value types (Rect, Point, RichText runs,
       PageDocument) are reused directly so the wire format matches the
       stored document format.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from memories.canvas.document import BackgroundKind, CanvasItem, ItemType, PageDocument
from memories.canvas.geometry import EdgeInsets, Point, Rect, Size
from memories.canvas.rich_text import FontSpec, TextRun
from memories.config import settings


# ══════════════════════════════════════════════════════════════════════════
# Pages
# ══════════════════════════════════════════════════════════════════════════

class CreatePageRequest(BaseModel):
    type: Literal["letter", "memory"] = Field(
        default="memory", description="letter: a draft to send; memory: a book page"
    )
    book_id: Optional[uuid.UUID] = None
    author_id: Optional[uuid.UUID] = None


class PageResponse(BaseModel):
    """A page row plus its full document (camelCase, base64 blobs)."""

    id: uuid.UUID
    type: str
    book_id: Optional[uuid.UUID] = None
    author_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    document: PageDocument


class PageSummary(BaseModel):
    id: uuid.UUID
    type: str
    created_at: datetime
    updated_at: datetime
    item_count: int
    text_preview: str = Field(description="First 200 characters of the body text")


class ItemResponse(BaseModel):
    """An item without its image payload."""

    id: uuid.UUID
    type: ItemType
    frame: Rect
    rotation: float

    @classmethod
    def from_item(cls, item: CanvasItem) -> "ItemResponse":
        return cls(id=item.id, type=item.type, frame=item.frame, rotation=item.rotation)


class UpdateItemRequest(BaseModel):
    frame: Rect = Field(description="Unrotated frame, [[x, y], [width, height]] or an object")
    rotation: float = Field(default=0.0, description="Radians, clockwise, about the frame center")


class BodyTextRequest(BaseModel):
    runs: List[TextRun] = Field(default_factory=list)


class BodyTextResponse(BaseModel):
    body_text: str
    runs: List[TextRun]


class TextStyleRequest(BaseModel):
    start: int = Field(ge=0)
    length: int = Field(ge=0, description="0 only changes the typing style")
    font: FontSpec
    color: str = Field(description="#RRGGBB or #RRGGBBAA")


class BackgroundRequest(BaseModel):
    kind: BackgroundKind
    value: Optional[str] = Field(default=None, description="Color hex or template name")


class BackgroundResponse(BaseModel):
    kind: BackgroundKind
    value: Optional[str] = None
    background_color: Optional[str] = Field(default=None, description="Stored color, even if superseded")
    background_image_name: Optional[str] = None


class SendLetterRequest(BaseModel):
    recipient_id: uuid.UUID
    sender_id: Optional[uuid.UUID] = None
    width: float = Field(
        default=1000,
        le=settings.max_render_dimension,
        allow_inf_nan=False,
        description="Render bounds width in pixels",
    )
    height: float = Field(
        default=1400,
        le=settings.max_render_dimension,
        allow_inf_nan=False,
        description="Render bounds height in pixels",
    )


class TemplateListResponse(BaseModel):
    templates: List[str]


# ══════════════════════════════════════════════════════════════════════════
# Layout
# ══════════════════════════════════════════════════════════════════════════

class FitRequest(BaseModel):
    viewport: Size
    padding: float = Field(default_factory=lambda: settings.fit_padding, ge=0)
    safe_area: EdgeInsets = Field(default_factory=EdgeInsets)


class FitResponse(BaseModel):
    scale: float
    center_offset: Point
    page_origin: Point


class ResizeRequest(BaseModel):
    initial_frame: Rect
    initial_rotation: float = 0.0
    drag_delta: Point


class ResizeResponse(BaseModel):
    frame: Rect
    center: Point
