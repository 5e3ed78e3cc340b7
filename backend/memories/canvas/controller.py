"""
Memories Backend: Page Controller
==================================

What:  The single owner of document mutation during an editing session.
How:   PageController binds one PageDocument at a time in an EditorSession.
       Every mutating call goes through the controller, updates the document
       and then notifies the session's subscribers with a ChangeEvent.
Who:   Driven by the HTTP routes (one short session per request) or by any
       interactive caller holding a controller for a whole editing session.

Collaborators are passed to the constructor, never looked up globally:

    PageController(
        store=PageStore(db),          # load/save documents
        transport=LetterService(db),  # send flattened letters
        templates=file_service,       # background template bytes
        ink_renderer=None,            # rasterizes drawing_data, optional
    )

Session lifecycle:

    load_session(doc) ──▶ live ──mutations──▶ live ──close()──▶ closed
                                                           │
              late image loads / late mutations ◀──────────┘
              are discarded / raise SessionClosedError
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Tuple, Union

from pydantic import BaseModel

from memories.canvas import items as canvas_items
from memories.canvas.document import (
    Background,
    BackgroundKind,
    CanvasItem,
    PageDocument,
    normalize_color,
)
from memories.canvas.geometry import Point, Rect, Size
from memories.canvas.render import InkRenderer, flatten
from memories.canvas.rich_text import FontSpec, RichText, TextStyle, body_rich_text, default_text_style
from memories.config import settings
from memories.exceptions import MemoriesError, NotFoundError, SessionClosedError, ValidationError

if TYPE_CHECKING:
    from memories.services.base import DocumentStore, LetterReceipt, LetterTransport, TemplateSource

logger = logging.getLogger(__name__)

# Supplies (image_bytes, natural_size) for a picked image.
ImageLoader = Callable[[], Awaitable[Tuple[bytes, Size]]]


class ChangeKind(str, Enum):
    ITEM_ADDED = "item_added"
    ITEM_UPDATED = "item_updated"
    ITEM_REMOVED = "item_removed"
    TEXT_CHANGED = "text_changed"
    TYPING_STYLE_CHANGED = "typing_style_changed"
    BACKGROUND_CHANGED = "background_changed"
    DRAWING_CHANGED = "drawing_changed"


class ChangeEvent(BaseModel):
    kind: ChangeKind
    item_id: Optional[uuid.UUID] = None

    model_config = {"frozen": True}


Listener = Callable[[ChangeEvent], None]


class EditorSession:
    """
    One document bound for editing.

    Attributes:
        document:      The page being edited (owned exclusively by this session)
        typing_style:  Style newly typed characters receive
        dirty:         True when there are changes not yet saved successfully
        live:          False once the session is closed
    """

    def __init__(self, document: PageDocument):
        self.document = document
        self.typing_style: TextStyle = (
            body_rich_text(document).style_at(len(document.body_text)) or default_text_style()
        )
        self.dirty = False
        self.live = True
        self.image_generation = 0
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers `listener`; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # A broken listener must not undo a mutation already applied.
                logger.exception("Change listener failed for %s", event.kind.value)

    def ensure_live(self) -> None:
        if not self.live:
            raise SessionClosedError(context={"page_id": str(self.document.id)})

    def close(self) -> None:
        self.live = False
        self.image_generation += 1
        self._listeners.clear()


class PageController:
    """
    Orchestrates edits of one page at a time.

    Failure behavior:
        - add_image with undecodable bytes raises DecodeError; no item is added
        - flatten_to_image with empty bounds raises FlattenError
        - send_letter never reaches the transport after a flatten failure
        - save failures propagate (DatabaseError) and leave session.dirty True
        - any mutation on a closed session raises SessionClosedError
    """

    def __init__(
        self,
        store: Optional["DocumentStore"] = None,
        transport: Optional["LetterTransport"] = None,
        templates: Optional["TemplateSource"] = None,
        ink_renderer: Optional[InkRenderer] = None,
    ):
        self.store = store
        self.transport = transport
        self.templates = templates
        self.ink_renderer = ink_renderer
        self._session: Optional[EditorSession] = None

    # ── Session ───────────────────────────────────────────────────────────

    @property
    def session(self) -> EditorSession:
        if self._session is None:
            raise SessionClosedError(message="No page is open for editing")
        return self._session

    @property
    def document(self) -> PageDocument:
        return self.session.document

    def load_session(self, document: PageDocument) -> EditorSession:
        """Binds `document` for editing, closing any previous session."""
        if self._session is not None:
            self._session.close()
        self._session = EditorSession(document)
        logger.debug("Editing session opened for page %s", document.id)
        return self._session

    async def open(self, page_id: uuid.UUID) -> EditorSession:
        document = await self._require(self.store, "document store").load_document(page_id)
        return self.load_session(document)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            logger.debug("Editing session closed for page %s", self._session.document.id)

    def _live_session(self) -> EditorSession:
        session = self.session
        session.ensure_live()
        return session

    def _changed(self, session: EditorSession, kind: ChangeKind, item_id=None) -> None:
        session.dirty = True
        session.notify(ChangeEvent(kind=kind, item_id=item_id))

    @staticmethod
    def _require(collaborator, name: str):
        if collaborator is None:
            raise MemoriesError(message=f"No {name} is configured for this editor")
        return collaborator

    # ── Items ─────────────────────────────────────────────────────────────

    def add_image(self, image_bytes: bytes, natural_size: Size, center: Point) -> CanvasItem:
        session = self._live_session()
        item = canvas_items.insert_image(image_bytes, natural_size, center)
        session.document.items.append(item)
        self._changed(session, ChangeKind.ITEM_ADDED, item.id)
        logger.info("Added image item %s to page %s", item.id, session.document.id)
        return item

    async def add_image_from(self, loader: ImageLoader, center: Point) -> Optional[CanvasItem]:
        """
        Awaits an image source and adds its result.

        Only the most recent pick is applied: a result that arrives after a
        newer pick started, or after the session was closed, is discarded and
        None is returned.
        """
        session = self._live_session()
        session.image_generation += 1
        generation = session.image_generation

        def stale() -> bool:
            return (
                not session.live
                or session is not self._session
                or generation != session.image_generation
            )

        try:
            image_bytes, natural_size = await loader()
        except MemoriesError:
            if stale():
                logger.info("Discarding failed image load for a superseded pick")
                return None
            raise

        if stale():
            logger.info("Discarding stale image result (generation %d)", generation)
            return None
        return self.add_image(image_bytes, natural_size, center)

    def update_item_transform(self, item_id: uuid.UUID, frame: Rect, rotation: float) -> bool:
        session = self._live_session()
        updated = canvas_items.update_transform(session.document.items, item_id, frame, rotation)
        if updated:
            self._changed(session, ChangeKind.ITEM_UPDATED, item_id)
        return updated

    def remove_item(self, item_id: uuid.UUID) -> bool:
        session = self._live_session()
        removed = canvas_items.remove(session.document.items, item_id)
        if removed:
            self._changed(session, ChangeKind.ITEM_REMOVED, item_id)
        return removed

    def update_text_item(self, item_id: uuid.UUID, text: str) -> bool:
        """Edits a legacy floating text box."""
        session = self._live_session()
        updated = canvas_items.update_text_content(session.document.items, item_id, text)
        if updated:
            self._changed(session, ChangeKind.ITEM_UPDATED, item_id)
        return updated

    # ── Rich Text ─────────────────────────────────────────────────────────

    @property
    def rich_text(self) -> RichText:
        return body_rich_text(self.document)

    def _write_rich_text(self, session: EditorSession, rich: RichText) -> None:
        session.document.set_attributed_body_text(rich.to_bytes())
        session.document.set_body_text(rich.plain_text)
        self._changed(session, ChangeKind.TEXT_CHANGED)

    def set_rich_text(self, rich: RichText) -> None:
        self._write_rich_text(self._live_session(), rich)

    def apply_text_style(self, start: int, length: int, font: FontSpec, color: str) -> None:
        """
        Restyles the range when it is non-empty, and in every case makes
        font/color the typing style, so a caret moved without a selection
        does not pick up its neighbour's style.
        """
        session = self._live_session()
        try:
            style = TextStyle(font=font, color=color)
        except ValueError as e:
            raise ValidationError(message=str(e), field="color") from e

        if length > 0:
            restyled = self.rich_text.apply_style(start, length, style)
            self._write_rich_text(session, restyled)
        session.typing_style = style
        session.notify(ChangeEvent(kind=ChangeKind.TYPING_STYLE_CHANGED))

    def insert_text(self, position: int, text: str) -> None:
        session = self._live_session()
        self._write_rich_text(
            session, self.rich_text.insert_text(position, text, session.typing_style)
        )

    def delete_text(self, start: int, length: int) -> None:
        session = self._live_session()
        self._write_rich_text(session, self.rich_text.delete(start, length))

    # ── Background & Ink ──────────────────────────────────────────────────

    def set_background(self, kind: Union[BackgroundKind, str], value: Optional[str] = None) -> Background:
        """
        Changes the page background.

        color: stores the color and clears any template name.
        image: stores the template name; a stored color is kept but no
               longer displayed, and reappears if the template is removed.
        none:  clears both.
        """
        session = self._live_session()
        try:
            kind = BackgroundKind(kind)
        except ValueError as e:
            raise ValidationError(
                message=f"Unknown background kind '{kind}'", field="kind"
            ) from e

        document = session.document
        if kind is BackgroundKind.COLOR:
            try:
                color = normalize_color(value or "")
            except ValueError as e:
                raise ValidationError(message=str(e), field="value") from e
            document.set_background_color(color)
            document.set_background_image(None)
        elif kind is BackgroundKind.IMAGE:
            if not value:
                raise ValidationError(message="A template name is required", field="value")
            document.set_background_image(value)
        else:
            document.set_background_color(None)
            document.set_background_image(None)

        self._changed(session, ChangeKind.BACKGROUND_CHANGED)
        return document.background

    def set_drawing_data(self, drawing_data: bytes) -> None:
        session = self._live_session()
        session.document.drawing_data = drawing_data
        self._changed(session, ChangeKind.DRAWING_CHANGED)

    # ── Flatten / Save / Send ─────────────────────────────────────────────

    async def _template_bytes(self, document: PageDocument) -> Optional[bytes]:
        name = document.background_image_name
        if not name or self.templates is None:
            return None
        try:
            return await self.templates.load_template(name)
        except NotFoundError:
            logger.warning("Background template '%s' is missing; rendering without it", name)
            return None

    async def flatten_to_image(self, page_bounds: Size) -> bytes:
        """
        Composites the page into a JPEG sized for `page_bounds`.

        The render runs in a worker thread on a copy of the document, so the
        session stays responsive and later edits cannot tear the snapshot.
        """
        document = self.document.model_copy(deep=True)
        template = await self._template_bytes(document)
        return await asyncio.to_thread(
            flatten,
            document,
            page_bounds,
            settings.flatten_jpeg_quality,
            template,
            self.ink_renderer,
        )

    async def save(self) -> None:
        """
        Persists the document through the store.

        A failure is raised to the caller and the session stays dirty; there
        is no automatic retry.
        """
        session = self.session
        store = self._require(self.store, "document store")
        await store.save_document(session.document)
        session.dirty = False
        logger.info("Saved page %s", session.document.id)

    async def send_letter(
        self,
        recipient_id: uuid.UUID,
        page_bounds: Size,
        sender_id: Optional[uuid.UUID] = None,
    ) -> "LetterReceipt":
        """Flattens the page and hands the snapshot to the letter transport."""
        transport = self._require(self.transport, "letter transport")
        image = await self.flatten_to_image(page_bounds)
        receipt = await transport.send(recipient_id, image, sender_id=sender_id)
        logger.info("Letter %s sent to %s", receipt.id, recipient_id)
        return receipt
