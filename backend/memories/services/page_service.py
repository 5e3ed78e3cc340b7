"""
Memories Backend: Page Store (DocumentStore over SQLAlchemy)
=============================================================

What:  Loads and saves PageDocuments in the `pages` table.
How:   The document travels as its persisted JSON dict (camelCase keys,
       base64 blobs) in `content_json`. Decoding through PageDocument keeps
       blobs byte-exact across a save/load round trip.
Who:   Constructed per request with that request's AsyncSession and
       injected into a PageController.

Error translation:
    missing row          → NotFoundError  (404)
    SQLAlchemy failure   → DatabaseError  (500, details logged only)
    undecodable content  → DatabaseError  (the stored row is corrupt)

A failed save is always raised; the caller's session stays dirty.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memories.canvas.document import PageDocument
from memories.exceptions import DatabaseError, NotFoundError, ValidationError
from memories.models.page import PAGE_KINDS, Page
from memories.services.base import DocumentStore

logger = logging.getLogger(__name__)


class PageStore(DocumentStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_page(self, page_id: uuid.UUID) -> Page:
        """The `pages` row for `page_id`, or NotFoundError."""
        try:
            page = await self.db.get(Page, page_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching page %s: %s", page_id, e)
            raise DatabaseError(
                message="Could not load the page. Please try again.",
                context={"page_id": str(page_id)},
            ) from e
        if page is None:
            raise NotFoundError(resource="page", resource_id=str(page_id))
        return page

    @staticmethod
    def decode(page: Page) -> PageDocument:
        try:
            return PageDocument.from_dict(page.content_json)
        except PydanticValidationError as e:
            logger.error("Stored page %s is not a valid document: %s", page.id, e)
            raise DatabaseError(
                message="The stored page could not be read.",
                context={"page_id": str(page.id), "error_count": e.error_count()},
            ) from e

    async def load_document(self, page_id: uuid.UUID) -> PageDocument:
        return self.decode(await self.get_page(page_id))

    async def save_document(self, document: PageDocument) -> None:
        page = await self.get_page(document.id)
        page.content_json = document.to_dict()
        page.updated_at = datetime.now(timezone.utc)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error saving page %s: %s", document.id, e)
            raise DatabaseError(
                message="The page could not be saved. Please try again.",
                context={"page_id": str(document.id)},
            ) from e
        logger.info("Page %s saved (%d items)", document.id, len(document.items))

    async def create_document(
        self,
        kind: str,
        book_id: Optional[uuid.UUID] = None,
        author_id: Optional[uuid.UUID] = None,
    ) -> PageDocument:
        if kind not in PAGE_KINDS:
            raise ValidationError(
                message=f"Page type must be one of: {', '.join(PAGE_KINDS)}",
                field="type",
            )
        document = PageDocument.create_empty()
        self.db.add(
            Page(
                id=document.id,
                book_id=book_id,
                author_id=author_id,
                type=kind,
                content_json=document.to_dict(),
            )
        )
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating page: %s", e)
            raise DatabaseError(
                message="The page could not be created. Please try again.",
                context={"type": kind},
            ) from e
        logger.info("Created %s page %s", kind, document.id)
        return document

    async def list_book_pages(self, book_id: uuid.UUID) -> List[Page]:
        """Pages of one memory book, oldest first."""
        try:
            result = await self.db.execute(
                select(Page).where(Page.book_id == book_id).order_by(Page.created_at.asc())
            )
        except SQLAlchemyError as e:
            logger.error("Database error listing pages of book %s: %s", book_id, e)
            raise DatabaseError(
                message="Could not load the book's pages.",
                context={"book_id": str(book_id)},
            ) from e
        return list(result.scalars().all())
