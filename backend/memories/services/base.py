"""
Memories Backend: Collaborator Interfaces
==========================================

What:  Abstract contracts the PageController is built against.
How:   Concrete services inherit from these ABCs; tests substitute fakes.
Who:   Passed into PageController(...) by route dependencies.

    ┌────────────────┐  load/save    ┌──────────────┐
    │ PageController │──────────────▶│ DocumentStore│  PageStore (SQLAlchemy)
    │                │  send letter  ├──────────────┤
    │                │──────────────▶│LetterTransport│ LetterService
    │                │  template     ├──────────────┤
    │                │──────────────▶│TemplateSource│  FileService
    └────────────────┘               └──────────────┘
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from memories.canvas.document import PageDocument


class DocumentStore(ABC):
    """
    Persistence for page documents.

    Blobs (drawing data, rich text, item images) must come back byte-for-byte.
    """

    @abstractmethod
    async def load_document(self, page_id: uuid.UUID) -> PageDocument:
        """
        Raises:
            NotFoundError: No page with this id.
            DatabaseError: The store could not be read.
        """
        ...

    @abstractmethod
    async def save_document(self, document: PageDocument) -> None:
        """
        Raises:
            NotFoundError: The page row no longer exists.
            DatabaseError: The write failed; the document was NOT saved.
        """
        ...

    @abstractmethod
    async def create_document(
        self,
        kind: str,
        book_id: Optional[uuid.UUID] = None,
        author_id: Optional[uuid.UUID] = None,
    ) -> PageDocument:
        """Creates and stores an empty page of `kind` ("letter" or "memory")."""
        ...


class LetterReceipt(BaseModel):
    """Proof that a flattened letter was accepted for delivery."""

    id: uuid.UUID
    recipient_id: uuid.UUID
    sender_id: Optional[uuid.UUID] = None
    image_url: str
    created_at: datetime


class LetterTransport(ABC):
    @abstractmethod
    async def send(
        self,
        recipient_id: uuid.UUID,
        image_bytes: bytes,
        sender_id: Optional[uuid.UUID] = None,
    ) -> LetterReceipt:
        """
        Delivers a flattened page to `recipient_id`.

        Raises:
            TransmissionError: Delivery failed; the user may retry.
        """
        ...


class TemplateSource(ABC):
    @abstractmethod
    async def load_template(self, name: str) -> bytes:
        """
        Resolves a background template name to encoded image bytes.

        Raises:
            NotFoundError: No template with this name.
        """
        ...
