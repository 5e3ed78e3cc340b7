"""
Memories Backend: Page SQLAlchemy Model
========================================

What:  ORM model for the `pages` table: one row per canvas page.
How:   The whole PageDocument is stored as one JSON value (`content_json`,
       JSONB on PostgreSQL) in its persisted camelCase form. Binary blobs
       inside it are base64 strings.
Who:   Read and written by PageStore only.

A page belongs to a book ("memory" pages) or stands alone ("letter" drafts).
The social layer owns books and authors; here they are plain ids.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from memories.database import Base

PAGE_KINDS = ("letter", "memory")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Page(Base):
    __tablename__ = "pages"

    # Same value as the document's own id.
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    book_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, comment="Owning memory book; NULL for letter drafts"
    )
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="memory", comment="letter | memory"
    )

    content_json: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        comment="Serialized PageDocument (camelCase keys, base64 blobs)",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("type IN ('letter', 'memory')", name="ck_pages_type"),
        Index("idx_pages_book_id", "book_id"),
    )

    def __repr__(self) -> str:
        return f"<Page(id={self.id}, type='{self.type}', book_id={self.book_id})>"
