"""
Memories Backend: Letter SQLAlchemy Model
==========================================

What:  ORM model for the `letters` table: one row per flattened page sent
       from one user to another.
How:   The JPEG itself lives in file storage; `image_url` is the API path
       that serves it.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from memories.database import Base


class Letter(Base):
    __tablename__ = "letters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    recipient_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    image_url: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="API path of the flattened JPEG"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    # Inbox query: newest letters for one recipient.
    __table_args__ = (
        Index("idx_letters_recipient_created", "recipient_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Letter(id={self.id}, recipient_id={self.recipient_id})>"
