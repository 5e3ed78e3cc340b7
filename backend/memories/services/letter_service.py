"""
Memories Backend: Letter Service (LetterTransport)
===================================================

What:  Delivers a flattened page ("letter") to another user.
How:   1. Write the JPEG to letters/YYYY/MM/DD/<uuid>.jpg (retried with
          tenacity on storage errors, exponential backoff with jitter)
       2. Insert a `letters` row pointing at /api/files/<path>
       The whole send is bounded by settings.transmission_timeout.
Who:   PageController.send_letter; GET /api/letters for the inbox.

Failure handling:
    Every failure reaches the caller as TransmissionError (retryable), so the
    app can show a dismissible error with a retry button. A JPEG written for
    a letter whose row insert failed is deleted again.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from memories.config import settings
from memories.exceptions import DatabaseError, FileStorageError, TransmissionError
from memories.models.letter import Letter
from memories.services.base import LetterReceipt, LetterTransport
from memories.services.file_service import FileService, file_service

logger = logging.getLogger(__name__)

LETTERS_FOLDER = "letters"


def _receipt(letter: Letter) -> LetterReceipt:
    return LetterReceipt(
        id=letter.id,
        recipient_id=letter.recipient_id,
        sender_id=letter.sender_id,
        image_url=letter.image_url,
        created_at=letter.created_at,
    )


class LetterService(LetterTransport):
    def __init__(self, db: AsyncSession, files: Optional[FileService] = None):
        self.db = db
        self.files = files or file_service

    async def send(
        self,
        recipient_id: uuid.UUID,
        image_bytes: bytes,
        sender_id: Optional[uuid.UUID] = None,
    ) -> LetterReceipt:
        """
        Stores the letter image and records it for the recipient.

        Raises:
            TransmissionError: Storage or database failed after retries, or
                the send ran past settings.transmission_timeout.
        """
        if not image_bytes:
            raise TransmissionError(message="There is no letter image to send.", retryable=False)

        try:
            receipt = await asyncio.wait_for(
                self._deliver(recipient_id, image_bytes, sender_id),
                timeout=settings.transmission_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "Letter to %s timed out after %.1fs", recipient_id, settings.transmission_timeout
            )
            raise TransmissionError(
                message="Sending the letter took too long. Please try again.",
                context={"timeout": settings.transmission_timeout},
            ) from e
        except (FileStorageError, DatabaseError) as e:
            logger.error("Letter to %s failed: %s", recipient_id, e.message)
            raise TransmissionError(
                message=f"The letter could not be sent: {e.message}",
                context={"cause": type(e).__name__},
            ) from e

        logger.info("Letter %s delivered to %s (%d bytes)", receipt.id, recipient_id, len(image_bytes))
        return receipt

    async def _deliver(
        self,
        recipient_id: uuid.UUID,
        image_bytes: bytes,
        sender_id: Optional[uuid.UUID],
    ) -> LetterReceipt:
        absolute_path, relative_path = await self._store_with_retry(image_bytes)

        letter = Letter(
            id=uuid.uuid4(),
            sender_id=sender_id,
            recipient_id=recipient_id,
            image_url=f"/api/files/{relative_path}",
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(letter)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.files.cleanup_file(absolute_path)
            raise DatabaseError(
                message="The letter could not be recorded.",
                context={"recipient_id": str(recipient_id)},
            ) from e
        except asyncio.CancelledError:
            # The send timed out with the file already written.
            await self.files.cleanup_file(absolute_path)
            raise
        return _receipt(letter)

    @retry(
        retry=retry_if_exception_type(FileStorageError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _store_with_retry(self, image_bytes: bytes):
        return await self.files.store_file(image_bytes, ".jpg", folder=LETTERS_FOLDER)

    async def list_received(self, recipient_id: uuid.UUID, limit: int = 50) -> List[LetterReceipt]:
        """The recipient's letters, newest first."""
        try:
            result = await self.db.execute(
                select(Letter)
                .where(Letter.recipient_id == recipient_id)
                .order_by(Letter.created_at.desc())
                .limit(limit)
            )
        except SQLAlchemyError as e:
            logger.error("Database error listing letters for %s: %s", recipient_id, e)
            raise DatabaseError(
                message="Could not load letters. Please try again.",
                context={"recipient_id": str(recipient_id)},
            ) from e
        return [_receipt(letter) for letter in result.scalars().all()]
