"""
Memories Backend: Letter & File Routes
=======================================

What:  The recipient's inbox of letters, and the endpoint that serves the
       stored letter images.

Endpoints:
    GET /api/letters?recipient_id=     newest letters first
    GET /api/files/{path}              stored file (path-traversal guarded)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from memories.routes.pages import get_letter_service
from memories.schemas.common import ErrorResponse
from memories.schemas.letter import LetterListResponse
from memories.services.file_service import file_service
from memories.services.letter_service import LetterService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Letters"])


@router.get(
    "/letters",
    response_model=LetterListResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Letters received by a user",
)
async def list_letters(
    recipient_id: UUID = Query(description="Recipient user id"),
    limit: int = Query(default=50, ge=1, le=200),
    letters: LetterService = Depends(get_letter_service),
) -> LetterListResponse:
    received = await letters.list_received(recipient_id, limit=limit)
    return LetterListResponse(letters=received, count=len(received))


@router.get(
    "/files/{file_path:path}",
    responses={
        200: {"description": "Stored image"},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Serve a stored file",
)
async def serve_file(file_path: str) -> FileResponse:
    full_path = file_service.resolve(file_path)
    return FileResponse(
        path=str(full_path),
        media_type=file_service.media_type(full_path),
        # Stored files are written once under a UUID name and never change.
        headers={"Cache-Control": "private, max-age=86400, immutable"},
    )
