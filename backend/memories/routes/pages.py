"""
Memories Backend: Page Editing Routes
======================================

What:  HTTP surface of the page editor.
How:   Each request opens a PageController session on the stored page,
       applies one edit, saves, and answers. The controller enforces every
       editing rule; these handlers only translate HTTP to controller calls.

Endpoints:
    POST   /api/pages                          create an empty page
    GET    /api/pages?book_id=                 pages of a memory book
    GET    /api/pages/{id}                     page + document
    PUT    /api/pages/{id}                     replace the whole document
    POST   /api/pages/{id}/items               upload an image item
    PATCH  /api/pages/{id}/items/{item_id}     move / resize / rotate
    DELETE /api/pages/{id}/items/{item_id}     remove (204 even if absent)
    PUT    /api/pages/{id}/body                replace the rich-text body
    POST   /api/pages/{id}/text-style          restyle a text range
    PUT    /api/pages/{id}/background          color, template or none
    GET    /api/pages/{id}/snapshot            flattened JPEG
    POST   /api/pages/{id}/letters             flatten and send as a letter
    GET    /api/templates                      background template names

The typing style only lives as long as one editing session, so over HTTP a
zero-length text-style request has no lasting effect.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from memories.canvas.controller import PageController
from memories.canvas.document import PageDocument
from memories.canvas.geometry import Point, Size
from memories.canvas.rich_text import RichText
from memories.config import settings
from memories.database import get_db_session
from memories.exceptions import NotFoundError, ValidationError
from memories.schemas.common import ErrorResponse
from memories.schemas.page import (
    BackgroundRequest,
    BackgroundResponse,
    BodyTextRequest,
    BodyTextResponse,
    CreatePageRequest,
    ItemResponse,
    PageResponse,
    PageSummary,
    SendLetterRequest,
    TemplateListResponse,
    TextStyleRequest,
    UpdateItemRequest,
)
from memories.services.base import LetterReceipt
from memories.services.file_service import file_service
from memories.services.image_service import image_service
from memories.services.letter_service import LetterService
from memories.services.page_service import PageStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pages"])

ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# ── Dependencies ──────────────────────────────────────────────────────────

def get_page_store(db: AsyncSession = Depends(get_db_session)) -> PageStore:
    return PageStore(db)


def get_letter_service(db: AsyncSession = Depends(get_db_session)) -> LetterService:
    return LetterService(db)


def get_controller(
    store: PageStore = Depends(get_page_store),
    transport: LetterService = Depends(get_letter_service),
) -> PageController:
    return PageController(store=store, transport=transport, templates=file_service)


async def _page_response(store: PageStore, page_id: UUID) -> PageResponse:
    page = await store.get_page(page_id)
    return PageResponse(
        id=page.id,
        type=page.type,
        book_id=page.book_id,
        author_id=page.author_id,
        created_at=page.created_at,
        updated_at=page.updated_at,
        document=store.decode(page),
    )


def _body_response(controller: PageController) -> BodyTextResponse:
    rich = controller.rich_text
    return BodyTextResponse(body_text=controller.document.body_text, runs=rich.runs)


# ── Pages ─────────────────────────────────────────────────────────────────

@router.post(
    "/pages",
    response_model=PageResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
    summary="Create an empty page",
)
async def create_page(
    body: CreatePageRequest,
    store: PageStore = Depends(get_page_store),
) -> PageResponse:
    document = await store.create_document(body.type, book_id=body.book_id, author_id=body.author_id)
    return await _page_response(store, document.id)


@router.get("/pages", response_model=List[PageSummary], summary="List the pages of a book")
async def list_pages(
    book_id: UUID = Query(description="Memory book id"),
    store: PageStore = Depends(get_page_store),
) -> List[PageSummary]:
    summaries = []
    for page in await store.list_book_pages(book_id):
        document = store.decode(page)
        summaries.append(
            PageSummary(
                id=page.id,
                type=page.type,
                created_at=page.created_at,
                updated_at=page.updated_at,
                item_count=len(document.items),
                text_preview=document.body_text[:200],
            )
        )
    return summaries


@router.get("/pages/{page_id}", response_model=PageResponse, responses=ERRORS, summary="Get a page")
async def get_page(
    page_id: UUID,
    response: Response,
    store: PageStore = Depends(get_page_store),
) -> PageResponse:
    response.headers["Cache-Control"] = "private, no-cache"
    return await _page_response(store, page_id)


@router.put(
    "/pages/{page_id}",
    response_model=PageResponse,
    responses=ERRORS,
    summary="Replace a page's document",
)
async def replace_page(
    page_id: UUID,
    document: PageDocument,
    controller: PageController = Depends(get_controller),
) -> PageResponse:
    if document.id != page_id:
        raise ValidationError(
            message="Document id does not match the page in the URL",
            field="id",
            context={"path_id": str(page_id), "document_id": str(document.id)},
        )
    controller.load_session(document)
    await controller.save()
    return await _page_response(controller.store, page_id)


# ── Items ─────────────────────────────────────────────────────────────────

@router.post(
    "/pages/{page_id}/items",
    response_model=ItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
    summary="Add an image to the page",
    description=(
        "Multipart upload. The image is placed 250 units wide, keeping its "
        "aspect ratio, centered on (center_x, center_y) in page units."
    ),
)
async def add_image_item(
    page_id: UUID,
    request: Request,
    file: UploadFile = File(description="PNG, JPEG, WEBP or GIF image"),
    center_x: float = Form(default=500.0),
    center_y: float = Form(default=700.0),
    controller: PageController = Depends(get_controller),
) -> ItemResponse:
    content = await file.read()
    content_length = request.headers.get("content-length")
    file_service.validate_upload(content, int(content_length) if content_length else None)

    await controller.open(page_id)
    item = await controller.add_image_from(
        image_service.loader(content), Point(x=center_x, y=center_y)
    )
    await controller.save()
    return ItemResponse.from_item(item)


@router.patch(
    "/pages/{page_id}/items/{item_id}",
    response_model=ItemResponse,
    responses=ERRORS,
    summary="Move, resize or rotate an item",
)
async def update_item(
    page_id: UUID,
    item_id: UUID,
    body: UpdateItemRequest,
    controller: PageController = Depends(get_controller),
) -> ItemResponse:
    await controller.open(page_id)
    if not controller.update_item_transform(item_id, body.frame, body.rotation):
        raise NotFoundError(resource="item", resource_id=str(item_id))
    await controller.save()
    return ItemResponse.from_item(controller.document.find_item(item_id))


@router.delete(
    "/pages/{page_id}/items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove an item (idempotent)",
)
async def delete_item(
    page_id: UUID,
    item_id: UUID,
    controller: PageController = Depends(get_controller),
) -> Response:
    await controller.open(page_id)
    if controller.remove_item(item_id):
        await controller.save()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Text ──────────────────────────────────────────────────────────────────

@router.put("/pages/{page_id}/body", response_model=BodyTextResponse, responses=ERRORS)
async def set_body(
    page_id: UUID,
    body: BodyTextRequest,
    controller: PageController = Depends(get_controller),
) -> BodyTextResponse:
    await controller.open(page_id)
    controller.set_rich_text(RichText(runs=body.runs))
    await controller.save()
    return _body_response(controller)


@router.post("/pages/{page_id}/text-style", response_model=BodyTextResponse, responses=ERRORS)
async def apply_text_style(
    page_id: UUID,
    body: TextStyleRequest,
    controller: PageController = Depends(get_controller),
) -> BodyTextResponse:
    await controller.open(page_id)
    controller.apply_text_style(body.start, body.length, body.font, body.color)
    if controller.session.dirty:
        await controller.save()
    return _body_response(controller)


# ── Background ────────────────────────────────────────────────────────────

@router.put("/pages/{page_id}/background", response_model=BackgroundResponse, responses=ERRORS)
async def set_background(
    page_id: UUID,
    body: BackgroundRequest,
    controller: PageController = Depends(get_controller),
) -> BackgroundResponse:
    await controller.open(page_id)
    active = controller.set_background(body.kind, body.value)
    await controller.save()
    document = controller.document
    return BackgroundResponse(
        kind=active.kind,
        value=active.value,
        background_color=document.background_color,
        background_image_name=document.background_image_name,
    )


@router.get("/templates", response_model=TemplateListResponse, summary="Background templates")
async def list_templates() -> TemplateListResponse:
    return TemplateListResponse(templates=file_service.list_templates())


# ── Snapshot & Letters ────────────────────────────────────────────────────

@router.get(
    "/pages/{page_id}/snapshot",
    responses={200: {"content": {"image/jpeg": {}}}, **ERRORS, 422: {"model": ErrorResponse}},
    summary="Flatten the page to a JPEG",
)
async def snapshot(
    page_id: UUID,
    width: float = Query(default=1000, le=settings.max_render_dimension, allow_inf_nan=False),
    height: float = Query(default=1400, le=settings.max_render_dimension, allow_inf_nan=False),
    controller: PageController = Depends(get_controller),
) -> Response:
    await controller.open(page_id)
    image = await controller.flatten_to_image(Size(width=width, height=height))
    return Response(
        content=image,
        media_type="image/jpeg",
        headers={"Cache-Control": "private, no-store"},
    )


@router.post(
    "/pages/{page_id}/letters",
    response_model=LetterReceipt,
    status_code=status.HTTP_201_CREATED,
    responses={**ERRORS, 422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Send the page as a letter",
)
async def send_letter(
    page_id: UUID,
    body: SendLetterRequest,
    controller: PageController = Depends(get_controller),
) -> LetterReceipt:
    await controller.open(page_id)
    return await controller.send_letter(
        body.recipient_id,
        Size(width=body.width, height=body.height),
        sender_id=body.sender_id,
    )
