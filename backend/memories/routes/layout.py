"""
Memories Backend: Layout Routes
================================

What:  Exposes the coordinate math so thin clients (and the web preview)
       place the page and resize items exactly like the editor does.

Endpoints:
    POST /api/layout/fit       viewport → scale and page placement
    POST /api/layout/resize    resize-handle drag → new frame and center
"""

from fastapi import APIRouter

from memories.canvas.transform import fit_to_viewport, resize_maintaining_aspect
from memories.schemas.common import ErrorResponse
from memories.schemas.page import FitRequest, FitResponse, ResizeRequest, ResizeResponse

router = APIRouter(prefix="/api/layout", tags=["Layout"])


@router.post("/fit", response_model=FitResponse, responses={400: {"model": ErrorResponse}})
async def fit(body: FitRequest) -> FitResponse:
    result = fit_to_viewport(body.viewport, body.padding, body.safe_area)
    return FitResponse(
        scale=result.scale,
        center_offset=result.center_offset,
        page_origin=result.page_origin,
    )


@router.post("/resize", response_model=ResizeResponse, responses={400: {"model": ErrorResponse}})
async def resize(body: ResizeRequest) -> ResizeResponse:
    frame, center = resize_maintaining_aspect(
        body.initial_frame, body.initial_rotation, body.drag_delta
    )
    return ResizeResponse(frame=frame, center=center)
