"""
Memories Backend: Health Check Route
=====================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Runs SELECT 1 against the database and checks that the storage root
       is writable.

    healthy    both checks pass                       200
    degraded   storage unavailable (reads still work) 200
    unhealthy  database unreachable                   503
"""

import logging
import time

from fastapi import APIRouter, Response

from memories import __version__
from memories.database import check_database
from memories.schemas.common import HealthResponse
from memories.services.file_service import file_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(response: Response) -> HealthResponse:
    database = "connected" if await check_database() else "disconnected"
    storage = "writable" if file_service.check_storage() else "unavailable"

    if database != "connected":
        overall = "unhealthy"
        response.status_code = 503
    elif storage != "writable":
        overall = "degraded"
        logger.warning("Health check: storage root %s not writable", file_service.storage_root)
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=database,
        storage=storage,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
