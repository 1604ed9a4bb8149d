"""
ScreenShelf Backend - Health Check Route
==========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Probes the blob-store database, the text-generation provider (or its
       circuit breaker state) and the OCR engine.
Who:   Docker health checks, load balancers, monitoring.

Status levels:
    healthy:   everything reachable (HTTP 200)
    degraded:  OCR or text generation unavailable / circuit open (HTTP 200).
               Uploads still succeed for text generation outages, with
               fallback descriptions.
    unhealthy: database unreachable (HTTP 503); nothing can be stored or read
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app import __version__
from app.dependencies import ServiceRegistry, get_services
from app.schemas.screenshot import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(services: ServiceRegistry = Depends(get_services)):
    db_status = "connected"
    text_generation_status = "available"
    ocr_status = "available"
    overall = "healthy"

    # ── Database ──────────────────────────────────────────────────────────
    if not await services.database.ping():
        db_status = "disconnected"
        overall = "unhealthy"

    # ── Text generation ───────────────────────────────────────────────────
    circuit_breaker = getattr(services.text_generation, "circuit_breaker", None)
    if circuit_breaker is not None and circuit_breaker.state == circuit_breaker.OPEN:
        text_generation_status = "circuit_open"
    elif not await services.text_generation.health_check():
        text_generation_status = "unavailable"

    # ── OCR ───────────────────────────────────────────────────────────────
    if not await services.ocr.health_check():
        ocr_status = "unavailable"

    if overall != "unhealthy" and (
        text_generation_status != "available" or ocr_status != "available"
    ):
        overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        text_generation=text_generation_status,
        ocr=ocr_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        logger.warning("Health check: unhealthy (database %s)", db_status)
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
