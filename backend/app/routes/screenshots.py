"""
ScreenShelf Backend - Screenshot Route Handlers
=================================================

What:  Upload, list and fetch screenshots.
How:   Thin handlers; UploadPipeline and ScreenshotService do the work and
       raise typed exceptions that the global handlers turn into
       {"error": ...} bodies.
Who:   Mounted by create_app() under SCREENSHOTS_PREFIX (default /api/screenshots).

Routes:
    POST /               multipart: screenshot (file), username (optional) → 201
    GET  /               list of {username, carouselText, progressText, fileId}
    GET  /image/{id}     stored bytes, stored content type

Caching:
    GET /image/{id} is cacheable for an hour; stored items never change.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from app.dependencies import get_screenshot_service, get_upload_pipeline
from app.schemas.screenshot import ErrorResponse, ScreenshotListItem, UploadResponse
from app.services.screenshot_service import ScreenshotService
from app.services.upload_service import UploadPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Screenshots"])


@router.post(
    "",
    status_code=201,
    response_model=UploadResponse,
    responses={
        201: {"description": "Screenshot stored", "model": UploadResponse},
        400: {"description": "No file uploaded, or file too large", "model": ErrorResponse},
        500: {"description": "OCR, storage or unexpected failure", "model": ErrorResponse},
    },
    summary="Upload a screenshot",
    description=(
        "Runs OCR on the uploaded screenshot, generates a short description of "
        "its content and stores the image with that description."
    ),
)
@router.post("/", status_code=201, response_model=UploadResponse, include_in_schema=False)
async def upload_screenshot(
    screenshot: Optional[UploadFile] = File(None, description="Screenshot image file"),
    username: Optional[str] = Form(None, description="Uploader name, 'Unknown' when omitted"),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
) -> UploadResponse:
    logger.info(
        "Received upload: filename=%s, username=%s",
        screenshot.filename if screenshot is not None else None,
        username,
    )
    try:
        return await pipeline.process_upload(screenshot, username)
    finally:
        if screenshot is not None:
            await screenshot.close()


@router.get(
    "",
    response_model=List[ScreenshotListItem],
    responses={
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="List stored screenshots",
)
@router.get("/", response_model=List[ScreenshotListItem], include_in_schema=False)
async def list_screenshots(
    service: ScreenshotService = Depends(get_screenshot_service),
) -> List[ScreenshotListItem]:
    return await service.list_items()


@router.get(
    "/image/{file_id}",
    response_class=StreamingResponse,
    responses={
        200: {"description": "Stored image bytes"},
        404: {"description": "Image not found", "model": ErrorResponse},
    },
    summary="Fetch a stored screenshot",
)
async def get_image(
    file_id: str,
    service: ScreenshotService = Depends(get_screenshot_service),
) -> StreamingResponse:
    """
    Stream a stored image.

    Lookup and completeness checks happen before the response starts, so a
    missing item is a clean 404 rather than a truncated 200.
    """
    download = await service.get_item(file_id)
    return StreamingResponse(
        download.iter_chunks(),
        media_type=download.content_type,
        headers={
            "Content-Length": str(download.length),
            "Cache-Control": "public, max-age=3600, immutable",
            "X-Content-Type-Options": "nosniff",
        },
    )
