"""
ScreenShelf Backend - Service Registry & FastAPI Dependencies
===============================================================

What:  Builds every service from one validated Settings object and exposes
       them to route handlers through FastAPI's dependency injection.
How:   create_app() stores a ServiceRegistry on app.state.services; the
       get_* functions below read it back from the request. Tests build
       their own registry (fake OCR / text generation, SQLite database)
       and pass it to create_app().

Wiring:
    Settings ──▶ Database ──▶ BlobStore ──┬──▶ ScreenshotService
                                          │
    Settings ──▶ OpenAIChatService ──▶ DescriptionGenerator ──┐
    Settings ──▶ TesseractOcrService ─────────────────────────┼──▶ UploadPipeline
    Settings ──▶ TempFileService ─────────────────────────────┘
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.config import Settings
from app.database import Database
from app.services.blob_store import BlobStore
from app.services.description_service import DescriptionGenerator
from app.services.file_service import TempFileService
from app.services.llm_base import TextGenerationService
from app.services.ocr_service import OcrService, TesseractOcrService
from app.services.openai_service import OpenAIChatService
from app.services.screenshot_service import ScreenshotService
from app.services.upload_service import UploadPipeline

logger = logging.getLogger(__name__)


@dataclass
class ServiceRegistry:
    """Every long-lived component of one application instance."""
    settings: Settings
    database: Database
    blob_store: BlobStore
    text_generation: TextGenerationService
    ocr: OcrService
    files: TempFileService
    describer: DescriptionGenerator
    pipeline: UploadPipeline
    screenshots: ScreenshotService

    @classmethod
    def build(
        cls,
        settings: Settings,
        database: Optional[Database] = None,
        text_generation: Optional[TextGenerationService] = None,
        ocr: Optional[OcrService] = None,
    ) -> "ServiceRegistry":
        """
        Wire the services for `settings`.

        database, text_generation and ocr may be supplied to replace the
        production adapters (tests use this).
        """
        database = database or Database(settings)
        blob_store = BlobStore(
            database,
            bucket=settings.blob_bucket,
            chunk_size=settings.blob_chunk_size,
        )
        text_generation = text_generation or OpenAIChatService(settings)
        ocr = ocr or TesseractOcrService(
            language=settings.ocr_language,
            timeout=settings.ocr_timeout,
            tesseract_cmd=settings.tesseract_cmd,
        )
        files = TempFileService(
            temp_dir=settings.temp_dir,
            max_file_size=settings.max_file_size,
            chunk_size=settings.upload_read_chunk_size,
        )
        describer = DescriptionGenerator(text_generation)
        pipeline = UploadPipeline(
            files=files,
            ocr=ocr,
            describer=describer,
            blob_store=blob_store,
            ocr_language=settings.ocr_language,
        )
        return cls(
            settings=settings,
            database=database,
            blob_store=blob_store,
            text_generation=text_generation,
            ocr=ocr,
            files=files,
            describer=describer,
            pipeline=pipeline,
            screenshots=ScreenshotService(blob_store),
        )

    async def aclose(self) -> None:
        """Release network clients and database connections."""
        await self.text_generation.aclose()
        await self.database.dispose()
        logger.info("Services closed")


def get_services(request: Request) -> ServiceRegistry:
    return request.app.state.services


def get_upload_pipeline(request: Request) -> UploadPipeline:
    return get_services(request).pipeline


def get_screenshot_service(request: Request) -> ScreenshotService:
    return get_services(request).screenshots
