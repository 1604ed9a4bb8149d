"""
ScreenShelf Backend - Upload Pipeline (Business Logic Orchestrator)
=====================================================================

What:  Sequences one screenshot upload end to end.
How:   Composes TempFileService, OcrService, DescriptionGenerator and
       BlobStore. Holds no per-request state between calls.
Who:   Called by POST {SCREENSHOTS_PREFIX}/ route handler.

Orchestration Flow:
    ┌──────────┐   ┌──────────┐   ┌──────────┐   ┌──────────────┐   ┌──────────┐
    │  Upload  │──▶│ Temp file│──▶│   OCR    │──▶│ Description  │──▶│  Blob    │
    │  (Route) │   │  (disk)  │   │(Tesser.) │   │  (LLM call)  │   │  Store   │
    └──────────┘   └──────────┘   └──────────┘   └──────────────┘   └──────────┘

Error Recovery:
    No file                 → InputError (400), nothing touched on disk
    Oversize file           → InputError (400)
    OCR fails               → OcrFailure (500), not retried
    Description fails       → fallback text, pipeline continues
    Blob write fails        → StorageFailure (500), item rolled back
    Anything else           → UnexpectedError (500)
    Every path              → temp file removed exactly once (finally)
"""

import logging
import time
from typing import Optional

from fastapi import UploadFile

from app.exceptions import InputError, ScreenShelfError, UnexpectedError
from app.schemas.screenshot import UNKNOWN_USERNAME, UploadResponse
from app.services.blob_store import BlobStore
from app.services.description_service import DescriptionGenerator
from app.services.file_service import PendingUpload, TempFileService
from app.services.ocr_service import OcrService

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def normalize_username(username: Optional[str]) -> str:
    """Absent or blank usernames are stored as 'Unknown'; others are kept as sent."""
    if username is None or not username.strip():
        return UNKNOWN_USERNAME
    return username


def build_stored_filename(original_filename: str, now_ms: Optional[int] = None) -> str:
    """`<epoch-ms>-<original name>`; uniqueness comes from the blob id, not this."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{original_filename}"


class UploadPipeline:
    """
    Upload orchestrator.

    Args:
        files:       temp-file lifecycle
        ocr:         OCR adapter
        describer:   description generator (never raises)
        blob_store:  durable storage
        ocr_language: language hint passed to OCR (None = adapter default)
    """

    def __init__(
        self,
        files: TempFileService,
        ocr: OcrService,
        describer: DescriptionGenerator,
        blob_store: BlobStore,
        ocr_language: Optional[str] = None,
    ):
        self.files = files
        self.ocr = ocr
        self.describer = describer
        self.blob_store = blob_store
        self.ocr_language = ocr_language

    async def process_upload(
        self,
        upload: Optional[UploadFile],
        username: Optional[str] = None,
    ) -> UploadResponse:
        """
        Run the pipeline for one upload.

        Returns:
            UploadResponse with the stored item's id and its description.

        Raises:
            InputError, OcrFailure, StorageFailure, UnexpectedError
        """
        pending: Optional[PendingUpload] = None
        start_time = time.perf_counter()

        try:
            # ── Step 1: A file must be present ────────────────────────────
            if upload is None or not upload.filename:
                raise InputError(message="No file uploaded", field="screenshot")

            # ── Step 2: Materialize on temp storage ───────────────────────
            pending = self.files.reserve(
                username=normalize_username(username),
                original_filename=upload.filename,
                content_type=upload.content_type,
            )
            await self.files.write(pending, upload)

            # ── Step 3: OCR ───────────────────────────────────────────────
            extracted_text = await self.ocr.extract_text(pending.path, self.ocr_language)

            # ── Step 4: Description (never aborts) ────────────────────────
            description = await self.describer.generate(extracted_text)

            # ── Step 5/6: Stream into the blob store ──────────────────────
            metadata = {
                "username": pending.username,
                "carouselText": description.carousel_text,
                "progressText": description.progress_text,
            }
            file_id = await self.blob_store.upload_from_stream(
                build_stored_filename(pending.original_filename),
                self.files.iter_file(pending.path),
                metadata=metadata,
                content_type=pending.content_type or DEFAULT_CONTENT_TYPE,
            )

            logger.info(
                "Upload %s stored as %s in %.0fms",
                pending.original_filename,
                file_id,
                (time.perf_counter() - start_time) * 1000,
            )

            # ── Step 7: Respond ───────────────────────────────────────────
            return UploadResponse(
                username=pending.username,
                file_id=str(file_id),
                carousel_text=description.carousel_text,
                progress_text=description.progress_text,
            )

        except ScreenShelfError as e:
            logger.warning(
                "Upload failed: %s | Context: %s",
                e.message,
                e.context,
            )
            raise

        except Exception as e:
            logger.error("Unexpected error processing upload: %s", str(e), exc_info=True)
            raise UnexpectedError(context={"error_type": type(e).__name__}) from e

        finally:
            # ── Step 8: Temp file cleanup, exactly once ───────────────────
            if pending is not None:
                await self.files.cleanup_file(pending.path)
