"""
ScreenShelf Backend - OCR Adapter
===================================

What:  Extracts plain text from an uploaded screenshot.
How:   Tesseract through pytesseract, with Pillow decoding the image. The
       engine is blocking, so each call runs in a worker thread; the
       tesseract subprocess is killed after `ocr_timeout` seconds.
Who:   Called by UploadPipeline once per upload, before description generation.

Contract:
    extract_text(source, language) → str (possibly empty)
    source:   path to the image on local disk, or the raw image bytes
    language: Tesseract language code ("eng", "deu", "eng+fra", ...)
    Raises OcrFailure on any engine-level failure. No retries here; a
    caller that wants retries owns them.
"""

import asyncio
import io
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import pytesseract
from PIL import Image, UnidentifiedImageError

from app.exceptions import OcrFailure

logger = logging.getLogger(__name__)

OcrSource = Union[str, Path, bytes]


class OcrService(ABC):
    """Interface for OCR engines used by the upload pipeline."""

    @abstractmethod
    async def extract_text(self, source: OcrSource, language: Optional[str] = None) -> str:
        """Return the text recognized in `source`. Raises OcrFailure."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the engine can accept work."""
        ...


class TesseractOcrService(OcrService):
    """
    Tesseract-backed OCR adapter.

    Args:
        language:      default language hint (Settings.ocr_language)
        timeout:       seconds before the tesseract process is killed
        tesseract_cmd: explicit binary path; PATH lookup when None
    """

    def __init__(
        self,
        language: str = "eng",
        timeout: float = 60.0,
        tesseract_cmd: Optional[str] = None,
    ):
        self.language = language
        self.timeout = timeout
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        logger.info(
            "TesseractOcrService initialized with language=%s, timeout=%.0fs",
            language,
            timeout,
        )

    async def extract_text(self, source: OcrSource, language: Optional[str] = None) -> str:
        lang = language or self.language
        label = Path(source).name if isinstance(source, (str, Path)) else f"<{len(source)} bytes>"
        start_time = time.perf_counter()

        logger.info("Starting OCR for %s (lang=%s)", label, lang)
        text = await asyncio.to_thread(self._recognize, source, lang)

        logger.info(
            "OCR completed for %s in %.0fms, extracted %d chars",
            label,
            (time.perf_counter() - start_time) * 1000,
            len(text),
        )
        return text

    def _recognize(self, source: OcrSource, lang: str) -> str:
        """Blocking part of extract_text(); runs in a worker thread."""
        try:
            if isinstance(source, bytes):
                image = Image.open(io.BytesIO(source))
            else:
                image = Image.open(source)
        except (UnidentifiedImageError, OSError) as e:
            raise OcrFailure(
                message="Uploaded file is not a readable image",
                context={"error": str(e)},
            ) from e

        try:
            with image:
                text = pytesseract.image_to_string(image, lang=lang, timeout=self.timeout)
        except pytesseract.TesseractNotFoundError as e:
            logger.error("Tesseract binary not found: %s", str(e))
            raise OcrFailure(context={"error": "tesseract not installed"}) from e
        except pytesseract.TesseractError as e:
            logger.error("OCR engine error: %s", str(e))
            raise OcrFailure(context={"error": str(e), "error_type": type(e).__name__}) from e
        except RuntimeError as e:
            # TesseractError is a RuntimeError too; a bare one means the
            # process was killed at the timeout
            logger.error("OCR timed out after %.0fs: %s", self.timeout, str(e))
            raise OcrFailure(context={"error": "timeout", "timeout": self.timeout}) from e
        except (OSError, ValueError) as e:
            logger.error("OCR engine error: %s", str(e))
            raise OcrFailure(context={"error": str(e), "error_type": type(e).__name__}) from e

        return text or ""

    async def health_check(self) -> bool:
        try:
            version = await asyncio.to_thread(pytesseract.get_tesseract_version)
            logger.debug("Tesseract version %s", version)
            return True
        except Exception as e:
            logger.warning("Tesseract health check failed: %s", str(e))
            return False
