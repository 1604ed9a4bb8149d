"""
ScreenShelf Backend - Temporary Upload Storage
================================================

What:  Holds an uploaded screenshot on local disk for the duration of one
       upload request.
How:   The multipart body is streamed into `<TEMP_DIR>/<uuid>` with aiofiles,
       read back in chunks for the blob-store write, and removed when the
       request finishes, whatever the outcome.
Who:   UploadPipeline (reserve, write, iter_file, cleanup_file).

Lifecycle of a temp file:
    reserve()       → PendingUpload with a fresh path (nothing on disk yet)
    write()         → bytes streamed to disk, size limit enforced
    OCR reads the path, iter_file() feeds the blob store
    cleanup_file()  → always, from the pipeline's finally block

Filenames on disk are UUIDs, so the client's filename never becomes a
path component.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from app.exceptions import InputError, UnexpectedError

logger = logging.getLogger(__name__)


@dataclass
class PendingUpload:
    """An upload that currently owns a temp file."""
    path: Path
    username: str
    original_filename: str
    content_type: Optional[str] = None
    size: int = 0


class TempFileService:
    """
    Manages the temp directory used between receipt and blob-store write.

    Args:
        temp_dir:      directory for in-flight uploads; created if missing
        max_file_size: uploads larger than this are rejected with InputError
        chunk_size:    bytes per read when streaming in or out
    """

    def __init__(self, temp_dir: str, max_file_size: int, chunk_size: int = 65_536):
        self.temp_dir = Path(temp_dir).resolve()
        self.max_file_size = max_file_size
        self.chunk_size = chunk_size
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        logger.info("TempFileService initialized with temp_dir=%s", self.temp_dir)

    def reserve(
        self,
        username: str,
        original_filename: str,
        content_type: Optional[str] = None,
    ) -> PendingUpload:
        return PendingUpload(
            path=self.temp_dir / uuid.uuid4().hex,
            username=username,
            original_filename=original_filename,
            content_type=content_type,
        )

    async def write(self, pending: PendingUpload, upload: UploadFile) -> int:
        """
        Stream the multipart part into the reserved temp path.

        Returns:
            Number of bytes written.

        Raises:
            InputError when the upload exceeds max_file_size
            UnexpectedError when the local filesystem fails
        """
        max_mb = self.max_file_size / (1024 * 1024)
        written = 0

        try:
            async with aiofiles.open(pending.path, "wb") as f:
                while True:
                    data = await upload.read(self.chunk_size)
                    if not data:
                        break
                    written += len(data)
                    if written > self.max_file_size:
                        raise InputError(
                            message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                            field="screenshot",
                            context={"max_size_mb": max_mb},
                        )
                    await f.write(data)
        except OSError as e:
            logger.error("Failed to write temp file %s: %s", pending.path, str(e))
            raise UnexpectedError(
                context={"path": str(pending.path), "os_error": str(e)},
            ) from e

        pending.size = written
        logger.info(
            "Upload %s buffered to %s (%d bytes)",
            pending.original_filename,
            pending.path.name,
            written,
        )
        return written

    async def iter_file(self, path: Path) -> AsyncIterator[bytes]:
        """Yield the temp file's bytes in chunk_size pieces."""
        async with aiofiles.open(path, "rb") as f:
            while True:
                data = await f.read(self.chunk_size)
                if not data:
                    break
                yield data

    async def cleanup_file(self, path: Path) -> None:
        """
        Remove a temp file. Missing files are fine; other OS errors are
        logged and do not mask the request's own outcome.
        """
        try:
            await aiofiles.os.remove(path)
            logger.debug("Cleaned up temp file: %s", Path(path).name)
        except FileNotFoundError:
            logger.debug("Cleanup: temp file already gone: %s", Path(path).name)
        except OSError as e:
            logger.warning("Failed to clean up temp file %s: %s", path, str(e))
