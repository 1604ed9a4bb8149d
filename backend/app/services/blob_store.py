"""
ScreenShelf Backend - Blob Store Adapter
==========================================

What:  Durable binary storage keyed by a generated identifier, with an
       attached metadata document. Streamed write, streamed read-by-id,
       and listing.
How:   GridFS-style bucket on top of async SQLAlchemy. Bytes are cut into
       fixed-size chunks (blob_chunks); one header row (blob_files) per item.
       A write runs in a single transaction: header and chunks are committed
       together when the upload stream closes, or rolled back together when
       anything inside the block raises. Readers therefore never see a
       partially written item.
Who:   UploadPipeline (write), ScreenshotService (list / read).

Usage:
    async with blob_store.open_upload_stream("1700000000000-shot.png",
                                             metadata={"username": "alice"},
                                             content_type="image/png") as stream:
        await stream.write(first_bytes)
        await stream.write(more_bytes)
    stream.id  # committed identifier

    download = await blob_store.open_download_stream(file_id)
    async for chunk in download.iter_chunks():
        ...
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Database
from app.exceptions import NotFoundError, StorageFailure
from app.models.blob import BlobChunk, BlobFile
from app.schemas.screenshot import BlobFileInfo

logger = logging.getLogger(__name__)


def expected_chunk_count(length: int, chunk_size: int) -> int:
    """Number of chunks a file of `length` bytes is split into."""
    if length <= 0:
        return 0
    return (length + chunk_size - 1) // chunk_size


def parse_file_id(raw: Union[str, uuid.UUID]) -> uuid.UUID:
    """
    Convert a client-supplied identifier into a UUID.

    Raises:
        NotFoundError for anything that is not a valid UUID. A malformed id
        can never name a stored item, so it is reported the same way as an
        unknown one.
    """
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw).strip())
    except (ValueError, TypeError, AttributeError):
        raise NotFoundError(resource_id=str(raw), context={"reason": "malformed id"})


class BlobUploadStream:
    """
    Write side of one stored item.

    Buffers incoming bytes and emits a chunk row every `chunk_size` bytes.
    Only BlobStore.open_upload_stream() creates these; the stream is valid
    only inside that block.
    """

    def __init__(self, session: AsyncSession, file_row: BlobFile, chunk_size: int):
        self._session = session
        self._file = file_row
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._chunk_index = 0
        self._length = 0
        self.closed = False

    @property
    def id(self) -> uuid.UUID:
        return self._file.id

    @property
    def filename(self) -> str:
        return self._file.filename

    @property
    def length(self) -> int:
        return self._length

    @property
    def chunk_count(self) -> int:
        return self._chunk_index

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise StorageFailure(
                message="Upload stream is already closed",
                context={"file_id": str(self.id)},
            )
        if not data:
            return
        self._buffer.extend(data)
        self._length += len(data)
        while len(self._buffer) >= self._chunk_size:
            await self._flush_chunk(bytes(self._buffer[: self._chunk_size]))
            del self._buffer[: self._chunk_size]

    async def _flush_chunk(self, data: bytes) -> None:
        chunk = BlobChunk(files_id=self.id, n=self._chunk_index, data=data)
        self._session.add(chunk)
        await self._session.flush()
        # Written chunks are not needed again in this session
        self._session.expunge(chunk)
        self._chunk_index += 1

    async def _finish(self) -> None:
        """Flush the tail chunk and finalize the header row."""
        if self._buffer:
            await self._flush_chunk(bytes(self._buffer))
            self._buffer.clear()
        self._file.length = self._length
        self._file.upload_date = datetime.now(timezone.utc)
        await self._session.flush()
        self.closed = True


class BlobDownload:
    """
    Read side of one stored item.

    Header fields are loaded by BlobStore.open_download_stream(); bytes are
    fetched chunk by chunk in iter_chunks() so a large item is never held in
    memory at once.
    """

    def __init__(self, database: Database, file_row: BlobFile):
        self._database = database
        self.id: uuid.UUID = file_row.id
        self.filename: str = file_row.filename
        self.length: int = file_row.length
        self.chunk_size: int = file_row.chunk_size
        self.content_type: str = file_row.content_type or "application/octet-stream"
        self.upload_date: datetime = file_row.upload_date
        self.metadata: Dict[str, Any] = dict(file_row.file_metadata or {})

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """
        Yield the stored bytes in chunk order.

        Raises:
            StorageFailure if a chunk disappears between the completeness
            check and the read, or the database fails mid-stream.
        """
        total = expected_chunk_count(self.length, self.chunk_size)
        try:
            async with self._database.session_factory() as session:
                for n in range(total):
                    data = await session.scalar(
                        select(BlobChunk.data).where(
                            BlobChunk.files_id == self.id,
                            BlobChunk.n == n,
                        )
                    )
                    if data is None:
                        raise StorageFailure(
                            message="Stored screenshot is incomplete",
                            context={"file_id": str(self.id), "missing_chunk": n},
                        )
                    yield data
        except SQLAlchemyError as e:
            logger.error("Error streaming blob %s: %s", self.id, str(e))
            raise StorageFailure(
                message="Failed to read screenshot",
                context={"file_id": str(self.id), "error_type": type(e).__name__},
            ) from e

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.iter_chunks()

    async def read(self) -> bytes:
        """Read the whole item into memory."""
        return b"".join([chunk async for chunk in self.iter_chunks()])


class BlobStore:
    """
    Chunked binary store for one bucket.

    Concurrency: each call opens its own session; concurrent uploads share
    nothing but the engine's connection pool.
    """

    def __init__(self, database: Database, bucket: str = "screenshots", chunk_size: int = 261_120):
        self._database = database
        self.bucket = bucket
        self.chunk_size = chunk_size

    # ── Write Path ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def open_upload_stream(
        self,
        filename: str,
        metadata: Optional[Dict[str, Any]] = None,
        content_type: Optional[str] = None,
    ) -> AsyncIterator[BlobUploadStream]:
        """
        Open a write stream for a new item.

        Leaving the block normally commits the item. Any exception inside the
        block rolls back the header and every chunk written so far.

        Raises:
            StorageFailure when the database rejects a write or the commit.
        """
        file_id = uuid.uuid4()
        try:
            async with self._database.session() as session:
                file_row = BlobFile(
                    id=file_id,
                    bucket=self.bucket,
                    filename=filename,
                    length=0,
                    chunk_size=self.chunk_size,
                    content_type=content_type,
                    file_metadata=dict(metadata or {}),
                )
                session.add(file_row)
                await session.flush()

                stream = BlobUploadStream(session, file_row, self.chunk_size)
                yield stream
                await stream._finish()

        except SQLAlchemyError as e:
            logger.error("Error during upload to blob store (%s): %s", filename, str(e))
            raise StorageFailure(
                context={
                    "file_id": str(file_id),
                    "filename": filename,
                    "error_type": type(e).__name__,
                },
            ) from e

        logger.info(
            "Blob stored: %s as %s (%d bytes, %d chunks)",
            filename,
            stream.id,
            stream.length,
            stream.chunk_count,
        )

    async def upload_from_stream(
        self,
        filename: str,
        source: AsyncIterable[bytes],
        metadata: Optional[Dict[str, Any]] = None,
        content_type: Optional[str] = None,
    ) -> uuid.UUID:
        """
        Pipe an async byte source into a new item and return its id.

        Raises:
            StorageFailure if the source or the store fails mid-stream.
        """
        try:
            async with self.open_upload_stream(filename, metadata, content_type) as stream:
                async for chunk in source:
                    await stream.write(chunk)
        except OSError as e:
            logger.error("Source stream failed while storing %s: %s", filename, str(e))
            raise StorageFailure(
                context={"filename": filename, "os_error": str(e)},
            ) from e
        return stream.id

    # ── Read Path ─────────────────────────────────────────────────────────

    async def open_download_stream(self, file_id: Union[str, uuid.UUID]) -> BlobDownload:
        """
        Look up an item and return a BlobDownload for it.

        Raises:
            NotFoundError: malformed id, unknown id, or incomplete chunk set
            StorageFailure: database error during lookup
        """
        file_uuid = parse_file_id(file_id)

        try:
            async with self._database.session() as session:
                file_row = await session.scalar(
                    select(BlobFile).where(
                        BlobFile.id == file_uuid,
                        BlobFile.bucket == self.bucket,
                    )
                )
                if file_row is None:
                    raise NotFoundError(resource_id=str(file_uuid))

                stored_chunks = await session.scalar(
                    select(func.count(BlobChunk.id)).where(BlobChunk.files_id == file_uuid)
                )
        except SQLAlchemyError as e:
            logger.error("Error looking up blob %s: %s", file_uuid, str(e))
            raise StorageFailure(
                message="Failed to read screenshot",
                context={"file_id": str(file_uuid), "error_type": type(e).__name__},
            ) from e

        expected = expected_chunk_count(file_row.length, file_row.chunk_size)
        if (stored_chunks or 0) != expected:
            logger.error(
                "Blob %s is incomplete: %d of %d chunks present",
                file_uuid,
                stored_chunks or 0,
                expected,
            )
            raise NotFoundError(
                resource_id=str(file_uuid),
                context={"reason": "incomplete chunks", "expected": expected, "found": stored_chunks},
            )

        return BlobDownload(self._database, file_row)

    async def find(self) -> List[BlobFileInfo]:
        """
        List every item in the bucket with its stored metadata.

        Ordering is by upload date; callers must not depend on it.
        """
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(BlobFile)
                    .where(BlobFile.bucket == self.bucket)
                    .order_by(BlobFile.upload_date, BlobFile.id)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Error listing blobs in bucket %s: %s", self.bucket, str(e))
            raise StorageFailure(
                message="Failed to fetch screenshots",
                context={"bucket": self.bucket, "error_type": type(e).__name__},
            ) from e

        return [
            BlobFileInfo(
                id=row.id,
                filename=row.filename,
                length=row.length,
                chunk_size=row.chunk_size,
                content_type=row.content_type,
                upload_date=row.upload_date,
                metadata=dict(row.file_metadata or {}),
            )
            for row in rows
        ]
