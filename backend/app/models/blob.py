"""
ScreenShelf Backend - Blob Store SQLAlchemy Models
====================================================

What:  ORM models for the chunked binary store: one `blob_files` row per
       stored item and N `blob_chunks` rows holding its bytes.
How:   Same layout as a GridFS bucket. Bytes are split into fixed-size
       chunks numbered from 0; the files row records total length and chunk
       size so readers can verify the chunk set is complete.
Who:   BlobStore writes and reads these; Alembic migration 001 creates them.

Table Design:
    blob_files
        id            UUID primary key, generated on write
        bucket        logical bucket name ("screenshots")
        filename      "<epoch-ms>-<original name>", not unique
        length        total bytes
        chunk_size    bytes per chunk (last chunk may be shorter)
        content_type  as reported by the uploader
        upload_date   UTC, set when the write completes
        metadata      JSON document (username, carouselText, progressText)

    blob_chunks
        files_id → blob_files.id (ON DELETE CASCADE)
        n             chunk index, unique per file
        data          raw bytes
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class BlobFile(Base):
    """
    Header row for one stored item.

    Lifecycle:
        1. Inserted (length 0) when an upload stream opens, inside the
           stream's transaction
        2. Length and upload_date filled in when the stream closes
        3. Committed together with every chunk, or rolled back with them
        4. Never updated afterwards
    """

    __tablename__ = "blob_files"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    bucket: Mapped[str] = mapped_column(String(64), nullable=False)

    filename: Mapped[str] = mapped_column(String(512), nullable=False)

    length: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False)

    content_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    upload_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # "metadata" is reserved on declarative classes, hence the attribute name
    file_metadata: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    __table_args__ = (
        Index("idx_blob_files_bucket_upload_date", "bucket", "upload_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<BlobFile(id={self.id}, bucket='{self.bucket}', "
            f"filename='{self.filename}', length={self.length})>"
        )


class BlobChunk(Base):
    """One fixed-size slice of a stored item's bytes."""

    __tablename__ = "blob_chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    files_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("blob_files.id", ondelete="CASCADE"),
        nullable=False,
    )

    n: Mapped[int] = mapped_column(Integer, nullable=False)

    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    __table_args__ = (
        UniqueConstraint("files_id", "n", name="uq_blob_chunks_files_id_n"),
    )

    def __repr__(self) -> str:
        return f"<BlobChunk(files_id={self.files_id}, n={self.n}, size={len(self.data or b'')})>"
