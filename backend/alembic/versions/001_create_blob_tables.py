"""Create blob store tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates `blob_files` and `blob_chunks`, the chunked binary store that
       holds every uploaded screenshot and its description metadata.
How:   Portable column types (UUID via sa.Uuid, JSON, LargeBinary) so the
       same migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops both tables (destructive, all screenshots lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "blob_files",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "bucket",
            sa.String(64),
            nullable=False,
            comment="Logical bucket name, e.g. 'screenshots'",
        ),
        sa.Column(
            "filename",
            sa.String(512),
            nullable=False,
            comment="<epoch-ms>-<original name>; not unique",
        ),
        sa.Column("length", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("chunk_size", sa.Integer(), nullable=False),
        sa.Column("content_type", sa.String(255), nullable=True),
        sa.Column(
            "upload_date",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "metadata",
            sa.JSON(),
            nullable=False,
            comment="username, carouselText, progressText",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Listing scans one bucket in upload order
    op.create_index(
        "idx_blob_files_bucket_upload_date",
        "blob_files",
        ["bucket", "upload_date"],
    )

    op.create_table(
        "blob_chunks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("files_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("n", sa.Integer(), nullable=False, comment="Chunk index, from 0"),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["files_id"], ["blob_files.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("files_id", "n", name="uq_blob_chunks_files_id_n"),
    )


def downgrade() -> None:
    op.drop_table("blob_chunks")
    op.drop_index("idx_blob_files_bucket_upload_date", table_name="blob_files")
    op.drop_table("blob_files")
