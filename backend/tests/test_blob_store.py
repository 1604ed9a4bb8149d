"""
ScreenShelf Backend - Blob Store Tests
========================================

What:  Chunked write/read, listing, rollback and completeness checks.
How:   Real BlobStore on a per-test SQLite database (aiosqlite); chunk size
       is 1024 bytes so small payloads span several chunks.
"""

import uuid

import pytest
from sqlalchemy import delete, func, select

from app.exceptions import NotFoundError, StorageFailure
from app.models.blob import BlobChunk, BlobFile
from app.services.blob_store import BlobStore, expected_chunk_count, parse_file_id


async def byte_source(*parts):
    for part in parts:
        yield part


class TestHelpers:

    @pytest.mark.parametrize(
        "length,chunk_size,expected",
        [(0, 1024, 0), (1, 1024, 1), (1024, 1024, 1), (1025, 1024, 2), (5000, 1024, 5)],
    )
    def test_expected_chunk_count(self, length, chunk_size, expected):
        assert expected_chunk_count(length, chunk_size) == expected

    def test_parse_file_id_accepts_uuid_string(self):
        raw = uuid.uuid4()
        assert parse_file_id(str(raw)) == raw
        assert parse_file_id(raw) is raw

    @pytest.mark.parametrize("raw", ["", "abc", "123", "64b7f0c2e4b0a1a2b3c4d5e6"])
    def test_parse_file_id_rejects_malformed(self, raw):
        with pytest.raises(NotFoundError):
            parse_file_id(raw)


class TestBlobStoreWrite:

    @pytest.mark.asyncio
    async def test_upload_splits_into_chunks(self, blob_store, database):
        payload = bytes(range(256)) * 10  # 2560 bytes → 3 chunks at 1024

        file_id = await blob_store.upload_from_stream(
            "1700000000000-shot.png",
            byte_source(payload[:700], payload[700:2000], payload[2000:]),
            metadata={"username": "alice"},
            content_type="image/png",
        )

        async with database.session() as session:
            file_row = await session.get(BlobFile, file_id)
            chunk_sizes = (
                await session.execute(
                    select(func.length(BlobChunk.data))
                    .where(BlobChunk.files_id == file_id)
                    .order_by(BlobChunk.n)
                )
            ).scalars().all()

        assert file_row.length == 2560
        assert file_row.chunk_size == 1024
        assert file_row.bucket == "screenshots"
        assert file_row.file_metadata == {"username": "alice"}
        assert list(chunk_sizes) == [1024, 1024, 512]

    @pytest.mark.asyncio
    async def test_round_trip_preserves_bytes(self, blob_store):
        payload = b"\x89PNG\r\n\x1a\n" + b"\x00\xff" * 1500

        file_id = await blob_store.upload_from_stream(
            "1700000000000-shot.png",
            byte_source(payload),
            metadata={},
            content_type="image/png",
        )
        download = await blob_store.open_download_stream(str(file_id))

        assert download.filename == "1700000000000-shot.png"
        assert download.content_type == "image/png"
        assert download.length == len(payload)
        assert await download.read() == payload

    @pytest.mark.asyncio
    async def test_empty_upload_is_stored(self, blob_store):
        file_id = await blob_store.upload_from_stream("1-empty.png", byte_source())

        download = await blob_store.open_download_stream(file_id)
        assert download.length == 0
        assert download.content_type == "application/octet-stream"
        assert await download.read() == b""

    @pytest.mark.asyncio
    async def test_failed_source_leaves_nothing_behind(self, blob_store, database):
        async def failing_source():
            yield b"x" * 3000
            raise OSError("disk went away")

        with pytest.raises(StorageFailure):
            await blob_store.upload_from_stream("1-broken.png", failing_source())

        assert await blob_store.find() == []
        async with database.session() as session:
            assert await session.scalar(select(func.count(BlobChunk.id))) == 0

    @pytest.mark.asyncio
    async def test_exception_inside_upload_stream_rolls_back(self, blob_store):
        with pytest.raises(RuntimeError):
            async with blob_store.open_upload_stream("1-aborted.png") as stream:
                await stream.write(b"y" * 2048)
                raise RuntimeError("caller gave up")

        assert await blob_store.find() == []

    @pytest.mark.asyncio
    async def test_duplicate_filenames_get_distinct_ids(self, blob_store):
        first = await blob_store.upload_from_stream("1-same.png", byte_source(b"a"))
        second = await blob_store.upload_from_stream("1-same.png", byte_source(b"b"))

        assert first != second
        assert len(await blob_store.find()) == 2


class TestBlobStoreRead:

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self, blob_store):
        with pytest.raises(NotFoundError):
            await blob_store.open_download_stream(str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, blob_store):
        with pytest.raises(NotFoundError):
            await blob_store.open_download_stream("not-an-id")

    @pytest.mark.asyncio
    async def test_incomplete_chunk_set_is_not_found(self, blob_store, database):
        file_id = await blob_store.upload_from_stream("1-shot.png", byte_source(b"z" * 3000))
        async with database.session() as session:
            await session.execute(
                delete(BlobChunk).where(BlobChunk.files_id == file_id, BlobChunk.n == 1)
            )

        with pytest.raises(NotFoundError):
            await blob_store.open_download_stream(file_id)

    @pytest.mark.asyncio
    async def test_other_bucket_is_invisible(self, blob_store, database):
        file_id = await blob_store.upload_from_stream("1-shot.png", byte_source(b"abc"))
        other = BlobStore(database, bucket="avatars", chunk_size=1024)

        assert await other.find() == []
        with pytest.raises(NotFoundError):
            await other.open_download_stream(file_id)

    @pytest.mark.asyncio
    async def test_find_returns_metadata(self, blob_store):
        await blob_store.upload_from_stream(
            "1-a.png",
            byte_source(b"a"),
            metadata={"username": "alice", "carouselText": "A", "progressText": "AA"},
        )
        await blob_store.upload_from_stream("2-b.png", byte_source(b"bb"), metadata={})

        files = await blob_store.find()

        by_name = {f.filename: f for f in files}
        assert set(by_name) == {"1-a.png", "2-b.png"}
        assert by_name["1-a.png"].metadata["username"] == "alice"
        assert by_name["2-b.png"].metadata == {}
        assert by_name["2-b.png"].length == 2
