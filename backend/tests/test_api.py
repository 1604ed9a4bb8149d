"""
ScreenShelf Backend - API Endpoint Tests
==========================================

What:  End-to-end HTTP behavior of the screenshot routes and /health.
How:   httpx AsyncClient over ASGITransport; real blob store on SQLite; OCR
       and text generation replaced by the stand-ins from conftest.
"""

import uuid
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from app.exceptions import DescriptionGenerationFailure, OcrFailure, StorageFailure

PREFIX = "/api/screenshots"


async def upload(client, content: bytes, username=None, filename="shot.png"):
    data = {"username": username} if username is not None else {}
    return await client.post(
        PREFIX,
        files={"screenshot": (filename, content, "image/png")},
        data=data,
    )


def temp_files(settings):
    return list(Path(settings.temp_dir).iterdir())


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_list_and_fetch(self, test_client, settings, sample_png_bytes, fake_ocr):
        response = await upload(test_client, sample_png_bytes, username="alice")

        assert response.status_code == 201
        body = response.json()
        assert set(body) == {"username", "fileId", "carouselText", "progressText"}
        assert body["username"] == "alice"
        assert body["carouselText"] == "Revenue dashboard"
        assert len(fake_ocr.calls) == 1

        listing = await test_client.get(PREFIX)
        assert listing.status_code == 200
        assert listing.json() == [
            {
                "username": "alice",
                "carouselText": body["carouselText"],
                "progressText": body["progressText"],
                "fileId": body["fileId"],
            }
        ]

        image = await test_client.get(f"{PREFIX}/image/{body['fileId']}")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"
        assert image.content == sample_png_bytes
        assert image.headers["x-content-type-options"] == "nosniff"

        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_trailing_slash_routes(self, test_client, sample_png_bytes):
        response = await test_client.post(
            f"{PREFIX}/",
            files={"screenshot": ("shot.png", sample_png_bytes, "image/png")},
        )
        assert response.status_code == 201

        listing = await test_client.get(f"{PREFIX}/")
        assert listing.status_code == 200
        assert len(listing.json()) == 1

    @pytest.mark.asyncio
    async def test_large_upload_spans_chunks(self, test_client, settings):
        content = bytes(range(256)) * 40  # 10 KiB, 10 chunks at 1 KiB

        response = await upload(test_client, content)
        image = await test_client.get(f"{PREFIX}/image/{response.json()['fileId']}")

        assert image.content == content

    @pytest.mark.asyncio
    async def test_missing_username_is_unknown(self, test_client, sample_png_bytes):
        response = await upload(test_client, sample_png_bytes)

        assert response.status_code == 201
        assert response.json()["username"] == "Unknown"
        assert (await test_client.get(PREFIX)).json()[0]["username"] == "Unknown"

    @pytest.mark.asyncio
    async def test_missing_file_is_400(self, test_client, settings, fake_ocr):
        response = await test_client.post(PREFIX, data={"username": "alice"})

        assert response.status_code == 400
        assert response.json()["error"] == "No file uploaded"
        assert response.json()["request_id"]
        assert fake_ocr.calls == []
        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_text_field_instead_of_file_is_400(self, test_client, settings, fake_ocr):
        response = await test_client.post(
            PREFIX, data={"screenshot": "not-a-file", "username": "alice"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "No file uploaded"
        assert response.json()["request_id"]
        assert fake_ocr.calls == []
        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_oversize_file_is_400(self, test_client, services, settings):
        services.files.max_file_size = 2048

        response = await upload(test_client, b"x" * 4096)

        assert response.status_code == 400
        assert "exceeds maximum" in response.json()["error"]
        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_ocr_failure_is_500(self, test_client, settings, sample_png_bytes, fake_ocr,
                                      fake_text_generation):
        fake_ocr.error = OcrFailure()

        response = await upload(test_client, sample_png_bytes, username="alice")

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to extract text from screenshot"
        assert fake_text_generation.calls == []
        assert (await test_client.get(PREFIX)).json() == []
        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_500(self, test_client, services, settings, sample_png_bytes):
        services.blob_store.upload_from_stream = AsyncMock(side_effect=StorageFailure())

        response = await upload(test_client, sample_png_bytes)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to upload screenshot"
        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_500(self, test_client, settings, sample_png_bytes, fake_ocr):
        fake_ocr.error = ValueError("engine returned garbage")

        response = await upload(test_client, sample_png_bytes)

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"
        assert temp_files(settings) == []

    @pytest.mark.asyncio
    async def test_description_failure_still_stores(self, test_client, sample_png_bytes,
                                                    fake_text_generation):
        fake_text_generation.error = DescriptionGenerationFailure()

        response = await upload(test_client, sample_png_bytes, username="bob")

        assert response.status_code == 201
        body = response.json()
        assert body["carouselText"] == "Description generation failed."
        assert body["progressText"] == "Description generation failed."
        listing = (await test_client.get(PREFIX)).json()
        assert listing[0]["carouselText"] == "Description generation failed."

    @pytest.mark.asyncio
    async def test_blank_ocr_text_skips_generation(self, test_client, sample_png_bytes, fake_ocr,
                                                   fake_text_generation):
        fake_ocr.text = "   "

        response = await upload(test_client, sample_png_bytes)

        assert response.status_code == 201
        assert response.json()["carouselText"] == "No description available"
        assert fake_text_generation.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_filenames_are_distinct_items(self, test_client, sample_png_bytes):
        first = await upload(test_client, sample_png_bytes, filename="same.png")
        second = await upload(test_client, sample_png_bytes, filename="same.png")

        assert first.json()["fileId"] != second.json()["fileId"]
        assert len((await test_client.get(PREFIX)).json()) == 2


class TestRetrieval:

    @pytest.mark.asyncio
    async def test_empty_listing(self, test_client):
        response = await test_client.get(PREFIX)
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_listing_fills_missing_metadata(self, test_client, blob_store):
        async def source():
            yield b"legacy"

        file_id = await blob_store.upload_from_stream("1-legacy.png", source(), metadata={"carouselText": ""})

        response = await test_client.get(PREFIX)

        assert response.json() == [
            {
                "username": "Unknown",
                "carouselText": "No description available",
                "progressText": "No description available",
                "fileId": str(file_id),
            }
        ]

    @pytest.mark.asyncio
    async def test_unknown_id_is_404(self, test_client):
        response = await test_client.get(f"{PREFIX}/image/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "Image not found"

    @pytest.mark.asyncio
    async def test_malformed_id_is_404(self, test_client):
        response = await test_client.get(f"{PREFIX}/image/not-a-real-id")

        assert response.status_code == 404
        assert response.json()["error"] == "Image not found"

    @pytest.mark.asyncio
    async def test_request_id_header_is_echoed(self, test_client):
        response = await test_client.get(PREFIX, headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["text_generation"] == "available"
        assert body["ocr"] == "available"

    @pytest.mark.asyncio
    async def test_degraded_when_ocr_down(self, test_client, fake_ocr):
        fake_ocr.healthy = False

        body = (await test_client.get("/health")).json()

        assert body["status"] == "degraded"
        assert body["ocr"] == "unavailable"

    @pytest.mark.asyncio
    async def test_unhealthy_when_database_down(self, test_client, services):
        services.database.ping = AsyncMock(return_value=False)

        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
