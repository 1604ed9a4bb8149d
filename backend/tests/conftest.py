"""
ScreenShelf Backend - Test Configuration (conftest.py)
========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   A real blob store on a per-test SQLite file (aiosqlite), scripted
       stand-ins for the OCR engine and the text-generation provider, and an
       httpx AsyncClient talking to the app through ASGITransport.

Fixture Hierarchy:
    settings ─┬─ database ── blob_store
              ├─ fake_ocr, fake_text_generation
              └─ services ── screenshelf_app ── test_client
    sample_png_bytes: a small real PNG
"""

import io
import os
import tempfile
from typing import List, Optional, Union

# Environment for importing app.main (module-level create_app()) before any app import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-key-not-real")
os.environ.setdefault("TEMP_DIR", tempfile.mkdtemp(prefix="screenshelf_test_"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

from app.config import Settings
from app.database import Database
from app.dependencies import ServiceRegistry
from app.services.blob_store import BlobStore
from app.services.llm_base import TextGenerationService
from app.services.ocr_service import OcrService, OcrSource


# ══════════════════════════════════════════════════════════════════════════
# Stand-ins for External Engines
# ══════════════════════════════════════════════════════════════════════════

class FakeOcrService(OcrService):
    """Returns `text`, or raises `error` when set. Records every call."""

    def __init__(self, text: str = "Quarterly revenue dashboard Q3 totals up 12%"):
        self.text = text
        self.error: Optional[BaseException] = None
        self.healthy = True
        self.calls: List[Union[OcrSource, None]] = []

    async def extract_text(self, source: OcrSource, language: Optional[str] = None) -> str:
        self.calls.append(source)
        if self.error is not None:
            raise self.error
        return self.text

    async def health_check(self) -> bool:
        return self.healthy


class FakeTextGeneration(TextGenerationService):
    """Replays `reply`, or raises `error` when set. Records every call."""

    def __init__(self, reply: str = '{"carouselText": "Revenue dashboard", '
                                    '"progressText": "A sales dashboard showing quarterly revenue '
                                    'totals rising twelve percent over the previous quarter"}'):
        self.reply = reply
        self.error: Optional[BaseException] = None
        self.healthy = True
        self.calls: List[tuple] = []

    async def complete(self, system_prompt: str, user_content: str) -> str:
        self.calls.append((system_prompt, user_content))
        if self.error is not None:
            raise self.error
        return self.reply

    async def health_check(self) -> bool:
        return self.healthy


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated to tmp_path, with zero retry waits and small chunks."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'blobs.db'}",
        openai_api_key="test-key-not-real",
        openai_base_url="https://llm.test/v1",
        temp_dir=str(tmp_path / "temp"),
        blob_chunk_size=1024,
        upload_read_chunk_size=1024,
        llm_retry_max_attempts=3,
        llm_retry_min_wait=0,
        llm_retry_max_wait=0,
        cb_failure_threshold=5,
        cb_recovery_timeout=60,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def blob_store(database, settings) -> BlobStore:
    return BlobStore(database, bucket=settings.blob_bucket, chunk_size=settings.blob_chunk_size)


@pytest.fixture
def fake_ocr() -> FakeOcrService:
    return FakeOcrService()


@pytest.fixture
def fake_text_generation() -> FakeTextGeneration:
    return FakeTextGeneration()


@pytest.fixture
def services(settings, database, fake_ocr, fake_text_generation) -> ServiceRegistry:
    return ServiceRegistry.build(
        settings,
        database=database,
        text_generation=fake_text_generation,
        ocr=fake_ocr,
    )


@pytest.fixture
def screenshelf_app(settings, services):
    from app.main import create_app
    return create_app(settings, services)


@pytest_asyncio.fixture
async def test_client(screenshelf_app):
    """
    HTTPX AsyncClient wired straight into the ASGI app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=screenshelf_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_png_bytes() -> bytes:
    """A small, real PNG (white 64x32 canvas)."""
    buffer = io.BytesIO()
    Image.new("RGB", (64, 32), "white").save(buffer, format="PNG")
    return buffer.getvalue()
