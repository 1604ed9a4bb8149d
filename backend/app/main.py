"""
ScreenShelf Backend - FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() validates one Settings object, builds the service
       registry, registers middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn app.main:app`), tests (create_app(settings, services)).

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                       FastAPI App                         │
    │                                                           │
    │  Middleware Chain:                                        │
    │  ┌──────────┐ ┌──────────┐ ┌──────┐ ┌──────┐              │
    │  │  Req ID  │→│ Logging  │→│ GZip │→│ CORS │              │
    │  └──────────┘ └──────────┘ └──────┘ └──────┘              │
    │                                                           │
    │  Routes ({SCREENSHOTS_PREFIX}):                           │
    │  ┌──────────┐ ┌──────────┐ ┌───────────────┐ ┌─────────┐  │
    │  │ POST /   │ │ GET /    │ │ GET /image/id │ │ /health │  │
    │  └──────────┘ └──────────┘ └───────────────┘ └─────────┘  │
    │                                                           │
    │  Exception Handlers:                                      │
    │  ┌─────────────────────────────────────────────────────┐  │
    │  │ InputError→400 │ NotFound→404 │ OCR/Storage/...→500 │  │
    │  └─────────────────────────────────────────────────────┘  │
    └───────────────────────────────────────────────────────────┘

Lifecycle:
    create_app():  validate settings (ConfigurationError refuses startup),
                   build services
    Startup:       logging, optional schema creation
    Shutdown:      close the provider client, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import Settings
from app.dependencies import ServiceRegistry
from app.exceptions import (
    InputError,
    NotFoundError,
    OcrFailure,
    ScreenShelfError,
    StorageFailure,
    UnexpectedError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import health, screenshots

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure root logging once, to stdout.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Per-request noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    services: ServiceRegistry = app.state.services

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("ScreenShelf Backend starting up...")

    if settings.auto_create_schema:
        await services.database.create_all()

    logger.info("Temp directory: %s", services.files.temp_dir)
    logger.info(
        "Server ready at http://%s:%d%s",
        settings.backend_host,
        settings.backend_port,
        settings.screenshots_prefix,
    )
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("ScreenShelf Backend shutting down...")
    await services.aclose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "request_id": request_id_var.get("")},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

    Handler hierarchy:
        RequestValidationError → 400 ("No file uploaded" when the screenshot
                                 part is not a file)
        InputError          → 400 Bad Request
        NotFoundError       → 404 Not Found
        OcrFailure          → 500
        StorageFailure      → 500
        UnexpectedError     → 500
        ScreenShelfError    → 500 (any other application error)
        Exception           → 500 (truly unexpected)

    Bodies are {"error": <message>, "request_id": <id>}. The exception's
    context is logged here and never returned.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(tuple(err.get("loc", ()))[-1:] == ("screenshot",) for err in errors):
            message = "No file uploaded"
        else:
            message = "Invalid request: " + "; ".join(
                f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
                for err in errors
            )
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors)
        return _error_response(400, message)

    @app.exception_handler(InputError)
    async def handle_input_error(request: Request, exc: InputError):
        logger.warning("[%s] Input error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        logger.info(
            "[%s] Not found: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(404, exc.message)

    @app.exception_handler(OcrFailure)
    async def handle_ocr_failure(request: Request, exc: OcrFailure):
        logger.error(
            "[%s] OCR failure: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, exc.message)

    @app.exception_handler(StorageFailure)
    async def handle_storage_failure(request: Request, exc: StorageFailure):
        logger.error(
            "[%s] Storage failure: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, exc.message)

    @app.exception_handler(UnexpectedError)
    async def handle_wrapped_error(request: Request, exc: UnexpectedError):
        logger.error(
            "[%s] Unexpected error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, exc.message)

    @app.exception_handler(ScreenShelfError)
    async def handle_application_error(request: Request, exc: ScreenShelfError):
        logger.error(
            "[%s] Application error (%s): %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return _error_response(500, "Internal server error")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unhandled error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(500, "Internal server error")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceRegistry] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: defaults to Settings() read from the environment / .env
        services: pre-built registry (tests); built from settings otherwise

    Raises:
        ConfigurationError when DATABASE_URL or OPENAI_API_KEY is missing.
    """
    settings = settings or Settings()
    settings.validate_required()
    services = services or ServiceRegistry.build(settings)

    app = FastAPI(
        title="ScreenShelf API",
        description=(
            "Screenshot catalogue: uploads are read with OCR, described by a "
            "text-generation model and stored with that description."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(screenshots.router, prefix=settings.screenshots_prefix)
    app.include_router(health.router)

    return app


# uvicorn imports `app.main:app`
app = create_app()
