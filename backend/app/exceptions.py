"""
ScreenShelf Backend - Custom Exception Hierarchy
==================================================

What:  Application-specific exceptions for every failure the upload pipeline
       and retrieval paths can produce.
How:   Each exception carries a client-safe message and an optional context
       dict. Global exception handlers (registered in main.py) translate them
       into JSON error responses with the right HTTP status code.
Who:   Raised by services; caught by global handlers, or absorbed by the
       description generator.

Exception Hierarchy:
    ScreenShelfError (base)
    ├── ConfigurationError              → refuses startup
    ├── InputError                      → 400 Bad Request (client can fix)
    ├── NotFoundError                   → 404 Not Found
    ├── OcrFailure                      → 500 Internal Server Error
    ├── StorageFailure                  → 500 Internal Server Error
    ├── UnexpectedError                 → 500 Internal Server Error
    └── DescriptionGenerationFailure    → never surfaced (fallback text)
        └── CircuitBreakerOpenError     → never surfaced (fallback text)
"""

from typing import Any, Dict, Optional


class ScreenShelfError(Exception):
    """
    Base exception for all ScreenShelf application errors.

    Attributes:
        message:  Client-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(ScreenShelfError):
    """Raised by Settings.validate_required() when a required setting is missing."""

    def __init__(
        self,
        message: str = "Configuration validation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InputError(ScreenShelfError):
    """
    Raised when the client request cannot be processed as sent.

    When:    No file attached to the upload, file larger than MAX_FILE_SIZE.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "No file uploaded",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(ScreenShelfError):
    """
    Raised when a requested stored item does not exist.

    When:    GET /image/{id} with an unknown id, a malformed id, or an item
             whose stored chunks are incomplete.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        message: str = "Image not found",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource_id = resource_id


class OcrFailure(ScreenShelfError):
    """
    Raised when the OCR engine cannot produce text for an upload.

    When:    Unreadable image, missing tesseract binary, OCR timeout.
    HTTP:    500 Internal Server Error (not retried by the pipeline)
    """

    def __init__(
        self,
        message: str = "Failed to extract text from screenshot",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageFailure(ScreenShelfError):
    """
    Raised when writing to or reading from the blob store fails.

    A failed write is rolled back, so no partial item becomes visible.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Failed to upload screenshot",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UnexpectedError(ScreenShelfError):
    """
    Wraps any non-application exception escaping the upload pipeline.

    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Internal server error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DescriptionGenerationFailure(ScreenShelfError):
    """
    Raised inside the text-generation path: provider errors, exhausted
    retries, unparseable or incomplete model replies.

    Never reaches the HTTP layer. DescriptionGenerator.generate() catches it
    and returns the fallback description instead.
    """

    def __init__(
        self,
        message: str = "Description generation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(DescriptionGenerationFailure):
    """
    Raised when the text-generation circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After cb_failure_threshold failures → OPEN (reject calls)
        → After cb_recovery_timeout seconds → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Text generation is temporarily disabled after repeated failures. "
            f"Calls resume in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
