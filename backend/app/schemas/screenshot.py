"""
ScreenShelf Backend - Pydantic Request/Response Schemas
=========================================================

What:  Pydantic models for the API contract and for values passed between
       services (generated descriptions, stored file info).
How:   Python attributes are snake_case; wire names are the camelCase names
       clients already use (fileId, carouselText, progressText). FastAPI
       serializes response models by alias, so routes return these directly.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Stored when the provider call failed or the reply could not be used
DESCRIPTION_FAILED = "Description generation failed."

# Listed when a stored item has no (or an empty) description, and generated
# when there was no text to describe
NO_DESCRIPTION = "No description available"

UNKNOWN_USERNAME = "Unknown"


# ══════════════════════════════════════════════════════════════════════════
# Service Values
# ══════════════════════════════════════════════════════════════════════════


class GeneratedDescription(BaseModel):
    """
    Two-field summary produced by the DescriptionGenerator.

    Also used to validate the model's JSON reply: both keys must be present
    and must be strings.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    carousel_text: str = Field(alias="carouselText", description="Summary under 5 words")
    progress_text: str = Field(alias="progressText", description="Summary of 10-20 words")

    @classmethod
    def failed(cls) -> "GeneratedDescription":
        return cls(carousel_text=DESCRIPTION_FAILED, progress_text=DESCRIPTION_FAILED)

    @classmethod
    def unavailable(cls) -> "GeneratedDescription":
        return cls(carousel_text=NO_DESCRIPTION, progress_text=NO_DESCRIPTION)


class BlobFileInfo(BaseModel):
    """Stored item header as returned by BlobStore.find()."""
    id: uuid.UUID
    filename: str
    length: int
    chunk_size: int
    content_type: Optional[str] = None
    upload_date: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UploadResponse(BaseModel):
    """
    Returned by POST / with HTTP 201 after the item is stored.

    Example:
        {
            "username": "alice",
            "fileId": "5f0c6f0e-3c1b-4a57-9f36-1f0d8a7b2c11",
            "carouselText": "Quarterly revenue dashboard",
            "progressText": "Revenue chart comparing quarterly sales ..."
        }
    """
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(description="Uploader name, 'Unknown' when not supplied")
    file_id: str = Field(alias="fileId", description="Identifier of the stored item")
    carousel_text: str = Field(alias="carouselText")
    progress_text: str = Field(alias="progressText")


class ScreenshotListItem(BaseModel):
    """One entry of GET /. Missing metadata is filled with fallback text."""
    model_config = ConfigDict(populate_by_name=True)

    username: str
    carousel_text: str = Field(alias="carouselText")
    progress_text: str = Field(alias="progressText")
    file_id: str = Field(alias="fileId")


class ErrorResponse(BaseModel):
    """
    Error body for every failed request.

    Example:
        {"error": "No file uploaded", "request_id": "a1b2c3d4"}
    """
    error: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Returned by GET /health."""
    status: str = Field(description="Overall status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected, disconnected")
    text_generation: str = Field(description="available, unavailable, circuit_open")
    ocr: str = Field(description="available, unavailable")
    uptime_seconds: float
