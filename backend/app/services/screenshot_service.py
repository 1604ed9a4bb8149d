"""
ScreenShelf Backend - Retrieval Service
=========================================

What:  Read side of the screenshot catalogue: listing and single-item streaming.
How:   Thin layer over BlobStore that applies the listing fallbacks.
Who:   GET {SCREENSHOTS_PREFIX}/ and GET {SCREENSHOTS_PREFIX}/image/{id}.
"""

import logging
from typing import List

from app.schemas.screenshot import NO_DESCRIPTION, UNKNOWN_USERNAME, ScreenshotListItem
from app.services.blob_store import BlobDownload, BlobStore

logger = logging.getLogger(__name__)


class ScreenshotService:

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    async def list_items(self) -> List[ScreenshotListItem]:
        """
        Every stored item with its description.

        Missing or empty metadata values are filled with 'Unknown' /
        'No description available'. Order is whatever the store returns.
        """
        files = await self.blob_store.find()
        items = [
            ScreenshotListItem(
                username=file.metadata.get("username") or UNKNOWN_USERNAME,
                carousel_text=file.metadata.get("carouselText") or NO_DESCRIPTION,
                progress_text=file.metadata.get("progressText") or NO_DESCRIPTION,
                file_id=str(file.id),
            )
            for file in files
        ]
        logger.debug("Listed %d screenshots", len(items))
        return items

    async def get_item(self, file_id: str) -> BlobDownload:
        """Raises NotFoundError for malformed, unknown or incomplete ids."""
        return await self.blob_store.open_download_stream(file_id)
