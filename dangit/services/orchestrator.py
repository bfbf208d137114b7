"""
DANGIT Backend — Ingestion Orchestrator
=========================================

What:  The capture pipeline behind POST /api/process-content.
How:   Strictly sequential, per content type:

    image ─▶ decode ─▶ blob upload ─▶ extract (vision)  ─┐
    url   ─▶ resolve (scrape / social) ─▶ extract (text) ─┼─▶ persist ─▶ SavedItem
    text  ─▶ extract (text) ─▶ word/char counts          ─┘

Failure policy:
    - extraction never fails (extract_or_fallback)
    - resolution never fails (degraded scrape result)
    - a failed image upload is logged and the item is saved without an image
    - only persistence failures reach the caller (PersistenceError → 500)
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession

from dangit.exceptions import FileStorageError
from dangit.models.saved_item import SavedItem
from dangit.schemas.analysis import Extraction
from dangit.services.blob_store import BlobStore
from dangit.services.content import ImageContent, TextContent, UrlContent, parse_content
from dangit.services.extractor import ContentExtractor
from dangit.services.identity import mask_email
from dangit.services.item_service import SavedItemService
from dangit.services.resolver import SourceResolver, favicon_for

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200


def text_metadata(text: str) -> Dict[str, Any]:
    """Word and character counts plus a read time rounded up to whole minutes."""
    words = len(text.split())
    return {
        "word_count": words,
        "char_count": len(text),
        "estimated_read_time": max(1, math.ceil(words / WORDS_PER_MINUTE)),
    }


def url_preview(content: UrlContent) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Returns (preview_data, content_metadata) for a resolved link."""
    parsed = urlparse(content.url)
    domain = parsed.hostname
    if not domain:
        return {"url": content.url, "title": content.title, "description": content.description}, {}

    preview: Dict[str, Any] = {
        "url": content.url,
        "domain": domain,
        "title": content.title,
        "description": content.description,
        "favicon": favicon_for(domain),
    }
    for key in ("thumbnail", "author", "platform"):
        value = getattr(content, key)
        if value:
            preview[key] = value
    return preview, {"domain": domain, "protocol": f"{parsed.scheme}:"}


class IngestionOrchestrator:
    """
    One instance per AppContext; holds no per-request state.

    Who:   POST /api/process-content.
    Owns:  the order of steps and the degrade-or-raise decision for each.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        resolver: SourceResolver,
        blob_store: BlobStore,
        items: Optional[SavedItemService] = None,
    ):
        self.extractor = extractor
        self.resolver = resolver
        self.blob_store = blob_store
        self.items = items or SavedItemService()

    async def ingest(self, db: AsyncSession, owner: str, content: Any, content_type: str) -> SavedItem:
        """
        Run the pipeline and persist the result.

        What:    Turns one submission into one SavedItem row.
        Who:     process_content route, after get_current_owner has verified `owner`.
        When:    Once per capture; the route's session commits on return.

        Workflow Steps:
            1. Decode the payload into its content variant
            2. Per-kind preparation (upload, resolve, or count words)
            3. Extract metadata, falling back on any model failure
            4. Insert the row (the only step allowed to fail the request)

        Raises:
            ValidationError: content can't be decoded for its declared type.
            PersistenceError: the store rejected the write.
        """
        # ── Step 1: Decode ────────────────────────────────────────────────
        # Raises ValidationError before anything is stored or sent to the model
        variant = parse_content(content, content_type)
        image_url: Optional[str] = None
        preview_data: Optional[Dict[str, Any]] = None
        metadata: Dict[str, Any] = {}
        original_content: Optional[str] = None

        # ── Steps 2-3: Prepare and extract per kind ───────────────────────
        match variant:
            case ImageContent():
                # Upload first so the item keeps its image even if extraction degrades
                image_url, metadata = await self._store_image(owner, variant)
                extraction = await self.extractor.extract_or_fallback(variant)

            case UrlContent():
                original_content = variant.url
                # Social links come back fully described; the extractor skips the model for them
                resolved = await self.resolver.resolve(variant.url)
                preview_data, metadata = url_preview(resolved)
                extraction = await self.extractor.extract_or_fallback(resolved)

            case TextContent():
                original_content = variant.text
                extraction = await self.extractor.extract_or_fallback(variant)
                metadata = text_metadata(variant.text)

        # ── Step 4: Persist ───────────────────────────────────────────────
        item = await self._persist(
            db,
            owner,
            content_type,
            extraction,
            original_content=original_content,
            image_url=image_url,
            preview_data=preview_data,
            metadata=metadata,
        )
        logger.info(
            "Ingested %s item %s for %s (category=%s)",
            content_type,
            item.id,
            mask_email(owner),
            item.ai_category,
        )
        return item

    async def _store_image(self, owner: str, image: ImageContent) -> Tuple[Optional[str], Dict[str, Any]]:
        """
        Upload the decoded screenshot.

        Returns:
            (public URL, storage metadata), or (None, {}) when the store failed.
        """
        # Extension comes from the sniffed type, not from anything the client sent
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        try:
            blob = await self.blob_store.upload(
                owner, image.data, file_name=f"screenshot-{stamp}", extension=image.extension
            )
        except FileStorageError as e:
            # Degrade: the capture still succeeds, just without original_image_url
            logger.error("Image upload failed, saving item without image: %s", e.message)
            return None, {}
        return blob.url, {
            "storage_path": blob.path,
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
            "file_size": image.approximate_size,
        }

    async def _persist(
        self,
        db: AsyncSession,
        owner: str,
        content_type: str,
        extraction: Extraction,
        *,
        original_content: Optional[str],
        image_url: Optional[str],
        preview_data: Optional[Dict[str, Any]],
        metadata: Dict[str, Any],
    ) -> SavedItem:
        # New items always start pending and unviewed
        return await self.items.create_item(
            db,
            user_id=owner,
            title=extraction.title,
            content_type=content_type,
            original_content=original_content,
            original_image_url=image_url,
            preview_data=preview_data,
            content_metadata=metadata,
            ai_summary=extraction.summary,
            ai_category=extraction.category,
            ai_tags=extraction.tags,
            is_completed=False,
            view_count=0,
        )
