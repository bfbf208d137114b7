"""
DANGIT Backend — Capture & Storage Routes
===========================================

    POST /api/process-content        full capture pipeline → stored item
    POST /api/storage/upload-image   store a screenshot without creating an item
    GET  /api/files/{path}           serve a stored screenshot

Request Flow (process-content):
    1. get_current_owner verifies the bearer credential
    2. IngestionOrchestrator resolves, extracts and persists
    3. get_db_session commits; the item comes back in {success, data}
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from dangit.dependencies import AppContext, get_context, get_current_owner, get_db_session
from dangit.schemas.common import ErrorResponse
from dangit.schemas.item import (
    ItemEnvelope,
    ProcessContentRequest,
    SavedItemResponse,
    UploadImageRequest,
    UploadImageResponse,
)
from dangit.services.content import parse_image

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Capture"])


@router.post(
    "/process-content",
    response_model=ItemEnvelope,
    responses={
        400: {"description": "Content can't be decoded", "model": ErrorResponse},
        401: {"description": "Missing or invalid credential", "model": ErrorResponse},
        500: {"description": "Item could not be saved", "model": ErrorResponse},
    },
    summary="Capture a screenshot, link or note",
)
async def process_content(
    body: ProcessContentRequest,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> ItemEnvelope:
    # Analysis failures degrade to fallback metadata; only a failed save is a 500
    item = await context.orchestrator.ingest(db, owner, body.content, body.contentType)
    return ItemEnvelope(data=SavedItemResponse.model_validate(item))


@router.post(
    "/storage/upload-image",
    response_model=UploadImageResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Upload a screenshot to the blob store",
)
async def upload_image(
    body: UploadImageRequest,
    owner: str = Depends(get_current_owner),
    context: AppContext = Depends(get_context),
) -> UploadImageResponse:
    image = parse_image(body.imageData)
    # Stored extension follows the sniffed type; fileName only names the stem
    blob = await context.blob_store.upload(owner, image.data, body.fileName, extension=image.extension)
    return UploadImageResponse(url=blob.url, path=blob.path)


@router.get(
    "/files/{path:path}",
    response_class=FileResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Serve a stored screenshot",
)
async def serve_file(path: str, context: AppContext = Depends(get_context)) -> FileResponse:
    """
    Public by key, like the bucket URLs the client already stores. Keys carry
    a millisecond timestamp and random suffix, so they can't be enumerated.

    The Content-Type is pinned from the image allow-list and browsers are
    told not to sniff, so a stored file is never rendered as HTML.
    """
    # Keys escaping the storage root are rejected; missing files are 404
    file_path = context.blob_store.resolve_path(path)
    return FileResponse(
        file_path,
        media_type=context.blob_store.media_type(path),
        headers={
            "Cache-Control": "public, max-age=31536000, immutable",
            "X-Content-Type-Options": "nosniff",
        },
    )
