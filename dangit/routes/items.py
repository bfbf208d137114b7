"""
DANGIT Backend — Saved Item Routes
====================================

Every route here requires a bearer credential and only ever touches rows
owned by the verified caller. A foreign or missing item is the same 404.

Envelopes follow the web client: `{data: [...]}` for the list,
`{success, data}` for single items, `{success, stats}` for stats.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dangit.dependencies import AppContext, get_context, get_current_owner, get_db_session
from dangit.schemas.common import ErrorResponse
from dangit.schemas.item import (
    DeleteItemRequest,
    ItemEnvelope,
    ItemListResponse,
    SavedItemResponse,
    ToggleCompletionRequest,
    UpdateTitleRequest,
    UserStatsResponse,
)

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Items"])

_OWNED_ITEM_RESPONSES = {
    400: {"description": "Malformed item id", "model": ErrorResponse},
    401: {"description": "Missing or invalid credential", "model": ErrorResponse},
    404: {"description": "Item not found or access denied", "model": ErrorResponse},
}


def _envelope(item) -> ItemEnvelope:
    return ItemEnvelope(data=SavedItemResponse.model_validate(item))


@router.get("/saved-items", response_model=ItemListResponse, summary="List saved items")
async def list_saved_items(
    category: Optional[str] = Query(default=None, description="Category filter; 'all' for none"),
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> ItemListResponse:
    # "all" or no category returns everything, newest first
    items = await context.items.list_items(db, owner, category)
    return ItemListResponse(data=[SavedItemResponse.model_validate(i) for i in items])


@router.get("/user-stats", response_model=UserStatsResponse, summary="Per-user item statistics")
async def user_stats(
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> UserStatsResponse:
    return UserStatsResponse(stats=await context.items.user_stats(db, owner))


@router.get(
    "/item/{item_id}",
    response_model=ItemEnvelope,
    responses=_OWNED_ITEM_RESPONSES,
    summary="Get one item (counts as a view)",
)
async def get_item(
    item_id: str,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> ItemEnvelope:
    # Increments view_count and stamps last_viewed_at in the same UPDATE
    return _envelope(await context.items.get_item_and_track_view(db, owner, item_id))


@router.patch(
    "/toggle-completion",
    response_model=ItemEnvelope,
    responses=_OWNED_ITEM_RESPONSES,
    summary="Mark an item done or not done",
)
async def toggle_completion(
    body: ToggleCompletionRequest,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> ItemEnvelope:
    item = await context.items.set_completion(db, owner, body.itemId, body.completed)
    return _envelope(item)


@router.patch(
    "/update-title",
    response_model=ItemEnvelope,
    responses=_OWNED_ITEM_RESPONSES,
    summary="Rename an item",
)
async def update_title(
    body: UpdateTitleRequest,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> ItemEnvelope:
    return _envelope(await context.items.update_title(db, owner, body.itemId, body.title))


@router.delete(
    "/delete-item",
    response_model=ItemEnvelope,
    responses=_OWNED_ITEM_RESPONSES,
    summary="Delete an item",
)
async def delete_item(
    body: DeleteItemRequest,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> ItemEnvelope:
    item = await context.items.delete_item(db, owner, body.itemId)
    # Screenshot items own a stored file; remove it only after the row is gone
    storage_path = (item.content_metadata or {}).get("storage_path")
    if storage_path:
        await context.blob_store.delete(storage_path)
    return _envelope(item)
