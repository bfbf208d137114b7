"""
DANGIT Backend — Saved Item Request/Response Schemas
======================================================

What:  API contract for the capture pipeline and the item endpoints.
Why:   Field names in request bodies follow the existing web client
       (camelCase `itemId`, `contentType`); stored records are returned with
       their column names.

Note on ids:
    Request ids are plain strings on purpose. The service validates the UUID
    format itself so a malformed id is reported as a 400 with a format hint
    before any query runs.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dangit.schemas.analysis import ContentTypeName


class SavedItemResponse(BaseModel):
    """Full stored representation of a captured item."""
    id: uuid.UUID
    user_id: str
    title: str
    content_type: str
    original_content: Optional[str] = None
    original_image_url: Optional[str] = None
    preview_data: Optional[Dict[str, Any]] = None
    content_metadata: Dict[str, Any] = Field(default_factory=dict)
    ai_summary: str
    ai_category: str
    ai_tags: List[str] = Field(default_factory=list)
    is_completed: bool
    view_count: int
    last_viewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ItemEnvelope(BaseModel):
    success: bool = True
    data: SavedItemResponse


class ItemListResponse(BaseModel):
    data: List[SavedItemResponse]


# ── Requests ──────────────────────────────────────────────────────────────


class ProcessContentRequest(BaseModel):
    """
    Body of POST /api/process-content.

    content: data URL (image), URL (url) or note text (text).
    """
    content: str = Field(min_length=1)
    contentType: ContentTypeName


class ToggleCompletionRequest(BaseModel):
    itemId: str
    completed: bool


class UpdateTitleRequest(BaseModel):
    itemId: str
    title: str


class DeleteItemRequest(BaseModel):
    itemId: str


class UploadImageRequest(BaseModel):
    imageData: str = Field(min_length=1, description="Base64 image, optionally as a data URL")
    fileName: Optional[str] = Field(default=None, max_length=255)


class UploadImageResponse(BaseModel):
    success: bool = True
    url: str
    path: str


# ── Analytics ─────────────────────────────────────────────────────────────


class UserStats(BaseModel):
    totalItems: int
    completedItems: int
    pendingItems: int
    completionRate: int = Field(description="Whole percent, 0 when there are no items")
    categoryBreakdown: Dict[str, int]


class UserStatsResponse(BaseModel):
    success: bool = True
    stats: UserStats
