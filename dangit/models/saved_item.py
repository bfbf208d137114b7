"""
DANGIT Backend — SavedItem SQLAlchemy Model
=============================================

What:  ORM model for the `saved_items` table: one row per captured screenshot,
       link or note.
Who:   Written by the ingestion orchestrator, read and mutated by SavedItemService.

Table Design Rationale:
    - user_id: verified email of the owner. Every query filters on it, so it
      leads the composite index together with created_at.
    - content_type: image | url | text, fixed at creation.
    - original_content: raw URL or note text; NULL for images (the image
      lives in the blob store and is referenced by original_image_url).
    - preview_data / content_metadata / ai_tags: JSON, shape varies by type.
    - Portable column types (Uuid, JSON, DateTime(timezone=True)) so the same
      model runs on PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from dangit.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SavedItem(Base):
    """
    A unit of captured content.

    Lifecycle:
        1. Inserted by IngestionOrchestrator with is_completed=False, view_count=0
        2. view_count / last_viewed_at bumped on every detail view
        3. is_completed and title are user-editable (updated_at touched)
        4. Deleted by its owner; never visible to anyone else
    """

    __tablename__ = "saved_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Verified owner identity (email from the identity provider)",
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)

    content_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="image | url | text, immutable",
    )

    original_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    preview_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    content_metadata: Mapped[Dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    # ── Extractor output (length-capped by the extractor) ─────────────────
    ai_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ai_category: Mapped[str] = mapped_column(String(50), nullable=False, default="Other")
    ai_tags: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)

    is_completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    view_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # (user_id, created_at DESC): the list endpoint's exact access path
    __table_args__ = (
        Index("idx_saved_items_user_created", "user_id", created_at.desc()),
        Index("idx_saved_items_user_category", "user_id", "ai_category"),
    )

    def __repr__(self) -> str:
        return (
            f"<SavedItem(id={self.id}, type='{self.content_type}', "
            f"category='{self.ai_category}')>"
        )
