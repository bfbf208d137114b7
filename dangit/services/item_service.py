"""
DANGIT Backend — Saved Item Service
=====================================

What:  Every read and write on saved_items.
How:   Each statement carries `user_id = :owner` in its WHERE clause, including
       UPDATE and DELETE, and uses RETURNING so "not yours" and "doesn't
       exist" are the same single round trip with the same 404.

Query shapes:
    list         SELECT ... WHERE user_id = :o [AND ai_category = :c] ORDER BY created_at DESC
    view         UPDATE ... SET view_count = view_count + 1, last_viewed_at = now()
                 WHERE id = :id AND user_id = :o RETURNING *
    toggle/title UPDATE ... SET ..., updated_at = now() WHERE id = :id AND user_id = :o RETURNING *
    delete       DELETE ... WHERE id = :id AND user_id = :o RETURNING *
    stats        SELECT ai_category, is_completed, count(*) ... GROUP BY ai_category, is_completed

Store failures are logged with their driver class and re-raised as
PersistenceError; the client only sees the generic message.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dangit.exceptions import NotFoundOrDeniedError, PersistenceError, ValidationError
from dangit.models.saved_item import SavedItem, utcnow
from dangit.schemas.item import UserStats

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
MAX_TITLE_LENGTH = 100


def parse_item_id(value: Any) -> uuid.UUID:
    """
    Strict 8-4-4-4-12 hex check, done before any query runs.

    Raises:
        ValidationError: anything else (braces, no dashes, wrong length).
    """
    if not isinstance(value, str) or not _UUID_RE.match(value):
        raise ValidationError(
            message="Invalid item ID format. Expected a UUID like 123e4567-e89b-12d3-a456-426614174000",
            field="itemId",
        )
    return uuid.UUID(value)


def _store_error(action: str, e: Exception) -> PersistenceError:
    logger.error("Database error during %s: %s", action, e, exc_info=True)
    return PersistenceError(context={"action": action, "error_type": type(e).__name__})


class SavedItemService:
    """Stateless; gets the request's session on every call."""

    async def create_item(self, db: AsyncSession, **fields: Any) -> SavedItem:
        """
        Insert one row inside the caller's transaction.

        Who:   IngestionOrchestrator and test seeding.
        When:  The surrounding session commits; this method only flushes.
        """
        item = SavedItem(**fields)
        try:
            db.add(item)
            await db.flush()  # Assigns the UUID without committing
            await db.refresh(item)  # Loads server defaults (created_at, updated_at)
        except SQLAlchemyError as e:
            raise _store_error("create_item", e)
        return item

    async def list_items(
        self,
        db: AsyncSession,
        owner: str,
        category: Optional[str] = None,
    ) -> List[SavedItem]:
        """Newest first. `all` or an empty category means no filter."""
        # Owner filter first; every query in this service starts the same way
        query = select(SavedItem).where(SavedItem.user_id == owner)
        if category and category != "all":
            query = query.where(SavedItem.ai_category == category)
        query = query.order_by(SavedItem.created_at.desc())

        try:
            result = await db.execute(query)
        except SQLAlchemyError as e:
            raise _store_error("list_items", e)
        return list(result.scalars().all())

    async def _update_owned(
        self,
        db: AsyncSession,
        owner: str,
        item_id: uuid.UUID,
        action: str,
        **values: Any,
    ) -> SavedItem:
        """
        UPDATE ... WHERE id AND user_id RETURNING the row.

        What:    Shared body of view, toggle and rename.
        Returns: The updated row, refreshed in the identity map.
        Raises:  NotFoundOrDeniedError when zero rows matched (missing or foreign).
        """
        stmt = (
            update(SavedItem)
            .where(SavedItem.id == item_id, SavedItem.user_id == owner)
            .values(**values)
            .returning(SavedItem)
            # Overwrite any stale copy already loaded in this session
            .execution_options(populate_existing=True)
        )
        try:
            result = await db.execute(stmt)
            item = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _store_error(action, e)
        if item is None:
            # Same outcome for "no such id" and "someone else's id"
            raise NotFoundOrDeniedError()
        return item

    # ── Single-item operations ────────────────────────────────────────────
    # Each parses the id before touching the session, so a malformed id
    # costs no round trip.

    async def get_item_and_track_view(self, db: AsyncSession, owner: str, item_id: str) -> SavedItem:
        """Reading an item counts as a view. updated_at is left alone."""
        parsed = parse_item_id(item_id)
        item = await self._update_owned(
            db,
            owner,
            parsed,
            "get_item",
            view_count=SavedItem.view_count + 1,  # Incremented in SQL, not read-modify-write
            last_viewed_at=utcnow(),
        )
        logger.debug("Item %s viewed (count=%d)", parsed, item.view_count)
        return item

    async def set_completion(
        self, db: AsyncSession, owner: str, item_id: str, completed: bool
    ) -> SavedItem:
        parsed = parse_item_id(item_id)
        return await self._update_owned(
            db,
            owner,
            parsed,
            "set_completion",
            is_completed=completed,
            updated_at=utcnow(),
        )

    async def update_title(self, db: AsyncSession, owner: str, item_id: str, title: str) -> SavedItem:
        parsed = parse_item_id(item_id)
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValidationError(message="Title cannot be empty", field="title")
        if len(cleaned) > MAX_TITLE_LENGTH:
            raise ValidationError(
                message=f"Title must be {MAX_TITLE_LENGTH} characters or less",
                field="title",
            )
        return await self._update_owned(
            db, owner, parsed, "update_title", title=cleaned, updated_at=utcnow()
        )

    async def delete_item(self, db: AsyncSession, owner: str, item_id: str) -> SavedItem:
        parsed = parse_item_id(item_id)
        stmt = (
            delete(SavedItem)
            .where(SavedItem.id == parsed, SavedItem.user_id == owner)
            .returning(SavedItem)
        )
        try:
            result = await db.execute(stmt)
            item = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _store_error("delete_item", e)
        if item is None:
            raise NotFoundOrDeniedError()
        logger.info("Item %s deleted", parsed)
        return item

    async def user_stats(self, db: AsyncSession, owner: str) -> UserStats:
        query = (
            select(SavedItem.ai_category, SavedItem.is_completed, func.count())
            .where(SavedItem.user_id == owner)
            .group_by(SavedItem.ai_category, SavedItem.is_completed)
        )
        try:
            rows = (await db.execute(query)).all()
        except SQLAlchemyError as e:
            raise _store_error("user_stats", e)

        total = 0
        completed = 0
        breakdown: Dict[str, int] = {}
        for category, is_completed, count in rows:
            total += count
            if is_completed:
                completed += count
            key = category or "Other"  # Legacy rows without a category
            breakdown[key] = breakdown.get(key, 0) + count

        # Integer percent; an owner with no items reports 0, not a division error
        return UserStats(
            totalItems=total,
            completedItems=completed,
            pendingItems=total - completed,
            completionRate=round(completed / total * 100) if total else 0,
            categoryBreakdown=breakdown,
        )
