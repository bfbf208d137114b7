"""
DANGIT Backend — Feedback & Feature Voting Service
====================================================

What:  Feedback submission (admin-read), feature suggestions and voting.

Voting rules:
    no vote yet        → insert vote,   count += 1 / -= 1   action "added"
    same direction     → delete vote,   count -= 1 / += 1   action "removed"
    opposite direction → flip vote,     count += 2 / -= 2   action "changed"

The tally moves with one UPDATE that computes
    vote_count = vote_count + :delta
in the same transaction as the vote-row change. The row lock taken by the
UPDATE serializes concurrent voters, and the count always equals the net
sum of the vote rows, so it goes negative when downvotes outnumber upvotes.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dangit.exceptions import (
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from dangit.models.feedback import (
    FEEDBACK_TYPES,
    VOTE_TYPES,
    FeatureSuggestion,
    FeatureVote,
    FeedbackEntry,
)
from dangit.schemas.feedback import FeatureResponse

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000
MAX_FEATURE_TITLE = 100
MAX_FEATURE_DESCRIPTION = 500


@dataclass(frozen=True)
class VoteOutcome:
    action: str  # added | removed | changed
    vote_type: Optional[str]
    vote_count: int


def find_duplicate_title(title: str, existing: List[str]) -> Optional[str]:
    """Case-insensitive substring match in either direction."""
    needle = title.strip().lower()
    for candidate in existing:
        other = candidate.strip().lower()
        if other and (needle in other or other in needle):
            return candidate
    return None


def _parse_feature_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(message="Invalid feature ID format", field="feature_id")


class FeedbackService:
    """Stateless apart from the admin allow-list."""

    def __init__(self, admin_emails: List[str]):
        self.admin_emails = {e.lower() for e in admin_emails}

    def is_admin(self, owner: str) -> bool:
        return owner.lower() in self.admin_emails

    # ── Feedback ──────────────────────────────────────────────────────────

    async def submit_feedback(
        self,
        db: AsyncSession,
        owner: str,
        type: str,
        rating: Optional[int] = None,
        message: Optional[str] = None,
        category: Optional[str] = None,
    ) -> FeedbackEntry:
        if type not in FEEDBACK_TYPES:
            raise ValidationError(
                message=f"Invalid feedback type. Expected one of: {', '.join(FEEDBACK_TYPES)}",
                field="type",
            )
        # Rating is required for, and only allowed on, rating feedback
        if type == "rating":
            if rating is None or not 1 <= rating <= 5:
                raise ValidationError(message="Rating must be between 1 and 5", field="rating")
        elif rating is not None:
            raise ValidationError(message="Rating is only allowed for rating feedback", field="rating")

        message = message.strip() if message else None
        if message and len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                message=f"Message must be {MAX_MESSAGE_LENGTH} characters or less",
                field="message",
            )

        entry = FeedbackEntry(
            user_id=owner,
            type=type,
            rating=rating,
            message=message or None,
            category=(category or "general").strip() or "general",
        )
        try:
            db.add(entry)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to store feedback: %s", e, exc_info=True)
            raise PersistenceError(context={"action": "submit_feedback"})
        logger.info("Feedback received (type=%s)", type)
        return entry

    async def list_feedback(self, db: AsyncSession, owner: str) -> List[FeedbackEntry]:
        if not self.is_admin(owner):
            raise ForbiddenError(message="Only administrators can view feedback")
        try:
            result = await db.execute(select(FeedbackEntry).order_by(FeedbackEntry.created_at.desc()))
        except SQLAlchemyError as e:
            logger.error("Failed to list feedback: %s", e, exc_info=True)
            raise PersistenceError(context={"action": "list_feedback"})
        return list(result.scalars().all())

    # ── Features ──────────────────────────────────────────────────────────

    async def create_feature(
        self,
        db: AsyncSession,
        owner: str,
        title: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
    ) -> FeatureResponse:
        title = (title or "").strip()
        if not title:
            raise ValidationError(message="Feature title is required", field="title")
        if len(title) > MAX_FEATURE_TITLE:
            raise ValidationError(
                message=f"Title must be {MAX_FEATURE_TITLE} characters or less",
                field="title",
            )
        description = description.strip() if description else None
        if description and len(description) > MAX_FEATURE_DESCRIPTION:
            raise ValidationError(
                message=f"Description must be {MAX_FEATURE_DESCRIPTION} characters or less",
                field="description",
            )

        try:
            # Compared in Python: the match is substring-in-either-direction
            existing = (await db.execute(select(FeatureSuggestion.title))).scalars().all()
            duplicate = find_duplicate_title(title, list(existing))
            if duplicate:
                raise DuplicateError(
                    message=f"A similar feature already exists: \"{duplicate}\"",
                    context={"existing_title": duplicate},
                )

            feature = FeatureSuggestion(
                user_id=owner,
                title=title,
                description=description or None,
                category=(category or "general").strip() or "general",
                vote_count=1,
            )
            db.add(feature)
            await db.flush()  # Assigns feature.id for the vote row
            # vote_count starts at 1, matching this creator upvote row
            db.add(FeatureVote(user_id=owner, feature_id=feature.id, vote_type="upvote"))
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to create feature: %s", e, exc_info=True)
            raise PersistenceError(context={"action": "create_feature"})

        logger.info("Feature suggested: %s", feature.id)
        response = FeatureResponse.model_validate(feature)
        response.user_vote = "upvote"
        return response

    async def list_features(self, db: AsyncSession, owner: str) -> List[FeatureResponse]:
        """Highest vote count first, with the caller's own vote on each."""
        try:
            features = (
                await db.execute(
                    select(FeatureSuggestion).order_by(
                        FeatureSuggestion.vote_count.desc(),
                        FeatureSuggestion.created_at.desc(),
                    )
                )
            ).scalars().all()
            votes = (
                await db.execute(
                    select(FeatureVote.feature_id, FeatureVote.vote_type).where(
                        FeatureVote.user_id == owner
                    )
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Failed to list features: %s", e, exc_info=True)
            raise PersistenceError(context={"action": "list_features"})

        mine: Dict[uuid.UUID, str] = {feature_id: vote_type for feature_id, vote_type in votes}
        responses = []
        for feature in features:
            item = FeatureResponse.model_validate(feature)
            item.user_vote = mine.get(feature.id)
            responses.append(item)
        return responses

    # ── Voting ────────────────────────────────────────────────────────────

    async def _apply_delta(self, db: AsyncSession, feature_id: uuid.UUID, delta: int) -> int:
        # Evaluated against the locked row, so a concurrent vote is never lost
        stmt = (
            update(FeatureSuggestion)
            .where(FeatureSuggestion.id == feature_id)
            .values(vote_count=FeatureSuggestion.vote_count + delta)
            .returning(FeatureSuggestion.vote_count)
        )
        return (await db.execute(stmt)).scalar_one()

    async def vote(self, db: AsyncSession, owner: str, feature_id: str, vote_type: str) -> VoteOutcome:
        """
        Toggle, add or flip the caller's vote and move the tally to match.

        Who:     POST /api/features/vote.
        Returns: VoteOutcome with the count as written by the UPDATE.

        Raises:
            ValidationError: bad vote_type or feature id (before any query).
            NotFoundError: no such feature.
            DuplicateError: a concurrent first vote by the same owner won.
        """
        if vote_type not in VOTE_TYPES:
            raise ValidationError(
                message="vote_type must be 'upvote' or 'downvote'",
                field="vote_type",
            )
        parsed = _parse_feature_id(feature_id)
        direction = 1 if vote_type == "upvote" else -1

        try:
            # ── Step 1: Feature must exist ────────────────────────────────
            exists = (
                await db.execute(select(FeatureSuggestion.id).where(FeatureSuggestion.id == parsed))
            ).scalar_one_or_none()
            if exists is None:
                raise NotFoundError(resource="feature", resource_id=str(parsed))

            # ── Step 2: Caller's current vote, if any ─────────────────────
            existing = (
                await db.execute(
                    select(FeatureVote).where(
                        FeatureVote.user_id == owner,
                        FeatureVote.feature_id == parsed,
                    )
                )
            ).scalar_one_or_none()

            # ── Step 3: Change the vote row; delta mirrors the row change ─
            if existing is None:
                db.add(FeatureVote(user_id=owner, feature_id=parsed, vote_type=vote_type))
                await db.flush()
                outcome_action, outcome_type, delta = "added", vote_type, direction
            elif existing.vote_type == vote_type:
                await db.execute(delete(FeatureVote).where(FeatureVote.id == existing.id))
                outcome_action, outcome_type, delta = "removed", None, -direction
            else:
                existing.vote_type = vote_type
                await db.flush()
                outcome_action, outcome_type, delta = "changed", vote_type, 2 * direction

            # ── Step 4: Move the tally in the same transaction ────────────
            count = await self._apply_delta(db, parsed, delta)
        except IntegrityError:
            # Two concurrent first votes by the same owner; the unique key kept one
            raise DuplicateError(message="Your vote is already being recorded")
        except SQLAlchemyError as e:
            logger.error("Failed to record vote: %s", e, exc_info=True)
            raise PersistenceError(context={"action": "vote"})

        logger.info("Vote %s on feature %s (count=%d)", outcome_action, parsed, count)
        return VoteOutcome(action=outcome_action, vote_type=outcome_type, vote_count=count)
