"""
ORM models for the feedback and feature-voting subsystem.

Tables:
    feedback             — free-form feedback, ratings and bug reports (admin read only)
    feature_suggestions  — user-proposed features with a running vote tally
    feature_votes        — one row per (owner, feature); unique
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from dangit.database import Base
from dangit.models.saved_item import utcnow

FEEDBACK_TYPES = ("rating", "feature_request", "bug_report", "general")
VOTE_TYPES = ("upvote", "downvote")


class FeedbackEntry(Base):
    __tablename__ = "feedback"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(320), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Present iff type == 'rating'
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="new")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_feedback_rating"),
        Index("idx_feedback_created", created_at.desc()),
    )


class FeatureSuggestion(Base):
    __tablename__ = "feature_suggestions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(320), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # Creator's automatic upvote counts as the first vote
    vote_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1")
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="suggested")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_features_votes", vote_count.desc()),
    )


class FeatureVote(Base):
    __tablename__ = "feature_votes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(320), nullable=False)
    feature_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("feature_suggestions.id", ondelete="CASCADE"),
        nullable=False,
    )
    vote_type: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "feature_id", name="uq_feature_votes_user_feature"),
        CheckConstraint("vote_type IN ('upvote', 'downvote')", name="ck_feature_votes_type"),
    )
