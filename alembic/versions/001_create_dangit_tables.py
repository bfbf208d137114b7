"""Create saved items and feedback tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

What:  saved_items, feedback, feature_suggestions and feature_votes.
How:   PostgreSQL types (UUID, JSONB, TIMESTAMPTZ); the ORM models use the
       portable equivalents so tests can run on SQLite.

Rollback: downgrade() drops all four tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "saved_items",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(320),
            nullable=False,
            comment="Verified owner identity (email from the identity provider)",
        ),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content_type", sa.String(10), nullable=False, comment="image | url | text"),
        sa.Column("original_content", sa.Text(), nullable=True),
        sa.Column("original_image_url", sa.Text(), nullable=True),
        sa.Column("preview_data", postgresql.JSONB(), nullable=True),
        sa.Column(
            "content_metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("ai_summary", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("ai_category", sa.String(50), nullable=False, server_default=sa.text("'Other'")),
        sa.Column("ai_tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_viewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("content_type IN ('image', 'url', 'text')", name="ck_saved_items_type"),
        sa.CheckConstraint("view_count >= 0", name="ck_saved_items_views"),
        sa.PrimaryKeyConstraint("id"),
    )
    # The list endpoint reads one owner's rows newest first
    op.create_index(
        "idx_saved_items_user_created",
        "saved_items",
        ["user_id", sa.text("created_at DESC")],
    )
    op.create_index("idx_saved_items_user_category", "saved_items", ["user_id", "ai_category"])

    op.create_table(
        "feedback",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(320), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("message", sa.String(1000), nullable=True),
        sa.Column("category", sa.String(50), nullable=False, server_default=sa.text("'general'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'new'")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "type IN ('rating', 'feature_request', 'bug_report', 'general')",
            name="ck_feedback_type",
        ),
        sa.CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_feedback_rating"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_feedback_created", "feedback", [sa.text("created_at DESC")])

    op.create_table(
        "feature_suggestions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(320), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'suggested'")),
        sa.Column("category", sa.String(50), nullable=False, server_default=sa.text("'general'")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_features_votes", "feature_suggestions", [sa.text("vote_count DESC")])

    op.create_table(
        "feature_votes",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(320), nullable=False),
        sa.Column("feature_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vote_type", sa.String(10), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint("vote_type IN ('upvote', 'downvote')", name="ck_feature_votes_type"),
        sa.ForeignKeyConstraint(["feature_id"], ["feature_suggestions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        # One vote per owner per feature; concurrent first votes collide here
        sa.UniqueConstraint("user_id", "feature_id", name="uq_feature_votes_user_feature"),
    )


def downgrade() -> None:
    """WARNING: destructive, every saved item and vote is lost."""
    op.drop_table("feature_votes")
    op.drop_index("idx_features_votes", table_name="feature_suggestions")
    op.drop_table("feature_suggestions")
    op.drop_index("idx_feedback_created", table_name="feedback")
    op.drop_table("feedback")
    op.drop_index("idx_saved_items_user_category", table_name="saved_items")
    op.drop_index("idx_saved_items_user_created", table_name="saved_items")
    op.drop_table("saved_items")
