"""
DANGIT Backend — Feedback & Feature Voting Routes
===================================================

    GET  /api/feedback        all feedback, newest first (admins only)
    POST /api/feedback        submit feedback
    GET  /api/features        suggestions by vote count, with the caller's vote
    POST /api/features        suggest a feature (409 when a similar title exists)
    POST /api/features/vote   upvote / downvote / retract
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dangit.dependencies import AppContext, get_context, get_current_owner, get_db_session
from dangit.schemas.common import ErrorResponse
from dangit.schemas.feedback import (
    FeatureCreate,
    FeatureEnvelope,
    FeatureListResponse,
    FeedbackCreate,
    FeedbackEnvelope,
    FeedbackListResponse,
    FeedbackResponse,
    VoteRequest,
    VoteResponse,
)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Feedback"])


@router.get(
    "/feedback",
    response_model=FeedbackListResponse,
    responses={403: {"model": ErrorResponse}},
    summary="List feedback (admin)",
)
async def list_feedback(
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> FeedbackListResponse:
    # Non-admins get 403 from the service, not an empty list
    entries = await context.feedback.list_feedback(db, owner)
    return FeedbackListResponse(data=[FeedbackResponse.model_validate(e) for e in entries])


@router.post(
    "/feedback",
    response_model=FeedbackEnvelope,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
    summary="Submit feedback",
)
async def submit_feedback(
    body: FeedbackCreate,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> FeedbackEnvelope:
    entry = await context.feedback.submit_feedback(
        db,
        owner,
        type=body.type,
        rating=body.rating,
        message=body.message,
        category=body.category,
    )
    return FeedbackEnvelope(data=FeedbackResponse.model_validate(entry))


@router.get("/features", response_model=FeatureListResponse, summary="List feature suggestions")
async def list_features(
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> FeatureListResponse:
    # user_vote is the caller's own vote on each suggestion, or null
    return FeatureListResponse(data=await context.feedback.list_features(db, owner))


@router.post(
    "/features",
    response_model=FeatureEnvelope,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Suggest a feature",
)
async def create_feature(
    body: FeatureCreate,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> FeatureEnvelope:
    feature = await context.feedback.create_feature(
        db, owner, title=body.title, description=body.description, category=body.category
    )
    return FeatureEnvelope(data=feature)


@router.post(
    "/features/vote",
    response_model=VoteResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Vote on a feature",
)
async def vote(
    body: VoteRequest,
    owner: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db_session),
    context: AppContext = Depends(get_context),
) -> VoteResponse:
    # Same vote twice retracts it; the opposite vote replaces it
    outcome = await context.feedback.vote(db, owner, body.feature_id, body.vote_type)
    return VoteResponse(
        action=outcome.action,
        vote_type=outcome.vote_type,
        vote_count=outcome.vote_count,
    )
