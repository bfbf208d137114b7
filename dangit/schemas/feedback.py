"""
Schemas for the feedback and feature-voting endpoints.

Length and enum rules are checked in FeedbackService so violations come back
as 400s with a specific reason.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class FeedbackCreate(BaseModel):
    type: str
    rating: Optional[int] = None
    message: Optional[str] = None
    category: Optional[str] = None


class FeedbackResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    type: str
    rating: Optional[int] = None
    message: Optional[str] = None
    category: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class FeedbackEnvelope(BaseModel):
    success: bool = True
    data: FeedbackResponse


class FeedbackListResponse(BaseModel):
    data: List[FeedbackResponse]


class FeatureCreate(BaseModel):
    title: str
    description: Optional[str] = None
    category: Optional[str] = None


class FeatureResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    vote_count: int
    status: str
    category: str
    created_at: datetime
    # The caller's own vote on this feature, if any
    user_vote: Optional[str] = None

    model_config = {"from_attributes": True}


class FeatureEnvelope(BaseModel):
    success: bool = True
    data: FeatureResponse


class FeatureListResponse(BaseModel):
    data: List[FeatureResponse]


class VoteRequest(BaseModel):
    feature_id: str
    vote_type: str


class VoteResponse(BaseModel):
    success: bool = True
    action: str
    vote_type: Optional[str] = None
    vote_count: int
