"""
DANGIT Backend — Analysis & Resolver Routes
=============================================

    POST /api/analyze        extractor output for {content, contentType}
    POST /api/scrape         {title, description, url}
    POST /api/link-preview   preview card data
    POST /api/scrape-social  Instagram post metadata (auth required)

None of these report AI or network failures as HTTP errors. Analyze
answers with fallback metadata and the scrapers with degraded results,
so the web client can always finish a save.
"""

import logging

from fastapi import APIRouter, Depends

from dangit.dependencies import AppContext, get_context, get_current_owner
from dangit.exceptions import ValidationError
from dangit.schemas.analysis import (
    AnalyzeRequest,
    Extraction,
    LinkPreview,
    ScrapeRequest,
    ScrapeResult,
    SocialScrapeResult,
)
from dangit.schemas.common import ErrorResponse
from dangit.services.content import parse_content
from dangit.services.resolver import normalize_url
from dangit.services.social import is_social_url

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Analysis"])


@router.post(
    "/analyze",
    response_model=Extraction,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}},
    summary="Describe content with AI",
)
async def analyze(
    body: AnalyzeRequest,
    context: AppContext = Depends(get_context),
) -> Extraction:
    """Undecodable content is a 400; everything after decoding degrades to the fallback."""
    content = parse_content(body.content, body.contentType)
    return await context.extractor.extract_or_fallback(content)


@router.post("/scrape", response_model=ScrapeResult, summary="Scrape page title and description")
async def scrape(
    body: ScrapeRequest,
    context: AppContext = Depends(get_context),
) -> ScrapeResult:
    return await context.resolver.scrape(body.url)


@router.post("/link-preview", response_model=LinkPreview, summary="Build a link preview card")
async def link_preview(
    body: ScrapeRequest,
    context: AppContext = Depends(get_context),
) -> LinkPreview:
    return await context.resolver.preview(body.url)


@router.post(
    "/scrape-social",
    response_model=SocialScrapeResult,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="Resolve an Instagram post or reel",
)
async def scrape_social(
    body: ScrapeRequest,
    owner: str = Depends(get_current_owner),
    context: AppContext = Depends(get_context),
) -> SocialScrapeResult:
    url = normalize_url(body.url)
    # Generic pages belong to /api/scrape; this route only answers for social hosts
    if not is_social_url(url):
        raise ValidationError(message="URL is not a supported social media post", field="url")
    return await context.resolver.social.resolve(url)
