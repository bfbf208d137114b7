"""
DANGIT Backend — Analysis & Resolver Schemas
==============================================

What:  Pydantic models for extractor output and the scrape/preview endpoints.
Why:   The extractor's contract (title ≤ 60, summary ≤ 300, ≤ 5 tags) is
       enforced in the service; these models only describe the shapes.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

ContentTypeName = Literal["image", "url", "text"]


class ExtractedInfo(BaseModel):
    """
    Actionable details pulled out of a screenshot. Every field is nullable:
    most screenshots carry none of them.
    """
    deadline: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    price: Optional[str] = Field(default=None, description="Amount with currency")
    code: Optional[str] = Field(default=None, description="Coupon or promo code")
    action_needed: Optional[str] = Field(default=None)

    @field_validator("deadline", "price", "code", "action_needed", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        # Models emit numbers for prices and the string "null" for blanks
        if v is None:
            return None
        v = str(v).strip()
        if not v or v.lower() in {"null", "none", "n/a"}:
            return None
        return v


class Extraction(BaseModel):
    """Structured description of one piece of content."""
    title: str
    category: str
    summary: str
    tags: List[str] = Field(default_factory=list)
    # image only
    extracted_info: Optional[ExtractedInfo] = None
    # url only: article/video/product/tool/recipe/course/guide/other
    content_type: Optional[str] = None
    # text only: list/reminder/idea/plan/other
    note_type: Optional[str] = None


class AnalyzeRequest(BaseModel):
    """
    Body of POST /api/analyze.

    `content` is a data URL for images, the note text for text, and the
    resolved link struct ({title, description, url}) or a bare URL for links.
    """
    content: Union[str, Dict[str, Any]]
    contentType: ContentTypeName


class ScrapeRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)


class ScrapeResult(BaseModel):
    title: str
    description: str
    url: str


class LinkPreview(BaseModel):
    """Richer card data for link previews (OG image and site name included)."""
    url: str
    domain: Optional[str] = None
    title: str
    description: str
    image: Optional[str] = None
    site_name: Optional[str] = None
    favicon: Optional[str] = None


class SocialScrapeResult(BaseModel):
    """
    Result of the social-media resolver.

    `success` is always true; `source` says which tier produced the data and
    `note` is set whenever the preview is less than the real post metadata.
    """
    success: bool = True
    platform: str
    post_type: str = Field(description="reel | post")
    post_id: Optional[str] = None
    title: str
    description: str
    url: str
    thumbnail: Optional[str] = None
    author: Optional[str] = None
    source: Literal["oembed", "html", "template"]
    note: Optional[str] = None
