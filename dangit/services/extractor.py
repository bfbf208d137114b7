"""
DANGIT Backend — Content Extractor
====================================

What:  Turns a content variant into an Extraction (title, category,
       summary, tags, plus a type-specific extra).
How:   `match` over the variant:
         ImageContent            → vision prompt + inline image
         UrlContent (Instagram)  → no model call, cleans scraped metadata
         UrlContent (other)      → text prompt over title/description/url
         TextContent             → light-touch note prompt
       Model replies go through the normalizer, then the same post-conditions
       (title ≤ 60, summary ≤ 300, ≤ 5 tags, required fields present).

Instagram captions are handled without the model: given only a login-walled
page title, the model invents post details that aren't there.

`extract_or_fallback` is the boundary the orchestrator and /api/analyze use.
It never raises.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from dangit.exceptions import InvalidExtractionError
from dangit.schemas.analysis import ExtractedInfo, Extraction
from dangit.services.content import Content, ImageContent, TextContent, UrlContent
from dangit.services.llm_base import ImagePart, LLMService
from dangit.services.normalizer import normalize
from dangit.services.social import PLATFORM as SOCIAL_PLATFORM
from dangit.services.social import is_social_url, template_title

logger = logging.getLogger(__name__)

CATEGORIES = [
    "AI Tools",
    "Learning",
    "Entertainment",
    "Shopping",
    "Food & Dining",
    "Coupons & Deals",
    "Productivity",
    "Health & Fitness",
    "Travel",
    "Finance",
    "Other",
]
_CATEGORY_LIST = ", ".join(CATEGORIES)

MAX_TITLE = 60
MAX_SUMMARY = 300
MAX_TAGS = 5
MAX_CATEGORY = 50

# ── Prompts ───────────────────────────────────────────────────────────────

IMAGE_SYSTEM = """You are DANGIT's screenshot analyzer. Pull useful, actionable details out of images.

Be specific. "Tiramisu Recipe - Coffee & Mascarpone" is useful; "Image of a recipe" is not.
"Assignment Due Oct 25 - Submit research paper" is useful; "Screenshot of text" is not.

Look for: dish names and ingredients for recipes; what is due and when for tasks;
discount, code, expiry and store for coupons; item, price and brand for products;
name, date, time and place for events; name, role and company for contacts."""

IMAGE_PROMPT = f"""Analyze this image and describe what matters in it.

Good titles look like:
- "Butter Chicken Recipe with Cashew Paste"
- "Flipkart Sale - 40% Off Electronics till Nov 5"
- "Math Assignment Due Monday 9 AM"

Reply with ONLY this JSON:
{{
  "title": "specific title, at most 60 characters",
  "category": "one of: {_CATEGORY_LIST}",
  "summary": "2-3 natural sentences on what this is and why it matters, with any dates, prices or action items",
  "tags": ["specific", "useful", "tags"],
  "extracted_info": {{
    "deadline": "YYYY-MM-DD or null",
    "price": "amount with currency or null",
    "code": "coupon or promo code or null",
    "action_needed": "what the user should do, or null"
  }}
}}"""

URL_SYSTEM = (
    "You describe web pages so people remember why they saved them. "
    "Be specific and natural, never generic."
)

URL_PROMPT = """Describe this saved web page.

Title: {title}
Description: {description}
URL: {url}

"Python Tutorial: Build a To-Do App in 30 Minutes" is useful; "YouTube video" is not.
Say what kind of page it is: the main takeaway for an article, what you learn from a
video or course, what a product is and costs, what a tool does and who it is for.

Reply with ONLY this JSON:
{{
  "title": "specific title, at most 60 characters",
  "category": "one of: {categories}",
  "summary": "2-3 conversational sentences on what this is and why someone would keep it",
  "tags": ["relevant", "searchable", "tags"],
  "content_type": "article/video/product/tool/recipe/course/guide/other"
}}"""

TEXT_SYSTEM = (
    "You tidy up personal notes with a light touch. "
    "Keep the writer's words and tone; do not over-analyze."
)

TEXT_PROMPT = """Organize this note without rewriting it.

Note:
"{text}"

Rules:
1. Keep the writer's wording
2. Make a SHORT title from the first line or main topic
3. Keep the summary brief and close to what they meant
4. Only obvious tags
5. Match their tone

Example: "Buy milk, eggs, bread from store tomorrow"
  title "Grocery Shopping Tomorrow", summary "Need to buy milk, eggs, and bread"

Reply with ONLY this JSON:
{{
  "title": "short title, at most 60 characters",
  "category": "best guess from: {categories}",
  "summary": "1-2 short sentences",
  "tags": ["simple", "obvious", "tags"],
  "note_type": "list/reminder/idea/plan/other"
}}"""

# ── Social captions ───────────────────────────────────────────────────────

_SOCIAL_BOILERPLATE = [
    re.compile(r"•\s*Instagram photos and videos", re.IGNORECASE),
    re.compile(r"\|\s*Instagram", re.IGNORECASE),
    re.compile(r"\bon Instagram\b", re.IGNORECASE),
    re.compile(r"\bInstagram\b", re.IGNORECASE),
]
_LEADING_HANDLE_RE = re.compile(r"^\s*@?[A-Za-z0-9._]+\s*:\s*")
_GENERIC_CAPTIONS = {"instagram", "login", "log in", "post", "reel", "reels", "video", "photo"}
MIN_CAPTION_LENGTH = 15


def clean_social_caption(text: str) -> str:
    """Strip Instagram branding, quotes and a leading `handle:` from a caption."""
    for pattern in _SOCIAL_BOILERPLATE:
        text = pattern.sub(" ", text)
    text = text.replace('"', " ").replace("“", " ").replace("”", " ")
    text = _LEADING_HANDLE_RE.sub("", text.strip())
    return re.sub(r"\s+", " ", text).strip(" -:·")


def _is_generic(text: str) -> bool:
    return len(text) < MIN_CAPTION_LENGTH or text.lower() in _GENERIC_CAPTIONS


# ── Post-conditions ───────────────────────────────────────────────────────


def _clean_tags(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    tags = [t.strip() for t in raw if isinstance(t, str) and t.strip()]
    return tags[:MAX_TAGS]


def finalize(data: Dict[str, Any]) -> Extraction:
    """
    Apply the uniform post-conditions to a parsed reply.

    Raises:
        InvalidExtractionError: title, category or summary missing or blank.
    """
    # Required text fields must be present and non-blank; everything else is optional
    missing = [
        key for key in ("title", "category", "summary")
        if not isinstance(data.get(key), str) or not data[key].strip()
    ]
    if missing:
        raise InvalidExtractionError(missing=missing)

    info = data.get("extracted_info")
    # Caps are applied after stripping so whitespace never counts against them
    return Extraction(
        title=data["title"].strip()[:MAX_TITLE],
        category=data["category"].strip()[:MAX_CATEGORY],
        summary=data["summary"].strip()[:MAX_SUMMARY],
        tags=_clean_tags(data.get("tags")),
        extracted_info=ExtractedInfo(**info) if isinstance(info, dict) else None,
        content_type=data.get("content_type") if isinstance(data.get("content_type"), str) else None,
        note_type=data.get("note_type") if isinstance(data.get("note_type"), str) else None,
    )


class ContentExtractor:
    """Describes content with the injected language model."""

    def __init__(self, llm: LLMService):
        self.llm = llm

    async def extract(self, content: Content) -> Extraction:
        """
        Raises:
            LLMServiceError / CircuitBreakerOpenError: model unavailable.
            MalformedResponseError: reply had no JSON object.
            InvalidExtractionError: reply lacked a required field.
        """
        match content:
            # ── Screenshot: vision model, image sent inline ──────────────
            case ImageContent():
                raw = await self.llm.generate(
                    IMAGE_PROMPT,
                    system=IMAGE_SYSTEM,
                    # mime_type is the sniffed type, never the client's claim
                    image=ImagePart(data=content.data, mime_type=content.mime_type),
                    temperature=0.3,
                    max_output_tokens=1000,
                )
                return finalize(normalize(raw))

            # ── Instagram: resolved metadata only, zero model calls ───────
            case UrlContent() if content.platform == SOCIAL_PLATFORM or is_social_url(content.url):
                return self._describe_social(content)

            # ── Any other link: text model over the scraped page fields ───
            case UrlContent():
                prompt = URL_PROMPT.format(
                    title=content.title or "(none)",
                    description=content.description or "(none)",
                    url=content.url,
                    categories=_CATEGORY_LIST,
                )
                raw = await self.llm.generate(
                    prompt, system=URL_SYSTEM, temperature=0.4, max_output_tokens=600
                )
                return finalize(normalize(raw))

            # ── Note: text model, lower token budget ─────────────────────
            case TextContent():
                prompt = TEXT_PROMPT.format(text=content.text, categories=_CATEGORY_LIST)
                raw = await self.llm.generate(
                    prompt, system=TEXT_SYSTEM, temperature=0.3, max_output_tokens=400
                )
                return finalize(normalize(raw))

        raise TypeError(f"Unsupported content variant: {type(content).__name__}")

    def _describe_social(self, content: UrlContent) -> Extraction:
        """
        Build an Extraction from an already-resolved Instagram link.

        Caption text wins when it is specific; otherwise the deterministic
        template title for the post kind is used for both title and summary.
        """
        post_type = content.post_type or ("reel" if "/reel" in content.url else "post")
        author: Optional[str] = content.author.lstrip("@") if content.author else None

        title = clean_social_caption(content.title)
        if _is_generic(title):
            title = template_title(post_type, author)

        summary = clean_social_caption(content.description)
        if _is_generic(summary):
            summary = f"{template_title(post_type, author)} saved for later."

        tags = [SOCIAL_PLATFORM, post_type]
        if author:
            tags.append(author)

        return finalize({
            "title": title,
            "category": "Entertainment" if post_type == "reel" else "Other",
            "summary": summary,
            "tags": tags,
        })

    def fallback(self, content: Content) -> Extraction:
        """Deterministic placeholder metadata used when extraction fails."""
        match content:
            case ImageContent():
                return Extraction(
                    title="Saved Screenshot",
                    category="Other",
                    summary=(
                        "Screenshot saved successfully. AI analysis had an issue, "
                        "but your content is safely stored."
                    ),
                    tags=["screenshot", "saved"],
                )
            case UrlContent():
                return Extraction(
                    title=content.title[:MAX_TITLE] or "Saved Link",
                    category="Other",
                    summary=content.description[:200] or "Link saved successfully for later reference.",
                    tags=["link", "saved"],
                )
            case TextContent():
                first_line = content.text.strip().split("\n")[0].strip()
                return Extraction(
                    title=first_line[:MAX_TITLE] or "Quick Note",
                    category="Other",
                    summary=content.text.strip()[:200] or "Note saved successfully.",
                    tags=["note", "saved"],
                )
        return Extraction(
            title="Saved Content",
            category="Other",
            summary="Content saved successfully.",
            tags=["saved"],
        )

    async def extract_or_fallback(self, content: Content) -> Extraction:
        """
        Extraction that cannot fail.

        Who:   IngestionOrchestrator and POST /api/analyze.
        What:  Any failure in `extract` (outage, open circuit, malformed or
               incomplete reply) is logged and replaced by `fallback(content)`.
        """
        try:
            return await self.extract(content)
        except Exception as e:
            logger.warning(
                "Extraction failed (%s: %s); using fallback metadata",
                type(e).__name__,
                e,
            )
            return self.fallback(content)
