"""
DANGIT Backend — Social Post Resolver (Instagram)
===================================================

What:  Builds preview metadata for Instagram posts and reels.
Why:   Instagram pages serve a login wall to scrapers, so the generic scrape
       mostly returns "Instagram" as the title. This resolver tries the
       sources that still work, in order of fidelity.
How:   1. oEmbed endpoint         → title, author, thumbnail     (source=oembed)
       2. Post page HTML          → <title>, og tags, embedded   (source=html)
                                    display_url / video_url
       3. Deterministic template  → "Instagram Reel by @handle"  (source=template)

Every tier reports success; tiers 2 and 3 attach a `note` so the client
can show that the preview is partial.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from dangit.config import Settings
from dangit.schemas.analysis import SocialScrapeResult

logger = logging.getLogger(__name__)

PLATFORM = "instagram"
SOCIAL_DOMAINS = frozenset({
    "instagram.com",
    "www.instagram.com",
    "m.instagram.com",
    "instagr.am",
})

# /p/<id>, /reel/<id>, /reels/<id>, /tv/<id>, optionally after /<handle>/
_POST_PATH_RE = re.compile(
    r"^/(?:(?P<handle>[A-Za-z0-9._]+)/)?(?P<kind>p|reel|reels|tv)/(?P<post_id>[A-Za-z0-9_-]+)"
)
_MEDIA_URL_RE = re.compile(r'"(?:display_url|video_url)"\s*:\s*"(?P<url>[^"]+)"')
_AUTHOR_RE = re.compile(r"@(?P<handle>[A-Za-z0-9._]+)")

HTML_NOTE = "Preview built from the public page; the post caption may be incomplete."
TEMPLATE_NOTE = "Instagram did not share post details; showing a generic preview."


@dataclass(frozen=True)
class SocialPost:
    post_type: str  # "reel" | "post"
    post_id: Optional[str] = None
    handle: Optional[str] = None


def is_social_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host in SOCIAL_DOMAINS


def parse_post_url(url: str) -> SocialPost:
    """
    Pull the post kind, id and (when present) author handle out of the path.

    Unrecognized paths are treated as a post with no id.
    """
    match = _POST_PATH_RE.match(urlparse(url).path or "")
    if not match:
        return SocialPost(post_type="post")
    kind = "post" if match.group("kind") == "p" else "reel"
    return SocialPost(post_type=kind, post_id=match.group("post_id"), handle=match.group("handle"))


def template_title(post_type: str, author: Optional[str] = None) -> str:
    label = "Instagram Reel" if post_type == "reel" else "Instagram Post"
    if author:
        return f"{label} by @{author.lstrip('@')}"
    return label


def _meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


class SocialResolver:
    """Three-tier Instagram resolver sharing the app's httpx client."""

    def __init__(self, client: httpx.AsyncClient, config: Settings):
        self.client = client
        self.config = config

    async def resolve(self, url: str) -> SocialScrapeResult:
        """
        Resolve a post URL to display metadata.

        Who:   SourceResolver.resolve and POST /api/scrape-social.
        When:  Any URL whose host is a supported social domain.

        Tiers, first usable answer wins:
            1. oEmbed endpoint (caption, author, thumbnail)
            2. The post page's own HTML (og tags, embedded media URL)
            3. A template built from the URL alone

        Never raises for upstream trouble; tier 3 always succeeds.
        """
        post = parse_post_url(url)

        # ── Tier 1: oEmbed ──
        result = await self._from_oembed(url, post)
        # ── Tier 2: page HTML ──
        if result is None:
            result = await self._from_html(url, post)
        # ── Tier 3: URL template ──
        if result is None:
            result = self._from_template(url, post)

        logger.info(
            "Resolved %s %s via %s",
            PLATFORM,
            post.post_type,
            result.source,
        )
        return result

    async def _from_oembed(self, url: str, post: SocialPost) -> Optional[SocialScrapeResult]:
        try:
            response = await self.client.get(
                self.config.social_oembed_url,
                params={"url": url},
                headers={"User-Agent": self.config.scrape_user_agent},
                timeout=self.config.scrape_timeout,
            )
            if response.status_code != 200:
                logger.debug("oEmbed returned %d for %s", response.status_code, url)
                return None
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("oEmbed lookup failed: %s", e)
            return None

        if not isinstance(payload, dict):
            return None
        # oEmbed puts the caption in "title"
        caption = str(payload.get("title") or "").strip()
        author = payload.get("author_name") or post.handle
        if not caption and not author:
            return None

        return SocialScrapeResult(
            platform=PLATFORM,
            post_type=post.post_type,
            post_id=post.post_id,
            title=caption[:100] or template_title(post.post_type, author),
            description=caption[:300] or f"Shared on Instagram by @{author}",
            url=url,
            thumbnail=payload.get("thumbnail_url"),
            author=author,
            source="oembed",
        )

    async def _from_html(self, url: str, post: SocialPost) -> Optional[SocialScrapeResult]:
        try:
            response = await self.client.get(
                url,
                headers={"User-Agent": self.config.scrape_user_agent},
                timeout=self.config.scrape_timeout,
                follow_redirects=True,
            )
            if response.status_code != 200:
                return None
            html = response.text
        except httpx.HTTPError as e:
            logger.debug("Post page fetch failed: %s", e)
            return None

        soup = BeautifulSoup(html, "lxml")
        title = soup.title.get_text(strip=True) if soup.title else ""
        description = _meta_content(soup, "og:description") or ""
        thumbnail = _meta_content(soup, "og:image")
        # Login-walled pages still embed the display URL in inline JSON
        if not thumbnail:
            media = _MEDIA_URL_RE.search(html)
            if media:
                thumbnail = media.group("url").replace("\\u0026", "&").replace("\\/", "/")

        # Handle in the URL wins over one guessed from page text
        author = post.handle
        if not author:
            found = _AUTHOR_RE.search(f"{title} {description}")
            author = found.group("handle") if found else None

        if not (title or description or thumbnail):
            return None

        return SocialScrapeResult(
            platform=PLATFORM,
            post_type=post.post_type,
            post_id=post.post_id,
            title=(title or template_title(post.post_type, author))[:100],
            description=(description or title)[:300],
            url=url,
            thumbnail=thumbnail,
            author=author,
            source="html",
            note=HTML_NOTE,
        )

    def _from_template(self, url: str, post: SocialPost) -> SocialScrapeResult:
        """Metadata derived only from the URL; used when the platform refuses every request."""
        kind = "reel" if post.post_type == "reel" else "post"
        return SocialScrapeResult(
            platform=PLATFORM,
            post_type=post.post_type,
            post_id=post.post_id,
            title=template_title(post.post_type, post.handle),
            description=f"An Instagram {kind} saved for later.",
            url=url,
            author=post.handle,
            source="template",
            note=TEMPLATE_NOTE,
        )
