"""
DANGIT Backend — Source Resolver
==================================

What:  Fetches a submitted URL and pulls out its title and description.
Why:   The extractor describes links from page metadata, and the client
       renders preview cards from the same data.
How:   httpx GET with a browser user agent and bounded timeout → BeautifulSoup
       (lxml) → priority chains over Open Graph, Twitter card and plain tags.

Failure policy:
    Scraping never fails the caller. Any transport error, timeout, non-2xx
    status or parse problem degrades to {"Saved Link", "Link saved: <input>"}
    because a capture must always be able to save something.
"""

import logging
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from dangit.config import Settings
from dangit.exceptions import FetchFailureError
from dangit.schemas.analysis import LinkPreview, ScrapeResult
from dangit.services.content import UrlContent
from dangit.services.social import SocialResolver, is_social_url

logger = logging.getLogger(__name__)

FAVICON_URL = "https://www.google.com/s2/favicons?domain={domain}&sz=64"

# (attribute, value) lookups, first non-empty wins
TITLE_CHAIN: List[Tuple[str, str]] = [("property", "og:title"), ("name", "twitter:title")]
DESCRIPTION_CHAIN: List[Tuple[str, str]] = [
    ("property", "og:description"),
    ("name", "twitter:description"),
    ("name", "description"),
]


def normalize_url(url: str) -> str:
    """Bare domains get https://; explicit schemes are kept as typed."""
    url = url.strip()
    if url.lower().startswith(("http://", "https://")):
        return url
    return f"https://{url}"


def favicon_for(domain: str) -> str:
    return FAVICON_URL.format(domain=domain)


def _first_meta(soup: BeautifulSoup, chain: List[Tuple[str, str]]) -> Optional[str]:
    for attr, value in chain:
        tag = soup.find("meta", attrs={attr: value})
        if tag and tag.get("content") and tag["content"].strip():
            return tag["content"].strip()
    return None


def _page_title(soup: BeautifulSoup) -> Optional[str]:
    title = _first_meta(soup, TITLE_CHAIN)
    if title:
        return title
    # <title> is the last resort after the meta chain
    if soup.title:
        text = soup.title.get_text(strip=True)
        return text or None
    return None


def degraded_scrape(raw_url: str) -> ScrapeResult:
    return ScrapeResult(title="Saved Link", description=f"Link saved: {raw_url}", url=raw_url)


class SourceResolver:
    """Generic page scraper plus the social-media special case."""

    def __init__(self, client: httpx.AsyncClient, social: SocialResolver, config: Settings):
        self.client = client
        self.social = social
        self.config = config

    async def _fetch(self, url: str) -> Tuple[BeautifulSoup, str]:
        """
        GET the page and parse it.

        Returns the soup and the final URL after redirects.

        Raises:
            FetchFailureError: transport error, timeout or non-2xx status.
        """
        try:
            response = await self.client.get(
                url,
                headers={"User-Agent": self.config.scrape_user_agent},
                timeout=self.config.scrape_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise FetchFailureError(
                message=f"Could not fetch {url}",
                context={"error_type": type(e).__name__},
            )
        if not response.is_success:
            raise FetchFailureError(
                message=f"Fetching {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return BeautifulSoup(response.text, "lxml"), str(response.url)

    async def scrape(self, url: str) -> ScrapeResult:
        """Basic scrape: title ≤ 100, description ≤ 300 chars."""
        # Any failure here degrades to the placeholder result, never an error
        try:
            soup, final_url = await self._fetch(normalize_url(url))
            title = (_page_title(soup) or "Untitled")[:100]
            description = (_first_meta(soup, DESCRIPTION_CHAIN) or "No description")[:300]
        except Exception as e:
            logger.warning("Scrape failed for %s: %s", url, e)
            return degraded_scrape(url)

        logger.info("Scraped %s", urlparse(final_url).hostname)
        return ScrapeResult(title=title, description=description, url=final_url)

    async def preview(self, url: str) -> LinkPreview:
        """Preview card: title ≤ 100, description ≤ 200, plus OG image and site name."""
        full_url = normalize_url(url)
        try:
            soup, final_url = await self._fetch(full_url)
            # Relative og:image paths resolve against the post-redirect URL
            image = _first_meta(soup, [("property", "og:image"), ("name", "twitter:image")])
            domain = urlparse(final_url).hostname
            return LinkPreview(
                url=final_url,
                domain=domain,
                title=(_page_title(soup) or "Untitled")[:100],
                description=(_first_meta(soup, DESCRIPTION_CHAIN) or "No description")[:200],
                image=urljoin(final_url, image) if image else None,
                site_name=_first_meta(soup, [("property", "og:site_name")]),
                favicon=favicon_for(domain) if domain else None,
            )
        except Exception as e:
            logger.warning("Preview failed for %s: %s", url, e)
            # Domain and favicon still come from the requested URL
            domain = urlparse(full_url).hostname
            fallback = degraded_scrape(url)
            return LinkPreview(
                url=url,
                domain=domain,
                title=fallback.title,
                description=fallback.description,
                favicon=favicon_for(domain) if domain else None,
            )

    async def resolve(self, url: str) -> UrlContent:
        """Social domains go to the social resolver, everything else is scraped."""
        # ── Social platforms: oEmbed / API metadata ──
        full_url = normalize_url(url)
        if is_social_url(full_url):
            social = await self.social.resolve(full_url)
            return UrlContent(
                url=social.url,
                title=social.title,
                description=social.description,
                thumbnail=social.thumbnail,
                author=social.author,
                platform=social.platform,
                post_type=social.post_type,
                post_id=social.post_id,
            )

        # ── Everything else: generic meta-tag scrape ──
        scraped = await self.scrape(url)
        return UrlContent(url=scraped.url, title=scraped.title, description=scraped.description)
