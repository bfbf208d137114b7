"""
DANGIT Backend — Source Resolver Tests
========================================

What we test:
    ✅ Open Graph → Twitter → <title> priority, with length caps
    ✅ Unreachable hosts and non-2xx pages degrade instead of failing
    ✅ Preview cards resolve relative og:image URLs
    ✅ Instagram URLs are routed to the social resolver
"""

import pytest

from dangit.services.resolver import SourceResolver, normalize_url
from dangit.services.social import SocialResolver

ARTICLE = """
<html><head>
  <title>Plain title</title>
  <meta name="twitter:title" content="Twitter title">
  <meta property="og:title" content="Open Graph title">
  <meta name="description" content="Plain description">
  <meta property="og:image" content="/img/cover.png">
  <meta property="og:site_name" content="Example Blog">
</head><body></body></html>
"""


@pytest.fixture
def resolver(http_client, test_settings):
    return SourceResolver(http_client, SocialResolver(http_client, test_settings), test_settings)


class TestScrape:

    @pytest.mark.asyncio
    async def test_og_title_wins(self, resolver, fake_web):
        fake_web.add("blog.example.com/post", text=ARTICLE)

        result = await resolver.scrape("https://blog.example.com/post")

        assert result.title == "Open Graph title"
        assert result.description == "Plain description"
        assert result.url == "https://blog.example.com/post"

    @pytest.mark.asyncio
    async def test_falls_back_to_title_tag(self, resolver, fake_web):
        fake_web.add("blog.example.com/bare", text="<html><head><title> Bare </title></head></html>")

        result = await resolver.scrape("blog.example.com/bare")

        assert result.title == "Bare"
        assert result.description == "No description"

    @pytest.mark.asyncio
    async def test_truncates_long_fields(self, resolver, fake_web):
        fake_web.add(
            "blog.example.com/long",
            text=f'<title>{"t" * 150}</title><meta name="description" content="{"d" * 400}">',
        )

        result = await resolver.scrape("https://blog.example.com/long")

        assert len(result.title) == 100
        assert len(result.description) == 300

    @pytest.mark.asyncio
    async def test_unreachable_host_degrades(self, resolver):
        result = await resolver.scrape("https://example.com")

        assert result.title == "Saved Link"
        assert result.description == "Link saved: https://example.com"
        assert result.url == "https://example.com"

    @pytest.mark.asyncio
    async def test_error_status_degrades(self, resolver, fake_web):
        fake_web.add("blog.example.com/gone", status=404, text="not found")

        result = await resolver.scrape("https://blog.example.com/gone")

        assert result.title == "Saved Link"


class TestPreview:

    @pytest.mark.asyncio
    async def test_preview_card(self, resolver, fake_web):
        fake_web.add("blog.example.com/post", text=ARTICLE)

        preview = await resolver.preview("https://blog.example.com/post")

        assert preview.domain == "blog.example.com"
        assert preview.image == "https://blog.example.com/img/cover.png"
        assert preview.site_name == "Example Blog"
        assert "blog.example.com" in preview.favicon

    @pytest.mark.asyncio
    async def test_preview_degrades(self, resolver):
        preview = await resolver.preview("example.com")

        assert preview.title == "Saved Link"
        assert preview.domain == "example.com"
        assert preview.image is None


class TestResolve:

    @pytest.mark.asyncio
    async def test_social_routed(self, resolver, fake_web):
        fake_web.add("api.instagram.com/oembed/", json={"title": "Pasta", "author_name": "chef.anna"})

        content = await resolver.resolve("instagram.com/reel/Cxyz123/")

        assert content.platform == "instagram"
        assert content.post_type == "reel"
        assert content.author == "chef.anna"

    @pytest.mark.asyncio
    async def test_generic_scraped(self, resolver, fake_web):
        fake_web.add("blog.example.com/post", text=ARTICLE)

        content = await resolver.resolve("https://blog.example.com/post")

        assert content.platform is None
        assert content.title == "Open Graph title"


def test_normalize_url_adds_scheme():
    assert normalize_url(" example.com/x ") == "https://example.com/x"
    assert normalize_url("http://example.com") == "http://example.com"
