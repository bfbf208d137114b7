"""
DANGIT Backend — Social Resolver Tests
========================================

What we test:
    ✅ Post URL parsing (kind, id, optional handle)
    ✅ oEmbed → HTML → template fallback order
    ✅ Every tier reports success; degraded tiers carry a note
"""

import pytest

from dangit.services.social import (
    HTML_NOTE,
    TEMPLATE_NOTE,
    SocialResolver,
    is_social_url,
    parse_post_url,
    template_title,
)

REEL_URL = "https://www.instagram.com/reel/Cxyz123/"


@pytest.fixture
def resolver(http_client, test_settings):
    return SocialResolver(http_client, test_settings)


class TestParsing:

    @pytest.mark.parametrize(
        "url, kind, post_id, handle",
        [
            ("https://www.instagram.com/p/Cabc_1/", "post", "Cabc_1", None),
            ("https://instagram.com/reel/Cxyz123", "reel", "Cxyz123", None),
            ("https://www.instagram.com/reels/Q-9/", "reel", "Q-9", None),
            ("https://www.instagram.com/tv/T1/", "reel", "T1", None),
            ("https://www.instagram.com/chef.anna/reel/R2/", "reel", "R2", "chef.anna"),
            ("https://www.instagram.com/explore/", "post", None, None),
        ],
    )
    def test_parse_post_url(self, url, kind, post_id, handle):
        post = parse_post_url(url)
        assert (post.post_type, post.post_id, post.handle) == (kind, post_id, handle)

    def test_is_social_url(self):
        assert is_social_url("https://m.instagram.com/p/x/")
        assert not is_social_url("https://notinstagram.com/p/x/")

    def test_template_title(self):
        assert template_title("reel") == "Instagram Reel"
        assert template_title("post", "@anna") == "Instagram Post by @anna"


class TestResolve:

    @pytest.mark.asyncio
    async def test_oembed_tier(self, resolver, fake_web):
        fake_web.add(
            "api.instagram.com/oembed/",
            json={
                "title": "Five minute pasta",
                "author_name": "chef.anna",
                "thumbnail_url": "https://cdn.example/thumb.jpg",
            },
        )

        result = await resolver.resolve(REEL_URL)

        assert result.success is True
        assert result.source == "oembed"
        assert result.title == "Five minute pasta"
        assert result.author == "chef.anna"
        assert result.thumbnail == "https://cdn.example/thumb.jpg"
        assert result.post_type == "reel"
        assert result.note is None
        assert fake_web.requests[0].url.params["url"] == REEL_URL

    @pytest.mark.asyncio
    async def test_html_tier_when_oembed_refuses(self, resolver, fake_web):
        fake_web.add("api.instagram.com/oembed/", status=403, json={"error": "login required"})
        fake_web.add(
            "www.instagram.com/reel/Cxyz123/",
            text=(
                "<html><head><title>Reel by @chef.anna</title>"
                '<meta property="og:description" content="Quick pasta dinner">'
                "</head><body><script>"
                '{"display_url":"https:\\/\\/cdn.example\\/frame.jpg"}'
                "</script></body></html>"
            ),
        )

        result = await resolver.resolve(REEL_URL)

        assert result.source == "html"
        assert result.note == HTML_NOTE
        assert result.title == "Reel by @chef.anna"
        assert result.description == "Quick pasta dinner"
        assert result.thumbnail == "https://cdn.example/frame.jpg"
        assert result.author == "chef.anna"

    @pytest.mark.asyncio
    async def test_template_tier_when_everything_fails(self, resolver):
        result = await resolver.resolve("https://www.instagram.com/chef.anna/p/Cabc/")

        assert result.success is True
        assert result.source == "template"
        assert result.note == TEMPLATE_NOTE
        assert result.title == "Instagram Post by @chef.anna"
        assert result.description == "An Instagram post saved for later."
        assert result.post_id == "Cabc"
