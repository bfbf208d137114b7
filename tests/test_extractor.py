"""
DANGIT Backend — Content Extractor Unit Tests
===============================================

What we test:
    ✅ Each content variant goes to the right model with the right settings
    ✅ Post-conditions: title ≤ 60, summary ≤ 300, ≤ 5 tags
    ✅ Instagram links are described without calling the model
    ✅ Missing fields / malformed replies / model outages → fallback metadata
"""

import json

import pytest

from dangit.exceptions import InvalidExtractionError, LLMServiceError
from dangit.services.content import ImageContent, TextContent, UrlContent
from dangit.services.extractor import (
    MAX_SUMMARY,
    MAX_TAGS,
    MAX_TITLE,
    ContentExtractor,
    clean_social_caption,
    finalize,
)

from conftest import FakeLLM


def reply(**fields) -> str:
    base = {"title": "A title", "category": "Learning", "summary": "A summary.", "tags": ["a"]}
    base.update(fields)
    return json.dumps(base)


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def extractor(llm):
    return ContentExtractor(llm)


class TestFinalize:

    def test_truncates_and_caps(self):
        result = finalize({
            "title": "T" * 80,
            "category": "Learning",
            "summary": "S" * 400,
            "tags": ["a", "b", "c", "d", "e", "f", "g"],
        })
        assert len(result.title) == MAX_TITLE
        assert len(result.summary) == MAX_SUMMARY
        assert len(result.tags) == MAX_TAGS

    def test_missing_fields_listed(self):
        with pytest.raises(InvalidExtractionError) as exc_info:
            finalize({"title": "Only a title", "summary": "  "})
        assert exc_info.value.context["missing"] == ["category", "summary"]

    def test_non_string_tags_dropped(self):
        result = finalize({"title": "t", "category": "c", "summary": "s", "tags": ["ok", 3, " ", None]})
        assert result.tags == ["ok"]

    def test_null_strings_in_extracted_info(self):
        result = finalize({
            "title": "Coupon",
            "category": "Coupons & Deals",
            "summary": "Code inside",
            "extracted_info": {"code": "SAVE20", "deadline": "null", "price": 499},
        })
        assert result.extracted_info.code == "SAVE20"
        assert result.extracted_info.deadline is None
        assert result.extracted_info.price == "499"


class TestExtract:

    @pytest.mark.asyncio
    async def test_image_uses_vision_settings(self, extractor, llm):
        llm.queue("```json\n" + reply(title="Tiramisu Recipe", extracted_info={"price": None}) + "\n```")
        image = ImageContent(data=b"\x89PNG", mime_type="image/png", payload="iVBORw==")

        result = await extractor.extract(image)

        assert result.title == "Tiramisu Recipe"
        call = llm.calls[0]
        assert call["image"].data == b"\x89PNG"
        assert call["image"].mime_type == "image/png"
        assert call["temperature"] == 0.3
        assert call["max_output_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_url_prompt_includes_page_metadata(self, extractor, llm):
        llm.queue(reply(content_type="article"))
        link = UrlContent(url="https://blog.example.com/post", title="Async Python", description="A guide")

        result = await extractor.extract(link)

        assert result.content_type == "article"
        call = llm.calls[0]
        assert "Async Python" in call["prompt"]
        assert "https://blog.example.com/post" in call["prompt"]
        assert call["image"] is None
        assert call["temperature"] == 0.4

    @pytest.mark.asyncio
    async def test_text_prompt_keeps_note(self, extractor, llm):
        llm.queue(reply(title="Grocery Shopping Tomorrow", note_type="list"))

        result = await extractor.extract(TextContent("Buy milk, eggs, bread from store tomorrow"))

        assert result.note_type == "list"
        assert "Buy milk, eggs, bread" in llm.calls[0]["prompt"]
        assert llm.calls[0]["max_output_tokens"] == 400

    @pytest.mark.asyncio
    async def test_social_link_skips_model(self, extractor, llm):
        link = UrlContent(
            url="https://www.instagram.com/reel/Cxyz123/",
            title="Instagram",
            description="",
            author="chef.anna",
            platform="instagram",
            post_type="reel",
        )

        result = await extractor.extract(link)

        assert llm.calls == []
        assert result.title == "Instagram Reel by @chef.anna"
        assert result.category == "Entertainment"
        assert result.tags == ["instagram", "reel", "chef.anna"]

    @pytest.mark.asyncio
    async def test_social_caption_is_cleaned(self, extractor):
        link = UrlContent(
            url="https://www.instagram.com/p/Cabc/",
            title='chef.anna on Instagram: "Five minute pasta you will make every week"',
            description="",
            post_type="post",
        )

        result = await extractor.extract(link)

        assert result.title == "Five minute pasta you will make every week"
        assert result.category == "Other"


class TestFallback:

    @pytest.mark.asyncio
    async def test_model_outage_image(self, extractor, llm):
        llm.queue(LLMServiceError())
        image = ImageContent(data=b"x", mime_type="image/png", payload="eA==")

        result = await extractor.extract_or_fallback(image)

        assert result.title == "Saved Screenshot"
        assert result.category == "Other"
        assert result.tags == ["screenshot", "saved"]

    @pytest.mark.asyncio
    async def test_malformed_reply_text(self, extractor, llm):
        llm.queue("I can't help with that.")
        note = "Call the dentist\nabout the Tuesday appointment"

        result = await extractor.extract_or_fallback(TextContent(note))

        assert result.title == "Call the dentist"
        assert result.summary == note
        assert result.tags == ["note", "saved"]

    @pytest.mark.asyncio
    async def test_missing_fields_url(self, extractor, llm):
        llm.queue(json.dumps({"title": "Only title"}))
        link = UrlContent(url="https://example.com", title="Example Domain", description="Docs")

        result = await extractor.extract_or_fallback(link)

        assert result.title == "Example Domain"
        assert result.summary == "Docs"
        assert result.tags == ["link", "saved"]

    @pytest.mark.asyncio
    async def test_url_without_metadata(self, extractor, llm):
        llm.queue(LLMServiceError())

        result = await extractor.extract_or_fallback(UrlContent(url="https://example.com"))

        assert result.title == "Saved Link"
        assert result.summary == "Link saved successfully for later reference."


def test_clean_social_caption_strips_branding():
    assert clean_social_caption("Sunset timelapse • Instagram photos and videos") == "Sunset timelapse"
