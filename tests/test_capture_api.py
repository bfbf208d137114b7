"""
DANGIT Backend — Capture, Analysis & Health Endpoint Tests
============================================================

What we test:
    ✅ POST /api/process-content stores an item for the verified owner
    ✅ POST /api/storage/upload-image + GET /api/files/{path} round trip
    ✅ /api/analyze never surfaces model failures
    ✅ /api/scrape degrades; /api/scrape-social needs auth and a social URL
    ✅ Health is always 200 and reports DEGRADED when a dependency is down
    ✅ Request ids are echoed; the rate limiter answers 429 with Retry-After
"""

import json

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from dangit.exceptions import LLMServiceError
from dangit.middleware.rate_limit import RateLimitMiddleware
from dangit.middleware.request_id import RequestIDMiddleware

from conftest import ALICE, auth


class TestProcessContent:

    @pytest.mark.asyncio
    async def test_text_capture(self, test_client, fake_llm):
        fake_llm.queue(json.dumps({
            "title": "Dentist Reminder",
            "category": "Health & Fitness",
            "summary": "Book the dentist.",
            "tags": ["reminder"],
        }))

        response = await test_client.post(
            "/api/process-content",
            json={"content": "Book the dentist for Tuesday", "contentType": "text"},
            headers=auth(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user_id"] == ALICE
        assert body["data"]["title"] == "Dentist Reminder"

        listed = await test_client.get("/api/saved-items", headers=auth())
        assert [i["title"] for i in listed.json()["data"]] == ["Dentist Reminder"]

    @pytest.mark.asyncio
    async def test_owner_comes_from_credential_only(self, test_client):
        response = await test_client.post(
            "/api/process-content",
            json={"content": "note", "contentType": "text", "user_id": "mallory@example.com"},
            headers=auth("bob-token"),
        )
        assert response.json()["data"]["user_id"] == "bob@example.com"

    @pytest.mark.asyncio
    async def test_requires_credential(self, test_client):
        response = await test_client.post(
            "/api/process-content", json={"content": "note", "contentType": "text"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_content_type(self, test_client):
        response = await test_client.post(
            "/api/process-content", json={"content": "x", "contentType": "video"}, headers=auth()
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_oversized_note(self, test_client):
        response = await test_client.post(
            "/api/process-content",
            json={"content": "x" * 10_001, "contentType": "text"},
            headers=auth(),
        )
        assert response.status_code == 400


class TestStorage:

    @pytest.mark.asyncio
    async def test_upload_and_serve(self, test_client, png_data_url):
        uploaded = await test_client.post(
            "/api/storage/upload-image",
            json={"imageData": png_data_url, "fileName": "shot.png"},
            headers=auth(),
        )

        assert uploaded.status_code == 200
        path = uploaded.json()["path"]
        assert path.startswith("alice@example.com/")
        assert uploaded.json()["url"].endswith(path)

        served = await test_client.get(f"/api/files/{path}")
        assert served.status_code == 200
        assert served.content.startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_client_file_name_cannot_pick_the_served_type(self, test_client, png_data_url):
        uploaded = await test_client.post(
            "/api/storage/upload-image",
            json={"imageData": png_data_url, "fileName": "x.html"},
            headers=auth(),
        )

        path = uploaded.json()["path"]
        assert path.endswith("-x.png")

        served = await test_client.get(f"/api/files/{path}")
        assert served.headers["content-type"] == "image/png"
        assert served.headers["x-content-type-options"] == "nosniff"

    @pytest.mark.asyncio
    async def test_script_sent_as_png_is_rejected(self, test_client, tmp_path):
        response = await test_client.post(
            "/api/storage/upload-image",
            json={
                "imageData": "data:image/png;base64,PHNjcmlwdD5hbGVydCgxKTwvc2NyaXB0Pg==",
                "fileName": "x.html",
            },
            headers=auth(),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert not list((tmp_path / "storage").rglob("*.html"))

    @pytest.mark.asyncio
    async def test_unsupported_image_type(self, test_client):
        response = await test_client.post(
            "/api/storage/upload-image",
            json={"imageData": "data:image/svg+xml;base64,PHN2Zy8+"},
            headers=auth(),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_file(self, test_client):
        response = await test_client.get("/api/files/alice@example.com/nope.png")
        assert response.status_code == 404


class TestAnalysis:

    @pytest.mark.asyncio
    async def test_analyze_text(self, test_client, fake_llm):
        fake_llm.queue('{"title": "Trip Plan", "category": "Travel", "summary": "Goa in May.", "tags": []}')

        response = await test_client.post("/api/analyze", json={"content": "Goa trip in May", "contentType": "text"})

        assert response.status_code == 200
        assert response.json()["title"] == "Trip Plan"
        assert "extracted_info" not in response.json()

    @pytest.mark.asyncio
    async def test_analyze_model_down_uses_fallback(self, test_client, fake_llm):
        fake_llm.queue(LLMServiceError())

        response = await test_client.post(
            "/api/analyze",
            json={"content": {"url": "https://example.com", "title": "Example", "description": ""}, "contentType": "url"},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Example"
        assert response.json()["tags"] == ["link", "saved"]

    @pytest.mark.asyncio
    async def test_scrape_degrades(self, test_client):
        response = await test_client.post("/api/scrape", json={"url": "https://example.com"})

        assert response.status_code == 200
        assert response.json() == {
            "title": "Saved Link",
            "description": "Link saved: https://example.com",
            "url": "https://example.com",
        }

    @pytest.mark.asyncio
    async def test_link_preview(self, test_client, fake_web):
        fake_web.add("blog.example.com/a", text='<title>A</title><meta property="og:image" content="https://img/x.png">')

        response = await test_client.post("/api/link-preview", json={"url": "https://blog.example.com/a"})

        assert response.json()["image"] == "https://img/x.png"

    @pytest.mark.asyncio
    async def test_scrape_social_requires_auth(self, test_client):
        response = await test_client.post(
            "/api/scrape-social", json={"url": "https://www.instagram.com/reel/Cxyz123/"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_scrape_social_rejects_other_hosts(self, test_client):
        response = await test_client.post(
            "/api/scrape-social", json={"url": "https://example.com/reel/1"}, headers=auth()
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_scrape_social_template(self, test_client):
        response = await test_client.post(
            "/api/scrape-social", json={"url": "https://www.instagram.com/reel/Cxyz123/"}, headers=auth()
        )

        body = response.json()
        assert body["success"] is True
        assert body["source"] == "template"
        assert body["note"]


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["database"] == "connected"
        assert body["llm"] == "available"
        assert "Feature Voting" in body["features"]

    @pytest.mark.asyncio
    async def test_degraded_is_still_200(self, test_client, fake_llm):
        fake_llm.healthy = False

        response = await test_client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "DEGRADED"
        assert response.json()["llm"] == "unavailable"


class TestMiddleware:

    @pytest.mark.asyncio
    async def test_client_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "web-abc.123"})
        assert response.headers["X-Request-ID"] == "web-abc.123"

    @pytest.mark.asyncio
    async def test_unsafe_request_id_replaced(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "not a valid id!"})
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        app = FastAPI()

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60)
        app.add_middleware(RequestIDMiddleware)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            statuses = [(await client.get("/ping", headers=auth())).status_code for _ in range(3)]
            limited = await client.get("/ping", headers=auth())

        assert statuses == [200, 200, 429]
        assert int(limited.headers["Retry-After"]) > 0
        assert limited.json()["error"] == "rate_limit_exceeded"

    @pytest.mark.asyncio
    async def test_rotating_credentials_share_one_budget(self):
        app = FastAPI()

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            statuses = [
                (await client.get("/ping", headers=auth(f"junk{i}"))).status_code for i in range(6)
            ]
            anonymous = await client.get("/ping")

        assert statuses == [200, 200, 429, 429, 429, 429]
        assert anonymous.status_code == 429


@pytest.mark.asyncio
async def test_scrape_without_scheme_echoes_raw_input(test_client):
    response = await test_client.post("/api/scrape", json={"url": "example.com"})

    assert response.status_code == 200
    assert response.json() == {
        "title": "Saved Link",
        "description": "Link saved: example.com",
        "url": "example.com",
    }
