"""
DANGIT Backend — Test Configuration (conftest.py)
===================================================

What:  Shared fixtures: an in-memory database, a scripted language model, a
       token → email identity provider, a fake web behind httpx.MockTransport,
       and an HTTPX client wired to a fully built app.
How:   The app gets its AppContext injected through create_app(context=...),
       so nothing here touches the network, Gemini, or a real database.

Fixture Hierarchy (all function-scoped):
    test_settings ─┐
    fake_llm       ├─▶ app_context ─▶ test_app ─▶ test_client
    fake_identity  │
    fake_web ──────┤
    database ──────┘
"""

import os
import tempfile

# Override settings BEFORE any dangit import reads them
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["GEMINI_API_KEY"] = ""
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="dangit_test_")
os.environ["IDENTITY_URL"] = "https://identity.test"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from dangit.config import Settings
from dangit.database import Database
from dangit.dependencies import AppContext
from dangit.exceptions import InvalidCredentialError
from dangit.main import create_app
from dangit.services.blob_store import BlobStore
from dangit.services.identity import IdentityProvider, VerifiedUser
from dangit.services.llm_base import ImagePart, LLMService

ALICE = "alice@example.com"
BOB = "bob@example.com"
ADMIN = "admin@example.com"

TOKENS = {
    "alice-token": ALICE,
    "bob-token": BOB,
    "admin-token": ADMIN,
}


def auth(token: str = "alice-token") -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class FakeLLM(LLMService):
    """
    Replays queued replies in order. A queued exception is raised instead
    of returned. With an empty queue every call gets `default`.
    """

    def __init__(self, default: str = ""):
        self.replies: List[Union[str, Exception]] = []
        self.default = default
        self.calls: List[Dict[str, Any]] = []
        self.healthy = True

    def queue(self, *replies: Union[str, Exception]) -> None:
        self.replies.extend(replies)

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        image: Optional[ImagePart] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 600,
    ) -> str:
        self.calls.append({
            "prompt": prompt,
            "system": system,
            "image": image,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def health_check(self) -> bool:
        return self.healthy


class FakeIdentity(IdentityProvider):
    def __init__(self, tokens: Dict[str, str]):
        self.tokens = tokens

    async def verify(self, token: str) -> VerifiedUser:
        if token not in self.tokens:
            raise InvalidCredentialError()
        return VerifiedUser(email=self.tokens[token])


class FakeWeb:
    """
    Routes outbound requests by "host/path" (query ignored).

    Unregistered URLs behave like an unreachable host.
    """

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, host_path: str, status: int = 200, *, text: str = "", json: Any = None) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if json is not None:
                return httpx.Response(status, json=json)
            return httpx.Response(status, text=text, headers={"Content-Type": "text/html"})

        self.routes[host_path] = respond

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.host}{request.url.path}"
        if key not in self.routes:
            raise httpx.ConnectError("network unreachable", request=request)
        return self.routes[key](request)


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        gemini_api_key="",
        storage_root=str(tmp_path / "storage"),
        public_base_url="http://test",
        identity_url="https://identity.test",
        identity_api_key="anon-key",
        admin_emails=ADMIN,
        social_oembed_url="https://api.instagram.com/oembed/",
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_identity() -> FakeIdentity:
    return FakeIdentity(TOKENS)


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest_asyncio.fixture
async def http_client(fake_web):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_web.handler)) as client:
        yield client


@pytest_asyncio.fixture
async def database():
    db = Database.in_memory()
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def blob_store(test_settings) -> BlobStore:
    return BlobStore(test_settings.storage_root, test_settings.public_base_url)


@pytest.fixture
def app_context(test_settings, database, http_client, fake_llm, fake_identity, blob_store) -> AppContext:
    return AppContext.build(
        test_settings,
        database=database,
        http_client=http_client,
        llm=fake_llm,
        identity=fake_identity,
        blob_store=blob_store,
    )


@pytest.fixture
def test_app(app_context):
    return create_app(app_context)


@pytest_asyncio.fixture
async def test_client(test_app):
    """
    HTTPX AsyncClient talking to the app in-process.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def png_data_url() -> str:
    """A 1x1 transparent PNG as the web client sends it."""
    return (
        "data:image/png;base64,"
        "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
    )


@pytest.fixture
def mock_db_session():
    """AsyncSession stand-in for checking which statements a service issues."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session
