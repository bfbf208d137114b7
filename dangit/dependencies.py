"""
DANGIT Backend — Application Context & FastAPI Dependencies
=============================================================

What:  AppContext holds every long-lived collaborator (database, model
       client, resolver, blob store, identity provider, orchestrator) and
       the shared httpx client. FastAPI dependencies read it from
       app.state.context.
Why:   No module-level singletons. Tests build an AppContext with an
       in-memory database and fake providers and hand it to create_app().

Dependencies:
    get_context        → the AppContext
    get_db_session     → one AsyncSession per request; commit on success,
                         rollback on error
    get_current_owner  → verified email from the bearer credential
"""

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from dangit.config import Settings
from dangit.database import Database
from dangit.exceptions import NoCredentialError
from dangit.services.blob_store import BlobStore
from dangit.services.extractor import ContentExtractor
from dangit.services.feedback_service import FeedbackService
from dangit.services.gemini_service import GeminiService
from dangit.services.identity import IdentityProvider, build_identity_provider
from dangit.services.item_service import SavedItemService
from dangit.services.llm_base import LLMService
from dangit.services.orchestrator import IngestionOrchestrator
from dangit.services.resolver import SourceResolver
from dangit.services.social import SocialResolver

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    database: Database
    http_client: httpx.AsyncClient
    llm: LLMService
    extractor: ContentExtractor
    resolver: SourceResolver
    blob_store: BlobStore
    identity: IdentityProvider
    items: SavedItemService
    feedback: FeedbackService
    orchestrator: IngestionOrchestrator

    @classmethod
    def build(
        cls,
        config: Settings,
        *,
        database: Database,
        http_client: httpx.AsyncClient,
        llm: LLMService,
        identity: Optional[IdentityProvider] = None,
        blob_store: Optional[BlobStore] = None,
    ) -> "AppContext":
        """Wire the pipeline around the given externals; anything omitted comes from config."""
        extractor = ContentExtractor(llm)
        resolver = SourceResolver(http_client, SocialResolver(http_client, config), config)
        blob_store = blob_store or BlobStore(config.storage_root, config.public_base_url)
        items = SavedItemService()
        return cls(
            database=database,
            http_client=http_client,
            llm=llm,
            extractor=extractor,
            resolver=resolver,
            blob_store=blob_store,
            identity=identity or build_identity_provider(http_client, config),
            items=items,
            feedback=FeedbackService(config.admin_emails_list),
            orchestrator=IngestionOrchestrator(extractor, resolver, blob_store, items),
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "AppContext":
        """Production wiring: real database, Gemini, identity service."""
        return cls.build(
            config,
            database=Database.from_settings(config),
            http_client=httpx.AsyncClient(),
            llm=GeminiService(config),
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.database.dispose()
        logger.info("Application context closed")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_db_session(
    context: AppContext = Depends(get_context),
) -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request.

    Services flush inside their own error handling, so store errors surface
    as PersistenceError there; the commit here makes the request's writes
    durable, and any exception rolls everything back.
    """
    async with context.database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


_bearer = HTTPBearer(auto_error=False)


async def get_current_owner(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    context: AppContext = Depends(get_context),
) -> str:
    """
    Resolve the caller's verified email.

    Raises:
        NoCredentialError: no `Authorization: Bearer ...` header (401 NO_AUTH_TOKEN).
        InvalidCredentialError: the identity provider rejected it (401 INVALID_TOKEN).
    """
    if credentials is None or not credentials.credentials:
        raise NoCredentialError()

    user = await context.identity.verify(credentials.credentials)
    # Read by the access log middleware
    request.state.owner = user.email
    return user.email
