"""
DANGIT Backend — Identity Providers
=====================================

What:  Turns a bearer credential into a verified user.
How:   Two interchangeable providers behind one interface:
         RemoteIdentityProvider → asks the identity service's user endpoint
                                  (GoTrue-compatible: GET /auth/v1/user)
         JWTIdentityProvider    → verifies the token locally with the shared
                                  HS256 secret (python-jose)
       Both return the account email, which is the owner id on every row.

Security:
    The owner always comes from the verified credential. Request bodies and
    query strings are never consulted for identity.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from jose import JWTError, jwt

from dangit.config import Settings
from dangit.exceptions import InvalidCredentialError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedUser:
    email: str
    id: Optional[str] = None


def mask_email(email: str) -> str:
    """j***@example.com, for INFO-level logs."""
    local, sep, domain = email.partition("@")
    if not sep:
        return f"{email[:1]}***"
    return f"{local[:1]}***@{domain}"


class IdentityProvider(ABC):
    @abstractmethod
    async def verify(self, token: str) -> VerifiedUser:
        """
        Raises:
            InvalidCredentialError: token invalid, expired or revoked, or the
                provider could not be reached (code AUTH_ERROR).
        """
        ...


class RemoteIdentityProvider(IdentityProvider):
    """Verifies tokens against the identity service on every request."""

    def __init__(self, client: httpx.AsyncClient, config: Settings):
        self.client = client
        self.config = config

    async def verify(self, token: str) -> VerifiedUser:
        if not self.config.identity_url:
            raise InvalidCredentialError(
                message="Authentication service is not configured",
                code="AUTH_ERROR",
            )

        # apikey identifies this backend to the service; Authorization is the user's token
        try:
            response = await self.client.get(
                f"{self.config.identity_url.rstrip('/')}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": self.config.identity_api_key,
                },
                timeout=self.config.identity_timeout,
            )
        except httpx.HTTPError as e:
            # Unreachable or timed out: still 401, never an assumed identity
            logger.error("Identity service unreachable: %s", e)
            raise InvalidCredentialError(
                message="Authentication failed. Please try again.",
                code="AUTH_ERROR",
                context={"error_type": type(e).__name__},
            )

        # 401 / 403 / anything else: the token is not accepted
        if response.status_code != 200:
            logger.info("Identity service rejected token (HTTP %d)", response.status_code)
            raise InvalidCredentialError(context={"status_code": response.status_code})

        try:
            payload = response.json()
        except ValueError:
            raise InvalidCredentialError(code="AUTH_ERROR")

        # Owner ids are stored lowercased; compare the same way everywhere
        email = payload.get("email") if isinstance(payload, dict) else None
        if not email:
            raise InvalidCredentialError()
        return VerifiedUser(email=email.lower(), id=payload.get("id"))


class JWTIdentityProvider(IdentityProvider):
    """Local HS256 verification; no network round trip."""

    def __init__(self, config: Settings):
        self.config = config

    async def verify(self, token: str) -> VerifiedUser:
        if not self.config.jwt_secret:
            raise InvalidCredentialError(
                message="Authentication service is not configured",
                code="AUTH_ERROR",
            )
        try:
            # Checks signature, exp and aud in one call
            payload = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm],
                audience=self.config.jwt_audience,
            )
        except JWTError as e:
            logger.info("JWT rejected: %s", e)
            raise InvalidCredentialError()

        email = payload.get("email")
        if not email:
            raise InvalidCredentialError()
        return VerifiedUser(email=email.lower(), id=payload.get("sub"))


def build_identity_provider(client: httpx.AsyncClient, config: Settings) -> IdentityProvider:
    """IDENTITY_BACKEND=jwt selects local verification; anything else the remote service."""
    if config.identity_backend == "jwt":
        return JWTIdentityProvider(config)
    return RemoteIdentityProvider(client, config)
