"""OAuth provider description and identity verification.

The gate itself never validates tokens. It hands a resolved token to an
:class:`OAuthService`, which delegates to a :class:`TokenVerifier`:

1. **IntrospectionTokenVerifier**: asks the provider's RFC 7662
   introspection endpoint whether the token is active.
2. **UserInfoTokenVerifier**: calls the OpenID Connect userinfo endpoint
   with the token and accepts it if the provider answers.

Both make a single attempt and fail closed: any transport error becomes an
:class:`AuthenticationError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from oauth_gate.exceptions import AuthenticationError, ConfigurationError
from oauth_gate.models import OAuthConfig
from oauth_gate.tokens import AccessToken, AuthenticationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthProvider:
    """Endpoints of the external OAuth provider."""

    authorization_endpoint: str
    token_endpoint: str | None = None
    issuer: str | None = None
    userinfo_endpoint: str | None = None
    introspection_endpoint: str | None = None
    revocation_endpoint: str | None = None
    jwks_uri: str | None = None

    @classmethod
    def from_config(cls, config: OAuthConfig) -> OAuthProvider:
        provider = config.provider
        if not provider.authorization:
            raise ConfigurationError("Missing authorization endpoint")
        return cls(
            authorization_endpoint=provider.authorization,
            token_endpoint=provider.token,
            issuer=provider.issuer,
            userinfo_endpoint=provider.user_info,
            introspection_endpoint=provider.introspection,
            revocation_endpoint=provider.revocation,
            jwks_uri=provider.jwks,
        )


@dataclass
class Identity:
    """A verified caller."""

    subject: str
    scopes: list[str] = field(default_factory=list)
    claims: dict[str, Any] = field(default_factory=dict)


class TokenVerifier(Protocol):
    """Protocol for access token verification strategies."""

    async def verify(self, token: AccessToken) -> Identity:
        """Return the token's identity or raise AuthenticationError."""
        ...


@dataclass
class IntrospectionTokenVerifier:
    """Verifies tokens with OAuth 2.0 Token Introspection (RFC 7662)."""

    introspection_endpoint: str
    client_id: str
    client_secret: str | None = None
    timeout: float = 10.0

    async def verify(self, token: AccessToken) -> Identity:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.introspection_endpoint,
                    data={"token": token.value, "token_type_hint": "access_token"},
                    auth=(self.client_id, self.client_secret or ""),
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AuthenticationError(f"Token introspection failed: {e}") from e

        if not data.get("active"):
            raise AuthenticationError("Access token is not active")

        subject = data.get("sub") or data.get("username")
        if not subject:
            raise AuthenticationError("Introspection response has no subject")
        return Identity(
            subject=subject,
            scopes=(data.get("scope") or "").split(),
            claims=data,
        )


@dataclass
class UserInfoTokenVerifier:
    """Verifies tokens by calling the OpenID Connect userinfo endpoint."""

    userinfo_endpoint: str
    timeout: float = 10.0

    async def verify(self, token: AccessToken) -> Identity:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self.userinfo_endpoint,
                    headers={"Authorization": f"Bearer {token.value}"},
                )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"UserInfo request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"UserInfo endpoint rejected the token ({response.status_code})"
            )
        try:
            claims = response.json()
        except ValueError as e:
            raise AuthenticationError("UserInfo response is not JSON") from e

        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("UserInfo response has no subject")
        return Identity(subject=subject, claims=claims)


def create_token_verifier(config: OAuthConfig) -> TokenVerifier | None:
    """Pick a verifier from the configured provider endpoints."""
    if config.provider.introspection:
        return IntrospectionTokenVerifier(
            introspection_endpoint=config.provider.introspection,
            client_id=config.client_id or "",
            client_secret=config.client_secret,
        )
    if config.provider.user_info:
        return UserInfoTokenVerifier(userinfo_endpoint=config.provider.user_info)
    return None


class OAuthService:
    """Gives the gate access to the provider and to identity verification."""

    def __init__(
        self,
        config: OAuthConfig,
        verifier: TokenVerifier | None = None,
        provider: OAuthProvider | None = None,
    ):
        self.config = config
        self.verifier = (
            verifier if verifier is not None else create_token_verifier(config)
        )
        self._provider = provider

    def get_oauth_provider(self) -> OAuthProvider:
        if self._provider is None:
            self._provider = OAuthProvider.from_config(self.config)
        return self._provider

    async def authenticate(self, token: AuthenticationToken) -> Identity:
        """Verify the wrapped access token and return the caller's identity."""
        if self.verifier is None:
            raise AuthenticationError("No token verifier is configured")
        return await self.verifier.verify(token.access_token)
