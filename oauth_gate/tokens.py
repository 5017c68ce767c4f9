"""Access tokens, correlation values and token resolution strategies."""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Protocol

from oauth_gate.exceptions import TokenParseError

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"

# RFC 6750 section 2.1: credentials = "Bearer" 1*SP b64token
_BEARER_PATTERN = re.compile(r"^Bearer +([A-Za-z0-9\-._~+/]+=*)$", re.IGNORECASE)

# Characters of an unparsable header kept in debug logs
LOG_PREVIEW_LENGTH = 10


def _preview(header_value: str) -> str:
    if len(header_value) <= LOG_PREVIEW_LENGTH:
        return header_value
    return f"{header_value[:LOG_PREVIEW_LENGTH]}..."


class AccessTokenType(str, Enum):
    """Wire format an access token was read from."""

    BEARER = "Bearer"
    TYPELESS = "Typeless"


@dataclass(frozen=True)
class AccessToken:
    """An opaque access token presented by the caller."""

    value: str
    token_type: AccessTokenType = AccessTokenType.BEARER

    @classmethod
    def parse_bearer(cls, header_value: str) -> AccessToken:
        """Parse an ``Authorization: Bearer <token>`` header value."""
        match = _BEARER_PATTERN.match(header_value.strip())
        if not match:
            raise TokenParseError("Invalid bearer access token")
        return cls(match.group(1), AccessTokenType.BEARER)

    @classmethod
    def parse_typeless(cls, header_value: str) -> AccessToken:
        """Parse a raw token value carried without a type prefix."""
        value = header_value.strip()
        if not value:
            raise TokenParseError("Empty access token")
        return cls(value, AccessTokenType.TYPELESS)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AuthenticationToken:
    """Wraps a resolved access token for the identity verifier."""

    access_token: AccessToken

    @property
    def credentials(self) -> str:
        return self.access_token.value


def _random_value() -> str:
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class State:
    """Per-attempt value binding a callback to the redirect that caused it."""

    value: str = field(default_factory=_random_value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Nonce:
    """Per-attempt value binding an ID token to the authentication request."""

    value: str = field(default_factory=_random_value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Scope:
    """Ordered set of scope values."""

    values: tuple[str, ...] = ()

    @classmethod
    def of(cls, scopes: Iterable[str] | None) -> Scope:
        seen: list[str] = []
        for item in scopes or ():
            # Accept both ["openid", "email"] and ["openid email"]
            for value in item.split():
                if value not in seen:
                    seen.append(value)
        return cls(tuple(seen))

    def __contains__(self, value: object) -> bool:
        return value in self.values

    def __iter__(self):
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __str__(self) -> str:
        return " ".join(self.values)


# =============================================================================
# Token resolution strategies
# =============================================================================


class TokenResolver(Protocol):
    """Protocol for reading an access token from a request."""

    def resolve(self, request: Request) -> AccessToken | None:
        """Return the request's access token, or None if there is none."""
        ...


@dataclass
class BearerTokenResolver:
    """Reads a bearer token from the standard Authorization header."""

    header_name: str = AUTHORIZATION_HEADER

    def resolve(self, request: Request) -> AccessToken | None:
        header_value = request.headers.get(self.header_name)
        if header_value is None:
            return None
        try:
            return AccessToken.parse_bearer(header_value)
        except TokenParseError:
            logger.debug(
                f"Unable to parse bearer access token from: {_preview(header_value)}"
            )
            return None


@dataclass
class CustomHeaderTokenResolver:
    """Reads a typeless token from a configured custom header.

    The standard Authorization header is never consulted.
    """

    header_name: str

    def resolve(self, request: Request) -> AccessToken | None:
        header_value = request.headers.get(self.header_name)
        if header_value is None:
            return None
        try:
            return AccessToken.parse_typeless(header_value)
        except TokenParseError:
            logger.debug(
                f"Unable to parse typeless access token from: {_preview(header_value)}"
            )
            return None


def create_token_resolver(custom_header: str | None) -> TokenResolver:
    """Pick the resolution strategy for the configured header."""
    if custom_header:
        return CustomHeaderTokenResolver(custom_header)
    return BearerTokenResolver()
