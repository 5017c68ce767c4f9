"""OAuth 2.0 / OpenID Connect authentication gate for Starlette applications."""

from oauth_gate.auth import OAuthAuthenticationMiddleware
from oauth_gate.authorization import AuthorizationRequest, build_authorization_request
from oauth_gate.exceptions import (
    AuthenticationError,
    ConfigurationError,
    StateMismatchError,
    TokenParseError,
)
from oauth_gate.models import OAuthConfig
from oauth_gate.provider import Identity, OAuthProvider, OAuthService
from oauth_gate.session import (
    NONCE_KEY,
    STATE_KEY,
    MemorySessionStore,
    SessionMiddleware,
    consume_state,
)
from oauth_gate.tokens import AccessToken, AccessTokenType

__all__ = [
    "AccessToken",
    "AccessTokenType",
    "AuthenticationError",
    "AuthorizationRequest",
    "ConfigurationError",
    "Identity",
    "MemorySessionStore",
    "NONCE_KEY",
    "OAuthAuthenticationMiddleware",
    "OAuthConfig",
    "OAuthProvider",
    "OAuthService",
    "STATE_KEY",
    "SessionMiddleware",
    "StateMismatchError",
    "TokenParseError",
    "build_authorization_request",
    "consume_state",
]
