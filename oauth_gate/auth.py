"""OAuth 2.0 / OpenID Connect authentication middleware.

For every request that is not excluded and whose session does not already
carry an identity, the middleware:

1. Resolves an access token from the request headers (see
   :func:`oauth_gate.tokens.create_token_resolver`).
2. If there is one, verifies it through the :class:`OAuthService`. On
   success the session identifier is regenerated and the request proceeds.
   On failure the reason is kept on ``request.state``.
3. Otherwise redirects the browser to the provider's authorization endpoint,
   saving the state, nonce and original URL in the session.
4. When redirects are disabled, answers 401.

Only :class:`ConfigurationError` escapes the middleware. Unparsable headers,
rejected tokens and failures writing the 401 are absorbed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from oauth_gate.authorization import build_authorization_request
from oauth_gate.exceptions import AuthenticationError, ConfigurationError
from oauth_gate.models import OAuthConfig
from oauth_gate.provider import Identity, OAuthService
from oauth_gate.session import (
    IDENTITY_KEY,
    get_session,
    save_request,
    save_state,
)
from oauth_gate.tokens import (
    AccessToken,
    AuthenticationToken,
    Nonce,
    State,
    create_token_resolver,
)
from oauth_gate.utils import (
    LOGIN_FAILURE_REASON_KEY,
    OPENID_SCOPE,
    callback_uri_from_base,
    callback_uri_from_request,
    create_scope,
    format_unauthorized_message,
)

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)


class UnauthorizedResponse(JSONResponse):
    """401 response whose delivery is best effort.

    Only an ``OSError`` raised by ``send`` is absorbed. That is what the
    server raises when the gate is the outermost layer. Behind another
    ``BaseHTTPMiddleware``, such as the session middleware in ``create_app``,
    ``send`` feeds that middleware's stream and a client disconnect is
    handled there instead.
    """

    def __init__(self, message: str):
        super().__init__(
            {"error": "unauthorized", "message": message},
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except OSError as e:
            logger.debug(f"Unable to send {self.status_code} HTTP code to client", exc_info=e)


class OAuthAuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware that authenticates requests with OAuth 2.0 / OpenID Connect.

    Must run inside :class:`oauth_gate.session.SessionMiddleware`.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: OAuthConfig,
        oauth_service: OAuthService | None = None,
    ):
        super().__init__(app)
        self.config = config
        self.oauth_service = (
            oauth_service if oauth_service is not None else OAuthService(config)
        )
        self.token_resolver = create_token_resolver(config.custom_access_token_header)
        self.redirect_callback = self._initial_redirect_callback()
        self.exclude_paths = list(config.exclude_paths)
        if config.callback_path not in self.exclude_paths:
            self.exclude_paths.append(config.callback_path)

    def _initial_redirect_callback(self) -> str | None:
        """Compute the callback URI once, before any request is served.

        Returns None when it can only be derived from each request.
        """
        if self.config.redirect:
            return self.config.redirect
        if self.config.public_url:
            return callback_uri_from_base(self.config.public_url, self.config.callback_path)
        return None

    def _is_excluded(self, request: Request) -> bool:
        path = request.url.path
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.exclude_paths)

    async def dispatch(self, request: Request, call_next):
        """Admit, redirect or reject the request."""
        if self._is_excluded(request) or self.is_access_allowed(request):
            return await call_next(request)

        response = await self.on_access_denied(request)
        if response is not None:
            return response
        return await call_next(request)

    # =========================================================================
    # Request gate
    # =========================================================================

    def is_access_allowed(self, request: Request) -> bool:
        """True when the session was authenticated by a completed callback."""
        session = get_session(request)
        if session is None:
            return False
        identity = session.get(IDENTITY_KEY)
        if identity is None:
            return False
        request.state.identity = identity
        return True

    def resolve_access_token(self, request: Request) -> AccessToken | None:
        return self.token_resolver.resolve(request)

    async def on_access_denied(self, request: Request) -> Response | None:
        """Return the response to send, or None to let the request through."""
        logged_in = False
        token = self.resolve_access_token(request)
        if token is not None:
            logged_in = await self.execute_login(request, token)
        if logged_in:
            return None

        if self.config.redirect_enabled:
            return self.redirect_to_authorization_endpoint(request)

        return UnauthorizedResponse(
            format_unauthorized_message(request, self.config.disclose_unauthorized_reason)
        )

    # =========================================================================
    # Outcome handling
    # =========================================================================

    async def execute_login(self, request: Request, access_token: AccessToken) -> bool:
        token = AuthenticationToken(access_token)
        try:
            identity = await self.oauth_service.authenticate(token)
        except AuthenticationError as e:
            return self.on_login_failure(request, token, e)
        return self.on_login_success(request, token, identity)

    def on_login_success(
        self, request: Request, token: AuthenticationToken, identity: Identity
    ) -> bool:
        session = get_session(request)
        if session is not None:
            session.regenerate()
        request.state.identity = identity
        return True

    def on_login_failure(
        self, request: Request, token: AuthenticationToken, error: AuthenticationError
    ) -> bool:
        logger.debug("Authentication exception", exc_info=error)
        setattr(request.state, LOGIN_FAILURE_REASON_KEY, error)
        return False

    # =========================================================================
    # Authorization redirect
    # =========================================================================

    def resolve_redirect_callback(self, request: Request) -> str:
        if self.redirect_callback is not None:
            return self.redirect_callback
        return callback_uri_from_request(request, self.config.callback_path)

    def redirect_to_authorization_endpoint(self, request: Request) -> RedirectResponse:
        state = State()
        nonce = Nonce()
        scope = create_scope(self.config.scopes)
        callback = self.resolve_redirect_callback(request)
        provider = self.oauth_service.get_oauth_provider()

        authorization_request = build_authorization_request(
            provider.authorization_endpoint,
            self.config.client_id,
            callback,
            scope,
            state,
            nonce if OPENID_SCOPE in scope else None,
        )

        session = get_session(request)
        if session is None:
            raise ConfigurationError(
                "OAuth redirects need a session, install SessionMiddleware"
            )
        save_state(session, state, nonce)
        save_request(session, request)

        uri = authorization_request.to_uri()
        logger.debug(f"Redirecting to authorization endpoint: {uri}")
        return RedirectResponse(url=uri, status_code=302)
