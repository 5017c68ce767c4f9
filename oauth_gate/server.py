"""ASGI application wiring for the OAuth gate."""

from __future__ import annotations

from dataclasses import asdict, is_dataclass

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from oauth_gate.auth import OAuthAuthenticationMiddleware
from oauth_gate.models import OAuthConfig
from oauth_gate.provider import OAuthService
from oauth_gate.session import SessionMiddleware, SessionStore


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "healthy"})


async def whoami(request: Request) -> JSONResponse:
    """Return the identity the gate admitted the request with."""
    identity = getattr(request.state, "identity", None)
    if is_dataclass(identity):
        identity = asdict(identity)
    return JSONResponse({"identity": identity})


def create_app(
    config: OAuthConfig,
    routes: list[BaseRoute] | None = None,
    oauth_service: OAuthService | None = None,
    session_store: SessionStore | None = None,
) -> Starlette:
    """Create a Starlette app protected by the OAuth gate.

    Args:
        config: Gate configuration
        routes: Application routes (defaults to a ``/me`` sample resource)
        oauth_service: Provider access and token verification
        session_store: Session backend (defaults to in-memory)

    Returns:
        Starlette ASGI application with ``/health`` left public
    """
    all_routes: list[BaseRoute] = [Route("/health", health_check, methods=["GET"])]
    all_routes.extend(routes if routes is not None else [Route("/me", whoami)])

    middleware = [
        # Outermost first: the session must exist before the gate runs
        Middleware(SessionMiddleware, store=session_store, config=config.session),
        Middleware(
            OAuthAuthenticationMiddleware,
            config=config,
            oauth_service=oauth_service,
        ),
    ]
    return Starlette(routes=all_routes, middleware=middleware)
