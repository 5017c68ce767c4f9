"""Helpers shared by the gate, the redirector and the CLI."""

from __future__ import annotations

import re
import urllib.parse
from typing import TYPE_CHECKING, Iterable

from oauth_gate.exceptions import ConfigurationError
from oauth_gate.tokens import Scope

if TYPE_CHECKING:
    from starlette.requests import Request

OPENID_SCOPE = "openid"
LOGIN_FAILURE_REASON_KEY = "oauth_login_failure_reason"
UNAUTHORIZED_MESSAGE = "Unauthorized OAuth request"

_DEFAULT_PORTS = {"http": 80, "https": 443}
_HOST_PATTERN = re.compile(r"^[A-Za-z0-9\-._~%]+$")


def create_scope(scopes: Iterable[str] | None) -> Scope:
    """Build the negotiated scope from configured scope values."""
    return Scope.of(scopes)


def extract_query_parameters(uri: str) -> dict[str, list[str]]:
    """Return the query parameters of a URI, preserving order and repeats."""
    query = urllib.parse.urlsplit(uri).query
    return urllib.parse.parse_qs(query, keep_blank_values=True)


def strip_query_string(uri: str) -> str:
    """Return the URI without its query string."""
    parts = urllib.parse.urlsplit(uri)
    return urllib.parse.urlunsplit(
        (parts.scheme, parts.netloc, parts.path, "", parts.fragment)
    )


def derive_callback_uri(
    scheme: str, host: str | None, port: int | None, path: str = "/callback"
) -> str:
    """Build ``scheme://host[:port]path``, omitting the scheme's default port."""
    if scheme not in _DEFAULT_PORTS:
        raise ConfigurationError(f"Invalid redirect URI: unsupported scheme {scheme!r}")
    if not host:
        raise ConfigurationError("Invalid redirect URI: missing host")

    if ":" in host:
        # IPv6 literal
        netloc = host if host.startswith("[") else f"[{host}]"
    elif _HOST_PATTERN.match(host):
        netloc = host
    else:
        raise ConfigurationError(f"Invalid redirect URI: bad host {host!r}")

    if port is not None and port != _DEFAULT_PORTS[scheme]:
        if not 0 < port < 65536:
            raise ConfigurationError(f"Invalid redirect URI: bad port {port}")
        netloc = f"{netloc}:{port}"

    return f"{scheme}://{netloc}{path}"


def callback_uri_from_base(base_url: str, path: str = "/callback") -> str:
    """Derive the callback URI from a public base URL such as ``https://app:8443``."""
    parsed = urllib.parse.urlsplit(base_url)
    try:
        port = parsed.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid redirect URI: {base_url}") from e
    return derive_callback_uri(parsed.scheme, parsed.hostname, port, path)


def callback_uri_from_request(request: Request, path: str = "/callback") -> str:
    """Derive the callback URI from the scheme, host and port of a request."""
    url = request.url
    return derive_callback_uri(url.scheme, url.hostname, url.port, path)


def format_unauthorized_message(request: Request, disclose_reason: bool) -> str:
    """Format the 401 message, including the login failure only when disclosed."""
    message = UNAUTHORIZED_MESSAGE
    if disclose_reason:
        reason = getattr(request.state, LOGIN_FAILURE_REASON_KEY, None)
        if reason is not None:
            message = f"{message}: {reason}"
    return message
