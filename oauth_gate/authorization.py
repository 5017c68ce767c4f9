"""Authorization and OpenID Connect authentication request building.

Both request shapes share one builder. An OpenID Connect authentication
request is an authorization request that also carries a ``nonce``; which
shape is built is decided by the caller from the negotiated scope.
"""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field

from oauth_gate.exceptions import ConfigurationError
from oauth_gate.tokens import Nonce, Scope, State
from oauth_gate.utils import (
    OPENID_SCOPE,
    extract_query_parameters,
    strip_query_string,
)

RESPONSE_TYPE_CODE = "code"


@dataclass(frozen=True)
class AuthorizationRequest:
    """A request for the provider's authorization endpoint."""

    endpoint: str
    client_id: str
    redirect_uri: str
    scope: Scope
    state: State
    nonce: Nonce | None = None
    response_type: str = RESPONSE_TYPE_CODE
    custom_parameters: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_authentication_request(self) -> bool:
        """True for the OpenID Connect shape."""
        return self.nonce is not None

    def to_parameters(self) -> dict[str, list[str]]:
        """Standard parameters first, then custom ones that do not collide."""
        params: dict[str, list[str]] = {
            "response_type": [self.response_type],
            "client_id": [self.client_id],
        }
        if self.scope:
            params["scope"] = [str(self.scope)]
        params["redirect_uri"] = [self.redirect_uri]
        params["state"] = [str(self.state)]
        if self.nonce is not None:
            params["nonce"] = [str(self.nonce)]

        for name, values in self.custom_parameters.items():
            if name not in params:
                params[name] = list(values)
        return params

    def to_uri(self) -> str:
        query = urllib.parse.urlencode(self.to_parameters(), doseq=True)
        return f"{self.endpoint}?{query}"


def build_authorization_request(
    endpoint_uri: str | None,
    client_id: str | None,
    redirect_uri: str | None,
    scope: Scope,
    state: State,
    nonce: Nonce | None = None,
) -> AuthorizationRequest:
    """Build an authorization request, or an authentication request when a nonce is given.

    Query parameters already present on ``endpoint_uri`` are moved into the
    request's custom parameters so they survive on the final URI.
    """
    if not client_id:
        raise ConfigurationError("Missing client identifier")
    if not redirect_uri:
        raise ConfigurationError("Missing redirect URI")
    if not endpoint_uri:
        raise ConfigurationError("Missing authorization endpoint")
    if nonce is not None and OPENID_SCOPE not in scope:
        raise ConfigurationError(
            f"An authentication request requires the '{OPENID_SCOPE}' scope"
        )

    return AuthorizationRequest(
        endpoint=strip_query_string(endpoint_uri),
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        nonce=nonce,
        custom_parameters=extract_query_parameters(endpoint_uri),
    )
