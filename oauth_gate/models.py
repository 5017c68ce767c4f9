"""Configuration models for the OAuth gate.

Keys are accepted in camelCase (``clientId``) as well as snake_case
(``client_id``).
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderConfig(_CamelModel):
    """Endpoints of the external OAuth provider."""

    issuer: str | None = None
    authorization: str | None = None
    token: str | None = None
    user_info: str | None = None
    introspection: str | None = None
    revocation: str | None = None
    jwks: str | None = None


class SessionConfig(_CamelModel):
    """Server-side session cookie settings."""

    cookie_name: str = "oauth_gate_session"
    max_age: int = 14 * 24 * 60 * 60
    https_only: bool = False
    same_site: str = "lax"


class OAuthConfig(_CamelModel):
    """Root configuration for the OAuth gate."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    provider: ProviderConfig = ProviderConfig()
    session: SessionConfig = SessionConfig()
    client_id: str | None = None
    client_secret: str | None = None
    scopes: list[str] = []
    custom_access_token_header: str | None = None
    redirect: str | None = None
    public_url: str | None = None
    callback_path: str = "/callback"
    disclose_unauthorized_reason: bool = False
    redirect_enabled: bool = True
    exclude_paths: list[str] = ["/health"]
