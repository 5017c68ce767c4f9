"""Configuration loading for the OAuth gate."""

import os
import re
import urllib.parse
from pathlib import Path

import yaml

from oauth_gate.models import OAuthConfig


def _substitute_env_vars(obj):
    """Recursively substitute ${VAR} with environment variables."""
    if isinstance(obj, str):
        pattern = r"\$\{([^}]+)\}"
        return re.sub(pattern, lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    elif isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    return obj


def load_config(path: str | Path) -> OAuthConfig:
    """Load configuration from a YAML file.

    The file may either hold the OAuth options at top level or nest them
    under an ``oauth`` key.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    data = _substitute_env_vars(data)
    if "oauth" in data and len(data) == 1:
        data = data["oauth"] or {}
    return OAuthConfig(**data)


def _is_absolute_uri(value: str) -> bool:
    parsed = urllib.parse.urlsplit(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_config(config: OAuthConfig) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    if not config.client_id:
        errors.append("Missing client identifier (clientId)")

    if not config.provider.authorization:
        errors.append("Missing authorization endpoint (provider.authorization)")
    elif not _is_absolute_uri(config.provider.authorization):
        errors.append(
            f"Invalid authorization endpoint: {config.provider.authorization}"
        )

    for name, key in (("redirect", "redirect"), ("public_url", "publicUrl")):
        value = getattr(config, name)
        if value and not _is_absolute_uri(value):
            errors.append(f"Invalid {key}: {value}")

    if not config.callback_path.startswith("/"):
        errors.append(f"callbackPath must start with '/': {config.callback_path}")

    if config.custom_access_token_header is not None and not (
        config.custom_access_token_header.strip()
    ):
        errors.append("customAccessTokenHeader must not be blank")

    return errors
