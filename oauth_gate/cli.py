"""CLI commands for oauth-gate."""

from pathlib import Path

import click

from oauth_gate.config import load_config

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "oauth-gate"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"


def get_config_path(config: str | None) -> Path:
    """Get config file path, falling back to the default location."""
    if config:
        return Path(config)
    return DEFAULT_CONFIG_FILE


def config_option():
    """Decorator for --config option."""
    return click.option(
        "--config", "-c",
        default=None,
        type=click.Path(exists=False),
        help=f"Config file path (default: {DEFAULT_CONFIG_FILE})"
    )


@click.group()
def main():
    """OAuth 2.0 / OpenID Connect authentication gate CLI."""
    pass


@main.command()
@config_option()
def validate(config: str | None):
    """Validate configuration file."""
    from oauth_gate.config import validate_config

    try:
        cfg = load_config(get_config_path(config))
        errors = validate_config(cfg)
        if errors:
            for error in errors:
                click.echo(f"Error: {error}", err=True)
            raise SystemExit(1)
        click.echo("Configuration is valid.")
    except SystemExit:
        raise
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@main.command("authorize-url")
@config_option()
@click.option(
    "--base-url", "-b",
    default=None,
    help="Public base URL used to derive the callback when none is configured",
)
def authorize_url(config: str | None, base_url: str | None):
    """Print the authorization redirect a browser would receive."""
    from oauth_gate.authorization import build_authorization_request
    from oauth_gate.exceptions import ConfigurationError
    from oauth_gate.tokens import Nonce, State
    from oauth_gate.utils import OPENID_SCOPE, callback_uri_from_base, create_scope

    try:
        cfg = load_config(get_config_path(config))
        callback = cfg.redirect
        if not callback:
            base = base_url or cfg.public_url
            if not base:
                raise ConfigurationError(
                    "Missing redirect URI: configure 'redirect' or pass --base-url"
                )
            callback = callback_uri_from_base(base, cfg.callback_path)

        state = State()
        nonce = Nonce()
        scope = create_scope(cfg.scopes)
        request = build_authorization_request(
            cfg.provider.authorization,
            cfg.client_id,
            callback,
            scope,
            state,
            nonce if OPENID_SCOPE in scope else None,
        )
    except (ConfigurationError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(request.to_uri())
    click.echo(f"state: {state}")
    if request.is_authentication_request:
        click.echo(f"nonce: {nonce}")


@main.command()
@config_option()
@click.option("--host", "-h", default="127.0.0.1", help="Interface to bind")
@click.option("--port", "-p", default=8000, type=int, help="Port for HTTP")
@click.option("--env-file", "-e", default=".env", type=click.Path(), help="Path to .env file (default: .env)")
def serve(config: str | None, host: str, port: int, env_file: str):  # pragma: no cover
    """Serve the sample protected application."""
    import uvicorn
    from dotenv import load_dotenv

    from oauth_gate.debug import configure_debug_logging
    from oauth_gate.server import create_app

    # Load environment variables from .env file
    load_dotenv(env_file)
    configure_debug_logging()

    cfg = load_config(get_config_path(config))
    uvicorn.run(create_app(cfg), host=host, port=port, proxy_headers=True)
