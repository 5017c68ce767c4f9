"""Debug logging switches for the OAuth gate.

Enable via OAUTH_GATE_DEBUG=1 environment variable or enable_debug().
"""

import logging
import os

LOGGER_NAME = "oauth_gate"

# Module-level debug state
_debug_enabled = False


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled.

    Returns True if either:
    - enable_debug() was called
    - OAUTH_GATE_DEBUG env var is set to "1", "true", or "yes"
    """
    if _debug_enabled:
        return True
    env_val = os.environ.get("OAUTH_GATE_DEBUG", "").lower()
    return env_val in ("1", "true", "yes")


def enable_debug() -> None:
    """Enable debug logging programmatically."""
    global _debug_enabled
    _debug_enabled = True


def disable_debug() -> None:
    """Disable debug logging programmatically."""
    global _debug_enabled
    _debug_enabled = False


def configure_debug_logging(level: int | None = None) -> logging.Logger:
    """Configure the oauth_gate logger hierarchy.

    Without an explicit level, DEBUG is used when debug mode is enabled
    and INFO otherwise.

    Args:
        level: Logging level for the oauth_gate loggers
    """
    if level is None:
        level = logging.DEBUG if is_debug_enabled() else logging.INFO

    gate_logger = logging.getLogger(LOGGER_NAME)
    gate_logger.setLevel(level)

    if not gate_logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        )
        handler.setFormatter(formatter)
        gate_logger.addHandler(handler)
    for handler in gate_logger.handlers:
        handler.setLevel(level)
    return gate_logger
