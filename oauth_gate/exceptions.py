"""Exceptions raised by the OAuth gate."""


class TokenParseError(ValueError):
    """Raised when a header value is not a valid access token."""


class AuthenticationError(Exception):
    """Raised when a credential is rejected by the identity verifier."""


class StateMismatchError(AuthenticationError):
    """Raised when a callback carries a state that was not issued to the session."""


class ConfigurationError(RuntimeError):
    """Raised when the gate is misconfigured and can never succeed.

    Unlike the other exceptions in this module, this one is not absorbed
    by the middleware: it aborts request processing.
    """
