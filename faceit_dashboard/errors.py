"""Error taxonomy for the login handshake and session handling.

Every error carries a coarse ``code`` that is safe to show to the browser.
Messages may contain provider-supplied descriptions but never token values.
"""


class AuthError(Exception):
    """Base class for authentication failures."""

    code = "auth_failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ConfigurationError(AuthError):
    """A mandatory setting is missing. Fatal at startup."""

    code = "configuration_error"


class ProviderRejected(AuthError):
    """FACEIT answered with a structured error (bad code, redirect mismatch, expired token)."""

    code = "auth_failed"

    def __init__(self, message: str = "", status_code: int | None = None, error: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class MalformedResponse(ProviderRejected):
    """FACEIT answered 2xx but the body is unusable."""


class NetworkError(AuthError):
    """Transport-level failure talking to FACEIT.

    ``request_sent`` is False only when the request provably never reached
    the provider (connection refused, connect timeout). Only those failures
    may be retried.
    """

    code = "auth_failed"

    def __init__(self, message: str = "", request_sent: bool = True):
        super().__init__(message)
        self.request_sent = request_sent


class InvalidState(AuthError):
    """Callback state does not match the pending state of the session."""

    code = "invalid_state"


class MissingCode(AuthError):
    """Callback arrived without an authorization code."""

    code = "no_code"


class StoreUnavailable(AuthError):
    """The session backend cannot be reached."""

    code = "store_unavailable"


class SessionStale(AuthError):
    """The resource API rejected the session's access token."""

    code = "session_stale"
