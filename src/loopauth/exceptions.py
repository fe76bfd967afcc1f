"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`.
The top-level error handler in :func:`loopauth.app.main` catches
``LoopauthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Every failure is terminal for the :class:`~loopauth.webapp.flow.Flow` that
raised it; nothing in the package retries.

Subclass hierarchy::

    LoopauthError (exit 1)
    +-- InvalidUsageError            (exit 2)
    |   +-- InvalidRedirectURIError  (exit 2)
    +-- ConfigError                  (exit 1)
    +-- RandomSourceError            (exit 1)
    +-- PortUnavailableError         (exit 5)
    +-- ListenerIOError              (exit 5)
    +-- FlowCancelledError           (exit 130)
    +-- AuthError                    (exit 3)
    |   +-- StateMismatchError
    |   +-- ProviderError
    |       +-- AuthorizationDeniedError
    +-- TokenExchangeError           (exit 4)
"""

from __future__ import annotations

from typing import Optional

from loopauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LISTENER_ERROR,
    EXIT_TOKEN_EXCHANGE_FAILURE,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`loopauth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(LoopauthError):
    """Raised for invalid CLI arguments or API calls made out of order."""

    exit_code = EXIT_INVALID_USAGE


class InvalidRedirectURIError(InvalidUsageError):
    """Raised when the configured redirect URI cannot be parsed."""


class ConfigError(LoopauthError):
    """Raised for configuration problems (missing providers, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class RandomSourceError(LoopauthError):
    """Raised when the operating system cannot supply random bytes for the state nonce."""

    exit_code = EXIT_GENERIC_FAILURE


class PortUnavailableError(LoopauthError):
    """Raised when the callback listener cannot bind a local port."""

    exit_code = EXIT_LISTENER_ERROR


class ListenerIOError(LoopauthError):
    """Raised to the waiter when the callback listener fails while serving."""

    exit_code = EXIT_LISTENER_ERROR


class FlowCancelledError(LoopauthError):
    """Raised when the flow is cancelled or times out before a callback arrives."""

    exit_code = EXIT_CANCELLED


class AuthError(LoopauthError):
    """Base class for authorization failures reported by the redirect."""

    exit_code = EXIT_AUTH_FAILURE


class StateMismatchError(AuthError):
    """Raised when the callback ``state`` does not match the flow's nonce.

    The token exchange is never attempted after this error.
    """


class ProviderError(AuthError):
    """Raised when the redirect carries an ``error`` parameter.

    Args:
        error: The OAuth error code from the callback (e.g. ``server_error``).
        description: Optional ``error_description`` sent alongside it.
    """

    def __init__(self, error: str, description: Optional[str] = None):
        message = f"Authorization failed: {error}"
        if description:
            message += f" - {description}"
        super().__init__(message)
        self.error = error
        self.description = description


class AuthorizationDeniedError(ProviderError):
    """Raised when the user declined the authorization (``error=access_denied``)."""


class TokenExchangeError(LoopauthError):
    """Raised when the token endpoint fails or returns no usable access token.

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the token response, if one was received.
        error: Provider error code from the response body, if any.
        description: Provider ``error_description``, if any.
        error_uri: Provider ``error_uri``, if any.
    """

    exit_code = EXIT_TOKEN_EXCHANGE_FAILURE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        description: Optional[str] = None,
        error_uri: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.description = description
        self.error_uri = error_uri
