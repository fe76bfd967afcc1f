"""OAuth web application flow driven through a localhost redirect.

A :class:`Flow` ties together one :class:`~loopauth.webapp.server.LocalCallbackServer`,
one random ``state`` nonce and the client ID of the application being
authorized. Its steps follow a fixed order:

1. :meth:`Flow.create` binds the listener and generates the nonce.
2. :meth:`Flow.browser_url` builds the URL the user opens in a browser.
3. :meth:`Flow.await_callback` starts the listener and blocks until the
   provider redirects back.
4. :meth:`Flow.exchange_token` checks the redirect and trades the code for
   an :class:`~loopauth.models.AccessToken`.

Example::

    with Flow.create() as flow:
        url = flow.browser_url(
            "https://github.com/login/oauth/authorize",
            BrowserParams(client_id="Iv1.abc", redirect_uri="http://127.0.0.1/callback"),
        )
        webbrowser.open(url)
        token = flow.access_token(None, "https://github.com/login/oauth/access_token", secret)

Nothing is retried: any failure leaves the flow in :attr:`FlowState.FAILED`
and a new flow must be created.
"""

from __future__ import annotations

import enum
import hmac
import logging
import secrets
import threading
from typing import Any, Mapping, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx

from loopauth.client.form import post_form
from loopauth.exceptions import (
    AuthorizationDeniedError,
    InvalidRedirectURIError,
    InvalidUsageError,
    LoopauthError,
    ProviderError,
    RandomSourceError,
    StateMismatchError,
)
from loopauth.models import AccessToken, BrowserParams, CallbackResult
from loopauth.webapp.server import LocalCallbackServer, ResponseRenderer, bind_local_server

logger = logging.getLogger(__name__)

STATE_BYTES = 16
"""Bytes of CSPRNG output in each state nonce (hex-encoded to 32 characters)."""

REDIRECT_HOST = "localhost"

_CONTROL_FIELDS = ("client_id", "client_secret", "code", "state")


class FlowState(str, enum.Enum):
    """Lifecycle of a :class:`Flow`. ``AWAITING_CALLBACK`` is the only blocking state."""

    CREATED = "created"
    URL_BUILT = "url_built"
    AWAITING_CALLBACK = "awaiting_callback"
    CALLBACK_RECEIVED = "callback_received"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_state() -> str:
    """Return a fresh hex-encoded state nonce from the ``secrets`` CSPRNG.

    Raises:
        RandomSourceError: If the operating system has no usable random source.
    """
    try:
        return secrets.token_hex(STATE_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise RandomSourceError(f"Cannot generate a state nonce: {exc}") from exc


class Flow:
    """State for one run of the OAuth web application flow.

    Use :meth:`create` rather than calling the constructor directly. A flow
    owns its listener exclusively and is not meant to be shared between
    threads; independent flows in one process do not interact.

    Args:
        server: A bound listener owned by this flow from now on.
        state: The anti-forgery nonce sent in the authorization URL.
    """

    def __init__(self, server: LocalCallbackServer, state: str) -> None:
        self._server = server
        self._state = state
        self._client_id: Optional[str] = None
        self._status = FlowState.CREATED
        self._listener: Optional[threading.Thread] = None
        self._result: Optional[CallbackResult] = None

    @classmethod
    def create(cls) -> Flow:
        """Bind a callback listener and generate the state nonce.

        Raises:
            PortUnavailableError: If no local port can be bound.
            RandomSourceError: If no random bytes are available.
        """
        server = bind_local_server()
        try:
            state = generate_state()
        except RandomSourceError:
            server.close()
            raise
        return cls(server, state)

    @property
    def state(self) -> str:
        return self._state

    @property
    def port(self) -> int:
        return self._server.port

    @property
    def client_id(self) -> Optional[str]:
        return self._client_id

    @property
    def status(self) -> FlowState:
        return self._status

    @property
    def server(self) -> LocalCallbackServer:
        return self._server

    # ------------------------------------------------------------------
    # Authorization URL
    # ------------------------------------------------------------------

    def browser_url(self, base_url: str, params: BrowserParams) -> str:
        """Build the authorization URL the user should open in a browser.

        The redirect URI's host is replaced by ``localhost:<port>`` and its
        path becomes the listener's callback path. Query parameters are
        appended in a fixed order: ``client_id``, ``redirect_uri``,
        ``scope``, ``state``, then ``login`` when a handle is given and
        ``allow_signup=false`` when sign-up is disallowed.

        Args:
            base_url: The provider's authorization endpoint.
            params: Client ID, registered redirect URI, scopes and hints.

        Returns:
            The full authorization URL.

        Raises:
            InvalidRedirectURIError: If ``params.redirect_uri`` cannot be parsed.
            InvalidUsageError: If the listener is already waiting, or a
                different client ID was already recorded.
        """
        if self._status not in (FlowState.CREATED, FlowState.URL_BUILT):
            raise InvalidUsageError(
                "The authorization URL must be built before waiting for the callback"
            )
        if self._client_id is not None and self._client_id != params.client_id:
            raise InvalidUsageError("This flow was already started for another client ID")

        redirect_uri, callback_path = self._local_redirect_uri(params.redirect_uri)

        query: dict[str, str] = {
            "client_id": params.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(params.scopes),
            "state": self._state,
        }
        if params.login_handle:
            query["login"] = params.login_handle
        if not params.allow_signup:
            query["allow_signup"] = "false"

        self._server.callback_path = callback_path
        self._client_id = params.client_id
        self._status = FlowState.URL_BUILT

        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{urlencode(query)}"

    def _local_redirect_uri(self, redirect_uri: str) -> tuple[str, str]:
        try:
            parts = urlsplit(redirect_uri)
            parts.port  # noqa: B018 -- validates the port component
        except ValueError as exc:
            raise InvalidRedirectURIError(
                f"Invalid redirect URI '{redirect_uri}': {exc}"
            ) from exc
        if parts.scheme != "http" or not parts.hostname:
            raise InvalidRedirectURIError(
                f"Invalid redirect URI '{redirect_uri}': expected an http:// URL with a host"
            )

        netloc = f"{REDIRECT_HOST}:{self.port}"
        rewritten = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
        return rewritten, parts.path or "/"

    # ------------------------------------------------------------------
    # Waiting for the redirect
    # ------------------------------------------------------------------

    def start_server(self, response_renderer: Optional[ResponseRenderer] = None) -> None:
        """Start the callback listener on its own thread without blocking.

        Raises:
            InvalidUsageError: If :meth:`browser_url` has not been called, or
                the listener was already started.
        """
        if self._status is FlowState.CREATED:
            raise InvalidUsageError(
                "Build the authorization URL before starting the callback listener"
            )
        if self._listener is not None:
            raise InvalidUsageError("The callback listener is already running")
        self._listener = self._server.start(response_renderer)
        self._status = FlowState.AWAITING_CALLBACK

    def await_callback(
        self,
        response_renderer: Optional[ResponseRenderer] = None,
        timeout: Optional[float] = None,
    ) -> CallbackResult:
        """Block until the browser redirect has been captured.

        Starts the listener first if :meth:`start_server` was not called.
        The result is kept, so later calls return it immediately.

        Args:
            response_renderer: Writes the page shown after the redirect.
            timeout: Seconds to wait; ``None`` waits indefinitely.

        Raises:
            InvalidUsageError: If :meth:`browser_url` has not been called.
            ListenerIOError: If the listener failed.
            FlowCancelledError: On timeout or :meth:`cancel`.
        """
        if self._result is not None:
            return self._result
        if self._status is FlowState.FAILED:
            raise InvalidUsageError("This flow has failed; create a new one")
        if self._listener is None:
            self.start_server(response_renderer)

        try:
            result = self._server.wait_for_code(timeout)
        except LoopauthError:
            self._status = FlowState.FAILED
            raise

        self._result = result
        self._status = FlowState.CALLBACK_RECEIVED
        logger.debug("OAuth redirect received (error=%s)", result.error)
        return result

    # ------------------------------------------------------------------
    # Token exchange
    # ------------------------------------------------------------------

    def exchange_token(
        self,
        client: Optional[httpx.Client],
        token_url: str,
        client_secret: str,
        extra_params: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> AccessToken:
        """Wait for the redirect, verify it, and exchange the code for a token.

        The POST body is *extra_params* overlaid with ``client_id``,
        ``client_secret``, ``code`` and ``state``; those four always carry the
        flow's own values.

        Args:
            client: HTTP client for the POST, or ``None`` for a default one.
            token_url: The provider's token endpoint.
            client_secret: The OAuth application's secret.
            extra_params: Additional form fields (e.g. ``redirect_uri``).
            timeout: Seconds to wait for the redirect if it has not arrived.

        Returns:
            The parsed :class:`~loopauth.models.AccessToken`.

        Raises:
            AuthorizationDeniedError: If the user declined.
            ProviderError: If the redirect carried another error or no code.
            StateMismatchError: If the redirect's state is not this flow's.
            TokenExchangeError: If the token endpoint failed.
        """
        if self._status in (FlowState.EXCHANGING, FlowState.COMPLETED, FlowState.FAILED):
            raise InvalidUsageError("This flow has already finished; create a new one")

        result = self.await_callback(timeout=timeout)
        try:
            self._verify(result)
        except LoopauthError:
            self._status = FlowState.FAILED
            raise

        form: dict[str, Any] = dict(extra_params or {})
        overridden = sorted(key for key in _CONTROL_FIELDS if key in form)
        if overridden:
            logger.debug("Ignoring caller-supplied values for %s", ", ".join(overridden))
        form.update(
            client_id=self._client_id,
            client_secret=client_secret,
            code=result.code,
            state=self._state,
        )

        self._status = FlowState.EXCHANGING
        try:
            token = post_form(client, token_url, form).access_token()
        except LoopauthError:
            self._status = FlowState.FAILED
            raise
        self._status = FlowState.COMPLETED
        return token

    def access_token(
        self,
        client: Optional[httpx.Client],
        token_url: str,
        client_secret: str,
    ) -> AccessToken:
        """Shorthand for :meth:`exchange_token` without extra parameters."""
        return self.exchange_token(client, token_url, client_secret)

    def _verify(self, result: CallbackResult) -> None:
        if result.error:
            if result.error == "access_denied":
                raise AuthorizationDeniedError(result.error, result.error_description)
            raise ProviderError(result.error, result.error_description)
        if not hmac.compare_digest(result.state.encode("utf-8"), self._state.encode("utf-8")):
            raise StateMismatchError(
                "State mismatch: the redirect was not issued for this authorization request"
            )
        if not result.code:
            raise ProviderError("no_code", "The redirect did not include an authorization code")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def cancel(self, reason: str = "The authorization flow was cancelled") -> None:
        """Release the port and unblock a waiting :meth:`await_callback`."""
        self._server.cancel(reason)

    def close(self) -> None:
        self._server.close()

    def __enter__(self) -> Flow:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
