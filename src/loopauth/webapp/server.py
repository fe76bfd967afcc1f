"""Local HTTP listener that captures the OAuth redirect.

:class:`LocalCallbackServer` binds an OS-assigned port on ``127.0.0.1`` as
soon as it is constructed, so the port embedded in the authorization URL is
guaranteed to be the one that is listening. :meth:`~LocalCallbackServer.serve`
then answers requests until the first one that hits
:attr:`~LocalCallbackServer.callback_path`:

1. Requests for any other path get a 404 and are otherwise ignored.
2. The ``code``, ``state``, ``error`` and ``error_description`` query
   parameters are parsed into a :class:`~loopauth.models.CallbackResult`.
3. The caller-supplied renderer writes the page shown in the browser.
4. The result is published through a :class:`CompletionSignal` and the
   listener shuts down, releasing the port.

The signal settles exactly once. A repeated callback that slips in before
shutdown is answered with an empty page and never replaces the first result.
Each connection is handled on its own daemon thread with a read timeout, so
a peer that connects and stays silent cannot hold up the redirect or the
release of the port.
"""

from __future__ import annotations

import io
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, BinaryIO, Callable, Optional
from urllib.parse import parse_qs, urlsplit

from loopauth.exceptions import (
    FlowCancelledError,
    InvalidUsageError,
    ListenerIOError,
    PortUnavailableError,
)
from loopauth.models import CallbackResult

logger = logging.getLogger(__name__)

ResponseRenderer = Callable[[BinaryIO], None]
"""Writes the HTML shown to the user after the redirect into a binary sink."""

LISTEN_HOST = "127.0.0.1"

# How long handle_request() blocks before the serve loop re-checks the signal.
_POLL_INTERVAL = 0.25

# Read timeout on each accepted connection; bounds an idle preconnect.
_CONNECTION_TIMEOUT = 5.0

DEFAULT_PAGE = (
    b"<html><body><h2>Authorization complete. You can close this window "
    b"and return to the terminal.</h2></body></html>"
)


def write_default_page(sink: BinaryIO) -> None:
    """Default :data:`ResponseRenderer`: a one-line confirmation page."""
    sink.write(DEFAULT_PAGE)


def parse_callback_query(query: str) -> CallbackResult:
    """Build a :class:`~loopauth.models.CallbackResult` from a redirect query string.

    When ``error`` is present the result carries only the error fields, so a
    failed authorization can never be mistaken for a usable code.
    """
    params = parse_qs(query, keep_blank_values=True)

    def first(name: str) -> Optional[str]:
        values = params.get(name)
        return values[0] if values else None

    error = first("error")
    if error:
        return CallbackResult(error=error, error_description=first("error_description"))
    return CallbackResult(code=first("code") or "", state=first("state") or "")


class CompletionSignal:
    """Single-use handoff from the listener thread to the waiting caller.

    Wraps a :class:`concurrent.futures.Future`. Whichever of :meth:`publish`,
    :meth:`fail` or :meth:`cancel` runs first settles it; every later call
    returns ``False`` and changes nothing.
    """

    def __init__(self) -> None:
        self._future: Future[CallbackResult] = Future()
        self._lock = threading.Lock()

    def publish(self, result: CallbackResult) -> bool:
        """Settle the signal with *result*. Returns whether this call settled it."""
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(result)
            return True

    def fail(self, exc: BaseException) -> bool:
        """Settle the signal with an exception raised to the waiter."""
        with self._lock:
            if self._future.done():
                return False
            self._future.set_exception(exc)
            return True

    def cancel(self, reason: str) -> bool:
        return self.fail(FlowCancelledError(reason))

    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: Optional[float] = None) -> CallbackResult:
        """Block until settled and return the result or raise the published error.

        Raises:
            concurrent.futures.TimeoutError: If *timeout* elapses first.
        """
        return self._future.result(timeout)


class _CallbackHTTPServer(ThreadingHTTPServer):
    """Threaded server that knows the :class:`LocalCallbackServer` owning it.

    Each connection gets its own daemon thread, so a peer that connects and
    sends nothing never holds up the real redirect or the shutdown.
    """

    daemon_threads = True
    block_on_close = False

    def __init__(self, owner: LocalCallbackServer) -> None:
        self.owner = owner
        super().__init__((LISTEN_HOST, 0), _CallbackHandler)

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.warning(
            "Error while handling a callback request from %s",
            client_address[0],
            exc_info=True,
        )


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackHTTPServer
    timeout = _CONNECTION_TIMEOUT

    def do_GET(self) -> None:
        owner = self.server.owner
        parsed = urlsplit(self.path)

        if parsed.path != owner.callback_path:
            logger.debug("Ignoring request for unexpected path %s", parsed.path)
            self.send_error(404)
            return

        if not owner.take_callback():
            logger.warning("Ignoring repeated callback; this flow already has a result")
            self._send_page(b"")
            return

        result = parse_callback_query(parsed.query)
        try:
            self._send_page(owner.render_page())
        finally:
            owner.signal.publish(result)

    def _send_page(self, body: bytes) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        # The default access log would print the authorization code.
        pass


class LocalCallbackServer:
    """One-shot localhost listener for a single OAuth redirect.

    The socket is bound in the constructor; use :func:`bind_local_server`
    to get the typed :class:`~loopauth.exceptions.PortUnavailableError` on
    failure.

    Args:
        callback_path: Path the redirect must hit. Usually set later by
            :meth:`~loopauth.webapp.flow.Flow.browser_url`.
        response_renderer: Writes the page shown in the browser.

    Example::

        server = bind_local_server()
        server.callback_path = "/callback"
        server.start()
        result = server.wait_for_code(timeout=120)
    """

    def __init__(
        self,
        callback_path: str = "/",
        response_renderer: Optional[ResponseRenderer] = None,
    ) -> None:
        self.callback_path = callback_path
        self.response_renderer: ResponseRenderer = response_renderer or write_default_page
        self.signal = CompletionSignal()
        self._lock = threading.Lock()
        self._serving = False
        self._closed = False
        self._callback_taken = False
        self._httpd = _CallbackHTTPServer(self)
        self._httpd.timeout = _POLL_INTERVAL
        logger.debug("Callback listener bound to %s:%d", LISTEN_HOST, self.port)

    @property
    def port(self) -> int:
        """The OS-assigned port the listener is bound to."""
        return self._httpd.server_address[1]

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    def serve(self, response_renderer: Optional[ResponseRenderer] = None) -> None:
        """Answer requests on the calling thread until the signal settles.

        Returns once the callback has been published, the listener failed,
        or :meth:`cancel` was called. The port is released on every exit path.

        Raises:
            InvalidUsageError: If the listener was already started.
        """
        self._claim(response_renderer)
        self._serve_loop()

    def start(self, response_renderer: Optional[ResponseRenderer] = None) -> threading.Thread:
        """Run :meth:`serve` on a daemon thread and return that thread."""
        self._claim(response_renderer)
        thread = threading.Thread(
            target=self._serve_loop,
            name=f"loopauth-callback-{self.port}",
            daemon=True,
        )
        thread.start()
        return thread

    def _claim(self, response_renderer: Optional[ResponseRenderer]) -> None:
        with self._lock:
            if self._serving:
                raise InvalidUsageError("The callback listener is already serving")
            self._serving = True
        if response_renderer is not None:
            self.response_renderer = response_renderer

    def _serve_loop(self) -> None:
        logger.debug("Waiting for the OAuth redirect on port %d", self.port)
        try:
            while not self.signal.done():
                self._httpd.handle_request()
        except (OSError, ValueError) as exc:
            self.signal.fail(ListenerIOError(f"Callback listener failed: {exc}"))
        finally:
            self._release()
        logger.debug("Callback listener on port %d stopped", self.port)

    def take_callback(self) -> bool:
        """Claim the right to answer the redirect; only the first caller gets it."""
        with self._lock:
            if self._callback_taken or self.signal.done():
                return False
            self._callback_taken = True
            return True

    def render_page(self) -> bytes:
        """Run the response renderer into a buffer and return the page bytes.

        A failing renderer must not cost the caller its authorization code,
        so the failure is logged and an empty page is sent instead.
        """
        buffer = io.BytesIO()
        try:
            self.response_renderer(buffer)
        except Exception:
            logger.exception("Callback page renderer failed; sending an empty page")
            return b""
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Waiting and shutdown
    # ------------------------------------------------------------------

    def wait_for_code(self, timeout: Optional[float] = None) -> CallbackResult:
        """Block until the redirect has been captured.

        Args:
            timeout: Seconds to wait. ``None`` waits indefinitely. On expiry
                the listener is cancelled and its port released.

        Returns:
            The captured :class:`~loopauth.models.CallbackResult`.

        Raises:
            ListenerIOError: If the listener failed while serving.
            FlowCancelledError: If the wait timed out or :meth:`cancel` was called.
        """
        try:
            return self.signal.wait(timeout)
        except FutureTimeoutError:
            self.cancel(f"No OAuth redirect received within {timeout:g} seconds")
            # Settled now, by the cancellation or by a callback that won the race.
            return self.signal.wait()

    def cancel(self, reason: str = "The authorization flow was cancelled") -> bool:
        """Unblock the waiter with :class:`~loopauth.exceptions.FlowCancelledError`.

        A listener that is serving closes its socket within one poll
        interval; one that never started is closed immediately.

        Returns:
            ``True`` if this call settled the signal, ``False`` if a result
            or error had already been published.
        """
        settled = self.signal.cancel(reason)
        with self._lock:
            serving = self._serving
        if not serving:
            self._release()
        return settled

    def close(self) -> None:
        """Release the listener, cancelling any waiter that has no result yet."""
        self.cancel("The callback listener was closed")

    def _release(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._httpd.server_close()

    def __enter__(self) -> LocalCallbackServer:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def bind_local_server(
    callback_path: str = "/",
    response_renderer: Optional[ResponseRenderer] = None,
) -> LocalCallbackServer:
    """Bind a :class:`LocalCallbackServer` to an ephemeral port on ``127.0.0.1``.

    Raises:
        PortUnavailableError: If the operating system refuses to bind a port.
    """
    try:
        return LocalCallbackServer(callback_path, response_renderer)
    except OSError as exc:
        raise PortUnavailableError(
            f"Cannot bind a local port for the OAuth callback: {exc}"
        ) from exc
