"""Tests for loopauth.webapp.server -- the localhost callback listener."""

from __future__ import annotations

import socket
import threading
from http.client import HTTPConnection
from typing import BinaryIO

import pytest

from loopauth.exceptions import FlowCancelledError, InvalidUsageError, ListenerIOError
from loopauth.models import CallbackResult
from loopauth.webapp.server import (
    DEFAULT_PAGE,
    CompletionSignal,
    LocalCallbackServer,
    bind_local_server,
    parse_callback_query,
)


def _get(port: int, path: str) -> tuple[int, bytes]:
    """Send a GET to the local listener and return ``(status, body)``."""
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", path)
        response = conn.getresponse()
        return response.status, response.read()
    finally:
        conn.close()


@pytest.fixture()
def server() -> LocalCallbackServer:
    srv = bind_local_server("/callback")
    yield srv
    srv.close()


# -------------------------------------------------------------------------
# Query parsing
# -------------------------------------------------------------------------


class TestParseCallbackQuery:
    def test_code_and_state(self) -> None:
        result = parse_callback_query("code=abc123&state=deadbeef")
        assert result == CallbackResult(code="abc123", state="deadbeef")
        assert result.is_error is False

    def test_missing_values_are_empty(self) -> None:
        result = parse_callback_query("")
        assert result.code == ""
        assert result.state == ""
        assert result.error is None

    def test_error_drops_code(self) -> None:
        result = parse_callback_query(
            "error=access_denied&error_description=The+user+said+no&code=ignored&state=s"
        )
        assert result.is_error is True
        assert result.error == "access_denied"
        assert result.error_description == "The user said no"
        assert result.code == ""
        assert result.state == ""

    def test_error_without_description(self) -> None:
        result = parse_callback_query("error=server_error")
        assert result.error == "server_error"
        assert result.error_description is None

    def test_first_value_wins(self) -> None:
        result = parse_callback_query("code=first&code=second&state=s")
        assert result.code == "first"

    def test_percent_decoding(self) -> None:
        result = parse_callback_query("code=a%2Fb%3D&state=x")
        assert result.code == "a/b="


# -------------------------------------------------------------------------
# Completion signal
# -------------------------------------------------------------------------


class TestCompletionSignal:
    def test_publish_once(self) -> None:
        signal = CompletionSignal()
        first = CallbackResult(code="one", state="s")
        second = CallbackResult(code="two", state="s")

        assert signal.publish(first) is True
        assert signal.publish(second) is False
        assert signal.wait(timeout=1) == first

    def test_fail_after_publish_is_ignored(self) -> None:
        signal = CompletionSignal()
        signal.publish(CallbackResult(code="c", state="s"))

        assert signal.fail(ListenerIOError("late")) is False
        assert signal.wait(timeout=1).code == "c"

    def test_cancel_raises_to_waiter(self) -> None:
        signal = CompletionSignal()
        assert signal.cancel("stop") is True
        assert signal.done() is True
        with pytest.raises(FlowCancelledError, match="stop"):
            signal.wait(timeout=1)

    def test_concurrent_publishers_settle_once(self) -> None:
        signal = CompletionSignal()
        outcomes: list[bool] = []
        lock = threading.Lock()

        def _publish(n: int) -> None:
            settled = signal.publish(CallbackResult(code=str(n), state="s"))
            with lock:
                outcomes.append(settled)

        threads = [threading.Thread(target=_publish, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(True) == 1
        assert signal.done()


# -------------------------------------------------------------------------
# Listener
# -------------------------------------------------------------------------


class TestLocalCallbackServer:
    def test_binds_ephemeral_port_on_construction(self, server: LocalCallbackServer) -> None:
        assert server.port > 0
        assert server.closed is False

    def test_independent_servers_get_distinct_ports(self) -> None:
        with bind_local_server() as a, bind_local_server() as b:
            assert a.port != b.port

    def test_captures_code_and_state(self, server: LocalCallbackServer) -> None:
        thread = server.start()

        status, body = _get(server.port, "/callback?code=abc&state=xyz")
        result = server.wait_for_code(timeout=5)
        thread.join(timeout=5)

        assert status == 200
        assert body == DEFAULT_PAGE
        assert result == CallbackResult(code="abc", state="xyz")
        assert server.closed is True

    def test_captures_provider_error(self, server: LocalCallbackServer) -> None:
        server.start()

        _get(server.port, "/callback?error=access_denied&error_description=nope")
        result = server.wait_for_code(timeout=5)

        assert result.error == "access_denied"
        assert result.error_description == "nope"

    def test_wrong_path_gets_404_and_keeps_waiting(self, server: LocalCallbackServer) -> None:
        server.start()

        status, _ = _get(server.port, "/favicon.ico?code=nope")
        assert status == 404
        assert server.signal.done() is False

        status, _ = _get(server.port, "/callback?code=real&state=s")
        assert status == 200
        assert server.wait_for_code(timeout=5).code == "real"

    def test_custom_renderer_writes_body(self, server: LocalCallbackServer) -> None:
        def _render(sink: BinaryIO) -> None:
            sink.write(b"<p>Signed in.</p>")

        server.start(_render)
        status, body = _get(server.port, "/callback?code=c&state=s")

        assert status == 200
        assert body == b"<p>Signed in.</p>"

    def test_failing_renderer_still_publishes(self, server: LocalCallbackServer) -> None:
        def _render(sink: BinaryIO) -> None:
            raise RuntimeError("template missing")

        server.start(_render)
        status, body = _get(server.port, "/callback?code=c&state=s")

        assert status == 200
        assert body == b""
        assert server.wait_for_code(timeout=5).code == "c"

    def test_serve_blocks_on_calling_thread(self, server: LocalCallbackServer) -> None:
        responses: list[int] = []

        def _browser() -> None:
            status, _ = _get(server.port, "/callback?code=inline&state=s")
            responses.append(status)

        client = threading.Thread(target=_browser)
        client.start()
        server.serve()
        client.join(timeout=5)

        assert responses == [200]
        assert server.closed is True
        assert server.wait_for_code(timeout=0).code == "inline"

    def test_timeout_cancels_and_releases_port(self, server: LocalCallbackServer) -> None:
        port = server.port
        thread = server.start()

        with pytest.raises(FlowCancelledError, match="within"):
            server.wait_for_code(timeout=0.2)
        thread.join(timeout=5)

        assert server.closed is True
        with pytest.raises(OSError):
            _get(port, "/callback?code=late&state=s")

    def test_cancel_before_serving_closes_immediately(self, server: LocalCallbackServer) -> None:
        assert server.cancel("user gave up") is True
        assert server.closed is True

        with pytest.raises(FlowCancelledError, match="user gave up"):
            server.wait_for_code(timeout=1)

    def test_cancel_while_serving_stops_loop(self, server: LocalCallbackServer) -> None:
        thread = server.start()

        assert server.cancel() is True
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert server.closed is True

    def test_cancel_after_result_keeps_result(self, server: LocalCallbackServer) -> None:
        server.start()
        _get(server.port, "/callback?code=kept&state=s")
        server.wait_for_code(timeout=5)

        assert server.cancel() is False
        assert server.wait_for_code(timeout=0).code == "kept"

    def test_start_twice_raises(self, server: LocalCallbackServer) -> None:
        server.start()
        with pytest.raises(InvalidUsageError, match="already serving"):
            server.start()

    def test_listener_failure_reaches_waiter(
        self, server: LocalCallbackServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _boom() -> None:
            raise OSError("socket went away")

        monkeypatch.setattr(server._httpd, "handle_request", _boom)
        server.start()

        with pytest.raises(ListenerIOError, match="socket went away"):
            server.wait_for_code(timeout=5)
        assert server.closed is True

    def test_close_is_idempotent(self, server: LocalCallbackServer) -> None:
        server.close()
        server.close()
        assert server.closed is True

    def test_context_manager_closes(self) -> None:
        with LocalCallbackServer() as srv:
            assert srv.closed is False
        assert srv.closed is True


class TestConcurrentConnections:
    def test_idle_connection_does_not_block_callback(self, server: LocalCallbackServer) -> None:
        server.start()
        idle = socket.create_connection(("127.0.0.1", server.port), timeout=5)
        try:
            status, _ = _get(server.port, "/callback?code=abc&state=s")

            assert status == 200
            assert server.wait_for_code(timeout=3).code == "abc"
        finally:
            idle.close()

    def test_idle_connection_does_not_hold_port_after_timeout(
        self, server: LocalCallbackServer
    ) -> None:
        thread = server.start()
        idle = socket.create_connection(("127.0.0.1", server.port), timeout=5)
        try:
            with pytest.raises(FlowCancelledError):
                server.wait_for_code(timeout=0.2)
            thread.join(timeout=1.5)

            assert not thread.is_alive()
            assert server.closed is True
        finally:
            idle.close()

    def test_silent_connection_is_dropped(
        self, server: LocalCallbackServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("loopauth.webapp.server._CallbackHandler.timeout", 0.2)
        server.start()
        idle = socket.create_connection(("127.0.0.1", server.port), timeout=5)
        try:
            assert idle.recv(1) == b""
        finally:
            idle.close()
        assert server.signal.done() is False

    def test_repeated_callback_gets_empty_page(self, server: LocalCallbackServer) -> None:
        first = CallbackResult(code="first", state="s")
        server.signal.publish(first)
        server._httpd.timeout = 5
        responses: list[tuple[int, bytes]] = []

        client = threading.Thread(
            target=lambda: responses.append(_get(server.port, "/callback?code=second&state=s"))
        )
        client.start()
        server._httpd.handle_request()
        client.join(timeout=5)

        assert responses == [(200, b"")]
        assert server.wait_for_code(timeout=0) == first

    def test_only_first_callback_is_taken(self, server: LocalCallbackServer) -> None:
        assert server.take_callback() is True
        assert server.take_callback() is False
