"""
Unit tests for the accept loop's error handling.
"""

import errno
import logging
import socket
import threading

import pytest

from staticserve.config import ServerConfig
from staticserve.core.socket_server import SocketServer


class FlakyListener:
    """Listening socket whose first accept() calls fail with the given errnos."""

    def __init__(self, sock: socket.socket, failures):
        self._sock = sock
        self._failures = list(failures)

    def accept(self):
        if self._failures:
            code = self._failures.pop(0)
            raise OSError(code, errno.errorcode.get(code, "error"))
        return self._sock.accept()

    def __getattr__(self, name):
        return getattr(self._sock, name)


@pytest.fixture
def listener():
    server = SocketServer(ServerConfig(host="127.0.0.1", port=0))
    server.bind()
    yield server
    server.stop()


def run_in_thread(listener, handler):
    """serve() on a thread; the returned dict gets 'error' if it raises."""
    outcome = {}

    def run():
        try:
            listener.serve(handler)
        except OSError as e:
            outcome["error"] = e

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread, outcome


class TestAcceptErrors:
    """Tests for accept() failures while running."""

    def test_transient_errors_are_retried(self, listener, caplog):
        """EMFILE and friends back off; the listener keeps accepting."""
        listener._socket = FlakyListener(
            listener._socket, [errno.EMFILE, errno.ENFILE, errno.ECONNABORTED]
        )
        accepted = threading.Event()

        def handler(conn):
            accepted.set()
            conn.close()

        with caplog.at_level(logging.WARNING, logger="staticserve.core.socket_server"):
            thread, outcome = run_in_thread(listener, handler)
            with socket.create_connection(listener.address, timeout=5):
                assert accepted.wait(5.0)

        listener.stop()
        thread.join(5.0)

        assert "error" not in outcome
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 3
        assert all("retrying" in w for w in warnings)

    def test_other_errors_end_the_loop(self, listener):
        listener._socket = FlakyListener(listener._socket, [errno.EINVAL])

        thread, outcome = run_in_thread(listener, lambda conn: conn.close())
        thread.join(5.0)

        assert not thread.is_alive()
        assert outcome["error"].errno == errno.EINVAL

    def test_stop_ends_the_loop(self, listener):
        thread, outcome = run_in_thread(listener, lambda conn: conn.close())

        listener.stop()
        thread.join(5.0)

        assert not thread.is_alive()
        assert outcome == {}
