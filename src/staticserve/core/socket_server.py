"""
=============================================================================
LISTENING SOCKET AND ACCEPT LOOP
=============================================================================

Owns the listening socket: creates it, binds it, accepts connections,
optionally wraps them in TLS, and hands each one to a callback.

=============================================================================
LIFECYCLE
=============================================================================

    bind()      socket() → setsockopt() → bind() → listen()
                Runs in the caller's thread, so "address already in use"
                surfaces as an exception right where the server starts.

    serve()     accept loop; HTTPServer runs it on a background thread
                    while running:
                        accept()            (1 s timeout to poll the flag;
                                             EMFILE and friends: back off
                                             5 ms .. 1 s and retry)
                        wrap_socket()       (TLS only, no handshake yet)
                        callback(Connection)

    stop()      flag off, shutdown() + close() the listening socket.
                New connection attempts are refused from this moment.

Signals are NOT handled here. Turning SIGINT into a shutdown is the job
of staticserve.shutdown.ShutdownBridge, which keeps this class usable
from tests and from threads other than the main one.

=============================================================================
ADDRESS FAMILIES
=============================================================================

    host ""             dual-stack "::" when the OS supports it, else 0.0.0.0
    host "::1", "::"    IPv6
    anything else       IPv4 (names like "localhost" are resolved by bind)

=============================================================================
"""

import errno
import socket
import ssl
import time
import logging
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


# How often the accept loop wakes up to check whether it should stop
ACCEPT_POLL_INTERVAL = 1.0

# accept() failures that clear up on their own (fd or memory pressure, a
# client that reset before being accepted). The loop backs off and retries.
TRANSIENT_ACCEPT_ERRORS = frozenset(
    getattr(errno, name)
    for name in ("EMFILE", "ENFILE", "ENOBUFS", "ENOMEM", "ECONNABORTED", "EPROTO")
    if hasattr(errno, name)
)

ACCEPT_RETRY_MIN_DELAY = 0.005
ACCEPT_RETRY_MAX_DELAY = 1.0


class SocketServer:
    """
    TCP listener with an optional TLS context.

    Usage:
        listener = SocketServer(config, ssl_context=None)
        listener.bind()                      # raises OSError on failure
        thread = threading.Thread(target=listener.serve, args=(on_connection,))
        thread.start()
        ...
        listener.stop()
    """

    def __init__(self, config: ServerConfig, ssl_context: Optional[ssl.SSLContext] = None):
        self.config = config
        self.ssl_context = ssl_context

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound: Optional[Tuple[str, int]] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Actually bound (host, port); differs from the config when port=0."""
        return self._bound or (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        host = self.config.host

        if ":" in host:
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        elif host == "" and socket.has_dualstack_ipv6():
            sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        else:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restarting right after a stop must not fail on TIME_WAIT sockets
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen.

        Returns:
            The bound (host, port).

        Raises:
            OSError: The address is in use, not local, or not permitted.
        """
        sock = self._create_socket()
        bind_host = self.config.host
        if bind_host == "" and sock.family == socket.AF_INET6:
            bind_host = "::"

        try:
            sock.bind((bind_host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise

        self._socket = sock
        self._bound = tuple(sock.getsockname()[:2])
        self._running = True
        return self._bound

    def serve(self, connection_handler: Callable[[Connection], None]) -> None:
        """
        Accept connections until stop() is called.

        Raises:
            OSError: The listening socket failed while the server was
                     still supposed to be running.
        """
        if self._socket is None:
            raise RuntimeError("serve() called before bind()")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]) -> None:
        delay = 0.0
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                if e.errno not in TRANSIENT_ACCEPT_ERRORS:
                    logger.error(f"Accept error: {e}")
                    raise
                delay = min(max(delay * 2, ACCEPT_RETRY_MIN_DELAY), ACCEPT_RETRY_MAX_DELAY)
                logger.warning(f"Accept error: {e}; retrying in {delay * 1000:.0f}ms")
                time.sleep(delay)
                continue

            delay = 0.0

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            if self.ssl_context is not None:
                try:
                    client_socket = self.ssl_context.wrap_socket(
                        client_socket,
                        server_side=True,
                        do_handshake_on_connect=False,
                    )
                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"TLS wrap failed for {client_address[0]}: {e}")
                    client_socket.close()
                    continue

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            connection_handler(conn)

    def stop(self) -> None:
        """
        Stop accepting. Idempotent and safe from any thread.

        The listening socket is closed here rather than by the accept
        thread, so refusals start immediately instead of after the next
        poll interval.
        """
        if not self._running:
            return
        self._running = False

        sock = self._socket
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

    def _cleanup(self) -> None:
        self._running = False
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
        logger.debug("Accept loop stopped")
