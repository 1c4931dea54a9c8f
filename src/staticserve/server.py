"""
=============================================================================
SERVER LIFECYCLE MANAGER
=============================================================================

HTTPServer ties the pieces together and owns the start/stop state
machine.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            HTTPServer                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   ┌──────────────┐    ┌──────────────┐    ┌───────────────────────┐ │
    │   │ SocketServer │    │  ThreadPool  │    │  LoggingMiddleware    │ │
    │   │ accept + TLS │───►│ 1 connection │───►│    └── StaticFile-    │ │
    │   │   (thread)   │    │  per worker  │    │        Handler        │ │
    │   └──────────────┘    └──────────────┘    └───────────┬───────────┘ │
    │                                                       │             │
    │                                                       ▼             │
    │                                               ┌──────────────┐      │
    │                                               │  AssetStore  │      │
    │                                               │ (read-only)  │      │
    │                                               └──────────────┘      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STATES
=============================================================================

    NEW ──start()──► STARTING ──bound──► LISTENING ──shutdown()──► SHUTTING_DOWN
                         │                                               │
                         └──── StartupError ────► STOPPED ◄──────────────┘

start() does everything that can fail up front and in the caller's
thread: mounting the assets, loading the TLS material, binding the
port. A misconfigured server never reaches LISTENING.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    shutdown(timeout)
      1. state → SHUTTING_DOWN, listening socket closed (new clients refused)
      2. idle connections closed right away, and again every poll while
         waiting, since a connection becomes idle when its response is sent
      3. wait on a condition variable until no connection is left or the
         deadline passes
      4. deadline passed: abort() what is left, log at ERROR, return False
      5. stop the worker pool, state → STOPPED

Responses still in flight get the whole grace period. Responses sent
during shutdown carry "Connection: close".

=============================================================================
"""

import logging
import ssl
import threading
import time
from enum import Enum
from typing import Callable, Optional, Set, Tuple

from .assets import AssetStore, AssetMountError
from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool, RequestTooLarge
from .handlers import StaticFileHandler
from .http import (
    HTTPRequest, HTTPResponse, RequestParser, HTTPParseError,
    HTTPStatus, error_response,
)
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# How often shutdown re-checks for connections that have gone idle
DRAIN_POLL_INTERVAL = 0.1

# Bound on waiting for worker threads once every connection is gone
POOL_STOP_TIMEOUT = 2.0


class StartupError(Exception):
    """The server could not start: bind failure, bad TLS material, missing assets."""


class ServerState(Enum):
    NEW = "new"
    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger for command-line use.

    Libraries should not configure logging on import, so only the CLI
    calls this.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("staticserve").setLevel(numeric)


class HTTPServer:
    """
    Static asset server over HTTP/1.1, with optional TLS.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=3000))
        server.start()                 # raises StartupError
        ...
        clean = server.shutdown()      # True if drained within grace_period

    Tests usually pass port=0 and an AssetStore built from a temporary
    directory, then read the real port from server.address.

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        store: Optional[AssetStore] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        access_logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults to ServerConfig().
            store: Asset store to serve. When None, start() mounts
                   config.asset_dir or the bundled assets.
            on_fatal: Called with the exception if the accept loop dies
                      after start().
            access_logger: Destination for access-log records.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.on_fatal = on_fatal
        self.error: Optional[BaseException] = None

        self._store = store
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(
            logger=access_logger,
            log_format=self.config.log_format,
        ))

        self._listener: Optional[SocketServer] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────

        self._state = ServerState.NEW
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()
        self._clean_shutdown: Optional[bool] = None

        # In-flight connections; the condition is notified whenever one ends
        self._connections: Set[Connection] = set()
        self._connections_changed = threading.Condition()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) once listening, else the configured one."""
        if self._listener is not None:
            return self._listener.address
        return (self.config.host, self.config.port)

    @property
    def tls_enabled(self) -> bool:
        return self._listener is not None and self._listener.ssl_context is not None

    @property
    def store(self) -> Optional[AssetStore]:
        return self._store

    @property
    def active_connections(self) -> int:
        with self._connections_changed:
            return len(self._connections)

    def use(self, middleware: Middleware) -> "HTTPServer":
        """
        Add middleware inside the access logger. Must be called before start().
        """
        if self._state != ServerState.NEW:
            raise RuntimeError("Middleware must be added before start()")
        self._middleware.add(middleware)
        return self

    # =========================================================================
    # STARTUP
    # =========================================================================

    def start(self) -> None:
        """
        Mount assets, load TLS material, bind, and start serving in the
        background. Returns once the listener accepts connections.

        Raises:
            StartupError: Anything that prevents serving.
            RuntimeError: start() was already called.
        """
        with self._state_lock:
            if self._state != ServerState.NEW:
                raise RuntimeError(f"Cannot start a server in state {self._state.value}")
            self._state = ServerState.STARTING

        try:
            store = self._mount_assets()
            ssl_context = self._create_ssl_context()

            listener = SocketServer(self.config, ssl_context)
            try:
                listener.bind()
            except OSError as e:
                raise StartupError(
                    f"cannot listen on {self.config.host}:{self.config.port}: {e}"
                ) from e
        except StartupError:
            self._state = ServerState.STOPPED
            self._stopped.set()
            raise

        self._store = store
        self._listener = listener
        self._handler = self._middleware.wrap(StaticFileHandler(
            store,
            index_file=self.config.index_file,
            directory_listing=self.config.directory_listing,
        ))

        self._thread_pool.start()
        self._accept_thread = threading.Thread(
            target=self._run_accept_loop,
            name="staticserve-accept",
            daemon=True,
        )
        self._state = ServerState.LISTENING
        self._accept_thread.start()

        host, port = self.address
        logger.info(f"listening on {host}:{port} (TLS={'on' if ssl_context else 'off'})")
        logger.debug(f"Serving {store!r}")

    def _mount_assets(self) -> AssetStore:
        if self._store is not None:
            return self._store
        try:
            if self.config.asset_dir:
                return AssetStore.from_directory(self.config.asset_dir)
            return AssetStore.from_package()
        except AssetMountError as e:
            raise StartupError(f"cannot mount assets: {e}") from e

    def _create_ssl_context(self) -> Optional[ssl.SSLContext]:
        """
        TLS context when both cert_file and key_file are set.

        Only one of the two is a warning, not an error: the server keeps
        serving plain HTTP.
        """
        config = self.config
        if config.tls_partial:
            missing = "key" if config.cert_file else "cert"
            logger.warning(f"TLS needs both a cert and a key; {missing} is missing, serving plain HTTP")
            return None
        if not config.tls_enabled:
            return None

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.set_alpn_protocols(["http/1.1"])
        try:
            context.load_cert_chain(config.cert_file, config.key_file)
        except (ssl.SSLError, OSError) as e:
            raise StartupError(
                f"cannot load TLS material ({config.cert_file}, {config.key_file}): {e}"
            ) from e
        return context

    def _run_accept_loop(self) -> None:
        """Accept thread body. A failure while LISTENING is fatal."""
        try:
            self._listener.serve(self._handle_connection)
        except Exception as e:
            if self._state != ServerState.LISTENING:
                return
            logger.critical(f"Accept loop failed: {e}")
            self.error = e
            if self.on_fatal is not None:
                self.on_fatal(e)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Register a new connection and queue it (accept thread)."""
        if self._state != ServerState.LISTENING:
            conn.abort()
            conn.close()
            return

        self._track(conn)
        try:
            submitted = self._thread_pool.submit(self._serve_connection, args=(conn,))
        except RuntimeError:
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] Worker pool full, rejecting connection")
            if not conn.is_tls:
                self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()
            self._untrack(conn)

    def _serve_connection(self, conn: Connection) -> None:
        try:
            self._process_connection(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            conn.close()
            self._untrack(conn)

    def _process_connection(self, conn: Connection) -> None:
        """
        Keep-alive loop for one connection (worker thread).

        =====================================================================
        CONNECTION PROCESSING LOOP
        =====================================================================

        1. Claim the connection, then the TLS handshake (TLS listeners only)
        2. Read one request; None means the peer left or the connection
           was closed for shutdown while idle
        3. Parse, then run the middleware chain and the static handler
        4. Send, without the body for HEAD
        5. Keep-alive and not shutting down: repeat from 2

        =====================================================================
        """
        conn.claim()
        if not conn.handshake():
            return

        while True:
            try:
                raw_request = conn.read_request()
            except RequestTooLarge:
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                return
            except TimeoutError:
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                return

            if raw_request is None:
                return

            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                logger.debug(f"[{conn.id}] Bad request: {e}")
                self._send_error(conn, HTTPStatus(e.status_code))
                return

            conn.mark_processing()

            try:
                response = self._handler(request)
            except Exception as e:
                logger.exception(f"[{conn.id}] Handler error: {e}")
                response = error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

            keep_alive = (
                self.config.keep_alive
                and request.is_keep_alive
                and self._state == ServerState.LISTENING
            )
            if keep_alive:
                response.headers.setdefault("Connection", "keep-alive")
                response.headers.setdefault(
                    "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                )
            else:
                response.headers["Connection"] = "close"

            data = response.to_bytes(self.config.server_name, include_body=not request.is_head)
            if not conn.send_response(data):
                return

            if not keep_alive or response.headers.get("Connection") == "close":
                return

            conn.set_keep_alive()
            if self._state != ServerState.LISTENING:
                return

    def _send_error(self, conn: Connection, status: HTTPStatus) -> None:
        """Error response for failures before a request reached the handler."""
        response = error_response(status)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

    def _track(self, conn: Connection) -> None:
        with self._connections_changed:
            self._connections.add(conn)

    def _untrack(self, conn: Connection) -> None:
        with self._connections_changed:
            self._connections.discard(conn)
            self._connections_changed.notify_all()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting and wait for in-flight requests.

        Idempotent: later calls wait for the first one to finish and
        return its result.

        Args:
            timeout: Grace period in seconds. Defaults to config.grace_period.

        Returns:
            True if every connection finished in time, False if some had to
            be force-closed at the deadline.
        """
        with self._state_lock:
            if self._state == ServerState.NEW:
                self._state = ServerState.STOPPED
                self._clean_shutdown = True
                self._stopped.set()
                return True
            first_call = self._state in (ServerState.STARTING, ServerState.LISTENING)
            if first_call:
                self._state = ServerState.SHUTTING_DOWN

        if not first_call:
            self._stopped.wait()
            return bool(self._clean_shutdown)

        grace = self.config.grace_period if timeout is None else timeout
        logger.info(f"shutdown requested, waiting up to {grace:.1f}s for in-flight requests")

        if self._listener is not None:
            self._listener.stop()

        deadline = time.monotonic() + grace
        clean = self._drain(deadline)
        if not clean:
            aborted = self._abort_connections()
            logger.error(
                f"shutdown timed out after {grace:.1f}s; "
                f"forcibly closed {aborted} connection(s)"
            )

        if self._accept_thread is not None:
            self._accept_thread.join(POOL_STOP_TIMEOUT)
        self._thread_pool.shutdown(timeout=POOL_STOP_TIMEOUT)

        self._clean_shutdown = clean
        self._state = ServerState.STOPPED
        self._stopped.set()
        if clean:
            logger.info("shutdown complete")
        return clean

    def _drain(self, deadline: float) -> bool:
        """Close idle connections and wait for the rest; False at the deadline."""
        with self._connections_changed:
            while self._connections:
                for conn in list(self._connections):
                    conn.close_if_idle()

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._connections_changed.wait(min(remaining, DRAIN_POLL_INTERVAL))
            return True

    def _abort_connections(self) -> int:
        with self._connections_changed:
            remaining = list(self._connections)
        for conn in remaining:
            conn.abort()
        return len(remaining)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the server has stopped. Returns False on timeout."""
        return self._stopped.wait(timeout)

    def __enter__(self) -> "HTTPServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
