"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket (plain or TLS) with buffered request
reading, response writing, and the state the shutdown logic needs.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever happens to have arrived. A request head can come
in several pieces, and a pipelining client can put two requests into one
segment:

    recv() → b"GET /a HTTP/1.1\r\nHo"
    recv() → b"st: x\r\n\r\nGET /b HTTP/1.1\r\nHost: x\r\n\r\n"

read_request() buffers until it has one complete request (head plus
Content-Length body) and keeps the surplus for the next call.

=============================================================================
STATES
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐
     │         ▲                                                │
     │         └────────────── first byte of next request ◄─────┘
     └──► CLOSING ──► CLOSED

A connection is IDLE when a worker has claimed it, it is in NEW or
KEEP_ALIVE, and no request byte is buffered or waiting in the socket.
Idle connections can be closed at any moment without losing work, which
is exactly what shutdown does to them. The state only leaves
NEW/KEEP_ALIVE once request bytes have actually arrived, so a worker
blocked in recv() on a quiet socket still counts as idle.

A connection still waiting in the pool queue is never idle: its client
may already have sent a request that nobody has read yet.

close_if_idle() and the transition to READING are serialized by a lock,
so a connection is either closed while idle or gets to finish its
request, never both.

=============================================================================
TLS
=============================================================================

TLS sockets are wrapped with do_handshake_on_connect=False by the
listener. handshake() runs in the worker thread, so a slow or hostile
client cannot stall the accept loop.

=============================================================================
"""

import selectors
import socket
import ssl
import threading
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class RequestTooLarge(ValueError):
    """The buffered request exceeded max_request_size."""


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                # Accepted, nothing read yet
    READING = "reading"        # Request bytes are arriving
    PROCESSING = "processing"  # Handler is running
    WRITING = "writing"        # Response is being sent
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for the next request
    CLOSING = "closing"
    CLOSED = "closed"


IDLE_STATES = (ConnectionState.NEW, ConnectionState.KEEP_ALIVE)


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket (ssl.SSLSocket for TLS listeners).
        address: Peer (ip, port).
        id: Short identifier used in log lines.
        state: Current ConnectionState.
        requests_handled: Requests read on this connection so far.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closing: bool = field(default=False, repr=False)
    _claimed: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def is_idle(self) -> bool:
        """Claimed by a worker and no request is in progress."""
        return self._claimed and self.state in IDLE_STATES and not self._buffer

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def claim(self) -> None:
        """Mark the connection as taken by a worker."""
        self._claimed = True

    # =========================================================================
    # TLS
    # =========================================================================

    def handshake(self) -> bool:
        """
        Complete the TLS handshake, if this is a TLS connection.

        Returns:
            True when the connection is ready for HTTP, False if the
            handshake failed (the caller should just close).
        """
        if not self.is_tls:
            return True
        try:
            self.socket.do_handshake()
            return True
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake failed: {e}")
            return False

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request.

        Returns:
            Request bytes, or None when the peer closed the connection, an
            idle keep-alive period expired, or the connection was closed
            for shutdown before any byte of a request arrived.

        Raises:
            TimeoutError: The client stopped sending in the middle of a request.
            RequestTooLarge: The request exceeded max_request_size.
        """
        self._claimed = True
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            if self._buffer and not self._begin_reading():
                return None

            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                if not self._begin_reading():
                    return None

                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            return request_data

        except socket.timeout:
            if self.state in IDLE_STATES:
                logger.debug(f"[{self.id}] Idle timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if not self.is_closed:
                try:
                    self.socket.settimeout(self.timeout)
                except OSError:
                    pass

    def _begin_reading(self) -> bool:
        """Leave the idle state; False if shutdown already closed the connection."""
        with self._lock:
            if self._closing:
                return False
            if self.state != ConnectionState.READING:
                self.state = ConnectionState.READING
                self.socket.settimeout(self.timeout)
            return True

    def _recv(self) -> bytes:
        """recv() that maps a dead peer to b"" but lets timeouts through."""
        try:
            return self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except (ssl.SSLError, OSError):
            return b""

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        """Content-Length from a raw head; 0 if absent or unparseable."""
        for line in headers.split(b"\r\n")[1:]:
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                value = value.strip()
                return int(value) if value.isdigit() else 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def mark_processing(self) -> None:
        self.state = ConnectionState.PROCESSING

    def send_response(self, data: bytes) -> bool:
        """
        Send a serialized response with sendall().

        Returns:
            True on success, False if the peer is gone or the connection
            was aborted.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self) -> None:
        """Response sent; wait for the next request."""
        with self._lock:
            if not self._closing:
                self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close_if_idle(self) -> bool:
        """
        Close the connection if no request is in progress.

        Safe to call from any thread. The worker blocked in recv() on this
        socket wakes up with EOF and exits its loop.

        Returns:
            True if the connection was idle and is now being closed.
        """
        with self._lock:
            if self._closing or not self.is_idle or self._has_pending_input():
                return False
            self._closing = True
        self._shutdown_socket()
        return True

    def _has_pending_input(self) -> bool:
        """Bytes (or EOF) are waiting in the socket; caller holds _lock."""
        if self.is_tls and self.socket.pending():
            return True
        try:
            with selectors.DefaultSelector() as selector:
                selector.register(self.socket, selectors.EVENT_READ)
                return bool(selector.select(timeout=0))
        except (OSError, ValueError):
            # Closed socket: nothing left to lose
            return False

    def abort(self) -> None:
        """
        Forcibly terminate the connection, whatever it is doing.

        Used when the shutdown grace period runs out. Any recv() or
        sendall() blocked in the worker fails immediately.
        """
        with self._lock:
            self._closing = True
        logger.debug(f"[{self.id}] Aborting connection in state {self.state.value}")
        self._shutdown_socket()

    def _shutdown_socket(self) -> None:
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> None:
        """
        Close the connection: half-close, drain briefly, release the fd.

        Draining keeps the kernel from answering unread client data with
        a RST that could destroy the response still in flight.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except (socket.timeout, ssl.SSLError, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
