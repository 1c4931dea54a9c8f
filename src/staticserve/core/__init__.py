"""
=============================================================================
NETWORKING CORE
=============================================================================

    socket_server.py   listening socket, accept loop, TLS wrapping
    connection.py      one client connection: buffered reads, idle tracking
    thread_pool.py     worker threads that run one connection each

Nothing here knows about files or HTTP semantics beyond finding where a
request ends.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ThreadPool",
]
