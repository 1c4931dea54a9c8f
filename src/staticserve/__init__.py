"""
=============================================================================
STATICSERVE - Static Asset Server With Graceful Shutdown
=============================================================================

Serves a directory of static assets bundled with the package over
HTTP/1.1 (or HTTPS), logs every request, and on SIGINT stops accepting
connections and gives in-flight requests a bounded grace period.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    staticserve/
    ├── __main__.py          CLI: python -m staticserve
    ├── config.py            ServerConfig (dataclass, env, validation)
    ├── server.py            HTTPServer lifecycle, StartupError
    ├── shutdown.py          ShutdownBridge: SIGINT → shutdown → exit code
    ├── assets.py            AssetStore: read-only in-memory file tree
    ├── core/
    │   ├── socket_server.py   listener, accept loop, TLS
    │   ├── connection.py      buffered client connection, idle tracking
    │   └── thread_pool.py     worker threads
    ├── http/
    │   ├── request.py         request parsing
    │   ├── response.py        response building, HTTP dates
    │   ├── ranges.py          byte ranges
    │   ├── status_codes.py    HTTPStatus
    │   └── mime_types.py      Content-Type detection
    ├── handlers/
    │   └── static.py          StaticFileHandler
    ├── middleware/
    │   ├── base.py            Middleware, MiddlewarePipeline
    │   └── logging.py         LoggingMiddleware (access log)
    └── static/              the bundled site

=============================================================================
QUICK START
=============================================================================

    from staticserve import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(port=3000))
    server.start()
    ...
    server.shutdown()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .assets import AssetStore, AssetEntry, AssetMountError, AssetNotFoundError
from .server import HTTPServer, ServerState, StartupError, setup_logging
from .shutdown import ShutdownBridge

__all__ = [
    "__version__",
    "ServerConfig",
    "AssetStore",
    "AssetEntry",
    "AssetMountError",
    "AssetNotFoundError",
    "HTTPServer",
    "ServerState",
    "StartupError",
    "setup_logging",
    "ShutdownBridge",
]
