"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything the asset server needs to know before it binds a socket lives
in one dataclass.

=============================================================================
WHERE VALUES COME FROM
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line flags                                             │
    │      └── staticserve -port 8443 -cert cert.pem -key key.pem         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── STATICSERVE_PORT=8443 staticserve                          │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The CLI starts from ServerConfig.from_env() and overwrites whatever flags
were given explicitly, so the environment acts as a second layer of
defaults.

=============================================================================
TLS IS ALL-OR-NOTHING
=============================================================================

TLS is switched on only when BOTH a certificate and a key are supplied.
Supplying just one of them is tolerated: the server logs a warning and
starts a plain HTTP listener. Rejecting the half-configured case would
break deployments that set one variable globally and the other per host.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


# Environment variable prefix for every setting read by from_env()
ENV_PREFIX = "STATICSERVE_"


@dataclass
class ServerConfig:
    """
    Configuration for the static asset server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    LISTENER
    - host, port, cert_file, key_file, backlog

    CONNECTIONS
    - buffer_size, timeout, keep_alive, keep_alive_timeout, max_request_size

    WORKERS
    - min_workers, max_workers

    SHUTDOWN
    - grace_period

    CONTENT
    - asset_dir, index_file, directory_listing

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # LISTENER
    # ─────────────────────────────────────────────────────────────────────

    host: str = ""
    """
    The address to bind to.
    - "" - All interfaces (the default, like ":3000")
    - "127.0.0.1" - Localhost only
    """

    port: int = 3000
    """
    TCP port to listen on. 0 asks the OS for a free port, which is what
    the tests do; the real port is reported by HTTPServer.address.
    """

    cert_file: str = ""
    """Path to a PEM certificate chain. Empty = no TLS."""

    key_file: str = ""
    """Path to the PEM private key matching cert_file. Empty = no TLS."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTIONS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 8192
    """Bytes requested per recv() call."""

    timeout: Optional[float] = 30.0
    """
    Socket timeout in seconds while a request is being read or a
    response written. None = block forever.
    """

    keep_alive: bool = True
    """Allow several requests on one TCP connection."""

    keep_alive_timeout: float = 5.0
    """How long an idle keep-alive connection may wait for its next request."""

    max_request_size: int = 1024 * 1024
    """
    Upper bound for request head plus body. A static server never needs
    large bodies, so 1 MB is generous.
    """

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 8
    """Worker threads started with the server."""

    max_workers: Optional[int] = None
    """
    Ceiling for the worker pool. Each open connection occupies one
    worker for its whole lifetime, so a ceiling is also a limit on
    concurrent connections. None = one thread per connection, unbounded.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    grace_period: float = 5.0
    """
    Seconds in-flight requests get to finish after a shutdown request.
    When it elapses, whatever is still open is closed forcibly.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    asset_dir: Optional[str] = None
    """
    Serve this filesystem directory instead of the assets bundled with
    the package. Useful while editing the site.
    """

    index_file: str = "index.html"
    """File served when a directory is requested."""

    directory_listing: bool = True
    """Render an HTML listing for directories without an index file."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "staticserve/1.0"
    """Value of the Server response header."""

    @property
    def tls_enabled(self) -> bool:
        """True only when both a certificate and a key are configured."""
        return bool(self.cert_file) and bool(self.key_file)

    @property
    def tls_partial(self) -> bool:
        """True when exactly one of cert_file/key_file is set."""
        return bool(self.cert_file) != bool(self.key_file)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STATICSERVE_ADDR        Bind address (default: all interfaces)
        STATICSERVE_PORT        Port (default: 3000)
        STATICSERVE_CERT        TLS certificate file
        STATICSERVE_KEY         TLS private key file
        STATICSERVE_DIR         Serve this directory instead of bundled assets
        STATICSERVE_LOG_LEVEL   Logging level (default: INFO)
        STATICSERVE_LOG_FORMAT  Access log format (default: text)

        =====================================================================

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ValueError: If STATICSERVE_PORT is not an integer.
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str) -> str:
            return env.get(ENV_PREFIX + name, default)

        return cls(
            host=get("ADDR", ""),
            port=int(get("PORT", "3000")),
            cert_file=get("CERT", ""),
            key_file=get("KEY", ""),
            asset_dir=get("DIR", "") or None,
            log_level=get("LOG_LEVEL", "INFO"),
            log_format=get("LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by HTTPServer before it touches the network, so a typo in a
        flag fails at startup instead of on the first request.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers is not None and self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.grace_period < 0:
            raise ValueError("grace_period must be >= 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {self.log_format!r}")
