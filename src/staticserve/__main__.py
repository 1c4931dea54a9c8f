"""
=============================================================================
STATICSERVE CLI ENTRY POINT
=============================================================================

=============================================================================
USAGE
=============================================================================

    # Bundled site on port 3000, all interfaces
    python -m staticserve

    # Another port, localhost only
    python -m staticserve -port 8080 -addr 127.0.0.1

    # HTTPS (both files are required; one alone is ignored with a warning)
    python -m staticserve -cert server.crt -key server.key

    # Serve a working directory instead of the bundled site
    python -m staticserve -dir ./site

Single-dash long flags (-port) and the usual double-dash spelling
(--port) are both accepted.

=============================================================================
PRECEDENCE
=============================================================================

    built-in default  <  STATICSERVE_* environment  <  command-line flag

=============================================================================
EXIT CODES
=============================================================================

    0   clean shutdown after SIGINT
    1   startup failure (port in use, bad TLS material, missing assets),
        server failure, or shutdown grace period exceeded
    2   invalid arguments

=============================================================================
"""

import argparse
import dataclasses
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .server import HTTPServer, StartupError, setup_logging
from .shutdown import ShutdownBridge


logger = logging.getLogger("staticserve")


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    """Argument parser whose defaults come from `defaults`."""
    parser = argparse.ArgumentParser(
        prog="staticserve",
        description="Serve the bundled static site over HTTP or HTTPS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  staticserve                                # :3000, bundled site
  staticserve -port 8080 -addr 127.0.0.1     # localhost only
  staticserve -cert tls.crt -key tls.key     # HTTPS
  staticserve -dir ./site                    # serve a directory
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # LISTENER
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-port", "--port",
        type=_port,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})",
    )
    parser.add_argument(
        "-addr", "--addr",
        default=defaults.host,
        help="Address to bind to (default: all interfaces)",
    )
    parser.add_argument(
        "-cert", "--cert",
        default=defaults.cert_file,
        help="TLS certificate file (requires -key)",
    )
    parser.add_argument(
        "-key", "--key",
        default=defaults.key_file,
        help="TLS private key file (requires -cert)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT AND LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-dir", "--dir",
        default=defaults.asset_dir,
        help="Serve this directory instead of the bundled assets",
    )
    parser.add_argument(
        "--log-level",
        default=defaults.log_level.upper(),
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Logging level (default: {defaults.log_level.upper()})",
    )
    parser.add_argument(
        "--log-format",
        default=defaults.log_format,
        choices=["text", "json"],
        help=f"Access log format (default: {defaults.log_format})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def parse_config(argv: Optional[Sequence[str]] = None) -> ServerConfig:
    """
    Build the ServerConfig for a command line.

    Exits with status 2 (through argparse) on invalid input.
    """
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        build_parser(ServerConfig()).error(f"bad environment: {e}")

    parser = build_parser(defaults)
    args = parser.parse_args(argv)

    config = dataclasses.replace(
        defaults,
        host=args.addr,
        port=args.port,
        cert_file=args.cert,
        key_file=args.key,
        asset_dir=args.dir or None,
        log_level=args.log_level,
        log_format=args.log_format,
    )
    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the server until SIGINT.

    Returns:
        The process exit code.
    """
    config = parse_config(argv)
    setup_logging(config.log_level)

    server = HTTPServer(config)
    bridge = ShutdownBridge(server, grace_period=config.grace_period)

    # Handlers go in first so an early Ctrl+C still shuts down cleanly
    bridge.install()
    try:
        server.start()
    except StartupError as e:
        bridge.restore()
        logger.critical(str(e))
        return 1

    return bridge.run()


if __name__ == "__main__":
    sys.exit(main())
