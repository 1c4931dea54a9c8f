"""
=============================================================================
REQUEST LOGGING MIDDLEWARE
=============================================================================

Emits one access-log record per request, BEFORE the request is handled.

=============================================================================
RECORD FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1:52144 GET /css/site.css                                   │
    │ ─────────────── ─── ─────────────                                   │
    │ client address  method  path                                        │
    └─────────────────────────────────────────────────────────────────────┘

    JSON:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"remote_addr": "127.0.0.1:52144", "method": "GET",                 │
    │  "path": "/css/site.css"}                                           │
    └─────────────────────────────────────────────────────────────────────┘

IPv6 peers are bracketed ("[::1]:52144") so the port stays unambiguous.

=============================================================================
WHY LOG BEFORE HANDLING?
=============================================================================

    time ──────────────────────────────────────────────────────────►
         │ log "GET /big.iso" │ ... handler runs ... │ response sent │

A request that hangs, crashes a worker or gets cut off at the shutdown
deadline still leaves a line behind. Records are written by the worker
that read the request, so requests on one connection are logged in the
order they arrived.

The middleware never changes the request and never catches what the
handler raises.

=============================================================================
INJECTABLE LOGGER
=============================================================================

    LoggingMiddleware()                             # "staticserve.access"
    LoggingMiddleware(logger=my_logger)             # custom destination
    LoggingMiddleware(logger=logging.getLogger("quiet"), level=logging.DEBUG)

Tests pass their own logger (or use caplog) instead of patching globals.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


ACCESS_LOGGER_NAME = "staticserve.access"


@dataclass
class RequestLog:
    """One access-log record."""

    remote_addr: str
    method: str
    path: str

    @classmethod
    def from_request(cls, request: HTTPRequest) -> "RequestLog":
        return cls(
            remote_addr=format_address(request.client_address),
            method=request.method,
            path=request.path,
        )

    def to_dict(self) -> dict:
        return {
            "remote_addr": self.remote_addr,
            "method": self.method,
            "path": self.path,
        }

    def to_text(self) -> str:
        return f"{self.remote_addr} {self.method} {self.path}"


def format_address(address: tuple) -> str:
    """(host, port) → "host:port", bracketing IPv6 hosts."""
    if not address:
        return "-"
    host, port = address[0], address[1]
    if ":" in host:
        host = f"[{host}]"
    return f"{host}:{port}"


class LoggingMiddleware(Middleware):
    """
    Access-log middleware.

    Should be added FIRST so it sees every request, including those a
    later middleware short-circuits.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        log_format: str = "text",
        level: int = logging.INFO,
    ):
        """
        Args:
            logger: Destination logger. Defaults to "staticserve.access".
            log_format: "text" or "json".
            level: Level the records are emitted at.
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {log_format!r}")

        self.logger = logger or logging.getLogger(ACCESS_LOGGER_NAME)
        self.log_format = log_format
        self.level = level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if self.logger.isEnabledFor(self.level):
            entry = RequestLog.from_request(request)
            if self.log_format == "json":
                self.logger.log(self.level, json.dumps(entry.to_dict()))
            else:
                self.logger.log(self.level, entry.to_text())

        return next(request)
