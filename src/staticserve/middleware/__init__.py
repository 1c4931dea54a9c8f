"""
=============================================================================
MIDDLEWARE
=============================================================================

    base.py      Middleware ABC and MiddlewarePipeline
    logging.py   LoggingMiddleware: one access-log line per request

The server always installs LoggingMiddleware first. Additional
middleware can be added with HTTPServer.use() before start().

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog, ACCESS_LOGGER_NAME

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
    "ACCESS_LOGGER_NAME",
]
