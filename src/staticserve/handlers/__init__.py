"""
=============================================================================
REQUEST HANDLERS
=============================================================================

A handler is any callable taking an HTTPRequest and returning an
HTTPResponse:

    Handler = Callable[[HTTPRequest], HTTPResponse]

The server has exactly one: StaticFileHandler, which answers every
request from the AssetStore. Middleware wraps it; nothing routes around
it.

=============================================================================
"""

from .static import StaticFileHandler, parse_etag_list, strong_match, weak_match

__all__ = ["StaticFileHandler", "parse_etag_list", "strong_match", "weak_match"]
