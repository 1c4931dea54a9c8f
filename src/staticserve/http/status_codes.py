"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes a static asset server actually emits, with their reason
phrases.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK              - Whole file                          │
    │        │ 206 Partial Content - Byte range(s) of a file             │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 301 Moved Permanently - "/docs" → "/docs/"                │
    │        │ 304 Not Modified      - Client cache is still valid       │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request       - Unparseable request               │
    │        │ 404 Not Found         - No such asset                     │
    │        │ 408 Request Timeout   - Client went quiet mid-request     │
    │        │ 412 Precondition Failed - If-Match / If-Unmodified-Since  │
    │        │ 413 Payload Too Large - Request over max_request_size     │
    │        │ 416 Range Not Satisfiable - Range outside the file        │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Server Error - Handler raised                │
    │        │ 503 Service Unavailable   - Worker pool saturated         │
    │        │ 505 HTTP Version Not Supported                            │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
BODYLESS RESPONSES
=============================================================================

A 304 response never carries a body (RFC 9110 §15.4.5). The serializer
consults HTTPStatus.allows_body so a handler cannot get this wrong by
accident.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_MODIFIED == 304
        True
        >>> HTTPStatus.NOT_MODIFIED.phrase
        'Not Modified'
    """

    # 2xx SUCCESS
    OK = 200
    PARTIAL_CONTENT = 206           # Range request fulfilled

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301         # Directory without trailing slash
    NOT_MODIFIED = 304              # Cached copy still valid

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    REQUEST_TIMEOUT = 408
    PRECONDITION_FAILED = 412       # If-Match / If-Unmodified-Since failed
    PAYLOAD_TOO_LARGE = 413
    RANGE_NOT_SATISFIABLE = 416

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line, e.g. 'Partial Content'."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def allows_body(self) -> bool:
        """False for statuses that must never carry a message body."""
        return self != HTTPStatus.NOT_MODIFIED


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.NOT_MODIFIED: "Not Modified",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PRECONDITION_FAILED: "Precondition Failed",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Range Not Satisfiable",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
