"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse holds a response; ResponseBuilder assembles one fluently;
to_bytes() turns it into what goes on the wire.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 206 Partial Content\r\n            ← status line
    Content-Type: text/css; charset=utf-8\r\n
    Content-Range: bytes 0-99/2048\r\n
    Content-Length: 100\r\n                      ← added by to_bytes()
    Date: Sat, 17 Oct 2026 10:00:00 GMT\r\n      ← added by to_bytes()
    Server: staticserve/1.0\r\n                  ← added by to_bytes()
    \r\n
    <100 bytes>

=============================================================================
HEAD AND BODYLESS STATUSES
=============================================================================

A HEAD response carries exactly the headers the GET would have carried,
including Content-Length, but no body. The handler builds the full
response and the connection loop serializes it with include_body=False.

304 Not Modified never carries a body, and Content-Length is not
synthesized for it.

=============================================================================
"""

import html
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Union

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """An HTTP response waiting to be serialized."""

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "staticserve/1.0", include_body: bool = True) -> bytes:
        """
        Serialize the response.

        Args:
            server_name: Value for the Server header when none is set.
            include_body: False for HEAD; headers are unchanged.

        Returns:
            Status line, headers and (optionally) body, ready for sendall().
        """
        response_headers = dict(self.headers)
        body_allowed = self.status.allows_body

        if body_allowed:
            response_headers.setdefault("Content-Length", str(len(self.body)))
        else:
            response_headers.pop("Content-Length", None)

        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        head = "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"

        if include_body and body_allowed:
            return head + self.body
        return head


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.PARTIAL_CONTENT)
            .header("Content-Range", "bytes 0-99/2048")
            .body(data[0:100])
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def redirect(self, location: str) -> "ResponseBuilder":
        """
        301 redirect with a tiny HTML body, the way browsers expect a
        file server to answer "/docs" for a directory.
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY
        self._headers["Location"] = location
        return self.html(f'<a href="{html.escape(location, quote=True)}">{self._status.phrase}</a>.\n')

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=self._headers, body=self._body)


# =============================================================================
# HTTP DATES
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an IMF-fixdate: "Sat, 17 Oct 2026 10:00:00 GMT".

    Naive datetimes are taken to be UTC already.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse any of the three HTTP date formats into an aware UTC datetime.

    Returns None for anything unparseable; callers then ignore the header,
    as RFC 9110 requires for invalid dates in conditional requests.
    """
    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

NOT_FOUND_BODY = "404 page not found\n"


def not_found() -> HTTPResponse:
    """Plain-text 404, the body every file server client recognizes."""
    return (ResponseBuilder()
        .status(HTTPStatus.NOT_FOUND)
        .header("X-Content-Type-Options", "nosniff")
        .text(NOT_FOUND_BODY)
        .build())


def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    """Plain-text error response: "<code> <phrase>" or a custom message."""
    status = HTTPStatus(status)
    text = message or f"{int(status)} {status.phrase}"
    return (ResponseBuilder()
        .status(status)
        .header("X-Content-Type-Options", "nosniff")
        .text(text.rstrip("\n") + "\n")
        .build())
