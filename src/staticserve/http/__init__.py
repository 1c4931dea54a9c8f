"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Pure protocol code: no sockets, no threads, no files.

    request.py       bytes ──► HTTPRequest
    response.py      HTTPResponse ──► bytes, ResponseBuilder, HTTP dates
    ranges.py        Range header ──► ByteRange list, multipart bodies
    status_codes.py  HTTPStatus enum with reason phrases
    mime_types.py    file name (and bytes) ──► Content-Type

Everything here can be tested with plain byte strings.

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    parse_http_date,
    not_found,
    error_response,
)
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type, sniff_mime_type
from .ranges import ByteRange, RangeNotSatisfiable, parse_range_header, multipart_byteranges

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "parse_http_date",
    "not_found",
    "error_response",
    "HTTPStatus",
    "get_mime_type",
    "get_content_type",
    "sniff_mime_type",
    "ByteRange",
    "RangeNotSatisfiable",
    "parse_range_header",
    "multipart_byteranges",
]
