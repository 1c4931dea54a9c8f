"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read by a Connection into an HTTPRequest.

=============================================================================
WHAT A STATIC SERVER NEEDS FROM A REQUEST
=============================================================================

    GET /css/site.css?v=3 HTTP/1.1\r\n          ← method, target, version
    Host: localhost:3000\r\n
    If-None-Match: "5d41402abc4b2a76"\r\n       ← conditional request
    Range: bytes=0-1023\r\n                      ← partial content
    \r\n

Only the method, the decoded path, the version and the headers matter.
The query string is kept (only to carry it across a directory redirect)
but never influences which asset is served.

=============================================================================
PERMISSIVE ON PURPOSE
=============================================================================

- ANY method token is accepted. GET/HEAD semantics apply to everything,
  so there is nothing to reject.
- Paths containing ".." are NOT rejected here. The asset store resolves
  them to "not found", which is the response a client should see for a
  path that leaves the content root.

What IS rejected:

    400 Bad Request                 - Garbage request line, bad Content-Length
    413 Payload Too Large           - Larger than max_request_size
    505 HTTP Version Not Supported  - Anything but HTTP/1.0 and HTTP/1.1

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status the connection loop should answer with.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are stored lower-cased; repeated headers are joined with
    ", " as RFC 9110 allows.
    """

    method: str
    path: str                                                    # Decoded, without query
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    target: str = ""                                             # Request-target as sent
    client_address: tuple[str, int] = ("", 0)

    @property
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @property
    def raw_path(self) -> str:
        """Path component of the request-target, still percent-encoded."""
        if not self.target:
            return self.path
        return urlsplit(self.target).path or "/"

    @property
    def query_string(self) -> str:
        return urlsplit(self.target).query if self.target else ""

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 defaults to keep-alive, HTTP/1.0 defaults to close.
        """
        tokens = {t.strip() for t in self.headers.get("connection", "").lower().split(",")}

        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Stateless HTTP/1.x request parser.

    One instance is shared by every worker thread.
    """

    # RFC 9110 token characters
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) (\S+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:\s]+):[ \t]*(.*?)[ \t]*$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Request head plus body, as returned by Connection.read_request().
            client_address: Peer (ip, port), kept on the request for logging.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Header bytes are ISO-8859-1 on the wire; latin-1 never fails to decode
        lines = data[:header_end].decode("latin-1").split("\r\n")
        body = data[header_end + 4:]

        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        raw_length = headers.get("content-length", "0")
        if not raw_length.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {raw_length!r}")
        content_length = int(raw_length)
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        split = urlsplit(target)
        path = unquote(split.path, errors="replace") or "/"

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            body=body[:content_length],
            target=target,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line[:100]!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        if not (target.startswith("/") or target.startswith("http://")
                or target.startswith("https://") or target == "*"):
            raise HTTPParseError(f"Invalid request target: {target[:100]!r}")

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a lower-cased dict.

        Obsolete line folding is joined onto the previous header; lines
        that are not "Name: value" are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.lower()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """Parse a request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
