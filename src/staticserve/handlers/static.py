"""
=============================================================================
STATIC RESPONDER
=============================================================================

Maps request paths onto the AssetStore and produces complete responses,
including validators, conditional requests and byte ranges.

=============================================================================
DECISION FLOW
=============================================================================

    request.path
        │
        ├── ends with "/index.html" ───────────────► 301 to "./"
        │
        ├── store.lookup() is None ────────────────► 404 "404 page not found"
        │
        ├── directory
        │       ├── no trailing slash ─────────────► 301 to path + "/"
        │       ├── has index.html ────────────────► serve index.html
        │       ├── listing enabled ───────────────► 200 HTML listing
        │       └── otherwise ─────────────────────► 404
        │
        └── file
                ├── trailing slash ────────────────► 301 to path without "/"
                └── serve_entry()
                        ├── If-Match / If-Unmodified-Since fail ─► 412
                        ├── If-None-Match / If-Modified-Since hit ► 304
                        ├── Range (and If-Range still valid)
                        │       ├── one range ─────► 206 + Content-Range
                        │       ├── several ───────► 206 multipart/byteranges
                        │       └── none fit ──────► 416 + "bytes */size"
                        └── otherwise ─────────────► 200 whole file

=============================================================================
PRECONDITION ORDER (RFC 9110 §13.2.2)
=============================================================================

    1. If-Match              (falls back to If-Unmodified-Since)  → 412
    2. If-None-Match         (falls back to If-Modified-Since)    → 304
       A failed If-None-Match on a non-GET/HEAD request is a 412.
    3. If-Range              decides whether Range is honored

If-Modified-Since and If-Unmodified-Since only apply when the entry
has a modification time; bundled assets rely on their ETag instead.

=============================================================================
METHODS
=============================================================================

Every method is answered as if it were GET. HEAD responses are built in
full here; the connection loop drops the body when serializing them.

=============================================================================
"""

import html
import logging
import re
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from ..assets import AssetEntry, AssetStore
from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder,
    format_http_date, parse_http_date, not_found, error_response,
)
from ..http.status_codes import HTTPStatus
from ..http.ranges import RangeNotSatisfiable, parse_range_header, multipart_byteranges


logger = logging.getLogger(__name__)


_ETAG_PATTERN = re.compile(r'\*|(?:W/)?"[^"]*"')


def parse_etag_list(value: str) -> list[str]:
    """
    Split an If-Match / If-None-Match value into entity tags.

        >>> parse_etag_list('W/"a", "b,c"')
        ['W/"a"', '"b,c"']
    """
    return _ETAG_PATTERN.findall(value)


def strong_match(a: str, b: str) -> bool:
    """Both strong and byte-for-byte equal."""
    return not a.startswith("W/") and not b.startswith("W/") and a == b


def weak_match(a: str, b: str) -> bool:
    """Equal once any W/ prefix is ignored."""
    return a.removeprefix("W/") == b.removeprefix("W/")


class StaticFileHandler:
    """
    Serve entries of an AssetStore.

    =========================================================================
    USAGE
    =========================================================================

        store = AssetStore.from_package()
        static = StaticFileHandler(store)

        response = static.handle(request)   # any method, any path

    The handler is stateless apart from the immutable store, so one
    instance serves all worker threads.

    =========================================================================
    """

    def __init__(
        self,
        store: AssetStore,
        index_file: str = "index.html",
        directory_listing: bool = True,
    ):
        """
        Args:
            store: Mounted content root.
            index_file: File served for directory requests.
            directory_listing: Render an HTML index for directories that
                               have no index file; 404 otherwise.
        """
        self.store = store
        self.index_file = index_file
        self.directory_listing = directory_listing

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Resolve `request.path` and build the response."""
        path = request.path
        if not path.startswith("/"):
            path = "/" + path

        # ─────────────────────────────────────────────────────────────────
        # CANONICAL URLS
        # ─────────────────────────────────────────────────────────────────
        # "/docs/index.html" is served as "/docs/", never under both names
        if path.endswith("/" + self.index_file):
            return self._redirect(request, "./")

        entry = self.store.lookup(path)
        if entry is None:
            logger.debug(f"No asset for {path!r}")
            return not_found()

        if entry.is_dir:
            if not path.endswith("/"):
                return self._redirect(request, _last_segment(request.raw_path) + "/")
            return self._serve_directory(entry, request)

        if path.endswith("/"):
            return self._redirect(request, "../" + _last_segment(request.raw_path.rstrip("/")))

        return self.serve_entry(entry, request)

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    def _serve_directory(self, entry: AssetEntry, request: HTTPRequest) -> HTTPResponse:
        index_path = f"{entry.path}/{self.index_file}" if entry.path else self.index_file
        index = self.store.lookup(index_path)
        if index is not None and not index.is_dir:
            return self.serve_entry(index, request)

        if not self.directory_listing:
            return not_found()

        return self._directory_listing(entry)

    def _directory_listing(self, entry: AssetEntry) -> HTTPResponse:
        """
        Minimal HTML index: one link per child, directories marked with "/".

        Links are relative, so the page works under any mount point.
        """
        lines = [
            "<!doctype html>",
            '<meta name="viewport" content="width=device-width">',
            f"<title>Index of /{html.escape(entry.path)}</title>",
            "<pre>",
        ]
        for child in self.store.list_dir(entry.path):
            name = child.name + ("/" if child.is_dir else "")
            lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>')
        lines.append("</pre>")

        builder = ResponseBuilder().html("\n".join(lines) + "\n")
        if entry.mtime is not None:
            builder.header("Last-Modified", format_http_date(entry.mtime))
        return builder.build()

    # =========================================================================
    # FILES
    # =========================================================================

    def serve_entry(self, entry: AssetEntry, request: HTTPRequest) -> HTTPResponse:
        """
        Serve one file entry, honoring conditional and range headers.

        Args:
            entry: A file entry (not a directory).
            request: The request being answered.
        """
        validators = {"ETag": entry.etag}
        if entry.mtime is not None:
            validators["Last-Modified"] = format_http_date(entry.mtime)

        early = self._check_preconditions(entry, request, validators)
        if early is not None:
            return early

        range_header = request.get_header("range")
        if range_header and not self._if_range_holds(entry, request):
            range_header = ""

        try:
            ranges = parse_range_header(range_header, entry.size)
        except RangeNotSatisfiable as e:
            logger.debug(f"Unsatisfiable range {range_header!r} for {entry.path}: {e}")
            response = error_response(HTTPStatus.RANGE_NOT_SATISFIABLE, str(e))
            response.set_header("Content-Range", e.content_range)
            return response

        builder = (ResponseBuilder()
            .headers(validators)
            .header("Accept-Ranges", "bytes"))

        if ranges is None:
            return (builder
                .content_type(entry.content_type)
                .body(entry.content)
                .build())

        if len(ranges) == 1:
            byte_range = ranges[0]
            return (builder
                .status(HTTPStatus.PARTIAL_CONTENT)
                .content_type(entry.content_type)
                .header("Content-Range", byte_range.content_range(entry.size))
                .body(byte_range.slice(entry.content))
                .build())

        content_type, body = multipart_byteranges(entry.content, ranges, entry.content_type)
        return (builder
            .status(HTTPStatus.PARTIAL_CONTENT)
            .content_type(content_type)
            .body(body)
            .build())

    def _check_preconditions(
        self,
        entry: AssetEntry,
        request: HTTPRequest,
        validators: dict,
    ) -> Optional[HTTPResponse]:
        """Return a 304/412 response if a precondition decides the outcome."""
        safe = request.method in ("GET", "HEAD")

        # ─────────────────────────────────────────────────────────────────
        # STEP 1: If-Match, else If-Unmodified-Since
        # ─────────────────────────────────────────────────────────────────
        if_match = request.get_header("if-match")
        if if_match:
            tags = parse_etag_list(if_match)
            if not any(t == "*" or strong_match(t, entry.etag) for t in tags):
                return error_response(HTTPStatus.PRECONDITION_FAILED)
        else:
            since = self._header_date(request, "if-unmodified-since")
            if since is not None and entry.mtime is not None and entry.mtime > since:
                return error_response(HTTPStatus.PRECONDITION_FAILED)

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: If-None-Match, else If-Modified-Since
        # ─────────────────────────────────────────────────────────────────
        if_none_match = request.get_header("if-none-match")
        if if_none_match:
            tags = parse_etag_list(if_none_match)
            if any(t == "*" or weak_match(t, entry.etag) for t in tags):
                if safe:
                    return self._not_modified(validators)
                return error_response(HTTPStatus.PRECONDITION_FAILED)
        elif safe:
            since = self._header_date(request, "if-modified-since")
            if since is not None and entry.mtime is not None and entry.mtime <= since:
                return self._not_modified(validators)

        return None

    def _if_range_holds(self, entry: AssetEntry, request: HTTPRequest) -> bool:
        """
        Whether the Range header may be honored.

        If-Range carries either an entity tag (strong comparison) or a
        date (must equal Last-Modified exactly).
        """
        if_range = request.get_header("if-range").strip()
        if not if_range or request.method not in ("GET", "HEAD"):
            return True

        if if_range.startswith('"') or if_range.startswith("W/"):
            return strong_match(if_range, entry.etag)

        if entry.mtime is None:
            return False
        when = parse_http_date(if_range)
        return when is not None and when == entry.mtime

    @staticmethod
    def _header_date(request: HTTPRequest, name: str) -> Optional[datetime]:
        value = request.get_header(name)
        return parse_http_date(value) if value else None

    @staticmethod
    def _not_modified(validators: dict) -> HTTPResponse:
        # With an ETag present, Last-Modified adds nothing to a 304
        headers = {"ETag": validators["ETag"]} if validators.get("ETag") else dict(validators)
        return (ResponseBuilder()
            .status(HTTPStatus.NOT_MODIFIED)
            .headers(headers)
            .build())

    @staticmethod
    def _redirect(request: HTTPRequest, location: str) -> HTTPResponse:
        query = request.query_string
        if query:
            location += "?" + query
        return ResponseBuilder().redirect(location).build()


def _last_segment(raw_path: str) -> str:
    """Final segment of a still-encoded path; redirects stay relative."""
    return raw_path.rsplit("/", 1)[-1]
