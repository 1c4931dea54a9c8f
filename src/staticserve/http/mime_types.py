"""
=============================================================================
CONTENT TYPE DETECTION
=============================================================================

Maps asset file names to Content-Type header values.

=============================================================================
TWO-STEP LOOKUP
=============================================================================

    style.css ──► extension table ──► "text/css; charset=utf-8"

    LICENSE   ──► no extension    ──► sniff the bytes
                                         │
                                         ├── valid UTF-8, no NUL bytes
                                         │       └── "text/plain; charset=utf-8"
                                         │
                                         └── anything else
                                                 └── "application/octet-stream"

The extension table covers everything a typical site bundle contains.
Sniffing only looks at the first 512 bytes, like browsers do, and only
ever decides between plain text and opaque binary.

=============================================================================
"""

from pathlib import PurePosixPath
from typing import Optional


MIME_TYPES = {
    # Documents and code
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Media
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Other
    ".pdf": "application/pdf",
    ".wasm": "application/wasm",
    ".zip": "application/zip",
    ".gz": "application/gzip",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# application/* and image/* types that are text on the wire
_TEXTUAL_TYPES = {
    "application/json",
    "application/manifest+json",
    "application/xml",
    "image/svg+xml",
}

SNIFF_LENGTH = 512


def get_mime_type(path: str, default: Optional[str] = None) -> str:
    """
    Look up the MIME type for a file name by extension.

        >>> get_mime_type("img/logo.PNG")
        'image/png'
        >>> get_mime_type("archive.xyz")
        'application/octet-stream'
    """
    extension = PurePosixPath(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    """True when the type should be sent with a charset parameter."""
    return mime_type.startswith("text/") or mime_type in _TEXTUAL_TYPES


def sniff_mime_type(content: bytes) -> str:
    """
    Guess between text/plain and application/octet-stream.

    Truncation can split a multi-byte UTF-8 sequence at the end of the
    sample, so a decode error in the last three bytes is ignored.
    """
    sample = content[:SNIFF_LENGTH]
    if b"\x00" in sample:
        return DEFAULT_MIME_TYPE
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        if len(content) <= SNIFF_LENGTH or e.start < len(sample) - 3:
            return DEFAULT_MIME_TYPE
    return "text/plain"


def get_content_type(path: str, content: Optional[bytes] = None, charset: str = "utf-8") -> str:
    """
    Full Content-Type header value for an asset.

    Args:
        path: File name or path; only the extension is used.
        content: File bytes, consulted when the extension is unknown.
        charset: Charset appended for textual types.

        >>> get_content_type("index.html")
        'text/html; charset=utf-8'
        >>> get_content_type("README", b"hello")
        'text/plain; charset=utf-8'
    """
    mime_type = get_mime_type(path, default="")
    if not mime_type:
        mime_type = sniff_mime_type(content) if content is not None else DEFAULT_MIME_TYPE

    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
