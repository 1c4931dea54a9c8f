"""
=============================================================================
BYTE RANGE REQUESTS
=============================================================================

Parses the Range header and builds 206 bodies.

=============================================================================
RANGE SYNTAX (RFC 9110 §14)
=============================================================================

    Range: bytes=0-499            first 500 bytes
    Range: bytes=500-             everything from offset 500
    Range: bytes=-500             last 500 bytes
    Range: bytes=0-0,-1           first and last byte (two ranges)

For a 2048-byte file:

    bytes=0-499     ──►  ByteRange(0, 499)    Content-Range: bytes 0-499/2048
    bytes=1000-     ──►  ByteRange(1000, 2047)
    bytes=-100      ──►  ByteRange(1948, 2047)
    bytes=4000-     ──►  unsatisfiable        416, Content-Range: bytes */2048

=============================================================================
OUTCOMES
=============================================================================

    parse_range_header() returns
        None          - No usable Range header: send the whole file (200)
        [one range]   - 206 with Content-Range
        [several]     - 206 multipart/byteranges
    and raises
        RangeNotSatisfiable - 416

Ranges that start past the end of the file are dropped; only when ALL
are dropped is the request unsatisfiable. If the requested ranges add up
to more bytes than the file holds, the header is ignored and the whole
file is sent, since that is cheaper for both sides.

=============================================================================
"""

import secrets
from dataclasses import dataclass
from typing import Optional


class RangeNotSatisfiable(Exception):
    """The Range header is malformed or selects nothing inside the file."""

    def __init__(self, message: str, size: int):
        super().__init__(message)
        self.size = size

    @property
    def content_range(self) -> str:
        return f"bytes */{self.size}"


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte span [start, end] of a representation."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"

    def slice(self, content: bytes) -> bytes:
        return content[self.start:self.end + 1]


def parse_range_header(header: Optional[str], size: int) -> Optional[list[ByteRange]]:
    """
    Resolve a Range header against a representation of `size` bytes.

    Args:
        header: Raw Range header value, or None/"" when absent.
        size: Length of the full representation.

    Returns:
        None when the whole representation should be sent, otherwise the
        satisfiable ranges in request order.

    Raises:
        RangeNotSatisfiable: Malformed byte ranges, or none overlap the file.
    """
    if not header:
        return None

    unit, sep, byte_ranges = header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        # Unknown range units are ignored
        return None

    ranges: list[ByteRange] = []
    saw_range = False

    for part in byte_ranges.split(","):
        part = part.strip()
        if not part:
            continue
        saw_range = True

        first, dash, last = part.partition("-")
        first, last = first.strip(), last.strip()
        if not dash:
            raise RangeNotSatisfiable(f"Invalid range: {part!r}", size)

        if not first:
            # Suffix range: the last N bytes
            if not last.isdigit():
                raise RangeNotSatisfiable(f"Invalid range: {part!r}", size)
            suffix = int(last)
            if suffix == 0 or size == 0:
                continue
            ranges.append(ByteRange(max(size - suffix, 0), size - 1))
            continue

        if not first.isdigit() or (last and not last.isdigit()):
            raise RangeNotSatisfiable(f"Invalid range: {part!r}", size)

        start = int(first)
        end = int(last) if last else size - 1
        if last and end < start:
            raise RangeNotSatisfiable(f"Invalid range: {part!r}", size)
        if start >= size:
            continue
        ranges.append(ByteRange(start, min(end, size - 1)))

    if not saw_range:
        raise RangeNotSatisfiable("Empty byte range set", size)
    if not ranges:
        raise RangeNotSatisfiable("No range overlaps the content", size)

    if sum(r.length for r in ranges) > size:
        return None

    return ranges


def multipart_byteranges(
    content: bytes,
    ranges: list[ByteRange],
    content_type: str,
    boundary: Optional[str] = None,
) -> tuple[str, bytes]:
    """
    Encode several ranges as a multipart/byteranges body.

    Returns:
        (Content-Type header value, body bytes)

        --3d6b6a416f9b5\r\n
        Content-Type: text/plain\r\n
        Content-Range: bytes 0-4/26\r\n
        \r\n
        abcde\r\n
        --3d6b6a416f9b5\r\n
        ...
        --3d6b6a416f9b5--\r\n
    """
    boundary = boundary or secrets.token_hex(15)
    size = len(content)
    parts = []

    for byte_range in ranges:
        parts.append(
            f"--{boundary}\r\n"
            f"Content-Type: {content_type}\r\n"
            f"Content-Range: {byte_range.content_range(size)}\r\n"
            f"\r\n".encode("latin-1")
        )
        parts.append(byte_range.slice(content))
        parts.append(b"\r\n")

    parts.append(f"--{boundary}--\r\n".encode("latin-1"))
    return f"multipart/byteranges; boundary={boundary}", b"".join(parts)
