"""
Unit tests for Range header parsing and multipart/byteranges bodies.
"""

import pytest

from staticserve.http.ranges import (
    ByteRange,
    RangeNotSatisfiable,
    parse_range_header,
    multipart_byteranges,
)


CONTENT = b"abcdefghijklmnopqrstuvwxyz"
SIZE = len(CONTENT)


class TestParseRangeHeader:
    """Tests for parse_range_header."""

    @pytest.mark.parametrize("header, expected", [
        ("bytes=0-4", [ByteRange(0, 4)]),
        ("bytes=20-", [ByteRange(20, 25)]),
        ("bytes=-3", [ByteRange(23, 25)]),
        ("bytes=10-1000", [ByteRange(10, 25)]),
        ("bytes=0-0,-1", [ByteRange(0, 0), ByteRange(25, 25)]),
        ("bytes = 1-2 , 5-6", [ByteRange(1, 2), ByteRange(5, 6)]),
    ])
    def test_satisfiable(self, header, expected):
        """Test the common range forms."""
        assert parse_range_header(header, SIZE) == expected

    def test_absent_header(self):
        """No header means the whole file."""
        assert parse_range_header(None, SIZE) is None
        assert parse_range_header("", SIZE) is None

    def test_unknown_unit_is_ignored(self):
        """Test that non-byte units fall back to a full response."""
        assert parse_range_header("items=0-4", SIZE) is None

    def test_suffix_longer_than_file(self):
        """A suffix larger than the file selects the whole file."""
        assert parse_range_header("bytes=-100", SIZE) == [ByteRange(0, 25)]

    def test_start_past_end(self):
        """Test a range starting beyond the end."""
        with pytest.raises(RangeNotSatisfiable) as exc_info:
            parse_range_header("bytes=26-", SIZE)

        assert exc_info.value.content_range == "bytes */26"

    def test_past_end_ranges_are_dropped(self):
        """Only unsatisfiable ranges are dropped when others remain."""
        assert parse_range_header("bytes=0-1,100-200", SIZE) == [ByteRange(0, 1)]

    @pytest.mark.parametrize("header", [
        "bytes=abc",
        "bytes=5-2",
        "bytes=-",
        "bytes=x-5",
        "bytes=",
        "bytes=-0",
    ])
    def test_malformed_or_empty(self, header):
        """Test that malformed byte ranges are unsatisfiable."""
        with pytest.raises(RangeNotSatisfiable):
            parse_range_header(header, SIZE)

    def test_overlapping_ranges_exceeding_size(self):
        """Ranges adding up to more than the file are ignored."""
        assert parse_range_header("bytes=0-20,5-25", SIZE) is None

    def test_empty_file(self):
        """Nothing in an empty file can be selected."""
        with pytest.raises(RangeNotSatisfiable):
            parse_range_header("bytes=0-", 0)


class TestByteRange:
    """Tests for the ByteRange value type."""

    def test_length_and_slice(self):
        byte_range = ByteRange(2, 4)

        assert byte_range.length == 3
        assert byte_range.slice(CONTENT) == b"cde"
        assert byte_range.content_range(SIZE) == "bytes 2-4/26"


class TestMultipartByteranges:
    """Tests for multipart_byteranges."""

    def test_body_layout(self):
        """Each part has its own Content-Type and Content-Range."""
        ranges = [ByteRange(0, 2), ByteRange(23, 25)]
        content_type, body = multipart_byteranges(
            CONTENT, ranges, "text/plain", boundary="BOUNDARY"
        )

        assert content_type == "multipart/byteranges; boundary=BOUNDARY"
        assert body == (
            b"--BOUNDARY\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Range: bytes 0-2/26\r\n"
            b"\r\n"
            b"abc\r\n"
            b"--BOUNDARY\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Range: bytes 23-25/26\r\n"
            b"\r\n"
            b"xyz\r\n"
            b"--BOUNDARY--\r\n"
        )

    def test_random_boundary(self):
        """Without an explicit boundary a random one is used."""
        ctype_a, _ = multipart_byteranges(CONTENT, [ByteRange(0, 0)], "text/plain")
        ctype_b, _ = multipart_byteranges(CONTENT, [ByteRange(0, 0)], "text/plain")

        assert ctype_a != ctype_b
