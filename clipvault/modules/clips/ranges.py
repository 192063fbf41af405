"""Parsing of single-span HTTP ``Range`` headers.

Only ``bytes=S-E`` and ``bytes=S-`` are served. Suffix ranges (``bytes=-N``),
multi-range sets and other units are treated as malformed.
"""
import re
from clipvault.core.errors import InvalidRangeError, RangeNotSatisfiableError
from clipvault.platform.ports.content_store import ByteRange

_RANGE = re.compile(r"^\s*bytes\s*=\s*(\d+)\s*-\s*(\d*)\s*$", re.IGNORECASE)

def parse_range_header(header: str | None, length: int) -> ByteRange | None:
    if header is None:
        return None
    m = _RANGE.match(header)
    if not m:
        raise InvalidRangeError()
    start = int(m.group(1))
    end = int(m.group(2)) if m.group(2) else length - 1
    if start >= length or start > end:
        raise RangeNotSatisfiableError(length)
    return ByteRange(start, min(end, length - 1))

def content_range(byte_range: ByteRange, length: int) -> str:
    return f"bytes {byte_range.start}-{byte_range.end}/{length}"

def unsatisfied_range(length: int) -> str:
    return f"bytes */{length}"
