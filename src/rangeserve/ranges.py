from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class RangeWindow:
    """Byte span of a file that goes into the response body."""

    offset: int
    length: Optional[int]  # None means "to end of file"
    is_partial: bool

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("offset must be >= 0")
        if self.length is not None and self.length < 0:
            raise ValueError("length must be >= 0")

    @classmethod
    def whole(cls, file_length: int) -> "RangeWindow":
        return cls(offset=0, length=file_length, is_partial=False)

    def content_range(self, file_length: int) -> str:
        if self.length is None:
            end = file_length - 1
        else:
            end = self.offset + self.length - 1
        return f"bytes {self.offset}-{end}/{file_length}"


def unsatisfied_content_range(file_length: int) -> str:
    return f"bytes */{file_length}"


def parse_range_header(range_header: Optional[str]) -> Optional[Tuple[Optional[int], Optional[int]]]:
    """Parse a single ``bytes=`` range into ``(start, end)``.

    Either side may be None (``bytes=500-`` or ``bytes=-500``). Returns None
    when there is no usable range: missing header, unknown unit, multiple
    ranges or a syntax error.
    """
    # Expected format: bytes=start-end | bytes=start- | bytes=-suffix
    if not range_header:
        return None
    unit, sep, ranges = range_header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    ranges = ranges.strip()
    # We only handle a single range
    if "," in ranges or "-" not in ranges:
        return None
    start_s, end_s = ranges.split("-", 1)
    start_s = start_s.strip()
    end_s = end_s.strip()

    if start_s == "" and end_s == "":
        return None
    if (start_s and not _DIGITS.fullmatch(start_s)) or (end_s and not _DIGITS.fullmatch(end_s)):
        return None

    start = int(start_s) if start_s else None
    end = int(end_s) if end_s else None
    if start is not None and end is not None and end < start:
        return None
    return start, end


def normalize_range(start: Optional[int], end: Optional[int], file_length: int) -> Optional[Tuple[int, int]]:
    """Clamp a parsed range to the file; returns inclusive ``(start, end)`` or None if unsatisfiable."""
    if start is not None:
        if start >= file_length:
            return None
        if end is None or end >= file_length:
            end = file_length - 1
        return start, end

    if end is None or end == 0:
        return None
    # suffix bytes: e.g. "-500"
    length = min(end, file_length)
    return file_length - length, file_length - 1


def window_for_range(start: int, end: int) -> RangeWindow:
    return RangeWindow(offset=start, length=(end - start) + 1, is_partial=True)
