import pytest

from rangeserve.ranges import RangeWindow, normalize_range, parse_range_header, window_for_range


def _resolve(header: str, size: int):
    parsed = parse_range_header(header)
    if parsed is None:
        return None
    return normalize_range(parsed[0], parsed[1], size)


def test_parse_range_basic() -> None:
    assert _resolve("bytes=0-99", 1000) == (0, 99)


def test_parse_range_open_end() -> None:
    assert _resolve("bytes=100-", 1000) == (100, 999)


def test_parse_range_suffix() -> None:
    assert _resolve("bytes=-200", 1000) == (800, 999)


def test_parse_range_suffix_longer_than_file() -> None:
    assert _resolve("bytes=-5000", 1000) == (0, 999)


def test_parse_range_end_clamped() -> None:
    assert _resolve("bytes=900-5000", 1000) == (900, 999)


def test_parse_range_invalid() -> None:
    assert parse_range_header("nope") is None
    assert parse_range_header("bytes=999-100") is None
    assert parse_range_header("bytes=-") is None
    assert parse_range_header("bytes=a-b") is None
    assert parse_range_header("items=0-10") is None
    assert parse_range_header("bytes=1-2x") is None
    assert parse_range_header("") is None
    assert parse_range_header(None) is None


def test_parse_range_multiple_ranges_unusable() -> None:
    assert parse_range_header("bytes=0-1, 4-5") is None


def test_parse_range_unit_case_and_spaces() -> None:
    assert parse_range_header("Bytes= 10 - 20 ") == (10, 20)


def test_normalize_unsatisfiable() -> None:
    assert normalize_range(1000, None, 1000) is None
    assert normalize_range(1500, 1600, 1000) is None
    assert normalize_range(None, 0, 1000) is None


def test_window_for_range() -> None:
    window = window_for_range(900, 999)
    assert window == RangeWindow(offset=900, length=100, is_partial=True)
    assert window.content_range(1000) == "bytes 900-999/1000"


def test_whole_window() -> None:
    window = RangeWindow.whole(1000)
    assert window.offset == 0
    assert window.length == 1000
    assert not window.is_partial


def test_window_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        RangeWindow(offset=-1, length=1, is_partial=True)
    with pytest.raises(ValueError):
        RangeWindow(offset=0, length=-1, is_partial=True)
