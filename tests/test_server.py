import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from rangeserve.profile import default_profile

DATA = bytes(range(256)) * 4 + b"tail"  # 1028 bytes


def _make_client(tmp_path: Path, **files_cfg) -> TestClient:
    root = tmp_path / "root"
    root.mkdir(exist_ok=True)
    (root / "clip.mp4").write_bytes(DATA)
    (root / "sub").mkdir(exist_ok=True)
    (root / "sub" / "notes.txt").write_text("hello world", encoding="utf-8")

    from rangeserve.server.app import create_app

    profile = default_profile()
    profile["files"].update(files_cfg)
    app = create_app(root=root, profile=profile)
    return TestClient(app)


def test_health(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json().get("ok") is True


def test_full_file(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4")
    assert r.status_code == 200
    assert r.content == DATA
    assert r.headers["content-length"] == str(len(DATA))
    assert r.headers["content-type"] == "video/mp4"
    assert r.headers["accept-ranges"] == "bytes"
    assert r.headers["etag"].startswith('W/"')
    assert "last-modified" in r.headers


def test_partial(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=1000-1027"})
    assert r.status_code == 206
    assert r.headers["content-range"] == f"bytes 1000-1027/{len(DATA)}"
    assert r.headers["content-length"] == "28"
    assert r.content == DATA[1000:]


def test_suffix(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=-4"})
    assert r.status_code == 206
    assert r.content == b"tail"


def test_unsatisfiable(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4", headers={"Range": f"bytes={len(DATA)}-"})
    assert r.status_code == 416
    assert r.headers["content-range"] == f"bytes */{len(DATA)}"
    assert r.content == b""


def test_multiple_ranges_fall_back_to_full(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=0-1,5-6"})
    assert r.status_code == 200
    assert r.content == DATA


def test_not_found(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/missing.bin")
    assert r.status_code == 404
    assert r.json().get("detail") == "file_not_found"


@pytest.mark.parametrize("rel", ["../secret.txt", "sub/../../secret.txt", "sub/..%2F..%2Fsecret.txt"])
def test_traversal_is_not_found(tmp_path, rel):
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")
    client = _make_client(tmp_path)
    r = client.get(f"/files/{rel}")
    assert r.status_code == 404


def test_directory_is_not_found(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/sub")
    assert r.status_code == 404


def test_nested_text_file(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/sub/notes.txt", headers={"Range": "bytes=6-"})
    assert r.status_code == 206
    assert r.text == "world"
    assert r.headers["content-type"].startswith("text/plain")


def test_not_modified_round_trip(tmp_path):
    client = _make_client(tmp_path)
    first = client.get("/files/clip.mp4")
    etag = first.headers["etag"]

    r = client.get("/files/clip.mp4", headers={"If-None-Match": etag})
    assert r.status_code == 304
    assert r.content == b""

    r = client.get("/files/clip.mp4", headers={"If-Modified-Since": first.headers["last-modified"]})
    assert r.status_code == 304


def test_if_range_with_stale_etag_sends_full(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=0-9", "If-Range": '"stale"'})
    assert r.status_code == 200
    assert r.content == DATA


def test_if_range_with_weak_etag_sends_full(tmp_path):
    client = _make_client(tmp_path)
    etag = client.get("/files/clip.mp4").headers["etag"]
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=0-9", "If-Range": etag})
    assert r.status_code == 200


def test_if_range_with_current_date_sends_partial(tmp_path):
    client = _make_client(tmp_path)
    last_modified = client.get("/files/clip.mp4").headers["last-modified"]
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=0-9", "If-Range": last_modified})
    assert r.status_code == 206
    assert r.content == DATA[:10]


def test_if_match_mismatch(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4", headers={"If-Match": '"nope"'})
    assert r.status_code == 412


def test_head(tmp_path):
    client = _make_client(tmp_path)
    r = client.head("/files/clip.mp4")
    assert r.status_code == 200
    assert r.headers["content-length"] == str(len(DATA))
    assert r.content == b""


def test_download_query(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/clip.mp4?download=1")
    assert r.headers["content-disposition"] == 'attachment; filename="clip.mp4"'


def test_ranges_disabled_by_profile(tmp_path):
    client = _make_client(tmp_path, enable_range_processing=False)
    r = client.get("/files/clip.mp4", headers={"Range": "bytes=0-9"})
    assert r.status_code == 200
    assert "accept-ranges" not in r.headers
    assert r.content == DATA


def test_etag_disabled_and_cache_control(tmp_path):
    client = _make_client(tmp_path, etag=False, cache_control="public, max-age=60")
    r = client.get("/files/clip.mp4")
    assert "etag" not in r.headers
    assert r.headers["cache-control"] == "public, max-age=60"


def test_symlink_serves_target(tmp_path):
    client = _make_client(tmp_path)
    root = tmp_path / "root"
    try:
        os.symlink(root / "clip.mp4", root / "alias.mp4")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported on this platform")

    r = client.get("/files/alias.mp4", headers={"Range": "bytes=0-3"})
    assert r.status_code == 206
    assert r.headers["content-range"] == f"bytes 0-3/{len(DATA)}"
    assert r.content == DATA[:4]


def test_dangling_symlink_is_not_found(tmp_path):
    client = _make_client(tmp_path)
    root = tmp_path / "root"
    try:
        os.symlink(root / "gone.mp4", root / "dangling.mp4")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported on this platform")

    r = client.get("/files/dangling.mp4")
    assert r.status_code == 404


def test_symlink_outside_root_is_not_found(tmp_path):
    client = _make_client(tmp_path)
    root = tmp_path / "root"
    secret = tmp_path / "secret.txt"
    secret.write_text("keep out", encoding="utf-8")
    try:
        os.symlink(secret, root / "escape.txt")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported on this platform")

    r = client.get("/files/escape.txt")
    assert r.status_code == 404
    assert b"keep out" not in r.content


def test_nul_byte_in_path_is_not_found(tmp_path):
    client = _make_client(tmp_path)
    r = client.get("/files/a%00b")
    assert r.status_code == 404


def test_if_range_date_past_calendar_end_sends_full(tmp_path):
    client = _make_client(tmp_path)
    r = client.get(
        "/files/clip.mp4",
        headers={"Range": "bytes=0-9", "If-Range": "Fri, 31 Dec 9999 23:00:00 -0500"},
    )
    assert r.status_code == 200
    assert r.content == DATA


def test_if_modified_since_with_huge_offset_is_ignored(tmp_path):
    client = _make_client(tmp_path)
    r = client.get(
        "/files/clip.mp4",
        headers={"If-Modified-Since": "Mon, 01 Jan 2001 00:00:00 +99999999999999999999"},
    )
    assert r.status_code == 200
    assert r.content == DATA
