from __future__ import annotations

import mimetypes
import os
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from ..conditional import file_entity_tag
from ..metadata import FileMetadataResolver
from ..profile import load_profile
from ..responder import RangeFileResponder
from ..transfer import ChunkedFileTransfer
from .files import ranged_file_response


def safe_join(root: Path, rel_path: str) -> Path:
    """Join ``rel_path`` under ``root`` without leaving it.

    The returned path keeps symlinks so the metadata resolver sees the link
    itself, but a link whose target lies outside ``root`` is refused.
    """
    if "\x00" in rel_path:
        raise HTTPException(status_code=404, detail="file_not_found")
    parts = [p for p in rel_path.replace("\\", "/").split("/") if p not in ("", ".")]
    if not parts or any(p == ".." for p in parts):
        raise HTTPException(status_code=404, detail="file_not_found")
    target = Path(os.path.normpath(root.joinpath(*parts)))
    if os.path.commonpath([str(root), str(target)]) != str(root):
        raise HTTPException(status_code=404, detail="file_not_found")
    real_root = os.path.realpath(root)
    if os.path.commonpath([real_root, os.path.realpath(target)]) != real_root:
        raise HTTPException(status_code=404, detail="file_not_found")
    return target


def create_app(
    *,
    root: Path,
    profile_path: Optional[Path] = None,
    profile: Optional[Dict[str, Any]] = None,
) -> FastAPI:
    if profile is None:
        profile = load_profile(profile_path)
    files_cfg = profile.get("files", {})

    root = Path(os.path.abspath(root))
    responder = RangeFileResponder(
        resolver=FileMetadataResolver(),
        transfer=ChunkedFileTransfer(chunk_size=int(files_cfg.get("chunk_size", 64 * 1024))),
    )
    enable_ranges = bool(files_cfg.get("enable_range_processing", True))
    use_etag = bool(files_cfg.get("etag", True))
    extra_headers: Dict[str, str] = {}
    if files_cfg.get("cache_control"):
        extra_headers["Cache-Control"] = str(files_cfg["cache_control"])

    app = FastAPI(title="rangeserve")

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        return JSONResponse({"ok": True})

    @app.api_route("/files/{rel_path:path}", methods=["GET", "HEAD"])
    async def files(rel_path: str, request: Request) -> Response:
        path = safe_join(root, rel_path)
        media_type, _ = mimetypes.guess_type(path.name)
        return await ranged_file_response(
            request,
            path,
            responder=responder,
            media_type=media_type or "application/octet-stream",
            entity_tag_factory=file_entity_tag if use_etag else None,
            download_name=path.name if "download" in request.query_params else None,
            enable_range_processing=enable_ranges,
            headers=extra_headers,
        )

    return app
