"""Decide how to answer a request for a file on disk, then stream it.

Usage:
    responder = RangeFileResponder()
    spec = FileRequestSpec(path="/srv/media/clip.mp4", content_type="video/mp4")
    descriptor = responder.resolver.resolve(spec.path)
    plan = responder.plan(spec, descriptor, {"range": "bytes=0-1023"})
    # ... frame plan.status_code / plan.headers, then:
    await responder.send_body(plan, sink)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional
from urllib.parse import quote

from .conditional import (
    PreconditionState,
    evaluate_preconditions,
    format_http_date,
    if_range_allows,
    truncate_to_seconds,
)
from .errors import ConfigurationError, TransferError
from .metadata import FileDescriptor, FileMetadataResolver
from .ranges import (
    RangeWindow,
    normalize_range,
    parse_range_header,
    unsatisfied_content_range,
    window_for_range,
)
from .transfer import ChunkedFileTransfer, FileTransfer, Sink

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class Disposition(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    NOT_MODIFIED = "not_modified"
    PRECONDITION_FAILED = "precondition_failed"
    RANGE_NOT_SATISFIABLE = "range_not_satisfiable"
    NOT_FOUND = "not_found"


STATUS_CODES: Dict[Disposition, int] = {
    Disposition.FULL: 200,
    Disposition.PARTIAL: 206,
    Disposition.NOT_MODIFIED: 304,
    Disposition.PRECONDITION_FAILED: 412,
    Disposition.RANGE_NOT_SATISFIABLE: 416,
    Disposition.NOT_FOUND: 404,
}


@dataclass(frozen=True)
class FileRequestSpec:
    """What the caller wants served. ``path`` must be absolute."""

    path: str
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None
    entity_tag: Optional[str] = None
    download_name: Optional[str] = None
    enable_range_processing: bool = True


@dataclass
class ResponsePlan:
    disposition: Disposition
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    window: Optional[RangeWindow] = None
    send_body: bool = False

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.disposition]


def content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    if ascii_name == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def _lower_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


class RangeFileResponder:
    """Serve one file per call, honoring conditional and single-range requests.

    ``resolver`` looks up file metadata and ``transfer`` moves the bytes;
    both can be swapped out, e.g. for tests or a zero-copy transport.
    """

    def __init__(
        self,
        resolver: Optional[FileMetadataResolver] = None,
        transfer: Optional[FileTransfer] = None,
    ):
        self.resolver = resolver or FileMetadataResolver()
        self.transfer = transfer or ChunkedFileTransfer()

    def plan(
        self,
        spec: FileRequestSpec,
        descriptor: FileDescriptor,
        request_headers: Mapping[str, str],
        method: str = "GET",
    ) -> ResponsePlan:
        if not os.path.isabs(spec.path):
            raise ConfigurationError(f"Path '{spec.path}' was not rooted.")

        if not descriptor.exists:
            logger.info("Could not find file: %s", spec.path)
            return ResponsePlan(disposition=Disposition.NOT_FOUND, path=spec.path)

        headers = _lower_headers(request_headers)
        method = method.upper()
        last_modified = truncate_to_seconds(spec.last_modified or descriptor.last_modified)
        length = descriptor.length

        validators: Dict[str, str] = {"Last-Modified": format_http_date(last_modified)}
        if spec.entity_tag:
            validators["ETag"] = spec.entity_tag

        state = evaluate_preconditions(
            headers, method=method, last_modified=last_modified, entity_tag=spec.entity_tag
        )
        if state is PreconditionState.NOT_MODIFIED:
            logger.info("File not modified, sending 304: %s", spec.path)
            return ResponsePlan(disposition=Disposition.NOT_MODIFIED, path=spec.path, headers=validators)
        if state is PreconditionState.PRECONDITION_FAILED:
            logger.info("Precondition failed, sending 412: %s", spec.path)
            return ResponsePlan(disposition=Disposition.PRECONDITION_FAILED, path=spec.path, headers=validators)

        out: Dict[str, str] = {"Content-Type": spec.content_type or DEFAULT_CONTENT_TYPE}
        out.update(validators)
        if spec.enable_range_processing:
            out["Accept-Ranges"] = "bytes"
        if spec.download_name:
            out["Content-Disposition"] = content_disposition(spec.download_name)

        window = RangeWindow.whole(length)
        disposition = Disposition.FULL
        range_header = headers.get("range")
        if range_header is not None and method in ("GET", "HEAD"):
            if not spec.enable_range_processing:
                logger.debug("Range processing disabled, ignoring Range for %s", spec.path)
            elif length == 0:
                logger.debug("Ignoring Range for empty file %s", spec.path)
            elif if_range_allows(headers, last_modified=last_modified, entity_tag=spec.entity_tag):
                parsed = parse_range_header(range_header)
                if parsed is None:
                    logger.debug("Unusable Range header %r, sending whole file", range_header)
                else:
                    bounds = normalize_range(parsed[0], parsed[1], length)
                    if bounds is None:
                        logger.info("Range %r not satisfiable for %s (%d bytes)", range_header, spec.path, length)
                        return ResponsePlan(
                            disposition=Disposition.RANGE_NOT_SATISFIABLE,
                            path=spec.path,
                            headers={"Content-Range": unsatisfied_content_range(length), **out},
                        )
                    window = window_for_range(*bounds)
                    disposition = Disposition.PARTIAL

        if disposition is Disposition.PARTIAL:
            out["Content-Range"] = window.content_range(length)
            logger.info("Sending range %s of %s", out["Content-Range"], spec.path)
        else:
            logger.info("Sending file %s (%d bytes)", spec.path, length)
        out["Content-Length"] = str(window.length)

        return ResponsePlan(
            disposition=disposition,
            path=spec.path,
            headers=out,
            window=window,
            send_body=method != "HEAD",
        )

    async def send_body(self, plan: ResponsePlan, sink: Sink) -> int:
        if not plan.send_body or plan.window is None:
            return 0
        window = plan.window
        try:
            return await self.transfer.transfer(plan.path, window.offset, window.length, sink)
        except TransferError as exc:
            logger.warning("Transfer of %s failed after %d bytes: %s", plan.path, exc.sent, exc)
            raise

    async def respond(
        self,
        spec: FileRequestSpec,
        descriptor: FileDescriptor,
        request_headers: Mapping[str, str],
        sink: Sink,
        method: str = "GET",
    ) -> Disposition:
        plan = self.plan(spec, descriptor, request_headers, method=method)
        await self.send_body(plan, sink)
        return plan.disposition

    async def execute(
        self,
        spec: FileRequestSpec,
        request_headers: Mapping[str, str],
        sink: Sink,
        method: str = "GET",
    ) -> ResponsePlan:
        if not os.path.isabs(spec.path):
            raise ConfigurationError(f"Path '{spec.path}' was not rooted.")
        descriptor = await self.resolver.resolve_async(spec.path)
        plan = self.plan(spec, descriptor, request_headers, method=method)
        await self.send_body(plan, sink)
        return plan
