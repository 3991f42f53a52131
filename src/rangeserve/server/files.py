from __future__ import annotations

import logging
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, MutableMapping, Optional

import anyio
from fastapi import HTTPException, Request
from fastapi.responses import Response

from ..responder import Disposition, FileRequestSpec, RangeFileResponder, ResponsePlan

logger = logging.getLogger(__name__)

Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]

_BODILESS = {Disposition.PRECONDITION_FAILED, Disposition.RANGE_NOT_SATISFIABLE}


class RangeFileResponse(Response):
    """ASGI response that streams the body planned by a ``RangeFileResponder``.

    The planned status and headers go out first; the body is then copied
    straight into ASGI ``send``. A client disconnect cancels the copy.
    """

    def __init__(self, plan: ResponsePlan, responder: RangeFileResponder, headers: Optional[Dict[str, str]] = None):
        self.plan = plan
        self.responder = responder
        self.status_code = plan.status_code
        self.background = None
        merged = dict(plan.headers)
        if headers:
            merged.update(headers)
        if plan.disposition in _BODILESS:
            merged.setdefault("Content-Length", "0")
        self.init_headers(merged)

    async def _listen_for_disconnect(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                logger.debug("Client went away while sending %s", self.plan.path)
                break

    async def _stream_body(self, send: Send) -> None:
        async def sink(chunk: bytes) -> None:
            await send({"type": "http.response.body", "body": chunk, "more_body": True})

        await self.responder.send_body(self.plan, sink)
        await send({"type": "http.response.body", "body": b"", "more_body": False})

    async def __call__(self, scope: Message, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        if not self.plan.send_body:
            await send({"type": "http.response.body", "body": b"", "more_body": False})
            return

        try:
            async with anyio.create_task_group() as task_group:

                async def wrap(func: Callable[[], Awaitable[None]]) -> None:
                    await func()
                    task_group.cancel_scope.cancel()

                task_group.start_soon(wrap, partial(self._stream_body, send))
                await wrap(partial(self._listen_for_disconnect, receive))
        except BaseExceptionGroup as group:
            # Surface the transfer failure itself so the server aborts the connection
            if len(group.exceptions) == 1:
                raise group.exceptions[0] from None
            raise


async def ranged_file_response(
    request: Request,
    path: Path,
    *,
    responder: Optional[RangeFileResponder] = None,
    media_type: Optional[str] = None,
    last_modified: Optional[datetime] = None,
    entity_tag: Optional[str] = None,
    entity_tag_factory: Optional[Callable[[Any], Optional[str]]] = None,
    download_name: Optional[str] = None,
    enable_range_processing: bool = True,
    headers: Optional[Dict[str, str]] = None,
) -> Response:
    """Serve a file with conditional and Range support (critical for HTML5 video seeking)."""
    responder = responder or RangeFileResponder()
    path_s = str(path)
    descriptor = await responder.resolver.resolve_async(path_s)

    if entity_tag is None and entity_tag_factory is not None and descriptor.exists:
        entity_tag = entity_tag_factory(descriptor)

    spec = FileRequestSpec(
        path=path_s,
        content_type=media_type,
        last_modified=last_modified,
        entity_tag=entity_tag,
        download_name=download_name,
        enable_range_processing=enable_range_processing,
    )

    # Several Range lines count as several ranges, which fall back to the full body
    request_headers = dict(request.headers)
    ranges = request.headers.getlist("range")
    if len(ranges) > 1:
        request_headers["range"] = ", ".join(ranges)

    plan = responder.plan(spec, descriptor, request_headers, method=request.method)
    if plan.disposition is Disposition.NOT_FOUND:
        raise HTTPException(status_code=404, detail="file_not_found")
    return RangeFileResponse(plan, responder, headers=headers)
