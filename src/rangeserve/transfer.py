from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Protocol

import anyio

from .errors import TransferError

logger = logging.getLogger(__name__)

Sink = Callable[[bytes], Awaitable[None]]

DEFAULT_CHUNK_SIZE = 64 * 1024  # 64 KiB


class FileTransfer(Protocol):
    async def transfer(self, path: str, offset: int, length: Optional[int], sink: Sink) -> int:
        """Copy ``length`` bytes starting at ``offset`` into ``sink``; returns bytes sent."""
        ...


class ChunkedFileTransfer:
    """Positioned, bounded-memory file copy.

    Reads at most ``chunk_size`` bytes at a time and never past
    ``offset + length``. The file is closed on every exit path, including
    cancellation. Failures reading the file raise ``TransferError``; failures
    raised by the sink propagate untouched.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.chunk_size = chunk_size

    async def transfer(self, path: str, offset: int, length: Optional[int], sink: Sink) -> int:
        sent = 0
        try:
            f = await anyio.open_file(path, mode="rb")
        except OSError as exc:
            raise TransferError(f"Could not open file: {path}", path=path, offset=offset, cause=exc) from exc

        try:
            try:
                if offset:
                    await f.seek(offset)
            except OSError as exc:
                raise TransferError(f"Could not seek to {offset} in {path}", path=path, offset=offset, cause=exc) from exc

            remaining = length
            while remaining is None or remaining > 0:
                to_read = self.chunk_size if remaining is None else min(self.chunk_size, remaining)
                try:
                    data = await f.read(to_read)
                except OSError as exc:
                    raise TransferError(
                        f"Read failed after {sent} bytes of {path}", path=path, offset=offset, sent=sent, cause=exc
                    ) from exc
                if not data:
                    break
                await sink(data)
                sent += len(data)
                if remaining is not None:
                    remaining -= len(data)
        finally:
            # close even when the request was cancelled mid-copy
            with anyio.CancelScope(shield=True):
                await f.aclose()

        if length is not None and sent < length:
            # Content-Length already promised more than the file now holds
            raise TransferError(
                f"File ended after {sent} of {length} bytes: {path}", path=path, offset=offset, sent=sent
            )
        logger.debug("Sent %d bytes of %s from offset %d", sent, path, offset)
        return sent
