"""Filesystem metadata lookup for served files.

A path is described by a ``MetadataSource``:

- ``DirectEntry``: a plain directory entry, described by its own stat.
- ``LinkIndirection``: a symbolic link, described by its final target.

``FileMetadataResolver`` picks the source for a path and turns it into a
``FileDescriptor``. Absence (missing file, dangling link, unreadable parent)
is reported through ``FileDescriptor.exists`` and never raised.
"""

from __future__ import annotations

import errno
import logging
import os
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import anyio

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# errno values meaning "there is no file here" rather than "the disk is broken"
_ABSENT_ERRNOS = {errno.ENOENT, errno.ENOTDIR, errno.EACCES, errno.EPERM, errno.ELOOP, errno.ENAMETOOLONG}


@dataclass(frozen=True)
class FileDescriptor:
    """Metadata for one file, valid for a single request."""

    exists: bool
    length: int = 0
    last_modified: datetime = _EPOCH

    def __post_init__(self) -> None:
        if self.length < 0:
            raise ValueError("length must be >= 0")

    @classmethod
    def missing(cls) -> "FileDescriptor":
        return cls(exists=False)

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "FileDescriptor":
        if not stat.S_ISREG(st.st_mode):
            return cls.missing()
        return cls(
            exists=True,
            length=int(st.st_size),
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )


def _is_absent(exc: OSError) -> bool:
    return isinstance(exc, (FileNotFoundError, NotADirectoryError, PermissionError)) or exc.errno in _ABSENT_ERRNOS


class MetadataSource(Protocol):
    path: str

    def describe(self) -> FileDescriptor:
        ...


@dataclass
class DirectEntry:
    """An entry that is not a link; its own stat is authoritative."""

    path: str
    st: os.stat_result

    def describe(self) -> FileDescriptor:
        return FileDescriptor.from_stat(self.st)


@dataclass
class LinkIndirection:
    """A symbolic link, described by whatever it finally points at."""

    path: str

    def target(self) -> str:
        return os.path.realpath(self.path, strict=True)

    def describe(self) -> FileDescriptor:
        try:
            target = self.target()
            st = os.stat(target)
        except ValueError:
            return FileDescriptor.missing()
        except OSError as exc:
            if not _is_absent(exc):
                raise
            logger.debug("Link %s does not resolve to a readable file: %s", self.path, exc)
            return FileDescriptor.missing()
        return FileDescriptor.from_stat(st)


class _Absent:
    def __init__(self, path: str):
        self.path = path

    def describe(self) -> FileDescriptor:
        return FileDescriptor.missing()


def metadata_source_for(path: str) -> MetadataSource:
    """Pick the metadata source for ``path`` without following links."""
    try:
        st = os.lstat(path)
    except ValueError:
        # embedded NUL: no such file can exist
        return _Absent(path)
    except OSError as exc:
        if not _is_absent(exc):
            raise
        return _Absent(path)
    if stat.S_ISLNK(st.st_mode):
        return LinkIndirection(path)
    return DirectEntry(path, st)


SourceFactory = Callable[[str], MetadataSource]


class FileMetadataResolver:
    """Resolve a path to a fresh ``FileDescriptor``.

    ``source_factory`` replaces the filesystem lookup, e.g. in tests.
    """

    def __init__(self, source_factory: Optional[SourceFactory] = None):
        self.source_factory = source_factory or metadata_source_for

    def resolve(self, path: str | os.PathLike[str]) -> FileDescriptor:
        path = os.fspath(path)
        return self.source_factory(path).describe()

    async def resolve_async(self, path: str | os.PathLike[str]) -> FileDescriptor:
        return await anyio.to_thread.run_sync(self.resolve, path)
