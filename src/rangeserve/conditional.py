"""Validators and conditional request evaluation (If-Match, If-None-Match,
If-Modified-Since, If-Unmodified-Since, If-Range).

Last-modified values are compared at whole-second precision because HTTP
dates cannot carry anything finer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from enum import Enum
from typing import List, Mapping, Optional

from .metadata import FileDescriptor

logger = logging.getLogger(__name__)


class PreconditionState(str, Enum):
    UNSPECIFIED = "unspecified"
    SHOULD_PROCESS = "should_process"
    NOT_MODIFIED = "not_modified"
    PRECONDITION_FAILED = "precondition_failed"


@dataclass(frozen=True)
class EntityTag:
    opaque: str  # including the surrounding quotes
    weak: bool = False

    def __str__(self) -> str:
        return f"W/{self.opaque}" if self.weak else self.opaque


ANY_TAG = EntityTag(opaque="*")


def truncate_to_seconds(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def format_http_date(dt: datetime) -> str:
    return format_datetime(truncate_to_seconds(dt), usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # absurd offsets or dates at the edge of the calendar overflow
    try:
        dt = parsedate_to_datetime(value.strip())
        if dt is None:
            return None
        return truncate_to_seconds(dt)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def parse_entity_tag(value: Optional[str]) -> Optional[EntityTag]:
    if not value:
        return None
    value = value.strip()
    if value == "*":
        return ANY_TAG
    weak = False
    if value[:2] in ("W/", "w/"):
        weak = True
        value = value[2:]
    if len(value) < 2 or not (value.startswith('"') and value.endswith('"')):
        return None
    if '"' in value[1:-1]:
        return None
    return EntityTag(opaque=value, weak=weak)


def parse_entity_tag_list(value: Optional[str]) -> List[EntityTag]:
    if not value:
        return []
    tags: List[EntityTag] = []
    for part in value.split(","):
        tag = parse_entity_tag(part)
        if tag is not None:
            tags.append(tag)
    return tags


def strong_match(a: EntityTag, b: EntityTag) -> bool:
    return not a.weak and not b.weak and a.opaque == b.opaque


def weak_match(a: EntityTag, b: EntityTag) -> bool:
    return a.opaque == b.opaque


def file_entity_tag(descriptor: FileDescriptor) -> str:
    """Weak validator derived from size and mtime, for hosts without content hashes."""
    mtime = int(truncate_to_seconds(descriptor.last_modified).timestamp())
    return f'W/"{descriptor.length:x}-{mtime:x}"'


def _get(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.title())
    return value


def evaluate_preconditions(
    headers: Mapping[str, str],
    *,
    method: str,
    last_modified: datetime,
    entity_tag: Optional[str],
) -> PreconditionState:
    """Evaluate the request preconditions in RFC 7232 order."""
    current = parse_entity_tag(entity_tag)
    last_modified = truncate_to_seconds(last_modified)
    safe = method.upper() in ("GET", "HEAD")
    state = PreconditionState.UNSPECIFIED

    if_match = _get(headers, "if-match")
    if if_match is not None:
        tags = parse_entity_tag_list(if_match)
        if any(t == ANY_TAG for t in tags) or (
            current is not None and any(strong_match(t, current) for t in tags)
        ):
            state = PreconditionState.SHOULD_PROCESS
        else:
            logger.debug("If-Match %r did not match %r", if_match, entity_tag)
            return PreconditionState.PRECONDITION_FAILED
    else:
        since = parse_http_date(_get(headers, "if-unmodified-since"))
        if since is not None:
            if last_modified > since:
                logger.debug("Modified after If-Unmodified-Since %s", since.isoformat())
                return PreconditionState.PRECONDITION_FAILED
            state = PreconditionState.SHOULD_PROCESS

    if_none_match = _get(headers, "if-none-match")
    if if_none_match is not None:
        tags = parse_entity_tag_list(if_none_match)
        if any(t == ANY_TAG for t in tags) or (
            current is not None and any(weak_match(t, current) for t in tags)
        ):
            return PreconditionState.NOT_MODIFIED if safe else PreconditionState.PRECONDITION_FAILED
        return PreconditionState.SHOULD_PROCESS

    if safe:
        since = parse_http_date(_get(headers, "if-modified-since"))
        if since is not None:
            if last_modified <= since:
                return PreconditionState.NOT_MODIFIED
            state = PreconditionState.SHOULD_PROCESS

    return state


def if_range_allows(
    headers: Mapping[str, str],
    *,
    last_modified: datetime,
    entity_tag: Optional[str],
) -> bool:
    """Return True when a Range header may be honored.

    Without If-Range this is always True. An entity tag must match strongly;
    a date passes when the file has not changed since.
    """
    value = _get(headers, "if-range")
    if value is None:
        return True
    value = value.strip()

    if value.startswith('"') or value[:2] in ("W/", "w/"):
        tag = parse_entity_tag(value)
        current = parse_entity_tag(entity_tag)
        if tag is None or current is None or not strong_match(tag, current):
            logger.debug("If-Range entity tag %r does not match %r, ignoring range", value, entity_tag)
            return False
        return True

    since = parse_http_date(value)
    if since is None or truncate_to_seconds(last_modified) > since:
        logger.debug("If-Range date %r is older than last modification, ignoring range", value)
        return False
    return True
