"""Logging setup for the rangeserve server.

Library modules only call ``logging.getLogger(__name__)``. The host (the CLI
or an embedding app) attaches handlers to the ``rangeserve`` logger from the
``logging`` section of a profile:

    logging:
      level: INFO
      file: logs/rangeserve.log
      modules:
        responder: DEBUG

``RS_LOG_MODULE_LEVELS="responder=DEBUG,transfer:WARNING"`` overrides the
per-module levels without editing the profile.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

ROOT_LOGGER = "rangeserve"
ENV_MODULE_LEVELS = "RS_LOG_MODULE_LEVELS"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# set on handlers we install, so reconfiguring replaces only our own
_OWNED = "_rangeserve_owned"


def _to_level(value: Union[str, int, None]) -> Optional[int]:
    if isinstance(value, int):
        return value
    if not value:
        return None
    level = getattr(logging, str(value).strip().upper(), None)
    return level if isinstance(level, int) else None


def level_from_name(name: Union[str, int, None], default: int = logging.INFO) -> int:
    level = _to_level(name)
    return default if level is None else level


def _qualify(name: str) -> str:
    name = name.strip()
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def module_levels(entries: Mapping[str, Any]) -> Dict[str, int]:
    """Map module names to levels, dropping entries with unknown levels."""
    out: Dict[str, int] = {}
    for name, value in entries.items():
        level = _to_level(value)
        if name and name.strip() and level is not None:
            out[_qualify(name)] = level
    return out


def parse_module_levels(spec: Optional[str]) -> Dict[str, int]:
    """Parse ``"name=LEVEL,name:LEVEL"`` (comma or semicolon separated)."""
    pairs = {}
    for item in re.split(r"[;,]", spec or ""):
        name, sep, level = item.partition("=") if "=" in item else item.partition(":")
        if sep:
            pairs[name] = level
    return module_levels(pairs)


def _handler(handler: logging.Handler, fmt: str) -> logging.Handler:
    # DEBUG here so per-module overrides are not filtered twice
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    setattr(handler, _OWNED, True)
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    modules: Optional[Mapping[str, int]] = None,
    format_string: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Attach stderr (and optionally file) handlers to the ``rangeserve`` logger.

    Safe to call again: handlers from an earlier call are closed and replaced.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for old in [h for h in logger.handlers if getattr(h, _OWNED, False)]:
        logger.removeHandler(old)
        old.close()

    logger.setLevel(level)
    logger.addHandler(_handler(logging.StreamHandler(sys.stderr), format_string))
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), format_string))
    logger.propagate = False

    for name, lvl in (modules or {}).items():
        logging.getLogger(name).setLevel(lvl)
    return logger


def setup_logging_from_profile(
    profile: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> logging.Logger:
    cfg = profile.get("logging") or {}
    environ = os.environ if environ is None else environ

    levels = module_levels(cfg.get("modules") or {})
    levels.update(parse_module_levels(environ.get(ENV_MODULE_LEVELS)))

    log_file = cfg.get("file")
    return setup_logging(
        level=level_from_name(cfg.get("level")),
        log_file=Path(log_file) if log_file else None,
        modules=levels,
    )
