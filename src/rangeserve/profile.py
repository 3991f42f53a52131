from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def default_profile() -> Dict[str, Any]:
    return {
        "server": {
            "host": "127.0.0.1",
            "port": 8766,
        },
        "files": {
            "chunk_size": 64 * 1024,
            "enable_range_processing": True,
            "etag": True,  # weak ETag from size + mtime
            "cache_control": None,  # e.g. "public, max-age=3600"
        },
        "logging": {
            "level": "INFO",
            "file": None,
            "modules": {},  # e.g. {"responder": "DEBUG"}
        },
    }


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_profile(profile_path: Optional[Path]) -> Dict[str, Any]:
    if profile_path is None:
        return default_profile()

    profile_path = Path(profile_path)
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Profile YAML must be a mapping")
    return _merge(default_profile(), data)
