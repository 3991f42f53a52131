from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import List, Optional

from .logging_config import setup_logging_from_profile
from .metadata import FileMetadataResolver
from .profile import load_profile


def cmd_serve(args: argparse.Namespace) -> None:
    from .server.app import create_app

    profile = load_profile(args.profile)
    setup_logging_from_profile(profile)

    root = Path(args.root)
    if not root.is_dir():
        raise SystemExit(f"Not a directory: {root}")

    server_cfg = profile.get("server", {})
    host = args.host or server_cfg.get("host", "127.0.0.1")
    port = args.port or int(server_cfg.get("port", 8766))

    app = create_app(root=root, profile=profile)

    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level="warning")


def cmd_stat(args: argparse.Namespace) -> None:
    path = os.path.abspath(args.path)
    descriptor = FileMetadataResolver().resolve(path)
    payload = {"path": path, "exists": descriptor.exists}
    if descriptor.exists:
        payload["length"] = descriptor.length
        payload["last_modified"] = descriptor.last_modified.isoformat()
    print(json.dumps(payload, indent=2))


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="rangeserve", description="Range-aware static file server")
    sub = parser.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Serve a directory over HTTP with Range support.")
    s.add_argument("root", type=Path, help="Directory to serve under /files/")
    s.add_argument("--profile", type=Path, default=None, help="Path to a YAML profile")
    s.add_argument("--host", type=str, default=None)
    s.add_argument("--port", type=int, default=None)
    s.set_defaults(func=cmd_serve)

    st = sub.add_parser("stat", help="Print the metadata a request for PATH would see.")
    st.add_argument("path", type=str)
    st.set_defaults(func=cmd_stat)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
