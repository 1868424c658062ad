from __future__ import annotations

import argparse
import os
from typing import List, Optional

import uvicorn

from .app import create_app

LOG_LEVEL_ENV = "BF2PY_LOG_LEVEL"


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve the bf2py HTTP API")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    parser.add_argument(
        "--log-level",
        type=str.lower,
        choices=["debug", "info", "warning", "error", "critical"],
        default=os.environ.get(LOG_LEVEL_ENV, "info").lower(),
        help=f"Server log level (default: ${LOG_LEVEL_ENV} or info)",
    )
    args = parser.parse_args(argv)

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
