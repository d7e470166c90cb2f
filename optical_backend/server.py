"""
Command-line runner for the optical shop API.
"""

from __future__ import annotations

import argparse
import logging

import uvicorn

from optical_backend.config import get_settings

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Optical Database API server")
    parser.add_argument("--host", default=settings.host, help="Interface to bind")
    parser.add_argument(
        "--port", type=int, default=settings.port, help="Port to listen on"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change",
    )
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )
    logger.info("Data directory: %s", settings.data_dir)
    logger.info("Images directory: %s", settings.images_dir)
    logger.info("Serving API on http://%s:%d%s", args.host, args.port, settings.api_prefix)

    uvicorn.run(
        "optical_backend.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
