#!/usr/bin/env python3
"""Start the property agent API with console logging."""

import argparse
import logging

import uvicorn

from property_agent.logging.config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the property agent server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(level)
    logging.getLogger(__name__).info("server.starting host=%s port=%s", args.host, args.port)

    uvicorn.run(
        "property_agent.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
