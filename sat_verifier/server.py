#!/usr/bin/env python3
"""
Standalone server entry point.
"""
import argparse

import uvicorn

from .config import get_settings


def main(argv=None):
    settings = get_settings()

    parser = argparse.ArgumentParser(description="SAT Verifier API server")
    parser.add_argument("--host", default=settings.host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to run the server on")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args(argv)

    print(f"Starting SAT Verifier on {args.host}:{args.port} (gateway: {settings.sat_gateway_url})")

    uvicorn.run(
        "sat_verifier.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.app_log_level.lower(),
    )


if __name__ == "__main__":
    main()
