#!/usr/bin/env python3
"""
Run the venue tracker API server.

Usage:
    python run_server.py                    # HOST/PORT from settings
    python run_server.py --port 9000
    python run_server.py --reload           # Development auto-reload
"""
import argparse
import sys

import uvicorn

from venue_tracker.core.config import settings


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the venue tracker API server'
    )

    parser.add_argument(
        '--host',
        type=str,
        default=settings.HOST,
        help=f'Bind address (default: {settings.HOST})'
    )

    parser.add_argument(
        '--port',
        type=int,
        default=settings.PORT,
        help=f'Bind port (default: {settings.PORT})'
    )

    parser.add_argument(
        '--reload',
        action='store_true',
        default=settings.DEBUG,
        help='Reload on code changes'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=settings.LOG_LEVEL.lower(),
        help='Uvicorn log level'
    )

    args = parser.parse_args()

    # A single worker: the registry lives in this process's memory
    uvicorn.run(
        "venue_tracker.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        workers=1,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
