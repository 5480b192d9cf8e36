"""Folio - knowledge base server.

Usage:
    python -m folio             Start the JSON-RPC server
    python -m folio --help      Show this help message

Environment Variables:
    FOLIO_HOST          Server host (default: 127.0.0.1)
    FOLIO_PORT          Server port (default: 8020)
    FOLIO_DATA_DIR      Directory holding the database and log file
    FOLIO_LOG_LEVEL     Logging level (default: INFO)
    FOLIO_SEED_DEMO     Seed demo spaces into an empty database
"""

from __future__ import annotations

import argparse

import uvicorn

from . import __version__
from .logging_setup import configure_logging
from .settings import settings


def main() -> None:
    """Main entry point for the Folio server."""
    parser = argparse.ArgumentParser(
        prog="folio",
        description="Folio - knowledge base server",
        epilog="""
Examples:
  folio                     Start the server on the default port
  folio --port 8030         Start on a custom port
  folio --reload            Auto-reload on code changes (development)
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Server host (default: {settings.host})",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.port,
        help=f"Server port (default: {settings.port})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (for development)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level.upper(),
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args()

    configure_logging(args.log_level)

    print(f"Starting Folio server on {args.host}:{args.port}")
    print("Press Ctrl+C to stop\n")

    uvicorn.run(
        "folio.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
