"""
Main entry point for pgnfetch.

Commands:
  serve          Run the HTTP server
  fetch <url>    Fetch one move list and print it

Exit codes for fetch: 0 found, 2 no move list found, 1 any error.
"""

import argparse
import asyncio
import sys

from pgnfetch.errors import ConfigurationError, FetcherError
from pgnfetch.service import PgnFetchService
from pgnfetch.utils.config import Settings, get_settings
from pgnfetch.utils.logging import configure_logging, get_logger

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


def initialize() -> Settings:
    """Load settings and configure logging."""
    settings = get_settings()
    configure_logging(settings.general)

    logger = get_logger(__name__)
    logger.info(
        "pgnfetch initializing",
        version=settings.general.version,
        log_level=settings.general.log_level,
    )
    return settings


async def run_fetch(settings: Settings, url: str) -> int:
    """Fetch one URL and print its move list.

    Returns:
        Process exit code.
    """
    logger = get_logger(__name__)
    service = PgnFetchService.from_settings(settings)
    try:
        outcome = await service.fetch(url)
    except FetcherError as e:
        logger.warning("Fetch failed", error_code=e.code.value, error=e.message)
        print(f"{e.code.value}: {e.message}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        await service.close()

    if not outcome.found:
        print("NOT_FOUND: PGN not found", file=sys.stderr)
        return EXIT_NOT_FOUND

    print(outcome.pgn)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgnfetch",
        description="pgnfetch - move-list extraction through a remote browser",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: settings)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: settings)")

    fetch = subparsers.add_parser("fetch", help="Fetch one game page and print its moves")
    fetch.add_argument("url", type=str, help="http(s) URL of a game page")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = initialize()
    logger = get_logger(__name__)

    try:
        if args.command == "serve":
            from pgnfetch.api.server import run_server

            asyncio.run(run_server(settings, host=args.host, port=args.port))
            return EXIT_OK

        return asyncio.run(run_fetch(settings, args.url))

    except ConfigurationError as e:
        logger.error("Configuration error", setting=e.setting, error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
