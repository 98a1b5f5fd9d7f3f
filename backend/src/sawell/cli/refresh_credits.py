"""CLI command for running the weekly gift credit refresh once.

Usage:
    python -m sawell.cli [OPTIONS]

Examples:
    # Run a refresh now
    python -m sawell.cli

    # Verbose logging
    python -m sawell.cli -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from sawell.core import timezone  # noqa: F401
from sawell.core.config import Settings, configure_logging
from sawell.core.database import setup_db_session
from sawell.uow import create_uow_factory
from sawell.workers.credit_refresh_worker import RefreshSummary, refresh_gift_credits

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Grant weekly gift credit to users with an active entitlement",
        epilog="Safe to re-run: users granted within the interval are skipped",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def exit_code_for(summary: RefreshSummary) -> int:
    """0 if every user was processed, 2 if some users failed."""
    return 2 if summary.errors else 0


def print_summary(summary: RefreshSummary) -> None:
    print("\n" + "=" * 60)
    print("Gift Credit Refresh Summary")
    print("=" * 60)
    print(f"Users processed: {summary.processed}")
    print(f"Granted: {summary.granted}")
    print(f"Skipped (no active entitlement): {summary.skipped_inactive}")
    print(f"Skipped (granted too recently): {summary.skipped_too_soon}")
    print(f"Skipped (concurrent grant): {summary.skipped_concurrent}")
    print(f"Errors: {summary.errors}")
    print("=" * 60 + "\n")


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (partial success)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"

    configure_logging(settings)
    logger.info("cli.started", command="refresh_credits")

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        summary = await refresh_gift_credits(uow_factory, settings)

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nRefresh interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        engine = session_factory.kw.get("bind")
        if engine is not None:
            await engine.dispose()

    print_summary(summary)
    return exit_code_for(summary)


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
