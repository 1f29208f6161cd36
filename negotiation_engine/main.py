"""
Command-line entry point for the Price Negotiation Engine.

Runs a one-off expiry sweep against the configured backend, or serves the
HTTP API.
"""

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import logging
import sys

from negotiation_engine.config import get_engine_settings
from negotiation_engine.db import close_db, get_pg_pool, get_redis, init_db
from negotiation_engine.engine import build_engine
from negotiation_engine.scheduler import SweepReport


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def format_sweep_report(report: SweepReport) -> str:
    """
    Format a sweep report for console output.

    Args:
        report: Report returned by the scheduler

    Returns:
        Multi-line summary
    """
    lines = [f"Sweep at {report.started_at.isoformat()}"]
    if report.persistence_error:
        lines.append(f"  Persistence unavailable: {report.persistence_error}")
        return "\n".join(lines)

    lines.append(f"  Negotiations expired: {len(report.expired_negotiations)}")
    lines.append(f"  Discount codes expired: {len(report.expired_codes)}")
    for key, error in report.failures.items():
        lines.append(f"  Failed {key}: {error}")
    return "\n".join(lines)


async def run_sweep() -> int:
    """
    Run one expiry sweep.

    Returns:
        Exit code (0 for success, 1 if persistence was unavailable or a record failed)
    """
    settings = get_engine_settings()
    postgres = settings.storage.backend == "postgres"
    await init_db(settings.storage.database_url if postgres else None, settings.storage.redis_url)
    try:
        engine = build_engine(
            settings,
            pool=get_pg_pool() if postgres else None,
            redis_client=get_redis(),
        )
        report = await engine.scheduler.run_once()
    finally:
        await close_db()

    print(format_sweep_report(report))
    return 1 if report.persistence_error or report.failures else 0


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="negotiation-engine",
        description="Price negotiation engine for marketplace listings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Expire stale negotiations and discount codes once
  python -m negotiation_engine.main sweep

  # Serve the HTTP API
  python -m negotiation_engine.main serve --port 8000
        """
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sweep", help="Run one expiry sweep and print a summary")

    serve = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")

    return parser


def main() -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = create_argument_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        if args.command == "serve":
            import uvicorn

            uvicorn.run("negotiation_engine.api.main:app", host=args.host, port=args.port)
            return 0
        return asyncio.run(run_sweep())
    except Exception as e:
        logger.exception(f"Unexpected error in main: {str(e)}")
        print(f"Unexpected error: {str(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
