"""
Script to run one refresh cycle for all registered sources
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import timedelta

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import SourceRegistryError
from core.logging import setup_logging
from refresh.clients import build_fetch_clients
from refresh.orchestrator import RefreshOrchestrator

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one hotel rate refresh cycle")
    parser.add_argument("--provider", help="Only refresh sources of this provider")
    parser.add_argument(
        "--horizon-days",
        type=int,
        default=settings.REFRESH_HORIZON_DAYS,
        help="Number of one-night stay windows per source"
    )
    parser.add_argument(
        "--ttl-hours",
        type=float,
        default=settings.REFRESH_TTL_HOURS,
        help="Stored points younger than this are not refetched"
    )
    return parser.parse_args(argv)


async def run_refresh(args) -> int:
    """Run a cycle and return the process exit code"""
    orchestrator = RefreshOrchestrator(
        session_factory=async_session_maker,
        clients=build_fetch_clients(settings),
    )

    try:
        report = await orchestrator.run_cycle(
            provider=args.provider,
            horizon_days=args.horizon_days,
            ttl=timedelta(hours=args.ttl_hours),
        )
    except SourceRegistryError as e:
        logger.error(f"Refresh cycle could not start: {e.message}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await engine.dispose()

    summary = report.summary()
    logger.info(
        f"Refresh cycle {report.run_id}: {summary['total']} units, "
        f"{summary['saved']} saved, {summary['skipped']} skipped, {summary['failed']} failed"
    )
    for unit in report.units:
        if unit.status == "failed":
            logger.warning(f"  {unit.source_id} {unit.window}: {unit.error}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run_refresh(parse_args())))
