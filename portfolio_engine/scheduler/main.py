"""
Scheduler entry point

    python -m portfolio_engine.scheduler.main          # run on schedule
    python -m portfolio_engine.scheduler.main --once   # run the overnight batch now
"""

import argparse
import asyncio

from portfolio_engine.config import settings
from portfolio_engine.core.logging import get_logger, setup_logging
from portfolio_engine.infrastructure.db.database import close_db
from portfolio_engine.scheduler.jobs import run_overnight_batch
from portfolio_engine.scheduler.scheduler import shutdown_scheduler, start_scheduler

logger = get_logger(__name__)


async def main(run_once: bool = False) -> int:
    """Main entry point"""
    setup_logging(settings.LOG_LEVEL)

    if run_once:
        try:
            result = await run_overnight_batch()
        finally:
            await close_db()
        logger.info(
            "Batch %s: processed=%d success=%d failed=%d skipped=%d",
            result.status, result.users_processed, result.users_success,
            result.users_failed, result.users_skipped,
        )
        return 0 if result.status != "failed" else 1

    if not settings.SCHEDULER_ENABLED:
        logger.warning("SCHEDULER_ENABLED is false, nothing to do")
        return 0

    start_scheduler()
    try:
        # Keep running
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        shutdown_scheduler()
        await close_db()
    return 0


def cli() -> None:
    parser = argparse.ArgumentParser(description="Portfolio recommendation scheduler")
    parser.add_argument("--once", action="store_true", help="run the overnight batch immediately and exit")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(run_once=args.once)))


if __name__ == "__main__":
    cli()
