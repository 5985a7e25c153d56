"""
Run the auction sweep from the command line:

    python -m services.auction_service           # one sweep, then exit
    python -m services.auction_service --loop    # keep sweeping on an interval

Exit status is 0 when the sweep ran (individual auctions may still have
failed and will be retried), 1 when the sweep itself could not run.
"""
import argparse
import asyncio
import sys

import structlog

# Register every mapped table before the first query
from services.auth_service import models as auth_models  # noqa: F401
from services.bid_service import models as bid_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.product_service import models as product_models  # noqa: F401
from shared.config import settings
from shared.config.database import engine
from shared.observability import configure_logging

from .concluder import run_once
from .scheduler import scheduler_loop

logger = structlog.get_logger(__name__)


async def _main(loop: bool, interval: int) -> int:
    try:
        if loop:
            await scheduler_loop(interval)
        summary = await run_once()
        print(summary.model_dump_json())
        return 0
    except Exception:
        logger.exception("auction_sweep_failed")
        return 1
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Conclude ended auctions and create orders for the winners.")
    parser.add_argument("--loop", action="store_true", help="keep running, sweeping every --interval seconds")
    parser.add_argument("--interval", type=int, default=settings.AUCTION_SWEEP_INTERVAL_SECONDS)
    args = parser.parse_args(argv)

    configure_logging("auction_concluder")
    return asyncio.run(_main(args.loop, args.interval))


if __name__ == "__main__":
    sys.exit(main())
