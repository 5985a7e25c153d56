"""In-process periodic sweep, for deployments without an external scheduler."""
import asyncio
from typing import Optional

import structlog

from shared.config import settings

from .concluder import AuctionConcluder

logger = structlog.get_logger(__name__)

_task: Optional[asyncio.Task] = None


async def scheduler_loop(interval_seconds: int = settings.AUCTION_SWEEP_INTERVAL_SECONDS, concluder: Optional[AuctionConcluder] = None):
    concluder = concluder or AuctionConcluder()
    while True:
        try:
            await concluder.run_once()
        except Exception:
            # The sweep itself failed (e.g. database down); try again next tick
            logger.exception("auction_sweep_failed")
        await asyncio.sleep(interval_seconds)


def start_scheduler() -> asyncio.Task:
    global _task
    if _task is None or _task.done():
        _task = asyncio.create_task(scheduler_loop())
        logger.info("auction_scheduler_started", interval_seconds=settings.AUCTION_SWEEP_INTERVAL_SECONDS)
    return _task


async def stop_scheduler() -> None:
    global _task
    if _task is None:
        return
    _task.cancel()
    try:
        await _task
    except asyncio.CancelledError:
        pass
    _task = None
    logger.info("auction_scheduler_stopped")
