"""
Sweep that closes ended auctions.

Each auction is concluded in its own transaction: the product row is locked
and re-checked (still unconcluded, end time passed), concluded_at is stamped
with a conditional update, and the winning bid becomes a pending order. A
crash or error anywhere in between rolls the whole step back, so the auction
is simply picked up again by the next run and can never produce two orders.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog

from services.bid_service.repository import BidRepository
from services.order_service.service import OrderService
from services.product_service.repository import ProductRepository
from shared.config import settings
from shared.config.database import AsyncSessionLocal
from shared.observability import ecomm_auctions_concluded_total, ecomm_orders_created_total
from shared.timeutils import utcnow

from .schemas import ConclusionSummary

logger = structlog.get_logger(__name__)

CONCLUDED = "concluded"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class AuctionOutcome:
    product_id: int
    state: str
    order_id: Optional[int] = None


class AuctionConcluder:
    def __init__(self, session_factory=AsyncSessionLocal, concurrency: int = settings.AUCTION_SWEEP_CONCURRENCY):
        self.session_factory = session_factory
        self.concurrency = max(1, concurrency)

    async def run_once(self, now: Optional[datetime] = None) -> ConclusionSummary:
        now = now or utcnow()
        async with self.session_factory() as db:
            due = await ProductRepository.get_due_auction_ids(db, now)

        summary = ConclusionSummary(due=len(due))
        if not due:
            logger.info("auction_sweep_idle")
            return summary

        logger.info("auction_sweep_started", due=len(due))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(product_id: int) -> AuctionOutcome:
            async with semaphore:
                return await self.conclude(product_id, now)

        for outcome in await asyncio.gather(*(bounded(pid) for pid in due)):
            if outcome.state == CONCLUDED:
                summary.concluded.append(outcome.product_id)
                if outcome.order_id is not None:
                    summary.orders_created.append(outcome.order_id)
            elif outcome.state == SKIPPED:
                summary.skipped.append(outcome.product_id)
            else:
                summary.failed.append(outcome.product_id)

        logger.info(
            "auction_sweep_finished",
            concluded=len(summary.concluded),
            orders_created=len(summary.orders_created),
            skipped=len(summary.skipped),
            failed=summary.failed,
        )
        return summary

    async def conclude(self, product_id: int, now: datetime) -> AuctionOutcome:
        try:
            async with self.session_factory() as db:
                product = await ProductRepository.get_unconcluded_auction_for_update(db, product_id, now)
                if product is None:
                    await db.rollback()
                    return AuctionOutcome(product_id, SKIPPED)

                # Without row locks (sqlite) two sweeps can both get here; only one wins the stamp
                if not await ProductRepository.mark_concluded(db, product_id, now):
                    await db.rollback()
                    return AuctionOutcome(product_id, SKIPPED)

                winning_bid = await BidRepository.get_winning_bid(db, product_id)
                order = None
                if winning_bid is not None:
                    order = OrderService.add_auction_order(db, winning_bid.user_id, product, winning_bid.amount)

                await db.commit()
        except Exception:
            # One bad auction must not stop the batch; concluded_at is unset so it is retried
            ecomm_auctions_concluded_total.labels(outcome="failed").inc()
            logger.exception("auction_conclusion_failed", product_id=product_id)
            return AuctionOutcome(product_id, FAILED)

        if order is None:
            ecomm_auctions_concluded_total.labels(outcome="no_bids").inc()
            logger.info("auction_concluded_without_bids", product_id=product_id)
            return AuctionOutcome(product_id, CONCLUDED)

        ecomm_auctions_concluded_total.labels(outcome="winner").inc()
        ecomm_orders_created_total.labels(source="auction").inc()
        logger.info(
            "auction_concluded",
            product_id=product_id,
            order_id=order.id,
            winner_user_id=order.user_id,
            amount=str(order.total_amount),
        )
        return AuctionOutcome(product_id, CONCLUDED, order_id=order.id)


async def run_once() -> ConclusionSummary:
    """Single sweep with the configured database and parallelism."""
    return await AuctionConcluder().run_once()
