from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.models import Product
from services.product_service.repository import ProductRepository
from shared.config.database import commit_or_raise
from shared.errors import NotFound, ValidationError
from shared.observability import ecomm_bids_total
from shared.timeutils import utcnow

from .models import Bid
from .repository import BidRepository
from .validator import AMOUNT_TOO_LOW, validate_bid

logger = structlog.get_logger(__name__)


class BidService:

    @staticmethod
    async def place_bid(db: AsyncSession, product_id: int, user_id: int, amount: Decimal) -> Bid:
        """
        Validate and record a bid in one transaction.

        The product row is locked for the read, and the cached highest bid is
        then moved with a compare-and-set, so a bid validated against a stale
        threshold (a backend without row locks, or a lock that was not held)
        is rejected rather than recorded. A rejected bid leaves nothing behind.
        """
        product = await ProductRepository.get_for_update(db, product_id)
        if product is None:
            await db.rollback()
            raise NotFound("Product not found", product_id=product_id)

        now = utcnow()
        try:
            validate_bid(product, amount, now)
        except ValidationError as exc:
            await BidService._reject(db, exc, product_id, user_id, amount)
            raise

        if not await ProductRepository.raise_highest_bid(db, product_id, amount, now):
            # A higher bid (or the end of the auction) got in after our read
            await db.rollback()
            exc = await BidService._stale_rejection(db, product_id, amount)
            await BidService._reject(db, exc, product_id, user_id, amount)
            raise exc

        bid = Bid(product_id=product_id, user_id=user_id, amount=amount)
        db.add(bid)
        await commit_or_raise(db, product_id=product_id, user_id=user_id)
        await db.refresh(bid)

        ecomm_bids_total.labels(result="accepted").inc()
        logger.info("bid_placed", bid_id=bid.id, product_id=product_id, user_id=user_id, amount=str(amount))
        return bid

    @staticmethod
    async def list_bids(db: AsyncSession, product_id: int):
        product = await db.get(Product, product_id)
        if product is None:
            raise NotFound("Product not found", product_id=product_id)
        return await BidRepository.list_for_product(db, product_id)

    @staticmethod
    async def _stale_rejection(db: AsyncSession, product_id: int, amount: Decimal) -> ValidationError:
        """Re-validate against the committed row to report the rule that now fails."""
        product = await ProductRepository.get_product_by_id(db, product_id)
        if product is not None:
            try:
                validate_bid(product, amount, utcnow())
            except ValidationError as exc:
                return exc
        return ValidationError(
            "Your bid must be higher than the current highest bid.",
            field="bid_amount",
            rule=AMOUNT_TOO_LOW,
            product_id=product_id,
        )

    @staticmethod
    async def _reject(db: AsyncSession, exc: ValidationError, product_id: int, user_id: int, amount: Decimal) -> None:
        await db.rollback()
        ecomm_bids_total.labels(result=exc.rule).inc()
        logger.info("bid_rejected", product_id=product_id, user_id=user_id, amount=str(amount), rule=exc.rule)
