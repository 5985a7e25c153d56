from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Bid


class BidRepository:

    @staticmethod
    async def list_for_product(db: AsyncSession, product_id: int):
        result = await db.execute(
            select(Bid)
            .where(Bid.product_id == product_id)
            .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_winning_bid(db: AsyncSession, product_id: int) -> Optional[Bid]:
        # Highest amount wins; on a tie the earliest bid does
        result = await db.execute(
            select(Bid)
            .where(Bid.product_id == product_id)
            .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
            .limit(1)
        )
        return result.scalars().first()
