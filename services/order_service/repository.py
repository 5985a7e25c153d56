from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order


class OrderRepository:

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.id == order_id))
        return result.scalars().first()

    @staticmethod
    async def get_by_gateway_reference_for_update(db: AsyncSession, gateway_reference: str) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.gateway_reference == gateway_reference)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_by_idempotency_key(db: AsyncSession, idempotency_key: str) -> Optional[Order]:
        result = await db.execute(select(Order).where(Order.idempotency_key == idempotency_key))
        return result.scalars().first()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int):
        result = await db.execute(
            select(Order).where(Order.user_id == user_id).order_by(Order.id.desc())
        )
        return result.scalars().all()
