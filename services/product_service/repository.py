from typing import Iterable, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import commit_or_raise, execute_or_raise

from .models import Product, ProductKind


class ProductRepository:

    @staticmethod
    async def create_product(db: AsyncSession, product: Product):
        db.add(product)
        await commit_or_raise(db)
        await db.refresh(product)
        return product

    @staticmethod
    async def list_products(db: AsyncSession, offset: int, limit: int):
        result = await db.execute(
            select(Product).order_by(Product.id).offset(offset).limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def count_products(db: AsyncSession) -> int:
        result = await db.execute(select(func.count(Product.id)))
        return result.scalar_one()

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    async def get_for_update(db: AsyncSession, product_id: int) -> Optional[Product]:
        """Row-locks the product until the current transaction ends."""
        result = await db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_many_for_update(db: AsyncSession, product_ids: Iterable[int]) -> dict[int, Product]:
        # Lock in id order so concurrent checkouts cannot deadlock each other
        result = await db.execute(
            select(Product)
            .where(Product.id.in_(sorted(set(product_ids))))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {product.id: product for product in result.scalars().all()}

    @staticmethod
    async def get_due_auction_ids(db: AsyncSession, now) -> list[int]:
        result = await db.execute(
            select(Product.id)
            .where(
                Product.kind == ProductKind.AUCTION.value,
                Product.auction_end_time <= now,
                Product.concluded_at.is_(None),
            )
            .order_by(Product.auction_end_time, Product.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_unconcluded_auction_for_update(db: AsyncSession, product_id: int, now) -> Optional[Product]:
        """The auction, locked, if it has ended by `now` and nobody has concluded it yet."""
        result = await db.execute(
            select(Product)
            .where(
                Product.id == product_id,
                Product.kind == ProductKind.AUCTION.value,
                Product.auction_end_time <= now,
                Product.concluded_at.is_(None),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def raise_highest_bid(db: AsyncSession, product_id: int, amount, now) -> bool:
        """
        Compare-and-set of the cached highest bid. The write only lands if the
        auction is still open and `amount` still beats the cache, so a bid that
        was validated against a stale read loses instead of lowering the cache.
        """
        result = await execute_or_raise(
            db,
            update(Product)
            .where(
                Product.id == product_id,
                Product.kind == ProductKind.AUCTION.value,
                Product.auction_end_time >= now,
                Product.concluded_at.is_(None),
                or_(Product.current_highest_bid.is_(None), Product.current_highest_bid < amount),
            )
            .values(current_highest_bid=amount)
            .execution_options(synchronize_session=False),
            product_id=product_id,
        )
        return result.rowcount == 1

    @staticmethod
    async def mark_concluded(db: AsyncSession, product_id: int, now) -> bool:
        """Stamp concluded_at unless another sweep already did; False means it lost the race."""
        result = await execute_or_raise(
            db,
            update(Product)
            .where(Product.id == product_id, Product.concluded_at.is_(None))
            .values(concluded_at=now)
            .execution_options(synchronize_session=False),
            product_id=product_id,
        )
        return result.rowcount == 1

    @staticmethod
    async def update_product(db: AsyncSession, product: Product):
        db.add(product)
        await commit_or_raise(db, product_id=product.id)
        await db.refresh(product)
        return product

    @staticmethod
    async def delete_product(db: AsyncSession, product: Product):
        await db.delete(product)
        await commit_or_raise(db, product_id=product.id)
