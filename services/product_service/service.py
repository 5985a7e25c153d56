from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.bid_service.models import Bid
from services.order_service.models import OrderItem
from shared.errors import ConflictError, NotFound, ValidationError
from shared.timeutils import utcnow

from .models import Product, ProductKind
from .repository import ProductRepository
from .schemas import ProductCreate, ProductUpdate


class ProductService:

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate):
        product = Product(name=data.name, description=data.description, kind=data.kind.value)
        if data.kind == ProductKind.FIXED_PRICE:
            product.price = data.price
            product.stock = data.stock
        else:
            product.starting_price = data.starting_price
            product.auction_end_time = data.auction_end_time
        return await ProductRepository.create_product(db, product)

    @staticmethod
    async def list_products(db: AsyncSession, page: int, per_page: int):
        items = await ProductRepository.list_products(db, offset=(page - 1) * per_page, limit=per_page)
        total = await ProductRepository.count_products(db)
        return items, total

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int) -> Product:
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFound("Product not found", product_id=product_id)
        return product

    @staticmethod
    async def update_product(db: AsyncSession, product_id: int, data: ProductUpdate):
        product = await ProductRepository.get_for_update(db, product_id)
        if not product:
            await db.rollback()
            raise NotFound("Product not found", product_id=product_id)

        changes = data.model_dump(exclude_unset=True)
        try:
            if product.concluded_at is not None:
                raise ConflictError("A concluded auction cannot be edited.", product_id=product_id)
            if product.is_auction() and product.has_ended(utcnow()):
                # Only the sweep may move an ended auction on, to concluded
                raise ConflictError("An auction that has ended cannot be edited.", product_id=product_id)
            if "kind" in changes and changes["kind"] != product.kind and await ProductService._has_history(db, product_id):
                raise ConflictError("Cannot change the kind of a product that has bids or orders.", product_id=product_id)

            for field, value in changes.items():
                setattr(product, field, value.value if isinstance(value, ProductKind) else value)
            ProductService._check_kind_fields(product)
        except (ConflictError, ValidationError):
            await db.rollback()
            raise

        return await ProductRepository.update_product(db, product)

    @staticmethod
    async def delete_product(db: AsyncSession, product_id: int) -> None:
        product = await ProductService.get_product_by_id(db, product_id)
        if await ProductService._has_history(db, product_id):
            raise ConflictError("Product has bids or orders and cannot be deleted.", product_id=product_id)
        await ProductRepository.delete_product(db, product)

    @staticmethod
    def _check_kind_fields(product: Product) -> None:
        if product.is_fixed_price():
            if product.price is None or product.stock is None:
                raise ValidationError("fixed_price products require price and stock", field="kind", rule="missing_fields")
        elif product.starting_price is None or product.auction_end_time is None:
            raise ValidationError("auction products require starting_price and auction_end_time", field="kind", rule="missing_fields")

    @staticmethod
    async def _has_history(db: AsyncSession, product_id: int) -> bool:
        has_bids = await db.scalar(select(exists().where(Bid.product_id == product_id)))
        has_lines = await db.scalar(select(exists().where(OrderItem.product_id == product_id)))
        return bool(has_bids or has_lines)
