"""
Order ledger: checkout orders, auction orders and their payment lifecycle.

Status only moves forward: pending_payment -> paid | failed. Re-applying the
current status is a no-op so duplicate gateway notifications are harmless.
Stock reserved by a checkout order is handed back exactly once, when the
order fails.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth_service.repository import UserRepository
from services.payment_service.gateway import PaymentGatewayClient, PaymentHandle
from services.product_service.models import Product
from services.product_service.repository import ProductRepository
from shared.config import settings
from shared.config.database import commit_or_raise
from shared.errors import ConflictError, GatewayError, NotFound, StorageError, ValidationError
from shared.observability import ecomm_orders_created_total, ecomm_payment_outcomes_total
from shared.timeutils import utcnow

from .models import Order, OrderItem, OrderStatus
from .repository import OrderRepository
from .schemas import OrderCreate

logger = structlog.get_logger(__name__)


@dataclass
class PlacementResult:
    order: Order
    payment: PaymentHandle
    created: bool


class OrderService:

    @staticmethod
    async def create_order(
        db: AsyncSession,
        user_id: int,
        data: OrderCreate,
        gateway: PaymentGatewayClient,
    ) -> PlacementResult:
        if data.idempotency_key:
            existing = await OrderRepository.get_by_idempotency_key(db, data.idempotency_key)
            if existing is not None:
                return await OrderService._replay(db, existing, user_id, gateway)

        # The same product listed twice is one line
        quantities: dict[int, int] = {}
        for line in data.items:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

        products = await ProductRepository.get_many_for_update(db, quantities.keys())
        missing = sorted(set(quantities) - set(products))
        if missing:
            await db.rollback()
            raise NotFound("One or more products could not be found.", product_ids=missing)

        total = Decimal("0")
        items = []
        try:
            for product_id, quantity in quantities.items():
                product = products[product_id]
                OrderService._check_purchasable(product, quantity)
                total += product.price * quantity
                items.append(OrderItem(product_id=product.id, quantity=quantity, unit_price=product.price))
        except ValidationError:
            await db.rollback()
            raise

        for product_id, quantity in quantities.items():
            products[product_id].stock -= quantity

        order = Order(
            user_id=user_id,
            total_amount=total,
            status=OrderStatus.PENDING_PAYMENT.value,
            idempotency_key=data.idempotency_key,
            items=items,
        )
        db.add(order)
        try:
            await db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent request carrying the same key
            await db.rollback()
            raise ConflictError(
                "An order with this idempotency key already exists.",
                idempotency_key=data.idempotency_key,
            ) from exc
        except SQLAlchemyError as exc:
            await db.rollback()
            raise StorageError("Failed to create order. Please try again.", user_id=user_id) from exc

        ecomm_orders_created_total.labels(source="checkout").inc()
        logger.info("order_created", order_id=order.id, user_id=user_id, total_amount=str(total))

        payment = await OrderService._initiate_payment(db, order, gateway)
        return PlacementResult(order=order, payment=payment, created=True)

    @staticmethod
    def add_auction_order(db: AsyncSession, user_id: int, product: Product, amount: Decimal) -> Order:
        """Stage the winner's order inside the caller's transaction; nothing is committed here."""
        order = Order(
            user_id=user_id,
            total_amount=amount,
            status=OrderStatus.PENDING_PAYMENT.value,
            items=[OrderItem(product_id=product.id, quantity=1, unit_price=amount)],
        )
        db.add(order)
        return order

    @staticmethod
    async def pay_order(
        db: AsyncSession,
        order_id: int,
        user_id: int,
        gateway: PaymentGatewayClient,
    ) -> PlacementResult:
        order = await OrderService.get_order(db, order_id, user_id)
        if order.status != OrderStatus.PENDING_PAYMENT.value:
            raise ConflictError(f"Order is {order.status} and cannot be paid.", order_id=order.id, status=order.status)
        if order.gateway_reference and order.payment_url:
            return PlacementResult(order=order, payment=OrderService._stored_handle(order), created=False)
        payment = await OrderService._initiate_payment(db, order, gateway)
        return PlacementResult(order=order, payment=payment, created=False)

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, user_id: int) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        # Other users' orders are indistinguishable from missing ones
        if order is None or order.user_id != user_id:
            raise NotFound("Order not found", order_id=order_id)
        return order

    @staticmethod
    async def list_orders(db: AsyncSession, user_id: int):
        return await OrderRepository.list_for_user(db, user_id)

    @staticmethod
    async def record_payment_outcome(
        db: AsyncSession,
        gateway_reference: str,
        paid: bool,
        transaction_id: Optional[str] = None,
        expected_order_id: Optional[int] = None,
    ) -> Order:
        order = await OrderRepository.get_by_gateway_reference_for_update(db, gateway_reference)
        if order is None:
            await db.rollback()
            logger.error("payment_outcome_unknown_reference", gateway_reference=gateway_reference)
            raise NotFound("No order matches this payment.", gateway_reference=gateway_reference)
        if expected_order_id is not None and order.id != expected_order_id:
            matched_order_id = order.id
            await db.rollback()
            logger.error(
                "payment_outcome_order_mismatch",
                order_id=expected_order_id,
                matched_order_id=matched_order_id,
                gateway_reference=gateway_reference,
            )
            raise ConflictError(
                "Payment does not belong to this order.",
                order_id=expected_order_id,
                gateway_reference=gateway_reference,
            )

        target = OrderStatus.PAID if paid else OrderStatus.FAILED
        return await OrderService._transition(db, order, target, transaction_id=transaction_id)

    @staticmethod
    async def _transition(
        db: AsyncSession,
        order: Order,
        target: OrderStatus,
        transaction_id: Optional[str] = None,
    ) -> Order:
        if order.status == target.value:
            # Nothing to change; commit only to release the row lock
            await db.commit()
            ecomm_payment_outcomes_total.labels(status="noop").inc()
            logger.info("payment_outcome_replayed", order_id=order.id, status=order.status)
            return order

        if order.status != OrderStatus.PENDING_PAYMENT.value:
            order_id, current, reference = order.id, order.status, order.gateway_reference
            await db.rollback()
            logger.error(
                "payment_outcome_rejected",
                order_id=order_id,
                status=current,
                requested=target.value,
                gateway_reference=reference,
            )
            raise ConflictError(f"Order is already {current}.", order_id=order_id, status=current)

        order.status = target.value
        if target == OrderStatus.PAID:
            order.transaction_id = transaction_id
            order.paid_at = utcnow()
        else:
            await OrderService._release_stock(db, order)

        await commit_or_raise(db, order_id=order.id, gateway_reference=order.gateway_reference)
        ecomm_payment_outcomes_total.labels(status=target.value).inc()
        logger.info(
            "payment_outcome_recorded",
            order_id=order.id,
            status=order.status,
            gateway_reference=order.gateway_reference,
            transaction_id=order.transaction_id,
        )
        return order

    @staticmethod
    async def _release_stock(db: AsyncSession, order: Order) -> None:
        for item in order.items:
            product = await ProductRepository.get_for_update(db, item.product_id)
            if product is not None and product.is_fixed_price():
                product.stock += item.quantity

    @staticmethod
    async def _replay(
        db: AsyncSession,
        existing: Order,
        user_id: int,
        gateway: PaymentGatewayClient,
    ) -> PlacementResult:
        if existing.user_id != user_id or existing.status != OrderStatus.PENDING_PAYMENT.value:
            raise ConflictError(
                "This idempotency key was already used for another order.",
                order_id=existing.id if existing.user_id == user_id else None,
            )

        logger.info("order_replayed", order_id=existing.id, user_id=user_id)
        if existing.gateway_reference and existing.payment_url:
            return PlacementResult(order=existing, payment=OrderService._stored_handle(existing), created=False)

        # Created earlier but the gateway call failed: retry payment for the same order
        payment = await OrderService._initiate_payment(db, existing, gateway)
        return PlacementResult(order=existing, payment=payment, created=False)

    @staticmethod
    async def _initiate_payment(db: AsyncSession, order: Order, gateway: PaymentGatewayClient) -> PaymentHandle:
        user = await UserRepository.get_by_id(db, order.user_id)
        try:
            payment = await gateway.initiate_payment(
                order_id=order.id,
                amount=order.total_amount,
                currency=settings.PAYMENT_CURRENCY,
                customer_name=user.name if user else "",
                customer_email=user.email if user else "",
            )
        except GatewayError as exc:
            # The order stays pending without a reference; the client can retry payment
            logger.error("payment_initiation_failed", order_id=order.id, error=exc.message)
            raise GatewayError(
                "Could not initiate payment. Please retry or contact support.",
                order_id=order.id,
            ) from exc

        order.payment_gateway = gateway.name
        order.gateway_reference = payment.gateway_reference
        order.payment_url = payment.payment_url
        await commit_or_raise(db, order_id=order.id, gateway_reference=payment.gateway_reference)
        logger.info("payment_initiated", order_id=order.id, gateway_reference=payment.gateway_reference)
        return payment

    @staticmethod
    def _stored_handle(order: Order) -> PaymentHandle:
        return PaymentHandle(payment_url=order.payment_url, gateway_reference=order.gateway_reference)

    @staticmethod
    def _check_purchasable(product: Product, quantity: int) -> None:
        if not product.is_fixed_price():
            raise ValidationError(
                f"Product '{product.name}' is not a fixed-price item and cannot be purchased this way.",
                field="items",
                rule="not_fixed_price",
                product_id=product.id,
            )
        if product.stock < quantity:
            raise ValidationError(
                f"Not enough stock for product '{product.name}'. Requested: {quantity}, Available: {product.stock}.",
                field="items",
                rule="insufficient_stock",
                product_id=product.id,
                requested=quantity,
                available=product.stock,
            )
