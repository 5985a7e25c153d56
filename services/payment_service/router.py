"""
Gateway-facing callbacks. The customer's browser is redirected here by the
payment provider once they finish (or abandon) paying; they are not part of
the client API and carry no bearer token.

Neither callback trusts its query string: the paymentId is checked with the
gateway, and only the gateway's answer moves the order.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import Order
from services.order_service.service import OrderService
from shared.config.database import get_db
from shared.errors import GatewayError, ValidationError

from .gateway import PaymentGatewayClient, PaymentVerification, get_payment_gateway
from .schemas import PaymentCallbackResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["Payment Callbacks"])

PAID_MESSAGE = "Payment successful. Your order has been confirmed."


async def _apply_verified_outcome(
    db: AsyncSession,
    gateway: PaymentGatewayClient,
    order_id: int,
    payment_id: Optional[str],
) -> tuple[PaymentVerification, Order]:
    if not payment_id:
        logger.warning("payment_callback_without_payment_id", order_id=order_id)
        raise ValidationError("Invalid payment callback.", field="paymentId", rule="required")

    verification = await gateway.verify_payment(payment_id, key_type="PaymentId")
    if verification.gateway_reference is None:
        logger.error("payment_verification_without_invoice", order_id=order_id, payment_id=payment_id)
        raise GatewayError("Payment gateway returned no invoice for this payment.", order_id=order_id)

    order = await OrderService.record_payment_outcome(
        db,
        verification.gateway_reference,
        paid=verification.is_paid,
        transaction_id=verification.transaction_id,
        expected_order_id=order_id,
    )
    return verification, order


@router.get("/callback/{order_id}", response_model=PaymentCallbackResponse)
async def payment_callback(
    order_id: int,
    payment_id: Optional[str] = Query(default=None, alias="paymentId"),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
):
    verification, order = await _apply_verified_outcome(db, gateway, order_id, payment_id)
    if verification.is_paid:
        return PaymentCallbackResponse(message=PAID_MESSAGE, order_id=order.id, status=order.status)

    logger.error(
        "payment_verification_failed",
        order_id=order_id,
        payment_id=payment_id,
        gateway_status=verification.status,
    )
    raise ValidationError(
        verification.message or "Payment was not successful.",
        field="payment",
        rule="payment_not_successful",
        order_id=order_id,
    )


@router.get("/error/{order_id}", response_model=PaymentCallbackResponse)
async def payment_error(
    order_id: int,
    payment_id: Optional[str] = Query(default=None, alias="paymentId"),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
):
    verification, order = await _apply_verified_outcome(db, gateway, order_id, payment_id)
    if verification.is_paid:
        # The customer hit the error page but the gateway has the money
        logger.warning("payment_error_callback_for_paid_invoice", order_id=order_id, payment_id=payment_id)
        return PaymentCallbackResponse(message=PAID_MESSAGE, order_id=order.id, status=order.status)

    logger.warning("payment_failed_or_cancelled", order_id=order_id, payment_id=payment_id)
    return PaymentCallbackResponse(
        message="Payment was cancelled or failed. Please try again.",
        order_id=order.id,
        status=order.status,
    )
