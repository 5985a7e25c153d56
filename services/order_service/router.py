from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.payment_service.gateway import PaymentGatewayClient, get_payment_gateway
from shared.config.database import get_db
from shared.security import get_current_user
from .schemas import OrderCreate, OrderPlacement, OrderResponse
from .service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderPlacement, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    response: Response,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
):
    result = await OrderService.create_order(db, user_id, payload, gateway)
    if not result.created:
        # Idempotent replay of an earlier request
        response.status_code = status.HTTP_200_OK
        return OrderPlacement(
            message="Order already exists. Please proceed to payment.",
            order_id=result.order.id,
            payment_url=result.payment.payment_url,
        )
    return OrderPlacement(
        message="Order created successfully. Please proceed to payment.",
        order_id=result.order.id,
        payment_url=result.payment.payment_url,
    )


@router.get("", response_model=list[OrderResponse])
async def list_orders(user_id: int = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await OrderService.list_orders(db, user_id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.get_order(db, order_id, user_id)


@router.post("/{order_id}/pay", response_model=OrderPlacement)
async def pay_order(
    order_id: int,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
):
    result = await OrderService.pay_order(db, order_id, user_id, gateway)
    return OrderPlacement(
        message="Please proceed to payment.",
        order_id=result.order.id,
        payment_url=result.payment.payment_url,
    )
