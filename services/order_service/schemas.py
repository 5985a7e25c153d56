from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderLine(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    items: List[OrderLine] = Field(min_length=1)
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=255)


class OrderItemResponse(BaseModel):
    product_id: int
    quantity: int
    unit_price: Decimal

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: int
    total_amount: Decimal
    status: str
    idempotency_key: Optional[str]
    gateway_reference: Optional[str]
    transaction_id: Optional[str]
    created_at: datetime
    paid_at: Optional[datetime]
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderPlacement(BaseModel):
    message: str
    order_id: int
    payment_url: str
