from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class BidCreate(BaseModel):
    bid_amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


class BidResponse(BaseModel):
    id: int
    product_id: int
    user_id: int
    amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class BidPlaced(BaseModel):
    message: str = "Bid placed successfully."
    bid: BidResponse
