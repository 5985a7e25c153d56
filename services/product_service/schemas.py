from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_serializer, model_validator

from shared.timeutils import as_utc, utcnow

from .models import ProductKind

FIXED_PRICE_FIELDS = ("price", "stock")
AUCTION_FIELDS = ("starting_price", "current_highest_bid", "auction_end_time", "concluded_at")


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    kind: ProductKind
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    starting_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    auction_end_time: Optional[datetime] = None

    @model_validator(mode="after")
    def check_kind_fields(self):
        if self.kind == ProductKind.FIXED_PRICE:
            if self.price is None or self.stock is None:
                raise ValueError("fixed_price products require price and stock")
        else:
            if self.starting_price is None or self.auction_end_time is None:
                raise ValueError("auction products require starting_price and auction_end_time")
            self.auction_end_time = as_utc(self.auction_end_time)
            if self.auction_end_time <= utcnow():
                raise ValueError("auction_end_time must be in the future")
        return self


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    kind: Optional[ProductKind] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    starting_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    auction_end_time: Optional[datetime] = None

    @model_validator(mode="after")
    def check_end_time(self):
        if self.auction_end_time is not None:
            self.auction_end_time = as_utc(self.auction_end_time)
            if self.auction_end_time <= utcnow():
                raise ValueError("auction_end_time must be in the future")
        return self


class ProductResponse(BaseModel):
    id: int
    name: str
    description: str
    kind: ProductKind
    price: Optional[Decimal] = None
    stock: Optional[int] = None
    starting_price: Optional[Decimal] = None
    current_highest_bid: Optional[Decimal] = None
    auction_end_time: Optional[datetime] = None
    concluded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @model_serializer(mode="wrap")
    def only_kind_fields(self, handler) -> dict:
        # A product only exposes the fields that belong to its kind
        data = handler(self)
        hidden = AUCTION_FIELDS if self.kind == ProductKind.FIXED_PRICE else FIXED_PRICE_FIELDS
        for field in hidden:
            data.pop(field, None)
        return data


class ProductPage(BaseModel):
    items: List[ProductResponse]
    page: int
    per_page: int
    total: int
