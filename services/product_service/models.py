import enum

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text

from shared.config.database import Base
from shared.timeutils import as_utc, utcnow


class ProductKind(str, enum.Enum):
    FIXED_PRICE = "fixed_price"
    AUCTION = "auction"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    kind = Column(String(20), nullable=False, index=True)

    # fixed_price only
    price = Column(Numeric(10, 2), nullable=True)
    stock = Column(Integer, nullable=True)

    # auction only
    starting_price = Column(Numeric(10, 2), nullable=True)
    current_highest_bid = Column(Numeric(10, 2), nullable=True) # cache of the max accepted bid
    auction_end_time = Column(DateTime(timezone=True), nullable=True, index=True)
    concluded_at = Column(DateTime(timezone=True), nullable=True) # set once, by the sweep

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def is_fixed_price(self) -> bool:
        return self.kind == ProductKind.FIXED_PRICE.value

    def is_auction(self) -> bool:
        return self.kind == ProductKind.AUCTION.value

    def minimum_bid(self):
        """Amount a new bid has to beat."""
        if self.current_highest_bid is not None:
            return self.current_highest_bid
        return self.starting_price

    def has_ended(self, now) -> bool:
        end = as_utc(self.auction_end_time)
        return end is not None and now > end
