from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric

from shared.config.database import Base
from shared.timeutils import utcnow


class Bid(Base):
    """Immutable once written; the product's highest-bid cache is updated alongside it."""
    __tablename__ = "bids"
    __table_args__ = (
        Index("ix_bids_product_amount", "product_id", "amount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
