"""
Rules a bid has to pass before it is written.

Checked against a product row that the caller has already locked, so the
highest bid seen here is the one the new bid will be compared to at commit.
"""
from datetime import datetime
from decimal import Decimal

from services.product_service.models import Product
from shared.errors import ValidationError
from shared.timeutils import as_utc

NOT_AUCTION = "not_auction"
AUCTION_ENDED = "auction_ended"
AMOUNT_TOO_LOW = "amount_too_low"


def validate_bid(product: Product, amount: Decimal, now: datetime) -> None:
    if not product.is_auction():
        raise ValidationError(
            "This product is not available for auction.",
            field="product",
            rule=NOT_AUCTION,
            product_id=product.id,
        )

    if product.has_ended(now):
        end = as_utc(product.auction_end_time)
        raise ValidationError(
            f"The auction for this product ended at {end.isoformat()}.",
            field="product",
            rule=AUCTION_ENDED,
            product_id=product.id,
            threshold=end,
        )

    threshold = product.minimum_bid()
    if amount <= threshold:
        label = "starting price" if product.current_highest_bid is None else "current highest bid"
        raise ValidationError(
            f"Your bid must be higher than the {label} of {threshold:.2f}.",
            field="bid_amount",
            rule=AMOUNT_TOO_LOW,
            product_id=product.id,
            threshold=threshold,
        )
