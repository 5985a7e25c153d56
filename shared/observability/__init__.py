from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_bids_total,
    ecomm_orders_created_total,
    ecomm_payment_outcomes_total,
    ecomm_auctions_concluded_total,
    ecomm_gateway_request_duration_seconds
)
