from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_bids_total = Counter(
    "ecomm_bids_total",
    "Bids submitted to the bid validator",
    ["result"] # Labels: 'accepted', or the rejected rule name
)

ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Orders written to the ledger",
    ["source"] # Labels: 'checkout', 'auction'
)

ecomm_payment_outcomes_total = Counter(
    "ecomm_payment_outcomes_total",
    "Payment outcomes applied to orders",
    ["status"] # Labels: 'paid', 'failed', 'noop'
)

ecomm_auctions_concluded_total = Counter(
    "ecomm_auctions_concluded_total",
    "Auctions processed by the conclusion sweep",
    ["outcome"] # Labels: 'winner', 'no_bids', 'failed'
)

ecomm_gateway_request_duration_seconds = Histogram(
    "ecomm_gateway_request_duration_seconds",
    "Payment gateway call duration in seconds",
    ["operation"] # Labels: 'initiate', 'verify'
)
