from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_checkout_total = Counter(
    "ecomm_checkout_total",
    "Total checkouts processed",
    ["status", "payment_method"] # status: 'success', 'failed'
)

ecomm_checkout_duration_seconds = Histogram(
    "ecomm_checkout_duration_seconds",
    "Checkout duration in seconds"
)

ecomm_best_effort_failures_total = Counter(
    "ecomm_best_effort_failures_total",
    "Best-effort checkout steps that failed after the order was committed",
    ["step_name"] # 'deduct_stock', 'clear_cart', 'request_shipment'
)

ecomm_stock_adjustments_total = Counter(
    "ecomm_stock_adjustments_total",
    "Per-item stock adjustments",
    ["operation", "result"] # operation: 'deduct' / 'restore'
)

ecomm_payment_verifications_total = Counter(
    "ecomm_payment_verifications_total",
    "Payment signature verifications",
    ["result"] # 'valid', 'invalid'
)

ecomm_webhook_events_total = Counter(
    "ecomm_webhook_events_total",
    "Gateway webhook deliveries",
    ["event", "outcome"] # outcome: 'applied', 'noop', 'ignored', 'error'
)
