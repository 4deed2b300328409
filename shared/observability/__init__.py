from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_checkout_total,
    ecomm_checkout_duration_seconds,
    ecomm_best_effort_failures_total,
    ecomm_stock_adjustments_total,
    ecomm_payment_verifications_total,
    ecomm_webhook_events_total,
)
