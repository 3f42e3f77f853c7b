from .setup import setup_observability
from .metrics import (
    ecomm_orders_created_total,
    ecomm_order_creation_duration_seconds,
    ecomm_order_compensation_total,
    ecomm_gateway_sessions_total,
    ecomm_payment_verifications_total,
    ecomm_notification_attempts_total,
)
