from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Total orders accepted at intake",
    ["payment_method"]  # Labels: 'cash_on_delivery', 'gateway'
)

ecomm_order_creation_duration_seconds = Histogram(
    "ecomm_order_creation_duration_seconds",
    "Order intake duration in seconds"
)

ecomm_order_compensation_total = Counter(
    "ecomm_order_compensation_total",
    "Total compensating actions triggered during order intake",
    ["step_name", "outcome"]  # outcome='success' or 'failed'
)

ecomm_gateway_sessions_total = Counter(
    "ecomm_gateway_sessions_total",
    "Total payment gateway sessions opened",
    ["status"]  # Labels: 'success', 'failed'
)

ecomm_payment_verifications_total = Counter(
    "ecomm_payment_verifications_total",
    "Total payment verification callbacks",
    ["result"]  # Labels: 'verified', 'invalid_signature', 'error'
)

ecomm_notification_attempts_total = Counter(
    "ecomm_notification_attempts_total",
    "Total transactional email send attempts",
    ["kind", "outcome"]  # outcome='sent', 'retry', 'failed'
)
