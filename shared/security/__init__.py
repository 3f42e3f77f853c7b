from .jwt_handler import create_access_token, token_subject, verify_access_token
from .api_key import verify_api_key
from .dependencies import get_current_user, get_optional_user, verify_internal_api_key
from .rate_limiter import (
    GATEWAY_SESSION_LIMIT,
    ORDER_INTAKE_LIMIT,
    PAYMENT_VERIFY_LIMIT,
    limiter,
    user_id_or_ip,
)

__all__ = [
    "create_access_token",
    "token_subject",
    "verify_access_token",
    "verify_api_key",
    "get_current_user",
    "get_optional_user",
    "verify_internal_api_key",
    "limiter",
    "user_id_or_ip",
    "ORDER_INTAKE_LIMIT",
    "GATEWAY_SESSION_LIMIT",
    "PAYMENT_VERIFY_LIMIT",
]
