from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from shared.config.settings import settings

from .jwt_handler import token_subject

# Per shopper (or per IP for guests)
ORDER_INTAKE_LIMIT = "20/minute"
GATEWAY_SESSION_LIMIT = "20/minute"
PAYMENT_VERIFY_LIMIT = "30/minute"


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Signed-in shoppers are limited by their JWT subject, guest checkouts by
    client address.
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() == "bearer":
        user_id = token_subject(token)
        if user_id:
            return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


# RATE_LIMIT_ENABLED=false turns limits off for load tests and the test suite
limiter = Limiter(key_func=user_id_or_ip, enabled=settings.rate_limit_enabled)
