import hashlib
import hmac

from shared.errors import ConfigurationError

PAYLOAD_DELIMITER = "|"


def generate_payment_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """hex(HMAC_SHA256(secret, "<gateway_order_id>|<gateway_payment_id>"))"""
    if not secret:
        raise ConfigurationError("Payment gateway secret not configured")
    payload = f"{gateway_order_id}{PAYLOAD_DELIMITER}{gateway_payment_id}"
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    secret: str,
    supplied_signature: str,
) -> bool:
    """Check the gateway's proof of payment. Pure: no I/O, no logging.

    An empty secret raises ConfigurationError rather than returning False.
    """
    expected = generate_payment_signature(gateway_order_id, gateway_payment_id, secret)
    return hmac.compare_digest(expected.encode(), (supplied_signature or "").encode())
