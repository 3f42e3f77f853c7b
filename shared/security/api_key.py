"""
Internal API key guarding administrative routes (order cancellation, the
test-email endpoint). Without INTERNAL_API_KEY those routes answer 403 to
everyone; the process still starts so the shopper-facing routes keep working.
"""
import secrets
import warnings

from shared.config.settings import settings

if not settings.internal_api_key:
    warnings.warn(
        "INTERNAL_API_KEY is not set. Administrative order routes are disabled.",
        stacklevel=2,
    )


def verify_api_key(provided_key: str) -> bool:
    """Constant-time comparison against INTERNAL_API_KEY."""
    if not provided_key or not settings.internal_api_key:
        return False
    return secrets.compare_digest(provided_key.encode(), settings.internal_api_key.encode())
