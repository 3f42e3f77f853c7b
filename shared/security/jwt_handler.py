"""
Bearer tokens are issued by the storefront's identity provider, which shares
JWT_SECRET_KEY with this service. Only the subject claim (the owning user id)
is read here; `create_access_token` exists for service-to-service calls and
local tooling.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from shared.config.settings import settings

if not settings.jwt_secret_key:
    raise ValueError("FATAL ERROR: JWT_SECRET_KEY is not set in the environment!")

ACCESS_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signs `claims` (at least a `sub`) with a UTC expiry."""
    expires_at = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({**claims, "exp": expires_at}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> Optional[dict]:
    """Claims of a valid token, None for a forged, malformed or expired one."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def token_subject(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    claims = verify_access_token(token)
    if claims is None:
        return None
    return claims.get("sub")
