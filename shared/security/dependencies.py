from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer

from .api_key import verify_api_key
from .jwt_handler import token_subject

# Tokens are issued by the storefront's identity provider, not by this service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


async def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> str:
    """Owning user id for order history. 401 without a valid bearer token."""
    user_id = token_subject(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.user_id = user_id
    return user_id


async def get_optional_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    """Guest checkout: a missing or invalid token simply means no owning user."""
    user_id = token_subject(token)
    if user_id is not None:
        request.state.user_id = user_id
    return user_id


async def verify_internal_api_key(api_key: Optional[str] = Depends(api_key_header)) -> bool:
    """Administrative routes: cancellation and the sample email."""
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header",
        )
    return True
