from fastapi import Depends, Header, HTTPException, status
from fastapi.security import APIKeyHeader

from shared.config.settings import Settings, get_settings
from .api_key import verify_api_key

# Defines the expected internal service header
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


async def verify_internal_api_key(
    api_key: str | None = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> bool:
    """Dependency to validate service-to-service internal requests."""
    if not verify_api_key(api_key, settings.internal_api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True


async def get_current_user_id(x_user_id: int | None = Header(default=None)) -> int:
    """
    The upstream API gateway authenticates the customer and forwards the id
    as X-User-Id on the internal call.
    """
    if x_user_id is None or x_user_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Id header",
        )
    return x_user_id
