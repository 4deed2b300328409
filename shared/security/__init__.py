from .api_key import verify_api_key
from .dependencies import get_current_user_id, verify_internal_api_key

__all__ = [
    "verify_api_key",
    "get_current_user_id",
    "verify_internal_api_key",
]
