import secrets


def verify_api_key(provided_key: str | None, expected_key: str) -> bool:
    """Constant-time comparison. An empty key on either side never matches."""
    if not provided_key or not expected_key:
        return False
    return secrets.compare_digest(provided_key.encode(), expected_key.encode())
