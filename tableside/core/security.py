"""
Tableside Orders — Security helpers (JWT decode only, shared secret)

Tokens are issued by the auth service; this service only verifies them and
reads the staff claims it needs.
"""
from typing import Any

from jose import jwt

from tableside.core.config import get_settings

settings = get_settings()


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def principal_restaurant_id(principal: dict[str, Any] | None) -> str | None:
    if not principal:
        return None
    restaurant_id = principal.get("restaurant_id")
    return str(restaurant_id) if restaurant_id else None


def principal_display_name(principal: dict[str, Any] | None) -> str | None:
    if not principal:
        return None
    return principal.get("name") or principal.get("staff_name")
