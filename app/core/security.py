from typing import Optional, Any
import logging

from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Args:
        token: The JWT token to decode

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        return payload
    except JWTError as e:
        logger.debug(f"Token rejected: {e}")
        return None


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify an access token issued by the identity service.

    Returns the claims (sub, name, role, and shop_name or depot_id where
    relevant) or None if the token is invalid, expired or not an access token.
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type", "access") != "access":
        return None

    if not payload.get("sub") or not payload.get("role"):
        return None

    return payload
