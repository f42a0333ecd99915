"""
JWT helpers for the bearer tokens issued by the authentication service.

The engine only verifies tokens; ``create_access_token`` exists for
scripts and tests that need to mint one with the shared secret.
"""
from datetime import timedelta
import uuid

from typing import Any, Dict, Optional
from jose import JWTError, jwt

from examprep.core.config import settings
from examprep.core.datetime_utils import utc_now


def create_access_token(
    data: Dict[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (``user_id`` and/or ``email``)
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    now = utc_now()
    expire = now + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update(
        {"exp": expire, "iat": now, "type": "access", "jti": str(uuid.uuid4())}
    )
    return jwt.encode(
        to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns:
        Decoded payload, or None if the signature or expiry check fails
    """
    try:
        return jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        return None


def verify_token_type(payload: Dict[str, Any], expected_type: str) -> bool:
    return payload.get("type") == expected_type
