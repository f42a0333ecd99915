"""
FastAPI authentication dependencies.
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .error_responses import ErrorMessages, raise_unauthorized
from .identity import SubjectIdentity
from .security import decode_token, verify_token_type

# HTTP Bearer token scheme
security = HTTPBearer()


def identity_from_token(token: str) -> SubjectIdentity:
    """
    Decode an access token into the caller's identity.

    Raises:
        HTTPException: 401 if the token is invalid, of the wrong type, or
            carries neither ``user_id`` nor ``email``
    """
    payload = decode_token(token)
    if payload is None:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN)

    if not verify_token_type(payload, "access"):
        raise_unauthorized(ErrorMessages.INVALID_TOKEN_TYPE)

    # Blank claims count as missing so they cannot collapse into a shared key
    user_id = payload.get("user_id")
    user_id = str(user_id).strip() if user_id is not None else ""
    email = str(payload.get("email") or "").strip()
    if not user_id and not email:
        raise_unauthorized(ErrorMessages.INVALID_TOKEN_PAYLOAD)

    return SubjectIdentity(user_id=user_id or None, email=email or None)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> SubjectIdentity:
    """
    Resolve the authenticated subject from the bearer token.

    No user table lookup: identity is owned by the auth service and trusted
    once the signature checks out.
    """
    return identity_from_token(credentials.credentials)
