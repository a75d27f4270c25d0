"""JWT access tokens for the usage API.

Tokens are issued by the identity service; this module only needs to
decode them. ``create_access_token`` exists for tooling and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from homecare.core.config import settings

ADMIN_ROLE = "admin"
CUSTOMER_ROLE = "customer"


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # User ID
    exp: datetime
    iat: datetime
    type: str  # "access"
    role: str = CUSTOMER_ROLE


def create_access_token(
    user_id: uuid.UUID,
    role: str = CUSTOMER_ROLE,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create an access token.

    Args:
        user_id: User UUID
        role: "customer" or "admin"
        expires_delta: Lifetime; defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        str: The encoded token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    payload = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
        "type": "access",
        "role": role,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> TokenPayload | None:
    """Decode and validate a JWT token.

    Signature and expiry are checked by ``jwt.decode``.

    Returns:
        TokenPayload | None: Decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            type=payload["type"],
            role=payload.get("role", CUSTOMER_ROLE),
        )
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def validate_token(token: str, expected_type: str = "access") -> TokenPayload | None:
    """Validate a JWT token and its type."""
    payload = decode_token(token)
    if payload is None or payload.type != expected_type:
        return None
    try:
        uuid.UUID(payload.sub)
    except ValueError:
        return None
    return payload


# FastAPI dependencies

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenPayload:
    """Validated payload of the request's Bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = validate_token(credentials.credentials, "access")
    if payload is None:
        raise _unauthorized("Invalid or expired token")
    return payload


async def get_current_user_id(
    payload: TokenPayload = Depends(get_token_payload),
) -> uuid.UUID:
    """Extract user ID from JWT token."""
    return uuid.UUID(payload.sub)


async def require_admin(
    payload: TokenPayload = Depends(get_token_payload),
) -> uuid.UUID:
    """Admin user ID; 403 for any other role."""
    if payload.role != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return uuid.UUID(payload.sub)
