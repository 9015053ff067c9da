"""FastAPI dependencies for caller identity and idempotency keys."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, AuthorizationError, ValidationError


class Role(str, Enum):
    """Roles a verified credential can carry."""
    CLIENT = "client"
    PILOT = "pilot"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Verified caller identity: who is acting and with which role."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def verify_token(token: str) -> Identity:
    """
    Verify a bearer token and extract the caller identity.

    Tokens are issued by the account service; this side only checks the
    signature, expiry and the ``sub``/``role`` claims.

    Raises:
        AuthenticationError: If the token is invalid, expired or incomplete
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}") from None

    user_id = payload.get("sub") or payload.get("userId")
    if not user_id:
        raise AuthenticationError(detail="Invalid token payload")

    try:
        role = Role(payload.get("role", Role.CLIENT.value))
    except ValueError:
        raise AuthenticationError(detail="Token carries an unknown role") from None

    return Identity(user_id=str(user_id), role=role)


async def get_identity(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Identity:
    """
    Authentication dependency that validates Bearer tokens.

    The resolved identity is also stored on ``request.state`` so error
    handlers and request logging can see who is calling.

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format") from None

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    identity = verify_token(token)
    request.state.identity = identity
    return identity


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    """Admin-only endpoints."""
    if not identity.is_admin:
        raise AuthorizationError(
            detail="Admin access required",
            required_roles=[Role.ADMIN.value],
        )
    return identity


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate an optional idempotency key from request headers.

    Raises:
        ValidationError: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None

    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise ValidationError(detail="Idempotency key must be between 1 and 255 characters")

    return idempotency_key


RequiredIdentity = Depends(get_identity)
AdminIdentity = Depends(require_admin)
IdempotencyKey = Depends(get_idempotency_key)
