"""JWT bearer-token authentication.

Validates Bearer tokens from the Authorization header and extracts the user
claims, including the tenant claim that is the authoritative source of the
request's tenant.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import UnauthenticatedException

logger = logging.getLogger(__name__)

# FastAPI security scheme, extracts Bearer token from Authorization header
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """Represents the authenticated user extracted from a JWT token."""

    id: uuid.UUID
    email: str
    tenant_id: uuid.UUID
    permissions: list[str] = field(default_factory=list)
    is_platform_admin: bool = False


def create_access_token(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    email: str,
    permissions: list[str] | None = None,
    is_platform_admin: bool = False,
    expires_in: timedelta | None = None,
) -> str:
    """Issue a signed access token carrying the tenant claim."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "email": email,
        "tenant_id": str(tenant_id),
        "permissions": permissions or [],
        "is_platform_admin": is_platform_admin,
        "iat": now,
        "exp": now + (expires_in or timedelta(minutes=settings.jwt_expiry_minutes)),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthenticatedException on failure."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthenticatedException("Invalid or expired token") from exc


def user_from_token(token: str) -> AuthenticatedUser:
    payload = _decode_token(token)
    try:
        return AuthenticatedUser(
            id=uuid.UUID(payload["sub"]),
            email=payload["email"],
            tenant_id=uuid.UUID(payload["tenant_id"]),
            permissions=list(payload.get("permissions", [])),
            is_platform_admin=bool(payload.get("is_platform_admin", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise UnauthenticatedException("Token is missing required claims") from exc
