"""
Authentication and Authorization

FastAPI dependencies that turn a Bearer token into the calling user and
enforce staff roles on administrative endpoints. Token verification itself
lives in security.py.

SECURITY NOTE:
- Development test tokens are ONLY accepted when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production
"""

import logging
import os
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from registrar.core.config import settings
from registrar.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)

# Roles allowed to review requests and run migrations
STAFF_ROLES = frozenset({"registrar", "faculty", "admin"})


@dataclass
class CurrentUser:
    """
    Authenticated caller, populated from JWT claims.

    Attributes:
        id: Numeric user id (``sub`` claim)
        email: Account email
        role: One of student, faculty, registrar, admin
        name: Display name (optional)
    """

    id: int
    email: str
    role: str
    name: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """Development tokens require both settings and the raw env var to agree."""
    env_var = os.getenv("PYTHON_ENV", "").lower()
    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )
    if is_safe:
        logger.warning("SECURITY: Development auth mode is ENABLED. Never use it in production!")
    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_USERS = {
    "dev-registrar": CurrentUser(id=1, email="registrar@registrar.dev", role="registrar"),
    "dev-faculty": CurrentUser(id=2, email="faculty@registrar.dev", role="faculty"),
    "dev-student": CurrentUser(id=3, email="student@registrar.dev", role="student"),
}


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(token: str) -> CurrentUser:
    """
    Validate a token and build the CurrentUser it represents.

    Raises:
        HTTPException 401: If the token is invalid, expired or has bad claims
    """
    if _DEVELOPMENT_MODE and token in _DEV_USERS:
        logger.debug("Development mode: using test token")
        return _DEV_USERS[token]

    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        return CurrentUser(
            id=int(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Dependency returning the authenticated caller."""
    return user_from_token(credentials.credentials)


async def get_current_staff_user(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Dependency for registrar/faculty endpoints.

    Raises:
        HTTPException 403: If the caller is not staff
    """
    if not user.is_staff:
        logger.warning(f"Access denied: user {user.id} has role '{user.role}'")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "STAFF_ACCESS_REQUIRED",
                "message": "Registrar or faculty access is required for this endpoint.",
            },
        )
    return user


__all__ = [
    "CurrentUser",
    "STAFF_ROLES",
    "get_current_staff_user",
    "get_current_user",
    "user_from_token",
]
