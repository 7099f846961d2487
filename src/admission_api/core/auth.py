"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
Tokens are issued by the identity service; this module only validates them
(via security.py) and enforces the caller's role.

Roles:
- student: applies, withdraws, accepts offers
- institution: decides, publishes, reads its waitlists

SECURITY NOTE:
- Development mode test tokens are ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from admission_api.core.config import settings
from admission_api.core.security import decode_token

logger = logging.getLogger(__name__)

ROLE_STUDENT = "student"
ROLE_INSTITUTION = "institution"
VALID_ROLES = frozenset({ROLE_STUDENT, ROLE_INSTITUTION})

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller, populated from JWT claims.

    Attributes:
        id: Student ID or institution ID, depending on role
        role: 'student' or 'institution'
    """

    id: UUID
    role: str

    def __str__(self) -> str:
        return f"Principal(id={self.id}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    Both the loaded settings and the raw PYTHON_ENV variable must agree that
    this is a development environment.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


# Development mode flag - allows "<role>:<uuid>" test tokens for LOCAL testing ONLY
_DEVELOPMENT_MODE = _is_dev_mode_safe()


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _parse_dev_token(token: str) -> Principal | None:
    """Accept ``student:<uuid>`` / ``institution:<uuid>`` tokens in development."""
    role, _, raw_id = token.partition(":")
    if role not in VALID_ROLES:
        return None
    try:
        return Principal(id=UUID(raw_id), role=role)
    except ValueError:
        return None


def validate_token(token: str) -> Principal:
    """
    Validate a bearer token and extract the principal.

    Args:
        token: JWT token string from Authorization header

    Returns:
        Principal with the token's subject and role

    Raises:
        HTTPException 401: If the token is invalid, expired, or has bad claims
    """
    if _DEVELOPMENT_MODE:
        principal = _parse_dev_token(token)
        if principal:
            logger.debug("Development mode: Using test token")
            return principal

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        principal_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e

    role = payload.get("role", "")
    if role not in VALID_ROLES:
        logger.warning(f"Token for {principal_id} has unknown role '{role}'")
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")

    return Principal(id=principal_id, role=role)


def _require_role(principal: Principal, role: str) -> Principal:
    if principal.role != role:
        logger.warning(f"Access denied: {principal} but '{role}' is required")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": f"{role.upper()}_ACCESS_REQUIRED",
                "message": f"This endpoint is only available to {role} accounts.",
            },
        )
    return principal


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """FastAPI dependency returning the authenticated caller of any role."""
    return validate_token(credentials.credentials)


async def get_current_student(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """
    FastAPI dependency for student endpoints.

    Usage:
        @router.post("/applications")
        async def apply(student: Principal = Depends(get_current_student)):
            # student.id is the student's UUID

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the caller is not a student
    """
    return _require_role(principal, ROLE_STUDENT)


async def get_current_institution(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """
    FastAPI dependency for institution endpoints.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the caller is not an institution
    """
    return _require_role(principal, ROLE_INSTITUTION)


__all__ = [
    "Principal",
    "get_current_principal",
    "get_current_student",
    "get_current_institution",
    "validate_token",
]
