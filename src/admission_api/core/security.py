"""
Security Utilities

JWT verification for tokens issued by the identity service. This API never
issues credentials itself; it only decodes and validates bearer tokens.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from admission_api.core.config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT.

    Args:
        token: Encoded JWT string

    Returns:
        The token claims, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired JWT")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid JWT: {e.__class__.__name__}")
        return None


def create_access_token(
    subject: str,
    role: str,
    expires_delta: timedelta = timedelta(minutes=30),
    **extra_claims: Any,
) -> str:
    """
    Create a signed access token.

    Used by the seed script and tests to mint tokens in the same format the
    identity service issues.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": subject,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + expires_delta,
        **extra_claims,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
