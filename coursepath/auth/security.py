"""Access token validation.

Learner identity comes from JWTs minted by the identity service and signed
with the shared secret. This service never issues tokens to clients;
``create_access_token`` exists so local tooling and tests can mint tokens
carrying the same claims.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from coursepath.config.settings import get_settings


ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Mint an access token with the identity service's claim layout.

    Args:
        data: Payload claims (typically {"sub": user_id, "role": ...})
        expires_delta: Token lifetime (default from settings)
    """
    settings = get_settings()
    now = datetime.now(UTC)
    lifetime = expires_delta or timedelta(
        minutes=settings.auth_access_token_expire_minutes
    )

    claims = {**data, "type": ACCESS_TOKEN_TYPE, "iat": now, "exp": now + lifetime}
    if settings.auth_issuer:
        claims.setdefault("iss", settings.auth_issuer)
    if settings.auth_audience:
        claims.setdefault("aud", settings.auth_audience)

    return jwt.encode(claims, settings.auth_secret_key, algorithm=settings.auth_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Validate an access token and return its claims.

    Checks signature, expiry (with the configured leeway), the token type,
    the ``sub`` claim, and issuer/audience when configured.

    Raises:
        JWTError: If any check fails
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
        audience=settings.auth_audience,
        issuer=settings.auth_issuer,
        options={
            "verify_aud": settings.auth_audience is not None,
            "leeway": settings.auth_leeway_seconds,
        },
    )

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        msg = f"Invalid token type: expected '{ACCESS_TOKEN_TYPE}'"
        raise JWTError(msg)

    if not payload.get("sub"):
        msg = "Access token missing sub claim"
        raise JWTError(msg)

    return payload
