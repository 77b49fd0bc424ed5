"""FastAPI dependencies resolving the learner behind a request."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from coursepath.auth.schemas import Learner
from coursepath.auth.security import decode_access_token
from coursepath.core.context import set_user_id


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_from_header(request: Request) -> str | None:
    """Bearer token from the Authorization header, if well formed."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def learner_from_claims(payload: dict[str, Any]) -> Learner:
    """Build the learner identity from validated token claims.

    Raises:
        ValueError: If ``sub`` is not a UUID
    """
    return Learner(id=UUID(str(payload["sub"])), role=payload.get("role"))


async def get_current_learner(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Learner:
    """Authenticated learner, bound to the logging context.

    Raises:
        HTTPException(401): Missing, invalid or expired token
    """
    if token is None:
        raise _unauthorized("Access token not provided")

    try:
        learner = learner_from_claims(decode_access_token(token))
    except (JWTError, ValueError) as e:
        raise _unauthorized("Invalid or expired token") from e

    set_user_id(learner.id)
    return learner


CurrentLearner = Annotated[Learner, Depends(get_current_learner)]
