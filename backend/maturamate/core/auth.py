from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from maturamate.core.config import settings
from maturamate.core.database import get_db
from maturamate.repositories.user_repository import UserRepository


def create_access_token(user_id: UUID, expires_in: timedelta = timedelta(hours=12)) -> str:
    """Issue a bearer token for ``user_id``."""
    payload = {
        "sub": str(user_id),
        "type": "access",
        "exp": datetime.now(UTC) + expires_in,
    }
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def verify_access_token(token: str) -> UUID:
    """Decode a bearer token and return the user id.

    Raises jwt.ExpiredSignatureError or jwt.InvalidTokenError on failure.
    """
    payload = jwt.decode(
        token, settings.AUTH_JWT_SECRET, algorithms=[settings.AUTH_JWT_ALGORITHM]
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Invalid token type")
    return UUID(payload["sub"])


def get_current_user_id(
    request: Request,
    db: Session = Depends(get_db),
) -> UUID:
    """Extract the authenticated user from the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = auth_header[7:]
    if not token:
        raise HTTPException(status_code=401, detail="Token is required")

    try:
        user_id = verify_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired") from None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token") from None

    if UserRepository(db).get_by_id(user_id) is None:
        raise HTTPException(status_code=401, detail="Unknown user")

    return user_id
