"""Authentication dependencies for API routers.

A request is authenticated either by an ``Authorization: Bearer <token>``
personal access token or by the session cookie set at login.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..auth import authenticate_token
from ..crud import get_user_by_id
from ..database import get_db
from ..errors import UnauthorizedError
from ..models import User

logger = logging.getLogger("release-core.api.dependencies")

SESSION_USER_KEY = "user_id"
SESSION_TOKEN_KEY = "session_token"


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


async def get_current_user_optional(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Resolve the calling user, or None for anonymous requests."""
    token = _bearer_token(request)
    if token:
        user = authenticate_token(db, token)
        if user is None:
            logger.warning("Rejected invalid or expired bearer token")
        return user

    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        return None
    try:
        return get_user_by_id(db, UUID(user_id))
    except ValueError:
        request.session.clear()
        return None


async def get_current_user(
    current_user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Require an authenticated user (401 otherwise)."""
    if current_user is None:
        raise UnauthorizedError("Authentication required")
    return current_user


def get_session_token(request: Request) -> Optional[str]:
    """Browser session token used to group action history, if any."""
    return request.session.get(SESSION_TOKEN_KEY)
