"""Session login/logout with a personal access token."""
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import authenticate_token
from ...database import get_db
from ...errors import UnauthorizedError
from ...models import User
from ...schemas import LoginRequest, SessionResponse, UserResponse
from ..dependencies import SESSION_TOKEN_KEY, SESSION_USER_KEY, get_current_user_optional

logger = logging.getLogger("release-core.api.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=SessionResponse)
async def login(
    data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Exchange a personal access token for a session cookie."""
    user = authenticate_token(db, data.token.strip())
    if user is None:
        raise UnauthorizedError("Invalid or expired token")

    request.session.clear()
    request.session[SESSION_USER_KEY] = str(user.id)
    request.session[SESSION_TOKEN_KEY] = secrets.token_urlsafe(24)
    logger.info(f"User {user.email} logged in")
    return SessionResponse(authenticated=True, user=UserResponse.model_validate(user))


@router.post("/logout", response_model=SessionResponse)
async def logout(request: Request):
    request.session.clear()
    return SessionResponse(authenticated=False)


@router.get("/session", response_model=SessionResponse)
async def get_session(current_user: Optional[User] = Depends(get_current_user_optional)):
    if current_user is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, user=UserResponse.model_validate(current_user))
