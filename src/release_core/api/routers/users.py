"""Users API router: the current user and their access tokens."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ... import models
from ...action_history import track_action
from ...auth import create_access_token, revoke_token
from ...database import get_db
from ...errors import NotFoundError
from ...schemas import AccessTokenCreate, AccessTokenCreated, AccessTokenResponse, UserResponse
from ..dependencies import get_current_user, get_session_token

logger = logging.getLogger("release-core.api.users")

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: models.User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.get("/me/tokens", response_model=list[AccessTokenResponse])
async def list_my_tokens(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Access tokens of the current user, newest first."""
    tokens = (
        db.query(models.PersonalAccessToken)
        .filter(models.PersonalAccessToken.user_id == current_user.id)
        .order_by(models.PersonalAccessToken.created_at.desc())
        .all()
    )
    return [AccessTokenResponse.model_validate(t) for t in tokens]


@router.post("/me/tokens", response_model=AccessTokenCreated, status_code=status.HTTP_201_CREATED)
async def create_my_token(
    data: AccessTokenCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Issue a new access token. The raw token is only returned here."""
    with track_action(
        db,
        action_type="accessToken.create",
        message=f"Create access token {data.name}",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ):
        record, raw = create_access_token(db, current_user, data.name)
    return AccessTokenCreated(
        id=record.id,
        name=record.name,
        created_at=record.created_at,
        last_used_at=record.last_used_at,
        expires_at=record.expires_at,
        revoked_at=record.revoked_at,
        token=raw,
    )


@router.delete("/me/tokens/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_my_token(
    token_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    with track_action(
        db,
        action_type="accessToken.revoke",
        message=f"Revoke access token {token_id}",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ):
        if not revoke_token(db, token_id, user_id=current_user.id):
            raise NotFoundError("Access token not found", details={"id": str(token_id)})
    logger.info(f"User {current_user.email} revoked token {token_id}")
