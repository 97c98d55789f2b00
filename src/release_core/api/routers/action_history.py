"""Action History API router."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ... import action_history
from ...database import get_db
from ...models import User
from ...schemas import ActionHistoryResponse
from ..dependencies import get_current_user, get_session_token
from ..responses import action_to_entry

router = APIRouter(prefix="/action-history", tags=["action-history"])


@router.get("", response_model=ActionHistoryResponse)
async def list_action_history(
    request: Request,
    limit: int = Query(action_history.DEFAULT_HISTORY_LIMIT, ge=1, le=100),
    cursor: Optional[UUID] = Query(None, description="ID of the last item of the previous page"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Recent actions of the current browser session, newest first.

    Token clients without a session see their own actions.
    """
    result = action_history.list_by_session(
        db,
        session_token=get_session_token(request),
        user_id=current_user.id,
        limit=limit,
        cursor=cursor,
    )
    return ActionHistoryResponse(
        items=[action_to_entry(a) for a in result["items"]],
        next_cursor=result["next_cursor"],
        has_more=result["has_more"],
    )
