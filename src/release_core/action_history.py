"""User action history.

Every mutating API call is recorded as an ActionLog row, with optional
ActionSubactionLog rows describing the steps it performed. History is
listed per browser session (or per user for token clients), newest first.
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import models
from .errors import ValidationError
from .models import ActionStatus

logger = logging.getLogger("release-core.action_history")

DEFAULT_HISTORY_LIMIT = 5


class ActionLogger:
    """Writes subactions and the final status for one ActionLog row."""

    def __init__(self, db: Session, action_id: UUID):
        self.db = db
        self.id = action_id

    def subaction(
        self,
        subaction_type: str,
        message: str,
        status: ActionStatus = ActionStatus.SUCCESS,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.db.add(models.ActionSubactionLog(
            action_id=self.id,
            subaction_type=subaction_type,
            message=message.strip(),
            status=status,
            subaction_metadata=metadata,
        ))
        self.db.commit()

    def complete(
        self,
        status: ActionStatus,
        message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        action = self.db.get(models.ActionLog, self.id)
        if action is None:
            logger.warning(f"Action {self.id} disappeared before completion")
            return
        action.status = status
        if message:
            action.message = message.strip()
        if metadata is not None:
            action.action_metadata = metadata
        self.db.commit()


def start_action(
    db: Session,
    action_type: str,
    message: str,
    user_id: Optional[UUID],
    session_token: Optional[str] = None,
    workflow_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ActionLogger:
    """Create an ActionLog row (initially ``success``) and return its logger."""
    action = models.ActionLog(
        action_type=action_type,
        message=message.strip(),
        status=ActionStatus.SUCCESS,
        session_token=session_token,
        workflow_id=workflow_id,
        action_metadata=metadata,
        created_by_id=user_id,
    )
    db.add(action)
    db.commit()
    db.refresh(action)
    return ActionLogger(db, action.id)


@contextmanager
def track_action(
    db: Session,
    action_type: str,
    message: str,
    user_id: Optional[UUID],
    session_token: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Iterator[ActionLogger]:
    """
    Record an action around a block of work.

    The action is completed as ``success`` when the block returns, or as
    ``failed`` (with the error message) when it raises; the exception is
    re-raised either way.
    """
    action_logger = start_action(
        db,
        action_type=action_type,
        message=message,
        user_id=user_id,
        session_token=session_token,
        metadata=metadata,
    )
    try:
        yield action_logger
    except Exception as exc:
        # Discard whatever the failed block left pending before recording the failure
        db.rollback()
        action_logger.complete(
            ActionStatus.FAILED,
            message=f"{message} failed: {exc}",
        )
        raise
    action_logger.complete(ActionStatus.SUCCESS)


def list_by_session(
    db: Session,
    session_token: Optional[str],
    user_id: Optional[UUID],
    limit: int = DEFAULT_HISTORY_LIMIT,
    cursor: Optional[UUID] = None,
) -> dict[str, Any]:
    """
    List actions for a session, falling back to the user's actions.

    Args:
        db: Database session
        session_token: Browser session token (takes precedence)
        user_id: User ID used when no session token is given
        limit: Page size
        cursor: ID of the last item of the previous page

    Returns:
        Dict with items, next_cursor and has_more

    Raises:
        ValidationError: If ``cursor`` is not an action of this session or user
    """
    if not session_token and not user_id:
        return {"items": [], "next_cursor": None, "has_more": False}

    query = db.query(models.ActionLog).options(selectinload(models.ActionLog.subactions))
    if session_token:
        query = query.filter(models.ActionLog.session_token == session_token)
    else:
        query = query.filter(models.ActionLog.created_by_id == user_id)

    if cursor:
        anchor = query.filter(models.ActionLog.id == cursor).first()
        if anchor is None:
            raise ValidationError("Unknown history cursor", details={"cursor": str(cursor)})
        query = query.filter(or_(
            models.ActionLog.created_at < anchor.created_at,
            and_(
                models.ActionLog.created_at == anchor.created_at,
                models.ActionLog.id < anchor.id,
            ),
        ))

    rows = (
        query.order_by(models.ActionLog.created_at.desc(), models.ActionLog.id.desc())
        .limit(limit + 1)
        .all()
    )

    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = items[-1].id if has_more and items else None
    return {"items": items, "next_cursor": next_cursor, "has_more": has_more}


def record_subactions(
    action_logger: Optional[ActionLogger],
    entries: list[dict[str, Any]],
) -> None:
    """
    Write collected audit entries as subactions of an action.

    Failures are logged and absorbed so audit problems never undo a
    committed change.
    """
    if action_logger is None:
        return
    for entry in entries:
        try:
            action_logger.subaction(**entry)
        except SQLAlchemyError as exc:
            action_logger.db.rollback()
            logger.error(f"Failed to log subaction {entry.get('subaction_type')}: {exc}")
