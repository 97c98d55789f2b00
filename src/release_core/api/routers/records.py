"""Endpoints shared by patches and built versions.

Both record kinds expose the same read, default-selection and successor
endpoints under their own prefix; ``build_record_router`` wires them for
one ``RecordKind``.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ... import lifecycle, records, successors
from ...action_history import track_action
from ...database import get_db
from ...models import User
from ...records import RecordKind
from ...schemas import (
    ComponentVersionResponse,
    DefaultSelectionResponse,
    StatusResponse,
    SuccessorArrangeRequest,
    SuccessorArrangeResponse,
    TransitionResponse,
)
from ...state_machine import STATUS_LABELS, get_allowed_actions
from ..dependencies import get_current_user, get_session_token


def build_record_router(kind: RecordKind, prefix: str, tag: str) -> APIRouter:
    """Router for ``/{prefix}/{id}/...`` endpoints of one record kind."""
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.get("/{record_id}/component-versions", response_model=list[ComponentVersionResponse])
    async def list_component_versions(record_id: UUID, db: Session = Depends(get_db)):
        """Component versions attached to the record, oldest first."""
        rows = records.list_component_versions(db, kind, record_id)
        return [ComponentVersionResponse.model_validate(row) for row in rows]

    @router.get("/{record_id}/default-selection", response_model=DefaultSelectionResponse)
    async def get_default_selection(record_id: UUID, db: Session = Depends(get_db)):
        """Component IDs to pre-select when arranging the successor."""
        return DefaultSelectionResponse(
            selected_release_component_ids=records.get_default_selection(db, kind, record_id),
        )

    @router.post("/{record_id}/successor", response_model=SuccessorArrangeResponse)
    async def arrange_successor(
        record_id: UUID,
        data: SuccessorArrangeRequest,
        request: Request,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        Split component versions between the record and its successor.

        Selected (and global) components stay on the record and get a row on
        the successor; unselected rows move to the successor.
        """
        with track_action(
            db,
            action_type=f"{kind.name}.successor",
            message=f"Arrange successor for {kind.label.lower()} {record_id}",
            user_id=current_user.id,
            session_token=get_session_token(request),
            metadata={
                f"{kind.name}Id": str(record_id),
                "selectedReleaseComponentIds": [str(c) for c in data.selected_release_component_ids],
            },
        ) as action_logger:
            result = successors.arrange_successor(
                db, kind, record_id, data.selected_release_component_ids, current_user.id, action_logger
            )
        return SuccessorArrangeResponse(**result)

    @router.get("/{record_id}/transitions", response_model=list[TransitionResponse])
    async def get_transitions(record_id: UUID, db: Session = Depends(get_db)):
        """Transition history, oldest first."""
        return [TransitionResponse.model_validate(t) for t in lifecycle.get_history(db, kind, record_id)]

    @router.get("/{record_id}/status", response_model=StatusResponse)
    async def get_status(record_id: UUID, db: Session = Depends(get_db)):
        status = lifecycle.get_current_status(db, kind, record_id)
        return StatusResponse(
            id=record_id,
            status=status,
            status_label=STATUS_LABELS[status],
            allowed_actions=get_allowed_actions(status),
        )

    return router
