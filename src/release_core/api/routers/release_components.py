"""Release Components API router."""
import logging
from math import ceil
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ... import crud
from ...action_history import track_action
from ...database import get_db
from ...models import User
from ...schemas import ReleaseComponentCreate, ReleaseComponentListResponse, ReleaseComponentResponse
from ..dependencies import get_current_user, get_session_token

logger = logging.getLogger("release-core.api.release_components")

router = APIRouter(prefix="/release-components", tags=["release-components"])


@router.get("", response_model=ReleaseComponentListResponse)
async def list_release_components(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    db: Session = Depends(get_db),
):
    """List release components, newest first."""
    rows, total = crud.list_release_components(db, page, page_size)
    return ReleaseComponentListResponse(
        items=[ReleaseComponentResponse.model_validate(c) for c in rows],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.post("", response_model=ReleaseComponentResponse, status_code=status.HTTP_201_CREATED)
async def create_release_component(
    data: ReleaseComponentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a release component.

    - **name**: Unique component name
    - **color**: One of the palette colors (e.g. ``blue``)
    - **naming_pattern**: e.g. ``api-{release_version}.{increment}``
    - **release_scope**: ``global`` or ``version_bound`` (default)
    """
    with track_action(
        db,
        action_type="releaseComponent.create",
        message=f"Create release component {data.name}",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ):
        component = crud.create_release_component(db, data, current_user.id)
    return ReleaseComponentResponse.model_validate(component)


@router.get("/{component_id}", response_model=ReleaseComponentResponse)
async def get_release_component(
    component_id: UUID,
    db: Session = Depends(get_db),
):
    return ReleaseComponentResponse.model_validate(crud.get_release_component(db, component_id))
