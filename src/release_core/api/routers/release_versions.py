"""Release Versions API router.

Release versions own their patches and built versions; the nested
endpoints below create those records and drive their lifecycle
(``/release-versions/{id}/patches/{patch_id}/start-deployment`` etc.).
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ... import crud, lifecycle, preflight, records
from ...action_history import record_subactions, track_action
from ...database import get_db
from ...errors import ValidationError
from ...models import User
from ...records import BUILT_VERSION, PATCH, RecordKind
from ...relations import resolve_relations
from ...schemas import (
    PaginationMeta,
    PreflightRecordSummary,
    PreflightResponse,
    ReleaseDefaultsResponse,
    ReleaseTrackUpdate,
    ReleaseVersionCreate,
    ReleaseVersionListResponse,
    ReleaseVersionResponse,
    ReleaseVersionUpdate,
    ReleaseVersionWithBuildsResponse,
    TransitionResponse,
    TransitionResultResponse,
    VersionRecordCreate,
    VersionRecordResponse,
)
from ...state_machine import parse_action
from ..dependencies import get_current_user, get_current_user_optional, get_session_token
from ..responses import record_to_response, release_to_response

logger = logging.getLogger("release-core.api.release_versions")

router = APIRouter(prefix="/release-versions", tags=["release-versions"])


# =============================================================================
# Release versions
# =============================================================================


@router.get("", response_model=ReleaseVersionListResponse)
async def list_release_versions(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    sort_by: str = Query("-createdAt", description="createdAt or name, '-' prefix for descending"),
    relations: Optional[list[str]] = Query(None, description="creater, patches, patches.deployedComponents, patches.transitions"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """List release versions with pagination."""
    relation_state = resolve_relations(relations)
    rows, total = crud.list_release_versions(db, page, page_size, sort_by, relation_state)
    return ReleaseVersionListResponse(
        data=[release_to_response(r, relation_state) for r in rows],
        pagination=PaginationMeta(
            page=page,
            page_size=page_size,
            total_items=total,
            has_next_page=page * page_size < total,
        ),
    )


@router.post("", response_model=ReleaseVersionResponse, status_code=status.HTTP_201_CREATED)
async def create_release_version(
    data: ReleaseVersionCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a release version.

    The initial built version and patch (``<name>.0``) are created with it.
    """
    with track_action(
        db,
        action_type="releaseVersion.create",
        message=f"Create release {data.name.strip()}",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ) as action_logger:
        release, audit = crud.create_release_version(db, data.name, current_user.id)
        record_subactions(action_logger, audit)
    return release_to_response(release)


@router.get("/new-values", response_model=ReleaseDefaultsResponse)
async def get_new_release_values(
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """Suggested name and track for the next release version."""
    return ReleaseDefaultsResponse(**crud.get_release_defaults(db))


@router.get("/with-builds", response_model=list[ReleaseVersionWithBuildsResponse])
async def list_release_versions_with_builds(
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """All release versions with their built versions, newest first."""
    releases = crud.list_release_versions_with_builds(db)
    return [
        ReleaseVersionWithBuildsResponse(
            id=r.id,
            name=r.name,
            release_track=r.release_track,
            created_at=r.created_at,
            built_versions=[
                record_to_response(b)
                for b in sorted(r.built_versions, key=lambda b: (b.created_at, b.increment), reverse=True)
            ],
        )
        for r in releases
    ]


@router.get("/{release_id}", response_model=ReleaseVersionResponse)
async def get_release_version(
    release_id: UUID,
    relations: Optional[list[str]] = Query(None),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """Get a release version, optionally embedding relations."""
    relation_state = resolve_relations(relations)
    release = crud.get_release_version(db, release_id, relation_state)
    return release_to_response(release, relation_state)


@router.patch("/{release_id}", response_model=ReleaseVersionResponse)
async def update_release_version(
    release_id: UUID,
    data: ReleaseVersionUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Rename a release version and/or change its track."""
    with track_action(
        db,
        action_type="releaseVersion.update",
        message=f"Update release {release_id}",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ):
        release = crud.update_release_version(db, release_id, data)
    return release_to_response(release)


@router.patch("/{release_id}/track", response_model=ReleaseVersionResponse)
async def update_release_track(
    release_id: UUID,
    data: ReleaseTrackUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Move a release version to another track."""
    with track_action(
        db,
        action_type="releaseVersion.track",
        message=f"Set release {release_id} track to {data.release_track.value}",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ):
        release = crud.update_release_track(db, release_id, data.release_track)
    return release_to_response(release)


# =============================================================================
# Nested patches / built versions
# =============================================================================


def _create_record(
    kind: RecordKind,
    release_id: UUID,
    data: VersionRecordCreate,
    request: Request,
    db: Session,
    current_user: User,
) -> VersionRecordResponse:
    with track_action(
        db,
        action_type=f"{kind.name}.create",
        message=f"Create {kind.label.lower()} {data.name.strip()}",
        user_id=current_user.id,
        session_token=get_session_token(request),
        metadata={"releaseId": str(release_id)},
    ) as action_logger:
        record, audit = records.create_record(db, kind, release_id, data.name, current_user.id)
        record_subactions(action_logger, audit)
    return record_to_response(record)


def _transition_record(
    kind: RecordKind,
    release_id: UUID,
    record_id: UUID,
    action: str,
    request: Request,
    db: Session,
    current_user: User,
) -> TransitionResultResponse:
    with track_action(
        db,
        action_type=f"{kind.name}.transition",
        message=f"{kind.label} {record_id}: {action}",
        user_id=current_user.id,
        session_token=get_session_token(request),
        metadata={"releaseId": str(release_id), f"{kind.name}Id": str(record_id), "action": action},
    ) as action_logger:
        parsed = parse_action(action)
        records.get_record_in_release(db, kind, release_id, record_id)
        result = lifecycle.transition(db, kind, record_id, parsed, current_user.id, action_logger)
    return TransitionResultResponse(
        status=result["status"],
        record=record_to_response(result["record"]),
    )


RECORD_SORT_CREATED = "createdAt"
RECORD_SORT_STATUS = "status"


def _list_records(kind: RecordKind, release_id: UUID, sort_by: str, db: Session) -> list[VersionRecordResponse]:
    if sort_by not in (RECORD_SORT_CREATED, RECORD_SORT_STATUS):
        raise ValidationError(
            f"Invalid sort_by '{sort_by}'",
            details={"allowed": [RECORD_SORT_CREATED, RECORD_SORT_STATUS]},
        )
    rows = records.list_records(db, kind, release_id)
    if sort_by == RECORD_SORT_STATUS:
        rows = records.sort_by_status(rows)
    return [record_to_response(r) for r in rows]


@router.get("/{release_id}/patches", response_model=list[VersionRecordResponse])
async def list_patches(
    release_id: UUID,
    sort_by: str = Query(RECORD_SORT_CREATED, description="createdAt (oldest first) or status"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """List a release's patches."""
    return _list_records(PATCH, release_id, sort_by, db)


@router.post("/{release_id}/patches", response_model=VersionRecordResponse, status_code=status.HTTP_201_CREATED)
async def create_patch(
    release_id: UUID,
    data: VersionRecordCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a patch; global components get a component version right away."""
    return _create_record(PATCH, release_id, data, request, db, current_user)


@router.get("/{release_id}/patches/{patch_id}", response_model=VersionRecordResponse)
async def get_patch(
    release_id: UUID,
    patch_id: UUID,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    return record_to_response(records.get_record_in_release(db, PATCH, release_id, patch_id))


@router.get("/{release_id}/patches/{patch_id}/preflight", response_model=PreflightResponse)
async def get_patch_preflight(
    release_id: UUID,
    patch_id: UUID,
    action: str = Query(..., description="Action to check, e.g. start-deployment"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """Describe what applying ``action`` to the patch would do, without doing it."""
    result = preflight.get_preflight(db, release_id, patch_id, action, PATCH)
    return _preflight_response(result)


@router.post("/{release_id}/patches/{patch_id}/{action}", response_model=TransitionResultResponse)
async def transition_patch(
    release_id: UUID,
    patch_id: UUID,
    action: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Apply a lifecycle action: start-deployment, cancel-deployment, mark-active,
    revert-to-deployment, deprecate or reactivate."""
    return _transition_record(PATCH, release_id, patch_id, action, request, db, current_user)


@router.get("/{release_id}/built-versions", response_model=list[VersionRecordResponse])
async def list_built_versions(
    release_id: UUID,
    sort_by: str = Query(RECORD_SORT_CREATED, description="createdAt (oldest first) or status"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """List a release's built versions."""
    return _list_records(BUILT_VERSION, release_id, sort_by, db)


@router.post("/{release_id}/built-versions", response_model=VersionRecordResponse, status_code=status.HTTP_201_CREATED)
async def create_built_version(
    release_id: UUID,
    data: VersionRecordCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _create_record(BUILT_VERSION, release_id, data, request, db, current_user)


@router.get("/{release_id}/built-versions/{built_id}", response_model=VersionRecordResponse)
async def get_built_version(
    release_id: UUID,
    built_id: UUID,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    return record_to_response(records.get_record_in_release(db, BUILT_VERSION, release_id, built_id))


@router.get("/{release_id}/built-versions/{built_id}/preflight", response_model=PreflightResponse)
async def get_built_version_preflight(
    release_id: UUID,
    built_id: UUID,
    action: str = Query(...),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    result = preflight.get_preflight(db, release_id, built_id, action, BUILT_VERSION)
    return _preflight_response(result)


@router.post("/{release_id}/built-versions/{built_id}/{action}", response_model=TransitionResultResponse)
async def transition_built_version(
    release_id: UUID,
    built_id: UUID,
    action: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Apply a lifecycle action to a built version."""
    return _transition_record(BUILT_VERSION, release_id, built_id, action, request, db, current_user)


def _preflight_response(result: dict) -> PreflightResponse:
    return PreflightResponse(
        action=result["action"],
        action_label=result["action_label"],
        from_status=result["from_status"],
        to_status=result["to_status"],
        allowed=result["allowed"],
        blockers=result["blockers"],
        warnings=result["warnings"],
        expected_side_effects=result["expected_side_effects"],
        patch=PreflightRecordSummary(**result["patch"]),
        history_preview=[TransitionResponse.model_validate(t) for t in result["history_preview"]],
        action_context=result["action_context"],
    )
