"""Model → response schema converters shared by routers."""
from typing import Optional

from ..models import ActionLog, PatchStatus, ReleaseVersion
from ..relations import RelationState
from ..schemas import (
    ActionHistoryEntry,
    ComponentVersionResponse,
    PatchDetailResponse,
    ReleaseVersionResponse,
    SubactionResponse,
    TransitionResponse,
    UserResponse,
    VersionRecordResponse,
)
from ..state_machine import get_allowed_actions


def record_to_response(record) -> VersionRecordResponse:
    """Convert a Patch or BuiltVersion model to response schema."""
    status = PatchStatus(record.current_status or PatchStatus.IN_DEVELOPMENT)
    return VersionRecordResponse(
        id=record.id,
        version_id=record.version_id,
        name=record.name,
        increment=record.increment,
        current_status=status,
        allowed_actions=get_allowed_actions(status),
        token_values=record.token_values or {},
        created_by_id=record.created_by_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def patch_to_detail(patch, relations: RelationState) -> PatchDetailResponse:
    base = record_to_response(patch).model_dump()
    return PatchDetailResponse(
        **base,
        deployed_components=(
            [ComponentVersionResponse.model_validate(cv) for cv in patch.component_versions]
            if relations.include_patch_components else None
        ),
        transitions=(
            [TransitionResponse.model_validate(t) for t in patch.transitions]
            if relations.include_patch_transitions else None
        ),
    )


def release_to_response(
    release: ReleaseVersion,
    relations: Optional[RelationState] = None,
) -> ReleaseVersionResponse:
    """Convert ReleaseVersion model to response schema, embedding requested relations."""
    creater = None
    patches = None
    if relations is not None:
        if relations.include_creater and release.creator is not None:
            creater = UserResponse.model_validate(release.creator)
        if relations.include_patches:
            patches = [patch_to_detail(p, relations) for p in release.patches]

    return ReleaseVersionResponse(
        id=release.id,
        name=release.name,
        release_track=release.release_track,
        last_used_increment=release.last_used_increment,
        created_by_id=release.created_by_id,
        created_at=release.created_at,
        updated_at=release.updated_at,
        creater=creater,
        patches=patches,
    )


def action_to_entry(action: ActionLog) -> ActionHistoryEntry:
    return ActionHistoryEntry(
        id=action.id,
        action_type=action.action_type,
        message=action.message,
        status=action.status,
        metadata=action.action_metadata,
        created_at=action.created_at,
        created_by_id=action.created_by_id,
        subactions=[
            SubactionResponse(
                id=sub.id,
                subaction_type=sub.subaction_type,
                message=sub.message,
                status=sub.status,
                metadata=sub.subaction_metadata,
                created_at=sub.created_at,
            )
            for sub in action.subactions
        ],
    )
