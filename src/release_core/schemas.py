"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .models import (
    ActionStatus,
    JiraReleaseStatus,
    PatchAction,
    PatchStatus,
    ReleaseScope,
    ReleaseTrack,
)
from .versioning import validate_pattern


ALLOWED_COLORS = (
    "slate", "gray", "zinc", "neutral", "stone",
    "red", "orange", "amber", "yellow", "lime",
    "green", "emerald", "teal", "cyan", "sky",
    "blue", "indigo", "violet", "purple", "fuchsia",
    "pink", "rose",
)


# User Schemas

class UserResponse(BaseModel):
    """Public user fields."""

    id: UUID
    email: str
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Personal access token")


class SessionResponse(BaseModel):
    authenticated: bool
    user: Optional[UserResponse] = None


class AccessTokenCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Label, e.g. 'CI pipeline'")


class AccessTokenResponse(BaseModel):
    """Token metadata; never includes the token itself."""

    id: UUID
    name: str
    created_at: datetime
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AccessTokenCreated(AccessTokenResponse):
    """Returned once at creation: the raw token cannot be retrieved again."""

    token: str


# Release Version Schemas

class ReleaseVersionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ReleaseVersionUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    release_track: Optional[ReleaseTrack] = None


class ReleaseTrackUpdate(BaseModel):
    release_track: ReleaseTrack


class ReleaseDefaultsResponse(BaseModel):
    """Suggested values for the next release version."""

    name: str
    release_track: ReleaseTrack

    model_config = ConfigDict(use_enum_values=True)


class ComponentVersionResponse(BaseModel):
    id: UUID
    release_component_id: UUID
    name: str
    increment: int
    token_values: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransitionResponse(BaseModel):
    """One status change in a record's history."""

    id: UUID
    from_status: PatchStatus
    to_status: PatchStatus
    action: PatchAction
    created_at: datetime
    created_by_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class VersionRecordResponse(BaseModel):
    """A patch or built version."""

    id: UUID
    version_id: UUID
    name: str
    increment: int
    current_status: PatchStatus
    allowed_actions: list[PatchAction] = Field(default_factory=list, description="Actions available from current_status")
    token_values: dict[str, Any] = Field(default_factory=dict)
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class PatchDetailResponse(VersionRecordResponse):
    """Patch with optionally embedded relations."""

    deployed_components: Optional[list[ComponentVersionResponse]] = None
    transitions: Optional[list[TransitionResponse]] = None


class ReleaseVersionResponse(BaseModel):
    id: UUID
    name: str
    release_track: ReleaseTrack
    last_used_increment: Optional[int] = None
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    # Present only when requested via ?relations=
    creater: Optional[UserResponse] = None
    patches: Optional[list[PatchDetailResponse]] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total_items: int
    has_next_page: bool


class ReleaseVersionListResponse(BaseModel):
    data: list[ReleaseVersionResponse]
    pagination: PaginationMeta


class ReleaseVersionWithBuildsResponse(BaseModel):
    id: UUID
    name: str
    release_track: ReleaseTrack
    created_at: datetime
    built_versions: list[VersionRecordResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Patch / Built Version Schemas

class VersionRecordCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TransitionResultResponse(BaseModel):
    status: PatchStatus
    record: VersionRecordResponse

    model_config = ConfigDict(use_enum_values=True)


class StatusResponse(BaseModel):
    id: UUID
    status: PatchStatus
    status_label: str
    allowed_actions: list[PatchAction]

    model_config = ConfigDict(use_enum_values=True)


class DefaultSelectionResponse(BaseModel):
    selected_release_component_ids: list[UUID]


class SuccessorArrangeRequest(BaseModel):
    """Components shipping with the record; global components are always added."""

    selected_release_component_ids: list[UUID] = Field(default_factory=list)


class SuccessorArrangeResponse(BaseModel):
    moved: int
    created: int
    updated: int
    successor_id: UUID


class PreflightRecordSummary(BaseModel):
    id: UUID
    name: str
    current_status: PatchStatus
    version_id: UUID

    model_config = ConfigDict(use_enum_values=True)


class PreflightResponse(BaseModel):
    """What applying an action would do right now."""

    action: PatchAction
    action_label: str
    from_status: PatchStatus
    to_status: PatchStatus
    allowed: bool
    blockers: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    expected_side_effects: list[str] = Field(default_factory=list)
    patch: PreflightRecordSummary
    history_preview: list[TransitionResponse] = Field(default_factory=list)
    action_context: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(use_enum_values=True)


# Release Component Schemas

class ReleaseComponentCreate(BaseModel):
    """Schema for creating a release component.

    The naming pattern may only use the supported tokens:
    {release_version}, {built_version}, {patch} and {increment}.
    """

    name: str = Field(..., min_length=1, max_length=255)
    color: str = Field(..., description=f"One of: {', '.join(ALLOWED_COLORS)}")
    naming_pattern: str = Field(..., min_length=1, max_length=255)
    release_scope: ReleaseScope = ReleaseScope.VERSION_BOUND

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name is required")
        return value.strip()

    @field_validator("color")
    @classmethod
    def color_allowed(cls, value: str) -> str:
        if value not in ALLOWED_COLORS:
            raise ValueError(f"Unsupported color '{value}'")
        return value

    @field_validator("naming_pattern")
    @classmethod
    def pattern_valid(cls, value: str) -> str:
        valid, errors = validate_pattern(value)
        if not valid:
            raise ValueError("; ".join(errors))
        return value


class ReleaseComponentResponse(BaseModel):
    id: UUID
    name: str
    color: str
    naming_pattern: str
    release_scope: ReleaseScope
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ReleaseComponentListResponse(BaseModel):
    items: list[ReleaseComponentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# Action History Schemas

class SubactionResponse(BaseModel):
    id: UUID
    subaction_type: str
    message: str
    status: ActionStatus
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(use_enum_values=True)


class ActionHistoryEntry(BaseModel):
    id: UUID
    action_type: str
    message: str
    status: ActionStatus
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime
    created_by_id: Optional[UUID] = None
    subactions: list[SubactionResponse] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)


class ActionHistoryResponse(BaseModel):
    items: list[ActionHistoryEntry]
    next_cursor: Optional[UUID] = None
    has_more: bool


# Jira Schemas

class JiraConfigResponse(BaseModel):
    base_url: Optional[str] = None
    project_key: Optional[str] = None
    env_var_names: list[str]


class JiraCredentialsResponse(BaseModel):
    email: Optional[str] = None
    has_token: bool


class JiraCredentialsUpdate(BaseModel):
    """Leave api_token empty to keep the stored token."""

    email: str = Field(..., min_length=3, max_length=255)
    api_token: Optional[str] = None


class JiraSaveResponse(BaseModel):
    saved: bool


class JiraVerifyRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    api_token: Optional[str] = None


class JiraVerifyResponse(BaseModel):
    ok: bool
    status: int
    display_name: Optional[str] = None
    account_id: Optional[str] = None
    status_text: Optional[str] = None
    body_text: Optional[str] = None


class JiraStatusResponse(BaseModel):
    ok: bool
    reason: Optional[str] = None


class JiraSyncRequest(BaseModel):
    include_released: Optional[bool] = None
    include_unreleased: Optional[bool] = None
    include_archived: Optional[bool] = None
    page_size: Optional[int] = Field(None, ge=1, le=100)


class JiraSyncResponse(BaseModel):
    saved: int


class JiraStoredVersion(BaseModel):
    id: UUID
    jira_id: str
    name: str
    description: Optional[str] = None
    release_status: JiraReleaseStatus
    release_date: Optional[date] = None
    start_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class JiraStoredVersionsResponse(BaseModel):
    total: int
    items: list[JiraStoredVersion]
