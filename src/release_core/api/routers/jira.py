"""Jira API router.

Setup endpoints manage the calling user's Jira credentials; release
endpoints mirror the configured project's versions into the database.
"""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ... import jira
from ...action_history import track_action
from ...database import get_db
from ...models import User
from ...schemas import (
    JiraConfigResponse,
    JiraCredentialsResponse,
    JiraCredentialsUpdate,
    JiraSaveResponse,
    JiraStatusResponse,
    JiraStoredVersion,
    JiraStoredVersionsResponse,
    JiraSyncRequest,
    JiraSyncResponse,
    JiraVerifyRequest,
    JiraVerifyResponse,
)
from ..dependencies import get_current_user, get_session_token

logger = logging.getLogger("release-core.api.jira")

router = APIRouter(prefix="/jira", tags=["jira"])


def get_jira_transport() -> Optional[httpx.AsyncBaseTransport]:
    """HTTP transport for Jira calls; None uses the network."""
    return None


@router.get("/setup/config", response_model=JiraConfigResponse)
async def get_config(current_user: User = Depends(get_current_user)):
    return JiraConfigResponse(**jira.get_config())


@router.get("/setup/credentials", response_model=JiraCredentialsResponse)
async def get_credentials(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Stored email and whether an API token is saved (the token is never returned)."""
    return JiraCredentialsResponse(**jira.get_credentials_summary(db, current_user.id))


@router.put("/setup/credentials", response_model=JiraSaveResponse)
async def save_credentials(
    data: JiraCredentialsUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    with track_action(
        db,
        action_type="jira.credentials.save",
        message="Save Jira credentials",
        user_id=current_user.id,
        session_token=get_session_token(request),
        metadata={"email": data.email, "tokenUpdated": bool(data.api_token)},
    ):
        result = jira.save_credentials(db, current_user.id, data.email, data.api_token)
    return JiraSaveResponse(**result)


@router.post("/setup/verify", response_model=JiraVerifyResponse)
async def verify_credentials(
    data: JiraVerifyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_jira_transport),
):
    """Call Jira's ``/myself`` with the given (or stored) credentials."""
    result = await jira.verify_connection(
        db, current_user.id, data.email, data.api_token, transport=transport
    )
    return JiraVerifyResponse(**result)


@router.get("/setup/status", response_model=JiraStatusResponse)
async def get_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return JiraStatusResponse(**jira.get_setup_status(db, current_user.id))


@router.get("/releases", response_model=JiraStoredVersionsResponse)
async def list_releases(
    include_released: bool = Query(True),
    include_unreleased: bool = Query(True),
    include_archived: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(jira.DEFAULT_PAGE_SIZE, ge=1, le=jira.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mirrored Jira versions, Released first, then Unreleased, then Archived."""
    result = jira.list_stored_versions(
        db,
        include_released=include_released,
        include_unreleased=include_unreleased,
        include_archived=include_archived,
        page=page,
        page_size=page_size,
    )
    return JiraStoredVersionsResponse(
        total=result["total"],
        items=[JiraStoredVersion.model_validate(v) for v in result["items"]],
    )


@router.post("/releases/sync", response_model=JiraSyncResponse)
async def sync_releases(
    request: Request,
    data: Optional[JiraSyncRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_jira_transport),
):
    """Pull the project's versions from Jira and upsert them."""
    data = data or JiraSyncRequest()
    with track_action(
        db,
        action_type="jira.releases.sync",
        message="Sync Jira releases",
        user_id=current_user.id,
        session_token=get_session_token(request),
    ):
        result = await jira.sync_versions(
            db,
            current_user.id,
            include_released=data.include_released,
            include_unreleased=data.include_unreleased,
            include_archived=data.include_archived,
            page_size=data.page_size,
            transport=transport,
        )
    return JiraSyncResponse(**result)
