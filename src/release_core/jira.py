"""Jira integration: project version sync and per-user credentials.

Jira versions are fetched from the REST API v3 with Basic auth
(``email:api_token``), mirrored into the ``jira_versions`` table and listed
from there. Credentials are stored per user with the API token encrypted.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional
from urllib.parse import quote
from uuid import UUID

import httpx
from sqlalchemy import case
from sqlalchemy.orm import Session

from . import models
from .config import Settings, get_settings
from .crypto import decrypt_secret, encrypt_secret
from .errors import PreconditionFailedError, UpstreamError
from .models import JiraReleaseStatus

logger = logging.getLogger("release-core.jira")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
# Stop paging past this offset even if Jira never reports isLast
MAX_START_AT = 10_000

ENV_VAR_NAMES = ["JIRA_BASE_URL", "JIRA_PROJECT_KEY"]


class JiraRequestError(Exception):
    """Raised when Jira answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Jira request failed ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


@dataclass
class JiraVersionData:
    """A Jira project version as returned by the API, normalized."""

    id: str
    name: str
    description: Optional[str]
    release_status: JiraReleaseStatus
    released: bool
    archived: bool
    release_date: Optional[str]
    start_date: Optional[str]
    project_id: Optional[str] = None
    raw: Optional[dict] = None


def _clamp_page_size(page_size: Optional[int]) -> int:
    return min(max(page_size or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)


def _non_empty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def map_version(raw: Any) -> JiraVersionData:
    """Normalize one entry of Jira's ``values`` array."""
    obj = raw if isinstance(raw, dict) else {}
    raw_id = obj.get("id")
    if isinstance(raw_id, bool):
        raw_id = None
    version_id = str(raw_id) if isinstance(raw_id, (str, int)) else ""

    released = bool(obj.get("released"))
    archived = bool(obj.get("archived"))
    if archived:
        status = JiraReleaseStatus.ARCHIVED
    elif released:
        status = JiraReleaseStatus.RELEASED
    else:
        status = JiraReleaseStatus.UNRELEASED

    project_id = obj.get("projectId")
    return JiraVersionData(
        id=version_id,
        name=obj.get("name") if isinstance(obj.get("name"), str) else "",
        description=_non_empty_str(obj.get("description")),
        release_status=status,
        released=released,
        archived=archived,
        release_date=_non_empty_str(obj.get("releaseDate")),
        start_date=_non_empty_str(obj.get("startDate")),
        project_id=str(project_id) if project_id is not None else None,
        raw=obj or None,
    )


def filter_versions(
    versions: list[JiraVersionData],
    include_released: bool = True,
    include_unreleased: bool = True,
    include_archived: bool = False,
) -> list[JiraVersionData]:
    included = {
        JiraReleaseStatus.RELEASED: include_released,
        JiraReleaseStatus.UNRELEASED: include_unreleased,
        JiraReleaseStatus.ARCHIVED: include_archived,
    }
    return [v for v in versions if included[v.release_status]]


class JiraClient:
    """Minimal async client for the Jira Cloud REST API v3."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(email, api_token)
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            headers={"Accept": "application/json"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def get_myself(self) -> httpx.Response:
        async with self._client() as client:
            return await client.get("/rest/api/3/myself")

    async def list_project_versions(self, project_key: str, page_size: Optional[int] = None) -> list[JiraVersionData]:
        """
        Fetch every version of a project, following pagination.

        Raises:
            JiraRequestError: On a non-2xx response
            httpx.HTTPError: On network failures
        """
        size = _clamp_page_size(page_size)
        path = f"/rest/api/3/project/{quote(project_key, safe='')}/version"
        items: list[JiraVersionData] = []
        start_at = 0

        async with self._client() as client:
            while True:
                response = await client.get(path, params={"startAt": start_at, "maxResults": size})
                if not response.is_success:
                    raise JiraRequestError(response.status_code, response.text or response.reason_phrase)

                page = response.json()
                if not isinstance(page, dict):
                    page = {}
                values = page.get("values") if isinstance(page.get("values"), list) else []

                items.extend(v for v in (map_version(raw) for raw in values) if v.id)

                page_start = page.get("startAt")
                if not isinstance(page_start, int) or isinstance(page_start, bool):
                    page_start = 0
                start_at = page_start + len(values)

                if page.get("isLast") or not values:
                    break
                if start_at > MAX_START_AT:
                    logger.warning(f"Stopped paging Jira versions at startAt={start_at}")
                    break

        logger.info(f"Fetched {len(items)} Jira versions for project {project_key}")
        return items


# =============================================================================
# Credentials
# =============================================================================


def get_credential(db: Session, user_id: UUID) -> Optional[models.JiraCredential]:
    return db.query(models.JiraCredential).filter(models.JiraCredential.user_id == user_id).first()


def get_api_token(credential: Optional[models.JiraCredential]) -> Optional[str]:
    """Decrypted API token, or None when none is stored."""
    if credential is None or not credential.encrypted_api_token:
        return None
    token = decrypt_secret(credential.encrypted_api_token)
    return token or None


def get_credentials_summary(db: Session, user_id: UUID) -> dict[str, Any]:
    credential = get_credential(db, user_id)
    if credential is None:
        return {"email": None, "has_token": False}
    return {
        "email": credential.email,
        "has_token": bool(credential.encrypted_api_token),
    }


def save_credentials(db: Session, user_id: UUID, email: str, api_token: Optional[str] = None) -> dict[str, Any]:
    """
    Create or update a user's Jira credentials.

    An empty ``api_token`` keeps the stored token.
    """
    credential = get_credential(db, user_id)
    if credential is None:
        credential = models.JiraCredential(user_id=user_id)
        db.add(credential)

    credential.email = email
    if api_token:
        credential.encrypted_api_token = encrypt_secret(api_token)

    db.commit()
    logger.info(f"Saved Jira credentials for user {user_id}")
    return {"saved": True}


# =============================================================================
# Setup
# =============================================================================


def get_config(settings: Optional[Settings] = None) -> dict[str, Any]:
    settings = settings or get_settings()
    return {
        "base_url": settings.jira_base_url,
        "project_key": settings.jira_project_key,
        "env_var_names": ENV_VAR_NAMES,
    }


def get_setup_status(db: Session, user_id: UUID, settings: Optional[Settings] = None) -> dict[str, Any]:
    """Report the first missing piece of Jira configuration, if any."""
    settings = settings or get_settings()
    credential = get_credential(db, user_id)

    if not settings.jira_base_url:
        return {"ok": False, "reason": "Missing JIRA_BASE_URL"}
    if not settings.jira_project_key:
        return {"ok": False, "reason": "Missing JIRA_PROJECT_KEY"}
    if credential is None or not credential.email:
        return {"ok": False, "reason": "Missing user email"}
    if not credential.encrypted_api_token:
        return {"ok": False, "reason": "Missing user API token"}
    return {"ok": True, "reason": None}


async def verify_connection(
    db: Session,
    user_id: UUID,
    email: str,
    api_token: Optional[str] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Any]:
    """
    Check credentials against ``/rest/api/3/myself``.

    Falls back to the stored token when ``api_token`` is empty. Never
    raises for upstream failures; the outcome is described in the result.
    """
    settings = settings or get_settings()
    if not settings.jira_base_url:
        return {
            "ok": False,
            "status": 412,
            "status_text": "Missing configuration",
            "body_text": "JIRA_BASE_URL is not set in environment",
        }

    token = api_token or get_api_token(get_credential(db, user_id))
    if not token:
        return {
            "ok": False,
            "status": 412,
            "status_text": "Missing token",
            "body_text": "No API token provided or stored for this user",
        }

    client = JiraClient(settings.jira_base_url, email, token, settings.jira_timeout_seconds, transport)
    try:
        response = await client.get_myself()
    except httpx.HTTPError as exc:
        logger.warning(f"Jira verify failed: {exc}")
        return {"ok": False, "status": 0, "status_text": "Network error", "body_text": str(exc)}

    if not response.is_success:
        return {
            "ok": False,
            "status": response.status_code,
            "status_text": response.reason_phrase,
            "body_text": response.text,
        }

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return {
        "ok": True,
        "status": response.status_code,
        "display_name": payload.get("displayName"),
        "account_id": payload.get("accountId"),
    }


# =============================================================================
# Versions
# =============================================================================


async def fetch_project_versions(
    base_url: Optional[str],
    project_key: Optional[str],
    email: Optional[str],
    api_token: Optional[str],
    page_size: Optional[int] = None,
    include_released: bool = True,
    include_unreleased: bool = True,
    include_archived: bool = False,
    timeout: float = 15.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Any]:
    """
    Fetch and filter a project's versions.

    Returns:
        ``{"configured": False, "items": []}`` when any setting or credential
        is missing, otherwise ``{"configured": True, "items": [...]}``

    Raises:
        JiraRequestError: On a non-2xx response
        httpx.HTTPError: On network failures
    """
    if not (base_url and project_key and email and api_token):
        return {"configured": False, "items": []}

    client = JiraClient(base_url, email, api_token, timeout, transport)
    versions = await client.list_project_versions(project_key, page_size)
    return {
        "configured": True,
        "items": filter_versions(versions, include_released, include_unreleased, include_archived),
    }


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def upsert_versions(db: Session, versions: list[JiraVersionData]) -> int:
    """Insert or update versions by Jira ID; returns the number saved."""
    existing = {
        row.jira_id: row
        for row in db.query(models.JiraVersion)
        .filter(models.JiraVersion.jira_id.in_([v.id for v in versions]))
        .all()
    } if versions else {}

    for version in versions:
        row = existing.get(version.id)
        if row is None:
            row = models.JiraVersion(jira_id=version.id)
            db.add(row)
        row.name = version.name
        row.description = version.description
        row.project_id = version.project_id
        row.release_status = version.release_status
        row.released = version.released
        row.archived = version.archived
        row.release_date = _parse_date(version.release_date)
        row.start_date = _parse_date(version.start_date)
        row.raw = version.raw

    db.commit()
    return len(versions)


async def sync_versions(
    db: Session,
    user_id: UUID,
    include_released: Optional[bool] = None,
    include_unreleased: Optional[bool] = None,
    include_archived: Optional[bool] = None,
    page_size: Optional[int] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, int]:
    """
    Pull project versions from Jira with the user's credentials and store them.

    Raises:
        UpstreamError: If Jira fails or is unreachable
        PreconditionFailedError: If Jira is not configured for the user
    """
    settings = settings or get_settings()
    credential = get_credential(db, user_id)

    try:
        response = await fetch_project_versions(
            base_url=settings.jira_base_url,
            project_key=settings.jira_project_key,
            email=credential.email if credential else None,
            api_token=get_api_token(credential),
            page_size=page_size,
            include_released=True if include_released is None else include_released,
            include_unreleased=True if include_unreleased is None else include_unreleased,
            include_archived=False if include_archived is None else include_archived,
            timeout=settings.jira_timeout_seconds,
            transport=transport,
        )
    except (JiraRequestError, httpx.HTTPError) as exc:
        logger.error(f"Jira sync failed: {exc}")
        raise UpstreamError(str(exc) or "Failed to fetch Jira versions")

    if not response["configured"]:
        raise PreconditionFailedError("Jira not configured")

    saved = upsert_versions(db, response["items"])
    logger.info(f"Synced {saved} Jira versions")
    return {"saved": saved}


def list_stored_versions(
    db: Session,
    include_released: bool = True,
    include_unreleased: bool = True,
    include_archived: bool = False,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict[str, Any]:
    """List mirrored versions ordered by release status then name."""
    statuses = [
        status
        for status, included in (
            (JiraReleaseStatus.RELEASED, include_released),
            (JiraReleaseStatus.ARCHIVED, include_archived),
            (JiraReleaseStatus.UNRELEASED, include_unreleased),
        )
        if included
    ]

    if not statuses:
        return {"total": 0, "items": []}

    query = db.query(models.JiraVersion).filter(models.JiraVersion.release_status.in_(statuses))

    # Enum order: Released, Unreleased, Archived
    status_order = case(
        (models.JiraVersion.release_status == JiraReleaseStatus.RELEASED, 0),
        (models.JiraVersion.release_status == JiraReleaseStatus.UNRELEASED, 1),
        else_=2,
    )
    total = query.count()
    items = (
        query.order_by(status_order, models.JiraVersion.name.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {"total": total, "items": items}
