"""CRUD operations for release versions and release components."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from . import models, schemas
from .errors import ConflictError, NotFoundError, ValidationError
from .models import ReleaseTrack
from .records import BUILT_VERSION, PATCH, create_initial_record
from .relations import RelationState
from .versioning import release_defaults

logger = logging.getLogger("release-core.crud")

SORT_FIELDS = {
    "createdAt": models.ReleaseVersion.created_at,
    "name": models.ReleaseVersion.name,
}
DEFAULT_SORT = "-createdAt"


# =============================================================================
# Release versions
# =============================================================================


def _release_query(db: Session, relations: Optional[RelationState] = None):
    query = db.query(models.ReleaseVersion)
    if relations is None:
        return query
    if relations.include_creater:
        query = query.options(selectinload(models.ReleaseVersion.creator))
    if relations.include_patches:
        patches = selectinload(models.ReleaseVersion.patches)
        query = query.options(patches)
        if relations.include_patch_components:
            query = query.options(patches.selectinload(models.Patch.component_versions))
        if relations.include_patch_transitions:
            query = query.options(patches.selectinload(models.Patch.transitions))
    return query


def parse_sort(sort_by: Optional[str]):
    """
    Translate ``createdAt``/``name`` (``-`` prefix for descending) to an ORDER BY.

    Raises:
        ValidationError: If the sort field is unknown
    """
    sort_by = sort_by or DEFAULT_SORT
    descending = sort_by.startswith("-")
    field = sort_by[1:] if descending else sort_by
    column = SORT_FIELDS.get(field)
    if column is None:
        raise ValidationError(
            f"Unsupported sort field: {field}",
            details={"sortBy": sort_by, "allowed": list(SORT_FIELDS)},
        )
    return column.desc() if descending else column.asc()


def create_release_version(
    db: Session,
    name: str,
    user_id: Optional[UUID],
) -> tuple[models.ReleaseVersion, list[dict[str, Any]]]:
    """
    Create a release version with its initial built version and patch.

    Both ``<name>.0`` records are seeded with a component version for every
    component that has a usable naming pattern.

    Returns:
        Tuple of (release, audit entries)

    Raises:
        ValidationError: If the name is blank
        ConflictError: If a release with that name exists
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", details={"field": "name"})

    if db.query(models.ReleaseVersion).filter(models.ReleaseVersion.name == name).first():
        raise ConflictError(f"Release version '{name}' already exists", details={"name": name})

    release = models.ReleaseVersion(
        name=name,
        release_track=ReleaseTrack.FUTURE,
        created_by_id=user_id,
    )
    db.add(release)
    db.flush()

    audit: list[dict[str, Any]] = [{
        "subaction_type": "releaseVersion.persist",
        "message": f"Created release {release.name}",
        "metadata": {"releaseId": str(release.id)},
    }]
    for kind in (BUILT_VERSION, PATCH):
        _, entries = create_initial_record(db, kind, release, user_id)
        audit.extend(entries)

    release.last_used_increment = 0
    db.commit()
    db.refresh(release)

    logger.info(f"Created release version {release.name}")
    return release, audit


def get_release_version(
    db: Session,
    release_id: UUID,
    relations: Optional[RelationState] = None,
) -> models.ReleaseVersion:
    """
    Get a release version by ID.

    Raises:
        NotFoundError: If the release does not exist
    """
    release = _release_query(db, relations).filter(models.ReleaseVersion.id == release_id).first()
    if not release:
        raise NotFoundError("Release version not found", details={"releaseId": str(release_id)})
    return release


def list_release_versions(
    db: Session,
    page: int = 1,
    page_size: int = 20,
    sort_by: Optional[str] = None,
    relations: Optional[RelationState] = None,
) -> tuple[list[models.ReleaseVersion], int]:
    """List release versions; returns (rows, total)."""
    order = parse_sort(sort_by)
    total = db.query(models.ReleaseVersion).count()
    rows = (
        _release_query(db, relations)
        .order_by(order)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return rows, total


def get_latest_release_version(db: Session) -> Optional[models.ReleaseVersion]:
    return db.query(models.ReleaseVersion).order_by(models.ReleaseVersion.created_at.desc()).first()


def get_release_defaults(db: Session) -> dict:
    """Suggested name and track for the next release version."""
    latest = get_latest_release_version(db)
    return release_defaults(latest.name if latest else None)


def list_release_versions_with_builds(db: Session) -> list[models.ReleaseVersion]:
    """All release versions (newest first) with their built versions loaded."""
    return (
        db.query(models.ReleaseVersion)
        .options(selectinload(models.ReleaseVersion.built_versions))
        .order_by(models.ReleaseVersion.created_at.desc())
        .all()
    )


def update_release_version(
    db: Session,
    release_id: UUID,
    update: schemas.ReleaseVersionUpdate,
) -> models.ReleaseVersion:
    """
    Update a release version's name and/or track.

    Raises:
        NotFoundError: If the release does not exist
        ValidationError: If the new name is blank
        ConflictError: If another release already uses the new name
    """
    release = get_release_version(db, release_id)
    data = update.model_dump(exclude_unset=True)

    if "name" in data and data["name"] is not None:
        name = data["name"].strip()
        if not name:
            raise ValidationError("Name is required", details={"field": "name"})
        clash = (
            db.query(models.ReleaseVersion)
            .filter(models.ReleaseVersion.name == name, models.ReleaseVersion.id != release.id)
            .first()
        )
        if clash:
            raise ConflictError(f"Release version '{name}' already exists", details={"name": name})
        release.name = name

    if data.get("release_track") is not None:
        release.release_track = ReleaseTrack(data["release_track"])

    db.commit()
    db.refresh(release)
    logger.info(f"Updated release version {release.name}")
    return release


def update_release_track(db: Session, release_id: UUID, track: ReleaseTrack) -> models.ReleaseVersion:
    release = get_release_version(db, release_id)
    release.release_track = ReleaseTrack(track)
    db.commit()
    db.refresh(release)
    logger.info(f"Release version {release.name} moved to track {release.release_track}")
    return release


# =============================================================================
# Release components
# =============================================================================


def create_release_component(
    db: Session,
    component: schemas.ReleaseComponentCreate,
    user_id: Optional[UUID],
) -> models.ReleaseComponent:
    """
    Create a release component.

    Raises:
        ConflictError: If a component with that name exists
    """
    name = component.name.strip()
    if db.query(models.ReleaseComponent).filter(models.ReleaseComponent.name == name).first():
        raise ConflictError(f"Release component '{name}' already exists", details={"name": name})

    db_component = models.ReleaseComponent(
        name=name,
        color=component.color,
        naming_pattern=component.naming_pattern.strip(),
        release_scope=component.release_scope,
        created_by_id=user_id,
    )
    db.add(db_component)
    db.commit()
    db.refresh(db_component)
    logger.info(f"Created release component {db_component.name}")
    return db_component


def get_release_component(db: Session, component_id: UUID) -> models.ReleaseComponent:
    component = db.query(models.ReleaseComponent).filter(models.ReleaseComponent.id == component_id).first()
    if not component:
        raise NotFoundError("Release component not found", details={"id": str(component_id)})
    return component


def list_release_components(
    db: Session,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[models.ReleaseComponent], int]:
    """List release components, newest first; returns (rows, total)."""
    query = db.query(models.ReleaseComponent)
    total = query.count()
    rows = (
        query.order_by(models.ReleaseComponent.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return rows, total


# =============================================================================
# Users
# =============================================================================


def get_user_by_id(db: Session, user_id: UUID) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()
