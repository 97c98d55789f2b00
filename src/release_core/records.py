"""Patches and built versions.

Both record kinds hang off a release version, move through the same
status lifecycle and carry one component version per release component.
``RecordKind`` describes the model classes of each kind so the create,
lookup, default selection and transition logic is written once.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, NotFoundError, ValidationError
from .models import PatchStatus, ReleaseScope
from .state_machine import DEFAULT_STATUS, STATUS_SORT_ORDER
from .versioning import build_token_values, expand_pattern, is_pattern_usable, parse_increment

logger = logging.getLogger("release-core.records")

SEED_ALL = "all"
SEED_GLOBAL_ONLY = "global-only"


@dataclass(frozen=True)
class RecordKind:
    """Model classes and naming for one kind of versioned record."""

    name: str                   # "patch" / "built_version", used in audit types
    label: str                  # Human label for messages
    model: Any
    transition_model: Any
    component_model: Any
    fk: str                     # Foreign key column on transition/component models
    # With no active sibling, default selection uses every component (True)
    # or only the global ones (False)
    default_all_components: bool
    # Whether the release's last_used_increment counts this kind's increments
    uses_release_counter: bool = False

    def fk_column(self, model):
        return getattr(model, self.fk)


PATCH = RecordKind(
    name="patch",
    label="Patch",
    model=models.Patch,
    transition_model=models.PatchTransition,
    component_model=models.PatchComponentVersion,
    fk="patch_id",
    default_all_components=False,
    uses_release_counter=True,
)

BUILT_VERSION = RecordKind(
    name="built_version",
    label="Built version",
    model=models.BuiltVersion,
    transition_model=models.BuiltVersionTransition,
    component_model=models.ComponentVersion,
    fk="built_version_id",
    default_all_components=True,
)


def get_release_or_404(db: Session, release_id: UUID) -> models.ReleaseVersion:
    release = db.query(models.ReleaseVersion).filter(models.ReleaseVersion.id == release_id).first()
    if not release:
        raise NotFoundError("Release version not found", details={"releaseId": str(release_id)})
    return release


def get_record(db: Session, kind: RecordKind, record_id: UUID):
    """
    Get a patch or built version by ID.

    Raises:
        NotFoundError: If no record exists
    """
    record = db.query(kind.model).filter(kind.model.id == record_id).first()
    if not record:
        raise NotFoundError(f"{kind.label} not found", details={"id": str(record_id)})
    return record


def get_record_in_release(db: Session, kind: RecordKind, release_id: UUID, record_id: UUID):
    """Get a record and check it belongs to ``release_id`` (404 otherwise)."""
    record = get_record(db, kind, record_id)
    if record.version_id != release_id:
        raise NotFoundError(
            f"{kind.label} does not belong to the release",
            details={"id": str(record_id), "releaseId": str(release_id)},
        )
    return record


def next_increment(db: Session, kind: RecordKind, release: models.ReleaseVersion) -> int:
    """
    Next free increment for an auto-created ``kind`` record in ``release``.

    One past the highest increment of that kind (and, for patches, the
    release's ``last_used_increment``), skipping any ``<release>.<n>``
    name already taken by a hand-created record.
    """
    model = kind.model
    highest = (
        db.query(func.max(model.increment))
        .filter(model.version_id == release.id)
        .scalar()
    )
    candidates = [-1 if highest is None else highest]
    if kind.uses_release_counter and release.last_used_increment is not None:
        candidates.append(release.last_used_increment)

    increment = max(candidates) + 1
    taken = {
        name for (name,) in db.query(model.name).filter(model.version_id == release.id)
    }
    while f"{release.name}.{increment}" in taken:
        increment += 1
    return increment


def list_records(db: Session, kind: RecordKind, release_id: UUID) -> list:
    """List a release's records, oldest first."""
    get_release_or_404(db, release_id)
    return (
        db.query(kind.model)
        .filter(kind.model.version_id == release_id)
        .order_by(kind.model.created_at.asc(), kind.model.increment.asc())
        .all()
    )


def sort_by_status(rows: list) -> list:
    """Order records by STATUS_SORT_ORDER, keeping creation order within a status."""
    return sorted(rows, key=lambda r: STATUS_SORT_ORDER[PatchStatus(r.current_status or DEFAULT_STATUS)])


def newer_siblings_query(db: Session, kind: RecordKind, record):
    """Records of the same release created after ``record``, oldest first.

    Ties on created_at are broken by increment.
    """
    model = kind.model
    return (
        db.query(model)
        .filter(
            model.version_id == record.version_id,
            model.id != record.id,
            or_(
                model.created_at > record.created_at,
                and_(model.created_at == record.created_at, model.increment > record.increment),
            ),
        )
        .order_by(model.created_at.asc(), model.increment.asc())
    )


def seed_component_versions(
    db: Session,
    kind: RecordKind,
    record,
    release_name: str,
    mode: str,
) -> list[dict[str, Any]]:
    """
    Create component versions for a freshly created record.

    Modes:
    - ``all``: every component with a usable naming pattern, increment 0;
      existing rows are left untouched
    - ``global-only``: only global components, increment one past the
      latest already on the record (0 for a new record)

    Returns:
        Audit entries describing what was seeded
    """
    audit: list[dict[str, Any]] = []
    component_model = kind.component_model
    fk_column = kind.fk_column(component_model)

    components = db.query(models.ReleaseComponent).order_by(models.ReleaseComponent.created_at.asc()).all()
    for component in components:
        if not is_pattern_usable(component.naming_pattern):
            continue
        if mode == SEED_GLOBAL_ONLY and component.release_scope != ReleaseScope.GLOBAL:
            continue

        existing = (
            db.query(component_model)
            .filter(fk_column == record.id, component_model.release_component_id == component.id)
            .order_by(component_model.increment.desc())
            .first()
        )
        if mode == SEED_ALL and existing:
            continue
        increment = existing.increment + 1 if existing else 0
        computed_name = expand_pattern(component.naming_pattern, release_name, record.name, increment)
        token_values = build_token_values(release_name, record.name, increment)

        if existing:
            existing.name = computed_name
            existing.increment = increment
            existing.token_values = token_values
        else:
            db.add(component_model(
                **{kind.fk: record.id},
                release_component_id=component.id,
                name=computed_name,
                increment=increment,
                token_values=token_values,
            ))
        verb = "Seeded" if mode == SEED_ALL else "Populated"
        audit.append({
            "subaction_type": "componentVersion.seed" if mode == SEED_ALL else "componentVersion.populate",
            "message": f"{verb} {component.name} for {record.name}",
            "metadata": {"releaseComponentId": str(component.id), f"{kind.name}Id": str(record.id)},
        })

    db.flush()
    return audit


def create_record(
    db: Session,
    kind: RecordKind,
    release_id: UUID,
    name: str,
    user_id: Optional[UUID],
) -> tuple[Any, list[dict[str, Any]]]:
    """
    Create a patch or built version in a release.

    The increment is parsed from the name's last dot segment; patches
    also advance the release's ``last_used_increment``. Global components
    get a component version immediately.

    Returns:
        Tuple of (record, audit entries)

    Raises:
        ValidationError: If the name is blank
        NotFoundError: If the release does not exist
        ConflictError: If the release already has a record with that name
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", details={"field": "name"})

    release = get_release_or_404(db, release_id)
    duplicate = (
        db.query(kind.model)
        .filter(kind.model.version_id == release.id, kind.model.name == name)
        .first()
    )
    if duplicate:
        raise ConflictError(
            f"{kind.label} '{name}' already exists in release {release.name}",
            details={"name": name, "releaseId": str(release.id)},
        )

    increment = parse_increment(name)
    record = kind.model(
        version_id=release.id,
        name=name,
        increment=increment,
        current_status=PatchStatus.IN_DEVELOPMENT,
        token_values={},
        created_by_id=user_id,
    )
    db.add(record)
    if kind.uses_release_counter:
        last_used = release.last_used_increment if release.last_used_increment is not None else -1
        release.last_used_increment = max(last_used, increment)
    db.flush()

    audit = [{
        "subaction_type": f"{kind.name}.persist",
        "message": f"Created {kind.label.lower()} {record.name}",
        "metadata": {f"{kind.name}Id": str(record.id), "releaseId": str(release.id)},
    }]
    audit.extend(seed_component_versions(db, kind, record, release.name, SEED_GLOBAL_ONLY))

    db.commit()
    db.refresh(record)
    logger.info(f"Created {kind.name} {record.name} in release {release.name}")
    return record, audit


def create_initial_record(
    db: Session,
    kind: RecordKind,
    release: models.ReleaseVersion,
    user_id: Optional[UUID],
) -> tuple[Any, list[dict[str, Any]]]:
    """
    Create the ``<release>.0`` record of a new release (no commit).

    Every component with a usable pattern is seeded at increment 0.
    """
    record = kind.model(
        version_id=release.id,
        name=f"{release.name}.0",
        increment=0,
        current_status=PatchStatus.IN_DEVELOPMENT,
        token_values={"release_version": release.name, "increment": 0},
        created_by_id=user_id,
    )
    db.add(record)
    db.flush()

    audit = [{
        "subaction_type": f"{kind.name}.autoCreate",
        "message": f"Auto-created {kind.label.lower()} {record.name}",
        "metadata": {f"{kind.name}Id": str(record.id), "releaseId": str(release.id)},
    }]
    audit.extend(seed_component_versions(db, kind, record, release.name, SEED_ALL))
    return record, audit


def list_component_versions(db: Session, kind: RecordKind, record_id: UUID) -> list:
    """List a record's component versions, oldest first."""
    get_record(db, kind, record_id)
    component_model = kind.component_model
    return (
        db.query(component_model)
        .filter(kind.fk_column(component_model) == record_id)
        .order_by(component_model.created_at.asc())
        .all()
    )


def get_default_selection(db: Session, kind: RecordKind, record_id: UUID) -> list[UUID]:
    """
    Component IDs pre-selected when arranging a record's successor.

    Uses the components deployed with the newest active record of the same
    release, plus every global component. Without an active record, patches
    fall back to the global components and built versions to all components.
    """
    record = get_record(db, kind, record_id)

    components = db.query(models.ReleaseComponent).order_by(models.ReleaseComponent.created_at.asc()).all()
    global_ids = [c.id for c in components if c.release_scope == ReleaseScope.GLOBAL]

    active = (
        db.query(kind.model)
        .filter(
            kind.model.version_id == record.version_id,
            kind.model.current_status == PatchStatus.ACTIVE,
        )
        .order_by(kind.model.created_at.desc(), kind.model.increment.desc())
        .first()
    )
    if not active:
        if kind.default_all_components:
            return [c.id for c in components]
        return global_ids

    component_model = kind.component_model
    rows = (
        db.query(component_model.release_component_id)
        .filter(kind.fk_column(component_model) == active.id)
        .order_by(component_model.created_at.asc())
        .all()
    )
    selected: list[UUID] = []
    for (component_id,) in rows:
        if component_id not in selected:
            selected.append(component_id)
    for component_id in global_ids:
        if component_id not in selected:
            selected.append(component_id)
    return selected
