"""Arrange component versions between a record and its successor.

While a patch (or built version) X is in deployment, the user picks which
release components ship with it. Selected components keep their row on X
and get a fresh row on the successor X+1; unselected components are not
part of X's deployment, so their row moves over to X+1.
"""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .action_history import ActionLogger, record_subactions
from .errors import ServiceError, ValidationError
from .models import PatchStatus, ReleaseScope
from .records import RecordKind, get_record, newer_siblings_query
from .versioning import build_token_values, expand_pattern, is_pattern_usable

logger = logging.getLogger("release-core.successors")


class InvalidStateError(ServiceError):
    code = "INVALID_STATE"


class MissingSuccessorError(ServiceError):
    code = "MISSING_SUCCESSOR"


def _compute_name(
    component: models.ReleaseComponent,
    release_name: str,
    record_name: str,
    increment: int,
) -> Optional[str]:
    if not is_pattern_usable(component.naming_pattern):
        return None
    return expand_pattern(component.naming_pattern, release_name, record_name, increment)


def arrange_successor(
    db: Session,
    kind: RecordKind,
    record_id: UUID,
    selected_component_ids: list[UUID],
    user_id: Optional[UUID],
    action_logger: Optional[ActionLogger] = None,
) -> dict[str, Any]:
    """
    Apply a component selection to a record and its successor.

    Global components are always treated as selected. For each component:

    - selected: upsert the successor's row (``updated`` if it existed,
      ``created`` otherwise) and create the record's own row if missing
    - unselected with a row on the record: drop any successor row and move
      the record's row to the successor (``moved``)

    Args:
        db: Database session
        kind: PATCH or BUILT_VERSION
        record_id: Record in deployment
        selected_component_ids: Components shipping with the record
        user_id: Acting user
        action_logger: Optional action logger receiving an audit subaction

    Returns:
        Dict with moved, created, updated counts and successor_id

    Raises:
        ValidationError: If nothing is selected
        NotFoundError: If the record does not exist
        InvalidStateError: If the record is not in deployment
        MissingSuccessorError: If the release has no newer record
    """
    if not selected_component_ids:
        raise ValidationError("At least one component must be selected")

    summary = {"moved": 0, "created": 0, "updated": 0, "successor_id": None}

    try:
        current = get_record(db, kind, record_id)
        status = PatchStatus(current.current_status or PatchStatus.IN_DEVELOPMENT)
        if status != PatchStatus.IN_DEPLOYMENT:
            raise InvalidStateError(
                "Operation only allowed from in_deployment",
                details={"status": status.value},
            )

        successor = newer_siblings_query(db, kind, current).first()
        if not successor:
            raise MissingSuccessorError(f"Successor {kind.label.lower()} not found")

        release = db.query(models.ReleaseVersion).filter(models.ReleaseVersion.id == current.version_id).one()

        components = db.query(models.ReleaseComponent).order_by(models.ReleaseComponent.created_at.asc()).all()
        selected = {UUID(str(component_id)) for component_id in selected_component_ids}
        selected.update(c.id for c in components if c.release_scope == ReleaseScope.GLOBAL)

        component_model = kind.component_model
        fk_column = kind.fk_column(component_model)

        def rows_by_component(owner_id: UUID) -> dict:
            rows = db.query(component_model).filter(fk_column == owner_id).all()
            return {row.release_component_id: row for row in rows}

        current_rows = rows_by_component(current.id)
        successor_rows = rows_by_component(successor.id)

        for component in components:
            current_row = current_rows.get(component.id)
            successor_row = successor_rows.get(component.id)

            if component.id in selected:
                increment = successor_row.increment if successor_row else 0
                computed = _compute_name(component, release.name, successor.name, increment)
                tokens = build_token_values(release.name, successor.name, increment)
                if successor_row:
                    if computed:
                        successor_row.name = computed
                    successor_row.token_values = tokens
                    summary["updated"] += 1
                else:
                    db.add(component_model(
                        **{kind.fk: successor.id},
                        release_component_id=component.id,
                        name=computed or f"{successor.name}-{component.id}-0",
                        increment=increment,
                        token_values=tokens,
                    ))
                    summary["created"] += 1

                if not current_row:
                    db.add(component_model(
                        **{kind.fk: current.id},
                        release_component_id=component.id,
                        name=(
                            _compute_name(component, release.name, current.name, 0)
                            or f"{current.name}-{component.id}-0"
                        ),
                        increment=0,
                        token_values=build_token_values(release.name, current.name, 0),
                    ))
                    summary["created"] += 1
            elif current_row:
                if successor_row:
                    db.delete(successor_row)
                    db.flush()
                setattr(current_row, kind.fk, successor.id)
                current_row.name = (
                    _compute_name(component, release.name, successor.name, current_row.increment)
                    or current_row.name
                )
                current_row.token_values = build_token_values(
                    release.name, successor.name, current_row.increment
                )
                summary["moved"] += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    summary["successor_id"] = successor.id
    logger.info(
        f"Arranged successor {successor.name} for {kind.name} {current.name}: "
        f"moved={summary['moved']} created={summary['created']} updated={summary['updated']}"
    )
    record_subactions(action_logger, [{
        "subaction_type": f"{kind.name}.successor.arrange",
        "message": f"Rebalanced successor components for {current.name}",
        "metadata": {
            "moved": summary["moved"],
            "created": summary["created"],
            "updated": summary["updated"],
            "successorId": str(successor.id),
        },
    }])
    return summary
