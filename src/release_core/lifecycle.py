"""Status transitions for patches and built versions.

A transition validates the requested action against the record's current
status, records a history row, runs the on-enter hook for the target
status and updates ``current_status``, all in one database transaction.

On entering ``in_deployment`` a successor record is auto-created unless a
newer record already exists in the release. The successor is named
``<release>.<n>`` where ``n`` is the next free increment of that record
kind; patches also advance the release's ``last_used_increment``.
"""
import logging
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .action_history import ActionLogger, record_subactions
from .models import PatchAction, PatchStatus
from .records import RecordKind, get_record, newer_siblings_query, next_increment
from .state_machine import DEFAULT_STATUS, validate_transition

logger = logging.getLogger("release-core.lifecycle")


def get_history(db: Session, kind: RecordKind, record_id: UUID) -> list:
    """Transition history of a record, oldest first."""
    get_record(db, kind, record_id)
    transition_model = kind.transition_model
    return (
        db.query(transition_model)
        .filter(kind.fk_column(transition_model) == record_id)
        .order_by(transition_model.created_at.asc())
        .all()
    )


def get_current_status(db: Session, kind: RecordKind, record_id: UUID) -> PatchStatus:
    record = get_record(db, kind, record_id)
    return PatchStatus(record.current_status or DEFAULT_STATUS)


def _create_successor(
    db: Session,
    kind: RecordKind,
    record,
    user_id: Optional[UUID],
    audit: list[dict[str, Any]],
) -> None:
    """On-enter hook for in_deployment."""
    release = db.query(models.ReleaseVersion).filter(models.ReleaseVersion.id == record.version_id).first()
    if not release:
        return

    if newer_siblings_query(db, kind, record).first() is not None:
        logger.debug(f"{kind.name} {record.name} already has a successor")
        return

    increment = next_increment(db, kind, release)
    successor = kind.model(
        version_id=release.id,
        name=f"{release.name}.{increment}",
        increment=increment,
        current_status=PatchStatus.IN_DEVELOPMENT,
        token_values={"release_version": release.name, "increment": increment},
        created_by_id=user_id,
    )
    db.add(successor)
    if kind.uses_release_counter:
        release.last_used_increment = increment
    db.flush()

    audit.append({
        "subaction_type": f"{kind.name}.successor.create",
        "message": f"Auto-created successor {successor.name}",
        "metadata": {"successorId": str(successor.id), "releaseId": str(release.id)},
    })
    logger.info(f"Auto-created successor {successor.name} for {kind.name} {record.name}")


ON_ENTER_HOOKS = {
    PatchStatus.IN_DEPLOYMENT: _create_successor,
}


def transition(
    db: Session,
    kind: RecordKind,
    record_id: UUID,
    action: Union[PatchAction, str],
    user_id: Optional[UUID],
    action_logger: Optional[ActionLogger] = None,
) -> dict[str, Any]:
    """
    Apply a lifecycle action to a patch or built version.

    Args:
        db: Database session
        kind: PATCH or BUILT_VERSION
        record_id: Record to transition
        action: Action name (aliases and slugs accepted)
        user_id: Acting user, recorded on the history row
        action_logger: Optional action logger receiving audit subactions

    Returns:
        Dict with the new ``status`` and the refreshed ``record``

    Raises:
        NotFoundError: If the record does not exist
        UnsupportedTransitionError: If the action is unknown
        StateTransitionError: If the action is not allowed from the current status
    """
    audit: list[dict[str, Any]] = []
    try:
        record = get_record(db, kind, record_id)
        audit.append({
            "subaction_type": f"{kind.name}.transition.verify",
            "message": f"Transition {record.name} via {action}",
            "metadata": {f"{kind.name}Id": str(record_id), "action": str(getattr(action, "value", action))},
        })

        rule = validate_transition(record.current_status, action)

        transition_model = kind.transition_model
        db.add(transition_model(
            **{kind.fk: record.id},
            from_status=rule.from_status,
            to_status=rule.to_status,
            action=rule.action,
            created_by_id=user_id,
        ))
        db.flush()
        audit.append({
            "subaction_type": f"{kind.name}.transition.persist",
            "message": f"Recorded transition {rule.action.value}",
            "metadata": {
                "from": rule.from_status.value,
                "to": rule.to_status.value,
                f"{kind.name}Id": str(record.id),
            },
        })

        hook = ON_ENTER_HOOKS.get(rule.to_status)
        if hook:
            hook(db, kind, record, user_id, audit)

        record.current_status = rule.to_status
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info(
        f"{kind.label} {record.name}: {rule.from_status.value} → {rule.to_status.value} "
        f"via {rule.action.value}"
    )

    record_subactions(action_logger, audit)
    return {"status": rule.to_status, "record": record}
