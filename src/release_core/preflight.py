"""Transition preflight: what would happen if an action were applied now."""
import logging
from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .lifecycle import get_history
from .models import PatchAction, PatchStatus
from .records import PATCH, RecordKind, get_record_in_release, newer_siblings_query, next_increment
from .state_machine import ACTION_LABELS, DEFAULT_STATUS, action_camel, get_allowed_actions, get_rule

logger = logging.getLogger("release-core.preflight")

HISTORY_PREVIEW_LIMIT = 5

TRANSITION_SIDE_EFFECTS: dict[PatchAction, list[str]] = {
    PatchAction.START_DEPLOYMENT: [
        "Auto-creates successor {kind} when needed",
        "Locks {kind} for deployment planning",
    ],
    PatchAction.CANCEL_DEPLOYMENT: ["Reopens {kind} for edits"],
    PatchAction.MARK_ACTIVE: ["Marks {kind} as live", "Updates default selections"],
    PatchAction.REVERT_TO_DEPLOYMENT: ["Moves {kind} back to deployment planning"],
    PatchAction.DEPRECATE: ["Marks {kind} as deprecated"],
    PatchAction.REACTIVATE: ["Returns deprecated {kind} to active"],
}

TRANSITION_WARNINGS: dict[PatchAction, list[str]] = {
    PatchAction.CANCEL_DEPLOYMENT: ["Component selections made for this deployment stay in place"],
    PatchAction.DEPRECATE: ["Default selections will no longer be derived from this {kind}"],
}


def _most_recent_entry_to(history: list, status: PatchStatus) -> Optional[datetime]:
    for entry in reversed(history):
        if entry.to_status == status:
            return entry.created_at
    return None


def _build_action_context(
    db: Session,
    kind: RecordKind,
    action: PatchAction,
    record,
    current_status: PatchStatus,
    history: list,
) -> dict[str, Any]:
    context: dict[str, Any] = {"action": action_camel(action)}

    if action == PatchAction.START_DEPLOYMENT:
        release = db.query(models.ReleaseVersion).filter(models.ReleaseVersion.id == record.version_id).first()
        next_name = f"{release.name}.{next_increment(db, kind, release)}" if release else None
        context.update(
            next_patch_name=next_name,
            missing_component_selections=0,
            has_successor=newer_siblings_query(db, kind, record).first() is not None,
        )
    elif action == PatchAction.MARK_ACTIVE:
        context.update(
            ready_for_prod=current_status == PatchStatus.IN_DEPLOYMENT,
            pending_approvals=[],
        )
    elif action == PatchAction.REVERT_TO_DEPLOYMENT:
        context["active_since"] = _most_recent_entry_to(history, PatchStatus.ACTIVE) or record.created_at
    elif action == PatchAction.DEPRECATE:
        context["consumers_impacted"] = False
    elif action == PatchAction.REACTIVATE:
        context["deprecated_since"] = _most_recent_entry_to(history, PatchStatus.DEPRECATED) or record.created_at

    return context


def get_preflight(
    db: Session,
    release_id: UUID,
    record_id: UUID,
    action: Union[PatchAction, str],
    kind: RecordKind = PATCH,
) -> dict[str, Any]:
    """
    Describe the outcome of applying ``action`` without changing anything.

    Returns:
        Dict with action, from/to status, allowed, blockers, warnings,
        expected side effects, the ``patch`` summary, history preview and an
        action-specific context

    Raises:
        NotFoundError: If the record is missing or belongs to another release
        UnsupportedTransitionError: If the action is unknown
    """
    record = get_record_in_release(db, kind, release_id, record_id)
    rule = get_rule(action)
    current_status = PatchStatus(record.current_status or DEFAULT_STATUS)
    allowed = current_status == rule.from_status
    label = kind.label.lower()

    blockers: list[str] = []
    if not allowed:
        offered = ", ".join(a.value for a in get_allowed_actions(current_status)) or "none"
        blockers.append(
            f"{kind.label} is {current_status.value}; {rule.action.value} requires "
            f"{rule.from_status.value}. Available actions: {offered}."
        )
    warnings = [w.format(kind=label) for w in TRANSITION_WARNINGS.get(rule.action, [])] if allowed else []

    history = get_history(db, kind, record.id)
    preview = history[-HISTORY_PREVIEW_LIMIT:]

    return {
        "action": rule.action,
        "action_label": ACTION_LABELS[rule.action.value],
        "from_status": current_status,
        "to_status": rule.to_status,
        "allowed": allowed,
        "blockers": blockers,
        "warnings": warnings,
        "expected_side_effects": [e.format(kind=label) for e in TRANSITION_SIDE_EFFECTS.get(rule.action, [])],
        "patch": {
            "id": record.id,
            "name": record.name,
            "current_status": current_status,
            "version_id": record.version_id,
        },
        "history_preview": preview,
        "action_context": _build_action_context(db, kind, rule.action, record, current_status, history),
    }
