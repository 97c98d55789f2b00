"""State machine validation for patch and built version lifecycle transitions.

Enforces the deployment workflow:
- in_development → in_deployment (start deployment)
- in_deployment → active (mark active) or back to in_development (cancel)
- active → deprecated (deprecate) or back to in_deployment (reopen)
- deprecated → active (reactivate)

Each action has exactly one source status. ``set_active`` and ``archive``
are accepted as aliases of ``mark_active`` and ``deprecate``.
"""
import logging
from typing import NamedTuple, Optional, Union

from .errors import ServiceError
from .models import PatchAction, PatchStatus

logger = logging.getLogger("release-core.state_machine")


class TransitionRule(NamedTuple):
    action: PatchAction
    from_status: PatchStatus
    to_status: PatchStatus


class StateTransitionError(ServiceError):
    """Raised when an action is not valid from the record's current status."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_status: PatchStatus,
        action: PatchAction,
        expected_status: PatchStatus,
        allowed_actions: list[PatchAction],
    ):
        super().__init__(
            message,
            details={
                "from": current_status.value,
                "expected": expected_status.value,
                "action": action.value,
            },
        )
        self.current_status = current_status
        self.action = action
        self.expected_status = expected_status
        self.allowed_actions = allowed_actions


class UnsupportedTransitionError(ServiceError):
    """Raised for an action name the state machine does not know."""

    code = "UNSUPPORTED_TRANSITION"


DEFAULT_STATUS = PatchStatus.IN_DEVELOPMENT

# Maps action → (from, to)
TRANSITION_RULES: dict[PatchAction, TransitionRule] = {
    PatchAction.START_DEPLOYMENT: TransitionRule(
        PatchAction.START_DEPLOYMENT, PatchStatus.IN_DEVELOPMENT, PatchStatus.IN_DEPLOYMENT
    ),
    PatchAction.CANCEL_DEPLOYMENT: TransitionRule(
        PatchAction.CANCEL_DEPLOYMENT, PatchStatus.IN_DEPLOYMENT, PatchStatus.IN_DEVELOPMENT
    ),
    PatchAction.MARK_ACTIVE: TransitionRule(
        PatchAction.MARK_ACTIVE, PatchStatus.IN_DEPLOYMENT, PatchStatus.ACTIVE
    ),
    PatchAction.REVERT_TO_DEPLOYMENT: TransitionRule(
        PatchAction.REVERT_TO_DEPLOYMENT, PatchStatus.ACTIVE, PatchStatus.IN_DEPLOYMENT
    ),
    PatchAction.DEPRECATE: TransitionRule(
        PatchAction.DEPRECATE, PatchStatus.ACTIVE, PatchStatus.DEPRECATED
    ),
    PatchAction.REACTIVATE: TransitionRule(
        PatchAction.REACTIVATE, PatchStatus.DEPRECATED, PatchStatus.ACTIVE
    ),
}

ACTION_ALIASES: dict[str, PatchAction] = {
    "set_active": PatchAction.MARK_ACTIVE,
    "archive": PatchAction.DEPRECATE,
}

# Next actions offered from each status, in display order
NEXT_ACTIONS: dict[PatchStatus, list[PatchAction]] = {
    PatchStatus.IN_DEVELOPMENT: [PatchAction.START_DEPLOYMENT],
    PatchStatus.IN_DEPLOYMENT: [PatchAction.CANCEL_DEPLOYMENT, PatchAction.MARK_ACTIVE],
    PatchStatus.ACTIVE: [PatchAction.REVERT_TO_DEPLOYMENT, PatchAction.DEPRECATE],
    PatchStatus.DEPRECATED: [PatchAction.REACTIVATE],
}

ACTION_LABELS: dict[str, str] = {
    "start_deployment": "Start Deployment",
    "cancel_deployment": "Cancel Deployment",
    "mark_active": "Mark Active",
    "revert_to_deployment": "Reopen Deployment",
    "deprecate": "Deprecate",
    "reactivate": "Reactivate",
    "set_active": "Set Active",
    "archive": "Archive",
}

STATUS_LABELS: dict[PatchStatus, str] = {
    PatchStatus.IN_DEVELOPMENT: "In Development",
    PatchStatus.IN_DEPLOYMENT: "In Deployment",
    PatchStatus.ACTIVE: "Active",
    PatchStatus.DEPRECATED: "Deprecated",
}

# Lower number = shown first in status-sorted lists
STATUS_SORT_ORDER: dict[PatchStatus, int] = {
    PatchStatus.IN_DEPLOYMENT: 1,   # Being rolled out
    PatchStatus.ACTIVE: 2,          # Live
    PatchStatus.IN_DEVELOPMENT: 3,
    PatchStatus.DEPRECATED: 4,
}


def _coerce_status(status: Union[PatchStatus, str, None]) -> PatchStatus:
    if status is None:
        return DEFAULT_STATUS
    return PatchStatus(status)


def parse_action(action: Union[PatchAction, str]) -> PatchAction:
    """
    Resolve an action name, URL slug or camelCase name to a PatchAction.

    Accepts ``mark_active``, ``mark-active`` and ``markActive`` alike, and
    maps the ``set_active``/``archive`` aliases to their canonical action.

    Raises:
        UnsupportedTransitionError: If the action is unknown
    """
    if isinstance(action, PatchAction):
        return action

    normalized = "".join(f"_{c.lower()}" if c.isupper() else c for c in str(action))
    normalized = normalized.replace("-", "_").strip("_")

    if normalized in ACTION_ALIASES:
        return ACTION_ALIASES[normalized]
    try:
        return PatchAction(normalized)
    except ValueError:
        raise UnsupportedTransitionError(
            f"Unsupported transition: {action}",
            details={"action": str(action)},
        )


def get_rule(action: Union[PatchAction, str]) -> TransitionRule:
    """
    Get the transition rule for an action.

    Raises:
        UnsupportedTransitionError: If the action is unknown
    """
    return TRANSITION_RULES[parse_action(action)]


def is_transition_valid(
    current_status: Union[PatchStatus, str, None],
    action: Union[PatchAction, str],
) -> bool:
    """
    Check if an action can be applied from the current status.

    Args:
        current_status: Current lifecycle status (None means in_development)
        action: Requested action

    Returns:
        True if transition is allowed, False otherwise
    """
    try:
        rule = get_rule(action)
    except UnsupportedTransitionError:
        return False
    return _coerce_status(current_status) == rule.from_status


def validate_transition(
    current_status: Union[PatchStatus, str, None],
    action: Union[PatchAction, str],
) -> TransitionRule:
    """
    Validate an action against the current status and return its rule.

    Args:
        current_status: Current lifecycle status (None means in_development)
        action: Requested action

    Returns:
        The matching TransitionRule

    Raises:
        UnsupportedTransitionError: If the action is unknown
        StateTransitionError: If the action is not allowed from current_status
    """
    rule = get_rule(action)
    current = _coerce_status(current_status)

    if current != rule.from_status:
        allowed = get_allowed_actions(current)
        error_msg = (
            f"Invalid transition from {current.value} via {rule.action.value}. "
            f"Expected {rule.from_status.value}."
        )
        logger.warning(f"Blocked transition: {error_msg}")
        raise StateTransitionError(
            message=error_msg,
            current_status=current,
            action=rule.action,
            expected_status=rule.from_status,
            allowed_actions=allowed,
        )

    logger.debug(f"Valid transition: {current.value} → {rule.to_status.value} via {rule.action.value}")
    return rule


def get_allowed_actions(current_status: Union[PatchStatus, str, None]) -> list[PatchAction]:
    """
    Get the actions offered from the current status.

    Args:
        current_status: Current lifecycle status

    Returns:
        List of next actions in display order
    """
    return list(NEXT_ACTIONS.get(_coerce_status(current_status), []))


def get_target_status(action: Union[PatchAction, str]) -> PatchStatus:
    """Status a record ends up in after applying an action."""
    return get_rule(action).to_status


def action_slug(action: PatchAction) -> str:
    """URL form of an action, e.g. ``start-deployment``."""
    return action.value.replace("_", "-")


def action_camel(action: PatchAction) -> str:
    """camelCase form of an action, e.g. ``startDeployment``."""
    head, *rest = action.value.split("_")
    return head + "".join(part.capitalize() for part in rest)
