"""Tests for state machine validation."""
import pytest
from release_core.models import PatchAction, PatchStatus
from release_core.state_machine import (
    ACTION_LABELS,
    STATUS_LABELS,
    STATUS_SORT_ORDER,
    StateTransitionError,
    UnsupportedTransitionError,
    action_camel,
    action_slug,
    get_allowed_actions,
    get_rule,
    get_target_status,
    is_transition_valid,
    parse_action,
    validate_transition,
)


class TestStateTransitions:
    """Test state machine transition validation."""

    def test_forward_transitions(self):
        """Test the deployment path from development to deprecated."""
        # in_development → in_deployment
        assert is_transition_valid(PatchStatus.IN_DEVELOPMENT, PatchAction.START_DEPLOYMENT)
        rule = validate_transition(PatchStatus.IN_DEVELOPMENT, PatchAction.START_DEPLOYMENT)
        assert rule.to_status == PatchStatus.IN_DEPLOYMENT

        # in_deployment → active
        rule = validate_transition(PatchStatus.IN_DEPLOYMENT, PatchAction.MARK_ACTIVE)
        assert rule.to_status == PatchStatus.ACTIVE

        # active → deprecated
        rule = validate_transition(PatchStatus.ACTIVE, PatchAction.DEPRECATE)
        assert rule.to_status == PatchStatus.DEPRECATED

    def test_back_transitions(self):
        """Test cancel, reopen and reactivate."""
        assert validate_transition(PatchStatus.IN_DEPLOYMENT, "cancel_deployment").to_status == PatchStatus.IN_DEVELOPMENT
        assert validate_transition(PatchStatus.ACTIVE, "revert_to_deployment").to_status == PatchStatus.IN_DEPLOYMENT
        assert validate_transition(PatchStatus.DEPRECATED, "reactivate").to_status == PatchStatus.ACTIVE

    def test_none_status_counts_as_in_development(self):
        """Test that a missing status behaves like in_development."""
        assert is_transition_valid(None, PatchAction.START_DEPLOYMENT)
        assert get_allowed_actions(None) == [PatchAction.START_DEPLOYMENT]

    def test_invalid_transition_raises_with_details(self):
        """Test that deprecating a record still in development is blocked."""
        assert not is_transition_valid(PatchStatus.IN_DEVELOPMENT, PatchAction.DEPRECATE)

        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(PatchStatus.IN_DEVELOPMENT, PatchAction.DEPRECATE)

        error = exc_info.value
        assert error.code == "INVALID_TRANSITION"
        assert error.status_code == 400
        assert error.details == {
            "from": "in_development",
            "expected": "active",
            "action": "deprecate",
        }
        assert error.allowed_actions == [PatchAction.START_DEPLOYMENT]

    def test_same_action_twice_is_invalid(self):
        """Test that there are no self transitions."""
        with pytest.raises(StateTransitionError):
            validate_transition(PatchStatus.IN_DEPLOYMENT, PatchAction.START_DEPLOYMENT)

    def test_unknown_action(self):
        """Test that unknown actions raise UNSUPPORTED_TRANSITION."""
        assert not is_transition_valid(PatchStatus.ACTIVE, "launch")

        with pytest.raises(UnsupportedTransitionError) as exc_info:
            get_rule("launch")

        assert exc_info.value.code == "UNSUPPORTED_TRANSITION"
        assert exc_info.value.details == {"action": "launch"}


class TestActionNames:
    """Test parsing of action names, slugs and aliases."""

    def test_slug_and_camel_case_accepted(self):
        assert parse_action("start-deployment") == PatchAction.START_DEPLOYMENT
        assert parse_action("startDeployment") == PatchAction.START_DEPLOYMENT
        assert parse_action("revertToDeployment") == PatchAction.REVERT_TO_DEPLOYMENT

    def test_aliases(self):
        """Test that set_active and archive map to their canonical actions."""
        assert parse_action("set_active") == PatchAction.MARK_ACTIVE
        assert parse_action("set-active") == PatchAction.MARK_ACTIVE
        assert parse_action("archive") == PatchAction.DEPRECATE
        assert get_target_status("archive") == PatchStatus.DEPRECATED

    def test_formatting(self):
        assert action_slug(PatchAction.MARK_ACTIVE) == "mark-active"
        assert action_camel(PatchAction.REVERT_TO_DEPLOYMENT) == "revertToDeployment"
        assert action_camel(PatchAction.DEPRECATE) == "deprecate"


class TestAllowedActions:
    """Test the actions offered from each status."""

    def test_next_actions_per_status(self):
        assert get_allowed_actions(PatchStatus.IN_DEVELOPMENT) == [PatchAction.START_DEPLOYMENT]
        assert get_allowed_actions(PatchStatus.IN_DEPLOYMENT) == [
            PatchAction.CANCEL_DEPLOYMENT,
            PatchAction.MARK_ACTIVE,
        ]
        assert get_allowed_actions(PatchStatus.ACTIVE) == [
            PatchAction.REVERT_TO_DEPLOYMENT,
            PatchAction.DEPRECATE,
        ]
        assert get_allowed_actions(PatchStatus.DEPRECATED) == [PatchAction.REACTIVATE]

    def test_allowed_actions_are_valid(self):
        """Every offered action must pass validation from that status."""
        for status in PatchStatus:
            for action in get_allowed_actions(status):
                assert is_transition_valid(status, action)

    def test_every_status_has_a_label(self):
        assert STATUS_LABELS[PatchStatus.IN_DEVELOPMENT] == "In Development"
        assert set(STATUS_LABELS) == set(PatchStatus)

    def test_every_action_has_a_label(self):
        assert {a.value for a in PatchAction} <= set(ACTION_LABELS)
        assert ACTION_LABELS["revert_to_deployment"] == "Reopen Deployment"

    def test_status_sort_order(self):
        ordered = sorted(PatchStatus, key=STATUS_SORT_ORDER.__getitem__)
        assert ordered == [
            PatchStatus.IN_DEPLOYMENT,
            PatchStatus.ACTIVE,
            PatchStatus.IN_DEVELOPMENT,
            PatchStatus.DEPRECATED,
        ]
