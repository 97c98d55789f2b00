"""Tests for successor arrangement and transition preflight."""
import uuid

import pytest
from release_core import crud, lifecycle, preflight, records
from release_core.errors import NotFoundError, ValidationError
from release_core.models import PatchAction, PatchStatus, ReleaseScope
from release_core.records import BUILT_VERSION, PATCH
from release_core.state_machine import UnsupportedTransitionError
from release_core.successors import InvalidStateError, MissingSuccessorError, arrange_successor


@pytest.fixture
def components(make_component):
    return {
        "ios": make_component("iOS App", "app.ios.{built_version}", ReleaseScope.GLOBAL),
        "backend": make_component("Backend", "backend.{patch}-{increment}"),
        "desktop": make_component("Desktop", "desktop.{patch}"),
    }


@pytest.fixture
def release(db, user, components):
    release, _ = crud.create_release_version(db, "177", user.id)
    return release


@pytest.fixture
def deploying_patch(db, user, release):
    """177.0 in deployment, with its auto-created successor 177.1."""
    patch = records.list_records(db, PATCH, release.id)[0]
    lifecycle.transition(db, PATCH, patch.id, "start_deployment", user.id)
    db.refresh(patch)
    return patch


def _rows(db, record_id):
    return {
        cv.release_component_id: cv
        for cv in records.list_component_versions(db, PATCH, record_id)
    }


class TestArrangeSuccessor:
    """Test splitting component versions between a record and its successor."""

    def test_unselected_components_move_to_successor(self, db, user, components, deploying_patch):
        result = arrange_successor(db, PATCH, deploying_patch.id, [components["backend"].id], user.id)

        successor = records.list_records(db, PATCH, deploying_patch.version_id)[1]
        assert result == {
            "moved": 1,
            "created": 2,
            "updated": 0,
            "successor_id": successor.id,
        }

        current_rows = _rows(db, deploying_patch.id)
        successor_rows = _rows(db, successor.id)
        # Global components are always kept
        assert set(current_rows) == {components["ios"].id, components["backend"].id}
        assert set(successor_rows) == {c.id for c in components.values()}

    def test_names_follow_successor(self, db, user, components, deploying_patch):
        arrange_successor(db, PATCH, deploying_patch.id, [components["backend"].id], user.id)

        successor = records.list_records(db, PATCH, deploying_patch.version_id)[1]
        successor_rows = _rows(db, successor.id)
        assert successor_rows[components["backend"].id].name == "backend.177.1-0"
        assert successor_rows[components["ios"].id].name == "app.ios.177.1"
        # Moved row renamed with its own increment
        moved = successor_rows[components["desktop"].id]
        assert moved.name == "desktop.177.1"
        assert moved.token_values["built_version"] == "177.1"

    def test_second_run_updates(self, db, user, components, deploying_patch):
        selection = [components["backend"].id]
        arrange_successor(db, PATCH, deploying_patch.id, selection, user.id)
        result = arrange_successor(db, PATCH, deploying_patch.id, selection, user.id)

        assert result["moved"] == 0
        assert result["created"] == 0
        assert result["updated"] == 2

    def test_missing_current_row_created(self, db, user, components, deploying_patch):
        """Selecting a component the record never had creates its row too."""
        arrange_successor(db, PATCH, deploying_patch.id, [components["backend"].id], user.id)
        result = arrange_successor(
            db, PATCH, deploying_patch.id, [components["backend"].id, components["desktop"].id], user.id
        )

        assert result["created"] == 1
        assert result["updated"] == 3
        assert _rows(db, deploying_patch.id)[components["desktop"].id].name == "desktop.177.0"

    def test_empty_selection_rejected(self, db, user, deploying_patch):
        with pytest.raises(ValidationError) as exc_info:
            arrange_successor(db, PATCH, deploying_patch.id, [], user.id)
        assert exc_info.value.message == "At least one component must be selected"

    def test_requires_in_deployment(self, db, user, release, components):
        patch = records.list_records(db, PATCH, release.id)[0]
        with pytest.raises(InvalidStateError) as exc_info:
            arrange_successor(db, PATCH, patch.id, [components["backend"].id], user.id)
        assert exc_info.value.code == "INVALID_STATE"

    def test_requires_successor(self, db, user, release, components):
        patch = records.list_records(db, PATCH, release.id)[0]
        patch.current_status = PatchStatus.IN_DEPLOYMENT
        db.commit()

        with pytest.raises(MissingSuccessorError) as exc_info:
            arrange_successor(db, PATCH, patch.id, [components["backend"].id], user.id)
        assert exc_info.value.status_code == 400

    def test_built_versions(self, db, user, release, components):
        build = records.list_records(db, BUILT_VERSION, release.id)[0]
        lifecycle.transition(db, BUILT_VERSION, build.id, "start_deployment", user.id)

        result = arrange_successor(db, BUILT_VERSION, build.id, [components["desktop"].id], user.id)

        assert result["moved"] == 1
        assert result["created"] == 2


class TestPreflight:
    """Test transition preflight reports."""

    def test_start_deployment_allowed(self, db, release):
        patch = records.list_records(db, PATCH, release.id)[0]

        report = preflight.get_preflight(db, release.id, patch.id, "startDeployment")

        assert report["allowed"]
        assert report["action"] == PatchAction.START_DEPLOYMENT
        assert report["from_status"] == PatchStatus.IN_DEVELOPMENT
        assert report["to_status"] == PatchStatus.IN_DEPLOYMENT
        assert report["blockers"] == []
        assert report["expected_side_effects"] == [
            "Auto-creates successor patch when needed",
            "Locks patch for deployment planning",
        ]
        assert report["action_context"] == {
            "action": "startDeployment",
            "next_patch_name": "177.1",
            "missing_component_selections": 0,
            "has_successor": False,
        }
        assert report["patch"]["name"] == "177.0"

    def test_blocked_action_explains(self, db, release):
        patch = records.list_records(db, PATCH, release.id)[0]

        report = preflight.get_preflight(db, release.id, patch.id, "mark-active")

        assert not report["allowed"]
        assert report["warnings"] == []
        assert len(report["blockers"]) == 1
        assert "requires in_deployment" in report["blockers"][0]
        assert report["action_context"]["ready_for_prod"] is False
        assert report["action_context"]["pending_approvals"] == []

    def test_preflight_does_not_change_state(self, db, release):
        patch = records.list_records(db, PATCH, release.id)[0]
        preflight.get_preflight(db, release.id, patch.id, "start_deployment")

        assert lifecycle.get_current_status(db, PATCH, patch.id) == PatchStatus.IN_DEVELOPMENT
        assert len(records.list_records(db, PATCH, release.id)) == 1

    def test_active_since_from_history(self, db, user, deploying_patch):
        lifecycle.transition(db, PATCH, deploying_patch.id, "mark_active", user.id)
        history = lifecycle.get_history(db, PATCH, deploying_patch.id)

        report = preflight.get_preflight(
            db, deploying_patch.version_id, deploying_patch.id, "revert_to_deployment"
        )

        assert report["allowed"]
        assert report["action_context"]["active_since"] == history[-1].created_at
        assert len(report["history_preview"]) == 2

    def test_history_preview_limited(self, db, user, deploying_patch):
        for action in ("mark_active", "deprecate", "reactivate", "deprecate", "reactivate"):
            lifecycle.transition(db, PATCH, deploying_patch.id, action, user.id)

        report = preflight.get_preflight(db, deploying_patch.version_id, deploying_patch.id, "deprecate")

        assert len(report["history_preview"]) == preflight.HISTORY_PREVIEW_LIMIT
        assert report["history_preview"][-1].action == PatchAction.REACTIVATE
        assert report["action_context"]["consumers_impacted"] is False

    def test_built_version_wording(self, db, release):
        build = records.list_records(db, BUILT_VERSION, release.id)[0]
        report = preflight.get_preflight(db, release.id, build.id, "start_deployment", BUILT_VERSION)
        assert report["expected_side_effects"][0] == "Auto-creates successor built version when needed"

    def test_next_name_follows_built_version_sequence(self, db, release, deploying_patch):
        build = records.list_records(db, BUILT_VERSION, release.id)[0]
        report = preflight.get_preflight(db, release.id, build.id, "start_deployment", BUILT_VERSION)
        assert report["action_context"]["next_patch_name"] == "177.1"

    def test_next_name_skips_hand_created_patch(self, db, user, release):
        manual, _ = records.create_record(db, PATCH, release.id, "177.1", user.id)
        report = preflight.get_preflight(db, release.id, manual.id, "start_deployment")
        assert report["action_context"]["next_patch_name"] == "177.2"

    def test_wrong_release(self, db, user, release):
        other, _ = crud.create_release_version(db, "178", user.id)
        patch = records.list_records(db, PATCH, release.id)[0]
        with pytest.raises(NotFoundError):
            preflight.get_preflight(db, other.id, patch.id, "start_deployment")

    def test_missing_patch(self, db, release):
        with pytest.raises(NotFoundError):
            preflight.get_preflight(db, release.id, uuid.uuid4(), "start_deployment")

    def test_unknown_action(self, db, release):
        patch = records.list_records(db, PATCH, release.id)[0]
        with pytest.raises(UnsupportedTransitionError):
            preflight.get_preflight(db, release.id, patch.id, "launch")
