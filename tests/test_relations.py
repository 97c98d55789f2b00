"""Tests for the ?relations= allow-list."""
import pytest
from release_core.relations import (
    InvalidRelationError,
    parse_relations,
    resolve_relations,
    validate_relations,
)


class TestParseRelations:
    def test_comma_separated_and_repeated(self):
        assert parse_relations(["creater, patches", "patches.transitions"]) == [
            "creater",
            "patches",
            "patches.transitions",
        ]

    def test_empty(self):
        assert parse_relations(None) == []
        assert parse_relations(["", " , "]) == []


class TestResolveRelations:
    """Test validation of requested relations."""

    def test_nothing_requested(self):
        state = resolve_relations(None)
        assert not any(state)

    def test_nested_relations_with_parent(self):
        state = resolve_relations(["patches,patches.deployedComponents,patches.transitions"])
        assert state.include_patches
        assert state.include_patch_components
        assert state.include_patch_transitions
        assert not state.include_creater

    def test_duplicates_dropped(self):
        valid, invalid, missing = validate_relations(["creater", "creater"])
        assert valid == ["creater"]
        assert invalid == []
        assert missing == []

    def test_unknown_relation(self):
        with pytest.raises(InvalidRelationError) as exc_info:
            resolve_relations(["owner"])

        error = exc_info.value
        assert error.code == "INVALID_RELATION"
        assert error.status_code == 400
        assert error.details["invalidRelations"] == ["owner"]
        assert error.details["missingParentRelations"] == []

    def test_child_without_parent(self):
        with pytest.raises(InvalidRelationError) as exc_info:
            resolve_relations(["patches.transitions"])

        assert exc_info.value.details["missingParentRelations"] == ["patches.transitions"]
        assert "patches" in exc_info.value.details["allowedRelations"]
