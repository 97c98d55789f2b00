"""Tests for naming patterns and release name suggestions."""
from release_core.models import ReleaseTrack
from release_core.versioning import (
    build_token_values,
    expand_pattern,
    is_pattern_usable,
    next_release_name,
    parse_increment,
    release_defaults,
    validate_pattern,
)


class TestValidatePattern:
    """Test naming pattern validation."""

    def test_supported_tokens(self):
        valid, errors = validate_pattern("api-{release_version}-{built_version}-{patch}.{increment}")
        assert valid
        assert errors == []

    def test_plain_text_is_valid(self):
        assert validate_pattern("static-name") == (True, [])

    def test_unknown_token(self):
        valid, errors = validate_pattern("api-{version}")
        assert not valid
        assert errors == ["Unknown token: {version}"]

    def test_unmatched_braces(self):
        assert validate_pattern("api}") == (False, ["Unmatched closing brace: '}'"])
        assert validate_pattern("api-{release_version") == (False, ["Unmatched opening brace: '{'"])

    def test_blank_pattern_not_usable(self):
        assert not is_pattern_usable("")
        assert not is_pattern_usable("   ")
        assert not is_pattern_usable(None)
        assert is_pattern_usable("app.{built_version}")


class TestExpandPattern:
    """Test token substitution."""

    def test_all_tokens_replaced(self):
        name = expand_pattern("{release_version}/{built_version}/{increment}", "2025.1", "2025.1.3", 2)
        assert name == "2025.1/2025.1.3/2"

    def test_patch_is_alias_of_built_version(self):
        assert expand_pattern("app.{patch}", "177", "177.2", 0) == "app.177.2"

    def test_repeated_tokens(self):
        assert expand_pattern("{increment}-{increment}", "1", "1.0", 7) == "7-7"

    def test_token_values_snapshot(self):
        assert build_token_values("177", "177.2", 1) == {
            "release_version": "177",
            "built_version": "177.2",
            "increment": 1,
        }


class TestIncrements:
    def test_last_segment(self):
        assert parse_increment("2025.3.4") == 4
        assert parse_increment("177.0") == 0
        assert parse_increment("26.1.12") == 12

    def test_non_numeric_defaults_to_zero(self):
        assert parse_increment("hotfix") == 0
        assert parse_increment("177.rc") == 0

    def test_non_ascii_digits_default_to_zero(self):
        assert parse_increment("177.\u00b2") == 0
        assert parse_increment("177.\u0663") == 0


class TestReleaseDefaults:
    """Test suggestions for the next release name."""

    def test_numeric_name_incremented(self):
        assert next_release_name("177") == "178"

    def test_major_minor_incremented(self):
        assert next_release_name("26.1") == "26.2"
        assert next_release_name("v2.9") == "v2.10"

    def test_fallback(self):
        assert next_release_name(None) == "New Release"
        assert next_release_name("Spring launch") == "New Release"
        assert next_release_name("1.2.3") == "New Release"

    def test_defaults_use_future_track(self):
        assert release_defaults("41") == {"name": "42", "release_track": ReleaseTrack.FUTURE}
