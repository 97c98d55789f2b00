"""Tests for development fixtures and the seed command."""
import pytest
from sqlalchemy.orm import sessionmaker

from release_core import models, seed
from release_core.auth import authenticate_token
from release_core.config import Settings
from release_core.models import PatchStatus
from release_core.records import BUILT_VERSION, PATCH


@pytest.fixture
def dev_settings():
    return Settings(environment="development")


class TestSeedDatabase:
    """Test loading the development fixtures."""

    def test_summary(self, db, dev_settings):
        summary = seed.seed_database(db, dev_settings)

        assert summary == {
            "users": 3,
            "components": 5,
            "releases": 2,
            "patches": 5,
            "built_versions": 5,
        }
        assert db.query(models.Patch).count() == 5
        assert db.query(models.BuiltVersion).count() == 5

    def test_records_match_fixture_statuses(self, db, dev_settings):
        seed.seed_database(db, dev_settings)

        patch_id = seed.record_fixture_id(PATCH, "177", "177.1")
        patch = db.get(models.Patch, patch_id)
        assert patch.current_status == PatchStatus.ACTIVE
        assert [t.action.value for t in patch.transitions] == ["start_deployment", "mark_active"]

        names = sorted(cv.name for cv in patch.component_versions)
        assert names == [
            "admin.177.1",
            "app.android.177.1",
            "app.ios.177.1",
            "backend.np.177.1",
        ]

        build = db.get(models.BuiltVersion, seed.record_fixture_id(BUILT_VERSION, "177", "177.2"))
        assert build.current_status == PatchStatus.IN_DEPLOYMENT
        assert sorted(cv.name for cv in build.component_versions) == ["backend.np.177.2", "desktop.np.177-0"]

    def test_last_used_increment(self, db, dev_settings):
        seed.seed_database(db, dev_settings)

        releases = {r.name: r for r in db.query(models.ReleaseVersion).all()}
        assert releases["177"].last_used_increment == 3
        assert releases["26.1"].last_used_increment == 0

    def test_idempotent(self, db, dev_settings):
        seed.seed_database(db, dev_settings)
        seed.seed_database(db, dev_settings)

        assert db.query(models.ReleaseVersion).count() == 2
        assert db.query(models.ReleaseComponent).count() == 5
        assert db.query(models.Patch).count() == 5
        assert db.query(models.User).count() == 3

    def test_refuses_outside_development(self, db):
        with pytest.raises(seed.SeedEnvironmentError):
            seed.seed_database(db, Settings(environment="production"))
        assert db.query(models.ReleaseVersion).count() == 0


class TestClaimSeedOwnership:
    def test_claim(self, db, user, dev_settings):
        seed.seed_database(db, dev_settings)

        assert seed.claim_seed_ownership(db, user.email) is True

        assert db.get(models.User, seed.SEED_PLACEHOLDER_USER_ID) is None
        owners = {r.created_by_id for r in db.query(models.ReleaseVersion).all()}
        assert owners == {user.id}
        assert {c.created_by_id for c in db.query(models.ReleaseComponent).all()} == {user.id}

    def test_nothing_to_claim(self, db, user, dev_settings):
        seed.seed_database(db, dev_settings)
        seed.claim_seed_ownership(db, user.email)

        assert seed.claim_seed_ownership(db, user.email) is False

    def test_unknown_user(self, db):
        with pytest.raises(LookupError):
            seed.claim_seed_ownership(db, "nobody@example.com")


class TestSeedCommand:
    """Test the release-core-seed entry point."""

    @pytest.fixture
    def cli_session(self, engine, monkeypatch):
        monkeypatch.setattr(seed, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=engine))

    def test_create_user(self, db, cli_session, capsys):
        assert seed.main(["create-user", "--email", "ops@example.com", "--name", "Ops"]) == 0

        out = capsys.readouterr().out
        raw_token = out.split("Token: ")[1].strip()
        user = authenticate_token(db, raw_token)
        assert user.email == "ops@example.com"

    def test_seed_rejected_in_test_environment(self, cli_session, capsys):
        assert seed.main(["seed"]) == 1
        assert "Seeds can only run in development" in capsys.readouterr().err

    def test_claim_unknown_user(self, cli_session, capsys):
        assert seed.main(["claim", "--email", "nobody@example.com"]) == 1
