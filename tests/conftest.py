"""Shared fixtures: in-memory SQLite database, API client and users."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENCRYPTION_KEY"] = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
os.environ["JIRA_BASE_URL"] = ""
os.environ["JIRA_PROJECT_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from release_core import models
from release_core.api.main import app
from release_core.auth import create_access_token
from release_core.database import get_db
from release_core.models import Base, ReleaseScope


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    user = models.User(email="dana@example.com", name="Dana")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = models.User(email="sam@example.com", name="Sam")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def token(db, user):
    _, raw = create_access_token(db, user, "tests")
    return raw


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_component(db, user):
    """Factory creating a release component directly in the database."""

    def _make(name, naming_pattern, release_scope=ReleaseScope.VERSION_BOUND, color="blue"):
        component = models.ReleaseComponent(
            name=name,
            color=color,
            naming_pattern=naming_pattern,
            release_scope=release_scope,
            created_by_id=user.id,
        )
        db.add(component)
        db.commit()
        db.refresh(component)
        return component

    return _make
