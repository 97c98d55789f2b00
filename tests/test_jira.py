"""Tests for the Jira client, credentials and version sync."""
import asyncio
import base64

import httpx
import pytest
from release_core import jira, models
from release_core.config import Settings
from release_core.errors import PreconditionFailedError, UpstreamError
from release_core.models import JiraReleaseStatus


BASE_URL = "https://jira.example.com"


@pytest.fixture
def settings():
    return Settings(jira_base_url=BASE_URL, jira_project_key="REL")


def _versions_handler(pages, seen=None):
    """MockTransport handler serving ``pages`` keyed by startAt."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        start_at = int(request.url.params["startAt"])
        return httpx.Response(200, json=pages[start_at])

    return handler


class TestMapVersion:
    """Test normalization of Jira version payloads."""

    def test_status_mapping(self):
        assert jira.map_version({"id": "1", "released": True}).release_status == JiraReleaseStatus.RELEASED
        assert jira.map_version({"id": "2"}).release_status == JiraReleaseStatus.UNRELEASED
        archived = jira.map_version({"id": "3", "released": True, "archived": True})
        assert archived.release_status == JiraReleaseStatus.ARCHIVED

    def test_fields(self):
        version = jira.map_version({
            "id": 10001,
            "name": "177",
            "description": "",
            "releaseDate": "2025-01-05",
            "projectId": 42,
        })
        assert version.id == "10001"
        assert version.name == "177"
        assert version.description is None
        assert version.release_date == "2025-01-05"
        assert version.project_id == "42"

    def test_missing_id(self):
        assert jira.map_version({"name": "no id"}).id == ""
        assert jira.map_version("garbage").id == ""

    def test_filter_defaults_exclude_archived(self):
        versions = [
            jira.map_version({"id": "1", "released": True}),
            jira.map_version({"id": "2"}),
            jira.map_version({"id": "3", "archived": True}),
        ]
        assert [v.id for v in jira.filter_versions(versions)] == ["1", "2"]
        assert [v.id for v in jira.filter_versions(versions, False, False, True)] == ["3"]


class TestJiraClient:
    """Test pagination against a mocked Jira."""

    def test_follows_pages_until_last(self):
        seen = []
        pages = {
            0: {"startAt": 0, "isLast": False, "values": [{"id": "1", "name": "a"}, {"id": "2", "name": "b"}]},
            2: {"startAt": 2, "isLast": True, "values": [{"id": "3", "name": "c"}, {"name": "no id"}]},
        }
        client = jira.JiraClient(BASE_URL, "me@example.com", "secret", transport=httpx.MockTransport(
            _versions_handler(pages, seen)
        ))

        versions = asyncio.run(client.list_project_versions("REL", page_size=2))

        assert [v.id for v in versions] == ["1", "2", "3"]
        assert seen[0].url.path == "/rest/api/3/project/REL/version"
        assert seen[0].url.params["maxResults"] == "2"
        expected_auth = "Basic " + base64.b64encode(b"me@example.com:secret").decode()
        assert seen[0].headers["Authorization"] == expected_auth

    def test_page_size_clamped(self):
        seen = []
        pages = {0: {"startAt": 0, "isLast": True, "values": []}}
        client = jira.JiraClient(BASE_URL, "me@example.com", "secret", transport=httpx.MockTransport(
            _versions_handler(pages, seen)
        ))

        asyncio.run(client.list_project_versions("REL", page_size=500))

        assert seen[0].url.params["maxResults"] == "100"

    def test_stops_on_empty_page(self):
        pages = {0: {"startAt": 0, "values": []}}
        client = jira.JiraClient(BASE_URL, "me@example.com", "secret", transport=httpx.MockTransport(
            _versions_handler(pages)
        ))
        assert asyncio.run(client.list_project_versions("REL")) == []

    def test_error_response(self):
        def handler(request):
            return httpx.Response(401, text="Unauthorized token")

        client = jira.JiraClient(BASE_URL, "me@example.com", "bad", transport=httpx.MockTransport(handler))

        with pytest.raises(jira.JiraRequestError) as exc_info:
            asyncio.run(client.list_project_versions("REL"))

        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "Jira request failed (401): Unauthorized token"

    def test_fetch_not_configured(self):
        result = asyncio.run(jira.fetch_project_versions(BASE_URL, "REL", "me@example.com", None))
        assert result == {"configured": False, "items": []}


class TestCredentials:
    """Test per-user credential storage."""

    def test_token_encrypted_at_rest(self, db, user):
        assert jira.save_credentials(db, user.id, "me@example.com", "secret-token") == {"saved": True}

        credential = jira.get_credential(db, user.id)
        assert credential.encrypted_api_token != b"secret-token"
        assert jira.get_api_token(credential) == "secret-token"
        assert jira.get_credentials_summary(db, user.id) == {"email": "me@example.com", "has_token": True}

    def test_empty_token_keeps_existing(self, db, user):
        jira.save_credentials(db, user.id, "me@example.com", "secret-token")
        jira.save_credentials(db, user.id, "new@example.com", "")

        credential = jira.get_credential(db, user.id)
        assert credential.email == "new@example.com"
        assert jira.get_api_token(credential) == "secret-token"

    def test_summary_without_credentials(self, db, user):
        assert jira.get_credentials_summary(db, user.id) == {"email": None, "has_token": False}


class TestSetupStatus:
    def test_reports_first_missing_piece(self, db, user, settings):
        assert jira.get_setup_status(db, user.id, Settings(jira_base_url=None)) == {
            "ok": False,
            "reason": "Missing JIRA_BASE_URL",
        }
        assert jira.get_setup_status(db, user.id, Settings(jira_base_url=BASE_URL, jira_project_key=None))[
            "reason"
        ] == "Missing JIRA_PROJECT_KEY"
        assert jira.get_setup_status(db, user.id, settings)["reason"] == "Missing user email"

        jira.save_credentials(db, user.id, "me@example.com")
        assert jira.get_setup_status(db, user.id, settings)["reason"] == "Missing user API token"

        jira.save_credentials(db, user.id, "me@example.com", "secret-token")
        assert jira.get_setup_status(db, user.id, settings) == {"ok": True, "reason": None}

    def test_config(self, settings):
        assert jira.get_config(settings) == {
            "base_url": BASE_URL,
            "project_key": "REL",
            "env_var_names": ["JIRA_BASE_URL", "JIRA_PROJECT_KEY"],
        }


class TestVerifyConnection:
    """Test the /myself credential check."""

    def test_success(self, db, user, settings):
        def handler(request):
            assert request.url.path == "/rest/api/3/myself"
            return httpx.Response(200, json={"displayName": "Dana", "accountId": "abc"})

        result = asyncio.run(jira.verify_connection(
            db, user.id, "me@example.com", "secret-token", settings, httpx.MockTransport(handler)
        ))

        assert result == {"ok": True, "status": 200, "display_name": "Dana", "account_id": "abc"}

    def test_uses_stored_token(self, db, user, settings):
        jira.save_credentials(db, user.id, "me@example.com", "stored-token")
        seen = []

        def handler(request):
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        asyncio.run(jira.verify_connection(
            db, user.id, "me@example.com", None, settings, httpx.MockTransport(handler)
        ))

        assert seen == ["Basic " + base64.b64encode(b"me@example.com:stored-token").decode()]

    def test_upstream_failure(self, db, user, settings):
        def handler(request):
            return httpx.Response(403, text="Forbidden")

        result = asyncio.run(jira.verify_connection(
            db, user.id, "me@example.com", "secret-token", settings, httpx.MockTransport(handler)
        ))

        assert result["ok"] is False
        assert result["status"] == 403
        assert result["body_text"] == "Forbidden"

    def test_missing_configuration(self, db, user):
        result = asyncio.run(jira.verify_connection(
            db, user.id, "me@example.com", "secret-token", Settings(jira_base_url=None)
        ))
        assert result["status"] == 412
        assert result["status_text"] == "Missing configuration"

    def test_missing_token(self, db, user, settings):
        result = asyncio.run(jira.verify_connection(db, user.id, "me@example.com", None, settings))
        assert result["status"] == 412
        assert result["status_text"] == "Missing token"

    def test_network_error(self, db, user, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = asyncio.run(jira.verify_connection(
            db, user.id, "me@example.com", "secret-token", settings, httpx.MockTransport(handler)
        ))
        assert result["status"] == 0
        assert result["status_text"] == "Network error"


class TestSyncVersions:
    """Test mirroring Jira versions into the database."""

    @pytest.fixture
    def credentials(self, db, user):
        jira.save_credentials(db, user.id, "me@example.com", "secret-token")

    def test_sync_upserts(self, db, user, settings, credentials):
        pages = {0: {"startAt": 0, "isLast": True, "values": [
            {"id": "1", "name": "177", "released": True, "releaseDate": "2025-01-05"},
            {"id": "2", "name": "178"},
            {"id": "3", "name": "old", "archived": True},
        ]}}
        transport = httpx.MockTransport(_versions_handler(pages))

        result = asyncio.run(jira.sync_versions(db, user.id, settings=settings, transport=transport))

        assert result == {"saved": 2}
        rows = db.query(models.JiraVersion).order_by(models.JiraVersion.jira_id).all()
        assert [r.name for r in rows] == ["177", "178"]
        assert rows[0].release_date.isoformat() == "2025-01-05"

        pages[0]["values"][1]["name"] = "178 renamed"
        asyncio.run(jira.sync_versions(db, user.id, settings=settings, transport=transport))
        assert db.query(models.JiraVersion).count() == 2
        assert db.query(models.JiraVersion).filter(models.JiraVersion.jira_id == "2").one().name == "178 renamed"

    def test_include_archived(self, db, user, settings, credentials):
        pages = {0: {"startAt": 0, "isLast": True, "values": [{"id": "3", "name": "old", "archived": True}]}}
        result = asyncio.run(jira.sync_versions(
            db, user.id, include_archived=True, settings=settings,
            transport=httpx.MockTransport(_versions_handler(pages)),
        ))
        assert result == {"saved": 1}

    def test_not_configured(self, db, user, settings):
        with pytest.raises(PreconditionFailedError) as exc_info:
            asyncio.run(jira.sync_versions(db, user.id, settings=settings))
        assert exc_info.value.status_code == 412

    def test_upstream_error(self, db, user, settings, credentials):
        def handler(request):
            return httpx.Response(500, text="Jira down")

        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(jira.sync_versions(
                db, user.id, settings=settings, transport=httpx.MockTransport(handler)
            ))
        assert exc_info.value.status_code == 502
        assert "Jira request failed (500)" in exc_info.value.message


class TestListStoredVersions:
    def test_ordered_by_status_then_name(self, db):
        jira.upsert_versions(db, [
            jira.map_version({"id": "1", "name": "b"}),
            jira.map_version({"id": "2", "name": "z", "released": True}),
            jira.map_version({"id": "3", "name": "a"}),
            jira.map_version({"id": "4", "name": "c", "archived": True}),
        ])

        result = jira.list_stored_versions(db)
        assert result["total"] == 3
        assert [v.name for v in result["items"]] == ["z", "a", "b"]

        with_archived = jira.list_stored_versions(db, include_archived=True)
        assert [v.name for v in with_archived["items"]][-1] == "c"

        assert jira.list_stored_versions(db, False, False, False) == {"total": 0, "items": []}
