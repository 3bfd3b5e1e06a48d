"""Tests for capability resolution on admin and client endpoints."""

import pytest

from tenantdb.auth import AdminAccount
from tenantdb.dependencies import (
    CAPABILITY_ADMIN,
    CAPABILITY_ANON,
    CAPABILITY_SERVICE,
    authorize_project_key,
    bearer_token,
)
from tenantdb.errors import NotFoundError, UnauthorizedError


class TestAuthorizeProjectKey:
    """Unit tests for authorize_project_key."""

    def test_anon_key(self, platform, demo_project):
        context = authorize_project_key(platform, demo_project["id"], demo_project["anon_key"])

        assert context.capability == CAPABILITY_ANON
        assert context.project_id == demo_project["id"]
        assert context.account is None

    def test_service_key(self, platform, demo_project):
        context = authorize_project_key(platform, demo_project["id"], demo_project["service_key"])
        assert context.capability == CAPABILITY_SERVICE

    def test_admin_token_fallback(self, platform, demo_project):
        token = platform.keys.issue_admin_token(AdminAccount(id="acc_1", name="Account 1"))

        context = authorize_project_key(platform, demo_project["id"], None, admin_token=token)

        assert context.capability == CAPABILITY_ADMIN
        assert context.account.id == "acc_1"

    def test_admin_token_rejected_when_not_allowed(self, platform, demo_project):
        token = platform.keys.issue_admin_token(AdminAccount(id="acc_1", name="Account 1"))

        with pytest.raises(UnauthorizedError):
            authorize_project_key(
                platform, demo_project["id"], None, admin_token=token, allow_admin=False
            )

    def test_wrong_key(self, platform, demo_project):
        with pytest.raises(UnauthorizedError):
            authorize_project_key(platform, demo_project["id"], "pk_anon_wrong")

    def test_missing_key(self, platform, demo_project):
        with pytest.raises(UnauthorizedError):
            authorize_project_key(platform, demo_project["id"], None)

    def test_unknown_project_is_not_found_before_key_check(self, platform):
        with pytest.raises(NotFoundError):
            authorize_project_key(platform, "no-such-project", None)

    def test_key_of_other_project_rejected(self, platform, demo_project):
        other = platform.tenants.create_project("acc_1", "Other")

        with pytest.raises(UnauthorizedError):
            authorize_project_key(platform, other["id"], demo_project["anon_key"])


def test_bearer_token():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("Bearer ") is None
    assert bearer_token("Basic abc") is None
    assert bearer_token(None) is None


class TestAdminGate:
    """Admin endpoints require a token and hide other accounts' projects."""

    def test_missing_token(self, client):
        response = client.get("/api/admin/projects")

        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_invalid_token(self, client):
        response = client.get("/api/admin/projects", headers={"X-Admin-Token": "admin_nope"})
        assert response.status_code == 401

    def test_other_account_cannot_see_project(self, client, project, other_admin_headers):
        response = client.get(
            f"/api/admin/projects/{project['id']}/tables",
            headers=other_admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_other_account_cannot_delete_project(self, client, project, other_admin_headers, admin_headers):
        response = client.delete(f"/api/admin/projects/{project['id']}", headers=other_admin_headers)
        assert response.status_code == 404

        response = client.get(f"/api/admin/projects/{project['id']}/tables", headers=admin_headers)
        assert response.status_code == 200


class TestClientGate:
    """Client endpoints accept anon/service keys or an admin token."""

    def test_anon_key_header(self, client, project, items_table, anon_headers):
        response = client.get(f"/api/projects/{project['id']}/items", headers=anon_headers)
        assert response.status_code == 200

    def test_service_key_bearer(self, client, project, items_table):
        response = client.get(
            f"/api/projects/{project['id']}/items",
            headers={"Authorization": f"Bearer {project['service_key']}"},
        )
        assert response.status_code == 200

    def test_admin_token(self, client, project, items_table, admin_headers):
        response = client.get(f"/api/projects/{project['id']}/items", headers=admin_headers)
        assert response.status_code == 200

    def test_no_key(self, client, project, items_table):
        response = client.get(f"/api/projects/{project['id']}/items")
        assert response.status_code == 401

    def test_anon_key_of_other_project_rejected(self, client, project, admin_headers, anon_headers):
        other = client.post(
            "/api/admin/projects", json={"name": "Other"}, headers=admin_headers
        ).json()
        client.post(
            f"/api/admin/projects/{other['id']}/tables",
            json={"name": "items"},
            headers=admin_headers,
        )

        response = client.get(f"/api/projects/{other['id']}/items", headers=anon_headers)

        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_unknown_project(self, client, anon_headers):
        response = client.get("/api/projects/does-not-exist/items", headers=anon_headers)
        assert response.status_code == 404
