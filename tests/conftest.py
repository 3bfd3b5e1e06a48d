"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from tenantdb.auth import KeyRegistry
from tenantdb.config import AdminAccountConfig
from tenantdb.database import MemoryDocumentStore
from tenantdb.main import app
from tenantdb.platform import Platform

# Admin login allow-list used by every test
ADMIN_PASSWORD = "test_admin_password"
OTHER_ADMIN_PASSWORD = "other_admin_password"

ADMIN_ACCOUNTS = {
    ADMIN_PASSWORD: AdminAccountConfig(id="acc_1", name="Account 1"),
    OTHER_ADMIN_PASSWORD: AdminAccountConfig(id="acc_2", name="Account 2"),
}


@pytest.fixture
def platform():
    """A fresh in-memory platform (bcrypt at minimum cost to keep tests fast)."""
    return Platform(
        MemoryDocumentStore(),
        keys=KeyRegistry(admin_accounts=ADMIN_ACCOUNTS),
        base_url="http://testserver/api",
        hash_rounds=4,
        realtime_queue_size=16,
    )


@pytest.fixture
def client(platform):
    """Create a test client for the FastAPI app, wired to the test platform."""
    app.state.platform = platform
    return TestClient(app)


def login(client: TestClient, password: str) -> str:
    response = client.post("/api/auth/login", json={"password": password})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def admin_token(client):
    return login(client, ADMIN_PASSWORD)


@pytest.fixture
def admin_headers(admin_token):
    """Return headers with an admin session token for account acc_1."""
    return {"X-Admin-Token": admin_token}


@pytest.fixture
def other_admin_headers(client):
    """Return headers with an admin session token for account acc_2."""
    return {"X-Admin-Token": login(client, OTHER_ADMIN_PASSWORD)}


@pytest.fixture
def project(client, admin_headers):
    """A project named Demo owned by acc_1."""
    response = client.post("/api/admin/projects", json={"name": "Demo"}, headers=admin_headers)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def anon_headers(project):
    return {"apikey": project["anon_key"]}


@pytest.fixture
def service_headers(project):
    return {"apikey": project["service_key"]}


@pytest.fixture
def items_table(client, project, admin_headers):
    """A table named items in the Demo project."""
    response = client.post(
        f"/api/admin/projects/{project['id']}/tables",
        json={"name": "items"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def demo_project(platform):
    """A Demo project created directly through the TenantStore."""
    return platform.tenants.create_project("acc_1", "Demo")
