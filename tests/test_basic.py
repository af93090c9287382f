"""
Basic tests for the Valuation Desk application.
"""

from conftest import login


def test_app_creation(app):
    """Test that the app is created successfully."""
    assert app is not None
    assert app.config["TESTING"] is True


def test_health_endpoint(client):
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["storage"] == "json"
    assert body["connected"] is True


def test_api_health_endpoint(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["connected"] is True


def test_dashboard_requires_login(client):
    """Test the dashboard route without a session."""
    response = client.get("/")
    assert response.status_code == 401
    body = response.get_json()
    assert body["success"] is False
    assert body["details"]["code"] == "AUTHENTICATION_REQUIRED"


def test_dashboard_route(client):
    """Test the dashboard route for the seeded admin."""
    login(client)
    response = client.get("/")
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["user"]["username"] == "admin"
    assert body["stats"]["invoices"]["counts"]["all"] == 0
    assert body["stats"]["files"]["counts"]["all"] == 0


def test_correlation_id_header(client):
    response = client.get("/health")
    assert response.headers.get("X-Correlation-ID")


def test_incoming_correlation_id_is_echoed(client):
    response = client.get("/health", headers={"X-Correlation-ID": "abc123"})
    assert response.headers["X-Correlation-ID"] == "abc123"


def test_unknown_route_returns_json_error(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.get_json()["success"] is False


def test_default_admin_seeded_once(app, config_class):
    from valuation_desk import get_services

    services = get_services()
    assert services.store.count("users") == 1
    assert services.users.ensure_default_admin(config_class) is None
    assert services.store.count("users") == 1
