"""
Health and version endpoints
"""
from fastapi.testclient import TestClient

from collabzy import __version__
from collabzy.main import create_app
from collabzy.session import SessionRegistry

client = TestClient(create_app(SessionRegistry(factory=lambda session: None)))


def test_health_endpoint_returns_200():
    """Test that /health returns HTTP 200"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_endpoint_returns_ok_status():
    """Test that /health returns status: ok"""
    data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["sessions"] == 0


def test_version_endpoint_reports_package_version():
    """Test that /version matches the package version"""
    data = client.get("/version").json()
    assert data["version"] == __version__
