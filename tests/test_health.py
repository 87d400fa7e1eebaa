"""
Tests for health check endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from main import app
from finsight.ml.category_rules import DEFAULT_RULES


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert "service" in response.json()
    assert "version" in response.json()


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


def test_liveness_check(client):
    """Test liveness check endpoint."""
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "alive"


def test_readiness_check(client):
    """Test readiness check against the test database."""
    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["database"] == "connected"


def test_readiness_reports_service_state(client):
    """Test readiness payload carries rule and merchant memory state."""
    data = client.get("/api/v1/health/ready").json()
    assert data["checks"] == {"database": "connected", "rules": "loaded"}
    assert data["rule_count"] == len(DEFAULT_RULES)
    assert data["merchants_learned"] >= 0
    assert "error" not in data
