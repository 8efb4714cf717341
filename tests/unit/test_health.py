"""Tests for health endpoints."""

from campus import __version__


class TestHealthEndpoints:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert "timestamp" in data

    def test_liveness_probe(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_probe(self, client):
        response = client.get("/health/ready")
        # Redis is usually absent in the test environment
        assert response.status_code in (200, 503)
        data = response.json()
        assert data["checks"]["database"]["status"] == "healthy"
        if response.status_code == 503:
            assert data["status"] == "not_ready"
            assert data["failed"] == ["redis"]
        else:
            assert data["status"] == "ready"

    def test_health_has_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
