"""Tests for introdesk.routes.dashboard -- health check and staff roster."""


class TestHealthCheck:
    """GET /health returns a simple health status."""

    def test_returns_200_with_healthy_status(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.json == {"status": "healthy"}

    def test_unknown_route_404(self, client):
        assert client.get('/nope').status_code == 404


class TestStaffRoster:
    """GET /api/staff returns the pick-list roster."""

    def test_roster(self, client):
        data = client.get('/api/staff').get_json()
        assert 'Grace' in data['sales_associates']
        assert 'Nathan' in data['coaches']
        assert data['all'] == sorted(set(data['sales_associates']) | set(data['coaches']))
