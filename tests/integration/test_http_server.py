"""
Integration tests for the ObsDB HTTP API.

Tests cover:
- Recording observations and reading snapshots
- Series, search and stats endpoints
- Node removal with confirmation
- Error responses
"""

import tempfile

import pytest
from fastapi.testclient import TestClient

from tsdb.obsdb_server.api import create_http_app
from tsdb.obsdb_server.config import ServerConfig, StorageConfig, StoreConfig

T0 = "2024-05-01T12:00:00+00:00"
T1 = "2024-05-01T12:00:01+00:00"


class TestHttpServer:
    """Tests for the HTTP API."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def client(self, data_dir):
        """Create client for an app owning its store."""
        config = ServerConfig(
            storage=StorageConfig(db_path=f"{data_dir}/obsdb.db", wal_mode=False),
            store=StoreConfig(table_prefix="http"),
        )
        with TestClient(create_http_app(config)) as client:
            yield client

    def record(self, client, node, obj, timestamp):
        response = client.post(
            f"/v1/nodes/{node}/observations", json={"object": obj, "timestamp": timestamp}
        )
        assert response.status_code == 200, response.text
        return response.json()

    def test_health(self, client):
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_insert_and_snapshot(self, client):
        body = self.record(client, "42", {"a": 1, "b": "Hello", "sub": {"c": True}}, T0)
        assert body == {"node": 42, "written": 3}

        self.record(client, "42", {"a": 2}, T1)

        current = client.get("/v1/nodes/42").json()
        assert current["a"]["value"] == 2
        assert current["b"] == {"value": "Hello", "timestamp": "2024-05-01T12:00:00+00:00"}
        assert current["sub"]["c"]["value"] is True

        past = client.get("/v1/nodes/42", params={"at": "2024-05-01T12:00:00.500+00:00"}).json()
        assert past["a"]["value"] == 1

    def test_text_node(self, client):
        self.record(client, "sensor-1", {"a": 1}, T0)
        assert client.get("/v1/nodes/sensor-1/exists").json() == {"node": "sensor-1", "exists": True}
        assert client.get("/v1/nodes/1/exists").json() == {"node": 1, "exists": False}

    def test_series(self, client):
        self.record(client, "1", {"a": 1}, T0)
        self.record(client, "1", {"a": 2}, T1)

        response = client.get("/v1/nodes/1/series", params={"field": ".a", "limit": 1})
        assert response.status_code == 200
        points = response.json()
        assert len(points) == 1
        assert points[0]["value"] == 2

    def test_search(self, client):
        self.record(client, "1", {"color": "red", "d": T0}, T0)
        self.record(client, "2", {"color": "blue"}, T1)

        hits = client.get("/v1/search", params={"field": ".color", "value": '"red"'}).json()
        assert [h["node"] for h in hits] == [1]

        # JSON string timestamps are stored as strings unless sent as a date search
        hits = client.get("/v1/search", params={"field": ".d", "value": f'"{T0}"'}).json()
        assert [h["node"] for h in hits] == [1]

    def test_search_bad_value(self, client):
        response = client.get("/v1/search", params={"field": ".a", "value": "not json"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_ARGUMENT"

    def test_remove(self, client):
        self.record(client, "1", {"a": 1, "b": "x"}, T0)

        response = client.delete("/v1/nodes/1")
        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFIRMATION_REQUIRED"

        response = client.delete("/v1/nodes/1", params={"confirm": "true"})
        assert response.json() == {"node": 1, "removed": 2}
        assert client.get("/v1/nodes/1").json() == {}

    def test_stats(self, client):
        self.record(client, "1", {"a": 1, "b": "x"}, T0)
        stats = client.get("/v1/stats").json()
        assert stats["observations"] == 2
        assert stats["nodes"] == 1

    def test_value_too_large(self, client):
        response = client.post(
            "/v1/nodes/1/observations", json={"object": {"a": "x" * 5000}, "timestamp": T0}
        )
        assert response.status_code == 413
        body = response.json()
        assert body["error_code"] == "VALUE_TOO_LARGE"
        assert body["details"]["limit"] == 4096

    def test_unsupported_value(self, client):
        response = client.post(
            "/v1/nodes/1/observations", json={"object": {"a": None}, "timestamp": T0}
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "UNSUPPORTED_TYPE"

    def test_structural_conflict(self, client):
        self.record(client, "1", {"a": 1}, T0)
        self.record(client, "1", {"a": {"b": 1}}, T1)

        response = client.get("/v1/nodes/1")
        assert response.status_code == 409
        assert response.json()["error_code"] == "STRUCTURAL_CONFLICT"

    def test_invalid_limit(self, client):
        response = client.get("/v1/nodes/1/series", params={"field": ".a", "limit": 0})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_ARGUMENT"

    def test_node_outside_integer_range(self, client):
        response = client.get("/v1/nodes/99999999999999999999")
        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INVALID_ARGUMENT"
        assert body["details"]["argument"] == "node"

    def test_inexact_integer_value(self, client):
        response = client.post(
            "/v1/nodes/1/observations", json={"object": {"a": 2**53 + 1}, "timestamp": T0}
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "UNSUPPORTED_TYPE"
