"""
============================================================================
Integration Tests - Health Surface
============================================================================

Reliability Level: SOVEREIGN TIER

Exercises the status application through FastAPI's TestClient:
- GET /health returns the snapshot with 200 while ok, 503 otherwise
- GET /ready always returns {"ready": true}
- GET /metrics exposes the keeper metrics

============================================================================
"""

import os

import pytest
from fastapi.testclient import TestClient

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from keeper.main import create_health_app
from services.health_reporter import HealthReporter


class FakeClock:

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(1_000.0)


@pytest.fixture
def reporter(clock):
    return HealthReporter(dry_run=True, clock=clock)


@pytest.fixture
def client(reporter):
    with TestClient(create_health_app(reporter)) as test_client:
        yield test_client


class TestHealthEndpoint:

    def test_fresh_keeper_is_ok(self, client, clock) -> None:
        clock.now = 1_042.7

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "uptimeSeconds": 42,
            "lastSuccessfulUpdate": None,
            "consecutiveFailures": 0,
            "totalUpdates": 0,
            "dryRun": True,
        }

    def test_success_is_reported(self, client, reporter) -> None:
        reporter.record_success(1_700_000_000)
        reporter.record_success(1_700_000_060)

        body = client.get("/health").json()

        assert body["lastSuccessfulUpdate"] == 1_700_000_060
        assert body["totalUpdates"] == 2

    def test_two_failures_still_ok(self, client, reporter) -> None:
        reporter.record_failure()
        reporter.record_failure()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["consecutiveFailures"] == 2

    def test_degraded_returns_503(self, client, reporter) -> None:
        for _ in range(3):
            reporter.record_failure()

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_error_returns_503(self, client, reporter) -> None:
        for _ in range(10):
            reporter.record_failure()

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"
        assert response.json()["consecutiveFailures"] == 10

    def test_recovery_returns_200(self, client, reporter) -> None:
        for _ in range(12):
            reporter.record_failure()
        reporter.record_success(5)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["consecutiveFailures"] == 0


class TestReadyAndMetrics:

    def test_ready(self, client) -> None:
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True}

    def test_ready_while_degraded(self, client, reporter) -> None:
        for _ in range(5):
            reporter.record_failure()
        assert client.get("/ready").status_code == 200

    def test_metrics_exposed(self, client, reporter) -> None:
        reporter.record_failure()

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "keeper_consecutive_failures" in response.text
