"""
Tests for the health check endpoints.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from jobs import health


@pytest.fixture(autouse=True)
def reset_health():
    yield
    health.set_scheduler(None)
    health.set_status_provider(None)


def body(response):
    return json.loads(response.body)


class TestHealth:
    """Health endpoint."""

    @pytest.mark.asyncio
    async def test_unhealthy_without_scheduler(self):
        """Before startup the service reports unhealthy."""
        response = await health.health_handler(MagicMock())

        assert response.status == 503
        assert body(response)["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_healthy_with_indexer_status(self):
        """Running scheduler plus indexer snapshot."""
        scheduler = MagicMock()
        scheduler.running = True
        scheduler.get_jobs.return_value = []
        health.set_scheduler(scheduler)
        health.set_status_provider(AsyncMock(return_value={"cursor": 42}))

        response = await health.health_handler(MagicMock())

        assert response.status == 200
        assert body(response)["status"] == "healthy"
        assert body(response)["indexer"] == {"cursor": 42}

    @pytest.mark.asyncio
    async def test_stopped_scheduler(self):
        """A stopped scheduler is reported as 503."""
        scheduler = MagicMock()
        scheduler.running = False
        scheduler.get_jobs.return_value = []
        health.set_scheduler(scheduler)

        response = await health.health_handler(MagicMock())

        assert response.status == 503
        assert body(response)["status"] == "stopped"

    @pytest.mark.asyncio
    async def test_status_error_reported(self):
        """Errors while collecting status make the check fail."""
        scheduler = MagicMock()
        scheduler.running = True
        scheduler.get_jobs.return_value = []
        health.set_scheduler(scheduler)
        health.set_status_provider(AsyncMock(side_effect=RuntimeError("db down")))

        response = await health.health_handler(MagicMock())

        assert response.status == 503
        assert body(response)["error"] == "db down"

    @pytest.mark.asyncio
    async def test_liveness(self):
        """Liveness always answers."""
        response = await health.liveness_handler(MagicMock())

        assert body(response)["alive"] is True
