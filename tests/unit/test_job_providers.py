"""
Tests for the task provider registry and scheduler health endpoints.
"""

from unittest.mock import MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from jobs.health import create_health_app, set_scheduler
from jobs.utils import providers


@pytest.fixture(autouse=True)
def reset_registry():
    """Each test starts without registered providers."""
    providers.register_transfer_executor(None)
    providers.register_chain_observer(None)
    set_scheduler(None)
    yield
    providers.register_transfer_executor(None)
    providers.register_chain_observer(None)
    set_scheduler(None)


class TestProviders:
    """Registered instances and settings factories."""

    def test_registered_executor_is_returned(self):
        """Direct registration wins."""
        executor = object()
        providers.register_transfer_executor(executor)

        assert providers.get_transfer_executor() is executor

    def test_missing_factory_raises(self, monkeypatch):
        """Nothing registered and nothing configured."""
        monkeypatch.setattr(providers.settings, "chain_observer_factory", None)

        with pytest.raises(providers.ProviderNotConfigured):
            providers.get_chain_observer()

    def test_factory_is_called_once(self, monkeypatch):
        """Factory result is cached."""
        factory = MagicMock(return_value="observer")
        monkeypatch.setattr(providers.settings, "chain_observer_factory", factory)

        assert providers.get_chain_observer() == "observer"
        assert providers.get_chain_observer() == "observer"
        factory.assert_called_once_with()


class TestHealthEndpoints:
    """aiohttp health app."""

    @pytest.mark.asyncio
    async def test_unhealthy_without_scheduler(self):
        """503 until a scheduler is registered."""
        async with TestClient(TestServer(create_health_app())) as client:
            response = await client.get("/health")
            assert response.status == 503

            response = await client.get("/liveness")
            assert response.status == 200
            assert (await response.json())["alive"] is True

    @pytest.mark.asyncio
    async def test_healthy_with_running_scheduler(self):
        """Jobs are listed with their next run."""
        job = MagicMock(id="payout_batch", next_run_time=None)
        job.name = "Monthly payout batch"
        scheduler = MagicMock(running=True)
        scheduler.get_jobs.return_value = [job]
        set_scheduler(scheduler)

        async with TestClient(TestServer(create_health_app())) as client:
            response = await client.get("/health")
            body = await response.json()

            assert response.status == 200
            assert body["status"] == "healthy"
            assert body["jobs"] == [
                {"id": "payout_batch", "name": "Monthly payout batch", "next_run_time": None}
            ]

            response = await client.get("/readiness")
            assert (await response.json())["ready"] is True
