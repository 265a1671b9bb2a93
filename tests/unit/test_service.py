"""
Unit tests for the service orchestrator.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import quickroll_service
from common.config import parse_config
from quickroll_service import QuickRollService


@pytest.fixture
def config(tmp_path):
    return parse_config({
        "database": {"url": str(tmp_path / "service.db")},
        "nats": {"url": "nats://test:4222"},
    })


@pytest.fixture
def nats_client():
    client = AsyncMock()
    client.subscribe = AsyncMock(return_value=MagicMock(unsubscribe=AsyncMock()))
    return client


class TestQuickRollService:
    """Tests for QuickRollService start/stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, config, nats_client):
        with patch.object(quickroll_service.nats, "connect", AsyncMock(return_value=nats_client)) as connect:
            service = QuickRollService(config)
            await service.start()

        connect.assert_awaited_once_with("nats://test:4222")
        assert service.store.is_connected is True
        assert service.plugin._initialized is True

        await service.stop()

        assert service.store.is_connected is False
        assert service.plugin._initialized is False
        nats_client.drain.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_cleans_up(self, config):
        with patch.object(quickroll_service.nats, "connect", AsyncMock(side_effect=OSError("refused"))):
            service = QuickRollService(config)
            with pytest.raises(OSError):
                await service.start()

        assert service.store is None
        assert service.plugin is None

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("nats:\n  url: nats://elsewhere:4222\n")

        service = QuickRollService.from_file(str(path))

        assert service.config.nats_url == "nats://elsewhere:4222"
