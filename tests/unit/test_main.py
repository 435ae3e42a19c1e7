"""Unit tests for the coordinator control loop."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fakes import make_job, registry_of
from stream_coordinator.config import CoordinatorConfig
from stream_coordinator.errors import MigrationError, RegistryError, WorkerFleetError
from stream_coordinator.handlers import BlockStreamsHandler, ExecutorsHandler
from stream_coordinator.main import Coordinator, main
from stream_coordinator.models import AllowlistEntry
from stream_coordinator.redis_store import RedisClient
from stream_coordinator.registry import Registry
from stream_coordinator.sync_result import SyncReport


@pytest.fixture
def config():
    return CoordinatorConfig(
        rpc_url="https://rpc.example.org",
        registry_contract_id="registry.near",
        redis_url="redis://localhost:6379/0",
        block_streamer_url="http://block_streamer:8001",
        runner_url="http://runner:7001",
        control_loop_throttle_seconds=0.01,
    )


@pytest.fixture
def coordinator(config):
    """Coordinator with every collaborator mocked and an empty registry"""
    coordinator = Coordinator(config)
    coordinator.redis = MagicMock(spec=RedisClient)
    coordinator.registry = MagicMock(spec=Registry)
    coordinator.registry.fetch.return_value = {}
    coordinator.block_streams_handler = MagicMock(spec=BlockStreamsHandler)
    coordinator.executors_handler = MagicMock(spec=ExecutorsHandler)
    coordinator.startup = AsyncMock()
    return coordinator


def patch_migration(allowlist):
    return (
        patch("stream_coordinator.main.fetch_allowlist", AsyncMock(return_value=allowlist)),
        patch("stream_coordinator.main.migrate_pending_accounts", AsyncMock(return_value=allowlist)),
    )


@pytest.mark.unit
class TestRunIteration:
    @pytest.mark.asyncio
    async def test_passes_receive_filtered_registry(self, coordinator):
        migrated = make_job(account_id="migrated.near")
        pending = make_job(account_id="pending.near")
        desired = registry_of(migrated, pending)
        coordinator.registry.fetch.return_value = desired
        allowlist = [
            AllowlistEntry(account_id="migrated.near", v1_ack=True, migrated=True),
            AllowlistEntry(account_id="pending.near", v1_ack=True),
        ]
        fetch_patch, migrate_patch = patch_migration(allowlist)

        with fetch_patch, migrate_patch as migrate, patch(
            "stream_coordinator.main.synchronise_executors", AsyncMock(return_value=SyncReport())
        ) as sync_executors, patch(
            "stream_coordinator.main.synchronise_block_streams", AsyncMock(return_value=SyncReport())
        ) as sync_block_streams:
            await coordinator.run_iteration()

        migrate.assert_awaited_once_with(
            desired, allowlist, coordinator.redis, coordinator.executors_handler
        )
        expected = registry_of(migrated)
        sync_executors.assert_awaited_once_with(expected, coordinator.executors_handler)
        sync_block_streams.assert_awaited_once_with(
            expected, coordinator.redis, coordinator.block_streams_handler
        )

    @pytest.mark.asyncio
    async def test_passes_and_throttle_run_concurrently(self, coordinator):
        coordinator.config.control_loop_throttle_seconds = 0.2

        async def slow_pass(*args):
            await asyncio.sleep(0.2)
            return SyncReport()

        fetch_patch, migrate_patch = patch_migration([])
        with fetch_patch, migrate_patch, patch(
            "stream_coordinator.main.synchronise_executors", side_effect=slow_pass
        ), patch("stream_coordinator.main.synchronise_block_streams", side_effect=slow_pass):
            started = time.monotonic()
            await coordinator.run_iteration()
            elapsed = time.monotonic() - started

        assert 0.2 <= elapsed < 0.5

    @pytest.mark.asyncio
    async def test_iteration_lasts_at_least_the_throttle(self, coordinator):
        coordinator.config.control_loop_throttle_seconds = 0.1

        fetch_patch, migrate_patch = patch_migration([])
        with fetch_patch, migrate_patch, patch(
            "stream_coordinator.main.synchronise_executors", AsyncMock(return_value=SyncReport())
        ), patch(
            "stream_coordinator.main.synchronise_block_streams", AsyncMock(return_value=SyncReport())
        ):
            started = time.monotonic()
            await coordinator.run_iteration()

        assert time.monotonic() - started >= 0.1

    @pytest.mark.asyncio
    async def test_pass_failure_propagates_and_cancels_other_pass(self, coordinator):
        cancelled = asyncio.Event()

        async def hanging_pass(*args):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        fetch_patch, migrate_patch = patch_migration([])
        with fetch_patch, migrate_patch, patch(
            "stream_coordinator.main.synchronise_executors", side_effect=hanging_pass
        ), patch(
            "stream_coordinator.main.synchronise_block_streams",
            AsyncMock(side_effect=WorkerFleetError("stop failed")),
        ):
            with pytest.raises(WorkerFleetError):
                await asyncio.wait_for(coordinator.run_iteration(), timeout=2)

        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_registry_failure_aborts_iteration(self, coordinator):
        coordinator.registry.fetch.side_effect = RegistryError("rpc unavailable")

        with patch("stream_coordinator.main.synchronise_block_streams") as sync_block_streams:
            with pytest.raises(RegistryError):
                await coordinator.run_iteration()

        sync_block_streams.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowlist_failure_aborts_iteration(self, coordinator):
        with patch(
            "stream_coordinator.main.fetch_allowlist",
            AsyncMock(side_effect=MigrationError("allowlist missing")),
        ), patch("stream_coordinator.main.synchronise_executors") as sync_executors:
            with pytest.raises(MigrationError):
                await coordinator.run_iteration()

        sync_executors.assert_not_called()


@pytest.mark.unit
class TestCoordinatorRun:
    @pytest.mark.asyncio
    async def test_fatal_error_stops_loop_and_closes_clients(self, coordinator):
        coordinator.run_iteration = AsyncMock(side_effect=RegistryError("rpc unavailable"))

        with pytest.raises(RegistryError):
            await coordinator.run()

        coordinator.startup.assert_awaited_once()
        coordinator.redis.close.assert_awaited_once()
        coordinator.registry.close.assert_awaited_once()
        coordinator.block_streams_handler.close.assert_awaited_once()
        coordinator.executors_handler.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_event_stops_loop(self, coordinator):
        iterations = 0

        async def iteration():
            nonlocal iterations
            iterations += 1
            await asyncio.sleep(0.01)

        coordinator.run_iteration = AsyncMock(side_effect=iteration)
        asyncio.get_running_loop().call_later(0.1, coordinator.shutdown_event.set)

        await asyncio.wait_for(coordinator.run(), timeout=2)

        assert iterations > 1
        coordinator.redis.close.assert_awaited_once()


@pytest.mark.unit
class TestMain:
    @pytest.mark.asyncio
    async def test_invalid_configuration_exits_with_error(self, monkeypatch):
        for name in ("RPC_URL", "REGISTRY_CONTRACT_ID", "BLOCK_STREAMER_URL", "RUNNER_URL"):
            monkeypatch.delenv(name, raising=False)

        assert await main() == 1

    @pytest.mark.asyncio
    async def test_unknown_log_level_exits_with_error(self, monkeypatch):
        monkeypatch.setenv("RPC_URL", "https://rpc.example.org")
        monkeypatch.setenv("REGISTRY_CONTRACT_ID", "registry.near")
        monkeypatch.setenv("BLOCK_STREAMER_URL", "http://block_streamer:8001")
        monkeypatch.setenv("RUNNER_URL", "http://runner:7001")
        monkeypatch.setenv("LOG_LEVEL", "VERBOSE")

        with patch.object(Coordinator, "run", AsyncMock()) as run:
            assert await main() == 1

        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_fatal_error_exits_with_error(self, config):
        with patch("stream_coordinator.main.CoordinatorConfig", return_value=config), patch.object(
            Coordinator, "run", AsyncMock(side_effect=RegistryError("rpc unavailable"))
        ):
            assert await main() == 1
