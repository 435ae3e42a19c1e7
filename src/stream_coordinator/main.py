"""
Stream Coordinator

Main entrypoint for the coordinator control loop.

Usage:
    stream-coordinator
    # Or: python -m stream_coordinator.main

Environment Variables:
    RPC_URL                        Chain JSON-RPC endpoint (required)
    REGISTRY_CONTRACT_ID           Registry contract account (required)
    REDIS_URL                      Redis connection URL (default: redis://localhost:6379/0)
    BLOCK_STREAMER_URL             Block streamer base URL (required)
    RUNNER_URL                     Runner base URL (required)
    CONTROL_LOOP_THROTTLE_SECONDS  Minimum duration of one iteration (default: 1)
    RPC_TIMEOUT_SECONDS            Timeout for registry and worker requests (default: 30)
    LOG_LEVEL                      Logging level (default: INFO)
"""

import asyncio
import logging
import signal
import sys
from typing import Optional, Tuple

from dotenv import load_dotenv

from .block_streams import synchronise_block_streams
from .config import CoordinatorConfig
from .executors import synchronise_executors
from .handlers import BlockStreamsHandler, ExecutorsHandler
from .migration import fetch_allowlist, filter_registry_by_allowlist, migrate_pending_accounts
from .redis_store import RedisClient
from .registry import Registry
from .sync_result import SyncReport

logger = logging.getLogger(__name__)


async def _join_or_cancel(*coros):
    """Run coroutines concurrently; on the first failure cancel the rest and re-raise"""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class Coordinator:
    """
    Reconciles the registry with the running block streams and executors.

    Handles:
    - Startup (Redis connection, service clients)
    - The control loop
    - Signal handling (SIGTERM, SIGINT)
    - Shutdown
    """

    def __init__(self, config: CoordinatorConfig):
        self.config = config
        self.redis: Optional[RedisClient] = None
        self.registry: Optional[Registry] = None
        self.block_streams_handler: Optional[BlockStreamsHandler] = None
        self.executors_handler: Optional[ExecutorsHandler] = None
        self.shutdown_event = asyncio.Event()

    async def startup(self):
        """
        Connect to Redis and build the service clients.

        Raises:
            StoreError: If Redis cannot be reached
        """
        logger.info("🚀 Starting Coordinator...")
        logger.info(f"RPC URL: {self.config.rpc_url}")
        logger.info(f"Registry contract: {self.config.registry_contract_id}")
        logger.info(f"Redis URL: {self.config.redis_url}")
        logger.info(f"Block streamer URL: {self.config.block_streamer_url}")
        logger.info(f"Runner URL: {self.config.runner_url}")
        logger.info(f"Control loop throttle: {self.config.control_loop_throttle_seconds}s")

        self.redis = await RedisClient.connect(self.config.redis_url)

        timeout = self.config.rpc_timeout_seconds
        self.registry = Registry(
            self.config.rpc_url, self.config.registry_contract_id, timeout=timeout
        )
        self.block_streams_handler = BlockStreamsHandler(
            self.config.block_streamer_url, timeout=timeout
        )
        self.executors_handler = ExecutorsHandler(self.config.runner_url, timeout=timeout)

        logger.info("✅ Coordinator started")

    async def run_iteration(self) -> Tuple[SyncReport, SyncReport]:
        """
        One pass of the control loop.

        Executors and block streams are synchronised concurrently alongside
        the throttle sleep, so an iteration lasts at least the throttle.

        Returns:
            (executor report, block stream report)

        Raises:
            CoordinatorError: On any failure that cannot be isolated to one indexer
        """
        desired = await self.registry.fetch()

        allowlist = await fetch_allowlist(self.redis)
        await migrate_pending_accounts(desired, allowlist, self.redis, self.executors_handler)
        desired = filter_registry_by_allowlist(desired, allowlist)

        executors_report, block_streams_report, _ = await _join_or_cancel(
            synchronise_executors(desired, self.executors_handler),
            synchronise_block_streams(desired, self.redis, self.block_streams_handler),
            asyncio.sleep(self.config.control_loop_throttle_seconds),
        )
        return executors_report, block_streams_report

    async def control_loop(self):
        """Run iterations until one fails"""
        while True:
            await self.run_iteration()

    async def _signal_handler(self, sig: signal.Signals):
        """Handle shutdown signals"""
        logger.info(f"Received signal: {sig.name}")
        self.shutdown_event.set()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(
                    sig, lambda s=sig: asyncio.create_task(self._signal_handler(s))
                )
            except NotImplementedError:
                logger.warning(f"Could not add signal handler for {sig}")

    async def shutdown(self):
        """Close all clients"""
        logger.info("🛑 Shutting down...")

        for client in (
            self.registry,
            self.block_streams_handler,
            self.executors_handler,
            self.redis,
        ):
            if client is not None:
                await client.close()

        logger.info("👋 Coordinator stopped")

    async def run(self):
        """
        Run the control loop until a shutdown signal or a fatal error.

        Raises:
            Exception: Whatever stopped the control loop
        """
        try:
            await self.startup()
            self._install_signal_handlers()

            loop_task = asyncio.create_task(self.control_loop())
            stop_task = asyncio.create_task(self.shutdown_event.wait())

            done, _ = await asyncio.wait(
                [loop_task, stop_task], return_when=asyncio.FIRST_COMPLETED
            )

            if loop_task in done:
                stop_task.cancel()
                try:
                    await loop_task
                except Exception as e:
                    logger.exception(f"❌ Control loop failed: {e}")
                    raise
            else:
                loop_task.cancel()
                try:
                    await loop_task
                except asyncio.CancelledError:
                    pass

        finally:
            await self.shutdown()


async def main() -> int:
    """Main entrypoint, returns the process exit code"""
    try:
        config = CoordinatorConfig()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logging.getLogger().setLevel(config.log_level)
    coordinator = Coordinator(config)

    try:
        await coordinator.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1

    return 0


def cli():
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )

    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    cli()
