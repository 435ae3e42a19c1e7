"""
V1 to block stream migration.

Accounts are moved onto the block stream pipeline through an allowlist kept
in Redis. Once an account has acknowledged the move, its V1 state is torn
down and each indexer's stream version is set to MIGRATED_STREAM_VERSION so
the block stream pass resumes it from the last published block instead of
reprocessing. Only migrated accounts are visible to the reconciliation
passes.
"""

import json
import logging
from typing import List, Set

from pydantic import ValidationError

from .errors import MigrationError
from .handlers import ExecutorsHandler
from .models import AllowlistEntry, DesiredState
from .redis_store import RedisClient

logger = logging.getLogger(__name__)


async def fetch_allowlist(redis_client: RedisClient) -> List[AllowlistEntry]:
    """
    Read the allowlist from Redis.

    Raises:
        MigrationError: If the allowlist is missing or malformed
    """
    raw = await redis_client.get(RedisClient.ALLOWLIST)
    if raw is None:
        raise MigrationError(f"Redis key `{RedisClient.ALLOWLIST}` is not set")

    try:
        entries = json.loads(raw)
        if not isinstance(entries, list):
            raise ValueError("allowlist must be a JSON array")
        return [AllowlistEntry(**entry) for entry in entries]
    except (ValueError, TypeError, ValidationError) as e:
        raise MigrationError(f"Failed to parse allowlist: {e}") from e


async def save_allowlist(redis_client: RedisClient, allowlist: List[AllowlistEntry]) -> None:
    await redis_client.set(
        RedisClient.ALLOWLIST,
        json.dumps([entry.model_dump() for entry in allowlist]),
    )


def allowlist_tenants(allowlist: List[AllowlistEntry]) -> Set[str]:
    """Accounts whose indexers are managed by the block stream pipeline"""
    return {
        entry.account_id
        for entry in allowlist
        if entry.v1_ack and entry.migrated and not entry.failed
    }


def filter_registry_by_allowlist(
    desired: DesiredState, allowlist: List[AllowlistEntry]
) -> DesiredState:
    tenants = allowlist_tenants(allowlist)
    return {
        account_id: indexers
        for account_id, indexers in desired.items()
        if account_id in tenants
    }


async def migrate_account(
    entry: AllowlistEntry,
    desired: DesiredState,
    redis_client: RedisClient,
    executors_handler: ExecutorsHandler,
) -> bool:
    """
    Tear down V1 state for one account.

    Returns:
        True if the account was migrated, False if it is not ready yet
    """
    if not entry.v1_ack:
        logger.info(f"{entry.account_id}: V1 migration not acknowledged, skipping")
        return False

    indexers = desired.get(entry.account_id)
    if not indexers:
        logger.warning(f"{entry.account_id}: No registry entry for allowlisted account, skipping")
        return False

    active_executors = await executors_handler.list()

    for job in indexers.values():
        await redis_client.srem(RedisClient.STREAMS, job.full_name)

        for executor in active_executors:
            if (executor.account_id, executor.function_name) == (job.account_id, job.function_name):
                logger.info(f"{job.full_name}: Stopping V1 executor {executor.executor_id}")
                await executors_handler.stop(executor.executor_id)

        await redis_client.set_migrated_stream_version(job)

    logger.info(f"{entry.account_id}: Migrated {len(indexers)} indexers")
    return True


async def migrate_pending_accounts(
    desired: DesiredState,
    allowlist: List[AllowlistEntry],
    redis_client: RedisClient,
    executors_handler: ExecutorsHandler,
) -> List[AllowlistEntry]:
    """
    Migrate every allowlisted account that has not been migrated yet.

    A failure migrating one account marks its entry as failed and moves on.
    Failing to persist the allowlist propagates.

    Returns:
        The allowlist with updated flags, as persisted
    """
    updated = list(allowlist)

    for index, entry in enumerate(allowlist):
        if entry.migrated or entry.failed:
            continue

        try:
            migrated = await migrate_account(entry, desired, redis_client, executors_handler)
        except Exception as e:
            logger.error(f"{entry.account_id}: Failed to migrate account: {e}")
            updated[index] = entry.model_copy(update={"failed": True})
            await save_allowlist(redis_client, updated)
            continue

        if migrated:
            updated[index] = entry.model_copy(update={"migrated": True})
            await save_allowlist(redis_client, updated)

    return updated
