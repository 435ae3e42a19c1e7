"""
Block stream synchronisation.

Brings the block streamer in line with the registry. For every registered
indexer a running stream at the registry version is left alone; otherwise
the outdated stream is stopped and a new one is started at a height derived
from the indexer's stream status and start policy. Streams for indexers no
longer in the registry are stopped.
"""

import logging
from enum import Enum
from typing import Optional

from ..errors import MissingProgressError
from ..handlers import BlockStreamsHandler
from ..models import (
    DesiredState,
    JobConfig,
    StartPolicyKind,
    StreamInfo,
    index_by_indexer,
    iter_jobs,
)
from ..redis_store import MIGRATED_STREAM_VERSION, RedisClient
from ..sync_result import JobSyncResult, SyncAction, SyncReport

logger = logging.getLogger(__name__)


class StreamStatus(Enum):
    """Stored stream version relative to the registry version"""

    NEW = "new"  # No stream version, never started
    MIGRATED = "migrated"  # Just migrated from the V1 pipeline
    SYNCED = "synced"  # Stream version matches the registry
    OUTDATED = "outdated"  # Stream version differs from the registry


def classify_stream_status(registry_version: int, stream_version: Optional[int]) -> StreamStatus:
    if stream_version is None:
        return StreamStatus.NEW

    if stream_version == MIGRATED_STREAM_VERSION:
        return StreamStatus.MIGRATED

    if stream_version == registry_version:
        return StreamStatus.SYNCED

    if stream_version > registry_version:
        logger.warning(
            f"Found stream version {stream_version} greater than registry version "
            f"{registry_version}, treating as outdated"
        )

    return StreamStatus.OUTDATED


async def get_stream_status(job: JobConfig, redis_client: RedisClient) -> StreamStatus:
    stream_version = await redis_client.get_stream_version(job)
    return classify_stream_status(job.registry_version, stream_version)


async def clear_block_stream_if_needed(
    stream_status: StreamStatus, job: JobConfig, redis_client: RedisClient
) -> bool:
    """
    Drop blocks buffered under the previous version.

    Only outdated streams are cleared, and never when the indexer asked to
    continue where the previous version left off.

    Returns:
        True if the stream was cleared
    """
    if (
        stream_status != StreamStatus.OUTDATED
        or job.start_policy.kind == StartPolicyKind.CONTINUE
    ):
        return False

    logger.info(f"{job.full_name}: Clearing redis stream {job.stream_key}")
    await redis_client.clear_block_stream(job)
    return True


async def get_continuation_block_height(job: JobConfig, redis_client: RedisClient) -> int:
    last_published_block = await redis_client.get_last_published_block(job)
    if last_published_block is None:
        raise MissingProgressError(job.full_name)
    return last_published_block + 1


async def determine_start_block_height(
    stream_status: StreamStatus, job: JobConfig, redis_client: RedisClient
) -> int:
    """
    Height the (re)started block stream should begin from.

    Migrated and synced streams always resume after the last published
    block. New and outdated streams follow the start policy.

    Raises:
        MissingProgressError: If the stream must resume but nothing was published
    """
    if stream_status in (StreamStatus.MIGRATED, StreamStatus.SYNCED):
        logger.info(f"{job.full_name}: Resuming block stream")
        return await get_continuation_block_height(job, redis_client)

    logger.info(f"{job.full_name}: Starting new block stream (start_block={job.start_policy})")

    policy = job.start_policy
    if policy.kind == StartPolicyKind.LATEST:
        return job.registry_version
    if policy.kind == StartPolicyKind.HEIGHT:
        return policy.height
    return await get_continuation_block_height(job, redis_client)


async def synchronise_block_stream(
    active_block_stream: Optional[StreamInfo],
    job: JobConfig,
    redis_client: RedisClient,
    block_streams_handler: BlockStreamsHandler,
) -> JobSyncResult:
    """
    Synchronise a single indexer's block stream.

    Never raises: any failure is logged and returned as a FAILED result so
    the caller can move on to the next indexer.
    """
    stopped = False

    try:
        if active_block_stream is not None:
            if active_block_stream.version == job.registry_version:
                return JobSyncResult.unchanged(job)

            logger.info(
                f"{job.full_name}: Stopping outdated block stream "
                f"(version={job.registry_version}, previous_version={active_block_stream.version})"
            )
            await block_streams_handler.stop(active_block_stream.stream_id)
            stopped = True

        stream_status = await get_stream_status(job, redis_client)
        await clear_block_stream_if_needed(stream_status, job, redis_client)
        start_block_height = await determine_start_block_height(stream_status, job, redis_client)

        await block_streams_handler.start(start_block_height, job)
        await redis_client.set_stream_version(job)

    except Exception as e:
        logger.error(
            f"{job.full_name}: Failed to sync block stream "
            f"(account_id={job.account_id}, function_name={job.function_name}, "
            f"version={job.registry_version}): {e}"
        )
        return JobSyncResult(job=job, action=SyncAction.FAILED, stopped=stopped, error=e)

    logger.info(
        f"{job.full_name}: Block stream started at {start_block_height} "
        f"(version={job.registry_version}, status={stream_status.value})"
    )
    return JobSyncResult(
        job=job,
        action=SyncAction.STARTED,
        stopped=stopped,
        start_block_height=start_block_height,
    )


async def synchronise_block_streams(
    desired: DesiredState,
    redis_client: RedisClient,
    block_streams_handler: BlockStreamsHandler,
) -> SyncReport:
    """
    Run one block stream reconciliation pass.

    Indexers are processed one at a time in registry order. Per-indexer
    failures are isolated; failing to list streams or to stop an
    unregistered stream aborts the pass.

    Raises:
        WorkerFleetError: If streams cannot be listed or an unregistered stream cannot be stopped
    """
    active_block_streams = index_by_indexer(await block_streams_handler.list())
    report = SyncReport()

    for job in iter_jobs(desired):
        matching = active_block_streams.get((job.account_id, job.function_name))
        active_block_stream = matching.pop(0) if matching else None

        report.results.append(
            await synchronise_block_stream(
                active_block_stream, job, redis_client, block_streams_handler
            )
        )

    for unregistered_block_streams in active_block_streams.values():
        for stream in unregistered_block_streams:
            logger.info(
                f"{stream.account_id}/{stream.function_name}: Stopping unregistered block stream "
                f"(stream_id={stream.stream_id}, version={stream.version})"
            )
            await block_streams_handler.stop(stream.stream_id)
            report.stopped_orphans.append(stream.stream_id)

    if report.has_changes:
        logger.info(f"Block streams synchronised: {report.summary()}")
    else:
        logger.debug(f"Block streams synchronised: {report.summary()}")

    return report
