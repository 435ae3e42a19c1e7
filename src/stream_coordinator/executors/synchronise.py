"""
Executor synchronisation.

Same shape as the block stream pass, without any Redis state: an executor
at the registry version is left alone, an outdated one is replaced, and
executors for unregistered indexers are stopped.
"""

import logging
from typing import Optional

from ..handlers import ExecutorsHandler
from ..models import DesiredState, ExecutorInfo, JobConfig, index_by_indexer, iter_jobs
from ..sync_result import JobSyncResult, SyncAction, SyncReport

logger = logging.getLogger(__name__)


async def synchronise_executor(
    active_executor: Optional[ExecutorInfo],
    job: JobConfig,
    executors_handler: ExecutorsHandler,
) -> JobSyncResult:
    stopped = False

    try:
        if active_executor is not None:
            if active_executor.version == job.registry_version:
                return JobSyncResult.unchanged(job)

            logger.info(
                f"{job.full_name}: Stopping outdated executor "
                f"(version={job.registry_version}, previous_version={active_executor.version})"
            )
            await executors_handler.stop(active_executor.executor_id)
            stopped = True

        await executors_handler.start(job)

    except Exception as e:
        logger.error(
            f"{job.full_name}: Failed to sync executor "
            f"(account_id={job.account_id}, function_name={job.function_name}, "
            f"version={job.registry_version}): {e}"
        )
        return JobSyncResult(job=job, action=SyncAction.FAILED, stopped=stopped, error=e)

    logger.info(f"{job.full_name}: Executor started (version={job.registry_version})")
    return JobSyncResult(job=job, action=SyncAction.STARTED, stopped=stopped)


async def synchronise_executors(
    desired: DesiredState, executors_handler: ExecutorsHandler
) -> SyncReport:
    """
    Run one executor reconciliation pass.

    Raises:
        WorkerFleetError: If executors cannot be listed or an unregistered executor cannot be stopped
    """
    active_executors = index_by_indexer(await executors_handler.list())

    report = SyncReport()

    for job in iter_jobs(desired):
        matching = active_executors.get((job.account_id, job.function_name))
        active_executor = matching.pop(0) if matching else None

        report.results.append(
            await synchronise_executor(active_executor, job, executors_handler)
        )

    for unregistered_executors in active_executors.values():
        for executor in unregistered_executors:
            logger.info(
                f"{executor.account_id}/{executor.function_name}: Stopping unregistered executor "
                f"(executor_id={executor.executor_id}, version={executor.version})"
            )
            await executors_handler.stop(executor.executor_id)
            report.stopped_orphans.append(executor.executor_id)

    if report.has_changes:
        logger.info(f"Executors synchronised: {report.summary()}")
    else:
        logger.debug(f"Executors synchronised: {report.summary()}")

    return report
