"""
Runner client.

Lists, starts and stops the executors that consume each indexer's Redis
stream and run its code.
"""

import logging
from typing import List

from pydantic import ValidationError

from ..errors import WorkerFleetError
from ..models import ExecutorInfo, JobConfig
from .base import ServiceClient

logger = logging.getLogger(__name__)


class ExecutorsHandler(ServiceClient):
    service_name = "runner"

    async def list(self) -> List[ExecutorInfo]:
        body = await self._request("GET", "/executors")
        try:
            return [ExecutorInfo(**executor) for executor in (body or {}).get("executors", [])]
        except (TypeError, AttributeError, ValidationError) as e:
            raise WorkerFleetError(f"Unexpected executor listing: {e}") from e

    async def start(self, job: JobConfig) -> None:
        await self._request(
            "POST",
            "/executors",
            json={
                "account_id": job.account_id,
                "function_name": job.function_name,
                "code": job.code,
                "schema": job.schema_,
                "redis_stream": job.stream_key,
                "version": job.registry_version,
            },
        )
        logger.debug(f"{job.full_name}: Started executor")

    async def stop(self, executor_id: str) -> None:
        await self._request("DELETE", f"/executors/{executor_id}")
        logger.debug(f"Stopped executor {executor_id}")
