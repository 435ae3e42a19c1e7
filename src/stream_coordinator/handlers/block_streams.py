"""
Block streamer client.

Lists, starts and stops the block streams that publish matching blocks
into each indexer's Redis stream.
"""

import logging
from typing import List

from pydantic import ValidationError

from ..errors import WorkerFleetError
from ..models import JobConfig, StreamInfo
from .base import ServiceClient

logger = logging.getLogger(__name__)


class BlockStreamsHandler(ServiceClient):
    service_name = "block streamer"

    async def list(self) -> List[StreamInfo]:
        body = await self._request("GET", "/streams")
        try:
            return [StreamInfo(**stream) for stream in (body or {}).get("streams", [])]
        except (TypeError, AttributeError, ValidationError) as e:
            raise WorkerFleetError(f"Unexpected block stream listing: {e}") from e

    async def start(self, start_block_height: int, job: JobConfig) -> None:
        await self._request(
            "POST",
            "/streams",
            json={
                "start_block_height": start_block_height,
                "account_id": job.account_id,
                "function_name": job.function_name,
                "version": job.registry_version,
                "redis_stream": job.stream_key,
                "rule": job.rule,
            },
        )
        logger.debug(f"{job.full_name}: Started block stream at {start_block_height}")

    async def stop(self, stream_id: str) -> None:
        await self._request("DELETE", f"/streams/{stream_id}")
        logger.debug(f"Stopped block stream {stream_id}")
