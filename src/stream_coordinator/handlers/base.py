"""
Shared HTTP plumbing for the worker service clients.
"""

import logging
from typing import Any, Optional

import httpx

from ..errors import WorkerFleetError

logger = logging.getLogger(__name__)


class ServiceClient:
    """JSON over HTTP client for a worker service"""

    service_name = "service"

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        """
        Send a request and return the decoded JSON body (None if empty).

        Raises:
            WorkerFleetError: On non-2xx responses or transport failures
        """
        try:
            response = await self.client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise WorkerFleetError(
                f"{self.service_name} returned HTTP {e.response.status_code} "
                f"for {method} {path}: {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise WorkerFleetError(
                f"{self.service_name} request {method} {path} failed: {e}"
            ) from e

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise WorkerFleetError(
                f"{self.service_name} returned invalid JSON for {method} {path}"
            ) from e
