"""
Registry client.

Reads the set of registered indexers from the registry contract by calling
its ``list_all`` view method through the chain's JSON-RPC endpoint.
"""

import base64
import json
import logging
from typing import Any, Dict

import httpx
from pydantic import ValidationError

from .errors import RegistryError
from .models import DesiredState, JobConfig, StartPolicy

logger = logging.getLogger(__name__)


def parse_registry(raw: Dict[str, Dict[str, Dict[str, Any]]]) -> DesiredState:
    """
    Build the desired state from the decoded ``list_all`` response.

    Args:
        raw: account_id -> function_name -> indexer fields as stored on chain

    Raises:
        RegistryError: If an indexer entry cannot be decoded
    """
    desired: DesiredState = {}

    for account_id, indexers in raw.items():
        desired[account_id] = {}
        for function_name, indexer in indexers.items():
            try:
                desired[account_id][function_name] = JobConfig(
                    account_id=account_id,
                    function_name=function_name,
                    code=indexer.get("code", ""),
                    schema=indexer.get("schema") or "",
                    rule=indexer.get("rule") or {},
                    created_at_block_height=indexer["created_at_block_height"],
                    updated_at_block_height=indexer.get("updated_at_block_height"),
                    start_policy=StartPolicy.from_registry(indexer["start_block"]),
                )
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                raise RegistryError(
                    f"Failed to decode indexer {account_id}/{function_name}: {e}"
                ) from e

    return desired


class Registry:
    """JSON-RPC client for the registry contract"""

    LIST_ALL_METHOD = "list_all"

    def __init__(self, rpc_url: str, contract_id: str, timeout: float = 30.0):
        """
        Args:
            rpc_url: Chain JSON-RPC endpoint
            contract_id: Account the registry contract is deployed to
            timeout: Request timeout in seconds
        """
        self.rpc_url = rpc_url
        self.contract_id = contract_id
        self.client = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _call_view_function(self, method_name: str, args: Dict[str, Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_request_id(),
            "method": "query",
            "params": {
                "request_type": "call_function",
                "finality": "final",
                "account_id": self.contract_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(json.dumps(args).encode()).decode(),
            },
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise RegistryError(
                f"HTTP {e.response.status_code} calling {method_name} on {self.contract_id}"
            ) from e
        except httpx.RequestError as e:
            raise RegistryError(f"Request to {self.rpc_url} failed: {e}") from e
        except ValueError as e:
            raise RegistryError(f"Invalid JSON-RPC response: {e}") from e

        if not isinstance(data, dict):
            raise RegistryError(f"Invalid JSON-RPC response: expected an object, got {data!r}")

        if "error" in data:
            error = data["error"]
            if not isinstance(error, dict):
                raise RegistryError(f"RPC error calling {method_name}: {error}")
            raise RegistryError(
                f"RPC error calling {method_name}: {error.get('name') or error.get('code')}: "
                f"{error.get('cause') or error.get('message')}"
            )

        result = data.get("result") or {}
        if not isinstance(result, dict):
            raise RegistryError(f"Unexpected {method_name} result: {result!r}")
        if "error" in result:
            raise RegistryError(f"Contract error calling {method_name}: {result['error']}")

        try:
            return json.loads(bytes(result["result"]).decode())
        except (KeyError, TypeError, ValueError) as e:
            raise RegistryError(f"Failed to decode {method_name} result: {e}") from e

    async def fetch(self) -> DesiredState:
        """
        Fetch all registered indexers.

        Raises:
            RegistryError: On any transport, RPC or decoding failure
        """
        raw = await self._call_view_function(self.LIST_ALL_METHOD, {})
        if not isinstance(raw, dict):
            raise RegistryError(f"Unexpected {self.LIST_ALL_METHOD} result type: {type(raw).__name__}")

        desired = parse_registry(raw)
        logger.debug(
            f"Fetched {sum(len(indexers) for indexers in desired.values())} indexers "
            f"across {len(desired)} accounts"
        )
        return desired
