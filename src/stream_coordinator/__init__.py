"""
Stream Coordinator

Control plane that keeps block streams and executors in line with the
indexer registry.

Components:
- registry: Desired state from the registry contract
- redis_store: Durable per-indexer stream version and progress
- handlers: Block streamer and runner clients
- block_streams: Block stream reconciliation (stream status and start height)
- executors: Executor reconciliation
- migration: V1 allowlist migration and filtering
- main: Control loop
"""

from .config import CoordinatorConfig
from .models import JobConfig, StartPolicy, StartPolicyKind
from .sync_result import JobSyncResult, SyncAction, SyncReport

__all__ = [
    "CoordinatorConfig",
    "JobConfig",
    "StartPolicy",
    "StartPolicyKind",
    "JobSyncResult",
    "SyncAction",
    "SyncReport",
]
