"""
Coordinator exceptions.

Errors raised by collaborators are wrapped in one of these types so the
reconciliation passes can decide which failures are isolated to a single
job and which abort the control loop.
"""


class CoordinatorError(Exception):
    """Base class for all coordinator errors"""
    pass


class RegistryError(CoordinatorError):
    """Registry contract could not be queried or its response decoded"""
    pass


class StoreError(CoordinatorError):
    """Redis operation failed"""
    pass


class MissingProgressError(StoreError):
    """Indexer must resume but has no last published block"""

    def __init__(self, full_name: str):
        self.full_name = full_name
        super().__init__(f"Indexer {full_name} has no `last_published_block`")


class WorkerFleetError(CoordinatorError):
    """Block streamer or runner request failed"""
    pass


class MigrationError(CoordinatorError):
    """Allowlist could not be read or decoded"""
    pass
