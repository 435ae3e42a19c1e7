"""
Data models shared by the reconciliation passes.

JobConfig describes one registered indexer (desired state), StreamInfo and
ExecutorInfo describe running workers (actual state).
"""

from collections import defaultdict
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StartPolicyKind(str, Enum):
    """Where a new or outdated block stream should begin"""

    LATEST = "LATEST"  # Start at the registry version
    HEIGHT = "HEIGHT"  # Start at an explicit block height
    CONTINUE = "CONTINUE"  # Resume from the last published block


class StartPolicy(BaseModel):
    """
    Start block policy declared in the registry.

    Registry wire forms: ``"LATEST"``, ``"CONTINUE"`` or ``{"HEIGHT": 100}``.
    """

    model_config = ConfigDict(frozen=True)

    kind: StartPolicyKind
    height: Optional[int] = None

    @model_validator(mode="after")
    def _check_height(self) -> "StartPolicy":
        if self.kind == StartPolicyKind.HEIGHT and self.height is None:
            raise ValueError("HEIGHT start policy requires a height")
        if self.kind != StartPolicyKind.HEIGHT and self.height is not None:
            raise ValueError(f"{self.kind.value} start policy does not take a height")
        return self

    @classmethod
    def latest(cls) -> "StartPolicy":
        return cls(kind=StartPolicyKind.LATEST)

    @classmethod
    def fixed_height(cls, height: int) -> "StartPolicy":
        return cls(kind=StartPolicyKind.HEIGHT, height=height)

    @classmethod
    def continue_(cls) -> "StartPolicy":
        return cls(kind=StartPolicyKind.CONTINUE)

    @classmethod
    def from_registry(cls, value: Union[str, Dict[str, int]]) -> "StartPolicy":
        """
        Parse the registry representation of a start block.

        Raises:
            ValueError: If the value is not a recognised start block
        """
        if isinstance(value, str):
            if value == StartPolicyKind.LATEST.value:
                return cls.latest()
            if value == StartPolicyKind.CONTINUE.value:
                return cls.continue_()
        elif isinstance(value, dict) and set(value) == {StartPolicyKind.HEIGHT.value}:
            return cls.fixed_height(int(value[StartPolicyKind.HEIGHT.value]))

        raise ValueError(f"Unrecognised start block: {value!r}")

    def __str__(self) -> str:
        if self.kind == StartPolicyKind.HEIGHT:
            return f"HEIGHT({self.height})"
        return self.kind.value


class JobConfig(BaseModel):
    """
    A registered indexer.

    Identity is (account_id, function_name). ``code``, ``schema`` and
    ``rule`` are opaque here and only forwarded to the workers.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    account_id: str
    function_name: str
    code: str = ""
    schema_: str = Field(default="", alias="schema")
    rule: Dict[str, Any] = Field(default_factory=dict)
    created_at_block_height: int
    updated_at_block_height: Optional[int] = None
    start_policy: StartPolicy = Field(default_factory=StartPolicy.latest)

    @property
    def registry_version(self) -> int:
        """Desired version: last update height, falling back to creation height"""
        if self.updated_at_block_height is not None:
            return self.updated_at_block_height
        return self.created_at_block_height

    @property
    def full_name(self) -> str:
        return f"{self.account_id}/{self.function_name}"

    @property
    def stream_key(self) -> str:
        """Redis stream the block stream publishes into"""
        return f"{self.full_name}:block_stream"

    @property
    def stream_version_key(self) -> str:
        return f"{self.full_name}:block_stream:version"

    @property
    def last_published_block_key(self) -> str:
        return f"{self.full_name}:last_published_block"


# account_id -> function_name -> JobConfig
DesiredState = Dict[str, Dict[str, JobConfig]]


def iter_jobs(desired: DesiredState) -> Iterator[JobConfig]:
    """Yield every job in snapshot order"""
    for indexers in desired.values():
        yield from indexers.values()


class StreamInfo(BaseModel):
    """Block stream reported by the block streamer"""

    stream_id: str
    account_id: str
    function_name: str
    version: int


class ExecutorInfo(BaseModel):
    """Executor reported by the runner"""

    executor_id: str
    account_id: str
    function_name: str
    version: int


class AllowlistEntry(BaseModel):
    """Account opted in to the block stream based pipeline"""

    account_id: str
    v1_ack: bool = False
    migrated: bool = False
    failed: bool = False


WorkerInfo = TypeVar("WorkerInfo", StreamInfo, ExecutorInfo)


def index_by_indexer(
    workers: List[WorkerInfo],
) -> Dict[Tuple[str, str], List[WorkerInfo]]:
    """Group running workers by (account_id, function_name), keeping report order"""
    index: Dict[Tuple[str, str], List[WorkerInfo]] = defaultdict(list)
    for worker in workers:
        index[(worker.account_id, worker.function_name)].append(worker)
    return index
