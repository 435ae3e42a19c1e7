"""
Coordinator Configuration

All settings are read from environment variables when the config is built.
"""

import logging
import os
from dataclasses import dataclass, field


@dataclass
class CoordinatorConfig:
    """
    Global configuration for the coordinator.

    All settings can be overridden via environment variables.
    """

    # Registry contract on chain
    rpc_url: str = field(default_factory=lambda: os.getenv("RPC_URL", ""))
    registry_contract_id: str = field(
        default_factory=lambda: os.getenv("REGISTRY_CONTRACT_ID", "")
    )

    # Redis connection
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )

    # Worker services
    block_streamer_url: str = field(
        default_factory=lambda: os.getenv("BLOCK_STREAMER_URL", "")
    )
    runner_url: str = field(default_factory=lambda: os.getenv("RUNNER_URL", ""))

    # Control loop settings
    control_loop_throttle_seconds: float = field(
        default_factory=lambda: float(os.getenv("CONTROL_LOOP_THROTTLE_SECONDS", "1"))
    )
    rpc_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("RPC_TIMEOUT_SECONDS", "30"))
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def __post_init__(self):
        """Validate configuration after initialization"""
        required = {
            "RPC_URL": self.rpc_url,
            "REGISTRY_CONTRACT_ID": self.registry_contract_id,
            "BLOCK_STREAMER_URL": self.block_streamer_url,
            "RUNNER_URL": self.runner_url,
        }
        for env_var, value in required.items():
            if not value:
                raise ValueError(f"{env_var} is not set")

        if self.control_loop_throttle_seconds <= 0:
            raise ValueError("control_loop_throttle_seconds must be positive")
        if self.rpc_timeout_seconds <= 0:
            raise ValueError("rpc_timeout_seconds must be positive")

        self.log_level = self.log_level.upper()
        if self.log_level not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL {self.log_level!r} is not a logging level")
