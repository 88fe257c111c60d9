"""Runtime configuration."""

import os
from dataclasses import dataclass

from vaults_watch.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_REGISTRY_URL,
    DEFAULT_TIMEOUT,
    STRATEGIES_HELPER_ADDRESS,
)


@dataclass(frozen=True)
class Settings:
    """Endpoints and limits used to build the aggregation pipeline."""

    rpc_url: str | None = None
    registry_url: str = DEFAULT_REGISTRY_URL
    helper_address: str = STRATEGIES_HELPER_ADDRESS
    timeout_s: int = DEFAULT_TIMEOUT
    batch_size: int = DEFAULT_BATCH_SIZE
    use_batch: bool = True
    show_progress: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from ETH_RPC_URL and VAULTS_* environment variables."""
        return cls(
            rpc_url=os.getenv("ETH_RPC_URL") or None,
            registry_url=os.getenv("VAULTS_REGISTRY_URL") or DEFAULT_REGISTRY_URL,
            helper_address=os.getenv("VAULTS_HELPER_ADDRESS") or STRATEGIES_HELPER_ADDRESS,
            timeout_s=int(os.getenv("VAULTS_RPC_TIMEOUT") or DEFAULT_TIMEOUT),
            batch_size=int(os.getenv("VAULTS_BATCH_SIZE") or DEFAULT_BATCH_SIZE),
            use_batch=os.getenv("VAULTS_NO_BATCH", "").lower() not in ("1", "true", "yes"),
            show_progress=os.getenv("VAULTS_NO_PROGRESS", "").lower() not in ("1", "true", "yes"),
        )
