"""Vault and strategy aggregation from the vault registry and on-chain state."""

from vaults_watch.cache import VaultsCache
from vaults_watch.config import Settings
from vaults_watch.errors import (
    InvalidAddress,
    NotFound,
    RegistryUnavailable,
    RemoteBatchFailure,
    VaultsWatchError,
    VaultUnavailable,
)
from vaults_watch.models import Strategy, Vault, VaultsSnapshot
from vaults_watch.pipeline import aggregate_vaults, build_vaults_cache

__version__ = "0.1.0"

__all__ = [
    "InvalidAddress",
    "NotFound",
    "RegistryUnavailable",
    "RemoteBatchFailure",
    "Settings",
    "Strategy",
    "Vault",
    "VaultUnavailable",
    "VaultsCache",
    "VaultsSnapshot",
    "VaultsWatchError",
    "aggregate_vaults",
    "build_vaults_cache",
]
