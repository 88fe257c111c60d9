"""Aggregation pipeline: registry -> call plans -> batch execution -> correlation."""

import sys
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import TYPE_CHECKING

from vaults_watch.blockchain import BatchExecutor, Web3BatchExecutor
from vaults_watch.cache import VaultsCache
from vaults_watch.config import Settings
from vaults_watch.constants import STRATEGIES_HELPER_ADDRESS
from vaults_watch.correlation import correlate
from vaults_watch.errors import RegistryUnavailable, RemoteBatchFailure
from vaults_watch.models import CallGroup, ResultSet, VaultDescriptor, VaultsSnapshot
from vaults_watch.planner import plan_calls
from vaults_watch.registry import fetch_registry

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


def _execute_soft(executor: BatchExecutor, groups: Sequence[CallGroup], label: str) -> ResultSet:
    """Run a plan; a whole-batch failure yields an empty result set so affected vaults are dropped."""
    if not groups:
        return {}
    try:
        return executor.execute(groups)
    except RemoteBatchFailure as ex:
        print(f"⚠️  {label} batch failed: {ex}", file=sys.stderr)
        return {}


def aggregate_vaults(
    fetch: Callable[[], Sequence[VaultDescriptor]],
    executor: BatchExecutor,
    *,
    helper_address: str = STRATEGIES_HELPER_ADDRESS,
    now: int | None = None,
) -> VaultsSnapshot:
    """
    Run one full aggregation.

    Never raises for remote failures: an unreachable registry gives an empty snapshot
    with `registry_ok=False`, and vaults whose calls failed are listed in `unavailable`.
    """
    created_at = int(time.time()) if now is None else int(now)
    try:
        descriptors = list(fetch())
    except RegistryUnavailable as ex:
        print(f"⚠️  Vault registry unavailable: {ex}", file=sys.stderr)
        return VaultsSnapshot(vaults=(), registry_ok=False, created_at=created_at)

    plans = plan_calls(descriptors, helper_address=helper_address)

    # Vault/strategy calls and helper calls are independent; correlation waits for both.
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="vaults-batch") as pool:
        params_future = pool.submit(_execute_soft, executor, plans.vault + plans.strategy, "Vault/strategy")
        helper_future = pool.submit(_execute_soft, executor, plans.helper, "Strategies helper")
        params_results = params_future.result()
        helper_results = helper_future.result()

    vaults = correlate(params_results, params_results, helper_results, descriptors, now=now)
    published = {v.address.lower() for v in vaults}
    unavailable = frozenset(d.address.lower() for d in descriptors) - published
    if unavailable:
        print(
            f"⚠️  {len(unavailable)} of {len(descriptors)} vaults dropped (on-chain data unavailable)",
            file=sys.stderr,
        )
    return VaultsSnapshot(vaults=tuple(vaults), unavailable=unavailable, created_at=created_at)


def _http_web3(rpc_url: str, timeout_s: int) -> "Web3":
    from web3 import Web3  # pylint: disable=import-outside-toplevel

    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_s}))


def build_executor(settings: Settings) -> Web3BatchExecutor:
    """Create the web3 batch executor for the configured node; each worker thread gets its own provider."""
    if not settings.rpc_url:
        raise ValueError("RPC URL is required. Set ETH_RPC_URL or pass Settings(rpc_url=...).")

    return Web3BatchExecutor(
        partial(_http_web3, settings.rpc_url, settings.timeout_s),
        batch_size=settings.batch_size,
        use_batch=settings.use_batch,
        show_progress=settings.show_progress,
    )


def build_vaults_cache(
    settings: Settings | None = None,
    *,
    executor: BatchExecutor | None = None,
    fetch: Callable[[], Sequence[VaultDescriptor]] | None = None,
) -> VaultsCache:
    """Composition root: wire registry client, executor and pipeline behind one cache."""
    settings = settings or Settings.from_env()
    executor = executor or build_executor(settings)
    if fetch is None:
        fetch = partial(fetch_registry, settings.registry_url, timeout_s=settings.timeout_s)
    return VaultsCache(lambda: aggregate_vaults(fetch, executor, helper_address=settings.helper_address))
