"""Batched contract call planning."""

import sys
from collections.abc import Sequence

from vaults_watch.constants import (
    STRATEGIES_HELPER_ABI,
    STRATEGIES_HELPER_ADDRESS,
    VAULT_STRATEGY_ABIS,
    VAULT_VIEW_ABI,
    VAULT_VIEW_METHODS,
)
from vaults_watch.models import CallGroup, CallPlans, CallSpec, VaultDescriptor
from vaults_watch.parsing import strategy_layout_for

STRATEGY_PARAMS_METHOD = "strategies"
CREDIT_AVAILABLE_METHOD = "creditAvailable"
HELPER_METHOD = "assetStrategiesAddresses"


def build_strategy_owner(descriptors: Sequence[VaultDescriptor]) -> dict[str, str]:
    """Map lowercase strategy address -> owning vault address. The first vault listing a strategy wins."""
    owner: dict[str, str] = {}
    for vault in descriptors:
        for strat in vault.strategies:
            key = strat.address.lower()
            if key in owner and owner[key].lower() != vault.address.lower():
                print(
                    f"⚠️  Strategy {strat.address} is listed under {owner[key]} and {vault.address}; "
                    f"keeping {owner[key]}",
                    file=sys.stderr,
                )
                continue
            owner.setdefault(key, vault.address)
    return owner


def vault_call_group(vault: VaultDescriptor) -> CallGroup:
    """View-method calls for a vault, always through the 0.3.2 ABI."""
    return CallGroup(
        reference=vault.address,
        contract_address=vault.address,
        abi=VAULT_VIEW_ABI,
        calls=tuple(CallSpec(reference=m, method=m) for m in VAULT_VIEW_METHODS),
    )


def strategy_call_group(strategy_address: str, vault: VaultDescriptor) -> CallGroup:
    """Strategy parameter calls, made on the owning vault with the ABI of the vault's API version."""
    layout = strategy_layout_for(vault.api_version)
    return CallGroup(
        reference=strategy_address,
        contract_address=vault.address,
        abi=VAULT_STRATEGY_ABIS[layout],
        calls=(
            CallSpec(reference=STRATEGY_PARAMS_METHOD, method=STRATEGY_PARAMS_METHOD, args=(strategy_address,)),
            CallSpec(reference=CREDIT_AVAILABLE_METHOD, method=CREDIT_AVAILABLE_METHOD, args=(strategy_address,)),
        ),
        owner=vault.address,
        layout=layout,
    )


def helper_call_group(vault: VaultDescriptor, helper_address: str = STRATEGIES_HELPER_ADDRESS) -> CallGroup:
    """Ask the strategies helper for the vault's strategies in withdrawal-queue order."""
    return CallGroup(
        reference=vault.address,
        contract_address=helper_address,
        abi=STRATEGIES_HELPER_ABI,
        calls=(CallSpec(reference=HELPER_METHOD, method=HELPER_METHOD, args=(vault.address,)),),
    )


def plan_calls(
    descriptors: Sequence[VaultDescriptor],
    *,
    helper_address: str = STRATEGIES_HELPER_ADDRESS,
) -> CallPlans:
    """Build the vault, strategy and helper call plans for the given vaults."""
    owner = build_strategy_owner(descriptors)
    vault_groups: list[CallGroup] = []
    strategy_groups: list[CallGroup] = []
    helper_groups: list[CallGroup] = []
    planned: set[str] = set()

    for vault in descriptors:
        vault_groups.append(vault_call_group(vault))
        helper_groups.append(helper_call_group(vault, helper_address))
        for strat in vault.strategies:
            key = strat.address.lower()
            if key in planned or owner.get(key, "").lower() != vault.address.lower():
                continue
            planned.add(key)
            strategy_groups.append(strategy_call_group(strat.address, vault))

    return CallPlans(vault=tuple(vault_groups), strategy=tuple(strategy_groups), helper=tuple(helper_groups))
