"""Correlation of flat batch results back into vaults and strategies."""

import sys
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from vaults_watch.formatters import as_int, display_amount, format_bps, format_fee, last_report_text
from vaults_watch.metrics import debt_usage
from vaults_watch.models import (
    CallResult,
    LiveStrategyParams,
    LiveVaultParams,
    ResultSet,
    Strategy,
    Vault,
    VaultBuilder,
    VaultDescriptor,
)
from vaults_watch.parsing import decode_strategy_params, strategy_layout_for
from vaults_watch.planner import CREDIT_AVAILABLE_METHOD, HELPER_METHOD, STRATEGY_PARAMS_METHOD, build_strategy_owner
from vaults_watch.validation import vault_checks

# A vault missing any of these is excluded from the output.
REQUIRED_VAULT_FIELDS = ("totalAssets", "totalDebt", "debtRatio", "lastReport")

NOT_IN_QUEUE = -1


def _warn(msg: str) -> None:
    print(f"⚠️  {msg}", file=sys.stderr)


def _lower_keys(results: ResultSet) -> dict[str, Sequence[CallResult]]:
    return {str(k).lower(): v for k, v in results.items()}


def successful_calls(group: Sequence[CallResult] | None) -> dict[str, Any]:
    """Map call reference -> value for the calls of a group that succeeded."""
    if not group:
        return {}
    return {r.reference: r.value for r in group if r.ok}


def _optional_address(value: Any) -> str | None:
    return str(value) if value else None


def build_queue_index(helper_results: ResultSet) -> dict[str, dict[str, int]]:
    """
    Map lowercase vault address -> {lowercase strategy address: withdrawal queue position}.

    Vaults whose helper call failed are absent from the result.
    """
    out: dict[str, dict[str, int]] = {}
    for reference, group in helper_results.items():
        ok = successful_calls(group)
        if HELPER_METHOD not in ok:
            continue
        addresses = ok[HELPER_METHOD] or []
        positions: dict[str, int] = {}
        for i, address in enumerate(addresses):
            positions.setdefault(str(address).lower(), i)
        out[str(reference).lower()] = positions
    return out


def queue_position(positions: Mapping[str, int], strategy_address: str) -> int:
    """Withdrawal queue position of a strategy, or -1 when it is not in the queue."""
    return positions.get(strategy_address.lower(), NOT_IN_QUEUE)


def decode_vault_params(vault_address: str, group: Sequence[CallResult] | None) -> LiveVaultParams | None:
    """Decode a vault's view-method results. Returns None if the group is missing or incomplete."""
    ok = successful_calls(group)
    if not ok:
        _warn(f"Vault {vault_address}: no view-method results, skipping")
        return None
    missing = [name for name in REQUIRED_VAULT_FIELDS if name not in ok]
    if missing:
        _warn(f"Vault {vault_address}: failed calls {', '.join(missing)}, skipping")
        return None
    return LiveVaultParams(
        management=_optional_address(ok.get("management")),
        governance=_optional_address(ok.get("governance")),
        guardian=_optional_address(ok.get("guardian")),
        deposit_limit=as_int(ok.get("depositLimit")),
        total_assets=as_int(ok["totalAssets"]),
        debt_ratio=as_int(ok["debtRatio"]),
        total_debt=as_int(ok["totalDebt"]),
        last_report=as_int(ok["lastReport"]),
        rewards=_optional_address(ok.get("rewards")),
    )


def decode_strategy_live_params(
    strategy_address: str,
    group: Sequence[CallResult] | None,
    *,
    layout: str,
    queue_index: int,
) -> LiveStrategyParams | None:
    """Decode a strategy's parameter results with the layout of its vault's API version."""
    ok = successful_calls(group)
    if STRATEGY_PARAMS_METHOD not in ok:
        _warn(f"Strategy {strategy_address}: strategies() call failed, skipping")
        return None
    try:
        fields = decode_strategy_params(ok[STRATEGY_PARAMS_METHOD], layout)
    except ValueError as ex:
        _warn(f"Strategy {strategy_address}: {ex}")
        return None
    return LiveStrategyParams(
        performance_fee=fields["performanceFee"],
        activation=fields["activation"],
        debt_ratio=fields["debtRatio"],
        last_report=fields["lastReport"],
        total_debt=fields["totalDebt"],
        total_gain=fields["totalGain"],
        total_loss=fields["totalLoss"],
        credit_available=as_int(ok.get(CREDIT_AVAILABLE_METHOD)),
        queue_index=queue_index,
        rate_limit=fields.get("rateLimit"),
        min_debt_per_harvest=fields.get("minDebtPerHarvest"),
        max_debt_per_harvest=fields.get("maxDebtPerHarvest"),
    )


def build_strategy(
    address: str, name: str, vault: VaultDescriptor, params: LiveStrategyParams, *, now: int | None = None
) -> Strategy:
    decimals = vault.token.decimals
    return Strategy(
        address=address,
        name=name,
        vault=vault.address,
        params=params,
        total_debt_text=display_amount(params.total_debt, decimals),
        debt_ratio_text=format_bps(params.debt_ratio),
        credit_available_text=display_amount(params.credit_available, decimals),
        last_report_text=last_report_text(params.last_report, now=now),
    )


def correlate(
    vault_results: ResultSet,
    strategy_results: ResultSet,
    helper_results: ResultSet,
    descriptors: Sequence[VaultDescriptor],
    *,
    now: int | None = None,
) -> list[Vault]:
    """
    Rebuild vaults from batch results.

    Vaults are emitted in descriptor order. A vault is dropped when its view-method
    results or its withdrawal queue are missing; a strategy is dropped when its
    `strategies()` call failed.
    """
    strategy_owner = build_strategy_owner(descriptors)
    queues = build_queue_index(helper_results)
    vault_by_ref = _lower_keys(vault_results)
    strategy_by_ref = _lower_keys(strategy_results)

    out: list[Vault] = []
    seen: set[str] = set()
    for d in descriptors:
        key = d.address.lower()
        if key in seen:
            continue
        seen.add(key)

        params = decode_vault_params(d.address, vault_by_ref.get(key))
        if params is None:
            continue
        positions = queues.get(key)
        if positions is None:
            _warn(f"Vault {d.address}: withdrawal queue unavailable, skipping")
            continue

        builder = VaultBuilder(descriptor=d, params=params)
        layout = strategy_layout_for(d.api_version)
        for strat in d.strategies:
            if strategy_owner.get(strat.address.lower(), "").lower() != key:
                continue
            strat_params = decode_strategy_live_params(
                strat.address,
                strategy_by_ref.get(strat.address.lower()),
                layout=layout,
                queue_index=queue_position(positions, strat.address),
            )
            if strat_params is not None:
                builder.strategies.append(build_strategy(strat.address, strat.name, d, strat_params, now=now))

        decimals = d.token.decimals
        builder.derived.update(
            last_report_text=last_report_text(params.last_report, now=now),
            debt_usage=debt_usage(builder.strategies, params.total_debt),
            total_assets_text=display_amount(params.total_assets, decimals),
            total_debt_text=display_amount(params.total_debt, decimals),
            deposit_limit_text=display_amount(params.deposit_limit, decimals),
            debt_ratio_text=format_bps(params.debt_ratio),
            management_fee_text=format_fee(d.fees.management_fee),
            performance_fee_text=format_fee(d.fees.performance_fee),
        )
        vault = builder.build()
        issues = vault_checks(vault)
        if issues:
            vault = replace(vault, config_ok=False, config_errors=tuple(issues))
        out.append(vault)

    return out
