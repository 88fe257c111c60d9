"""Configuration checks for aggregated vaults."""

from vaults_watch.constants import TOTAL_BASIS_POINTS
from vaults_watch.metrics import strategies_in_queue, total_debt_ratio
from vaults_watch.models import Vault

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _is_unset(address: str | None) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


def vault_checks(vault: Vault) -> list[str]:
    """
    Check a vault's live configuration.

    Returns a list of human-readable issues; an empty list means the configuration looks fine.
    """
    issues: list[str] = []
    p = vault.params

    if vault.emergency_shutdown:
        issues.append(f"Vault {vault.address}: emergency shutdown is active")

    if _is_unset(p.governance):
        issues.append(f"Vault {vault.address}: governance address is not set")
    if _is_unset(p.management):
        issues.append(f"Vault {vault.address}: management address is not set")

    if p.deposit_limit == 0 and not vault.emergency_shutdown:
        issues.append(f"Vault {vault.address}: deposit limit is 0")

    strategies_ratio = total_debt_ratio(vault.strategies)
    if strategies_ratio > TOTAL_BASIS_POINTS:
        issues.append(
            f"Vault {vault.address}: strategies debt ratio sum {strategies_ratio} exceeds {TOTAL_BASIS_POINTS} BPS"
        )

    for s in vault.strategies:
        if not s.params.in_queue and s.params.debt_ratio > 0:
            issues.append(
                f"Vault {vault.address}: strategy {s.address} has debt ratio {s.params.debt_ratio} "
                "but is not in the withdrawal queue"
            )

    queued = [s.params.queue_index for s in strategies_in_queue(vault.strategies)]
    foreign = sorted(set(range(queued[-1] + 1)) - set(queued)) if queued else []
    if foreign:
        issues.append(
            f"Vault {vault.address}: withdrawal queue positions {foreign} hold strategies not listed in the registry"
        )

    return issues
