"""Derived metrics across a vault's strategies."""

from collections.abc import Iterable
from decimal import Decimal

from vaults_watch.models import Strategy


def debt_usage(strategies: Iterable[Strategy], total_debt: int) -> Decimal:
    """Share of the vault's total debt held by the given strategies; 0 when the vault has no debt."""
    if total_debt <= 0:
        return Decimal(0)
    strategies_debt = sum(int(s.params.total_debt) for s in strategies)
    return Decimal(strategies_debt) / Decimal(total_debt)


def total_debt_ratio(strategies: Iterable[Strategy]) -> int:
    """Sum of the strategies' debt ratios, in basis points."""
    return sum(int(s.params.debt_ratio) for s in strategies)


def strategies_in_queue(strategies: Iterable[Strategy]) -> list[Strategy]:
    """Strategies present in the withdrawal queue, ordered by queue position."""
    return sorted((s for s in strategies if s.params.in_queue), key=lambda s: s.params.queue_index)
