import threading
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from vaults_watch.errors import RemoteBatchFailure
from vaults_watch.models import CallGroup, CallResult
from vaults_watch.parsing import parse_vault_record

VAULT_A = "0x" + "a1" * 20
VAULT_B = "0x" + "b2" * 20
VAULT_C = "0x" + "c3" * 20
STRAT_1 = "0x" + "11" * 20
STRAT_2 = "0x" + "22" * 20
STRAT_3 = "0x" + "33" * 20
GOV = "0x" + "9f" * 20
NOW = 1_700_000_000
DAY = 86400


def vault_record(
    address: str,
    *,
    endorsed: bool = True,
    api_version: str = "0.3.2",
    vault_type: str | None = "v2",
    strategies: Sequence[str] = (),
    decimals: int = 18,
    fees: dict | None = None,
    emergency_shutdown: bool = False,
) -> dict[str, Any]:
    """A registry `/all` record."""
    record: dict[str, Any] = {
        "address": address,
        "name": f"Vault {address[:6]}",
        "symbol": "yvTKN",
        "icon": "https://example.invalid/icon.png",
        "endorsed": endorsed,
        "apiVersion": api_version,
        "emergencyShutdown": emergency_shutdown,
        "token": {"address": "0x" + "ee" * 20, "name": "Token", "symbol": "TKN", "decimals": decimals},
        "strategies": [{"address": s, "name": f"Strategy {s[:6]}"} for s in strategies],
    }
    if vault_type is not None:
        record["type"] = vault_type
    if fees is not None:
        record["fees"] = {"general": fees}
    return record


def descriptor(address: str, **kwargs):
    return parse_vault_record(vault_record(address, **kwargs))


def vault_views(
    *,
    total_assets: int = 10_000,
    total_debt: int = 1_000,
    debt_ratio: int = 9_500,
    last_report: int = NOW - 2 * DAY,
    deposit_limit: int = 10**30,
) -> dict[str, Any]:
    """Results of the vault view methods, keyed by method."""
    return {
        "management": GOV,
        "governance": GOV,
        "guardian": GOV,
        "depositLimit": deposit_limit,
        "totalAssets": total_assets,
        "debtRatio": debt_ratio,
        "totalDebt": total_debt,
        "lastReport": last_report,
        "rewards": GOV,
    }


def strategy_struct(
    *, debt_ratio: int = 250, total_debt: int = 500, last_report: int = NOW - 3600, legacy: bool = False
) -> tuple[int, ...]:
    """A `strategies(address)` struct as web3.py decodes it (plain tuple)."""
    if legacy:
        # performanceFee, activation, debtRatio, rateLimit, lastReport, totalDebt, totalGain, totalLoss
        return (1000, NOW - 100 * DAY, debt_ratio, 7, last_report, total_debt, 40, 0)
    # performanceFee, activation, debtRatio, minDebtPerHarvest, maxDebtPerHarvest, lastReport, totalDebt, ...
    return (1000, NOW - 100 * DAY, debt_ratio, 0, 2**256 - 1, last_report, total_debt, 40, 0)


class FakeExecutor:
    """BatchExecutor answering from a table of (reference, call reference) -> value.

    Calls missing from the table come back as per-call failures. `fail_when` can
    make a whole execution raise RemoteBatchFailure.
    """

    def __init__(
        self,
        responses: dict[tuple[str, str], Any] | None = None,
        *,
        fail_when: Callable[[Sequence[CallGroup]], bool] | None = None,
        delay: threading.Event | None = None,
    ) -> None:
        self.responses = {(ref.lower(), call): v for (ref, call), v in (responses or {}).items()}
        self.fail_when = fail_when
        self.delay = delay
        self.executions: list[tuple[CallGroup, ...]] = []
        self._lock = threading.Lock()

    def add_vault(self, address: str, views: dict[str, Any], queue: Sequence[str] = ()) -> None:
        for method, value in views.items():
            self.responses[(address.lower(), method)] = value
        self.responses[(address.lower(), "assetStrategiesAddresses")] = list(queue)

    def add_strategy(self, address: str, struct: tuple[int, ...], credit: int = 0) -> None:
        self.responses[(address.lower(), "strategies")] = struct
        self.responses[(address.lower(), "creditAvailable")] = credit

    def execute(self, groups: Sequence[CallGroup]):
        with self._lock:
            self.executions.append(tuple(groups))
        if self.delay is not None:
            self.delay.wait(timeout=5)
        if self.fail_when is not None and self.fail_when(groups):
            raise RemoteBatchFailure("timeout")
        out = {}
        for group in groups:
            results = []
            for spec in group.calls:
                key = (group.reference.lower(), spec.reference)
                if key in self.responses:
                    results.append(CallResult(reference=spec.reference, value=self.responses[key]))
                else:
                    results.append(CallResult(reference=spec.reference, error="execution reverted"))
            out[group.reference] = tuple(results)
        return out


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()
