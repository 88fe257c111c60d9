"""Data models for vault aggregation."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from vaults_watch.errors import IncompleteVault


@dataclass(frozen=True)
class TokenDescriptor:
    """Underlying token of a vault, as listed by the registry."""

    address: str
    name: str
    symbol: str
    decimals: int
    icon: str | None = None


@dataclass(frozen=True)
class FeeSchedule:
    """Registry fees in basis points. `None` means the registry does not know the fee."""

    management_fee: int | None = None
    performance_fee: int | None = None


@dataclass(frozen=True)
class StrategyDescriptor:
    address: str
    name: str


@dataclass(frozen=True)
class VaultDescriptor:
    """A vault record from the off-chain registry."""

    address: str
    name: str
    symbol: str
    token: TokenDescriptor
    endorsed: bool
    api_version: str
    vault_type: str
    icon: str | None
    fees: FeeSchedule
    strategies: tuple[StrategyDescriptor, ...]
    emergency_shutdown: bool


@dataclass(frozen=True)
class LiveVaultParams:
    """Vault state read from chain. Raw integer magnitudes in token units."""

    management: str | None
    governance: str | None
    guardian: str | None
    deposit_limit: int
    total_assets: int
    debt_ratio: int
    total_debt: int
    last_report: int
    rewards: str | None


@dataclass(frozen=True)
class LiveStrategyParams:
    """Strategy state read from the owning vault's `strategies()` struct and `creditAvailable()`."""

    performance_fee: int
    activation: int
    debt_ratio: int
    last_report: int
    total_debt: int
    total_gain: int
    total_loss: int
    credit_available: int
    # Position in the vault's withdrawal queue; -1 when the strategy is not in it.
    queue_index: int
    rate_limit: int | None = None
    min_debt_per_harvest: int | None = None
    max_debt_per_harvest: int | None = None

    @property
    def in_queue(self) -> bool:
        return self.queue_index >= 0


@dataclass(frozen=True)
class Strategy:
    address: str
    name: str
    # Owning vault address (identifier only).
    vault: str
    params: LiveStrategyParams
    total_debt_text: str
    debt_ratio_text: str
    credit_available_text: str
    last_report_text: str


@dataclass(frozen=True)
class Vault:
    """A registry vault merged with its live parameters, strategies and derived metrics."""

    address: str
    name: str
    symbol: str
    token: TokenDescriptor
    api_version: str
    icon: str | None
    endorsed: bool
    emergency_shutdown: bool
    fees: FeeSchedule
    params: LiveVaultParams
    strategies: tuple[Strategy, ...]
    last_report_text: str
    debt_usage: Decimal
    total_assets_text: str
    total_debt_text: str
    deposit_limit_text: str
    debt_ratio_text: str
    management_fee_text: str
    performance_fee_text: str
    config_ok: bool = True
    config_errors: tuple[str, ...] = ()


@dataclass
class VaultBuilder:
    """Accumulates the parts of a Vault while results are being correlated."""

    descriptor: VaultDescriptor
    params: LiveVaultParams | None = None
    strategies: list[Strategy] = field(default_factory=list)
    derived: dict[str, Any] = field(default_factory=dict)

    REQUIRED_DERIVED = (
        "last_report_text",
        "debt_usage",
        "total_assets_text",
        "total_debt_text",
        "deposit_limit_text",
        "debt_ratio_text",
        "management_fee_text",
        "performance_fee_text",
    )

    def missing(self) -> list[str]:
        missing = [] if self.params is not None else ["params"]
        missing.extend(name for name in self.REQUIRED_DERIVED if name not in self.derived)
        return missing

    def build(self) -> Vault:
        missing = self.missing()
        if missing:
            raise IncompleteVault(f"Vault {self.descriptor.address} is missing: {', '.join(missing)}")
        d = self.descriptor
        return Vault(
            address=d.address,
            name=d.name,
            symbol=d.symbol,
            token=d.token,
            api_version=d.api_version,
            icon=d.icon,
            endorsed=d.endorsed,
            emergency_shutdown=d.emergency_shutdown,
            fees=d.fees,
            params=self.params,
            strategies=tuple(self.strategies),
            **{name: self.derived[name] for name in self.REQUIRED_DERIVED},
        )


@dataclass(frozen=True)
class CallSpec:
    """One contract method call inside a call group."""

    reference: str
    method: str
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class CallGroup:
    """Calls against a single contract, identified by a caller-chosen reference."""

    reference: str
    contract_address: str
    abi: list[dict] = field(compare=False, repr=False)
    calls: tuple[CallSpec, ...]
    # Owning vault address for strategy groups.
    owner: str | None = None
    # Decoding layout of the `strategies()` struct for strategy groups.
    layout: str | None = None


@dataclass(frozen=True)
class CallPlans:
    vault: tuple[CallGroup, ...]
    strategy: tuple[CallGroup, ...]
    helper: tuple[CallGroup, ...]


@dataclass(frozen=True)
class CallResult:
    """Outcome of one call. `error` is set when that single call failed."""

    reference: str
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


ResultSet = Mapping[str, Sequence[CallResult]]


@dataclass(frozen=True)
class VaultsSnapshot:
    """Result of one full aggregation run."""

    vaults: tuple[Vault, ...]
    # Lowercase addresses of registry vaults dropped because their on-chain data failed.
    unavailable: frozenset[str] = frozenset()
    registry_ok: bool = True
    created_at: int = 0
    by_address: Mapping[str, Vault] = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        index = {v.address.lower(): v for v in self.vaults}
        object.__setattr__(self, "by_address", MappingProxyType(index))

    def find(self, address: str) -> Vault | None:
        return self.by_address.get(address.lower())
