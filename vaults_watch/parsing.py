"""Registry payload parsing and contract result decoding."""

import sys
from collections.abc import Mapping, Sequence
from typing import Any

from vaults_watch.constants import (
    FIRST_CURRENT_LAYOUT_VERSION,
    STRATEGY_LAYOUT_CURRENT,
    STRATEGY_LAYOUT_LEGACY,
    STRATEGY_PARAMS_FIELDS,
    SUPPORTED_VAULT_TYPE,
)
from vaults_watch.errors import RegistryUnavailable
from vaults_watch.formatters import as_int
from vaults_watch.models import FeeSchedule, StrategyDescriptor, TokenDescriptor, VaultDescriptor


def is_valid_address(address: object) -> bool:
    """Syntactic check of a 20-byte hex chain address."""
    from web3 import Web3  # pylint: disable=import-outside-toplevel

    return isinstance(address, str) and Web3.is_address(address)


def parse_version(version: str | None) -> tuple[int, ...]:
    """Parse "0.3.2" (or "v0.3.2", "0.4.3-beta") into an int tuple; unknown parts become 0."""
    parts = []
    for chunk in str(version or "").strip().lstrip("vV").split("."):
        digits = ""
        for ch in chunk:
            if not ch.isdigit():
                break
            digits += ch
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def vault_type_for(api_version: str | None) -> str:
    """Derive the registry vault type from an API version: 0.x vaults are v2."""
    if not api_version:
        return ""
    major = parse_version(api_version)[0]
    return SUPPORTED_VAULT_TYPE if major == 0 else f"v{major}"


def strategy_layout_for(api_version: str | None) -> str:
    """Layout of the vault's `strategies()` struct for a given vault API version."""
    if parse_version(api_version) < FIRST_CURRENT_LAYOUT_VERSION:
        return STRATEGY_LAYOUT_LEGACY
    return STRATEGY_LAYOUT_CURRENT


def _optional_fee(record: Mapping[str, Any], name: str) -> int | None:
    general = (record.get("fees") or {}).get("general") or {}
    value = general.get(name)
    if value is None:
        return None
    try:
        return as_int(value)
    except (TypeError, ValueError):
        return None


def parse_vault_record(record: Any) -> VaultDescriptor:
    """Convert one `/all` record into a VaultDescriptor. Raises RegistryUnavailable when malformed."""
    if not isinstance(record, Mapping):
        raise RegistryUnavailable(f"Unexpected registry record (expected JSON object): {record!r}")
    address = record.get("address")
    if not isinstance(address, str) or not address:
        raise RegistryUnavailable(f"Registry record without address: {record!r}")

    token_raw = record.get("token") or {}
    if not isinstance(token_raw, Mapping):
        raise RegistryUnavailable(f"Vault {address}: unexpected token entry {token_raw!r}")
    try:
        token = TokenDescriptor(
            address=str(token_raw.get("address") or ""),
            name=str(token_raw.get("name") or ""),
            symbol=str(token_raw.get("symbol") or ""),
            decimals=as_int(token_raw.get("decimals"), default=18),
            icon=token_raw.get("icon"),
        )
    except (TypeError, ValueError) as ex:
        raise RegistryUnavailable(f"Vault {address}: invalid token decimals") from ex

    strategies = []
    for strat in record.get("strategies") or []:
        if not isinstance(strat, Mapping) or not strat.get("address"):
            raise RegistryUnavailable(f"Vault {address}: malformed strategy entry {strat!r}")
        if not is_valid_address(strat["address"]):
            print(f"⚠️  Vault {address}: skipping strategy with invalid address {strat['address']!r}", file=sys.stderr)
            continue
        strategies.append(StrategyDescriptor(address=str(strat["address"]), name=str(strat.get("name") or "")))

    api_version = str(record.get("apiVersion") or "")
    return VaultDescriptor(
        address=address,
        name=str(record.get("name") or record.get("display_name") or ""),
        symbol=str(record.get("symbol") or ""),
        token=token,
        endorsed=bool(record.get("endorsed")),
        api_version=api_version,
        vault_type=str(record.get("type") or vault_type_for(api_version)),
        icon=record.get("icon"),
        fees=FeeSchedule(
            management_fee=_optional_fee(record, "managementFee"),
            performance_fee=_optional_fee(record, "performanceFee"),
        ),
        strategies=tuple(strategies),
        emergency_shutdown=bool(record.get("emergencyShutdown")),
    )


def parse_registry_payload(payload: Any) -> list[VaultDescriptor]:
    """Parse the `/all` response body (a JSON array of vault records).

    Records whose address is not a valid chain address are skipped with a warning.
    """
    if not isinstance(payload, list):
        raise RegistryUnavailable("Unexpected registry payload (expected JSON array)")
    descriptors = []
    for record in payload:
        descriptor = parse_vault_record(record)
        if not is_valid_address(descriptor.address):
            print(f"⚠️  Skipping registry vault with invalid address {descriptor.address!r}", file=sys.stderr)
            continue
        descriptors.append(descriptor)
    return descriptors


def decode_strategy_params(value: Any, layout: str) -> dict[str, int]:
    """Decode a `strategies(address)` struct into field-name -> int.

    web3.py may decode the struct as a plain tuple or as a dict-like value depending
    on version/config; the tuple order is STRATEGY_PARAMS_FIELDS[layout].
    """
    fields = STRATEGY_PARAMS_FIELDS[layout]
    if isinstance(value, Mapping):
        return {name: as_int(value.get(name)) for name in fields}
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)) or len(value) < len(fields):
        raise ValueError(f"Unexpected strategies() result for layout {layout}: {value!r}")
    return {name: as_int(value[i]) for i, name in enumerate(fields)}
