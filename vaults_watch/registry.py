"""Off-chain vault registry client."""

from collections.abc import Iterable

import requests

from vaults_watch.constants import DEFAULT_TIMEOUT, PRE_ENDORSED, SUPPORTED_VAULT_TYPE
from vaults_watch.errors import RegistryUnavailable
from vaults_watch.models import VaultDescriptor
from vaults_watch.parsing import parse_registry_payload


def build_registry_url(base_url: str, endpoint: str = "all") -> str:
    """Join the registry base URL and an endpoint name."""
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def is_included(descriptor: VaultDescriptor) -> bool:
    """Endorsed vaults of the supported type, plus the pre-endorsed allow-list."""
    if descriptor.address.lower() in PRE_ENDORSED:
        return True
    return descriptor.endorsed and descriptor.vault_type == SUPPORTED_VAULT_TYPE


def filter_descriptors(descriptors: Iterable[VaultDescriptor]) -> list[VaultDescriptor]:
    """Keep included descriptors, preserving registry order."""
    return [d for d in descriptors if is_included(d)]


def fetch_registry(
    base_url: str,
    *,
    timeout_s: int = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
) -> list[VaultDescriptor]:
    """Fetch `/all` from the registry and return the included vault descriptors."""
    url = build_registry_url(base_url)
    getter = session.get if session is not None else requests.get
    try:
        resp = getter(url, timeout=timeout_s)
        resp.raise_for_status()
        payload = resp.json()
    except (requests.RequestException, ValueError) as ex:
        raise RegistryUnavailable(f"Failed to fetch vault registry from {url}") from ex
    return filter_descriptors(parse_registry_payload(payload))
