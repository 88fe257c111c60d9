"""In-process cache of the aggregated vault snapshot."""

import threading
from collections.abc import Callable
from concurrent.futures import Future

from vaults_watch.errors import InvalidAddress, NotFound, VaultUnavailable
from vaults_watch.models import Vault, VaultsSnapshot
from vaults_watch.parsing import is_valid_address

__all__ = ["VaultsCache", "is_valid_address"]


class VaultsCache:
    """
    Holds the single aggregated snapshot for the process lifetime.

    The snapshot is loaded on first use. Callers arriving while a load is in
    flight wait for that load instead of starting their own. `get_one` is a
    lookup into the same snapshot and never triggers a separate fetch.
    """

    def __init__(self, loader: Callable[[], VaultsSnapshot]) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._snapshot: VaultsSnapshot | None = None
        self._in_flight: Future | None = None
        # Bumped by invalidate(); a load started under an older generation is not stored.
        self._generation = 0

    def snapshot(self) -> VaultsSnapshot:
        with self._lock:
            if self._snapshot is not None:
                return self._snapshot
            owner = self._in_flight is None
            if owner:
                self._in_flight = Future()
            future = self._in_flight
            generation = self._generation

        if not owner:
            return future.result()

        try:
            snap = self._loader()
        except BaseException as ex:
            with self._lock:
                if self._in_flight is future:
                    self._in_flight = None
            future.set_exception(ex)
            raise
        with self._lock:
            if generation == self._generation:
                self._snapshot = snap
            if self._in_flight is future:
                self._in_flight = None
        future.set_result(snap)
        return snap

    def get_all(self) -> tuple[Vault, ...]:
        return self.snapshot().vaults

    def get_one(self, address: str) -> Vault:
        if not is_valid_address(address):
            raise InvalidAddress(f"Expected a valid vault address, got {address!r}")
        snap = self.snapshot()
        vault = snap.find(address)
        if vault is not None:
            return vault
        if address.lower() in snap.unavailable:
            raise VaultUnavailable(f"Vault {address} is endorsed but its on-chain data is currently unavailable")
        raise NotFound(f"Vault {address} is not part of the endorsed list")

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next lookup aggregates again.

        A load already in flight still answers its current waiters but is not cached.
        """
        with self._lock:
            self._generation += 1
            self._snapshot = None
            self._in_flight = None
