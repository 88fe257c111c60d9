"""Batched contract call execution against an Ethereum node."""

import sys
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

import requests
from tqdm import tqdm

from vaults_watch.constants import DEFAULT_BATCH_SIZE
from vaults_watch.errors import RemoteBatchFailure
from vaults_watch.models import CallGroup, CallResult, CallSpec, ResultSet

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover

# Errors meaning the node could not be reached at all; anything else is a per-call failure.
TRANSPORT_ERRORS = (requests.RequestException, ConnectionError, TimeoutError)


class BatchExecutor(Protocol):
    """Executes call groups and returns results keyed by each group's reference."""

    def execute(self, groups: Sequence[CallGroup]) -> ResultSet:  # pragma: no cover
        ...


def iter_chunks(items: Sequence[Any], chunk_size: int) -> Iterable[Sequence[Any]]:
    """Iterate over a sequence in chunks."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    for start in range(0, len(items), chunk_size):
        yield items[start : start + chunk_size]


class Web3BatchExecutor:
    """BatchExecutor using web3.py JSON-RPC batch requests.

    Groups are sent in chunks of `batch_size` groups. If the node rejects a batch
    (for example because one call reverts), the chunk is retried call by call so
    that only the failing calls are marked as failed.

    `w3_factory` is called once per executing thread; a web3 provider's batching
    state is never shared between threads.
    """

    def __init__(
        self,
        w3_factory: Callable[[], "Web3"],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        use_batch: bool = True,
        show_progress: bool = True,
        desc: str = "🔗 Fetching on-chain data",
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._w3_factory = w3_factory
        self._local = threading.local()
        self._batch_size = batch_size
        self._use_batch = use_batch
        self._show_progress = show_progress
        self._desc = desc

    @property
    def _w3(self) -> "Web3":
        w3 = getattr(self._local, "w3", None)
        if w3 is None:
            w3 = self._local.w3 = self._w3_factory()
        return w3

    def execute(self, groups: Sequence[CallGroup]) -> ResultSet:
        out: dict[str, tuple[CallResult, ...]] = {}
        with tqdm(
            total=len(groups),
            desc=self._desc,
            unit="contract",
            file=sys.stderr,
            disable=not self._show_progress,
            leave=False,
        ) as pbar:
            for chunk in iter_chunks(groups, self._batch_size):
                out.update(self._execute_chunk(chunk))
                pbar.update(len(chunk))
        return out

    def _prepare_args(self, args: Sequence[Any]) -> list[Any]:
        w3 = self._w3
        return [w3.to_checksum_address(a) if isinstance(a, str) and w3.is_address(a) else a for a in args]

    def _bind(self, group: CallGroup) -> list[tuple[CallSpec, Any]]:
        contract = self._w3.eth.contract(address=self._w3.to_checksum_address(group.contract_address), abi=group.abi)
        return [
            (spec, getattr(contract.functions, spec.method)(*self._prepare_args(spec.args))) for spec in group.calls
        ]

    def _execute_chunk(self, chunk: Sequence[CallGroup]) -> dict[str, tuple[CallResult, ...]]:
        out: dict[str, tuple[CallResult, ...]] = {}
        bound = []
        for group in chunk:
            try:
                bound.append((group, self._bind(group)))
            except Exception as ex:  # pylint: disable=broad-exception-caught
                error = str(ex) or type(ex).__name__
                tqdm.write(f"⚠️  Cannot encode calls on {group.contract_address}: {error}", file=sys.stderr)
                out[group.reference] = tuple(CallResult(reference=spec.reference, error=error) for spec in group.calls)

        if bound:
            run = self._execute_batch if self._use_batch else self._execute_individually
            out.update(run(bound))
        return {group.reference: out[group.reference] for group in chunk}

    def _execute_batch(self, bound: list[tuple[CallGroup, list[tuple[CallSpec, Any]]]]):
        calls_count = sum(len(calls) for _, calls in bound)
        try:
            with self._w3.batch_requests() as batch:
                for _, calls in bound:
                    for _, fn in calls:
                        batch.add(fn)
                values = list(batch.execute())
        except TRANSPORT_ERRORS as ex:
            raise RemoteBatchFailure(f"Batch of {calls_count} calls failed: {ex}") from ex
        except Exception as ex:  # pylint: disable=broad-exception-caught
            tqdm.write(f"⚠️  Batch request rejected ({ex}); retrying {calls_count} calls one by one", file=sys.stderr)
            return self._execute_individually(bound)

        if len(values) != calls_count:
            tqdm.write(
                f"⚠️  Batch returned {len(values)} results for {calls_count} calls; retrying one by one",
                file=sys.stderr,
            )
            return self._execute_individually(bound)

        out: dict[str, tuple[CallResult, ...]] = {}
        it = iter(values)
        for group, calls in bound:
            out[group.reference] = tuple(CallResult(reference=spec.reference, value=next(it)) for spec, _ in calls)
        return out

    def _execute_individually(self, bound: list[tuple[CallGroup, list[tuple[CallSpec, Any]]]]):
        out: dict[str, tuple[CallResult, ...]] = {}
        for group, calls in bound:
            results = []
            for spec, fn in calls:
                try:
                    results.append(CallResult(reference=spec.reference, value=fn.call()))
                except TRANSPORT_ERRORS as ex:
                    raise RemoteBatchFailure(f"{spec.method} on {group.contract_address} failed: {ex}") from ex
                except Exception as ex:  # pylint: disable=broad-exception-caught
                    results.append(CallResult(reference=spec.reference, error=str(ex) or type(ex).__name__))
            out[group.reference] = tuple(results)
        return out
