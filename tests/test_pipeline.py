import threading

import pytest

from conftest import NOW, STRAT_1, VAULT_A, VAULT_B, FakeExecutor, descriptor, strategy_struct, vault_record, vault_views
from vaults_watch.config import Settings
from vaults_watch.constants import STRATEGIES_HELPER_ADDRESS
from vaults_watch.errors import NotFound, RegistryUnavailable, VaultUnavailable
from vaults_watch.formatters import display_amount, format_bps
from vaults_watch.parsing import parse_registry_payload
from vaults_watch.pipeline import aggregate_vaults, build_vaults_cache
from vaults_watch.registry import filter_descriptors


def registry(*records):
    """A fetch callable behaving like fetch_registry over the given `/all` records."""
    return lambda: filter_descriptors(parse_registry_payload(list(records)))


def scenario_executor(**kwargs) -> FakeExecutor:
    executor = FakeExecutor(**kwargs)
    executor.add_vault(VAULT_A, vault_views(total_debt=500, debt_ratio=250), queue=[STRAT_1])
    executor.add_strategy(STRAT_1, strategy_struct(total_debt=500, debt_ratio=250))
    executor.add_vault(VAULT_B, vault_views())
    return executor


def is_helper_batch(groups) -> bool:
    return any(g.contract_address == STRATEGIES_HELPER_ADDRESS for g in groups)


def test_end_to_end_keeps_only_endorsed_vault():
    fetch = registry(vault_record(VAULT_A, strategies=[STRAT_1], decimals=2), vault_record(VAULT_B, endorsed=False))
    snap = aggregate_vaults(fetch, scenario_executor(), now=NOW)

    assert snap.registry_ok is True
    assert [v.address for v in snap.vaults] == [VAULT_A]
    assert snap.unavailable == frozenset()

    [vault] = snap.vaults
    [strategy] = vault.strategies
    assert strategy.params.total_debt == 500
    assert strategy.params.queue_index == 0
    assert vault.debt_ratio_text == format_bps(250) == "2.5"
    assert strategy.total_debt_text == display_amount(500, 2) == "5"


def test_helper_timeout_drops_vault_without_raising(capsys):
    fetch = registry(vault_record(VAULT_A, strategies=[STRAT_1]), vault_record(VAULT_B, endorsed=False))
    executor = scenario_executor(fail_when=is_helper_batch)

    snap = aggregate_vaults(fetch, executor, now=NOW)

    assert snap.vaults == ()
    assert snap.unavailable == frozenset({VAULT_A})
    assert "Strategies helper batch failed" in capsys.readouterr().err


def test_params_batch_failure_drops_all_vaults():
    fetch = registry(vault_record(VAULT_A, strategies=[STRAT_1]))
    executor = scenario_executor(fail_when=lambda groups: not is_helper_batch(groups))
    snap = aggregate_vaults(fetch, executor, now=NOW)
    assert snap.vaults == ()
    assert snap.unavailable == frozenset({VAULT_A})


def test_registry_unavailable_gives_empty_snapshot(capsys):
    def fetch():
        raise RegistryUnavailable("down")

    executor = FakeExecutor()
    snap = aggregate_vaults(fetch, executor, now=NOW)
    assert snap.vaults == ()
    assert snap.registry_ok is False
    assert executor.executions == []
    assert "registry unavailable" in capsys.readouterr().err


def test_plans_are_dispatched_concurrently():
    """Both plans must be in flight at the same time before either completes."""
    both_started = threading.Barrier(2, timeout=5)

    class BarrierExecutor(FakeExecutor):
        def execute(self, groups):
            both_started.wait()
            return super().execute(groups)

    executor = BarrierExecutor()
    executor.add_vault(VAULT_A, vault_views())
    snap = aggregate_vaults(lambda: [descriptor(VAULT_A)], executor, now=NOW)
    assert [v.address for v in snap.vaults] == [VAULT_A]
    assert len(executor.executions) == 2


def test_cache_hit_issues_no_second_batch():
    executor = scenario_executor()
    fetch_calls = []

    def fetch():
        fetch_calls.append(1)
        return [descriptor(VAULT_A, strategies=[STRAT_1])]

    cache = build_vaults_cache(Settings(show_progress=False), executor=executor, fetch=fetch)
    first = cache.get_all()
    second = cache.get_all()
    one = cache.get_one(VAULT_A)

    assert first is second
    assert one is first[0]
    assert len(fetch_calls) == 1
    assert len(executor.executions) == 2


def test_cache_distinguishes_unavailable_from_unknown():
    executor = scenario_executor(fail_when=is_helper_batch)
    cache = build_vaults_cache(Settings(), executor=executor, fetch=lambda: [descriptor(VAULT_A)])
    assert cache.get_all() == ()
    with pytest.raises(VaultUnavailable):
        cache.get_one(VAULT_A)
    with pytest.raises(NotFound):
        cache.get_one(VAULT_B)


def test_build_vaults_cache_requires_rpc_url():
    with pytest.raises(ValueError):
        build_vaults_cache(Settings(rpc_url=None), fetch=lambda: [])


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("ETH_RPC_URL", "http://node.invalid")
    monkeypatch.setenv("VAULTS_REGISTRY_URL", "http://registry.invalid")
    monkeypatch.setenv("VAULTS_BATCH_SIZE", "7")
    monkeypatch.setenv("VAULTS_NO_PROGRESS", "1")
    monkeypatch.delenv("VAULTS_NO_BATCH", raising=False)
    settings = Settings.from_env()
    assert settings.rpc_url == "http://node.invalid"
    assert settings.registry_url == "http://registry.invalid"
    assert settings.batch_size == 7
    assert settings.use_batch is True
    assert settings.show_progress is False


def test_malformed_registry_address_does_not_sink_the_snapshot(capsys):
    fetch = registry(vault_record("0xdeadbeef", strategies=[STRAT_1]), vault_record(VAULT_A, strategies=[STRAT_1]))
    executor = scenario_executor()

    snap = aggregate_vaults(fetch, executor, now=NOW)

    assert snap.registry_ok is True
    assert [v.address for v in snap.vaults] == [VAULT_A]
    assert [s.address for s in snap.vaults[0].strategies] == [STRAT_1]
    assert snap.unavailable == frozenset()
    assert all(g.reference != "0xdeadbeef" for groups in executor.executions for g in groups)
    assert "invalid address '0xdeadbeef'" in capsys.readouterr().err


def test_build_executor_creates_a_web3_per_thread(monkeypatch):
    import vaults_watch.pipeline as pipeline  # pylint: disable=import-outside-toplevel

    created = []
    monkeypatch.setattr(pipeline, "_http_web3", lambda url, timeout_s: created.append((url, timeout_s)) or object())
    executor = pipeline.build_executor(Settings(rpc_url="http://node.invalid", timeout_s=3, show_progress=False))

    seen = []
    workers = [threading.Thread(target=lambda: seen.append(executor._w3)) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert created == [("http://node.invalid", 3)] * 2
    assert seen[0] is not seen[1]
