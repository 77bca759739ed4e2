from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from services.result_cache import ANALYSIS_TAG, EXCHANGE_RATE_TAG, ResultCache


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingLoader:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return {"generation": self.calls}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> ResultCache:
    return ResultCache(clock=clock, storage={})


@pytest.mark.asyncio
async def test_get_within_ttl_returns_cached_value(cache, clock):
    loader = CountingLoader()
    cache.register(ANALYSIS_TAG, loader, ttl_s=600)

    first = await cache.get(ANALYSIS_TAG)
    clock.advance(599)
    second = await cache.get(ANALYSIS_TAG)

    assert first.cached is False
    assert second.cached is True
    assert second.value is first.value
    assert second.created_at == first.created_at == datetime.fromtimestamp(1_000.0, tz=timezone.utc)
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_get_after_ttl_recomputes(cache, clock):
    loader = CountingLoader()
    cache.register(EXCHANGE_RATE_TAG, loader, ttl_s=60)

    await cache.get(EXCHANGE_RATE_TAG)
    clock.advance(60)
    again = await cache.get(EXCHANGE_RATE_TAG)

    assert again.cached is False
    assert again.value == {"generation": 2}


@pytest.mark.asyncio
async def test_force_fresh_always_runs_loader_and_replaces_entry(cache):
    loader = CountingLoader()
    cache.register(ANALYSIS_TAG, loader, ttl_s=600)

    await cache.get(ANALYSIS_TAG)
    forced = await cache.get_force_fresh(ANALYSIS_TAG)
    after = await cache.get(ANALYSIS_TAG)

    assert forced.cached is False
    assert forced.value == {"generation": 2}
    assert after.cached is True
    assert after.value == {"generation": 2}


@pytest.mark.asyncio
async def test_invalidate_single_and_all(cache):
    analysis, rates = CountingLoader(), CountingLoader()
    cache.register(ANALYSIS_TAG, analysis, ttl_s=600)
    cache.register(EXCHANGE_RATE_TAG, rates, ttl_s=60)
    await cache.get(ANALYSIS_TAG)
    await cache.get(EXCHANGE_RATE_TAG)

    assert cache.invalidate(ANALYSIS_TAG) == [ANALYSIS_TAG]
    assert (await cache.get(EXCHANGE_RATE_TAG)).cached is True
    assert (await cache.get(ANALYSIS_TAG)).cached is False

    assert sorted(cache.invalidate()) == sorted([ANALYSIS_TAG, EXCHANGE_RATE_TAG])
    assert (await cache.get(EXCHANGE_RATE_TAG)).cached is False
    assert analysis.calls == 2 and rates.calls == 2


def test_invalidate_unknown_tag_is_echoed(cache):
    cache.register(ANALYSIS_TAG, CountingLoader(), ttl_s=600)

    assert cache.invalidate("nope") == ["nope"]
    assert "nope" not in cache.tags


@pytest.mark.asyncio
async def test_loader_error_propagates_and_stores_nothing(cache):
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("upstream down")
        return "ok"

    cache.register(ANALYSIS_TAG, flaky, ttl_s=600)

    with pytest.raises(RuntimeError):
        await cache.get(ANALYSIS_TAG)
    result = await cache.get(ANALYSIS_TAG)

    assert result.value == "ok"
    assert result.cached is False


@pytest.mark.asyncio
async def test_get_unregistered_tag_raises(cache):
    with pytest.raises(KeyError):
        await cache.get("unknown")


@pytest.mark.asyncio
async def test_concurrent_misses_converge_on_one_value(clock):
    cache = ResultCache(clock=clock)
    release = asyncio.Event()
    calls = 0

    async def slow_loader():
        nonlocal calls
        calls += 1
        mine = calls
        await release.wait()
        return f"value-{mine}"

    cache.register(ANALYSIS_TAG, slow_loader, ttl_s=600)

    first = asyncio.create_task(cache.get(ANALYSIS_TAG))
    second = asyncio.create_task(cache.get(ANALYSIS_TAG))
    while calls < 2:
        await asyncio.sleep(0)
    release.set()
    a, b = await asyncio.gather(first, second)

    # Both computed (no in-flight coalescing) but the later store defers to the earlier one.
    assert calls == 2
    assert a.value == b.value
    assert [a.cached, b.cached].count(False) == 1
    assert (await cache.get(ANALYSIS_TAG)).value == a.value


@pytest.mark.asyncio
async def test_run_started_before_invalidate_is_not_stored(cache, clock):
    gates = [asyncio.Event(), asyncio.Event()]
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        mine = calls
        await gates[mine - 1].wait()
        return f"gen-{mine}"

    cache.register(ANALYSIS_TAG, loader, ttl_s=600)

    first = asyncio.create_task(cache.get(ANALYSIS_TAG))
    while calls < 1:
        await asyncio.sleep(0)

    clock.advance(10)
    assert cache.invalidate(ANALYSIS_TAG) == [ANALYSIS_TAG]
    second = asyncio.create_task(cache.get(ANALYSIS_TAG))
    while calls < 2:
        await asyncio.sleep(0)

    clock.advance(10)
    gates[0].set()
    stale = await first
    clock.advance(10)
    gates[1].set()
    fresh = await second

    assert stale.value == "gen-1" and stale.cached is False
    assert fresh.value == "gen-2" and fresh.cached is False
    after = await cache.get(ANALYSIS_TAG)
    assert after.cached is True
    assert after.value == "gen-2"


@pytest.mark.asyncio
async def test_force_fresh_started_before_invalidate_is_not_stored(cache):
    release = asyncio.Event()
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        await release.wait()
        return calls

    cache.register(EXCHANGE_RATE_TAG, loader, ttl_s=60)

    pending = asyncio.create_task(cache.get_force_fresh(EXCHANGE_RATE_TAG))
    while calls < 1:
        await asyncio.sleep(0)
    cache.invalidate()
    release.set()
    await pending

    again = await cache.get(EXCHANGE_RATE_TAG)
    assert again.cached is False
    assert calls == 2

@pytest.mark.asyncio
async def test_injected_storage_is_used(clock):
    storage = {}
    cache = ResultCache(clock=clock, storage=storage)
    cache.register(EXCHANGE_RATE_TAG, CountingLoader(), ttl_s=60)

    await cache.get(EXCHANGE_RATE_TAG)

    assert storage[EXCHANGE_RATE_TAG].expires_at == 1_060.0
