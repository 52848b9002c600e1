"""Tests for request coalescing and the TTL response cache."""

from __future__ import annotations

import asyncio

import pytest

from upnext.errors import InvalidRequestError, TransportError
from upnext.services.request_cache import (
    CacheStore,
    RequestCoordinator,
    RequestIdentity,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class GatedFetch:
    """Fetch callable that blocks until released and counts invocations."""

    def __init__(self, payload: bytes = b"payload", error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self) -> bytes:
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.payload


async def _drain() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


IDENTITY = RequestIdentity.build("/movie/550/watch/providers")


def test_identity_ignores_parameter_order_and_credentials() -> None:
    first = RequestIdentity.build(
        "/discover/movie", {"page": 1, "sort_by": "popularity.desc", "api_key": "a"}
    )
    second = RequestIdentity.build(
        "/discover/movie", {"sort_by": "popularity.desc", "api_key": "b", "page": "1"}
    )

    assert first == second
    assert hash(first) == hash(second)
    assert "api_key" not in str(first)
    assert str(first) == "/discover/movie?page=1&sort_by=popularity.desc"


def test_identity_distinguishes_parameters() -> None:
    us = RequestIdentity.build("/watch/providers/tv", {"watch_region": "US"})
    gb = RequestIdentity.build("/watch/providers/tv", {"watch_region": "GB"})

    assert us != gb


def test_identity_drops_none_values_and_lowercases_booleans() -> None:
    identity = RequestIdentity.build("/search/tv", {"query": "Severance", "year": None, "include_adult": False})

    assert identity.query() == {"include_adult": "false", "query": "Severance"}


@pytest.mark.parametrize("endpoint", ["", "   ", "movie/1"])
def test_identity_rejects_malformed_endpoints(endpoint: str) -> None:
    with pytest.raises(InvalidRequestError):
        RequestIdentity.build(endpoint)


def test_identity_rejects_non_scalar_parameters() -> None:
    with pytest.raises(InvalidRequestError, match="with_genres"):
        RequestIdentity.build("/discover/tv", {"with_genres": [18, 35]})


def test_cache_store_evaluates_staleness_on_read() -> None:
    store = CacheStore(ttl_seconds=10)
    store.put(IDENTITY, b"data", now=100.0)

    assert store.get(IDENTITY, now=109.9) is not None
    assert store.get(IDENTITY, now=110.0) is None
    # Stale entries stay until superseded or cleared.
    assert len(store) == 1
    assert store.clear() == 1
    assert store.get(IDENTITY, now=100.0) is None


def test_cache_store_requires_positive_ttl() -> None:
    with pytest.raises(ValueError):
        CacheStore(ttl_seconds=0)


@pytest.mark.anyio("asyncio")
async def test_concurrent_resolves_share_one_fetch() -> None:
    coordinator = RequestCoordinator()
    fetch = GatedFetch()

    tasks = [asyncio.create_task(coordinator.resolve(IDENTITY, fetch)) for _ in range(5)]
    await asyncio.sleep(0)
    assert coordinator.is_in_flight(IDENTITY)

    fetch.release.set()
    results = await asyncio.gather(*tasks)

    assert fetch.calls == 1
    assert results == [b"payload"] * 5
    assert not coordinator.is_in_flight(IDENTITY)
    stats = coordinator.stats()
    assert stats["misses"] == 1
    assert stats["coalesced"] == 4


@pytest.mark.anyio("asyncio")
async def test_concurrent_waiters_receive_the_same_failure() -> None:
    coordinator = RequestCoordinator()
    error = TransportError("connection reset")
    fetch = GatedFetch(error=error)

    tasks = [asyncio.create_task(coordinator.resolve(IDENTITY, fetch)) for _ in range(3)]
    await asyncio.sleep(0)
    fetch.release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert fetch.calls == 1
    assert all(result is error for result in results)
    assert not coordinator.is_in_flight(IDENTITY)


@pytest.mark.anyio("asyncio")
async def test_resolve_reuses_cached_payload_within_ttl() -> None:
    clock = FakeClock()
    coordinator = RequestCoordinator(600, clock=clock)
    calls = 0

    async def fetch() -> bytes:
        nonlocal calls
        calls += 1
        return f"payload-{calls}".encode()

    assert await coordinator.resolve(IDENTITY, fetch) == b"payload-1"
    clock.now = 599.9
    assert await coordinator.resolve(IDENTITY, fetch) == b"payload-1"
    assert calls == 1
    assert coordinator.stats()["hits"] == 1


@pytest.mark.anyio("asyncio")
async def test_resolve_refetches_after_ttl() -> None:
    clock = FakeClock()
    coordinator = RequestCoordinator(600, clock=clock)
    calls = 0

    async def fetch() -> bytes:
        nonlocal calls
        calls += 1
        return f"payload-{calls}".encode()

    await coordinator.resolve(IDENTITY, fetch)
    clock.now = 600.0

    assert await coordinator.resolve(IDENTITY, fetch) == b"payload-2"
    assert calls == 2


@pytest.mark.anyio("asyncio")
async def test_failures_are_not_cached() -> None:
    coordinator = RequestCoordinator()
    calls = 0

    async def fetch() -> bytes:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise TransportError("offline")
        return b"recovered"

    with pytest.raises(TransportError):
        await coordinator.resolve(IDENTITY, fetch)

    assert await coordinator.resolve(IDENTITY, fetch) == b"recovered"
    assert calls == 2


@pytest.mark.anyio("asyncio")
async def test_cancelling_the_initiator_keeps_fetch_alive_for_other_waiters() -> None:
    coordinator = RequestCoordinator()
    fetch = GatedFetch()

    initiator = asyncio.create_task(coordinator.resolve(IDENTITY, fetch))
    waiter = asyncio.create_task(coordinator.resolve(IDENTITY, fetch))
    await asyncio.sleep(0)

    initiator.cancel()
    with pytest.raises(asyncio.CancelledError):
        await initiator

    fetch.release.set()
    assert await waiter == b"payload"
    assert fetch.calls == 1


@pytest.mark.anyio("asyncio")
async def test_caller_timeout_still_settles_and_caches_the_fetch() -> None:
    coordinator = RequestCoordinator()
    fetch = GatedFetch()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(coordinator.resolve(IDENTITY, fetch), timeout=0.01)

    assert coordinator.is_in_flight(IDENTITY)
    fetch.release.set()
    await _drain()

    assert not coordinator.is_in_flight(IDENTITY)
    assert await coordinator.resolve(IDENTITY, fetch) == b"payload"
    assert fetch.calls == 1


@pytest.mark.anyio("asyncio")
async def test_abandoned_failure_clears_in_flight_entry() -> None:
    coordinator = RequestCoordinator()
    fetch = GatedFetch(error=TransportError("timeout"))

    caller = asyncio.create_task(coordinator.resolve(IDENTITY, fetch))
    await asyncio.sleep(0)
    caller.cancel()
    fetch.release.set()
    await _drain()

    assert not coordinator.is_in_flight(IDENTITY)
    assert coordinator.stats()["entries"] == 0


@pytest.mark.anyio("asyncio")
async def test_clear_cache_leaves_in_flight_fetches_running() -> None:
    coordinator = RequestCoordinator()
    other = RequestIdentity.build("/genre/tv/list")

    async def quick() -> bytes:
        return b"genres"

    await coordinator.resolve(other, quick)
    fetch = GatedFetch()
    pending = asyncio.create_task(coordinator.resolve(IDENTITY, fetch))
    await asyncio.sleep(0)

    assert coordinator.clear_cache() == 1
    assert coordinator.is_in_flight(IDENTITY)

    fetch.release.set()
    assert await pending == b"payload"
    # The in-flight fetch repopulated the cache after the clear.
    assert await coordinator.resolve(IDENTITY, fetch) == b"payload"
    assert fetch.calls == 1
    assert coordinator.stats()["entries"] == 1
