"""Request coalescing and time-bounded response caching.

Concurrent requests for the same :class:`RequestIdentity` share one upstream
fetch, and successful payloads are reused until their TTL elapses.

All bookkeeping belongs to the event loop that first calls
:meth:`RequestCoordinator.resolve`. Every lookup, registration and settlement
runs without an ``await`` in between, so the loop itself serializes access to
the cache and in-flight maps and first-touch coalescing is race-free.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import InvalidRequestError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0
SECRET_PARAMS = frozenset({"api_key", "access_token"})

Fetch = Callable[[], Awaitable[bytes]]


@dataclass(frozen=True, slots=True)
class RequestIdentity:
    """Hashable key for one endpoint plus the parameters shaping its response."""

    endpoint: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def build(
        cls, endpoint: str, params: Mapping[str, Any] | None = None
    ) -> "RequestIdentity":
        """Return the identity for ``endpoint`` called with ``params``.

        Parameter order does not matter, ``None`` values are dropped and
        credentials never become part of the key.
        """

        if not isinstance(endpoint, str) or not endpoint.strip():
            raise InvalidRequestError("Request endpoint must be a non-empty path")
        path = endpoint.strip()
        if not path.startswith("/"):
            raise InvalidRequestError(f"Request endpoint must start with '/': {endpoint!r}")

        items: list[tuple[str, str]] = []
        for name, value in (params or {}).items():
            if name in SECRET_PARAMS or value is None:
                continue
            items.append((str(name), cls._stringify(name, value)))
        items.sort()
        return cls(endpoint=path, params=tuple(items))

    @staticmethod
    def _stringify(name: str, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (str, int, float)):
            return str(value)
        raise InvalidRequestError(
            f"Unsupported value for query parameter {name!r}: {type(value).__name__}"
        )

    def query(self) -> dict[str, str]:
        return dict(self.params)

    def __str__(self) -> str:
        if not self.params:
            return self.endpoint
        encoded = "&".join(f"{key}={value}" for key, value in self.params)
        return f"{self.endpoint}?{encoded}"


@dataclass(frozen=True, slots=True)
class CachedResponse:
    payload: bytes
    fetched_at: float


class CacheStore:
    """Fixed-TTL response cache. Staleness is checked on read."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._entries: dict[RequestIdentity, CachedResponse] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, identity: RequestIdentity, now: float) -> CachedResponse | None:
        """Return the entry for ``identity`` if it is still fresh at ``now``."""

        entry = self._entries.get(identity)
        if entry is None:
            return None
        if now - entry.fetched_at < self._ttl:
            return entry
        return None

    def put(self, identity: RequestIdentity, payload: bytes, now: float) -> CachedResponse:
        entry = CachedResponse(payload=payload, fetched_at=now)
        self._entries[identity] = entry
        return entry

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


class InFlightRegistry:
    """Tracks the one outstanding fetch per identity."""

    def __init__(self) -> None:
        self._tasks: dict[RequestIdentity, asyncio.Task[bytes]] = {}

    def get(self, identity: RequestIdentity) -> asyncio.Task[bytes] | None:
        return self._tasks.get(identity)

    def register(self, identity: RequestIdentity, task: asyncio.Task[bytes]) -> None:
        if identity in self._tasks:
            raise RuntimeError(f"A fetch for {identity} is already in flight")
        self._tasks[identity] = task

    def discard(self, identity: RequestIdentity, task: asyncio.Task[bytes] | None) -> None:
        """Remove ``identity`` if it still points at ``task``."""

        if self._tasks.get(identity) is task:
            del self._tasks[identity]

    def keys(self) -> list[RequestIdentity]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)


class RequestCoordinator:
    """Answers fetch-or-reuse for any request identity.

    Pattern:
    - A fresh cached payload is returned without fetching
    - Otherwise callers join the in-flight fetch for the identity, if any
    - Otherwise the caller starts the fetch that later callers will join
    - Successful payloads are cached; failures are propagated to every
      waiter and never cached or retried

    Waiters attach through :func:`asyncio.shield`: cancelling one caller,
    including the one that started the fetch, leaves the fetch running for
    everybody else. A fetch that outlives all of its callers still settles
    normally, caching its payload and clearing its in-flight entry.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = CacheStore(ttl_seconds)
        self._in_flight = InFlightRegistry()
        self._clock = clock
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stats = {"hits": 0, "misses": 0, "coalesced": 0, "failures": 0}

    async def resolve(self, identity: RequestIdentity, fetch: Fetch) -> bytes:
        """Return the payload for ``identity``, fetching at most once at a time."""

        self._check_loop()

        cached = self._store.get(identity, self._clock())
        if cached is not None:
            self._stats["hits"] += 1
            logger.debug("Cache hit for %s", identity)
            return cached.payload

        task = self._in_flight.get(identity)
        if task is None:
            self._stats["misses"] += 1
            logger.debug("Cache miss for %s, fetching", identity)
            task = asyncio.create_task(self._run_fetch(identity, fetch))
            task.add_done_callback(_retrieve_outcome)
            self._in_flight.register(identity, task)
        else:
            self._stats["coalesced"] += 1
            logger.debug("Joining in-flight fetch for %s", identity)

        return await asyncio.shield(task)

    async def _run_fetch(self, identity: RequestIdentity, fetch: Fetch) -> bytes:
        task = asyncio.current_task()
        try:
            payload = await fetch()
        except BaseException as exc:
            self._in_flight.discard(identity, task)
            if not isinstance(exc, asyncio.CancelledError):
                self._stats["failures"] += 1
                logger.warning("Fetch failed for %s: %s", identity, exc)
            raise
        self._store.put(identity, payload, self._clock())
        self._in_flight.discard(identity, task)
        return payload

    def clear_cache(self) -> int:
        """Drop every cached payload. In-flight fetches keep running."""

        count = self._store.clear()
        logger.info("Cleared %d cached responses", count)
        return count

    def is_in_flight(self, identity: RequestIdentity) -> bool:
        return self._in_flight.get(identity) is not None

    @property
    def ttl_seconds(self) -> float:
        return self._store.ttl_seconds

    def stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "entries": len(self._store),
            "in_flight": len(self._in_flight),
            "in_flight_keys": [str(identity) for identity in self._in_flight.keys()],
        }

    def _check_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop
        elif self._loop is not loop:
            raise RuntimeError("RequestCoordinator is bound to a different event loop")


def _retrieve_outcome(task: asyncio.Task[bytes]) -> None:
    # Marks the exception as retrieved when every waiter has gone away.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("In-flight fetch settled with %s", exc.__class__.__name__)
