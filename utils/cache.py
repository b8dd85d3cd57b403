# utils/cache.py
# In-process result cache with TTL + capacity eviction + refresh support.
# - get_or_compute(): single-flight per key (concurrent misses share one factory call)
# - refresh_if_needed(): serve stale, re-run the factory in a background task
# - start()/stop(): periodic expiry sweep on the running event loop
# - export_state()/import_state(): versioned JSON payload
# Time comes from an injected clock (seconds) so tests can drive expiry.

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Union

from config import CACHE_CFG, CACHE_EXPORT_VERSION, CacheConfig
from exports.exporter import json_safe
from schemas.impact_schema import CacheEntry, CacheStats

logger = logging.getLogger(__name__)

Factory = Callable[[], Union[Awaitable[Any], Any]]


# -----------------------------
# Key helpers
# -----------------------------
def make_cache_key(namespace: str, **params: Any) -> str:
    """
    Build a readable, order-independent cache key:
      "<namespace>:a:<json>|b:<json>"

    Keys stay human-readable (not hashed) so invalidate_pattern() can target
    a namespace or a parameter value with a regex.
    """
    parts = "|".join(
        f"{k}:{json.dumps(params[k], sort_keys=True, default=str)}" for k in sorted(params)
    )
    return f"{namespace}:{parts}"


async def _call_factory(factory: Factory) -> Any:
    result = factory()
    if inspect.isawaitable(result):
        result = await result
    return result


class _LeaderCancelled(Exception):
    """Set on a shared future when the caller computing it was cancelled."""


def _mark_retrieved(fut: "asyncio.Future[Any]") -> None:
    # Waiters may be gone; read the exception so asyncio does not warn about it
    if not fut.cancelled():
        fut.exception()


# -----------------------------
# Cache
# -----------------------------
class ResultCache:
    """
    Key -> value store bounded by TTL and max_size.

    Entries move fresh -> stale (elapsed >= refresh_threshold) -> expired
    (elapsed >= 1.0). Expired entries are dropped lazily on access or by the
    periodic sweep; capacity eviction drops the oldest created entry.
    Meant to be driven from a single event loop; no locking.
    """

    def __init__(
        self,
        config: CacheConfig = CACHE_CFG,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}
        self._refreshing: Dict[str, "asyncio.Task[Any]"] = {}
        self._sweep_task: Optional["asyncio.Task[None]"] = None

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _resolve_ttl(self, ttl: Optional[float]) -> float:
        if ttl is None:
            return float(self.config.default_ttl_s)
        ttl = float(ttl)
        if ttl <= 0:
            raise ValueError(f"ttl must be > 0 seconds, got {ttl}")
        return ttl

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now > entry.expires_at

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        """
        Fresh-or-stale entry, or None. Deletes the entry if it has expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry

    def _evict_oldest(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries.items(), key=lambda kv: kv[1].created_at)[0]
        del self._entries[oldest_key]
        logger.debug("Cache full (%d): evicted %s", self.config.max_size, oldest_key)

    def _store(self, key: str, entry: CacheEntry) -> None:
        if key not in self._entries and len(self._entries) >= self.config.max_size:
            self._evict_oldest()
        self._entries[key] = entry

    def ttl_for(self, namespace: str) -> float:
        return self.config.ttl_for_namespace(namespace)

    # -----------------------------
    # Synchronous API
    # -----------------------------
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl_s = self._resolve_ttl(ttl)
        now = self._clock()
        self._store(key, CacheEntry(data=value, created_at=now, expires_at=now + ttl_s))

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._lookup(key)
        if entry is None:
            self._misses += 1
            return default
        self._hits += 1
        return entry.data

    def has(self, key: str) -> bool:
        return self._lookup(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def set_many(self, items: Iterable[Tuple[str, Any, Optional[float]]]) -> None:
        for key, value, ttl in items:
            self.set(key, value, ttl)

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {k: self.get(k) for k in keys}

    def delete_many(self, keys: Iterable[str]) -> int:
        return sum(1 for k in keys if self.delete(k))

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """
        Deletes every key where `pattern` matches anywhere in the key.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        doomed = [k for k in self._entries if regex.search(k)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def sweep(self) -> int:
        """
        Removes every expired entry regardless of access.
        """
        now = self._clock()
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.info("Cache sweep: removed %d expired entries", len(expired))
        return len(expired)

    def entry_state(self, key: str) -> Optional[str]:
        """
        "fresh" | "stale" | "expired", or None when the key is absent.
        Diagnostic only: does not delete.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        fraction = entry.elapsed_fraction(self._clock())
        if fraction >= 1.0:
            return "expired"
        if fraction >= self.config.refresh_threshold:
            return "stale"
        return "fresh"

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total else 0.0

    def stats(self) -> CacheStats:
        now = self._clock()
        return CacheStats(
            size=len(self._entries),
            max_size=self.config.max_size,
            hit_rate=self.hit_rate,
            entries=[
                {"key": k, "age": now - e.created_at, "expires_in": e.expires_at - now}
                for k, e in self._entries.items()
            ],
        )

    # -----------------------------
    # Async API
    # -----------------------------
    async def get_or_compute(self, key: str, factory: Factory, ttl: Optional[float] = None) -> Any:
        """
        Cached value if present and not expired; otherwise run `factory`,
        store and return its result.

        Concurrent callers missing on the same key await one shared factory
        call. Factory errors propagate to every waiter and are not cached.
        If the caller running the factory is cancelled, the waiters are not:
        one of them runs its own factory and the rest share that call.
        """
        ttl_s = self._resolve_ttl(ttl)
        entry = self._lookup(key)
        if entry is not None:
            self._hits += 1
            return entry.data
        self._misses += 1

        while True:
            pending = self._inflight.get(key)
            if pending is None:
                break
            try:
                return await asyncio.shield(pending)
            except _LeaderCancelled:
                logger.debug("Shared computation for %s was cancelled, retrying", key)
                entry = self._lookup(key)
                if entry is not None:
                    return entry.data

        fut: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        fut.add_done_callback(_mark_retrieved)
        self._inflight[key] = fut
        try:
            value = await _call_factory(factory)
        except asyncio.CancelledError:
            fut.set_exception(_LeaderCancelled(key))
            raise
        except Exception as exc:
            fut.set_exception(exc)
            raise
        else:
            self.set(key, value, ttl_s)
            fut.set_result(value)
            return value
        finally:
            if self._inflight.get(key) is fut:
                del self._inflight[key]

    async def refresh_if_needed(
        self,
        key: str,
        factory: Factory,
        threshold: Optional[float] = None,
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Returns the current value (None if absent or expired).

        Once `threshold` of the entry's TTL has elapsed the current value is
        still returned immediately, and `factory` is re-run in a background
        task that replaces the entry on success. Failures are logged and the
        stale entry is kept. At most one refresh per key runs at a time.
        """
        threshold = self.config.refresh_threshold if threshold is None else float(threshold)
        ttl_s = self._resolve_ttl(ttl) if ttl is not None else None

        entry = self._lookup(key)
        if entry is None:
            return None
        self._hits += 1

        if entry.elapsed_fraction(self._clock()) >= threshold and key not in self._refreshing:
            task = asyncio.ensure_future(_call_factory(factory))
            self._refreshing[key] = task
            task.add_done_callback(functools.partial(self._on_refresh_done, key, ttl_s))
            logger.debug("Background refresh scheduled for %s", key)

        return entry.data

    def _on_refresh_done(self, key: str, ttl: Optional[float], task: "asyncio.Task[Any]") -> None:
        if self._refreshing.get(key) is task:
            del self._refreshing[key]
        if task.cancelled():
            logger.debug("Background refresh cancelled for %s", key)
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background refresh failed for key %s: %s", key, exc)
            return
        if key not in self._entries:
            # Deleted, invalidated or evicted while the refresh ran
            logger.debug("Dropping refresh result for vanished key %s", key)
            return
        self.set(key, task.result(), ttl)

    async def join_refreshes(self) -> None:
        """
        Waits for all background refreshes currently in flight.
        """
        tasks = list(self._refreshing.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -----------------------------
    # Sweep lifecycle
    # -----------------------------
    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        """
        Starts the periodic sweep on the running loop. Idempotent.
        """
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.info("Cache sweep started (every %.1fs)", self.config.sweep_interval_s)

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        await asyncio.gather(self._sweep_task, return_exceptions=True)
        self._sweep_task = None
        logger.info("Cache sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_s)
            self.sweep()

    # -----------------------------
    # Export / import
    # -----------------------------
    def export_state(self) -> str:
        payload = {
            "version": CACHE_EXPORT_VERSION,
            "timestamp": self._clock(),
            "entries": [
                {
                    "key": k,
                    "data": json_safe(e.data),
                    "createdAt": e.created_at,
                    "expiresAt": e.expires_at,
                }
                for k, e in self._entries.items()
            ],
        }
        return json.dumps(payload, ensure_ascii=False)

    def import_state(self, payload: Union[str, bytes, Dict[str, Any]]) -> bool:
        """
        Replaces the cache contents with a payload from export_state().

        Returns False without touching the current contents when the payload
        is unreadable, has another version, or holds a malformed entry.
        Entries already expired are skipped.
        """
        try:
            parsed = json.loads(payload) if isinstance(payload, (str, bytes, bytearray)) else payload
        except ValueError as e:
            logger.warning("Cache import rejected: unreadable payload (%s)", e)
            return False

        if not isinstance(parsed, dict):
            logger.warning("Cache import rejected: payload is not an object")
            return False
        if parsed.get("version") != CACHE_EXPORT_VERSION:
            logger.warning("Cache import rejected: unsupported version %r", parsed.get("version"))
            return False

        raw_entries = parsed.get("entries")
        if not isinstance(raw_entries, list):
            logger.warning("Cache import rejected: entries missing")
            return False

        now = self._clock()
        staged: List[Tuple[str, CacheEntry]] = []
        for raw in raw_entries:
            try:
                key = raw["key"]
                created = float(raw["createdAt"])
                expires = float(raw["expiresAt"])
                data = raw.get("data")
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Cache import rejected: malformed entry (%s)", e)
                return False
            if not isinstance(key, str) or expires <= created:
                logger.warning("Cache import rejected: malformed entry %r", raw)
                return False
            if now >= expires:
                continue
            staged.append((key, CacheEntry(data=data, created_at=created, expires_at=expires)))

        self._entries.clear()
        for key, entry in staged:
            self._store(key, entry)
        logger.info("Cache import: %d entries loaded, %d skipped", len(staged), len(raw_entries) - len(staged))
        return True
