"""
Cache-aside coordination with a fixed TTL and explicit invalidation.
"""
import threading
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Protocol, Sequence, Tuple, Union

from collabzy.errors import GatewayError

from .core import CacheEntry, CacheMeta, CacheSource, EntryState, FetchResult, ResourceKind, freeze, utcnow
from .coalescer import RequestCoalescer
from .ttl_policies import (
    DEFAULT_TTL_SECONDS,
    KIND_POLICIES,
    clean_params,
    make_cache_key,
    requires_auth,
    resolve_kind,
)

logger = logging.getLogger("cache.coordinator")

KindArg = Union[ResourceKind, str]


class ReadGateway(Protocol):
    """The part of the gateway the coordinator reads through."""

    def fetch(self, kind: ResourceKind, filters: Mapping[str, Any]) -> Sequence[Any]:
        ...


class CacheCoordinator:
    """
    Decides per read whether to serve the stored snapshot or call the gateway.

    - One entry per (kind, normalized filters)
    - Valid while now - fetched_at < TTL; staleness is detected on read
    - Gated kinds return nothing without an authenticated session
    - Failed reads leave the store untouched
    - Concurrent misses for one key share a single gateway call; a forced
      read always makes its own call
    - Responses to calls started before an invalidation, or overtaken by a
      later call, are not stored

    The store is private; callers only see immutable tuples of records.
    """

    def __init__(
        self,
        gateway: ReadGateway,
        is_authenticated: Callable[[], bool],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        coalesce_timeout: float = 30.0,
    ):
        """
        Args:
            gateway: Source of truth for reads
            is_authenticated: Reports whether the owning session is signed in
            ttl_seconds: Age after which an entry is stale
            clock: Returns the current timezone-aware time
            coalesce_timeout: Max wait for callers joining an in-flight read
        """
        self._gateway = gateway
        self._is_authenticated = is_authenticated
        self._ttl = ttl_seconds
        self._clock = clock

        self._store: Dict[Tuple[ResourceKind, str], CacheEntry] = {}
        self._lock = threading.RLock()
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)

        # Bumped by invalidate(); guards against storing pre-invalidation responses
        self._epochs: Dict[ResourceKind, int] = {kind: 0 for kind in ResourceKind}
        self._sequence = 0
        self._last_errors: Dict[ResourceKind, str] = {}

        self._stats = {
            "hits_fresh": 0,
            "misses": 0,
            "failures": 0,
            "skipped_unauthenticated": 0,
            "discarded_responses": 0,
        }

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def fetch(
        self,
        kind: KindArg,
        filters: Optional[Mapping[str, Any]] = None,
        force_refresh: bool = False,
    ) -> FetchResult:
        """
        Serve kind from cache or from the gateway.

        Args:
            kind: Resource kind to read
            filters: Query descriptor passed through to the gateway
            force_refresh: Call the gateway even if the entry is valid

        Returns:
            FetchResult; on failure data is () and error is set

        Raises:
            ValueError: If kind is not a ResourceKind
        """
        kind = resolve_kind(kind)

        if requires_auth(kind) and not self._is_authenticated():
            logger.debug(f"SKIPPED (unauthenticated): {kind.value}")
            self._count("skipped_unauthenticated")
            return FetchResult(
                data=(),
                source=CacheSource.UNAUTHENTICATED,
                meta=self._make_meta(CacheSource.UNAUTHENTICATED, kind),
            )

        cache_key = make_cache_key(kind, filters)

        if force_refresh:
            logger.info(f"FORCE REFRESH: {cache_key}")
        else:
            with self._lock:
                entry = self._store.get(cache_key)
            now = self._clock()

            if entry is None:
                logger.info(f"CACHE MISS: {cache_key}")
            elif entry.is_fresh(now, self._ttl):
                age = entry.age_seconds(now)
                logger.debug(f"CACHE HIT (fresh): {cache_key} [age={age:.1f}s]")
                self._count("hits_fresh")
                return FetchResult(
                    data=entry.data,
                    source=CacheSource.FRESH,
                    meta=self._make_meta(CacheSource.FRESH, kind, entry.fetched_at, age),
                )
            else:
                logger.info(f"CACHE EXPIRED: {cache_key} [age={entry.age_seconds(now):.1f}s]")

        return self._fetch_upstream(kind, cache_key, filters, force_refresh)

    def _fetch_upstream(
        self,
        kind: ResourceKind,
        cache_key: Tuple[ResourceKind, str],
        filters: Optional[Mapping[str, Any]],
        force: bool = False,
    ) -> FetchResult:
        with self._lock:
            epoch = self._epochs[kind]
            self._sequence += 1
            sequence = self._sequence

        params = clean_params(filters)

        def fetch() -> Tuple[Any, ...]:
            data = freeze(tuple(self._gateway.fetch(kind, params)))
            self._store_entry(kind, cache_key, data, epoch, sequence)
            return data

        self._count("misses")
        # The epoch is part of the key so nobody joins a pre-invalidation call
        coalesce_key: Hashable = (cache_key, epoch)
        try:
            data = self._coalescer.join_or_start(coalesce_key, fetch, force=force)
        except (GatewayError, TimeoutError) as e:
            message = e.message if isinstance(e, GatewayError) else str(e)
            logger.warning(f"Fetch failed for {kind.value}: {message}")
            with self._lock:
                self._stats["failures"] += 1
                self._last_errors[kind] = message
            return FetchResult(
                data=(),
                success=False,
                error=message,
                source=CacheSource.FAILED,
                meta=self._make_meta(CacheSource.FAILED, kind),
            )

        with self._lock:
            self._last_errors.pop(kind, None)
        return FetchResult(
            data=data,
            source=CacheSource.UPSTREAM,
            meta=self._make_meta(CacheSource.UPSTREAM, kind, self._clock(), 0.0),
        )

    def _store_entry(
        self,
        kind: ResourceKind,
        cache_key: Tuple[ResourceKind, str],
        data: Tuple[Any, ...],
        epoch: int,
        sequence: int,
    ) -> bool:
        """Store a response unless it was overtaken. Returns True if stored."""
        fetched_at = self._clock()
        with self._lock:
            if self._epochs[kind] != epoch:
                logger.info(f"Discarding response for {cache_key}: invalidated while in flight")
                self._stats["discarded_responses"] += 1
                return False
            current = self._store.get(cache_key)
            if current is not None and current.sequence > sequence:
                logger.info(f"Discarding response for {cache_key}: newer response already stored")
                self._stats["discarded_responses"] += 1
                return False
            self._store[cache_key] = CacheEntry(
                data=data,
                fetched_at=fetched_at,
                epoch=epoch,
                sequence=sequence,
            )
            return True

    def _make_meta(
        self,
        source: CacheSource,
        kind: ResourceKind,
        fetched_at: Optional[datetime] = None,
        age: Optional[float] = None,
    ) -> CacheMeta:
        return CacheMeta(
            source=source,
            kind=kind,
            ttl_seconds=self._ttl,
            fetched_at=fetched_at,
            age_seconds=age,
        )

    def _count(self, name: str) -> None:
        with self._lock:
            self._stats[name] += 1

    def invalidate(self, kind: Optional[KindArg] = None) -> int:
        """
        Clear the entries of one kind, every filter variant included.

        Passing None clears every kind. Never fetches; the next read misses.

        Returns:
            Number of entries removed
        """
        kinds = list(ResourceKind) if kind is None else [resolve_kind(kind)]
        with self._lock:
            for k in kinds:
                self._epochs[k] += 1
            to_delete = [key for key in self._store if key[0] in kinds]
            for key in to_delete:
                del self._store[key]

        if kind is None:
            logger.info(f"Cleared {len(to_delete)} cache entries")
        else:
            logger.info(f"Invalidated {kinds[0].value} ({len(to_delete)} entries)")
        return len(to_delete)

    def clear_all(self) -> int:
        """Clear every entry; used on logout and session teardown."""
        return self.invalidate(None)

    def peek(self, kind: KindArg, filters: Optional[Mapping[str, Any]] = None) -> Optional[CacheEntry]:
        """The stored entry for kind and filters, or None when Empty."""
        cache_key = make_cache_key(resolve_kind(kind), filters)
        with self._lock:
            return self._store.get(cache_key)

    def state(self, kind: KindArg, filters: Optional[Mapping[str, Any]] = None) -> EntryState:
        entry = self.peek(kind, filters)
        if entry is None:
            return EntryState.EMPTY
        return entry.state(self._clock(), self._ttl)

    def last_error(self, kind: KindArg) -> Optional[str]:
        """Message of the last failed read of kind, cleared by the next success."""
        with self._lock:
            return self._last_errors.get(resolve_kind(kind))

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._stats["hits_fresh"] + self._stats["misses"]
            hit_rate = (self._stats["hits_fresh"] / total_requests * 100) if total_requests > 0 else 0
            per_kind = {kind.value: 0 for kind in KIND_POLICIES}
            for kind, _ in self._store:
                per_kind[kind.value] += 1

            return {
                "entries": len(self._store),
                "entries_by_kind": per_kind,
                "ttl_seconds": self._ttl,
                **self._stats,
                "hit_rate_percent": round(hit_rate, 1),
                "coalescer": self._coalescer.get_stats(),
            }
