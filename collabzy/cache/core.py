"""
Core cache data structures.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple
from enum import Enum


class ResourceKind(str, Enum):
    """Kinds of marketplace data cached independently."""
    INFLUENCERS = "influencers"
    CAMPAIGNS = "campaigns"
    APPLICATIONS = "applications"
    DEALS = "deals"
    CONVERSATIONS = "conversations"


class CacheSource(Enum):
    """Where the data of a fetch result came from."""
    FRESH = "fresh"                      # Served from a valid entry
    UPSTREAM = "upstream"                # Fetched from the gateway
    UNAUTHENTICATED = "unauthenticated"  # Gated kind, no session
    FAILED = "failed"                    # Gateway call failed


class EntryState(Enum):
    """Lifecycle state of the entry for one cache key."""
    EMPTY = "empty"
    VALID = "valid"
    STALE = "stale"


def utcnow() -> datetime:
    """Default clock for the cache."""
    return datetime.now(timezone.utc)


class FrozenDict(dict):
    """
    A dict that rejects changes once built.

    Still a dict, so JSON encoders and pydantic serialize it unchanged.
    """

    def _read_only(self, *args, **kwargs):
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = _read_only
    __delitem__ = _read_only
    __ior__ = _read_only
    clear = _read_only
    pop = _read_only
    popitem = _read_only
    setdefault = _read_only
    update = _read_only

    def __reduce__(self):
        return type(self), (dict(self),)


def freeze(value: Any) -> Any:
    """Deep-convert mappings to FrozenDict and lists to tuples."""
    if isinstance(value, FrozenDict):
        return value
    if isinstance(value, Mapping):
        return FrozenDict((k, freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class CacheEntry:
    """
    A stored snapshot for one cache key.

    An entry only exists once a fetch has succeeded, so data and fetched_at
    are always set together. Removing the entry is the Empty state.
    """
    data: Tuple[Any, ...]
    fetched_at: datetime
    epoch: int = 0
    sequence: int = 0

    def age_seconds(self, now: datetime) -> float:
        """Seconds since data was fetched."""
        return (now - self.fetched_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        """Check if data is within its TTL."""
        return self.age_seconds(now) < ttl_seconds

    def state(self, now: datetime, ttl_seconds: float) -> EntryState:
        if self.is_fresh(now, ttl_seconds):
            return EntryState.VALID
        return EntryState.STALE


@dataclass(frozen=True)
class CacheMeta:
    """How a read was answered, as reported to API consumers."""
    source: CacheSource
    kind: ResourceKind
    ttl_seconds: float
    fetched_at: Optional[datetime] = None
    age_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "cacheSource": self.source.value,
            "kind": self.kind.value,
            "lastUpdated": self.fetched_at.isoformat() if self.fetched_at else None,
            "ageSeconds": round(self.age_seconds, 1) if self.age_seconds is not None else None,
            "ttlSeconds": self.ttl_seconds,
        }


@dataclass
class FetchResult:
    """
    Uniform outcome of a read.

    On failure data is an empty tuple and error carries a readable message.
    """
    data: Tuple[Any, ...] = ()
    success: bool = True
    error: Optional[str] = None
    source: CacheSource = CacheSource.UPSTREAM
    meta: Optional[CacheMeta] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "data": list(self.data),
            "error": self.error,
            "meta": self.meta.to_dict() if self.meta else None,
        }
