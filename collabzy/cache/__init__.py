"""
Cache-aside layer with a fixed TTL, explicit invalidation and request coalescing.
"""
from .core import (
    CacheEntry,
    CacheMeta,
    CacheSource,
    EntryState,
    FetchResult,
    FrozenDict,
    ResourceKind,
    freeze,
    utcnow,
)
from .ttl_policies import (
    DEFAULT_TTL_SECONDS,
    GATED_KINDS,
    KIND_POLICIES,
    make_cache_key,
    normalize_filters,
    resolve_kind,
)
from .coalescer import RequestCoalescer
from .coordinator import CacheCoordinator, ReadGateway

__all__ = [
    # Core types
    "CacheEntry",
    "CacheMeta",
    "CacheSource",
    "EntryState",
    "FetchResult",
    "FrozenDict",
    "ResourceKind",
    "freeze",
    "utcnow",
    # Policies
    "DEFAULT_TTL_SECONDS",
    "GATED_KINDS",
    "KIND_POLICIES",
    "make_cache_key",
    "normalize_filters",
    "resolve_kind",
    # Coalescing
    "RequestCoalescer",
    # Coordinator
    "CacheCoordinator",
    "ReadGateway",
]
