"""
Per-kind cache policy and cache key derivation.
"""
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from .core import ResourceKind


# Entries go stale after five minutes
DEFAULT_TTL_SECONDS = 300


@dataclass(frozen=True)
class KindPolicy:
    """Caching behavior for one resource kind."""
    requires_auth: bool
    description: str


KIND_POLICIES: Dict[ResourceKind, KindPolicy] = {
    ResourceKind.INFLUENCERS: KindPolicy(
        requires_auth=False,
        description="Public influencer directory",
    ),
    ResourceKind.CAMPAIGNS: KindPolicy(
        requires_auth=True,
        description="Campaign listings",
    ),
    ResourceKind.APPLICATIONS: KindPolicy(
        requires_auth=True,
        description="The signed-in influencer's applications",
    ),
    ResourceKind.DEALS: KindPolicy(
        requires_auth=True,
        description="Deals the signed-in user is party to",
    ),
    ResourceKind.CONVERSATIONS: KindPolicy(
        requires_auth=True,
        description="Application-backed collaborations with their last message",
    ),
}

GATED_KINDS: FrozenSet[ResourceKind] = frozenset(
    kind for kind, policy in KIND_POLICIES.items() if policy.requires_auth
)


def resolve_kind(kind: Union[ResourceKind, str]) -> ResourceKind:
    """
    Coerce a kind name to ResourceKind.

    Raises:
        ValueError: for names outside the fixed set
    """
    if isinstance(kind, ResourceKind):
        return kind
    return ResourceKind(kind)


def requires_auth(kind: ResourceKind) -> bool:
    return KIND_POLICIES[kind].requires_auth


def normalize_filters(filters: Optional[Mapping[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    """Drop None values and sort by key so equal filters compare equal."""
    if not filters:
        return ()
    return tuple(sorted((str(k), v) for k, v in filters.items() if v is not None))


def make_cache_key(kind: ResourceKind, filters: Optional[Mapping[str, Any]]) -> Tuple[ResourceKind, str]:
    """Generate cache key from kind and filters."""
    return kind, repr(normalize_filters(filters))


def clean_params(filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Filters as query parameters for the gateway."""
    return dict(normalize_filters(filters))
